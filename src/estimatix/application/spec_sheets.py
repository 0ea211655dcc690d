"""
Estimatix - Spec Sheet Service
"""
import logging

from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.spec_sheet import build_spec_sheet_sections
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.application.repository import Repository

logger = logging.getLogger(__name__)

SPEC_SHEETS_BUCKET = "spec-sheets"


class SpecSheetService:
    def __init__(self, repo: Repository, storage: FileStorage, renderer: PdfRenderer):
        self.repo = repo
        self.storage = storage
        self.renderer = renderer

    def generate_spec_sheet(self, user_id: str, estimate_id: str) -> str:
        """
        Render the estimate's spec sheet PDF and store it.

        Returns:
            Public URL of the PDF (also saved as estimate.spec_sheet_url)

        Raises:
            DocumentRenderError: If reportlab fails
            StorageError: If the file cannot be written
        """
        estimate, project = self.repo.owned_estimate(estimate_id, user_id)
        sections = build_spec_sheet_sections(
            self.repo.estimate_items(estimate_id),
            self.repo.project_rooms(project.id),
        )

        pdf = self.renderer.render_spec_sheet(self.repo.document_header(project, user_id), sections)
        url = self.storage.save(SPEC_SHEETS_BUCKET, f"{project.id}/{estimate.id}.pdf", pdf)
        self.repo.save_estimate_fields(estimate, spec_sheet_url=url)

        logger.info(f"Spec sheet for estimate {estimate_id}: {len(sections)} sections -> {url}")
        return url
