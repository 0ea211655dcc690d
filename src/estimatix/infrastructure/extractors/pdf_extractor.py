"""
PDF Extractor - page text of plan sets via pdfplumber.

Scanned sheets without a text layer come back as empty pages; the plan
parser skips them.
"""
import io
import logging
import time

import pdfplumber

from estimatix.domain.exceptions import ExtractionError
from estimatix.domain.models.plans import PlanPage

logger = logging.getLogger(__name__)


class PdfPlanExtractor:
    """
    PDF page text extractor.

    Implements the PageTextExtractor protocol (structural typing).
    """

    @property
    def supported_extensions(self) -> tuple[str, ...]:
        return ('.pdf',)

    def can_handle(self, file_name: str) -> bool:
        """Check if file is a PDF"""
        return file_name.lower().endswith('.pdf')

    def extract_pages(self, content: bytes, file_name: str, max_pages: int) -> list[PlanPage]:
        """
        Extract the text of each page.

        Args:
            content: PDF bytes
            file_name: Original file name
            max_pages: Page limit

        Returns:
            Pages numbered from 1

        Raises:
            ExtractionError: If the PDF cannot be opened or read
        """
        start_time = time.time()
        pages = []

        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                total_pages = len(pdf.pages)

                for i, page in enumerate(pdf.pages):
                    if i >= max_pages:
                        logger.warning(f"Reached page limit ({max_pages}), stopping")
                        break

                    text = page.extract_text() or ""
                    pages.append(PlanPage(number=i + 1, text=text, file_name=file_name))
        except Exception as e:
            logger.exception(f"PDF extraction failed: {file_name}")
            raise ExtractionError(f"Failed to extract PDF: {e}", file_name=file_name) from e

        logger.info(
            f"PDF extraction complete: {file_name} | "
            f"{len(pages)}/{total_pages} pages | {time.time() - start_time:.2f}s | "
            f"{sum(len(p.text) for p in pages)} chars"
        )
        return pages
