"""
Estimatix - Service Container

Wires the application services around one Repository.
"""
from dataclasses import dataclass
from typing import Callable

from estimatix.domain.interfaces.ai_client import AIClient, SpeechToTextClient
from estimatix.domain.interfaces.database import DatabaseClient
from estimatix.domain.interfaces.extractor import PageTextExtractor
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.config import AppConfig
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.infrastructure.extractors.pdf_extractor import PdfPlanExtractor
from estimatix.application.actuals import ActualsService
from estimatix.application.contracts import ContractService
from estimatix.application.copilot import CopilotService
from estimatix.application.dashboard import DashboardService
from estimatix.application.invoices import InvoiceService
from estimatix.application.jobs import JobService
from estimatix.application.lifecycle import LifecycleService
from estimatix.application.line_items import LineItemService
from estimatix.application.plans import PlanService
from estimatix.application.pricing import PricingService
from estimatix.application.projects import ProjectService
from estimatix.application.proposals import ProposalService
from estimatix.application.repository import Repository
from estimatix.application.rooms import RoomService
from estimatix.application.selections import SelectionService
from estimatix.application.spec_sheets import SpecSheetService
from estimatix.application.transcription import TranscriptionService


@dataclass
class Services:
    """Everything the API and the worker need."""

    config: AppConfig
    db: DatabaseClient
    storage: FileStorage
    repo: Repository
    projects: ProjectService
    line_items: LineItemService
    pricing: PricingService
    lifecycle: LifecycleService
    rooms: RoomService
    selections: SelectionService
    transcription: TranscriptionService
    spec_sheets: SpecSheetService
    proposals: ProposalService
    contracts: ContractService
    jobs: JobService
    invoices: InvoiceService
    actuals: ActualsService
    dashboard: DashboardService
    plans: PlanService
    copilot: CopilotService
    enqueue_recording: Callable[[str], bool] | None = None


def build_services(
    config: AppConfig,
    db: DatabaseClient,
    storage: FileStorage,
    ai_client: AIClient | None = None,
    stt_client: SpeechToTextClient | None = None,
    renderer: PdfRenderer | None = None,
    extractor: PageTextExtractor | None = None
) -> Services:
    """
    Build the service graph on top of already created clients.

    Args:
        config: Application configuration
        db: Database client (PostgresClient or a test double)
        storage: File storage
        ai_client: LLM client (None = fallback parsing)
        stt_client: Speech-to-text client (None = client transcripts only)
        renderer: PDF renderer (None = default reportlab renderer)
        extractor: Plan page text extractor (None = pdfplumber extractor)

    Returns:
        Services container
    """
    repo = Repository(db)
    renderer = renderer or PdfRenderer()
    pricing = PricingService(repo, config.pricing)
    lifecycle = LifecycleService(repo, pricing)
    line_items = LineItemService(repo)
    rooms = RoomService(repo)

    return Services(
        config=config,
        db=db,
        storage=storage,
        repo=repo,
        projects=ProjectService(repo),
        line_items=line_items,
        pricing=pricing,
        lifecycle=lifecycle,
        rooms=rooms,
        selections=SelectionService(repo),
        transcription=TranscriptionService(repo, storage, config, ai_client, stt_client),
        spec_sheets=SpecSheetService(repo, storage, renderer),
        proposals=ProposalService(repo, storage, renderer),
        contracts=ContractService(repo, storage, renderer),
        jobs=JobService(repo),
        invoices=InvoiceService(repo, storage, renderer),
        actuals=ActualsService(repo, lifecycle),
        dashboard=DashboardService(repo),
        plans=PlanService(repo, storage, config, rooms, extractor or PdfPlanExtractor(), ai_client),
        copilot=CopilotService(repo, config, line_items, rooms, pricing, ai_client),
    )
