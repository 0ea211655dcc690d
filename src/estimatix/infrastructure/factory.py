"""
Estimatix - Infrastructure Factory

Factory functions for dependency injection and easy setup.
"""
import logging

from estimatix.domain.models.config import AppConfig
from estimatix.infrastructure.ai.ollama_client import OllamaClient
from estimatix.infrastructure.audio.whisper_client import WhisperASRClient
from estimatix.infrastructure.database.postgres_client import PostgresClient
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.infrastructure.extractors.pdf_extractor import PdfPlanExtractor
from estimatix.infrastructure.storage.file_storage import LocalFileStorage

logger = logging.getLogger(__name__)


def create_database_client(config: AppConfig) -> PostgresClient:
    """
    Create PostgreSQL database client.

    Args:
        config: Application configuration

    Returns:
        PostgresClient instance
    """
    return PostgresClient(config.database)


def create_ai_client(config: AppConfig) -> OllamaClient | None:
    """Ollama client, or None when AI parsing is disabled."""
    if not config.ollama.enabled:
        return None
    return OllamaClient(config.ollama)


def create_speech_client(config: AppConfig) -> WhisperASRClient | None:
    """Whisper ASR client, or None when transcription is disabled."""
    if not config.whisper.enabled:
        return None
    return WhisperASRClient(config.whisper.url, timeout=config.whisper.timeout_seconds)


def create_file_storage(config: AppConfig) -> LocalFileStorage:
    return LocalFileStorage(config.storage)


def create_pdf_extractor() -> PdfPlanExtractor:
    return PdfPlanExtractor()


def create_services(config: AppConfig | None = None, init_schema: bool = True):
    """
    Create the full service graph backed by PostgreSQL.

    Args:
        config: Application configuration (None = from environment)
        init_schema: Create tables on startup

    Returns:
        Services container with the recording queue attached
    """
    from estimatix.application.services import build_services
    from estimatix.workers.queue import RecordingQueue

    config = config or AppConfig.from_env()
    db = create_database_client(config)
    if init_schema:
        db.init_schema()

    services = build_services(
        config,
        db=db,
        storage=create_file_storage(config),
        ai_client=create_ai_client(config),
        stt_client=create_speech_client(config),
        renderer=PdfRenderer(),
        extractor=create_pdf_extractor(),
    )
    queue = RecordingQueue(config.queue, services.transcription.process_recording)
    services.enqueue_recording = queue.enqueue_recording

    logger.info(
        f"✅ Services ready (ai={'on' if config.ollama.enabled else 'off'}, "
        f"whisper={'on' if config.whisper.enabled else 'off'}, queue={'redis' if queue.is_async else 'inline'})"
    )
    return services
