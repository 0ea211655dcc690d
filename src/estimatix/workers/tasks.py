"""
Background task definitions (run by `rq worker estimatix`).
"""
import logging

from estimatix.domain.models.transcript import UploadStatus

logger = logging.getLogger(__name__)

_services = None


def _get_services():
    global _services
    if _services is None:
        from estimatix.infrastructure.factory import create_services

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        _services = create_services(init_schema=False)
    return _services


def process_recording(upload_id: str) -> str:
    """
    Transcribe a stored recording and parse it into an estimate.

    Returns:
        Final upload status
    """
    logger.info(f"Worker processing recording: {upload_id}")
    upload = _get_services().transcription.process_recording(upload_id)
    if upload.status is UploadStatus.FAILED:
        logger.error(f"Recording {upload_id} failed: {upload.error}")
    return upload.status.value
