"""
Estimatix - Transcription & AI Parsing Service

Walkthrough recordings -> transcript -> structured estimate.
"""
import logging
from dataclasses import replace
from pathlib import PurePath

from estimatix.domain.exceptions import (
    EstimatixError,
    NotFoundError,
    TranscriptionError,
    ValidationError,
)
from estimatix.domain.interfaces.ai_client import AIClient, SpeechToTextClient
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.config import AppConfig
from estimatix.domain.models.cost_codes import cost_code_from_category
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import LineItem, PricingSource, apply_totals, merge_estimate_items
from estimatix.domain.models.transcript import (
    ParsedItem,
    ParsedTranscript,
    Upload,
    UploadKind,
    UploadStatus,
)
from estimatix.application.ai_responses import parse_model_json
from estimatix.application.repository import ESTIMATES, UPLOADS, Repository, new_id

logger = logging.getLogger(__name__)

RECORDINGS_BUCKET = "recordings"
FALLBACK_NOTE = "Parsed from transcript (AI not available)"

SYSTEM_PROMPT = "You are a construction estimator. Return only valid JSON matching the exact schema provided."

PARSE_PROMPT = """You are an expert construction estimator. Parse the following project description into structured line items.

STRICT RULES:
1. NORMALIZE UNITS: Convert all measurements to consistent units (prefer feet/inches for US projects)
2. AGGREGATE DUPLICATES: Combine identical items with total quantities
3. INFER REASONABLE DEFAULTS: Use industry standards for missing specifications
4. NEVER INVENT QUANTITIES: If unclear, add to missing_info instead of guessing
5. CATEGORIZE PROPERLY: Use exact categories (Windows, Doors, Cabinets, Flooring, Plumbing, Electrical, Other)
6. CALCULATE TOTALS: Only if unit_cost is provided or can be reasonably estimated

PROJECT DESCRIPTION:
{transcript}

Return ONLY valid JSON matching this exact schema:
{{
  "items": [
    {{
      "category": "Windows|Doors|Cabinets|Flooring|Plumbing|Electrical|Other",
      "description": "detailed item description",
      "quantity": number,
      "unit": "string (optional)",
      "dimensions": {{"unit": "in|ft|cm|m", "width": number, "height": number, "depth": number (optional)}} | null,
      "unit_cost": number (optional),
      "total": number (optional),
      "notes": "string (optional)"
    }}
  ],
  "assumptions": ["assumptions made"],
  "missing_info": ["unclear information"]
}}

Be precise and conservative. If any information is unclear, add it to missing_info rather than guessing."""


def fallback_parse(transcript: str) -> ParsedTranscript:
    """Single catch-all item used when the language model is unavailable."""
    return ParsedTranscript(
        items=[ParsedItem(category="Other", description=transcript, quantity=1, notes=FALLBACK_NOTE)],
        assumptions=["AI parsing not available - using basic parsing"],
        missing_info=["Detailed item breakdown requires the AI service"],
    )


def parse_ai_response(response: str) -> ParsedTranscript:
    """
    Decode and validate the model's transcript answer.

    Raises:
        AIResponseParsingError: Not JSON, or JSON not matching the schema
    """
    return parse_model_json(response, ParsedTranscript)


def line_item_from_parsed(parsed: ParsedItem, estimate: Estimate) -> LineItem:
    total = parsed.priced_total()
    item = LineItem(
        id=new_id(),
        estimate_id=estimate.id,
        project_id=estimate.project_id,
        description=parsed.description.strip(),
        cost_code=cost_code_from_category(parsed.category),
        category=parsed.category,
        quantity=parsed.quantity,
        unit=parsed.unit,
        unit_cost=parsed.unit_cost,
        pricing_source=PricingSource.AI,
        notes=parsed.notes,
    )
    return apply_totals(item, {"direct_cost": total} if total is not None else {})


class TranscriptionService:
    """Speech-to-text with fallback and LLM transcript parsing."""

    def __init__(
        self,
        repo: Repository,
        storage: FileStorage,
        config: AppConfig,
        ai_client: AIClient | None = None,
        stt_client: SpeechToTextClient | None = None
    ):
        self.repo = repo
        self.storage = storage
        self.config = config
        self.ai_client = ai_client if config.ollama.enabled else None
        self.stt_client = stt_client if config.whisper.enabled else None

    def transcribe(self, audio_bytes: bytes, filename: str, client_transcript: str | None = None) -> str:
        """
        Whisper transcript, falling back to the browser-side transcript.

        Raises:
            TranscriptionError: If neither is available
        """
        if self.stt_client is not None and audio_bytes:
            try:
                text = self.stt_client.transcribe(audio_bytes, filename, self.config.whisper.language)
                if text.strip():
                    return text.strip()
                logger.warning(f"Whisper returned an empty transcript for {filename}")
            except TranscriptionError as e:
                logger.warning(f"Whisper failed for {filename}, using client transcript: {e}")

        if client_transcript and client_transcript.strip():
            return client_transcript.strip()
        raise TranscriptionError("No transcript available", service="whisper")

    def _parse(self, transcript: str) -> ParsedTranscript:
        if self.ai_client is None:
            logger.warning("AI parsing disabled, using fallback parse")
            return fallback_parse(transcript)

        response = self.ai_client.generate_text(
            prompt=PARSE_PROMPT.format(transcript=transcript),
            model=self.config.ollama.text_model,
            json_mode=True,
            system=SYSTEM_PROMPT,
        )
        return parse_ai_response(response)

    def parse_transcript(self, user_id: str, project_id: str, transcript: str) -> tuple[Estimate, ParsedTranscript]:
        """
        Parse a transcript into a new draft estimate with merged line items.

        Raises:
            ValidationError: Empty transcript
            AIGenerationError, AIResponseParsingError: Model failures
        """
        if not transcript or not transcript.strip():
            raise ValidationError("Missing transcript", field_name="transcript")
        self.repo.owned_project(project_id, user_id)

        parsed = self._parse(transcript.strip())
        estimate = Estimate(
            id=new_id(),
            project_id=project_id,
            json_data=parsed.model_dump(),
            ai_summary=f"Parsed {len(parsed.items)} line items from transcript",
            total=parsed.total,
        )
        estimate = Estimate.from_row(self.repo.db.insert(ESTIMATES, estimate.to_row()))

        items = [line_item_from_parsed(p, estimate) for p in parsed.items]
        for merged in merge_estimate_items(items):
            self.repo.insert_line_item(merged.item)

        total = self.repo.refresh_estimate_total(estimate.id)
        logger.info(f"Created estimate {estimate.id} from transcript: {len(parsed.items)} items, total={total}")
        return replace(estimate, total=total), parsed

    # Recordings

    def create_recording(
        self,
        user_id: str,
        project_id: str,
        filename: str,
        content: bytes,
        client_transcript: str | None = None
    ) -> Upload:
        """Store an audio upload, queued for processing."""
        self.repo.owned_project(project_id, user_id)
        max_bytes = self.config.storage.max_upload_mb * 1024 * 1024
        if len(content) > max_bytes:
            raise ValidationError(
                f"Recording exceeds {self.config.storage.max_upload_mb} MB", field_name="file"
            )
        if not content and not client_transcript:
            raise ValidationError("Recording is empty", field_name="file")

        upload_id = new_id()
        safe_name = PurePath(filename or "recording.webm").name
        key = f"{project_id}/{upload_id}/{safe_name}"
        self.storage.save(RECORDINGS_BUCKET, key, content)

        upload = Upload(
            id=upload_id,
            project_id=project_id,
            kind=UploadKind.AUDIO,
            storage_path=key,
            filename=safe_name,
            client_transcript=client_transcript,
        )
        return Upload.from_row(self.repo.db.insert(UPLOADS, upload.to_row()))

    def get_upload(self, user_id: str, upload_id: str) -> Upload:
        upload = self._load_upload(upload_id)
        self.repo.owned_project(upload.project_id, user_id)
        return upload

    def _load_upload(self, upload_id: str) -> Upload:
        row = self.repo.db.get(UPLOADS, upload_id)
        if not row:
            raise NotFoundError("Upload not found", entity_type="upload", entity_id=upload_id)
        return Upload.from_row(row)

    def _set_status(self, upload: Upload, status: UploadStatus, **values) -> Upload:
        values["status"] = status.value
        row = self.repo.db.update(UPLOADS, upload.id, values)
        return Upload.from_row(row) if row else replace(upload, status=status)

    def process_recording(self, upload_id: str) -> Upload:
        """
        Transcribe and parse a stored recording (runs in the worker).

        Domain failures are recorded on the upload (status "failed").
        """
        upload = self._load_upload(upload_id)
        project = self.repo.get_project(upload.project_id)
        upload = self._set_status(upload, UploadStatus.RUNNING)
        logger.info(f"Processing recording {upload_id} for project {project.id}")

        try:
            audio = self.storage.read(RECORDINGS_BUCKET, upload.storage_path)
            transcript = self.transcribe(audio, upload.filename, upload.client_transcript)
            estimate, _ = self.parse_transcript(project.user_id, project.id, transcript)
        except EstimatixError as e:
            logger.error(f"Recording {upload_id} failed: {e}", exc_info=True)
            return self._set_status(upload, UploadStatus.FAILED, error=str(e))
        except Exception as e:
            logger.error(f"Unexpected error processing recording {upload_id}: {e}", exc_info=True)
            self._set_status(upload, UploadStatus.FAILED, error=str(e))
            raise

        logger.info(f"✅ Recording {upload_id} processed into estimate {estimate.id}")
        return self._set_status(
            upload,
            UploadStatus.DONE,
            transcript=transcript,
            estimate_id=estimate.id,
            error=None,
        )
