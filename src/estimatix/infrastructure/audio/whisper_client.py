"""
Whisper ASR client.
"""
import logging
import mimetypes

import requests

from estimatix.domain.exceptions import TranscriptionError

logger = logging.getLogger(__name__)


class WhisperASRClient:
    """
    Whisper Automatic Speech Recognition client.

    Implements SpeechToTextClient protocol.
    """

    def __init__(self, base_url: str, timeout: int = 300):
        """
        Args:
            base_url: Whisper API URL (e.g., http://localhost:9000)
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        logger.info(f"WhisperASRClient initialized: {base_url}")

    def transcribe(self, audio_bytes: bytes, filename: str = "audio.wav", language: str | None = None) -> str:
        """
        Transcribe audio to text.

        Args:
            audio_bytes: Audio file data
            filename: Original file name (used for the content type)
            language: Optional language code

        Returns:
            Transcript text (segments joined with spaces)

        Raises:
            TranscriptionError: If transcription fails
        """
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        try:
            files = {"audio_file": (filename, audio_bytes, content_type)}
            params = {"task": "transcribe", "output": "json"}
            if language:
                params["language"] = language

            response = requests.post(
                f"{self.base_url}/asr",
                files=files,
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
            result = response.json()

        except requests.exceptions.RequestException as e:
            logger.error(f"Whisper transcription failed: {e}")
            raise TranscriptionError(f"Whisper ASR failed: {e}", service="Whisper") from e
        except ValueError as e:
            raise TranscriptionError(f"Whisper returned invalid JSON: {e}", service="Whisper") from e

        text = (result.get("text") or "").strip()
        if not text:
            text = " ".join(
                seg.get("text", "").strip() for seg in result.get("segments", []) if seg.get("text")
            ).strip()

        logger.info(f"Whisper transcribed {len(text)} chars")
        return text

    def health_check(self) -> bool:
        """Check if Whisper service is available"""
        try:
            response = requests.get(f"{self.base_url}/health", timeout=3)
            return response.ok
        except requests.exceptions.RequestException:
            try:
                response = requests.get(self.base_url, timeout=3)
                return response.ok
            except requests.exceptions.RequestException:
                return False
