"""
Estimatix - AI Client Protocol Interfaces

Protocols for the language model and speech-to-text services.
"""
from typing import Protocol


class AIClient(Protocol):
    """
    Protocol for AI text model clients.

    Provides text generation capabilities.
    """

    def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        json_mode: bool = False,
        timeout: int | None = None,
        system: str | None = None
    ) -> str:
        """
        Generate text response from AI model.

        Args:
            prompt: Input prompt
            model: Model name (None = use default)
            json_mode: Enable JSON output format
            timeout: Request timeout in seconds (None = config default)
            system: Optional system message

        Returns:
            Generated text response

        Raises:
            AIGenerationError: If generation fails
        """
        ...

    def is_model_available(self, model_name: str) -> bool:
        """Check if model is available."""
        ...


class SpeechToTextClient(Protocol):
    """Protocol for speech transcription services."""

    def transcribe(self, audio_bytes: bytes, filename: str = "audio.wav", language: str | None = None) -> str:
        """
        Transcribe audio to plain text.

        Raises:
            TranscriptionError: If transcription fails
        """
        ...

    def health_check(self) -> bool:
        ...
