"""Speech-to-text clients."""

from .whisper_client import WhisperASRClient

__all__ = ["WhisperASRClient"]
