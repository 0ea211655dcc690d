"""Estimatix - Domain Interfaces (Protocols)."""

from .database import DatabaseClient, Row, Filters
from .ai_client import AIClient, SpeechToTextClient
from .storage import FileStorage
from .extractor import PageTextExtractor

__all__ = [
    # Database
    "DatabaseClient",
    "Row",
    "Filters",
    # AI
    "AIClient",
    "SpeechToTextClient",
    # Storage
    "FileStorage",
    # Extraction
    "PageTextExtractor",
]
