"""
Estimatix - Page Text Extractor Protocol Interface

Structural typing: any object with these methods can feed plan parsing.
"""
from typing import Protocol

from estimatix.domain.models.plans import PlanPage


class PageTextExtractor(Protocol):
    """Reads the text of each page of an uploaded document."""

    def can_handle(self, file_name: str) -> bool:
        """
        Check if this extractor can handle the given file.

        Args:
            file_name: Name of the file (with extension)
        """
        ...

    def extract_pages(self, content: bytes, file_name: str, max_pages: int) -> list[PlanPage]:
        """
        Extract page text.

        Args:
            content: Raw file bytes
            file_name: Original file name
            max_pages: Stop after this many pages

        Returns:
            Pages numbered from 1

        Raises:
            ExtractionError: If the document cannot be read
        """
        ...
