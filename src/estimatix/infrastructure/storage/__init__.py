"""File storage."""

from .file_storage import LocalFileStorage

__all__ = ["LocalFileStorage"]
