"""
Estimatix - File Storage Protocol Interface
"""
from pathlib import Path
from typing import Protocol


class FileStorage(Protocol):
    """Bucket/key file storage returning public URLs."""

    def save(self, bucket: str, key: str, content: bytes) -> str:
        """
        Store content, overwriting any existing object.

        Returns:
            Public URL path of the stored object

        Raises:
            StorageError: If the write fails
        """
        ...

    def read(self, bucket: str, key: str) -> bytes:
        """
        Raises:
            NotFoundError: If the object does not exist
        """
        ...

    def resolve(self, bucket: str, key: str) -> Path | None:
        """Local path of an object (None if missing)."""
        ...
