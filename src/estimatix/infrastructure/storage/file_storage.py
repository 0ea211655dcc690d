"""
File storage operations (local disk, bucket/key layout).
"""
import logging
from pathlib import Path

from estimatix.domain.models.config import StorageConfig
from estimatix.domain.exceptions import NotFoundError, StorageError

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """
    Stores objects under <root_dir>/<bucket>/<key>.

    Implements FileStorage protocol. Public URLs are
    <public_prefix>/<bucket>/<key> and are served by the API.
    """

    def __init__(self, config: StorageConfig):
        self.root = Path(config.root_dir).resolve()
        self.public_prefix = config.public_prefix.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalFileStorage initialized: {self.root}")

    def _path(self, bucket: str, key: str) -> Path:
        path = (self.root / bucket / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid storage key: {bucket}/{key}", entity_type="file", entity_id=key)
        return path

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_prefix}/{bucket}/{key}"

    def save(self, bucket: str, key: str, content: bytes) -> str:
        """Write content (overwrites) and return its public URL."""
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            logger.error(f"Failed to store {bucket}/{key}: {e}", exc_info=True)
            raise StorageError(f"Failed to store file: {e}", entity_type="file", entity_id=key)
        logger.info(f"Stored {bucket}/{key} ({len(content)} bytes)")
        return self.public_url(bucket, key)

    def read(self, bucket: str, key: str) -> bytes:
        path = self.resolve(bucket, key)
        if path is None:
            raise NotFoundError("File not found", entity_type="file", entity_id=f"{bucket}/{key}")
        return path.read_bytes()

    def resolve(self, bucket: str, key: str) -> Path | None:
        path = self._path(bucket, key)
        return path if path.is_file() else None
