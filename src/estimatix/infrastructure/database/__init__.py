"""PostgreSQL persistence."""

from .postgres_client import PostgresClient

__all__ = ["PostgresClient"]
