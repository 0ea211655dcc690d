"""
Estimatix - Database Protocol Interface

Protocol-based interface for table-oriented persistence (PEP 544).
"""
from typing import Any, ContextManager, Protocol

Row = dict[str, Any]
Filters = dict[str, Any]


class DatabaseClient(Protocol):
    """
    Protocol for database client implementations.

    Rows are plain dicts keyed by column name. Filters are equality matches:
    a None value matches NULL and a list/tuple value matches any of its items.
    """

    def get_connection(self) -> ContextManager[Any]:
        """
        Get database connection context manager.

        Raises:
            ConnectionError: If connection fails
        """
        ...

    def init_schema(self) -> bool:
        """
        Initialize database schema (tables, indexes).

        Returns:
            True if successful

        Raises:
            DatabaseError: If initialization fails
        """
        ...

    def insert(self, table: str, values: Row) -> Row:
        """
        Insert a row.

        Returns:
            The stored row (with defaults applied)

        Raises:
            QueryError: If the insert fails
        """
        ...

    def get(self, table: str, row_id: str) -> Row | None:
        """Get a row by primary key (None if missing)."""
        ...

    def find(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None
    ) -> list[Row]:
        """Select rows matching all filters."""
        ...

    def find_one(self, table: str, filters: Filters) -> Row | None:
        """First row matching filters (None if no match)."""
        ...

    def update(self, table: str, row_id: str, values: Row) -> Row | None:
        """
        Update a row by primary key.

        Returns:
            Updated row, or None if it does not exist
        """
        ...

    def update_where(self, table: str, filters: Filters, values: Row) -> int:
        """Update all matching rows, returning the affected count."""
        ...

    def delete(self, table: str, row_id: str) -> bool:
        """Delete a row by primary key."""
        ...

    def delete_where(self, table: str, filters: Filters) -> int:
        """Delete all matching rows, returning the affected count."""
        ...
