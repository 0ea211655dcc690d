"""
Shared fixtures: an in-memory DatabaseClient and a fully wired service graph.
"""
import copy
from contextlib import contextmanager
from typing import Any

import pytest

from estimatix.application.services import Services, build_services
from estimatix.domain.exceptions import QueryError
from estimatix.domain.models.config import AppConfig
from estimatix.infrastructure.database.postgres_client import SCHEMA
from estimatix.infrastructure.storage.file_storage import LocalFileStorage

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def _matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    for column, value in (filters or {}).items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif isinstance(value, (list, tuple, set)):
            if row.get(column) not in value:
                return False
        elif row.get(column) != value:
            return False
    return True


def _sort_key(column: str):
    def key(row: dict[str, Any]):
        value = row.get(column)
        return (value is None, value if value is not None else 0)
    return key


class InMemoryDatabase:
    """DatabaseClient backed by dicts, with the same filter semantics as PostgresClient."""

    def __init__(self):
        self.tables: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in SCHEMA}

    def _rows(self, table: str) -> dict[str, dict[str, Any]]:
        if table not in self.tables:
            raise QueryError(f"Unknown table: {table}", query=table)
        return self.tables[table]

    @contextmanager
    def get_connection(self):
        yield self

    def init_schema(self) -> bool:
        return True

    def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(values)
        self._rows(table)[row["id"]] = row
        return copy.deepcopy(row)

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        row = self._rows(table).get(row_id)
        return copy.deepcopy(row) if row else None

    def find(self, table, filters=None, order_by=None, descending=False, limit=None):
        rows = [r for r in self._rows(table).values() if _matches(r, filters)]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    def find_one(self, table, filters):
        rows = self.find(table, filters, limit=1)
        return rows[0] if rows else None

    def update(self, table, row_id, values):
        row = self._rows(table).get(row_id)
        if row is None:
            return None
        row.update(copy.deepcopy(values))
        return copy.deepcopy(row)

    def update_where(self, table, filters, values):
        matched = [r for r in self._rows(table).values() if _matches(r, filters)]
        for row in matched:
            row.update(copy.deepcopy(values))
        return len(matched)

    def delete(self, table, row_id):
        return self._rows(table).pop(row_id, None) is not None

    def delete_where(self, table, filters):
        if not filters:
            raise QueryError(f"Refusing unfiltered DELETE on {table}", query=f"DELETE {table}")
        rows = self._rows(table)
        doomed = [row_id for row_id, r in rows.items() if _matches(r, filters)]
        for row_id in doomed:
            del rows[row_id]
        return len(doomed)


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def config(tmp_path):
    return AppConfig.for_testing(storage_dir=str(tmp_path / "storage"))


@pytest.fixture
def storage(config):
    return LocalFileStorage(config.storage)


@pytest.fixture
def services(config, db, storage) -> Services:
    return build_services(config, db=db, storage=storage)


@pytest.fixture
def project(services):
    return services.projects.create_project(USER_ID, {"title": "Kitchen Remodel", "client_name": "Jane Doe"})


@pytest.fixture
def estimate(services, project):
    return services.projects.create_estimate(USER_ID, project.id)


@pytest.fixture
def add_item(services, estimate):
    """Add a line item to the draft estimate (returns the stored item)."""
    def _add(estimate_id: str | None = None, **data):
        return services.line_items.add_line_item(USER_ID, estimate_id or estimate.id, data).item
    return _add
