"""
Estimatix - row <-> model helpers shared by the domain dataclasses.
"""
from dataclasses import fields, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, TypeVar

T = TypeVar("T")


def pick_fields(cls: type[T], row: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keys that are dataclass fields of cls."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in row.items() if k in names}


def to_plain(value: Any) -> Any:
    """Convert enums/dates recursively into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class RowModel:
    """Mixin for frozen dataclasses persisted as table rows."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict (for database/JSON)."""
        return to_plain(asdict(self))

    def to_row(self) -> dict[str, Any]:
        """Dict for persistence (enums as values, dates kept native)."""
        row = {}
        for f in fields(self):
            value = getattr(self, f.name)
            row[f.name] = value.value if isinstance(value, Enum) else value
        return row
