"""
Estimatix - Selection Domain Model
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .money import to_number


class SelectionSource(str, Enum):
    MANUAL = "manual"
    VOICE = "voice"
    AI_TEXT = "ai_text"
    FILE = "file"


@dataclass(frozen=True)
class Selection(RowModel):
    """Product/material choice with an allowance budget."""

    id: str
    project_id: str
    title: str
    estimate_id: str | None = None
    cost_code: str | None = None
    room_id: str | None = None
    category: str | None = None
    description: str | None = None
    allowance: float | None = None
    suggested_allowance: float | None = None
    subcontractor: str | None = None
    source: SelectionSource = SelectionSource.MANUAL
    notes: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Selection title is required")
        if self.allowance is not None and self.allowance < 0:
            raise ValueError(f"Allowance cannot be negative: {self.allowance}")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Selection":
        data = pick_fields(cls, row)
        data["allowance"] = to_number(data.get("allowance"))
        data["suggested_allowance"] = to_number(data.get("suggested_allowance"))
        data["source"] = SelectionSource(data.get("source") or "manual")
        return cls(**data)
