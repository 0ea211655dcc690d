"""
Estimatix - Transcript Parsing Models (Pydantic v2)

Schema the LLM's JSON answer must satisfy, plus the recording upload record.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from .base import RowModel, pick_fields

ParsedCategory = Literal["Windows", "Doors", "Cabinets", "Flooring", "Plumbing", "Electrical", "Other"]


class Dimensions(BaseModel):
    unit: Literal["in", "ft", "cm", "m"]
    width: float = Field(ge=0)
    height: float = Field(ge=0)
    depth: float | None = Field(default=None, ge=0)


class ParsedItem(BaseModel):
    """One scope item extracted from a walkthrough transcript."""

    category: ParsedCategory = "Other"
    description: str = Field(min_length=1)
    quantity: float = Field(default=1, gt=0)
    unit: str | None = None
    dimensions: Dimensions | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    total: float | None = Field(default=None, ge=0)
    notes: str | None = None

    def priced_total(self) -> float | None:
        """Explicit total, else unit_cost * quantity."""
        if self.total is not None:
            return self.total
        if self.unit_cost is not None:
            return self.unit_cost * self.quantity
        return None


class ParsedTranscript(BaseModel):
    items: list[ParsedItem] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(item.priced_total() or 0 for item in self.items)


class UploadKind(str, Enum):
    PHOTO = "photo"
    BLUEPRINT = "blueprint"
    AUDIO = "audio"


class UploadStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Upload(RowModel):
    """Stored file attached to a project (recordings are processed in the background)."""

    id: str
    project_id: str
    kind: UploadKind
    storage_path: str
    filename: str
    status: UploadStatus = UploadStatus.QUEUED
    client_transcript: str | None = None
    transcript: str | None = None
    estimate_id: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Upload":
        data = pick_fields(cls, row)
        data["kind"] = UploadKind(data["kind"])
        data["status"] = UploadStatus(data.get("status") or "queued")
        return cls(**data)
