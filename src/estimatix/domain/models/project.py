"""
Estimatix - Project Domain Model

Project aggregate root and the contractor profile.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Project(RowModel):
    """
    Construction project owned by a contractor.

    Aggregate root: estimates, rooms, proposals, contracts and invoices hang off it.
    """

    id: str
    user_id: str
    title: str
    client_name: str | None = None
    owner_name: str | None = None
    project_address: str | None = None
    notes: str | None = None
    status: ProjectStatus = ProjectStatus.DRAFT
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Project title cannot be empty")

    def is_owned_by(self, user_id: str) -> bool:
        return self.user_id == user_id

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Project":
        data = pick_fields(cls, row)
        data["status"] = ProjectStatus(data.get("status") or "draft")
        return cls(**data)


@dataclass(frozen=True)
class Profile(RowModel):
    """Contractor profile (spec sheet header, pricing region)."""

    id: str
    user_id: str
    full_name: str | None = None
    company_name: str | None = None
    region: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(**pick_fields(cls, row))
