"""
Estimatix - Proposal & Contract Domain Models
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .money import to_number

DEFAULT_PROPOSAL_TITLE = "Construction Proposal"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProposalEventType(str, Enum):
    CREATED = "created"
    SENT = "sent"
    APPROVED = "approved"
    REVISED = "revised"


@dataclass(frozen=True)
class Proposal(RowModel):
    """Versioned client-facing offer built from an estimate."""

    id: str
    project_id: str
    estimate_id: str
    version: int = 1
    title: str = DEFAULT_PROPOSAL_TITLE
    status: ProposalStatus = ProposalStatus.DRAFT
    total_price: float = 0.0
    body_json: dict[str, Any] = field(default_factory=dict)
    pdf_url: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.version < 1:
            raise ValueError(f"Proposal version must be >= 1: {self.version}")

    @property
    def allowances(self) -> list[dict[str, Any]]:
        return list(self.body_json.get("allowances") or [])

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Proposal":
        data = pick_fields(cls, row)
        data["status"] = ProposalStatus(data.get("status") or "draft")
        data["total_price"] = to_number(data.get("total_price")) or 0.0
        data["body_json"] = data.get("body_json") or {}
        return cls(**data)


@dataclass(frozen=True)
class ProposalEvent(RowModel):
    id: str
    proposal_id: str
    event_type: ProposalEventType
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProposalEvent":
        data = pick_fields(cls, row)
        data["event_type"] = ProposalEventType(data["event_type"])
        data["metadata"] = data.get("metadata") or {}
        return cls(**data)


class ContractStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    SIGNED = "signed"


DEFAULT_LEGAL_TEXT: dict[str, str] = {
    "warranty": (
        "Contractor warrants all workmanship for a period of one (1) year from the date of "
        "substantial completion. Manufacturer warranties on materials and fixtures pass through to the Owner."
    ),
    "termination": (
        "Either party may terminate this agreement upon written notice if the other party materially "
        "breaches its obligations and fails to cure within ten (10) days. Owner shall pay for all work "
        "performed and materials ordered through the termination date."
    ),
    "right_to_cancel": (
        "The Owner may cancel this contract without penalty or obligation within three (3) business "
        "days after signing by delivering written notice to the Contractor."
    ),
}


@dataclass(frozen=True)
class Contract(RowModel):
    """Signed-price agreement derived from a proposal."""

    id: str
    project_id: str
    proposal_id: str | None = None
    total_price: float = 0.0
    down_payment: float = 0.0
    start_date: date | None = None
    completion_date: date | None = None
    payment_schedule: list[dict[str, Any]] = field(default_factory=list)
    legal_text: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_LEGAL_TEXT))
    status: ContractStatus = ContractStatus.DRAFT
    pdf_url: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.down_payment < 0:
            raise ValueError(f"Down payment cannot be negative: {self.down_payment}")
        if self.start_date and self.completion_date and self.completion_date < self.start_date:
            raise ValueError("Completion date cannot be before start date")

    @property
    def balance_due(self) -> float:
        return self.total_price - self.down_payment

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Contract":
        data = pick_fields(cls, row)
        data["status"] = ContractStatus(data.get("status") or "draft")
        data["total_price"] = to_number(data.get("total_price")) or 0.0
        data["down_payment"] = to_number(data.get("down_payment")) or 0.0
        data["payment_schedule"] = data.get("payment_schedule") or []
        data["legal_text"] = data.get("legal_text") or dict(DEFAULT_LEGAL_TEXT)
        for name in ("start_date", "completion_date"):
            if isinstance(data.get(name), str):
                data[name] = date.fromisoformat(data[name])
        return cls(**data)
