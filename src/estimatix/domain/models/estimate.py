"""
Estimatix - Estimate Domain Model

Estimate aggregate and its lifecycle state machine.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .money import to_number


class EstimateStatus(str, Enum):
    """Estimate lifecycle status."""

    DRAFT = "draft"
    BID_FINAL = "bid_final"
    CONTRACT_SIGNED = "contract_signed"
    COMPLETED = "completed"

    @property
    def allowed_transitions(self) -> list["EstimateStatus"]:
        return ESTIMATE_TRANSITIONS[self]

    def can_transition_to(self, target: "EstimateStatus") -> bool:
        return target in ESTIMATE_TRANSITIONS[self]

    @property
    def is_editable(self) -> bool:
        return self is EstimateStatus.DRAFT

    @property
    def is_pricing_truth(self) -> bool:
        return self in PRICING_TRUTH_STATES


ESTIMATE_TRANSITIONS: dict[EstimateStatus, list[EstimateStatus]] = {
    EstimateStatus.DRAFT: [EstimateStatus.BID_FINAL],
    EstimateStatus.BID_FINAL: [EstimateStatus.CONTRACT_SIGNED],
    EstimateStatus.CONTRACT_SIGNED: [EstimateStatus.COMPLETED],
    EstimateStatus.COMPLETED: [],
}

# Prices in these states are what the contractor actually bid/signed.
PRICING_TRUTH_STATES = frozenset({EstimateStatus.BID_FINAL, EstimateStatus.CONTRACT_SIGNED})


@dataclass(frozen=True)
class Estimate(RowModel):
    """Priced collection of line items for a project."""

    id: str
    project_id: str
    status: EstimateStatus = EstimateStatus.DRAFT
    total: float = 0.0
    json_data: dict[str, Any] = field(default_factory=dict)
    ai_summary: str | None = None
    spec_sheet_url: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_editable(self) -> bool:
        return self.status.is_editable

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Estimate":
        data = pick_fields(cls, row)
        data["status"] = EstimateStatus(data.get("status") or "draft")
        data["total"] = to_number(data.get("total")) or 0.0
        data["json_data"] = data.get("json_data") or {}
        return cls(**data)
