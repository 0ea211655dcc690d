"""
Estimatix - Job Actuals Domain Models

Actual costs captured at close-out and their variance against the estimate.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .base import RowModel, pick_fields
from .money import round2, to_number


@dataclass(frozen=True)
class Variance:
    amount: float
    percent: float | None


def compute_variance(actual: float, estimated: float) -> Variance:
    """
    Variance of actual vs estimated.

    Percent is only defined when the estimate is positive.
    """
    amount = round2(actual - estimated)
    percent = round2(amount / estimated * 100) if estimated > 0 else None
    return Variance(amount=amount, percent=percent)


@dataclass(frozen=True)
class ProjectActuals(RowModel):
    """Project-level actual costs (one row per project)."""

    id: str
    project_id: str
    total_actual_cost: float
    total_estimated_cost: float = 0.0
    variance_amount: float = 0.0
    variance_percent: float | None = None
    actual_labor_cost: float | None = None
    actual_material_cost: float | None = None
    actual_labor_hours: float | None = None
    notes: str | None = None
    closed_at: datetime | None = None
    updated_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.total_actual_cost < 0:
            raise ValueError(f"Actual cost cannot be negative: {self.total_actual_cost}")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ProjectActuals":
        data = pick_fields(cls, row)
        for name in ("total_actual_cost", "total_estimated_cost", "variance_amount"):
            data[name] = to_number(data.get(name)) or 0.0
        for name in ("variance_percent", "actual_labor_cost", "actual_material_cost", "actual_labor_hours"):
            data[name] = to_number(data.get(name))
        return cls(**data)


@dataclass(frozen=True)
class LineItemActual(RowModel):
    """Actual unit cost/quantity recorded against one line item."""

    id: str
    line_item_id: str
    project_id: str
    actual_unit_cost: float
    actual_quantity: float | None = None
    actual_direct_cost: float = 0.0
    estimated_direct_cost: float = 0.0
    variance_amount: float = 0.0
    variance_percent: float | None = None
    notes: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LineItemActual":
        data = pick_fields(cls, row)
        for name in ("actual_unit_cost", "actual_direct_cost", "estimated_direct_cost", "variance_amount"):
            data[name] = to_number(data.get(name)) or 0.0
        data["actual_quantity"] = to_number(data.get("actual_quantity"))
        data["variance_percent"] = to_number(data.get("variance_percent"))
        return cls(**data)
