"""
Estimatix - Job Task & Invoice Domain Models
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .money import to_number

INVOICE_NUMBER_PREFIX = "INV-"


class TaskStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class JobTask(RowModel):
    """Billable unit of work created from a line item when a job starts."""

    id: str
    project_id: str
    description: str
    contract_id: str | None = None
    original_line_item_id: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    price: float = 0.0
    billed_amount: float = 0.0
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def remaining_amount(self) -> float:
        return self.price - self.billed_amount

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "JobTask":
        data = pick_fields(cls, row)
        data["status"] = TaskStatus(data.get("status") or "pending")
        data["price"] = to_number(data.get("price")) or 0.0
        data["billed_amount"] = to_number(data.get("billed_amount")) or 0.0
        return cls(**data)


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class InvoiceItem(RowModel):
    id: str
    invoice_id: str
    amount: float
    task_id: str | None = None
    description: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "InvoiceItem":
        data = pick_fields(cls, row)
        data["amount"] = to_number(data.get("amount")) or 0.0
        return cls(**data)


@dataclass(frozen=True)
class Invoice(RowModel):
    id: str
    project_id: str
    invoice_number: str
    status: InvoiceStatus = InvoiceStatus.DRAFT
    total_amount: float = 0.0
    issued_date: date = field(default_factory=date.today)
    due_date: date | None = None
    pdf_url: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Invoice":
        data = pick_fields(cls, row)
        data["status"] = InvoiceStatus(data.get("status") or "draft")
        data["total_amount"] = to_number(data.get("total_amount")) or 0.0
        for name in ("issued_date", "due_date"):
            if isinstance(data.get(name), str):
                data[name] = date.fromisoformat(data[name])
        return cls(**data)


def invoice_sequence(invoice_number: str | None) -> int:
    """Numeric part of "INV-0042" (0 if unparsable)."""
    if not invoice_number or not invoice_number.startswith(INVOICE_NUMBER_PREFIX):
        return 0
    try:
        return int(invoice_number[len(INVOICE_NUMBER_PREFIX):])
    except ValueError:
        return 0


def next_invoice_number(existing_numbers: list[str]) -> str:
    """INV-XXXX, one past the highest existing number."""
    highest = max((invoice_sequence(n) for n in existing_numbers), default=0)
    return f"{INVOICE_NUMBER_PREFIX}{highest + 1:04d}"
