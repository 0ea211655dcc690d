"""
Estimatix - Line Item Domain Model

Line item data, patch validation, the cost rollup and duplicate merging.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .cost_codes import is_allowance_description
from .money import round2, to_number

DEFAULT_MARGIN_PERCENT = 30.0


class PricingSource(str, Enum):
    """Where an item's price came from."""

    TASK_LIBRARY = "task_library"
    USER_LIBRARY = "user_library"
    MANUAL = "manual"
    AI = "ai"
    HISTORY = "history"
    SEED = "seed"


class CalcSource(str, Enum):
    """How an item's quantity is computed."""

    MANUAL = "manual"
    ROOM_DIMENSIONS = "room_dimensions"


@dataclass(frozen=True)
class LineItem(RowModel):
    """Single scope-of-work row of an estimate."""

    id: str
    estimate_id: str
    project_id: str
    description: str = ""
    room_id: str | None = None
    selection_id: str | None = None
    cost_code: str | None = None
    category: str | None = None
    quantity: float | None = None
    unit: str | None = None
    unit_cost: float | None = None
    labor_cost: float | None = None
    material_cost: float | None = None
    overhead_cost: float | None = None
    direct_cost: float | None = None
    margin_percent: float = DEFAULT_MARGIN_PERCENT
    client_price: float | None = None
    is_allowance: bool = False
    allowance_amount: float | None = None
    subcontractor: str | None = None
    allowance_notes: str | None = None
    pricing_source: PricingSource | None = None
    calc_source: CalcSource = CalcSource.MANUAL
    task_library_id: str | None = None
    is_active: bool = True
    notes: str | None = None
    confidence: float | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def allowance(self) -> bool:
        """Flagged as allowance or described as one."""
        return self.is_allowance or is_allowance_description(self.description)

    @property
    def is_priced(self) -> bool:
        return self.direct_cost is not None

    @property
    def effective_direct_cost(self) -> float:
        """Direct cost, or unit_cost * quantity when no direct cost is stored."""
        if self.direct_cost is not None:
            return self.direct_cost
        if self.unit_cost is not None:
            return self.unit_cost * (self.quantity or 0)
        return 0.0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "LineItem":
        data = pick_fields(cls, row)
        for name in NUMERIC_FIELDS:
            if name in data:
                data[name] = to_number(data[name])
        if data.get("margin_percent") is None:
            data["margin_percent"] = DEFAULT_MARGIN_PERCENT
        data["pricing_source"] = PricingSource(data["pricing_source"]) if data.get("pricing_source") else None
        data["calc_source"] = CalcSource(data.get("calc_source") or "manual")
        data["is_allowance"] = bool(data.get("is_allowance"))
        data["is_active"] = data.get("is_active") is not False
        data["description"] = data.get("description") or ""
        return cls(**data)


NUMERIC_FIELDS = (
    "quantity", "unit_cost", "labor_cost", "material_cost", "overhead_cost",
    "direct_cost", "margin_percent", "client_price", "allowance_amount", "confidence",
)

COST_FIELDS = (
    "unit_cost", "labor_cost", "material_cost", "overhead_cost",
    "direct_cost", "client_price", "allowance_amount",
)

QUANTITY_MAX = 10_000_000
COST_MIN = -1_000_000
COST_MAX = 100_000_000
MARGIN_MAX = 500
DESCRIPTION_MAX = 2000
COST_CODE_MAX = 20

EDITABLE_FIELDS = frozenset({
    "description", "quantity", "unit", "cost_code", "category", "room_id", "selection_id",
    *COST_FIELDS, "margin_percent", "is_allowance", "subcontractor", "allowance_notes",
    "pricing_source", "calc_source", "is_active", "notes",
})


class LineItemValidationError(ValueError):
    """Raised by validate_line_item_patch; carries the offending field."""

    def __init__(self, message: str, field_name: str):
        super().__init__(message)
        self.field_name = field_name


def _number_in_range(name: str, value: Any, low: float, high: float, nullable: bool) -> float | None:
    if value is None:
        if nullable:
            return None
        raise LineItemValidationError(f"{name} is required", name)
    if isinstance(value, bool):
        raise LineItemValidationError(f"{name} must be a number", name)
    number = to_number(value)
    if number is None:
        raise LineItemValidationError(f"{name} must be a number", name)
    if number < low or number > high:
        raise LineItemValidationError(f"{name} must be between {low:g} and {high:g}", name)
    return number


def validate_line_item_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and normalize a partial line item update.

    Args:
        patch: Field -> new value

    Returns:
        Cleaned patch

    Raises:
        LineItemValidationError: On unknown fields or out-of-range values
    """
    cleaned: dict[str, Any] = {}
    for name, value in patch.items():
        if name not in EDITABLE_FIELDS:
            raise LineItemValidationError(f"Unknown field: {name}", name)

        if name == "quantity":
            cleaned[name] = _number_in_range(name, value, 0, QUANTITY_MAX, nullable=True)
        elif name in COST_FIELDS:
            cleaned[name] = _number_in_range(name, value, COST_MIN, COST_MAX, nullable=True)
        elif name == "margin_percent":
            cleaned[name] = _number_in_range(name, value, 0, MARGIN_MAX, nullable=False)
        elif name == "description":
            text = "" if value is None else str(value)
            if len(text) > DESCRIPTION_MAX:
                raise LineItemValidationError(f"description must be at most {DESCRIPTION_MAX} characters", name)
            cleaned[name] = text
        elif name == "cost_code":
            code = None if value in (None, "") else str(value).strip()
            if code and len(code) > COST_CODE_MAX:
                raise LineItemValidationError(f"cost_code must be at most {COST_CODE_MAX} characters", name)
            cleaned[name] = code
        elif name == "pricing_source":
            try:
                cleaned[name] = PricingSource(value) if value is not None else None
            except ValueError:
                raise LineItemValidationError(f"Invalid pricing_source: {value}", name)
        elif name == "calc_source":
            try:
                cleaned[name] = CalcSource(value)
            except ValueError:
                raise LineItemValidationError(f"Invalid calc_source: {value}", name)
        elif name in ("is_allowance", "is_active"):
            if not isinstance(value, bool):
                raise LineItemValidationError(f"{name} must be a boolean", name)
            cleaned[name] = value
        else:
            cleaned[name] = value
    return cleaned


@dataclass(frozen=True)
class LineItemTotals:
    """Result of the cost rollup."""

    direct_cost: float | None
    client_price: float | None
    margin_percent: float
    is_allowance: bool


def compute_totals(item: LineItem, patch: dict[str, Any] | None = None) -> LineItemTotals:
    """
    Roll up costs for an item with a (validated) patch applied.

    direct_cost: explicit patch value, else labor+material+overhead when any is
    non-zero, else unit_cost * quantity, else the stored value.
    client_price: equals direct for allowances, else explicit patch value, else
    direct * (1 + margin/100), else the stored value.
    """
    patch = patch or {}
    merged = replace(item, **patch) if patch else item

    is_allowance = merged.allowance
    margin = 0.0 if is_allowance else (
        merged.margin_percent if merged.margin_percent is not None else DEFAULT_MARGIN_PERCENT
    )

    labor = merged.labor_cost or 0
    material = merged.material_cost or 0
    overhead = merged.overhead_cost or 0

    if "direct_cost" in patch:
        direct = patch["direct_cost"]
    elif labor != 0 or material != 0 or overhead != 0:
        direct = round2(labor + material + overhead)
    elif merged.unit_cost is not None and merged.quantity is not None:
        direct = round2(merged.unit_cost * merged.quantity)
    else:
        direct = merged.direct_cost

    if is_allowance:
        client = direct
    elif "client_price" in patch:
        client = patch["client_price"]
    elif direct:
        client = round2(direct * (1 + margin / 100))
    else:
        client = merged.client_price

    return LineItemTotals(
        direct_cost=direct,
        client_price=client,
        margin_percent=margin,
        is_allowance=is_allowance,
    )


def apply_totals(item: LineItem, patch: dict[str, Any] | None = None) -> LineItem:
    """Return item with patch and rolled-up totals applied."""
    patch = patch or {}
    totals = compute_totals(item, patch)
    changes = {
        **patch,
        "direct_cost": totals.direct_cost,
        "client_price": totals.client_price,
        "margin_percent": totals.margin_percent,
        "is_allowance": totals.is_allowance,
        "updated_at": datetime.now(),
    }
    return replace(item, **changes)


# Duplicate merging


@dataclass(frozen=True)
class MergedItem:
    """Surviving item plus the ids folded into it."""

    item: LineItem
    merged_ids: tuple[str, ...] = ()


def merge_key(item: LineItem) -> str:
    """cost_code :: normalized description :: unit price."""
    code = item.cost_code or "NULL"
    description = (item.description or "").strip().lower()
    cost = f"{round2(item.unit_cost):.2f}" if item.unit_cost else "NO_COST"
    return f"{code}::{description}::{cost}"


def _sum_optional(a: float | None, b: float | None) -> float | None:
    if a is None and b is None:
        return None
    return round2((a or 0) + (b or 0))


def _reprice(item: LineItem) -> LineItem:
    if item.direct_cost is None:
        return item
    if item.allowance:
        return replace(item, client_price=item.direct_cost, margin_percent=0.0)
    return replace(item, client_price=round2(item.direct_cost * (1 + item.margin_percent / 100)))


def merge_estimate_items(items: list[LineItem]) -> list[MergedItem]:
    """
    Fold duplicate line items (same cost code, description and unit price).

    Quantities, labor/material/overhead are summed, the longer description is
    kept and empty attributes are filled from later duplicates.

    Returns:
        Merged items sorted by cost code (items without a code last)
    """
    groups: dict[str, LineItem] = {}
    folded: dict[str, list[str]] = {}

    for item in items:
        key = merge_key(item)
        existing = groups.get(key)

        if existing is None:
            first = item
            if item.unit_cost:
                first = replace(item, direct_cost=round2((item.quantity or 1) * item.unit_cost))
            groups[key] = first
            folded[key] = []
            continue

        quantity = (existing.quantity or 0) + (item.quantity or 0)
        unit_cost = existing.unit_cost if existing.unit_cost is not None else item.unit_cost
        direct = round2(quantity * unit_cost) if unit_cost is not None else _sum_optional(
            existing.direct_cost, item.direct_cost
        )
        description = item.description if len(item.description or "") > len(existing.description or "") \
            else existing.description
        confidences = [c for c in (existing.confidence, item.confidence) if c is not None]

        groups[key] = replace(
            existing,
            quantity=quantity,
            unit_cost=unit_cost,
            direct_cost=direct,
            description=description,
            category=existing.category or item.category,
            unit=existing.unit or item.unit,
            notes=existing.notes or item.notes,
            room_id=existing.room_id or item.room_id,
            labor_cost=_sum_optional(existing.labor_cost, item.labor_cost),
            material_cost=_sum_optional(existing.material_cost, item.material_cost),
            overhead_cost=_sum_optional(existing.overhead_cost, item.overhead_cost),
            confidence=max(confidences) if confidences else None,
        )
        folded[key].append(item.id)

    merged = [MergedItem(item=_reprice(item), merged_ids=tuple(folded[key])) for key, item in groups.items()]
    merged.sort(key=lambda m: (m.item.cost_code is None, m.item.cost_code or ""))
    return merged
