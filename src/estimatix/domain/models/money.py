"""Estimatix - money helpers."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any


def round2(value: float | int | None) -> float:
    """Round half-up to cents (None -> 0.0)."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def to_number(value: Any) -> float | None:
    """Coerce a DB/JSON value to float, keeping None."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
