"""
Estimatix - Pricing Domain Models

Task keys, fuzzy description matching and cost-library entries.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any

from .base import RowModel, pick_fields
from .line_item import PricingSource
from .money import to_number

MARGIN_SCOPE_ALL = "all"


def normalize_text(text: str | None) -> str:
    """Lower-case, trimmed, whitespace collapsed."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text.strip().lower())


def make_task_key(cost_code: str | None, description: str, unit: str | None = None) -> str:
    """
    Stable key for a priced task: "code|description|unit".

    Raises:
        ValueError: If description is empty
    """
    normalized_description = normalize_text(description)
    if not normalized_description:
        raise ValueError("Task key requires a description")
    return f"{normalize_text(cost_code)}|{normalized_description}|{normalize_text(unit)}"


def parse_task_key(task_key: str) -> dict[str, str | None] | None:
    """Split a task key back into parts (None if malformed)."""
    if not task_key:
        return None
    parts = task_key.split("|")
    if len(parts) != 3:
        return None
    return {
        "cost_code": parts[0] or None,
        "description": parts[1],
        "unit": parts[2] or None,
    }


def _longest_common_substring(a: str, b: str) -> int:
    match = SequenceMatcher(None, a, b, autojunk=False).find_longest_match(0, len(a), 0, len(b))
    return match.size


def fuzzy_score(a: str | None, b: str | None) -> float:
    """
    Similarity of two descriptions in [0, 1].

    0.3 * character Jaccard + 0.4 * longest common substring ratio
    + 0.3 * overlap of words longer than two characters.
    """
    if not a or not b:
        return 0.0

    s1 = a.lower().strip()
    s2 = b.lower().strip()
    if s1 == s2:
        return 1.0

    chars1, chars2 = set(s1), set(s2)
    union = len(chars1 | chars2)
    jaccard = len(chars1 & chars2) / union if union else 0.0

    lcs_score = _longest_common_substring(s1, s2) / max(len(s1), len(s2))

    words1 = [w for w in s1.split() if len(w) > 2]
    words2 = [w for w in s2.split() if len(w) > 2]
    if words1 and words2:
        words2_set = set(words2)
        common = sum(1 for w in words1 if w in words2_set)
        word_score = common / max(len(words1), len(words2))
    else:
        word_score = 0.0

    combined = jaccard * 0.3 + lcs_score * 0.4 + word_score * 0.3
    return min(1.0, max(0.0, combined))


def trade_scope(cost_code: str) -> str:
    return f"trade:{cost_code}"


@dataclass(frozen=True)
class TaskLibraryEntry(RowModel):
    """Shared reference price for a task in a region."""

    id: str
    description: str
    cost_code: str | None = None
    unit: str | None = None
    region: str | None = None
    unit_cost_low: float | None = None
    unit_cost_mid: float | None = None
    unit_cost_high: float | None = None
    labor_hours_per_unit: float | None = None
    material_cost_per_unit: float | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TaskLibraryEntry":
        data = pick_fields(cls, row)
        for name in ("unit_cost_low", "unit_cost_mid", "unit_cost_high",
                     "labor_hours_per_unit", "material_cost_per_unit"):
            data[name] = to_number(data.get(name))
        return cls(**data)


@dataclass(frozen=True)
class UserCostEntry(RowModel):
    """Price the contractor has actually used for a task."""

    id: str
    user_id: str
    task_key: str
    unit_cost: float
    cost_code: str | None = None
    description: str | None = None
    unit: str | None = None
    region: str | None = None
    times_used: int = 1
    source: str = "estimate"
    is_actual: bool = False
    last_used_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserCostEntry":
        data = pick_fields(cls, row)
        data["unit_cost"] = to_number(data.get("unit_cost")) or 0.0
        data["times_used"] = int(data.get("times_used") or 1)
        return cls(**data)

    def with_observation(self, unit_cost: float) -> tuple[float, int]:
        """Weighted average after one more observation."""
        weighted = (self.unit_cost * self.times_used + unit_cost) / (self.times_used + 1)
        return round(weighted, 2), self.times_used + 1


@dataclass(frozen=True)
class MarginRule(RowModel):
    """Margin override: scope is "all" or "trade:<cost code>"."""

    id: str
    user_id: str
    scope: str
    margin_percent: float

    def __post_init__(self):
        if self.scope != MARGIN_SCOPE_ALL and not self.scope.startswith("trade:"):
            raise ValueError(f"Invalid margin rule scope: {self.scope}")
        if not 0 <= self.margin_percent <= 500:
            raise ValueError(f"Margin must be between 0 and 500: {self.margin_percent}")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "MarginRule":
        data = pick_fields(cls, row)
        data["margin_percent"] = to_number(data.get("margin_percent")) or 0.0
        return cls(**data)


@dataclass(frozen=True)
class PricingResult:
    """Outcome of the pricing waterfall for one item."""

    pricing_source: PricingSource
    direct_cost: float | None
    client_price: float | None
    margin_percent: float
    unit_cost: float | None = None
    task_library_id: str | None = None
    match_score: float | None = None

    @property
    def is_priced(self) -> bool:
        return self.direct_cost is not None
