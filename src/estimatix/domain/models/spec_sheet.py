"""
Estimatix - Spec Sheet Model

Groups an estimate's line items into trade sections and formats the bullets.
"""
import re
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

from .cost_codes import UNCLASSIFIED_CODE, cost_code_for_item, cost_code_label, is_allowance_cost_code
from .line_item import LineItem
from .money import round2
from .room import Room

GENERAL_ROOM = "General"

_VERBS = (
    "Replace|Install|Remove|Demo|Add|Upgrade|Refinish|Paint|Reface|Haul|Dispose|"
    "Disconnect|Connect|Wire|Plumb|Frame|Drywall|Tile|Floor|Cabinet"
)
_VERB_NOUN = re.compile(rf"^({_VERBS})\s+(\w+)", re.IGNORECASE)
_VERB_PREFIX = re.compile(rf"^({_VERBS})\s+", re.IGNORECASE)
_QUANTITY_PREFIX = re.compile(r"^(\d+)\s*(x|×)?\s*", re.IGNORECASE)

_IRREGULAR_PLURALS = {
    "window": "windows",
    "door": "doors",
    "cabinet": "cabinets",
    "fixture": "fixtures",
    "outlet": "outlets",
    "switch": "switches",
    "light": "lights",
    "fan": "fans",
    "appliance": "appliances",
    "countertop": "countertops",
    "sink": "sinks",
    "faucet": "faucets",
    "toilet": "toilets",
    "shower": "showers",
    "bathtub": "bathtubs",
    "mirror": "mirrors",
    "tile": "tiles",
    "board": "boards",
    "panel": "panels",
    "unit": "units",
    "item": "items",
    "piece": "pieces",
}
_KNOWN_NOUNS = re.compile(r"\b(" + "|".join(_IRREGULAR_PLURALS) + r")\b", re.IGNORECASE)


def pluralize_noun(noun: str, quantity: float) -> str:
    """Pluralize noun for quantity != 1, preserving a leading capital."""
    if quantity == 1:
        return noun

    lower = noun.lower()
    if lower in _IRREGULAR_PLURALS:
        plural = _IRREGULAR_PLURALS[lower]
        return plural[0].upper() + plural[1:] if noun[:1].isupper() else plural

    if lower.endswith("y") and not lower.endswith(("ay", "ey", "iy", "oy", "uy")):
        return noun[:-1] + "ies"
    if lower.endswith(("s", "sh", "ch", "x", "z")):
        return noun + "es"
    if lower.endswith("fe"):
        return noun[:-2] + "ves"
    if lower.endswith("f"):
        return noun[:-1] + "ves"
    return noun + "s"


def _quantity_phrase(description: str, quantity: float) -> str:
    lower = description.lower()
    qty = f"{quantity:g}"
    if any(token in lower for token in ("sq ft", "square feet", "sq.ft", "sqft")):
        return f"{qty} sq ft"
    if "sq yd" in lower or "square yard" in lower:
        return f"{qty} sq yd"
    if "linear ft" in lower or "lin ft" in lower or re.search(r"\blf\b", lower):
        return f"{qty} linear ft"
    return qty


def format_spec_sheet_bullet(description: str, quantity: float | None, bold: bool = False) -> str:
    """
    Embed the quantity into a spec sheet bullet.

    "Replace window" with quantity 7 becomes "Replace 7 windows". With
    bold=True the result is reportlab paragraph markup (escaped, quantity in <b>).
    """
    if not description:
        return ""

    wrap = (lambda s: escape(s)) if bold else (lambda s: s)

    if not quantity or quantity <= 0:
        return wrap(description)
    if _QUANTITY_PREFIX.match(description):
        return wrap(description)

    phrase = _quantity_phrase(description, quantity)
    quantity_text = f"<b>{escape(phrase)}</b>" if bold else phrase

    processed = description
    if quantity > 1:
        match = _VERB_NOUN.match(processed)
        if match:
            verb, noun = match.group(1), match.group(2)
            processed = f"{verb} {pluralize_noun(noun, quantity)}{processed[match.end():]}"
        else:
            processed = _KNOWN_NOUNS.sub(lambda m: pluralize_noun(m.group(0), quantity), processed)

    match = _VERB_PREFIX.match(processed)
    if match:
        verb = match.group(0).strip()
        rest = processed[match.end():].strip()
        return f"{wrap(verb)} {quantity_text} {wrap(rest)}"
    return f"{quantity_text} {wrap(processed)}"


@dataclass(frozen=True)
class SpecSheetBullet:
    description: str
    quantity: float | None = None

    def text(self, bold: bool = False) -> str:
        return format_spec_sheet_bullet(self.description, self.quantity, bold=bold)


@dataclass(frozen=True)
class SpecSheetRoomGroup:
    name: str
    bullets: list[SpecSheetBullet] = field(default_factory=list)


@dataclass(frozen=True)
class SpecSheetSection:
    """One trade (cost code) of the spec sheet."""

    cost_code: str
    title: str
    rooms: list[SpecSheetRoomGroup]
    total: float
    allowance: float | None = None


def cost_code_sort_key(code: str) -> tuple[float, str]:
    """Numeric-aware ordering for codes like "404B" or "520.001"."""
    match = re.match(r"\d+(\.\d+)?", code or "")
    return (float(match.group(0)) if match else float("inf"), code or "")


def _room_sort_key(name: str) -> tuple[int, str]:
    return (0 if name == GENERAL_ROOM else 1, name.lower())


def build_spec_sheet_sections(items: list[LineItem], rooms: dict[str, Room]) -> list[SpecSheetSection]:
    """
    Group in-scope items by trade, then by room.

    Args:
        items: Estimate line items
        rooms: Project rooms by id

    Returns:
        Sections sorted by cost code
    """
    grouped: dict[str, dict[str, list[LineItem]]] = {}

    for item in items:
        if not item.is_active or not (item.description or "").strip():
            continue
        room = rooms.get(item.room_id) if item.room_id else None
        if room is not None and not room.is_in_scope:
            continue

        code = cost_code_for_item(item.cost_code, item.category) or UNCLASSIFIED_CODE
        room_name = room.name if room else GENERAL_ROOM
        grouped.setdefault(code, {}).setdefault(room_name, []).append(item)

    sections = []
    for code in sorted(grouped, key=cost_code_sort_key):
        by_room = grouped[code]
        section_items = [item for room_items in by_room.values() for item in room_items]
        total = round2(sum(item.client_price or 0 for item in section_items))
        room_groups = [
            SpecSheetRoomGroup(
                name=name,
                bullets=[SpecSheetBullet(item.description.strip(), item.quantity) for item in by_room[name]],
            )
            for name in sorted(by_room, key=_room_sort_key)
        ]
        sections.append(SpecSheetSection(
            cost_code=code,
            title=cost_code_label(code),
            rooms=room_groups,
            total=total,
            allowance=total if is_allowance_cost_code(code) else None,
        ))
    return sections
