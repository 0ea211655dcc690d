"""
Estimatix - Plan (Blueprint) Parsing Models

Pydantic schemas for the model's page classifications, extracted rooms and
line item scaffold, the plan_parses record and the deterministic room
post-processing (levels, sheet titles, dimensions, naming, dedupe).
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .base import RowModel, pick_fields
from .cost_codes import UNCLASSIFIED_CODE
from .money import round2, to_number

DEFAULT_LEVEL = "Level 1"
UNTITLED_SHEET = "Untitled Sheet"
CLASSIFICATION_TEXT_CHARS = 1500
MIN_SHEET_TEXT_CHARS = 20
FALLBACK_PAGE_COUNT = 5


@dataclass(frozen=True)
class PlanPage:
    """Text of one page of an uploaded plan file."""

    number: int
    text: str
    file_name: str = ""

    @property
    def has_text(self) -> bool:
        return bool(self.text.strip())


class PageType(str, Enum):
    COVER = "cover"
    INDEX = "index"
    FLOOR_PLAN = "floor_plan"
    ROOM_SCHEDULE = "room_schedule"
    FINISH_SCHEDULE = "finish_schedule"
    NOTES = "notes"
    SPECS = "specs"
    ELEVATION = "elevation"
    SECTION = "section"
    DETAIL = "detail"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    MECHANICAL = "mechanical"
    SITE_PLAN = "site_plan"
    IRRELEVANT = "irrelevant"
    OTHER = "other"


ROOM_PAGE_TYPES = frozenset({PageType.FLOOR_PLAN, PageType.ROOM_SCHEDULE, PageType.FINISH_SCHEDULE})

_PAGE_TYPE_ALIASES = {
    "floorplan": PageType.FLOOR_PLAN,
    "plan": PageType.FLOOR_PLAN,
    "roomschedule": PageType.ROOM_SCHEDULE,
    "finishschedule": PageType.FINISH_SCHEDULE,
    "siteplan": PageType.SITE_PLAN,
    "specifications": PageType.SPECS,
    "spec": PageType.SPECS,
    "titlesheet": PageType.COVER,
    "title": PageType.COVER,
    "elevations": PageType.ELEVATION,
    "sections": PageType.SECTION,
    "details": PageType.DETAIL,
    "hvac": PageType.MECHANICAL,
}


def normalize_page_type(value: Any) -> PageType:
    """Map the model's page type wording onto PageType ("other" when unknown)."""
    if isinstance(value, PageType):
        return value
    text = str(value or "").strip().lower().replace(" ", "_").replace("-", "_")
    try:
        return PageType(text)
    except ValueError:
        return _PAGE_TYPE_ALIASES.get(text.replace("_", ""), PageType.OTHER)


_ROOM_TYPES = {
    "bedroom": "bedroom", "bath": "bathroom", "bathroom": "bathroom", "kitchen": "kitchen",
    "living": "living", "livingroom": "living", "dining": "dining", "diningroom": "dining",
    "garage": "garage", "closet": "closet", "utility": "utility", "laundry": "laundry",
    "hallway": "hallway", "hall": "hallway", "foyer": "foyer", "entry": "foyer",
    "office": "office", "study": "office", "basement": "basement", "attic": "attic",
    "deck": "deck", "patio": "patio", "porch": "porch", "mudroom": "mudroom",
    "pantry": "pantry", "storage": "storage", "mechanical": "mechanical",
}


def normalize_room_type(value: str | None) -> str | None:
    if not value:
        return None
    return _ROOM_TYPES.get(re.sub(r"[^a-z]", "", value.lower()), "other")


# Model output schemas


class PageClassification(BaseModel):
    page_number: int = Field(ge=1)
    type: PageType = PageType.OTHER
    confidence: int = Field(default=50, ge=0, le=100)
    has_room_labels: bool = False
    reason: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _page_type(cls, value: Any) -> PageType:
        return normalize_page_type(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> int:
        number = to_number(value)
        return 50 if number is None else int(min(100, max(0, number)))

    @field_validator("reason", mode="before")
    @classmethod
    def _short_reason(cls, value: Any) -> str:
        return str(value or "")[:100]

    @property
    def is_room_sheet(self) -> bool:
        return self.type in ROOM_PAGE_TYPES or self.has_room_labels


class PageClassificationList(BaseModel):
    pages: list[PageClassification] = Field(default_factory=list)


class ExtractedRoom(BaseModel):
    """Room read off a plan sheet."""

    name: str = Field(min_length=1, max_length=100)
    level: str = DEFAULT_LEVEL
    type: str | None = None
    area_sqft: float | None = Field(default=None, gt=0)
    length_ft: float | None = Field(default=None, gt=0)
    width_ft: float | None = Field(default=None, gt=0)
    ceiling_height_ft: float | None = Field(default=None, gt=0)
    dimensions: str | None = None
    notes: str | None = None
    confidence: int = Field(default=50, ge=0, le=100)
    sheet_label: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> str:
        return str(value or "").strip()[:100]

    @field_validator("type", mode="before")
    @classmethod
    def _room_type(cls, value: Any) -> str | None:
        return normalize_room_type(value)

    @field_validator("area_sqft", "length_ft", "width_ft", "ceiling_height_ft", mode="before")
    @classmethod
    def _positive_or_none(cls, value: Any) -> float | None:
        number = to_number(value)
        return number if number and number > 0 else None

    @model_validator(mode="after")
    def _fill_from_dimensions(self) -> "ExtractedRoom":
        if self.length_ft is None or self.width_ft is None:
            parsed = parse_dimensions(self.dimensions)
            if parsed:
                self.length_ft = self.length_ft or parsed[0]
                self.width_ft = self.width_ft or parsed[1]
        if self.area_sqft is None and self.length_ft and self.width_ft:
            self.area_sqft = round2(self.length_ft * self.width_ft)
        return self


class RoomExtraction(BaseModel):
    rooms: list[ExtractedRoom] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class LineItemScaffold(BaseModel):
    """Unpriced scope item suggested for a room."""

    description: str = Field(min_length=1)
    category: str = "Other"
    cost_code: str | None = None
    room_name: str | None = None
    quantity: float | None = Field(default=None, ge=0)
    unit: str | None = None
    notes: str | None = None

    @field_validator("cost_code", mode="before")
    @classmethod
    def _code_text(cls, value: Any) -> str | None:
        return None if value in (None, "") else str(value).strip()


class LineItemScaffoldList(BaseModel):
    line_items: list[LineItemScaffold] = Field(default_factory=list)


class PlanParseResult(BaseModel):
    """What a parse hands back for review before it is applied."""

    rooms: list[ExtractedRoom] = Field(default_factory=list)
    line_item_scaffold: list[LineItemScaffold] = Field(default_factory=list)
    page_classifications: list[PageClassification] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    missing_info: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    total_pages: int = 0
    used_fallback: bool = False


# Fallback result

FALLBACK_ROOM_NAME = "General / Scope Notes"
FALLBACK_ROOM_NOTES = (
    "We couldn't detect specific rooms from your plans. You can rename this room and add "
    "line items manually, or try uploading clearer floor plan pages."
)


def fallback_result(reason: str, total_pages: int = 0,
                    classifications: list[PageClassification] | None = None) -> PlanParseResult:
    """Single general room plus one placeholder item, for plans without detectable rooms."""
    return PlanParseResult(
        rooms=[ExtractedRoom(
            name=FALLBACK_ROOM_NAME,
            type="other",
            notes=FALLBACK_ROOM_NOTES,
            confidence=0,
        )],
        line_item_scaffold=[LineItemScaffold(
            description="General scope item - add details",
            category="General",
            cost_code=UNCLASSIFIED_CODE,
            room_name=FALLBACK_ROOM_NAME,
            quantity=1,
            unit="LS",
        )],
        page_classifications=classifications or [],
        assumptions=[
            "Created a general room for you to use",
            "Add specific rooms manually or re-upload clearer floor plan pages",
        ],
        warnings=[friendly_parse_error(reason)[0]],
        total_pages=total_pages,
        used_fallback=True,
    )


_FRIENDLY_ERRORS = [
    (("ai service", "model", "ollama"), "ai_unavailable",
     "AI analysis service is temporarily unavailable. You can add rooms manually while we fix this."),
    (("scanned", "image-only", "no text"), "scanned_document",
     "This appears to be a scanned document. For best results, try uploading individual floor plan images."),
    (("no rooms", "could not extract"), "no_rooms",
     "We couldn't identify specific rooms in this document. Try uploading individual floor plan pages."),
    (("corrupted", "invalid", "failed to extract", "failed to parse"), "unreadable_file",
     "This file couldn't be read properly. Try re-saving the PDF or uploading a different version."),
    (("timeout", "timed out", "too long"), "timeout",
     "Processing took too long. Try uploading fewer pages at once."),
]


def friendly_parse_error(error: str) -> tuple[str, str]:
    """
    Map a technical error to (user message, error code).

    Unknown errors keep their first line, cut at 200 characters.
    """
    lower = error.lower()
    for needles, code, message in _FRIENDLY_ERRORS:
        if any(needle in lower for needle in needles):
            return message, code
    first_line = error.split("\n")[0][:200]
    return first_line, "parse_failed"


# Page sampling and classification fallback


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n...[truncated]"


def sample_pages(pages: list[PlanPage], max_pages: int = 20) -> list[PlanPage]:
    """
    Pages to classify: first 5, last 2 and evenly spaced middle pages with text.

    Returns:
        Pages in document order
    """
    if len(pages) <= max_pages:
        return list(pages)

    head = pages[:5]
    tail = pages[-2:]
    middle = [p for p in pages[5:-2] if p.has_text]
    room_left = max_pages - len(head) - len(tail)

    if len(middle) > room_left:
        step = len(middle) / room_left
        middle = [middle[int(i * step)] for i in range(room_left)]

    return sorted(head + middle + tail, key=lambda p: p.number)


_ROOM_WORDS = re.compile(r"\b(room|bedroom|kitchen)\b", re.IGNORECASE)
_FALLBACK_RULES = [
    (re.compile(r"floor\s*plan", re.IGNORECASE), PageType.FLOOR_PLAN),
    (re.compile(r"room\s*schedule", re.IGNORECASE), PageType.ROOM_SCHEDULE),
    (re.compile(r"finish\s*schedule", re.IGNORECASE), PageType.FINISH_SCHEDULE),
    (re.compile(r"elevation", re.IGNORECASE), PageType.ELEVATION),
    (re.compile(r"electrical", re.IGNORECASE), PageType.ELECTRICAL),
    (re.compile(r"plumbing", re.IGNORECASE), PageType.PLUMBING),
    (re.compile(r"site\s*plan", re.IGNORECASE), PageType.SITE_PLAN),
]


def fallback_classification(page: PlanPage) -> PageClassification:
    """Keyword classification used when the model is unavailable."""
    page_type = PageType.OTHER
    for pattern, candidate in _FALLBACK_RULES:
        if pattern.search(page.text):
            page_type = candidate
            break
    return PageClassification(
        page_number=page.number,
        type=page_type,
        confidence=30,
        has_room_labels=bool(_ROOM_WORDS.search(page.text)),
        reason="Keyword classification",
    )


# Levels and sheet titles

_LEVEL_PATTERNS = [
    (r"\bbasement\b", "Basement"),
    (r"\blower\s*level\b", "Basement"),
    (r"\bcellar\b", "Basement"),
    (r"\bgarage\b", "Garage"),
    (r"\battic\b", "Attic"),
    (r"\broof\s*(?:plan|level)?\b", "Roof"),
    (r"\blevel\s*4\b", "Level 4"),
    (r"\blevel\s*3\b", "Level 3"),
    (r"\blevel\s*2\b", "Level 2"),
    (r"\blevel\s*1\b", "Level 1"),
    (r"\b(?:4th|fourth)\s*floor\b", "Level 4"),
    (r"\b(?:3rd|third)\s*floor\b", "Level 3"),
    (r"\b(?:2nd|second)\s*floor\b", "Level 2"),
    (r"\b(?:1st|first|ground)\s*floor\b", "Level 1"),
    (r"\bmain\s*(?:level|floor)\b", "Level 1"),
    (r"\bupper\s*(?:level|floor|story)\b", "Level 2"),
    (r"\blower\s*(?:floor|story)\b", "Level 1"),
    (r"\bA-?1[-\s]", "Level 1"),
    (r"\bA-?2[-\s]", "Level 2"),
    (r"\bA-?3[-\s]", "Level 3"),
]
LEVEL_PATTERNS = [(re.compile(pattern, re.IGNORECASE), level) for pattern, level in _LEVEL_PATTERNS]


def detect_level(sheet_title: str, page_text: str | None = None) -> str:
    """Canonical level from the sheet title, then the top of the page ("Level 1" by default)."""
    for source in (sheet_title, (page_text or "")[:500]):
        for pattern, level in LEVEL_PATTERNS:
            if pattern.search(source):
                return level
    return DEFAULT_LEVEL


_TITLE_HINT = re.compile(r"floor\s*plan|level\s*\d|basement|garage|attic", re.IGNORECASE)


def extract_sheet_title(page_text: str) -> str:
    lines = [line.strip() for line in page_text.split("\n") if line.strip()]
    for line in lines[:15]:
        if _TITLE_HINT.search(line):
            return line[:100]
    for line in lines[:5]:
        if 5 < len(line) < 120:
            return line
    return UNTITLED_SHEET


# Dimensions

_FEET_INCHES = re.compile(
    r"(\d+)'[-\s]?(\d+)?\"?\s*[xX×]\s*(\d+)'[-\s]?(\d+)?\"?"
)
_FEET_ONLY = re.compile(r"(\d+(?:\.\d+)?)['\s]*[xX×]\s*(\d+(?:\.\d+)?)")


def parse_dimensions(text: str | None) -> tuple[float, float] | None:
    """
    Parse "12'-6\" x 14'-0\"", "12' x 14'" or "12.5 x 14" into (length_ft, width_ft).

    Returns:
        (length, width) in feet, or None when nothing matches
    """
    if not text:
        return None
    cleaned = (
        text.replace("‘", "'").replace("’", "'").replace("′", "'")
        .replace("“", '"').replace("”", '"').replace("″", '"')
    )
    cleaned = re.sub(r"\s+", " ", cleaned).strip()

    match = _FEET_INCHES.search(cleaned)
    if match:
        ft1, in1, ft2, in2 = match.groups()
        return (
            round2(int(ft1) + int(in1 or 0) / 12),
            round2(int(ft2) + int(in2 or 0) / 12),
        )

    match = _FEET_ONLY.search(cleaned)
    if match:
        return round2(float(match.group(1))), round2(float(match.group(2)))
    return None


# Room naming and dedupe

ROOM_ABBREVIATIONS = {
    "mbr": "Master Bedroom",
    "mba": "Master Bathroom",
    "mbath": "Master Bathroom",
    "br": "Bedroom",
    "ba": "Bathroom",
    "kit": "Kitchen",
    "lr": "Living Room",
    "dr": "Dining Room",
    "fr": "Family Room",
    "gr": "Great Room",
    "gar": "Garage",
    "lndry": "Laundry",
    "util": "Utility",
    "mech": "Mechanical",
    "wic": "Walk-in Closet",
    "pwdr": "Powder Room",
    "foy": "Foyer",
    "pnt": "Pantry",
    "mud": "Mudroom",
}

_LEVEL_SUFFIX = re.compile(r"\s*[-–]\s*(?:Level\s*\d+|Basement|Garage|Attic|Roof)\b", re.IGNORECASE)


def _base_name(name: str) -> str:
    base = _LEVEL_SUFFIX.sub("", name)
    base = re.sub(r"\s+\d+\s*$", "", base)
    base = re.sub(r"\s*#\d+\s*$", "", base)
    return base.strip()


def clean_room_name(name: str) -> str:
    """Expand abbreviations ("BR2" -> "Bedroom"), otherwise title-case."""
    cleaned = _LEVEL_SUFFIX.sub("", name).strip()
    lower = cleaned.lower()
    if lower in ROOM_ABBREVIATIONS:
        return ROOM_ABBREVIATIONS[lower]
    match = re.match(r"^([a-z]+)\s*(\d+)?$", lower)
    if match and match.group(1) in ROOM_ABBREVIATIONS:
        return ROOM_ABBREVIATIONS[match.group(1)]
    return " ".join(word[:1].upper() + word[1:].lower() for word in cleaned.split())


def apply_deterministic_names(rooms: list[ExtractedRoom], level: str) -> list[ExtractedRoom]:
    """
    Name the rooms of one level: unique names are cleaned, repeated base
    names are numbered ("Bathroom 1", "Bathroom 2"). The count never shrinks.
    """
    counts: dict[str, int] = {}
    for room in rooms:
        key = clean_room_name(_base_name(room.name)).lower()
        counts[key] = counts.get(key, 0) + 1

    numbered: dict[str, int] = {}
    result = []
    for room in rooms:
        base = clean_room_name(_base_name(room.name))
        key = base.lower()
        if counts[key] == 1:
            name = clean_room_name(room.name)
        else:
            numbered[key] = numbered.get(key, 0) + 1
            name = f"{base} {numbered[key]}"
        result.append(room.model_copy(update={"name": name, "level": level}))
    return result


def room_key(room: ExtractedRoom) -> str:
    return f"{room.level}::{room.name.strip().lower()}"


def deduplicate_rooms(rooms: list[ExtractedRoom]) -> list[ExtractedRoom]:
    """Keep one room per level::name across sheets, the most confident one."""
    best: dict[str, ExtractedRoom] = {}
    for room in rooms:
        key = room_key(room)
        if key not in best or room.confidence > best[key].confidence:
            best[key] = room
    return list(best.values())


# Persisted parse record


class PlanParseStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PARSED = "parsed"
    FAILED = "failed"
    APPLIED = "applied"


@dataclass(frozen=True)
class PlanParse(RowModel):
    """One upload-and-parse run over a project's plan files."""

    id: str
    project_id: str
    estimate_id: str | None = None
    file_urls: list[str] = field(default_factory=list)
    status: PlanParseStatus = PlanParseStatus.UPLOADED
    parse_result: dict[str, Any] | None = None
    pages_of_interest: list[int] = field(default_factory=list)
    processing_time_ms: int | None = None
    error_message: str | None = None
    error_code: str | None = None
    applied_rooms_count: int = 0
    applied_line_items_count: int = 0
    excluded_rooms_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    started_at: datetime | None = None
    parsed_at: datetime | None = None
    applied_at: datetime | None = None

    @property
    def result(self) -> PlanParseResult | None:
        return PlanParseResult.model_validate(self.parse_result) if self.parse_result else None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PlanParse":
        data = pick_fields(cls, row)
        data["status"] = PlanParseStatus(data.get("status") or "uploaded")
        data["file_urls"] = list(data.get("file_urls") or [])
        data["pages_of_interest"] = list(data.get("pages_of_interest") or [])
        for name in ("applied_rooms_count", "applied_line_items_count", "excluded_rooms_count"):
            data[name] = int(data.get(name) or 0)
        return cls(**data)
