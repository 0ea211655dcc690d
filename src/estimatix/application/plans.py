"""
Estimatix - Plan Parsing Service

Blueprint PDFs -> classified pages -> rooms per sheet -> unpriced scope
scaffold, reviewed by the user and then applied to a draft estimate.
"""
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import PurePath
from typing import Any

from estimatix.domain.exceptions import (
    BusinessRuleError,
    EstimatixError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from estimatix.domain.interfaces.ai_client import AIClient
from estimatix.domain.interfaces.extractor import PageTextExtractor
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.config import AppConfig
from estimatix.domain.models.cost_codes import UNCLASSIFIED_CODE, cost_code_for_item
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import CalcSource, LineItem
from estimatix.domain.models.plans import (
    CLASSIFICATION_TEXT_CHARS,
    FALLBACK_PAGE_COUNT,
    MIN_SHEET_TEXT_CHARS,
    ExtractedRoom,
    LineItemScaffold,
    LineItemScaffoldList,
    PageClassification,
    PageClassificationList,
    PlanPage,
    PlanParse,
    PlanParseResult,
    PlanParseStatus,
    RoomExtraction,
    apply_deterministic_names,
    deduplicate_rooms,
    detect_level,
    extract_sheet_title,
    fallback_classification,
    fallback_result,
    friendly_parse_error,
    sample_pages,
    truncate_text,
)
from estimatix.domain.models.room import Room, RoomSource
from estimatix.application.ai_responses import parse_model_json
from estimatix.application.line_items import ensure_editable, quantity_from_room
from estimatix.application.repository import ESTIMATES, PLAN_PARSES, ROOMS, Repository, new_id
from estimatix.application.rooms import RoomService

logger = logging.getLogger(__name__)

PLANS_BUCKET = "plans"

SYSTEM_PROMPT = "You are a construction plan reader. Return only valid JSON matching the exact schema provided."

CLASSIFY_PROMPT = """Classify each page of this construction plan set.

Page types: cover, index, floor_plan, room_schedule, finish_schedule, notes, specs, elevation,
section, detail, electrical, plumbing, mechanical, site_plan, irrelevant, other.

A floor_plan shows room layouts with labels; room_schedule and finish_schedule are tables of rooms.
Set has_room_labels when the page names rooms (Kitchen, Bedroom, BR2, MBA...).

PAGES:
{pages}

Return ONLY valid JSON:
{{"pages": [{{"page_number": number, "type": "page type", "confidence": 0-100,
  "has_room_labels": true|false, "reason": "max 100 chars"}}]}}"""

ROOMS_PROMPT = """Extract every room shown on this {level} plan sheet ("{sheet_title}").

RULES:
1. One entry per physical room - never merge two bathrooms into one
2. Expand abbreviations (MBR = Master Bedroom, BA = Bathroom, WIC = Walk-in Closet)
3. Copy dimension text exactly as printed (e.g. 12'-6" x 10'-0")
4. Never invent sizes; leave them null and add a note to missing_info

SHEET TEXT:
{text}

Return ONLY valid JSON:
{{"rooms": [{{"name": "string", "type": "bedroom|bathroom|kitchen|living|dining|garage|closet|utility|laundry|hallway|foyer|office|other",
  "area_sqft": number|null, "length_ft": number|null, "width_ft": number|null, "ceiling_height_ft": number|null,
  "dimensions": "string|null", "notes": "string|null", "confidence": 0-100}}],
 "assumptions": [], "missing_info": [], "warnings": []}}"""

SCAFFOLD_PROMPT = """Suggest 3-5 typical remodel scope items for each room below.
Do NOT include prices. Use these cost codes: 723 Paint, 734 Wood Floor, 733 Vinyl Floor,
737 Carpet, 728 Tile, 405 Electrical, 404 Plumbing, 402 HVAC, 740 Lighting,
716 Cabinetry, 721 Countertops, 739 Plumbing Fixtures, 999 General.
Use unit "SF" for area-based work.

ROOMS:
{rooms}

Return ONLY valid JSON:
{{"line_items": [{{"description": "string", "category": "string", "cost_code": "string",
  "room_name": "exact room name", "quantity": number|null, "unit": "string|null", "notes": "string|null"}}]}}"""


@dataclass(frozen=True)
class Sheet:
    """Page picked for room extraction, tagged with its level and title."""

    page: PlanPage
    level: str
    title: str


@dataclass(frozen=True)
class ApplyResult:
    plan_parse: PlanParse
    estimate_id: str
    created_rooms: int
    created_line_items: int
    excluded_rooms: int
    grand_total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_parse": self.plan_parse.to_dict(),
            "estimate_id": self.estimate_id,
            "created_rooms": self.created_rooms,
            "created_line_items": self.created_line_items,
            "excluded_rooms": self.excluded_rooms,
            "grand_total": self.grand_total,
        }


class PlanService:
    """Parses uploaded plan sets and applies reviewed results to estimates."""

    def __init__(
        self,
        repo: Repository,
        storage: FileStorage,
        config: AppConfig,
        rooms: RoomService,
        extractor: PageTextExtractor | None = None,
        ai_client: AIClient | None = None
    ):
        self.repo = repo
        self.storage = storage
        self.config = config
        self.rooms = rooms
        self.extractor = extractor
        self.ai_client = ai_client if config.ollama.enabled else None

    # Records

    def _load(self, parse_id: str) -> PlanParse:
        row = self.repo.db.get(PLAN_PARSES, parse_id)
        if not row:
            raise NotFoundError("Plan parse not found", entity_type="plan_parse", entity_id=parse_id)
        return PlanParse.from_row(row)

    def _save(self, plan_parse: PlanParse, **values: Any) -> PlanParse:
        if isinstance(values.get("status"), PlanParseStatus):
            values["status"] = values["status"].value
        row = self.repo.db.update(PLAN_PARSES, plan_parse.id, values)
        return PlanParse.from_row(row) if row else replace(plan_parse, **values)

    def get_plan_parse(self, user_id: str, parse_id: str) -> PlanParse:
        plan_parse = self._load(parse_id)
        self.repo.owned_project(plan_parse.project_id, user_id)
        return plan_parse

    def list_plan_parses(self, user_id: str, project_id: str) -> list[PlanParse]:
        """Parses of a project, newest first."""
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(PLAN_PARSES, {"project_id": project_id}, order_by="created_at", descending=True)
        return [PlanParse.from_row(r) for r in rows]

    # Parsing

    def _store_files(self, project_id: str, parse_id: str, files: list[tuple[str, bytes]]) -> list[str]:
        max_bytes = self.config.plans.max_upload_mb * 1024 * 1024
        keys = []
        for filename, content in files:
            safe_name = PurePath(filename or "plans.pdf").name
            if not content:
                raise ValidationError(f"File is empty: {safe_name}", field_name="files")
            if len(content) > max_bytes:
                raise ValidationError(
                    f"{safe_name} exceeds {self.config.plans.max_upload_mb} MB", field_name="files"
                )
            key = f"{project_id}/{parse_id}/{safe_name}"
            self.storage.save(PLANS_BUCKET, key, content)
            keys.append(key)
        return keys

    def _read_pages(self, keys: list[str], warnings: list[str]) -> list[PlanPage]:
        """Text of every page across the stored files, renumbered across files."""
        pages: list[PlanPage] = []
        for key in keys:
            name = PurePath(key).name
            if self.extractor is None or not self.extractor.can_handle(name):
                warnings.append(f"{name}: only PDF plan sets are read, file skipped")
                continue
            content = self.storage.read(PLANS_BUCKET, key)
            for page in self.extractor.extract_pages(content, name, self.config.plans.max_pages):
                pages.append(replace(page, number=len(pages) + 1))
        return pages

    def _ask(self, prompt: str) -> str:
        return self.ai_client.generate_text(
            prompt=prompt,
            model=self.config.ollama.text_model,
            json_mode=True,
            system=SYSTEM_PROMPT,
        )

    def classify_pages(self, pages: list[PlanPage]) -> list[PageClassification]:
        """
        Classify sampled pages with the model; unsampled or unanswered pages
        get the keyword classification.
        """
        fallback = {p.number: fallback_classification(p) for p in pages}
        if self.ai_client is None or not pages:
            return list(fallback.values())

        sampled = sample_pages(pages, self.config.plans.classification_sample_size)
        listing = "\n\n".join(
            f"--- PAGE {p.number} ---\n{truncate_text(p.text, CLASSIFICATION_TEXT_CHARS)}" for p in sampled
        )
        try:
            answer = parse_model_json(self._ask(CLASSIFY_PROMPT.format(pages=listing)), PageClassificationList)
        except ExternalServiceError as e:
            logger.warning(f"Page classification failed, using keyword classification: {e}")
            return list(fallback.values())

        classified = {c.page_number: c for c in answer.pages if c.page_number in fallback}
        logger.info(f"Classified {len(classified)}/{len(pages)} pages with the model")
        return [classified.get(n, fallback[n]) for n in sorted(fallback)]

    def select_sheets(self, pages: list[PlanPage], classifications: list[PageClassification]) -> list[Sheet]:
        """Room-bearing pages tagged with level and title; the first pages when none qualify."""
        by_number = {c.page_number: c for c in classifications}
        chosen = [p for p in pages if p.has_text and by_number.get(p.number) and by_number[p.number].is_room_sheet]
        if not chosen:
            chosen = [p for p in pages if p.has_text][:FALLBACK_PAGE_COUNT]

        sheets = []
        for page in chosen:
            title = extract_sheet_title(page.text)
            sheets.append(Sheet(page=page, level=detect_level(title, page.text), title=title))
        return sheets

    def extract_rooms(self, sheets: list[Sheet], result: PlanParseResult) -> list[ExtractedRoom]:
        """Rooms per sheet, named per level and deduplicated across sheets."""
        rooms: list[ExtractedRoom] = []
        for sheet in sheets:
            if len(sheet.page.text.strip()) < MIN_SHEET_TEXT_CHARS:
                continue
            prompt = ROOMS_PROMPT.format(
                level=sheet.level,
                sheet_title=sheet.title,
                text=truncate_text(sheet.page.text, self.config.plans.max_sheet_chars),
            )
            try:
                extraction = parse_model_json(self._ask(prompt), RoomExtraction)
            except ExternalServiceError as e:
                logger.warning(f"Room extraction failed for page {sheet.page.number}: {e}")
                result.warnings.append(f"Page {sheet.page.number}: rooms could not be read")
                continue

            labelled = [r.model_copy(update={"sheet_label": sheet.title}) for r in extraction.rooms]
            rooms.extend(apply_deterministic_names(labelled, sheet.level))
            result.assumptions.extend(extraction.assumptions)
            result.missing_info.extend(extraction.missing_info)
            result.warnings.extend(extraction.warnings)

        return deduplicate_rooms(rooms)

    def generate_scaffold(self, rooms: list[ExtractedRoom], result: PlanParseResult) -> list[LineItemScaffold]:
        listing = "\n".join(
            f"- {r.name} ({r.level}, {r.type or 'room'}"
            + (f", {r.area_sqft:g} sq ft" if r.area_sqft else "") + ")"
            for r in rooms
        )
        try:
            answer = parse_model_json(self._ask(SCAFFOLD_PROMPT.format(rooms=listing)), LineItemScaffoldList)
        except ExternalServiceError as e:
            logger.warning(f"Line item scaffold failed: {e}")
            result.warnings.append("Suggested line items could not be generated")
            return []
        return answer.line_items

    def parse_plans(
        self,
        user_id: str,
        project_id: str,
        files: list[tuple[str, bytes]],
        estimate_id: str | None = None
    ) -> PlanParse:
        """
        Store plan files and parse them into rooms and a line item scaffold.

        Args:
            user_id: Requesting user
            project_id: Owning project
            files: (filename, content) pairs
            estimate_id: Estimate the result is meant for (optional)

        Returns:
            PlanParse with status "parsed"

        Raises:
            ValidationError: No files, empty or oversized files
            ExtractionError: Unreadable PDF (the parse is recorded as failed)
        """
        self.repo.owned_project(project_id, user_id)
        if not files:
            raise ValidationError("At least one plan file is required", field_name="files")
        if estimate_id:
            estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
            if estimate.project_id != project_id:
                raise ValidationError("Estimate does not belong to this project", field_name="estimate_id")

        parse_id = new_id()
        keys = self._store_files(project_id, parse_id, files)
        plan_parse = PlanParse(
            id=parse_id,
            project_id=project_id,
            estimate_id=estimate_id,
            file_urls=keys,
            status=PlanParseStatus.PROCESSING,
            started_at=datetime.now(),
        )
        plan_parse = PlanParse.from_row(self.repo.db.insert(PLAN_PARSES, plan_parse.to_row()))
        start_time = time.time()
        logger.info(f"Parsing {len(keys)} plan file(s) for project {project_id} (parse {parse_id})")

        try:
            result = self._run_parse(keys)
        except EstimatixError as e:
            message, code = friendly_parse_error(str(e))
            logger.error(f"Plan parse {parse_id} failed: {e}", exc_info=True)
            self._save(plan_parse, status=PlanParseStatus.FAILED, error_message=message, error_code=code)
            raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        pages_of_interest = sorted({c.page_number for c in result.page_classifications if c.is_room_sheet})
        logger.info(
            f"✅ Plan parse {parse_id}: {len(result.rooms)} rooms, "
            f"{len(result.line_item_scaffold)} scaffold items, {elapsed_ms} ms"
        )
        return self._save(
            plan_parse,
            status=PlanParseStatus.PARSED,
            parse_result=result.model_dump(mode="json"),
            pages_of_interest=pages_of_interest,
            processing_time_ms=elapsed_ms,
            parsed_at=datetime.now(),
        )

    def _run_parse(self, keys: list[str]) -> PlanParseResult:
        warnings: list[str] = []
        pages = self._read_pages(keys, warnings)
        classifications = self.classify_pages(pages)

        if self.ai_client is None:
            result = fallback_result("AI service disabled", len(pages), classifications)
            result.warnings.extend(warnings)
            return result

        result = PlanParseResult(page_classifications=classifications, total_pages=len(pages), warnings=warnings)
        rooms = self.extract_rooms(self.select_sheets(pages, classifications), result)
        if not rooms:
            fallback = fallback_result("No rooms detected", len(pages), classifications)
            fallback.warnings.extend(result.warnings)
            return fallback

        result.rooms = rooms
        result.line_item_scaffold = self.generate_scaffold(rooms, result)
        return result

    # Applying

    def _target_estimate(self, user_id: str, plan_parse: PlanParse, estimate_id: str | None) -> Estimate:
        estimate_id = estimate_id or plan_parse.estimate_id
        if estimate_id:
            estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
            if estimate.project_id != plan_parse.project_id:
                raise ValidationError("Estimate does not belong to this project", field_name="estimate_id")
        else:
            estimate = self.repo.latest_estimate(plan_parse.project_id)
            if estimate is None:
                estimate = Estimate(id=new_id(), project_id=plan_parse.project_id)
                estimate = Estimate.from_row(self.repo.db.insert(ESTIMATES, estimate.to_row()))
        ensure_editable(estimate)
        return estimate

    def _apply_room(self, user_id: str, project_id: str, extracted: ExtractedRoom, include: bool,
                    existing: dict[str, Room]) -> tuple[Room, bool]:
        """Returns (room, created)."""
        key = extracted.name.strip().lower()
        room = existing.get(key)
        if room is not None:
            if not include and room.is_in_scope:
                room = self.rooms.toggle_room_scope(user_id, room.id, False)
            return room, False

        room = Room(
            id=new_id(),
            project_id=project_id,
            name=extracted.name,
            type=extracted.type,
            level=extracted.level,
            source=RoomSource.BLUEPRINT,
            is_in_scope=include,
            notes=extracted.notes,
            length_ft=extracted.length_ft,
            width_ft=extracted.width_ft,
            floor_area_sqft=extracted.area_sqft,
            area_sqft=extracted.area_sqft,
        )
        if extracted.ceiling_height_ft:
            room = replace(room, ceiling_height_ft=extracted.ceiling_height_ft)
        room = Room.from_row(self.repo.db.insert(ROOMS, room.with_computed_areas().to_row()))
        existing[key] = room
        return room, True

    def _scaffold_item(self, scaffold: LineItemScaffold, estimate: Estimate, room: Room | None) -> LineItem:
        item = LineItem(
            id=new_id(),
            estimate_id=estimate.id,
            project_id=estimate.project_id,
            description=scaffold.description.strip(),
            room_id=room.id if room else None,
            cost_code=cost_code_for_item(scaffold.cost_code, scaffold.category) or UNCLASSIFIED_CODE,
            category=scaffold.category,
            quantity=scaffold.quantity if scaffold.quantity is not None else 1,
            unit=scaffold.unit or "EA",
            notes=scaffold.notes,
            is_active=room.is_in_scope if room else True,
        )
        derived = quantity_from_room(replace(item, calc_source=CalcSource.ROOM_DIMENSIONS), room)
        if derived is not None:
            item = replace(item, calc_source=CalcSource.ROOM_DIMENSIONS, quantity=derived)
        return item

    def apply_parsed_results(
        self,
        user_id: str,
        parse_id: str,
        rooms: list[tuple[ExtractedRoom, bool]] | None = None,
        line_items: list[tuple[LineItemScaffold, bool]] | None = None,
        estimate_id: str | None = None
    ) -> ApplyResult:
        """
        Create the reviewed rooms and unpriced line items.

        Args:
            user_id: Requesting user
            parse_id: Parsed plan_parses row
            rooms: (room, include) pairs; None = every parsed room, included
            line_items: (scaffold item, include) pairs; None = the whole scaffold
            estimate_id: Target estimate (None = the parse's, else the latest, else a new draft)

        Raises:
            BusinessRuleError: Parse not in "parsed" state
            EstimateLockedError: Target estimate is not a draft
        """
        plan_parse = self.get_plan_parse(user_id, parse_id)
        if plan_parse.status is not PlanParseStatus.PARSED:
            raise BusinessRuleError(
                f"Plan parse cannot be applied (status={plan_parse.status.value})",
                {"plan_parse_id": parse_id, "status": plan_parse.status.value},
            )
        parsed = plan_parse.result or PlanParseResult()
        if rooms is None:
            rooms = [(room, True) for room in parsed.rooms]
        if line_items is None:
            line_items = [(item, True) for item in parsed.line_item_scaffold]

        estimate = self._target_estimate(user_id, plan_parse, estimate_id)
        project_id = plan_parse.project_id
        existing = {room.name.strip().lower(): room for room in self.repo.project_rooms(project_id).values()}

        created_rooms = excluded_rooms = 0
        for extracted, include in rooms:
            room, created = self._apply_room(user_id, project_id, extracted, include, existing)
            created_rooms += int(created)
            excluded_rooms += int(not include)

        created_items = 0
        for scaffold, include in line_items:
            if not include:
                continue
            room = existing.get((scaffold.room_name or "").strip().lower())
            self.repo.insert_line_item(self._scaffold_item(scaffold, estimate, room))
            created_items += 1

        grand_total = self.repo.refresh_estimate_total(estimate.id)
        plan_parse = self._save(
            plan_parse,
            status=PlanParseStatus.APPLIED,
            estimate_id=estimate.id,
            applied_at=datetime.now(),
            applied_rooms_count=created_rooms,
            applied_line_items_count=created_items,
            excluded_rooms_count=excluded_rooms,
        )
        logger.info(
            f"Applied plan parse {parse_id} to estimate {estimate.id}: "
            f"rooms={created_rooms} excluded={excluded_rooms} items={created_items}"
        )
        return ApplyResult(
            plan_parse=plan_parse,
            estimate_id=estimate.id,
            created_rooms=created_rooms,
            created_line_items=created_items,
            excluded_rooms=excluded_rooms,
            grand_total=grand_total,
        )

