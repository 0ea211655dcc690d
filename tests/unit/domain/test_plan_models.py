"""
Unit tests for plan parsing models: dimensions, levels, naming and fallbacks.
"""

import pytest

from estimatix.domain.models.plans import (
    FALLBACK_ROOM_NAME,
    ExtractedRoom,
    PageClassification,
    PageType,
    PlanPage,
    PlanParse,
    PlanParseStatus,
    apply_deterministic_names,
    clean_room_name,
    deduplicate_rooms,
    detect_level,
    extract_sheet_title,
    fallback_classification,
    fallback_result,
    friendly_parse_error,
    normalize_page_type,
    parse_dimensions,
    sample_pages,
)


class TestParseDimensions:
    @pytest.mark.parametrize("text,expected", [
        ("12'-6\" x 10'-0\"", (12.5, 10.0)),
        ("12' x 14'", (12.0, 14.0)),
        ("12.5 x 14", (12.5, 14.0)),
        ("11’-3” × 9’", (11.25, 9.0)),
    ])
    def test_formats(self, text, expected):
        assert parse_dimensions(text) == expected

    @pytest.mark.parametrize("text", [None, "", "about twelve feet"])
    def test_unparseable(self, text):
        assert parse_dimensions(text) is None


class TestLevelsAndTitles:
    @pytest.mark.parametrize("title,level", [
        ("SECOND FLOOR PLAN", "Level 2"),
        ("First Floor Plan", "Level 1"),
        ("A-2 Proposed Plan", "Level 2"),
        ("Basement Layout", "Basement"),
        ("Upper Level", "Level 2"),
    ])
    def test_from_title(self, title, level):
        assert detect_level(title) == level

    def test_falls_back_to_page_text(self):
        assert detect_level("Untitled Sheet", "BASEMENT\nStorage 10x12") == "Basement"

    def test_default_level(self):
        assert detect_level("Untitled Sheet", "Kitchen 12x10") == "Level 1"

    def test_sheet_title_prefers_plan_line(self):
        assert extract_sheet_title("A-101\nSECOND FLOOR PLAN\nKitchen") == "SECOND FLOOR PLAN"

    def test_sheet_title_first_long_line(self):
        assert extract_sheet_title("\nSmith Residence\nKitchen") == "Smith Residence"

    def test_untitled(self):
        assert extract_sheet_title("ab\ncd") == "Untitled Sheet"


class TestPageClassification:
    def test_aliases_and_unknown_types(self):
        assert normalize_page_type("Floor Plan") is PageType.FLOOR_PLAN
        assert normalize_page_type("floorplan") is PageType.FLOOR_PLAN
        assert normalize_page_type("HVAC") is PageType.MECHANICAL
        assert normalize_page_type("landscape") is PageType.OTHER

    def test_confidence_clamped(self):
        assert PageClassification(page_number=1, confidence="150").confidence == 100
        assert PageClassification(page_number=1, confidence=None).confidence == 50

    def test_room_sheet(self):
        assert PageClassification(page_number=1, type="room_schedule").is_room_sheet
        assert PageClassification(page_number=1, type="elevation", has_room_labels=True).is_room_sheet
        assert not PageClassification(page_number=1, type="site_plan").is_room_sheet

    def test_keyword_fallback(self):
        result = fallback_classification(PlanPage(number=3, text="FIRST FLOOR PLAN\nKitchen  Bedroom"))
        assert result.page_number == 3
        assert result.type is PageType.FLOOR_PLAN
        assert result.has_room_labels is True
        assert result.confidence == 30

    def test_keyword_fallback_without_match(self):
        result = fallback_classification(PlanPage(number=1, text="General notes"))
        assert result.type is PageType.OTHER
        assert result.has_room_labels is False


class TestSamplePages:
    def test_small_sets_untouched(self):
        pages = [PlanPage(number=i, text="x") for i in range(1, 6)]
        assert sample_pages(pages, 20) == pages

    def test_large_sets_keep_head_and_tail(self):
        pages = [PlanPage(number=i, text=f"page {i}") for i in range(1, 31)]
        sampled = sample_pages(pages, 20)

        numbers = [p.number for p in sampled]
        assert len(sampled) == 20
        assert numbers[:5] == [1, 2, 3, 4, 5]
        assert numbers[-2:] == [29, 30]
        assert numbers == sorted(numbers)

    def test_blank_middle_pages_skipped(self):
        pages = [PlanPage(number=i, text="" if 6 <= i <= 25 else "text") for i in range(1, 31)]
        numbers = [p.number for p in sample_pages(pages, 10)]
        assert not any(6 <= n <= 25 for n in numbers)


class TestExtractedRoom:
    def test_fills_from_dimension_text(self):
        room = ExtractedRoom(name="Kitchen", dimensions="12'-6\" x 10'-0\"")
        assert room.length_ft == 12.5
        assert room.width_ft == 10.0
        assert room.area_sqft == 125.0

    def test_explicit_area_kept(self):
        room = ExtractedRoom(name="Den", length_ft=10, width_ft=10, area_sqft=95)
        assert room.area_sqft == 95.0

    def test_non_positive_sizes_dropped(self):
        room = ExtractedRoom(name="Hall", length_ft=0, width_ft="n/a", area_sqft=-4)
        assert room.length_ft is None
        assert room.width_ft is None
        assert room.area_sqft is None

    def test_room_type_normalized(self):
        assert ExtractedRoom(name="Bath", type="Bath").type == "bathroom"
        assert ExtractedRoom(name="Gym", type="gym").type == "other"


class TestRoomNaming:
    @pytest.mark.parametrize("name,expected", [
        ("MBR", "Master Bedroom"),
        ("BR2", "Bedroom"),
        ("kit", "Kitchen"),
        ("living room - Level 2", "Living Room"),
        ("great ROOM", "Great Room"),
    ])
    def test_clean_room_name(self, name, expected):
        assert clean_room_name(name) == expected

    def test_repeated_rooms_numbered(self):
        rooms = [ExtractedRoom(name=n) for n in ("BR2", "BR3", "KIT", "Bath", "Bath")]
        named = apply_deterministic_names(rooms, "Level 2")

        assert [r.name for r in named] == ["Bedroom 1", "Bedroom 2", "Kitchen", "Bath 1", "Bath 2"]
        assert {r.level for r in named} == {"Level 2"}

    def test_dedupe_keeps_most_confident(self):
        rooms = [
            ExtractedRoom(name="Kitchen", level="Level 1", confidence=40),
            ExtractedRoom(name="kitchen", level="Level 1", confidence=90, notes="from schedule"),
            ExtractedRoom(name="Kitchen", level="Level 2", confidence=10),
        ]
        result = deduplicate_rooms(rooms)

        assert len(result) == 2
        assert result[0].notes == "from schedule"
        assert result[1].level == "Level 2"


class TestFallbacks:
    def test_fallback_result(self):
        result = fallback_result("No rooms detected", total_pages=4)

        assert result.used_fallback is True
        assert result.total_pages == 4
        assert [r.name for r in result.rooms] == [FALLBACK_ROOM_NAME]
        item = result.line_item_scaffold[0]
        assert (item.cost_code, item.quantity, item.unit, item.room_name) == ("999", 1, "LS", FALLBACK_ROOM_NAME)
        assert "couldn't identify specific rooms" in result.warnings[0]

    @pytest.mark.parametrize("error,code", [
        ("AI service disabled", "ai_unavailable"),
        ("Looks like a scanned sheet", "scanned_document"),
        ("No rooms detected", "no_rooms"),
        ("Failed to extract PDF: EOF marker not found", "unreadable_file"),
        ("Read timed out", "timeout"),
    ])
    def test_friendly_errors(self, error, code):
        assert friendly_parse_error(error)[1] == code

    def test_unknown_error_keeps_first_line(self):
        message, code = friendly_parse_error("Disk quota exceeded\nat line 3")
        assert (message, code) == ("Disk quota exceeded", "parse_failed")


class TestPlanParse:
    def test_from_row(self):
        parse = PlanParse.from_row({
            "id": "p1",
            "project_id": "proj",
            "status": "parsed",
            "file_urls": None,
            "parse_result": {"rooms": [{"name": "Kitchen"}], "total_pages": 2},
            "applied_rooms_count": None,
            "unexpected_column": 1,
        })

        assert parse.status is PlanParseStatus.PARSED
        assert parse.file_urls == []
        assert parse.applied_rooms_count == 0
        assert parse.result.rooms[0].name == "Kitchen"
        assert parse.result.total_pages == 2

    def test_result_empty(self):
        assert PlanParse(id="p1", project_id="proj").result is None
