"""
Unit tests for spec sheet grouping and bullet formatting.
"""

from estimatix.domain.models.line_item import LineItem
from estimatix.domain.models.room import Room
from estimatix.domain.models.spec_sheet import (
    GENERAL_ROOM,
    build_spec_sheet_sections,
    cost_code_sort_key,
    format_spec_sheet_bullet,
    pluralize_noun,
)


def make_item(item_id: str, **kwargs) -> LineItem:
    return LineItem(id=item_id, estimate_id="est-1", project_id="proj-1", **kwargs)


class TestPluralize:
    def test_singular_quantity(self):
        assert pluralize_noun("window", 1) == "window"

    def test_regular_rules(self):
        assert pluralize_noun("box", 2) == "boxes"
        assert pluralize_noun("shelf", 2) == "shelves"
        assert pluralize_noun("vanity", 2) == "vanities"
        assert pluralize_noun("bay", 2) == "bays"

    def test_known_nouns_keep_capital(self):
        assert pluralize_noun("Switch", 3) == "Switches"
        assert pluralize_noun("Window", 3) == "Windows"


class TestBulletFormatting:
    def test_quantity_after_verb(self):
        assert format_spec_sheet_bullet("Replace window", 7) == "Replace 7 windows"

    def test_single_quantity(self):
        assert format_spec_sheet_bullet("Install door", 1) == "Install 1 door"

    def test_no_verb(self):
        assert format_spec_sheet_bullet("Kitchen outlet", 4) == "4 Kitchen outlets"

    def test_leading_number_left_alone(self):
        assert format_spec_sheet_bullet("2 doors to garage", 2) == "2 doors to garage"

    def test_missing_quantity(self):
        assert format_spec_sheet_bullet("Haul debris", None) == "Haul debris"
        assert format_spec_sheet_bullet("", 3) == ""

    def test_bold_markup(self):
        assert format_spec_sheet_bullet("Replace window", 2, bold=True) == "Replace <b>2</b> windows"

    def test_bold_escapes_text(self):
        assert format_spec_sheet_bullet("Cabinets & trim", None, bold=True) == "Cabinets &amp; trim"


class TestSections:
    def test_cost_code_sort_key(self):
        codes = ["520", "404B", "999", "X", "402"]
        assert sorted(codes, key=cost_code_sort_key) == ["402", "404B", "520", "999", "X"]

    def test_grouped_by_trade_then_room(self):
        rooms = {
            "kitchen": Room(id="kitchen", project_id="proj-1", name="Kitchen"),
            "garage": Room(id="garage", project_id="proj-1", name="Garage", is_in_scope=False),
        }
        items = [
            make_item("a", cost_code="520", description="Replace window", quantity=2, client_price=1000.0,
                      room_id="kitchen"),
            make_item("b", category="Windows", description="Install skylight", quantity=1, client_price=500.0),
            make_item("c", cost_code="402", description="New furnace", quantity=1, client_price=4000.0),
            make_item("d", cost_code="402", description="Garage heater", client_price=900.0, room_id="garage"),
            make_item("e", cost_code="402", description="Inactive duct", client_price=50.0, is_active=False),
            make_item("f", cost_code="402", description="   ", client_price=10.0),
        ]

        sections = build_spec_sheet_sections(items, rooms)

        assert [s.cost_code for s in sections] == ["402", "520"]
        hvac, windows = sections
        assert hvac.title == "HVAC"
        assert hvac.total == 4000.0
        assert hvac.allowance is None
        assert [r.name for r in hvac.rooms] == [GENERAL_ROOM]

        assert windows.total == 1500.0
        assert windows.allowance == 1500.0
        assert [r.name for r in windows.rooms] == [GENERAL_ROOM, "Kitchen"]
        assert windows.rooms[1].bullets[0].text() == "Replace 2 windows"

    def test_uncoded_items_land_in_other(self):
        sections = build_spec_sheet_sections([make_item("a", description="Misc cleanup", client_price=100.0)], {})
        assert sections[0].cost_code == "999"
        assert sections[0].title == "Other"
