"""
Estimatix - Cost Code Catalogue

Contractor cost codes, allowance rules and area mapping for room-based quantities.
"""
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class CostCode:
    """Single cost-code entry."""

    code: str
    label: str
    category: str

    def formatted(self) -> str:
        return f"{self.code} - {self.label}"


def _codes(category: str, *entries: tuple[str, str]) -> list[CostCode]:
    return [CostCode(code=code, label=label, category=category) for code, label in entries]


COST_CODES: list[CostCode] = [
    *_codes(
        "100 - PRE-CONSTRUCTION",
        ("111", "Plans & Design Costs"),
        ("112", "Engineering Fees"),
        ("116", "Building Permits/Fees"),
        ("117", "Arborist Fee"),
        ("125", "Temporary Toilet Facilities"),
        ("126", "Equipment Rental"),
        ("127", "Material Protection"),
        ("129", "Job Supervision"),
        ("131", "Trash Removal / Lot Clean-up"),
        ("132", "Job Superintendent"),
        ("134", "Liability Insurance Impact"),
        ("135", "Warranty"),
        ("138", "In- house Carpentry/ Labor"),
        ("141", "Temporary Fencing"),
    ),
    *_codes(
        "200 - EXCAVATION & FOUNDATION",
        ("201", "Site Clearing / Demo"),
        ("203", "Erosion Control"),
        ("204", "Excavating & Grading"),
        ("209", "Lead-Asbestos Abatement"),
        ("210", "Soil Treatment / Pest Control"),
        ("212", "Concrete Foundation"),
        ("215", "Foundation Waterproofing"),
        ("219", "Rock Walls"),
    ),
    *_codes(
        "300 - ROUGH CARPENTRY",
        ("301", "Structural Steel"),
        ("305", "Rough Carpentry"),
        ("307", "Rough Lumber"),
        ("308", "Special Registers"),
        ("310", "Truss / Joist"),
    ),
    *_codes(
        "400 - MEP ROUGH-INS",
        ("402", "HVAC"),
        ("403", "Sheet Metal"),
        ("404", "Plumbing"),
        ("404B", "Hot Mop"),
        ("405", "Electrical"),
        ("406", "Prefab Fireplaces"),
        ("407", "Low Voltage"),
        ("416", "Automatic Shades"),
        ("418", "Fire Sprinkler Systems"),
        ("421", "Septic System"),
    ),
    *_codes(
        "500 - EXTERIOR VENEERS/SPEC TIES",
        ("500", "Masonry"),
        ("503", "Precast"),
        ("504", "Roofing"),
        ("505", "Cornices & Fascia"),
        ("510", "Garage Doors"),
        ("511", "Skylights / Roof Windows"),
        ("512", "Solar"),
        ("513", "Wood Siding & Trim"),
        ("516", "Stucco"),
        ("518", "Shutters"),
        ("519", "Wrought Iron"),
        ("520", "Windows"),
        ("520.001", "Window Install"),
        ("521", "Entry Door"),
        ("522", "Exterior Doors"),
        ("550", "Residential Elevator"),
        ("552", "Wheelchair Lifts"),
        ("556", "Wood Patios/Decks"),
        ("557", "Wine Room"),
        ("560", "Outdoor BBQ"),
        ("561", "Gazebos / Trellis"),
        ("563", "Deck / Water Proof Coatings"),
    ),
    *_codes(
        "600 - INSULATION/DRYWALL",
        ("600", "Insulation"),
        ("602", "Drywall"),
    ),
    *_codes(
        "700 - INTERIOR FINISHES",
        ("706", "Finish Carpentry"),
        ("706.2", "Master Closet"),
        ("707", "Finish Lumber"),
        ("710", "Doors"),
        ("715", "Fireplace Mantle / Trim"),
        ("716", "Cabinetry Contract"),
        ("719", "Custom Hood"),
        ("721", "Solid Surface Countertops"),
        ("723", "Paint"),
        ("726", "Faux Finishes"),
        ("728", "Tile"),
        ("733", "Vinyl Floor"),
        ("734", "Wood Floor"),
        ("737", "Carpet"),
        ("738", "Shower Encl/Mirrors/Misc Glass"),
        ("739", "Plumbing Fixtures / Bath Acces"),
        ("740", "Lighting Fixtures"),
        ("741", "Appliances"),
        ("742", "Appliance Installation"),
        ("743", "Steel / Metal Stairs"),
        ("745", "Wood Stairs & Rails"),
    ),
    *_codes(
        "800 - COMPLETION & FINAL IMPROVEMENT",
        ("800", "Concrete Flatwork"),
        ("803", "Special Concrete Finishes"),
        ("804", "Fencing"),
        ("805", "Landscape"),
        ("808", "Landscape Lighting"),
        ("809", "Pool / Spa Construction"),
        ("810", "Finish Hardware"),
        ("813", "Decorating"),
        ("816", "Asphalt Paving"),
        ("817", "Final Cleaning"),
    ),
    *_codes(
        "999 - OTHER",
        ("999", "Other"),
    ),
]

_BY_CODE: dict[str, CostCode] = {cc.code: cc for cc in COST_CODES}

UNCLASSIFIED_CODE = "999"


def get_cost_code(code: str | None) -> CostCode | None:
    """Look up a cost code (None if unknown)."""
    if not code:
        return None
    return _BY_CODE.get(str(code).strip())


def get_cost_codes_by_category(category: str) -> list[CostCode]:
    return [cc for cc in COST_CODES if cc.category == category]


def get_cost_code_categories() -> list[str]:
    return sorted({cc.category for cc in COST_CODES})


def format_cost_code(code: str) -> str:
    """Format as "code - label"; unknown codes are returned as-is."""
    cc = get_cost_code(code)
    return cc.formatted() if cc else code


def cost_code_label(code: str | None) -> str:
    """Trade name for a code, falling back to "Other"."""
    cc = get_cost_code(code)
    return cc.label if cc else "Other"


# Allowance rules

ALLOWANCE_COST_CODES: frozenset[str] = frozenset({
    "116", "406", "407", "500", "520", "521", "707", "710",
    "716", "721", "728", "734", "738", "739", "741", "745", "810",
})

_CATEGORY_TO_COST_CODE: dict[str, str] = {
    "windows": "520",
    "window": "520",
    "doors": "521",
    "door": "521",
    "entry door": "521",
    "cabinets": "716",
    "cabinetry": "716",
    "cabinet": "716",
    "tile": "728",
    "flooring": "734",
    "wood flooring": "734",
    "plumbing": "739",
    "plumbing fixtures": "739",
    "appliances": "741",
    "appliance": "741",
    "countertops": "721",
    "countertop": "721",
    "solid surface countertops": "721",
    "building permits": "116",
    "permits": "116",
    "fees": "116",
    "masonry": "500",
    "fireplaces": "406",
    "fireplace": "406",
    "low voltage": "407",
    "finish lumber": "707",
    "door & trim": "710",
    "trim": "710",
    "shower enclosures": "738",
    "mirrors": "738",
    "misc glass": "738",
    "wood stairs": "745",
    "stairs & rails": "745",
    "finish hardware": "810",
    "hardware": "810",
    "electrical": "405",
}

ALLOWANCE_PREFIX = "ALLOWANCE:"


def cost_code_from_category(category: str | None) -> str | None:
    """Map a free-text category (case-insensitive) to a cost code."""
    if not category:
        return None
    return _CATEGORY_TO_COST_CODE.get(category.strip().lower())


def cost_code_for_item(cost_code: str | None, category: str | None) -> str | None:
    """Explicit cost code wins, otherwise derive from category."""
    if cost_code:
        return str(cost_code).strip()
    return cost_code_from_category(category)


def is_allowance_cost_code(code: str | None) -> bool:
    return bool(code) and str(code).strip() in ALLOWANCE_COST_CODES


def is_allowance_description(description: str | None) -> bool:
    return bool(description) and description.strip().upper().startswith(ALLOWANCE_PREFIX)


# Area mapping (room dimensions -> quantities)

AREA_UNITS = frozenset({"sqft", "sf", "sq ft", "square feet"})


class AreaField(str, Enum):
    """Room surface an area-based line item measures."""

    FLOOR = "floor"
    WALL = "wall"
    CEILING = "ceiling"

    @property
    def label(self) -> str:
        return {
            AreaField.FLOOR: "Floor Area",
            AreaField.WALL: "Wall Area",
            AreaField.CEILING: "Ceiling Area",
        }[self]


_COST_CODE_AREA: dict[str, AreaField] = {
    "723": AreaField.WALL,
    "733": AreaField.FLOOR,
    "734": AreaField.FLOOR,
    "737": AreaField.FLOOR,
    "728": AreaField.FLOOR,
}


def is_area_unit(unit: str | None) -> bool:
    return bool(unit) and unit.strip().lower() in AREA_UNITS


def area_field_for_item(
    cost_code: str | None,
    category: str | None,
    description: str | None,
    unit: str | None
) -> AreaField | None:
    """
    Decide which room surface feeds an item's quantity.

    Returns:
        AreaField, or None if the unit is not an area unit
    """
    if not is_area_unit(unit):
        return None

    desc = (description or "").lower()
    has_drywall = "drywall" in desc or "sheetrock" in desc

    if "ceiling" in desc and "wall" not in desc:
        return AreaField.CEILING
    if "wall" in desc or "backsplash" in desc:
        return AreaField.WALL
    if has_drywall and "ceiling" in desc:
        return AreaField.CEILING
    if has_drywall:
        return AreaField.WALL

    if cost_code and str(cost_code).strip() in _COST_CODE_AREA:
        return _COST_CODE_AREA[str(cost_code).strip()]

    cat = (category or "").lower()
    if "paint" in cat:
        return AreaField.WALL
    if any(keyword in cat for keyword in ("floor", "tile", "carpet")):
        return AreaField.FLOOR

    return AreaField.FLOOR


@dataclass(frozen=True)
class RoomAreas:
    """Computed room surfaces (sq ft)."""

    floor: float | None
    wall: float | None
    ceiling: float | None

    def for_field(self, area_field: AreaField) -> float | None:
        return getattr(self, area_field.value)


def compute_room_areas(
    length_ft: float | None,
    width_ft: float | None,
    ceiling_height_ft: float | None = 8.0
) -> RoomAreas:
    """floor = ceiling = L*W, wall = 2(L+W)*H."""
    if not length_ft or not width_ft:
        return RoomAreas(floor=None, wall=None, ceiling=None)

    height = ceiling_height_ft or 8.0
    floor = round(length_ft * width_ft, 2)
    wall = round(2 * (length_ft + width_ft) * height, 2)
    return RoomAreas(floor=floor, wall=wall, ceiling=floor)
