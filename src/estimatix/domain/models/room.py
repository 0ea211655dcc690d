"""
Estimatix - Room Domain Model
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .base import RowModel, pick_fields
from .cost_codes import AreaField, RoomAreas, compute_room_areas
from .money import to_number

DEFAULT_CEILING_HEIGHT_FT = 8.0


class RoomSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"
    BLUEPRINT = "blueprint"


@dataclass(frozen=True)
class Room(RowModel):
    """Project room; toggling scope includes/excludes its line items from totals."""

    id: str
    project_id: str
    name: str
    type: str | None = None
    level: str | None = None
    source: RoomSource = RoomSource.MANUAL
    is_in_scope: bool = True
    notes: str | None = None
    length_ft: float | None = None
    width_ft: float | None = None
    ceiling_height_ft: float = DEFAULT_CEILING_HEIGHT_FT
    floor_area_sqft: float | None = None
    wall_area_sqft: float | None = None
    ceiling_area_sqft: float | None = None
    area_sqft: float | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Room name is required")
        for name in ("length_ft", "width_ft", "ceiling_height_ft"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} cannot be negative: {value}")

    @property
    def areas(self) -> RoomAreas:
        return RoomAreas(floor=self.floor_area_sqft, wall=self.wall_area_sqft, ceiling=self.ceiling_area_sqft)

    def area_for(self, area_field: AreaField) -> float | None:
        return self.areas.for_field(area_field)

    def with_computed_areas(self) -> "Room":
        """Recompute floor/wall/ceiling areas from the dimensions."""
        areas = compute_room_areas(self.length_ft, self.width_ft, self.ceiling_height_ft)
        if areas.floor is None:
            return self
        return replace(
            self,
            floor_area_sqft=areas.floor,
            wall_area_sqft=areas.wall,
            ceiling_area_sqft=areas.ceiling,
            area_sqft=areas.floor,
        )

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Room":
        data = pick_fields(cls, row)
        for name in ("length_ft", "width_ft", "floor_area_sqft", "wall_area_sqft",
                     "ceiling_area_sqft", "area_sqft"):
            if name in data:
                data[name] = to_number(data[name])
        data["ceiling_height_ft"] = to_number(data.get("ceiling_height_ft")) or DEFAULT_CEILING_HEIGHT_FT
        data["source"] = RoomSource(data.get("source") or "manual")
        data["is_in_scope"] = data.get("is_in_scope") is not False
        return cls(**data)
