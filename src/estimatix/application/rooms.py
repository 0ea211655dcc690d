"""
Estimatix - Room Service

Room CRUD, dimension-driven quantities and scope toggling.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from estimatix.domain.exceptions import EstimateLockedError, ValidationError
from estimatix.domain.models.cost_codes import cost_code_label
from estimatix.domain.models.line_item import CalcSource, LineItem, apply_totals
from estimatix.domain.models.money import round2, to_number
from estimatix.domain.models.room import Room, RoomSource
from estimatix.application.line_items import quantity_from_room
from estimatix.application.repository import LINE_ITEMS, ROOMS, Repository, new_id

logger = logging.getLogger(__name__)

ROOM_FIELDS = (
    "name", "type", "level", "source", "is_in_scope", "notes",
    "length_ft", "width_ft", "ceiling_height_ft",
)
DIMENSION_FIELDS = ("length_ft", "width_ft", "ceiling_height_ft")


@dataclass(frozen=True)
class RoomWithStats:
    room: Room
    line_item_count: int = 0
    direct_total: float = 0.0
    client_total: float = 0.0
    trade_breakdown: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.room.to_dict(),
            "line_item_count": self.line_item_count,
            "direct_total": self.direct_total,
            "client_total": self.client_total,
            "trade_breakdown": self.trade_breakdown,
        }


def room_stats(room: Room, items: list[LineItem]) -> RoomWithStats:
    """Totals over the room's active items."""
    active = [item for item in items if item.room_id == room.id and item.is_active]

    breakdown: dict[str, float] = {}
    for item in active:
        amount = item.client_price if item.client_price is not None else item.effective_direct_cost
        if amount and amount > 0:
            label = cost_code_label(item.cost_code)
            breakdown[label] = round2(breakdown.get(label, 0) + amount)

    return RoomWithStats(
        room=room,
        line_item_count=len(active),
        direct_total=round2(sum(item.effective_direct_cost for item in active)),
        client_total=round2(sum(item.client_price or 0 for item in active)),
        trade_breakdown=breakdown,
    )


def _clean_room_data(data: dict[str, Any]) -> dict[str, Any]:
    unknown = set(data) - set(ROOM_FIELDS) - {"id"}
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Unknown field: {name}", field_name=name)

    cleaned = {k: v for k, v in data.items() if k in ROOM_FIELDS}
    if "name" in cleaned:
        cleaned["name"] = (cleaned["name"] or "").strip()
        if not cleaned["name"]:
            raise ValidationError("Room name is required", field_name="name")
    for name in DIMENSION_FIELDS:
        if name in cleaned:
            cleaned[name] = to_number(cleaned[name])
    if "source" in cleaned:
        try:
            cleaned["source"] = RoomSource(cleaned["source"])
        except ValueError:
            raise ValidationError(f"Invalid source: {cleaned['source']}", field_name="source")
    return cleaned


class RoomService:
    """Rooms of a project and their effect on line items."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def _owned_room(self, user_id: str, room_id: str) -> Room:
        room = self.repo.get_room(room_id)
        self.repo.owned_project(room.project_id, user_id)
        return room

    def _save(self, room: Room) -> Room:
        row = room.to_row()
        row.pop("id")
        saved = self.repo.db.update(ROOMS, room.id, row)
        return Room.from_row(saved) if saved else room

    def _draft_estimate_ids(self, project_id: str) -> list[str]:
        return [e.id for e in self.repo.project_estimates(project_id) if e.is_editable]

    def _refresh(self, estimate_ids: set[str]) -> None:
        for estimate_id in estimate_ids:
            self.repo.refresh_estimate_total(estimate_id)

    def list_project_rooms(self, user_id: str, project_id: str) -> list[RoomWithStats]:
        self.repo.owned_project(project_id, user_id)
        rooms = self.repo.project_rooms(project_id)
        items = [LineItem.from_row(r) for r in self.repo.db.find(LINE_ITEMS, {"project_id": project_id})]
        return [room_stats(room, items) for room in rooms.values()]

    def upsert_room(self, user_id: str, project_id: str, data: dict[str, Any]) -> Room:
        """
        Create a room, or update it when data carries an id.

        Raises:
            ValidationError: Missing name, bad values or a room of another project
            EstimateLockedError: Scope change on a room with items in a finalized estimate
        """
        self.repo.owned_project(project_id, user_id)
        cleaned = _clean_room_data(data)
        room_id = data.get("id")
        scope = cleaned.pop("is_in_scope", None) if room_id else None

        try:
            if room_id:
                existing = self.repo.get_room(room_id)
                if existing.project_id != project_id:
                    raise ValidationError("Room does not belong to this project", field_name="id")
                if scope is not None and scope != existing.is_in_scope:
                    self._ensure_no_locked_items(existing)
                room = replace(existing, **cleaned)
            else:
                if "name" not in cleaned:
                    raise ValidationError("Room name is required", field_name="name")
                if cleaned.get("ceiling_height_ft") is None:
                    cleaned.pop("ceiling_height_ft", None)
                room = Room(id=new_id(), project_id=project_id, **cleaned)
        except ValueError as e:
            raise ValidationError(str(e), field_name="room")

        if any(name in cleaned for name in DIMENSION_FIELDS):
            room = room.with_computed_areas()

        if room_id:
            room = self._save(room)
            logger.info(f"Updated room {room.id} ({room.name})")
            if scope is not None and scope != room.is_in_scope:
                room = self.toggle_room_scope(user_id, room.id, bool(scope))
        else:
            room = Room.from_row(self.repo.db.insert(ROOMS, room.to_row()))
            logger.info(f"Created room {room.id} ({room.name}) in project {project_id}")
        return room

    def update_room_dimensions(
        self,
        user_id: str,
        room_id: str,
        length_ft: float | None,
        width_ft: float | None,
        ceiling_height_ft: float | None = None
    ) -> tuple[Room, int]:
        """
        Store new dimensions and re-derive quantities of room_dimensions items.

        Returns:
            (room, number of line items updated)
        """
        room = self._owned_room(user_id, room_id)
        try:
            room = replace(
                room,
                length_ft=to_number(length_ft),
                width_ft=to_number(width_ft),
                ceiling_height_ft=to_number(ceiling_height_ft) or room.ceiling_height_ft,
            ).with_computed_areas()
        except ValueError as e:
            raise ValidationError(str(e), field_name="dimensions")
        room = self._save(room)

        draft_ids = self._draft_estimate_ids(room.project_id)
        rows = self.repo.db.find(LINE_ITEMS, {
            "room_id": room.id,
            "estimate_id": draft_ids,
            "calc_source": CalcSource.ROOM_DIMENSIONS.value,
        }) if draft_ids else []

        touched: set[str] = set()
        for row in rows:
            item = LineItem.from_row(row)
            quantity = quantity_from_room(item, room)
            if quantity is None:
                continue
            self.repo.save_line_item(apply_totals(item, {"quantity": quantity}))
            touched.add(item.estimate_id)

        self._refresh(touched)
        logger.info(f"Room {room_id} dimensions updated, {len(rows)} dimension-driven items checked")
        return room, len(rows)

    def _ensure_no_locked_items(self, room: Room) -> None:
        """
        Raises:
            EstimateLockedError: If the room holds items of a non-draft estimate
        """
        locked = {e.id: e for e in self.repo.project_estimates(room.project_id) if not e.is_editable}
        if not locked:
            return
        row = self.repo.db.find_one(LINE_ITEMS, {"room_id": room.id, "estimate_id": list(locked)})
        if row:
            estimate = locked[row["estimate_id"]]
            raise EstimateLockedError(estimate.status.value, estimate_id=estimate.id, room_id=room.id)

    def toggle_room_scope(self, user_id: str, room_id: str, in_scope: bool) -> Room:
        """
        Include/exclude a room; its line items follow.

        Raises:
            EstimateLockedError: If the room has items in a finalized estimate
        """
        room = self._owned_room(user_id, room_id)
        self._ensure_no_locked_items(room)
        room = self._save(replace(room, is_in_scope=in_scope))

        draft_ids = self._draft_estimate_ids(room.project_id)
        if draft_ids:
            updated = self.repo.db.update_where(
                LINE_ITEMS, {"room_id": room.id, "estimate_id": draft_ids}, {"is_active": in_scope}
            )
            logger.info(f"Room {room_id} in_scope={in_scope}: {updated} line items toggled")
        self._refresh(set(draft_ids))
        return room

    def delete_room(self, user_id: str, room_id: str) -> None:
        """
        Detach the room's line items, then delete it.

        Items of an out-of-scope room are reactivated as they are detached.

        Raises:
            EstimateLockedError: If the room has items in a finalized estimate
        """
        room = self._owned_room(user_id, room_id)
        self._ensure_no_locked_items(room)

        values: dict[str, Any] = {"room_id": None}
        if not room.is_in_scope:
            values["is_active"] = True
        detached = self.repo.db.update_where(LINE_ITEMS, {"room_id": room.id}, values)
        self.repo.db.delete(ROOMS, room.id)
        self._refresh(set(self._draft_estimate_ids(room.project_id)))
        logger.info(f"Deleted room {room_id}, detached {detached} line items")
