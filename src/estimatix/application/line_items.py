"""
Estimatix - Line Item Service

Validated, lock-aware edits of estimate line items with total recomputation.
"""
import logging
from dataclasses import dataclass, replace
from typing import Any

from estimatix.domain.exceptions import EstimateLockedError, ValidationError
from estimatix.domain.models.cost_codes import area_field_for_item
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import (
    CalcSource,
    LineItem,
    LineItemValidationError,
    apply_totals,
    merge_estimate_items,
    validate_line_item_patch,
)
from estimatix.domain.models.room import Room
from estimatix.application.repository import LINE_ITEMS, Repository, new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineItemResult:
    item: LineItem
    grand_total: float


def ensure_editable(estimate: Estimate) -> None:
    """
    Raises:
        EstimateLockedError: If the estimate is not a draft
    """
    if not estimate.is_editable:
        raise EstimateLockedError(estimate.status.value, estimate_id=estimate.id)


def validated_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """validate_line_item_patch with errors mapped to the domain ValidationError."""
    try:
        return validate_line_item_patch(patch)
    except LineItemValidationError as e:
        raise ValidationError(str(e), field_name=e.field_name)


def quantity_from_room(item: LineItem, room: Room | None) -> float | None:
    """Area-derived quantity for room_dimensions items (None if not derivable)."""
    if room is None or item.calc_source is not CalcSource.ROOM_DIMENSIONS:
        return None
    area_field = area_field_for_item(item.cost_code, item.category, item.description, item.unit)
    if area_field is None:
        return None
    return room.area_for(area_field)


class LineItemService:
    """Line item CRUD for draft estimates."""

    def __init__(self, repo: Repository):
        self.repo = repo

    def list_line_items(self, user_id: str, estimate_id: str) -> list[LineItem]:
        self.repo.owned_estimate(estimate_id, user_id)
        return self.repo.estimate_items(estimate_id)

    def _room_for(self, item: LineItem) -> Room | None:
        if not item.room_id:
            return None
        room = self.repo.get_room(item.room_id)
        if room.project_id != item.project_id:
            raise ValidationError("Room does not belong to this project", field_name="room_id")
        return room

    def _with_room_quantity(self, item: LineItem) -> LineItem:
        quantity = quantity_from_room(item, self._room_for(item))
        if quantity is None or quantity == item.quantity:
            return item
        return apply_totals(replace(item, quantity=quantity))

    def add_line_item(self, user_id: str, estimate_id: str, data: dict[str, Any]) -> LineItemResult:
        """
        Add an item to a draft estimate.

        Raises:
            NotFoundError, PermissionDeniedError, EstimateLockedError, ValidationError
        """
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        ensure_editable(estimate)
        patch = validated_patch(data)

        base = LineItem(id=new_id(), estimate_id=estimate.id, project_id=estimate.project_id)
        item = self._with_room_quantity(apply_totals(base, patch))
        item = self.repo.insert_line_item(item)

        grand_total = self.repo.refresh_estimate_total(estimate.id)
        logger.info(f"Added line item {item.id} to estimate {estimate.id} (total={grand_total})")
        return LineItemResult(item=item, grand_total=grand_total)

    def update_line_item(self, user_id: str, item_id: str, patch: dict[str, Any]) -> LineItemResult:
        """
        Apply a partial update, recompute costs and refresh the estimate total.

        Raises:
            NotFoundError: Unknown item
            PermissionDeniedError: Item belongs to another user's project
            EstimateLockedError: Estimate is not a draft
            ValidationError: Invalid patch
        """
        item = self.repo.get_line_item(item_id)
        estimate, _ = self.repo.owned_estimate(item.estimate_id, user_id)
        ensure_editable(estimate)

        cleaned = validated_patch(patch)
        updated = self._with_room_quantity(apply_totals(item, cleaned))
        updated = self.repo.save_line_item(updated)

        grand_total = self.repo.refresh_estimate_total(estimate.id)
        logger.info(f"Updated line item {item_id}: fields={sorted(cleaned)} total={grand_total}")
        return LineItemResult(item=updated, grand_total=grand_total)

    def delete_line_item(self, user_id: str, item_id: str) -> float:
        """Delete an item from a draft estimate; returns the new grand total."""
        item = self.repo.get_line_item(item_id)
        estimate, _ = self.repo.owned_estimate(item.estimate_id, user_id)
        ensure_editable(estimate)

        self.repo.db.delete(LINE_ITEMS, item_id)
        return self.repo.refresh_estimate_total(estimate.id)

    def merge_duplicate_line_items(self, user_id: str, estimate_id: str) -> dict[str, Any]:
        """
        Fold duplicate rows of a draft estimate into single items.

        Returns:
            {"merged_count": rows removed, "grand_total": new total}
        """
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        ensure_editable(estimate)

        merged_count = 0
        for merged in merge_estimate_items(self.repo.estimate_items(estimate_id)):
            if not merged.merged_ids:
                continue
            self.repo.save_line_item(merged.item)
            for folded_id in merged.merged_ids:
                self.repo.db.delete(LINE_ITEMS, folded_id)
            merged_count += len(merged.merged_ids)

        grand_total = self.repo.refresh_estimate_total(estimate_id)
        logger.info(f"Merged {merged_count} duplicate line items in estimate {estimate_id}")
        return {"merged_count": merged_count, "grand_total": grand_total}
