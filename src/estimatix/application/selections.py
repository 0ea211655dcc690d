"""
Estimatix - Selection Service

Product/material selections with allowance budgets pushed down to linked line items.
"""
import logging
from dataclasses import replace
from typing import Any

from estimatix.domain.exceptions import NotFoundError, ValidationError
from estimatix.domain.models.line_item import LineItem, apply_totals
from estimatix.domain.models.money import round2, to_number
from estimatix.domain.models.selection import Selection, SelectionSource
from estimatix.application.line_items import ensure_editable
from estimatix.application.repository import LINE_ITEMS, SELECTIONS, Repository, new_id

logger = logging.getLogger(__name__)

SELECTION_FIELDS = (
    "title", "estimate_id", "cost_code", "room_id", "category", "description",
    "allowance", "suggested_allowance", "subcontractor", "source", "notes",
)


class SelectionService:
    def __init__(self, repo: Repository):
        self.repo = repo

    def _get(self, selection_id: str) -> Selection:
        row = self.repo.db.get(SELECTIONS, selection_id)
        if not row:
            raise NotFoundError("Selection not found", entity_type="selection", entity_id=selection_id)
        return Selection.from_row(row)

    def _owned(self, user_id: str, selection_id: str) -> Selection:
        selection = self._get(selection_id)
        self.repo.owned_project(selection.project_id, user_id)
        return selection

    def _clean(self, project_id: str, data: dict[str, Any]) -> dict[str, Any]:
        unknown = set(data) - set(SELECTION_FIELDS)
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown field: {name}", field_name=name)

        cleaned = dict(data)
        for name in ("allowance", "suggested_allowance"):
            if name in cleaned:
                if cleaned[name] is not None and to_number(cleaned[name]) is None:
                    raise ValidationError(f"{name} must be a number", field_name=name)
                cleaned[name] = to_number(cleaned[name])
        if "source" in cleaned:
            try:
                cleaned["source"] = SelectionSource(cleaned["source"] or "manual")
            except ValueError:
                raise ValidationError(f"Invalid source: {cleaned['source']}", field_name="source")
        if cleaned.get("room_id") and self.repo.get_room(cleaned["room_id"]).project_id != project_id:
            raise ValidationError("Room does not belong to this project", field_name="room_id")
        if cleaned.get("estimate_id") and self.repo.get_estimate(cleaned["estimate_id"]).project_id != project_id:
            raise ValidationError("Estimate does not belong to this project", field_name="estimate_id")
        return cleaned

    def list_selections(self, user_id: str, project_id: str, estimate_id: str | None = None) -> list[Selection]:
        self.repo.owned_project(project_id, user_id)
        filters: dict[str, Any] = {"project_id": project_id}
        if estimate_id:
            filters["estimate_id"] = estimate_id
        return [Selection.from_row(r) for r in self.repo.db.find(SELECTIONS, filters, order_by="created_at")]

    def create_selection(self, user_id: str, project_id: str, data: dict[str, Any]) -> Selection:
        """
        Raises:
            ValidationError: Missing title, negative allowance, unknown fields
        """
        self.repo.owned_project(project_id, user_id)
        cleaned = self._clean(project_id, data)
        try:
            selection = Selection(id=new_id(), project_id=project_id, **cleaned)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e), field_name="selection")

        saved = Selection.from_row(self.repo.db.insert(SELECTIONS, selection.to_row()))
        logger.info(f"Created selection {saved.id} '{saved.title}' (allowance={saved.allowance})")
        return saved

    def update_selection(self, user_id: str, selection_id: str, patch: dict[str, Any]) -> Selection:
        selection = self._owned(user_id, selection_id)
        cleaned = self._clean(selection.project_id, patch)
        try:
            updated = replace(selection, **cleaned)
        except ValueError as e:
            raise ValidationError(str(e), field_name="selection")

        row = updated.to_row()
        row.pop("id")
        saved = self.repo.db.update(SELECTIONS, selection_id, row)
        return Selection.from_row(saved) if saved else updated

    def delete_selection(self, user_id: str, selection_id: str) -> None:
        """Delete a selection; linked line items are unlinked."""
        self._owned(user_id, selection_id)
        unlinked = self.repo.db.update_where(LINE_ITEMS, {"selection_id": selection_id}, {"selection_id": None})
        self.repo.db.delete(SELECTIONS, selection_id)
        logger.info(f"Deleted selection {selection_id}, unlinked {unlinked} line items")

    def link_line_item(self, user_id: str, selection_id: str, line_item_id: str) -> LineItem:
        """
        Raises:
            ValidationError: Item belongs to another project
            EstimateLockedError: Item's estimate is not a draft
        """
        selection = self._owned(user_id, selection_id)
        item = self.repo.get_line_item(line_item_id)
        if item.project_id != selection.project_id:
            raise ValidationError("Line item does not belong to this project", field_name="line_item_id")
        ensure_editable(self.repo.get_estimate(item.estimate_id))
        return self.repo.save_line_item(replace(item, selection_id=selection.id))

    def sync_line_items_from_selection(self, user_id: str, selection_id: str) -> int:
        """
        Push the selection's allowance onto its linked draft items.

        The allowance is split evenly across the linked items, which become
        allowance items (margin 0, client price equals direct cost).

        Returns:
            Number of line items updated
        """
        selection = self._owned(user_id, selection_id)
        items = [LineItem.from_row(r) for r in self.repo.db.find(LINE_ITEMS, {"selection_id": selection_id})]
        drafts = {e.id for e in self.repo.project_estimates(selection.project_id) if e.is_editable}
        items = [item for item in items if item.estimate_id in drafts]
        if not items:
            return 0

        share = round2(selection.allowance / len(items)) if selection.allowance is not None else None
        for item in items:
            patch: dict[str, Any] = {
                "allowance_amount": selection.allowance,
                "subcontractor": selection.subcontractor,
                "allowance_notes": selection.notes,
            }
            if share is not None:
                patch.update({"is_allowance": True, "direct_cost": share})
            self.repo.save_line_item(apply_totals(item, patch))

        for estimate_id in {item.estimate_id for item in items}:
            self.repo.refresh_estimate_total(estimate_id)
        logger.info(f"Synced selection {selection_id} to {len(items)} line items")
        return len(items)
