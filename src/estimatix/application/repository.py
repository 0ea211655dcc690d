"""
Estimatix - Repository

Typed, owner-checked access to the DatabaseClient shared by the application services.
"""
import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from enum import Enum
from typing import Any

from estimatix.domain.exceptions import NotFoundError, PermissionDeniedError
from estimatix.domain.interfaces.database import DatabaseClient
from estimatix.domain.models.document import DocumentHeader
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import LineItem
from estimatix.domain.models.money import round2
from estimatix.domain.models.project import Profile, Project
from estimatix.domain.models.room import Room

logger = logging.getLogger(__name__)

# Table names
PROFILES = "profiles"
PROJECTS = "projects"
ESTIMATES = "estimates"
LINE_ITEMS = "estimate_line_items"
ROOMS = "rooms"
SELECTIONS = "selections"
PROPOSALS = "proposals"
PROPOSAL_EVENTS = "proposal_events"
CONTRACTS = "contracts"
JOB_TASKS = "job_tasks"
INVOICES = "invoices"
INVOICE_ITEMS = "invoice_items"
PROJECT_ACTUALS = "project_actuals"
LINE_ITEM_ACTUALS = "line_item_actuals"
TASK_LIBRARY = "task_library"
USER_COST_LIBRARY = "user_cost_library"
USER_MARGIN_RULES = "user_margin_rules"
PRICING_EVENTS = "pricing_events"
UPLOADS = "uploads"
PLAN_PARSES = "plan_parses"
CHAT_MESSAGES = "chat_messages"


def new_id() -> str:
    return str(uuid.uuid4())


def in_scope_client_total(items: list[LineItem], rooms: dict[str, Room]) -> float:
    """Sum of client prices over active items outside out-of-scope rooms."""
    total = 0.0
    for item in items:
        if not item.is_active:
            continue
        room = rooms.get(item.room_id) if item.room_id else None
        if room is not None and not room.is_in_scope:
            continue
        total += item.client_price or 0
    return round2(total)


def in_scope_items(items: list[LineItem], rooms: dict[str, Room]) -> list[LineItem]:
    result = []
    for item in items:
        room = rooms.get(item.room_id) if item.room_id else None
        if item.is_active and (room is None or room.is_in_scope):
            result.append(item)
    return result


class Repository:
    """Loads domain objects, enforces ownership and keeps estimate totals current."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    # Projects

    def get_project(self, project_id: str) -> Project:
        row = self.db.get(PROJECTS, project_id)
        if not row:
            raise NotFoundError("Project not found", entity_type="project", entity_id=project_id)
        return Project.from_row(row)

    def owned_project(self, project_id: str, user_id: str) -> Project:
        """
        Load a project and verify the user owns it.

        Raises:
            NotFoundError: If the project does not exist
            PermissionDeniedError: If it belongs to another user
        """
        project = self.get_project(project_id)
        if not project.is_owned_by(user_id):
            logger.warning(f"User {user_id} denied access to project {project_id}")
            raise PermissionDeniedError(entity_type="project", entity_id=project_id)
        return project

    def get_profile(self, user_id: str) -> Profile | None:
        row = self.db.find_one(PROFILES, {"user_id": user_id})
        return Profile.from_row(row) if row else None

    # Estimates

    def get_estimate(self, estimate_id: str) -> Estimate:
        row = self.db.get(ESTIMATES, estimate_id)
        if not row:
            raise NotFoundError("Estimate not found", entity_type="estimate", entity_id=estimate_id)
        return Estimate.from_row(row)

    def owned_estimate(self, estimate_id: str, user_id: str) -> tuple[Estimate, Project]:
        estimate = self.get_estimate(estimate_id)
        project = self.owned_project(estimate.project_id, user_id)
        return estimate, project

    def project_estimates(self, project_id: str) -> list[Estimate]:
        """Estimates of a project, newest first."""
        rows = self.db.find(ESTIMATES, {"project_id": project_id}, order_by="created_at", descending=True)
        return [Estimate.from_row(r) for r in rows]

    def latest_estimate(self, project_id: str) -> Estimate | None:
        estimates = self.project_estimates(project_id)
        return estimates[0] if estimates else None

    def save_estimate_fields(self, estimate: Estimate, **values: Any) -> Estimate:
        values["updated_at"] = datetime.now()
        row = self.db.update(ESTIMATES, estimate.id, _persistable(values))
        return Estimate.from_row(row) if row else replace(estimate, **values)

    # Line items

    def get_line_item(self, item_id: str) -> LineItem:
        row = self.db.get(LINE_ITEMS, item_id)
        if not row:
            raise NotFoundError("Line item not found", entity_type="line_item", entity_id=item_id)
        return LineItem.from_row(row)

    def estimate_items(self, estimate_id: str) -> list[LineItem]:
        rows = self.db.find(LINE_ITEMS, {"estimate_id": estimate_id}, order_by="created_at")
        return [LineItem.from_row(r) for r in rows]

    def insert_line_item(self, item: LineItem) -> LineItem:
        return LineItem.from_row(self.db.insert(LINE_ITEMS, item.to_row()))

    def save_line_item(self, item: LineItem) -> LineItem:
        row = item.to_row()
        row.pop("id")
        saved = self.db.update(LINE_ITEMS, item.id, row)
        return LineItem.from_row(saved) if saved else item

    # Rooms

    def get_room(self, room_id: str) -> Room:
        row = self.db.get(ROOMS, room_id)
        if not row:
            raise NotFoundError("Room not found", entity_type="room", entity_id=room_id)
        return Room.from_row(row)

    def project_rooms(self, project_id: str) -> dict[str, Room]:
        rows = self.db.find(ROOMS, {"project_id": project_id}, order_by="created_at")
        return {r["id"]: Room.from_row(r) for r in rows}

    # Totals

    def in_scope_total(self, estimate: Estimate) -> float:
        items = self.estimate_items(estimate.id)
        rooms = self.project_rooms(estimate.project_id)
        return in_scope_client_total(items, rooms)

    def refresh_estimate_total(self, estimate_id: str) -> float:
        """
        Recompute and persist estimate.total.

        Returns:
            The new grand total
        """
        estimate = self.get_estimate(estimate_id)
        total = self.in_scope_total(estimate)
        self.db.update(ESTIMATES, estimate_id, {"total": total, "updated_at": datetime.now()})
        logger.debug(f"Estimate {estimate_id} total refreshed: {total}")
        return total

    # Documents

    def document_header(self, project: Project, user_id: str) -> DocumentHeader:
        profile = self.get_profile(user_id)
        return DocumentHeader(
            project_name=project.title,
            owner_name=project.owner_name or project.client_name,
            project_address=project.project_address,
            document_date=date.today(),
            estimator_name=profile.full_name if profile else None,
            company_name=profile.company_name if profile else None,
        )


def _persistable(values: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}
