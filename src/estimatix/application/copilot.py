"""
Estimatix - Estimate Copilot Service

Chat with the language model about the current estimate; the actions it
answers with are executed against the project and the turn is stored in
chat_messages.
"""
import logging
from dataclasses import replace
from datetime import timedelta
from typing import Any, Callable

from estimatix.domain.exceptions import (
    AIGenerationError,
    DatabaseError,
    EstimatixError,
    NotFoundError,
    ValidationError,
)
from estimatix.domain.interfaces.ai_client import AIClient
from estimatix.domain.models.chat import (
    ActionResult,
    ActionType,
    ChatMessage,
    ChatRole,
    CopilotAction,
    CopilotReply,
    CopilotResponse,
)
from estimatix.domain.models.config import AppConfig
from estimatix.domain.models.cost_codes import cost_code_for_item
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import LineItem, PricingSource, apply_totals
from estimatix.domain.models.money import round2, to_number
from estimatix.domain.models.room import Room, RoomSource
from estimatix.application.ai_responses import parse_model_json
from estimatix.application.line_items import LineItemService, ensure_editable, validated_patch
from estimatix.application.pricing import PricingService, best_match
from estimatix.application.repository import CHAT_MESSAGES, ESTIMATES, Repository, new_id
from estimatix.application.rooms import RoomService

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
ROOM_MATCH_THRESHOLD = 0.7
LOW_MARGIN_PERCENT = 15.0

ADD_FIELDS = ("description", "category", "cost_code", "quantity", "unit", "unit_cost", "notes", "is_allowance")
UPDATE_FIELDS = ("description", "category", "cost_code", "quantity", "unit", "unit_cost", "notes")
ROOM_DATA_FIELDS = ("name", "type", "level", "notes", "length_ft", "width_ft")

SYSTEM_PROMPT = """You are the estimating copilot of a construction contractor.
You edit the estimate by returning actions. Return ONLY valid JSON:
{
  "response_text": "short answer for the contractor",
  "actions": [{"type": "action type", "data": {}}]
}

Action types and their data:
- add_line_item: description, category, cost_code, room_name, quantity, unit, unit_cost (only when the user gives a price), notes, is_allowance
- update_line_item: line_item_id (from the list below), then any of description, category, cost_code, room_name, quantity, unit, unit_cost, notes
- delete_line_item: line_item_id
- add_room: name, type, level, notes, length_ft, width_ft
- hide_room: room_name
- set_margin_rule: scope ("all" or "trade:<cost code>"), margin_percent
- update_task_price: task_name_or_code, new_unit_price, scope ("this_estimate" or "future_default")
- review_pricing: no data
- info: no data, for answers that change nothing

Allowances are items whose description starts with "ALLOWANCE:"; give their budget as unit_cost.
Never invent prices. Use an empty actions list when nothing should change."""


def _item_line(item: LineItem, rooms: dict[str, Room]) -> str:
    room = rooms.get(item.room_id).name if item.room_id in rooms else "General"
    price = f"${item.client_price:,.2f}" if item.client_price is not None else "unpriced"
    state = "" if item.is_active else " (inactive)"
    return (
        f"- [{item.id}] {room}: {item.description} | {item.quantity or 0:g} {item.unit or ''}".rstrip()
        + f" | code {item.cost_code or '-'} | {price}{state}"
    )


def build_prompt(
    message: str,
    estimate: Estimate,
    items: list[LineItem],
    rooms: dict[str, Room],
    history: list[dict[str, str]]
) -> str:
    """Current estimate, rooms and conversation followed by the new message."""
    room_lines = [
        f"- {r.name}" + (f" ({r.level})" if r.level else "") + ("" if r.is_in_scope else " [out of scope]")
        for r in rooms.values()
    ]
    item_lines = [_item_line(i, rooms) for i in items]
    conversation = [f"{turn['role'].upper()}: {turn['content']}" for turn in history]
    editable = "editable" if estimate.is_editable else "locked, edits will be rejected"

    return "\n".join([
        f"ESTIMATE ({estimate.status.value}, {editable}), total ${estimate.total:,.2f}",
        "LINE ITEMS:",
        *(item_lines or ["- none"]),
        "ROOMS:",
        *(room_lines or ["- none"]),
        "CONVERSATION:",
        *(conversation or ["(new conversation)"]),
        f"USER: {message}",
    ])


def parse_copilot_response(response: str) -> CopilotResponse:
    """
    Raises:
        AIResponseParsingError: Not JSON, or JSON not matching the schema
    """
    return parse_model_json(response, CopilotResponse)


def _task_matches(item: LineItem, target: str) -> bool:
    if item.cost_code and item.cost_code == target:
        return True
    description = item.description.lower()
    wanted = target.lower()
    return bool(description) and (wanted in description or description in wanted)


class CopilotService:
    """AI chat that edits the project's current estimate."""

    def __init__(
        self,
        repo: Repository,
        config: AppConfig,
        line_items: LineItemService,
        rooms: RoomService,
        pricing: PricingService,
        ai_client: AIClient | None = None
    ):
        self.repo = repo
        self.config = config
        self.line_items = line_items
        self.rooms = rooms
        self.pricing = pricing
        self.ai_client = ai_client if config.ollama.enabled else None
        self._handlers: dict[str, Callable[[str, Estimate, dict[str, Any]], ActionResult]] = {
            ActionType.ADD_LINE_ITEM.value: self._add_line_item,
            ActionType.UPDATE_LINE_ITEM.value: self._update_line_item,
            ActionType.DELETE_LINE_ITEM.value: self._delete_line_item,
            ActionType.ADD_ROOM.value: self._add_room,
            ActionType.HIDE_ROOM.value: self._hide_room,
            ActionType.INFO.value: lambda user_id, estimate, data: ActionResult(ActionType.INFO.value, True),
            ActionType.SET_MARGIN_RULE.value: self._set_margin_rule,
            ActionType.UPDATE_TASK_PRICE.value: self._update_task_price,
            ActionType.REVIEW_PRICING.value: self._review_pricing,
        }

    # History

    def list_chat_messages(self, user_id: str, project_id: str, limit: int = 50) -> list[ChatMessage]:
        """Latest messages of a project, oldest first."""
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(
            CHAT_MESSAGES, {"project_id": project_id}, order_by="created_at", descending=True, limit=limit
        )
        return [ChatMessage.from_row(r) for r in reversed(rows)]

    def _recent_history(self, project_id: str) -> list[dict[str, str]]:
        rows = self.repo.db.find(
            CHAT_MESSAGES, {"project_id": project_id}, order_by="created_at", descending=True, limit=HISTORY_LIMIT
        )
        return [{"role": r["role"], "content": r["content"]} for r in reversed(rows)]

    def _save_turn(self, estimate: Estimate, message: str, reply: CopilotResponse,
                   results: list[ActionResult]) -> None:
        user_message = ChatMessage(
            id=new_id(),
            project_id=estimate.project_id,
            estimate_id=estimate.id,
            role=ChatRole.USER,
            content=message,
        )
        assistant_message = ChatMessage(
            id=new_id(),
            project_id=estimate.project_id,
            estimate_id=estimate.id,
            role=ChatRole.ASSISTANT,
            content=reply.response_text,
            created_at=user_message.created_at + timedelta(microseconds=1),
            related_action={
                "actions": [r.to_dict() for r in results],
                "response_text": reply.response_text,
            },
        )
        try:
            self.repo.db.insert(CHAT_MESSAGES, user_message.to_row())
            self.repo.db.insert(CHAT_MESSAGES, assistant_message.to_row())
        except DatabaseError as e:
            logger.error(f"Failed to save chat turn for project {estimate.project_id}: {e}")

    # Chat

    def chat(
        self,
        user_id: str,
        project_id: str,
        message: str,
        history: list[dict[str, str]] | None = None
    ) -> CopilotReply:
        """
        Run one copilot turn on the project's latest estimate.

        Args:
            user_id: Requesting user
            project_id: Project being estimated
            message: The user's message
            history: Prior turns as {"role", "content"} (None = stored messages)

        Returns:
            CopilotReply with the executed action results

        Raises:
            ValidationError: Empty message
            AIGenerationError: AI disabled or the model call failed
            AIResponseParsingError: Unusable model answer
        """
        if not message or not message.strip():
            raise ValidationError("Message is required", field_name="message")
        message = message.strip()
        self.repo.owned_project(project_id, user_id)
        if self.ai_client is None:
            raise AIGenerationError("AI copilot is not available", model=self.config.ollama.text_model)

        estimate = self.repo.latest_estimate(project_id)
        if estimate is None:
            estimate = Estimate(id=new_id(), project_id=project_id)
            estimate = Estimate.from_row(self.repo.db.insert(ESTIMATES, estimate.to_row()))
            logger.info(f"Copilot created estimate {estimate.id} for project {project_id}")

        if history is None:
            history = self._recent_history(project_id)
        prompt = build_prompt(
            message,
            estimate,
            self.repo.estimate_items(estimate.id),
            self.repo.project_rooms(project_id),
            history[-HISTORY_LIMIT:],
        )
        response = self.ai_client.generate_text(
            prompt=prompt,
            model=self.config.ollama.text_model,
            json_mode=True,
            system=SYSTEM_PROMPT,
        )
        reply = parse_copilot_response(response)

        results = [self._execute(user_id, estimate, action) for action in reply.actions]
        grand_total = self.repo.refresh_estimate_total(estimate.id) if estimate.is_editable else estimate.total
        self._save_turn(estimate, message, reply, results)

        succeeded = sum(1 for r in results if r.success)
        logger.info(
            f"Copilot turn on estimate {estimate.id}: {succeeded}/{len(results)} actions succeeded, "
            f"total={grand_total}"
        )
        return CopilotReply(
            response_text=reply.response_text,
            estimate_id=estimate.id,
            actions=reply.actions,
            results=results,
            grand_total=grand_total,
        )

    def _execute(self, user_id: str, estimate: Estimate, action: CopilotAction) -> ActionResult:
        handler = self._handlers.get(action.type)
        if handler is None:
            return ActionResult(action.type, False, error=f"Unknown action type: {action.type}")
        try:
            return handler(user_id, estimate, action.data)
        except EstimatixError as e:
            logger.warning(f"Copilot action {action.type} failed on estimate {estimate.id}: {e}")
            return ActionResult(action.type, False, error=e.message)

    # Rooms

    def _match_room(self, project_id: str, name: str) -> Room | None:
        rooms = self.repo.project_rooms(project_id)
        match = best_match(name, {room_id: room.name for room_id, room in rooms.items()}, ROOM_MATCH_THRESHOLD)
        return rooms[match[0]] if match else None

    def _resolve_room(self, user_id: str, project_id: str, name: Any) -> Room | None:
        """Fuzzy-matched project room, created when missing; "general" means none."""
        name = str(name or "").strip()
        if not name or name.lower() == "general":
            return None
        room = self._match_room(project_id, name)
        if room is None:
            room = self.rooms.upsert_room(user_id, project_id, {"name": name, "source": RoomSource.AI.value})
        return room

    # Action handlers

    def _estimate_item(self, estimate: Estimate, data: dict[str, Any]) -> LineItem:
        item_id = data.get("line_item_id")
        if not item_id:
            raise ValidationError("Missing line_item_id", field_name="line_item_id")
        item = self.repo.get_line_item(str(item_id))
        if item.estimate_id != estimate.id:
            raise NotFoundError("Line item not found", entity_type="line_item", entity_id=str(item_id))
        return item

    def _add_line_item(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        ensure_editable(estimate)
        patch = validated_patch({k: data[k] for k in ADD_FIELDS if data.get(k) is not None})
        if not (patch.get("description") or "").strip():
            raise ValidationError("Missing description", field_name="description")
        patch["description"] = patch["description"].strip()
        patch.setdefault("quantity", 1.0)
        patch.setdefault("category", "Other")

        room = self._resolve_room(user_id, estimate.project_id, data.get("room_name") or data.get("room"))
        base = LineItem(
            id=new_id(),
            estimate_id=estimate.id,
            project_id=estimate.project_id,
            room_id=room.id if room else None,
        )
        item = apply_totals(base, patch)

        if item.allowance:
            item = replace(item, pricing_source=PricingSource.MANUAL)
        else:
            item = replace(item, cost_code=cost_code_for_item(item.cost_code, item.category))
            priced = self.pricing.price_line_item(user_id, item)
            item = replace(
                item,
                unit_cost=priced.unit_cost if priced.unit_cost is not None else item.unit_cost,
                direct_cost=priced.direct_cost,
                client_price=priced.client_price,
                margin_percent=priced.margin_percent,
                pricing_source=priced.pricing_source,
                task_library_id=priced.task_library_id,
            )

        item = self.repo.insert_line_item(item)
        return ActionResult(
            ActionType.ADD_LINE_ITEM.value,
            True,
            id=item.id,
            message=f"Added {item.description}" + (f" to {room.name}" if room else ""),
            extra={"created_items": [{"id": item.id, "description": item.description}]},
        )

    def _update_line_item(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        ensure_editable(estimate)
        item = self._estimate_item(estimate, data)
        patch = {k: data[k] for k in UPDATE_FIELDS if k in data}

        room_name = data.get("room_name", data.get("room"))
        room = None
        if room_name is not None:
            room = self._resolve_room(user_id, estimate.project_id, room_name)
            patch["room_id"] = room.id if room else None
        if not patch:
            raise ValidationError("Nothing to update", field_name="data")

        self.line_items.update_line_item(user_id, item.id, patch)
        message = f"Moved item to {room.name}." if room else "Item updated."
        return ActionResult(ActionType.UPDATE_LINE_ITEM.value, True, id=item.id, message=message)

    def _delete_line_item(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        ensure_editable(estimate)
        item = self._estimate_item(estimate, data)
        self.line_items.delete_line_item(user_id, item.id)
        return ActionResult(ActionType.DELETE_LINE_ITEM.value, True, id=item.id)

    def _add_room(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Missing room name", field_name="name")
        existing = {r.name.strip().lower(): r for r in self.repo.project_rooms(estimate.project_id).values()}
        if name.lower() in existing:
            room = existing[name.lower()]
            return ActionResult(ActionType.ADD_ROOM.value, True, id=room.id, message="Room already exists")

        room_data = {k: data[k] for k in ROOM_DATA_FIELDS if data.get(k) is not None}
        room = self.rooms.upsert_room(
            user_id, estimate.project_id, {**room_data, "name": name, "source": RoomSource.AI.value}
        )
        return ActionResult(ActionType.ADD_ROOM.value, True, id=room.id)

    def _hide_room(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        name = str(data.get("room_name") or "").strip()
        if not name:
            raise ValidationError("Missing room_name", field_name="room_name")
        room = self._match_room(estimate.project_id, name)
        if room is None:
            raise NotFoundError(f'Room "{name}" not found', entity_type="room")
        self.rooms.toggle_room_scope(user_id, room.id, False)
        return ActionResult(ActionType.HIDE_ROOM.value, True, id=room.id)

    def _set_margin_rule(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        scope = data.get("scope")
        margin = to_number(data.get("margin_percent"))
        if not scope or margin is None:
            raise ValidationError("Missing scope or margin_percent", field_name="margin_rule")
        rule = self.pricing.set_margin_rule(user_id, str(scope), margin)
        return ActionResult(ActionType.SET_MARGIN_RULE.value, True, id=rule.id)

    def _update_task_price(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        target = str(data.get("task_name_or_code") or "").strip()
        price = to_number(data.get("new_unit_price"))
        scope = data.get("scope")
        if not target or price is None or not scope:
            raise ValidationError("Missing task_name_or_code, new_unit_price or scope", field_name="data")
        if price < 0:
            raise ValidationError("new_unit_price must be a positive number", field_name="new_unit_price")

        matches = [i for i in self.repo.estimate_items(estimate.id) if i.is_active and _task_matches(i, target)]

        if scope == "this_estimate":
            ensure_editable(estimate)
            if not matches:
                raise NotFoundError(f'No matching line items found for "{target}"', entity_type="line_item")
            for item in matches:
                self.line_items.update_line_item(user_id, item.id, {
                    "unit_cost": price,
                    "direct_cost": round2(price * (item.quantity or 1)),
                    "pricing_source": PricingSource.MANUAL.value,
                })
            return ActionResult(ActionType.UPDATE_TASK_PRICE.value, True, extra={"updated_count": len(matches)})

        if scope == "future_default":
            if matches:
                tasks = {(i.cost_code, i.description.strip().lower()): i for i in matches}
                for item in tasks.values():
                    self.pricing.remember_unit_price(user_id, item.description, price, item.cost_code, item.unit)
                saved = len(tasks)
            elif target.isdigit():
                raise ValidationError(f"No task with cost code {target} to set a default for",
                                      field_name="task_name_or_code")
            else:
                self.pricing.remember_unit_price(user_id, target, price)
                saved = 1
            return ActionResult(ActionType.UPDATE_TASK_PRICE.value, True, extra={"saved_defaults": saved})

        raise ValidationError('Invalid scope. Must be "this_estimate" or "future_default"', field_name="scope")

    def _review_pricing(self, user_id: str, estimate: Estimate, data: dict[str, Any]) -> ActionResult:
        items = [i for i in self.repo.estimate_items(estimate.id) if i.is_active]
        issues = []
        for item in items:
            direct = item.direct_cost or 0
            if direct <= 0:
                continue
            if not item.allowance and item.margin_percent < LOW_MARGIN_PERCENT:
                issues.append({
                    "id": item.id,
                    "description": item.description or "Untitled",
                    "issue": f"Low margin: {item.margin_percent:.1f}% (recommended: {LOW_MARGIN_PERCENT:g}%+)",
                })
            if item.pricing_source is PricingSource.AI:
                issues.append({
                    "id": item.id,
                    "description": item.description or "Untitled",
                    "issue": "AI-generated pricing - consider verifying against actual costs",
                })
        return ActionResult(
            ActionType.REVIEW_PRICING.value,
            True,
            extra={
                "issues": issues,
                "total_items": len(items),
                "items_with_issues": len({issue["id"] for issue in issues}),
            },
        )
