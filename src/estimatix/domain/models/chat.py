"""
Estimatix - Copilot Chat Models

Chat history rows plus the schema the model's JSON answer must satisfy.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .base import RowModel, pick_fields


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatMessage(RowModel):
    """One turn of the estimate copilot conversation."""

    id: str
    project_id: str
    role: ChatRole
    content: str
    estimate_id: str | None = None
    related_action: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ChatMessage":
        data = pick_fields(cls, row)
        data["role"] = ChatRole(data["role"])
        data["content"] = data.get("content") or ""
        return cls(**data)


class ActionType(str, Enum):
    ADD_LINE_ITEM = "add_line_item"
    UPDATE_LINE_ITEM = "update_line_item"
    DELETE_LINE_ITEM = "delete_line_item"
    ADD_ROOM = "add_room"
    HIDE_ROOM = "hide_room"
    INFO = "info"
    SET_MARGIN_RULE = "set_margin_rule"
    UPDATE_TASK_PRICE = "update_task_price"
    REVIEW_PRICING = "review_pricing"


class CopilotAction(BaseModel):
    """
    Edit the model asks for.

    type stays a plain string so an unknown action is reported back
    instead of failing the whole answer.
    """

    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return str(value or "").strip().lower()

    @field_validator("data", mode="before")
    @classmethod
    def _data_dict(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class CopilotResponse(BaseModel):
    response_text: str = ""
    actions: list[CopilotAction] = Field(default_factory=list)


@dataclass
class ActionResult:
    """Outcome of one executed action."""

    type: str
    success: bool
    id: str | None = None
    error: str | None = None
    message: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.type, "success": self.success}
        for name in ("id", "error", "message"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class CopilotReply:
    """What one chat turn returns to the caller."""

    response_text: str
    estimate_id: str
    actions: list[CopilotAction]
    results: list[ActionResult]
    grand_total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "response_text": self.response_text,
            "estimate_id": self.estimate_id,
            "actions": [a.model_dump() for a in self.actions],
            "executed_actions": [r.to_dict() for r in self.results],
            "grand_total": self.grand_total,
        }
