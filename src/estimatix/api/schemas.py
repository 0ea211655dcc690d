"""
Estimatix - API request models (Pydantic v2).
"""
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from estimatix.domain.models.plans import ExtractedRoom, LineItemScaffold


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


# Projects & profile

class ProjectCreate(RequestModel):
    title: str = Field(min_length=1, max_length=500)
    client_name: str | None = None
    owner_name: str | None = None
    project_address: str | None = None
    notes: str | None = None
    status: str | None = None


class ProjectUpdate(RequestModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    client_name: str | None = None
    owner_name: str | None = None
    project_address: str | None = None
    notes: str | None = None
    status: str | None = None


class ProfileUpdate(RequestModel):
    full_name: str | None = None
    company_name: str | None = None
    region: str | None = None


# Estimates

class StatusUpdate(RequestModel):
    status: str


class MarginRuleRequest(RequestModel):
    scope: str = Field(description='"all" or "trade:<cost code>"')
    margin_percent: float


class TranscriptParseRequest(RequestModel):
    transcript: str


# Rooms & selections

class RoomUpsert(RequestModel):
    id: str | None = None
    name: str | None = None
    type: str | None = None
    level: str | None = None
    source: str | None = None
    is_in_scope: bool | None = None
    notes: str | None = None
    length_ft: float | None = Field(default=None, ge=0)
    width_ft: float | None = Field(default=None, ge=0)
    ceiling_height_ft: float | None = Field(default=None, gt=0)


class RoomDimensions(RequestModel):
    length_ft: float | None = Field(default=None, ge=0)
    width_ft: float | None = Field(default=None, ge=0)
    ceiling_height_ft: float | None = Field(default=None, gt=0)


class ScopeToggle(RequestModel):
    is_in_scope: bool


class SelectionPayload(RequestModel):
    title: str | None = None
    estimate_id: str | None = None
    cost_code: str | None = None
    room_id: str | None = None
    category: str | None = None
    description: str | None = None
    allowance: float | None = None
    suggested_allowance: float | None = None
    subcontractor: str | None = None
    source: str | None = None
    notes: str | None = None


class LinkLineItemRequest(RequestModel):
    line_item_id: str


# Proposals & contracts

class ProposalCreate(RequestModel):
    estimate_id: str
    title: str | None = None
    inclusions: list[str] = Field(default_factory=list)
    exclusions: list[str] = Field(default_factory=list)
    basis_of_estimate: str | None = None
    notes: str | None = None


class PaymentMilestone(RequestModel):
    milestone: str
    amount: float = Field(ge=0)


class ContractCreate(RequestModel):
    proposal_id: str
    down_payment: float = Field(default=0.0, ge=0)
    start_date: date | None = None
    completion_date: date | None = None
    payment_schedule: list[PaymentMilestone] | None = None
    legal_text: dict[str, str] | None = None


# Billing

class InvoiceItemRequest(RequestModel):
    task_id: str | None = None
    amount: float
    description: str | None = None


class InvoiceCreate(RequestModel):
    items: list[InvoiceItemRequest] = Field(min_length=1)
    due_date: date | None = None


# Actuals

class LineItemActualRequest(RequestModel):
    line_item_id: str
    actual_unit_cost: float = Field(ge=0)
    actual_quantity: float | None = Field(default=None, ge=0)
    notes: str | None = None


class ActualsRequest(RequestModel):
    total_actual_cost: float = Field(ge=0)
    actual_labor_cost: float | None = Field(default=None, ge=0)
    actual_material_cost: float | None = Field(default=None, ge=0)
    actual_labor_hours: float | None = Field(default=None, ge=0)
    notes: str | None = None
    line_items: list[LineItemActualRequest] = Field(default_factory=list)


# Plans

class ApplyPlanRoom(ExtractedRoom):
    include: bool = True

    def room(self) -> ExtractedRoom:
        return ExtractedRoom.model_validate(self.model_dump(exclude={"include"}))


class ApplyPlanLineItem(LineItemScaffold):
    include: bool = True

    def scaffold(self) -> LineItemScaffold:
        return LineItemScaffold.model_validate(self.model_dump(exclude={"include"}))


class PlanApplyRequest(RequestModel):
    """Reviewed parse; omitted lists mean everything the parse found."""

    rooms: list[ApplyPlanRoom] | None = None
    line_items: list[ApplyPlanLineItem] | None = None
    estimate_id: str | None = None


# Copilot

class ChatTurn(RequestModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str


class CopilotRequest(RequestModel):
    message: str = Field(min_length=1, max_length=4000)
    history: list[ChatTurn] | None = None
