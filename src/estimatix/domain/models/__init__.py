"""Estimatix - Domain Models."""

from .config import AppConfig
from .cost_codes import (
    CostCode,
    COST_CODES,
    ALLOWANCE_COST_CODES,
    AreaField,
    RoomAreas,
    get_cost_code,
    format_cost_code,
    cost_code_for_item,
    area_field_for_item,
    compute_room_areas,
)
from .estimate import Estimate, EstimateStatus, PRICING_TRUTH_STATES
from .line_item import LineItem, PricingSource, CalcSource, MergedItem, compute_totals, merge_estimate_items
from .project import Project, ProjectStatus, Profile
from .room import Room, RoomSource
from .selection import Selection, SelectionSource
from .proposal import Proposal, ProposalStatus, ProposalEvent, ProposalEventType, Contract, ContractStatus
from .billing import JobTask, TaskStatus, Invoice, InvoiceItem, InvoiceStatus
from .actuals import ProjectActuals, LineItemActual, Variance, compute_variance
from .pricing import TaskLibraryEntry, UserCostEntry, MarginRule, PricingResult, make_task_key, fuzzy_score
from .transcript import ParsedTranscript, ParsedItem, Upload, UploadKind, UploadStatus
from .plans import (
    PlanPage,
    PageType,
    PageClassification,
    ExtractedRoom,
    LineItemScaffold,
    PlanParse,
    PlanParseResult,
    PlanParseStatus,
)
from .chat import ChatMessage, ChatRole, ActionType, CopilotAction, CopilotResponse, CopilotReply

__all__ = [
    # Config
    "AppConfig",
    # Cost codes
    "CostCode",
    "COST_CODES",
    "ALLOWANCE_COST_CODES",
    "AreaField",
    "RoomAreas",
    "get_cost_code",
    "format_cost_code",
    "cost_code_for_item",
    "area_field_for_item",
    "compute_room_areas",
    # Estimate
    "Estimate",
    "EstimateStatus",
    "PRICING_TRUTH_STATES",
    # Line items
    "LineItem",
    "PricingSource",
    "CalcSource",
    "MergedItem",
    "compute_totals",
    "merge_estimate_items",
    # Project
    "Project",
    "ProjectStatus",
    "Profile",
    "Room",
    "RoomSource",
    "Selection",
    "SelectionSource",
    # Proposals / contracts
    "Proposal",
    "ProposalStatus",
    "ProposalEvent",
    "ProposalEventType",
    "Contract",
    "ContractStatus",
    # Billing
    "JobTask",
    "TaskStatus",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    # Actuals
    "ProjectActuals",
    "LineItemActual",
    "Variance",
    "compute_variance",
    # Pricing
    "TaskLibraryEntry",
    "UserCostEntry",
    "MarginRule",
    "PricingResult",
    "make_task_key",
    "fuzzy_score",
    # Transcripts
    "ParsedTranscript",
    "ParsedItem",
    "Upload",
    "UploadKind",
    "UploadStatus",
    # Plans
    "PlanPage",
    "PageType",
    "PageClassification",
    "ExtractedRoom",
    "LineItemScaffold",
    "PlanParse",
    "PlanParseResult",
    "PlanParseStatus",
    # Copilot
    "ChatMessage",
    "ChatRole",
    "ActionType",
    "CopilotAction",
    "CopilotResponse",
    "CopilotReply",
]
