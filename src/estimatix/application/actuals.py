"""
Estimatix - Job Actuals Service

Close-out of signed jobs: actual costs, variance and completion.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from estimatix.domain.exceptions import BusinessRuleError, ValidationError
from estimatix.domain.models.actuals import LineItemActual, ProjectActuals, compute_variance
from estimatix.domain.models.estimate import EstimateStatus
from estimatix.domain.models.money import round2, to_number
from estimatix.domain.models.project import ProjectStatus
from estimatix.application.lifecycle import LifecycleService
from estimatix.application.repository import (
    LINE_ITEM_ACTUALS,
    PROJECT_ACTUALS,
    PROJECTS,
    Repository,
    new_id,
)

logger = logging.getLogger(__name__)

ACTUALS_FIELDS = ("total_actual_cost", "actual_labor_cost", "actual_material_cost", "actual_labor_hours", "notes")

GATE_REASONS = {
    EstimateStatus.DRAFT: "Cannot enter actuals: Estimate is still in draft. Finalize bid first.",
    EstimateStatus.BID_FINAL: "Cannot enter actuals: Contract not signed yet.",
    EstimateStatus.COMPLETED: "Project already completed. Actuals are now read-only.",
}


@dataclass(frozen=True)
class ActualsGate:
    allowed: bool
    reason: str | None = None
    estimate_id: str | None = None
    estimated_total: float | None = None


class ActualsService:
    def __init__(self, repo: Repository, lifecycle: LifecycleService):
        self.repo = repo
        self.lifecycle = lifecycle

    def can_enter_actuals(self, user_id: str, project_id: str) -> ActualsGate:
        """Actuals are only accepted while the latest estimate is contract_signed."""
        self.repo.owned_project(project_id, user_id)
        estimate = self.repo.latest_estimate(project_id)
        if estimate is None:
            return ActualsGate(allowed=False, reason="Cannot enter actuals: No estimate found for this project.")

        if estimate.status is not EstimateStatus.CONTRACT_SIGNED:
            return ActualsGate(allowed=False, reason=GATE_REASONS[estimate.status], estimate_id=estimate.id)
        return ActualsGate(
            allowed=True,
            estimate_id=estimate.id,
            estimated_total=self.repo.in_scope_total(estimate),
        )

    def _clean(self, actuals: dict[str, Any]) -> dict[str, Any]:
        cleaned = {k: actuals[k] for k in ACTUALS_FIELDS if k in actuals}
        for name in ("total_actual_cost", "actual_labor_cost", "actual_material_cost", "actual_labor_hours"):
            if name in cleaned:
                value = to_number(cleaned[name])
                if value is not None and value < 0:
                    raise ValidationError(f"{name} cannot be negative", field_name=name)
                cleaned[name] = value
        if cleaned.get("total_actual_cost") is None:
            raise ValidationError("total_actual_cost is required", field_name="total_actual_cost")
        return cleaned

    def _upsert_project_actuals(
        self,
        project_id: str,
        values: dict[str, Any],
        estimated: float,
        closed: bool
    ) -> ProjectActuals:
        variance = compute_variance(values["total_actual_cost"], estimated)
        row = {
            **values,
            "total_estimated_cost": round2(estimated),
            "variance_amount": variance.amount,
            "variance_percent": variance.percent,
            "updated_at": datetime.now(),
        }
        if closed:
            row["closed_at"] = datetime.now()

        existing = self.repo.db.find_one(PROJECT_ACTUALS, {"project_id": project_id})
        if existing:
            saved = self.repo.db.update(PROJECT_ACTUALS, existing["id"], row)
        else:
            saved = self.repo.db.insert(PROJECT_ACTUALS, {"id": new_id(), "project_id": project_id, **row})
        return ProjectActuals.from_row(saved)

    def _save_line_item_actuals(self, project_id: str, estimate_id: str, entries: list[dict[str, Any]]) -> int:
        saved = 0
        for entry in entries:
            unit_cost = to_number(entry.get("actual_unit_cost"))
            if unit_cost is None:
                continue
            item = self.repo.get_line_item(entry.get("line_item_id"))
            if item.estimate_id != estimate_id:
                raise ValidationError("Line item does not belong to this estimate", field_name="line_item_id")

            quantity = to_number(entry.get("actual_quantity"))
            actual_direct = round2(unit_cost * (quantity or 1))
            estimated_direct = item.direct_cost or 0.0
            variance = compute_variance(actual_direct, estimated_direct)

            actual = LineItemActual(
                id=new_id(),
                line_item_id=item.id,
                project_id=project_id,
                actual_unit_cost=unit_cost,
                actual_quantity=quantity,
                actual_direct_cost=actual_direct,
                estimated_direct_cost=estimated_direct,
                variance_amount=variance.amount,
                variance_percent=variance.percent,
                notes=entry.get("notes"),
            )
            existing = self.repo.db.find_one(LINE_ITEM_ACTUALS, {"line_item_id": item.id})
            if existing:
                row = actual.to_row()
                row.pop("id")
                self.repo.db.update(LINE_ITEM_ACTUALS, existing["id"], row)
            else:
                self.repo.db.insert(LINE_ITEM_ACTUALS, actual.to_row())
            saved += 1
        return saved

    def close_out_project(self, user_id: str, project_id: str, actuals: dict[str, Any]) -> ProjectActuals:
        """
        Record final costs, then complete the estimate and the project.

        actuals: total_actual_cost (required), labor/material costs, labor hours,
        notes and optional line_items [{line_item_id, actual_unit_cost, actual_quantity, notes}].

        Raises:
            BusinessRuleError: Estimate is not contract_signed
        """
        gate = self.can_enter_actuals(user_id, project_id)
        if not gate.allowed:
            raise BusinessRuleError(gate.reason, {"project_id": project_id})

        values = self._clean(actuals)
        result = self._upsert_project_actuals(project_id, values, gate.estimated_total or 0.0, closed=True)
        line_count = self._save_line_item_actuals(project_id, gate.estimate_id, actuals.get("line_items") or [])

        self.lifecycle.mark_completed(user_id, gate.estimate_id)
        self.repo.db.update(PROJECTS, project_id, {
            "status": ProjectStatus.COMPLETED.value,
            "updated_at": datetime.now(),
        })
        logger.info(
            f"Closed out project {project_id}: actual={result.total_actual_cost} "
            f"estimated={result.total_estimated_cost} variance={result.variance_percent}% "
            f"({line_count} line item actuals)"
        )
        return result

    def update_project_actuals(self, user_id: str, project_id: str, actuals: dict[str, Any]) -> ProjectActuals:
        """Save actuals before close-out (rejected once the project is completed)."""
        gate = self.can_enter_actuals(user_id, project_id)
        if not gate.allowed:
            estimate = self.repo.latest_estimate(project_id)
            if estimate is not None and estimate.status is EstimateStatus.COMPLETED:
                raise BusinessRuleError("Project is completed. Actuals are read-only.")
            raise BusinessRuleError(gate.reason, {"project_id": project_id})

        values = self._clean(actuals)
        result = self._upsert_project_actuals(project_id, values, gate.estimated_total or 0.0, closed=False)
        self._save_line_item_actuals(project_id, gate.estimate_id, actuals.get("line_items") or [])
        return result

    def get_project_actuals(self, user_id: str, project_id: str) -> ProjectActuals | None:
        self.repo.owned_project(project_id, user_id)
        row = self.repo.db.find_one(PROJECT_ACTUALS, {"project_id": project_id})
        return ProjectActuals.from_row(row) if row else None

    def get_line_item_actuals(self, user_id: str, project_id: str) -> list[LineItemActual]:
        self.repo.owned_project(project_id, user_id)
        return [LineItemActual.from_row(r) for r in self.repo.db.find(LINE_ITEM_ACTUALS, {"project_id": project_id})]
