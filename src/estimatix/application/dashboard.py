"""
Estimatix - Dashboard Service

Estimation accuracy over the contractor's recently completed projects.
"""
import logging
from dataclasses import dataclass, field

from estimatix.domain.models.actuals import ProjectActuals, compute_variance
from estimatix.domain.models.money import round2
from estimatix.domain.models.project import ProjectStatus
from estimatix.application.repository import PROJECT_ACTUALS, PROJECTS, Repository

logger = logging.getLogger(__name__)

ACCURACY_WINDOW = 5


@dataclass(frozen=True)
class ProjectAccuracy:
    project_id: str
    title: str
    estimated: float
    actual: float
    variance_percent: float | None


@dataclass(frozen=True)
class EstimationAccuracy:
    projects: list[ProjectAccuracy] = field(default_factory=list)
    average_absolute_variance: float | None = None


class DashboardService:
    def __init__(self, repo: Repository):
        self.repo = repo

    def _project_accuracy(self, project_row: dict) -> ProjectAccuracy | None:
        estimate = self.repo.latest_estimate(project_row["id"])
        if estimate is None:
            return None

        estimated = self.repo.in_scope_total(estimate)
        actuals_row = self.repo.db.find_one(PROJECT_ACTUALS, {"project_id": project_row["id"]})
        if actuals_row:
            actual = ProjectActuals.from_row(actuals_row).total_actual_cost
        else:
            actual = round2(sum(item.direct_cost or 0 for item in self.repo.estimate_items(estimate.id)))

        return ProjectAccuracy(
            project_id=project_row["id"],
            title=project_row["title"],
            estimated=estimated,
            actual=actual,
            variance_percent=compute_variance(actual, estimated).percent,
        )

    def get_estimation_accuracy(self, user_id: str) -> EstimationAccuracy:
        rows = self.repo.db.find(
            PROJECTS,
            {"user_id": user_id, "status": ProjectStatus.COMPLETED.value},
            order_by="updated_at",
            descending=True,
            limit=ACCURACY_WINDOW,
        )
        projects = [p for p in (self._project_accuracy(row) for row in rows) if p is not None]

        variances = [abs(p.variance_percent) for p in projects if p.variance_percent is not None]
        average = round2(sum(variances) / len(variances)) if variances else None
        logger.debug(f"Estimation accuracy for {user_id}: {len(projects)} projects, avg={average}")
        return EstimationAccuracy(projects=projects, average_absolute_variance=average)
