"""
Estimatix - Job Service

Turns the signed scope into billable job tasks.
"""
import logging
from dataclasses import dataclass, field, replace

from estimatix.domain.exceptions import BusinessRuleError, NotFoundError, ValidationError
from estimatix.domain.models.billing import JobTask, TaskStatus
from estimatix.domain.models.proposal import Contract, ContractStatus, Proposal, ProposalStatus
from estimatix.application.repository import (
    CONTRACTS,
    JOB_TASKS,
    PROPOSALS,
    Repository,
    in_scope_items,
    new_id,
)

logger = logging.getLogger(__name__)

TASKS_EXIST_MESSAGE = "Job tasks already exist for this project"


@dataclass(frozen=True)
class JobStartResult:
    tasks_created: int
    message: str
    tasks: list[JobTask] = field(default_factory=list)


class JobService:
    def __init__(self, repo: Repository):
        self.repo = repo

    def _resolve_estimate_id(self, project_id: str, proposal: Proposal | None) -> str:
        """Linked proposal's estimate, else latest approved proposal's, else the newest estimate."""
        if proposal is not None:
            return proposal.estimate_id

        approved = self.repo.db.find(
            PROPOSALS,
            {"project_id": project_id, "status": ProposalStatus.APPROVED.value},
            order_by="created_at",
            descending=True,
            limit=1,
        )
        if approved:
            return approved[0]["estimate_id"]

        estimate = self.repo.latest_estimate(project_id)
        if estimate is None:
            raise BusinessRuleError(
                "No approved estimate found. Please ensure the contract is linked to an approved proposal "
                "with an estimate."
            )
        return estimate.id

    def _create_tasks(self, project_id: str, estimate_id: str, contract_id: str | None) -> JobStartResult:
        if self.repo.db.find(JOB_TASKS, {"project_id": project_id}, limit=1):
            logger.info(f"Job tasks already exist for project {project_id}, nothing to do")
            return JobStartResult(tasks_created=0, message=TASKS_EXIST_MESSAGE)

        items = self.repo.estimate_items(estimate_id)
        if not items:
            raise BusinessRuleError("No line items found for this estimate. Cannot start job without scope items.")

        scoped = [
            item for item in in_scope_items(items, self.repo.project_rooms(project_id))
            if item.description and item.description.strip()
        ]
        if not scoped:
            raise BusinessRuleError("No valid line items to create tasks from")

        tasks = []
        for item in scoped:
            task = JobTask(
                id=new_id(),
                project_id=project_id,
                contract_id=contract_id,
                original_line_item_id=item.id,
                description=item.description.strip(),
                price=item.client_price or 0.0,
            )
            tasks.append(JobTask.from_row(self.repo.db.insert(JOB_TASKS, task.to_row())))

        logger.info(f"Created {len(tasks)} job tasks for project {project_id} from estimate {estimate_id}")
        return JobStartResult(tasks_created=len(tasks), message=f"Created {len(tasks)} tasks", tasks=tasks)

    def start_job_from_contract(self, user_id: str, contract_id: str) -> JobStartResult:
        """
        Create job tasks from the contract's estimate and mark the contract signed.

        Raises:
            BusinessRuleError: Proposal not approved, or no usable line items
        """
        row = self.repo.db.get(CONTRACTS, contract_id)
        if not row:
            raise NotFoundError("Contract not found", entity_type="contract", entity_id=contract_id)
        contract = Contract.from_row(row)
        self.repo.owned_project(contract.project_id, user_id)

        proposal = None
        if contract.proposal_id:
            proposal_row = self.repo.db.get(PROPOSALS, contract.proposal_id)
            proposal = Proposal.from_row(proposal_row) if proposal_row else None
            if proposal is None or proposal.status is not ProposalStatus.APPROVED:
                raise BusinessRuleError("Contract must be linked to an approved proposal")

        estimate_id = self._resolve_estimate_id(contract.project_id, proposal)
        result = self._create_tasks(contract.project_id, estimate_id, contract.id)

        if result.tasks_created and contract.status in (ContractStatus.DRAFT, ContractStatus.SENT):
            try:
                self.repo.db.update(CONTRACTS, contract.id, {"status": ContractStatus.SIGNED.value})
            except Exception as e:
                logger.warning(f"Failed to mark contract {contract.id} signed: {e}")
        return result

    def start_job_from_estimate(self, user_id: str, estimate_id: str) -> JobStartResult:
        estimate, project = self.repo.owned_estimate(estimate_id, user_id)
        return self._create_tasks(project.id, estimate.id, contract_id=None)

    def list_job_tasks(self, user_id: str, project_id: str) -> list[JobTask]:
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(JOB_TASKS, {"project_id": project_id}, order_by="created_at")
        return [JobTask.from_row(r) for r in rows]

    def get_task(self, user_id: str, task_id: str) -> JobTask:
        row = self.repo.db.get(JOB_TASKS, task_id)
        if not row:
            raise NotFoundError("Task not found", entity_type="job_task", entity_id=task_id)
        task = JobTask.from_row(row)
        self.repo.owned_project(task.project_id, user_id)
        return task

    def update_task_status(self, user_id: str, task_id: str, status: str) -> JobTask:
        task = self.get_task(user_id, task_id)
        try:
            target = TaskStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid task status: {status}", field_name="status")
        row = self.repo.db.update(JOB_TASKS, task_id, {"status": target.value})
        return JobTask.from_row(row) if row else replace(task, status=target)
