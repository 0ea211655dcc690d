"""
Estimatix - Proposal Service

Versioned client proposals snapshotted from an estimate, with an event trail.
"""
import logging
from dataclasses import replace
from typing import Any

from estimatix.domain.exceptions import BusinessRuleError, NotFoundError, ValidationError
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.line_item import LineItem
from estimatix.domain.models.proposal import (
    DEFAULT_PROPOSAL_TITLE,
    Proposal,
    ProposalEvent,
    ProposalEventType,
    ProposalStatus,
)
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.application.repository import (
    PROPOSAL_EVENTS,
    PROPOSALS,
    Repository,
    in_scope_client_total,
    in_scope_items,
    new_id,
)

logger = logging.getLogger(__name__)

PROPOSALS_BUCKET = "proposals"

STATUS_EVENTS = {
    ProposalStatus.SENT: ProposalEventType.SENT,
    ProposalStatus.APPROVED: ProposalEventType.APPROVED,
    ProposalStatus.DRAFT: ProposalEventType.REVISED,
}


def allowance_amount(item: LineItem) -> float:
    if item.client_price is not None:
        return item.client_price
    return item.direct_cost or 0.0


class ProposalService:
    def __init__(self, repo: Repository, storage: FileStorage, renderer: PdfRenderer):
        self.repo = repo
        self.storage = storage
        self.renderer = renderer

    def _owned(self, user_id: str, proposal_id: str) -> Proposal:
        row = self.repo.db.get(PROPOSALS, proposal_id)
        if not row:
            raise NotFoundError("Proposal not found", entity_type="proposal", entity_id=proposal_id)
        proposal = Proposal.from_row(row)
        self.repo.owned_project(proposal.project_id, user_id)
        return proposal

    def _record_event(self, proposal_id: str, event_type: ProposalEventType, metadata: dict[str, Any]) -> None:
        try:
            event = ProposalEvent(id=new_id(), proposal_id=proposal_id, event_type=event_type, metadata=metadata)
            self.repo.db.insert(PROPOSAL_EVENTS, event.to_row())
        except Exception as e:
            logger.warning(f"Failed to record {event_type.value} event for proposal {proposal_id}: {e}")

    def create_proposal_from_estimate(
        self,
        user_id: str,
        project_id: str,
        estimate_id: str,
        title: str | None = None,
        inclusions: list[str] | None = None,
        exclusions: list[str] | None = None,
        basis_of_estimate: str | None = None,
        notes: str | None = None
    ) -> Proposal:
        """
        Snapshot the estimate's in-scope items into a new proposal version.

        Raises:
            ValidationError: Estimate belongs to another project
            BusinessRuleError: Estimate has no line items
        """
        project = self.repo.owned_project(project_id, user_id)
        estimate = self.repo.get_estimate(estimate_id)
        if estimate.project_id != project.id:
            raise ValidationError("Estimate does not belong to this project", field_name="estimate_id")

        items = self.repo.estimate_items(estimate_id)
        if not items:
            raise BusinessRuleError("Cannot create proposal: Estimate has no line items")

        rooms = self.repo.project_rooms(project_id)
        scoped = in_scope_items(items, rooms)
        total = in_scope_client_total(items, rooms)
        allowances = [
            {"description": item.description, "cost_code": item.cost_code, "amount": allowance_amount(item)}
            for item in scoped if item.allowance
        ]

        versions = [r.get("version") or 0 for r in self.repo.db.find(PROPOSALS, {"project_id": project_id})]
        proposal = Proposal(
            id=new_id(),
            project_id=project_id,
            estimate_id=estimate_id,
            version=max(versions, default=0) + 1,
            title=(title or "").strip() or DEFAULT_PROPOSAL_TITLE,
            total_price=total,
            body_json={
                "line_items": [
                    {
                        "id": item.id,
                        "description": item.description,
                        "cost_code": item.cost_code,
                        "quantity": item.quantity,
                        "unit": item.unit,
                        "client_price": item.client_price,
                    }
                    for item in scoped
                ],
                "allowances": allowances,
                "inclusions": inclusions or [],
                "exclusions": exclusions or [],
                "basis_of_estimate": basis_of_estimate,
                "notes": notes,
            },
        )
        proposal = Proposal.from_row(self.repo.db.insert(PROPOSALS, proposal.to_row()))

        self._record_event(proposal.id, ProposalEventType.CREATED, {
            "estimate_id": estimate_id,
            "total_price": total,
            "line_items_count": len(scoped),
            "allowance_items_count": len(allowances),
        })
        logger.info(f"Created proposal {proposal.id} v{proposal.version} for project {project_id} (total={total})")
        return proposal

    def update_proposal_status(self, user_id: str, proposal_id: str, status: str) -> Proposal:
        proposal = self._owned(user_id, proposal_id)
        try:
            target = ProposalStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid proposal status: {status}", field_name="status")

        row = self.repo.db.update(PROPOSALS, proposal_id, {"status": target.value})
        updated = Proposal.from_row(row) if row else replace(proposal, status=target)

        event_type = STATUS_EVENTS.get(target)
        if event_type is not None:
            self._record_event(proposal_id, event_type, {"previous_status": proposal.status.value})
        logger.info(f"Proposal {proposal_id}: {proposal.status.value} -> {target.value}")
        return updated

    def list_proposals(self, user_id: str, project_id: str) -> list[Proposal]:
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(PROPOSALS, {"project_id": project_id}, order_by="version", descending=True)
        return [Proposal.from_row(r) for r in rows]

    def get_proposal(self, user_id: str, proposal_id: str) -> Proposal:
        return self._owned(user_id, proposal_id)

    def list_proposal_events(self, user_id: str, proposal_id: str) -> list[ProposalEvent]:
        self._owned(user_id, proposal_id)
        rows = self.repo.db.find(PROPOSAL_EVENTS, {"proposal_id": proposal_id}, order_by="created_at")
        return [ProposalEvent.from_row(r) for r in rows]

    def render_proposal_pdf(self, user_id: str, proposal_id: str) -> Proposal:
        """Render, store and link the proposal PDF."""
        proposal = self._owned(user_id, proposal_id)
        project = self.repo.get_project(proposal.project_id)
        items = in_scope_items(
            self.repo.estimate_items(proposal.estimate_id),
            self.repo.project_rooms(project.id),
        )

        pdf = self.renderer.render_proposal(self.repo.document_header(project, user_id), proposal, items)
        url = self.storage.save(PROPOSALS_BUCKET, f"{project.id}/{proposal.id}.pdf", pdf)
        row = self.repo.db.update(PROPOSALS, proposal_id, {"pdf_url": url})
        return Proposal.from_row(row) if row else replace(proposal, pdf_url=url)
