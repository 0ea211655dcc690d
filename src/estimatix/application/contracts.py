"""
Estimatix - Contract Service
"""
import logging
from dataclasses import replace
from datetime import date
from typing import Any

from estimatix.domain.exceptions import BusinessRuleError, NotFoundError, ValidationError
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.money import round2
from estimatix.domain.models.proposal import DEFAULT_LEGAL_TEXT, Contract, ContractStatus, Proposal
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.application.repository import CONTRACTS, PROPOSALS, Repository, new_id

logger = logging.getLogger(__name__)

CONTRACTS_BUCKET = "contracts"


def default_payment_schedule(total_price: float, down_payment: float) -> list[dict[str, Any]]:
    """Down payment (if any) plus the remainder on completion."""
    schedule = []
    if down_payment > 0:
        schedule.append({"milestone": "Down Payment", "amount": round2(down_payment)})
    schedule.append({"milestone": "Completion", "amount": round2(total_price - down_payment)})
    return schedule


class ContractService:
    def __init__(self, repo: Repository, storage: FileStorage, renderer: PdfRenderer):
        self.repo = repo
        self.storage = storage
        self.renderer = renderer

    def _owned(self, user_id: str, contract_id: str) -> Contract:
        row = self.repo.db.get(CONTRACTS, contract_id)
        if not row:
            raise NotFoundError("Contract not found", entity_type="contract", entity_id=contract_id)
        contract = Contract.from_row(row)
        self.repo.owned_project(contract.project_id, user_id)
        return contract

    def _proposal(self, proposal_id: str) -> Proposal:
        row = self.repo.db.get(PROPOSALS, proposal_id)
        if not row:
            raise NotFoundError("Proposal not found", entity_type="proposal", entity_id=proposal_id)
        return Proposal.from_row(row)

    def create_contract_from_proposal(
        self,
        user_id: str,
        proposal_id: str,
        down_payment: float = 0.0,
        start_date: date | None = None,
        completion_date: date | None = None,
        payment_schedule: list[dict[str, Any]] | None = None,
        legal_text: dict[str, str] | None = None
    ) -> Contract:
        """
        Raises:
            BusinessRuleError: Down payment exceeds the proposal total
            ValidationError: Negative down payment or inverted dates
        """
        proposal = self._proposal(proposal_id)
        self.repo.owned_project(proposal.project_id, user_id)

        total = proposal.total_price
        down_payment = down_payment or 0.0
        if down_payment > total:
            raise BusinessRuleError(
                "Down payment cannot exceed total price",
                {"down_payment": down_payment, "total_price": total},
            )

        try:
            contract = Contract(
                id=new_id(),
                project_id=proposal.project_id,
                proposal_id=proposal.id,
                total_price=total,
                down_payment=down_payment,
                start_date=start_date,
                completion_date=completion_date,
                payment_schedule=payment_schedule or default_payment_schedule(total, down_payment),
                legal_text={**DEFAULT_LEGAL_TEXT, **(legal_text or {})},
            )
        except ValueError as e:
            raise ValidationError(str(e), field_name="contract")

        contract = Contract.from_row(self.repo.db.insert(CONTRACTS, contract.to_row()))
        logger.info(f"Created contract {contract.id} from proposal {proposal_id} (total={total})")
        return contract

    def regenerate_contract_total(self, user_id: str, contract_id: str) -> Contract:
        """Re-sum the in-scope client prices of the contract's estimate."""
        contract = self._owned(user_id, contract_id)
        if not contract.proposal_id:
            raise BusinessRuleError("Contract is not linked to a proposal")

        proposal = self._proposal(contract.proposal_id)
        total = self.repo.in_scope_total(self.repo.get_estimate(proposal.estimate_id))
        if total < contract.down_payment:
            raise BusinessRuleError("Down payment cannot exceed total price", {"total_price": total})

        row = self.repo.db.update(CONTRACTS, contract_id, {"total_price": total})
        logger.info(f"Contract {contract_id} total regenerated: {contract.total_price} -> {total}")
        return Contract.from_row(row) if row else replace(contract, total_price=total)

    def update_contract_status(self, user_id: str, contract_id: str, status: str) -> Contract:
        contract = self._owned(user_id, contract_id)
        try:
            target = ContractStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid contract status: {status}", field_name="status")
        row = self.repo.db.update(CONTRACTS, contract_id, {"status": target.value})
        return Contract.from_row(row) if row else replace(contract, status=target)

    def get_contract(self, user_id: str, contract_id: str) -> Contract:
        return self._owned(user_id, contract_id)

    def list_contracts(self, user_id: str, project_id: str) -> list[Contract]:
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(CONTRACTS, {"project_id": project_id}, order_by="created_at", descending=True)
        return [Contract.from_row(r) for r in rows]

    def render_contract_pdf(self, user_id: str, contract_id: str) -> Contract:
        contract = self._owned(user_id, contract_id)
        project = self.repo.get_project(contract.project_id)

        pdf = self.renderer.render_contract(self.repo.document_header(project, user_id), contract)
        url = self.storage.save(CONTRACTS_BUCKET, f"{project.id}/{contract.id}.pdf", pdf)
        row = self.repo.db.update(CONTRACTS, contract_id, {"pdf_url": url})
        return Contract.from_row(row) if row else replace(contract, pdf_url=url)
