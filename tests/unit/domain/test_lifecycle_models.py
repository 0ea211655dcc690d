"""
Unit tests for estimate status, proposals, contracts, billing and actuals models.
"""

from datetime import date

import pytest

from estimatix.domain.models.actuals import ProjectActuals, compute_variance
from estimatix.domain.models.billing import Invoice, InvoiceStatus, JobTask, next_invoice_number
from estimatix.domain.models.estimate import Estimate, EstimateStatus
from estimatix.domain.models.project import Project, ProjectStatus
from estimatix.domain.models.proposal import Contract, Proposal, ProposalStatus


class TestEstimateStatus:
    """draft -> bid_final -> contract_signed -> completed"""

    @pytest.mark.parametrize("current,target", [
        (EstimateStatus.DRAFT, EstimateStatus.BID_FINAL),
        (EstimateStatus.BID_FINAL, EstimateStatus.CONTRACT_SIGNED),
        (EstimateStatus.CONTRACT_SIGNED, EstimateStatus.COMPLETED),
    ])
    def test_forward_steps(self, current, target):
        assert current.can_transition_to(target)

    @pytest.mark.parametrize("current,target", [
        (EstimateStatus.DRAFT, EstimateStatus.CONTRACT_SIGNED),
        (EstimateStatus.BID_FINAL, EstimateStatus.DRAFT),
        (EstimateStatus.COMPLETED, EstimateStatus.DRAFT),
    ])
    def test_skips_and_reversals_rejected(self, current, target):
        assert not current.can_transition_to(target)

    def test_completed_is_terminal(self):
        assert EstimateStatus.COMPLETED.allowed_transitions == []

    def test_only_draft_is_editable(self):
        assert [s for s in EstimateStatus if s.is_editable] == [EstimateStatus.DRAFT]

    def test_pricing_truth_states(self):
        truth = {s for s in EstimateStatus if s.is_pricing_truth}
        assert truth == {EstimateStatus.BID_FINAL, EstimateStatus.CONTRACT_SIGNED}

    def test_from_row(self):
        estimate = Estimate.from_row({"id": "e", "project_id": "p", "status": None, "total": "12.5",
                                      "json_data": None})
        assert estimate.status is EstimateStatus.DRAFT
        assert estimate.total == 12.5
        assert estimate.json_data == {}
        assert estimate.is_editable


class TestProject:
    def test_title_required(self):
        with pytest.raises(ValueError):
            Project(id="p", user_id="u", title=" ")

    def test_ownership(self):
        project = Project(id="p", user_id="u", title="Bath")
        assert project.is_owned_by("u")
        assert not project.is_owned_by("someone-else")
        assert project.status is ProjectStatus.DRAFT


class TestProposalAndContract:
    def test_version_must_be_positive(self):
        with pytest.raises(ValueError):
            Proposal(id="pr", project_id="p", estimate_id="e", version=0)

    def test_proposal_from_row(self):
        proposal = Proposal.from_row({"id": "pr", "project_id": "p", "estimate_id": "e", "status": "approved",
                                      "total_price": "1000", "body_json": {"allowances": [{"amount": 5}]}})
        assert proposal.status is ProposalStatus.APPROVED
        assert proposal.total_price == 1000.0
        assert proposal.allowances == [{"amount": 5}]

    def test_contract_balance_due(self):
        contract = Contract(id="c", project_id="p", total_price=10000.0, down_payment=2500.0)
        assert contract.balance_due == 7500.0
        assert "warranty" in contract.legal_text

    def test_contract_negative_down_payment(self):
        with pytest.raises(ValueError):
            Contract(id="c", project_id="p", total_price=100.0, down_payment=-1)

    def test_contract_dates_ordered(self):
        with pytest.raises(ValueError):
            Contract(id="c", project_id="p", start_date=date(2026, 5, 1), completion_date=date(2026, 4, 1))


class TestBilling:
    def test_first_invoice_number(self):
        assert next_invoice_number([]) == "INV-0001"

    def test_next_invoice_number_skips_garbage(self):
        assert next_invoice_number(["INV-0009", "INV-0002", "draft", "INV-x"]) == "INV-0010"

    def test_task_remaining_amount(self):
        task = JobTask(id="t", project_id="p", description="Frame wall", price=1000.0, billed_amount=400.0)
        assert task.remaining_amount == 600.0

    def test_invoice_from_row_parses_dates(self):
        invoice = Invoice.from_row({"id": "i", "project_id": "p", "invoice_number": "INV-0001",
                                    "issued_date": "2026-03-01", "due_date": None, "status": None})
        assert invoice.issued_date == date(2026, 3, 1)
        assert invoice.status is InvoiceStatus.DRAFT


class TestActuals:
    def test_variance(self):
        variance = compute_variance(110.0, 100.0)
        assert variance.amount == 10.0
        assert variance.percent == 10.0

    def test_under_budget(self):
        variance = compute_variance(90.0, 120.0)
        assert variance.amount == -30.0
        assert variance.percent == -25.0

    def test_zero_estimate_has_no_percent(self):
        variance = compute_variance(50.0, 0.0)
        assert variance.amount == 50.0
        assert variance.percent is None

    def test_negative_actual_rejected(self):
        with pytest.raises(ValueError):
            ProjectActuals(id="a", project_id="p", total_actual_cost=-1)
