"""
Unit tests for estimate lifecycle transitions and pricing capture.
"""

from unittest.mock import patch

import pytest

from conftest import OTHER_USER_ID, USER_ID
from estimatix.domain.exceptions import BusinessRuleError, InvalidTransitionError, PermissionDeniedError
from estimatix.domain.models.estimate import EstimateStatus
from estimatix.domain.models.line_item import LineItem
from estimatix.application.lifecycle import check_transition, validate_items_priced
from estimatix.application.repository import PRICING_EVENTS, USER_COST_LIBRARY


def make_item(item_id: str, description: str, direct_cost: float | None = None) -> LineItem:
    return LineItem(id=item_id, estimate_id="e", project_id="p", description=description, direct_cost=direct_cost)


class TestValidateItemsPriced:
    def test_empty_estimate(self):
        with pytest.raises(BusinessRuleError, match="Cannot finalize: Estimate has no line items"):
            validate_items_priced([])

    def test_all_priced(self):
        validate_items_priced([make_item("a", "Paint", 100.0)])

    def test_missing_prices_preview(self):
        items = [make_item(str(i), f"Item {i}") for i in range(5)] + [make_item("ok", "Priced", 10.0)]

        with pytest.raises(BusinessRuleError) as exc:
            validate_items_priced(items)

        assert exc.value.message == (
            "Cannot finalize: 5 line item(s) are missing pricing (Item 0, Item 1, Item 2 and 2 more). "
            "Please enter prices for all items."
        )
        assert exc.value.details["missing_count"] == 5

    def test_untitled_items(self):
        with pytest.raises(BusinessRuleError, match=r"\(Untitled item\)"):
            validate_items_priced([make_item("a", "")])


class TestCheckTransition:
    def test_allowed(self):
        check_transition(EstimateStatus.DRAFT, EstimateStatus.BID_FINAL)

    def test_skip_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc:
            check_transition(EstimateStatus.DRAFT, EstimateStatus.COMPLETED)
        assert str(exc.value.message) == "Invalid transition: draft -> completed. Allowed: draft -> bid_final"

    def test_terminal(self):
        with pytest.raises(InvalidTransitionError, match="Allowed: none"):
            check_transition(EstimateStatus.COMPLETED, EstimateStatus.DRAFT)


class TestLifecycleService:
    def test_full_lifecycle(self, services, estimate, add_item):
        add_item(description="Replace window", cost_code="520", quantity=2, unit_cost=500)

        assert services.lifecycle.finalize_bid(USER_ID, estimate.id).status is EstimateStatus.BID_FINAL
        assert not services.lifecycle.is_estimate_editable(USER_ID, estimate.id)
        assert services.lifecycle.is_estimate_pricing_truth(USER_ID, estimate.id)

        services.lifecycle.mark_contract_signed(USER_ID, estimate.id)
        completed = services.lifecycle.mark_completed(USER_ID, estimate.id)

        assert completed.status is EstimateStatus.COMPLETED
        assert not services.lifecycle.is_estimate_pricing_truth(USER_ID, estimate.id)

    def test_finalize_requires_prices(self, services, estimate, add_item):
        add_item(description="Mystery work")

        with pytest.raises(BusinessRuleError):
            services.lifecycle.finalize_bid(USER_ID, estimate.id)
        assert services.lifecycle.get_estimate_status(USER_ID, estimate.id) is EstimateStatus.DRAFT

    def test_cannot_skip(self, services, estimate, add_item):
        add_item(description="Paint", quantity=1, unit_cost=100)
        with pytest.raises(InvalidTransitionError):
            services.lifecycle.mark_contract_signed(USER_ID, estimate.id)

    def test_other_user(self, services, estimate):
        with pytest.raises(PermissionDeniedError):
            services.lifecycle.finalize_bid(OTHER_USER_ID, estimate.id)

    def test_pricing_truth_captured(self, services, estimate, add_item):
        add_item(description="Replace window", cost_code="520", quantity=2, unit_cost=500)

        services.lifecycle.finalize_bid(USER_ID, estimate.id)

        events = services.db.find(PRICING_EVENTS, {"estimate_id": estimate.id})
        assert len(events) == 1
        assert events[0]["stage"] == "bid_final"
        assert events[0]["unit_cost"] == 500.0
        assert len(services.db.find(USER_COST_LIBRARY, {"user_id": USER_ID})) == 1

    def test_capture_failure_does_not_block(self, services, estimate, add_item):
        add_item(description="Paint", quantity=1, unit_cost=100)

        with patch.object(services.pricing, "record_pricing_commit", side_effect=RuntimeError("db down")):
            finalized = services.lifecycle.finalize_bid(USER_ID, estimate.id)

        assert finalized.status is EstimateStatus.BID_FINAL
