"""
Estimatix - Estimate Lifecycle Service

draft -> bid_final -> contract_signed -> completed
"""
import logging

from estimatix.domain.exceptions import BusinessRuleError, InvalidTransitionError
from estimatix.domain.models.estimate import Estimate, EstimateStatus
from estimatix.domain.models.line_item import LineItem
from estimatix.application.pricing import PricingService
from estimatix.application.repository import Repository

logger = logging.getLogger(__name__)

MISSING_PRICE_PREVIEW = 3


def validate_items_priced(items: list[LineItem]) -> None:
    """
    Raises:
        BusinessRuleError: If there are no items or some lack a direct cost
    """
    if not items:
        raise BusinessRuleError("Cannot finalize: Estimate has no line items")

    missing = [item for item in items if not item.is_priced]
    if not missing:
        return

    names = ", ".join((item.description or "Untitled item") for item in missing[:MISSING_PRICE_PREVIEW])
    extra = len(missing) - MISSING_PRICE_PREVIEW
    if extra > 0:
        names += f" and {extra} more"
    raise BusinessRuleError(
        f"Cannot finalize: {len(missing)} line item(s) are missing pricing ({names}). "
        "Please enter prices for all items.",
        {"missing_count": len(missing)},
    )


def check_transition(current: EstimateStatus, target: EstimateStatus) -> None:
    """
    Raises:
        InvalidTransitionError: Unless target is the single next status
    """
    if current.can_transition_to(target):
        return
    allowed = ", ".join(f"{current.value} -> {s.value}" for s in current.allowed_transitions) or "none"
    raise InvalidTransitionError(
        f"Invalid transition: {current.value} -> {target.value}. Allowed: {allowed}",
        current=current.value,
        target=target.value,
    )


class LifecycleService:
    """Moves estimates one step forward and captures pricing truth."""

    def __init__(self, repo: Repository, pricing: PricingService):
        self.repo = repo
        self.pricing = pricing

    def _transition(self, user_id: str, estimate_id: str, target: EstimateStatus, require_priced: bool) -> Estimate:
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        check_transition(estimate.status, target)
        if require_priced:
            validate_items_priced(self.repo.estimate_items(estimate_id))

        updated = self.repo.save_estimate_fields(estimate, status=target)
        logger.info(f"Estimate {estimate_id}: {estimate.status.value} -> {target.value}")

        if target.is_pricing_truth:
            try:
                self.pricing.record_pricing_commit(user_id, updated, target.value)
            except Exception as e:
                logger.warning(f"Pricing capture failed for estimate {estimate_id}: {e}", exc_info=True)
        return updated

    def finalize_bid(self, user_id: str, estimate_id: str) -> Estimate:
        """draft -> bid_final (every item must be priced)."""
        return self._transition(user_id, estimate_id, EstimateStatus.BID_FINAL, require_priced=True)

    def mark_contract_signed(self, user_id: str, estimate_id: str) -> Estimate:
        """bid_final -> contract_signed (every item must be priced)."""
        return self._transition(user_id, estimate_id, EstimateStatus.CONTRACT_SIGNED, require_priced=True)

    def mark_completed(self, user_id: str, estimate_id: str) -> Estimate:
        return self._transition(user_id, estimate_id, EstimateStatus.COMPLETED, require_priced=False)

    def get_estimate_status(self, user_id: str, estimate_id: str) -> EstimateStatus:
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        return estimate.status

    def is_estimate_editable(self, user_id: str, estimate_id: str) -> bool:
        return self.get_estimate_status(user_id, estimate_id).is_editable

    def is_estimate_pricing_truth(self, user_id: str, estimate_id: str) -> bool:
        return self.get_estimate_status(user_id, estimate_id).is_pricing_truth
