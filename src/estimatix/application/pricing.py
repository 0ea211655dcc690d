"""
Estimatix - Pricing Service

Pricing waterfall, margin rules and the user cost library that learns from
bid/signed estimates.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any

from rapidfuzz import process

from estimatix.domain.exceptions import ValidationError
from estimatix.domain.models.config import PricingConfig
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.line_item import LineItem, PricingSource
from estimatix.domain.models.money import round2
from estimatix.domain.models.pricing import (
    MARGIN_SCOPE_ALL,
    MarginRule,
    PricingResult,
    TaskLibraryEntry,
    UserCostEntry,
    fuzzy_score,
    make_task_key,
    trade_scope,
)
from estimatix.application.line_items import ensure_editable
from estimatix.application.repository import (
    PRICING_EVENTS,
    TASK_LIBRARY,
    USER_COST_LIBRARY,
    USER_MARGIN_RULES,
    Repository,
    new_id,
)

logger = logging.getLogger(__name__)


def _description_scorer(query: str, choice: str, **kwargs) -> float:
    return fuzzy_score(query, choice)


def best_match(description: str, choices: dict[str, str], threshold: float) -> tuple[str, float] | None:
    """
    Best fuzzy match of description among choices (id -> description).

    Returns:
        (id, score) or None when nothing reaches the threshold
    """
    if not description or not choices:
        return None
    match = process.extractOne(description, choices, scorer=_description_scorer, score_cutoff=threshold)
    if match is None:
        return None
    _, score, key = match
    return key, score


def positive_unit_cost(item: LineItem) -> float | None:
    """unit_cost, else direct_cost / quantity (None unless > 0)."""
    if item.unit_cost and item.unit_cost > 0:
        return item.unit_cost
    if item.direct_cost and item.quantity:
        unit_cost = item.direct_cost / item.quantity
        if unit_cost > 0:
            return round2(unit_cost)
    return None


class PricingService:
    """Prices line items and maintains the user's cost library."""

    def __init__(self, repo: Repository, config: PricingConfig):
        self.repo = repo
        self.config = config

    def region_for(self, user_id: str) -> str:
        profile = self.repo.get_profile(user_id)
        return (profile.region if profile and profile.region else None) or self.config.default_region

    # Margin rules

    def list_margin_rules(self, user_id: str) -> list[MarginRule]:
        rows = self.repo.db.find(USER_MARGIN_RULES, {"user_id": user_id}, order_by="scope")
        return [MarginRule.from_row(r) for r in rows]

    def set_margin_rule(self, user_id: str, scope: str, margin_percent: float) -> MarginRule:
        """
        Create or replace the margin rule for a scope ("all" or "trade:<code>").

        Raises:
            ValidationError: Invalid scope or margin
        """
        existing = self.repo.db.find_one(USER_MARGIN_RULES, {"user_id": user_id, "scope": scope})
        try:
            rule = MarginRule(
                id=existing["id"] if existing else new_id(),
                user_id=user_id,
                scope=scope,
                margin_percent=float(margin_percent),
            )
        except ValueError as e:
            raise ValidationError(str(e), field_name="margin_rule")

        if existing:
            self.repo.db.update(USER_MARGIN_RULES, rule.id, {"margin_percent": rule.margin_percent})
        else:
            self.repo.db.insert(USER_MARGIN_RULES, rule.to_row())
        logger.info(f"Margin rule set for user {user_id}: {scope}={rule.margin_percent}%")
        return rule

    def resolve_margin(self, user_id: str, cost_code: str | None) -> float:
        """Trade rule, then the "all" rule, then the configured default."""
        rules = {rule.scope: rule.margin_percent for rule in self.list_margin_rules(user_id)}
        if cost_code and trade_scope(cost_code) in rules:
            return rules[trade_scope(cost_code)]
        if MARGIN_SCOPE_ALL in rules:
            return rules[MARGIN_SCOPE_ALL]
        return self.config.default_margin_percent

    # Waterfall

    def _priced(
        self,
        user_id: str,
        item: LineItem,
        unit_cost: float,
        source: PricingSource,
        **extra: Any
    ) -> PricingResult:
        margin = self.resolve_margin(user_id, item.cost_code)
        direct = round2(unit_cost * (item.quantity or 0))
        return PricingResult(
            pricing_source=source,
            direct_cost=direct,
            client_price=round2(direct * (1 + margin / 100)),
            margin_percent=margin,
            unit_cost=unit_cost,
            **extra,
        )

    def _from_user_library(self, user_id: str, item: LineItem, region: str) -> PricingResult | None:
        try:
            task_key = make_task_key(item.cost_code, item.description, item.unit)
        except ValueError:
            return None

        row = self.repo.db.find_one(USER_COST_LIBRARY, {"user_id": user_id, "task_key": task_key, "region": region})
        if row:
            entry = UserCostEntry.from_row(row)
            return self._priced(user_id, item, entry.unit_cost, PricingSource.USER_LIBRARY, match_score=1.0)

        filters: dict[str, Any] = {"user_id": user_id, "region": region}
        if item.cost_code:
            filters["cost_code"] = item.cost_code
        entries = {r["id"]: UserCostEntry.from_row(r) for r in self.repo.db.find(USER_COST_LIBRARY, filters)}
        match = best_match(
            item.description,
            {entry_id: entry.description or "" for entry_id, entry in entries.items()},
            self.config.fuzzy_match_threshold,
        )
        if match is None:
            return None
        entry_id, score = match
        logger.debug(f"User library fuzzy match for '{item.description}': {entry_id} ({score:.2f})")
        return self._priced(
            user_id, item, entries[entry_id].unit_cost, PricingSource.USER_LIBRARY, match_score=round(score, 3)
        )

    def _from_task_library(self, user_id: str, item: LineItem, region: str) -> PricingResult | None:
        filters: dict[str, Any] = {"region": region}
        if item.cost_code:
            filters["cost_code"] = item.cost_code
        entries = {r["id"]: TaskLibraryEntry.from_row(r) for r in self.repo.db.find(TASK_LIBRARY, filters)}
        entries = {k: v for k, v in entries.items() if v.unit_cost_mid is not None}

        match = best_match(
            item.description,
            {entry_id: entry.description for entry_id, entry in entries.items()},
            self.config.fuzzy_match_threshold,
        )
        if match is None:
            return None
        entry_id, score = match
        return self._priced(
            user_id,
            item,
            entries[entry_id].unit_cost_mid,
            PricingSource.TASK_LIBRARY,
            task_library_id=entry_id,
            match_score=round(score, 3),
        )

    def price_line_item(self, user_id: str, item: LineItem, region: str | None = None) -> PricingResult:
        """
        Run the pricing waterfall for one item.

        Order: allowance pass-through, manual unit cost, user cost library,
        task library, otherwise unpriced (source "ai").
        """
        region = region or self.region_for(user_id)

        if item.allowance:
            direct = item.direct_cost if item.direct_cost is not None else item.allowance_amount
            return PricingResult(
                pricing_source=item.pricing_source or PricingSource.MANUAL,
                direct_cost=direct,
                client_price=direct,
                margin_percent=0.0,
                unit_cost=item.unit_cost,
            )

        if item.unit_cost and item.unit_cost > 0:
            return self._priced(user_id, item, item.unit_cost, PricingSource.MANUAL)

        if self.config.use_user_library:
            result = self._from_user_library(user_id, item, region)
            if result:
                return result

        if self.config.use_task_library:
            result = self._from_task_library(user_id, item, region)
            if result:
                return result

        return PricingResult(
            pricing_source=PricingSource.AI,
            direct_cost=None,
            client_price=None,
            margin_percent=self.resolve_margin(user_id, item.cost_code),
        )

    def apply_pricing(self, user_id: str, estimate_id: str) -> dict[str, Any]:
        """
        Price every item of a draft estimate that was not priced manually.

        Returns:
            {"priced": n, "unpriced": n, "grand_total": total}
        """
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        ensure_editable(estimate)
        region = self.region_for(user_id)

        priced = unpriced = 0
        for item in self.repo.estimate_items(estimate_id):
            if item.pricing_source is PricingSource.MANUAL:
                continue
            result = self.price_line_item(user_id, item, region)
            if not result.is_priced:
                unpriced += 1
                continue
            self.repo.save_line_item(replace(
                item,
                unit_cost=result.unit_cost if result.unit_cost is not None else item.unit_cost,
                direct_cost=result.direct_cost,
                client_price=result.client_price,
                margin_percent=result.margin_percent,
                pricing_source=result.pricing_source,
                task_library_id=result.task_library_id or item.task_library_id,
                updated_at=datetime.now(),
            ))
            priced += 1

        grand_total = self.repo.refresh_estimate_total(estimate_id)
        logger.info(f"Applied pricing to estimate {estimate_id}: priced={priced} unpriced={unpriced}")
        return {"priced": priced, "unpriced": unpriced, "grand_total": grand_total}

    # Cost library

    def _learn(self, user_id: str, items: list[LineItem], region: str) -> dict[str, int]:
        counts = {"total_items": len(items), "learned": 0, "updated": 0, "skipped": 0}

        for item in items:
            unit_cost = positive_unit_cost(item)
            if item.allowance or not item.cost_code or unit_cost is None:
                counts["skipped"] += 1
                continue
            try:
                task_key = make_task_key(item.cost_code, item.description, item.unit)
            except ValueError:
                counts["skipped"] += 1
                continue

            row = self.repo.db.find_one(USER_COST_LIBRARY, {"user_id": user_id, "task_key": task_key, "region": region})
            if row:
                weighted, times_used = UserCostEntry.from_row(row).with_observation(unit_cost)
                self.repo.db.update(USER_COST_LIBRARY, row["id"], {
                    "unit_cost": weighted,
                    "times_used": times_used,
                    "last_used_at": datetime.now(),
                })
                counts["updated"] += 1
            else:
                entry = UserCostEntry(
                    id=new_id(),
                    user_id=user_id,
                    task_key=task_key,
                    unit_cost=unit_cost,
                    cost_code=item.cost_code,
                    description=item.description.strip(),
                    unit=item.unit,
                    region=region,
                )
                self.repo.db.insert(USER_COST_LIBRARY, entry.to_row())
                counts["learned"] += 1
        return counts

    def remember_unit_price(
        self,
        user_id: str,
        description: str,
        unit_cost: float,
        cost_code: str | None = None,
        unit: str | None = None,
        region: str | None = None
    ) -> UserCostEntry:
        """
        Store a user-chosen default price, replacing any learned average.

        Raises:
            ValidationError: Empty description or negative price
        """
        if unit_cost < 0:
            raise ValidationError("Unit price cannot be negative", field_name="unit_cost")
        try:
            task_key = make_task_key(cost_code, description, unit)
        except ValueError as e:
            raise ValidationError(str(e), field_name="description")
        region = region or self.region_for(user_id)

        row = self.repo.db.find_one(USER_COST_LIBRARY, {"user_id": user_id, "task_key": task_key, "region": region})
        entry = UserCostEntry(
            id=row["id"] if row else new_id(),
            user_id=user_id,
            task_key=task_key,
            unit_cost=round2(unit_cost),
            cost_code=cost_code,
            description=description.strip(),
            unit=unit,
            region=region,
            source="manual_override",
        )
        if row:
            self.repo.db.update(USER_COST_LIBRARY, entry.id, {
                "unit_cost": entry.unit_cost,
                "source": entry.source,
                "last_used_at": datetime.now(),
            })
        else:
            self.repo.db.insert(USER_COST_LIBRARY, entry.to_row())
        logger.info(f"Default price for '{task_key}' set to {entry.unit_cost} (user {user_id}, {region})")
        return entry

    def learn_from_estimate(self, user_id: str, estimate_id: str, region: str | None = None) -> dict[str, int]:
        """
        Feed an estimate's unit costs into the user's cost library.

        Returns:
            {"total_items", "learned", "updated", "skipped"}
        """
        self.repo.owned_estimate(estimate_id, user_id)
        counts = self._learn(user_id, self.repo.estimate_items(estimate_id), region or self.region_for(user_id))
        logger.info(f"Learned from estimate {estimate_id}: {counts}")
        return counts

    def record_pricing_commit(self, user_id: str, estimate: Estimate, stage: str) -> int:
        """
        Snapshot priced items into pricing_events and learn from them.

        Returns:
            Number of events written
        """
        items = self.repo.estimate_items(estimate.id)
        region = self.region_for(user_id)

        written = 0
        for item in items:
            if not item.is_priced:
                continue
            try:
                task_key = make_task_key(item.cost_code, item.description, item.unit)
            except ValueError:
                task_key = None
            self.repo.db.insert(PRICING_EVENTS, {
                "id": new_id(),
                "user_id": user_id,
                "estimate_id": estimate.id,
                "line_item_id": item.id,
                "stage": stage,
                "task_key": task_key,
                "pricing_source": item.pricing_source.value if item.pricing_source else None,
                "unit_cost": positive_unit_cost(item),
                "quantity": item.quantity,
                "direct_cost": item.direct_cost,
                "client_price": item.client_price,
                "created_at": datetime.now(),
            })
            written += 1

        counts = self._learn(user_id, items, region)
        logger.info(f"Pricing commit for estimate {estimate.id} ({stage}): {written} events, library={counts}")
        return written
