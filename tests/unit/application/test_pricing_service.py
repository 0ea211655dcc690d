"""
Unit tests for PricingService: margin rules, the waterfall and cost library learning.
"""

import pytest

from conftest import USER_ID
from estimatix.domain.exceptions import ValidationError
from estimatix.domain.models.config import PricingConfig
from estimatix.domain.models.line_item import LineItem, PricingSource
from estimatix.domain.models.pricing import TaskLibraryEntry, UserCostEntry, make_task_key
from estimatix.application.pricing import PricingService, best_match, positive_unit_cost
from estimatix.application.repository import TASK_LIBRARY, USER_COST_LIBRARY


@pytest.fixture
def library_pricing(services):
    """PricingService with both cost libraries switched on."""
    return PricingService(services.repo, PricingConfig(use_user_library=True, use_task_library=True))


def make_item(**kwargs) -> LineItem:
    return LineItem(id="item-1", estimate_id="est-1", project_id="proj-1", **kwargs)


class TestHelpers:
    def test_best_match(self):
        choices = {"a": "Install vinyl windows", "b": "Pour concrete footing"}
        key, score = best_match("Install vinyl window", choices, 0.6)
        assert key == "a"
        assert score > 0.8

    def test_best_match_below_threshold(self):
        assert best_match("Replace roof", {"a": "Pour concrete footing"}, 0.6) is None
        assert best_match("", {"a": "x"}, 0.6) is None

    def test_positive_unit_cost(self):
        assert positive_unit_cost(make_item(unit_cost=25.0)) == 25.0
        assert positive_unit_cost(make_item(direct_cost=100.0, quantity=4.0)) == 25.0
        assert positive_unit_cost(make_item(direct_cost=100.0)) is None
        assert positive_unit_cost(make_item(unit_cost=0.0)) is None


class TestMarginRules:
    def test_resolution_order(self, services):
        assert services.pricing.resolve_margin(USER_ID, "520") == 30.0

        services.pricing.set_margin_rule(USER_ID, "all", 20)
        services.pricing.set_margin_rule(USER_ID, "trade:520", 15)

        assert services.pricing.resolve_margin(USER_ID, "520") == 15.0
        assert services.pricing.resolve_margin(USER_ID, "402") == 20.0
        assert services.pricing.resolve_margin(USER_ID, None) == 20.0

    def test_upsert_by_scope(self, services):
        first = services.pricing.set_margin_rule(USER_ID, "all", 20)
        second = services.pricing.set_margin_rule(USER_ID, "all", 35)

        rules = services.pricing.list_margin_rules(USER_ID)
        assert len(rules) == 1
        assert second.id == first.id
        assert rules[0].margin_percent == 35.0

    def test_invalid_scope(self, services):
        with pytest.raises(ValidationError):
            services.pricing.set_margin_rule(USER_ID, "windows", 20)


class TestWaterfall:
    def test_allowance_passes_through(self, services):
        result = services.pricing.price_line_item(USER_ID, make_item(
            description="ALLOWANCE: lighting", allowance_amount=1200.0
        ))
        assert result.direct_cost == 1200.0
        assert result.client_price == 1200.0
        assert result.margin_percent == 0.0

    def test_manual_unit_cost(self, services):
        services.pricing.set_margin_rule(USER_ID, "trade:520", 10)
        result = services.pricing.price_line_item(USER_ID, make_item(
            description="Replace window", cost_code="520", quantity=2.0, unit_cost=500.0
        ))
        assert result.pricing_source is PricingSource.MANUAL
        assert result.direct_cost == 1000.0
        assert result.client_price == 1100.0

    def test_user_library_exact_key(self, services, library_pricing):
        entry = UserCostEntry(
            id="c1", user_id=USER_ID, task_key=make_task_key("520", "Replace window", "ea"),
            unit_cost=400.0, cost_code="520", description="Replace window", unit="ea", region="national",
        )
        services.db.insert(USER_COST_LIBRARY, entry.to_row())

        result = library_pricing.price_line_item(USER_ID, make_item(
            description="replace  window", cost_code="520", unit="EA", quantity=3.0
        ))

        assert result.pricing_source is PricingSource.USER_LIBRARY
        assert result.direct_cost == 1200.0
        assert result.client_price == 1560.0
        assert result.match_score == 1.0

    def test_task_library_fuzzy_match(self, services, library_pricing):
        entry = TaskLibraryEntry(id="t1", description="Install vinyl windows", cost_code="520",
                                 region="national", unit_cost_mid=450.0)
        services.db.insert(TASK_LIBRARY, entry.to_row())

        result = library_pricing.price_line_item(USER_ID, make_item(
            description="Install vinyl window", cost_code="520", quantity=2.0
        ))

        assert result.pricing_source is PricingSource.TASK_LIBRARY
        assert result.task_library_id == "t1"
        assert result.direct_cost == 900.0
        assert result.client_price == 1170.0

    def test_libraries_disabled_by_default(self, services):
        entry = TaskLibraryEntry(id="t1", description="Install vinyl windows", cost_code="520",
                                 region="national", unit_cost_mid=450.0)
        services.db.insert(TASK_LIBRARY, entry.to_row())

        result = services.pricing.price_line_item(USER_ID, make_item(description="Install vinyl windows",
                                                                     cost_code="520", quantity=1.0))
        assert result.pricing_source is PricingSource.AI
        assert not result.is_priced

    def test_no_match_is_unpriced(self, library_pricing):
        result = library_pricing.price_line_item(USER_ID, make_item(description="Pour concrete footing",
                                                                    quantity=1.0))
        assert result.pricing_source is PricingSource.AI
        assert result.direct_cost is None
        assert result.margin_percent == 30.0


class TestApplyPricing:
    def test_manual_items_skipped(self, services, estimate, add_item):
        add_item(description="Owner quote", quantity=1, unit_cost=999, pricing_source="manual")
        add_item(description="Replace window", cost_code="520", quantity=2, unit_cost=500)
        add_item(description="Mystery work")

        result = services.pricing.apply_pricing(USER_ID, estimate.id)

        assert result["priced"] == 1
        assert result["unpriced"] == 1
        assert result["grand_total"] == round(999 * 1.3 + 1300, 2)


class TestLearning:
    def test_learn_then_update(self, services, estimate, add_item):
        window = add_item(description="Replace window", cost_code="520", unit="ea", quantity=2, unit_cost=500)
        add_item(description="ALLOWANCE: tile", cost_code="728", direct_cost=800)
        add_item(description="Haul debris", quantity=1, unit_cost=300)

        first = services.pricing.learn_from_estimate(USER_ID, estimate.id)
        assert first == {"total_items": 3, "learned": 1, "updated": 0, "skipped": 2}

        services.line_items.update_line_item(USER_ID, window.id, {"unit_cost": 700})
        second = services.pricing.learn_from_estimate(USER_ID, estimate.id)
        assert second["updated"] == 1

        rows = services.db.find(USER_COST_LIBRARY, {"user_id": USER_ID})
        assert len(rows) == 1
        assert rows[0]["unit_cost"] == 600.0
        assert rows[0]["times_used"] == 2
        assert rows[0]["region"] == "national"

    def test_profile_region_used(self, services, estimate, add_item):
        services.projects.upsert_profile(USER_ID, {"region": "pacific-nw"})
        add_item(description="Replace window", cost_code="520", quantity=1, unit_cost=500)

        services.pricing.learn_from_estimate(USER_ID, estimate.id)

        assert services.db.find(USER_COST_LIBRARY, {"region": "pacific-nw"})


class TestRememberUnitPrice:
    def test_overrides_learned_average(self, services, library_pricing, estimate, add_item):
        add_item(description="Replace window", cost_code="520", unit="ea", quantity=1, unit_cost=500)
        services.pricing.learn_from_estimate(USER_ID, estimate.id)

        entry = services.pricing.remember_unit_price(USER_ID, "Replace window", 650, cost_code="520", unit="ea")

        [row] = services.db.find(USER_COST_LIBRARY, {"user_id": USER_ID})
        assert row["id"] == entry.id
        assert row["unit_cost"] == 650.0
        assert row["source"] == "manual_override"

        priced = library_pricing.price_line_item(
            USER_ID, make_item(description="Replace window", cost_code="520", unit="ea", quantity=2)
        )
        assert priced.pricing_source is PricingSource.USER_LIBRARY
        assert priced.direct_cost == 1300.0

    def test_new_entry(self, services):
        entry = services.pricing.remember_unit_price(USER_ID, "  Paint walls ", 2.456)

        assert entry.unit_cost == 2.46
        assert entry.description == "Paint walls"
        assert entry.task_key == make_task_key(None, "Paint walls")
        assert services.db.find(USER_COST_LIBRARY, {"task_key": entry.task_key})

    def test_invalid_input(self, services):
        with pytest.raises(ValidationError):
            services.pricing.remember_unit_price(USER_ID, "Paint walls", -1)
        with pytest.raises(ValidationError):
            services.pricing.remember_unit_price(USER_ID, "   ", 5)
