"""
Unit tests for job actuals, close-out and the estimation accuracy dashboard.
"""

import pytest

from conftest import OTHER_USER_ID, USER_ID
from estimatix.domain.exceptions import BusinessRuleError, ValidationError
from estimatix.domain.models.estimate import EstimateStatus
from estimatix.domain.models.project import ProjectStatus
from estimatix.application.actuals import GATE_REASONS


def signed_project(services, title: str = "Deck"):
    """Project whose estimate (client total 1300) is contract_signed."""
    project = services.projects.create_project(USER_ID, {"title": title})
    estimate = services.projects.create_estimate(USER_ID, project.id)
    item = services.line_items.add_line_item(USER_ID, estimate.id, {
        "description": "Build deck", "quantity": 1, "unit_cost": 1000,
    }).item
    services.lifecycle.finalize_bid(USER_ID, estimate.id)
    services.lifecycle.mark_contract_signed(USER_ID, estimate.id)
    return project, estimate, item


class TestActualsGate:
    def test_no_estimate(self, services, project):
        gate = services.actuals.can_enter_actuals(USER_ID, project.id)
        assert not gate.allowed
        assert "No estimate found" in gate.reason

    def test_draft(self, services, project, estimate):
        gate = services.actuals.can_enter_actuals(USER_ID, project.id)
        assert not gate.allowed
        assert gate.reason == GATE_REASONS[EstimateStatus.DRAFT]

    def test_signed(self, services):
        project, estimate, _ = signed_project(services)

        gate = services.actuals.can_enter_actuals(USER_ID, project.id)

        assert gate.allowed
        assert gate.estimate_id == estimate.id
        assert gate.estimated_total == 1300.0


class TestCloseOut:
    def test_close_out(self, services):
        project, estimate, item = signed_project(services)

        result = services.actuals.close_out_project(USER_ID, project.id, {
            "total_actual_cost": 1430,
            "actual_labor_hours": 12,
            "line_items": [{"line_item_id": item.id, "actual_unit_cost": 1100}],
        })

        assert result.total_estimated_cost == 1300.0
        assert result.variance_amount == 130.0
        assert result.variance_percent == 10.0
        assert result.closed_at is not None
        assert services.lifecycle.get_estimate_status(USER_ID, estimate.id) is EstimateStatus.COMPLETED
        assert services.repo.get_project(project.id).status is ProjectStatus.COMPLETED

        line_actuals = services.actuals.get_line_item_actuals(USER_ID, project.id)
        assert len(line_actuals) == 1
        assert line_actuals[0].variance_percent == 10.0

    def test_read_only_after_close_out(self, services):
        project, _, _ = signed_project(services)
        services.actuals.close_out_project(USER_ID, project.id, {"total_actual_cost": 1300})

        with pytest.raises(BusinessRuleError, match="Actuals are read-only"):
            services.actuals.update_project_actuals(USER_ID, project.id, {"total_actual_cost": 1400})

    def test_not_signed(self, services, project, estimate):
        with pytest.raises(BusinessRuleError, match="still in draft"):
            services.actuals.close_out_project(USER_ID, project.id, {"total_actual_cost": 100})

    def test_total_required(self, services):
        project, _, _ = signed_project(services)
        with pytest.raises(ValidationError):
            services.actuals.update_project_actuals(USER_ID, project.id, {"notes": "partial"})

    def test_update_before_close_out(self, services):
        project, estimate, _ = signed_project(services)

        services.actuals.update_project_actuals(USER_ID, project.id, {"total_actual_cost": 1000})
        updated = services.actuals.update_project_actuals(USER_ID, project.id, {"total_actual_cost": 1170})

        assert updated.variance_percent == -10.0
        assert updated.closed_at is None
        assert services.lifecycle.get_estimate_status(USER_ID, estimate.id) is EstimateStatus.CONTRACT_SIGNED


class TestDashboard:
    def test_accuracy(self, services):
        over, _, _ = signed_project(services, "Deck")
        under, _, _ = signed_project(services, "Fence")
        services.actuals.close_out_project(USER_ID, over.id, {"total_actual_cost": 1430})
        services.actuals.close_out_project(USER_ID, under.id, {"total_actual_cost": 1170})

        accuracy = services.dashboard.get_estimation_accuracy(USER_ID)

        assert {p.title for p in accuracy.projects} == {"Deck", "Fence"}
        assert accuracy.average_absolute_variance == 10.0

    def test_other_user_sees_nothing(self, services):
        project, _, _ = signed_project(services)
        services.actuals.close_out_project(USER_ID, project.id, {"total_actual_cost": 1300})

        accuracy = services.dashboard.get_estimation_accuracy(OTHER_USER_ID)

        assert accuracy.projects == []
        assert accuracy.average_absolute_variance is None
