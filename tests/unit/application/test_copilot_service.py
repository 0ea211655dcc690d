"""
Unit tests for CopilotService: action execution, history and failure handling.
"""

import json
from unittest.mock import Mock

import pytest

from conftest import OTHER_USER_ID, USER_ID
from estimatix.domain.exceptions import (
    AIGenerationError,
    AIResponseParsingError,
    DatabaseError,
    PermissionDeniedError,
    ValidationError,
)
from estimatix.domain.models.chat import ChatRole
from estimatix.domain.models.config import OllamaConfig
from estimatix.domain.models.estimate import EstimateStatus
from estimatix.domain.models.line_item import PricingSource
from estimatix.domain.models.room import RoomSource
from estimatix.application.copilot import CopilotService, build_prompt
from estimatix.application.repository import CHAT_MESSAGES, ESTIMATES, USER_COST_LIBRARY


@pytest.fixture
def ai_client():
    client = Mock()
    client.generate_text.return_value = json.dumps({"response_text": "Noted.", "actions": []})
    return client


@pytest.fixture
def copilot(services, config, ai_client):
    """CopilotService with the model switched on."""
    enabled = config.model_copy(update={"ollama": OllamaConfig(enabled=True)})
    return CopilotService(services.repo, enabled, services.line_items, services.rooms, services.pricing, ai_client)


@pytest.fixture
def answer(ai_client):
    """Set the model's next answer to the given actions."""
    def _answer(*actions, text="Done."):
        ai_client.generate_text.return_value = json.dumps({
            "response_text": text,
            "actions": [{"type": t, "data": d} for t, d in actions],
        })
    return _answer


def project_rooms(services, project):
    return {r.name: r for r in services.repo.project_rooms(project.id).values()}


class TestChat:
    def test_info_only(self, copilot, project, estimate, ai_client):
        reply = copilot.chat(USER_ID, project.id, "  What is in the kitchen?  ")

        assert reply.response_text == "Noted."
        assert reply.estimate_id == estimate.id
        assert reply.results == []
        assert ai_client.generate_text.call_args.kwargs["json_mode"] is True
        assert ai_client.generate_text.call_args.kwargs["prompt"].endswith("USER: What is in the kitchen?")

    def test_creates_estimate_when_missing(self, copilot, project, services):
        reply = copilot.chat(USER_ID, project.id, "Start an estimate")

        assert services.repo.latest_estimate(project.id).id == reply.estimate_id

    def test_ai_disabled(self, services, project, estimate):
        with pytest.raises(AIGenerationError):
            services.copilot.chat(USER_ID, project.id, "Add a sink")

    def test_empty_message(self, copilot, project):
        with pytest.raises(ValidationError):
            copilot.chat(USER_ID, project.id, "   ")

    def test_other_user(self, copilot, project):
        with pytest.raises(PermissionDeniedError):
            copilot.chat(OTHER_USER_ID, project.id, "Add a sink")

    def test_unusable_answer_saves_nothing(self, copilot, project, estimate, ai_client, services):
        ai_client.generate_text.return_value = "Sure, I added it!"

        with pytest.raises(AIResponseParsingError):
            copilot.chat(USER_ID, project.id, "Add a sink")

        assert services.db.find(CHAT_MESSAGES) == []

    def test_unknown_action_does_not_stop_turn(self, copilot, project, estimate, answer):
        answer(("launch_rocket", {}), ("add_room", {"name": "Office"}))

        reply = copilot.chat(USER_ID, project.id, "Add an office")

        assert reply.results[0].success is False
        assert reply.results[0].error == "Unknown action type: launch_rocket"
        assert reply.results[1].success is True
        assert reply.to_dict()["executed_actions"][0]["type"] == "launch_rocket"

    def test_locked_estimate_recorded_as_failure(self, copilot, project, estimate, answer, add_item, services):
        add_item(description="Demo", quantity=1, unit_cost=1000)
        services.db.update(ESTIMATES, estimate.id, {"status": EstimateStatus.BID_FINAL.value, "total": 1300.0})
        answer(("add_line_item", {"description": "Paint", "quantity": 1}))

        reply = copilot.chat(USER_ID, project.id, "Add paint")

        assert reply.results[0].success is False
        assert "locked" in reply.results[0].error
        assert reply.grand_total == 1300.0
        assert len(services.repo.estimate_items(estimate.id)) == 1


class TestLineItemActions:
    def test_add_priced_item_in_new_room(self, copilot, project, estimate, answer, services):
        answer(("add_line_item", {"description": "Tile backsplash", "category": "Tile", "room_name": "Kitchen",
                                  "quantity": 30, "unit": "sqft", "unit_cost": 20}))

        reply = copilot.chat(USER_ID, project.id, "Add 30 sqft of backsplash at $20")

        [item] = services.repo.estimate_items(estimate.id)
        kitchen = project_rooms(services, project)["Kitchen"]
        assert kitchen.source is RoomSource.AI
        assert item.room_id == kitchen.id
        assert item.cost_code == "728"
        assert item.pricing_source is PricingSource.MANUAL
        assert (item.direct_cost, item.client_price) == (600.0, 780.0)
        assert reply.grand_total == 780.0
        assert reply.results[0].id == item.id
        assert reply.results[0].message == "Added Tile backsplash to Kitchen"

    def test_add_matches_existing_room(self, copilot, project, estimate, answer, services):
        bath = services.rooms.upsert_room(USER_ID, project.id, {"name": "Master Bathroom"})
        answer(("add_line_item", {"description": "Vanity", "room_name": "master bathroom"}))

        copilot.chat(USER_ID, project.id, "Add a vanity to the master bath")

        [item] = services.repo.estimate_items(estimate.id)
        assert item.room_id == bath.id
        assert len(services.repo.project_rooms(project.id)) == 1

    def test_general_means_no_room(self, copilot, project, estimate, answer, services):
        answer(("add_line_item", {"description": "Dumpster", "room_name": "General"}))

        copilot.chat(USER_ID, project.id, "Add a dumpster")

        [item] = services.repo.estimate_items(estimate.id)
        assert item.room_id is None
        assert item.direct_cost is None
        assert services.repo.project_rooms(project.id) == {}

    def test_add_allowance(self, copilot, project, estimate, answer, services):
        answer(("add_line_item", {"description": "ALLOWANCE: Tile selection", "quantity": 1, "unit_cost": 2000}))

        reply = copilot.chat(USER_ID, project.id, "Tile allowance of 2000")

        [item] = services.repo.estimate_items(estimate.id)
        assert item.is_allowance is True
        assert (item.direct_cost, item.client_price, item.margin_percent) == (2000.0, 2000.0, 0.0)
        assert reply.grand_total == 2000.0

    def test_add_without_description(self, copilot, project, estimate, answer):
        answer(("add_line_item", {"quantity": 3}))

        reply = copilot.chat(USER_ID, project.id, "Add three")

        assert reply.results[0].success is False
        assert reply.results[0].error == "Missing description"

    def test_move_item_to_room(self, copilot, project, estimate, answer, add_item, services):
        item = add_item(description="Recessed light", quantity=6, unit_cost=150)
        answer(("update_line_item", {"line_item_id": item.id, "room_name": "Kitchen"}))

        reply = copilot.chat(USER_ID, project.id, "Those lights go in the kitchen")

        kitchen = project_rooms(services, project)["Kitchen"]
        assert services.repo.get_line_item(item.id).room_id == kitchen.id
        assert reply.results[0].message == "Moved item to Kitchen."

    def test_update_quantity(self, copilot, project, estimate, answer, add_item, services):
        item = add_item(description="Recessed light", quantity=6, unit_cost=150)
        answer(("update_line_item", {"line_item_id": item.id, "quantity": 8}))

        reply = copilot.chat(USER_ID, project.id, "Make it eight lights")

        assert services.repo.get_line_item(item.id).direct_cost == 1200.0
        assert reply.results[0].message == "Item updated."
        assert reply.grand_total == 1560.0

    def test_update_item_of_other_estimate(self, copilot, project, estimate, answer, add_item, services):
        item = add_item(description="Recessed light", quantity=6, unit_cost=150)
        services.projects.create_estimate(USER_ID, project.id)
        answer(("update_line_item", {"line_item_id": item.id, "quantity": 8}))

        reply = copilot.chat(USER_ID, project.id, "Make it eight lights")

        assert reply.results[0].error == "Line item not found"
        assert services.repo.get_line_item(item.id).quantity == 6

    def test_delete_item(self, copilot, project, estimate, answer, add_item, services):
        keep = add_item(description="Paint", quantity=1, unit_cost=100)
        drop = add_item(description="Demo", quantity=1, unit_cost=500)
        answer(("delete_line_item", {"line_item_id": drop.id}))

        reply = copilot.chat(USER_ID, project.id, "Remove the demo")

        assert [i.id for i in services.repo.estimate_items(estimate.id)] == [keep.id]
        assert reply.grand_total == 130.0


class TestRoomActions:
    def test_add_room(self, copilot, project, estimate, answer, services):
        answer(("add_room", {"name": "Mudroom", "length_ft": 8, "width_ft": 6, "level": "Level 1"}))

        copilot.chat(USER_ID, project.id, "Add a mudroom")

        mudroom = project_rooms(services, project)["Mudroom"]
        assert mudroom.source is RoomSource.AI
        assert mudroom.floor_area_sqft == 48.0

    def test_add_existing_room(self, copilot, project, estimate, answer, services):
        office = services.rooms.upsert_room(USER_ID, project.id, {"name": "Office"})
        answer(("add_room", {"name": "office"}))

        reply = copilot.chat(USER_ID, project.id, "Add an office")

        assert reply.results[0].id == office.id
        assert reply.results[0].message == "Room already exists"
        assert len(services.repo.project_rooms(project.id)) == 1

    def test_hide_room(self, copilot, project, estimate, answer, add_item, services):
        kitchen = services.rooms.upsert_room(USER_ID, project.id, {"name": "Kitchen"})
        item = add_item(description="Cabinets", quantity=1, unit_cost=8000, room_id=kitchen.id)
        answer(("hide_room", {"room_name": "kitchen"}))

        reply = copilot.chat(USER_ID, project.id, "Take the kitchen out")

        assert services.repo.get_room(kitchen.id).is_in_scope is False
        assert services.repo.get_line_item(item.id).is_active is False
        assert reply.grand_total == 0.0

    def test_hide_unknown_room(self, copilot, project, estimate, answer):
        answer(("hide_room", {"room_name": "Sauna"}))

        reply = copilot.chat(USER_ID, project.id, "Drop the sauna")

        assert reply.results[0].success is False
        assert "not found" in reply.results[0].error


class TestPricingActions:
    def test_set_margin_rule(self, copilot, project, estimate, answer, services):
        answer(("set_margin_rule", {"scope": "trade:405", "margin_percent": "35"}))

        copilot.chat(USER_ID, project.id, "Electrical margin 35%")

        [rule] = services.pricing.list_margin_rules(USER_ID)
        assert (rule.scope, rule.margin_percent) == ("trade:405", 35.0)

    def test_set_margin_rule_missing_values(self, copilot, project, estimate, answer):
        answer(("set_margin_rule", {"scope": "all"}))

        reply = copilot.chat(USER_ID, project.id, "Change my margin")

        assert reply.results[0].success is False

    def test_task_price_this_estimate(self, copilot, project, estimate, answer, add_item, services):
        paint = add_item(description="Paint walls", cost_code="723", quantity=400, unit_cost=2)
        other = add_item(description="Demo", quantity=1, unit_cost=500)
        answer(("update_task_price", {"task_name_or_code": "paint walls", "new_unit_price": 3,
                                      "scope": "this_estimate"}))

        reply = copilot.chat(USER_ID, project.id, "Paint is $3 a foot")

        updated = services.repo.get_line_item(paint.id)
        assert (updated.unit_cost, updated.direct_cost, updated.client_price) == (3.0, 1200.0, 1560.0)
        assert updated.pricing_source is PricingSource.MANUAL
        assert services.repo.get_line_item(other.id).unit_cost == 500
        assert reply.results[0].to_dict()["updated_count"] == 1

    def test_task_price_by_cost_code(self, copilot, project, estimate, answer, add_item, services):
        paint = add_item(description="Prime and paint", cost_code="723", quantity=100, unit_cost=2)
        answer(("update_task_price", {"task_name_or_code": "723", "new_unit_price": 2.5,
                                      "scope": "this_estimate"}))

        copilot.chat(USER_ID, project.id, "All painting at 2.50")

        assert services.repo.get_line_item(paint.id).direct_cost == 250.0

    def test_task_price_future_default(self, copilot, project, estimate, answer, add_item, services):
        add_item(description="Paint walls", cost_code="723", unit="sqft", quantity=400, unit_cost=2)
        answer(("update_task_price", {"task_name_or_code": "Paint walls", "new_unit_price": 3,
                                      "scope": "future_default"}))

        reply = copilot.chat(USER_ID, project.id, "Always use $3 for paint")

        [entry] = services.db.find(USER_COST_LIBRARY, {"user_id": USER_ID})
        assert entry["unit_cost"] == 3.0
        assert entry["source"] == "manual_override"
        assert entry["cost_code"] == "723"
        assert reply.results[0].to_dict()["saved_defaults"] == 1

    def test_future_default_unknown_code(self, copilot, project, estimate, answer, services):
        answer(("update_task_price", {"task_name_or_code": "405", "new_unit_price": 90,
                                      "scope": "future_default"}))

        reply = copilot.chat(USER_ID, project.id, "Electrical is $90")

        assert reply.results[0].success is False
        assert services.db.find(USER_COST_LIBRARY) == []

    def test_invalid_scope(self, copilot, project, estimate, answer, add_item):
        add_item(description="Paint walls", quantity=1, unit_cost=2)
        answer(("update_task_price", {"task_name_or_code": "paint", "new_unit_price": 3, "scope": "forever"}))

        reply = copilot.chat(USER_ID, project.id, "Paint is $3 forever")

        assert "Invalid scope" in reply.results[0].error

    def test_review_pricing(self, copilot, project, estimate, answer, add_item):
        thin = add_item(description="Demo", quantity=1, unit_cost=100, margin_percent=10)
        guessed = add_item(description="Drywall", direct_cost=500, pricing_source="ai")
        add_item(description="ALLOWANCE: Fixtures", quantity=1, unit_cost=900)
        answer(("review_pricing", {}))

        reply = copilot.chat(USER_ID, project.id, "Check my pricing")

        result = reply.results[0].to_dict()
        assert result["total_items"] == 3
        assert result["items_with_issues"] == 2
        flagged = {issue["id"]: issue["issue"] for issue in result["issues"]}
        assert flagged[thin.id].startswith("Low margin: 10.0%")
        assert flagged[guessed.id].startswith("AI-generated pricing")


class TestHistory:
    def test_turn_saved(self, copilot, project, estimate, answer):
        answer(("add_room", {"name": "Office"}), text="Added the office.")

        copilot.chat(USER_ID, project.id, "Add an office")

        messages = copilot.list_chat_messages(USER_ID, project.id)
        assert [m.role for m in messages] == [ChatRole.USER, ChatRole.ASSISTANT]
        assert messages[0].content == "Add an office"
        assert messages[1].content == "Added the office."
        assert messages[1].estimate_id == estimate.id
        assert messages[1].related_action["actions"][0]["type"] == "add_room"
        assert messages[1].related_action["actions"][0]["success"] is True

    def test_stored_history_in_prompt(self, copilot, project, estimate, ai_client):
        copilot.chat(USER_ID, project.id, "First question")
        copilot.chat(USER_ID, project.id, "Second question")

        prompt = ai_client.generate_text.call_args.kwargs["prompt"]
        assert "USER: First question\nASSISTANT: Noted." in prompt

    def test_explicit_history_used(self, copilot, project, estimate, ai_client):
        copilot.chat(USER_ID, project.id, "Stored turn")

        copilot.chat(USER_ID, project.id, "Next", history=[{"role": "user", "content": "Client turn"}])

        prompt = ai_client.generate_text.call_args.kwargs["prompt"]
        assert "USER: Client turn" in prompt
        assert "Stored turn" not in prompt

    def test_save_failure_does_not_fail_turn(self, copilot, project, estimate, services, monkeypatch):
        insert = services.db.insert

        def failing_insert(table, values):
            if table == CHAT_MESSAGES:
                raise DatabaseError("connection lost")
            return insert(table, values)

        monkeypatch.setattr(services.db, "insert", failing_insert)

        reply = copilot.chat(USER_ID, project.id, "Hello")

        assert reply.response_text == "Noted."
        assert services.db.find(CHAT_MESSAGES) == []

    def test_list_limit_keeps_latest(self, copilot, project, estimate):
        for n in range(3):
            copilot.chat(USER_ID, project.id, f"Message {n}")

        messages = copilot.list_chat_messages(USER_ID, project.id, limit=2)

        assert [m.content for m in messages] == ["Message 2", "Noted."]


class TestBuildPrompt:
    def test_lists_items_and_rooms(self, services, project, estimate, add_item):
        kitchen = services.rooms.upsert_room(USER_ID, project.id, {"name": "Kitchen"})
        add_item(description="Cabinets", cost_code="716", quantity=1, unit_cost=8000, room_id=kitchen.id)
        estimate = services.repo.get_estimate(estimate.id)

        prompt = build_prompt(
            "Hi",
            estimate,
            services.repo.estimate_items(estimate.id),
            services.repo.project_rooms(project.id),
            [],
        )

        assert "ESTIMATE (draft, editable), total $10,400.00" in prompt
        assert "Kitchen: Cabinets | 1 | code 716 | $10,400.00" in prompt
        assert "- Kitchen" in prompt
        assert "(new conversation)" in prompt
