"""
API tests: FastAPI app over the in-memory service graph.
"""

import io

import pytest
from fastapi.testclient import TestClient
from reportlab.pdfgen import canvas

from conftest import OTHER_USER_ID, USER_ID
from estimatix.api.main import create_app

HEADERS = {"X-User-Id": USER_ID}


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def project_id(client):
    response = client.post("/api/projects", json={"title": "Basement Finish"}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def estimate_id(client, project_id):
    response = client.post(f"/api/projects/{project_id}/estimates", headers=HEADERS)
    assert response.status_code == 201
    return response.json()["id"]


def add_item(client, estimate_id, **data):
    response = client.post(f"/api/estimates/{estimate_id}/line-items", json=data, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestBasics:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_user_header(self, client):
        assert client.get("/api/projects").status_code == 401

    def test_project_crud(self, client, project_id):
        assert [p["id"] for p in client.get("/api/projects", headers=HEADERS).json()] == [project_id]

        patched = client.patch(f"/api/projects/{project_id}", json={"client_name": "Sam Lee"}, headers=HEADERS)
        assert patched.json()["client_name"] == "Sam Lee"

        assert client.delete(f"/api/projects/{project_id}", headers=HEADERS).status_code == 204
        assert client.get(f"/api/projects/{project_id}", headers=HEADERS).status_code == 404

    def test_other_user_forbidden(self, client, project_id):
        response = client.get(f"/api/projects/{project_id}", headers={"X-User-Id": OTHER_USER_ID})
        assert response.status_code == 403

    def test_request_validation(self, client):
        response = client.post("/api/projects", json={"title": ""}, headers=HEADERS)
        assert response.status_code == 422


class TestEstimateFlow:
    def test_line_items_and_totals(self, client, estimate_id):
        body = add_item(client, estimate_id, description="Drywall", quantity=10, unit_cost=40)
        assert body["grand_total"] == 520.0

        estimate = client.get(f"/api/estimates/{estimate_id}", headers=HEADERS).json()
        assert estimate["total"] == 520.0
        assert estimate["is_editable"] is True
        assert len(estimate["line_items"]) == 1

    def test_unknown_field_is_422(self, client, estimate_id):
        response = client.post(f"/api/estimates/{estimate_id}/line-items", json={"price": 5}, headers=HEADERS)
        assert response.status_code == 422
        assert response.json()["details"]["field_name"] == "price"

    def test_lifecycle_conflicts(self, client, estimate_id):
        add_item(client, estimate_id, description="Mystery work")

        response = client.post(f"/api/estimates/{estimate_id}/finalize-bid", headers=HEADERS)
        assert response.status_code == 409
        assert response.json()["error"].startswith("Cannot finalize: 1 line item(s) are missing pricing")

        skip = client.post(f"/api/estimates/{estimate_id}/mark-completed", headers=HEADERS)
        assert skip.status_code == 409

    def test_locked_after_finalize(self, client, estimate_id):
        item = add_item(client, estimate_id, description="Drywall", quantity=10, unit_cost=40)["item"]

        assert client.post(f"/api/estimates/{estimate_id}/finalize-bid", headers=HEADERS).json()["status"] == \
            "bid_final"
        status = client.get(f"/api/estimates/{estimate_id}/status", headers=HEADERS).json()
        assert status["allowed_transitions"] == ["contract_signed"]

        response = client.patch(f"/api/line-items/{item['id']}", json={"quantity": 12}, headers=HEADERS)
        assert response.status_code == 409

    def test_parse_transcript_fallback(self, client, project_id):
        response = client.post(f"/api/projects/{project_id}/parse-transcript",
                               json={"transcript": "Finish the basement"}, headers=HEADERS)
        assert response.status_code == 201
        assert response.json()["data"]["items"][0]["description"] == "Finish the basement"

    def test_recording_processed_inline(self, client, project_id):
        response = client.post(
            f"/api/projects/{project_id}/recordings",
            files={"file": ("walk.webm", b"audio", "audio/webm")},
            data={"client_transcript": "Paint the hallway"},
            headers=HEADERS,
        )
        assert response.status_code == 202
        body = response.json()
        assert body["queued"] is False
        assert body["status"] == "done"
        assert body["estimate_id"]


class TestDocumentsAndJobs:
    def test_spec_sheet_download(self, client, project_id, estimate_id):
        add_item(client, estimate_id, description="Replace window", cost_code="520", quantity=2, unit_cost=500)

        url = client.post(f"/api/estimates/{estimate_id}/spec-sheet", headers=HEADERS).json()["spec_sheet_url"]
        assert url == f"/api/files/spec-sheets/{project_id}/{estimate_id}.pdf"

        download = client.get(url, headers=HEADERS)
        assert download.status_code == 200
        assert download.headers["content-type"] == "application/pdf"
        assert download.content.startswith(b"%PDF")

        assert client.get(url, headers={"X-User-Id": OTHER_USER_ID}).status_code == 403
        assert client.get(f"/api/files/spec-sheets/{project_id}/missing.pdf", headers=HEADERS).status_code == 404

    def test_proposal_to_job(self, client, project_id, estimate_id):
        add_item(client, estimate_id, description="Replace window", cost_code="520", quantity=2, unit_cost=500)

        proposal = client.post(f"/api/projects/{project_id}/proposals", json={"estimate_id": estimate_id},
                               headers=HEADERS).json()
        client.put(f"/api/proposals/{proposal['id']}/status", json={"status": "approved"}, headers=HEADERS)

        contract = client.post("/api/contracts", json={"proposal_id": proposal["id"], "down_payment": 300},
                               headers=HEADERS)
        assert contract.status_code == 201
        contract_id = contract.json()["id"]

        started = client.post(f"/api/contracts/{contract_id}/start-job", headers=HEADERS)
        assert started.status_code == 201
        assert started.json()["tasks_created"] == 1

        again = client.post(f"/api/contracts/{contract_id}/start-job", headers=HEADERS)
        assert again.status_code == 200
        assert again.json()["message"] == "Job tasks already exist for this project"

        task_id = client.get(f"/api/projects/{project_id}/tasks", headers=HEADERS).json()[0]["id"]
        invoice = client.post(f"/api/projects/{project_id}/invoices",
                              json={"items": [{"task_id": task_id, "amount": 650}]}, headers=HEADERS)
        assert invoice.status_code == 201
        assert invoice.json()["invoice_number"] == "INV-0001"

    def test_down_payment_conflict(self, client, project_id, estimate_id):
        add_item(client, estimate_id, description="Replace window", cost_code="520", quantity=1, unit_cost=100)
        proposal = client.post(f"/api/projects/{project_id}/proposals", json={"estimate_id": estimate_id},
                               headers=HEADERS).json()

        response = client.post("/api/contracts", json={"proposal_id": proposal["id"], "down_payment": 5000},
                               headers=HEADERS)
        assert response.status_code == 409


class TestActualsAndDashboard:
    def test_close_out(self, client, project_id, estimate_id):
        add_item(client, estimate_id, description="Drywall", quantity=10, unit_cost=100)

        gate = client.get(f"/api/projects/{project_id}/actuals", headers=HEADERS).json()["can_enter"]
        assert gate["allowed"] is False

        client.post(f"/api/estimates/{estimate_id}/finalize-bid", headers=HEADERS)
        client.post(f"/api/estimates/{estimate_id}/mark-contract-signed", headers=HEADERS)

        closed = client.post(f"/api/projects/{project_id}/close-out", json={"total_actual_cost": 1430},
                             headers=HEADERS)
        assert closed.status_code == 200
        assert closed.json()["variance_percent"] == 10.0

        accuracy = client.get("/api/dashboard/accuracy", headers=HEADERS).json()
        assert accuracy["average_absolute_variance"] == 10.0


def plan_pdf(*lines: str) -> bytes:
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer)
    for n, line in enumerate(lines):
        pdf.drawString(72, 720 - 20 * n, line)
    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


class TestPlansAndCopilot:
    def test_parse_and_apply_plans(self, client, project_id, estimate_id):
        upload = client.post(
            f"/api/projects/{project_id}/plans",
            files=[("files", ("plans.pdf", plan_pdf("FIRST FLOOR PLAN", "KITCHEN 12' x 10'"), "application/pdf"))],
            data={"estimate_id": estimate_id},
            headers=HEADERS,
        )
        assert upload.status_code == 201, upload.text
        plan_parse = upload.json()
        assert plan_parse["status"] == "parsed"
        assert plan_parse["pages_of_interest"] == [1]
        assert plan_parse["parse_result"]["used_fallback"] is True

        listed = client.get(f"/api/projects/{project_id}/plan-parses", headers=HEADERS).json()
        assert [p["id"] for p in listed] == [plan_parse["id"]]

        applied = client.post(f"/api/plan-parses/{plan_parse['id']}/apply", json={}, headers=HEADERS)
        assert applied.status_code == 200, applied.text
        assert applied.json()["estimate_id"] == estimate_id
        assert applied.json()["created_rooms"] == 1
        assert applied.json()["created_line_items"] == 1

        rooms = client.get(f"/api/projects/{project_id}/rooms", headers=HEADERS).json()
        assert rooms[0]["source"] == "blueprint"

        again = client.post(f"/api/plan-parses/{plan_parse['id']}/apply", json={}, headers=HEADERS)
        assert again.status_code == 409

    def test_apply_reviewed_rooms(self, client, project_id, estimate_id):
        plan_parse = client.post(
            f"/api/projects/{project_id}/plans",
            files=[("files", ("plans.pdf", plan_pdf("SITE PLAN"), "application/pdf"))],
            headers=HEADERS,
        ).json()

        body = {
            "rooms": [{"name": "Den", "length_ft": 12, "width_ft": 10, "include": False}],
            "line_items": [{"description": "Carpet", "cost_code": "737", "room_name": "Den", "unit": "sf"}],
        }
        applied = client.post(f"/api/plan-parses/{plan_parse['id']}/apply", json=body, headers=HEADERS).json()
        assert applied["excluded_rooms"] == 1

        [item] = client.get(f"/api/estimates/{estimate_id}", headers=HEADERS).json()["line_items"]
        assert item["quantity"] == 120.0
        assert item["is_active"] is False

    def test_unreadable_plan_file(self, client, project_id):
        response = client.post(
            f"/api/projects/{project_id}/plans",
            files=[("files", ("plans.pdf", b"not a pdf", "application/pdf"))],
            headers=HEADERS,
        )
        assert response.status_code == 502

        [failed] = client.get(f"/api/projects/{project_id}/plan-parses", headers=HEADERS).json()
        assert failed["status"] == "failed"
        assert failed["error_code"] == "unreadable_file"

    def test_copilot_without_ai(self, client, project_id):
        response = client.post(f"/api/projects/{project_id}/copilot", json={"message": "Add a sink"},
                               headers=HEADERS)
        assert response.status_code == 502
        assert client.get(f"/api/projects/{project_id}/chat-messages", headers=HEADERS).json() == []

    def test_copilot_request_validation(self, client, project_id):
        response = client.post(f"/api/projects/{project_id}/copilot", json={"message": ""}, headers=HEADERS)
        assert response.status_code == 422
