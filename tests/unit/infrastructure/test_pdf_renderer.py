"""
Unit tests for PdfRenderer (real reportlab output).
"""

from datetime import date

import pytest

from estimatix.domain.models.billing import Invoice, InvoiceItem
from estimatix.domain.models.document import DocumentHeader
from estimatix.domain.models.line_item import LineItem
from estimatix.domain.models.proposal import Contract, Proposal
from estimatix.domain.models.room import Room
from estimatix.domain.models.spec_sheet import build_spec_sheet_sections
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer, money


@pytest.fixture(scope="module")
def renderer():
    return PdfRenderer()


@pytest.fixture
def header():
    return DocumentHeader(
        project_name="Kitchen Remodel & Bath",
        owner_name="Jane Doe",
        project_address="12 Elm St",
        document_date=date(2024, 3, 1),
        company_name="Doe Builders",
    )


@pytest.fixture
def items():
    return [
        LineItem(id="1", estimate_id="e", project_id="p", description="Replace window", cost_code="520",
                 quantity=2, unit="ea", direct_cost=1000.0, client_price=1300.0, room_id="r1"),
        LineItem(id="2", estimate_id="e", project_id="p", description="ALLOWANCE: lighting <LED>",
                 cost_code="405", direct_cost=500.0, client_price=500.0),
    ]


def test_money():
    assert money(1234.5) == "$1,234.50"
    assert money(None) == "$0.00"


class TestRenderers:
    def test_spec_sheet(self, renderer, header, items):
        rooms = {"r1": Room(id="r1", project_id="p", name="Kitchen")}
        pdf = renderer.render_spec_sheet(header, build_spec_sheet_sections(items, rooms))
        assert pdf.startswith(b"%PDF")

    def test_spec_sheet_empty(self, renderer, header):
        assert renderer.render_spec_sheet(header, []).startswith(b"%PDF")

    def test_proposal(self, renderer, header, items):
        proposal = Proposal(
            id="pr", project_id="p", estimate_id="e", total_price=1800.0,
            body_json={
                "allowances": [{"description": "ALLOWANCE: lighting", "cost_code": "405", "amount": 500.0}],
                "inclusions": ["Permits"],
                "exclusions": ["Painting"],
                "basis_of_estimate": "Site walk on 2/28",
            },
        )
        assert renderer.render_proposal(header, proposal, items).startswith(b"%PDF")

    def test_contract(self, renderer, header):
        contract = Contract(
            id="c", project_id="p", total_price=1800.0, down_payment=300.0,
            start_date=date(2024, 4, 1), completion_date=date(2024, 5, 1),
            payment_schedule=[{"milestone": "Down Payment", "amount": 300.0},
                              {"milestone": "Completion", "amount": 1500.0}],
        )
        assert renderer.render_contract(header, contract).startswith(b"%PDF")

    def test_invoice(self, renderer, header):
        invoice = Invoice(id="i", project_id="p", invoice_number="INV-0001", total_amount=650.0,
                          due_date=date(2024, 4, 15))
        items = [InvoiceItem(id="ii", invoice_id="i", amount=650.0, description="Replace window")]
        assert renderer.render_invoice(header, invoice, items).startswith(b"%PDF")
