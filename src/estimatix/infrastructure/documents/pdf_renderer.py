"""
Estimatix - PDF Document Renderer

Renders spec sheets, proposals, contracts and invoices with reportlab platypus.
"""
import io
import logging
from datetime import date
from typing import Any
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    HRFlowable,
    ListFlowable,
    ListItem,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from estimatix.domain.exceptions import DocumentRenderError
from estimatix.domain.models.billing import Invoice, InvoiceItem
from estimatix.domain.models.document import DocumentHeader
from estimatix.domain.models.line_item import LineItem
from estimatix.domain.models.proposal import Contract, Proposal
from estimatix.domain.models.spec_sheet import SpecSheetSection

logger = logging.getLogger(__name__)

HEADER_BG = colors.HexColor("#1f3a5f")
ROW_ALT_BG = colors.HexColor("#f2f5f9")
MUTED = colors.HexColor("#5a6b7f")


def money(value: float | None) -> str:
    return f"${value or 0:,.2f}"


class PdfRenderer:
    """Builds PDF documents in memory and returns their bytes."""

    def __init__(self):
        styles = getSampleStyleSheet()
        self.styles = {
            "title": ParagraphStyle(
                "EstimatixTitle",
                parent=styles["Heading1"],
                fontSize=20,
                alignment=TA_CENTER,
                spaceAfter=12,
                textColor=HEADER_BG,
            ),
            "section": ParagraphStyle(
                "EstimatixSection",
                parent=styles["Heading2"],
                fontSize=13,
                spaceBefore=12,
                spaceAfter=6,
                textColor=HEADER_BG,
            ),
            "subsection": ParagraphStyle(
                "EstimatixSubsection",
                parent=styles["Heading3"],
                fontSize=10.5,
                spaceBefore=6,
                spaceAfter=3,
                textColor=MUTED,
            ),
            "body": ParagraphStyle("EstimatixBody", parent=styles["Normal"], fontSize=9.5, leading=13),
            "muted": ParagraphStyle("EstimatixMuted", parent=styles["Normal"], fontSize=9, textColor=MUTED),
            "right": ParagraphStyle("EstimatixRight", parent=styles["Normal"], fontSize=10, alignment=TA_RIGHT),
        }

    # Shared building blocks

    def _build(self, story: list[Any], title: str) -> bytes:
        buffer = io.BytesIO()
        try:
            doc = SimpleDocTemplate(
                buffer,
                pagesize=LETTER,
                leftMargin=0.75 * inch,
                rightMargin=0.75 * inch,
                topMargin=0.75 * inch,
                bottomMargin=0.75 * inch,
                title=title,
            )
            doc.build(story)
        except Exception as e:
            logger.error(f"Failed to render {title}: {e}", exc_info=True)
            raise DocumentRenderError(f"Failed to render PDF: {e}", document=title)

        pdf = buffer.getvalue()
        logger.info(f"✅ Rendered {title} ({len(pdf)} bytes)")
        return pdf

    def _header(self, title: str, header: DocumentHeader) -> list[Any]:
        rows = [
            ["Project", header.project_name],
            ["Owner", header.owner_name or ""],
            ["Address", header.project_address or ""],
            ["Date", (header.document_date or date.today()).strftime("%B %d, %Y")],
        ]
        if header.estimator_name or header.company_name:
            prepared_by = ", ".join(p for p in (header.estimator_name, header.company_name) if p)
            rows.append(["Prepared by", prepared_by])

        table = Table(
            [[Paragraph(f"<b>{escape(k)}</b>", self.styles["body"]), Paragraph(escape(v), self.styles["body"])]
             for k, v in rows],
            colWidths=[1.3 * inch, 5.7 * inch],
        )
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
            ("TOPPADDING", (0, 0), (-1, -1), 2),
        ]))
        return [
            Paragraph(escape(title), self.styles["title"]),
            table,
            Spacer(1, 6),
            HRFlowable(width="100%", thickness=1, color=HEADER_BG),
            Spacer(1, 6),
        ]

    def _money_table(self, header_row: list[str], rows: list[list[Any]], col_widths: list[float]) -> Table:
        data = [header_row] + rows
        table = Table(data, colWidths=col_widths, repeatRows=1)
        style = [
            ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (-1, 0), (-1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#c8d1dc")),
        ]
        for i in range(1, len(data)):
            if i % 2 == 0:
                style.append(("BACKGROUND", (0, i), (-1, i), ROW_ALT_BG))
        table.setStyle(TableStyle(style))
        return table

    def _bullets(self, texts: list[str]) -> ListFlowable:
        return ListFlowable(
            [ListItem(Paragraph(t, self.styles["body"]), leftIndent=12) for t in texts],
            bulletType="bullet",
            start="•",
            leftIndent=12,
        )

    # Documents

    def render_spec_sheet(self, header: DocumentHeader, sections: list[SpecSheetSection]) -> bytes:
        """Trade-by-trade scope of work with embedded quantities."""
        story = self._header("Project Specification Sheet", header)

        if not sections:
            story.append(Paragraph("No in-scope line items.", self.styles["muted"]))

        for section in sections:
            story.append(Paragraph(escape(f"{section.cost_code} - {section.title}"), self.styles["section"]))
            for room in section.rooms:
                story.append(Paragraph(escape(room.name), self.styles["subsection"]))
                bullets = [b.text(bold=True) for b in room.bullets if b.description]
                if bullets:
                    story.append(self._bullets(bullets))
            if section.allowance is not None:
                story.append(Paragraph(
                    f"<b>Allowance:</b> {money(section.allowance)}", self.styles["body"]
                ))

        return self._build(story, "Spec Sheet")

    def render_proposal(self, header: DocumentHeader, proposal: Proposal, items: list[LineItem]) -> bytes:
        """Client proposal: priced scope, allowances, inclusions/exclusions."""
        story = self._header(f"{proposal.title} (v{proposal.version})", header)

        rows = [
            [Paragraph(escape(item.description), self.styles["body"]),
             item.cost_code or "", f"{item.quantity or 0:g} {item.unit or ''}".strip(),
             money(item.client_price)]
            for item in items
        ]
        rows.append(["", "", Paragraph("<b>Total</b>", self.styles["body"]), money(proposal.total_price)])
        story.append(self._money_table(
            ["Description", "Code", "Qty", "Price"], rows, [3.9 * inch, 0.8 * inch, 1.0 * inch, 1.3 * inch]
        ))

        body = proposal.body_json
        if body.get("allowances"):
            story.append(Paragraph("Allowances", self.styles["section"]))
            story.append(self._bullets([
                f"{escape(a.get('description') or '')} - {money(a.get('amount'))}" for a in body["allowances"]
            ]))
        for key, label in (("inclusions", "Inclusions"), ("exclusions", "Exclusions")):
            if body.get(key):
                story.append(Paragraph(label, self.styles["section"]))
                story.append(self._bullets([escape(str(v)) for v in body[key]]))
        for key, label in (("basis_of_estimate", "Basis of Estimate"), ("notes", "Notes")):
            if body.get(key):
                story.append(Paragraph(label, self.styles["section"]))
                story.append(Paragraph(escape(str(body[key])), self.styles["body"]))

        return self._build(story, "Proposal")

    def render_contract(self, header: DocumentHeader, contract: Contract) -> bytes:
        story = self._header("Construction Contract", header)

        summary = [
            ["Contract Price", money(contract.total_price)],
            ["Down Payment", money(contract.down_payment)],
            ["Start Date", contract.start_date.isoformat() if contract.start_date else "TBD"],
            ["Completion Date", contract.completion_date.isoformat() if contract.completion_date else "TBD"],
        ]
        story.append(self._money_table(["Term", "Value"], summary, [3.5 * inch, 3.5 * inch]))

        if contract.payment_schedule:
            story.append(Paragraph("Payment Schedule", self.styles["section"]))
            rows = [[Paragraph(escape(str(m.get("milestone", ""))), self.styles["body"]), money(m.get("amount"))]
                    for m in contract.payment_schedule]
            story.append(self._money_table(["Milestone", "Amount"], rows, [5.0 * inch, 2.0 * inch]))

        for key, label in (("warranty", "Warranty"), ("termination", "Termination"),
                           ("right_to_cancel", "Right to Cancel")):
            text = contract.legal_text.get(key)
            if text:
                story.append(Paragraph(label, self.styles["section"]))
                story.append(Paragraph(escape(text), self.styles["body"]))

        story.append(Spacer(1, 36))
        signatures = Table(
            [["_____________________________", "_____________________________"],
             ["Owner", "Contractor"]],
            colWidths=[3.5 * inch, 3.5 * inch],
        )
        story.append(signatures)
        return self._build(story, "Contract")

    def render_invoice(self, header: DocumentHeader, invoice: Invoice, items: list[InvoiceItem]) -> bytes:
        story = self._header(f"Invoice {invoice.invoice_number}", header)
        story.append(Paragraph(
            f"Issued: {invoice.issued_date.isoformat()}"
            + (f" &nbsp;&nbsp; Due: {invoice.due_date.isoformat()}" if invoice.due_date else ""),
            self.styles["muted"],
        ))
        story.append(Spacer(1, 8))

        rows = [[Paragraph(escape(item.description or ""), self.styles["body"]), money(item.amount)]
                for item in items]
        rows.append([Paragraph("<b>Total Due</b>", self.styles["body"]), money(invoice.total_amount)])
        story.append(self._money_table(["Description", "Amount"], rows, [5.3 * inch, 1.7 * inch]))
        return self._build(story, "Invoice")
