"""
Estimatix - Invoice Service
"""
import logging
from dataclasses import replace
from datetime import date
from typing import Any

from estimatix.domain.exceptions import NotFoundError, ValidationError
from estimatix.domain.interfaces.storage import FileStorage
from estimatix.domain.models.billing import Invoice, InvoiceItem, InvoiceStatus, JobTask, next_invoice_number
from estimatix.domain.models.money import round2, to_number
from estimatix.infrastructure.documents.pdf_renderer import PdfRenderer
from estimatix.application.repository import INVOICE_ITEMS, INVOICES, JOB_TASKS, Repository, new_id

logger = logging.getLogger(__name__)

INVOICES_BUCKET = "invoices"


class InvoiceService:
    def __init__(self, repo: Repository, storage: FileStorage, renderer: PdfRenderer):
        self.repo = repo
        self.storage = storage
        self.renderer = renderer

    def _owned(self, user_id: str, invoice_id: str) -> Invoice:
        row = self.repo.db.get(INVOICES, invoice_id)
        if not row:
            raise NotFoundError("Invoice not found", entity_type="invoice", entity_id=invoice_id)
        invoice = Invoice.from_row(row)
        self.repo.owned_project(invoice.project_id, user_id)
        return invoice

    def _items(self, invoice_id: str) -> list[InvoiceItem]:
        return [InvoiceItem.from_row(r) for r in self.repo.db.find(INVOICE_ITEMS, {"invoice_id": invoice_id})]

    def _billable_items(self, project_id: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        billable = []
        for entry in items:
            amount = to_number(entry.get("amount"))
            if not amount or amount <= 0:
                continue
            task_id = entry.get("task_id")
            description = entry.get("description")
            if task_id:
                row = self.repo.db.get(JOB_TASKS, task_id)
                if not row or row["project_id"] != project_id:
                    raise ValidationError("Task does not belong to this project", field_name="task_id")
                description = description or row.get("description")
            billable.append({"task_id": task_id, "amount": round2(amount), "description": description})
        return billable

    def create_invoice(
        self,
        user_id: str,
        project_id: str,
        items: list[dict[str, Any]],
        due_date: date | None = None
    ) -> tuple[Invoice, list[InvoiceItem]]:
        """
        Bill job tasks (items: [{task_id, amount, description}]).

        Raises:
            ValidationError: No item with a positive amount
        """
        self.repo.owned_project(project_id, user_id)
        billable = self._billable_items(project_id, items)
        if not billable:
            raise ValidationError("Invoice needs at least one item with a positive amount", field_name="items")

        existing = [r["invoice_number"] for r in self.repo.db.find(INVOICES, {"project_id": project_id})]
        invoice = Invoice(
            id=new_id(),
            project_id=project_id,
            invoice_number=next_invoice_number(existing),
            total_amount=round2(sum(entry["amount"] for entry in billable)),
            issued_date=date.today(),
            due_date=due_date,
        )
        invoice = Invoice.from_row(self.repo.db.insert(INVOICES, invoice.to_row()))

        try:
            saved_items = [
                InvoiceItem.from_row(self.repo.db.insert(
                    INVOICE_ITEMS, InvoiceItem(id=new_id(), invoice_id=invoice.id, **entry).to_row()
                ))
                for entry in billable
            ]
        except Exception:
            logger.error(f"Failed to store items of invoice {invoice.id}, rolling back", exc_info=True)
            self.repo.db.delete_where(INVOICE_ITEMS, {"invoice_id": invoice.id})
            self.repo.db.delete(INVOICES, invoice.id)
            raise

        for item in saved_items:
            if not item.task_id:
                continue
            task = JobTask.from_row(self.repo.db.get(JOB_TASKS, item.task_id))
            self.repo.db.update(JOB_TASKS, task.id, {"billed_amount": round2(task.billed_amount + item.amount)})

        logger.info(f"Created invoice {invoice.invoice_number} for project {project_id}: {invoice.total_amount}")
        return invoice, saved_items

    def list_invoices(self, user_id: str, project_id: str) -> list[Invoice]:
        self.repo.owned_project(project_id, user_id)
        rows = self.repo.db.find(INVOICES, {"project_id": project_id}, order_by="created_at", descending=True)
        return [Invoice.from_row(r) for r in rows]

    def get_invoice(self, user_id: str, invoice_id: str) -> tuple[Invoice, list[InvoiceItem]]:
        invoice = self._owned(user_id, invoice_id)
        return invoice, self._items(invoice_id)

    def update_invoice_status(self, user_id: str, invoice_id: str, status: str) -> Invoice:
        invoice = self._owned(user_id, invoice_id)
        try:
            target = InvoiceStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid invoice status: {status}", field_name="status")
        row = self.repo.db.update(INVOICES, invoice_id, {"status": target.value})
        return Invoice.from_row(row) if row else replace(invoice, status=target)

    def render_invoice_pdf(self, user_id: str, invoice_id: str) -> Invoice:
        invoice = self._owned(user_id, invoice_id)
        project = self.repo.get_project(invoice.project_id)

        pdf = self.renderer.render_invoice(self.repo.document_header(project, user_id), invoice, self._items(invoice_id))
        url = self.storage.save(INVOICES_BUCKET, f"{project.id}/{invoice.invoice_number}.pdf", pdf)
        row = self.repo.db.update(INVOICES, invoice_id, {"pdf_url": url})
        return Invoice.from_row(row) if row else replace(invoice, pdf_url=url)
