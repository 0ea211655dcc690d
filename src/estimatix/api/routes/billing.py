"""
Job task, invoice, actuals and dashboard routes.
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import ActualsRequest, InvoiceCreate, StatusUpdate

router = APIRouter()


# Job tasks

@router.get("/projects/{project_id}/tasks")
def list_job_tasks(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [t.to_dict() for t in services.jobs.list_job_tasks(user_id, project_id)]


@router.put("/tasks/{task_id}/status")
def update_task_status(
    task_id: str,
    body: StatusUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.jobs.update_task_status(user_id, task_id, body.status).to_dict()


# Invoices

@router.post("/projects/{project_id}/invoices", status_code=201)
def create_invoice(
    project_id: str,
    body: InvoiceCreate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    invoice, items = services.invoices.create_invoice(
        user_id, project_id, [item.model_dump() for item in body.items], body.due_date
    )
    return {**invoice.to_dict(), "items": [i.to_dict() for i in items]}


@router.get("/projects/{project_id}/invoices")
def list_invoices(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [i.to_dict() for i in services.invoices.list_invoices(user_id, project_id)]


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    invoice, items = services.invoices.get_invoice(user_id, invoice_id)
    return {**invoice.to_dict(), "items": [i.to_dict() for i in items]}


@router.put("/invoices/{invoice_id}/status")
def update_invoice_status(
    invoice_id: str,
    body: StatusUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.invoices.update_invoice_status(user_id, invoice_id, body.status).to_dict()


@router.post("/invoices/{invoice_id}/pdf")
def render_invoice_pdf(
    invoice_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.invoices.render_invoice_pdf(user_id, invoice_id).to_dict()


# Actuals

@router.get("/projects/{project_id}/actuals")
def get_actuals(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    gate = services.actuals.can_enter_actuals(user_id, project_id)
    actuals = services.actuals.get_project_actuals(user_id, project_id)
    line_items = services.actuals.get_line_item_actuals(user_id, project_id)
    return {
        "can_enter": asdict(gate),
        "actuals": actuals.to_dict() if actuals else None,
        "line_items": [a.to_dict() for a in line_items],
    }


@router.put("/projects/{project_id}/actuals")
def update_actuals(
    project_id: str,
    body: ActualsRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.actuals.update_project_actuals(user_id, project_id, body.model_dump()).to_dict()


@router.post("/projects/{project_id}/close-out")
def close_out_project(
    project_id: str,
    body: ActualsRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.actuals.close_out_project(user_id, project_id, body.model_dump()).to_dict()


@router.get("/dashboard/accuracy")
def estimation_accuracy(user_id: str = Depends(get_user_id), services: Services = Depends(get_services)) -> dict:
    return asdict(services.dashboard.get_estimation_accuracy(user_id))
