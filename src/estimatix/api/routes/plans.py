"""
Blueprint upload, parse review and apply routes.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import PlanApplyRequest

router = APIRouter()


@router.post("/projects/{project_id}/plans", status_code=201)
def parse_plans(
    project_id: str,
    files: list[UploadFile] = File(...),
    estimate_id: str | None = Form(default=None),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    """Upload plan PDFs and parse them synchronously."""
    contents = [(f.filename or "plans.pdf", f.file.read()) for f in files]
    return services.plans.parse_plans(user_id, project_id, contents, estimate_id).to_dict()


@router.get("/projects/{project_id}/plan-parses")
def list_plan_parses(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [p.to_dict() for p in services.plans.list_plan_parses(user_id, project_id)]


@router.get("/plan-parses/{parse_id}")
def get_plan_parse(
    parse_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.plans.get_plan_parse(user_id, parse_id).to_dict()


@router.post("/plan-parses/{parse_id}/apply")
def apply_plan_parse(
    parse_id: str,
    body: PlanApplyRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    rooms = [(r.room(), r.include) for r in body.rooms] if body.rooms is not None else None
    items = [(i.scaffold(), i.include) for i in body.line_items] if body.line_items is not None else None
    result = services.plans.apply_parsed_results(user_id, parse_id, rooms, items, body.estimate_id)
    return result.to_dict()
