"""
Estimate routes: line items, lifecycle, pricing and the spec sheet.
"""
from typing import Any

from fastapi import APIRouter, Body, Depends, Response

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import MarginRuleRequest

router = APIRouter()


@router.get("/estimates/{estimate_id}")
def get_estimate(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    estimate = services.projects.get_estimate(user_id, estimate_id)
    items = services.line_items.list_line_items(user_id, estimate_id)
    return {
        **estimate.to_dict(),
        "is_editable": estimate.status.is_editable,
        "is_pricing_truth": estimate.status.is_pricing_truth,
        "line_items": [item.to_dict() for item in items],
    }


# Line items

@router.get("/estimates/{estimate_id}/line-items")
def list_line_items(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [item.to_dict() for item in services.line_items.list_line_items(user_id, estimate_id)]


@router.post("/estimates/{estimate_id}/line-items", status_code=201)
def add_line_item(
    estimate_id: str,
    data: dict[str, Any] = Body(...),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    result = services.line_items.add_line_item(user_id, estimate_id, data)
    return {"item": result.item.to_dict(), "grand_total": result.grand_total}


@router.patch("/line-items/{item_id}")
def update_line_item(
    item_id: str,
    patch: dict[str, Any] = Body(...),
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    result = services.line_items.update_line_item(user_id, item_id, patch)
    return {"item": result.item.to_dict(), "grand_total": result.grand_total}


@router.delete("/line-items/{item_id}")
def delete_line_item(
    item_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return {"grand_total": services.line_items.delete_line_item(user_id, item_id)}


@router.post("/estimates/{estimate_id}/merge-duplicates")
def merge_duplicates(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.line_items.merge_duplicate_line_items(user_id, estimate_id)


# Lifecycle

@router.get("/estimates/{estimate_id}/status")
def get_status(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    status = services.lifecycle.get_estimate_status(user_id, estimate_id)
    return {
        "status": status.value,
        "is_editable": status.is_editable,
        "is_pricing_truth": status.is_pricing_truth,
        "allowed_transitions": [s.value for s in status.allowed_transitions],
    }


@router.post("/estimates/{estimate_id}/finalize-bid")
def finalize_bid(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.lifecycle.finalize_bid(user_id, estimate_id).to_dict()


@router.post("/estimates/{estimate_id}/mark-contract-signed")
def mark_contract_signed(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.lifecycle.mark_contract_signed(user_id, estimate_id).to_dict()


@router.post("/estimates/{estimate_id}/mark-completed")
def mark_completed(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.lifecycle.mark_completed(user_id, estimate_id).to_dict()


# Pricing

@router.post("/estimates/{estimate_id}/apply-pricing")
def apply_pricing(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.pricing.apply_pricing(user_id, estimate_id)


@router.post("/estimates/{estimate_id}/learn")
def learn_from_estimate(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.pricing.learn_from_estimate(user_id, estimate_id)


@router.get("/pricing/margin-rules")
def list_margin_rules(user_id: str = Depends(get_user_id), services: Services = Depends(get_services)) -> list[dict]:
    return [rule.to_dict() for rule in services.pricing.list_margin_rules(user_id)]


@router.put("/pricing/margin-rules")
def set_margin_rule(
    body: MarginRuleRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.pricing.set_margin_rule(user_id, body.scope, body.margin_percent).to_dict()


# Documents & jobs

@router.post("/estimates/{estimate_id}/spec-sheet")
def generate_spec_sheet(
    estimate_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return {"spec_sheet_url": services.spec_sheets.generate_spec_sheet(user_id, estimate_id)}


@router.post("/estimates/{estimate_id}/start-job")
def start_job_from_estimate(
    estimate_id: str,
    response: Response,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    result = services.jobs.start_job_from_estimate(user_id, estimate_id)
    response.status_code = 201 if result.tasks_created else 200
    return {
        "tasks_created": result.tasks_created,
        "message": result.message,
        "tasks": [task.to_dict() for task in result.tasks],
    }
