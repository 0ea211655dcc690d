"""
Proposal and contract routes.
"""
from fastapi import APIRouter, Depends, Response

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import ContractCreate, ProposalCreate, StatusUpdate

router = APIRouter()


# Proposals

@router.post("/projects/{project_id}/proposals", status_code=201)
def create_proposal(
    project_id: str,
    body: ProposalCreate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    proposal = services.proposals.create_proposal_from_estimate(
        user_id,
        project_id,
        body.estimate_id,
        title=body.title,
        inclusions=body.inclusions,
        exclusions=body.exclusions,
        basis_of_estimate=body.basis_of_estimate,
        notes=body.notes,
    )
    return proposal.to_dict()


@router.get("/projects/{project_id}/proposals")
def list_proposals(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [p.to_dict() for p in services.proposals.list_proposals(user_id, project_id)]


@router.get("/proposals/{proposal_id}")
def get_proposal(
    proposal_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    proposal = services.proposals.get_proposal(user_id, proposal_id)
    events = services.proposals.list_proposal_events(user_id, proposal_id)
    return {**proposal.to_dict(), "events": [e.to_dict() for e in events]}


@router.put("/proposals/{proposal_id}/status")
def update_proposal_status(
    proposal_id: str,
    body: StatusUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.proposals.update_proposal_status(user_id, proposal_id, body.status).to_dict()


@router.post("/proposals/{proposal_id}/pdf")
def render_proposal_pdf(
    proposal_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.proposals.render_proposal_pdf(user_id, proposal_id).to_dict()


# Contracts

@router.post("/contracts", status_code=201)
def create_contract(
    body: ContractCreate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    schedule = [m.model_dump() for m in body.payment_schedule] if body.payment_schedule else None
    contract = services.contracts.create_contract_from_proposal(
        user_id,
        body.proposal_id,
        down_payment=body.down_payment,
        start_date=body.start_date,
        completion_date=body.completion_date,
        payment_schedule=schedule,
        legal_text=body.legal_text,
    )
    return contract.to_dict()


@router.get("/projects/{project_id}/contracts")
def list_contracts(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [c.to_dict() for c in services.contracts.list_contracts(user_id, project_id)]


@router.get("/contracts/{contract_id}")
def get_contract(
    contract_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    contract = services.contracts.get_contract(user_id, contract_id)
    return {**contract.to_dict(), "balance_due": contract.balance_due}


@router.put("/contracts/{contract_id}/status")
def update_contract_status(
    contract_id: str,
    body: StatusUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.contracts.update_contract_status(user_id, contract_id, body.status).to_dict()


@router.post("/contracts/{contract_id}/regenerate-total")
def regenerate_contract_total(
    contract_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.contracts.regenerate_contract_total(user_id, contract_id).to_dict()


@router.post("/contracts/{contract_id}/pdf")
def render_contract_pdf(
    contract_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.contracts.render_contract_pdf(user_id, contract_id).to_dict()


@router.post("/contracts/{contract_id}/start-job")
def start_job_from_contract(
    contract_id: str,
    response: Response,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    result = services.jobs.start_job_from_contract(user_id, contract_id)
    response.status_code = 201 if result.tasks_created else 200
    return {
        "tasks_created": result.tasks_created,
        "message": result.message,
        "tasks": [task.to_dict() for task in result.tasks],
    }
