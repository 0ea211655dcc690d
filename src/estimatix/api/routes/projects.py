"""
Projects, estimates and profile routes.
"""
from fastapi import APIRouter, Depends, Response

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import ProfileUpdate, ProjectCreate, ProjectUpdate

router = APIRouter()


@router.post("/projects", status_code=201)
def create_project(
    body: ProjectCreate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    data = {k: v for k, v in body.changes().items() if v is not None}
    return services.projects.create_project(user_id, data).to_dict()


@router.get("/projects")
def list_projects(user_id: str = Depends(get_user_id), services: Services = Depends(get_services)) -> list[dict]:
    return [p.to_dict() for p in services.projects.list_projects(user_id)]


@router.get("/projects/{project_id}")
def get_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.projects.get_project(user_id, project_id).to_dict()


@router.patch("/projects/{project_id}")
def update_project(
    project_id: str,
    body: ProjectUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.projects.update_project(user_id, project_id, body.changes()).to_dict()


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    services.projects.delete_project(user_id, project_id)
    return Response(status_code=204)


@router.post("/projects/{project_id}/estimates", status_code=201)
def create_estimate(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.projects.create_estimate(user_id, project_id).to_dict()


@router.get("/projects/{project_id}/estimates")
def list_estimates(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [e.to_dict() for e in services.projects.list_estimates(user_id, project_id)]


@router.get("/profile")
def get_profile(user_id: str = Depends(get_user_id), services: Services = Depends(get_services)) -> dict | None:
    profile = services.projects.get_profile(user_id)
    return profile.to_dict() if profile else None


@router.put("/profile")
def upsert_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.projects.upsert_profile(user_id, body.changes()).to_dict()
