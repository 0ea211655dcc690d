"""
Serves stored documents and recordings back to their owners.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from estimatix.domain.exceptions import NotFoundError
from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id

router = APIRouter()


@router.get("/files/{bucket}/{key:path}")
def get_file(
    bucket: str,
    key: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> FileResponse:
    """Keys are "<project_id>/..."; only the project owner may read them."""
    project_id = key.split("/", 1)[0]
    services.repo.owned_project(project_id, user_id)

    path = services.storage.resolve(bucket, key)
    if path is None:
        raise NotFoundError("File not found", entity_type="file", entity_id=f"{bucket}/{key}")
    media_type = "application/pdf" if path.suffix == ".pdf" else None
    return FileResponse(path, media_type=media_type, filename=path.name)
