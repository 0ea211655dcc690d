"""
Room and selection routes.
"""
from fastapi import APIRouter, Depends, Response

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import (
    LinkLineItemRequest,
    RoomDimensions,
    RoomUpsert,
    ScopeToggle,
    SelectionPayload,
)

router = APIRouter()


# Rooms

@router.get("/projects/{project_id}/rooms")
def list_rooms(
    project_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [r.to_dict() for r in services.rooms.list_project_rooms(user_id, project_id)]


@router.post("/projects/{project_id}/rooms")
def upsert_room(
    project_id: str,
    body: RoomUpsert,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.rooms.upsert_room(user_id, project_id, body.changes()).to_dict()


@router.put("/rooms/{room_id}/dimensions")
def update_room_dimensions(
    room_id: str,
    body: RoomDimensions,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    room, updated = services.rooms.update_room_dimensions(
        user_id, room_id, body.length_ft, body.width_ft, body.ceiling_height_ft
    )
    return {"room": room.to_dict(), "line_items_updated": updated}


@router.put("/rooms/{room_id}/scope")
def toggle_room_scope(
    room_id: str,
    body: ScopeToggle,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.rooms.toggle_room_scope(user_id, room_id, body.is_in_scope).to_dict()


@router.delete("/rooms/{room_id}", status_code=204)
def delete_room(
    room_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    services.rooms.delete_room(user_id, room_id)
    return Response(status_code=204)


# Selections

@router.get("/projects/{project_id}/selections")
def list_selections(
    project_id: str,
    estimate_id: str | None = None,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [s.to_dict() for s in services.selections.list_selections(user_id, project_id, estimate_id)]


@router.post("/projects/{project_id}/selections", status_code=201)
def create_selection(
    project_id: str,
    body: SelectionPayload,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.selections.create_selection(user_id, project_id, body.changes()).to_dict()


@router.patch("/selections/{selection_id}")
def update_selection(
    selection_id: str,
    body: SelectionPayload,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.selections.update_selection(user_id, selection_id, body.changes()).to_dict()


@router.delete("/selections/{selection_id}", status_code=204)
def delete_selection(
    selection_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> Response:
    services.selections.delete_selection(user_id, selection_id)
    return Response(status_code=204)


@router.post("/selections/{selection_id}/link")
def link_line_item(
    selection_id: str,
    body: LinkLineItemRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return services.selections.link_line_item(user_id, selection_id, body.line_item_id).to_dict()


@router.post("/selections/{selection_id}/sync")
def sync_selection(
    selection_id: str,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    return {"line_items_updated": services.selections.sync_line_items_from_selection(user_id, selection_id)}
