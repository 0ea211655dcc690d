"""
Estimate copilot chat routes.
"""
from fastapi import APIRouter, Depends

from estimatix.application.services import Services
from estimatix.api.dependencies import get_services, get_user_id
from estimatix.api.schemas import CopilotRequest

router = APIRouter()


@router.post("/projects/{project_id}/copilot")
def chat(
    project_id: str,
    body: CopilotRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> dict:
    history = [t.model_dump() for t in body.history] if body.history is not None else None
    return services.copilot.chat(user_id, project_id, body.message, history).to_dict()


@router.get("/projects/{project_id}/chat-messages")
def list_chat_messages(
    project_id: str,
    limit: int = 50,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
) -> list[dict]:
    return [m.to_dict() for m in services.copilot.list_chat_messages(user_id, project_id, limit)]
