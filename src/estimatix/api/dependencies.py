"""
Estimatix - FastAPI dependencies.
"""
from fastapi import Header, HTTPException, Request

from estimatix.application.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Authenticated user id from the X-User-Id header (401 when missing)."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
