"""
Estimatix - FastAPI Application

Run with: uvicorn estimatix.api.main:create_app --factory
"""
import logging
import os

from fastapi import FastAPI

from estimatix import __version__
from estimatix.application.services import Services
from estimatix.api.errors import register_error_handlers
from estimatix.api.routes import (
    billing,
    copilot,
    documents,
    estimates,
    files,
    plans,
    projects,
    recordings,
    rooms,
)

logger = logging.getLogger(__name__)

ROUTERS = [
    (projects.router, "Projects"),
    (estimates.router, "Estimates"),
    (rooms.router, "Rooms"),
    (recordings.router, "Recordings"),
    (plans.router, "Plans"),
    (copilot.router, "Copilot"),
    (documents.router, "Documents"),
    (billing.router, "Billing"),
    (files.router, "Files"),
]


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Pre-built service container (None = PostgreSQL-backed from environment)
    """
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if services is None:
        from estimatix.infrastructure.factory import create_services

        services = create_services()

    app = FastAPI(
        title="Estimatix",
        description="Voice-driven estimating, proposals, contracts and billing for contractors",
        version=__version__,
    )
    app.state.services = services
    register_error_handlers(app)

    for router, tag in ROUTERS:
        app.include_router(router, prefix="/api", tags=[tag])

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok"}

    logger.info(f"🚀 Estimatix API v{__version__} ready")
    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        "estimatix.api.main:create_app",
        factory=True,
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
