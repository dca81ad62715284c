"""
Dependency injection for FastAPI endpoints.

The running ``OrchestratorService`` is registered by the app lifespan.
"""

from fastapi import HTTPException, status

from motorscope.orchestrator.broadcaster import EventBroadcaster
from motorscope.orchestrator.router import Orchestrator
from motorscope.orchestrator.service import OrchestratorService

_service: OrchestratorService | None = None


def set_service(service: OrchestratorService | None) -> None:
    """Set the module-level service (called during app startup/shutdown)."""
    global _service
    _service = service


async def get_service() -> OrchestratorService:
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Orchestrator not started",
        )
    return _service


async def get_orchestrator() -> Orchestrator:
    service = await get_service()
    return service.orchestrator


def get_broadcaster() -> EventBroadcaster | None:
    """Broadcaster of the running service, if any (WebSocket handlers cannot use Depends errors)."""
    return _service.broadcaster if _service is not None else None
