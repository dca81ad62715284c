"""
Health check endpoint for the orchestrator's dependencies.
"""

import time
from typing import Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends

from motorscope import __version__
from motorscope.api.dependencies import get_service
from motorscope.api.models import ComponentHealth, HealthResponse
from motorscope.orchestrator.service import OrchestratorService

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check(probe: Callable[[], Awaitable[bool]]) -> ComponentHealth:
    """Run a health probe and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await probe()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


@router.get("/health", response_model=HealthResponse)
async def health_check(
    service: OrchestratorService = Depends(get_service),
) -> HealthResponse:
    """Report store and remote API reachability. No API key required."""
    components = {
        "store": await _check(service.store.health_check),
        "backend": await _check(service.backend.health_check),
    }
    healthy = all(c.status == "healthy" for c in components.values())
    if not healthy:
        logger.warning("Health check degraded", components={k: v.status for k, v in components.items()})
    return HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        components=components,
    )
