"""
Cross-context message endpoint.

``POST /messages`` accepts the same JSON messages a UI would send to the
orchestrator (``{"type": "TRIGGER_MANUAL_REFRESH"}``, ...) and returns the
handler's response, or null for fire-and-forget and unknown messages.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends

from motorscope.api.auth import verify_api_key
from motorscope.api.dependencies import get_orchestrator
from motorscope.orchestrator.router import Orchestrator

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post("/messages")
async def post_message(
    message: Any = Body(...),
    orchestrator: Orchestrator = Depends(get_orchestrator),
    _api_key: str = Depends(verify_api_key),
) -> dict[str, Any] | None:
    """Route one message through the orchestrator."""
    return await orchestrator.handle_message(message)
