"""WebSocket endpoint for orchestrator broadcasts.

Clients connect to ``/ws/events`` and receive AUTH_STATE_CHANGED,
REFRESH_STATUS_CHANGED and LISTING_UPDATED events as JSON. An optional
``types`` query parameter (comma-separated) limits the event types.

Auth is via ``api_key`` query parameter since browsers cannot set
custom headers on WebSocket upgrade requests.
"""

import json

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from motorscope.api.auth import is_valid_api_key
from motorscope.api.dependencies import get_broadcaster
from motorscope.config.settings import get_settings
from motorscope.orchestrator.messages import BroadcastEvent

router = APIRouter()

VALID_EVENT_TYPES = frozenset(event.value for event in BroadcastEvent)


@router.websocket("/ws/events")
async def ws_events(
    ws: WebSocket,
    types: str | None = Query(default=None),
    api_key: str | None = Query(default=None),
) -> None:
    settings = get_settings()

    if not settings.ws_events_enabled:
        await ws.close(code=1008, reason="WebSocket events not enabled")
        return

    if not is_valid_api_key(api_key):
        await ws.close(code=1008, reason="Invalid or missing API key")
        return

    event_types = {t.strip() for t in types.split(",") if t.strip()} if types else None
    if event_types and not event_types <= VALID_EVENT_TYPES:
        unknown = ", ".join(sorted(event_types - VALID_EVENT_TYPES))
        await ws.close(code=1008, reason=f"Invalid event type: {unknown}")
        return

    broadcaster = get_broadcaster()
    if broadcaster is None:
        await ws.close(code=1011, reason="Broadcaster not available")
        return

    await ws.accept()

    if not broadcaster.connect(ws, event_types=event_types):
        await ws.close(code=1008, reason="Max connections reached")
        return

    try:
        while True:
            try:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                    if msg.get("type") == "ping":
                        await ws.send_text(json.dumps({"type": "pong"}))
                except (json.JSONDecodeError, TypeError, AttributeError):
                    pass
            except WebSocketDisconnect:
                break
    finally:
        broadcaster.disconnect(ws)
