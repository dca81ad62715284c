"""WebSocket event broadcaster with optional Redis pub/sub fan-out.

Broadcast notifications (AUTH_STATE_CHANGED, REFRESH_STATUS_CHANGED,
LISTING_UPDATED) are pushed to every connected UI. When started with a
Redis client, events go through the events channel so every API process
delivers them to its own clients; without Redis they are dispatched
in-process.

Pattern: Background subscriber task + per-client event-type filter.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "motorscope:events"


@dataclass
class ClientConnection:
    """A connected WebSocket client with an optional event-type filter."""

    ws: WebSocket
    event_types: frozenset[str] | None = None
    connected_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def wants(self, event_type: str) -> bool:
        return self.event_types is None or event_type in self.event_types


class EventBroadcaster:
    """Manages WebSocket connections and the optional Redis subscription.

    Lifecycle:
        1. ``start(redis_client)``: subscribe to the channel, spawn listener
           (``start(None)`` only runs heartbeats; events stay in-process)
        2. ``connect(ws, ...)`` / ``disconnect(ws)``: manage clients
        3. ``broadcast(event_type, data)``: publish or dispatch locally
        4. ``stop()``: cancel background tasks, close pub/sub
    """

    def __init__(
        self,
        max_connections: int = 50,
        heartbeat_interval: int = 30,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self._max_connections = max_connections
        self._heartbeat_interval = heartbeat_interval
        self._channel = channel
        self._clients: dict[WebSocket, ClientConnection] = {}
        self._subscriber_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._redis: Any | None = None
        self._pubsub: Any | None = None
        self._running = False

    @property
    def active_connections(self) -> int:
        """Number of currently connected WebSocket clients."""
        return len(self._clients)

    @property
    def uses_redis(self) -> bool:
        return self._pubsub is not None

    def connect(self, ws: WebSocket, event_types: set[str] | None = None) -> bool:
        """Register a new WebSocket client.

        Returns:
            True if registered, False if max connections reached.
        """
        if len(self._clients) >= self._max_connections:
            return False

        self._clients[ws] = ClientConnection(
            ws=ws,
            event_types=frozenset(event_types) if event_types else None,
        )
        logger.info(
            "WebSocket client connected (total=%d, event_types=%s)",
            len(self._clients), sorted(event_types) if event_types else "all",
        )
        return True

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket client."""
        removed = self._clients.pop(ws, None)
        if removed:
            logger.info(
                "WebSocket client disconnected (total=%d)", len(self._clients),
            )

    async def start(self, redis_client: Any | None = None) -> None:
        """Start the heartbeat task and, given a Redis client, the subscriber."""
        if self._running:
            return

        self._running = True

        if redis_client is not None:
            try:
                self._pubsub = redis_client.pubsub()
                await self._pubsub.subscribe(self._channel)
                self._redis = redis_client
                self._subscriber_task = asyncio.create_task(
                    self._listen(), name="event-broadcaster-listener",
                )
            except Exception as e:
                self._pubsub = None
                self._redis = None
                logger.error("Failed to subscribe to %s, dispatching locally: %s", self._channel, e)

        self._heartbeat_task = asyncio.create_task(
            self._send_heartbeats(), name="event-broadcaster-heartbeat",
        )
        logger.info(
            "EventBroadcaster started (channel=%s, redis=%s, heartbeat=%ds)",
            self._channel, self.uses_redis, self._heartbeat_interval,
        )

    async def stop(self) -> None:
        """Stop the subscriber and heartbeat tasks, close pub/sub."""
        self._running = False

        for task in (self._subscriber_task, self._heartbeat_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._subscriber_task = None
        self._heartbeat_task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self._channel)
                await self._pubsub.close()
            except Exception as e:
                logger.warning("Error closing pub/sub: %s", e)
            self._pubsub = None
        self._redis = None

        self._clients.clear()
        logger.info("EventBroadcaster stopped")

    async def broadcast(self, event_type: str, data: dict[str, Any]) -> None:
        """Send an event to all interested clients (via Redis when subscribed)."""
        payload = json.dumps({
            "type": event_type,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        if self._redis is not None:
            try:
                await self._redis.publish(self._channel, payload)
                return
            except Exception as e:
                logger.warning("Failed to publish %s, dispatching locally: %s", event_type, e)

        await self._dispatch_message(payload)

    async def _listen(self) -> None:
        """Relay events published on the channel to local clients."""
        while self._running:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0,
                )
            except asyncio.CancelledError:
                return
            except Exception as e:
                logger.warning("Pub/sub read failed on %s: %s", self._channel, e)
                await asyncio.sleep(1.0)
                continue

            if message and message.get("type") == "message":
                await self._dispatch_message(message["data"])

    async def _dispatch_message(self, raw_data: str | bytes) -> None:
        """Parse an event and send it to matching clients."""
        try:
            if isinstance(raw_data, bytes):
                raw_data = raw_data.decode("utf-8")
            payload = json.loads(raw_data)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Invalid broadcast message: %s", e)
            return

        event_type = payload.get("type", "")
        targets = [ws for ws, client in self._clients.items() if client.wants(event_type)]
        await self._deliver(targets, raw_data)

    async def _deliver(self, targets: list[WebSocket], text: str) -> None:
        """Send text to each target; clients that fail are dropped."""
        for ws in targets:
            try:
                await ws.send_text(text)
            except Exception:
                self.disconnect(ws)

    async def _send_heartbeats(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._heartbeat_interval)
            except asyncio.CancelledError:
                return
            if self._clients:
                heartbeat = json.dumps({
                    "type": "heartbeat",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })
                await self._deliver(list(self._clients), heartbeat)
