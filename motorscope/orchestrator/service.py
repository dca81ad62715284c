"""
Assembly of a running orchestrator.

``OrchestratorService`` builds every component from settings, owns their
connections, and exposes start/stop for the API lifespan and the CLI.
"""

from typing import Any, Callable

import structlog

from motorscope.auth.broker import DeviceCode, IdentityBroker, OAuthDeviceBroker
from motorscope.auth.config import AuthConfig
from motorscope.auth.session import SessionStateMachine
from motorscope.auth.storage import CredentialStore
from motorscope.backend.client import BackendClient
from motorscope.config.settings import Settings, get_settings
from motorscope.listings.extraction import Extractor, HTTPExtractor
from motorscope.listings.fetcher import PageFetcher
from motorscope.listings.refresher import ListingRefresher
from motorscope.orchestrator.alarms import AlarmScheduler
from motorscope.orchestrator.broadcaster import EventBroadcaster
from motorscope.orchestrator.messages import BroadcastEvent
from motorscope.orchestrator.router import Orchestrator
from motorscope.refresh.config import RefreshConfig
from motorscope.refresh.pipeline import RefreshPipeline
from motorscope.refresh.schedule import ScheduleStore
from motorscope.refresh.schemas import RefreshStatus
from motorscope.refresh.status import RefreshStatusStore
from motorscope.storage import KeyValueStore, RedisKeyValueStore

logger = structlog.get_logger(__name__)


class OrchestratorService:
    """
    Owns the orchestrator and its collaborators.

    Usage:
        service = OrchestratorService()
        await service.start()
        ...
        await service.stop()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: KeyValueStore | None = None,
        broker: IdentityBroker | None = None,
        backend: BackendClient | None = None,
        extractor: Extractor | None = None,
        auth_config: AuthConfig | None = None,
        refresh_config: RefreshConfig | None = None,
        on_user_code: Callable[[DeviceCode], None] | None = None,
    ):
        self.settings = settings or get_settings()
        self.auth_config = auth_config or AuthConfig()
        self.refresh_config = refresh_config or RefreshConfig()
        self._owned: list[Any] = []

        self.store = store or RedisKeyValueStore()
        self.broadcaster = EventBroadcaster(
            max_connections=self.settings.ws_max_connections,
            heartbeat_interval=self.settings.ws_heartbeat_interval,
            channel=self.settings.redis_events_channel,
        )

        self.backend = backend or BackendClient()
        if broker is None:
            broker = OAuthDeviceBroker(self.store, self.auth_config, on_user_code=on_user_code)
            self._owned.append(broker)
        self.broker = broker

        if extractor is None:
            extractor = HTTPExtractor()
            self._owned.append(extractor)
        self.fetcher = PageFetcher(timeout=self.settings.http_timeout_seconds)
        self._owned.append(self.fetcher)

        self.sessions = SessionStateMachine(
            CredentialStore(self.store),
            self.broker,
            self.backend,
            config=self.auth_config,
            broadcast=self.broadcaster.broadcast,
        )
        self.status_store = RefreshStatusStore(self.store, on_change=self._on_status_change)
        self.schedule_store = ScheduleStore(self.store)
        self.pipeline = RefreshPipeline(
            self.sessions,
            self.backend,
            ListingRefresher(self.fetcher, extractor),
            self.status_store,
            self.schedule_store,
            config=self.refresh_config,
            broadcast=self.broadcaster.broadcast,
        )
        self.alarms = AlarmScheduler()
        self.orchestrator = Orchestrator(
            self.sessions,
            self.pipeline,
            self.alarms,
            self.status_store,
            self.schedule_store,
            self.backend,
            auth_config=self.auth_config,
        )

    async def _on_status_change(self, status: RefreshStatus) -> None:
        await self.broadcaster.broadcast(
            BroadcastEvent.REFRESH_STATUS_CHANGED.value, status.to_wire()
        )

    async def connect(self) -> None:
        """Open store and backend connections without starting timers."""
        await self.store.connect()
        await self.backend.connect()

    async def start(self, installed: bool = False) -> None:
        """Connect, start broadcasting and run the install or startup routine."""
        await self.connect()
        redis_client = self.store.client if isinstance(self.store, RedisKeyValueStore) else None
        await self.broadcaster.start(redis_client)

        if installed:
            await self.orchestrator.on_installed()
        else:
            await self.orchestrator.on_startup()
        logger.info("Orchestrator started", installed=installed)

    async def stop(self) -> None:
        await self.orchestrator.shutdown()
        await self.broadcaster.stop()
        for component in self._owned:
            await component.close()
        await self.backend.close()
        await self.store.close()
