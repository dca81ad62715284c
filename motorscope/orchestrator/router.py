"""
Orchestrator: routes timer, lifecycle and message events.

Entry points:
- on_alarm(name): "refresh" runs a pass, "auth-check" re-validates the session
- on_installed() / on_startup(): recover stale state, restore the session, arm timers
- handle_message(message): cross-context message protocol

``handle_message`` is the catch-all boundary: unexpected exceptions are
logged and turned into ``{"success": False, "error": ...}`` for
request/response messages, or None for fire-and-forget ones.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable

import structlog

from motorscope.auth.config import AuthConfig
from motorscope.auth.session import SessionStateMachine
from motorscope.backend.client import BackendClient
from motorscope.observability.logging import log_context
from motorscope.observability.metrics import get_metrics
from motorscope.orchestrator.alarms import AlarmScheduler
from motorscope.orchestrator.messages import (
    REQUEST_RESPONSE_TYPES,
    AlarmName,
    MessageType,
    parse_message_type,
)
from motorscope.orchestrator.state import OrchestratorState
from motorscope.refresh.pipeline import ItemOutcome, PassResult, RefreshPipeline
from motorscope.refresh.schedule import ScheduleStore, compute_next_run
from motorscope.refresh.schemas import utc_now
from motorscope.refresh.status import RefreshStatusStore

logger = structlog.get_logger(__name__)


class Orchestrator:
    """
    Wires timers, lifecycle events and messages to the session state machine
    and the refresh pipeline.

    Usage:
        orchestrator = Orchestrator(sessions, pipeline, alarms, status_store, schedule_store, backend)
        await orchestrator.on_startup()
        response = await orchestrator.handle_message({"type": "TRIGGER_MANUAL_REFRESH"})
    """

    def __init__(
        self,
        sessions: SessionStateMachine,
        pipeline: RefreshPipeline,
        alarms: AlarmScheduler,
        status_store: RefreshStatusStore,
        schedule_store: ScheduleStore,
        backend: BackendClient,
        auth_config: AuthConfig | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.sessions = sessions
        self.pipeline = pipeline
        self.alarms = alarms
        self.status_store = status_store
        self.schedule_store = schedule_store
        self.backend = backend
        self._auth_config = auth_config or AuthConfig()
        self._now = now
        self.state = OrchestratorState()
        self._metrics = get_metrics()

        self._handlers = {
            MessageType.TRIGGER_MANUAL_REFRESH: self._handle_manual_refresh,
            MessageType.RESCHEDULE_ALARM: self._handle_reschedule,
            MessageType.CLEAR_REFRESH_ERRORS: self._handle_clear_errors,
            MessageType.CHECK_AUTH: self._handle_check_auth,
            MessageType.TRY_SILENT_LOGIN: self._handle_try_silent_login,
            MessageType.INITIALIZE_ALARM: self._handle_initialize_alarm,
            MessageType.REFRESH_LISTING: self._handle_refresh_listing,
            MessageType.GET_TRACKED_URLS: self._handle_get_tracked_urls,
        }

        alarms.add_listener(self.on_alarm)

    # Lifecycle

    async def on_installed(self) -> None:
        """First run: recover stale state, restore the session, arm timers."""
        await self.status_store.recover_stale()
        await self.sessions.initialize()
        await self.initialize_alarm()
        self._mark_started()

    async def on_startup(self) -> None:
        """Process start: same as install, with a session re-validation."""
        await self.status_store.recover_stale()
        await self.sessions.initialize()
        await self.sessions.check_auth()
        await self.initialize_alarm()
        self._mark_started()

    async def shutdown(self) -> None:
        """Disarm timers and wait for spawned passes to finish."""
        await self.alarms.shutdown()
        if self.state.background_tasks:
            await asyncio.gather(*self.state.background_tasks, return_exceptions=True)
        logger.info("Orchestrator stopped")

    def _mark_started(self) -> None:
        self.state.initialized = True
        if self.state.started_at is None:
            self.state.started_at = self._now()

    # Timers

    async def on_alarm(self, name: str) -> None:
        self._metrics.record_alarm(name)
        with log_context(alarm=name):
            if name == AlarmName.REFRESH.value:
                await self.run_refresh_pass()
            elif name == AlarmName.AUTH_CHECK.value:
                await self.sessions.check_auth()
            else:
                logger.debug("Ignoring unknown alarm")

    async def initialize_alarm(self) -> None:
        """
        Arm both timers from the persisted schedule.

        With no local schedule, the schedule mirrored to the remote API is
        used. A next-run time already in the past triggers an immediate pass.
        Safe to call repeatedly.
        """
        self._arm_auth_check()

        schedule = await self.schedule_store.get()
        interval = schedule.interval_minutes if schedule else None
        next_run_at = schedule.next_fire_at if schedule else None

        if schedule is None:
            token = self.sessions.get_token()
            settings = await self.pipeline.load_settings(token)
            interval = settings.check_frequency_minutes
            next_run_at = settings.next_refresh_time
            if next_run_at is not None:
                logger.info("Restored refresh schedule from remote settings")

        interval = self.pipeline.clamp_interval(interval)
        now = self._now()

        if next_run_at is None:
            next_run_at = compute_next_run(now, interval)
            self._arm_refresh(interval, next_run_at)
            await self.pipeline.persist_schedule(interval, next_run_at)
            return

        if next_run_at > now:
            self._arm_refresh(interval, next_run_at)
            if schedule is None:
                await self.pipeline.persist_schedule(interval, next_run_at)
            logger.info("Refresh timer armed", next_run_at=next_run_at.isoformat())
            return

        logger.info("Scheduled refresh overdue, running now", next_run_at=next_run_at.isoformat())
        self._arm_refresh(interval, compute_next_run(now, interval))
        self.state.track(
            asyncio.create_task(self.run_refresh_pass(), name="overdue-refresh-pass")
        )

    async def reschedule(self, minutes: float | None = None) -> datetime:
        """Clear the refresh timer and re-arm it with a new (or the default) interval."""
        interval = self.pipeline.clamp_interval(minutes or None)

        self.alarms.clear(AlarmName.REFRESH.value)
        next_run_at = compute_next_run(self._now(), interval)
        self.alarms.create(
            AlarmName.REFRESH.value,
            delay_seconds=interval * 60,
            period_seconds=interval * 60,
        )
        await self.pipeline.persist_schedule(interval, next_run_at)
        logger.info("Refresh timer rescheduled", interval_minutes=interval)
        return next_run_at

    async def run_refresh_pass(self) -> PassResult:
        result = await self.pipeline.run_batch()
        self.state.last_pass = result
        if result.next_run_at is not None and result.interval_minutes is not None:
            self._arm_refresh(result.interval_minutes, result.next_run_at)
        return result

    def _arm_refresh(self, interval_minutes: float, next_run_at: datetime) -> None:
        self.alarms.clear(AlarmName.REFRESH.value)
        delay = (next_run_at - self._now()).total_seconds()
        self.alarms.create(
            AlarmName.REFRESH.value,
            delay_seconds=max(0.0, delay),
            period_seconds=interval_minutes * 60,
        )

    def _arm_auth_check(self) -> None:
        period = self._auth_config.check_interval_minutes * 60
        self.alarms.create(
            AlarmName.AUTH_CHECK.value,
            delay_seconds=period,
            period_seconds=period,
        )

    # Messages

    async def handle_message(self, message: Any) -> dict[str, Any] | None:
        message_type = parse_message_type(message)
        if message_type is None:
            raw_type = message.get("type") if isinstance(message, dict) else None
            logger.debug("Ignoring unknown message", message_type=raw_type)
            self._metrics.record_message(str(raw_type), "ignored")
            return None

        try:
            with log_context(message_type=message_type.value):
                response = await self._handlers[message_type](message)
        except Exception as e:
            logger.exception("Message handler failed", message_type=message_type.value)
            self._metrics.record_message(message_type.value, "error")
            if message_type in REQUEST_RESPONSE_TYPES:
                return {"success": False, "error": str(e)}
            return None

        self._metrics.record_message(message_type.value, "ok")
        return response

    async def _handle_manual_refresh(self, message: dict) -> dict[str, Any]:
        result = await self.run_refresh_pass()
        return {"success": True, "status": result.outcome.value}

    async def _handle_reschedule(self, message: dict) -> None:
        await self.reschedule(message.get("minutes"))

    async def _handle_clear_errors(self, message: dict) -> None:
        await self.status_store.clear_errors()

    async def _handle_check_auth(self, message: dict) -> None:
        await self.sessions.check_auth()

    async def _handle_try_silent_login(self, message: dict) -> None:
        await self.sessions.try_silent_login()

    async def _handle_initialize_alarm(self, message: dict) -> None:
        await self.initialize_alarm()

    async def _handle_refresh_listing(self, message: dict) -> dict[str, Any]:
        listing_id = message.get("listingId")
        if not listing_id:
            return {"success": False, "error": "listingId is required"}
        outcome = await self.pipeline.refresh_single(str(listing_id))
        return {"success": outcome is ItemOutcome.SUCCESS, "status": outcome.value}

    async def _handle_get_tracked_urls(self, message: dict) -> dict[str, Any]:
        token = self.sessions.get_token()
        if token is None:
            return {"success": False, "urls": [], "error": "Not authenticated"}
        listings = await self.backend.list_listings(token)
        return {"success": True, "urls": [listing.url for listing in listings]}
