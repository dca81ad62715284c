"""
Refresh pipeline.

Processes tracked listings one at a time:
1. Refuse to start while another pass is active (no-op)
2. Unauthenticated: skip the work but still schedule the next run
3. Filter and sort eligible listings, mark everything pending, persist
4. Refresh each listing; classify failures; a rate limit stops the pass
5. Persist completion and the next run time; mirror the schedule remotely

The persisted ``is_running`` flag is what UIs see; it is written before any
network call. Inside the process it is backed by an asyncio.Lock tested
without waiting, and across processes sharing one store by an atomic run
claim taken before the flag is read.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from motorscope.auth.session import SessionStateMachine
from motorscope.backend.client import BackendClient, BackendError
from motorscope.listings.refresher import ListingRefresher, mark_failed
from motorscope.listings.schemas import Listing
from motorscope.listings.sorter import filter_for_refresh, sort_by_refresh_priority
from motorscope.observability.metrics import get_metrics
from motorscope.observability.tracing import set_outcome, span
from motorscope.refresh.classifier import ErrorKind, classify
from motorscope.refresh.config import RefreshConfig
from motorscope.refresh.schedule import ScheduleStore, compute_next_run
from motorscope.refresh.schemas import (
    CompletedItem,
    ItemStatus,
    PendingItem,
    Progress,
    RefreshErrorInfo,
    RefreshStatus,
    ScheduleState,
    UserSettings,
    clamp_interval,
    utc_now,
)
from motorscope.refresh.status import RefreshStatusStore

logger = structlog.get_logger(__name__)

LISTING_UPDATED = "LISTING_UPDATED"

Broadcast = Callable[[str, dict[str, Any]], Awaitable[None]]


class PassOutcome(str, Enum):
    COMPLETED = "completed"
    RATE_LIMITED = "rate_limited"
    SKIPPED_RUNNING = "skipped_running"
    SKIPPED_UNAUTHENTICATED = "skipped_unauthenticated"
    FAILED = "failed"


class ItemOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    SKIPPED_RUNNING = "skipped_running"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"


@dataclass
class PassResult:
    outcome: PassOutcome
    refreshed: int = 0
    errors: int = 0
    next_run_at: datetime | None = None
    interval_minutes: float | None = None
    updated: list[Listing] = field(default_factory=list)


class RefreshPipeline:
    """
    Batch and single-listing refresh.

    Usage:
        pipeline = RefreshPipeline(sessions, backend, refresher, status_store, schedule_store)
        result = await pipeline.run_batch()
        if result.next_run_at:
            alarms.create("refresh", ...)
    """

    def __init__(
        self,
        sessions: SessionStateMachine,
        backend: BackendClient,
        refresher: ListingRefresher,
        status_store: RefreshStatusStore,
        schedule_store: ScheduleStore,
        config: RefreshConfig | None = None,
        broadcast: Broadcast | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], datetime] = utc_now,
    ):
        self._sessions = sessions
        self._backend = backend
        self._refresher = refresher
        self._status = status_store
        self._schedule = schedule_store
        self._config = config or RefreshConfig()
        self._broadcast = broadcast
        self._sleep = sleep
        self._now = now
        self._lock = asyncio.Lock()
        self._metrics = get_metrics()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def clamp_interval(self, minutes: Any) -> float:
        return clamp_interval(
            minutes,
            low=self._config.min_interval_minutes,
            high=self._config.max_interval_minutes,
            default=self._config.default_interval_minutes,
        )

    async def load_settings(self, token: str | None = None) -> UserSettings:
        """
        User settings from the remote API.

        Unauthenticated or on any failure: defaults, with the interval taken
        from the persisted schedule when one exists.
        """
        if token is not None:
            try:
                return await self._backend.get_user_settings(token)
            except Exception as e:
                logger.warning("Failed to load user settings, using defaults", error=str(e))

        schedule = await self._schedule.get()
        interval = schedule.interval_minutes if schedule else self._config.default_interval_minutes
        return UserSettings(
            check_frequency_minutes=self.clamp_interval(interval),
            ended_grace_period_days=self._config.ended_grace_period_days,
        )

    async def persist_schedule(
        self,
        interval_minutes: float,
        next_run_at: datetime,
        token: str | None = None,
        status: RefreshStatus | None = None,
    ) -> None:
        """
        Persist ScheduleState and status.next_run_at, then mirror to /settings.

        Pass ``status`` to update an in-flight snapshot instead of re-reading it.
        """
        await self._schedule.save(
            ScheduleState(interval_minutes=interval_minutes, next_fire_at=next_run_at)
        )

        if status is None:
            status = await self._status.get()
        status.next_run_at = next_run_at
        await self._status.save_fields(status)

        if token is None:
            token = self._sessions.get_token()
        if token is None:
            return

        payload: dict[str, Any] = {"nextRefreshTime": next_run_at.isoformat()}
        if status.last_run_at is not None:
            payload["lastRefreshTime"] = status.last_run_at.isoformat()
            payload["lastRefreshCount"] = status.last_run_count
        try:
            await self._backend.put_schedule(token, payload)
        except Exception as e:
            logger.warning("Failed to mirror refresh schedule", error=str(e))

    async def run_batch(self) -> PassResult:
        """Run one refresh pass over all eligible listings."""
        if self._lock.locked():
            return self._skip_running("Refresh already in progress, skipping")

        async with self._lock:
            claim = await self._status.claim_run(self._config.run_claim_ttl_seconds)
            if claim is None:
                return self._skip_running("Refresh claimed by another process, skipping")

            try:
                status = await self._status.get()
                if status.is_running:
                    return self._skip_running("Refresh already marked running, skipping")

                token = self._sessions.get_token()
                if token is None:
                    return await self._skip_unauthenticated(status)

                return await self._run_pass(token, status)
            finally:
                await self._status.release_run(claim)

    async def refresh_single(self, listing_id: str) -> ItemOutcome:
        """
        Refresh one listing on demand.

        Ignores the archived/ended filters. Skipped while a batch pass runs.
        """
        if self._lock.locked():
            logger.info("Batch refresh running, skipping single refresh", listing_id=listing_id)
            return ItemOutcome.SKIPPED_RUNNING

        async with self._lock:
            status = await self._status.get()
            if status.is_running:
                return ItemOutcome.SKIPPED_RUNNING

            token = self._sessions.get_token()
            if token is None:
                return ItemOutcome.UNAUTHENTICATED

            listings = await self._backend.list_listings(token)
            listing = next((item for item in listings if item.id == listing_id), None)
            if listing is None:
                logger.warning("Listing not found", listing_id=listing_id)
                return ItemOutcome.NOT_FOUND

            updated: list[Listing] = []
            outcome = await self._refresh_item(token, listing, status, updated)
            await self._status.save_fields(status)
            await self._notify_updated(updated)
            return outcome

    def _skip_running(self, reason: str) -> PassResult:
        logger.info(reason)
        self._metrics.record_pass(PassOutcome.SKIPPED_RUNNING.value)
        return PassResult(outcome=PassOutcome.SKIPPED_RUNNING)

    async def _skip_unauthenticated(self, status: RefreshStatus) -> PassResult:
        logger.info("Not authenticated, skipping refresh pass")
        settings = await self.load_settings(None)
        interval = settings.check_frequency_minutes
        next_run_at = compute_next_run(self._now(), interval)
        await self.persist_schedule(interval, next_run_at, status=status)
        self._metrics.record_pass(PassOutcome.SKIPPED_UNAUTHENTICATED.value)
        return PassResult(
            outcome=PassOutcome.SKIPPED_UNAUTHENTICATED,
            next_run_at=next_run_at,
            interval_minutes=interval,
        )

    async def _run_pass(self, token: str, status: RefreshStatus) -> PassResult:
        start_time = time.perf_counter()
        status.is_running = True
        status.progress = Progress()
        status.pending = []
        await self._status.save_fields(status)
        self._metrics.set_refresh_running(True)

        interval = self.clamp_interval(None)
        updated: list[Listing] = []
        refreshed = errors = 0
        outcome = PassOutcome.COMPLETED

        try:
            settings = await self.load_settings(token)
            interval = settings.check_frequency_minutes
            listings = await self._backend.list_listings(token)
            eligible = sort_by_refresh_priority(
                filter_for_refresh(listings, settings.ended_grace_period_days, now=self._now())
            )

            status.progress = Progress(current_index=0, total_count=len(eligible))
            status.pending = [
                PendingItem(id=item.id, title=item.title, url=item.url) for item in eligible
            ]
            await self._status.save_fields(status)
            logger.info("Refresh pass started", listing_count=len(eligible))

            with span("refresh_pass", listing_count=len(eligible)) as pass_span:
                for index, listing in enumerate(eligible):
                    status.progress.current_title = listing.title
                    status.set_pending_status(listing.id, ItemStatus.RUNNING)
                    await self._status.save_fields(status)

                    with span("refresh_item", listing_id=listing.id) as item_span:
                        item_outcome = await self._refresh_item(token, listing, status, updated)
                        set_outcome(item_span, item_outcome.value)
                    status.progress.current_index = index + 1
                    await self._status.save_fields(status)

                    if item_outcome is ItemOutcome.SUCCESS:
                        refreshed += 1
                    else:
                        errors += 1

                    if item_outcome is ItemOutcome.RATE_LIMITED:
                        outcome = PassOutcome.RATE_LIMITED
                        logger.warning(
                            "Rate limited, stopping refresh pass",
                            processed=index + 1,
                            remaining=len(eligible) - index - 1,
                        )
                        break

                    if index < len(eligible) - 1 and self._config.item_delay_seconds > 0:
                        await self._sleep(self._config.item_delay_seconds)

                set_outcome(pass_span, outcome.value)
        except Exception as e:
            logger.exception("Refresh pass failed")
            outcome = PassOutcome.FAILED
            if isinstance(e, BackendError) and e.is_auth_error:
                logger.warning("Remote API rejected the session token, renewing silently")
                await self._sessions.try_silent_login()

        delay_minutes = interval
        if outcome is PassOutcome.RATE_LIMITED and self._config.rate_limit_retry_minutes:
            delay_minutes = self._config.rate_limit_retry_minutes

        now = self._now()
        next_run_at = compute_next_run(now, delay_minutes)
        status.is_running = False
        status.last_run_at = now
        status.last_run_count = refreshed
        status.progress = Progress()
        await self.persist_schedule(interval, next_run_at, token=token, status=status)
        self._metrics.set_refresh_running(False)

        latency = time.perf_counter() - start_time
        self._metrics.record_pass(outcome.value, refreshed=refreshed, errors=errors, latency=latency)
        logger.info(
            "Refresh pass finished",
            outcome=outcome.value,
            refreshed=refreshed,
            errors=errors,
            next_run_at=next_run_at.isoformat(),
        )

        await self._notify_updated(updated)
        return PassResult(
            outcome=outcome,
            refreshed=refreshed,
            errors=errors,
            next_run_at=next_run_at,
            interval_minutes=interval,
            updated=updated,
        )

    async def _refresh_item(
        self,
        token: str,
        listing: Listing,
        status: RefreshStatus,
        updated: list[Listing],
    ) -> ItemOutcome:
        start_time = time.perf_counter()
        history_size = self._config.history_size

        try:
            result = await self._refresher.refresh(listing)
        except Exception as e:
            message = str(e) or type(e).__name__
            rate_limited = classify(e) is ErrorKind.RATE_LIMITED
            outcome = ItemOutcome.RATE_LIMITED if rate_limited else ItemOutcome.ERROR

            status.set_pending_status(listing.id, ItemStatus.ERROR, error=message, rate_limited=rate_limited)
            status.add_completed(
                CompletedItem(
                    id=listing.id,
                    title=listing.title,
                    url=listing.url,
                    status=ItemStatus.ERROR,
                    error=message,
                    rate_limited=rate_limited,
                ),
                limit=history_size,
            )
            await self._status.add_error(
                RefreshErrorInfo(id=listing.id, title=listing.title, url=listing.url, error=message),
                limit=history_size,
            )
            logger.warning(
                "Listing refresh failed",
                listing_id=listing.id,
                error=message,
                rate_limited=rate_limited,
            )
            if not rate_limited:
                await self._write_back(token, mark_failed(listing, message))
            self._metrics.record_item(outcome.value, latency=time.perf_counter() - start_time)
            return outcome

        status.set_pending_status(listing.id, ItemStatus.SUCCESS)
        status.add_completed(
            CompletedItem(
                id=listing.id,
                title=listing.title,
                url=listing.url,
                status=ItemStatus.SUCCESS,
            ),
            limit=history_size,
        )
        await self._write_back(token, result.listing)
        updated.append(result.listing)
        self._metrics.record_item(ItemOutcome.SUCCESS.value, latency=time.perf_counter() - start_time)
        return ItemOutcome.SUCCESS

    async def _write_back(self, token: str, listing: Listing) -> None:
        try:
            await self._backend.save_listing(token, listing)
        except Exception as e:
            logger.warning("Failed to save listing", listing_id=listing.id, error=str(e))

    async def _notify_updated(self, updated: list[Listing]) -> None:
        if not updated or self._broadcast is None:
            return
        try:
            await self._broadcast(LISTING_UPDATED, {"listingIds": [item.id for item in updated]})
        except Exception as e:
            logger.warning("Failed to broadcast listing update", error=str(e))
