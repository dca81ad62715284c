"""Tests for the refresh pipeline."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from motorscope.backend.client import BackendError
from motorscope.listings.errors import ExtractionError, ItemRefreshError
from motorscope.listings.refresher import RefreshResult
from motorscope.listings.schemas import LastRefreshStatus
from motorscope.refresh.config import RefreshConfig
from motorscope.refresh.pipeline import (
    LISTING_UPDATED,
    ItemOutcome,
    PassOutcome,
    RefreshPipeline,
)
from motorscope.refresh.schedule import ScheduleStore
from motorscope.refresh.schemas import (
    ItemStatus,
    RefreshErrorInfo,
    RefreshStatus,
    ScheduleState,
    UserSettings,
)
from motorscope.refresh.status import RefreshStatusStore

NOW = datetime(2025, 10, 10, 12, 0, tzinfo=timezone.utc)


def ok(listing):
    return RefreshResult(
        listing=listing.model_copy(update={"last_refresh_status": LastRefreshStatus.SUCCESS})
    )


@pytest.fixture
def listings(listing_factory):
    return [listing_factory(f"l{i}") for i in range(5)]


@pytest.fixture
def sessions():
    sessions = MagicMock()
    sessions.get_token.return_value = "session-token"
    return sessions


@pytest.fixture
def backend(listings):
    backend = AsyncMock()
    backend.list_listings.return_value = listings
    backend.get_user_settings.return_value = UserSettings(check_frequency_minutes=30)
    return backend


@pytest.fixture
def refresher():
    refresher = AsyncMock()
    refresher.refresh.side_effect = ok
    return refresher


@pytest.fixture
def status_store(memory_store):
    return RefreshStatusStore(memory_store)


@pytest.fixture
def schedule_store(memory_store):
    return ScheduleStore(memory_store)


@pytest.fixture
def broadcast():
    return AsyncMock()


@pytest.fixture
def build(sessions, backend, refresher, status_store, schedule_store, broadcast):
    def _build(**config):
        config.setdefault("item_delay_seconds", 2.0)
        return RefreshPipeline(
            sessions,
            backend,
            refresher,
            status_store,
            schedule_store,
            config=RefreshConfig(**config),
            broadcast=broadcast,
            sleep=AsyncMock(),
            now=lambda: NOW,
        )

    return _build


class TestRunBatch:
    """Test a full refresh pass."""

    @pytest.mark.asyncio
    async def test_completed_pass(self, build, backend, status_store, schedule_store, broadcast):
        pipeline = build()

        result = await pipeline.run_batch()

        assert result.outcome is PassOutcome.COMPLETED
        assert result.refreshed == 5
        assert result.errors == 0
        assert result.next_run_at == NOW + timedelta(minutes=30)
        assert backend.save_listing.await_count == 5

        status = await status_store.get()
        assert status.is_running is False
        assert status.last_run_at == NOW
        assert status.last_run_count == 5
        assert status.next_run_at == NOW + timedelta(minutes=30)
        assert [item.status for item in status.pending] == [ItemStatus.SUCCESS] * 5
        assert status.progress.current_index == 0

        schedule = await schedule_store.get()
        assert schedule == ScheduleState(interval_minutes=30, next_fire_at=NOW + timedelta(minutes=30))

        broadcast.assert_awaited_once_with(
            LISTING_UPDATED, {"listingIds": ["l0", "l1", "l2", "l3", "l4"]}
        )

    @pytest.mark.asyncio
    async def test_delay_between_items(self, build):
        pipeline = build(item_delay_seconds=1.5)

        await pipeline.run_batch()

        assert [c.args[0] for c in pipeline._sleep.await_args_list] == [1.5] * 4

    @pytest.mark.asyncio
    async def test_progress_only_grows(self, build, status_store):
        snapshots = []
        status_store.on_change = AsyncMock(side_effect=lambda s: snapshots.append(s))

        await build().run_batch()

        running = [s for s in snapshots if s.is_running and s.pending]
        indexes = [s.progress.current_index for s in running]
        assert indexes == sorted(indexes)
        assert indexes[-1] == 5
        assert all(s.progress.total_count == 5 for s in running)
        assert snapshots[-1].is_running is False

    @pytest.mark.asyncio
    async def test_rate_limit_stops_pass(self, build, backend, refresher, status_store, listings):
        """A 429 on the second of five items leaves the rest pending."""

        async def refresh(listing):
            if listing.id == "l1":
                raise ExtractionError(
                    "Extraction failed with status 429: Too Many Requests", status_code=429
                )
            return ok(listing)

        refresher.refresh.side_effect = refresh

        result = await build().run_batch()

        assert result.outcome is PassOutcome.RATE_LIMITED
        assert result.refreshed == 1
        assert result.errors == 1
        assert refresher.refresh.await_count == 2

        status = await status_store.get()
        assert [item.status for item in status.pending] == [
            ItemStatus.SUCCESS,
            ItemStatus.ERROR,
            ItemStatus.PENDING,
            ItemStatus.PENDING,
            ItemStatus.PENDING,
        ]
        assert status.pending[1].rate_limited is True
        assert status.recent_errors[0].id == "l1"
        assert status.recently_completed[0].rate_limited is True
        assert status.is_running is False

        saved_ids = [c.args[1].id for c in backend.save_listing.await_args_list]
        assert saved_ids == ["l0"]

    @pytest.mark.asyncio
    async def test_rate_limit_retry_interval(self, build, refresher):
        refresher.refresh.side_effect = ExtractionError("quota exceeded")

        result = await build(rate_limit_retry_minutes=5).run_batch()

        assert result.outcome is PassOutcome.RATE_LIMITED
        assert result.next_run_at == NOW + timedelta(minutes=5)
        assert result.interval_minutes == 30

    @pytest.mark.asyncio
    async def test_item_error_continues(self, build, backend, refresher, status_store):
        async def refresh(listing):
            if listing.id == "l2":
                raise ItemRefreshError("HTTP 500", status_code=500)
            return ok(listing)

        refresher.refresh.side_effect = refresh

        result = await build().run_batch()

        assert result.outcome is PassOutcome.COMPLETED
        assert result.refreshed == 4
        assert result.errors == 1

        failed = [
            c.args[1]
            for c in backend.save_listing.await_args_list
            if c.args[1].id == "l2"
        ]
        assert failed[0].last_refresh_status is LastRefreshStatus.ERROR
        assert failed[0].last_refresh_error == "HTTP 500"

        status = await status_store.get()
        assert status.pending[2].status is ItemStatus.ERROR
        assert status.pending[2].rate_limited is False

    @pytest.mark.asyncio
    async def test_filters_and_sorts(self, build, backend, refresher, listing_factory):
        backend.list_listings.return_value = [
            listing_factory("seen"),
            listing_factory("archived", isArchived=True),
            listing_factory("never", last_seen_at=None),
            listing_factory("ended", status="ENDED", statusChangedAt="2025-01-01T00:00:00+00:00"),
        ]

        await build().run_batch()

        assert [c.args[0].id for c in refresher.refresh.await_args_list] == ["never", "seen"]

    @pytest.mark.asyncio
    async def test_listing_fetch_failure(self, build, backend, status_store):
        backend.list_listings.side_effect = RuntimeError("backend down")

        result = await build().run_batch()

        assert result.outcome is PassOutcome.FAILED
        assert result.next_run_at == NOW + timedelta(minutes=30)
        assert (await status_store.get()).is_running is False

    @pytest.mark.asyncio
    async def test_rejected_token_triggers_silent_renewal(self, build, sessions, backend):
        sessions.try_silent_login = AsyncMock(return_value=True)
        backend.list_listings.side_effect = BackendError("Unauthorized", status_code=401)

        result = await build().run_batch()

        assert result.outcome is PassOutcome.FAILED
        sessions.try_silent_login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_error_does_not_renew(self, build, sessions, backend):
        sessions.try_silent_login = AsyncMock()
        backend.list_listings.side_effect = BackendError("Boom", status_code=500)

        await build().run_batch()

        sessions.try_silent_login.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_settings_failure_uses_defaults(self, build, backend):
        backend.get_user_settings.side_effect = RuntimeError("settings down")

        result = await build().run_batch()

        assert result.outcome is PassOutcome.COMPLETED
        assert result.interval_minutes == 60.0

    @pytest.mark.asyncio
    async def test_mirrors_schedule_remotely(self, build, backend):
        await build().run_batch()

        token, payload = backend.put_schedule.await_args.args
        assert token == "session-token"
        assert payload == {
            "nextRefreshTime": (NOW + timedelta(minutes=30)).isoformat(),
            "lastRefreshTime": NOW.isoformat(),
            "lastRefreshCount": 5,
        }

    @pytest.mark.asyncio
    async def test_mirror_failure_is_ignored(self, build, backend, status_store):
        backend.put_schedule.side_effect = RuntimeError("down")

        result = await build().run_batch()

        assert result.outcome is PassOutcome.COMPLETED
        assert (await status_store.get()).last_run_count == 5


class TestSkips:
    """Test passes that do no work."""

    @pytest.mark.asyncio
    async def test_persisted_running_flag_is_noop(self, build, backend, refresher, status_store):
        await status_store.save(RefreshStatus(is_running=True))

        result = await build().run_batch()

        assert result.outcome is PassOutcome.SKIPPED_RUNNING
        backend.list_listings.assert_not_awaited()
        refresher.refresh.assert_not_awaited()
        assert (await status_store.get()).is_running is True

    @pytest.mark.asyncio
    async def test_concurrent_trigger_is_noop(self, build, backend, refresher, listing_factory):
        """A second trigger while a pass is active does not start another."""
        backend.list_listings.return_value = [listing_factory("slow")]
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(listing):
            started.set()
            await release.wait()
            return ok(listing)

        refresher.refresh.side_effect = slow
        pipeline = build()

        first = asyncio.create_task(pipeline.run_batch())
        await started.wait()
        assert pipeline.is_running

        second = await pipeline.run_batch()
        single = await pipeline.refresh_single("slow")
        release.set()
        first_result = await first

        assert second.outcome is PassOutcome.SKIPPED_RUNNING
        assert single is ItemOutcome.SKIPPED_RUNNING
        assert first_result.outcome is PassOutcome.COMPLETED
        assert backend.list_listings.await_count == 1
        assert refresher.refresh.await_count == 1

    @pytest.mark.asyncio
    async def test_unauthenticated_still_schedules(
        self, build, sessions, backend, status_store, schedule_store
    ):
        sessions.get_token.return_value = None
        await schedule_store.save(ScheduleState(interval_minutes=45))

        result = await build().run_batch()

        assert result.outcome is PassOutcome.SKIPPED_UNAUTHENTICATED
        assert result.next_run_at == NOW + timedelta(minutes=45)
        backend.list_listings.assert_not_awaited()
        backend.put_schedule.assert_not_awaited()
        assert (await status_store.get()).next_run_at == NOW + timedelta(minutes=45)
        assert (await schedule_store.get()).next_fire_at == NOW + timedelta(minutes=45)


class TestCrossProcessExclusion:
    """Test passes from separate processes sharing one store."""

    def _other_process(self, memory_store, sessions, backend, refresher):
        return RefreshPipeline(
            sessions,
            backend,
            refresher,
            RefreshStatusStore(memory_store),
            ScheduleStore(memory_store),
            config=RefreshConfig(item_delay_seconds=0),
            sleep=AsyncMock(),
            now=lambda: NOW,
        )

    @pytest.mark.asyncio
    async def test_second_process_skips_while_first_loads(
        self, build, memory_store, sessions, backend, refresher, listings
    ):
        loading = asyncio.Event()
        release = asyncio.Event()

        async def gated_list(token):
            loading.set()
            await release.wait()
            return listings

        backend.list_listings.side_effect = gated_list
        first = asyncio.create_task(build().run_batch())
        await loading.wait()

        second = await self._other_process(memory_store, sessions, backend, refresher).run_batch()
        release.set()
        first_result = await first

        assert second.outcome is PassOutcome.SKIPPED_RUNNING
        assert first_result.outcome is PassOutcome.COMPLETED
        assert backend.list_listings.await_count == 1

    @pytest.mark.asyncio
    async def test_running_flag_persisted_before_network(self, build, backend, status_store):
        seen = []

        async def settings_call(token):
            seen.append((await status_store.get()).is_running)
            return UserSettings(check_frequency_minutes=30)

        backend.get_user_settings.side_effect = settings_call

        await build().run_batch()

        assert seen == [True]
        assert (await status_store.get()).is_running is False

    @pytest.mark.asyncio
    async def test_claim_released_after_each_pass(
        self, build, memory_store, sessions, backend, refresher
    ):
        backend.list_listings.side_effect = [RuntimeError("backend down"), []]

        failed = await build().run_batch()
        other = await self._other_process(memory_store, sessions, backend, refresher).run_batch()

        assert failed.outcome is PassOutcome.FAILED
        assert other.outcome is PassOutcome.COMPLETED


class TestErrorsClearedMidPass:
    @pytest.mark.asyncio
    async def test_clear_during_pass_is_kept(self, build, refresher, status_store):
        await status_store.save(
            RefreshStatus(
                recent_errors=[RefreshErrorInfo(id="old", title="Old", url="u", error="HTTP 500")],
            )
        )

        async def clear_then_ok(listing):
            if listing.id == "l0":
                await status_store.clear_errors()
            return ok(listing)

        refresher.refresh.side_effect = clear_then_ok

        await build().run_batch()

        assert (await status_store.get()).recent_errors == []

    @pytest.mark.asyncio
    async def test_errors_after_clear_are_recorded(self, build, refresher, status_store):
        await status_store.save(
            RefreshStatus(
                recent_errors=[RefreshErrorInfo(id="old", title="Old", url="u", error="HTTP 500")],
            )
        )

        async def clear_then_fail(listing):
            if listing.id == "l0":
                await status_store.clear_errors()
            if listing.id == "l1":
                raise ItemRefreshError("HTTP 500")
            return ok(listing)

        refresher.refresh.side_effect = clear_then_fail

        await build().run_batch()

        assert [e.id for e in (await status_store.get()).recent_errors] == ["l1"]


class TestRefreshSingle:
    @pytest.mark.asyncio
    async def test_success(self, build, backend, refresher, broadcast, status_store):
        outcome = await build().refresh_single("l3")

        assert outcome is ItemOutcome.SUCCESS
        assert refresher.refresh.await_args.args[0].id == "l3"
        broadcast.assert_awaited_once_with(LISTING_UPDATED, {"listingIds": ["l3"]})
        assert (await status_store.get()).recently_completed[0].id == "l3"

    @pytest.mark.asyncio
    async def test_ignores_filters(self, build, backend, refresher, listing_factory):
        backend.list_listings.return_value = [listing_factory("archived", isArchived=True)]

        assert await build().refresh_single("archived") is ItemOutcome.SUCCESS

    @pytest.mark.asyncio
    async def test_not_found(self, build, refresher):
        assert await build().refresh_single("missing") is ItemOutcome.NOT_FOUND
        refresher.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unauthenticated(self, build, sessions, backend):
        sessions.get_token.return_value = None

        assert await build().refresh_single("l0") is ItemOutcome.UNAUTHENTICATED
        backend.list_listings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limited(self, build, refresher, backend):
        refresher.refresh.side_effect = ExtractionError("status 429", status_code=429)

        assert await build().refresh_single("l0") is ItemOutcome.RATE_LIMITED
        backend.save_listing.assert_not_awaited()


class TestScheduleHelpers:
    @pytest.mark.asyncio
    async def test_load_settings_without_token(self, build, backend, schedule_store):
        await schedule_store.save(ScheduleState(interval_minutes=15))

        settings = await build().load_settings(None)

        assert settings.check_frequency_minutes == 15
        backend.get_user_settings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_load_settings_default(self, build):
        settings = await build(default_interval_minutes=90).load_settings(None)

        assert settings.check_frequency_minutes == 90

    def test_clamp_interval_uses_config(self, build):
        pipeline = build(min_interval_minutes=5, max_interval_minutes=120)

        assert pipeline.clamp_interval(1) == 5
        assert pipeline.clamp_interval(500) == 120
        assert pipeline.clamp_interval(None) == 60
