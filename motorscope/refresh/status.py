"""Persisted refresh status snapshot."""

import uuid
from typing import Awaitable, Callable, Iterable

import structlog

from motorscope.refresh.schemas import (
    HISTORY_SIZE,
    ItemStatus,
    Progress,
    RefreshErrorInfo,
    RefreshStatus,
)
from motorscope.storage import REFRESH_STATUS_KEY, KeyValueStore

logger = structlog.get_logger(__name__)

StatusListener = Callable[[RefreshStatus], Awaitable[None]]

# Fields a refresh pass writes. recent_errors is not among them; errors are
# appended to the stored record with add_error().
PASS_FIELDS = (
    "last_run_at",
    "next_run_at",
    "last_run_count",
    "is_running",
    "progress",
    "pending",
    "recently_completed",
)

DEFAULT_CLAIM_TTL_SECONDS = 2 * 60 * 60


class RefreshStatusStore:
    """
    Reads and writes the RefreshStatus record.

    Every write calls ``on_change`` with the saved snapshot (used to
    broadcast REFRESH_STATUS_CHANGED). Passes write only their own fields
    through ``save_fields``; whole-record ``save`` is for recovery and seeding.

    Across processes sharing one store, a pass first takes the run claim
    (an atomic set-if-absent with a TTL) before marking ``is_running``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        on_change: StatusListener | None = None,
        key: str = REFRESH_STATUS_KEY,
    ):
        self._store = store
        self._key = key
        self._claim_key = f"{key}:claim"
        self.on_change = on_change

    async def get(self) -> RefreshStatus:
        raw = await self._store.get(self._key)
        if raw is None:
            return RefreshStatus()
        return RefreshStatus.model_validate_json(raw)

    async def save(self, status: RefreshStatus) -> None:
        await self._store.set(self._key, status.model_dump_json(by_alias=True))
        if self.on_change is None:
            return
        try:
            await self.on_change(status.model_copy(deep=True))
        except Exception as e:
            logger.warning("Refresh status listener failed", error=str(e))

    async def save_fields(
        self,
        status: RefreshStatus,
        fields: Iterable[str] = PASS_FIELDS,
    ) -> RefreshStatus:
        """Copy ``fields`` from an in-flight snapshot onto the stored record."""
        current = await self.get()
        merged = current.model_copy(
            update={name: getattr(status, name) for name in fields},
            deep=True,
        )
        await self.save(merged)
        return merged

    async def add_error(self, error: RefreshErrorInfo, limit: int = HISTORY_SIZE) -> None:
        status = await self.get()
        status.add_error(error, limit=limit)
        await self.save(status)

    async def clear_errors(self) -> None:
        status = await self.get()
        status.recent_errors = []
        await self.save(status)

    async def claim_run(self, ttl_seconds: float = DEFAULT_CLAIM_TTL_SECONDS) -> str | None:
        """Take the cross-process run claim. Returns a release token, or None if held."""
        token = uuid.uuid4().hex
        if await self._store.set_if_absent(self._claim_key, token, ttl_seconds):
            return token
        return None

    async def release_run(self, token: str) -> None:
        if await self._store.get(self._claim_key) == token:
            await self._store.delete(self._claim_key)

    async def recover_stale(self) -> bool:
        """
        Reset a run left behind by a process that died mid-pass.

        Returns True if anything was reset.
        """
        status = await self.get()
        stuck = [item for item in status.pending if item.status is ItemStatus.RUNNING]
        if not status.is_running and not stuck:
            return False

        for item in stuck:
            item.status = ItemStatus.PENDING
        status.is_running = False
        status.progress = Progress()
        await self.save(status)
        await self._store.delete(self._claim_key)
        logger.warning("Recovered stale refresh state", stuck_items=len(stuck))
        return True
