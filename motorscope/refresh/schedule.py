"""Persisted refresh schedule."""

from datetime import datetime, timedelta

from motorscope.refresh.schemas import ScheduleState
from motorscope.storage import SCHEDULE_KEY, KeyValueStore


def compute_next_run(now: datetime, minutes: float) -> datetime:
    return now + timedelta(minutes=minutes)


class ScheduleStore:
    """Reads and writes the ScheduleState record."""

    def __init__(self, store: KeyValueStore, key: str = SCHEDULE_KEY):
        self._store = store
        self._key = key

    async def get(self) -> ScheduleState | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        return ScheduleState.model_validate_json(raw)

    async def save(self, state: ScheduleState) -> None:
        await self._store.set(self._key, state.model_dump_json(by_alias=True))
