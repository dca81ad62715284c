"""
Named wake-up timers on the asyncio loop.

Firing delivers only the alarm name to the registered listeners; the
orchestrator decides what to do with it. Listeners run in their own task,
so a listener may clear or re-create the alarm that woke it.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

import structlog

from motorscope.refresh.schemas import utc_now

logger = structlog.get_logger(__name__)

AlarmListener = Callable[[str], Awaitable[None]]


@dataclass
class Alarm:
    name: str
    scheduled_time: datetime
    period_seconds: float | None = None


class AlarmScheduler:
    """
    One-shot and recurring named alarms.

    Usage:
        alarms = AlarmScheduler()
        alarms.add_listener(orchestrator.on_alarm)
        alarms.create("refresh", delay_seconds=3600, period_seconds=3600)
    """

    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now
        self._alarms: dict[str, tuple[Alarm, asyncio.Task]] = {}
        self._listeners: list[AlarmListener] = []
        self._dispatches: set[asyncio.Task] = set()

    def add_listener(self, listener: AlarmListener) -> None:
        self._listeners.append(listener)

    def create(
        self,
        name: str,
        delay_seconds: float,
        period_seconds: float | None = None,
    ) -> Alarm:
        """Arm an alarm, replacing any alarm with the same name."""
        self.clear(name)
        delay_seconds = max(0.0, delay_seconds)
        alarm = Alarm(
            name=name,
            scheduled_time=self._now() + timedelta(seconds=delay_seconds),
            period_seconds=period_seconds,
        )
        task = asyncio.create_task(self._run(alarm, delay_seconds), name=f"alarm-{name}")
        self._alarms[name] = (alarm, task)
        logger.debug(
            "Alarm armed",
            alarm=name,
            delay_seconds=round(delay_seconds, 3),
            period_seconds=period_seconds,
        )
        return alarm

    def clear(self, name: str) -> bool:
        entry = self._alarms.pop(name, None)
        if entry is None:
            return False
        entry[1].cancel()
        logger.debug("Alarm cleared", alarm=name)
        return True

    def clear_all(self) -> None:
        for name in list(self._alarms):
            self.clear(name)

    def get(self, name: str) -> Alarm | None:
        entry = self._alarms.get(name)
        return entry[0] if entry else None

    def get_all(self) -> list[Alarm]:
        return [alarm for alarm, _ in self._alarms.values()]

    async def shutdown(self) -> None:
        """Cancel all alarms and wait for in-flight listener calls."""
        self.clear_all()
        if self._dispatches:
            await asyncio.gather(*self._dispatches, return_exceptions=True)

    async def _run(self, alarm: Alarm, delay_seconds: float) -> None:
        delay = delay_seconds
        while True:
            await asyncio.sleep(delay)
            if alarm.period_seconds is None:
                entry = self._alarms.get(alarm.name)
                if entry is not None and entry[0] is alarm:
                    del self._alarms[alarm.name]
                self._fire(alarm.name)
                return

            delay = alarm.period_seconds
            alarm.scheduled_time = self._now() + timedelta(seconds=delay)
            self._fire(alarm.name)

    def _fire(self, name: str) -> None:
        for listener in self._listeners:
            task = asyncio.create_task(listener(name), name=f"alarm-dispatch-{name}")
            self._dispatches.add(task)
            task.add_done_callback(self._dispatch_done)

    def _dispatch_done(self, task: asyncio.Task) -> None:
        self._dispatches.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Alarm listener failed", error=str(exc), exc_info=exc)
