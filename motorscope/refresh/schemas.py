"""
Refresh status, schedule and user settings records.

The status snapshot is what open UIs render; its wire form (camelCase) is
what gets persisted and broadcast as REFRESH_STATUS_CHANGED.
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from motorscope.listings.sorter import (
    DEFAULT_ENDED_GRACE_PERIOD_DAYS as DEFAULT_GRACE_PERIOD_DAYS,
    clamp_grace_period,
)

DEFAULT_INTERVAL_MINUTES = 60.0
MIN_INTERVAL_MINUTES = 10 / 60  # 10 seconds
MAX_INTERVAL_MINUTES = 43200.0  # 30 days
HISTORY_SIZE = 50


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def clamp_interval(
    minutes: Any,
    low: float = MIN_INTERVAL_MINUTES,
    high: float = MAX_INTERVAL_MINUTES,
    default: float = DEFAULT_INTERVAL_MINUTES,
) -> float:
    """Clamp a refresh interval; non-numeric or NaN input falls back to the default."""
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or math.isnan(minutes):
        minutes = default
    return float(min(high, max(low, minutes)))


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ItemStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class PendingItem(_WireModel):
    id: str
    title: str
    url: str
    status: ItemStatus = ItemStatus.PENDING
    error: str | None = None
    rate_limited: bool = False


class CompletedItem(_WireModel):
    id: str
    title: str
    url: str
    status: ItemStatus
    timestamp: datetime = Field(default_factory=utc_now)
    error: str | None = None
    rate_limited: bool = False


class RefreshErrorInfo(_WireModel):
    id: str
    title: str
    url: str
    error: str
    timestamp: datetime = Field(default_factory=utc_now)


class Progress(_WireModel):
    current_index: int = 0
    total_count: int = 0
    current_title: str | None = None


class RefreshStatus(_WireModel):
    """
    Snapshot of refresh activity.

    ``is_running`` is true exactly while one pass is active.
    ``progress.current_index`` only grows within a pass and is reset at
    pass start. The two history lists are most-recent-first ring buffers.
    """

    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_run_count: int = 0
    is_running: bool = False
    progress: Progress = Field(default_factory=Progress)
    pending: list[PendingItem] = Field(default_factory=list)
    recently_completed: list[CompletedItem] = Field(default_factory=list)
    recent_errors: list[RefreshErrorInfo] = Field(default_factory=list)

    def add_completed(self, item: CompletedItem, limit: int = HISTORY_SIZE) -> None:
        self.recently_completed = [item, *self.recently_completed][:limit]

    def add_error(self, error: RefreshErrorInfo, limit: int = HISTORY_SIZE) -> None:
        self.recent_errors = [error, *self.recent_errors][:limit]

    def set_pending_status(
        self,
        item_id: str,
        status: ItemStatus,
        error: str | None = None,
        rate_limited: bool = False,
    ) -> None:
        for item in self.pending:
            if item.id == item_id:
                item.status = status
                item.error = error
                item.rate_limited = rate_limited

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ScheduleState(_WireModel):
    interval_minutes: float = DEFAULT_INTERVAL_MINUTES
    next_fire_at: datetime | None = None


class UserSettings(BaseModel):
    """User preferences read from the remote API's /settings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    check_frequency_minutes: float = Field(
        default=DEFAULT_INTERVAL_MINUTES, alias="checkFrequencyMinutes"
    )
    ended_grace_period_days: int = Field(
        default=DEFAULT_GRACE_PERIOD_DAYS, alias="endedListingGracePeriodDays"
    )
    last_refresh_time: datetime | None = Field(default=None, alias="lastRefreshTime")
    next_refresh_time: datetime | None = Field(default=None, alias="nextRefreshTime")
    last_refresh_count: int | None = Field(default=None, alias="lastRefreshCount")

    @field_validator("check_frequency_minutes", mode="before")
    @classmethod
    def _clamp_frequency(cls, value: Any) -> float:
        return clamp_interval(value)

    @field_validator("ended_grace_period_days", mode="before")
    @classmethod
    def _clamp_grace(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return DEFAULT_GRACE_PERIOD_DAYS
        return clamp_grace_period(value)
