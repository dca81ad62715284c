"""Refresh pipeline: classification, status snapshot and scheduling of listing refreshes."""

from motorscope.refresh.classifier import ErrorKind, classify, is_network_error, is_rate_limit_error
from motorscope.refresh.config import RefreshConfig
from motorscope.refresh.schemas import (
    CompletedItem,
    ItemStatus,
    PendingItem,
    Progress,
    RefreshErrorInfo,
    RefreshStatus,
    ScheduleState,
    UserSettings,
)

__all__ = [
    "CompletedItem",
    "ErrorKind",
    "ItemStatus",
    "PendingItem",
    "Progress",
    "RefreshConfig",
    "RefreshErrorInfo",
    "RefreshStatus",
    "ScheduleState",
    "UserSettings",
    "classify",
    "is_network_error",
    "is_rate_limit_error",
]
