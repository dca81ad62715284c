"""Tests for refresh records and interval clamping."""

import math

import pytest

from motorscope.refresh.schemas import (
    HISTORY_SIZE,
    CompletedItem,
    ItemStatus,
    PendingItem,
    RefreshErrorInfo,
    RefreshStatus,
    UserSettings,
    clamp_interval,
)


class TestClampInterval:
    @pytest.mark.parametrize(
        "minutes,expected",
        [
            (45, 45.0),
            (0, 10 / 60),
            (-5, 10 / 60),
            (10 / 60, 10 / 60),
            (43200, 43200.0),
            (10**9, 43200.0),
            (math.nan, 60.0),
            (None, 60.0),
            ("45", 60.0),
            (True, 60.0),
        ],
    )
    def test_clamp(self, minutes, expected):
        assert clamp_interval(minutes) == pytest.approx(expected)

    def test_custom_bounds(self):
        assert clamp_interval(1, low=5, high=10, default=7) == 5
        assert clamp_interval(None, low=5, high=10, default=7) == 7


class TestRefreshStatus:
    """Test the snapshot helpers."""

    def test_history_is_most_recent_first_and_bounded(self):
        status = RefreshStatus()

        for i in range(HISTORY_SIZE + 5):
            status.add_completed(
                CompletedItem(id=str(i), title="t", url="u", status=ItemStatus.SUCCESS)
            )
            status.add_error(RefreshErrorInfo(id=str(i), title="t", url="u", error="e"))

        assert len(status.recently_completed) == HISTORY_SIZE
        assert len(status.recent_errors) == HISTORY_SIZE
        assert status.recently_completed[0].id == str(HISTORY_SIZE + 4)
        assert status.recent_errors[-1].id == "5"

    def test_set_pending_status(self):
        status = RefreshStatus(
            pending=[PendingItem(id="a", title="A", url="u"), PendingItem(id="b", title="B", url="u")]
        )

        status.set_pending_status("b", ItemStatus.ERROR, error="429", rate_limited=True)

        assert status.pending[0].status is ItemStatus.PENDING
        assert status.pending[1].status is ItemStatus.ERROR
        assert status.pending[1].rate_limited is True

    def test_wire_format_is_camel_case(self):
        status = RefreshStatus(is_running=True)

        wire = status.to_wire()

        assert wire["isRunning"] is True
        assert wire["progress"] == {"currentIndex": 0, "totalCount": 0, "currentTitle": None}
        assert wire["recentlyCompleted"] == []
        assert RefreshStatus.model_validate(wire).is_running is True


class TestUserSettings:
    def test_defaults(self):
        settings = UserSettings()

        assert settings.check_frequency_minutes == 60.0
        assert settings.ended_grace_period_days == 3

    @pytest.mark.parametrize(
        "days,expected", [(0, 1), (14, 14), (100, 30), ("x", 3), (None, 3)]
    )
    def test_grace_period_clamped(self, days, expected):
        settings = UserSettings.model_validate({"endedListingGracePeriodDays": days})
        assert settings.ended_grace_period_days == expected

    def test_frequency_clamped(self):
        settings = UserSettings.model_validate({"checkFrequencyMinutes": 100000})
        assert settings.check_frequency_minutes == 43200.0
