"""
Refresh ordering and eligibility for tracked listings.

Priority (stable, so ties keep input order):
1. Never refreshed (no last_seen_at or no last_refresh_status)
2. Last refresh succeeded before last refresh failed
3. Oldest last_seen_at first
"""

from datetime import datetime, timedelta, timezone

from motorscope.listings.schemas import LastRefreshStatus, Listing, ListingStatus

DEFAULT_ENDED_GRACE_PERIOD_DAYS = 3
MIN_ENDED_GRACE_PERIOD_DAYS = 1
MAX_ENDED_GRACE_PERIOD_DAYS = 30


def clamp_grace_period(days: float | None) -> int:
    if days is None:
        return DEFAULT_ENDED_GRACE_PERIOD_DAYS
    return int(min(MAX_ENDED_GRACE_PERIOD_DAYS, max(MIN_ENDED_GRACE_PERIOD_DAYS, days)))


def should_exclude_ended(
    listing: Listing,
    grace_period_days: int = DEFAULT_ENDED_GRACE_PERIOD_DAYS,
    now: datetime | None = None,
) -> bool:
    """
    True for ENDED listings whose end is older than the grace period.

    The end time is ``status_changed_at``, falling back to ``last_seen_at``
    for listings that ended before the field was tracked.
    """
    if listing.status is not ListingStatus.ENDED:
        return False

    ended_at = listing.status_changed_at or listing.last_seen_at
    if ended_at is None:
        return False
    if ended_at.tzinfo is None:
        ended_at = ended_at.replace(tzinfo=timezone.utc)

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=grace_period_days)
    return ended_at < cutoff


def filter_for_refresh(
    listings: list[Listing],
    grace_period_days: int = DEFAULT_ENDED_GRACE_PERIOD_DAYS,
    now: datetime | None = None,
) -> list[Listing]:
    """Drop archived listings and ENDED listings past the grace period."""
    return [
        listing
        for listing in listings
        if not listing.is_archived
        and not should_exclude_ended(listing, grace_period_days, now=now)
    ]


def _priority(listing: Listing) -> tuple[int, int, float]:
    never_refreshed = listing.last_seen_at is None or listing.last_refresh_status is None
    succeeded = listing.last_refresh_status is LastRefreshStatus.SUCCESS
    seen = listing.last_seen_at.timestamp() if listing.last_seen_at else 0.0
    return (0 if never_refreshed else 1, 0 if succeeded else 1, seen)


def sort_by_refresh_priority(listings: list[Listing]) -> list[Listing]:
    return sorted(listings, key=_priority)
