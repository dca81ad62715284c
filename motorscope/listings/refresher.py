"""
Single-listing refresh.

Shared by batch passes and manual single-item refreshes:
1. Fetch the page; 404/410 means the listing ended (a successful refresh)
2. Any other non-200 is an item error ``HTTP <status>``
3. Otherwise run extraction and fold price/status changes into the listing
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from motorscope.listings.errors import ItemRefreshError
from motorscope.listings.extraction import Extractor
from motorscope.listings.fetcher import PageFetcher
from motorscope.listings.schemas import (
    LastRefreshStatus,
    Listing,
    ListingStatus,
    PricePoint,
)

logger = structlog.get_logger(__name__)


@dataclass
class RefreshResult:
    listing: Listing
    price_changed: bool = False
    status_changed: bool = False


def mark_failed(listing: Listing, error: str) -> Listing:
    """Copy of the listing flagged with a refresh error, for write-back."""
    return listing.model_copy(
        update={
            "last_refresh_status": LastRefreshStatus.ERROR,
            "last_refresh_error": error,
        }
    )


def _apply_status(update: dict, listing: Listing, status: ListingStatus, now: datetime) -> bool:
    if status is listing.status:
        return False
    update["status"] = status
    update["status_changed_at"] = now
    return True


class ListingRefresher:
    """
    Refreshes one listing at a time.

    Raises ``ItemRefreshError`` (or a subclass) on failure; the pipeline
    classifies the error and records the outcome.
    """

    def __init__(self, fetcher: PageFetcher, extractor: Extractor):
        self._fetcher = fetcher
        self._extractor = extractor

    async def refresh(self, listing: Listing) -> RefreshResult:
        now = datetime.now(timezone.utc)
        page = await self._fetcher.fetch(listing.url)

        if page.expired:
            update: dict = {
                "last_seen_at": now,
                "last_refresh_status": LastRefreshStatus.SUCCESS,
                "last_refresh_error": None,
            }
            changed = _apply_status(update, listing, ListingStatus.ENDED, now)
            return RefreshResult(listing=listing.model_copy(update=update), status_changed=changed)

        if page.status != 200:
            raise ItemRefreshError(f"HTTP {page.status}", status_code=page.status)

        result = await self._extractor.extract(
            listing.url,
            page.page_title or listing.title,
            page.text or "",
        )

        update = {
            "currency": result.currency or listing.currency,
            "last_seen_at": now,
            "last_refresh_status": LastRefreshStatus.SUCCESS,
            "last_refresh_error": None,
        }
        price_changed = result.price > 0 and result.price != listing.current_price
        if price_changed:
            point = PricePoint(
                date=now,
                price=result.price,
                currency=result.currency or listing.currency or "",
            )
            update["price_history"] = [*listing.price_history, point]
            update["current_price"] = result.price
            logger.info(
                "Price changed",
                listing_id=listing.id,
                old_price=listing.current_price,
                new_price=result.price,
            )

        status_changed = _apply_status(update, listing, result.status, now)
        return RefreshResult(
            listing=listing.model_copy(update=update),
            price_changed=price_changed,
            status_changed=status_changed,
        )
