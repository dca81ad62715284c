"""
Listing records as exchanged with the remote API.

Field names follow the API's camelCase wire format through aliases. Fields
this service does not interpret (vehicle, seller, location, ...) are kept
as extras so a refreshed listing is written back without loss.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ListingStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class LastRefreshStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    PENDING = "pending"


class PricePoint(BaseModel):
    date: datetime = Field(default_factory=_utc_now)
    price: float
    currency: str


class ListingSource(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    url: str
    platform: str | None = None
    listing_id: str | None = Field(default=None, alias="listingId")
    country_code: str | None = Field(default=None, alias="countryCode")


class Listing(BaseModel):
    """A tracked car listing."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    title: str = ""
    source: ListingSource
    current_price: float | None = Field(default=None, alias="currentPrice")
    currency: str | None = None
    price_history: list[PricePoint] = Field(default_factory=list, alias="priceHistory")
    status: ListingStatus = ListingStatus.ACTIVE
    status_changed_at: datetime | None = Field(default=None, alias="statusChangedAt")
    first_seen_at: datetime | None = Field(default=None, alias="firstSeenAt")
    last_seen_at: datetime | None = Field(default=None, alias="lastSeenAt")
    is_archived: bool = Field(default=False, alias="isArchived")
    last_refresh_status: LastRefreshStatus | None = Field(default=None, alias="lastRefreshStatus")
    last_refresh_error: str | None = Field(default=None, alias="lastRefreshError")

    @property
    def url(self) -> str:
        return self.source.url

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the remote API (camelCase, JSON-safe)."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
