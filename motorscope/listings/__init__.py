"""Tracked listings: records, page fetching, extraction and single-listing refresh."""

from motorscope.listings.errors import ExtractionError, FetchError, ItemRefreshError
from motorscope.listings.extraction import ExtractionResult, Extractor, HTTPExtractor
from motorscope.listings.fetcher import FetchResult, PageFetcher
from motorscope.listings.refresher import ListingRefresher, RefreshResult
from motorscope.listings.schemas import (
    LastRefreshStatus,
    Listing,
    ListingSource,
    ListingStatus,
    PricePoint,
)
from motorscope.listings.sorter import filter_for_refresh, sort_by_refresh_priority

__all__ = [
    "ExtractionError",
    "ExtractionResult",
    "Extractor",
    "FetchError",
    "FetchResult",
    "HTTPExtractor",
    "ItemRefreshError",
    "LastRefreshStatus",
    "Listing",
    "ListingRefresher",
    "ListingSource",
    "ListingStatus",
    "PageFetcher",
    "PricePoint",
    "RefreshResult",
    "filter_for_refresh",
    "sort_by_refresh_priority",
]
