"""
Structured-extraction service client.

The service turns a listing page's text into price and availability. Only
its success/failure contract matters here: any non-2xx response is an
``ExtractionError`` whose message carries the status code and body, so a
throttled call reads as rate-limited to the classifier.
"""

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from motorscope.config.settings import get_settings
from motorscope.listings.errors import ExtractionError
from motorscope.listings.schemas import ListingStatus

logger = structlog.get_logger(__name__)

MAX_ERROR_BODY = 500


@dataclass
class ExtractionResult:
    price: float
    currency: str | None
    status: ListingStatus


class Extractor(Protocol):
    async def extract(self, url: str, title: str, text: str) -> ExtractionResult:
        ...


class HTTPExtractor:
    """
    Extraction over HTTP.

    Example:
        extractor = HTTPExtractor(url="https://extract.example.com/v1/listing", api_key=key)
        result = await extractor.extract(url, title, text)
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.url = url or settings.extraction_url
        self.api_key = api_key or settings.extraction_api_key
        self.timeout = timeout or settings.extraction_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def extract(self, url: str, title: str, text: str) -> ExtractionResult:
        if not self.url:
            raise ExtractionError("Extraction service is not configured (EXTRACTION_URL)")

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        try:
            response = await self._client.post(
                self.url,
                json={"url": url, "title": title, "text": text},
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise ExtractionError(f"Extraction request failed: {e}") from e

        if response.status_code >= 400:
            body = response.text[:MAX_ERROR_BODY]
            raise ExtractionError(
                f"Extraction failed with status {response.status_code}: {body}",
                status_code=response.status_code,
                response_body=body,
            )

        data = response.json()
        ended = bool(data.get("isSold")) or data.get("isAvailable") is False
        return ExtractionResult(
            price=float(data.get("price") or 0),
            currency=data.get("currency"),
            status=ListingStatus.ENDED if ended else ListingStatus.ACTIVE,
        )
