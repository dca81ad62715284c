"""
Listing page fetcher.

One GET per refresh: the status code tells whether the listing has ended
(404/410), and a 200 body is reduced to plain text for extraction.
"""

import html as html_lib
import re
from dataclasses import dataclass

import httpx
import structlog
from bs4 import BeautifulSoup

from motorscope.listings.errors import FetchError

logger = structlog.get_logger(__name__)

MAX_TEXT_LENGTH = 20000
EXPIRED_STATUS_CODES = frozenset({404, 410})

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/126.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml",
}

NON_CONTENT_TAGS = ["script", "style", "noscript", "nav", "footer", "header"]
_WS_RE = re.compile(r"\s+")


@dataclass
class FetchResult:
    status: int
    expired: bool = False
    text: str | None = None
    page_title: str | None = None


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", html_lib.unescape(text)).strip()


def parse_page(html: str, max_length: int = MAX_TEXT_LENGTH) -> tuple[str, str | None]:
    """
    Reduce a listing page to (plain text, title).

    Page chrome and scripts are dropped; entities are decoded and whitespace
    collapsed; the text is truncated to ``max_length``.
    """
    if not html:
        return "", None

    soup = BeautifulSoup(html, "html.parser")
    title = _clean(soup.title.get_text()) if soup.title else None

    for element in soup(NON_CONTENT_TAGS):
        element.decompose()

    text = _clean(soup.get_text(separator=" "))
    return text[:max_length], title or None


class PageFetcher:
    """
    Downloads listing pages.

    Example:
        async with PageFetcher() as fetcher:
            result = await fetcher.fetch("https://www.otomoto.pl/oferta/...")
    """

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "PageFetcher":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a listing page.

        Raises:
            FetchError: on transport failure (the page status is unknown)
        """
        if self._client is None:
            await self.__aenter__()

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"Network error fetching listing page: {e}") from e

        if response.status_code in EXPIRED_STATUS_CODES:
            logger.info("Listing page gone", url=url, status_code=response.status_code)
            return FetchResult(status=response.status_code, expired=True)

        if response.status_code != 200:
            return FetchResult(status=response.status_code)

        text, title = parse_page(response.text)
        return FetchResult(status=200, text=text, page_title=title)
