"""Async HTTP fetching of iCalendar feeds for meetwatch."""

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from meetwatch.calendar.exceptions import ICSFetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "meetwatch/1.0 (+calendar feed reader)",
    "Accept": "text/calendar, text/plain;q=0.9, */*;q=0.8",
}

JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3


def normalize_feed_url(url: str) -> str:
    """Map webcal:// subscription links to https://."""
    if url.lower().startswith("webcal://"):
        return "https://" + url[len("webcal://") :]
    return url


class ICSFetcher:
    """Async HTTP client for downloading calendar feeds."""

    def __init__(self, settings: Any = None, client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize feed fetcher.

        Args:
            settings: Object with ``request_timeout``, ``max_retries`` and
                ``retry_backoff_factor`` attributes (all optional)
            client: Optional externally owned client; it is never closed here
        """
        self.settings = settings
        self.client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ICSFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self.client is not None and self._owns_client:
            if not self.client.is_closed:
                await self.client.aclose()
                logger.debug("Closed HTTP client")
            self.client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            request_timeout = float(getattr(self.settings, "request_timeout", 30))
            timeout = httpx.Timeout(connect=10.0, read=request_timeout, write=10.0, pool=30.0)
            self.client = httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=DEFAULT_HEADERS,
            )
            self._owns_client = True
        return self.client

    async def fetch_ics(self, url: str) -> str:
        """Download a feed and return its text.

        Network errors and timeouts are retried with jittered exponential
        backoff; HTTP error statuses are not.

        Raises:
            ICSFetchError: If the feed cannot be fetched or is not iCalendar data
        """
        url = normalize_feed_url(url)
        response = await self._get_with_retry(url)

        text = response.text
        if "BEGIN:VCALENDAR" not in text[:1024].upper():
            raise ICSFetchError(
                f"Response from {url} is not an iCalendar document", response.status_code
            )
        logger.debug("Fetched %d bytes from %s", len(text), url)
        return text

    def _calculate_backoff(self, attempt: int) -> float:
        backoff_factor = float(getattr(self.settings, "retry_backoff_factor", 1.5))
        base_backoff = backoff_factor**attempt
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311
        return base_backoff + jitter

    async def _get_with_retry(self, url: str) -> httpx.Response:
        client = self._ensure_client()
        max_retries = int(getattr(self.settings, "max_retries", 2))

        attempt = 0
        while True:
            try:
                response = await client.get(url)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise ICSFetchError(f"HTTP {status} fetching {url}", status) from e
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if attempt >= max_retries:
                    raise ICSFetchError(
                        f"Network error fetching {url} after {attempt + 1} attempts: {e}"
                    ) from e
                backoff_time = self._calculate_backoff(attempt)
                logger.warning(
                    "Request failed (attempt %s/%s), retrying in %.1fs: %s",
                    attempt + 1,
                    max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
            except httpx.HTTPError as e:
                raise ICSFetchError(f"Error fetching {url}: {e}") from e
