"""Unit tests for meetwatch.core.http_client."""

from types import SimpleNamespace

import httpx
import pytest

from meetwatch.calendar.exceptions import ICSFetchError
from meetwatch.core.http_client import ICSFetcher, normalize_feed_url

pytestmark = pytest.mark.unit

ICS_BODY = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"


def _fetcher(handler, **settings) -> ICSFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ICSFetcher(SimpleNamespace(max_retries=settings.get("max_retries", 2)), client=client)


class TestNormalizeFeedUrl:
    """Tests for normalize_feed_url()."""

    def test_webcal_mapped_to_https(self):
        assert normalize_feed_url("webcal://example.com/cal.ics") == "https://example.com/cal.ics"
        assert normalize_feed_url("WEBCAL://example.com/cal.ics") == "https://example.com/cal.ics"

    def test_https_unchanged(self):
        assert normalize_feed_url("https://example.com/cal.ics") == "https://example.com/cal.ics"


class TestICSFetcher:
    """Tests for ICSFetcher.fetch_ics()."""

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        monkeypatch.setattr(ICSFetcher, "_calculate_backoff", lambda self, attempt: 0.0)

    @pytest.mark.asyncio
    async def test_fetch_success(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text=ICS_BODY)

        fetcher = _fetcher(handler)

        assert await fetcher.fetch_ics("webcal://example.com/cal.ics") == ICS_BODY
        assert seen == ["https://example.com/cal.ics"]

    @pytest.mark.asyncio
    async def test_http_error_status_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, text="not found")

        fetcher = _fetcher(handler)

        with pytest.raises(ICSFetchError) as exc_info:
            await fetcher.fetch_ics("https://example.com/cal.ics")
        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_network_error_retried_then_succeeds(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text=ICS_BODY)

        fetcher = _fetcher(handler)

        assert await fetcher.fetch_ics("https://example.com/cal.ics") == ICS_BODY
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_network_error_gives_up_after_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = _fetcher(handler, max_retries=1)

        with pytest.raises(ICSFetchError, match="after 2 attempts"):
            await fetcher.fetch_ics("https://example.com/cal.ics")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_non_calendar_body_rejected(self):
        fetcher = _fetcher(lambda request: httpx.Response(200, text="<html>login</html>"))

        with pytest.raises(ICSFetchError, match="not an iCalendar document"):
            await fetcher.fetch_ics("https://example.com/cal.ics")

    @pytest.mark.asyncio
    async def test_external_client_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))

        async with ICSFetcher(client=client) as fetcher:
            assert fetcher.client is client

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        fetcher = ICSFetcher(SimpleNamespace(request_timeout=5))

        async with fetcher:
            client = fetcher.client
            assert client is not None

        assert client.is_closed
        assert fetcher.client is None
