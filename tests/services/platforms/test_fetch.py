"""Tests for the HTTP fetch collaborator."""
import httpx
import pytest

from deckbridge.core.circuit_breaker import CircuitBreakerPool, CircuitState
from deckbridge.services.platforms.exceptions import FetchCircuitOpenError, FetchError
from deckbridge.services.platforms.fetch import PlatformFetcher, _counts_against_platform

URL = "https://api2.moxfield.com/v3/decks/all/abc123"


def make_fetcher(handler) -> PlatformFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    breakers = CircuitBreakerPool(failure_threshold=2, is_failure=_counts_against_platform)
    return PlatformFetcher(client=client, breakers=breakers)


class TestGetText:
    """Tests for PlatformFetcher.get_text."""

    @pytest.mark.asyncio
    async def test_success_returns_body(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text='{"name": "Deck"}')

        fetcher = make_fetcher(handler)

        assert await fetcher.get_text(URL, "moxfield") == '{"name": "Deck"}'
        assert seen == [URL]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        fetcher = make_fetcher(lambda request: httpx.Response(404))

        with pytest.raises(FetchError) as exc_info:
            await fetcher.get_text(URL, "moxfield")

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == URL
        assert str(exc_info.value) == "HTTP 404: Not Found"

    @pytest.mark.asyncio
    async def test_client_errors_do_not_trip_breaker(self):
        """A missing deck is the caller's problem, not the platform's."""
        fetcher = make_fetcher(lambda request: httpx.Response(404))

        for _ in range(3):
            with pytest.raises(FetchError):
                await fetcher.get_text(URL, "moxfield")

        assert fetcher.breakers.get("moxfield").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_server_errors_open_breaker(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        fetcher = make_fetcher(handler)

        for _ in range(2):
            with pytest.raises(FetchError):
                await fetcher.get_text(URL, "moxfield")

        with pytest.raises(FetchCircuitOpenError) as exc_info:
            await fetcher.get_text(URL, "moxfield")

        assert exc_info.value.url == URL
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_breakers_are_per_platform(self):
        fetcher = make_fetcher(lambda request: httpx.Response(500))

        for _ in range(2):
            with pytest.raises(FetchError):
                await fetcher.get_text(URL, "moxfield")

        with pytest.raises(FetchError) as exc_info:
            await fetcher.get_text("https://archidekt.com/api/decks/1/", "archidekt")

        assert not isinstance(exc_info.value, FetchCircuitOpenError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = make_fetcher(handler)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.get_text(URL, "moxfield")

        assert str(exc_info.value).startswith("Network error:")
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = make_fetcher(handler)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.get_text(URL, "moxfield")

        assert str(exc_info.value).startswith("Request timeout:")


class TestFailurePredicate:
    """Tests for which failures count against a platform."""

    @pytest.mark.parametrize("status,counts", [
        (400, False),
        (404, False),
        (429, True),
        (500, True),
        (503, True),
    ])
    def test_status_codes(self, status, counts):
        assert _counts_against_platform(FetchError("x", status_code=status)) is counts

    def test_transport_failures_count(self):
        assert _counts_against_platform(FetchError("Network error: boom")) is True


class TestClose:
    """Tests for client ownership on close."""

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        fetcher = PlatformFetcher(client=client)

        await fetcher.close()

        assert client.is_closed is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        fetcher = PlatformFetcher()
        client = await fetcher._get_client()

        await fetcher.close()

        assert client.is_closed is True
