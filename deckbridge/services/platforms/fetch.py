"""
HTTP fetch collaborator for URL-based deck imports.

Adapters hand a platform URL to ``PlatformFetcher.get_text`` and get the
response body back, or a ``FetchError`` when the platform answered with a
non-2xx status, the network failed, or the request timed out.
"""
from typing import Optional

import httpx
import structlog

from deckbridge.core.circuit_breaker import CircuitBreakerPool, CircuitOpenError
from deckbridge.core.config import settings
from deckbridge.services.platforms.exceptions import FetchCircuitOpenError, FetchError

logger = structlog.get_logger(__name__)


def _counts_against_platform(exc: BaseException) -> bool:
    """Server errors and transport failures trip the breaker, 4xx responses do not."""
    if isinstance(exc, FetchError) and exc.status_code is not None:
        return exc.status_code >= 500 or exc.status_code == 429
    return True


class PlatformFetcher:
    """
    Fetches raw deck payloads from platform APIs.

    One lazily created ``httpx.AsyncClient`` is shared across platforms; each
    platform gets its own circuit breaker so a Moxfield outage does not block
    Archidekt imports.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        breakers: Optional[CircuitBreakerPool] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout if timeout is not None else float(settings.external_api_timeout)
        self.user_agent = user_agent or settings.user_agent
        self.breakers = breakers or CircuitBreakerPool(
            failure_threshold=settings.fetch_failure_threshold,
            recovery_timeout=settings.fetch_recovery_timeout,
            is_failure=_counts_against_platform,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json, text/plain, */*",
                },
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def get_text(self, url: str, platform: str) -> str:
        """
        GET a URL and return the response body.

        Args:
            url: Fully-qualified platform endpoint.
            platform: Adapter id, used to pick the circuit breaker.

        Returns:
            Response body as text.

        Raises:
            FetchCircuitOpenError: When the platform's circuit is open.
            FetchError: On non-2xx status, network errors and timeouts.
        """
        breaker = self.breakers.get(platform)
        try:
            async with breaker:
                client = await self._get_client()
                try:
                    response = await client.get(url)
                except httpx.TimeoutException as e:
                    logger.error("Deck fetch timeout", platform=platform, url=url)
                    raise FetchError(f"Request timeout: {e}", url=url) from e
                except httpx.HTTPError as e:
                    logger.error("Deck fetch network error", platform=platform, url=url, error=str(e))
                    raise FetchError(f"Network error: {e}", url=url) from e

                if not response.is_success:
                    logger.warning(
                        "Deck fetch failed",
                        platform=platform,
                        url=url,
                        status_code=response.status_code,
                    )
                    raise FetchError(
                        f"HTTP {response.status_code}: {response.reason_phrase}",
                        url=url,
                        status_code=response.status_code,
                    )

                logger.debug("Fetched deck", platform=platform, url=url, bytes=len(response.content))
                return response.text
        except CircuitOpenError as e:
            logger.warning("Deck fetch circuit open", platform=platform, error=str(e))
            raise FetchCircuitOpenError(str(e), url=url) from e

    async def close(self):
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


_default_fetcher: Optional[PlatformFetcher] = None


def get_default_fetcher() -> PlatformFetcher:
    """Process-wide fetcher shared by adapters that were not given one."""
    global _default_fetcher
    if _default_fetcher is None:
        _default_fetcher = PlatformFetcher()
    return _default_fetcher
