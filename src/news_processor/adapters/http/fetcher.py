"""HTTP GET with status-aware retries."""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

from news_processor.core import CancellationToken, Fetcher, RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "news-processor-fetcher/1.0"


class FetchStatusError(Exception):
    """An error status from the server. Keeps the response for inspection."""

    def __init__(self, response: httpx.Response, retry_after: Optional[float] = None) -> None:
        super().__init__(
            f"http error: status code {response.status_code} {response.reason_phrase}"
        )
        self.response = response
        self.status_code = response.status_code
        self.retry_after = retry_after


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """Parse a ``Retry-After`` header into seconds.

    Accepts delay-seconds or an HTTP-date. Dates in the past give 0.
    Negative or unparseable values give None.
    """
    if not value:
        return None

    value = value.strip()
    if value.lstrip("-").isdigit():
        seconds = int(value)
        return float(seconds) if seconds >= 0 else None

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def should_retry_http(error: Exception) -> bool:
    """Classify fetch errors: 5xx, 429 and transport timeouts are transient."""
    if isinstance(error, FetchStatusError):
        if 500 <= error.status_code <= 599:
            return True
        return error.status_code == 429

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    return False


def retry_after_delay(error: Exception) -> Optional[float]:
    if isinstance(error, FetchStatusError):
        return error.retry_after
    return None


class HTTPFetcher(Fetcher):
    """Fetch pages with retry and ``Retry-After`` support."""

    def __init__(
        self,
        retry_policy: RetryPolicy,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 30.0,
    ) -> None:
        self.retry_policy = retry_policy
        self.client = client
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = timeout

    async def fetch(self, url: str, cancel: Optional[CancellationToken] = None) -> httpx.Response:
        """GET ``url``.

        The caller receives a fully read response. On failure the last error
        status response is reachable through ``FetchStatusError.response``
        (or ``last_error.response`` when retries were exhausted).
        """

        async def attempt() -> httpx.Response:
            if self.client is not None:
                return await self._get(self.client, url)
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                return await self._get(client, url)

        return await retry_with_backoff(
            attempt,
            should_retry_http,
            self.retry_policy,
            cancel=cancel,
            wait_override=retry_after_delay,
        )

    async def _get(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        response = await client.get(url, headers={"User-Agent": self.user_agent})

        if response.status_code >= 400:
            retry_after = None
            if response.status_code in (429, 503):
                retry_after = parse_retry_after(response.headers.get("retry-after"))
            logger.debug(f"GET {url} -> {response.status_code} (retry-after={retry_after})")
            raise FetchStatusError(response, retry_after)

        return response
