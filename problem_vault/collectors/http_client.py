"""
HTTP layer shared by every collector.

Provides:
- RetryConfig: per-source retry count and backoff schedule
- RetryingHttpFetcher: async HTTP client that retries one logical request

Any status of 400 or above is a failed attempt. Sources differ in how
long they want to wait between attempts (linear ``base * attempt`` or a
fixed delay) and in which status codes signal a rate limit. A rate-limit response waits a longer fixed backoff before
the next attempt. All sleeps go through the run's cancellation token so
a stop request aborts the wait instead of retrying.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from problem_vault.collectors.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Retry and backoff policy for one source.

    ``max_retries`` counts retries, so a request is attempted at most
    ``max_retries + 1`` times.

    Schedules (attempt is 0-indexed):
        linear: base_delay * (attempt + 1)
        fixed:  base_delay
    """

    max_retries: int = 2
    base_delay: float = 0.5
    schedule: Literal["linear", "fixed"] = "linear"
    rate_limit_statuses: frozenset[int] = field(default_factory=lambda: frozenset({429}))
    rate_limit_backoff: float = 60.0

    def calculate_backoff(self, attempt: int) -> float:
        if self.schedule == "fixed":
            return self.base_delay
        return self.base_delay * (attempt + 1)

    def is_rate_limit_status(self, status_code: int) -> bool:
        return status_code in self.rate_limit_statuses

    def is_retryable_exception(self, exc: Exception) -> bool:
        """Timeouts, connection and protocol errors are transient."""
        return isinstance(exc, httpx.TransportError)


class HttpFetchError(Exception):
    """Base exception for fetch failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HttpFetchError):
    """Raised when the source keeps rate limiting after all retries."""


class RetryingHttpFetcher:
    """
    Async HTTP client with bounded retries.

    Example:
        config = RetryConfig(max_retries=2, base_delay=0.5)
        async with RetryingHttpFetcher(config, token=token) as fetcher:
            response = await fetcher.get(
                "https://hn.algolia.com/api/v1/search",
                params={"query": "invoice"},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        token: CancellationToken | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.headers = dict(headers) if headers else {}
        self.token = token
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "RetryingHttpFetcher":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.fetch("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        return await self.fetch(
            "POST", url, params=params, headers=headers, json_body=json_body
        )

    async def fetch(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Perform one logical request, retrying transient failures.

        Returns:
            httpx.Response with a status below 400

        Raises:
            HttpFetchError: After retries are exhausted, or on a non-transport httpx error
            RateLimitError: When still rate limited after the last attempt
            CollectionCancelledError: When cancelled during a backoff sleep
        """
        if not self._client:
            raise RuntimeError("RetryingHttpFetcher must be used as async context manager")

        config = self.retry_config
        attempts = config.max_retries + 1

        for attempt in range(attempts):
            last_attempt = attempt == config.max_retries
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    headers=headers,
                    json=json_body,
                )
            except httpx.HTTPError as e:
                if not config.is_retryable_exception(e) or last_attempt:
                    raise HttpFetchError(
                        f"{method} {url} failed after {attempt + 1} attempts: {e}"
                    ) from e
                backoff = config.calculate_backoff(attempt)
                logger.warning(
                    f"{type(e).__name__} for {url}, attempt {attempt + 1}/{attempts}, "
                    f"backing off {backoff:.2f}s"
                )
                await self._sleep(backoff)
                continue

            status = response.status_code
            if status < 400:
                return response

            if last_attempt:
                error_cls = (
                    RateLimitError if config.is_rate_limit_status(status) else HttpFetchError
                )
                raise error_cls(
                    f"{method} {url} failed with status {status} after {attempt + 1} attempts",
                    status_code=status,
                    response_body=response.text,
                )

            if config.is_rate_limit_status(status):
                backoff = config.rate_limit_backoff
                logger.warning(
                    f"Rate limited by {url} (status {status}), "
                    f"waiting {backoff:.0f}s before attempt {attempt + 2}/{attempts}"
                )
            else:
                backoff = config.calculate_backoff(attempt)
                logger.warning(
                    f"Status {status} from {url}, attempt {attempt + 1}/{attempts}, "
                    f"backing off {backoff:.2f}s"
                )
            await self._sleep(backoff)

        raise HttpFetchError(f"{method} {url} failed after {attempts} attempts")

    async def _sleep(self, delay: float) -> None:
        if self.token is None:
            await asyncio.sleep(delay)
            return
        if not await self.token.sleep(delay):
            self.token.raise_if_cancelled()
