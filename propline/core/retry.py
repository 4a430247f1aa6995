"""
Retry/backoff policy shared by every provider client.

One policy object replaces per-call-site retry loops. It is parameterized by:
- max_attempts: total attempts including the first (default 3, i.e. 2 retries)
- base_delay: seconds; the wait before retry N is base_delay * N
- retryable_status: predicate deciding which HTTP statuses are transient

Transient failures (HTTP 403/429, network errors, timeouts) are retried
silently apart from a WARNING log line. A 404 becomes NotFound; any other
status is terminal and becomes ProviderUnavailable on the first attempt.
Exhausted retries raise ProviderUnavailable carrying the last status/cause.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from propline.core.errors import NotFound, ProviderUnavailable
from propline.core.logging import get_logger

logger = get_logger(__name__)

# 403 is how stats.nba.com signals throttling
RETRYABLE_STATUSES = frozenset({403, 429})


def is_retryable_status(status: int) -> bool:
    """Default predicate: rate limited or blocked."""
    return status in RETRYABLE_STATUSES


class RetryPolicy:
    """
    Exponential-by-attempt retry around an async HTTP call.

    Example:
        >>> policy = RetryPolicy(max_attempts=3, base_delay=0.5)
        >>> data = await policy.call(fetch_json, url, provider="nba_stats")
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retryable_status: Callable[[int], bool] = is_retryable_status,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.retryable_status = retryable_status

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
        )

    def is_retryable(self, exc: BaseException) -> bool:
        """Whether an exception raised by one attempt should be retried."""
        if isinstance(exc, httpx.HTTPStatusError):
            return self.retryable_status(exc.response.status_code)
        # TimeoutException is a TransportError subclass
        return isinstance(exc, httpx.TransportError)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception(self.is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[Any]],
        *args: Any,
        provider: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        """
        Run ``fn(*args, **kwargs)`` under this policy.

        Raises:
            NotFound: upstream answered 404
            ProviderUnavailable: terminal status, or retries exhausted
        """
        source = provider or getattr(fn, "__name__", "provider")
        try:
            return await self._retrying()(fn, *args, **kwargs)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404:
                raise NotFound(f"{source}: resource not found ({e.request.url})", cause=e) from e
            if self.is_retryable(e):
                message = f"{source}: still failing with HTTP {status} after {self.max_attempts} attempts"
            else:
                message = f"{source}: terminal HTTP {status}"
            logger.error(message)
            raise ProviderUnavailable(message, provider=source, status=status, cause=e) from e
        except httpx.TransportError as e:
            message = f"{source}: {type(e).__name__} after {self.max_attempts} attempts"
            logger.error(message)
            raise ProviderUnavailable(message, provider=source, cause=e) from e
