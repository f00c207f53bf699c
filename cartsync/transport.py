"""
Retry-with-backoff HTTP sender for cart requests.

2xx and 4xx responses are returned to the caller straight away; a 4xx is a
definitive answer. 5xx responses and network-level failures are retried
with delays d, 2d, 4d, ... until the attempt budget is spent, then the last
failure is raised as CartUnavailableError.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cartsync import config
from cartsync.errors import CartUnavailableError, ERROR_SERVICE_UNAVAILABLE
from cartsync.logging import get_logger

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TransientStatusError(Exception):
    """A 5xx response, raised internally so tenacity treats it as retryable."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "Cart request attempt %s failed (%s), retrying in %.2fs",
        retry_state.attempt_number,
        error,
        delay,
    )


class RetryingTransport:
    """Sends prepared httpx requests with bounded exponential backoff."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        attempts: int = config.CART_RETRY_ATTEMPTS,
        initial_delay: float = config.CART_RETRY_INITIAL_DELAY,
        sleep: Optional[Sleep] = None,
    ):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        if initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        self.client = client
        self.attempts = attempts
        self.initial_delay = initial_delay
        self._sleep = sleep or asyncio.sleep

    @property
    def max_total_delay(self) -> float:
        """Total time spent sleeping between attempts when every attempt fails."""
        return self.initial_delay * (2 ** (self.attempts - 1) - 1)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=2),
            retry=retry_if_exception_type((httpx.TransportError, TransientStatusError)),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send request, retrying transient failures. Returns 2xx/4xx responses as-is."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self.client.send(request)
                    if response.status_code >= 500:
                        raise TransientStatusError(response)
        except TransientStatusError as e:
            status = e.response.status_code
            logger.error("Cart request %s %s gave up after %s attempts: HTTP %s",
                         request.method, request.url.path, self.attempts, status)
            raise CartUnavailableError(f"{ERROR_SERVICE_UNAVAILABLE}: HTTP {status}", status_code=status) from e
        except httpx.TransportError as e:
            logger.error("Cart request %s %s gave up after %s attempts: %s",
                         request.method, request.url.path, self.attempts, e)
            raise CartUnavailableError(f"{ERROR_SERVICE_UNAVAILABLE}: {e!s}") from e

        return response
