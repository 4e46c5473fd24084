"""Bounded exponential-backoff retry for transient server failures.

Per logical call the policy moves through ``Attempting(n)`` states. A
failure with a 5xx status is retried after ``delay(n) = min(initial_delay *
2 ** (n - 1), max_delay)`` until ``max_retries`` retries have been spent
(``Exhausted``). Any other failure, 4xx included, ends the call at once
(``Failed``). Failures without a status (network errors, timeouts) are only
retried when ``retry_network_errors`` is set.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import tenacity
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import NetworkError, RequestweaveError
from .log_config import logger
from .types import RetryConfig, merge_config

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[Any]]


def is_server_error(status: int | None) -> bool:
    return status is not None and 500 <= status <= 599


class RetryPolicy:
    """Exponential-backoff retry executor built on tenacity.

    Attributes:
        _config: Current retry configuration.
        _retry_network_errors: Whether failures without a status are retried.
        _sleep: Coroutine function used to wait between attempts.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        retry_network_errors: bool = False,
        sleep: Sleeper = asyncio.sleep,
    ):
        self._config = config or RetryConfig()
        self._retry_network_errors = retry_network_errors
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def reconfigure(self, update: RetryConfig | Mapping[str, Any]) -> RetryConfig:
        """Merge ``update`` into the current configuration and return the result."""
        self._config = merge_config(self._config, update)
        logger.info(
            f"Retry reconfigured. Max retries: {self._config.max_retries}, "
            f"initial delay: {self._config.initial_delay}s, max delay: {self._config.max_delay}s"
        )
        return self._config

    def should_retry(self, error: BaseException) -> bool:
        """Predicate for tenacity: is this failure worth another attempt?"""
        if not isinstance(error, RequestweaveError):
            return False
        if is_server_error(error.status):
            return True
        return self._retry_network_errors and isinstance(error, NetworkError)

    async def execute(
        self,
        attempt_fn: Callable[[int], Awaitable[T]],
        *,
        config: RetryConfig | None = None,
    ) -> tuple[T, int]:
        """Run ``attempt_fn`` under the retry policy.

        Args:
            attempt_fn: Coroutine function performing one attempt. It receives
                the 1-based attempt number.
            config: Optional configuration used for this call only.

        Returns:
            tuple[T, int]: The result and the number of attempts made.

        Raises:
            RequestweaveError: The last failure, with ``attempts`` set, once the
                policy gives up.
        """
        cfg = config or self._config
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return await attempt_fn(attempts)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(cfg.max_retries + 1),  # +1 for initial attempt
            wait=wait_exponential(multiplier=cfg.initial_delay, max=cfg.max_delay),
            retry=retry_if_exception(self.should_retry),
            reraise=True,
            sleep=self._sleep,
            before_sleep=self._before_retry_sleep,
        )
        try:
            result = await retrying(attempt)
        except RequestweaveError as e:
            e.attempts = attempts
            if self.should_retry(e):
                logger.error(f"Giving up after {attempts} attempt(s): {e}")
            raise
        return result, attempts

    async def _before_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        """Log details before tenacity sleeps between retries."""
        if not retry_state.outcome:
            return

        exc = retry_state.outcome.exception()
        request_info = ""
        request = getattr(exc, "request", None)
        if request is not None:
            request_info = f"for {request.method} {request.url} "

        sleep_time = (
            getattr(retry_state.next_action, "sleep", 0)
            if retry_state.next_action
            else 0
        )
        logger.info(
            f"Retrying request {request_info}in {sleep_time:.2f} seconds "
            f"after {retry_state.attempt_number} attempt(s) due to: {type(exc).__name__} - {exc}"
        )
