"""Service for executing media store calls with automatic retries.

Implements exponential backoff with jitter for transient failures (network
errors, 5xx). Failed attempt `i` (0-indexed) waits
`retry_delay * 2**i + uniform(0, max_jitter)` seconds before the next one.
Modeled application errors (validation, not found, permanent 4xx) are not
retried.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, Coroutine, Optional, Tuple, Type

from photostream.domain.errors import AppError, MaxRetryError, TransientMediaStoreError
from photostream.domain.events.api_events import (
    ApiCallInitiated, ApiCallSucceeded, ApiCallFailed, RetryScheduled, dispatch_event
)
from photostream.domain.models.common import BackoffPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_S = 1.0
DEFAULT_MAX_JITTER_S = 1.0

NON_RETRYABLE_EXCEPTIONS: Tuple[Type[BaseException], ...] = (ValueError, TypeError, KeyError)


class ApiRetryService:
    """Handles remote call execution with bounded exponential-backoff retries."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
        max_jitter_s: float = DEFAULT_MAX_JITTER_S,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ):
        """Initializes the ApiRetryService.

        Args:
            max_retries: Retries after the first attempt; at most
                `max_retries + 1` invocations in total.
            retry_delay_s: Base delay before the first retry.
            max_jitter_s: Upper bound of the random delay added to each backoff.
            sleep: Awaitable sleep, injectable for tests.
            jitter: Random source returning a value in [a, b].
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.max_jitter_s = max_jitter_s
        self._sleep = sleep
        self._jitter = jitter
        logger.info(
            f"ApiRetryService initialized: max_retries={max_retries}, "
            f"retry_delay={retry_delay_s}s, max_jitter={max_jitter_s}s"
        )

    @classmethod
    def from_policy(cls, policy: BackoffPolicy, **kwargs: Any) -> "ApiRetryService":
        return cls(
            max_retries=policy.get("max_retries", DEFAULT_MAX_RETRIES),
            retry_delay_s=policy.get("retry_delay_s", DEFAULT_RETRY_DELAY_S),
            max_jitter_s=policy.get("max_jitter_s", DEFAULT_MAX_JITTER_S),
            **kwargs,
        )

    def backoff_for(self, attempt: int) -> float:
        """Delay in seconds after failed attempt `attempt` (0-indexed)."""
        return self.retry_delay_s * (2 ** attempt) + self._jitter(0, self.max_jitter_s)

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        if isinstance(error, TransientMediaStoreError):
            return True
        if isinstance(error, AppError):
            return False
        return not isinstance(error, NON_RETRYABLE_EXCEPTIONS)

    async def execute_with_retry(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        operation_name: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """Executes an async function, retrying transient failures.

        Args:
            func: The async function (remote call) to execute.
            *args: Positional arguments for the function.
            operation_name: Name used in logs, events and the final error.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the first successful invocation.

        Raises:
            MaxRetryError: If every attempt failed; chained to the last error.
            Exception: A non-retryable exception, re-raised unchanged.
        """
        operation = operation_name or getattr(func, "__name__", "call")
        last_exception: Optional[BaseException] = None
        attempts = 0

        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            try:
                dispatch_event(ApiCallInitiated(operation=operation, attempt_number=attempts))
                start_time = time.perf_counter()
                result = await func(*args, **kwargs)
                latency_ms = (time.perf_counter() - start_time) * 1000
                dispatch_event(ApiCallSucceeded(operation=operation, latency_ms=latency_ms, attempt_number=attempts))
                return result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self.is_retryable(e):
                    logger.warning(f"Non-retryable error in {operation} on attempt {attempts}: {type(e).__name__}: {e}")
                    dispatch_event(ApiCallFailed(operation=operation, error_type=type(e).__name__, error_message=str(e), attempts=attempts))
                    raise
                last_exception = e
                if attempt >= self.max_retries:
                    logger.error(f"Max retries ({self.max_retries}) reached for {operation}. Last error: {e}")
                    break
                delay = self.backoff_for(attempt)
                logger.warning(
                    f"Retryable error in {operation} on attempt {attempts}/{self.max_retries + 1}: "
                    f"{type(e).__name__}: {e}. Waiting {delay:.2f}s..."
                )
                dispatch_event(RetryScheduled(operation=operation, attempt_number=attempts, delay_seconds=delay))
                await self._sleep(delay)

        final_error = last_exception or RuntimeError(f"{operation} failed without an exception")
        dispatch_event(ApiCallFailed(operation=operation, error_type=type(final_error).__name__, error_message=str(final_error), attempts=attempts))
        raise MaxRetryError(final_error, attempts, operation) from final_error
