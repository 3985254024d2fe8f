"""
Retry Manager for ledger transport calls.

Transient transport failures (timeouts, connection errors, HTTP 5xx) are
retried with exponential backoff. RPC-level errors and malformed responses
are returned to the caller immediately.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .exceptions import TransportError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retried operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """Runs async operations with retry and exponential backoff."""

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    def calculate_delay(self, attempt: int) -> float:
        """
        Backoff before retry number ``attempt`` (0-indexed).

        delay(n) = base_delay * 2^n, capped at max_delay.
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def is_retryable(self, error: Exception) -> bool:
        """Only transport errors with a configured retryable code are retried."""
        if not isinstance(error, TransportError):
            return False
        return error.code in self._config.retryable_errors

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
    ) -> RetryResult[T]:
        """
        Execute an operation, retrying retryable failures.

        Total attempts are one initial call plus ``max_retries``.

        Returns:
            RetryResult with the value on success, or the last error
        """
        last_error: Optional[Exception] = None
        attempts = 0
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except TransportError as e:
                last_error = e
                attempts += 1
                if not self.is_retryable(e) or attempts >= max_attempts:
                    break
                await asyncio.sleep(self.calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )
