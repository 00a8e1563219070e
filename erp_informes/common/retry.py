"""
Retry utilities for transient errors.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
    """All attempts failed with retryable errors"""

    def __init__(self, attempts: int, last_exception: BaseException):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


async def run_with_retry(
    func: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    initial_delay: float = 0.5,
    backoff_factor: float = 2.0,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    operation: str = "operation",
) -> Any:
    """
    Execute an async function, retrying retryable errors with exponential backoff.

    Args:
        func: Async function to execute (no parameters)
        max_attempts: Total number of attempts, first one included
        initial_delay: Delay in seconds before the first retry
        backoff_factor: Multiplier for delay between retries
        is_retryable: Predicate deciding which exceptions are retried
        operation: Name used in log messages

    Returns:
        Result from the function

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
        Exception: The original exception when it is not retryable
    """
    attempts = max(1, max_attempts)

    for attempt in range(attempts):
        try:
            return await func()
        except Exception as e:
            if is_retryable is None or not is_retryable(e):
                raise

            if attempt == attempts - 1:
                raise RetryExhaustedError(attempts, e) from e

            wait_time = initial_delay * (backoff_factor ** attempt)
            logger.warning(
                f"Transient error in {operation} (attempt {attempt + 1}/{attempts}): {e}. "
                f"Retrying in {wait_time:.2f} seconds..."
            )
            await asyncio.sleep(wait_time)
