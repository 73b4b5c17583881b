"""Retry decorator for transient socket failures (tenacity)."""

from typing import Callable, TypeVar

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kbsync_common.logging_config import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable)


def _log_retry(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_after_error",
        function=getattr(retry_state.fn, "__name__", "unknown"),
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


def retry_on_exception(
    exception_types: tuple[type[BaseException], ...],
    max_attempts: int = 3,
    min_wait_seconds: float = 0.5,
    max_wait_seconds: float = 5.0,
) -> Callable[[F], F]:
    """Retry a sync or async callable on the given exception types.

    Waits grow exponentially between attempts. The last exception is re-raised
    unchanged once attempts are exhausted.

    Args:
        exception_types: Exceptions that trigger a retry
        max_attempts: Total attempts including the first call
        min_wait_seconds: Lower bound of the wait between attempts
        max_wait_seconds: Upper bound of the wait between attempts
    """
    return retry(
        retry=retry_if_exception_type(exception_types),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(min=min_wait_seconds, max=max_wait_seconds),
        before_sleep=_log_retry,
        reraise=True,
    )
