"""Retry policy for the device transport.

The reconciliation core treats every read as fail-fast. Transient transport
failures are retried here, inside the read adapter, before they ever reach
the pipeline.
"""
import logging
from typing import Callable

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# HTTP status errors are not in here: a 401 or 404 stays a 401 or 404.
RETRYABLE_EXCEPTIONS = (
    httpx.TransportError,
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
)


def _log_retry(max_attempts: int) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        name = getattr(state.fn, "__qualname__", "call")
        logger.warning(
            f"{name} failed ({error!r}), attempt {state.attempt_number}/{max_attempts}, "
            f"retrying in {state.next_action.sleep if state.next_action else 0:.1f}s"
        )
    return log


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable:
    """Retry a sync or async call with exponential backoff.

    The last error is re-raised once attempts run out.

    Args:
        max_attempts: Maximum number of attempts (including the first one)
        min_wait: Minimum wait between attempts (seconds)
        max_wait: Maximum wait between attempts (seconds)
        exceptions: Exception types worth another attempt
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=_log_retry(max_attempts),
        reraise=True,
    )
