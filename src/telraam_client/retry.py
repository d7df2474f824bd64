# telraam_client/retry.py
"""
Retry policy for Telraam requests, built on tenacity.

Retry Behavior:
---------------
- Transport failures (timeouts, connection errors): always retried.
- HTTP/API errors whose status is in RetryConfig.retryable_status_codes
  (429, 502, 503, 504 by default): retried.
- Everything else (other 4xx/5xx, decode and consistency errors): surfaced
  immediately.

The delay before retry n is min(base * 2 ** (n - 1), max). When the server
sent a finite Retry-After, that value is used instead, clamped to
retry_after_max_seconds.

The policy is built per call rather than applied with a module-level @retry
decorator, so that the attempt limit, backoff and sleep function come from
configuration and tests can replace the sleep with a no-op.
"""

import logging
import math
import time
from collections.abc import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)

from telraam_client.config.config_models import RetryConfig
from telraam_client.errors import HttpError, TransportError

__all__: list[str] = [
    'SleepFunction',
    'backoff_delay',
    'build_retrying',
    'is_retryable',
    'retry_delay',
]

logger: logging.Logger = logging.getLogger(__name__)

SleepFunction = Callable[[float], None]


def backoff_delay(attempt: int, config: RetryConfig) -> float:
    """
    Exponential backoff delay after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1-based).
        config: Retry policy with base and cap.

    Returns:
        Seconds to wait before the next attempt.

    Example:
        >>> config = RetryConfig(backoff_base_seconds=1.0, backoff_max_seconds=5.0)
        >>> [backoff_delay(n, config) for n in (1, 2, 3, 4)]
        [1.0, 2.0, 4.0, 5.0]
    """
    if attempt < 1:
        raise ValueError(f'attempt must be >= 1, got {attempt}')
    exponential_wait: float = config.backoff_base_seconds * (2 ** (attempt - 1))
    return min(exponential_wait, config.backoff_max_seconds)


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    """Whether an error is transient under the given policy."""
    if isinstance(error, TransportError):
        return True
    if isinstance(error, HttpError):
        return error.status_code in config.retryable_status_codes
    return False


def retry_delay(error: BaseException | None, attempt: int, config: RetryConfig) -> float:
    """
    Delay before retrying after error on the given attempt.

    A finite server-suggested Retry-After delay takes precedence over the
    computed backoff and is clamped to [0, retry_after_max_seconds].
    """
    if isinstance(error, HttpError):
        retry_after: float | None = error.retry_after_seconds
        if retry_after is not None and math.isfinite(retry_after):
            return min(max(retry_after, 0.0), config.retry_after_max_seconds)
    return backoff_delay(attempt, config)


def build_retrying(
    config: RetryConfig,
    sleep: SleepFunction = time.sleep,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> Retrying:
    """
    Build a tenacity Retrying controller for one logical request.

    Args:
        config: Attempt limit, backoff and retryable statuses.
        sleep: Function used to wait between attempts.
        before_sleep: Called after a retryable failure, before sleeping.
            Receives tenacity's RetryCallState (attempt_number, outcome,
            upcoming_sleep).

    Returns:
        Retrying instance that re-raises the last error once attempts run out.
    """

    def _wait(retry_state: RetryCallState) -> float:
        error: BaseException | None = (
            retry_state.outcome.exception() if retry_state.outcome else None
        )
        return retry_delay(error, retry_state.attempt_number, config)

    def _log_before_sleep(retry_state: RetryCallState) -> None:
        error: BaseException | None = (
            retry_state.outcome.exception() if retry_state.outcome else None
        )
        logger.warning(
            'Attempt %d/%d failed (%s), retrying in %.2fs',
            retry_state.attempt_number,
            config.max_attempts,
            error,
            retry_state.upcoming_sleep,
        )
        if before_sleep is not None:
            before_sleep(retry_state)

    return Retrying(
        retry=retry_if_exception(lambda error: is_retryable(error, config)),
        wait=_wait,
        stop=stop_after_attempt(config.max_attempts),
        sleep=sleep,
        before_sleep=_log_before_sleep,
        reraise=True,
    )
