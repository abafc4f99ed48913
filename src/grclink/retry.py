"""Exponential-backoff retry for API calls, built on tenacity."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, TypeVar

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from grclink.errors import RETRYABLE_SERVER_STATUSES, extract_status_code, is_network_error
from grclink.transport import send_request
from grclink.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException], None]


def is_retryable_error(exc: BaseException) -> bool:
    """Retry network failures and 500/502/503/504 responses only.

    Args:
        exc: Exception raised by the attempt.

    Returns:
        True when another attempt may succeed.
    """

    if is_network_error(exc):
        return True
    return extract_status_code(exc) in RETRYABLE_SERVER_STATUSES


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff parameters for one retry sequence.

    Delays are in seconds. The delay before the k-th retry is
    ``min(initial_delay * backoff_factor ** (k - 1), max_delay)``.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    should_retry: Callable[[BaseException], bool] = is_retryable_error

    def merge(self, **overrides: Any) -> RetryPolicy:
        return replace(self, **overrides)

    def delay_before_retry(self, retry_number: int) -> float:
        return min(self.initial_delay * self.backoff_factor ** (retry_number - 1), self.max_delay)


DEFAULT_RETRY_POLICY = RetryPolicy()

RETRY_PROFILES: dict[str, RetryPolicy] = {
    "critical": RetryPolicy(max_attempts=5, initial_delay=0.5, max_delay=5.0, backoff_factor=2.0),
    "fetch": RetryPolicy(max_attempts=3, initial_delay=1.0, max_delay=5.0, backoff_factor=2.0),
    "auth": RetryPolicy(
        max_attempts=2,
        initial_delay=2.0,
        max_delay=5.0,
        backoff_factor=1.5,
        should_retry=is_network_error,
    ),
}


def get_retry_policy(name: str) -> RetryPolicy:
    """Return a named retry profile.

    Raises:
        ValueError: When the profile is unknown.
    """

    try:
        return RETRY_PROFILES[name]
    except KeyError as exc:
        raise ValueError(f"Unknown retry profile: {name}") from exc


def _build_before_sleep(on_retry: RetryCallback | None) -> Callable[[RetryCallState], None]:
    log_before_sleep = before_sleep_log(logger, logging.WARNING)

    def before_sleep(retry_state: RetryCallState) -> None:
        log_before_sleep(retry_state)
        if on_retry is None or retry_state.outcome is None:
            return
        error = retry_state.outcome.exception()
        if error is not None:
            on_retry(retry_state.attempt_number, error)

    return before_sleep


def with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], None] | None = None,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument callable to attempt.
        policy: Backoff parameters; defaults to ``DEFAULT_RETRY_POLICY``.
        on_retry: Called with the failed attempt number and its error before
            each backoff sleep.
        sleep: Sleep function, replaceable in tests.

    Returns:
        The first successful result.

    Raises:
        BaseException: The last error once attempts are exhausted or the
            policy declines to retry it.
    """

    active = policy or DEFAULT_RETRY_POLICY
    retrying = Retrying(
        stop=stop_after_attempt(max(active.max_attempts, 1)),
        wait=wait_exponential(
            multiplier=active.initial_delay,
            exp_base=active.backoff_factor,
            min=0,
            max=active.max_delay,
        ),
        retry=retry_if_exception(active.should_retry),
        reraise=True,
        before_sleep=_build_before_sleep(on_retry),
        sleep=sleep or time.sleep,
    )
    return retrying(operation)


def create_retry_wrapper(
    policy: RetryPolicy | None = None, **defaults: Any
) -> Callable[..., Any]:
    """Bind default retry settings for repeated use.

    Example:
        >>> critical = create_retry_wrapper(get_retry_policy("critical"))
        >>> critical(lambda: client.api_request("POST", "/api/risks", payload))
    """

    base = (policy or DEFAULT_RETRY_POLICY).merge(**defaults)

    def wrapper(
        operation: Callable[[], T],
        *,
        on_retry: RetryCallback | None = None,
        sleep: Callable[[float], None] | None = None,
        **overrides: Any,
    ) -> T:
        return with_retry(operation, base.merge(**overrides), on_retry=on_retry, sleep=sleep)

    return wrapper


def fetch_with_retry(
    session: requests.Session,
    url: str,
    method: str = "GET",
    *,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], None] | None = None,
    **kwargs: Any,
) -> requests.Response:
    """Issue a request under the ``fetch`` profile.

    Only transport failures are retried here: the response is returned as-is,
    whatever its status.
    """

    active = policy or RETRY_PROFILES["fetch"]
    return with_retry(
        lambda: send_request(session, method, url, **kwargs),
        active,
        on_retry=lambda attempt, error: logger.warning(
            "Retrying fetch %s (attempt %s): %s", url, attempt, error
        ),
        sleep=sleep,
    )
