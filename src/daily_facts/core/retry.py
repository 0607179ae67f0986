"""
Transport Retry Logic

Exponential backoff with jitter for transient notification transport failures:
- Retries on 429 (rate limited) and 5xx gateway errors, honouring Retry-After
- Retries on network errors and timeouts
- Never retries client errors (400/401/403/404/422)

This is per-attempt transport retry inside a single send. Notification-level
retry across scheduler ticks lives in daily_facts.delivery.retry.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from .config import is_retry_disabled
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 15  # seconds

RETRYABLE_STATUS_CODES = {
    429,  # Too Many Requests
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}

NON_RETRYABLE_STATUS_CODES = {400, 401, 403, 404, 422}


class TransientSendError(Exception):
    """A send attempt failed for a reason worth retrying."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class PermanentSendError(Exception):
    """A send attempt failed and retrying would not help."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def is_retry_enabled() -> bool:
    """Check if transport retry is enabled (DAILY_FACTS_NO_RETRY unset)."""
    return not is_retry_disabled()


def should_retry_exception(exc: BaseException) -> bool:
    """Decide whether an exception raised by a send attempt should be retried."""
    if isinstance(exc, TransientSendError):
        return True
    if isinstance(exc, PermanentSendError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.RequestError):
        return True
    return False


def classify_response(response: httpx.Response) -> None:
    """
    Raise the matching send error for a non-success response.

    Raises:
        TransientSendError: For 429 and retryable 5xx responses
        PermanentSendError: For every other non-2xx response
    """
    status = response.status_code
    if 200 <= status < 300:
        return

    body = response.text[:200]
    if status in RETRYABLE_STATUS_CODES or status >= 500:
        retry_after = response.headers.get("Retry-After")
        try:
            retry_after_value = float(retry_after) if retry_after else None
        except ValueError:
            retry_after_value = None
        raise TransientSendError(
            f"HTTP {status}: {body}", status_code=status, retry_after=retry_after_value
        )
    raise PermanentSendError(f"HTTP {status}: {body}", status_code=status)


class wait_retry_after(wait_base):
    """
    Wait for the server's Retry-After when the last attempt carried one.

    The value is capped at `max_wait`; attempts without it use `fallback`.
    """

    def __init__(self, fallback: wait_base, max_wait: float = DEFAULT_MAX_WAIT) -> None:
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(exc, TransientSendError) and exc.retry_after is not None:
            return max(0.0, min(exc.retry_after, self.max_wait))
        return self.fallback(retry_state)


def transport_retrying(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
) -> AsyncRetrying:
    """
    Build a tenacity controller for one logical send.

    When retry is disabled via DAILY_FACTS_NO_RETRY, a single attempt is made.

    Usage:
        async for attempt in transport_retrying():
            with attempt:
                await post(payload)
    """
    attempts = max_attempts if is_retry_enabled() else 1
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_retry_after(
            wait_exponential_jitter(initial=min_wait, max=max_wait, jitter=max_wait * 0.1),
            max_wait=max_wait,
        ),
        retry=retry_if_exception(should_retry_exception),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
