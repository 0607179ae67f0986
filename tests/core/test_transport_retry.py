"""
Tests for Daily Facts Transport Retry Logic.

Tests response classification, exception filtering and the tenacity controller.
"""

from __future__ import annotations

import httpx
import pytest

from daily_facts.core.config import reset_settings
from daily_facts.core.retry import (
    NON_RETRYABLE_STATUS_CODES,
    RETRYABLE_STATUS_CODES,
    PermanentSendError,
    TransientSendError,
    classify_response,
    should_retry_exception,
    transport_retrying,
    wait_retry_after,
)


def _response(status: int, headers: dict | None = None) -> httpx.Response:
    request = httpx.Request("POST", "https://push.example.com/notify")
    return httpx.Response(status, headers=headers, text="body", request=request)


# =============================================================================
# Classification
# =============================================================================


class TestStatusCodes:
    def test_retryable_status_codes(self):
        assert {429, 502, 503, 504} <= RETRYABLE_STATUS_CODES

    def test_client_errors_are_not_retryable(self):
        assert not RETRYABLE_STATUS_CODES & NON_RETRYABLE_STATUS_CODES


class TestClassifyResponse:
    def test_success_passes(self):
        classify_response(_response(204))

    def test_rate_limit_is_transient_with_retry_after(self):
        with pytest.raises(TransientSendError) as exc_info:
            classify_response(_response(429, {"Retry-After": "30"}))

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 30.0

    def test_unparseable_retry_after_is_ignored(self):
        with pytest.raises(TransientSendError) as exc_info:
            classify_response(_response(503, {"Retry-After": "soon"}))
        assert exc_info.value.retry_after is None

    def test_any_5xx_is_transient(self):
        with pytest.raises(TransientSendError):
            classify_response(_response(500))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_are_permanent(self, status: int):
        with pytest.raises(PermanentSendError) as exc_info:
            classify_response(_response(status))
        assert exc_info.value.status_code == status


class TestShouldRetryException:
    def test_transient_and_network_errors_retry(self):
        request = httpx.Request("POST", "https://push.example.com/notify")

        assert should_retry_exception(TransientSendError("busy")) is True
        assert should_retry_exception(httpx.ConnectError("down", request=request)) is True
        assert should_retry_exception(httpx.ReadTimeout("slow", request=request)) is True

    def test_permanent_and_unrelated_errors_do_not_retry(self):
        assert should_retry_exception(PermanentSendError("bad")) is False
        assert should_retry_exception(ValueError("bug")) is False

    def test_http_status_error_follows_status(self):
        retryable = _response(503)
        permanent = _response(404)

        assert should_retry_exception(
            httpx.HTTPStatusError("x", request=retryable.request, response=retryable)
        )
        assert not should_retry_exception(
            httpx.HTTPStatusError("x", request=permanent.request, response=permanent)
        )


# =============================================================================
# Controller
# =============================================================================


async def _attempts_until_done(retrying, exc: Exception, succeed_on: int | None = None) -> int:
    attempts = 0
    async for attempt in retrying:
        with attempt:
            attempts += 1
            if succeed_on is None or attempts < succeed_on:
                raise exc
    return attempts


class TestTransportRetrying:
    async def test_transient_errors_are_retried_until_success(self):
        retrying = transport_retrying(max_attempts=3, min_wait=0, max_wait=0)

        attempts = await _attempts_until_done(retrying, TransientSendError("busy"), succeed_on=3)
        assert attempts == 3

    async def test_gives_up_after_max_attempts(self):
        attempts = 0
        with pytest.raises(TransientSendError):
            async for attempt in transport_retrying(max_attempts=3, min_wait=0, max_wait=0):
                with attempt:
                    attempts += 1
                    raise TransientSendError("busy")
        assert attempts == 3

    async def test_permanent_error_is_not_retried(self):
        attempts = 0
        with pytest.raises(PermanentSendError):
            async for attempt in transport_retrying(max_attempts=3, min_wait=0, max_wait=0):
                with attempt:
                    attempts += 1
                    raise PermanentSendError("bad request", status_code=400)
        assert attempts == 1

    async def test_no_retry_env_makes_single_attempt(self, monkeypatch):
        monkeypatch.setenv("DAILY_FACTS_NO_RETRY", "1")
        reset_settings()

        attempts = 0
        with pytest.raises(TransientSendError):
            async for attempt in transport_retrying(max_attempts=5, min_wait=0, max_wait=0):
                with attempt:
                    attempts += 1
                    raise TransientSendError("busy")
        assert attempts == 1


class TestRetryAfterWait:
    async def _recorded_waits(self, exc: Exception, max_wait: float) -> list[float]:
        waits: list[float] = []

        async def record(seconds: float) -> None:
            waits.append(seconds)

        retrying = transport_retrying(max_attempts=2, min_wait=0, max_wait=max_wait).copy(sleep=record)
        await _attempts_until_done(retrying, exc, succeed_on=2)
        return waits

    async def test_server_retry_after_is_used(self):
        exc = TransientSendError("slow down", status_code=429, retry_after=2.0)
        assert await self._recorded_waits(exc, max_wait=5) == [2.0]

    async def test_retry_after_is_capped(self):
        exc = TransientSendError("slow down", status_code=429, retry_after=60.0)
        assert await self._recorded_waits(exc, max_wait=5) == [5.0]

    async def test_backoff_without_retry_after(self):
        waits = await self._recorded_waits(TransientSendError("busy", status_code=503), max_wait=0)
        assert waits == [0]

    def test_controller_uses_retry_after_wait(self):
        assert isinstance(transport_retrying().wait, wait_retry_after)
