"""
Notification Senders.

The scheduler delivers through any object with an async
`send(user_id, content) -> SendResult`. WebhookSender posts JSON to an HTTP
endpoint with tenacity-driven retry for timeouts, connection errors and
429/5xx responses; LogSender only logs, for deployments without a push
backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import httpx

from ..core.logging import get_logger
from ..core.retry import (
    PermanentSendError,
    TransientSendError,
    classify_response,
    transport_retrying,
)
from ..models import ContentItem

logger = get_logger(__name__)

DAILY_FACT_TITLE = "Daily Fact Ready! \U0001f9e0"

__all__ = [
    "DAILY_FACT_TITLE",
    "LogSender",
    "NotificationContent",
    "NotificationSender",
    "PermanentSendError",
    "SendResult",
    "TransientSendError",
    "WebhookSender",
]


@dataclass(frozen=True)
class NotificationContent:
    """Title, body and data payload for one notification."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_item(cls, item: ContentItem) -> NotificationContent:
        return cls(
            title=DAILY_FACT_TITLE,
            body=item.short_content or item.title,
            data={
                "type": "daily_fact",
                "fact_id": item.id,
                "category_id": item.category_id,
            },
        )

    def to_payload(self, user_id: str) -> dict[str, Any]:
        return {
            "user_id": user_id,
            "title": self.title,
            "body": self.body,
            "data": dict(self.data),
        }


@dataclass
class SendResult:
    """Outcome of delivering one notification."""

    delivered: bool
    error_code: str | None = None
    error: str | None = None
    status_code: int | None = None


@runtime_checkable
class NotificationSender(Protocol):
    async def send(self, user_id: str, content: NotificationContent) -> SendResult: ...


@dataclass
class LogSender:
    """Sender that records notifications in the log and reports success."""

    sent: int = 0

    async def send(self, user_id: str, content: NotificationContent) -> SendResult:
        self.sent += 1
        logger.info(
            "Notification for %s: %s",
            user_id,
            content.body,
            extra={"user_id": user_id, "fact_id": content.data.get("fact_id")},
        )
        return SendResult(delivered=True)


@dataclass
class WebhookSender:
    """
    HTTP webhook notification sender.

    Features:
    - Retry on timeouts, connection errors, 429 and 5xx (tenacity, jittered backoff)
    - No retry on other 4xx
    - Never raises; every failure becomes a SendResult with an error_code
    """

    webhook_url: str
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    min_wait: float = 1.0
    max_wait: float = 15.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    # Metrics
    _total_sent: int = 0
    _total_failed: int = 0
    _last_success: datetime | None = None
    _last_failure: datetime | None = None
    _consecutive_failures: int = 0

    _client: httpx.AsyncClient | None = field(default=None, repr=False)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                headers={"Content-Type": "application/json"},
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        response = await client.post(self.webhook_url, json=payload)
        classify_response(response)
        return response

    async def send(self, user_id: str, content: NotificationContent) -> SendResult:
        """
        Post one notification to the webhook.

        Args:
            user_id: Recipient
            content: Notification content

        Returns:
            SendResult; delivered=False with error_code "http_<status>",
            "timeout" or "request_error" on failure
        """
        payload = content.to_payload(user_id)
        try:
            async for attempt in transport_retrying(
                max_attempts=self.max_attempts,
                min_wait=self.min_wait,
                max_wait=self.max_wait,
            ):
                with attempt:
                    response = await self._post(payload)
        except (TransientSendError, PermanentSendError) as e:
            self._record_failure()
            logger.warning("Webhook send failed for %s: %s", user_id, e.message)
            return SendResult(
                delivered=False,
                error_code=f"http_{e.status_code}" if e.status_code else "send_error",
                error=e.message,
                status_code=e.status_code,
            )
        except httpx.TimeoutException as e:
            self._record_failure()
            logger.warning("Webhook timeout for %s: %s", user_id, e)
            return SendResult(delivered=False, error_code="timeout", error=str(e) or "Timeout")
        except httpx.RequestError as e:
            self._record_failure()
            logger.warning("Webhook request error for %s: %s", user_id, e)
            return SendResult(delivered=False, error_code="request_error", error=str(e))

        self._total_sent += 1
        self._last_success = datetime.now(timezone.utc)
        self._consecutive_failures = 0
        return SendResult(delivered=True, status_code=response.status_code)

    def _record_failure(self) -> None:
        """Record a failed send."""
        self._total_failed += 1
        self._last_failure = datetime.now(timezone.utc)
        self._consecutive_failures += 1

    @property
    def success_rate(self) -> float:
        """Calculate success rate (0.0 to 1.0)."""
        total = self._total_sent + self._total_failed
        if total == 0:
            return 1.0
        return self._total_sent / total

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures
