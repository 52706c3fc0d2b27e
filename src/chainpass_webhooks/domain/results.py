"""Value types returned by delivery, verification and replay."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Union
from uuid import UUID

from chainpass_webhooks.domain.enums import DeliveryStatus, VerificationFailure


@dataclass(frozen=True)
class DeliverySuccess:
    status: int
    body: str
    elapsed_ms: int


@dataclass(frozen=True)
class DeliveryFailure:
    error: str
    elapsed_ms: int
    status: int | None = None
    body: str | None = None
    retryable: bool = True


DeliveryResult = Union[DeliverySuccess, DeliveryFailure]


@dataclass(frozen=True)
class DeliveryOutcome:
    """State written back to a queue entry after one attempt."""

    status: DeliveryStatus
    attempted_at: datetime
    next_retry_at: datetime | None
    completed_at: datetime | None
    response_status: int | None
    response_body: str | None
    response_time_ms: int
    last_error: str | None

    @property
    def exhausted(self) -> bool:
        return self.status == DeliveryStatus.FAILED and self.next_retry_at is None


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    timestamp: int | None
    current_time: int
    error: str | None = None
    failure: VerificationFailure | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("failure")
        if payload["error"] is None:
            payload.pop("error")
        return payload


@dataclass(frozen=True)
class ReplayResult:
    success: bool
    response_status: int | None
    response_body: str | None
    response_time_ms: int
    error_message: str | None
    replay_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "responseStatus": self.response_status,
            "responseBody": self.response_body,
            "responseTime": self.response_time_ms,
            "errorMessage": self.error_message,
            "replayId": str(self.replay_id) if self.replay_id else None,
        }


@dataclass(frozen=True)
class WebhookTestResult:
    success: bool
    response_status: int | None
    response_body: str | None
    response_time_ms: int
    error_message: str | None
    test_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["test_id"] = str(self.test_id) if self.test_id else None
        return data
