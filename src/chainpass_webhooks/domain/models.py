"""Persistent webhook entities."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from chainpass_webhooks.domain.enums import AuditKind, AuditSeverity, DeliveryStatus


class BusinessPartner(BaseModel):
    """Registered webhook recipient. Owned by partner management; read-only here."""

    id: UUID
    business_name: str | None = None
    callback_url: str | None = None
    user_id: UUID | None = None
    api_key: str | None = Field(default=None, repr=False)
    is_active: bool = True


class WebhookEvent(BaseModel):
    """Immutable domain fact, retained for replay and audit."""

    id: UUID
    event_type: str
    payload: dict[str, Any]
    created_at: datetime


class DeliveryQueueEntry(BaseModel):
    """One delivery lineage of an event to a partner.

    ``payload`` holds the exact JSON text that is signed and sent.
    ``attempts`` already includes an in-flight attempt once the entry is claimed.
    """

    id: UUID
    business_partner_id: UUID
    event_id: UUID | None = None
    callback_url: str
    payload: str
    status: DeliveryStatus
    attempts: int = 0
    max_attempts: int
    next_retry_at: datetime | None = None
    last_attempt_at: datetime | None = None
    last_error: str | None = None
    response_status: int | None = None
    response_body: str | None = None
    response_time_ms: int | None = None
    claimed_until: datetime | None = None
    claim_token: UUID | None = None
    created_at: datetime
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status == DeliveryStatus.SUCCESS or (
            self.status == DeliveryStatus.FAILED and self.next_retry_at is None
        )


class ReplayHistory(BaseModel):
    """Record of one operator-initiated re-send."""

    id: UUID
    original_webhook_id: UUID
    replayed_by: UUID
    target_url: str
    payload: dict[str, Any]
    response_status: int | None = None
    response_body: str | None = None
    response_time_ms: int | None = None
    success: bool
    error_message: str | None = None
    replayed_at: datetime


class AuditRecord(BaseModel):
    id: UUID
    kind: AuditKind
    severity: AuditSeverity
    partner_id: UUID | None = None
    delivery_id: UUID | None = None
    event_id: UUID | None = None
    actor_id: UUID | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class WebhookTestHistory(BaseModel):
    """Record of one partner-initiated sandbox test of a callback URL."""

    id: UUID
    business_partner_id: UUID
    callback_url: str
    test_payload: dict[str, Any]
    response_status: int | None = None
    response_body: str | None = None
    response_time_ms: int | None = None
    success: bool
    error_message: str | None = None
    created_at: datetime
