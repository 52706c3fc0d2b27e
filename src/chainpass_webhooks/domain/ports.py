"""Storage interfaces the services depend on.

Postgres implementations live in :mod:`chainpass_webhooks.repositories`; tests
substitute in-memory fakes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from chainpass_webhooks.domain.enums import AuditKind, AuditSeverity, DeliveryStatus
from chainpass_webhooks.domain.models import (
    AuditRecord,
    BusinessPartner,
    DeliveryQueueEntry,
    ReplayHistory,
    WebhookEvent,
    WebhookTestHistory,
)
from chainpass_webhooks.domain.results import DeliveryOutcome


class DeliveryQueue(Protocol):
    async def enqueue(
        self,
        *,
        partner_id: UUID,
        callback_url: str,
        payload: str,
        max_attempts: int,
        now: datetime,
        event_id: UUID | None = None,
    ) -> DeliveryQueueEntry: ...

    async def claim_due(
        self, now: datetime, limit: int, *, lease_seconds: int
    ) -> list[DeliveryQueueEntry]: ...

    async def record_result(
        self, entry_id: UUID, claim_token: UUID, outcome: DeliveryOutcome
    ) -> bool: ...

    async def get(self, entry_id: UUID) -> DeliveryQueueEntry: ...

    async def list_entries(
        self,
        *,
        status: DeliveryStatus | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[DeliveryQueueEntry], int]: ...

    async def stats(self, now: datetime) -> dict[str, int]: ...

    async def requeue(self, entry_id: UUID, now: datetime) -> DeliveryQueueEntry: ...

    async def release_expired_claims(self, now: datetime) -> int: ...

    async def fail_exhausted_claims(self, now: datetime) -> list[DeliveryQueueEntry]: ...


class PartnerDirectory(Protocol):
    async def get(self, partner_id: UUID) -> BusinessPartner: ...


class EventStore(Protocol):
    async def create(self, *, event_type: str, payload: dict[str, Any]) -> WebhookEvent: ...

    async def get(self, event_id: UUID) -> WebhookEvent: ...


class ReplayHistoryStore(Protocol):
    async def create(
        self,
        *,
        original_webhook_id: UUID,
        replayed_by: UUID,
        target_url: str,
        payload: dict[str, Any],
        response_status: int | None,
        response_body: str | None,
        response_time_ms: int,
        success: bool,
        error_message: str | None,
    ) -> ReplayHistory: ...

    async def list_entries(
        self, *, event_id: UUID | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[list[ReplayHistory], int]: ...


class WebhookTestHistoryStore(Protocol):
    async def create(
        self,
        *,
        business_partner_id: UUID,
        callback_url: str,
        test_payload: dict[str, Any],
        response_status: int | None,
        response_body: str | None,
        response_time_ms: int,
        success: bool,
        error_message: str | None,
    ) -> WebhookTestHistory: ...

    async def list_entries(
        self, *, partner_id: UUID, limit: int = 50, offset: int = 0
    ) -> tuple[list[WebhookTestHistory], int]: ...


class AuditStore(Protocol):
    async def append(
        self,
        *,
        kind: AuditKind,
        severity: AuditSeverity,
        details: dict[str, Any],
        partner_id: UUID | None = None,
        delivery_id: UUID | None = None,
        event_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> None: ...

    async def list_entries(
        self,
        *,
        kind: AuditKind | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditRecord], int]: ...


class UsageStore(Protocol):
    async def record(
        self,
        *,
        partner_id: UUID,
        endpoint: str,
        method: str,
        status_code: int,
        response_time_ms: int,
    ) -> None: ...
