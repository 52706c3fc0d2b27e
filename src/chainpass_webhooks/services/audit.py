"""Audit trail and usage accounting.

Writes here must never break delivery or verification: every failure is
logged locally and swallowed.
"""
from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog

from chainpass_webhooks.domain.enums import AuditKind, AuditSeverity, VerificationFailure
from chainpass_webhooks.domain.models import AuditRecord, DeliveryQueueEntry, ReplayHistory
from chainpass_webhooks.domain.ports import AuditStore, UsageStore
from chainpass_webhooks.domain.results import DeliveryOutcome, VerificationResult

logger = structlog.get_logger(__name__)

_SIGNATURE_KINDS = {
    VerificationFailure.INVALID_FORMAT: (AuditKind.SIGNATURE_INVALID_FORMAT, AuditSeverity.MEDIUM),
    VerificationFailure.TIMESTAMP_OUT_OF_RANGE: (
        AuditKind.SIGNATURE_TIMESTAMP_OUT_OF_RANGE,
        AuditSeverity.HIGH,
    ),
    VerificationFailure.MISMATCH: (AuditKind.SIGNATURE_MISMATCH, AuditSeverity.HIGH),
}

DELIVERY_USAGE_ENDPOINT = "/webhook/vai-verification"


class AuditLogger:
    def __init__(self, store: AuditStore):
        self._store = store

    async def list_records(
        self,
        *,
        kind: AuditKind | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditRecord], int]:
        return await self._store.list_entries(kind=kind, partner_id=partner_id, limit=limit, offset=offset)

    async def _append(self, kind: AuditKind, severity: AuditSeverity, details: dict[str, Any], **refs: Any) -> None:
        try:
            await self._store.append(kind=kind, severity=severity, details=details, **refs)
        except Exception:
            logger.exception("audit_write_failed", kind=kind.value)

    async def signature_failure(
        self,
        result: VerificationResult,
        *,
        provided_signature: str | None,
        payload_sha256: str,
        signature_header: str | None = None,
        partner_id: UUID | None = None,
    ) -> None:
        assert result.failure is not None
        kind, severity = _SIGNATURE_KINDS[result.failure]
        details: dict[str, Any] = {
            "error": result.error,
            "timestamp": result.timestamp,
            "current_timestamp": result.current_time,
            "signature_provided": provided_signature,
            "payload_hash": payload_sha256,
        }
        if result.failure == VerificationFailure.INVALID_FORMAT:
            details["signature_header"] = signature_header
        await self._append(kind, severity, details, partner_id=partner_id)

    async def delivery_attempt(self, entry: DeliveryQueueEntry, outcome: DeliveryOutcome) -> None:
        await self._append(
            AuditKind.DELIVERY_ATTEMPT,
            AuditSeverity.LOW,
            {
                "attempt": entry.attempts,
                "max_attempts": entry.max_attempts,
                "callback_url": entry.callback_url,
                "status": outcome.status.value,
                "response_status": outcome.response_status,
                "response_time_ms": outcome.response_time_ms,
                "error": outcome.last_error,
                "next_retry_at": outcome.next_retry_at,
            },
            partner_id=entry.business_partner_id,
            delivery_id=entry.id,
            event_id=entry.event_id,
        )

    async def delivery_exhausted(self, entry: DeliveryQueueEntry, last_error: str | None) -> None:
        await self._append(
            AuditKind.DELIVERY_EXHAUSTED,
            AuditSeverity.HIGH,
            {
                "attempts": entry.attempts,
                "max_attempts": entry.max_attempts,
                "callback_url": entry.callback_url,
                "last_error": last_error,
            },
            partner_id=entry.business_partner_id,
            delivery_id=entry.id,
            event_id=entry.event_id,
        )

    async def delivery_requeued(self, entry: DeliveryQueueEntry, actor_id: UUID, previous_error: str | None) -> None:
        await self._append(
            AuditKind.DELIVERY_REQUEUED,
            AuditSeverity.MEDIUM,
            {"callback_url": entry.callback_url, "previous_error": previous_error},
            partner_id=entry.business_partner_id,
            delivery_id=entry.id,
            event_id=entry.event_id,
            actor_id=actor_id,
        )

    async def replay(self, history: ReplayHistory) -> None:
        await self._append(
            AuditKind.REPLAY,
            AuditSeverity.MEDIUM,
            {
                "target_url": history.target_url,
                "success": history.success,
                "response_status": history.response_status,
                "error": history.error_message,
            },
            event_id=history.original_webhook_id,
            actor_id=history.replayed_by,
        )


class UsageRecorder:
    """Counts successful deliveries towards partner API usage."""

    def __init__(self, store: UsageStore):
        self._store = store

    async def delivery_succeeded(self, entry: DeliveryQueueEntry, status_code: int, response_time_ms: int) -> None:
        try:
            await self._store.record(
                partner_id=entry.business_partner_id,
                endpoint=DELIVERY_USAGE_ENDPOINT,
                method="POST",
                status_code=status_code,
                response_time_ms=response_time_ms,
            )
        except Exception:
            logger.exception("usage_write_failed", delivery_id=str(entry.id))
