"""Inbound signature verification with security auditing."""
from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog

from chainpass_webhooks import signing
from chainpass_webhooks.domain.results import VerificationResult
from chainpass_webhooks.services.audit import AuditLogger

logger = structlog.get_logger(__name__)


class SignatureVerificationService:
    """Runs :func:`signing.verify` and records every rejection."""

    def __init__(self, audit: AuditLogger, *, tolerance_seconds: int = signing.DEFAULT_TOLERANCE_SECONDS):
        self._audit = audit
        self._tolerance_seconds = tolerance_seconds

    async def verify(
        self,
        payload: Any,
        signature_header: str | None,
        secret: str,
        *,
        tolerance_seconds: int | None = None,
        partner_id: UUID | None = None,
        now: int | None = None,
    ) -> VerificationResult:
        tolerance = self._tolerance_seconds if tolerance_seconds is None else tolerance_seconds
        result = signing.verify(payload, signature_header, secret, tolerance, now=now)
        if result.valid:
            return result

        parsed = signing.SignatureHeader.parse(signature_header)
        digest = signing.payload_hash(payload)
        logger.warning(
            "webhook_signature_rejected",
            failure=result.failure.value if result.failure else None,
            error=result.error,
            timestamp=result.timestamp,
            current_time=result.current_time,
            payload_hash=digest,
        )
        await self._audit.signature_failure(
            result,
            provided_signature=parsed.signature if parsed else None,
            payload_sha256=digest,
            signature_header=signature_header,
            partner_id=partner_id,
        )
        return result
