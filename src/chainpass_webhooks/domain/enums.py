"""Domain enums for webhook delivery and auditing."""
from __future__ import annotations

from enum import Enum


class DeliveryStatus(str, Enum):
    """Delivery queue entry states.

    ``failed`` is retryable while ``next_retry_at`` is set and terminal once it
    is cleared.
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class AuditKind(str, Enum):
    """Kinds of records appended to the audit log."""

    SIGNATURE_INVALID_FORMAT = "signature.invalid_format"
    SIGNATURE_TIMESTAMP_OUT_OF_RANGE = "signature.timestamp_out_of_range"
    SIGNATURE_MISMATCH = "signature.mismatch"
    DELIVERY_ATTEMPT = "delivery.attempt"
    DELIVERY_EXHAUSTED = "delivery.exhausted"
    DELIVERY_REQUEUED = "delivery.requeued"
    REPLAY = "replay"


class AuditSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VerificationFailure(str, Enum):
    """Why an inbound signature was rejected."""

    INVALID_FORMAT = "invalid_format"
    TIMESTAMP_OUT_OF_RANGE = "timestamp_out_of_range"
    MISMATCH = "mismatch"
