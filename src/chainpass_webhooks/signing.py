"""HMAC-SHA256 webhook signatures.

Outbound requests carry ``X-Webhook-Signature: t=<unix_seconds>,v1=<base64>``
where the signature is computed over ``b"<t>." + body_bytes``. Receivers
recompute it over the bytes they actually received, so the body is signed
exactly as it goes on the wire and never re-serialized in between.
"""
from __future__ import annotations

import base64
import hmac
import json
import time
from dataclasses import dataclass
from hashlib import sha256
from typing import Any

from chainpass_webhooks.core.exceptions import ConfigurationError
from chainpass_webhooks.domain.enums import VerificationFailure
from chainpass_webhooks.domain.results import VerificationResult

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_VERSION = "v1"
DEFAULT_TOLERANCE_SECONDS = 300
MAX_TIMESTAMP_DIGITS = 15


def serialize_payload(payload: Any) -> bytes:
    """Return the exact bytes to sign and send.

    ``bytes``/``str`` are taken verbatim; anything else is serialized once in
    compact JSON form.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def payload_hash(payload: Any) -> str:
    """Hex SHA-256 of the payload bytes, used in audit records instead of the body."""
    return sha256(serialize_payload(payload)).hexdigest()


def sign(payload: Any, secret: str, timestamp: int) -> str:
    """Base64 HMAC-SHA256 over ``"{timestamp}.{payload}"`` keyed by ``secret``."""
    if not secret:
        raise ConfigurationError("Webhook signing secret is empty")
    message = f"{timestamp}.".encode("utf-8") + serialize_payload(payload)
    digest = hmac.new(secret.encode("utf-8"), message, sha256).digest()
    return base64.b64encode(digest).decode("ascii")


@dataclass(frozen=True)
class SignatureHeader:
    timestamp: int
    signature: str

    def __str__(self) -> str:
        return create_signature_header(self.timestamp, self.signature)

    @classmethod
    def parse(cls, value: str | None) -> SignatureHeader | None:
        """Parse ``t=<ts>,v1=<sig>``; unknown keys are ignored, ``None`` if malformed."""
        if not value:
            return None
        timestamp: int | None = None
        signature: str | None = None
        for part in value.split(","):
            # partition keeps base64 '=' padding inside the value
            key, sep, item = part.strip().partition("=")
            if not sep:
                continue
            if key == "t" and timestamp is None:
                if not (item.isascii() and item.isdigit()) or len(item) > MAX_TIMESTAMP_DIGITS:
                    return None
                timestamp = int(item)
            elif key == SIGNATURE_VERSION and signature is None:
                signature = item
        if timestamp is None or not signature:
            return None
        return cls(timestamp=timestamp, signature=signature)


def create_signature_header(timestamp: int, signature: str) -> str:
    return f"t={timestamp},{SIGNATURE_VERSION}={signature}"


def signature_header_for(payload: Any, secret: str, timestamp: int | None = None) -> str:
    """Sign with ``timestamp`` (default: now) and format the header value."""
    ts = int(time.time()) if timestamp is None else timestamp
    return create_signature_header(ts, sign(payload, secret, ts))


def constant_time_equals(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def verify(
    payload: Any,
    signature_header: str | None,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    *,
    now: int | None = None,
) -> VerificationResult:
    """Check a received payload against its signature header.

    The expected signature is recomputed with the *received* timestamp, after
    the timestamp has been checked against ``tolerance_seconds``.
    """
    current_time = int(time.time()) if now is None else now
    parsed = SignatureHeader.parse(signature_header)
    if parsed is None:
        return VerificationResult(
            valid=False,
            timestamp=None,
            current_time=current_time,
            error="Invalid signature format. Expected: t=<timestamp>,v1=<signature>",
            failure=VerificationFailure.INVALID_FORMAT,
        )

    diff = current_time - parsed.timestamp
    if abs(diff) > tolerance_seconds:
        if diff > 0:
            error = f"Timestamp too old. Request age: {diff}s, tolerance: {tolerance_seconds}s"
        else:
            error = (
                f"Timestamp too far ahead. Clock skew: {-diff}s, tolerance: {tolerance_seconds}s"
            )
        return VerificationResult(
            valid=False,
            timestamp=parsed.timestamp,
            current_time=current_time,
            error=error,
            failure=VerificationFailure.TIMESTAMP_OUT_OF_RANGE,
        )

    expected = sign(payload, secret, parsed.timestamp)
    if not constant_time_equals(parsed.signature, expected):
        return VerificationResult(
            valid=False,
            timestamp=parsed.timestamp,
            current_time=current_time,
            error="Signature mismatch",
            failure=VerificationFailure.MISMATCH,
        )
    return VerificationResult(valid=True, timestamp=parsed.timestamp, current_time=current_time)
