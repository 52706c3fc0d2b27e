"""Unit tests for chainpass_webhooks.signing."""
from __future__ import annotations

import base64
import hmac
import json
from hashlib import sha256

import pytest

from chainpass_webhooks import signing
from chainpass_webhooks.core.exceptions import ConfigurationError
from chainpass_webhooks.domain.enums import VerificationFailure

SECRET = "sk_test_partner"
PAYLOAD = {"event": "verification.completed", "data": {"user_id": "u_1", "score": 0.97}}


def test_sign_matches_reference_hmac():
    ts = 1700000000
    body = json.dumps(PAYLOAD, separators=(",", ":")).encode()
    expected = base64.b64encode(hmac.new(SECRET.encode(), b"1700000000." + body, sha256).digest()).decode()
    assert signing.sign(PAYLOAD, SECRET, ts) == expected
    assert signing.sign(body, SECRET, ts) == expected
    assert signing.sign(body.decode(), SECRET, ts) == expected


def test_sign_rejects_empty_secret():
    with pytest.raises(ConfigurationError):
        signing.sign(PAYLOAD, "", 1700000000)


def test_header_format_and_padding_survives_parse():
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=1700000000)
    assert header.startswith("t=1700000000,v1=")
    parsed = signing.SignatureHeader.parse(header)
    assert parsed is not None
    assert parsed.timestamp == 1700000000
    # 32-byte digest -> 44 base64 chars ending in '='
    assert len(parsed.signature) == 44
    assert parsed.signature.endswith("=")
    assert str(parsed) == header


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "garbage",
        "t=abc,v1=sig",
        "t=1700000000",
        "v1=sig",
        "t=1700000000,v1=",
        "t=-5,v1=sig",
        "t=\u00b2,v1=sig",
        "t=\u0661\u0662,v1=sig",
        "t=" + "1" * 5000 + ",v1=sig",
        "t=" + "1" * 16 + ",v1=sig",
    ],
)
def test_parse_rejects_malformed_headers(value):
    assert signing.SignatureHeader.parse(value) is None


def test_parse_ignores_unknown_keys_and_whitespace():
    parsed = signing.SignatureHeader.parse(" t=1700000000 , v0=old , v1=abc= ")
    assert parsed == signing.SignatureHeader(timestamp=1700000000, signature="abc=")


@pytest.mark.parametrize(
    "payload",
    [PAYLOAD, {}, {"unicode": "Zoë ✓", "n": [1, 2.5, None, True]}, '{"raw":"text"}', b"\x00\x01binary"],
)
def test_round_trip_is_valid(payload):
    now = 1700000000
    header = signing.signature_header_for(payload, SECRET, timestamp=now)
    result = signing.verify(payload, header, SECRET, now=now)
    assert result.valid is True
    assert result.error is None
    assert result.timestamp == now
    assert result.current_time == now


def test_tampered_payload_is_rejected():
    now = 1700000000
    body = json.dumps(PAYLOAD, separators=(",", ":")).encode()
    header = signing.signature_header_for(body, SECRET, timestamp=now)
    for index in (0, len(body) // 2, len(body) - 1):
        tampered = bytearray(body)
        tampered[index] ^= 0x01
        result = signing.verify(bytes(tampered), header, SECRET, now=now)
        assert result.valid is False
        assert result.failure == VerificationFailure.MISMATCH
        assert result.error == "Signature mismatch"


def test_wrong_secret_is_rejected():
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=1700000000)
    result = signing.verify(PAYLOAD, header, "another-secret", now=1700000000)
    assert result.valid is False
    assert result.failure == VerificationFailure.MISMATCH


def test_signature_is_rejected_after_tolerance_window():
    now = 1700000000
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=now)
    assert signing.verify(PAYLOAD, header, SECRET, 300, now=now + 300).valid is True
    late = signing.verify(PAYLOAD, header, SECRET, 300, now=now + 301)
    assert late.valid is False
    assert late.failure == VerificationFailure.TIMESTAMP_OUT_OF_RANGE


def test_stale_timestamp_error_reports_age():
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=1700000000)
    result = signing.verify(PAYLOAD, header, SECRET, 300, now=1700000301)
    assert result.valid is False
    assert result.timestamp == 1700000000
    assert result.current_time == 1700000301
    assert "301s" in result.error
    assert "too old" in result.error


def test_future_timestamp_is_rejected():
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=1700000400)
    result = signing.verify(PAYLOAD, header, SECRET, 300, now=1700000000)
    assert result.valid is False
    assert "ahead" in result.error
    assert "400s" in result.error


def test_timestamp_checked_before_signature():
    # a garbage signature on a stale request reports the timestamp, not a mismatch
    result = signing.verify(PAYLOAD, "t=1600000000,v1=AAAA", SECRET, now=1700000000)
    assert result.failure == VerificationFailure.TIMESTAMP_OUT_OF_RANGE


def test_malformed_header_result():
    result = signing.verify(PAYLOAD, "sha256=deadbeef", SECRET, now=1700000000)
    assert result.valid is False
    assert result.timestamp is None
    assert result.failure == VerificationFailure.INVALID_FORMAT
    assert result.to_dict() == {
        "valid": False,
        "error": "Invalid signature format. Expected: t=<timestamp>,v1=<signature>",
        "timestamp": None,
        "current_time": 1700000000,
    }


def test_constant_time_equals_uses_compare_digest(monkeypatch):
    calls = []
    real = hmac.compare_digest

    def spy(a, b):
        calls.append((a, b))
        return real(a, b)

    monkeypatch.setattr(signing.hmac, "compare_digest", spy)
    header = signing.signature_header_for(PAYLOAD, SECRET, timestamp=1700000000)
    signing.verify(PAYLOAD, header, SECRET, now=1700000000)
    assert len(calls) == 1


def test_payload_hash_is_sha256_of_wire_bytes():
    body = '{"b":1,"a":2}'
    assert signing.payload_hash(body) == sha256(body.encode()).hexdigest()
