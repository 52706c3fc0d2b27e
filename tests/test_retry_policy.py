"""Unit tests for the retry schedule."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from chainpass_webhooks.domain.enums import DeliveryStatus
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.domain.results import DeliveryFailure, DeliverySuccess
from chainpass_webhooks.services.retry_policy import (
    DEFAULT_RETRY_DELAYS_SECONDS,
    plan_outcome,
    retry_delay_seconds,
    truncate,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _entry(attempts: int, max_attempts: int = 6) -> DeliveryQueueEntry:
    return DeliveryQueueEntry(
        id=uuid.uuid4(),
        business_partner_id=uuid.uuid4(),
        callback_url="https://partner.test/hook",
        payload="{}",
        status=DeliveryStatus.PENDING,
        attempts=attempts,
        max_attempts=max_attempts,
        created_at=NOW,
        claim_token=uuid.uuid4(),
    )


def test_delay_table_matches_documented_schedule():
    assert [retry_delay_seconds(n) for n in range(1, 7)] == [30, 60, 300, 1800, 7200, 21600]
    assert retry_delay_seconds(7) == 21600
    with pytest.raises(ValueError):
        retry_delay_seconds(0)


def test_consecutive_failures_follow_schedule_then_terminal():
    failure = DeliveryFailure(error="HTTP 503: down", status=503, elapsed_ms=12)
    delays = []
    for attempt in range(1, 7):
        outcome = plan_outcome(_entry(attempt, max_attempts=7), failure, NOW)
        assert outcome.status == DeliveryStatus.FAILED
        assert outcome.next_retry_at is not None
        delays.append(outcome.next_retry_at - NOW)
    assert delays == [timedelta(seconds=s) for s in DEFAULT_RETRY_DELAYS_SECONDS]

    last = plan_outcome(_entry(7, max_attempts=7), failure, NOW)
    assert last.next_retry_at is None
    assert last.completed_at == NOW
    assert last.exhausted


def test_sixth_failure_is_terminal_with_default_ceiling():
    failure = DeliveryFailure(error="connection refused", elapsed_ms=1)
    assert plan_outcome(_entry(5), failure, NOW).next_retry_at == NOW + timedelta(seconds=7200)
    outcome = plan_outcome(_entry(6), failure, NOW)
    assert outcome.exhausted
    assert outcome.last_error == "connection refused"


def test_success_is_terminal_and_clears_error():
    outcome = plan_outcome(_entry(2), DeliverySuccess(status=204, body="", elapsed_ms=40), NOW)
    assert outcome.status == DeliveryStatus.SUCCESS
    assert outcome.next_retry_at is None
    assert outcome.completed_at == NOW
    assert outcome.last_error is None
    assert outcome.response_status == 204
    assert not outcome.exhausted


def test_client_errors_retry_by_default():
    failure = DeliveryFailure(error="HTTP 400: bad", status=400, elapsed_ms=3)
    assert plan_outcome(_entry(1), failure, NOW).next_retry_at is not None


@pytest.mark.parametrize("status,retried", [(400, False), (404, False), (408, True), (429, True), (500, True)])
def test_stop_on_client_error(status, retried):
    failure = DeliveryFailure(error=f"HTTP {status}: x", status=status, elapsed_ms=3)
    outcome = plan_outcome(_entry(1), failure, NOW, stop_on_client_error=True)
    assert (outcome.next_retry_at is not None) is retried


def test_non_retryable_failure_is_terminal_immediately():
    failure = DeliveryFailure(error="Configuration error: no key", elapsed_ms=0, retryable=False)
    assert plan_outcome(_entry(1), failure, NOW).exhausted


def test_response_body_and_error_truncated():
    failure = DeliveryFailure(error="HTTP 500: " + "x" * 5000, status=500, body="y" * 5000, elapsed_ms=1)
    outcome = plan_outcome(_entry(1), failure, NOW, body_limit=100)
    assert len(outcome.response_body) == 100
    assert len(outcome.last_error) == 100


def test_truncate_drops_nul_characters():
    assert truncate("a\x00b\x00c", 2) == "ab"
    assert truncate(None, 10) is None
