"""Pure retry decisions for delivery attempts."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from chainpass_webhooks.domain.enums import DeliveryStatus
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.domain.results import DeliveryFailure, DeliveryOutcome, DeliveryResult, DeliverySuccess

# 1st retry 30s, then 1m, 5m, 30m, 2h, 6h
DEFAULT_RETRY_DELAYS_SECONDS: tuple[int, ...] = (30, 60, 300, 1800, 7200, 21600)

# Client errors that still mean "try again later".
RETRYABLE_CLIENT_STATUSES = frozenset({408, 425, 429})


def retry_delay_seconds(failure_number: int, delays: Sequence[int] = DEFAULT_RETRY_DELAYS_SECONDS) -> int:
    """Delay before the retry that follows the ``failure_number``-th failure (1-based).

    Past the end of the table the last delay repeats.
    """
    if failure_number < 1:
        raise ValueError("failure_number is 1-based")
    if not delays:
        raise ValueError("retry delay table is empty")
    return delays[min(failure_number, len(delays)) - 1]


def is_retryable(result: DeliveryFailure, *, stop_on_client_error: bool = False) -> bool:
    if not result.retryable:
        return False
    if stop_on_client_error and result.status is not None and 400 <= result.status < 500:
        return result.status in RETRYABLE_CLIENT_STATUSES
    return True


def truncate(value: str | None, limit: int) -> str | None:
    """Clip to ``limit`` characters; NUL is dropped since postgres text cannot hold it."""
    if value is None:
        return None
    return value.replace("\x00", "")[:limit]


def plan_outcome(
    entry: DeliveryQueueEntry,
    result: DeliveryResult,
    now: datetime,
    *,
    delays: Sequence[int] = DEFAULT_RETRY_DELAYS_SECONDS,
    stop_on_client_error: bool = False,
    body_limit: int = 1000,
) -> DeliveryOutcome:
    """Decide the entry's next state from one attempt's result.

    ``entry.attempts`` must already count the attempt that produced ``result``.
    """
    if isinstance(result, DeliverySuccess):
        return DeliveryOutcome(
            status=DeliveryStatus.SUCCESS,
            attempted_at=now,
            next_retry_at=None,
            completed_at=now,
            response_status=result.status,
            response_body=truncate(result.body, body_limit),
            response_time_ms=result.elapsed_ms,
            last_error=None,
        )

    terminal = entry.attempts >= entry.max_attempts or not is_retryable(
        result, stop_on_client_error=stop_on_client_error
    )
    next_retry_at = None
    if not terminal:
        next_retry_at = now + timedelta(seconds=retry_delay_seconds(entry.attempts, delays))
    return DeliveryOutcome(
        status=DeliveryStatus.FAILED,
        attempted_at=now,
        next_retry_at=next_retry_at,
        completed_at=now if terminal else None,
        response_status=result.status,
        response_body=truncate(result.body, body_limit),
        response_time_ms=result.elapsed_ms,
        last_error=truncate(result.error, body_limit),
    )
