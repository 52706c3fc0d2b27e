"""Operator-initiated replay of stored events."""
from __future__ import annotations

import time
from typing import Any, List
from uuid import UUID

import structlog
from aiohttp import ClientSession, ClientTimeout

from chainpass_webhooks import signing
from chainpass_webhooks.domain.models import ReplayHistory
from chainpass_webhooks.domain.ports import EventStore, ReplayHistoryStore
from chainpass_webhooks.domain.results import ReplayResult
from chainpass_webhooks.otel import get_tracer
from chainpass_webhooks.services.audit import AuditLogger
from chainpass_webhooks.services.delivery import read_body_prefix
from chainpass_webhooks.services.webhooks import build_envelope

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

REPLAY_HEADER = "X-ChainPass-Replay"
EVENT_HEADER = "X-ChainPass-Event"


class ReplayService:
    """Single-shot re-sends that never touch the delivery queue and are never retried."""

    def __init__(
        self,
        events: EventStore,
        history: ReplayHistoryStore,
        audit: AuditLogger,
        session: ClientSession,
        *,
        timeout_seconds: float = 30.0,
        body_limit: int = 1000,
    ):
        self._events = events
        self._history = history
        self._audit = audit
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._body_limit = body_limit

    async def replay(
        self,
        event_id: UUID,
        target_url: str,
        *,
        actor_id: UUID,
        custom_payload: dict[str, Any] | None = None,
    ) -> ReplayResult:
        event = await self._events.get(event_id)
        # same body shape as live traffic unless the operator supplies one
        payload = custom_payload if custom_payload is not None else build_envelope(event)
        body = signing.serialize_payload(payload)

        log = logger.bind(event_id=str(event_id), target_url=target_url, actor_id=str(actor_id))
        log.info("webhook_replay_started", custom_payload=custom_payload is not None)

        response_status: int | None = None
        response_body: str | None = None
        error_message: str | None = None
        success = False
        started = time.monotonic()
        with tracer.start_as_current_span("webhook.replay", attributes={"webhook.event_id": str(event_id)}):
            try:
                async with self._session.post(
                    target_url,
                    data=body,
                    headers={
                        "Content-Type": "application/json",
                        EVENT_HEADER: event.event_type,
                        REPLAY_HEADER: "true",
                    },
                    timeout=ClientTimeout(total=self._timeout_seconds),
                ) as resp:
                    response_status = resp.status
                    response_body = await read_body_prefix(resp, self._body_limit)
                    success = 200 <= resp.status < 300
                    if not success:
                        error_message = f"HTTP {resp.status}: {resp.reason or ''}".rstrip()
            except TimeoutError:
                error_message = f"Request timeout ({self._timeout_seconds:g} seconds)"
            except Exception as exc:
                error_message = str(exc) or type(exc).__name__
        response_time_ms = int((time.monotonic() - started) * 1000)

        replay_id: UUID | None = None
        try:
            history = await self._history.create(
                original_webhook_id=event_id,
                replayed_by=actor_id,
                target_url=target_url,
                payload=payload,
                response_status=response_status,
                response_body=response_body,
                response_time_ms=response_time_ms,
                success=success,
                error_message=error_message,
            )
        except Exception:
            log.exception("webhook_replay_history_write_failed")
        else:
            replay_id = history.id
            await self._audit.replay(history)

        log.info(
            "webhook_replay_finished",
            success=success,
            response_status=response_status,
            response_time_ms=response_time_ms,
            error=error_message,
        )
        return ReplayResult(
            success=success,
            response_status=response_status,
            response_body=response_body,
            response_time_ms=response_time_ms,
            error_message=error_message,
            replay_id=replay_id,
        )

    async def list_history(
        self, *, event_id: UUID | None = None, limit: int = 50, offset: int = 0
    ) -> tuple[List[ReplayHistory], int]:
        return await self._history.list_entries(event_id=event_id, limit=limit, offset=offset)
