"""Delivery executor: sign, POST, classify, record."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Sequence

import structlog
from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout

from chainpass_webhooks import signing
from chainpass_webhooks.core.exceptions import ConfigurationError, InvalidStateError, NotFoundError
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.domain.ports import DeliveryQueue, PartnerDirectory
from chainpass_webhooks.domain.results import DeliveryFailure, DeliveryResult, DeliverySuccess
from chainpass_webhooks.otel import get_tracer
from chainpass_webhooks.services.audit import AuditLogger, UsageRecorder
from chainpass_webhooks.services.retry_policy import DEFAULT_RETRY_DELAYS_SECONDS, plan_outcome

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)

DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"
ATTEMPT_HEADER = "X-Webhook-Attempt"


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def read_body_prefix(resp: ClientResponse, limit: int) -> str:
    """Read at most ``limit`` bytes of the response body."""
    chunks: list[bytes] = []
    remaining = limit
    while remaining > 0:
        chunk = await resp.content.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    raw = b"".join(chunks)
    try:
        return raw.decode(resp.charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


class DeliveryExecutor:
    """Performs one attempt for a claimed queue entry and writes the outcome back."""

    def __init__(
        self,
        deliveries: DeliveryQueue,
        partners: PartnerDirectory,
        audit: AuditLogger,
        usage: UsageRecorder,
        session: ClientSession,
        *,
        timeout_seconds: float = 30.0,
        retry_delays: Sequence[int] = DEFAULT_RETRY_DELAYS_SECONDS,
        stop_on_client_error: bool = False,
        body_limit: int = 1000,
    ):
        self._deliveries = deliveries
        self._partners = partners
        self._audit = audit
        self._usage = usage
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._retry_delays = retry_delays
        self._stop_on_client_error = stop_on_client_error
        self._body_limit = body_limit

    async def _signature_header(self, entry: DeliveryQueueEntry) -> str:
        # the secret is read at send time; a rotated key applies to the next attempt
        partner = await self._partners.get(entry.business_partner_id)
        if not partner.api_key:
            raise ConfigurationError("Business partner API key not found")
        return signing.signature_header_for(entry.payload, partner.api_key)

    async def _post(self, entry: DeliveryQueueEntry, signature_header: str) -> DeliveryResult:
        headers = {
            "Content-Type": "application/json",
            signing.SIGNATURE_HEADER: signature_header,
            DELIVERY_ID_HEADER: str(entry.id),
            ATTEMPT_HEADER: str(entry.attempts),
        }
        started = time.monotonic()
        try:
            async with self._session.post(
                entry.callback_url,
                data=entry.payload.encode("utf-8"),
                headers=headers,
                timeout=ClientTimeout(total=self._timeout_seconds),
            ) as resp:
                text = await read_body_prefix(resp, self._body_limit)
                if 200 <= resp.status < 300:
                    return DeliverySuccess(status=resp.status, body=text, elapsed_ms=_elapsed_ms(started))
                return DeliveryFailure(
                    error=f"HTTP {resp.status}: {text}",
                    status=resp.status,
                    body=text,
                    elapsed_ms=_elapsed_ms(started),
                )
        except TimeoutError:
            return DeliveryFailure(
                error=f"Request timeout ({self._timeout_seconds:g} seconds)",
                elapsed_ms=_elapsed_ms(started),
            )
        except Exception as exc:
            # ClientError, but also URL errors raised before the request starts (IDNA, bad port)
            if not isinstance(exc, ClientError):
                logger.warning("webhook_request_error", delivery_id=str(entry.id), error_type=type(exc).__name__)
            return DeliveryFailure(
                error=str(exc) or type(exc).__name__,
                elapsed_ms=_elapsed_ms(started),
            )

    async def deliver(self, entry: DeliveryQueueEntry, *, now: datetime | None = None) -> DeliveryResult:
        """Send one attempt for a claimed entry.

        Signs with a fresh timestamp, classifies strictly by 2xx, records the
        outcome against the entry's claim token and appends the audit trail.
        """
        if entry.claim_token is None:
            raise InvalidStateError("Delivery entry must be claimed before dispatch")

        log = logger.bind(
            delivery_id=str(entry.id),
            partner_id=str(entry.business_partner_id),
            attempt=entry.attempts,
            max_attempts=entry.max_attempts,
        )
        with tracer.start_as_current_span(
            "webhook.deliver",
            attributes={"webhook.delivery_id": str(entry.id), "webhook.attempt": entry.attempts},
        ):
            try:
                header = await self._signature_header(entry)
            except (ConfigurationError, NotFoundError) as exc:
                result: DeliveryResult = DeliveryFailure(
                    error=f"Configuration error: {exc}", elapsed_ms=0, retryable=False
                )
            else:
                result = await self._post(entry, header)

        outcome = plan_outcome(
            entry,
            result,
            now or datetime.now(timezone.utc),
            delays=self._retry_delays,
            stop_on_client_error=self._stop_on_client_error,
            body_limit=self._body_limit,
        )
        recorded = await self._deliveries.record_result(entry.id, entry.claim_token, outcome)
        if not recorded:
            log.warning("webhook_result_discarded", reason="claim lost before result was recorded")

        if isinstance(result, DeliverySuccess):
            log.info("webhook_delivered", status=result.status, response_time_ms=result.elapsed_ms)
            await self._usage.delivery_succeeded(entry, result.status, result.elapsed_ms)
        elif outcome.exhausted:
            log.warning(
                "webhook_delivery_exhausted",
                callback_url=entry.callback_url,
                error=outcome.last_error,
            )
        else:
            log.info(
                "webhook_delivery_failed",
                error=outcome.last_error,
                next_retry_at=outcome.next_retry_at.isoformat() if outcome.next_retry_at else None,
            )

        await self._audit.delivery_attempt(entry, outcome)
        if outcome.exhausted:
            await self._audit.delivery_exhausted(entry, outcome.last_error)
        return result
