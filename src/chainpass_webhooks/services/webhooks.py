"""Event intake and delivery queue management."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List
from uuid import UUID

import structlog

from chainpass_webhooks import signing
from chainpass_webhooks.core.exceptions import ConfigurationError
from chainpass_webhooks.domain.enums import DeliveryStatus
from chainpass_webhooks.domain.models import BusinessPartner, DeliveryQueueEntry, WebhookEvent
from chainpass_webhooks.domain.ports import DeliveryQueue, EventStore, PartnerDirectory
from chainpass_webhooks.services.audit import AuditLogger

logger = structlog.get_logger(__name__)


def build_envelope(event: WebhookEvent) -> dict[str, Any]:
    """Body delivered to partners for ``event``."""
    return {
        "id": str(event.id),
        "event_type": event.event_type,
        "created_at": event.created_at.isoformat(),
        "data": event.payload,
    }


class WebhookService:
    def __init__(
        self,
        partners: PartnerDirectory,
        events: EventStore,
        deliveries: DeliveryQueue,
        audit: AuditLogger,
        *,
        max_attempts: int = 6,
    ):
        self._partners = partners
        self._events = events
        self._deliveries = deliveries
        self._audit = audit
        self._max_attempts = max_attempts

    async def _signable_partner(self, partner_id: UUID) -> BusinessPartner:
        partner = await self._partners.get(partner_id)
        if not partner.is_active:
            raise ConfigurationError("Business partner is not active")
        if not partner.callback_url:
            raise ConfigurationError("Business partner has no callback URL configured")
        if not partner.api_key:
            raise ConfigurationError("Business partner has no API key configured")
        return partner

    async def enqueue(
        self,
        partner_id: UUID,
        payload: Any,
        *,
        event_id: UUID | None = None,
        now: datetime | None = None,
    ) -> DeliveryQueueEntry:
        """Queue ``payload`` for the partner's current callback URL.

        The body is serialized here, once; every attempt signs and sends these
        exact bytes.
        """
        partner = await self._signable_partner(partner_id)
        assert partner.callback_url is not None
        body = signing.serialize_payload(payload).decode("utf-8")
        entry = await self._deliveries.enqueue(
            partner_id=partner.id,
            callback_url=partner.callback_url,
            payload=body,
            max_attempts=self._max_attempts,
            now=now or datetime.now(timezone.utc),
            event_id=event_id,
        )
        logger.info(
            "webhook_enqueued",
            delivery_id=str(entry.id),
            partner_id=str(partner.id),
            event_id=str(event_id) if event_id else None,
            payload_hash=signing.payload_hash(body),
        )
        return entry

    async def emit(
        self, *, partner_id: UUID, event_type: str, payload: dict[str, Any]
    ) -> tuple[WebhookEvent, DeliveryQueueEntry]:
        # refuse before persisting anything for a partner we cannot sign for
        await self._signable_partner(partner_id)
        event = await self._events.create(event_type=event_type, payload=payload)
        entry = await self.enqueue(partner_id, build_envelope(event), event_id=event.id)
        return event, entry

    async def get_event(self, event_id: UUID) -> WebhookEvent:
        return await self._events.get(event_id)

    async def get_delivery(self, entry_id: UUID) -> DeliveryQueueEntry:
        return await self._deliveries.get(entry_id)

    async def list_deliveries(
        self,
        *,
        status: DeliveryStatus | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[DeliveryQueueEntry], int]:
        return await self._deliveries.list_entries(
            status=status, partner_id=partner_id, limit=limit, offset=offset
        )

    async def queue_stats(self, now: datetime | None = None) -> dict[str, int]:
        return await self._deliveries.stats(now or datetime.now(timezone.utc))

    async def retry_delivery(self, entry_id: UUID, *, actor_id: UUID) -> DeliveryQueueEntry:
        """Operator re-arm of an exhausted delivery."""
        current = await self._deliveries.get(entry_id)
        entry = await self._deliveries.requeue(entry_id, datetime.now(timezone.utc))
        logger.info("webhook_requeued", delivery_id=str(entry_id), actor_id=str(actor_id))
        await self._audit.delivery_requeued(entry, actor_id, current.last_error)
        return entry
