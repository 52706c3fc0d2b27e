"""Repository package exports."""
from __future__ import annotations

from dataclasses import dataclass

from asyncpg import Pool  # type: ignore[import-untyped]

from chainpass_webhooks.domain.ports import (
    AuditStore,
    DeliveryQueue,
    EventStore,
    PartnerDirectory,
    ReplayHistoryStore,
    UsageStore,
    WebhookTestHistoryStore,
)
from chainpass_webhooks.repositories.audit import ApiUsageRepository, AuditLogRepository
from chainpass_webhooks.repositories.deliveries import DeliveryQueueRepository
from chainpass_webhooks.repositories.events import WebhookEventRepository
from chainpass_webhooks.repositories.partners import BusinessPartnerRepository
from chainpass_webhooks.repositories.replays import ReplayHistoryRepository
from chainpass_webhooks.repositories.webhook_tests import WebhookTestHistoryRepository


@dataclass
class Repositories:
    """Storage bundle handed to services, API handlers and the dispatcher."""

    deliveries: DeliveryQueue
    partners: PartnerDirectory
    events: EventStore
    replays: ReplayHistoryStore
    audit: AuditStore
    usage: UsageStore
    webhook_tests: WebhookTestHistoryStore

    @classmethod
    def from_pool(cls, pool: Pool) -> Repositories:
        return cls(
            deliveries=DeliveryQueueRepository(pool),
            partners=BusinessPartnerRepository(pool),
            events=WebhookEventRepository(pool),
            replays=ReplayHistoryRepository(pool),
            audit=AuditLogRepository(pool),
            usage=ApiUsageRepository(pool),
            webhook_tests=WebhookTestHistoryRepository(pool),
        )


__all__ = [
    "Repositories",
    "ApiUsageRepository",
    "AuditLogRepository",
    "BusinessPartnerRepository",
    "DeliveryQueueRepository",
    "ReplayHistoryRepository",
    "WebhookEventRepository",
    "WebhookTestHistoryRepository",
]
