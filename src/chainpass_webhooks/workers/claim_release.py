"""Worker: settle delivery leases that expired without a recorded result."""
from __future__ import annotations

from datetime import datetime

import structlog

from chainpass_webhooks.db.pool import get_pool
from chainpass_webhooks.repositories.audit import AuditLogRepository
from chainpass_webhooks.repositories.deliveries import DeliveryQueueRepository
from chainpass_webhooks.services.audit import AuditLogger

logger = structlog.get_logger(__name__)


async def delivery_release_stale_claims(now: datetime) -> str | None:
    """Handle entries whose executor crashed or hung past ``webhook_claim_lease_seconds``.

    Entries that already used their last attempt become terminal failures and
    are audited as exhausted; the remaining expired leases are cleared so the
    entries can be claimed again.
    """
    pool = await get_pool()
    deliveries = DeliveryQueueRepository(pool)

    exhausted = await deliveries.fail_exhausted_claims(now)
    if exhausted:
        audit = AuditLogger(AuditLogRepository(pool))
        for entry in exhausted:
            logger.warning(
                "webhook_delivery_exhausted",
                delivery_id=str(entry.id),
                partner_id=str(entry.business_partner_id),
                attempts=entry.attempts,
                error=entry.last_error,
            )
            await audit.delivery_exhausted(entry, entry.last_error)

    released = await deliveries.release_expired_claims(now)
    if not exhausted and not released:
        return None
    return f"exhausted={len(exhausted)} released={released}"
