"""Read-only access to business partners."""
from __future__ import annotations

from uuid import UUID

from asyncpg import Pool  # type: ignore[import-untyped]

from chainpass_webhooks.core.exceptions import NotFoundError
from chainpass_webhooks.domain.models import BusinessPartner
from chainpass_webhooks.repositories.base import BaseRepository


class BusinessPartnerRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    async def get(self, partner_id: UUID) -> BusinessPartner:
        record = await self._fetchrow(
            """
            SELECT id, user_id, business_name, callback_url, api_key, is_active
            FROM business_partners
            WHERE id = $1
            """,
            partner_id,
        )
        if record is None:
            raise NotFoundError("Business partner not found")
        return BusinessPartner.model_validate(dict(record))
