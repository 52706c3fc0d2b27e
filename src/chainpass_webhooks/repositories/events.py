"""Webhook event store."""
from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from chainpass_webhooks.core.exceptions import NotFoundError
from chainpass_webhooks.domain.models import WebhookEvent
from chainpass_webhooks.repositories.base import BaseRepository


class WebhookEventRepository(BaseRepository):
    """Insert-only storage of produced events."""

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record) -> WebhookEvent:
        return WebhookEvent.model_validate(cls._decode_json(dict(record), "payload"))

    async def create(self, *, event_type: str, payload: dict[str, Any]) -> WebhookEvent:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_events (event_type, payload)
            VALUES ($1, $2::jsonb)
            RETURNING *
            """,
            event_type,
            json.dumps(payload),
        )
        assert record is not None
        return self._to_model(record)

    async def get(self, event_id: UUID) -> WebhookEvent:
        record = await self._fetchrow("SELECT * FROM webhook_events WHERE id = $1", event_id)
        if record is None:
            raise NotFoundError("Webhook event not found")
        return self._to_model(record)
