"""Replay history repository."""
from __future__ import annotations

import json
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from chainpass_webhooks.domain.models import ReplayHistory
from chainpass_webhooks.repositories.base import BaseRepository


class ReplayHistoryRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict[str, Any]) -> ReplayHistory:
        return ReplayHistory.model_validate(cls._decode_json(dict(record), "payload"))

    async def create(
        self,
        *,
        original_webhook_id: UUID,
        replayed_by: UUID,
        target_url: str,
        payload: dict[str, Any],
        response_status: int | None,
        response_body: str | None,
        response_time_ms: int,
        success: bool,
        error_message: str | None,
    ) -> ReplayHistory:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_replay_history (
                original_webhook_id,
                replayed_by,
                target_url,
                payload,
                response_status,
                response_body,
                response_time_ms,
                success,
                error_message
            )
            VALUES ($1, $2, $3, $4::jsonb, $5, $6, $7, $8, $9)
            RETURNING *
            """,
            original_webhook_id,
            replayed_by,
            target_url,
            json.dumps(payload),
            response_status,
            response_body,
            response_time_ms,
            success,
            error_message,
        )
        assert record is not None
        return self._to_model(record)

    async def list_entries(
        self, *, event_id: UUID | None = None, limit: int = 50, offset: int = 0
    ) -> Tuple[List[ReplayHistory], int]:
        where_sql = "TRUE"
        values: list[Any] = []
        if event_id is not None:
            where_sql = "original_webhook_id = $1"
            values.append(event_id)
        idx = len(values) + 1
        records = await self._fetch(
            f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM webhook_replay_history
            WHERE {where_sql}
            ORDER BY replayed_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._split_total(records)
        if total is None:
            record = await self._fetchrow(
                f"SELECT COUNT(*) AS total FROM webhook_replay_history WHERE {where_sql}", *values
            )
            total = int(record["total"]) if record else 0
        return [self._to_model(r) for r in rows], total
