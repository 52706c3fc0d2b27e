"""Append-only audit log and API usage accounting."""
from __future__ import annotations

import json
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from chainpass_webhooks.domain.enums import AuditKind, AuditSeverity
from chainpass_webhooks.domain.models import AuditRecord
from chainpass_webhooks.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository):
    """Rows are only ever inserted; there is no update or delete path."""

    def __init__(self, pool: Pool):
        super().__init__(pool)

    @classmethod
    def _to_model(cls, record: Record | dict[str, Any]) -> AuditRecord:
        return AuditRecord.model_validate(cls._decode_json(dict(record), "details"))

    async def append(
        self,
        *,
        kind: AuditKind,
        severity: AuditSeverity,
        details: dict[str, Any],
        partner_id: UUID | None = None,
        delivery_id: UUID | None = None,
        event_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        await self._execute(
            """
            INSERT INTO webhook_audit_log (
                kind, severity, partner_id, delivery_id, event_id, actor_id, details
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
            """,
            kind.value,
            severity.value,
            partner_id,
            delivery_id,
            event_id,
            actor_id,
            json.dumps(details, default=str),
        )

    async def list_entries(
        self,
        *,
        kind: AuditKind | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[AuditRecord], int]:
        where = ["TRUE"]
        values: list[Any] = []
        idx = 1
        if kind is not None:
            where.append(f"kind = ${idx}")
            values.append(kind.value)
            idx += 1
        if partner_id is not None:
            where.append(f"partner_id = ${idx}")
            values.append(partner_id)
            idx += 1
        where_sql = " AND ".join(where)
        records = await self._fetch(
            f"""
            SELECT *, COUNT(*) OVER() AS total_count
            FROM webhook_audit_log
            WHERE {where_sql}
            ORDER BY created_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
            """,
            *values,
            limit,
            offset,
        )
        rows, total = self._split_total(records)
        if total is None:
            record = await self._fetchrow(
                f"SELECT COUNT(*) AS total FROM webhook_audit_log WHERE {where_sql}", *values
            )
            total = int(record["total"]) if record else 0
        return [self._to_model(r) for r in rows], total


class ApiUsageRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    async def record(
        self,
        *,
        partner_id: UUID,
        endpoint: str,
        method: str,
        status_code: int,
        response_time_ms: int,
    ) -> None:
        await self._execute(
            """
            INSERT INTO api_usage_logs (
                business_partner_id, endpoint, method, status_code, response_time_ms
            )
            VALUES ($1, $2, $3, $4, $5)
            """,
            partner_id,
            endpoint,
            method,
            status_code,
            response_time_ms,
        )
