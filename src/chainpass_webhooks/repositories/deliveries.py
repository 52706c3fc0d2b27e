"""Webhook delivery queue repository."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, List, Tuple
from uuid import UUID

from asyncpg import Pool, Record  # type: ignore[import-untyped]

from chainpass_webhooks.core.exceptions import InvalidStateError, NotFoundError
from chainpass_webhooks.domain.enums import DeliveryStatus
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.domain.results import DeliveryOutcome
from chainpass_webhooks.repositories.base import BaseRepository

LEASE_EXPIRED_ERROR = "Lease expired before the result of the final attempt was recorded"


class DeliveryQueueRepository(BaseRepository):
    def __init__(self, pool: Pool):
        super().__init__(pool)

    @staticmethod
    def _to_model(record: Record | dict[str, Any]) -> DeliveryQueueEntry:
        return DeliveryQueueEntry.model_validate(dict(record))

    async def enqueue(
        self,
        *,
        partner_id: UUID,
        callback_url: str,
        payload: str,
        max_attempts: int,
        now: datetime,
        event_id: UUID | None = None,
    ) -> DeliveryQueueEntry:
        record = await self._fetchrow(
            """
            INSERT INTO webhook_delivery_queue (
                business_partner_id,
                event_id,
                callback_url,
                payload,
                status,
                attempts,
                max_attempts,
                next_retry_at,
                created_at
            )
            VALUES ($1, $2, $3, $4, 'pending', 0, $5, $6, $6)
            RETURNING *
            """,
            partner_id,
            event_id,
            callback_url,
            payload,
            max_attempts,
            now,
        )
        assert record is not None
        return self._to_model(record)

    async def claim_due(
        self, now: datetime, limit: int, *, lease_seconds: int
    ) -> List[DeliveryQueueEntry]:
        """
        Atomically claim due entries for delivery.

        Row-level locking (FOR UPDATE SKIP LOCKED) keeps concurrent dispatchers
        from claiming the same entry; an expired lease makes the entry
        claimable again.

        Side-effects:
          - claimed_until -> now + lease
          - claim_token -> fresh uuid
          - attempts += 1
        """
        claimed_until = now + timedelta(seconds=lease_seconds)
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                records = await conn.fetch(
                    """
                    WITH due AS (
                        SELECT id
                        FROM webhook_delivery_queue
                        WHERE status IN ('pending', 'failed')
                          AND next_retry_at IS NOT NULL
                          AND next_retry_at <= $1
                          AND attempts < max_attempts
                          AND (claimed_until IS NULL OR claimed_until <= $1)
                        ORDER BY next_retry_at ASC, created_at ASC
                        FOR UPDATE SKIP LOCKED
                        LIMIT $2
                    )
                    UPDATE webhook_delivery_queue q
                    SET claimed_until = $3,
                        claim_token = gen_random_uuid(),
                        attempts = q.attempts + 1,
                        updated_at = now()
                    FROM due
                    WHERE q.id = due.id
                    RETURNING q.*
                    """,
                    now,
                    limit,
                    claimed_until,
                )
        return [self._to_model(r) for r in records]

    async def record_result(
        self, entry_id: UUID, claim_token: UUID, outcome: DeliveryOutcome
    ) -> bool:
        """Write one attempt's outcome; ``False`` if the claim was lost meanwhile."""
        record = await self._fetchrow(
            """
            UPDATE webhook_delivery_queue
            SET status = $3,
                last_attempt_at = $4,
                next_retry_at = $5,
                completed_at = $6,
                response_status = $7,
                response_body = $8,
                response_time_ms = $9,
                last_error = $10,
                claimed_until = NULL,
                claim_token = NULL,
                updated_at = now()
            WHERE id = $1 AND claim_token = $2
            RETURNING id
            """,
            entry_id,
            claim_token,
            outcome.status.value,
            outcome.attempted_at,
            outcome.next_retry_at,
            outcome.completed_at,
            outcome.response_status,
            outcome.response_body,
            outcome.response_time_ms,
            outcome.last_error,
        )
        return record is not None

    async def get(self, entry_id: UUID) -> DeliveryQueueEntry:
        record = await self._fetchrow(
            "SELECT * FROM webhook_delivery_queue WHERE id = $1",
            entry_id,
        )
        if record is None:
            raise NotFoundError("Delivery queue entry not found")
        return self._to_model(record)

    async def list_entries(
        self,
        *,
        status: DeliveryStatus | None = None,
        partner_id: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[DeliveryQueueEntry], int]:
        where = ["TRUE"]
        values: list[Any] = []
        idx = 1
        if status is not None:
            where.append(f"status = ${idx}")
            values.append(status.value)
            idx += 1
        if partner_id is not None:
            where.append(f"business_partner_id = ${idx}")
            values.append(partner_id)
            idx += 1
        where_sql = " AND ".join(where)
        records = await self._fetch(
            f"""
            SELECT *,
                   COUNT(*) OVER() AS total_count
            FROM webhook_delivery_queue
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
                f"SELECT COUNT(*) AS total FROM webhook_delivery_queue WHERE {where_sql}",
                *values,
            )
            total = int(record["total"]) if record else 0
        return [self._to_model(r) for r in rows], total

    async def stats(self, now: datetime) -> dict[str, int]:
        record = await self._fetchrow(
            """
            SELECT
                COUNT(*) FILTER (WHERE status = 'pending') AS pending,
                COUNT(*) FILTER (WHERE status = 'success') AS success,
                COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                COUNT(*) FILTER (WHERE status = 'failed' AND next_retry_at IS NULL) AS exhausted,
                COUNT(*) FILTER (
                    WHERE status IN ('pending', 'failed')
                      AND next_retry_at <= $1
                      AND attempts < max_attempts
                      AND (claimed_until IS NULL OR claimed_until <= $1)
                ) AS due,
                COUNT(*) FILTER (WHERE claimed_until > $1) AS in_flight
            FROM webhook_delivery_queue
            """,
            now,
        )
        assert record is not None
        return {key: int(value or 0) for key, value in dict(record).items()}

    async def requeue(self, entry_id: UUID, now: datetime) -> DeliveryQueueEntry:
        """Re-arm a terminally failed entry for a fresh series of attempts."""
        record = await self._fetchrow(
            """
            UPDATE webhook_delivery_queue
            SET status = 'pending',
                attempts = 0,
                next_retry_at = $2,
                completed_at = NULL,
                claimed_until = NULL,
                claim_token = NULL,
                updated_at = now()
            WHERE id = $1
              AND status = 'failed'
              AND next_retry_at IS NULL
            RETURNING *
            """,
            entry_id,
            now,
        )
        if record is None:
            current = await self.get(entry_id)
            raise InvalidStateError(
                f"Only exhausted deliveries can be retried (status={current.status.value})"
            )
        return self._to_model(record)

    async def release_expired_claims(self, now: datetime) -> int:
        """Clear leases that expired without a recorded result (e.g. after a crash)."""
        result = await self._execute(
            """
            UPDATE webhook_delivery_queue
            SET claimed_until = NULL,
                claim_token = NULL,
                updated_at = now()
            WHERE claimed_until IS NOT NULL
              AND claimed_until <= $1
            """,
            now,
        )
        return self._affected(result)

    async def fail_exhausted_claims(self, now: datetime) -> List[DeliveryQueueEntry]:
        """Terminally fail entries whose final attempt never recorded a result.

        Such entries are excluded from ``claim_due``; without this sweep they
        would stay non-terminal forever.
        """
        records = await self._fetch(
            """
            UPDATE webhook_delivery_queue
            SET status = 'failed',
                next_retry_at = NULL,
                completed_at = $1,
                last_error = $2,
                claimed_until = NULL,
                claim_token = NULL,
                updated_at = now()
            WHERE status IN ('pending', 'failed')
              AND next_retry_at IS NOT NULL
              AND attempts >= max_attempts
              AND (claimed_until IS NULL OR claimed_until <= $1)
            RETURNING *
            """,
            now,
            LEASE_EXPIRED_ERROR,
        )
        return [self._to_model(r) for r in records]
