"""Background webhook dispatcher (claims due queue entries and delivers them)."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from aiohttp import web

from chainpass_webhooks.app_state import get_http_session, get_repositories
from chainpass_webhooks.domain.models import DeliveryQueueEntry
from chainpass_webhooks.domain.ports import DeliveryQueue
from chainpass_webhooks.domain.results import DeliverySuccess
from chainpass_webhooks.services.audit import AuditLogger, UsageRecorder
from chainpass_webhooks.services.delivery import DeliveryExecutor
from chainpass_webhooks.settings import settings
from chainpass_webhooks.worker import BackgroundWorker, WorkerTask

logger = structlog.get_logger(__name__)

_DISPATCHER_WORKER_KEY = "webhook_dispatcher_worker"


class DeliveryDispatcher:
    """One scheduler tick: claim due entries, deliver them on a bounded pool.

    Any number of dispatchers may run against the same queue; the atomic claim
    guarantees an entry is in flight on at most one of them.
    """

    def __init__(
        self,
        deliveries: DeliveryQueue,
        executor: DeliveryExecutor,
        *,
        batch_size: int = 50,
        max_concurrency: int = 10,
        lease_seconds: int = 300,
    ):
        self._deliveries = deliveries
        self._executor = executor
        self._batch_size = batch_size
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._lease_seconds = lease_seconds

    async def _deliver(self, entry: DeliveryQueueEntry):
        async with self._semaphore:
            return await self._executor.deliver(entry)

    async def run_once(self, now: datetime | None = None) -> dict[str, int]:
        now = now or datetime.now(timezone.utc)
        entries = await self._deliveries.claim_due(
            now, self._batch_size, lease_seconds=self._lease_seconds
        )
        summary = {"claimed": len(entries), "succeeded": 0, "failed": 0, "errors": 0}
        if not entries:
            return summary

        results = await asyncio.gather(
            *(self._deliver(entry) for entry in entries), return_exceptions=True
        )
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                # lease expiry makes the entry claimable again
                summary["errors"] += 1
                logger.error(
                    "webhook_dispatch_error",
                    delivery_id=str(entry.id),
                    error=str(result),
                    error_type=type(result).__name__,
                    exc_info=result,
                )
            elif isinstance(result, DeliverySuccess):
                summary["succeeded"] += 1
            else:
                summary["failed"] += 1
        return summary

    async def tick(self, now: datetime) -> str | None:
        summary = await self.run_once(now)
        if not summary["claimed"]:
            return None
        return " ".join(f"{key}={value}" for key, value in summary.items())


def build_dispatcher(app: web.Application) -> DeliveryDispatcher:
    repos = get_repositories(app)
    executor = DeliveryExecutor(
        repos.deliveries,
        repos.partners,
        AuditLogger(repos.audit),
        UsageRecorder(repos.usage),
        get_http_session(app),
        timeout_seconds=settings.webhook_request_timeout_seconds,
        retry_delays=settings.webhook_retry_delays_seconds,
        stop_on_client_error=settings.webhook_stop_on_client_error,
        body_limit=settings.webhook_response_body_limit,
    )
    return DeliveryDispatcher(
        repos.deliveries,
        executor,
        batch_size=settings.webhook_dispatch_batch_size,
        max_concurrency=settings.webhook_dispatch_max_concurrency,
        lease_seconds=settings.webhook_claim_lease_seconds,
    )


async def start_webhook_dispatcher(app: web.Application) -> None:
    dispatcher = build_dispatcher(app)
    worker = BackgroundWorker(
        name="webhook_dispatcher",
        interval_seconds=settings.webhook_dispatch_interval_seconds,
        tasks=[WorkerTask(name="webhook_dispatch", fn=dispatcher.tick)],
        run_immediately=True,
    )
    app[_DISPATCHER_WORKER_KEY] = worker
    await worker.start(app)


async def stop_webhook_dispatcher(app: web.Application) -> None:
    worker = app.get(_DISPATCHER_WORKER_KEY)
    if worker is not None:
        await worker.stop(app)
