"""Maintenance worker for the webhook service.

Each task is a standalone module exporting one async function compatible with
:class:`chainpass_webhooks.worker.WorkerTask`.
"""
from __future__ import annotations

from chainpass_webhooks.settings import settings
from chainpass_webhooks.worker import BackgroundWorker, WorkerTask
from chainpass_webhooks.workers.claim_release import delivery_release_stale_claims

worker = BackgroundWorker(
    name="maintenance",
    interval_seconds=settings.worker_interval_seconds,
    tasks=[
        WorkerTask(name="delivery_release_stale_claims", fn=delivery_release_stale_claims),
    ],
)

start_background_worker = worker.start
stop_background_worker = worker.stop

__all__ = [
    "worker",
    "start_background_worker",
    "stop_background_worker",
]
