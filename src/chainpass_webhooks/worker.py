"""Reusable periodic background worker for aiohttp services.

Usage::

    from chainpass_webhooks.worker import BackgroundWorker, WorkerTask

    async def release_stale_claims(now: datetime) -> str | None:
        released = await repo.release_expired_claims(now)
        return f"released={released}" if released else None

    worker = BackgroundWorker(
        name="maintenance",
        interval_seconds=60.0,
        tasks=[WorkerTask(name="release_stale_claims", fn=release_stale_claims)],
    )

    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# Receives the current UTC time, returns an optional summary (logged when non-empty).
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn
    timeout_seconds: float | None = None


@dataclass
class BackgroundWorker:
    """In-process async worker that runs its tasks every ``interval_seconds``.

    Tasks run sequentially and independently: one failing or timing out does
    not prevent the others. Several workers can share an app as long as their
    names differ.
    """

    name: str
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)
    run_immediately: bool = False

    @property
    def _app_key(self) -> str:
        return f"background_worker:{self.name}"

    async def start(self, app: web.Application) -> None:
        """Create the worker asyncio task. Register with ``app.on_startup``."""
        app[self._app_key] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """Cancel the worker task. Register with ``app.on_cleanup``."""
        task = app.get(self._app_key)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def run_once(self, now: datetime | None = None) -> dict[str, str | None]:
        """Run every task once; failed tasks map to ``None``."""
        now = now or datetime.now(timezone.utc)
        summaries: dict[str, str | None] = {}
        for task in self.tasks:
            try:
                if task.timeout_seconds is not None:
                    summary = await asyncio.wait_for(task.fn(now), task.timeout_seconds)
                else:
                    summary = await task.fn(now)
            except asyncio.TimeoutError:
                logger.error("background_task timed out", worker=self.name, task=task.name)
                summary = None
            except Exception:
                logger.exception("background_task failed", worker=self.name, task=task.name)
                summary = None
            else:
                if summary:
                    logger.info("background_task completed", worker=self.name, task=task.name, summary=summary)
            summaries[task.name] = summary
        return summaries

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            worker=self.name,
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        first = True
        while True:
            try:
                if not (first and self.run_immediately):
                    await asyncio.sleep(self.interval_seconds)
                first = False
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped", worker=self.name)
                raise
            except Exception:
                logger.exception("background_worker sweep failed", worker=self.name)
