"""Unit tests for chainpass_webhooks.worker.BackgroundWorker.

These are pure async tests, no database or aiohttp test server required.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from aiohttp import web

from chainpass_webhooks.worker import BackgroundWorker, WorkerTask


@pytest.mark.asyncio
async def test_worker_runs_tasks_with_utc_time():
    called_with: list[datetime] = []

    async def task_fn(now: datetime) -> str | None:
        called_with.append(now)
        return "ok"

    worker = BackgroundWorker(name="t", interval_seconds=0.05, tasks=[WorkerTask(name="task", fn=task_fn)])
    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.2)
    await worker.stop(app)

    assert len(called_with) >= 2
    assert all(dt.tzinfo is not None for dt in called_with)


@pytest.mark.asyncio
async def test_task_failure_does_not_stop_others():
    good = AsyncMock(return_value=None)

    async def bad_task(now: datetime) -> str | None:
        raise RuntimeError("boom")

    worker = BackgroundWorker(
        name="t",
        tasks=[WorkerTask(name="bad", fn=bad_task), WorkerTask(name="good", fn=good)],
    )
    summaries = await worker.run_once()

    assert summaries == {"bad": None, "good": None}
    good.assert_awaited_once()


@pytest.mark.asyncio
async def test_task_timeout_is_isolated():
    async def slow(now: datetime) -> str | None:
        await asyncio.sleep(5)
        return "never"

    fast = AsyncMock(return_value="done")
    worker = BackgroundWorker(
        name="t",
        tasks=[WorkerTask(name="slow", fn=slow, timeout_seconds=0.05), WorkerTask(name="fast", fn=fast)],
    )

    assert await worker.run_once() == {"slow": None, "fast": "done"}


@pytest.mark.asyncio
async def test_run_immediately_skips_first_sleep():
    fn = AsyncMock(return_value=None)
    worker = BackgroundWorker(name="t", interval_seconds=60, tasks=[WorkerTask(name="t", fn=fn)], run_immediately=True)
    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.05)
    await worker.stop(app)
    fn.assert_awaited_once()


@pytest.mark.asyncio
async def test_stop_is_clean_and_final():
    fn = AsyncMock(return_value=None)
    worker = BackgroundWorker(name="t", interval_seconds=0.05, tasks=[WorkerTask(name="t", fn=fn)])
    app = web.Application()
    await worker.start(app)
    await asyncio.sleep(0.12)
    await worker.stop(app)

    count_at_stop = fn.await_count
    await asyncio.sleep(0.1)
    assert fn.await_count == count_at_stop


@pytest.mark.asyncio
async def test_two_workers_share_an_app():
    a = AsyncMock(return_value=None)
    b = AsyncMock(return_value=None)
    first = BackgroundWorker(name="first", interval_seconds=0.05, tasks=[WorkerTask(name="a", fn=a)])
    second = BackgroundWorker(name="second", interval_seconds=0.05, tasks=[WorkerTask(name="b", fn=b)])
    app = web.Application()
    await first.start(app)
    await second.start(app)
    await asyncio.sleep(0.12)
    await first.stop(app)
    await second.stop(app)
    assert a.await_count >= 1
    assert b.await_count >= 1


@pytest.mark.asyncio
async def test_worker_stop_without_start():
    worker = BackgroundWorker(name="t", interval_seconds=1.0, tasks=[])
    await worker.stop(web.Application())  # should not raise
