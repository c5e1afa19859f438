"""Tests for the in-process retry scheduler."""

from __future__ import annotations

import asyncio

import pytest

from cloakpay.infrastructure.scheduling import RetryScheduler


@pytest.mark.asyncio
async def test_job_runs_after_delay() -> None:
    scheduler = RetryScheduler()
    ran: list[str] = []

    async def job() -> None:
        ran.append("done")

    scheduler.schedule("a", 0.01, job)
    assert scheduler.is_scheduled("a")
    await scheduler.join()

    assert ran == ["done"]
    assert scheduler.pending() == 0


@pytest.mark.asyncio
async def test_rescheduling_replaces_sleeping_job() -> None:
    scheduler = RetryScheduler()
    ran: list[int] = []

    def job(n: int):
        async def run() -> None:
            ran.append(n)

        return run

    scheduler.schedule("a", 10, job(1))
    scheduler.schedule("a", 0, job(2))
    await scheduler.join()

    assert ran == [2]


@pytest.mark.asyncio
async def test_failing_job_does_not_break_scheduler() -> None:
    scheduler = RetryScheduler()
    ran: list[str] = []

    async def boom() -> None:
        raise RuntimeError("boom")

    async def ok() -> None:
        ran.append("ok")

    scheduler.schedule("a", 0, boom)
    scheduler.schedule("b", 0, ok)
    await scheduler.join()

    assert ran == ["ok"]


@pytest.mark.asyncio
async def test_shutdown_cancels_and_refuses_new_jobs() -> None:
    scheduler = RetryScheduler()
    ran: list[str] = []

    async def job() -> None:
        ran.append("late")

    scheduler.schedule("a", 60, job)
    assert scheduler.cancel("a")
    scheduler.schedule("b", 60, job)
    await scheduler.shutdown()
    scheduler.schedule("c", 0, job)
    await asyncio.sleep(0)

    assert ran == []
    assert scheduler.pending() == 0
