import asyncio
from unittest.mock import AsyncMock

import pytest

from replacecord.scheduler.periodic_task import PeriodicTask


@pytest.mark.asyncio
async def test_run_once_logs_instead_of_raising() -> None:
    job = AsyncMock(side_effect=RuntimeError("sweep failed"))
    task = PeriodicTask("test", job, lambda: 60)

    await task.run_once()

    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_loop_runs_job_and_shuts_down() -> None:
    ran = asyncio.Event()

    async def job() -> None:
        ran.set()

    task = PeriodicTask("test", job, lambda: 0.01)
    task.start()
    assert task.running

    await asyncio.wait_for(ran.wait(), timeout=1)
    await task.shutdown()

    assert not task.running


@pytest.mark.asyncio
async def test_run_immediately_and_double_start() -> None:
    job = AsyncMock()
    task = PeriodicTask("test", job, lambda: 3600, run_immediately=True)

    task.start()
    task.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    await task.shutdown()

    job.assert_awaited_once()
