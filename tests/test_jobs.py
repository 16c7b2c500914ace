import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from rendezvous import jobs
from rendezvous.jobs import JobScheduler, create_scheduler, match_reconcile_job, retention_sweep_job
from rendezvous.services.match_service import find_match
from rendezvous.services.message_service import get_messages


@pytest.mark.asyncio
async def test_retention_sweep_job_purges(matched, insert_message):
    insert_message(matched.id, "bob", "old", age=timedelta(hours=26))
    kept = insert_message(matched.id, "bob", "new")

    await retention_sweep_job()

    assert [m.id for m in await get_messages(matched.id)] == [kept.id]


@pytest.mark.asyncio
async def test_retention_sweep_job_logs_failures():
    with (
        patch.object(jobs, "purge_all_expired", AsyncMock(side_effect=RuntimeError("db gone"))),
        patch.object(jobs, "logger") as mock_logger,
    ):
        await retention_sweep_job()

    mock_logger.error.assert_called_once()
    assert mock_logger.error.call_args.kwargs["error"] == "db gone"


@pytest.mark.asyncio
async def test_match_reconcile_job(alice, bob, insert_like):
    insert_like("alice", "bob")
    insert_like("bob", "alice")

    await match_reconcile_job()

    assert await find_match("alice", "bob") is not None


@pytest.mark.asyncio
async def test_scheduler_runs_jobs_until_stopped():
    runs = []
    ran_twice = asyncio.Event()

    async def job():
        runs.append(1)
        if len(runs) >= 2:
            ran_twice.set()

    scheduler = JobScheduler()
    scheduler.run_repeating(job, interval=0.01, first=0, name="tick")
    assert not scheduler.is_running

    scheduler.start()
    assert scheduler.is_running
    await asyncio.wait_for(ran_twice.wait(), timeout=1)

    await scheduler.stop()
    assert not scheduler.is_running
    count = len(runs)
    await asyncio.sleep(0.03)
    assert len(runs) == count


def test_create_scheduler_registers_jobs():
    scheduler = create_scheduler()

    assert scheduler.job_names == ["retention_sweep", "match_reconcile"]
