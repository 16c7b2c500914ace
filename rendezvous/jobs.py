"""Background jobs for the Rendezvous engine."""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

import sentry_sdk

from rendezvous.config import settings
from rendezvous.services.match_service import reconcile_mutual_likes
from rendezvous.services.message_service import purge_all_expired
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[None]]


async def retention_sweep_job() -> None:
    """Job to hard-delete messages older than the retention window."""
    logger.debug("Running retention sweep job")

    with sentry_sdk.start_span(op="job.retention_sweep", name="retention_sweep") as span:
        try:
            deleted = await purge_all_expired()
            span.set_data("deleted", deleted)
            if deleted:
                logger.info("Retention sweep finished", deleted=deleted)
        except Exception as e:
            logger.error("Error in retention sweep job", error=str(e))
            span.set_status("internal_error")
            span.set_data("error", str(e))


async def match_reconcile_job() -> None:
    """Job to create matches for mutual likes that raced past each other."""
    logger.debug("Running match reconcile job")

    with sentry_sdk.start_span(op="job.match_reconcile", name="match_reconcile") as span:
        try:
            created = await reconcile_mutual_likes()
            span.set_data("created", created)
        except Exception as e:
            logger.error("Error in match reconcile job", error=str(e))
            span.set_status("internal_error")
            span.set_data("error", str(e))


class JobScheduler:
    """Runs jobs on fixed intervals inside the event loop."""

    def __init__(self) -> None:
        self._jobs: Dict[str, tuple[Job, float, float]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def run_repeating(self, job: Job, interval: float, first: float = 0, name: Optional[str] = None) -> None:
        """
        Register a job.

        Args:
            job: Coroutine function taking no arguments.
            interval: Seconds between runs.
            first: Seconds before the first run.
            name: Job name; defaults to the function name.
        """
        job_name = name or job.__name__
        self._jobs[job_name] = (job, interval, first)
        if self.is_running and job_name not in self._tasks:
            self._tasks[job_name] = asyncio.create_task(self._loop(job, interval, first))

    def start(self) -> None:
        for job_name, (job, interval, first) in self._jobs.items():
            if job_name not in self._tasks:
                self._tasks[job_name] = asyncio.create_task(self._loop(job, interval, first))
        logger.info("Job scheduler started", jobs=self.job_names)

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Job scheduler stopped")

    async def _loop(self, job: Job, interval: float, first: float) -> None:
        await asyncio.sleep(first)
        while True:
            await job()
            await asyncio.sleep(interval)


def create_scheduler() -> JobScheduler:
    """Scheduler with the retention sweep and match reconcile jobs registered."""
    scheduler = JobScheduler()
    scheduler.run_repeating(
        retention_sweep_job,
        interval=settings.RETENTION_SWEEP_INTERVAL,
        first=10,  # Start after 10 seconds
        name="retention_sweep",
    )
    scheduler.run_repeating(
        match_reconcile_job,
        interval=settings.MATCH_RECONCILE_INTERVAL,
        first=60,  # Start after 1 minute
        name="match_reconcile",
    )
    return scheduler
