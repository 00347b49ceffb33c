"""
Schedule Trigger: promotes due recurring jobs into queued runs.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from queuay.core.interfaces import Repository, WorkQueue
from queuay.core.types import Run, ScheduledJob, TriggerType, utc_now
from queuay.error_handling.exceptions import ScheduleError
from queuay.monitoring.logger import get_logger
from queuay.orchestration.cron import calculate_next_run
from queuay.orchestration.triggers import submit_run


class ScheduleTrigger:
    """Polls for due scheduled jobs and fires them through `submit_run`."""

    def __init__(
        self,
        repository: Repository,
        queue: WorkQueue,
        interval_seconds: int = 60,
    ) -> None:
        """
        Initialize the schedule trigger.

        Args:
            repository: Source of scheduled jobs and sink for runs
            queue: Work queue receiving the run requests
            interval_seconds: Seconds between polls
        """
        self.repository = repository
        self.queue = queue
        self.interval_seconds = interval_seconds
        self.logger = get_logger("orchestration.scheduler")
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def tick(self, now: Optional[datetime] = None) -> List[Run]:
        """
        Fire every due job once.

        A failing job is logged and skipped; the remaining due jobs are
        still evaluated.

        Args:
            now: Evaluation instant (defaults to the current time)

        Returns:
            Runs created during this tick
        """
        now = now or utc_now()
        jobs = await self.repository.get_due_scheduled_jobs(now)
        if not jobs:
            return []

        self.logger.info("Found due scheduled jobs", extra={"count": len(jobs)})

        runs: List[Run] = []
        for job in jobs:
            try:
                runs.append(await self._fire(job, now))
            except Exception as e:
                error = ScheduleError(
                    f"Failed to fire scheduled job {job.id}: {e}", job_id=job.id, cause=e
                )
                self.logger.error(
                    error.message,
                    extra={"error_code": error.error_code, **error.details},
                )
        return runs

    async def _fire(self, job: ScheduledJob, now: datetime) -> Run:
        run = await submit_run(
            self.repository,
            self.queue,
            organization_id=job.organization_id,
            app_id=job.app_id,
            environment_id=job.environment_id,
            trigger_type=TriggerType.SCHEDULED,
            journey_ids=job.journey_ids,
            triggered_by=f"schedule:{job.id}",
        )

        next_run_at = calculate_next_run(job.cron_expression, job.timezone, now)
        await self.repository.update_scheduled_job(
            job.id, last_run_at=now, next_run_at=next_run_at
        )

        self.logger.info(
            "Scheduled job triggered",
            extra={
                "job_id": job.id,
                "job_name": job.name,
                "run_id": run.id,
                "next_run_at": next_run_at.isoformat(),
            },
        )
        return run

    async def run_forever(self) -> None:
        """Tick every `interval_seconds` until stopped."""
        self._running = True
        self.logger.info(
            "Scheduler started", extra={"interval_seconds": self.interval_seconds}
        )

        while self._running:
            try:
                await self.tick()
            except Exception:
                self.logger.exception("Scheduler tick failed")

            await asyncio.sleep(self.interval_seconds)

        self.logger.info("Scheduler stopped")

    def start(self) -> asyncio.Task:
        """Run the polling loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
