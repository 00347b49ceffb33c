"""
In-process implementations of the persistence, queue and screenshot
collaborators. Used by the CLI for local suites and by the tests.
"""

import asyncio
import itertools
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from queuay.core.interfaces import Repository, ScreenshotStore, WorkQueue
from queuay.core.types import (
    Environment,
    Journey,
    Run,
    RunRequest,
    RunStatus,
    ScheduledJob,
    Story,
    StoryOutcomeStatus,
    StoryResult,
)
from queuay.error_handling.exceptions import RepositoryError

logger = logging.getLogger(__name__)


class InMemoryRepository(Repository):
    """Dictionary-backed repository. Returned records are copies."""

    def __init__(self) -> None:
        self.runs: Dict[str, Run] = {}
        self.environments: Dict[str, Environment] = {}
        self.journeys: Dict[str, Journey] = {}
        self.stories: Dict[str, Story] = {}
        self.story_results: List[StoryResult] = []
        self.scheduled_jobs: Dict[str, ScheduledJob] = {}

    # ------------------------------------------------------------------ #
    # Seeding
    # ------------------------------------------------------------------ #
    def add_environment(self, environment: Environment) -> Environment:
        self.environments[environment.id] = environment
        return environment

    def add_journey(self, journey: Journey) -> Journey:
        self.journeys[journey.id] = journey
        return journey

    def add_story(self, story: Story) -> Story:
        if not story.journey_name and story.journey_id in self.journeys:
            story = story.model_copy(
                update={"journey_name": self.journeys[story.journey_id].name}
            )
        self.stories[story.id] = story
        return story

    def add_scheduled_job(self, job: ScheduledJob) -> ScheduledJob:
        self.scheduled_jobs[job.id] = job
        return job

    # ------------------------------------------------------------------ #
    # Runs
    # ------------------------------------------------------------------ #
    async def create_run(self, run: Run) -> Run:
        self.runs[run.id] = run
        return run.model_copy(deep=True)

    async def get_run(self, run_id: str) -> Optional[Run]:
        run = self.runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def update_run(self, run_id: str, **changes: Any) -> Run:
        run = self.runs.get(run_id)
        if run is None:
            raise RepositoryError(f"Run {run_id} not found", operation="update_run")

        unknown = set(changes) - set(Run.model_fields)
        if unknown:
            raise RepositoryError(
                f"Unknown run fields: {', '.join(sorted(unknown))}", operation="update_run"
            )

        updated = run.model_copy(update=changes)
        self.runs[run_id] = updated
        return updated.model_copy(deep=True)

    async def cancel_run(self, run_id: str) -> Run:
        """Administrative cancellation of a pending or running run."""
        run = self.runs.get(run_id)
        if run is None:
            raise RepositoryError(f"Run {run_id} not found", operation="cancel_run")
        if run.status.is_terminal:
            return run.model_copy(deep=True)
        return await self.update_run(run_id, status=RunStatus.CANCELLED)

    # ------------------------------------------------------------------ #
    # Environments, journeys, stories
    # ------------------------------------------------------------------ #
    async def get_environment(self, environment_id: str) -> Optional[Environment]:
        return self.environments.get(environment_id)

    async def list_journey_ids(self, app_id: str) -> List[str]:
        journeys = [j for j in self.journeys.values() if j.app_id == app_id]
        return [j.id for j in sorted(journeys, key=lambda j: j.position)]

    async def get_stories_by_ids(self, story_ids: List[str]) -> List[Story]:
        wanted = set(story_ids)
        return [s.model_copy(deep=True) for s in self.stories.values() if s.id in wanted]

    async def get_stories_by_journeys(self, journey_ids: List[str]) -> List[Story]:
        stories: List[Story] = []
        for journey_id in journey_ids:
            stories.extend(
                s.model_copy(deep=True)
                for s in self.stories.values()
                if s.journey_id == journey_id
            )
        return stories

    async def update_story_last_run(
        self, story_id: str, last_run_at: datetime, last_result: StoryOutcomeStatus
    ) -> None:
        story = self.stories.get(story_id)
        if story is None:
            raise RepositoryError(
                f"Story {story_id} not found", operation="update_story_last_run"
            )
        self.stories[story_id] = story.model_copy(
            update={"last_run_at": last_run_at, "last_result": last_result}
        )

    # ------------------------------------------------------------------ #
    # Story results
    # ------------------------------------------------------------------ #
    async def insert_story_result(self, result: StoryResult) -> StoryResult:
        self.story_results.append(result)
        return result

    async def list_story_results(self, run_id: str) -> List[StoryResult]:
        return [r for r in self.story_results if r.run_id == run_id]

    # ------------------------------------------------------------------ #
    # Scheduled jobs
    # ------------------------------------------------------------------ #
    async def get_due_scheduled_jobs(self, now: datetime) -> List[ScheduledJob]:
        return [
            job.model_copy(deep=True)
            for job in self.scheduled_jobs.values()
            if job.is_enabled and job.next_run_at is not None and job.next_run_at <= now
        ]

    async def update_scheduled_job(
        self, job_id: str, last_run_at: datetime, next_run_at: datetime
    ) -> None:
        job = self.scheduled_jobs.get(job_id)
        if job is None:
            raise RepositoryError(
                f"Scheduled job {job_id} not found", operation="update_scheduled_job"
            )
        self.scheduled_jobs[job_id] = job.model_copy(
            update={"last_run_at": last_run_at, "next_run_at": next_run_at}
        )


class InMemoryWorkQueue(WorkQueue):
    """
    asyncio.Queue-backed work queue.

    Each request is delivered to exactly one consumer and never redelivered,
    which matches an attempt budget of one.
    """

    max_attempts = 1

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[RunRequest]" = asyncio.Queue()
        self._ids = itertools.count(1)

    async def enqueue(self, request: RunRequest) -> str:
        job_id = f"job-{next(self._ids)}"
        await self._queue.put(request)
        logger.debug(f"Enqueued run {request.run_id} as {job_id}")
        return job_id

    async def dequeue(self) -> RunRequest:
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every enqueued request has been processed."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()


class LocalScreenshotStore(ScreenshotStore):
    """Writes failure screenshots as PNG files under a directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    async def upload(self, screenshot: bytes, story_id: str, timestamp: str) -> Optional[str]:
        path = self.directory / f"{story_id}_{timestamp}.png"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(screenshot)
        except OSError as e:
            logger.warning(f"Failed to store screenshot {path}: {e}")
            return None
        return path.resolve().as_uri()
