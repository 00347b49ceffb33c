"""
Run Orchestrator: drives one run from dequeue to terminal status.

    pending -> running -> completed
                  |
                  +----> cancelled (external request; honoured before start, between
                                 stories and at completion)

Faults before the run is marked running (missing run, missing environment,
unresolvable story set) propagate to the caller, which owns marking the run
failed. Faults while running are absorbed at story granularity.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Union

from queuay.core.interfaces import Repository
from queuay.core.types import (
    Environment,
    Run,
    RunProgress,
    RunRequest,
    RunStatus,
    Story,
    StoryOutcomeStatus,
    StoryResult,
    utc_now,
)
from queuay.error_handling.exceptions import (
    EnvironmentNotFoundError,
    RunNotFoundError,
    StoryResolutionError,
)
from queuay.execution.story_runner import StoryRunner
from queuay.monitoring.logger import get_logger, log_run_event
from queuay.orchestration.triggers import resolve_stories

ProgressCallback = Callable[[RunProgress], Union[None, Awaitable[None]]]


def _elapsed_ms(started_at: Optional[datetime], completed_at: datetime) -> int:
    if started_at is None:
        return 0
    return max(0, int((completed_at - started_at).total_seconds() * 1000))


class RunOrchestrator:
    """Executes the stories of a run sequentially and keeps its record current."""

    def __init__(self, repository: Repository, story_runner: StoryRunner) -> None:
        self.repository = repository
        self.story_runner = story_runner
        self.logger = get_logger("orchestration.run_orchestrator")

    async def execute(
        self, request: RunRequest, on_progress: Optional[ProgressCallback] = None
    ) -> Run:
        """
        Execute a dequeued run request.

        Args:
            request: Work-queue payload
            on_progress: Called before each story, after each story and once
                at the end; may be a coroutine function

        Returns:
            The final run record

        Raises:
            RunNotFoundError: The run record does not exist
            EnvironmentNotFoundError: The environment does not exist
            StoryResolutionError: The story set could not be fetched
        """
        run = await self.repository.get_run(request.run_id)
        if run is None:
            raise RunNotFoundError(f"Run {request.run_id} not found", run_id=request.run_id)

        if run.status.is_terminal:
            self.logger.info(
                "Run already finished, skipping",
                extra={"run_id": run.id, "status": run.status.value},
            )
            return run

        environment = await self.repository.get_environment(request.environment_id)
        if environment is None:
            raise EnvironmentNotFoundError(
                f"Environment {request.environment_id} not found",
                environment_id=request.environment_id,
                run_id=run.id,
            )

        try:
            stories = await resolve_stories(
                self.repository, request.app_id, request.story_ids, request.journey_ids
            )
        except Exception as e:
            raise StoryResolutionError(
                f"Failed to resolve stories for run {run.id}: {e}", run_id=run.id, cause=e
            ) from e

        current = await self._refresh(run.id)
        if current is not None and current.status.is_terminal:
            self.logger.info(
                "Run finished while resolving, skipping",
                extra={"run_id": run.id, "status": current.status.value},
            )
            return current

        if not stories:
            now = utc_now()
            log_run_event("run_completed", run.id, data={"stories_total": 0})
            return await self.repository.update_run(
                run.id,
                status=RunStatus.COMPLETED,
                stories_total=0,
                stories_passed=0,
                stories_failed=0,
                stories_skipped=0,
                started_at=now,
                completed_at=now,
                duration_ms=0,
            )

        started_at = utc_now()
        run = await self.repository.update_run(
            run.id,
            status=RunStatus.RUNNING,
            started_at=started_at,
            stories_total=len(stories),
            stories_passed=0,
            stories_failed=0,
        )
        log_run_event(
            "run_started",
            run.id,
            data={"stories_total": len(stories), "environment": environment.name},
        )

        return await self._execute_stories(run, environment, stories, on_progress)

    async def _execute_stories(
        self,
        run: Run,
        environment: Environment,
        stories: List[Story],
        on_progress: Optional[ProgressCallback],
    ) -> Run:
        total = len(stories)
        passed = 0
        failed = 0

        for index, story in enumerate(stories):
            current = await self._refresh(run.id)
            if current is not None and current.status.is_terminal:
                self.logger.info(
                    "Run stopped externally, skipping remaining stories",
                    extra={
                        "run_id": run.id,
                        "status": current.status.value,
                        "completed": index,
                        "total": total,
                    },
                )
                break

            await self._emit(
                on_progress,
                RunProgress(
                    run_id=run.id,
                    total=total,
                    completed=index,
                    passed=passed,
                    failed=failed,
                    current_story_name=story.display_name,
                ),
            )

            story_passed = await self._execute_story(run, environment, story)
            if story_passed:
                passed += 1
            else:
                failed += 1

            try:
                await self.repository.update_run(
                    run.id, stories_passed=passed, stories_failed=failed
                )
            except Exception:
                self.logger.exception(
                    "Failed to persist run counters", extra={"run_id": run.id}
                )

            await self._emit(
                on_progress,
                RunProgress(
                    run_id=run.id,
                    total=total,
                    completed=index + 1,
                    passed=passed,
                    failed=failed,
                    current_story_name=story.display_name,
                ),
            )

        completed_at = utc_now()
        changes = {
            "stories_passed": passed,
            "stories_failed": failed,
            "completed_at": completed_at,
            "duration_ms": _elapsed_ms(run.started_at, completed_at),
        }
        # A cancel may land while the last story runs; terminal status wins.
        current = await self._refresh(run.id)
        if current is None or not current.status.is_terminal:
            changes["status"] = RunStatus.COMPLETED

        final = await self.repository.update_run(run.id, **changes)

        log_run_event(
            f"run_{final.status.value}",
            run.id,
            data={
                "stories_total": total,
                "stories_passed": passed,
                "stories_failed": failed,
                "duration_ms": final.duration_ms,
            },
        )

        await self._emit(
            on_progress,
            RunProgress(
                run_id=run.id,
                total=total,
                completed=passed + failed,
                passed=passed,
                failed=failed,
            ),
        )
        return final

    async def _execute_story(
        self, run: Run, environment: Environment, story: Story
    ) -> bool:
        """
        Run and record one story; returns whether it passed.

        A fault while running the story or storing its result becomes a
        synthetic failed result, so each story gets exactly one result.
        """
        try:
            result = await self.story_runner.run(story, environment, run_id=run.id)
            await self.repository.insert_story_result(result)
        except Exception as e:
            self.logger.exception(
                "Story execution fault, recording failure",
                extra={"run_id": run.id, "story_id": story.id},
            )
            await self._record_synthetic_failure(run, story, e)
            return False

        try:
            await self.repository.update_story_last_run(
                story.id,
                last_run_at=utc_now(),
                last_result=(
                    StoryOutcomeStatus.PASSED if result.passed else StoryOutcomeStatus.FAILED
                ),
            )
        except Exception:
            self.logger.exception(
                "Failed to update story last-run fields",
                extra={"run_id": run.id, "story_id": story.id},
            )

        log_run_event(
            "story_finished",
            run.id,
            story_id=story.id,
            data={"passed": result.passed, "retries": result.retries},
        )
        return result.passed

    async def _record_synthetic_failure(
        self, run: Run, story: Story, error: Exception
    ) -> None:
        result = StoryResult(
            run_id=run.id,
            story_id=story.id,
            journey_name=story.journey_name,
            story_name=story.display_name,
            passed=False,
            duration_ms=0,
            error=str(error) or error.__class__.__name__,
            retries=0,
        )
        try:
            await self.repository.insert_story_result(result)
        except Exception:
            self.logger.exception(
                "Failed to persist synthetic story result",
                extra={"run_id": run.id, "story_id": story.id},
            )

    async def _emit(
        self, on_progress: Optional[ProgressCallback], progress: RunProgress
    ) -> None:
        if on_progress is None:
            return
        try:
            outcome = on_progress(progress)
            if outcome is not None:
                await outcome
        except Exception:
            self.logger.exception("Progress callback failed", extra={"run_id": progress.run_id})

    async def _refresh(self, run_id: str) -> Optional[Run]:
        """Re-read the run; a read fault is logged and treated as no change."""
        try:
            return await self.repository.get_run(run_id)
        except Exception:
            self.logger.exception("Failed to re-read run status", extra={"run_id": run_id})
            return None
