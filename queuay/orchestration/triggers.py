"""
Shared trigger path: every run (manual, API, CI or scheduled) is created
pending and handed to the work queue through `submit_run`.
"""

from typing import List, Optional

from queuay.core.interfaces import Repository, WorkQueue
from queuay.core.types import Run, RunRequest, Story, TriggerType
from queuay.error_handling.exceptions import RepositoryError
from queuay.monitoring.logger import get_logger, log_run_event

logger = get_logger("orchestration.triggers")


async def resolve_stories(
    repository: Repository,
    app_id: str,
    story_ids: Optional[List[str]] = None,
    journey_ids: Optional[List[str]] = None,
) -> List[Story]:
    """
    Resolve the stories a run covers.

    Explicit story ids win over journey ids, which win over "every journey
    of the app". Only enabled stories are kept, ordered by position.
    """
    if story_ids:
        stories = await repository.get_stories_by_ids(story_ids)
    else:
        scope = journey_ids or await repository.list_journey_ids(app_id)
        stories = await repository.get_stories_by_journeys(scope) if scope else []

    enabled = [story for story in stories if story.is_enabled]
    return sorted(enabled, key=lambda story: story.position)


async def count_runnable_stories(
    repository: Repository,
    app_id: str,
    story_ids: Optional[List[str]] = None,
    journey_ids: Optional[List[str]] = None,
) -> int:
    """Estimate of stories_total recorded when a run is created."""
    return len(await resolve_stories(repository, app_id, story_ids, journey_ids))


async def submit_run(
    repository: Repository,
    queue: WorkQueue,
    organization_id: str,
    app_id: str,
    environment_id: str,
    trigger_type: TriggerType = TriggerType.MANUAL,
    story_ids: Optional[List[str]] = None,
    journey_ids: Optional[List[str]] = None,
    triggered_by: Optional[str] = None,
) -> Run:
    """
    Create a pending run and enqueue it for a worker.

    Args:
        repository: Run persistence
        queue: Work queue the run request goes to
        organization_id: Owning organization
        app_id: Application under test
        environment_id: Target environment
        trigger_type: Source of the run
        story_ids: Explicit story scope
        journey_ids: Journey scope, used when no story ids are given
        triggered_by: User or system that asked for the run

    Returns:
        The created run record
    """
    story_ids = list(story_ids or [])
    journey_ids = list(journey_ids or [])

    try:
        estimate = await count_runnable_stories(repository, app_id, story_ids, journey_ids)
    except Exception as e:
        logger.warning("Could not estimate story count", extra={"error": str(e)})
        estimate = 0

    try:
        run = await repository.create_run(
            Run(
                organization_id=organization_id,
                app_id=app_id,
                environment_id=environment_id,
                trigger_type=trigger_type,
                triggered_by=triggered_by,
                story_ids=story_ids,
                journey_ids=journey_ids,
                stories_total=estimate,
            )
        )
    except RepositoryError:
        raise
    except Exception as e:
        raise RepositoryError(
            f"Failed to create run: {e}", operation="create_run", cause=e
        ) from e

    job_id = await queue.enqueue(
        RunRequest(
            run_id=run.id,
            organization_id=organization_id,
            app_id=app_id,
            environment_id=environment_id,
            story_ids=story_ids,
            journey_ids=journey_ids,
        )
    )

    log_run_event(
        "run_submitted",
        run.id,
        data={
            "job_id": job_id,
            "trigger_type": trigger_type.value,
            "stories_estimate": estimate,
        },
    )
    return run
