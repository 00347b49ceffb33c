"""
JSON suite loader.

A suite file describes one application: its environments, its journeys with
their stories, and optional schedules. Loading seeds an InMemoryRepository.

    {
      "organization_id": "acme",
      "app_id": "shop",
      "environments": [{"name": "staging", "base_url": "https://...", "is_default": true}],
      "journeys": [{"name": "Checkout", "stories": [{"name": "...", "steps": [...]}]}],
      "schedules": [{"name": "nightly", "cron_expression": "0 2 * * *"}]
    }
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from queuay.core.types import Environment, Journey, ScheduledJob, Story
from queuay.error_handling.exceptions import SuiteLoadError
from queuay.monitoring.logger import get_logger
from queuay.orchestration.cron import calculate_next_run
from queuay.storage.memory import InMemoryRepository

logger = get_logger("storage.fixtures")


@dataclass
class Suite:
    """A loaded suite and the repository seeded from it."""

    organization_id: str
    app_id: str
    repository: InMemoryRepository
    environments: List[Environment] = field(default_factory=list)
    journeys: List[Journey] = field(default_factory=list)
    stories: List[Story] = field(default_factory=list)
    schedules: List[ScheduledJob] = field(default_factory=list)

    def environment(self, name_or_id: Optional[str] = None) -> Environment:
        """Find an environment by name or id, else the default one."""
        if name_or_id:
            for env in self.environments:
                if name_or_id in (env.id, env.name):
                    return env
            raise KeyError(f"Unknown environment: {name_or_id}")

        for env in self.environments:
            if env.is_default:
                return env
        return self.environments[0]


def load_suite(
    source: Union[str, Path],
    repository: Optional[InMemoryRepository] = None,
    now: Optional[datetime] = None,
) -> Suite:
    """
    Load a suite file and seed a repository with it.

    Args:
        source: Path to the JSON suite file
        repository: Repository to seed (a new one by default)
        now: Reference time for computing initial schedule due times

    Returns:
        The loaded Suite

    Raises:
        SuiteLoadError: The file is missing, is not JSON, or does not validate
    """
    path = Path(source)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise SuiteLoadError(f"Suite file not found: {path}", path=str(path), cause=e) from e
    except json.JSONDecodeError as e:
        raise SuiteLoadError(f"Invalid JSON in {path}: {e}", path=str(path), cause=e) from e

    if not isinstance(data, dict):
        raise SuiteLoadError(f"Suite {path} must be a JSON object", path=str(path))

    try:
        suite = _build_suite(data, repository or InMemoryRepository(), now)
    except (ValidationError, KeyError, TypeError, ValueError) as e:
        raise SuiteLoadError(f"Invalid suite {path}: {e}", path=str(path), cause=e) from e

    logger.info(
        "Suite loaded",
        extra={
            "path": str(path),
            "environments": len(suite.environments),
            "journeys": len(suite.journeys),
            "stories": len(suite.stories),
            "schedules": len(suite.schedules),
        },
    )
    return suite


def _build_suite(
    data: Dict[str, Any], repository: InMemoryRepository, now: Optional[datetime]
) -> Suite:
    organization_id = data.get("organization_id", "local")
    app_id = data.get("app_id", "local-app")

    environments = [
        repository.add_environment(Environment(app_id=app_id, **env))
        for env in data.get("environments", [])
    ]
    if not environments:
        raise ValueError("a suite needs at least one environment")

    journeys: List[Journey] = []
    stories: List[Story] = []
    for position, journey_data in enumerate(data.get("journeys", [])):
        journey_data = dict(journey_data)
        story_items = journey_data.pop("stories", [])
        journey_data.setdefault("position", position)
        journey = repository.add_journey(Journey(app_id=app_id, **journey_data))
        journeys.append(journey)

        for story_position, story_data in enumerate(story_items):
            story_data = dict(story_data)
            story_data.setdefault("position", story_position)
            story = repository.add_story(
                Story(journey_id=journey.id, journey_name=journey.name, **story_data)
            )
            stories.append(story)

    default_env = next((env for env in environments if env.is_default), environments[0])
    reference = now or datetime.now(timezone.utc)

    schedules: List[ScheduledJob] = []
    for job_data in data.get("schedules", []):
        job_data = dict(job_data)
        job_data.setdefault("environment_id", default_env.id)
        job_data.setdefault("journey_ids", [j.id for j in journeys])
        job = ScheduledJob(organization_id=organization_id, app_id=app_id, **job_data)
        if job.next_run_at is None:
            job = job.model_copy(
                update={
                    "next_run_at": calculate_next_run(
                        job.cron_expression, job.timezone, reference
                    )
                }
            )
        elif job.next_run_at.tzinfo is None:
            job = job.model_copy(
                update={"next_run_at": job.next_run_at.replace(tzinfo=timezone.utc)}
            )
        schedules.append(repository.add_scheduled_job(job))

    return Suite(
        organization_id=organization_id,
        app_id=app_id,
        repository=repository,
        environments=environments,
        journeys=journeys,
        stories=stories,
        schedules=schedules,
    )
