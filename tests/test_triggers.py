"""
Tests for run submission and story resolution.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import make_story
from queuay.core.types import Journey, RunStatus, TriggerType
from queuay.error_handling import RepositoryError
from queuay.orchestration.triggers import (
    count_runnable_stories,
    resolve_stories,
    submit_run,
)
from queuay.storage.memory import InMemoryRepository, InMemoryWorkQueue


@pytest.fixture
def repository(environment, journey) -> InMemoryRepository:
    repository = InMemoryRepository()
    repository.add_environment(environment)
    repository.add_journey(journey)
    repository.add_journey(
        Journey(id="journey-account", app_id="app-shop", name="Account", position=1)
    )
    repository.add_journey(Journey(id="journey-other", app_id="app-other", name="Other"))
    repository.add_story(make_story("Pay", position=1, story_id="pay"))
    repository.add_story(make_story("Add", position=0, story_id="add"))
    repository.add_story(make_story("Off", position=2, story_id="off", is_enabled=False))
    repository.add_story(
        make_story("Login", position=0, story_id="login", journey_id="journey-account")
    )
    repository.add_story(
        make_story("Elsewhere", position=0, story_id="else", journey_id="journey-other")
    )
    return repository


class TestResolveStories:
    """Tests for story scope resolution."""

    @pytest.mark.asyncio
    async def test_explicit_story_ids_win(self, repository):
        stories = await resolve_stories(
            repository, "app-shop", story_ids=["pay", "login"], journey_ids=["journey-other"]
        )
        assert sorted(s.id for s in stories) == ["login", "pay"]

    @pytest.mark.asyncio
    async def test_journey_ids(self, repository):
        stories = await resolve_stories(repository, "app-shop", journey_ids=["journey-checkout"])
        assert [s.id for s in stories] == ["add", "pay"]

    @pytest.mark.asyncio
    async def test_all_journeys_of_app(self, repository):
        stories = await resolve_stories(repository, "app-shop")
        ids = [s.id for s in stories]
        assert set(ids) == {"add", "pay", "login"}
        assert "off" not in ids
        assert "else" not in ids

    @pytest.mark.asyncio
    async def test_app_without_journeys(self, repository):
        assert await resolve_stories(repository, "app-none") == []

    @pytest.mark.asyncio
    async def test_count(self, repository):
        assert await count_runnable_stories(repository, "app-shop") == 3


class TestSubmitRun:
    """Tests for the shared trigger path."""

    @pytest.mark.asyncio
    async def test_creates_pending_run_and_enqueues(self, repository):
        queue = InMemoryWorkQueue()

        run = await submit_run(
            repository,
            queue,
            organization_id="org-1",
            app_id="app-shop",
            environment_id="env-staging",
            journey_ids=["journey-checkout"],
            triggered_by="alice",
        )

        assert run.status == RunStatus.PENDING
        assert run.trigger_type == TriggerType.MANUAL
        assert run.stories_total == 2
        assert run.triggered_by == "alice"
        assert run.id in repository.runs

        request = await queue.dequeue()
        assert request.run_id == run.id
        assert request.journey_ids == ["journey-checkout"]
        assert request.story_ids == []

    @pytest.mark.asyncio
    async def test_estimate_failure_is_tolerated(self, repository):
        repository.get_stories_by_ids = AsyncMock(side_effect=RuntimeError("slow query"))

        run = await submit_run(
            repository,
            InMemoryWorkQueue(),
            organization_id="org-1",
            app_id="app-shop",
            environment_id="env-staging",
            trigger_type=TriggerType.API,
            story_ids=["pay"],
        )

        assert run.stories_total == 0
        assert run.trigger_type == TriggerType.API

    @pytest.mark.asyncio
    async def test_create_failure_raises_repository_error(self, repository):
        repository.create_run = AsyncMock(side_effect=RuntimeError("constraint violated"))
        queue = InMemoryWorkQueue()

        with pytest.raises(RepositoryError):
            await submit_run(
                repository,
                queue,
                organization_id="org-1",
                app_id="app-shop",
                environment_id="env-staging",
            )

        assert queue.qsize() == 0
