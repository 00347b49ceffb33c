"""
Shared fixtures and browser fakes for the Queuay test suite.
"""

from contextlib import asynccontextmanager
from typing import Callable, Iterable, List, Optional
from unittest.mock import AsyncMock

import pytest

from queuay.config.settings import get_settings
from queuay.core.interfaces import BrowserSession, SessionFactory
from queuay.core.types import (
    Environment,
    Journey,
    Story,
    StoryOutcome,
    StoryStep,
    StoryVerification,
)
from queuay.execution.story_runner import StoryExecutionOptions


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep settings (and the directories they create) inside tmp_path."""
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SCREENSHOTS_DIR", str(tmp_path / "data" / "screenshots"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_session(
    url: str = "https://shop.test/",
    visible: bool = True,
    failing_selectors: Iterable[str] = (),
    console_errors: Optional[List[str]] = None,
) -> AsyncMock:
    """Build a mocked browser session; clicks on failing_selectors raise."""
    session = AsyncMock(spec=BrowserSession)
    session.console_errors = list(console_errors or [])
    session.current_url.return_value = url
    session.is_visible.return_value = visible
    session.page_content.return_value = "<html><body><button id='buy'>Buy</button></body></html>"
    session.screenshot.return_value = b"\x89PNG fake"

    failing = set(failing_selectors)

    async def click(selector: str) -> None:
        if selector in failing:
            raise Exception(f"Timeout 30000ms exceeded waiting for locator('{selector}')")

    session.click.side_effect = click
    return session


class FakeSessionFactory(SessionFactory):
    """Hands out sessions from a builder and records open/close counts."""

    def __init__(self, builder: Callable[[], AsyncMock] = make_session) -> None:
        self.builder = builder
        self.sessions: List[AsyncMock] = []
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def session(self):
        self.opened += 1
        session = self.builder()
        self.sessions.append(session)
        try:
            yield session
        finally:
            self.closed += 1


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def fast_options() -> StoryExecutionOptions:
    """Default retry budget without the real backoff delay."""
    return StoryExecutionOptions(retry_count=3, retry_backoff_ms=0)


@pytest.fixture
def environment() -> Environment:
    return Environment(
        id="env-staging",
        app_id="app-shop",
        name="staging",
        base_url="https://shop.test/",
        is_default=True,
    )


@pytest.fixture
def journey() -> Journey:
    return Journey(id="journey-checkout", app_id="app-shop", name="Checkout")


def make_story(
    name: str,
    steps: Optional[List[StoryStep]] = None,
    verifications: Optional[List[StoryVerification]] = None,
    position: int = 0,
    journey_id: str = "journey-checkout",
    is_enabled: bool = True,
    story_id: Optional[str] = None,
) -> Story:
    kwargs = {"id": story_id} if story_id else {}
    return Story(
        journey_id=journey_id,
        journey_name="Checkout",
        name=name,
        position=position,
        is_enabled=is_enabled,
        steps=steps if steps is not None else [StoryStep(action="Click", element="#buy")],
        outcome=StoryOutcome(
            description="Order placed",
            verifications=verifications or [],
        ),
        **kwargs,
    )
