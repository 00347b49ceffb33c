"""
Core interfaces and abstract base classes for the Queuay execution engine.

The engine talks to its collaborators (browser, persistence, work queue,
screenshot storage and the AI diagnostic service) only through these
interfaces.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any, List, Optional

from queuay.core.types import (
    Environment,
    FailureContext,
    HealProposal,
    InspectionResult,
    Run,
    RunRequest,
    ScheduledJob,
    Story,
    StoryOutcomeStatus,
    StoryResult,
)


class BrowserSession(ABC):
    """Browser capability bound to one isolated page."""

    @abstractmethod
    async def navigate(self, url: str) -> None:
        """Navigate to a URL and wait for the network to go idle."""
        pass

    @abstractmethod
    async def click(self, selector: str) -> None:
        pass

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        pass

    @abstractmethod
    async def select_option(self, selector: str, value: str) -> None:
        pass

    @abstractmethod
    async def check(self, selector: str) -> None:
        pass

    @abstractmethod
    async def uncheck(self, selector: str) -> None:
        pass

    @abstractmethod
    async def hover(self, selector: str) -> None:
        pass

    @abstractmethod
    async def focus(self, selector: str) -> None:
        pass

    @abstractmethod
    async def press_key(self, key: str) -> None:
        pass

    @abstractmethod
    async def scroll_into_view(self, selector: str) -> None:
        pass

    @abstractmethod
    async def scroll_by(self, x: int, y: int) -> None:
        pass

    @abstractmethod
    async def wait(self, milliseconds: int) -> None:
        pass

    @abstractmethod
    async def wait_for_network_idle(self, timeout_ms: int) -> None:
        """Wait for network idle; raises on timeout."""
        pass

    @abstractmethod
    async def is_visible(self, selector: str, timeout_ms: Optional[int] = None) -> bool:
        """Return whether the first element matching selector is visible."""
        pass

    @abstractmethod
    async def current_url(self) -> str:
        pass

    @abstractmethod
    async def page_content(self) -> str:
        """Return the current page HTML."""
        pass

    @abstractmethod
    async def screenshot(self) -> bytes:
        pass

    @property
    @abstractmethod
    def console_errors(self) -> List[str]:
        """Console error messages collected since the session opened."""
        pass


class SessionFactory(ABC):
    """Creates isolated browser sessions, one per story."""

    @abstractmethod
    def session(self) -> AbstractAsyncContextManager:
        """
        Open a new isolated session.

        Returns:
            Async context manager yielding a BrowserSession; the session is
            torn down when the context exits, on every path.
        """
        pass


class Repository(ABC):
    """Persistence contract consumed by the engine."""

    @abstractmethod
    async def create_run(self, run: Run) -> Run:
        pass

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[Run]:
        pass

    @abstractmethod
    async def update_run(self, run_id: str, **changes: Any) -> Run:
        """Apply field changes to a run and return the updated record."""
        pass

    @abstractmethod
    async def get_environment(self, environment_id: str) -> Optional[Environment]:
        pass

    @abstractmethod
    async def list_journey_ids(self, app_id: str) -> List[str]:
        pass

    @abstractmethod
    async def get_stories_by_ids(self, story_ids: List[str]) -> List[Story]:
        pass

    @abstractmethod
    async def get_stories_by_journeys(self, journey_ids: List[str]) -> List[Story]:
        pass

    @abstractmethod
    async def insert_story_result(self, result: StoryResult) -> StoryResult:
        pass

    @abstractmethod
    async def list_story_results(self, run_id: str) -> List[StoryResult]:
        pass

    @abstractmethod
    async def update_story_last_run(
        self, story_id: str, last_run_at: datetime, last_result: StoryOutcomeStatus
    ) -> None:
        pass

    @abstractmethod
    async def get_due_scheduled_jobs(self, now: datetime) -> List[ScheduledJob]:
        """Return enabled jobs whose next_run_at is at or before now."""
        pass

    @abstractmethod
    async def update_scheduled_job(
        self, job_id: str, last_run_at: datetime, next_run_at: datetime
    ) -> None:
        pass


class WorkQueue(ABC):
    """Transport handing run requests to exactly one worker each."""

    @abstractmethod
    async def enqueue(self, request: RunRequest) -> str:
        """Enqueue a run request and return a job handle."""
        pass

    @abstractmethod
    async def dequeue(self) -> RunRequest:
        """Wait for and return the next run request."""
        pass

    def task_done(self) -> None:
        """Mark the most recently dequeued request as processed."""
        return None


class ScreenshotStore(ABC):
    """Storage for failure screenshots."""

    @abstractmethod
    async def upload(self, screenshot: bytes, story_id: str, timestamp: str) -> Optional[str]:
        """
        Persist a screenshot.

        Returns:
            A reference to the stored image, or None when storage failed
        """
        pass


class HealAdvisor(ABC):
    """AI diagnostic capability."""

    @abstractmethod
    async def propose_heal(self, context: FailureContext) -> Optional[HealProposal]:
        """Return a heal proposal, or None when the response is unusable."""
        pass

    @abstractmethod
    async def inspect_screenshot(
        self,
        screenshot: bytes,
        expectation: str,
        console_errors: Optional[List[str]] = None,
    ) -> InspectionResult:
        """Judge whether a screenshot meets a described expectation."""
        pass
