"""
Story Runner: drives one story end-to-end in its own browser session.

    NAVIGATING -> STEPPING -> VERIFYING -> PASSED
         |            |           |
         +------------+-----------+-----> FAILED

The session is opened per story and always torn down when the story
finishes, whichever phase it ended in.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from queuay.config.settings import Settings
from queuay.core.interfaces import BrowserSession, ScreenshotStore, SessionFactory
from queuay.core.types import (
    Environment,
    FailureCategory,
    HealProposal,
    StepResult,
    Story,
    StoryResult,
    StoryStep,
)
from queuay.error_handling.recovery import FixedBackoffStrategy, RetryStrategy
from queuay.execution.diagnostics import FailureDiagnostics
from queuay.execution.step_executor import StepExecutor, render_step_source
from queuay.execution.verifier import OutcomeVerifier
from queuay.monitoring.logger import get_logger


class StoryPhase(str, Enum):
    """Phases a story passes through."""

    NAVIGATING = "navigating"
    STEPPING = "stepping"
    VERIFYING = "verifying"
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class StoryExecutionOptions:
    """Per-story execution knobs."""

    retry_count: int = 3
    retry_backoff_ms: int = 1000
    screenshot_on_failure: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoryExecutionOptions":
        return cls(
            retry_count=settings.retry_count,
            retry_backoff_ms=settings.retry_backoff_ms,
            screenshot_on_failure=settings.screenshot_on_failure,
        )


@dataclass
class _StoryState:
    phase: StoryPhase = StoryPhase.NAVIGATING
    steps: List[StepResult] = field(default_factory=list)
    retries: int = 0
    error: Optional[str] = None
    cause: str = ""
    failing_fragment: str = ""
    screenshot: Optional[bytes] = None
    screenshot_url: Optional[str] = None
    screenshot_captured: bool = False
    unverified: List[str] = field(default_factory=list)
    failure_category: Optional[FailureCategory] = None
    heal_proposal: Optional[HealProposal] = None

    def fail(self, error: str, fragment: str = "", cause: Optional[str] = None) -> None:
        self.phase = StoryPhase.FAILED
        self.error = error
        self.cause = error if cause is None else cause
        self.failing_fragment = fragment


class StoryRunner:
    """Runs stories against an environment, one isolated session each."""

    def __init__(
        self,
        session_factory: SessionFactory,
        step_executor: Optional[StepExecutor] = None,
        verifier: Optional[OutcomeVerifier] = None,
        diagnostics: Optional[FailureDiagnostics] = None,
        screenshot_store: Optional[ScreenshotStore] = None,
        options: Optional[StoryExecutionOptions] = None,
    ) -> None:
        """
        Initialize the story runner.

        Args:
            session_factory: Source of isolated browser sessions
            step_executor: Executes single steps
            verifier: Evaluates the story outcome
            diagnostics: Failure classification and heal proposals
            screenshot_store: Storage for failure screenshots
            options: Retry and screenshot policy
        """
        self.session_factory = session_factory
        self.step_executor = step_executor or StepExecutor()
        self.diagnostics = diagnostics or FailureDiagnostics()
        self.verifier = verifier or OutcomeVerifier(diagnostics=self.diagnostics)
        self.screenshot_store = screenshot_store
        self.options = options or StoryExecutionOptions()
        self.logger = get_logger("execution.story_runner")

    def _retry_strategy(self) -> RetryStrategy:
        return FixedBackoffStrategy(
            retries=self.options.retry_count, delay_ms=self.options.retry_backoff_ms
        )

    async def run(
        self, story: Story, environment: Environment, run_id: Optional[str] = None
    ) -> StoryResult:
        """
        Execute a story and assemble its result.

        Failures inside the session (navigation, steps, verification, driver
        faults) produce a failed StoryResult. Failing to open the session
        at all raises.

        Args:
            story: Story to execute
            environment: Target environment providing the base URL
            run_id: Owning run, stamped on the result

        Returns:
            StoryResult for this execution
        """
        logger = get_logger(
            "execution.story_runner", story_id=story.id, run_id=run_id
        )
        start = time.monotonic()
        state = _StoryState()
        console_errors: List[str] = []

        async with self.session_factory.session() as session:
            try:
                await self._execute_phases(session, story, environment, state)
            except Exception as e:
                logger.exception("Unexpected error while running story")
                state.fail(str(e))

            if state.phase == StoryPhase.FAILED:
                await self._capture_screenshot(session, story, state)
                report = await self.diagnostics.diagnose(
                    story.id,
                    state.cause,
                    state.failing_fragment,
                    session=session,
                    screenshot=state.screenshot,
                )
                state.failure_category = report.category
                state.heal_proposal = report.proposal

            console_errors = session.console_errors

        duration_ms = int((time.monotonic() - start) * 1000)
        passed = state.phase == StoryPhase.PASSED

        logger.info(
            "Story finished",
            extra={
                "story_name": story.display_name,
                "passed": passed,
                "duration_ms": duration_ms,
                "retries": state.retries,
                "error": state.error,
            },
        )

        return StoryResult(
            run_id=run_id,
            story_id=story.id,
            journey_name=story.journey_name,
            story_name=story.display_name,
            passed=passed,
            duration_ms=duration_ms,
            steps=state.steps,
            error=state.error,
            screenshot_url=state.screenshot_url,
            console_errors=console_errors,
            heal_proposal=state.heal_proposal,
            failure_category=state.failure_category,
            retries=state.retries,
            unverified=state.unverified,
        )

    async def _execute_phases(
        self,
        session: BrowserSession,
        story: Story,
        environment: Environment,
        state: _StoryState,
    ) -> None:
        state.phase = StoryPhase.NAVIGATING
        try:
            await session.navigate(environment.base_url)
        except Exception as e:
            state.fail(
                f"Navigation to {environment.base_url} failed: {e}",
                render_step_source(StoryStep(action="navigate", value=environment.base_url)),
            )
            return

        state.phase = StoryPhase.STEPPING
        for index, step in enumerate(story.steps):
            result, failed_attempts = await self._run_step(session, step, index)
            state.steps.append(result)
            state.retries += failed_attempts
            if not result.passed:
                state.fail(
                    f"Step {index + 1} ({step.action}) failed: {result.error}",
                    render_step_source(step),
                    cause=result.error or "",
                )
                return

        state.phase = StoryPhase.VERIFYING
        outcome = await self.verifier.verify(
            session, story.outcome, session.console_errors
        )
        state.unverified = outcome.unverified
        if not outcome.passed:
            state.fail(outcome.error or "Verification failed")
            return

        state.phase = StoryPhase.PASSED

    async def _run_step(
        self, session: BrowserSession, step: StoryStep, index: int
    ) -> Tuple[StepResult, int]:
        """
        Run a step until it passes or the retry budget is spent.

        Returns:
            The final attempt's result and the number of failed attempts
        """
        strategy = self._retry_strategy()
        attempt = 1
        failed_attempts = 0

        while True:
            result = await self.step_executor.execute(session, step, index)
            if result.passed:
                return result, failed_attempts

            failed_attempts += 1
            if not strategy.should_retry(attempt):
                return result, failed_attempts

            self.logger.info(
                "Retrying step",
                extra={
                    "step_index": index,
                    "attempt": attempt + 1,
                    "max_attempts": strategy.max_attempts,
                    "error": result.error,
                },
            )
            await asyncio.sleep(strategy.get_delay_ms(attempt) / 1000)
            attempt += 1

    async def _capture_screenshot(
        self, session: BrowserSession, story: Story, state: _StoryState
    ) -> None:
        if not self.options.screenshot_on_failure or state.screenshot_captured:
            return
        state.screenshot_captured = True

        try:
            state.screenshot = await session.screenshot()
        except Exception as e:
            self.logger.warning(
                "Failure screenshot could not be taken",
                extra={"story_id": story.id, "error": str(e)},
            )
            return

        if self.screenshot_store is None:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        try:
            state.screenshot_url = await self.screenshot_store.upload(
                state.screenshot, story.id, timestamp
            )
        except Exception as e:
            self.logger.warning(
                "Failure screenshot upload failed",
                extra={"story_id": story.id, "error": str(e)},
            )
