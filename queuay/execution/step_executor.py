"""
Step Executor: translates one declarative story step into browser effects.

Free-text verbs are resolved into a `StepActionType` once, and execution
dispatches exhaustively over that tag. The executor never retries and never
persists anything; retries belong to the story runner.
"""

import json
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

from queuay.core.interfaces import BrowserSession
from queuay.core.types import StepActionType, StepResult, StoryStep
from queuay.error_handling.exceptions import StepActionError
from queuay.monitoring.logger import get_logger
from queuay.security.sanitizer import redact_step_value

# Checked in order; the first verb contained in the action wins.
ACTION_VOCABULARY: Tuple[Tuple[Tuple[str, ...], StepActionType], ...] = (
    (("navigate", "go to", "goto", "go-to"), StepActionType.NAVIGATE),
    (("click", "tap"), StepActionType.CLICK),
    (("type", "enter", "fill"), StepActionType.FILL),
    (("select", "choose"), StepActionType.SELECT),
    (("uncheck",), StepActionType.UNCHECK),
    (("check",), StepActionType.CHECK),
    (("wait",), StepActionType.WAIT),
    (("scroll",), StepActionType.SCROLL),
    (("hover",), StepActionType.HOVER),
    (("press",), StepActionType.PRESS),
    (("focus",), StepActionType.FOCUS),
)

DEFAULT_WAIT_MS = 1000
DEFAULT_KEY = "Enter"
SCROLL_STEP_PX = 300


def resolve_action(verb: str) -> StepActionType:
    """
    Resolve a free-text step verb into an action type.

    Matching is case-insensitive substring containment, so "Click the
    button" resolves to CLICK.

    Args:
        verb: Action text from the story step

    Returns:
        Resolved action type, UNRECOGNIZED when nothing matches
    """
    lowered = (verb or "").lower()
    for keywords, action_type in ACTION_VOCABULARY:
        if any(keyword in lowered for keyword in keywords):
            return action_type
    return StepActionType.UNRECOGNIZED


def render_step_source(step: StoryStep) -> str:
    """Render the Playwright call a step maps to, for diagnostic prompts."""
    action_type = resolve_action(step.action)
    target = step.target
    value = step.value

    def q(text: Optional[str]) -> str:
        return json.dumps(text or "")

    if action_type == StepActionType.NAVIGATE:
        return f"await page.goto({q(value or target)});"
    if action_type == StepActionType.FILL:
        return f"await page.fill({q(target)}, {q(value)});"
    if action_type == StepActionType.SELECT:
        return f"await page.selectOption({q(target)}, {q(value)});"
    if action_type == StepActionType.CHECK:
        return f"await page.check({q(target)});"
    if action_type == StepActionType.UNCHECK:
        return f"await page.uncheck({q(target)});"
    if action_type == StepActionType.WAIT:
        return f"await page.waitForTimeout({_parse_wait_ms(value)});"
    if action_type == StepActionType.SCROLL:
        if target:
            return f"await page.locator({q(target)}).scrollIntoViewIfNeeded();"
        return f"await page.mouse.wheel(0, {SCROLL_STEP_PX});"
    if action_type == StepActionType.HOVER:
        return f"await page.hover({q(target)});"
    if action_type == StepActionType.PRESS:
        return f"await page.keyboard.press({q(value or DEFAULT_KEY)});"
    if action_type == StepActionType.FOCUS:
        return f"await page.focus({q(target)});"
    # CLICK and the unrecognized fallback
    return f"await page.click({q(target)});"


def _parse_wait_ms(value: Optional[str]) -> int:
    try:
        return int(value) if value is not None else DEFAULT_WAIT_MS
    except (TypeError, ValueError):
        return DEFAULT_WAIT_MS


class StepExecutor:
    """Executes single story steps against a browser session."""

    def __init__(self, network_idle_timeout_ms: int = 5000) -> None:
        """
        Initialize the step executor.

        Args:
            network_idle_timeout_ms: Bound for the post-step network-idle settle
        """
        self.network_idle_timeout_ms = network_idle_timeout_ms
        self.logger = get_logger("execution.step_executor")

        self._handlers: Dict[
            StepActionType, Callable[[BrowserSession, StoryStep], Awaitable[None]]
        ] = {
            StepActionType.NAVIGATE: self._navigate,
            StepActionType.CLICK: self._click,
            StepActionType.FILL: self._fill,
            StepActionType.SELECT: self._select,
            StepActionType.CHECK: self._check,
            StepActionType.UNCHECK: self._uncheck,
            StepActionType.WAIT: self._wait,
            StepActionType.SCROLL: self._scroll,
            StepActionType.HOVER: self._hover,
            StepActionType.PRESS: self._press,
            StepActionType.FOCUS: self._focus,
            StepActionType.UNRECOGNIZED: self._fallback,
        }

    async def execute(
        self, session: BrowserSession, step: StoryStep, index: int
    ) -> StepResult:
        """
        Execute one attempt of a step.

        Args:
            session: Browser session of the running story
            step: Step to execute
            index: Zero-based position of the step in the story

        Returns:
            StepResult; any exception raised by the action becomes its error
        """
        action_type = resolve_action(step.action)
        start = time.monotonic()

        self.logger.debug(
            "Executing step",
            extra={
                "step_index": index,
                "action": step.action,
                "action_type": action_type.value,
                "target": step.target,
                "value": redact_step_value(step.target, step.value),
            },
        )

        try:
            await self._handlers[action_type](session, step)
            if action_type != StepActionType.WAIT:
                await self._settle(session)
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            self.logger.info(
                "Step failed",
                extra={"step_index": index, "action": step.action, "error": str(e)},
            )
            return StepResult(
                step=index,
                action=step.action,
                passed=False,
                duration_ms=duration_ms,
                error=str(e),
            )

        return StepResult(
            step=index,
            action=step.action,
            passed=True,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    async def _settle(self, session: BrowserSession) -> None:
        """Best-effort wait for network idle; a timeout never fails the step."""
        try:
            await session.wait_for_network_idle(self.network_idle_timeout_ms)
        except Exception as e:
            self.logger.debug("Network did not settle", extra={"error": str(e)})

    @staticmethod
    def _require_target(step: StoryStep) -> str:
        target = step.target
        if not target:
            raise StepActionError(
                f"Step '{step.action}' requires an element or selector", action=step.action
            )
        return target

    async def _navigate(self, session: BrowserSession, step: StoryStep) -> None:
        url = step.value or step.target
        if not url:
            raise StepActionError(
                f"Step '{step.action}' requires a URL", action=step.action
            )
        await session.navigate(url)

    async def _click(self, session: BrowserSession, step: StoryStep) -> None:
        await session.click(self._require_target(step))

    async def _fill(self, session: BrowserSession, step: StoryStep) -> None:
        await session.fill(self._require_target(step), step.value or "")

    async def _select(self, session: BrowserSession, step: StoryStep) -> None:
        await session.select_option(self._require_target(step), step.value or "")

    async def _check(self, session: BrowserSession, step: StoryStep) -> None:
        await session.check(self._require_target(step))

    async def _uncheck(self, session: BrowserSession, step: StoryStep) -> None:
        await session.uncheck(self._require_target(step))

    async def _wait(self, session: BrowserSession, step: StoryStep) -> None:
        await session.wait(_parse_wait_ms(step.value))

    async def _scroll(self, session: BrowserSession, step: StoryStep) -> None:
        if step.target:
            await session.scroll_into_view(step.target)
        else:
            await session.scroll_by(0, SCROLL_STEP_PX)

    async def _hover(self, session: BrowserSession, step: StoryStep) -> None:
        await session.hover(self._require_target(step))

    async def _press(self, session: BrowserSession, step: StoryStep) -> None:
        await session.press_key(step.value or DEFAULT_KEY)

    async def _focus(self, session: BrowserSession, step: StoryStep) -> None:
        await session.focus(self._require_target(step))

    async def _fallback(self, session: BrowserSession, step: StoryStep) -> None:
        if not step.target:
            raise StepActionError("Unrecognized step action", action=step.action)
        self.logger.warning(
            "Unrecognized step action, clicking target",
            extra={"action": step.action, "target": step.target},
        )
        await session.click(step.target)
