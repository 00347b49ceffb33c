"""
Outcome Verifier: evaluates a story's declared success conditions against
the final browser state.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from queuay.core.interfaces import BrowserSession
from queuay.core.types import StoryOutcome, StoryVerification, VerificationType
from queuay.monitoring.logger import get_logger

if TYPE_CHECKING:
    from queuay.execution.diagnostics import FailureDiagnostics


@dataclass
class VerificationOutcome:
    """Aggregate verdict over a story outcome's verifications."""

    passed: bool
    error: Optional[str] = None
    unverified: List[str] = field(default_factory=list)


def describe_verification(verification: StoryVerification) -> str:
    if verification.target:
        return f"{verification.type}: {verification.target} -> {verification.expected}"
    return f"{verification.type}: {verification.expected}"


class OutcomeVerifier:
    """
    Checks URL, element and text-content verifications in declaration order.

    Evaluation is fail-fast: the first failing verification ends it. Visual
    (and any other) verification kinds go to the screenshot inspector when
    diagnostics have an advisor; otherwise they are recorded as unverified
    and never fail the story.
    """

    def __init__(
        self,
        diagnostics: Optional["FailureDiagnostics"] = None,
        timeout_ms: int = 5000,
    ) -> None:
        self.diagnostics = diagnostics
        self.timeout_ms = timeout_ms
        self.logger = get_logger("execution.verifier")

    async def verify(
        self,
        session: BrowserSession,
        outcome: StoryOutcome,
        console_errors: Optional[List[str]] = None,
    ) -> VerificationOutcome:
        """
        Evaluate all verifications of an outcome.

        Args:
            session: Live session after every step passed
            outcome: Declared outcome
            console_errors: Console errors so far, forwarded to visual inspection

        Returns:
            VerificationOutcome with the first failure's explanation
        """
        unverified: List[str] = []

        for verification in outcome.verifications:
            kind = verification.type.lower()

            if kind == VerificationType.URL.value:
                error = await self._verify_url(session, verification)
            elif kind == VerificationType.ELEMENT.value:
                error = await self._verify_element(session, verification)
            elif kind == VerificationType.CONTENT.value:
                error = await self._verify_content(session, verification)
            elif self.diagnostics is not None and self.diagnostics.can_inspect:
                error = await self._verify_visual(session, verification, console_errors)
            else:
                label = describe_verification(verification)
                self.logger.warning(
                    "Verification not evaluated, no screenshot inspector configured",
                    extra={"verification": label},
                )
                unverified.append(label)
                continue

            if error:
                self.logger.info("Verification failed", extra={"error": error})
                return VerificationOutcome(passed=False, error=error, unverified=unverified)

        return VerificationOutcome(passed=True, unverified=unverified)

    async def _verify_url(
        self, session: BrowserSession, verification: StoryVerification
    ) -> Optional[str]:
        url = await session.current_url()
        if verification.expected not in url:
            return f"Expected URL to contain '{verification.expected}', got '{url}'"
        return None

    async def _verify_element(
        self, session: BrowserSession, verification: StoryVerification
    ) -> Optional[str]:
        locator = verification.target or verification.expected
        if not await self._visible(session, locator):
            return f"Expected element '{locator}' to be visible"
        return None

    async def _verify_content(
        self, session: BrowserSession, verification: StoryVerification
    ) -> Optional[str]:
        if not await self._visible(session, f"text={verification.expected}"):
            return f"Expected content '{verification.expected}' not found"
        return None

    async def _visible(self, session: BrowserSession, locator: str) -> bool:
        # A failed lookup means "not found", not an error
        try:
            return await session.is_visible(locator, timeout_ms=self.timeout_ms)
        except Exception as e:
            self.logger.debug(
                "Locator lookup failed", extra={"locator": locator, "error": str(e)}
            )
            return False

    async def _verify_visual(
        self,
        session: BrowserSession,
        verification: StoryVerification,
        console_errors: Optional[List[str]],
    ) -> Optional[str]:
        assert self.diagnostics is not None
        screenshot = await session.screenshot()
        result = await self.diagnostics.inspect_screenshot(
            screenshot, verification.expected, console_errors
        )
        if result.passed:
            return None

        issues = "; ".join(result.issues)
        message = f"Visual check failed: {result.observation or verification.expected}"
        return f"{message} ({issues})" if issues else message
