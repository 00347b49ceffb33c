"""
Failure Diagnostics: classifies story failures and asks the AI diagnostic
service for heal proposals and screenshot inspections.

Diagnostics only annotate results. They never retry a step and never modify
a story definition; a failing or confused advisor degrades to "no proposal".
"""

import base64
from dataclasses import dataclass
from typing import List, Optional, Tuple

from queuay.core.interfaces import BrowserSession, HealAdvisor
from queuay.core.types import (
    FailureCategory,
    FailureContext,
    HealProposal,
    InspectionResult,
)
from queuay.monitoring.logger import get_logger

AUTO_HEAL_THRESHOLD = 0.8

# Checked in order; the first category with a matching keyword wins.
FAILURE_KEYWORDS: Tuple[Tuple[FailureCategory, Tuple[str, ...]], ...] = (
    (
        FailureCategory.SELECTOR,
        ("locator", "selector", "element", "strict mode violation", "waiting for"),
    ),
    (
        FailureCategory.FLOW,
        ("navigation", "page closed", "target closed", "context"),
    ),
    (
        FailureCategory.CONTENT,
        ("assertion", "expect", "match", "equal"),
    ),
)


def categorize_failure(error_message: str) -> Optional[FailureCategory]:
    """
    Classify an error message by keyword.

    Args:
        error_message: Error text of the failed step or verification

    Returns:
        The failure category, or None when the error is unclassified
    """
    lowered = (error_message or "").lower()
    for category, keywords in FAILURE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return None


def should_auto_heal(confidence: float, threshold: float = AUTO_HEAL_THRESHOLD) -> bool:
    """Only high-confidence proposals may be applied without human review."""
    return confidence >= threshold


@dataclass
class DiagnosticReport:
    """Diagnostic annotations for one failed story."""

    category: Optional[FailureCategory] = None
    proposal: Optional[HealProposal] = None


class FailureDiagnostics:
    """Wraps an optional HealAdvisor behind failure-tolerant calls."""

    def __init__(
        self,
        advisor: Optional[HealAdvisor] = None,
        auto_heal_threshold: float = AUTO_HEAL_THRESHOLD,
        dom_snapshot_max_chars: int = 5000,
    ) -> None:
        self.advisor = advisor
        self.auto_heal_threshold = auto_heal_threshold
        self.dom_snapshot_max_chars = dom_snapshot_max_chars
        self.logger = get_logger("execution.diagnostics")

    @property
    def can_inspect(self) -> bool:
        return self.advisor is not None

    async def diagnose(
        self,
        story_id: str,
        error: str,
        source_fragment: str,
        session: Optional[BrowserSession] = None,
        screenshot: Optional[bytes] = None,
    ) -> DiagnosticReport:
        """
        Classify a failure and, when possible, request a heal proposal.

        Args:
            story_id: Failing story
            error: Error text
            source_fragment: Code fragment of the failing step
            session: Live session used for the DOM snapshot, if still open
            screenshot: Failure screenshot already captured, if any

        Returns:
            DiagnosticReport; proposal is None whenever the advisor is absent,
            fails, or returns unusable output
        """
        category = categorize_failure(error)
        report = DiagnosticReport(category=category)

        if category is None or self.advisor is None:
            return report

        dom_snapshot = await self._dom_snapshot(session)
        if screenshot is None and session is not None:
            try:
                screenshot = await session.screenshot()
            except Exception as e:
                self.logger.debug("Screenshot for diagnostics failed", extra={"error": str(e)})

        context = FailureContext(
            story_id=story_id,
            source_fragment=source_fragment,
            error=error,
            category=category,
            dom_snapshot=dom_snapshot,
            screenshot_base64=base64.b64encode(screenshot).decode() if screenshot else None,
        )

        try:
            proposal = await self.advisor.propose_heal(context)
        except Exception as e:
            self.logger.warning(
                "Heal proposal request failed",
                extra={"story_id": story_id, "error": str(e)},
            )
            return report

        if proposal is None:
            self.logger.info("No usable heal proposal", extra={"story_id": story_id})
            return report

        proposal = proposal.model_copy(
            update={"auto_apply_threshold": self.auto_heal_threshold}
        )
        self.logger.info(
            "Heal proposal received",
            extra={
                "story_id": story_id,
                "category": proposal.type.value,
                "confidence": proposal.confidence,
                "auto_applicable": should_auto_heal(
                    proposal.confidence, self.auto_heal_threshold
                ),
            },
        )
        report.proposal = proposal
        return report

    async def inspect_screenshot(
        self,
        screenshot: bytes,
        expectation: str,
        console_errors: Optional[List[str]] = None,
    ) -> InspectionResult:
        """
        Ask the advisor whether a screenshot meets an expectation.

        An advisor failure yields a failed, low-confidence inspection.
        """
        if self.advisor is None:
            return InspectionResult(
                passed=False,
                observation="No screenshot inspector configured",
                issues=["Inspection unavailable"],
            )

        try:
            return await self.advisor.inspect_screenshot(
                screenshot, expectation, console_errors
            )
        except Exception as e:
            self.logger.warning("Screenshot inspection failed", extra={"error": str(e)})
            return InspectionResult(
                passed=False,
                observation="Unable to analyze screenshot",
                issues=[str(e)],
            )

    async def _dom_snapshot(self, session: Optional[BrowserSession]) -> Optional[str]:
        if session is None:
            return None
        try:
            html = await session.page_content()
        except Exception as e:
            self.logger.debug("DOM snapshot failed", extra={"error": str(e)})
            return None
        return html[: self.dom_snapshot_max_chars]
