"""
Unit tests for failure diagnostics.
"""

import base64
from unittest.mock import AsyncMock

import pytest

from conftest import make_session
from queuay.core.interfaces import HealAdvisor
from queuay.core.types import FailureCategory, FailureContext, HealProposal
from queuay.execution.diagnostics import (
    FailureDiagnostics,
    categorize_failure,
    should_auto_heal,
)


class TestCategorizeFailure:
    """Tests for keyword classification."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Timeout waiting for locator('#buy')", FailureCategory.SELECTOR),
            ("strict mode violation: resolved to 2 elements", FailureCategory.SELECTOR),
            ("Expected element '#receipt' to be visible", FailureCategory.SELECTOR),
            ("Navigation to https://shop.test failed", FailureCategory.FLOW),
            ("Target closed", FailureCategory.FLOW),
            ("Browser context has been closed", FailureCategory.FLOW),
            ("Expected URL to contain '/done'", FailureCategory.CONTENT),
            ("AssertionError: values not equal", FailureCategory.CONTENT),
            ("Something odd happened", None),
            ("", None),
        ],
    )
    def test_keywords(self, message, expected):
        assert categorize_failure(message) == expected


class TestShouldAutoHeal:
    """Tests for the confidence policy."""

    def test_threshold(self):
        assert should_auto_heal(0.95) is True
        assert should_auto_heal(0.8) is True
        assert should_auto_heal(0.4) is False
        assert should_auto_heal(0.7, threshold=0.6) is True


def _advisor(proposal=None, error=None) -> AsyncMock:
    advisor = AsyncMock(spec=HealAdvisor)
    if error is not None:
        advisor.propose_heal.side_effect = error
    else:
        advisor.propose_heal.return_value = proposal
    return advisor


class TestFailureDiagnostics:
    """Tests for diagnose()."""

    @pytest.mark.asyncio
    async def test_no_advisor_only_classifies(self):
        report = await FailureDiagnostics().diagnose(
            "s1", "waiting for locator('#buy')", 'await page.click("#buy");'
        )

        assert report.category == FailureCategory.SELECTOR
        assert report.proposal is None

    @pytest.mark.asyncio
    async def test_unclassified_skips_advisor(self):
        advisor = _advisor()
        report = await FailureDiagnostics(advisor=advisor).diagnose("s1", "weird", "")

        assert report.category is None
        advisor.propose_heal.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requests_proposal_with_context(self):
        proposal = HealProposal(
            type=FailureCategory.SELECTOR,
            original='page.click("#buy")',
            proposed='page.click("[data-test=buy]")',
            confidence=0.9,
        )
        advisor = _advisor(proposal)
        session = make_session()
        session.page_content.return_value = "x" * 100
        diagnostics = FailureDiagnostics(
            advisor=advisor, auto_heal_threshold=0.95, dom_snapshot_max_chars=10
        )

        report = await diagnostics.diagnose(
            "s1",
            "waiting for locator('#buy')",
            'await page.click("#buy");',
            session=session,
            screenshot=b"shot",
        )

        context: FailureContext = advisor.propose_heal.await_args.args[0]
        assert context.story_id == "s1"
        assert context.category == FailureCategory.SELECTOR
        assert context.source_fragment == 'await page.click("#buy");'
        assert context.dom_snapshot == "x" * 10
        assert context.screenshot_base64 == base64.b64encode(b"shot").decode()
        session.screenshot.assert_not_awaited()

        assert report.proposal is not None
        assert report.proposal.proposed == 'page.click("[data-test=buy]")'
        # threshold raised above the proposal's confidence
        assert report.proposal.auto_applicable is False

    @pytest.mark.asyncio
    async def test_takes_screenshot_when_missing(self):
        advisor = _advisor(None)
        session = make_session()

        await FailureDiagnostics(advisor=advisor).diagnose(
            "s1", "Target closed", "", session=session
        )

        session.screenshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_advisor_error_degrades_to_no_proposal(self):
        advisor = _advisor(error=RuntimeError("API down"))

        report = await FailureDiagnostics(advisor=advisor).diagnose(
            "s1", "Target closed", "", session=make_session()
        )

        assert report.category == FailureCategory.FLOW
        assert report.proposal is None

    @pytest.mark.asyncio
    async def test_dom_snapshot_failure_is_tolerated(self):
        advisor = _advisor(None)
        session = make_session()
        session.page_content.side_effect = Exception("page crashed")

        report = await FailureDiagnostics(advisor=advisor).diagnose(
            "s1", "Target closed", "", session=session
        )

        assert report.proposal is None
        assert advisor.propose_heal.await_args.args[0].dom_snapshot is None


class TestInspectScreenshot:
    """Tests for inspect_screenshot()."""

    @pytest.mark.asyncio
    async def test_without_advisor(self):
        result = await FailureDiagnostics().inspect_screenshot(b"png", "Cart visible")
        assert result.passed is False

    @pytest.mark.asyncio
    async def test_advisor_error(self):
        advisor = AsyncMock(spec=HealAdvisor)
        advisor.inspect_screenshot.side_effect = RuntimeError("rate limited")

        result = await FailureDiagnostics(advisor=advisor).inspect_screenshot(
            b"png", "Cart visible"
        )

        assert result.passed is False
        assert result.confidence == "low"
        assert result.issues == ["rate limited"]
