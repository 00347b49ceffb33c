"""
Unit tests for the outcome verifier.
"""

from unittest.mock import AsyncMock

import pytest

from conftest import make_session
from queuay.core.interfaces import HealAdvisor
from queuay.core.types import InspectionResult, StoryOutcome, StoryVerification
from queuay.execution.diagnostics import FailureDiagnostics
from queuay.execution.verifier import OutcomeVerifier


def outcome(*verifications: StoryVerification) -> StoryOutcome:
    return StoryOutcome(description="done", verifications=list(verifications))


class TestOutcomeVerifier:
    """Tests for verification evaluation."""

    @pytest.mark.asyncio
    async def test_empty_outcome_passes(self):
        result = await OutcomeVerifier().verify(make_session(), outcome())

        assert result.passed is True
        assert result.error is None
        assert result.unverified == []

    @pytest.mark.asyncio
    async def test_url_contains(self):
        session = make_session(url="https://shop.test/order/42/confirmation")

        result = await OutcomeVerifier().verify(
            session, outcome(StoryVerification(type="url", expected="/confirmation"))
        )

        assert result.passed is True

    @pytest.mark.asyncio
    async def test_url_mismatch(self):
        session = make_session(url="https://shop.test/cart")

        result = await OutcomeVerifier().verify(
            session, outcome(StoryVerification(type="url", expected="/confirmation"))
        )

        assert result.passed is False
        assert "/confirmation" in result.error
        assert "https://shop.test/cart" in result.error

    @pytest.mark.asyncio
    async def test_element_uses_target_then_expected(self):
        session = make_session()
        verifier = OutcomeVerifier(timeout_ms=750)

        await verifier.verify(
            session,
            outcome(
                StoryVerification(type="element", target="#receipt", expected="Receipt"),
                StoryVerification(type="element", expected=".order-number"),
            ),
        )

        calls = [c.args[0] for c in session.is_visible.await_args_list]
        assert calls == ["#receipt", ".order-number"]
        assert all(c.kwargs["timeout_ms"] == 750 for c in session.is_visible.await_args_list)

    @pytest.mark.asyncio
    async def test_content_uses_text_locator(self):
        session = make_session()

        result = await OutcomeVerifier().verify(
            session, outcome(StoryVerification(type="content", expected="Thank you"))
        )

        assert result.passed is True
        session.is_visible.assert_awaited_once()
        assert session.is_visible.await_args.args[0] == "text=Thank you"

    @pytest.mark.asyncio
    async def test_lookup_error_is_not_found(self):
        session = make_session()
        session.is_visible.side_effect = Exception("Target closed")

        result = await OutcomeVerifier().verify(
            session, outcome(StoryVerification(type="content", expected="Thank you"))
        )

        assert result.passed is False
        assert result.error == "Expected content 'Thank you' not found"

    @pytest.mark.asyncio
    async def test_fail_fast(self):
        session = make_session(url="https://shop.test/cart")

        result = await OutcomeVerifier().verify(
            session,
            outcome(
                StoryVerification(type="url", expected="/confirmation"),
                StoryVerification(type="element", expected="#receipt"),
            ),
        )

        assert result.passed is False
        session.is_visible.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_visual_without_advisor_is_unverified(self):
        session = make_session()

        result = await OutcomeVerifier(diagnostics=FailureDiagnostics()).verify(
            session,
            outcome(
                StoryVerification(type="visual", expected="Cart shows two items"),
                StoryVerification(type="url", expected="shop.test"),
            ),
        )

        assert result.passed is True
        assert result.unverified == ["visual: Cart shows two items"]
        session.screenshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_visual_delegates_to_inspector(self):
        advisor = AsyncMock(spec=HealAdvisor)
        advisor.inspect_screenshot.return_value = InspectionResult(
            passed=False,
            confidence="high",
            observation="Cart is empty",
            issues=["no items"],
        )
        session = make_session(console_errors=["TypeError: x is undefined"])
        verifier = OutcomeVerifier(diagnostics=FailureDiagnostics(advisor=advisor))

        result = await verifier.verify(
            session,
            outcome(StoryVerification(type="visual", expected="Cart shows two items")),
            console_errors=session.console_errors,
        )

        assert result.passed is False
        assert "Cart is empty" in result.error
        assert "no items" in result.error
        advisor.inspect_screenshot.assert_awaited_once_with(
            b"\x89PNG fake", "Cart shows two items", ["TypeError: x is undefined"]
        )
