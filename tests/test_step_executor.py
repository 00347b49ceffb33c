"""
Unit tests for the step executor.
"""

import pytest

from conftest import make_session
from queuay.core.types import StepActionType, StoryStep
from queuay.execution.step_executor import (
    StepExecutor,
    render_step_source,
    resolve_action,
)


class TestResolveAction:
    """Tests for verb resolution."""

    @pytest.mark.parametrize(
        "verb,expected",
        [
            ("Navigate", StepActionType.NAVIGATE),
            ("Go to the homepage", StepActionType.NAVIGATE),
            ("goto", StepActionType.NAVIGATE),
            ("Click", StepActionType.CLICK),
            ("Tap the menu", StepActionType.CLICK),
            ("Type email", StepActionType.FILL),
            ("Enter password", StepActionType.FILL),
            ("FILL", StepActionType.FILL),
            ("Select country", StepActionType.SELECT),
            ("Choose plan", StepActionType.SELECT),
            ("Check terms", StepActionType.CHECK),
            ("Uncheck newsletter", StepActionType.UNCHECK),
            ("Wait", StepActionType.WAIT),
            ("Scroll down", StepActionType.SCROLL),
            ("Hover avatar", StepActionType.HOVER),
            ("Press", StepActionType.PRESS),
            ("Focus search", StepActionType.FOCUS),
            ("Dance", StepActionType.UNRECOGNIZED),
            ("", StepActionType.UNRECOGNIZED),
        ],
    )
    def test_vocabulary(self, verb, expected):
        assert resolve_action(verb) == expected


class TestStepExecutor:
    """Tests for step execution."""

    @pytest.mark.asyncio
    async def test_click_passes_and_settles(self):
        session = make_session()
        executor = StepExecutor(network_idle_timeout_ms=1234)

        result = await executor.execute(session, StoryStep(action="Click", element="#buy"), 2)

        assert result.passed is True
        assert result.step == 2
        assert result.action == "Click"
        assert result.error is None
        assert result.duration_ms >= 0
        session.click.assert_awaited_once_with("#buy")
        session.wait_for_network_idle.assert_awaited_once_with(1234)

    @pytest.mark.asyncio
    async def test_navigate_uses_value_then_target(self):
        session = make_session()
        executor = StepExecutor()

        await executor.execute(
            session, StoryStep(action="Navigate", value="https://shop.test/cart"), 0
        )
        await executor.execute(
            session, StoryStep(action="Go to", element="https://shop.test/account"), 1
        )

        assert [c.args[0] for c in session.navigate.await_args_list] == [
            "https://shop.test/cart",
            "https://shop.test/account",
        ]

    @pytest.mark.asyncio
    async def test_fill_uses_value(self):
        session = make_session()
        result = await StepExecutor().execute(
            session, StoryStep(action="Type", selector="#email", value="a@b.test"), 0
        )

        assert result.passed is True
        session.fill.assert_awaited_once_with("#email", "a@b.test")

    @pytest.mark.asyncio
    async def test_uncheck_is_not_shadowed_by_check(self):
        session = make_session()
        await StepExecutor().execute(
            session, StoryStep(action="Uncheck", element="#newsletter"), 0
        )

        session.uncheck.assert_awaited_once_with("#newsletter")
        session.check.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value,expected", [("250", 250), (None, 1000), ("soon", 1000)])
    async def test_wait_parses_duration_and_skips_settle(self, value, expected):
        session = make_session()
        result = await StepExecutor().execute(
            session, StoryStep(action="Wait", value=value), 0
        )

        assert result.passed is True
        session.wait.assert_awaited_once_with(expected)
        session.wait_for_network_idle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_press_defaults_to_enter(self):
        session = make_session()
        await StepExecutor().execute(session, StoryStep(action="Press"), 0)

        session.press_key.assert_awaited_once_with("Enter")

    @pytest.mark.asyncio
    async def test_scroll_with_and_without_target(self):
        session = make_session()
        executor = StepExecutor()

        await executor.execute(session, StoryStep(action="Scroll", element="#footer"), 0)
        await executor.execute(session, StoryStep(action="Scroll down"), 1)

        session.scroll_into_view.assert_awaited_once_with("#footer")
        session.scroll_by.assert_awaited_once_with(0, 300)

    @pytest.mark.asyncio
    async def test_unrecognized_with_target_clicks(self):
        session = make_session()
        result = await StepExecutor().execute(
            session, StoryStep(action="Activate", element="#promo"), 0
        )

        assert result.passed is True
        session.click.assert_awaited_once_with("#promo")

    @pytest.mark.asyncio
    async def test_unrecognized_without_target_fails(self):
        session = make_session()
        result = await StepExecutor().execute(session, StoryStep(action="Dance"), 0)

        assert result.passed is False
        assert result.error == "Unrecognized step action"
        session.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_locator_action_without_target_fails(self):
        session = make_session()
        result = await StepExecutor().execute(session, StoryStep(action="Hover"), 0)

        assert result.passed is False
        assert "requires an element or selector" in result.error

    @pytest.mark.asyncio
    async def test_action_exception_becomes_error(self):
        session = make_session(failing_selectors=["#gone"])
        result = await StepExecutor().execute(
            session, StoryStep(action="Click", element="#gone"), 3
        )

        assert result.passed is False
        assert result.step == 3
        assert "waiting for locator('#gone')" in result.error
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_settle_timeout_is_swallowed(self):
        session = make_session()
        session.wait_for_network_idle.side_effect = TimeoutError("network busy")

        result = await StepExecutor().execute(
            session, StoryStep(action="Click", element="#buy"), 0
        )

        assert result.passed is True


class TestRenderStepSource:
    """Tests for diagnostic code fragments."""

    def test_click(self):
        assert render_step_source(StoryStep(action="Click", element="#buy")) == (
            'await page.click("#buy");'
        )

    def test_fill(self):
        step = StoryStep(action="Type", selector="#q", value="shoes")
        assert render_step_source(step) == 'await page.fill("#q", "shoes");'

    def test_navigate(self):
        step = StoryStep(action="Navigate", value="https://shop.test/")
        assert render_step_source(step) == 'await page.goto("https://shop.test/");'
