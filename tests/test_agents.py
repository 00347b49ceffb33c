"""Tests for the diagnostics agent and its OpenAI client wrapper."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from queuay.agents.base_agent import BaseAgent, extract_json
from queuay.agents.healer import HealingAgent
from queuay.core.types import FailureCategory, FailureContext
from queuay.error_handling import DiagnosticError
from queuay.models.openai_client import OpenAIClient, image_content


def _client(content) -> AsyncMock:
    client = AsyncMock(spec=OpenAIClient)
    client.call.return_value = {"content": content, "usage": {}, "model": "m"}
    return client


def _context(**kwargs) -> FailureContext:
    values = dict(
        story_id="story-1",
        source_fragment='await page.click("#buy");',
        error="Timeout waiting for locator('#buy')",
        category=FailureCategory.SELECTOR,
        dom_snapshot="<button data-test='buy'>Buy</button>",
    )
    values.update(kwargs)
    return FailureContext(**values)


class TestExtractJson:
    """Tests for model response parsing."""

    def test_json_fence(self):
        text = 'Here you go:\n```json\n{"passed": true}\n```\nthanks'
        assert extract_json(text) == {"passed": True}

    def test_plain_fence(self):
        assert extract_json('```\n{"a": 1}\n```') == {"a": 1}

    def test_raw_text(self):
        assert extract_json('  {"a": [1, 2]}  ') == {"a": [1, 2]}

    def test_already_parsed(self):
        assert extract_json({"a": 1}) == {"a": 1}

    @pytest.mark.parametrize("text", [None, "", "not json", "```json\n{broken\n```"])
    def test_unparseable(self, text):
        assert extract_json(text) is None


class TestBaseAgent:
    """Tests for message construction and client calls."""

    def test_build_messages_text_only(self):
        agent = BaseAgent("test", "system", client=_client(""))
        assert agent.build_messages("hello") == [{"role": "user", "content": "hello"}]

    def test_build_messages_with_image(self):
        agent = BaseAgent("test", "system", client=_client(""))
        image = image_content(b"png")

        messages = agent.build_messages("look", images=[image])

        assert messages[0]["content"][0] == image
        assert messages[0]["content"][-1] == {"type": "text", "text": "look"}

    @pytest.mark.asyncio
    async def test_call_openai_uses_defaults(self):
        client = _client("ok")
        agent = BaseAgent("test", "be brief", temperature=0.1, client=client)

        await agent.call_openai([{"role": "user", "content": "hi"}], max_tokens=10)

        client.call.assert_awaited_once_with(
            messages=[{"role": "user", "content": "hi"}],
            temperature=0.1,
            max_tokens=10,
            system_prompt="be brief",
        )

    def test_client_requires_api_key(self):
        agent = BaseAgent("test", "system")
        with pytest.raises(ValueError):
            agent.client


class TestHealingAgent:
    """Tests for heal proposals and screenshot inspection."""

    @pytest.mark.asyncio
    async def test_propose_heal(self):
        client = _client(
            "```json\n"
            '{"type": "SELECTOR", "original": "page.click(\\"#buy\\")", '
            '"proposed": "page.click(\\"[data-test=buy]\\")", "line": 3, '
            '"confidence": 0.93, "reasoning": "id was removed"}\n'
            "```"
        )
        agent = HealingAgent(client=client)

        proposal = await agent.propose_heal(_context(screenshot_base64="aGVsbG8="))

        assert proposal.type == FailureCategory.SELECTOR
        assert proposal.proposed == 'page.click("[data-test=buy]")'
        assert proposal.line == 3
        assert proposal.confidence == pytest.approx(0.93)
        assert proposal.auto_applicable is True

        kwargs = client.call.await_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert content[0]["image_url"]["url"].endswith("aGVsbG8=")
        assert "#buy" in content[-1]["text"]
        assert "data-test='buy'" in content[-1]["text"]

    @pytest.mark.asyncio
    async def test_confidence_is_clamped_and_line_optional(self):
        client = _client('{"type": "flow", "proposed": "x", "confidence": 7, "line": "3"}')

        proposal = await HealingAgent(client=client).propose_heal(_context())

        assert proposal.confidence == 1.0
        assert proposal.line is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content",
        [
            "I could not figure it out",
            '{"type": "selector", "confidence": "very"}',
            '{"type": "layout", "confidence": 0.5}',
            "[1, 2]",
        ],
    )
    async def test_unusable_responses(self, content):
        proposal = await HealingAgent(client=_client(content)).propose_heal(_context())
        assert proposal is None

    @pytest.mark.asyncio
    async def test_call_failure_raises_diagnostic_error(self):
        client = AsyncMock(spec=OpenAIClient)
        client.call.side_effect = RuntimeError("rate limited")

        with pytest.raises(DiagnosticError):
            await HealingAgent(client=client).propose_heal(_context())

    @pytest.mark.asyncio
    async def test_inspect_screenshot(self):
        client = _client(
            '{"passed": true, "confidence": "high", '
            '"observation": "Two items in cart", "issues": []}'
        )

        result = await HealingAgent(client=client).inspect_screenshot(
            b"png", "Cart shows two items", ["404 /api/recommendations"]
        )

        assert result.passed is True
        assert result.confidence == "high"
        prompt = client.call.await_args.kwargs["messages"][0]["content"][-1]["text"]
        assert "Cart shows two items" in prompt
        assert "404 /api/recommendations" in prompt

    @pytest.mark.asyncio
    async def test_inspect_screenshot_unparseable(self):
        result = await HealingAgent(client=_client("looks fine to me")).inspect_screenshot(
            b"png", "Cart shows two items"
        )

        assert result.passed is False
        assert result.confidence == "low"
        assert result.observation == "Unable to analyze screenshot"
        assert result.issues == ["Failed to parse inspection result"]


def _completion(content: str):
    return SimpleNamespace(
        choices=[
            SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")
        ],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=5, total_tokens=17),
        model="gpt-test",
    )


class TestOpenAIClient:
    """Tests for the chat completions wrapper."""

    def _client(self, content: str) -> OpenAIClient:
        client = OpenAIClient(model="gpt-test", api_key="sk-test")
        client.client = SimpleNamespace(
            chat=SimpleNamespace(
                completions=SimpleNamespace(create=AsyncMock(return_value=_completion(content)))
            )
        )
        return client

    @pytest.mark.asyncio
    async def test_call(self):
        client = self._client("hello")

        response = await client.call(
            [{"role": "user", "content": "hi"}], max_tokens=50, system_prompt="be kind"
        )

        assert response["content"] == "hello"
        assert response["usage"]["total_tokens"] == 17
        assert response["finish_reason"] == "stop"
        kwargs = client.client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "be kind"}
        assert kwargs["max_completion_tokens"] == 50
        assert kwargs["model"] == "gpt-test"

    @pytest.mark.asyncio
    async def test_json_response_format(self):
        client = self._client('{"ok": true}')

        response = await client.call(
            [{"role": "user", "content": "hi"}], response_format={"type": "json_object"}
        )

        assert response["content"] == {"ok": True}

    def test_image_content_requires_data(self):
        with pytest.raises(ValueError):
            image_content()
