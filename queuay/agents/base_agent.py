"""
Base implementation for AI agents in the Queuay engine.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from queuay.config.settings import get_settings
from queuay.models.openai_client import OpenAIClient

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)\s*```")
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)\s*```")


def extract_json(text: Any) -> Optional[Any]:
    """
    Parse a JSON payload out of a model response.

    Accepts already-parsed objects, raw JSON text, or JSON wrapped in a
    fenced code block. Returns None when nothing parses.
    """
    if isinstance(text, (dict, list)):
        return text
    if not isinstance(text, str) or not text.strip():
        return None

    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    payload = match.group(1) if match else text

    try:
        return json.loads(payload.strip())
    except json.JSONDecodeError:
        return None


class BaseAgent:
    """Base implementation of an AI agent with OpenAI integration."""

    def __init__(
        self,
        name: str,
        system_prompt: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        client: Optional[OpenAIClient] = None,
    ) -> None:
        """
        Initialize the base agent.

        Args:
            name: Name identifier for the agent
            system_prompt: System prompt for the agent
            model: OpenAI model to use
            temperature: Temperature for model responses
            client: Pre-built client (created lazily otherwise)
        """
        settings = get_settings()
        self.name = name
        self.model = model or settings.openai_model
        self.system_prompt = system_prompt
        self.temperature = (
            settings.openai_temperature if temperature is None else temperature
        )
        self.logger = logging.getLogger(f"agent.{name}")
        self._client = client

    @property
    def client(self) -> OpenAIClient:
        """Lazy-load OpenAI client."""
        if self._client is None:
            self._client = OpenAIClient(model=self.model)
        return self._client

    async def call_openai(
        self,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Make a call to OpenAI API.

        Args:
            messages: List of message dictionaries
            temperature: Override default temperature
            max_tokens: Response token cap
            system_prompt: Override the agent's system prompt

        Returns:
            API response
        """
        return await self.client.call(
            messages=messages,
            temperature=self.temperature if temperature is None else temperature,
            max_tokens=max_tokens,
            system_prompt=system_prompt or self.system_prompt,
        )

    def build_messages(
        self,
        user_content: str,
        images: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Build message list for OpenAI API.

        Args:
            user_content: User message text
            images: Optional image content parts placed before the text

        Returns:
            List of message dictionaries
        """
        if not images:
            return [{"role": "user", "content": user_content}]

        content: List[Dict[str, Any]] = list(images)
        content.append({"type": "text", "text": user_content})
        return [{"role": "user", "content": content}]
