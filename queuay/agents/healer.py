"""
Healing Agent: proposes fixes for failing story steps and judges
screenshots against a described expectation.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from queuay.agents.base_agent import BaseAgent, extract_json
from queuay.config.agent_prompts import (
    HEALING_SYSTEM_PROMPT,
    HEALING_USER_TEMPLATE,
    INSPECTION_CONSOLE_ERRORS_TEMPLATE,
    INSPECTION_SYSTEM_PROMPT,
    INSPECTION_USER_TEMPLATE,
)
from queuay.config.settings import get_settings
from queuay.core.interfaces import HealAdvisor
from queuay.core.types import FailureContext, HealProposal, InspectionResult
from queuay.error_handling.exceptions import DiagnosticError
from queuay.models.openai_client import OpenAIClient, image_content
from queuay.security.sanitizer import DataSanitizer

HEAL_MAX_TOKENS = 2048
INSPECTION_MAX_TOKENS = 1024

UNPARSEABLE_INSPECTION = InspectionResult(
    passed=False,
    confidence="low",
    observation="Unable to analyze screenshot",
    issues=["Failed to parse inspection result"],
)


class HealingAgent(BaseAgent, HealAdvisor):
    """OpenAI-backed HealAdvisor."""

    def __init__(
        self,
        name: str = "HealingAgent",
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        client: Optional[OpenAIClient] = None,
    ) -> None:
        super().__init__(
            name=name,
            system_prompt=HEALING_SYSTEM_PROMPT,
            model=model,
            temperature=temperature,
            client=client,
        )
        self.sanitizer = DataSanitizer()
        self.dom_snapshot_max_chars = get_settings().dom_snapshot_max_chars

    async def propose_heal(self, context: FailureContext) -> Optional[HealProposal]:
        """
        Ask the model for a fix to a failing step.

        Returns:
            HealProposal, or None when the response cannot be parsed

        Raises:
            DiagnosticError: The model call itself failed
        """
        dom = (context.dom_snapshot or "")[: self.dom_snapshot_max_chars]
        prompt = HEALING_USER_TEMPLATE.format(
            source_fragment=self.sanitizer.sanitize_string(context.source_fragment),
            error=self.sanitizer.sanitize_string(context.error),
            category=context.category.value,
            dom_snapshot=self.sanitizer.sanitize_string(dom),
        )
        images = (
            [image_content(base64_image=context.screenshot_base64)]
            if context.screenshot_base64
            else None
        )

        self.logger.info(
            "Requesting heal proposal",
            extra={"story_id": context.story_id, "category": context.category.value},
        )
        response = await self._request(
            self.build_messages(prompt, images=images),
            system_prompt=HEALING_SYSTEM_PROMPT,
            max_tokens=HEAL_MAX_TOKENS,
        )

        data = extract_json(response.get("content"))
        if not isinstance(data, dict):
            self.logger.warning("Heal proposal response was not JSON")
            return None

        return self._to_proposal(data)

    async def inspect_screenshot(
        self,
        screenshot: bytes,
        expectation: str,
        console_errors: Optional[List[str]] = None,
    ) -> InspectionResult:
        """
        Judge whether a screenshot shows the expected state.

        Unparseable responses yield a failed, low-confidence result.

        Raises:
            DiagnosticError: The model call itself failed
        """
        prompt = INSPECTION_USER_TEMPLATE.format(expectation=expectation)
        if console_errors:
            prompt += INSPECTION_CONSOLE_ERRORS_TEMPLATE.format(
                console_errors="\n".join(console_errors)
            )

        response = await self._request(
            self.build_messages(prompt, images=[image_content(screenshot)]),
            system_prompt=INSPECTION_SYSTEM_PROMPT,
            max_tokens=INSPECTION_MAX_TOKENS,
        )

        data = extract_json(response.get("content"))
        if not isinstance(data, dict):
            return UNPARSEABLE_INSPECTION.model_copy(deep=True)

        try:
            return InspectionResult(
                passed=bool(data.get("passed", False)),
                confidence=str(data.get("confidence", "low")),
                observation=str(data.get("observation", "")),
                issues=[str(issue) for issue in data.get("issues") or []],
            )
        except (ValidationError, TypeError):
            return UNPARSEABLE_INSPECTION.model_copy(deep=True)

    async def _request(
        self,
        messages: List[Dict[str, Any]],
        system_prompt: str,
        max_tokens: int,
    ) -> Dict[str, Any]:
        try:
            return await self.call_openai(
                messages, max_tokens=max_tokens, system_prompt=system_prompt
            )
        except Exception as e:
            raise DiagnosticError(
                f"Diagnostic model call failed: {e}", cause=e
            ) from e

    def _to_proposal(self, data: Dict[str, Any]) -> Optional[HealProposal]:
        confidence = data.get("confidence")
        try:
            confidence = min(1.0, max(0.0, float(confidence)))
        except (TypeError, ValueError):
            self.logger.warning("Heal proposal without numeric confidence")
            return None

        line = data.get("line")
        if not isinstance(line, int) or isinstance(line, bool):
            line = None

        try:
            return HealProposal(
                type=str(data.get("type", "")).lower(),
                original=str(data.get("original") or ""),
                proposed=str(data.get("proposed") or ""),
                confidence=confidence,
                reasoning=str(data.get("reasoning") or ""),
                line=line,
            )
        except ValidationError as e:
            self.logger.warning(f"Heal proposal failed validation: {e}")
            return None
