"""AI agents used for failure diagnostics."""

from queuay.agents.base_agent import BaseAgent, extract_json
from queuay.agents.healer import HealingAgent

__all__ = ["BaseAgent", "extract_json", "HealingAgent"]
