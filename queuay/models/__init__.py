"""Model clients."""

from queuay.models.openai_client import OpenAIClient, image_content

__all__ = ["OpenAIClient", "image_content"]
