"""AI client, generation boundary, prompts and AI-driven services."""

from .client import AIClient, AIStreamEvent, ClientSettings

__all__ = ["AIClient", "AIStreamEvent", "ClientSettings"]
