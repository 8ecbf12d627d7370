"""
Abstract base class for all LLM providers.

Each provider implements the API-specific translation layer.
Timeouts, JSON extraction and error wrapping are handled by the client.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator


class LLMProvider(ABC):
    """Abstract base class for all LLM providers."""

    provider_name: str = "base"

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        """
        Send a chat message list to the LLM and return the full text response.

        Args:
            messages: List of message dicts with "role" and "content";
                      the first one is usually the system prompt
            model: The API model identifier (e.g., "gpt-4o", "gpt-5-mini")
            max_output_tokens: Maximum tokens in the response
            temperature: Sampling temperature

        Returns:
            Raw text response from the LLM
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """
        Same request as ``complete`` but yields text deltas as they arrive.
        """
        ...
