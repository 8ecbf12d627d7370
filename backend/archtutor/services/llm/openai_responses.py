"""
OpenAI Responses API Provider

Handles GPT-5.x models using the newer Responses API format:
- client.responses.create()
- input (not messages)
- response.output_text
- streamed text arrives as "response.output_text.delta" events
"""

from typing import AsyncIterator

from openai import AsyncOpenAI

from archtutor.core.config import get_settings
from archtutor.services.llm.base import LLMProvider

settings = get_settings()


class OpenAIResponsesProvider(LLMProvider):
    """Provider for OpenAI Responses API (GPT-5.x models)."""

    provider_name = "openai_responses"

    def __init__(self):
        self.client = AsyncOpenAI(api_key=settings.openai_api_key)

    async def complete(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        # Reasoning models reject temperature; the Responses API call omits it
        response = await self.client.responses.create(
            model=model,
            input=messages,
            max_output_tokens=max_output_tokens,
        )

        content = response.output_text
        if not content:
            raise ValueError("Empty response from OpenAI Responses API")
        return content

    async def stream(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        response = await self.client.responses.create(
            model=model,
            input=messages,
            max_output_tokens=max_output_tokens,
            stream=True,
        )

        async for event in response:
            if event.type == "response.output_text.delta" and event.delta:
                yield event.delta
