"""
OpenAI Chat Completions API Provider

Handles GPT-4o, GPT-4o-mini, and other Chat Completions API models:
- client.chat.completions.create()
- messages (not input)
- response.choices[0].message.content
- streamed chunks carry text in choices[0].delta.content
"""

from typing import AsyncIterator

from openai import AsyncOpenAI

from archtutor.core.config import get_settings
from archtutor.services.llm.base import LLMProvider

settings = get_settings()


class OpenAIChatProvider(LLMProvider):
    """Provider for OpenAI Chat Completions API (GPT-4o, GPT-4o-mini, etc.)."""

    provider_name = "openai_chat"

    def __init__(self):
        self.client = AsyncOpenAI(api_key=settings.openai_api_key)

    async def complete(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_completion_tokens=max_output_tokens,
            temperature=temperature,
        )

        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from OpenAI Chat Completions API")
        return content

    async def stream(
        self,
        messages: list[dict],
        model: str,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_completion_tokens=max_output_tokens,
            temperature=temperature,
            stream=True,
        )

        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
