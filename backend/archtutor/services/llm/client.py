"""
LLM Client

Shared logic for all providers:
- model selection through the registry
- a bounded wait on every call (and on every streamed delta)
- wrapping provider failures into UpstreamServiceError
- JSON extraction from free-text responses

The client delegates the actual API call to the selected provider,
keeping provider implementations clean and focused on API translation.
"""

import asyncio
import json
import logging
import re
from typing import AsyncIterator, Protocol

from archtutor.core.config import get_settings
from archtutor.core.errors import ServiceTimeoutError, UpstreamServiceError
from archtutor.services.llm.registry import MODEL_REGISTRY, default_model_id, get_provider

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """What the pipeline needs from a text-generation service."""

    async def complete(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
        stage: str = "generation",
        model_id: str | None = None,
    ) -> str:
        ...

    def stream(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
        stage: str = "generation",
        model_id: str | None = None,
    ) -> AsyncIterator[str]:
        ...


def extract_json(content: str) -> str:
    """Extract JSON from response, handling markdown code blocks."""
    # Try to find JSON in code blocks
    code_block_pattern = r"```(?:json)?\s*([\s\S]*?)```"
    matches = re.findall(code_block_pattern, content)
    if matches:
        return matches[0].strip()

    # Try to find a raw JSON array or object
    for json_pattern in (r"\[[\s\S]*\]", r"\{[\s\S]*\}"):
        matches = re.findall(json_pattern, content)
        if matches:
            # Return the longest match (most likely the full JSON)
            return max(matches, key=len)

    # Return as-is and let JSON parser handle it
    return content.strip()


def parse_string_list(content: str) -> list[str]:
    """
    Parse an LLM answer that should be a JSON array of strings.

    Raises ValueError when the answer is not such an array.
    """
    try:
        data = json.loads(extract_json(content))
    except json.JSONDecodeError as e:
        raise ValueError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ValueError("Response JSON is not an array")
    return [item.strip() for item in data if isinstance(item, str) and item.strip()]


class LLMClient:
    """TextGenerator backed by the model registry."""

    def __init__(self, model_id: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self.model_id = model_id or default_model_id()
        self.timeout = timeout if timeout is not None else settings.service_timeout_seconds

    def _resolve(self, model_id: str | None, stage: str):
        """Provider and API model name for a per-call model, falling back to the client's."""
        model_id = model_id or self.model_id
        try:
            provider, api_model = get_provider(model_id)
        except ValueError as e:
            raise UpstreamServiceError(stage, str(e)) from e
        return model_id, provider, api_model

    async def complete(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
        stage: str = "generation",
        model_id: str | None = None,
    ) -> str:
        model_id, provider, api_model = self._resolve(model_id, stage)
        try:
            content = await asyncio.wait_for(
                provider.complete(
                    messages=messages,
                    model=api_model,
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(stage, self.timeout) from e
        except ValueError as e:
            raise UpstreamServiceError(stage, str(e)) from e
        except Exception as e:
            raise UpstreamServiceError(stage, f"{type(e).__name__}: {e}") from e

        logger.info("[LLM] model=%s provider=%s stage=%s chars=%d",
                    model_id, provider.provider_name, stage, len(content))
        return content

    async def stream(
        self,
        messages: list[dict],
        max_tokens: int,
        temperature: float,
        stage: str = "generation",
        model_id: str | None = None,
    ) -> AsyncIterator[str]:
        model_id, provider, api_model = self._resolve(model_id, stage)

        # Models without streaming answer in one piece
        if not MODEL_REGISTRY[model_id]["supports_streaming"]:
            yield await self.complete(messages, max_tokens, temperature, stage, model_id)
            return

        deltas = provider.stream(
            messages=messages,
            model=api_model,
            max_output_tokens=max_tokens,
            temperature=temperature,
        )

        produced = 0
        try:
            while True:
                try:
                    delta = await asyncio.wait_for(deltas.__anext__(), timeout=self.timeout)
                except StopAsyncIteration:
                    break
                produced += len(delta)
                yield delta
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(stage, self.timeout) from e
        except UpstreamServiceError:
            raise
        except Exception as e:
            raise UpstreamServiceError(stage, f"{type(e).__name__}: {e}") from e
        finally:
            await deltas.aclose()

        if produced == 0:
            raise UpstreamServiceError(stage, "Empty streamed response")

        logger.info("[LLM] model=%s provider=%s stage=%s streamed_chars=%d",
                    model_id, provider.provider_name, stage, produced)


# ── Singleton ─────────────────────────────────────────────────────────────────

_client: LLMClient | None = None


def get_llm_client() -> LLMClient:
    """Get or create the LLM client singleton."""
    global _client
    if _client is None:
        _client = LLMClient()
    return _client
