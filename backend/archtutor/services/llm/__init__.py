"""
LLM Provider Abstraction Layer

Provides a unified interface for multiple LLM providers (OpenAI Chat
Completions and Responses APIs) with a model registry, streaming, and shared
timeout/error handling.
"""

from archtutor.services.llm.client import LLMClient, TextGenerator, get_llm_client
from archtutor.services.llm.registry import MODEL_REGISTRY, get_provider, list_models

__all__ = [
    "LLMClient",
    "TextGenerator",
    "get_llm_client",
    "MODEL_REGISTRY",
    "get_provider",
    "list_models",
]
