"""
Model Registry

Maps model IDs to their metadata and provider types.
Used by the LLM client to select the correct provider per request.
"""

from archtutor.core.config import get_settings
from archtutor.services.llm.base import LLMProvider


# ── Model Registry ────────────────────────────────────────────────────────────
# Each entry maps a user-facing model_id to:
#   - display_name:       Human-readable name for the frontend
#   - provider:           Which LLMProvider class to use
#   - api_model:          The actual model string sent to the provider API
#   - supports_streaming: Whether tutor replies can be streamed token by token
#   - tier:               Pricing tier for frontend display

MODEL_REGISTRY: dict[str, dict] = {
    # ── OpenAI Responses API (GPT-5.x) ──
    "gpt-5.2": {
        "display_name": "GPT-5.2 (Premium)",
        "provider": "openai_responses",
        "api_model": "gpt-5.2",
        "supports_streaming": True,
        "tier": "premium",
        "description": "Most capable model. Best for deep multi-part architecture questions, but slowest.",
    },
    "gpt-5-mini": {
        "display_name": "GPT-5 Mini",
        "provider": "openai_responses",
        "api_model": "gpt-5-mini",
        "supports_streaming": True,
        "tier": "standard",
        "description": "Good balance of quality and speed for most tutoring turns.",
    },
    # ── OpenAI Chat Completions API (GPT-4o) ──
    "gpt-4o": {
        "display_name": "GPT-4o",
        "provider": "openai_chat",
        "api_model": "gpt-4o",
        "supports_streaming": True,
        "tier": "standard",
        "description": "Fast and reliable. Strong at step-by-step guidance.",
    },
    "gpt-4o-mini": {
        "display_name": "GPT-4o Mini (Budget)",
        "provider": "openai_chat",
        "api_model": "gpt-4o-mini",
        "supports_streaming": True,
        "tier": "budget",
        "description": "Fastest and cheapest. Recommended default for streamed replies and query expansion.",
    },
}


def default_model_id() -> str:
    """Configured default model, or gpt-4o-mini if the setting names an unknown model."""
    model_id = get_settings().default_model_id
    return model_id if model_id in MODEL_REGISTRY else "gpt-4o-mini"


# ── Provider Factory ──────────────────────────────────────────────────────────

# Provider class registry (lazy-loaded singletons)
_provider_instances: dict[str, LLMProvider] = {}


def _create_provider(provider_type: str) -> LLMProvider:
    """Create a provider instance by type string."""
    if provider_type == "openai_responses":
        from archtutor.services.llm.openai_responses import OpenAIResponsesProvider
        return OpenAIResponsesProvider()
    elif provider_type == "openai_chat":
        from archtutor.services.llm.openai_chat import OpenAIChatProvider
        return OpenAIChatProvider()
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")


def get_provider(model_id: str) -> tuple[LLMProvider, str]:
    """
    Get the provider instance and API model name for a given model_id.

    Args:
        model_id: The user-facing model identifier (e.g., "gpt-4o")

    Returns:
        Tuple of (provider_instance, api_model_name)

    Raises:
        ValueError: If the model_id is not in the registry
    """
    if model_id not in MODEL_REGISTRY:
        raise ValueError(
            f"Unknown model: {model_id}. "
            f"Available models: {', '.join(MODEL_REGISTRY.keys())}"
        )

    model_info = MODEL_REGISTRY[model_id]
    provider_type = model_info["provider"]

    # Lazy singleton creation
    if provider_type not in _provider_instances:
        _provider_instances[provider_type] = _create_provider(provider_type)

    return _provider_instances[provider_type], model_info["api_model"]


def list_models() -> list[dict]:
    """
    Return the list of available models for the frontend.

    Returns:
        List of dicts with id, display_name, tier, supports_streaming, description, default
    """
    default_id = default_model_id()
    return [
        {
            "id": model_id,
            "display_name": info["display_name"],
            "tier": info["tier"],
            "supports_streaming": info["supports_streaming"],
            "description": info.get("description", ""),
            "default": model_id == default_id,
        }
        for model_id, info in MODEL_REGISTRY.items()
    ]
