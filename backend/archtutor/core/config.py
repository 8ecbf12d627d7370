from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # OpenAI
    openai_api_key: str = ""
    # default_model_id: str = "gpt-4o"
    default_model_id: str = "gpt-4o-mini"  # Fast enough for streamed tutoring turns

    # Retrieval index (ChromaDB + OpenAI embeddings)
    chroma_persist_dir: str = "chroma_data"
    chroma_collection: str = "computer_architecture"
    embedding_model: str = "text-embedding-3-small"
    retrieval_top_k: int = 3

    # Conversation memory
    memory_max_turns: int = 5
    session_ttl_seconds: int = 60 * 60

    # Adaptive support
    feedback_min_interactions: int = 3

    # Query expansion & fusion
    retrieval_max_tokens: int = 1000
    max_query_variations: int = 6
    variation_temperature: float = 0.7

    # Generation
    generation_max_tokens: int = 500
    generation_temperature: float = 0.7
    history_max_tokens: int = 2000
    compound_query_min_words: int = 35

    # Bounded wait for every external call (seconds)
    service_timeout_seconds: float = 20.0

    # Stage timing: readings kept per operation and slow-operation thresholds (ms)
    performance_window: int = 100
    slow_retrieval_ms: int = 2000
    slow_response_ms: int = 3000

    # Turns considered when summarizing learner progress
    progress_window_turns: int = 5

    # URLs
    frontend_url: str = "http://localhost:5173"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
