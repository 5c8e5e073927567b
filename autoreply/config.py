from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    assemblyai_api_key: str = ""

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    recordings_bucket: str = "call-recordings"

    # Embeddings
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_request_delay: float = 0.1  # seconds between calls inside a batch
    embedding_max_attempts: int = 5

    # Generation / classification
    llm_model: str = "claude-sonnet-4-20250514"
    classifier_model: str = "claude-3-5-haiku-latest"
    reply_max_tokens: int = 500
    reply_temperature: float = 0.2
    business_description: str = "our business (customer service, orders, products, support)"

    # Pipeline
    chunk_max_chars: int = 1500
    retrieval_limit: int = 5
    history_fetch_limit: int = 20
    history_prompt_turns: int = 10
    mapping_max_attempts: int = 3
    worker_batch_size: int = 5
    max_audio_bytes: int = 100 * 1024 * 1024

    # Delivery
    whatsapp_send_url: str = "https://api.11za.in/apis/sendMessage/sendMessages"
    whatsapp_timeout: float = 30.0

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
