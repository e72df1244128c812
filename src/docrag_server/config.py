from typing import Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "docrag-server"
    log_level: str = "INFO"

    # Embedding provider
    embedding_provider: Literal["hashing", "http"] = "hashing"
    embedding_dim: int = Field(default=384, ge=1)
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = "https://api.openai.com/v1/embeddings"
    openai_api_key: Optional[SecretStr] = None
    http_timeout: float = 60.0

    # Answer synthesis
    synthesizer: Literal["template", "llm"] = "template"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1/chat/completions"
    llm_temperature: float = 0.2

    # Chunking
    chunk_max_chars: int = Field(default=500, ge=1)
    image_sentences_per_chunk: int = Field(default=3, ge=1)

    # Retrieval
    min_similarity: float = Field(default=0.3, ge=0.0, le=1.0)
    search_limit: int = Field(default=10, ge=1)
    top_k: int = Field(default=5, ge=1)
    max_context_chars: int = Field(default=4000, ge=0)

    # Evaluation
    metrics_window: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
