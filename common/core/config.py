from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import Environment, EmbeddingMode


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Environment Profile
    environment: Environment = Environment.LOCAL
    debug: bool = False
    log_level: str = "INFO"

    # OpenTelemetry
    otel_service_name: str = "passage-retrieval"
    otel_exporter_endpoint: Optional[str] = None  # OTLP/HTTP traces endpoint

    # Database
    database_url: str = "sqlite+aiosqlite:///./retrieval.db"

    # Embeddings
    embedding_mode: EmbeddingMode = EmbeddingMode.BUILTIN
    builtin_embedding_model_id: str = "all-MiniLM-L6-v2"
    remote_embedding_url: str = "https://api.openai.com/v1/embeddings"
    remote_embedding_model: Optional[str] = None
    remote_embedding_api_key: Optional[str] = None
    embedding_request_timeout: float = 60.0

    # Chunking
    chunk_target_tokens: int = 300
    chunk_min_tokens: int = 50
    chunk_overlap_ratio: float = 0.2

    # Indexing / caching
    insert_batch_size: int = 50
    cache_ttl_seconds: float = 300.0

    # Search defaults
    search_default_top_k: int = 5
    search_default_threshold: float = 0.3


settings = Settings()
