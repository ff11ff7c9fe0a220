"""Factory for creating embedding backend instances."""

from typing import Optional

import httpx

from common.core.config import Settings, settings as default_settings
from common.core.constants import EmbeddingMode
from common.core.telemetry import get_logger
from common.providers.embeddings.interface import EmbeddingBackendInterface
from common.providers.embeddings.local_provider import LocalEmbeddingBackend
from common.providers.embeddings.models import RemoteEmbeddingModelConfig
from common.providers.embeddings.ollama_provider import OllamaEmbeddingBackend
from common.providers.embeddings.openai_provider import OpenAIEmbeddingBackend
from common.providers.embeddings.provider_enum import EmbeddingBackendType
from common.providers.embeddings.remote_provider import RemoteEmbeddingBackend
from common.providers.embeddings.worker import EmbeddingWorkerHandle

logger = get_logger(__name__)

OLLAMA_EMBED_SUFFIX = "/api/embed"


def normalize_embeddings_url(url: str) -> str:
    """Strip a trailing slash so suffix checks and URL joins behave."""
    return url.strip().rstrip("/")


def detect_remote_dialect(url: str) -> str:
    if normalize_embeddings_url(url).endswith(OLLAMA_EMBED_SUFFIX):
        return EmbeddingBackendType.OLLAMA
    return EmbeddingBackendType.OPENAI


def create_remote_backend(
    config: RemoteEmbeddingModelConfig,
    timeout: float = 60.0,
    http_client: Optional[httpx.AsyncClient] = None,
) -> RemoteEmbeddingBackend:
    """Build the backend matching the endpoint's dialect."""
    config = config.model_copy(update={"url": normalize_embeddings_url(config.url)})

    match detect_remote_dialect(config.url):
        case EmbeddingBackendType.OLLAMA:
            return OllamaEmbeddingBackend(config, timeout=timeout, http_client=http_client)
        case _:
            return OpenAIEmbeddingBackend(config, timeout=timeout, http_client=http_client)


def get_embedding_backend(
    settings: Optional[Settings] = None,
    worker_handle: Optional[EmbeddingWorkerHandle] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> EmbeddingBackendInterface:
    """
    Get embedding backend instance.

    Args:
        settings: Source of the embedding mode and model selection.
                  If None, uses the process settings.
        worker_handle: Worker to host built-in models. A new one is created
                       when None.
        http_client: Optional client injected into remote backends

    Returns:
        An instance of the configured embedding backend.

    Raises:
        ValueError: If the embedding mode is unknown.
    """
    settings = settings or default_settings

    match settings.embedding_mode:
        case EmbeddingMode.BUILTIN:
            handle = worker_handle or EmbeddingWorkerHandle()
            logger.info(f"Using built-in embedding model {settings.builtin_embedding_model_id}")
            return LocalEmbeddingBackend(handle, settings.builtin_embedding_model_id)
        case EmbeddingMode.REMOTE:
            config = RemoteEmbeddingModelConfig(
                id="default",
                name=settings.remote_embedding_model or "remote",
                url=settings.remote_embedding_url,
                model_id=settings.remote_embedding_model or "",
                api_key=settings.remote_embedding_api_key,
            )
            logger.info(f"Using remote embedding endpoint {config.url}")
            return create_remote_backend(
                config, timeout=settings.embedding_request_timeout, http_client=http_client
            )
        case _:
            raise ValueError(f"Unknown embedding mode: {settings.embedding_mode}")
