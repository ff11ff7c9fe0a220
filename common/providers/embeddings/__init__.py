"""Embedding backends for generating vector embeddings."""

from common.providers.embeddings.factory import (
    create_remote_backend,
    get_embedding_backend,
    normalize_embeddings_url,
)
from common.providers.embeddings.interface import EmbeddingBackendInterface
from common.providers.embeddings.worker import EmbeddingWorkerHandle

__all__ = [
    "create_remote_backend",
    "get_embedding_backend",
    "normalize_embeddings_url",
    "EmbeddingBackendInterface",
    "EmbeddingWorkerHandle",
]
