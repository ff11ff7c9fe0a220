"""Shared behaviour of remote HTTP embedding backends."""

from abc import abstractmethod
from typing import List, Optional

from common.core.exceptions import EmbeddingBackendError
from common.core.telemetry import get_logger, trace_span
from common.providers.embeddings.interface import (
    EmbeddingBackendInterface,
    EmbedProgressCallback,
)
from common.providers.embeddings.models import RemoteEmbeddingModelConfig

logger = get_logger(__name__)

REMOTE_BATCH_SIZE = 20
MIN_REMOTE_BATCH_SIZE = 16
MAX_REMOTE_BATCH_SIZE = 20


class RemoteEmbeddingBackend(EmbeddingBackendInterface):
    """
    Base for backends that call an embeddings endpoint over HTTP.

    Args:
        config: Endpoint, model and credentials
        batch_size: Texts per request, 16..20
        timeout: Request timeout in seconds
    """

    provider_name = "remote"

    def __init__(
        self,
        config: RemoteEmbeddingModelConfig,
        batch_size: int = REMOTE_BATCH_SIZE,
        timeout: float = 60.0,
    ):
        if not MIN_REMOTE_BATCH_SIZE <= batch_size <= MAX_REMOTE_BATCH_SIZE:
            raise ValueError(
                f"batch_size must be between {MIN_REMOTE_BATCH_SIZE} and {MAX_REMOTE_BATCH_SIZE}"
            )
        self.config = config
        self.batch_size = batch_size
        self.timeout = timeout

    def _check_preconditions(self) -> None:
        if not self.config.model_id:
            raise EmbeddingBackendError(
                "No embedding model configured", provider=self.provider_name
            )

    @abstractmethod
    async def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Send one request for ``texts``."""
        pass

    @trace_span
    async def embed(
        self, texts: List[str], on_progress: Optional[EmbedProgressCallback] = None
    ) -> List[List[float]]:
        if not texts:
            return []
        self._check_preconditions()

        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            batch_embeddings = await self._request_embeddings(batch)
            if len(batch_embeddings) != len(batch):
                raise EmbeddingBackendError(
                    f"Expected {len(batch)} embeddings, got {len(batch_embeddings)}",
                    provider=self.provider_name,
                )
            embeddings.extend(batch_embeddings)
            if on_progress:
                on_progress(len(embeddings), len(texts))
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        embeddings = await self.embed([text])
        return embeddings[0]

    async def detect_dimension(self) -> int:
        """Embed a probe string and report the vector length."""
        vector = await self.embed_query("test")
        logger.info(f"Detected embedding dimension {len(vector)} for {self.config.model_id}")
        return len(vector)

    def get_model_name(self) -> str:
        return self.config.model_id
