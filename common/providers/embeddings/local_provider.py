"""Built-in embedding backend running inside the worker process."""

from typing import List, Optional

from common.core.exceptions import EmbeddingBackendError
from common.core.telemetry import get_logger, trace_span
from common.providers.embeddings.builtin_models import get_builtin_model
from common.providers.embeddings.interface import (
    EmbeddingBackendInterface,
    EmbedProgressCallback,
    LoadProgressCallback,
)
from common.providers.embeddings.provider_enum import EmbeddingBackendType
from common.providers.embeddings.worker import EmbeddingWorkerHandle

logger = get_logger(__name__)

LOCAL_BATCH_SIZE = 16


class LocalEmbeddingBackend(EmbeddingBackendInterface):
    """Embeds through a built-in model hosted by an ``EmbeddingWorkerHandle``."""

    batch_size = LOCAL_BATCH_SIZE

    def __init__(self, worker_handle: EmbeddingWorkerHandle, model_id: str):
        # Fail fast on unknown ids
        self.model = get_builtin_model(model_id)
        self.worker_handle = worker_handle

    @property
    def is_local(self) -> bool:
        return True

    @property
    def dimension(self) -> int:
        return self.model.dimension

    @trace_span
    async def load(
        self,
        model_id: Optional[str] = None,
        on_progress: Optional[LoadProgressCallback] = None,
    ) -> None:
        if model_id is not None and model_id != self.model.id:
            self.model = get_builtin_model(model_id)
        await self.worker_handle.load(self.model.id, self.model.hf_model_id, on_progress)

    async def _ensure_loaded(self) -> None:
        if self.worker_handle.active_model_id != self.model.id:
            await self.load()

    @trace_span
    async def embed(
        self, texts: List[str], on_progress: Optional[EmbedProgressCallback] = None
    ) -> List[List[float]]:
        if not texts:
            return []
        await self._ensure_loaded()
        embeddings = await self.worker_handle.embed(texts, on_progress)
        if len(embeddings) != len(texts):
            raise EmbeddingBackendError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}",
                provider=EmbeddingBackendType.LOCAL,
            )
        return embeddings

    async def embed_query(self, text: str) -> List[float]:
        embeddings = await self.embed([text])
        return embeddings[0]

    async def dispose(self) -> None:
        await self.worker_handle.dispose()

    def get_model_name(self) -> str:
        return self.model.id
