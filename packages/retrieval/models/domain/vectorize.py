"""Domain models for the vectorization pipeline and its configuration."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class VectorizeStatus(str, Enum):
    """Phase of a vectorization run."""

    IDLE = "idle"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    COMPLETED = "completed"
    ERROR = "error"


class VectorizeProgress(BaseModel):
    """Progress of one vectorization run. Mutated in place through the phases."""

    document_id: str
    total_chunks: int = 0
    processed_chunks: int = 0
    status: VectorizeStatus = VectorizeStatus.IDLE
    error: Optional[str] = None

    @property
    def fraction(self) -> float:
        if self.total_chunks <= 0:
            return 0.0
        return self.processed_chunks / self.total_chunks


class ChunkerConfig(BaseModel):
    """Chunk sizing, in estimated tokens."""

    target_tokens: int = 300
    min_tokens: int = 50
    overlap_ratio: float = 0.2


class EmbeddingProvider(str, Enum):
    """Who computes an embedding model's vectors."""

    OPENAI = "openai"
    OLLAMA = "ollama"
    LOCAL = "local"


class EmbeddingModel(BaseModel):
    """Embedding model description."""

    id: str
    name: str
    dimensions: int
    max_tokens: int = 512
    provider: EmbeddingProvider = EmbeddingProvider.LOCAL


class VectorConfig(BaseModel):
    """Configuration of a vectorization run.

    ``hybrid_alpha`` is validated and carried along; rank fusion ignores it.
    """

    model: Optional[EmbeddingModel] = None
    chunk_size: int = 300
    chunk_min_size: int = 50
    chunk_overlap: float = 0.2
    hybrid_alpha: float = Field(default=0.7, ge=0.0, le=1.0)

    def to_chunker_config(self) -> ChunkerConfig:
        return ChunkerConfig(
            target_tokens=self.chunk_size,
            min_tokens=self.chunk_min_size,
            overlap_ratio=self.chunk_overlap,
        )


class DocumentVectorizeState(BaseModel):
    """Whether a document currently has a live chunk index."""

    document_id: str
    is_vectorized: bool = False
    vectorize_progress: float = 0.0

    class Config:
        from_attributes = True
