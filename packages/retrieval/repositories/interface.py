from abc import ABC, abstractmethod
from typing import List, Optional

from packages.retrieval.models.domain.chunk import Chunk
from packages.retrieval.models.domain.vectorize import DocumentVectorizeState


class ChunkRepositoryInterface(ABC):
    """Persistence of a document's chunk set."""

    @abstractmethod
    async def get_chunks(self, document_id: str) -> List[Chunk]:
        """Get every chunk of a document in insertion order."""
        pass

    @abstractmethod
    async def insert_chunks(self, chunks: List[Chunk]) -> None:
        """Append chunks."""
        pass

    @abstractmethod
    async def delete_chunks(self, document_id: str) -> None:
        """Delete every chunk of a document."""
        pass


class DocumentStateRepositoryInterface(ABC):
    """Persistence of a document's vectorized flag and progress."""

    @abstractmethod
    async def set_vectorize_state(
        self, document_id: str, is_vectorized: bool, progress: float
    ) -> None:
        pass

    @abstractmethod
    async def get_vectorize_state(self, document_id: str) -> Optional[DocumentVectorizeState]:
        pass
