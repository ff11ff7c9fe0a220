"""Process-local repositories, used by default and in tests."""

from collections import defaultdict
from typing import Dict, List, Optional

from packages.retrieval.models.domain.chunk import Chunk
from packages.retrieval.models.domain.vectorize import DocumentVectorizeState
from packages.retrieval.repositories.interface import (
    ChunkRepositoryInterface,
    DocumentStateRepositoryInterface,
)


class InMemoryChunkRepository(ChunkRepositoryInterface):
    def __init__(self):
        self._chunks: Dict[str, List[Chunk]] = defaultdict(list)

    async def get_chunks(self, document_id: str) -> List[Chunk]:
        return list(self._chunks.get(document_id, []))

    async def insert_chunks(self, chunks: List[Chunk]) -> None:
        for chunk in chunks:
            self._chunks[chunk.document_id].append(chunk)

    async def delete_chunks(self, document_id: str) -> None:
        self._chunks.pop(document_id, None)


class InMemoryDocumentStateRepository(DocumentStateRepositoryInterface):
    def __init__(self):
        self._states: Dict[str, DocumentVectorizeState] = {}

    async def set_vectorize_state(
        self, document_id: str, is_vectorized: bool, progress: float
    ) -> None:
        self._states[document_id] = DocumentVectorizeState(
            document_id=document_id,
            is_vectorized=is_vectorized,
            vectorize_progress=progress,
        )

    async def get_vectorize_state(self, document_id: str) -> Optional[DocumentVectorizeState]:
        return self._states.get(document_id)
