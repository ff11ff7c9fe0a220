from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import trace_span
from common.repositories.base import BaseRepository
from packages.retrieval.models.database.document_state import DocumentStateEntity
from packages.retrieval.models.domain.vectorize import DocumentVectorizeState
from packages.retrieval.repositories.interface import DocumentStateRepositoryInterface


class SqlDocumentStateRepository(
    BaseRepository[DocumentStateEntity, DocumentVectorizeState],
    DocumentStateRepositoryInterface,
):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(DocumentStateEntity, DocumentVectorizeState, session_factory)

    @trace_span
    async def set_vectorize_state(
        self, document_id: str, is_vectorized: bool, progress: float
    ) -> None:
        async with self._get_session() as session:
            entity = await session.get(DocumentStateEntity, document_id)
            if entity is None:
                entity = DocumentStateEntity(document_id=document_id)
                session.add(entity)
            entity.is_vectorized = is_vectorized
            entity.vectorize_progress = progress

    @trace_span
    async def get_vectorize_state(self, document_id: str) -> Optional[DocumentVectorizeState]:
        async with self._get_session() as session:
            entity = await session.get(DocumentStateEntity, document_id)
            return self._entity_to_domain(entity) if entity else None
