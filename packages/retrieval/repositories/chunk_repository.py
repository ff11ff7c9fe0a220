from typing import List

from sqlalchemy import delete, func
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from common.core.telemetry import trace_span
from common.repositories.base import BaseRepository
from packages.retrieval.models.database.chunk import ChunkEntity
from packages.retrieval.models.domain.chunk import Chunk
from packages.retrieval.repositories.interface import ChunkRepositoryInterface


class SqlChunkRepository(BaseRepository[ChunkEntity, Chunk], ChunkRepositoryInterface):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(ChunkEntity, Chunk, session_factory)

    @trace_span
    async def get_chunks(self, document_id: str) -> List[Chunk]:
        """Get all chunks for a document in insertion order."""
        async with self._get_session() as session:
            query = (
                select(ChunkEntity)
                .where(ChunkEntity.document_id == document_id)
                .order_by(ChunkEntity.position)
            )
            result = await session.execute(query)
            entities = result.scalars().all()
            return self._entities_to_domain(entities)

    @trace_span
    async def insert_chunks(self, chunks: List[Chunk]) -> None:
        if not chunks:
            return
        async with self._get_session() as session:
            next_positions = {}
            for chunk in chunks:
                if chunk.document_id not in next_positions:
                    result = await session.execute(
                        select(func.coalesce(func.max(ChunkEntity.position) + 1, 0)).where(
                            ChunkEntity.document_id == chunk.document_id
                        )
                    )
                    next_positions[chunk.document_id] = result.scalar_one()
                position = next_positions[chunk.document_id]
                next_positions[chunk.document_id] = position + 1
                session.add(ChunkEntity(**chunk.model_dump(), position=position))

    @trace_span
    async def delete_chunks(self, document_id: str) -> None:
        async with self._get_session() as session:
            await session.execute(
                delete(ChunkEntity).where(ChunkEntity.document_id == document_id)
            )
