"""
Per-document cache of chunk sets and their lexical indexes.

Reads are lock-free. ``invalidate`` must be called after every write to the
chunk repository; a write that skips it becomes visible only once the TTL
runs out.
"""

import time
from typing import Callable, List, Optional

from common.core.config import settings
from common.core.telemetry import get_logger, trace_span
from common.providers.caching import TimedCache
from packages.retrieval.models.domain.chunk import Chunk
from packages.retrieval.models.domain.search import LexicalIndex
from packages.retrieval.repositories.interface import ChunkRepositoryInterface
from packages.retrieval.services.search.lexical import build_lexical_index

logger = get_logger(__name__)


class ChunkCacheService:
    def __init__(
        self,
        chunk_repository: ChunkRepositoryInterface,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        ttl = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self.chunk_repository = chunk_repository
        self._chunks: TimedCache[str, List[Chunk]] = TimedCache(ttl, clock)
        self._lexical: TimedCache[str, LexicalIndex] = TimedCache(ttl, clock)

    @trace_span
    async def get_cached_chunks(self, document_id: str) -> List[Chunk]:
        """Chunks of a document, read through from the repository on a miss."""
        chunks = self._chunks.get(document_id)
        if chunks is not None:
            return chunks

        chunks = await self.chunk_repository.get_chunks(document_id)
        self._chunks.set(document_id, chunks)
        self._lexical.invalidate(document_id)
        logger.debug(f"Cached {len(chunks)} chunks for {document_id}")
        return chunks

    def get_or_build_lexical_index(self, chunks: List[Chunk], document_id: str) -> LexicalIndex:
        index = self._lexical.get(document_id)
        if index is not None and index.chunk_ids == [chunk.id for chunk in chunks]:
            return index

        index = build_lexical_index(chunks, document_id)
        self._lexical.set(document_id, index)
        return index

    def invalidate(self, document_id: str) -> None:
        self._chunks.invalidate(document_id)
        self._lexical.invalidate(document_id)
        logger.info(f"Invalidated chunk cache for {document_id}")

    def clear(self) -> None:
        self._chunks.clear()
        self._lexical.clear()
