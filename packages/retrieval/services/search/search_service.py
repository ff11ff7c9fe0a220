"""Entry point for searching a document's passages."""

from typing import Dict, List, Optional

from common.core.telemetry import get_logger, trace_span
from common.providers.embeddings.interface import EmbeddingBackendInterface
from packages.retrieval.models.domain.search import (
    SearchMode,
    SearchQuery,
    SearchResult,
    SectionEntry,
)
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from packages.retrieval.services.search.strategies import (
    Bm25SearchStrategy,
    HybridSearchStrategy,
    SearchStrategyInterface,
    VectorSearchStrategy,
)

logger = get_logger(__name__)


class SearchService:
    """Dispatches a query to the strategy for its mode."""

    def __init__(
        self,
        cache: ChunkCacheService,
        embedding_backend: Optional[EmbeddingBackendInterface] = None,
    ):
        self.cache = cache
        vector = VectorSearchStrategy(cache, embedding_backend)
        bm25 = Bm25SearchStrategy(cache)
        self.strategies: Dict[SearchMode, SearchStrategyInterface] = {
            SearchMode.VECTOR: vector,
            SearchMode.BM25: bm25,
            SearchMode.HYBRID: HybridSearchStrategy(vector, bm25),
        }

    @trace_span
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        """
        Search one document's chunk set.

        Raises:
            EmbeddingServiceUnavailableError: Vector mode without a backend
            EmbeddingBackendError: Vector mode and the query embedding failed
        """
        results = await self.strategies[query.mode].search(query)
        logger.info(
            f"{query.mode.value} search on {query.document_id} returned {len(results)} results"
        )
        return results

    async def list_sections(self, document_id: str) -> List[SectionEntry]:
        """Table of contents as seen by the chunk set, in chunk order."""
        chunks = await self.cache.get_cached_chunks(document_id)
        seen = set()
        sections = []
        for chunk in chunks:
            if chunk.section_index in seen:
                continue
            seen.add(chunk.section_index)
            sections.append(
                SectionEntry(section_index=chunk.section_index, section_title=chunk.section_title)
            )
        return sections
