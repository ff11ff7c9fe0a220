"""Search strategies over one document's cached chunk set."""

import asyncio
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from common.core.exceptions import EmbeddingError, EmbeddingServiceUnavailableError
from common.core.telemetry import get_logger, trace_span
from common.providers.embeddings.interface import EmbeddingBackendInterface
from packages.retrieval.models.domain.search import MatchType, SearchQuery, SearchResult
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from packages.retrieval.services.search.lexical import (
    bm25_score,
    find_highlight_snippets,
    tokenize,
)

logger = get_logger(__name__)

RRF_K = 60


def cosine_similarity(a: List[float], b: List[float]) -> float:
    """Cosine of two vectors; 0 when they are empty, mismatched or zero."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def reciprocal_rank_fusion(
    vector_results: List[SearchResult],
    bm25_results: List[SearchResult],
    k: int = RRF_K,
) -> List[SearchResult]:
    """
    Combine two ranked lists with Reciprocal Rank Fusion.

    Each list contributes ``1 / (k + rank + 1)`` for a 0-based rank. The chunk
    record from the vector list wins when both lists hold it; highlights come
    from the BM25 list.
    """
    fused: Dict[str, dict] = {}

    for rank, result in enumerate(vector_results):
        entry = fused.setdefault(result.chunk.id, {"result": result, "score": 0.0})
        entry["score"] += 1.0 / (k + rank + 1)

    for rank, result in enumerate(bm25_results):
        entry = fused.setdefault(result.chunk.id, {"result": result, "score": 0.0})
        entry["score"] += 1.0 / (k + rank + 1)
        entry["highlights"] = result.highlights

    ranked = sorted(fused.values(), key=lambda item: item["score"], reverse=True)
    return [
        SearchResult(
            chunk=item["result"].chunk,
            score=item["score"],
            match_type=MatchType.HYBRID,
            highlights=item.get("highlights", item["result"].highlights),
        )
        for item in ranked
    ]


class SearchStrategyInterface(ABC):
    @abstractmethod
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        """Rank the document's chunks for the query."""
        pass


class VectorSearchStrategy(SearchStrategyInterface):
    def __init__(
        self,
        cache: ChunkCacheService,
        embedding_backend: Optional[EmbeddingBackendInterface] = None,
    ):
        self.cache = cache
        self.embedding_backend = embedding_backend

    @trace_span
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        if self.embedding_backend is None:
            raise EmbeddingServiceUnavailableError("No embedding backend configured")

        query_embedding = await self.embedding_backend.embed_query(query.query)
        chunks = await self.cache.get_cached_chunks(query.document_id)

        results = []
        for chunk in chunks:
            if not chunk.embedding or len(chunk.embedding) != len(query_embedding):
                continue
            score = cosine_similarity(query_embedding, chunk.embedding)
            if score >= query.threshold:
                results.append(
                    SearchResult(chunk=chunk, score=score, match_type=MatchType.VECTOR)
                )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[: query.top_k]


class Bm25SearchStrategy(SearchStrategyInterface):
    def __init__(self, cache: ChunkCacheService):
        self.cache = cache

    @trace_span
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        terms = tokenize(query.query)
        if not terms:
            return []

        chunks = await self.cache.get_cached_chunks(query.document_id)
        if not chunks:
            return []
        index = self.cache.get_or_build_lexical_index(chunks, query.document_id)

        results = []
        for position, chunk in enumerate(chunks):
            if position >= index.size:
                break
            score = bm25_score(terms, index, position)
            if score > 0:
                results.append(
                    SearchResult(
                        chunk=chunk,
                        score=score,
                        match_type=MatchType.BM25,
                        highlights=find_highlight_snippets(chunk.content, terms),
                    )
                )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[: query.top_k]


class HybridSearchStrategy(SearchStrategyInterface):
    """Vector and BM25 fused with RRF, degrading to whichever side has results."""

    def __init__(self, vector: VectorSearchStrategy, bm25: Bm25SearchStrategy):
        self.vector = vector
        self.bm25 = bm25

    @trace_span
    async def search(self, query: SearchQuery) -> List[SearchResult]:
        widened = query.model_copy(update={"top_k": query.top_k * 2})

        async def run_vector_search() -> List[SearchResult]:
            try:
                return await self.vector.search(widened)
            except EmbeddingError as e:
                logger.warning(f"Vector search failed, using BM25 only: {e}")
                return []

        vector_results, bm25_results = await asyncio.gather(
            run_vector_search(), self.bm25.search(widened)
        )

        if not vector_results:
            return bm25_results[: query.top_k]
        if not bm25_results:
            return vector_results[: query.top_k]
        return reciprocal_rank_fusion(vector_results, bm25_results)[: query.top_k]
