import math
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from common.core.exceptions import EmbeddingBackendError, EmbeddingServiceUnavailableError
from packages.retrieval.models.domain.search import MatchType, SearchMode, SearchQuery, SearchResult
from packages.retrieval.services.search.strategies import (
    Bm25SearchStrategy,
    HybridSearchStrategy,
    VectorSearchStrategy,
    cosine_similarity,
    reciprocal_rank_fusion,
)
from tests.fixtures.factories import make_chunk


def query(text: str, mode: SearchMode, top_k: int = 5, threshold: float = 0.3) -> SearchQuery:
    return SearchQuery(query=text, document_id="doc", mode=mode, top_k=top_k, threshold=threshold)


def backend_returning(vector):
    backend = AsyncMock()
    backend.embed_query = AsyncMock(return_value=vector)
    return backend


class TestCosineSimilarity:
    def test_identical_and_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    @pytest.mark.parametrize(
        "a, b",
        [([], []), ([1.0, 2.0], [1.0]), ([0.0, 0.0], [1.0, 1.0]), ([1.0], [])],
    )
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestVectorSearchStrategy:
    @pytest.mark.asyncio
    async def test_threshold_and_top_k(self, chunk_repository, chunk_cache):
        await chunk_repository.insert_chunks(
            [
                make_chunk("c1", "one", embedding=[1.0, 0.0]),
                make_chunk("c2", "two", embedding=[0.0, 1.0]),
                make_chunk("c3", "three", embedding=[0.7, 0.7]),
            ]
        )
        strategy = VectorSearchStrategy(chunk_cache, backend_returning([1.0, 0.0]))

        results = await strategy.search(query("q", SearchMode.VECTOR, top_k=2))

        assert [r.chunk.id for r in results] == ["c1", "c3"]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.7 / math.sqrt(0.98))
        assert all(r.match_type == MatchType.VECTOR for r in results)

    @pytest.mark.asyncio
    async def test_skips_chunks_without_matching_embedding(self, chunk_repository, chunk_cache):
        await chunk_repository.insert_chunks(
            [
                make_chunk("c1", "no vector"),
                make_chunk("c2", "wrong size", embedding=[1.0, 0.0, 0.0]),
                make_chunk("c3", "ok", embedding=[1.0, 0.1]),
            ]
        )
        strategy = VectorSearchStrategy(chunk_cache, backend_returning([1.0, 0.0]))

        results = await strategy.search(query("q", SearchMode.VECTOR))

        assert [r.chunk.id for r in results] == ["c3"]

    @pytest.mark.asyncio
    async def test_zero_threshold_is_honored(self, chunk_repository, chunk_cache):
        await chunk_repository.insert_chunks([make_chunk("c1", "x", embedding=[0.0, 1.0])])
        strategy = VectorSearchStrategy(chunk_cache, backend_returning([1.0, 0.0]))

        results = await strategy.search(query("q", SearchMode.VECTOR, threshold=0.0))

        assert [r.score for r in results] == [0.0]

    @pytest.mark.asyncio
    async def test_requires_backend(self, chunk_cache):
        with pytest.raises(EmbeddingServiceUnavailableError):
            await VectorSearchStrategy(chunk_cache).search(query("q", SearchMode.VECTOR))


class TestBm25SearchStrategy:
    @pytest.mark.asyncio
    async def test_orders_by_term_presence(self, chunk_repository, chunk_cache):
        await chunk_repository.insert_chunks(
            [
                make_chunk("c1", "the whale swam in the sea"),
                make_chunk("c2", "the ship sailed"),
                make_chunk("c3", "whale whale whale hunting"),
            ]
        )
        results = await Bm25SearchStrategy(chunk_cache).search(query("Whale!", SearchMode.BM25))

        assert [r.chunk.id for r in results] == ["c3", "c1"]
        assert all(r.match_type == MatchType.BM25 for r in results)
        assert results[1].highlights == ["the whale swam in the sea"]

    @pytest.mark.asyncio
    async def test_empty_query_or_document(self, chunk_repository, chunk_cache):
        strategy = Bm25SearchStrategy(chunk_cache)
        assert await strategy.search(query("whale", SearchMode.BM25)) == []

        await chunk_repository.insert_chunks([make_chunk("c1", "whale")])
        chunk_cache.invalidate("doc")
        assert await strategy.search(query("?!", SearchMode.BM25)) == []


class TestReciprocalRankFusion:
    def test_chunk_in_both_lists_ranks_first(self):
        a, b, c = make_chunk("a", "A"), make_chunk("b", "B"), make_chunk("c", "C")
        vector = [
            SearchResult(chunk=a, score=0.9, match_type=MatchType.VECTOR),
            SearchResult(chunk=b, score=0.8, match_type=MatchType.VECTOR),
        ]
        bm25 = [
            SearchResult(chunk=b, score=5.0, match_type=MatchType.BM25, highlights=["B"]),
            SearchResult(chunk=c, score=4.0, match_type=MatchType.BM25, highlights=["C"]),
        ]

        fused = reciprocal_rank_fusion(vector, bm25)

        assert [r.chunk.id for r in fused] == ["b", "a", "c"]
        assert fused[0].score == pytest.approx(1 / 62 + 1 / 61)
        assert fused[1].score == pytest.approx(1 / 61)
        assert fused[2].score == pytest.approx(1 / 62)
        assert all(r.match_type == MatchType.HYBRID for r in fused)
        assert fused[0].highlights == ["B"]
        assert fused[1].highlights is None

    def test_vector_chunk_record_is_preferred(self):
        vector_copy = make_chunk("b", "B", embedding=[1.0])
        lexical_copy = make_chunk("b", "B")
        fused = reciprocal_rank_fusion(
            [SearchResult(chunk=vector_copy, score=1.0, match_type=MatchType.VECTOR)],
            [SearchResult(chunk=lexical_copy, score=1.0, match_type=MatchType.BM25)],
        )
        assert fused[0].chunk.embedding == [1.0]


class TestHybridSearchStrategy:
    @pytest_asyncio.fixture
    async def populated(self, chunk_repository):
        await chunk_repository.insert_chunks(
            [
                make_chunk("c1", "the whale swam in the sea", embedding=[1.0, 0.0]),
                make_chunk("c2", "the ship sailed", embedding=[0.0, 1.0]),
                make_chunk("c3", "whale whale whale hunting", embedding=[0.9, 0.1]),
            ]
        )

    @pytest.mark.asyncio
    async def test_backend_failure_degrades_to_bm25(self, populated, chunk_cache):
        backend = AsyncMock()
        backend.embed_query = AsyncMock(side_effect=EmbeddingBackendError("down"))
        bm25 = Bm25SearchStrategy(chunk_cache)
        hybrid = HybridSearchStrategy(VectorSearchStrategy(chunk_cache, backend), bm25)

        results = await hybrid.search(query("whale", SearchMode.HYBRID, top_k=1))
        expected = await bm25.search(query("whale", SearchMode.BM25, top_k=1))

        assert [r.chunk.id for r in results] == [r.chunk.id for r in expected] == ["c3"]
        assert results[0].match_type == MatchType.BM25

    @pytest.mark.asyncio
    async def test_missing_backend_degrades_to_bm25(self, populated, chunk_cache):
        bm25 = Bm25SearchStrategy(chunk_cache)
        hybrid = HybridSearchStrategy(VectorSearchStrategy(chunk_cache), bm25)

        results = await hybrid.search(query("whale", SearchMode.HYBRID))

        assert [r.chunk.id for r in results] == ["c3", "c1"]

    @pytest.mark.asyncio
    async def test_no_lexical_hits_returns_vector_results(self, populated, chunk_cache):
        vector = VectorSearchStrategy(chunk_cache, backend_returning([0.0, 1.0]))
        hybrid = HybridSearchStrategy(vector, Bm25SearchStrategy(chunk_cache))

        results = await hybrid.search(query("nothing matches", SearchMode.HYBRID))

        assert [r.chunk.id for r in results] == ["c2"]
        assert results[0].match_type == MatchType.VECTOR

    @pytest.mark.asyncio
    async def test_fuses_both_lists(self, populated, chunk_cache):
        vector = VectorSearchStrategy(chunk_cache, backend_returning([1.0, 0.0]))
        hybrid = HybridSearchStrategy(vector, Bm25SearchStrategy(chunk_cache))

        results = await hybrid.search(query("whale", SearchMode.HYBRID, top_k=2))

        # c1 is first in vector and second in BM25, c3 is the reverse
        assert {r.chunk.id for r in results} == {"c1", "c3"}
        assert all(r.match_type == MatchType.HYBRID for r in results)
        assert all(r.highlights for r in results)
