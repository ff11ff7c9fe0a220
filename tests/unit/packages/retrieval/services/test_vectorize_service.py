from typing import List
from unittest.mock import AsyncMock

import pytest

from common.core.exceptions import (
    ChunkingEmptyError,
    EmbeddingBackendError,
    ExtractionEmptyError,
    IndexingError,
)
from packages.retrieval.models.domain.chunk import Chapter
from packages.retrieval.models.domain.vectorize import (
    VectorConfig,
    VectorizeProgress,
    VectorizeStatus,
)
from packages.retrieval.repositories.memory_repository import InMemoryChunkRepository
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from packages.retrieval.services.chunking_service import ChunkingService
from packages.retrieval.services.events import VectorizeEvent, VectorizeEventBus
from packages.retrieval.services.vectorize_service import VectorizeService
from tests.fixtures.fake_backends import KeywordEmbeddingBackend
from tests.fixtures.factories import make_chunk

SMALL_CHUNKS = VectorConfig(chunk_size=12, chunk_min_size=5, chunk_overlap=0.0)


class RecordingBus(VectorizeEventBus):
    def __init__(self):
        super().__init__()
        self.events = []
        for event in VectorizeEvent:
            self.subscribe(event, lambda payload, event=event: self.events.append((event, payload)))

    def names(self) -> List[VectorizeEvent]:
        return [event for event, _ in self.events]


class FailingInsertRepository(InMemoryChunkRepository):
    def __init__(self, fail_on_call: int):
        super().__init__()
        self.fail_on_call = fail_on_call
        self.insert_calls = 0

    async def insert_chunks(self, chunks):
        self.insert_calls += 1
        if self.insert_calls == self.fail_on_call:
            raise RuntimeError("insert failed")
        await super().insert_chunks(chunks)


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def make_service(chunk_repository, document_state_repository, chunk_cache, bus):
    def factory(backend=None, chunk_repository=chunk_repository, extractor=None):
        return VectorizeService(
            chunking_service=ChunkingService(),
            embedding_backend=backend or KeywordEmbeddingBackend(),
            chunk_repository=chunk_repository,
            document_state_repository=document_state_repository,
            cache=chunk_cache,
            event_bus=bus,
            extractor=extractor,
            insert_batch_size=2,
        )

    return factory


class TestVectorize:
    @pytest.mark.asyncio
    async def test_chunks_embeds_and_indexes(
        self, make_service, sample_chapters, chunk_repository, document_state_repository, bus
    ):
        snapshots = []
        service = make_service()

        chunks = await service.vectorize(
            "book", sample_chapters, SMALL_CHUNKS, on_progress=lambda p: snapshots.append(p.model_copy())
        )

        assert len(chunks) == 5
        assert all(chunk.embedding and len(chunk.embedding) == 8 for chunk in chunks)
        stored = await chunk_repository.get_chunks("book")
        assert [c.id for c in stored] == [c.id for c in chunks]

        state = await document_state_repository.get_vectorize_state("book")
        assert state.is_vectorized is True
        assert state.vectorize_progress == 1.0

        statuses = [s.status for s in snapshots]
        assert statuses[0] == VectorizeStatus.CHUNKING
        assert statuses[-1] == VectorizeStatus.COMPLETED
        assert VectorizeStatus.EMBEDDING in statuses
        assert VectorizeStatus.INDEXING in statuses
        assert snapshots[-1].processed_chunks == snapshots[-1].total_chunks == 5

        assert bus.names()[0] == VectorizeEvent.STARTED
        assert bus.names()[-1] == VectorizeEvent.COMPLETED
        assert bus.events[-1][1] == {"document_id": "book", "chunks_count": 5}

    @pytest.mark.asyncio
    async def test_rerun_replaces_chunk_set(self, make_service, sample_chapters, chunk_repository):
        service = make_service()

        first = await service.vectorize("book", sample_chapters, SMALL_CHUNKS)
        second = await service.vectorize("book", sample_chapters, SMALL_CHUNKS)

        stored = await chunk_repository.get_chunks("book")
        assert len(stored) == len(first) == len(second)
        assert [c.content for c in stored] == [c.content for c in first]

    @pytest.mark.asyncio
    async def test_embeds_in_backend_sized_batches(self, make_service, sample_chapters):
        backend = KeywordEmbeddingBackend(batch_size=2)
        await make_service(backend).vectorize("book", sample_chapters, SMALL_CHUNKS)

        assert [len(batch) for batch in backend.embed_calls] == [2, 2, 1]
        assert backend.load_calls == 0

    @pytest.mark.asyncio
    async def test_local_backend_is_loaded_first(self, make_service, sample_chapters):
        backend = KeywordEmbeddingBackend(is_local=True)
        await make_service(backend).vectorize("book", sample_chapters, SMALL_CHUNKS)

        assert backend.load_calls == 1

    @pytest.mark.asyncio
    async def test_invalidates_cache(self, make_service, sample_chapters, chunk_cache):
        assert await chunk_cache.get_cached_chunks("book") == []

        await make_service().vectorize("book", sample_chapters, SMALL_CHUNKS)

        assert len(await chunk_cache.get_cached_chunks("book")) == 5

    @pytest.mark.asyncio
    async def test_vectorize_from_path_uses_extractor(self, make_service, sample_chapters):
        extractor = AsyncMock()
        extractor.extract_chapters = AsyncMock(return_value=sample_chapters)

        chunks = await make_service(extractor=extractor).vectorize_from_path(
            "book", "/books/moby.epub", SMALL_CHUNKS
        )

        extractor.extract_chapters.assert_awaited_once_with("/books/moby.epub")
        assert len(chunks) == 5

    @pytest.mark.asyncio
    async def test_vectorize_from_path_requires_extractor(self, make_service):
        with pytest.raises(ValueError):
            await make_service().vectorize_from_path("book", "/books/moby.epub")


class TestVectorizeFailures:
    async def _assert_failed(self, document_state_repository, bus, message_part: str):
        state = await document_state_repository.get_vectorize_state("book")
        assert state.is_vectorized is False
        assert state.vectorize_progress == 0.0
        event, payload = bus.events[-1]
        assert event == VectorizeEvent.ERROR
        assert message_part in payload["error"]

    @pytest.mark.asyncio
    async def test_empty_extraction(self, make_service, document_state_repository, bus):
        progress: List[VectorizeProgress] = []
        with pytest.raises(ExtractionEmptyError):
            await make_service().vectorize(
                "book", [Chapter(index=0, title="Blank", content="  \n ")],
                on_progress=progress.append,
            )

        assert progress[-1].status == VectorizeStatus.ERROR
        assert progress[-1].error == "No content could be extracted from the book."
        await self._assert_failed(document_state_repository, bus, "No content")

    @pytest.mark.asyncio
    async def test_no_chunks(self, make_service, document_state_repository, bus):
        with pytest.raises(ChunkingEmptyError):
            await make_service().vectorize(
                "book", [Chapter(index=0, title="Short", content="Too short.")]
            )

        await self._assert_failed(document_state_repository, bus, "No chunks were generated")

    @pytest.mark.asyncio
    async def test_backend_failure_reverts_state(
        self, make_service, sample_chapters, document_state_repository, chunk_repository, bus
    ):
        await make_service().vectorize("book", sample_chapters, SMALL_CHUNKS)
        backend = KeywordEmbeddingBackend()
        backend.embed = AsyncMock(
            side_effect=EmbeddingBackendError("Embedding API error (500): boom", status_code=500)
        )

        with pytest.raises(EmbeddingBackendError):
            await make_service(backend).vectorize("book", sample_chapters, SMALL_CHUNKS)

        await self._assert_failed(document_state_repository, bus, "(500)")
        # The previous chunk set is only replaced in the indexing phase
        assert len(await chunk_repository.get_chunks("book")) == 5

    @pytest.mark.asyncio
    async def test_mixed_dimensions_are_rejected(
        self, make_service, sample_chapters, document_state_repository, bus
    ):
        backend = KeywordEmbeddingBackend()
        backend.embed = AsyncMock(
            side_effect=lambda texts, on_progress=None: [[1.0, 0.0]] + [[1.0]] * (len(texts) - 1)
        )

        with pytest.raises(EmbeddingBackendError):
            await make_service(backend).vectorize("book", sample_chapters, SMALL_CHUNKS)

        await self._assert_failed(document_state_repository, bus, "dimension")

    @pytest.mark.asyncio
    async def test_persistence_failure_is_indexing_error(
        self, make_service, sample_chapters, document_state_repository, bus
    ):
        repository = AsyncMock()
        repository.insert_chunks = AsyncMock(side_effect=RuntimeError("disk full"))

        with pytest.raises(IndexingError) as exc_info:
            await make_service(chunk_repository=repository).vectorize(
                "book", sample_chapters, SMALL_CHUNKS
            )

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        repository.delete_chunks.assert_awaited_with("book")
        await self._assert_failed(document_state_repository, bus, "disk full")

    @pytest.mark.asyncio
    async def test_failed_insert_leaves_no_partial_index(
        self, make_service, sample_chapters, clock, document_state_repository, bus
    ):
        repository = FailingInsertRepository(fail_on_call=2)
        await repository.insert_chunks(
            [make_chunk("old", "an earlier chunk set", document_id="book")]
        )
        repository.insert_calls = 0
        cache = ChunkCacheService(repository, ttl_seconds=300, clock=clock)
        assert len(await cache.get_cached_chunks("book")) == 1

        service = make_service(chunk_repository=repository)
        service.cache = cache
        service.insert_batch_size = 1

        with pytest.raises(IndexingError) as exc_info:
            await service.vectorize("book", sample_chapters, SMALL_CHUNKS)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await repository.get_chunks("book") == []
        assert await cache.get_cached_chunks("book") == []
        await self._assert_failed(document_state_repository, bus, "insert failed")

