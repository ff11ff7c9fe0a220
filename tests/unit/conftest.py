import pytest

from packages.retrieval.models.domain.chunk import Chapter
from packages.retrieval.repositories.memory_repository import (
    InMemoryChunkRepository,
    InMemoryDocumentStateRepository,
)
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from tests.fixtures.fake_backends import KeywordEmbeddingBackend
from tests.fixtures.factories import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def chunk_repository():
    return InMemoryChunkRepository()


@pytest.fixture
def document_state_repository():
    return InMemoryDocumentStateRepository()


@pytest.fixture
def chunk_cache(chunk_repository, clock):
    return ChunkCacheService(chunk_repository, ttl_seconds=300, clock=clock)


@pytest.fixture
def keyword_backend():
    return KeywordEmbeddingBackend()


@pytest.fixture
def sample_chapters():
    """Two chapters whose paragraphs are ~10 tokens each."""
    return [
        Chapter(
            index=0,
            title="Loomings",
            content=(
                "The whale surfaced beside the ship.\n\n"
                "The captain watched the sea for hours.\n\n"
                "A second whale followed the first one."
            ),
            location="ch0",
        ),
        Chapter(
            index=1,
            title="The Garden",
            content=(
                "Roses grew along the old garden wall.\n\n"
                "Peace settled over the garden at dusk."
            ),
            location="ch1",
        ),
    ]
