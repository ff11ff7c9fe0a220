"""
Application state of the retrieval engine.

The long-lived pieces (the embedding worker, the caches, the event bus) are
owned by one ``RetrievalContext`` that callers create once and close on
shutdown.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from common.core.config import Settings, settings as default_settings
from common.core.telemetry import get_logger
from common.db.session import create_engine, create_session_factory, create_tables
from common.providers.embeddings.factory import get_embedding_backend
from common.providers.embeddings.interface import EmbeddingBackendInterface
from common.providers.embeddings.local_provider import LocalEmbeddingBackend
from common.providers.embeddings.worker import EmbeddingWorkerHandle
from packages.retrieval.models.domain.vectorize import ChunkerConfig
from packages.retrieval.providers.extraction.interface import ChapterExtractorInterface
from packages.retrieval.repositories.chunk_repository import SqlChunkRepository
from packages.retrieval.repositories.document_state_repository import (
    SqlDocumentStateRepository,
)
from packages.retrieval.repositories.interface import (
    ChunkRepositoryInterface,
    DocumentStateRepositoryInterface,
)
from packages.retrieval.repositories.memory_repository import (
    InMemoryChunkRepository,
    InMemoryDocumentStateRepository,
)
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from packages.retrieval.services.chunking_service import ChunkingService
from packages.retrieval.services.events import VectorizeEventBus
from packages.retrieval.services.search.search_service import SearchService
from packages.retrieval.services.vectorize_service import VectorizeService

logger = get_logger(__name__)


@dataclass
class RetrievalContext:
    settings: Settings
    chunk_repository: ChunkRepositoryInterface
    document_state_repository: DocumentStateRepositoryInterface
    cache: ChunkCacheService
    embedding_backend: EmbeddingBackendInterface
    event_bus: VectorizeEventBus
    chunking_service: ChunkingService
    search_service: SearchService
    vectorize_service: VectorizeService
    worker_handle: Optional[EmbeddingWorkerHandle] = None
    engine: Optional[AsyncEngine] = None

    async def aclose(self) -> None:
        """Dispose the embedding backend, stop the worker and the engine."""
        await self.embedding_backend.dispose()
        if self.worker_handle is not None:
            await self.worker_handle.close()
        if self.engine is not None:
            await self.engine.dispose()
        self.cache.clear()
        logger.info("Retrieval context closed")


async def create_retrieval_context(
    settings: Optional[Settings] = None,
    embedding_backend: Optional[EmbeddingBackendInterface] = None,
    extractor: Optional[ChapterExtractorInterface] = None,
    use_database: bool = False,
) -> RetrievalContext:
    """
    Wire the retrieval services.

    Args:
        settings: Configuration, defaults to the process settings
        embedding_backend: Overrides the backend chosen by ``settings.embedding_mode``
        extractor: Chapter extractor used by ``vectorize_from_path``
        use_database: Persist through SQLAlchemy instead of in-memory repositories
    """
    settings = settings or default_settings

    engine = None
    if use_database:
        engine = create_engine(settings.database_url)
        await create_tables(engine)
        session_factory = create_session_factory(engine)
        chunk_repository = SqlChunkRepository(session_factory)
        document_state_repository = SqlDocumentStateRepository(session_factory)
    else:
        chunk_repository = InMemoryChunkRepository()
        document_state_repository = InMemoryDocumentStateRepository()

    worker_handle = None
    if embedding_backend is None:
        embedding_backend = get_embedding_backend(settings)
    if isinstance(embedding_backend, LocalEmbeddingBackend):
        worker_handle = embedding_backend.worker_handle

    cache = ChunkCacheService(chunk_repository, ttl_seconds=settings.cache_ttl_seconds)
    event_bus = VectorizeEventBus()
    chunking_service = ChunkingService(
        ChunkerConfig(
            target_tokens=settings.chunk_target_tokens,
            min_tokens=settings.chunk_min_tokens,
            overlap_ratio=settings.chunk_overlap_ratio,
        )
    )

    return RetrievalContext(
        settings=settings,
        chunk_repository=chunk_repository,
        document_state_repository=document_state_repository,
        cache=cache,
        embedding_backend=embedding_backend,
        event_bus=event_bus,
        chunking_service=chunking_service,
        search_service=SearchService(cache, embedding_backend),
        vectorize_service=VectorizeService(
            chunking_service=chunking_service,
            embedding_backend=embedding_backend,
            chunk_repository=chunk_repository,
            document_state_repository=document_state_repository,
            cache=cache,
            event_bus=event_bus,
            extractor=extractor,
            insert_batch_size=settings.insert_batch_size,
        ),
        worker_handle=worker_handle,
        engine=engine,
    )
