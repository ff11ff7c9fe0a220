"""
Vectorization pipeline for one document.

chunking -> embedding -> indexing -> cache invalidation. Every run replaces
the document's chunk set wholesale. Runs for the same document must not
overlap; callers serialize them.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from common.core.config import settings
from common.core.exceptions import (
    ChunkingEmptyError,
    EmbeddingBackendError,
    ExtractionEmptyError,
    IndexingError,
)
from common.core.telemetry import get_logger, log_span_event, trace_span
from common.providers.embeddings.interface import EmbeddingBackendInterface
from packages.retrieval.models.domain.chunk import Chapter, Chunk
from packages.retrieval.models.domain.vectorize import (
    VectorConfig,
    VectorizeProgress,
    VectorizeStatus,
)
from packages.retrieval.providers.extraction.interface import ChapterExtractorInterface
from packages.retrieval.repositories.interface import (
    ChunkRepositoryInterface,
    DocumentStateRepositoryInterface,
)
from packages.retrieval.services.chunk_cache_service import ChunkCacheService
from packages.retrieval.services.chunking_service import ChunkingService
from packages.retrieval.services.events import VectorizeEvent, VectorizeEventBus

logger = get_logger(__name__)

ProgressCallback = Callable[[VectorizeProgress], None]


class VectorizeService:
    def __init__(
        self,
        chunking_service: ChunkingService,
        embedding_backend: EmbeddingBackendInterface,
        chunk_repository: ChunkRepositoryInterface,
        document_state_repository: DocumentStateRepositoryInterface,
        cache: ChunkCacheService,
        event_bus: Optional[VectorizeEventBus] = None,
        extractor: Optional[ChapterExtractorInterface] = None,
        insert_batch_size: Optional[int] = None,
    ):
        self.chunking_service = chunking_service
        self.embedding_backend = embedding_backend
        self.chunk_repository = chunk_repository
        self.document_state_repository = document_state_repository
        self.cache = cache
        self.event_bus = event_bus or VectorizeEventBus()
        self.extractor = extractor
        self.insert_batch_size = insert_batch_size or settings.insert_batch_size

    @trace_span
    async def vectorize_from_path(
        self,
        document_id: str,
        path: str,
        config: Optional[VectorConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[Chunk]:
        """Extract chapters with the configured extractor, then vectorize them."""
        if self.extractor is None:
            raise ValueError("No chapter extractor configured")
        chapters = await self.extractor.extract_chapters(path)
        return await self.vectorize(document_id, chapters, config, on_progress)

    @trace_span
    async def vectorize(
        self,
        document_id: str,
        chapters: List[Chapter],
        config: Optional[VectorConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[Chunk]:
        """
        Chunk, embed and index a document, replacing any previous chunk set.

        Args:
            document_id: Document to vectorize
            chapters: Extracted sections in reading order
            config: Chunk sizing; defaults come from settings
            on_progress: Called with the progress record after every change

        Returns:
            The persisted chunks, with embeddings

        Raises:
            ExtractionEmptyError: No text to work with
            ChunkingEmptyError: Text produced no chunks
            EmbeddingBackendError: The backend failed
            IndexingError: Persisting the chunks failed
        """
        config = config or VectorConfig(
            chunk_size=settings.chunk_target_tokens,
            chunk_min_size=settings.chunk_min_tokens,
            chunk_overlap=settings.chunk_overlap_ratio,
        )
        progress = VectorizeProgress(document_id=document_id)

        async def report(status: Optional[VectorizeStatus] = None) -> None:
            if status is not None:
                progress.status = status
            if on_progress:
                on_progress(progress)
            await self.event_bus.emit(
                VectorizeEvent.PROGRESS,
                {
                    "document_id": document_id,
                    "progress": progress.fraction,
                    "status": progress.status.value,
                },
            )

        await self.document_state_repository.set_vectorize_state(document_id, False, 0.0)
        await self.event_bus.emit(VectorizeEvent.STARTED, {"document_id": document_id})
        logger.info(f"Vectorizing {document_id}")

        try:
            if not chapters or not any(chapter.content.strip() for chapter in chapters):
                raise ExtractionEmptyError("No content could be extracted from the book.")

            await report(VectorizeStatus.CHUNKING)
            chunks = self.chunking_service.chunk_chapters(
                chapters, document_id, config.to_chunker_config()
            )
            if not chunks:
                raise ChunkingEmptyError("No chunks were generated from the book content.")
            progress.total_chunks = len(chunks)
            await asyncio.sleep(0)

            await report(VectorizeStatus.EMBEDDING)
            await self._embed_chunks(chunks, progress, on_progress, report)

            await report(VectorizeStatus.INDEXING)
            await self._index_chunks(document_id, chunks)
            self.cache.invalidate(document_id)

            await self.document_state_repository.set_vectorize_state(document_id, True, 1.0)
            await report(VectorizeStatus.COMPLETED)
            await self.event_bus.emit(
                VectorizeEvent.COMPLETED,
                {"document_id": document_id, "chunks_count": len(chunks)},
            )
            log_span_event(
                "Vectorization completed",
                {"document_id": document_id, "chunks_count": len(chunks)},
            )
            return chunks

        except Exception as e:
            logger.error(f"Vectorizing {document_id} failed: {e}")
            self.cache.invalidate(document_id)
            progress.error = str(e)
            await report(VectorizeStatus.ERROR)
            await self.event_bus.emit(
                VectorizeEvent.ERROR, {"document_id": document_id, "error": str(e)}
            )
            await self.document_state_repository.set_vectorize_state(document_id, False, 0.0)
            raise

    async def _embed_chunks(
        self,
        chunks: List[Chunk],
        progress: VectorizeProgress,
        on_progress: Optional[ProgressCallback],
        report: Callable[[], Awaitable[None]],
    ) -> None:
        backend = self.embedding_backend
        if backend.is_local:
            await backend.load()

        batch_size = backend.batch_size
        dimension: Optional[int] = None

        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]

            def on_item_progress(done: int, total: int, offset: int = start) -> None:
                progress.processed_chunks = offset + done
                if on_progress:
                    on_progress(progress)

            embeddings = await backend.embed(
                [chunk.content for chunk in batch], on_progress=on_item_progress
            )
            if len(embeddings) != len(batch):
                raise EmbeddingBackendError(
                    f"Expected {len(batch)} embeddings, got {len(embeddings)}"
                )

            for chunk, embedding in zip(batch, embeddings):
                if dimension is None:
                    dimension = len(embedding)
                elif len(embedding) != dimension:
                    raise EmbeddingBackendError(
                        f"Embedding dimension changed from {dimension} to {len(embedding)}"
                    )
                chunk.embedding = embedding

            progress.processed_chunks = start + len(batch)
            await report()
            await asyncio.sleep(0)

    async def _index_chunks(self, document_id: str, chunks: List[Chunk]) -> None:
        try:
            await self.chunk_repository.delete_chunks(document_id)
            for start in range(0, len(chunks), self.insert_batch_size):
                await self.chunk_repository.insert_chunks(
                    chunks[start : start + self.insert_batch_size]
                )
                await asyncio.sleep(0)
        except Exception as e:
            try:
                await self.chunk_repository.delete_chunks(document_id)
            except Exception as cleanup_error:
                logger.warning(
                    f"Failed to remove partial index for {document_id}: {cleanup_error}"
                )
            raise IndexingError(f"Failed to index chunks for {document_id}: {e}") from e
