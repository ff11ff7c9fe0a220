"""
Worker-isolated local embedding inference.

Model inference is CPU bound, so it runs in a separate process started with
the ``spawn`` method. The parent owns an ``EmbeddingWorkerHandle`` which talks
to ``run_embedding_worker`` through a duplex pipe using the messages in
``worker_protocol``. Every request carries a ``request_id``; a reader task on
the parent side resolves the matching future and forwards progress messages to
the caller's callback.
"""

import asyncio
import multiprocessing
from multiprocessing.connection import Connection
from typing import Callable, Dict, List, Optional, Protocol
from uuid import uuid4

from pydantic import BaseModel, ValidationError as PydanticValidationError

from common.core.exceptions import EmbeddingBackendError
from common.core.telemetry import get_logger
from common.providers.embeddings.interface import (
    EmbedProgressCallback,
    LoadProgressCallback,
)
from common.providers.embeddings.worker_protocol import (
    DisposeDone,
    DisposeRequest,
    EmbedDone,
    EmbedError,
    EmbedProgress,
    EmbedRequest,
    LoadDone,
    LoadError,
    LoadProgress,
    LoadRequest,
    ShutdownRequest,
    worker_request_adapter,
    worker_response_adapter,
)

logger = get_logger(__name__)

PROGRESS_EVERY = 2


class EmbeddingPipeline(Protocol):
    def embed(self, text: str) -> List[float]: ...

    def close(self) -> None: ...


# (hf_model_id, on_progress) -> pipeline; must be importable by name for spawn
PipelineFactory = Callable[[str, Callable[[float], None]], EmbeddingPipeline]


class SentenceTransformerPipeline:
    """Feature extraction with mean pooling and L2 normalization."""

    def __init__(self, hf_model_id: str):
        # Imported in the worker only, the parent never loads torch
        from sentence_transformers import SentenceTransformer

        self.hf_model_id = hf_model_id
        self._model = SentenceTransformer(hf_model_id, device="cpu")

    def embed(self, text: str) -> List[float]:
        vector = self._model.encode(text, normalize_embeddings=True)
        return [float(x) for x in vector]

    def close(self) -> None:
        self._model = None


def load_sentence_transformer(
    hf_model_id: str, on_progress: Callable[[float], None]
) -> SentenceTransformerPipeline:
    on_progress(0.0)
    pipeline = SentenceTransformerPipeline(hf_model_id)
    on_progress(100.0)
    return pipeline


# =============================================================================
# Worker side
# =============================================================================


class _WorkerState:
    def __init__(self, conn: Connection, pipeline_factory: PipelineFactory):
        self.conn = conn
        self.pipeline_factory = pipeline_factory
        self.pipeline: Optional[EmbeddingPipeline] = None
        self.model_id: Optional[str] = None

    def send(self, message: BaseModel) -> None:
        self.conn.send(message.model_dump())

    def dispose_pipeline(self) -> None:
        if self.pipeline is not None:
            self.pipeline.close()
        self.pipeline = None
        self.model_id = None

    def handle_load(self, request: LoadRequest) -> None:
        if self.pipeline is not None and self.model_id == request.model_id:
            self.send(LoadDone(request_id=request.request_id, model_id=request.model_id))
            return

        self.dispose_pipeline()

        def report(progress: float) -> None:
            self.send(LoadProgress(request_id=request.request_id, progress=progress))

        try:
            self.pipeline = self.pipeline_factory(request.hf_model_id, report)
            self.model_id = request.model_id
        except Exception as e:
            self.dispose_pipeline()
            self.send(LoadError(request_id=request.request_id, error=str(e)))
            return

        self.send(LoadDone(request_id=request.request_id, model_id=request.model_id))

    def handle_embed(self, request: EmbedRequest) -> None:
        if self.pipeline is None:
            self.send(EmbedError(request_id=request.request_id, error="Model not loaded"))
            return

        total = len(request.texts)
        embeddings: List[List[float]] = []
        try:
            for text in request.texts:
                embeddings.append(self.pipeline.embed(text))
                done = len(embeddings)
                if done % PROGRESS_EVERY == 0 or done == total:
                    self.send(
                        EmbedProgress(request_id=request.request_id, done=done, total=total)
                    )
        except Exception as e:
            self.send(EmbedError(request_id=request.request_id, error=str(e)))
            return

        self.send(EmbedDone(request_id=request.request_id, embeddings=embeddings))


def run_embedding_worker(
    conn: Connection, pipeline_factory: PipelineFactory = load_sentence_transformer
) -> None:
    """Worker process entry point. Serves requests until shutdown or pipe EOF."""
    state = _WorkerState(conn, pipeline_factory)
    try:
        while True:
            try:
                raw = conn.recv()
            except EOFError:
                break

            request = worker_request_adapter.validate_python(raw)
            if isinstance(request, LoadRequest):
                state.handle_load(request)
            elif isinstance(request, EmbedRequest):
                state.handle_embed(request)
            elif isinstance(request, DisposeRequest):
                state.dispose_pipeline()
                state.send(DisposeDone(request_id=request.request_id))
            elif isinstance(request, ShutdownRequest):
                break
    finally:
        state.dispose_pipeline()
        conn.close()


# =============================================================================
# Parent side
# =============================================================================


class EmbeddingWorkerHandle:
    """
    Owns one embedding worker process and multiplexes requests onto it.

    ``embed`` calls are serialized so only one batch is in flight. If the
    worker dies, every pending request fails with ``EmbeddingBackendError``.

    Args:
        pipeline_factory: Module-level callable building the inference pipeline
                          inside the worker
    """

    def __init__(self, pipeline_factory: PipelineFactory = load_sentence_transformer):
        self._pipeline_factory = pipeline_factory
        self._process: Optional[multiprocessing.process.BaseProcess] = None
        self._conn: Optional[Connection] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._load_callbacks: Dict[str, LoadProgressCallback] = {}
        self._embed_callbacks: Dict[str, EmbedProgressCallback] = {}
        self._embed_lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._closing = False
        self.active_model_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    async def start(self) -> None:
        async with self._start_lock:
            if self.is_running and self._reader_task and not self._reader_task.done():
                return

            ctx = multiprocessing.get_context("spawn")
            parent_conn, child_conn = ctx.Pipe(duplex=True)
            process = ctx.Process(
                target=run_embedding_worker,
                args=(child_conn, self._pipeline_factory),
                daemon=True,
            )
            process.start()
            # Only the child keeps its end open, so its exit surfaces as EOF here
            child_conn.close()

            self._process = process
            self._conn = parent_conn
            self._closing = False
            self.active_model_id = None
            self._reader_task = asyncio.create_task(self._read_loop(parent_conn))
            logger.info(f"Started embedding worker pid={process.pid}")

    async def load(
        self,
        model_id: str,
        hf_model_id: str,
        on_progress: Optional[LoadProgressCallback] = None,
    ) -> None:
        request = LoadRequest(
            request_id=uuid4().hex, model_id=model_id, hf_model_id=hf_model_id
        )
        if on_progress:
            self._load_callbacks[request.request_id] = on_progress
        done: LoadDone = await self._request(request)
        self.active_model_id = done.model_id
        logger.info(f"Embedding model loaded: {done.model_id}")

    async def embed(
        self, texts: List[str], on_progress: Optional[EmbedProgressCallback] = None
    ) -> List[List[float]]:
        async with self._embed_lock:
            request = EmbedRequest(request_id=uuid4().hex, texts=texts)
            if on_progress:
                self._embed_callbacks[request.request_id] = on_progress
            done: EmbedDone = await self._request(request)
            return done.embeddings

    async def dispose(self) -> None:
        """Release the loaded model but keep the worker process alive."""
        if not self.is_running:
            return
        await self._request(DisposeRequest(request_id=uuid4().hex))
        self.active_model_id = None

    async def close(self, timeout: float = 5.0) -> None:
        """Shut the worker down and wait for it to exit."""
        if self._process is None:
            return

        self._closing = True
        process, conn, reader = self._process, self._conn, self._reader_task
        if process.is_alive() and conn is not None:
            try:
                conn.send(ShutdownRequest(request_id=uuid4().hex).model_dump())
            except (BrokenPipeError, OSError):
                pass

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, process.join, timeout)
        if process.is_alive():
            logger.warning(f"Embedding worker pid={process.pid} did not exit, terminating")
            process.terminate()
            await loop.run_in_executor(None, process.join, timeout)

        if reader is not None:
            await reader
        if conn is not None:
            conn.close()

        self._process = None
        self._conn = None
        self._reader_task = None
        self.active_model_id = None

    async def _request(self, request: BaseModel):
        await self.start()
        request_id = request.request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            self._conn.send(request.model_dump())
            return await future
        except (BrokenPipeError, OSError) as e:
            raise EmbeddingBackendError(
                f"Embedding worker unavailable: {e}", provider="local"
            ) from e
        finally:
            self._pending.pop(request_id, None)
            self._load_callbacks.pop(request_id, None)
            self._embed_callbacks.pop(request_id, None)

    async def _read_loop(self, conn: Connection) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                raw = await loop.run_in_executor(None, conn.recv)
            except (EOFError, OSError):
                break

            try:
                message = worker_response_adapter.validate_python(raw)
            except PydanticValidationError as e:
                logger.error(f"Dropping malformed worker message: {e}")
                continue

            self._dispatch(message)

        if not self._closing:
            logger.error("Embedding worker exited unexpectedly")
        self.active_model_id = None
        self._fail_pending(
            EmbeddingBackendError("Embedding worker exited", provider="local")
        )

    def _dispatch(self, message: BaseModel) -> None:
        request_id = message.request_id

        if isinstance(message, LoadProgress):
            callback = self._load_callbacks.get(request_id)
            if callback:
                self._invoke(callback, message.progress)
            return
        if isinstance(message, EmbedProgress):
            callback = self._embed_callbacks.get(request_id)
            if callback:
                self._invoke(callback, message.done, message.total)
            return

        future = self._pending.get(request_id)
        if future is None or future.done():
            logger.warning(f"No pending request for worker message {message.type}")
            return

        if isinstance(message, (LoadError, EmbedError)):
            future.set_exception(EmbeddingBackendError(message.error, provider="local"))
        else:
            future.set_result(message)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    @staticmethod
    def _invoke(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
