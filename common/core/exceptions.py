from typing import Optional


class AppException(Exception):
    """Base application exception."""

    pass


class RetrievalError(AppException):
    """Base exception for chunking, embedding, indexing and search failures."""

    pass


class ExtractionEmptyError(RetrievalError):
    """The extraction collaborator returned no chapters or no text."""

    pass


class ChunkingEmptyError(RetrievalError):
    """Chunking produced zero chunks for a document."""

    pass


class EmbeddingError(RetrievalError):
    """Base exception for anything that prevents an embedding from being produced."""

    pass


class EmbeddingBackendError(EmbeddingError):
    """
    Error raised by an embedding backend.

    Raised when:
    - API key or model selection is missing (precondition, not retryable)
    - The remote endpoint returns a non-success response
    - The local worker fails to load a model or to embed a batch
    - A backend returns the wrong number of vectors
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class EmbeddingServiceUnavailableError(EmbeddingError):
    """No embedding backend is configured for the query path."""

    pass


class IndexingError(RetrievalError):
    """Persisting chunks (delete or insert) failed."""

    pass
