from common.core.exceptions import (
    AppException,
    ChunkingEmptyError,
    EmbeddingBackendError,
    EmbeddingError,
    EmbeddingServiceUnavailableError,
    ExtractionEmptyError,
    IndexingError,
    RetrievalError,
)


class TestRetrievalErrors:
    def test_hierarchy(self):
        for error in (
            ExtractionEmptyError,
            ChunkingEmptyError,
            EmbeddingBackendError,
            EmbeddingServiceUnavailableError,
            IndexingError,
        ):
            assert issubclass(error, RetrievalError)
            assert issubclass(error, AppException)
        assert issubclass(EmbeddingBackendError, EmbeddingError)
        assert issubclass(EmbeddingServiceUnavailableError, EmbeddingError)

    def test_backend_error_carries_status(self):
        error = EmbeddingBackendError("Embedding API error (429): slow down", provider="openai", status_code=429)

        assert str(error) == "Embedding API error (429): slow down"
        assert error.provider == "openai"
        assert error.status_code == 429
