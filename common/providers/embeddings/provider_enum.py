"""Embedding backend types."""


class EmbeddingBackendType:
    """Supported embedding backend types."""

    LOCAL = "local"
    OPENAI = "openai"
    OLLAMA = "ollama"
