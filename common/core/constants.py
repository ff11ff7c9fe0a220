from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    TEST = "test"
    PRODUCTION = "production"


class EmbeddingMode(str, Enum):
    """Where embeddings are computed."""

    BUILTIN = "builtin"  # local model in a worker process
    REMOTE = "remote"  # OpenAI-compatible or Ollama HTTP endpoint
