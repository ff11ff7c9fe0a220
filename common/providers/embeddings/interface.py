from abc import ABC, abstractmethod
from typing import Callable, List, Optional

# (done, total) items embedded so far in the current call
EmbedProgressCallback = Callable[[int, int], None]
# Load progress in percent, 0..100
LoadProgressCallback = Callable[[float], None]


class EmbeddingBackendInterface(ABC):
    """Interface for embedding backends (local worker or remote HTTP endpoint)."""

    batch_size: int = 20

    @abstractmethod
    async def embed(
        self, texts: List[str], on_progress: Optional[EmbedProgressCallback] = None
    ) -> List[List[float]]:
        """Embed texts, returning one vector per text in input order."""
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> List[float]:
        """Embed a single search query."""
        pass

    async def load(
        self,
        model_id: Optional[str] = None,
        on_progress: Optional[LoadProgressCallback] = None,
    ) -> None:
        """Prepare the model. Remote backends have nothing to load."""
        return None

    async def dispose(self) -> None:
        """Release resources held by the backend."""
        return None

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the model name"""
        pass

    @property
    def is_local(self) -> bool:
        return False
