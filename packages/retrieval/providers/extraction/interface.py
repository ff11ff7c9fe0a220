from abc import ABC, abstractmethod
from typing import List

from packages.retrieval.models.domain.chunk import Chapter


class ChapterExtractorInterface(ABC):
    @abstractmethod
    async def extract_chapters(self, path: str) -> List[Chapter]:
        """Extract the ordered chapters of the document stored at ``path``."""
        pass
