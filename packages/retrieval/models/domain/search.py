"""Domain models for search queries, results and the lexical index."""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from common.core.config import settings
from packages.retrieval.models.domain.chunk import Chunk


class SearchMode(str, Enum):
    """Retrieval strategy selected by a query."""

    VECTOR = "vector"
    BM25 = "bm25"
    HYBRID = "hybrid"


class MatchType(str, Enum):
    """Which strategy produced a result."""

    VECTOR = "vector"
    BM25 = "bm25"
    HYBRID = "hybrid"


class SearchQuery(BaseModel):
    """A question asked against one document's chunk set."""

    query: str
    document_id: str
    mode: SearchMode = SearchMode.HYBRID
    top_k: int = Field(default_factory=lambda: settings.search_default_top_k, ge=1)
    threshold: float = Field(default_factory=lambda: settings.search_default_threshold)


class SearchResult(BaseModel):
    """A ranked chunk."""

    chunk: Chunk
    score: float
    match_type: MatchType
    highlights: Optional[List[str]] = None


class LexicalIndex(BaseModel):
    """Tokenized view of a chunk set, derived and cached per document."""

    document_id: str
    avg_doc_length: float
    doc_tokens: List[List[str]]
    doc_lengths: List[int]
    chunk_ids: List[str]
    doc_freqs: Dict[str, int] = Field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.chunk_ids)


class SectionEntry(BaseModel):
    """One entry of a document's table of contents, as seen by its chunk set."""

    section_index: int
    section_title: str
