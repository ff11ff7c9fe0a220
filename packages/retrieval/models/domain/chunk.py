"""Domain models for chunks and the text they are cut from."""

from typing import List, Optional
from pydantic import BaseModel, Field


class TextSegment(BaseModel):
    """A run of extracted text and the location marker it came from.

    Only used while chunking to tag chunks with start/end locations; never
    persisted.
    """

    text: str
    location: str


class Chapter(BaseModel):
    """One section of a document as handed over by the extraction collaborator."""

    index: int
    title: str
    content: str
    segments: List[TextSegment] = Field(default_factory=list)
    location: str = ""


class Chunk(BaseModel):
    """Token-bounded slice of document text, the unit of retrieval."""

    id: str
    document_id: str
    section_index: int
    section_title: str
    content: str
    token_count: int
    start_location: str = ""
    end_location: str = ""
    embedding: Optional[List[float]] = None

    class Config:
        from_attributes = True
