from sqlalchemy import Column, Integer, String, Text, JSON, Index

from common.db.base import Base


class ChunkEntity(Base):
    __tablename__ = "chunks"

    id = Column(String(255), primary_key=True)
    document_id = Column(String(255), nullable=False, index=True)
    section_index = Column(Integer, nullable=False)
    section_title = Column(String(1024), nullable=False, default="")
    content = Column(Text, nullable=False)
    token_count = Column(Integer, nullable=False)
    start_location = Column(String(1024), nullable=False, default="")
    end_location = Column(String(1024), nullable=False, default="")
    # Embedding vector as a JSON array of floats, null until embedded
    embedding = Column(JSON, nullable=True)
    # Insertion order within a document, chunk ids are not sortable
    position = Column(Integer, nullable=False, default=0)

    __table_args__ = (Index("idx_chunks_document_position", "document_id", "position"),)
