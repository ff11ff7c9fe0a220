from packages.retrieval.models.database.chunk import ChunkEntity
from packages.retrieval.models.database.document_state import DocumentStateEntity

__all__ = ["ChunkEntity", "DocumentStateEntity"]
