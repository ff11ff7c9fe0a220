from sqlalchemy import Column, String, Boolean, Float, DateTime
from sqlalchemy.sql import func

from common.db.base import Base


class DocumentStateEntity(Base):
    __tablename__ = "document_states"

    document_id = Column(String(255), primary_key=True)
    is_vectorized = Column(Boolean, nullable=False, default=False)
    vectorize_progress = Column(Float, nullable=False, default=0.0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
