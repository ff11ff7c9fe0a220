from typing import Optional

from pydantic import BaseModel


class RemoteEmbeddingModelConfig(BaseModel):
    """A user-configured remote embedding endpoint."""

    id: str
    name: str
    url: str
    model_id: str
    api_key: Optional[str] = None
    dimension: Optional[int] = None
