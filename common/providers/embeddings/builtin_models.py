"""Catalogue of embedding models that run inside the local worker."""

from typing import Dict, List

from pydantic import BaseModel

from common.core.exceptions import EmbeddingBackendError


class BuiltinEmbeddingModel(BaseModel):
    id: str
    hf_model_id: str
    name: str
    size: str
    dimension: int
    recommended: bool = False


BUILTIN_EMBEDDING_MODELS: List[BuiltinEmbeddingModel] = [
    BuiltinEmbeddingModel(
        id="all-MiniLM-L6-v2",
        hf_model_id="sentence-transformers/all-MiniLM-L6-v2",
        name="MiniLM L6 v2",
        size="~23MB",
        dimension=384,
        recommended=True,
    ),
    BuiltinEmbeddingModel(
        id="bge-small-en-v1.5",
        hf_model_id="BAAI/bge-small-en-v1.5",
        name="BGE Small EN v1.5",
        size="~33MB",
        dimension=384,
    ),
    BuiltinEmbeddingModel(
        id="bge-small-zh-v1.5",
        hf_model_id="BAAI/bge-small-zh-v1.5",
        name="BGE Small ZH v1.5",
        size="~33MB",
        dimension=512,
    ),
    BuiltinEmbeddingModel(
        id="multilingual-e5-small",
        hf_model_id="intfloat/multilingual-e5-small",
        name="Multilingual E5 Small",
        size="~118MB",
        dimension=384,
    ),
]

_BY_ID: Dict[str, BuiltinEmbeddingModel] = {m.id: m for m in BUILTIN_EMBEDDING_MODELS}


def get_builtin_model(model_id: str) -> BuiltinEmbeddingModel:
    """Look up a built-in model by id."""
    model = _BY_ID.get(model_id)
    if model is None:
        raise EmbeddingBackendError(
            f"Unknown built-in embedding model: {model_id}",
            provider="local",
        )
    return model
