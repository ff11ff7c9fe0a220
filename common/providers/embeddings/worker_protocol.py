"""
Messages exchanged with the embedding worker process.

Every message is a pydantic model tagged by ``type`` and travels over the pipe
as a plain dict (``model_dump()``). The receiving side validates it back into
the tagged union with a ``TypeAdapter``.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


# Requests (parent -> worker)


class LoadRequest(BaseModel):
    type: Literal["load"] = "load"
    request_id: str
    model_id: str
    hf_model_id: str


class EmbedRequest(BaseModel):
    type: Literal["embed"] = "embed"
    request_id: str
    texts: List[str]


class DisposeRequest(BaseModel):
    type: Literal["dispose"] = "dispose"
    request_id: str


class ShutdownRequest(BaseModel):
    type: Literal["shutdown"] = "shutdown"
    request_id: str


WorkerRequest = Annotated[
    Union[LoadRequest, EmbedRequest, DisposeRequest, ShutdownRequest],
    Field(discriminator="type"),
]


# Responses (worker -> parent)


class LoadProgress(BaseModel):
    type: Literal["load:progress"] = "load:progress"
    request_id: str
    progress: float
    status: Optional[str] = None


class LoadDone(BaseModel):
    type: Literal["load:done"] = "load:done"
    request_id: str
    model_id: str


class LoadError(BaseModel):
    type: Literal["load:error"] = "load:error"
    request_id: str
    error: str


class EmbedProgress(BaseModel):
    type: Literal["embed:progress"] = "embed:progress"
    request_id: str
    done: int
    total: int


class EmbedDone(BaseModel):
    type: Literal["embed:done"] = "embed:done"
    request_id: str
    embeddings: List[List[float]]


class EmbedError(BaseModel):
    type: Literal["embed:error"] = "embed:error"
    request_id: str
    error: str


class DisposeDone(BaseModel):
    type: Literal["dispose:done"] = "dispose:done"
    request_id: str


WorkerResponse = Annotated[
    Union[
        LoadProgress,
        LoadDone,
        LoadError,
        EmbedProgress,
        EmbedDone,
        EmbedError,
        DisposeDone,
    ],
    Field(discriminator="type"),
]

worker_request_adapter: TypeAdapter = TypeAdapter(WorkerRequest)
worker_response_adapter: TypeAdapter = TypeAdapter(WorkerResponse)
