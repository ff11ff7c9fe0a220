"""OpenAI-compatible embedding backend."""

from typing import List, Optional

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI

from common.core.exceptions import EmbeddingBackendError
from common.core.telemetry import trace_span
from common.providers.embeddings.models import RemoteEmbeddingModelConfig
from common.providers.embeddings.provider_enum import EmbeddingBackendType
from common.providers.embeddings.remote_provider import (
    REMOTE_BATCH_SIZE,
    RemoteEmbeddingBackend,
)


def openai_base_url(url: str) -> str:
    """The SDK appends ``/embeddings`` itself."""
    url = url.rstrip("/")
    if url.endswith("/embeddings"):
        url = url[: -len("/embeddings")]
    return url


class OpenAIEmbeddingBackend(RemoteEmbeddingBackend):
    """Calls an OpenAI-style ``/embeddings`` endpoint through the openai SDK."""

    provider_name = EmbeddingBackendType.OPENAI

    def __init__(
        self,
        config: RemoteEmbeddingModelConfig,
        batch_size: int = REMOTE_BATCH_SIZE,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config, batch_size=batch_size, timeout=timeout)
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None

    def _check_preconditions(self) -> None:
        if not self.config.api_key:
            raise EmbeddingBackendError(
                "API key is required for OpenAI embeddings", provider=self.provider_name
            )
        super()._check_preconditions()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=openai_base_url(self.config.url),
                timeout=self.timeout,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    @trace_span
    async def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        try:
            response = await self._get_client().embeddings.create(
                input=texts, model=self.config.model_id, encoding_format="float"
            )
        except APIStatusError as e:
            raise EmbeddingBackendError(
                f"Embedding API error ({e.status_code}): {e.message}",
                provider=self.provider_name,
                status_code=e.status_code,
            ) from e
        except APIConnectionError as e:
            raise EmbeddingBackendError(
                f"Embedding API unreachable: {e}", provider=self.provider_name
            ) from e
        except APIError as e:
            raise EmbeddingBackendError(
                f"Invalid embedding response: {e}", provider=self.provider_name
            ) from e

        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    async def dispose(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
