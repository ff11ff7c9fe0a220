"""Ollama embedding backend (``POST /api/embed``)."""

from typing import List, Optional

import httpx

from common.core.exceptions import EmbeddingBackendError
from common.core.telemetry import trace_span
from common.providers.embeddings.models import RemoteEmbeddingModelConfig
from common.providers.embeddings.provider_enum import EmbeddingBackendType
from common.providers.embeddings.remote_provider import (
    REMOTE_BATCH_SIZE,
    RemoteEmbeddingBackend,
)


class OllamaEmbeddingBackend(RemoteEmbeddingBackend):
    """Embeds through an Ollama server. An API key is optional."""

    provider_name = EmbeddingBackendType.OLLAMA

    def __init__(
        self,
        config: RemoteEmbeddingModelConfig,
        batch_size: int = REMOTE_BATCH_SIZE,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(config, batch_size=batch_size, timeout=timeout)
        self._http_client = http_client

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, texts: List[str]) -> httpx.Response:
        return await client.post(
            self.config.url,
            headers=self._headers(),
            json={"model": self.config.model_id, "input": texts},
            timeout=self.timeout,
        )

    @trace_span
    async def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, texts)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, texts)
        except httpx.HTTPError as e:
            raise EmbeddingBackendError(
                f"Embedding API unreachable: {e}", provider=self.provider_name
            ) from e

        if response.is_error:
            raise EmbeddingBackendError(
                f"Embedding API error ({response.status_code}): {response.text}",
                provider=self.provider_name,
                status_code=response.status_code,
            )

        try:
            embeddings = response.json().get("embeddings")
        except (ValueError, AttributeError) as e:
            raise EmbeddingBackendError(
                f"Invalid embedding response: {e}",
                provider=self.provider_name,
                status_code=response.status_code,
            ) from e
        if not isinstance(embeddings, list):
            raise EmbeddingBackendError(
                "Invalid embedding response: no embeddings list",
                provider=self.provider_name,
                status_code=response.status_code,
            )
        return embeddings
