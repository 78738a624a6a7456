"""Remote API backends (OpenAI, Cohere, Jina).

Each ``embed`` call issues one HTTP request per sub-batch. Any failure
(transport error, non-2xx status, malformed payload) fails the whole call
with ``BackendCallError``; there is no partial-batch success. Retries are
off unless ``max_attempts > 1``, and then only transport errors, 429 and 5xx
responses are retried.
"""

from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog

from ..common.config import get_settings
from ..common.errors import BackendCallError, ModelConstructionError
from ..pipelines.retry_handler import RetryHandler, create_remote_retry_handler
from .base import DenseVector, Embedder, EmbeddingResult, iter_batches, resolve_batch_size

logger = structlog.get_logger("embeddings.cloud")


def is_transient(exc: BaseException) -> bool:
    """Transport failures, rate limits and server errors are worth retrying."""
    if not isinstance(exc, BackendCallError):
        return False
    if exc.status_code is None:
        return isinstance(exc.__cause__, httpx.TransportError)
    return exc.status_code == 429 or exc.status_code >= 500


class RemoteEmbedder(Embedder):
    """Shared request/response plumbing for hosted embedding APIs.

    Parameters
    - model: provider model name
    - api_key: falls back to the provider key in ``EmbedSettings``
    - client: optional ``httpx.Client`` (e.g. one built on ``MockTransport``)
    - max_attempts: total attempts per sub-batch; 1 disables retries
    """

    provider: str = "remote"
    endpoint: str = ""
    default_model: str = ""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.model = model or self.default_model
        self.api_key = api_key or self._settings_key(settings)
        if not self.api_key:
            raise ModelConstructionError(f"No API key configured for {self.provider}")
        self.name = f"{self.provider}:{self.model}"
        self.client = client or httpx.Client(timeout=timeout or settings.request_timeout)
        self.retry_handler: RetryHandler = create_remote_retry_handler(
            max_attempts or settings.remote_max_attempts,
            should_retry=is_transient,
        )

    @abstractmethod
    def _settings_key(self, settings: Any) -> Optional[str]:
        pass

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @abstractmethod
    def _payload(self, batch: Sequence[str]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _parse(self, body: Dict[str, Any]) -> List[List[float]]:
        pass

    def embed(
        self,
        text_batch: Sequence[str],
        batch_size: Optional[int] = None
    ) -> List[EmbeddingResult]:
        batch_size = resolve_batch_size(batch_size)
        results: List[EmbeddingResult] = []
        for batch in iter_batches(list(text_batch), batch_size):
            vectors = self.retry_handler.execute_with_retry(
                self._request, batch, operation_name=f"embed_{self.provider}"
            )
            results.extend(DenseVector(values) for values in vectors)
        return results

    def _request(self, batch: Sequence[str]) -> List[List[float]]:
        try:
            response = self.client.post(self.endpoint, headers=self._headers(), json=self._payload(batch))
        except httpx.HTTPError as e:
            logger.error("Remote embedding request failed", provider=self.provider, error=str(e))
            raise BackendCallError(f"{self.provider} request failed: {e}") from e

        if response.status_code == 401:
            raise BackendCallError(f"{self.provider} rejected the API key", status_code=401)
        if response.status_code == 429:
            raise BackendCallError(f"{self.provider} rate limit exceeded", status_code=429)
        if not response.is_success:
            logger.error(
                "Remote embedding request rejected",
                provider=self.provider,
                status_code=response.status_code,
            )
            raise BackendCallError(
                f"{self.provider} returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            vectors = self._parse(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise BackendCallError(f"{self.provider} returned a malformed payload: {e}") from e

        if len(vectors) != len(batch):
            raise BackendCallError(
                f"{self.provider} returned {len(vectors)} embeddings for {len(batch)} inputs"
            )
        return vectors

    def close(self) -> None:
        self.client.close()


def _parse_indexed_data(body: Dict[str, Any]) -> List[List[float]]:
    """``{"data": [{"index": i, "embedding": [...]}, ...]}`` in index order."""
    data = sorted(body["data"], key=lambda item: item.get("index", 0))
    return [[float(v) for v in item["embedding"]] for item in data]


class OpenAIEmbedder(RemoteEmbedder):
    """OpenAI ``/v1/embeddings``."""

    provider = "openai"
    endpoint = "https://api.openai.com/v1/embeddings"
    default_model = "text-embedding-3-small"

    def _settings_key(self, settings: Any) -> Optional[str]:
        return settings.openai_api_key

    def _payload(self, batch: Sequence[str]) -> Dict[str, Any]:
        return {"model": self.model, "input": list(batch), "encoding_format": "float"}

    def _parse(self, body: Dict[str, Any]) -> List[List[float]]:
        return _parse_indexed_data(body)


class CohereEmbedder(RemoteEmbedder):
    """Cohere ``/v2/embed``.

    ``input_type`` is ``search_document`` for indexed content; use
    ``search_query`` for a query-side instance.
    """

    provider = "cohere"
    endpoint = "https://api.cohere.com/v2/embed"
    default_model = "embed-english-v3.0"

    def __init__(self, *args: Any, input_type: str = "search_document", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.input_type = input_type

    def _settings_key(self, settings: Any) -> Optional[str]:
        return settings.cohere_api_key

    def _payload(self, batch: Sequence[str]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "texts": list(batch),
            "input_type": self.input_type,
            "embedding_types": ["float"],
        }

    def _parse(self, body: Dict[str, Any]) -> List[List[float]]:
        embeddings = body["embeddings"]
        if isinstance(embeddings, dict):
            embeddings = embeddings["float"]
        return [[float(v) for v in vector] for vector in embeddings]


class JinaEmbedder(RemoteEmbedder):
    """Jina AI ``/v1/embeddings`` (OpenAI-compatible response shape)."""

    provider = "jina"
    endpoint = "https://api.jina.ai/v1/embeddings"
    default_model = "jina-embeddings-v3"

    def _settings_key(self, settings: Any) -> Optional[str]:
        return settings.jina_api_key

    def _payload(self, batch: Sequence[str]) -> Dict[str, Any]:
        return {"model": self.model, "input": list(batch)}

    def _parse(self, body: Dict[str, Any]) -> List[List[float]]:
        return _parse_indexed_data(body)
