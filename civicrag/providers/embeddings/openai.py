"""
OpenAI embeddings over the REST API.

- Documents are embedded in batches (100 per request by default); results
  are re-ordered by the ``index`` field so output order matches input order.
- Query vectors go through a small in-process LRU cache with a TTL, since
  residents repeat the same questions.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

from civicrag.shared.errors import EmbeddingError
from civicrag.shared.observability import get_logger
from civicrag.shared.observability.metrics import (
    embedding_cache_total,
    embedding_request_total,
)

logger = get_logger(__name__)


class QueryEmbeddingCache:
    """Thread-safe LRU cache with per-entry expiry."""

    def __init__(
        self,
        max_size: int = 500,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, List[float]]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[List[float]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, vector = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return vector

    def put(self, key: str, vector: List[float]) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), vector)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class OpenAIEmbeddingProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-large",
        dims: int = 1536,
        base_url: str = "https://api.openai.com/v1",
        batch_size: int = 100,
        timeout: float = 30.0,
        cache: Optional[QueryEmbeddingCache] = None,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise EmbeddingError("OPENAI_API_KEY required for openai embeddings", model=model)
        self._model_id = model
        self._dims = dims
        self._batch_size = batch_size
        self._cache = cache if cache is not None else QueryEmbeddingCache()
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )
        logger.info("embedding_provider_initialized", model=model, dims=dims)

    @property
    def dims(self) -> int:
        return self._dims

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def provider_name(self) -> str:
        return "openai"

    def close(self) -> None:
        self._client.close()

    def _post_embeddings(self, texts: List[str]) -> List[List[float]]:
        payload: Dict[str, Any] = {
            "model": self._model_id,
            "input": texts,
            "dimensions": self._dims,
            "encoding_format": "float",
        }
        try:
            response = self._client.post("/embeddings", json=payload)
        except httpx.HTTPError as e:
            embedding_request_total.labels(model_id=self._model_id, status="error").inc()
            raise EmbeddingError(
                f"Embedding request failed: {e}", model=self._model_id
            ) from e

        if response.status_code != 200:
            embedding_request_total.labels(model_id=self._model_id, status="error").inc()
            raise EmbeddingError(
                f"Embedding service HTTP {response.status_code}: {response.text[:500]}",
                model=self._model_id,
                details={"status_code": response.status_code},
            )

        embedding_request_total.labels(model_id=self._model_id, status="success").inc()
        data = sorted(response.json()["data"], key=lambda item: item["index"])
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding count mismatch: sent {len(texts)}, got {len(data)}",
                model=self._model_id,
            )
        return [[float(x) for x in item["embedding"]] for item in data]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors: List[List[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors.extend(self._post_embeddings(batch))
            logger.debug(
                "embedding_batch_complete",
                batch_start=start,
                batch_size=len(batch),
                total=len(texts),
            )
        return vectors

    def embed_query(self, text: str) -> List[float]:
        key = text.strip().lower()
        cached = self._cache.get(key)
        if cached is not None:
            embedding_cache_total.labels(result="hit").inc()
            return cached
        embedding_cache_total.labels(result="miss").inc()

        vector = self._post_embeddings([text])[0]
        self._cache.put(key, vector)
        return vector
