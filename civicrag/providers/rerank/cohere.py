"""
Cohere rerank provider (v2 REST API).

The request timeout is short on purpose: the caller treats any failure as
"no cross-encoder scores" and falls back to formula-only ranking, so a slow
provider must not hold the query.
"""

import time
from typing import Dict, List, Optional

import httpx

from civicrag.shared.errors import RerankError
from civicrag.shared.observability import get_logger
from civicrag.shared.observability.metrics import (
    rerank_error_total,
    rerank_latency_ms,
    rerank_request_total,
)
from civicrag.shared.resilience import CircuitBreaker

logger = get_logger(__name__)


class CohereRerankProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "rerank-v3.5",
        base_url: str = "https://api.cohere.com/v2",
        timeout: float = 3.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.Client] = None,
    ):
        if not api_key:
            raise RerankError("COHERE_API_KEY required for cohere reranker", model=model)
        self._model_id = model
        self._client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )
        self._circuit_breaker = circuit_breaker or CircuitBreaker(name="cohere-rerank")
        logger.info("rerank_provider_initialized", model=model, timeout=timeout)

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def provider_name(self) -> str:
        return "cohere"

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    def close(self) -> None:
        self._client.close()

    def rerank(self, query: str, candidates: List[Dict], top_k: int = 10) -> List[Dict]:
        if not candidates:
            raise ValueError("Cannot rerank empty candidate list")
        for i, cand in enumerate(candidates):
            if "text" not in cand or "id" not in cand:
                raise ValueError(f"Candidate {i} needs 'id' and 'text' fields")

        if not self._circuit_breaker.allow_request():
            rerank_request_total.labels(model_id=self._model_id, status="short_circuit").inc()
            raise RerankError(
                "Circuit breaker open for cohere reranker",
                model=self._model_id,
                details={"reason": "circuit_open"},
            )

        start_time = time.time()
        try:
            results = self._call_api(query, [c["text"] for c in candidates], top_k)
        except Exception as e:
            self._circuit_breaker.record_failure()
            rerank_error_total.labels(
                model_id=self._model_id, error_type=type(e).__name__
            ).inc()
            rerank_request_total.labels(model_id=self._model_id, status="error").inc()
            raise RerankError(f"Cohere reranking failed: {e}", model=self._model_id) from e

        self._circuit_breaker.record_success()
        latency_ms = (time.time() - start_time) * 1000
        rerank_request_total.labels(model_id=self._model_id, status="success").inc()
        rerank_latency_ms.labels(model_id=self._model_id).observe(latency_ms)

        reranked = []
        for item in results:
            idx = item["index"]
            reranked.append(
                {
                    **candidates[idx],
                    "rerank_score": float(item["relevance_score"]),
                    "original_rank": idx + 1,
                    "reranker": self._model_id,
                }
            )
        reranked.sort(key=lambda c: c["rerank_score"], reverse=True)

        logger.debug(
            "cohere_rerank_complete",
            returned=len(reranked),
            candidates=len(candidates),
            latency_ms=round(latency_ms, 2),
        )
        return reranked[:top_k]

    def _call_api(self, query: str, documents: List[str], top_k: int) -> List[Dict]:
        payload = {
            "model": self._model_id,
            "query": query,
            "documents": documents,
            "top_n": min(top_k, len(documents)),
        }
        response = self._client.post("/rerank", json=payload)
        if response.status_code != 200:
            raise RerankError(
                f"Cohere HTTP {response.status_code}: {response.text[:300]}",
                model=self._model_id,
                details={"status_code": response.status_code},
            )
        results = response.json().get("results", [])
        for item in results:
            if not 0 <= item.get("index", -1) < len(documents):
                raise RerankError(
                    f"Cohere returned out-of-range index {item.get('index')}",
                    model=self._model_id,
                )
        return results
