import json

import httpx
import pytest

from civicrag.providers.rerank import CohereRerankProvider
from civicrag.shared.errors import RerankError
from civicrag.shared.resilience import CircuitBreaker, CircuitState


def _provider(handler, breaker=None) -> CohereRerankProvider:
    client = httpx.Client(
        transport=httpx.MockTransport(handler), base_url="https://api.test/v2"
    )
    return CohereRerankProvider(
        api_key="co-test", model="rerank-v3.5", client=client, circuit_breaker=breaker
    )


CANDIDATES = [
    {"id": "a", "text": "Transfer station hours"},
    {"id": "b", "text": "Zoning setbacks"},
    {"id": "c", "text": "Dog licenses"},
]


def test_rerank_orders_by_score_and_keeps_input_fields():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "results": [
                    {"index": 1, "relevance_score": 0.91},
                    {"index": 0, "relevance_score": 0.12},
                ]
            },
        )

    results = _provider(handler).rerank("setback requirements", CANDIDATES, top_k=2)

    assert seen["top_n"] == 2
    assert seen["documents"] == [c["text"] for c in CANDIDATES]
    assert [r["id"] for r in results] == ["b", "a"]
    assert results[0]["original_rank"] == 2
    assert results[0]["rerank_score"] == pytest.approx(0.91)


def test_empty_candidates_raise_value_error():
    provider = _provider(lambda request: httpx.Response(200, json={"results": []}))

    with pytest.raises(ValueError):
        provider.rerank("q", [])


def test_malformed_candidate_raises_value_error():
    provider = _provider(lambda request: httpx.Response(200, json={"results": []}))

    with pytest.raises(ValueError):
        provider.rerank("q", [{"text": "no id"}])


def test_out_of_range_index_is_an_error():
    provider = _provider(
        lambda request: httpx.Response(
            200, json={"results": [{"index": 7, "relevance_score": 0.5}]}
        )
    )

    with pytest.raises(RerankError):
        provider.rerank("q", CANDIDATES)


def test_circuit_opens_after_failures():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    breaker = CircuitBreaker(name="test-rerank", failure_threshold=2, recovery_timeout=60)
    provider = _provider(handler, breaker)

    for _ in range(2):
        with pytest.raises(RerankError):
            provider.rerank("q", CANDIDATES)
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(RerankError) as exc_info:
        provider.rerank("q", CANDIDATES)
    assert exc_info.value.details["reason"] == "circuit_open"
    assert len(calls) == 2
