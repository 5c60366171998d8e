"""
Base rerank provider protocol.

A cross-encoder scores (query, passage) pairs jointly. Scores are in [0, 1]
and comparable across the candidates of one request, not across requests.
"""

from typing import Dict, List, Protocol, runtime_checkable


@runtime_checkable
class RerankProvider(Protocol):
    @property
    def model_id(self) -> str:
        ...

    @property
    def provider_name(self) -> str:
        ...

    def rerank(self, query: str, candidates: List[Dict], top_k: int = 10) -> List[Dict]:
        """
        Score candidates against the query.

        Args:
            query: Query text
            candidates: Dicts with at least 'id' and 'text'; other keys are
                preserved
            top_k: Maximum number of candidates to return

        Returns:
            Candidates ordered by relevance, each with added
            'rerank_score' and 'original_rank' (1-based input position)

        Raises:
            ValueError: If candidates is empty or malformed
            RerankError: If the provider fails or the circuit is open
        """
        ...
