"""
Reranking of merged candidates.

Two pure scoring functions plus a thin ``Reranker`` that gathers optional
cross-encoder scores:

- ``formula_score``: similarity, keyword overlap, recency, authority and a
  source/department boost;
- ``blend_cross_encoder``: mixes a cross-encoder score into the formula score
  when one exists.

The cross-encoder call runs under an explicit timeout. A timeout, a provider
error or an open circuit breaker is logged and the candidates are ranked by
formula alone; the query never fails because of the reranker.
"""

import contextvars
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence

from civicrag.providers.rerank.base import RerankProvider
from civicrag.query.results import RetrievedChunk
from civicrag.shared.config import RankingConfig, get_config
from civicrag.shared.errors import RerankError
from civicrag.shared.models import ChunkType, DocumentType
from civicrag.shared.observability import get_logger
from civicrag.shared.observability.metrics import rerank_fallback_total

logger = get_logger(__name__)

_YEAR_RE = re.compile(r"\d{4}")
_TERM_PUNCT = ".,;:!?\"'()[]{}"

RECENCY_DATE_KEYS = ("document_date", "effective_date", "last_amended")
# (minimum year, fraction of the recency weight)
RECENCY_TIERS = ((2024, 1.0), (2020, 0.7), (2015, 0.4))

_SECONDARY_CHUNK_TYPES = {ChunkType.PROCEDURE_STEP.value, ChunkType.MEETING_ITEM.value}
_SECONDARY_DOCUMENT_TYPES = {
    DocumentType.BUILDING_PERMITS.value,
    DocumentType.MEETING_MINUTES.value,
}


@dataclass(frozen=True)
class ScoringWeights:
    similarity: float = 0.6
    keyword: float = 0.2
    recency: float = 0.1
    authority: float = 0.1
    department_boost: float = 0.05
    min_term_length: int = 3
    source_boost: Mapping[str, float] = field(default_factory=dict)

    # cross-encoder blend
    cross_encoder: float = 0.6
    formula: float = 0.3
    source_boost_blend: float = 0.1

    @classmethod
    def from_config(cls, config: RankingConfig) -> "ScoringWeights":
        return cls(
            similarity=config.similarity_weight,
            keyword=config.keyword_weight,
            recency=config.recency_weight,
            authority=config.authority_weight,
            department_boost=config.department_boost,
            min_term_length=config.min_term_length,
            source_boost=dict(config.source_boost),
            cross_encoder=config.cross_encoder_weight,
            formula=config.formula_weight,
            source_boost_blend=config.source_boost_weight,
        )

    def with_overrides(
        self,
        recency: Optional[float] = None,
        authority: Optional[float] = None,
        source_boost: Optional[Mapping[str, float]] = None,
    ) -> "ScoringWeights":
        return replace(
            self,
            recency=self.recency if recency is None else recency,
            authority=self.authority if authority is None else authority,
            source_boost=self.source_boost if source_boost is None else dict(source_boost),
        )


def query_terms(query: str, min_length: int = 3) -> List[str]:
    terms = (t.strip(_TERM_PUNCT) for t in query.lower().split())
    return [t for t in terms if len(t) >= min_length]


def _first_string(metadata: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = metadata.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def recency_score(metadata: Mapping[str, Any], weight: float) -> float:
    date = _first_string(metadata, RECENCY_DATE_KEYS)
    if not date:
        return 0.0
    match = _YEAR_RE.search(date)
    if not match:
        return 0.0
    year = int(match.group(0))
    for min_year, fraction in RECENCY_TIERS:
        if year >= min_year:
            return weight * fraction
    return 0.0


def authority_score(metadata: Mapping[str, Any], weight: float) -> float:
    chunk_type = str(metadata.get("chunk_type") or "").lower()
    document_type = str(metadata.get("document_type") or "").lower()
    if chunk_type == ChunkType.REGULATION.value or "bylaw" in document_type:
        return weight
    if chunk_type in _SECONDARY_CHUNK_TYPES or document_type in _SECONDARY_DOCUMENT_TYPES:
        return weight * 0.7
    return weight * 0.5


def source_boost_score(
    metadata: Mapping[str, Any], department: Optional[str], weights: ScoringWeights
) -> float:
    """Configured per-content-type boost, else the department boost."""
    content_type = metadata.get("content_type")
    if content_type and weights.source_boost.get(content_type):
        return weights.source_boost[content_type]
    if department:
        chunk_department = str(metadata.get("department") or "").lower()
        if chunk_department and department.lower() in chunk_department:
            return weights.department_boost
    return 0.0


def keyword_score(text: str, terms: Sequence[str], weight: float) -> float:
    if not terms:
        return 0.0
    lower = text.lower()
    matched = sum(1 for term in terms if term in lower)
    return matched / len(terms) * weight


def formula_score(
    chunk: RetrievedChunk,
    terms: Sequence[str],
    department: Optional[str],
    weights: ScoringWeights,
) -> float:
    return (
        chunk.match_score * weights.similarity
        + keyword_score(chunk.text, terms, weights.keyword)
        + recency_score(chunk.metadata, weights.recency)
        + authority_score(chunk.metadata, weights.authority)
        + source_boost_score(chunk.metadata, department, weights)
    )


def blend_cross_encoder(
    formula: float,
    cross_encoder: Optional[float],
    source_boost: float,
    weights: ScoringWeights,
) -> float:
    if cross_encoder is None:
        return formula
    return (
        cross_encoder * weights.cross_encoder
        + formula * weights.formula
        + source_boost * weights.source_boost_blend
    )


class Reranker:
    def __init__(
        self,
        provider: Optional[RerankProvider] = None,
        weights: Optional[ScoringWeights] = None,
        timeout_seconds: Optional[float] = None,
    ):
        config = get_config()
        self.provider = provider
        self.weights = weights or ScoringWeights.from_config(config.ranking)
        self.timeout_seconds = (
            config.reranker.timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    def _fallback(self, reason: str, **fields) -> None:
        rerank_fallback_total.labels(reason=reason).inc()
        logger.warning("cross_encoder_failed", reason=reason, **fields)

    def cross_encoder_scores(
        self, query: str, candidates: Sequence[RetrievedChunk]
    ) -> Optional[Dict[str, float]]:
        """Scores by candidate id, or None when the cross-encoder is unavailable."""
        if self.provider is None or not candidates:
            return None

        docs = [{"id": c.id, "text": c.text} for c in candidates]
        start_time = time.time()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rerank")
        try:
            future = executor.submit(
                contextvars.copy_context().run, self.provider.rerank, query, docs, len(docs)
            )
            results = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            self._fallback("timeout", timeout_seconds=self.timeout_seconds)
            return None
        except RerankError as exc:
            self._fallback(exc.details.get("reason", "error"), error=exc.message)
            return None
        except ValueError as exc:
            self._fallback("invalid_request", error=str(exc))
            return None
        except Exception as exc:
            # any provider failure downgrades to formula-only scoring
            self._fallback("error", error=str(exc), error_type=type(exc).__name__)
            return None
        finally:
            # a timed-out call is abandoned, not awaited
            executor.shutdown(wait=False)

        logger.debug(
            "cross_encoder_scored",
            provider=self.provider.provider_name,
            candidates=len(docs),
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        return {r["id"]: float(r["rerank_score"]) for r in results}

    def rank(
        self,
        candidates: Sequence[RetrievedChunk],
        query: str,
        department: Optional[str] = None,
        weights: Optional[ScoringWeights] = None,
    ) -> List[RetrievedChunk]:
        """Score every candidate and return them by descending relevance."""
        weights = weights or self.weights
        terms = query_terms(query, weights.min_term_length)
        scores = self.cross_encoder_scores(query, candidates) or {}

        for chunk in candidates:
            boost = source_boost_score(chunk.metadata, department, weights)
            formula = formula_score(chunk, terms, department, weights)
            chunk.source_boost = boost
            chunk.formula_score = formula
            chunk.cross_encoder_score = scores.get(chunk.id)
            chunk.relevance_score = blend_cross_encoder(
                formula, chunk.cross_encoder_score, boost, weights
            )

        return sorted(candidates, key=lambda c: (-c.relevance_score, -c.match_score, c.id))
