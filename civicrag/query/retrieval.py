"""
Multi-signal retrieval.

For one query the retriever fans out, on a bounded thread pool:

- a primary-index vector search per query form (original, expanded when the
  expander added terms, LLM-rewritten when the rewriter produced something new);
- an auxiliary-index vector search for the original form, down-weighted so
  auxiliary content never outranks primary content at equal raw similarity;
- a full-text search for the original form.

All searches are awaited before merging. Candidates are merged by id keeping
the maximum vector similarity seen for that id, then filtered by the similarity
floor. Full-text ranks stay out of similarity; a full-text-only hit is floored
and scored by its lexical score instead.
Individual search failures are logged and skipped; if every primary vector
search fails the query fails with ``RetrievalError``.
"""

import contextvars
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from civicrag.providers.embeddings.base import EmbeddingProvider
from civicrag.providers.llm.query_rewriter import QueryRewriter
from civicrag.query.expansion import QueryExpansion
from civicrag.query.results import RetrievedChunk
from civicrag.query.stores import AUXILIARY, PRIMARY, FullTextIndex, SearchRow, VectorStore
from civicrag.shared.config import SearchConfig, get_config
from civicrag.shared.errors import RetrievalError
from civicrag.shared.observability import get_logger
from civicrag.shared.observability.metrics import (
    retrieval_candidates,
    search_calls_total,
    search_latency_ms,
)

logger = get_logger(__name__)

FORM_ORIGINAL = "original"
FORM_EXPANDED = "expanded"
FORM_REWRITTEN = "rewritten"
SIGNAL_AUXILIARY = "auxiliary"
SIGNAL_FULLTEXT = "fulltext"

PRIMARY_FORMS = (FORM_ORIGINAL, FORM_EXPANDED, FORM_REWRITTEN)


def clamp_similarity(value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value) or value < 0:
        return 0.0
    return min(value, 1.0)


def _submit(pool: ThreadPoolExecutor, fn, *args) -> Future:
    # worker threads do not inherit context vars (correlation id)
    return pool.submit(contextvars.copy_context().run, fn, *args)


@dataclass
class SearchOutcome:
    candidates: List[RetrievedChunk]
    rewritten_query: Optional[str] = None
    signals: Dict[str, int] = field(default_factory=dict)  # signal -> row count
    failed_signals: List[str] = field(default_factory=list)
    merged_count: int = 0


def merge_signal_rows(
    results: List[Tuple[str, List[SearchRow]]],
    fulltext_rows: Optional[List[SearchRow]] = None,
    fulltext_weight: float = 0.5,
) -> List[RetrievedChunk]:
    """
    Merge rows from every signal into one candidate per id.

    Similarity is the maximum over the vector signals, never an average, so
    adding a signal can only raise a candidate's similarity. Full-text rows
    carry no score and never touch similarity: rank ``i`` of ``n`` is recorded
    as ``text_rank = (n - i) / n`` and ``lexical_score = fulltext_weight *
    text_rank``, which stands in for similarity only on full-text-only hits.
    """
    merged: Dict[str, RetrievedChunk] = {}

    def _absorb(label: str, row: SearchRow) -> RetrievedChunk:
        existing = merged.get(row.id)
        if existing is None:
            existing = RetrievedChunk(
                id=row.id,
                text=row.text,
                similarity=0.0,
                metadata=dict(row.metadata),
                vector_match=False,
            )
            merged[row.id] = existing
        if label not in existing.matched_forms:
            existing.matched_forms.append(label)
        return existing

    for label, rows in results:
        for row in rows:
            chunk = _absorb(label, row)
            chunk.similarity = max(chunk.similarity, clamp_similarity(row.similarity))
            chunk.vector_match = True

    rows = fulltext_rows or []
    n = len(rows)
    for i, row in enumerate(rows):
        chunk = _absorb(SIGNAL_FULLTEXT, row)
        chunk.text_rank = max(chunk.text_rank, (n - i) / n)
        chunk.lexical_score = clamp_similarity(fulltext_weight * chunk.text_rank)

    return sorted(merged.values(), key=lambda c: (-c.match_score, c.id))


class MultiSignalRetriever:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        fulltext_index: Optional[FullTextIndex] = None,
        rewriter: Optional[QueryRewriter] = None,
        config: Optional[SearchConfig] = None,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.fulltext_index = fulltext_index
        self.rewriter = rewriter
        self.config = config or get_config().search

    def _vector_search(
        self,
        signal: str,
        text: str,
        tenant_id: str,
        threshold: float,
        limit: int,
        namespace: str = PRIMARY,
        multiplier: float = 1.0,
    ) -> List[SearchRow]:
        start = time.time()
        try:
            vector = self.embedder.embed_query(text)
            rows = self.vector_store.vector_search(vector, tenant_id, threshold, limit, namespace)
        except Exception:
            search_calls_total.labels(signal=signal, status="error").inc()
            raise
        finally:
            search_latency_ms.labels(signal=signal).observe((time.time() - start) * 1000)
        search_calls_total.labels(signal=signal, status="success").inc()
        if multiplier != 1.0:
            for row in rows:
                row.similarity = clamp_similarity(row.similarity) * multiplier
        return rows

    def _text_search(self, text: str, tenant_id: str, limit: int) -> List[SearchRow]:
        start = time.time()
        try:
            rows = self.fulltext_index.text_search(text, tenant_id, limit)
        except Exception:
            search_calls_total.labels(signal=SIGNAL_FULLTEXT, status="error").inc()
            raise
        finally:
            search_latency_ms.labels(signal=SIGNAL_FULLTEXT).observe((time.time() - start) * 1000)
        search_calls_total.labels(signal=SIGNAL_FULLTEXT, status="success").inc()
        return rows

    def _rewrite(self, query: str, tenant_id: str) -> Optional[str]:
        if self.rewriter is None:
            return None
        try:
            return self.rewriter.rewrite(query, tenant_id)
        except Exception as exc:
            # rewriting is an optional signal
            logger.warning("query_rewrite_error", error=str(exc))
            return None

    def search(
        self,
        expansion: QueryExpansion,
        tenant_id: str,
        similarity_threshold: Optional[float] = None,
        match_count: Optional[int] = None,
        similarity_floor: Optional[float] = None,
    ) -> SearchOutcome:
        cfg = self.config
        threshold = cfg.match_threshold if similarity_threshold is None else similarity_threshold
        count = cfg.match_count if match_count is None else match_count
        floor = cfg.similarity_floor if similarity_floor is None else similarity_floor
        original = expansion.original

        futures: Dict[str, Future] = {}
        with ThreadPoolExecutor(max_workers=cfg.max_workers, thread_name_prefix="retrieval") as pool:
            rewrite_future = _submit(pool, self._rewrite, original, tenant_id)

            futures[FORM_ORIGINAL] = _submit(
                pool, self._vector_search, FORM_ORIGINAL, original, tenant_id, threshold, count
            )
            if cfg.auxiliary_enabled:
                futures[SIGNAL_AUXILIARY] = _submit(
                    pool,
                    self._vector_search,
                    SIGNAL_AUXILIARY,
                    original,
                    tenant_id,
                    threshold,
                    math.ceil(count / 2),
                    AUXILIARY,
                    cfg.auxiliary_multiplier,
                )
            if cfg.fulltext_enabled and self.fulltext_index is not None:
                futures[SIGNAL_FULLTEXT] = _submit(
                    pool, self._text_search, original, tenant_id, count
                )
            forms = {original.lower()}
            if expansion.has_expansions and expansion.expanded_query.lower() not in forms:
                forms.add(expansion.expanded_query.lower())
                futures[FORM_EXPANDED] = _submit(
                    pool,
                    self._vector_search,
                    FORM_EXPANDED,
                    expansion.expanded_query,
                    tenant_id,
                    threshold,
                    count,
                )

            rewritten = rewrite_future.result()
            if rewritten and rewritten.strip().lower() not in forms:
                futures[FORM_REWRITTEN] = _submit(
                    pool, self._vector_search, FORM_REWRITTEN, rewritten, tenant_id, threshold, count
                )
            else:
                rewritten = None

            wait(list(futures.values()))

        results: List[Tuple[str, List[SearchRow]]] = []
        fulltext_rows: List[SearchRow] = []
        outcome = SearchOutcome(candidates=[], rewritten_query=rewritten)
        for signal, future in futures.items():
            exc = future.exception()
            if exc is not None:
                outcome.failed_signals.append(signal)
                logger.warning(
                    "search_signal_failed",
                    signal=signal,
                    tenant_id=tenant_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            rows = future.result()
            outcome.signals[signal] = len(rows)
            if signal == SIGNAL_FULLTEXT:
                fulltext_rows = rows
            else:
                results.append((signal, rows))

        attempted_primary = [s for s in futures if s in PRIMARY_FORMS]
        if all(s in outcome.failed_signals for s in attempted_primary):
            raise RetrievalError(
                "All primary vector searches failed",
                details={"tenant_id": tenant_id, "signals": attempted_primary},
            )

        logger.info(
            "search_fanout_complete",
            tenant_id=tenant_id,
            signals=outcome.signals,
            failed=outcome.failed_signals,
            rewritten=rewritten is not None,
        )

        merged = merge_signal_rows(results, fulltext_rows, cfg.fulltext_weight)
        outcome.merged_count = len(merged)
        outcome.candidates = [c for c in merged if c.match_score >= floor]
        retrieval_candidates.labels(stage="merged").observe(len(merged))
        retrieval_candidates.labels(stage="floored").observe(len(outcome.candidates))

        logger.info(
            "merge_complete",
            merged=len(merged),
            kept=len(outcome.candidates),
            floor=floor,
        )
        return outcome
