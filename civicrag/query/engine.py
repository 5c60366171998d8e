"""
Retrieval engine: the single query-time entry point.

    engine = RetrievalEngine.from_config()
    chunks = engine.retrieve("when is the dump open", "needham")

Pipeline: expand -> multi-signal search -> rerank -> diversity selection ->
source references. The engine keeps no per-query state; one instance serves
concurrent callers.
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from civicrag.providers.embeddings.base import EmbeddingProvider
from civicrag.providers.factory import ProviderFactory
from civicrag.providers.llm.query_rewriter import QueryRewriter, tenant_display_name
from civicrag.providers.rerank.base import RerankProvider
from civicrag.query.citations import assign_sources
from civicrag.query.expansion import QueryExpander
from civicrag.query.ranking import Reranker, ScoringWeights
from civicrag.query.results import RetrievedChunk
from civicrag.query.retrieval import MultiSignalRetriever
from civicrag.query.selection import select_diverse
from civicrag.query.stores import FullTextIndex, QdrantChunkStore, VectorStore
from civicrag.shared.config import Config, Settings, get_config
from civicrag.shared.errors import RetrievalError
from civicrag.shared.observability import correlation_scope, get_logger
from civicrag.shared.observability.metrics import retrieval_latency_ms, retrieval_requests_total

logger = get_logger(__name__)


@dataclass
class RetrievalOptions:
    """Per-call overrides; None keeps the configured value."""

    similarity_threshold: Optional[float] = None
    similarity_floor: Optional[float] = None
    match_count: Optional[int] = None
    result_count: Optional[int] = None
    recency_weight: Optional[float] = None
    authority_weight: Optional[float] = None
    source_boost: Optional[Dict[str, float]] = None
    expand_siblings: Optional[bool] = None
    max_per_document: Optional[int] = None


def _pick(override, default):
    return default if override is None else override


class RetrievalEngine:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        vector_store: VectorStore,
        fulltext_index: Optional[FullTextIndex] = None,
        rewriter: Optional[QueryRewriter] = None,
        rerank_provider: Optional[RerankProvider] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.expander = QueryExpander(self.config)
        self.retriever = MultiSignalRetriever(
            embedder=embedder,
            vector_store=vector_store,
            fulltext_index=fulltext_index,
            rewriter=rewriter,
            config=self.config.search,
        )
        self.reranker = Reranker(
            provider=rerank_provider,
            weights=ScoringWeights.from_config(self.config.ranking),
            timeout_seconds=self.config.reranker.timeout_seconds,
        )

    @classmethod
    def from_config(
        cls, config: Optional[Config] = None, settings: Optional[Settings] = None
    ) -> "RetrievalEngine":
        """Wire the configured providers and the Qdrant store."""
        config = config or get_config()
        store = QdrantChunkStore(config=config.search)
        return cls(
            embedder=ProviderFactory.create_embedding_provider(config, settings),
            vector_store=store,
            fulltext_index=store,
            rewriter=ProviderFactory.create_query_rewriter(config, settings),
            rerank_provider=ProviderFactory.create_rerank_provider(config, settings),
            config=config,
        )

    def retrieve(
        self,
        query_text: str,
        tenant_id: str,
        options: Optional[RetrievalOptions] = None,
    ) -> List[RetrievedChunk]:
        """
        Return the final, diverse, ranked chunks for ``query_text``.

        Raises:
            RetrievalError: if every primary-index vector search failed
        """
        query = (query_text or "").strip()
        if not query:
            return []

        options = options or RetrievalOptions()
        start_time = time.time()
        with correlation_scope(tenant_id=tenant_id):
            try:
                results = self._retrieve(query, tenant_id, options)
            except RetrievalError:
                retrieval_requests_total.labels(status="error").inc()
                logger.error("retrieval_failed")
                raise
            finally:
                retrieval_latency_ms.observe((time.time() - start_time) * 1000)
        retrieval_requests_total.labels(status="success").inc()
        return results

    def _retrieve(
        self, query: str, tenant_id: str, options: RetrievalOptions
    ) -> List[RetrievedChunk]:
        search_cfg = self.config.search
        selection_cfg = self.config.selection

        expansion = self.expander.expand(query, tenant_id)
        logger.info(
            "retrieval_started",
            query_length=len(query),
            synonyms=len(expansion.synonyms),
            intent_keywords=len(expansion.intent_keywords),
            department=expansion.department,
        )

        outcome = self.retriever.search(
            expansion,
            tenant_id,
            similarity_threshold=options.similarity_threshold,
            match_count=options.match_count,
            similarity_floor=options.similarity_floor,
        )

        weights = self.reranker.weights.with_overrides(
            recency=options.recency_weight,
            authority=options.authority_weight,
            source_boost=options.source_boost,
        )
        ranked = self.reranker.rank(
            outcome.candidates, expansion.expanded_query, expansion.department, weights
        )

        selected = select_diverse(
            ranked,
            result_count=_pick(options.result_count, search_cfg.result_count),
            max_per_document=_pick(options.max_per_document, selection_cfg.max_per_document),
            expand_siblings=_pick(options.expand_siblings, selection_cfg.expand_siblings),
            primary_fraction=selection_cfg.primary_fraction,
            sibling_window=selection_cfg.sibling_window,
        )
        assign_sources(selected, town=tenant_display_name(tenant_id))

        logger.info(
            "retrieval_complete",
            candidates=len(outcome.candidates),
            returned=len(selected),
            reranked=any(c.cross_encoder_score is not None for c in selected),
            siblings=sum(1 for c in selected if c.is_sibling),
        )
        return selected
