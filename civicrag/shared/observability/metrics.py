# Prometheus metrics for chunking and retrieval

from prometheus_client import Counter, Histogram, Info, generate_latest

from ..config import Config
from .logging import get_logger

logger = get_logger(__name__)

service_info = Info("civicrag_service", "civicrag build information")

# ===== Chunking metrics =====
chunks_produced_total = Counter(
    "chunks_produced_total",
    "Chunks produced by the chunker",
    ["document_type"],
)

oversized_chunks_total = Counter(
    "oversized_chunks_total",
    "Chunks that exceed their policy budget because one paragraph does",
    ["document_type"],
)

safety_splits_total = Counter(
    "safety_splits_total",
    "Chunks split again to fit the embedding model's hard token limit",
)

chunking_latency_ms = Histogram(
    "chunking_latency_ms",
    "Time to chunk one document in milliseconds",
    ["document_type"],
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000, 2500),
)

# ===== Embedding metrics =====
embedding_request_total = Counter(
    "embedding_request_total",
    "Embedding requests",
    ["model_id", "status"],
)

embedding_cache_total = Counter(
    "embedding_cache_total",
    "Query embedding cache lookups",
    ["result"],
)

# ===== Search metrics =====
search_calls_total = Counter(
    "search_calls_total",
    "Individual search calls issued by the multi-signal retriever",
    ["signal", "status"],
)

search_latency_ms = Histogram(
    "search_latency_ms",
    "Latency of one search call in milliseconds",
    ["signal"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
)

retrieval_candidates = Histogram(
    "retrieval_candidates",
    "Candidate counts at each retrieval stage",
    ["stage"],
    buckets=(0, 1, 5, 10, 20, 30, 50, 75, 100, 150),
)

retrieval_latency_ms = Histogram(
    "retrieval_latency_ms",
    "End-to-end retrieve() latency in milliseconds",
    buckets=(25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

retrieval_requests_total = Counter(
    "retrieval_requests_total",
    "retrieve() calls",
    ["status"],
)

# ===== Reranking metrics =====
rerank_request_total = Counter(
    "rerank_request_total",
    "Total cross-encoder requests",
    ["model_id", "status"],
)

rerank_error_total = Counter(
    "rerank_error_total",
    "Total cross-encoder errors",
    ["model_id", "error_type"],
)

rerank_latency_ms = Histogram(
    "rerank_latency_ms",
    "Cross-encoder latency in milliseconds",
    ["model_id"],
    buckets=(10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
)

rerank_fallback_total = Counter(
    "rerank_fallback_total",
    "Queries scored by the formula alone after a cross-encoder failure",
    ["reason"],
)


def setup_metrics(config: Config) -> None:
    """Record service info for the running configuration."""
    logger.info("metrics_setup", app=config.app.name)
    service_info.info(
        {
            "version": config.app.version,
            "environment": config.app.environment,
            "embedding_model": config.embedding.model,
        }
    )


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus exposition format.

    Returns:
        Metrics as bytes
    """
    return generate_latest()
