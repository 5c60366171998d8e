"""Query-time retrieval: expansion, multi-signal search, reranking and selection."""

from civicrag.query.engine import RetrievalEngine, RetrievalOptions
from civicrag.query.results import RetrievedChunk, SourceReference

__all__ = ["RetrievalEngine", "RetrievalOptions", "RetrievedChunk", "SourceReference"]
