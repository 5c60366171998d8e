"""Ingestion: boilerplate stripping, type detection, chunking and the write path."""

from civicrag.ingestion.chunker import DocumentChunker
from civicrag.ingestion.document_types import (
    CHUNKING_POLICIES,
    BoundaryStrategy,
    ChunkingPolicy,
    detect_document_type,
)

__all__ = [
    "CHUNKING_POLICIES",
    "BoundaryStrategy",
    "ChunkingPolicy",
    "DocumentChunker",
    "detect_document_type",
]
