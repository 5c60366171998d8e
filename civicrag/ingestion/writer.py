"""
Ingestion write path: embed a document's chunks and replace them in the store.

A document is the unit of replacement. Its previous chunks are removed and the
new set written in one call, so readers never see a mix of two versions from
this writer.
"""

import time
from typing import List, Sequence

from civicrag.providers.embeddings.base import EmbeddingProvider
from civicrag.query.stores import ChunkStore
from civicrag.shared.errors import ChunkingError, EmbeddingError
from civicrag.shared.models import Chunk, Document
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)


class ChunkWriter:
    def __init__(self, embedder: EmbeddingProvider, store: ChunkStore):
        self.embedder = embedder
        self.store = store

    def write_document(
        self, document: Document, chunks: Sequence[Chunk], tenant_id: str
    ) -> int:
        """
        Embed and persist ``chunks`` as the full chunk set of ``document``.

        Returns the number of chunks written.

        Raises:
            ChunkingError: if ``chunks`` is empty or belongs to another document
            EmbeddingError: if the provider returns the wrong number of vectors
        """
        if not chunks:
            raise ChunkingError(
                "Refusing to write a document with zero chunks",
                details={"document_id": document.id},
            )
        foreign = [c.chunk_id for c in chunks if c.document_id != document.id]
        if foreign:
            raise ChunkingError(
                "Chunks belong to a different document",
                details={"document_id": document.id, "chunk_ids": foreign[:5]},
            )

        start_time = time.time()
        vectors: List[List[float]] = self.embedder.embed_documents([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingError(
                f"Embedding count mismatch: {len(vectors)} vectors for {len(chunks)} chunks",
                model=self.embedder.model_id,
            )

        self.store.replace_document_chunks(document.id, tenant_id, list(chunks), vectors)

        logger.info(
            "document_written",
            document_id=document.id,
            tenant_id=tenant_id,
            chunks=len(chunks),
            embedder=self.embedder.provider_name,
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        return len(chunks)

    def delete_document(self, document: Document, tenant_id: str) -> None:
        self.store.delete_document(document.id, tenant_id)
        logger.info("document_deleted", document_id=document.id, tenant_id=tenant_id)
