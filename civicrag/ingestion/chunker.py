"""
Document chunker: boundary splitting, token-budgeted packing and annotation.

    chunker = DocumentChunker()
    chunks = chunker.chunk_document(
        text,
        document_id="doc-1",
        document_url="https://example.gov/zoning",
        document_title="Zoning By-Law",
    )

The chunker holds no per-document state, so one instance can serve several
threads.
"""

import time
from typing import List, Optional

from civicrag.ingestion.annotator import DocumentContext, DraftChunk, annotate
from civicrag.ingestion.boilerplate import strip_boilerplate
from civicrag.ingestion.boundaries import Section, split_at_boundaries
from civicrag.ingestion.document_types import (
    ChunkingPolicy,
    detect_document_type,
    resolve_policy,
)
from civicrag.ingestion.packer import PackedChunk, enforce_token_limit, pack_section
from civicrag.providers.tokenizer_service import TokenizerService, get_tokenizer_service
from civicrag.shared.config import ChunkingConfig, get_config
from civicrag.shared.models import Chunk, DocumentType
from civicrag.shared.observability import get_logger
from civicrag.shared.observability.metrics import (
    chunking_latency_ms,
    chunks_produced_total,
    oversized_chunks_total,
    safety_splits_total,
)

logger = get_logger(__name__)


class DocumentChunker:
    def __init__(
        self,
        tokenizer: Optional[TokenizerService] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        self.tokenizer = tokenizer or get_tokenizer_service()
        self.config = config or get_config().chunking

    def policy_for(self, doc_type: DocumentType) -> ChunkingPolicy:
        return resolve_policy(doc_type, self.config.policies)

    def chunk_document(
        self,
        text: str,
        *,
        document_id: str,
        document_url: str,
        document_title: str,
        document_type: Optional[DocumentType] = None,
        department: Optional[str] = None,
        effective_date: Optional[str] = None,
        last_amended: Optional[str] = None,
        document_date: Optional[str] = None,
        page_number: Optional[int] = None,
    ) -> List[Chunk]:
        """
        Chunk one document.

        Returns an empty list for empty (or boilerplate-only) input; callers
        must not persist a zero-chunk result.
        """
        start_time = time.time()

        if self.config.strip_boilerplate:
            text = strip_boilerplate(text or "", self.config.boilerplate_hosts)
        if not text or not text.strip():
            logger.info("chunking_skipped_empty", document_id=document_id)
            return []

        doc_type = document_type or detect_document_type(
            document_title, text, self.config.search_window_chars
        )
        policy = self.policy_for(doc_type)

        drafts: List[DraftChunk] = []
        for section in split_at_boundaries(text, policy.strategy, self.config.intro_title):
            if section.is_table:
                # tables are atomic: one chunk whatever the size
                packed = [self._whole(section.content, policy)]
            else:
                packed = pack_section(section.content, policy, self.tokenizer)
            for piece in packed:
                drafts.extend(self._fit_embedding_limit(piece, section))

        ctx = DocumentContext(
            document_id=document_id,
            document_url=document_url,
            document_title=document_title,
            document_type=doc_type,
            department=department,
            effective_date=effective_date,
            last_amended=last_amended,
            document_date=document_date,
            page_number=page_number,
        )
        chunks = annotate(drafts, ctx)

        oversized = sum(1 for c in chunks if c.metadata.oversized)
        chunks_produced_total.labels(document_type=doc_type.value).inc(len(chunks))
        if oversized:
            oversized_chunks_total.labels(document_type=doc_type.value).inc(oversized)
        latency_ms = (time.time() - start_time) * 1000
        chunking_latency_ms.labels(document_type=doc_type.value).observe(latency_ms)

        logger.info(
            "chunking_complete",
            document_id=document_id,
            document_type=doc_type.value,
            strategy=policy.strategy.value,
            tokenizer=self.tokenizer.backend_name,
            chunks=len(chunks),
            oversized=oversized,
            latency_ms=round(latency_ms, 2),
        )
        return chunks

    def _whole(self, content: str, policy: ChunkingPolicy) -> PackedChunk:
        count = self.tokenizer.count_tokens(content)
        return PackedChunk(text=content, token_count=count, oversized=count > policy.max_tokens)

    def _fit_embedding_limit(
        self, piece: PackedChunk, section: Section
    ) -> List[DraftChunk]:
        limit = self.config.embedding_token_limit
        if piece.token_count <= limit:
            texts = [piece.text]
        else:
            texts = enforce_token_limit(
                piece.text, limit, self.config.safety_overlap_tokens, self.tokenizer
            )
            safety_splits_total.inc()
            logger.warning(
                "embedding_limit_split",
                section=section.title or None,
                token_count=piece.token_count,
                pieces=len(texts),
                limit=limit,
            )

        return [
            DraftChunk(
                text=text,
                token_count=(
                    piece.token_count if len(texts) == 1 else self.tokenizer.count_tokens(text)
                ),
                section_number=section.section_number,
                section_title=section.title,
                oversized=piece.oversized,
            )
            for text in texts
        ]
