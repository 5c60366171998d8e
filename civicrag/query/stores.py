"""
Storage seams for retrieval and ingestion.

The engine depends only on the ``VectorStore`` / ``FullTextIndex`` protocols
and the write path on ``ChunkStore``; ``QdrantChunkStore`` implements all
three over two Qdrant collections:

- primary: chunks produced by the chunker, one point per chunk;
- auxiliary: externally sourced content items (news, RSS), searched as a
  down-weighted extra signal.

Every point carries a ``tenant_id`` payload field and every read filters on it.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchText,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    TextIndexParams,
    TextIndexType,
    TokenizerType,
    VectorParams,
)

from civicrag.shared.config import SearchConfig, get_config, get_settings
from civicrag.shared.errors import SearchBackendError
from civicrag.shared.models import Chunk
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)

PRIMARY = "primary"
AUXILIARY = "auxiliary"
AUXILIARY_CONTENT_TYPE = "external_news"
AUXILIARY_TEXT_LIMIT = 1500


@dataclass
class SearchRow:
    """One hit from a store. ``similarity`` is None for full-text hits."""

    id: str
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None


@runtime_checkable
class VectorStore(Protocol):
    def vector_search(
        self,
        query_vector: Sequence[float],
        tenant_id: str,
        similarity_threshold: float,
        max_results: int,
        namespace: str = PRIMARY,
    ) -> List[SearchRow]:
        ...


@runtime_checkable
class FullTextIndex(Protocol):
    def text_search(self, query_text: str, tenant_id: str, max_results: int) -> List[SearchRow]:
        """Rows in rank order, best first. Unscored."""
        ...


@runtime_checkable
class ChunkStore(Protocol):
    def replace_document_chunks(
        self,
        document_id: str,
        tenant_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        ...

    def delete_document(self, document_id: str, tenant_id: str) -> None:
        ...


def point_id(tenant_id: str, document_id: str, chunk_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"{tenant_id}:{document_id}:{chunk_id}"))


def text_search_terms(query_text: str, min_length: int = 3) -> List[str]:
    terms = []
    for raw in query_text.lower().split():
        term = raw.strip(".,;:!?\"'()[]{}")
        if len(term) >= min_length and term not in terms:
            terms.append(term)
    return terms


def _tenant_condition(tenant_id: str) -> FieldCondition:
    return FieldCondition(key="tenant_id", match=MatchValue(value=tenant_id))


class QdrantChunkStore:
    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        config: Optional[SearchConfig] = None,
    ):
        if client is None:
            settings = get_settings()
            client = QdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key)
        self.client = client
        self.config = config or get_config().search
        self.collections = {
            PRIMARY: self.config.primary_collection,
            AUXILIARY: self.config.auxiliary_collection,
        }

    def ensure_collections(self, dims: int) -> None:
        """Create missing collections and the payload indexes reads rely on."""
        for name in self.collections.values():
            if not self.client.collection_exists(collection_name=name):
                self.client.create_collection(
                    collection_name=name,
                    vectors_config=VectorParams(size=dims, distance=Distance.COSINE),
                )
                logger.info("qdrant_collection_created", collection=name, dims=dims)
            for field_name in ("tenant_id", "document_id"):
                self.client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD,
                )
        self.client.create_payload_index(
            collection_name=self.collections[PRIMARY],
            field_name="text",
            field_schema=TextIndexParams(
                type=TextIndexType.TEXT,
                tokenizer=TokenizerType.WORD,
                min_token_len=2,
                lowercase=True,
            ),
        )

    # Reads

    def vector_search(
        self,
        query_vector: Sequence[float],
        tenant_id: str,
        similarity_threshold: float,
        max_results: int,
        namespace: str = PRIMARY,
    ) -> List[SearchRow]:
        collection = self.collections[namespace]
        try:
            response = self.client.query_points(
                collection_name=collection,
                query=list(query_vector),
                query_filter=Filter(must=[_tenant_condition(tenant_id)]),
                limit=max_results,
                score_threshold=similarity_threshold,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as exc:
            raise SearchBackendError(
                f"Vector search on {collection} failed: {exc}",
                signal=f"vector_{namespace}",
            ) from exc

        to_row = self._auxiliary_row if namespace == AUXILIARY else self._chunk_row
        return [to_row(str(point.id), point.payload or {}, point.score) for point in response.points]

    def text_search(self, query_text: str, tenant_id: str, max_results: int) -> List[SearchRow]:
        """
        Keyword search over the primary collection's text index.

        Qdrant full-text conditions filter but do not score, so candidates are
        ordered locally by how many query terms they contain.
        """
        terms = text_search_terms(query_text)
        if not terms:
            return []
        collection = self.collections[PRIMARY]
        try:
            points, _ = self.client.scroll(
                collection_name=collection,
                scroll_filter=Filter(
                    must=[_tenant_condition(tenant_id)],
                    should=[
                        FieldCondition(key="text", match=MatchText(text=term)) for term in terms
                    ],
                ),
                limit=max_results * 4,
                with_payload=True,
                with_vectors=False,
            )
        except Exception as exc:
            raise SearchBackendError(
                f"Full-text search on {collection} failed: {exc}", signal="fulltext"
            ) from exc

        rows = [self._chunk_row(str(p.id), p.payload or {}, None) for p in points]
        rows.sort(key=lambda row: -sum(1 for t in terms if t in row.text.lower()))
        return rows[:max_results]

    @staticmethod
    def _chunk_row(pid: str, payload: Dict[str, Any], score: Optional[float]) -> SearchRow:
        metadata = dict(payload.get("metadata") or {})
        metadata.setdefault("chunk_id", payload.get("chunk_id"))
        return SearchRow(
            id=pid,
            text=payload.get("text", ""),
            metadata=metadata,
            similarity=score,
        )

    @staticmethod
    def _auxiliary_row(pid: str, payload: Dict[str, Any], score: Optional[float]) -> SearchRow:
        content = payload.get("content") or ""
        text = payload.get("summary") or content[:AUXILIARY_TEXT_LIMIT] or payload.get("title", "")
        metadata = dict(payload.get("metadata") or {})
        metadata.update(
            {
                "document_title": payload.get("title"),
                "document_url": payload.get("url"),
                "content_type": payload.get("content_type") or AUXILIARY_CONTENT_TYPE,
                "source_id": payload.get("source_id"),
                "category": payload.get("category"),
                "published_at": payload.get("published_at"),
            }
        )
        return SearchRow(id=pid, text=text, metadata=metadata, similarity=score)

    # Writes

    def _document_filter(self, document_id: str, tenant_id: str) -> Filter:
        return Filter(
            must=[
                _tenant_condition(tenant_id),
                FieldCondition(key="document_id", match=MatchValue(value=document_id)),
            ]
        )

    def delete_document(self, document_id: str, tenant_id: str) -> None:
        self.client.delete(
            collection_name=self.collections[PRIMARY],
            points_selector=FilterSelector(filter=self._document_filter(document_id, tenant_id)),
            wait=True,
        )

    def replace_document_chunks(
        self,
        document_id: str,
        tenant_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[Sequence[float]],
    ) -> None:
        points = [
            PointStruct(
                id=point_id(tenant_id, document_id, chunk.chunk_id),
                vector=list(vector),
                payload={
                    "chunk_id": chunk.chunk_id,
                    "document_id": document_id,
                    "tenant_id": tenant_id,
                    "text": chunk.text,
                    "token_count": chunk.token_count,
                    "metadata": chunk.metadata.to_payload(),
                },
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        self.delete_document(document_id, tenant_id)
        self.client.upsert(
            collection_name=self.collections[PRIMARY], points=points, wait=True
        )
        logger.info(
            "document_chunks_replaced",
            collection=self.collections[PRIMARY],
            document_id=document_id,
            points=len(points),
        )
