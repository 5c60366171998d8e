from types import SimpleNamespace

import pytest

from civicrag.query.stores import (
    AUXILIARY,
    ChunkStore,
    FullTextIndex,
    QdrantChunkStore,
    VectorStore,
    point_id,
    text_search_terms,
)
from civicrag.shared.config import SearchConfig
from civicrag.shared.errors import SearchBackendError
from civicrag.shared.models import Chunk, ChunkMetadata, DocumentType


class FakeQdrantClient:
    def __init__(self, points=None, error=None):
        self.points = points or []
        self.error = error
        self.queries = []
        self.scrolls = []
        self.deleted = []
        self.upserted = []
        self.events = []
        self.existing = set()
        self.created = []
        self.indexes = []

    def query_points(self, **kwargs):
        self.queries.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(points=self.points)

    def scroll(self, **kwargs):
        self.scrolls.append(kwargs)
        if self.error:
            raise self.error
        return self.points, None

    def delete(self, **kwargs):
        self.events.append("delete")
        self.deleted.append(kwargs)

    def upsert(self, **kwargs):
        self.events.append("upsert")
        self.upserted.append(kwargs)

    def collection_exists(self, collection_name):
        return collection_name in self.existing

    def create_collection(self, **kwargs):
        self.created.append(kwargs["collection_name"])

    def create_payload_index(self, **kwargs):
        self.indexes.append((kwargs["collection_name"], kwargs["field_name"]))


def _point(pid, score=None, **payload):
    return SimpleNamespace(id=pid, score=score, payload=payload)


def _store(client) -> QdrantChunkStore:
    return QdrantChunkStore(client=client, config=SearchConfig())


def _tenant_values(query_filter):
    return [c.match.value for c in query_filter.must if c.key == "tenant_id"]


def test_store_satisfies_protocols():
    store = _store(FakeQdrantClient())

    assert isinstance(store, VectorStore)
    assert isinstance(store, FullTextIndex)
    assert isinstance(store, ChunkStore)


def test_vector_search_filters_by_tenant():
    client = FakeQdrantClient(
        [_point("p1", 0.82, text="Setbacks", chunk_id="ZON-6.1", metadata={"chunk_index": 3})]
    )

    rows = _store(client).vector_search([0.1, 0.2], "needham", 0.5, 10)

    call = client.queries[0]
    assert call["collection_name"] == "document_chunks"
    assert call["score_threshold"] == 0.5
    assert call["limit"] == 10
    assert _tenant_values(call["query_filter"]) == ["needham"]
    assert rows[0].id == "p1"
    assert rows[0].similarity == 0.82
    assert rows[0].metadata == {"chunk_index": 3, "chunk_id": "ZON-6.1"}


def test_auxiliary_rows_are_mapped_from_content_items():
    client = FakeQdrantClient(
        [
            _point(
                "n1",
                0.7,
                title="Road closure",
                url="https://example.gov/news/1",
                content="Long body " * 400,
                summary="Central Ave closed Monday.",
            ),
            _point("n2", 0.6, title="Only a title"),
        ]
    )

    rows = _store(client).vector_search([0.1], "needham", 0.5, 5, namespace=AUXILIARY)

    assert client.queries[0]["collection_name"] == "content_items"
    assert rows[0].text == "Central Ave closed Monday."
    assert rows[0].metadata["document_title"] == "Road closure"
    assert rows[0].metadata["content_type"] == "external_news"
    assert rows[1].text == "Only a title"


def test_backend_failure_is_wrapped():
    store = _store(FakeQdrantClient(error=RuntimeError("connection refused")))

    with pytest.raises(SearchBackendError) as exc_info:
        store.vector_search([0.1], "needham", 0.5, 5)
    assert exc_info.value.details["signal"] == "vector_primary"


def test_text_search_orders_by_matched_terms():
    client = FakeQdrantClient(
        [
            _point("p1", text="fence permit"),
            _point("p2", text="fence height permit requirements"),
        ]
    )

    rows = _store(client).text_search("Fence height permit?", "needham", 1)

    assert [r.id for r in rows] == ["p2"]
    assert rows[0].similarity is None
    call = client.scrolls[0]
    assert call["limit"] == 4
    assert len(call["scroll_filter"].should) == 3


def test_text_search_without_terms_skips_the_backend():
    client = FakeQdrantClient()

    assert _store(client).text_search("a an", "needham", 5) == []
    assert client.scrolls == []


def test_text_search_terms():
    assert text_search_terms("Fence, fence height? of") == ["fence", "height"]


def test_point_ids_are_stable_and_tenant_scoped():
    assert point_id("needham", "doc", "ZON-1") == point_id("needham", "doc", "ZON-1")
    assert point_id("needham", "doc", "ZON-1") != point_id("dedham", "doc", "ZON-1")


def _chunk(chunk_id: str) -> Chunk:
    metadata = ChunkMetadata(
        document_id="doc-1",
        document_title="Zoning By-Law",
        document_url="https://example.gov/zoning",
        document_type=DocumentType.ZONING_BYLAWS,
    )
    return Chunk(
        chunk_id=chunk_id, document_id="doc-1", text="Setbacks", metadata=metadata, token_count=1
    )


def test_replace_deletes_then_upserts():
    client = FakeQdrantClient()

    _store(client).replace_document_chunks(
        "doc-1", "needham", [_chunk("ZON-1"), _chunk("ZON-2")], [[0.1], [0.2]]
    )

    assert client.events == ["delete", "upsert"]
    points = client.upserted[0]["points"]
    assert [p.payload["chunk_id"] for p in points] == ["ZON-1", "ZON-2"]
    assert points[0].payload["tenant_id"] == "needham"
    assert points[0].payload["metadata"]["document_type"] == "zoning_bylaws"
    assert points[0].id == point_id("needham", "doc-1", "ZON-1")


def test_ensure_collections_creates_missing_and_indexes_text():
    client = FakeQdrantClient()
    client.existing = {"content_items"}

    _store(client).ensure_collections(dims=1536)

    assert client.created == ["document_chunks"]
    assert ("document_chunks", "tenant_id") in client.indexes
    assert ("content_items", "tenant_id") in client.indexes
    assert ("document_chunks", "text") in client.indexes
    assert ("content_items", "text") not in client.indexes
