from civicrag.ingestion.annotator import (
    DocumentContext,
    DraftChunk,
    annotate,
    content_hash,
    extract_applies_to,
    extract_cross_references,
    extract_keywords,
)
from civicrag.shared.models import ChunkType, DocumentType

CTX = DocumentContext(
    document_id="zoning-2024",
    document_url="https://example.gov/zoning",
    document_title="Zoning By-Law",
    document_type=DocumentType.ZONING_BYLAWS,
    department="Planning",
    effective_date="2024-05-06",
)


def test_cross_references():
    text = (
        "See §12.1 and Section 4.2, per Article 3 of the General Bylaws. "
        "Chapter 4 applies. See section 4.2 again."
    )

    refs = extract_cross_references(text)

    assert refs == ("§12.1", "Section 4.2", "Article 3 of the General Bylaws", "Chapter 4", "section 4.2")


def test_keywords_in_family_order():
    text = "Setbacks and FAR limits apply; permit fees are due. Keep far away."

    assert extract_keywords(text) == ("setback", "far", "permit", "fee")


def test_applies_to_codes_then_districts():
    text = "Allowed in SRB and GRA districts, and in Single  Residence zones."

    assert extract_applies_to(text) == ("SRB", "GRA", "Single Residence")


def test_annotate_sequences_the_whole_document():
    drafts = [
        DraftChunk(text="Intro text", token_count=2, section_title="Introduction"),
        DraftChunk(text="Front setback 20 feet", token_count=4, section_number="6.1", section_title="6.1 Setbacks"),
        DraftChunk(text="Side setback 10 feet", token_count=4, section_number="6.1", section_title="6.1 Setbacks"),
        DraftChunk(text="Heights", token_count=1, section_number="6.2", section_title="6.2 Height"),
    ]

    chunks = annotate(drafts, CTX)

    assert [c.chunk_id for c in chunks] == ["ZON-0", "ZON-6.1", "ZON-6.1-p2", "ZON-6.2"]
    assert [c.metadata.chunk_index for c in chunks] == [0, 1, 2, 3]
    assert {c.metadata.total_chunks for c in chunks} == {4}
    assert all(c.document_id == "zoning-2024" for c in chunks)
    assert chunks[1].metadata.section_number == "6.1"
    assert chunks[0].metadata.section_number is None
    assert chunks[1].metadata.effective_date == "2024-05-06"
    assert chunks[1].metadata.chunk_type == ChunkType.REGULATION
    assert chunks[1].metadata.content_hash == content_hash("Front setback 20 feet")


def test_table_chunk_type():
    table = "| Zone | Front |\n|---|---|\n| SRB | 20 ft |"

    (chunk,) = annotate([DraftChunk(text=table, token_count=9)], CTX)

    assert chunk.metadata.contains_table
    assert chunk.metadata.chunk_type == ChunkType.TABLE
    assert chunk.metadata.applies_to == ("SRB",)


def test_oversized_flag_carries_through():
    (chunk,) = annotate([DraftChunk(text="x", token_count=2000, oversized=True)], CTX)

    assert chunk.metadata.oversized
    assert chunk.token_count == 2000


def test_payload_is_json_safe():
    (chunk,) = annotate([DraftChunk(text="Section 4 applies", token_count=3)], CTX)

    payload = chunk.metadata.to_payload()

    assert payload["document_type"] == "zoning_bylaws"
    assert payload["chunk_type"] == "regulation"
    assert payload["cross_references"] == ["Section 4"]
