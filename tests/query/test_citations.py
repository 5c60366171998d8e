from civicrag.query.citations import (
    assign_sources,
    build_highlight,
    clean_document_title,
    dedupe_sources,
    format_source_citation,
    read_int,
    to_source_reference,
    truncate_snippet,
)
from civicrag.query.results import RetrievedChunk


def test_clean_vendor_suffixes():
    assert clean_document_title("Frequently Asked Questions - CivicPlus.CMS.FAQ") == (
        "Frequently Asked Questions"
    )
    assert clean_document_title("Transfer Station • Needham • CivicEngage") == "Transfer Station"


def test_town_suffix_removed_only_when_town_given():
    title = "Recycling - Town of Needham, MA"

    assert clean_document_title(title, "Needham") == "Recycling"
    assert clean_document_title(title) == title


def test_short_result_keeps_original_title():
    assert clean_document_title("FAQ - CivicPlus.CMS.FAQ") == "FAQ"
    assert clean_document_title("Needham", "Needham") == "Needham"


def test_citation_formats():
    base = {"document_title": "Zoning By-Law"}

    assert format_source_citation(
        {**base, "section_number": "6.1", "section_title": "Setbacks", "effective_date": "2024-05-01"}
    ) == "[Zoning By-Law, 6.1 Setbacks (2024-05-01)]"
    assert format_source_citation({**base, "section_title": "Introduction"}) == "[Zoning By-Law]"
    assert format_source_citation({**base, "document_date": "2023"}) == "[Zoning By-Law (2023)]"
    assert format_source_citation({}) == "[Unknown Document]"


def test_source_reference_fields():
    ref = to_source_reference(
        {
            "document_title": "Board of Health Regulations",
            "document_url": "https://example.gov/boh",
            "section_number": "4",
            "page_number": "12",
        },
        source_id="S3",
    )

    assert ref.source_id == "S3"
    assert ref.section == "4"
    assert ref.page_number == 12
    assert ref.document_url == "https://example.gov/boh"


def test_read_int_ignores_booleans():
    assert read_int({"page": True, "page_number": 3}, ["page", "page_number"]) == 3


def _chunk(chunk_id, title) -> RetrievedChunk:
    return RetrievedChunk(
        id=chunk_id, text="", similarity=0.5, metadata={"document_title": title}
    )


def test_assign_and_dedupe_sources():
    chunks = [
        _chunk("1", "Transfer Station • Needham • CivicEngage"),
        _chunk("2", "Transfer Station"),
        _chunk("3", "Untitled"),
        _chunk("4", "Fee Schedule"),
    ]

    assign_sources(chunks, town="Needham")
    sources = dedupe_sources(chunks)

    assert [c.source.source_id for c in chunks] == ["S1", "S2", "S3", "S4"]
    assert [s.document_title for s in sources] == ["Transfer Station", "Fee Schedule"]


def test_dedupe_limit():
    chunks = [_chunk(str(i), f"Document {i}") for i in range(6)]
    assign_sources(chunks)

    assert len(dedupe_sources(chunks)) == 4
    assert len(dedupe_sources(chunks, limit=2)) == 2


def test_highlight_centres_on_first_term():
    text = "Intro words. " * 20 + "The transfer station opens at 7am."

    highlight = build_highlight(text, "transfer station hours")

    assert "transfer station opens" in highlight
    assert highlight.startswith("…")


def test_highlight_without_match_returns_opening():
    assert build_highlight("Short text here.", "zoning") == "Short text here."


def test_truncate_snippet_at_word_boundary():
    assert truncate_snippet("alpha beta gamma", 12) == "alpha beta…"
    assert truncate_snippet("short", 12) == "short"
