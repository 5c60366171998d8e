import pytest

from civicrag.ingestion.document_types import (
    CHUNKING_POLICIES,
    BoundaryStrategy,
    ChunkingPolicy,
    chunk_id_prefix,
    chunk_type_for,
    detect_document_type,
    resolve_policy,
)
from civicrag.shared.config import ChunkPolicyConfig
from civicrag.shared.errors import ChunkingError
from civicrag.shared.models import ChunkType, DocumentType


@pytest.mark.parametrize(
    "title,expected",
    [
        ("Zoning By-Law", DocumentType.ZONING_BYLAWS),
        ("General Bylaws of the Town", DocumentType.GENERAL_BYLAWS),
        ("Building Permit Application Guide", DocumentType.BUILDING_PERMITS),
        ("FY25 Fee Schedule", DocumentType.FEE_SCHEDULES),
        ("Annual Budget", DocumentType.BUDGET),
        ("Board of Health Regulations", DocumentType.BOARD_OF_HEALTH),
        ("Recycling Guide", DocumentType.PUBLIC_WORKS),
        ("Minutes of the Select Board", DocumentType.MEETING_MINUTES),
        ("Planning Board Decisions", DocumentType.PLANNING_BOARD),
        ("Welcome", DocumentType.GENERAL),
    ],
)
def test_detect_by_title(title, expected):
    assert detect_document_type(title, "") == expected


def test_first_matching_rule_wins():
    assert detect_document_type("Zoning Bylaw fee schedule", "") == DocumentType.ZONING_BYLAWS


def test_detect_from_content_opening():
    content = "This document sets out the schedule of fees for town services."

    assert detect_document_type("Town Services", content) == DocumentType.FEE_SCHEDULES


def test_content_outside_search_window_is_ignored():
    content = "x" * 2500 + " budget"

    assert detect_document_type("Notes", content) == DocumentType.GENERAL
    assert detect_document_type("Notes", content, window=3000) == DocumentType.BUDGET


def test_abbreviations_match_whole_words_only():
    assert detect_document_type("Replacement PARTS list", "") == DocumentType.GENERAL
    assert detect_document_type("RTS sticker", "") == DocumentType.PUBLIC_WORKS


def test_policy_table():
    zoning = CHUNKING_POLICIES[DocumentType.ZONING_BYLAWS]
    assert (zoning.max_tokens, zoning.overlap_tokens) == (1024, 256)
    assert CHUNKING_POLICIES[DocumentType.FEE_SCHEDULES].strategy == BoundaryStrategy.TABLE_ATOMIC
    assert set(CHUNKING_POLICIES) == set(DocumentType)


def test_resolve_policy_applies_override():
    overrides = {"fee_schedules": ChunkPolicyConfig(max_tokens=512, overlap_tokens=128)}

    policy = resolve_policy(DocumentType.FEE_SCHEDULES, overrides)

    assert policy == ChunkingPolicy(512, 128, BoundaryStrategy.TABLE_ATOMIC)
    assert resolve_policy(DocumentType.BUDGET, overrides) is CHUNKING_POLICIES[DocumentType.BUDGET]


def test_invalid_policy_rejected():
    with pytest.raises(ChunkingError):
        ChunkingPolicy(100, 100, BoundaryStrategy.SECTION_BASED)
    with pytest.raises(ChunkingError):
        ChunkingPolicy(0, 0, BoundaryStrategy.SECTION_BASED)


def test_chunk_type_and_prefix():
    assert chunk_type_for(DocumentType.ZONING_BYLAWS, False) == ChunkType.REGULATION
    assert chunk_type_for(DocumentType.ZONING_BYLAWS, True) == ChunkType.TABLE
    assert chunk_type_for(DocumentType.PUBLIC_WORKS, False) == ChunkType.INFORMATIONAL
    assert chunk_id_prefix(DocumentType.ZONING_BYLAWS) == "ZON"
    assert chunk_id_prefix(DocumentType.FEE_SCHEDULES) == "FEE"
