"""
Document type detection and per-type chunking policies.

Detection is an ordered list of ``(patterns, DocumentType)`` rules evaluated
against the title plus the opening of the content; the first rule with any
matching pattern wins and no match yields ``DocumentType.GENERAL``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Pattern, Sequence, Tuple

from civicrag.shared.config import ChunkPolicyConfig
from civicrag.shared.errors import ChunkingError
from civicrag.shared.models import ChunkType, DocumentType


class BoundaryStrategy(str, Enum):
    SECTION_HEADERS = "section_headers"
    NUMBERED_PARAGRAPHS = "numbered_paragraphs"
    PROCEDURAL_STEPS = "procedural_steps"
    TABLE_ATOMIC = "table_atomic"
    NARRATIVE_DATA_SEPARATION = "narrative_data_separation"
    TOPIC_BASED = "topic_based"
    SECTION_BASED = "section_based"
    AGENDA_ITEMS = "agenda_items"
    ITEM_PROJECT_SEPARATION = "item_project_separation"


@dataclass(frozen=True)
class ChunkingPolicy:
    max_tokens: int
    overlap_tokens: int
    strategy: BoundaryStrategy

    def __post_init__(self):
        if self.max_tokens <= 0:
            raise ChunkingError(
                "max_tokens must be positive", details={"max_tokens": self.max_tokens}
            )
        if not 0 <= self.overlap_tokens < self.max_tokens:
            raise ChunkingError(
                "overlap_tokens must be in [0, max_tokens)",
                details={
                    "max_tokens": self.max_tokens,
                    "overlap_tokens": self.overlap_tokens,
                },
            )


CHUNKING_POLICIES: Dict[DocumentType, ChunkingPolicy] = {
    DocumentType.ZONING_BYLAWS: ChunkingPolicy(1024, 256, BoundaryStrategy.SECTION_HEADERS),
    DocumentType.GENERAL_BYLAWS: ChunkingPolicy(768, 192, BoundaryStrategy.NUMBERED_PARAGRAPHS),
    DocumentType.BUILDING_PERMITS: ChunkingPolicy(512, 128, BoundaryStrategy.PROCEDURAL_STEPS),
    DocumentType.FEE_SCHEDULES: ChunkingPolicy(384, 96, BoundaryStrategy.TABLE_ATOMIC),
    DocumentType.BUDGET: ChunkingPolicy(1280, 320, BoundaryStrategy.NARRATIVE_DATA_SEPARATION),
    DocumentType.BOARD_OF_HEALTH: ChunkingPolicy(768, 192, BoundaryStrategy.TOPIC_BASED),
    DocumentType.PUBLIC_WORKS: ChunkingPolicy(512, 128, BoundaryStrategy.SECTION_BASED),
    DocumentType.MEETING_MINUTES: ChunkingPolicy(768, 192, BoundaryStrategy.AGENDA_ITEMS),
    DocumentType.PLANNING_BOARD: ChunkingPolicy(896, 224, BoundaryStrategy.ITEM_PROJECT_SEPARATION),
    DocumentType.GENERAL: ChunkingPolicy(768, 192, BoundaryStrategy.SECTION_BASED),
}


def _rx(*patterns: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# Order matters: first match wins.
DOCUMENT_TYPE_RULES: Sequence[Tuple[Tuple[Pattern[str], ...], DocumentType]] = (
    (_rx(r"zoning\s*by-?law", r"dimensional\s*requirements", r"zoning\s*regulation"),
     DocumentType.ZONING_BYLAWS),
    (_rx(r"general\s*by-?law", r"town\s*by-?law"),
     DocumentType.GENERAL_BYLAWS),
    (_rx(r"building\s*permit", r"permit\s*application", r"construction\s*permit"),
     DocumentType.BUILDING_PERMITS),
    (_rx(r"fee\s*schedule", r"schedule\s*of\s*fees", r"fee\s*table"),
     DocumentType.FEE_SCHEDULES),
    (_rx(r"budget", r"financial\s*report", r"appropriation"),
     DocumentType.BUDGET),
    (_rx(r"board\s*of\s*health", r"health\s*regulation", r"sanitary"),
     DocumentType.BOARD_OF_HEALTH),
    (_rx(r"public\s*works", r"transfer\s*station", r"recycling", r"\bDPW\b", r"\bRTS\b"),
     DocumentType.PUBLIC_WORKS),
    (_rx(r"meeting\s*minutes", r"minutes\s*of", r"select\s*board\s*meeting"),
     DocumentType.MEETING_MINUTES),
    (_rx(r"planning\s*board", r"planning\s*department", r"site\s*plan\s*review"),
     DocumentType.PLANNING_BOARD),
)


def detect_document_type(title: str, content: str, window: int = 2000) -> DocumentType:
    """Classify a document from its title and the first ``window`` characters."""
    search_text = f"{title or ''}\n{(content or '')[:window]}"
    for patterns, doc_type in DOCUMENT_TYPE_RULES:
        if any(p.search(search_text) for p in patterns):
            return doc_type
    return DocumentType.GENERAL


def resolve_policy(
    doc_type: DocumentType,
    overrides: Optional[Mapping[str, ChunkPolicyConfig]] = None,
) -> ChunkingPolicy:
    """Built-in policy for ``doc_type`` with any configured override applied."""
    base = CHUNKING_POLICIES[doc_type]
    override = (overrides or {}).get(doc_type.value)
    if override is None:
        return base
    strategy = BoundaryStrategy(override.strategy) if override.strategy else base.strategy
    return ChunkingPolicy(override.max_tokens, override.overlap_tokens, strategy)


_CHUNK_TYPE_BY_DOCUMENT: Dict[DocumentType, ChunkType] = {
    DocumentType.ZONING_BYLAWS: ChunkType.REGULATION,
    DocumentType.GENERAL_BYLAWS: ChunkType.REGULATION,
    DocumentType.BOARD_OF_HEALTH: ChunkType.REGULATION,
    DocumentType.BUILDING_PERMITS: ChunkType.PROCEDURE_STEP,
    DocumentType.MEETING_MINUTES: ChunkType.MEETING_ITEM,
    DocumentType.BUDGET: ChunkType.FINANCIAL_DATA,
    DocumentType.FEE_SCHEDULES: ChunkType.FINANCIAL_DATA,
}


def chunk_type_for(doc_type: DocumentType, contains_table: bool) -> ChunkType:
    if contains_table:
        return ChunkType.TABLE
    return _CHUNK_TYPE_BY_DOCUMENT.get(doc_type, ChunkType.INFORMATIONAL)


def chunk_id_prefix(doc_type: DocumentType) -> str:
    return doc_type.value.upper()[:3]
