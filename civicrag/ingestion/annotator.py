"""
Metadata annotator.

Pattern scans over chunk text (cross references, keyword families, zone
codes, tables) plus the final sequencing pass that stamps ``chunk_index``,
``total_chunks`` and ``content_hash`` across a document's whole chunk list.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from civicrag.ingestion.boundaries import TABLE_RE
from civicrag.ingestion.document_types import chunk_id_prefix, chunk_type_for
from civicrag.shared.models import Chunk, ChunkMetadata, DocumentType

CROSS_REF_RE = re.compile(
    r"(?:§|Section|Chapter|Article)\s*\d+(?:\.\d+)*"
    r"(?:\s*(?:of|,)\s*(?:the\s+)?(?:Zoning|General|Town)\s*(?:By-?law|Code|Regulation)s?)?",
    re.IGNORECASE,
)

# Each family captures the canonical term in group 1.
KEYWORD_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\b(setback|floor area ratio|height limit|lot coverage)s?\b", re.IGNORECASE),
    re.compile(r"\b(FAR)\b"),
    re.compile(r"\b(permit|license|certificate|variance|waiver)s?\b", re.IGNORECASE),
    re.compile(r"\b(residential|commercial|industrial|mixed.?use)\b", re.IGNORECASE),
    re.compile(r"\b(fee|cost|charge|price|rate)s?\b", re.IGNORECASE),
    re.compile(r"\b(deadline|due date|hours|schedule)s?\b", re.IGNORECASE),
)

ZONE_CODE_RE = re.compile(r"\b(?:SRB|SRC|SRA|GRB|GRA|APT|BR|CH|CI|IND|RG)\b")
DISTRICT_RE = re.compile(
    r"\b(?:Single\s*Residence|General\s*Residence|Business|Commercial|Industrial)\b",
    re.IGNORECASE,
)
_WS = re.compile(r"\s+")


def _ordered_unique(items: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def extract_cross_references(text: str) -> Tuple[str, ...]:
    return _ordered_unique(_WS.sub(" ", m.group(0).strip()) for m in CROSS_REF_RE.finditer(text))


def extract_keywords(text: str) -> Tuple[str, ...]:
    found: List[str] = []
    for pattern in KEYWORD_PATTERNS:
        found.extend(_WS.sub(" ", m.group(1).lower()) for m in pattern.finditer(text))
    return _ordered_unique(found)


def extract_applies_to(text: str) -> Tuple[str, ...]:
    codes = [m.group(0) for m in ZONE_CODE_RE.finditer(text)]
    districts = [_WS.sub(" ", m.group(0)).title() for m in DISTRICT_RE.finditer(text)]
    return _ordered_unique(codes + districts)


def contains_table(text: str) -> bool:
    return TABLE_RE.search(text) is not None


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class DraftChunk:
    """A packed chunk with its section context, before sequencing."""

    text: str
    token_count: int
    section_number: str = ""
    section_title: str = ""
    oversized: bool = False


@dataclass(frozen=True)
class DocumentContext:
    document_id: str
    document_url: str
    document_title: str
    document_type: DocumentType
    department: Optional[str] = None
    effective_date: Optional[str] = None
    last_amended: Optional[str] = None
    document_date: Optional[str] = None
    page_number: Optional[int] = None


def _assign_chunk_ids(drafts: Sequence[DraftChunk], doc_type: DocumentType) -> List[str]:
    prefix = chunk_id_prefix(doc_type)
    ids: List[str] = []
    seen: Dict[str, int] = {}
    for index, draft in enumerate(drafts):
        base = f"{prefix}-{draft.section_number or index}"
        seen[base] = seen.get(base, 0) + 1
        ids.append(base if seen[base] == 1 else f"{base}-p{seen[base]}")
    return ids


def annotate(drafts: Sequence[DraftChunk], ctx: DocumentContext) -> List[Chunk]:
    """Attach metadata to every draft and sequence the whole list."""
    total = len(drafts)
    chunk_ids = _assign_chunk_ids(drafts, ctx.document_type)
    chunks: List[Chunk] = []
    for index, (draft, chunk_id) in enumerate(zip(drafts, chunk_ids)):
        has_table = contains_table(draft.text)
        metadata = ChunkMetadata(
            document_id=ctx.document_id,
            document_title=ctx.document_title,
            document_url=ctx.document_url,
            document_type=ctx.document_type,
            department=ctx.department,
            section_number=draft.section_number or None,
            section_title=draft.section_title or None,
            page_number=ctx.page_number,
            effective_date=ctx.effective_date,
            last_amended=ctx.last_amended,
            document_date=ctx.document_date,
            chunk_type=chunk_type_for(ctx.document_type, has_table),
            contains_table=has_table,
            cross_references=extract_cross_references(draft.text),
            keywords=extract_keywords(draft.text),
            applies_to=extract_applies_to(draft.text),
            chunk_index=index,
            total_chunks=total,
            content_hash=content_hash(draft.text),
            oversized=draft.oversized,
        )
        chunks.append(
            Chunk(
                chunk_id=chunk_id,
                document_id=ctx.document_id,
                text=draft.text,
                metadata=metadata,
                token_count=draft.token_count,
            )
        )
    return chunks
