"""
Source references for retrieved chunks.

Titles scraped from municipal CMS pages carry vendor and town suffixes
("Frequently Asked Questions - CivicPlus.CMS.FAQ", "Transfer Station •
Needham • CivicEngage"); these helpers clean them and build the short
``[Title, Section (Date)]`` citations shown next to an answer.
"""

import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from civicrag.query.results import RetrievedChunk, SourceReference

UNKNOWN_TITLE = "Unknown Document"
MAX_SOURCE_REFERENCES = 4

GENERIC_TITLES = frozenset(
    {"untitled", "default", "n/a", "none", "document", "scanned document"}
)
BOILERPLATE_SECTIONS = frozenset({"default", "introduction", "section n/a", "n/a"})

# Preference order for the date shown in a citation.
DATE_KEYS = ("document_date", "effective_date", "last_amended", "last_verified_at", "last_updated")

_CIVICPLUS_SUFFIX = re.compile(r"\s*[-–]\s*CivicPlus\.[A-Za-z.]+$", re.IGNORECASE)
_CIVICENGAGE_SUFFIX = re.compile(r"\s*[•·]\s*(?:[^•·]+?\s*[•·]\s*)?CivicEngage$", re.IGNORECASE)
_WS = re.compile(r"\s+")


def read_string(metadata: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    """First non-empty string (or number) among ``keys``."""
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def read_int(metadata: Mapping[str, Any], keys: Sequence[str]) -> Optional[int]:
    for key in keys:
        value = metadata.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value.strip())
    return None


def clean_document_title(title: str, town: Optional[str] = None) -> str:
    """
    Strip CMS vendor suffixes and, when ``town`` is given, trailing town names.

    Falls back to the original title when cleaning leaves fewer than three
    characters.
    """
    cleaned = _CIVICPLUS_SUFFIX.sub("", title)
    cleaned = _CIVICENGAGE_SUFFIX.sub("", cleaned)
    if town:
        name = re.escape(town.strip())
        cleaned = re.sub(rf"\s*[•·]\s*{name}$", "", cleaned, flags=re.IGNORECASE)
        cleaned = re.sub(
            rf"\s*[-–|]\s*(?:Town of\s+)?{name}(?:,?\s*MA)?$", "", cleaned, flags=re.IGNORECASE
        )
    cleaned = cleaned.strip()
    if len(cleaned) < 3:
        return title.strip()
    return cleaned


def is_generic_title(title: str) -> bool:
    return title.lower().strip() in GENERIC_TITLES


def clean_line(text: str, max_length: int = 400) -> str:
    normalized = _WS.sub(" ", text).strip()
    if len(normalized) <= max_length:
        return normalized
    return f"{normalized[: max_length - 1]}…"


def section_label(metadata: Mapping[str, Any]) -> Optional[str]:
    number = read_string(metadata, ["section_number"])
    title = read_string(metadata, ["section_title"])
    if number and title:
        return f"{number} {title}"
    return number or title


def document_date(metadata: Mapping[str, Any]) -> Optional[str]:
    return read_string(metadata, DATE_KEYS)


def _document_title(metadata: Mapping[str, Any], town: Optional[str]) -> str:
    raw = read_string(metadata, ["document_title", "title"]) or UNKNOWN_TITLE
    return clean_document_title(raw, town)


def format_source_citation(metadata: Mapping[str, Any], town: Optional[str] = None) -> str:
    title = _document_title(metadata, town)
    section = section_label(metadata)
    if section and section.lower() in BOILERPLATE_SECTIONS:
        section = None
    date = document_date(metadata)
    if date == "Unknown date":
        date = None

    if section and date:
        return f"[{title}, {section} ({date})]"
    if section:
        return f"[{title}, {section}]"
    if date:
        return f"[{title} ({date})]"
    return f"[{title}]"


def to_source_reference(
    metadata: Mapping[str, Any], source_id: str = "S1", town: Optional[str] = None
) -> SourceReference:
    return SourceReference(
        source_id=source_id,
        citation=format_source_citation(metadata, town),
        document_title=_document_title(metadata, town),
        document_url=read_string(metadata, ["document_url", "url"]),
        section=section_label(metadata),
        date=document_date(metadata),
        page_number=read_int(metadata, ["page_number"]),
    )


def assign_sources(chunks: Iterable[RetrievedChunk], town: Optional[str] = None) -> None:
    """Attach S1..Sn references in final order."""
    for index, chunk in enumerate(chunks):
        chunk.source = to_source_reference(chunk.metadata, f"S{index + 1}", town)


def dedupe_sources(
    chunks: Iterable[RetrievedChunk], limit: int = MAX_SOURCE_REFERENCES
) -> List[SourceReference]:
    """
    One reference per cleaned document title, in chunk order.

    Keyed by title rather than URL so that one FAQ page served from several
    CMS URLs is cited once. Generic titles are skipped.
    """
    seen = {}
    for chunk in chunks:
        source = chunk.source
        if source is None or is_generic_title(source.document_title):
            continue
        key = source.document_title.lower().strip()
        if key not in seen:
            seen[key] = source
    return list(seen.values())[:limit]


def build_highlight(chunk_text: str, query: str) -> str:
    """Snippet around the first occurrence of the query's first content term."""
    normalized = _WS.sub(" ", chunk_text).strip()
    if not normalized:
        return ""

    terms = [re.sub(r"[^\w]", "", t) for t in query.lower().split()]
    terms = [t for t in terms if len(t) >= 3]
    if not terms:
        return clean_line(normalized, 220)

    position = normalized.lower().find(terms[0])
    if position == -1:
        return clean_line(normalized, 220)

    start = max(0, position - 70)
    end = min(len(normalized), position + 150)
    prefix = "…" if start > 0 else ""
    suffix = "…" if end < len(normalized) else ""
    return clean_line(f"{prefix}{normalized[start:end].strip()}{suffix}", 240)


def truncate_snippet(text: str, max_length: int = 300) -> str:
    """Truncate at a word boundary."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    return (truncated[:last_space] if last_space > 0 else truncated) + "…"
