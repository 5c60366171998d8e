"""
Boundary splitter: raw document text -> structural sections.

Two modes:

- table-atomic: markdown tables (pipe rows with a separator row) become
  standalone "Table" sections that are never subdivided; the narrative
  between tables is kept as ordinary sections.
- everything else: split at markdown headings (``#`` to ``####``); text
  before the first heading becomes an introduction section; a document
  without headings falls back to blank-line paragraphs.

Nothing is dropped: every non-whitespace character of the input lands in
exactly one section.
"""

import re
from dataclasses import dataclass
from typing import List

from civicrag.ingestion.document_types import BoundaryStrategy

HEADING_RE = re.compile(r"^(#{1,4})[ \t]+(.+)$", re.MULTILINE)
# header row, separator row, then every following line up to a blank line or heading
TABLE_RE = re.compile(
    r"^[ \t]*\|.*\|[ \t]*\n[ \t]*\|[ \t]*:?-+[-:| \t]*\|?[ \t]*(?:\n(?![ \t]*\n|#).*)*",
    re.MULTILINE,
)
PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
SECTION_NUMBER_RE = re.compile(
    r"^(?:(?:section|article|chapter|§)\s*)?(\d+(?:\.\d+)*[A-Za-z]?)\.?(?=\s|$)",
    re.IGNORECASE,
)

TABLE_TITLE = "Table"


@dataclass(frozen=True)
class Section:
    title: str
    section_number: str
    content: str
    is_table: bool = False


def extract_section_number(heading_title: str) -> str:
    match = SECTION_NUMBER_RE.match(heading_title.strip())
    return match.group(1) if match else ""


def split_paragraphs(text: str) -> List[str]:
    """Blank-line separated paragraphs, stripped, empties removed."""
    return [p.strip() for p in PARAGRAPH_BREAK_RE.split(text) if p.strip()]


def _split_tables(text: str) -> List[Section]:
    sections: List[Section] = []
    cursor = 0
    for match in TABLE_RE.finditer(text):
        narrative = text[cursor : match.start()].strip()
        if narrative:
            sections.append(Section(title="", section_number="", content=narrative))
        sections.append(
            Section(
                title=TABLE_TITLE,
                section_number="",
                content=match.group(0).strip(),
                is_table=True,
            )
        )
        cursor = match.end()
    tail = text[cursor:].strip()
    if tail:
        sections.append(Section(title="", section_number="", content=tail))
    return sections


def _split_headings(text: str, intro_title: str) -> List[Section]:
    headings = list(HEADING_RE.finditer(text))
    if not headings:
        return [
            Section(title="", section_number="", content=para)
            for para in split_paragraphs(text)
        ]

    sections: List[Section] = []
    preface = text[: headings[0].start()].strip()
    if preface:
        sections.append(Section(title=intro_title, section_number="", content=preface))

    for i, match in enumerate(headings):
        end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        content = text[match.start() : end].strip()
        title = match.group(2).strip().rstrip("#").strip()
        sections.append(
            Section(
                title=title,
                section_number=extract_section_number(title),
                content=content,
            )
        )
    return sections


def split_at_boundaries(
    text: str,
    strategy: BoundaryStrategy,
    intro_title: str = "Introduction",
) -> List[Section]:
    if not text or not text.strip():
        return []
    if strategy == BoundaryStrategy.TABLE_ATOMIC:
        return _split_tables(text)
    return _split_headings(text, intro_title)
