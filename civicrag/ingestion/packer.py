"""
Token-budgeted packer.

Packing is a left fold over a section's paragraphs with an immutable
``PackState`` accumulator (current buffer plus emitted chunks), so it can be
tested on a plain list of strings without any I/O.

Rules:

- a section within budget is one chunk, verbatim;
- otherwise paragraphs accumulate until the next one would overflow the
  budget; the buffer is emitted and the next buffer starts with the last
  ``overlap_tokens`` tokens of the emitted chunk followed by that paragraph;
- a paragraph that alone exceeds the budget is emitted whole and flagged
  ``oversized``, never truncated.

A separate safety pass (``enforce_token_limit``) splits anything above the
embedding model's hard input limit.
"""

import re
from dataclasses import dataclass, replace
from functools import reduce
from typing import List, Optional, Tuple

from civicrag.ingestion.boundaries import split_paragraphs
from civicrag.ingestion.document_types import ChunkingPolicy
from civicrag.providers.tokenizer_service import TokenizerService
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)

PARAGRAPH_JOINER = "\n\n"


@dataclass(frozen=True)
class PackedChunk:
    text: str
    token_count: int
    oversized: bool = False


@dataclass(frozen=True)
class PackState:
    current: str = ""
    emitted: Tuple[PackedChunk, ...] = ()


def _packed(text: str, policy: ChunkingPolicy, tokenizer: TokenizerService) -> PackedChunk:
    count = tokenizer.count_tokens(text)
    return PackedChunk(text=text, token_count=count, oversized=count > policy.max_tokens)


def _seams(joiner: str) -> Tuple[str, ...]:
    # a space before a newline joiner stops BPE merging it into trailing punctuation
    return (joiner, " " + joiner) if "\n" in joiner else (joiner,)


def overlap_seed(
    previous: str, n_tokens: int, joiner: str, text: str, tokenizer: TokenizerService
) -> Optional[str]:
    """
    The last ``n_tokens`` tokens of ``previous``, then ``joiner`` and ``text``.

    The result re-encodes with exactly those tokens as its prefix. If no seam
    keeps them intact the tail is shortened from the front; None means no
    overlap is possible.
    """
    while n_tokens > 0:
        tail_ids = tokenizer.tail_tokens(previous, n_tokens)
        seeded = tokenizer.join_after_tokens(tail_ids, _seams(joiner), text)
        if seeded is not None:
            return seeded
        n_tokens = min(n_tokens, len(tail_ids)) - 1
    return None


def _seed_with_overlap(
    previous: str, paragraph: str, policy: ChunkingPolicy, tokenizer: TokenizerService
) -> str:
    """
    Start a new buffer: tail of ``previous`` + paragraph.

    The overlap shrinks only when the full overlap plus the paragraph would
    overflow the budget.
    """
    if policy.overlap_tokens == 0:
        return paragraph
    room = policy.max_tokens - tokenizer.count_tokens(PARAGRAPH_JOINER + paragraph)
    n = min(policy.overlap_tokens, room)
    while n > 0:
        seeded = overlap_seed(previous, n, PARAGRAPH_JOINER, paragraph, tokenizer)
        if seeded is None:
            return paragraph
        excess = tokenizer.count_tokens(seeded) - policy.max_tokens
        if excess <= 0:
            return seeded
        n -= max(1, excess)
    return paragraph


def pack_step(
    state: PackState, paragraph: str, policy: ChunkingPolicy, tokenizer: TokenizerService
) -> PackState:
    """Fold one paragraph into the accumulator."""
    if not state.current:
        return replace(state, current=paragraph)

    candidate = f"{state.current}{PARAGRAPH_JOINER}{paragraph}"
    if tokenizer.count_tokens(candidate) <= policy.max_tokens:
        return replace(state, current=candidate)

    emitted = _packed(state.current, policy, tokenizer)
    return PackState(
        current=_seed_with_overlap(state.current, paragraph, policy, tokenizer),
        emitted=state.emitted + (emitted,),
    )


def pack_paragraphs(
    paragraphs: List[str], policy: ChunkingPolicy, tokenizer: TokenizerService
) -> List[PackedChunk]:
    final = reduce(
        lambda state, para: pack_step(state, para, policy, tokenizer),
        paragraphs,
        PackState(),
    )
    chunks = list(final.emitted)
    if final.current:
        chunks.append(_packed(final.current, policy, tokenizer))
    return chunks


def pack_section(
    content: str, policy: ChunkingPolicy, tokenizer: TokenizerService
) -> List[PackedChunk]:
    content = content.strip()
    if not content:
        return []
    count = tokenizer.count_tokens(content)
    if count <= policy.max_tokens:
        return [PackedChunk(text=content, token_count=count)]

    chunks = pack_paragraphs(split_paragraphs(content), policy, tokenizer)
    for chunk in chunks:
        if chunk.oversized:
            logger.warning(
                "oversized_paragraph",
                token_count=chunk.token_count,
                max_tokens=policy.max_tokens,
                preview=chunk.text[:80],
            )
    return chunks


# Progressively finer boundaries for the embedding-limit safety split.
_SAFETY_DELIMITERS: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    (re.compile(r"\n\s*\n"), "\n\n"),
    (re.compile(r"\n"), "\n"),
    (re.compile(r"(?<=[.!?])\s+"), " "),
)


def enforce_token_limit(
    text: str,
    limit: int,
    overlap_tokens: int,
    tokenizer: TokenizerService,
    _level: int = 0,
) -> List[str]:
    """
    Split ``text`` until every piece is within ``limit`` tokens.

    Tries paragraph, line and sentence boundaries in turn, carrying
    ``overlap_tokens`` of context across each cut, and falls back to fixed
    token windows when no boundary helps. Content is never dropped.
    """
    if tokenizer.count_tokens(text) <= limit:
        return [text]

    for level in range(_level, len(_SAFETY_DELIMITERS)):
        pattern, joiner = _SAFETY_DELIMITERS[level]
        parts = [p.strip() for p in pattern.split(text) if p.strip()]
        if len(parts) <= 1:
            continue
        # a leading overlap tail keeps its exact tokens, leading space included
        parts[0] = text[: text.index(parts[0]) + len(parts[0])]

        pieces: List[str] = []
        current = ""
        for part in parts:
            candidate = f"{current}{joiner}{part}" if current else part
            if current and tokenizer.count_tokens(candidate) > limit:
                pieces.append(current)
                current = overlap_seed(current, overlap_tokens, joiner, part, tokenizer) or part
            else:
                current = candidate
        if current:
            pieces.append(current)

        out: List[str] = []
        for piece in pieces:
            out.extend(enforce_token_limit(piece, limit, overlap_tokens, tokenizer, level + 1))
        return out

    return [
        piece for piece in tokenizer.split_by_tokens(text, limit, overlap_tokens) if piece.strip()
    ]
