"""
Diversity selection over ranked candidates.

Pass 1 fills the primary share of the slots greedily by score, taking at most
``max_per_document`` chunks from any one document. Pass 2 fills the remaining
slots, preferring siblings (same document, chunk index within
``sibling_window`` of a selected chunk) over the next-best unrelated
candidates. With sibling expansion off, selection is plain top-N.
"""

import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set

from civicrag.query.results import RetrievedChunk


def document_key(chunk: RetrievedChunk) -> str:
    meta = chunk.metadata
    return str(
        meta.get("document_id") or meta.get("document_url") or meta.get("document_title") or ""
    )


def chunk_index(chunk: RetrievedChunk) -> Optional[int]:
    value = chunk.metadata.get("chunk_index")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def primary_slot_count(result_count: int, primary_fraction: float) -> int:
    # the epsilon keeps 0.8 * 10 from flooring to 7
    return max(1, math.floor(result_count * primary_fraction + 1e-9))


def select_diverse(
    candidates: Sequence[RetrievedChunk],
    result_count: int,
    max_per_document: int = 3,
    expand_siblings: bool = True,
    primary_fraction: float = 0.8,
    sibling_window: int = 1,
) -> List[RetrievedChunk]:
    """
    Pick ``result_count`` chunks from ``candidates`` (already sorted by score).
    """
    if result_count <= 0 or not candidates:
        return []
    if not expand_siblings:
        return list(candidates[:result_count])

    primary_count = min(primary_slot_count(result_count, primary_fraction), result_count)

    selected: List[RetrievedChunk] = []
    per_document: Dict[str, int] = defaultdict(int)
    for chunk in candidates:
        if len(selected) >= primary_count:
            break
        key = document_key(chunk)
        if per_document[key] < max_per_document:
            selected.append(chunk)
            per_document[key] += 1

    selected_ids: Set[str] = {c.id for c in selected}
    indices_by_document: Dict[str, Set[int]] = defaultdict(set)
    for chunk in selected:
        idx = chunk_index(chunk)
        if idx is not None:
            indices_by_document[document_key(chunk)].add(idx)

    siblings: List[RetrievedChunk] = []
    others: List[RetrievedChunk] = []
    for chunk in candidates:
        if chunk.id in selected_ids:
            continue
        idx = chunk_index(chunk)
        near = indices_by_document.get(document_key(chunk), ())
        if idx is not None and any(abs(idx - s) <= sibling_window for s in near):
            siblings.append(chunk)
        else:
            others.append(chunk)

    sibling_ids = {c.id for c in siblings}
    for chunk in siblings + others:
        if len(selected) >= result_count:
            break
        chunk.is_sibling = chunk.id in sibling_ids
        selected.append(chunk)
    return selected
