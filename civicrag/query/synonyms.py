"""
Municipal synonym dictionary.

Each entry maps informal phrases residents use (triggers, lowercase) to the
official terms that appear in town documents (expansions). The universal
table applies to every tenant; tenant tables come from configuration
(``synonyms.tenants``) and are consulted first.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


@dataclass(frozen=True)
class SynonymEntry:
    triggers: Tuple[str, ...]
    expansions: Tuple[str, ...]


def _entry(triggers: Sequence[str], expansions: Sequence[str]) -> SynonymEntry:
    return SynonymEntry(
        triggers=tuple(t.lower() for t in triggers),
        expansions=tuple(expansions),
    )


UNIVERSAL_SYNONYMS: Tuple[SynonymEntry, ...] = (
    _entry(["dump", "garbage", "trash", "rubbish", "waste"],
           ["transfer station", "solid waste", "recycling center", "refuse disposal"]),
    _entry(["cops", "police station"], ["police department", "public safety"]),
    _entry(["fire station", "firehouse"], ["fire department"]),
    _entry(["town hall", "city hall", "municipal building"],
           ["town offices", "municipal offices"]),
    _entry(["taxes", "tax bill", "property tax"], ["assessor", "tax collector", "treasurer"]),
    _entry(["schools", "school system"],
           ["school department", "school committee", "superintendent"]),
    _entry(["roads", "potholes", "plowing", "snow"],
           ["DPW", "public works", "highway department"]),
    _entry(["water", "sewer", "drains"], ["water and sewer", "DPW", "utilities"]),
    _entry(["parks", "playgrounds", "fields"], ["parks and recreation", "recreation department"]),
    _entry(["library", "books"], ["public library"]),
    _entry(["permits", "building permit", "renovation"],
           ["building department", "building inspector", "inspectional services"]),
    _entry(["zoning", "can i build", "setback", "lot size"],
           ["planning", "zoning board", "ZBA", "planning board"]),
    _entry(["vote", "voting", "elections", "register to vote"],
           ["town clerk", "election commission"]),
    _entry(["birth certificate", "death certificate", "marriage license"],
           ["town clerk", "vital records"]),
    _entry(["dog license", "pet"], ["town clerk", "animal control"]),
    _entry(["meeting", "town meeting", "annual meeting"],
           ["town meeting", "select board", "board of selectmen"]),
    _entry(["noise complaint", "neighbor"], ["police", "board of health", "bylaws"]),
    _entry(["restaurant inspection", "food safety"], ["board of health", "health department"]),
    _entry(["septic", "well water"], ["board of health"]),
    _entry(["sidewalks", "crosswalks", "traffic lights"], ["DPW", "public works", "engineering"]),
    _entry(["senior center", "elderly", "aging"], ["council on aging", "senior services"]),
    _entry(["youth", "teens", "after school"], ["youth commission", "recreation"]),
    _entry(["commute", "train", "bus", "transit"],
           ["MBTA", "commuter rail", "public transportation"]),
    _entry(["tree", "trees", "tree removal"], ["tree warden", "DPW", "conservation"]),
    _entry(["wetlands", "conservation", "environment"], ["conservation commission"]),
    _entry(["historic", "landmark", "old house"], ["historical commission"]),
    _entry(["cable", "tv"], ["cable advisory committee"]),
    _entry(["veterans", "military"], ["veterans services"]),
    _entry(["rat", "rats", "mice", "rodent", "pest"],
           ["board of health", "health department", "pest control"]),
    _entry(["deck", "build a deck"], ["building permit", "zoning", "building department"]),
    _entry(["fence"], ["building permit", "zoning", "property line", "setback"]),
    _entry(["pothole", "road repair"], ["DPW", "public works", "highway department"]),
)


def build_tenant_tables(raw: Optional[Mapping[str, Sequence]]) -> Dict[str, Tuple[SynonymEntry, ...]]:
    """Convert configured tenant entries (objects with triggers/expansions) into tables."""
    tables: Dict[str, Tuple[SynonymEntry, ...]] = {}
    for tenant_id, entries in (raw or {}).items():
        tables[tenant_id.lower()] = tuple(_entry(e.triggers, e.expansions) for e in entries)
    return tables


def synonym_dictionary(
    tenant_id: str, tenant_tables: Mapping[str, Sequence[SynonymEntry]]
) -> List[SynonymEntry]:
    """Tenant entries first, then the universal table."""
    return [*tenant_tables.get((tenant_id or "").lower(), ()), *UNIVERSAL_SYNONYMS]
