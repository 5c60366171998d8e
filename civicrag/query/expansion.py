"""
Query expansion: synonyms, intent keywords and department routing.

    expander = QueryExpander()
    expansion = expander.expand("when is the dump open", "needham")
    expansion.expanded_query
    # "when is the dump open Needham Transfer Station ... hours schedule closed"
    expansion.department
    # "DPW"

Everything here is deterministic string work; no service calls.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Pattern, Sequence, Tuple

from civicrag.query.synonyms import SynonymEntry, build_tenant_tables, synonym_dictionary
from civicrag.shared.config import Config, get_config
from civicrag.shared.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class IntentPattern:
    name: str
    patterns: Tuple[Pattern[str], ...]
    keywords: Tuple[str, ...]


def _intent(name: str, patterns: Sequence[str], keywords: Sequence[str]) -> IntentPattern:
    return IntentPattern(
        name=name,
        patterns=tuple(re.compile(p, re.IGNORECASE) for p in patterns),
        keywords=tuple(keywords),
    )


INTENT_PATTERNS: Tuple[IntentPattern, ...] = (
    _intent("hours",
            [r"when is .+ open", r"hours for", r"what time does", r"what are .+ hours", r"is .+ open"],
            ["hours", "schedule", "open", "closed"]),
    _intent("location",
            [r"where is", r"where do i", r"how do i get to", r"address for", r"location of"],
            ["address", "location", "directions"]),
    _intent("contact",
            [r"who do i call", r"who handles", r"contact for", r"phone number", r"email for"],
            ["department", "contact", "phone", "email"]),
    _intent("cost",
            [r"how much does .+ cost", r"what'?s the fee", r"price of", r"fee for"],
            ["fee", "cost", "rate", "schedule"]),
    _intent("permit",
            [r"do i need a permit", r"can i build", r"permit for", r"permit to"],
            ["permit", "application", "requirements", "zoning"]),
    _intent("how_to",
            [r"how do i", r"what'?s the process", r"steps to", r"how to"],
            ["application", "process", "steps", "requirements"]),
)

# Ordered; the first department with a matching keyword wins.
DEPARTMENT_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Building Department", ("permit", "building", "construction", "inspection", "renovation")),
    ("Planning & Community Development",
     ("zoning", "variance", "planning", "development", "subdivision")),
    ("DPW", ("transfer station", "trash", "recycling", "water", "sewer", "road")),
    ("Schools", ("school", "enrollment", "education", "student", "bus", "kindergarten")),
    ("Town Clerk", ("vote", "election", "dog license", "vital records", "marriage")),
    ("Assessor", ("tax", "assessment", "property value", "exemption", "abatement")),
    ("Police", ("police", "safety", "emergency", "report", "parking ban")),
    ("Fire", ("fire", "emergency", "ambulance", "inspection")),
)


@lru_cache(maxsize=512)
def _word_pattern(trigger: str) -> Pattern[str]:
    return re.compile(rf"\b{re.escape(trigger)}\b", re.IGNORECASE)


def trigger_matches(trigger: str, lower_query: str) -> bool:
    """Multi-word triggers match as substrings, single words on word boundaries."""
    if " " in trigger:
        return trigger in lower_query
    return _word_pattern(trigger).search(lower_query) is not None


def expand_synonyms(query: str, dictionary: Sequence[SynonymEntry]) -> List[str]:
    lower_query = query.lower()
    found: List[str] = []
    for entry in dictionary:
        if not any(trigger_matches(t, lower_query) for t in entry.triggers):
            continue
        for term in entry.expansions:
            if term.lower() not in lower_query and term not in found:
                found.append(term)
    return found


def detect_intent_keywords(query: str) -> List[str]:
    lower_query = query.lower()
    keywords: List[str] = []
    for intent in INTENT_PATTERNS:
        if not any(p.search(lower_query) for p in intent.patterns):
            continue
        for kw in intent.keywords:
            if kw not in lower_query and kw not in keywords:
                keywords.append(kw)
    return keywords


def detect_department(text: str) -> Optional[str]:
    lower_text = text.lower()
    for department, keywords in DEPARTMENT_KEYWORDS:
        if any(kw in lower_text for kw in keywords):
            return department
    return None


@dataclass(frozen=True)
class QueryExpansion:
    original: str
    synonyms: Tuple[str, ...] = ()
    intent_keywords: Tuple[str, ...] = ()
    expanded_query: str = ""
    department: Optional[str] = None

    @property
    def has_expansions(self) -> bool:
        return bool(self.synonyms or self.intent_keywords)


class QueryExpander:
    def __init__(self, config: Optional[Config] = None):
        config = config or get_config()
        self._tenant_tables = build_tenant_tables(config.synonyms.tenants)

    def expand(self, query: str, tenant_id: str) -> QueryExpansion:
        query = (query or "").strip()
        if not query:
            return QueryExpansion(original="", expanded_query="")

        synonyms = expand_synonyms(query, synonym_dictionary(tenant_id, self._tenant_tables))
        intents = detect_intent_keywords(query)
        expanded_query = " ".join([query, *synonyms, *intents])
        department = detect_department(expanded_query)

        logger.debug(
            "query_expanded",
            tenant_id=tenant_id,
            synonyms=len(synonyms),
            intent_keywords=intents,
            department=department,
        )
        return QueryExpansion(
            original=query,
            synonyms=tuple(synonyms),
            intent_keywords=tuple(intents),
            expanded_query=expanded_query,
            department=department,
        )
