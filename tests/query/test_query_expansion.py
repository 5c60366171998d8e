import pytest

from civicrag.query.expansion import (
    QueryExpander,
    detect_department,
    detect_intent_keywords,
    expand_synonyms,
    trigger_matches,
)
from civicrag.query.synonyms import UNIVERSAL_SYNONYMS, build_tenant_tables, synonym_dictionary
from civicrag.shared.config import Config, SynonymEntryConfig, SynonymsConfig


@pytest.fixture
def expander() -> QueryExpander:
    config = Config(
        synonyms=SynonymsConfig(
            tenants={
                "needham": [
                    SynonymEntryConfig(
                        triggers=["the dump", "RTS"],
                        expansions=["Needham Transfer Station", "1421 Central Avenue"],
                    )
                ]
            }
        )
    )
    return QueryExpander(config)


def test_tenant_synonyms_come_first(expander):
    expansion = expander.expand("when is the dump open", "needham")

    assert expansion.synonyms[:2] == ("Needham Transfer Station", "1421 Central Avenue")
    assert "transfer station" in expansion.synonyms
    assert expansion.intent_keywords == ("hours", "schedule", "closed")
    assert expansion.department == "DPW"
    assert expansion.expanded_query.startswith("when is the dump open Needham Transfer Station")


def test_tenant_lookup_is_case_insensitive(expander):
    assert "Needham Transfer Station" in expander.expand("rts sticker", "Needham").synonyms


def test_other_tenants_get_only_universal_synonyms(expander):
    expansion = expander.expand("when is the dump open", "wellesley")

    assert "Needham Transfer Station" not in expansion.synonyms
    assert "transfer station" in expansion.synonyms


def test_single_word_triggers_match_whole_words():
    found = expand_synonyms("street parking rules", UNIVERSAL_SYNONYMS)
    assert "tree warden" not in found
    assert "parks and recreation" not in found

    assert "tree warden" in expand_synonyms("tree removal on my street", UNIVERSAL_SYNONYMS)


def test_multi_word_triggers_match_as_phrases():
    assert trigger_matches("town hall", "hours at town hall today")
    assert not trigger_matches("town hall", "town meeting hall")


def test_expansions_already_in_query_are_skipped():
    found = expand_synonyms("transfer station dump", UNIVERSAL_SYNONYMS)

    assert "transfer station" not in found
    assert "solid waste" in found


def test_no_duplicate_expansions():
    found = expand_synonyms("town meeting", UNIVERSAL_SYNONYMS)

    assert len(found) == len(set(found))


def test_intent_keywords():
    assert detect_intent_keywords("how much does a dog license cost") == ["fee", "rate", "schedule"]
    # "permit" is already in the query
    assert detect_intent_keywords("do i need a permit for a shed") == [
        "application",
        "requirements",
        "zoning",
    ]
    assert detect_intent_keywords("library") == []


def test_department_routing_order():
    assert detect_department("building permit for a deck") == "Building Department"
    assert detect_department("zoning variance") == "Planning & Community Development"
    assert detect_department("school bus schedule") == "Schools"
    assert detect_department("library hours") is None


def test_empty_query(expander):
    expansion = expander.expand("   ", "needham")

    assert expansion.original == ""
    assert expansion.expanded_query == ""
    assert not expansion.has_expansions


def test_expanded_query_appends_terms(expander):
    expansion = expander.expand("library", "needham")

    assert expansion.synonyms == ("public library",)
    assert expansion.expanded_query == "library public library"
    assert expansion.department is None


def test_query_without_matches_is_unchanged(expander):
    expansion = expander.expand("snowmobile registration", "needham")

    assert not expansion.has_expansions
    assert expansion.expanded_query == "snowmobile registration"


def test_synonym_dictionary_order():
    tables = build_tenant_tables(
        {"Needham": [SynonymEntryConfig(triggers=["The Rec"], expansions=["Needham Recreation"])]}
    )

    dictionary = synonym_dictionary("needham", tables)

    assert dictionary[0].triggers == ("the rec",)
    assert dictionary[1:] == list(UNIVERSAL_SYNONYMS)
    assert synonym_dictionary("dedham", tables) == list(UNIVERSAL_SYNONYMS)
