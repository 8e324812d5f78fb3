"""Tests for employee name resolution."""

import pytest
from faker import Faker

from models.reports import RosterEntry
from services.identity import levenshtein_distance, name_similarity, normalize_name, resolve_name

ROSTER = [
    RosterEntry("emp-1", "John Smith"),
    RosterEntry("emp-2", "Cory Williams"),
    RosterEntry("emp-3", "Maria Garcia", active=False),
]


def test_normalize_name_collapses_case_and_whitespace():
    assert normalize_name("  John   SMITH ") == "john smith"


@pytest.mark.parametrize(
    "a, b, expected",
    [("kitten", "sitting", 3), ("", "abc", 3), ("same", "same", 0), ("jon", "john", 1)],
)
def test_levenshtein_distance(a, b, expected):
    assert levenshtein_distance(a, b) == expected
    assert levenshtein_distance(b, a) == expected


def test_name_similarity_is_normalized():
    assert name_similarity("John Smith", "john smith") == 1.0
    assert name_similarity("Jon Smith", "John Smith") == pytest.approx(0.9)
    assert name_similarity("", "") == 1.0


def test_exact_match_ignores_case_and_spacing():
    result = resolve_name("  john   SMITH ", ROSTER)

    assert result.matched is True
    assert result.score == 1.0
    assert result.name == "John Smith"
    assert result.employee_id == "emp-1"


def test_exact_match_with_generated_names():
    fake = Faker()
    Faker.seed(1234)
    roster = [RosterEntry(f"emp-{i}", fake.name()) for i in range(1, 21)]

    for entry in roster:
        result = resolve_name(entry.name.upper(), roster)
        assert result.matched is True
        assert result.score == 1.0
        assert result.name == entry.name


def test_fuzzy_match_returns_canonical_spelling():
    result = resolve_name("Jon Smith", ROSTER)

    assert result.matched is True
    assert result.name == "John Smith"
    assert result.score == pytest.approx(0.9)
    assert result.spoken_name == "Jon Smith"


def test_below_threshold_keeps_spoken_name():
    result = resolve_name("Zed", ROSTER)

    assert result.matched is False
    assert result.name == "Zed"
    assert result.score < 0.6
    assert result.employee_id is None


def test_inactive_entries_are_not_fuzzy_matched():
    result = resolve_name("Mario Garcia", ROSTER)

    assert result.matched is False
    assert result.name == "Mario Garcia"


def test_inactive_entry_still_matches_exactly():
    result = resolve_name("maria garcia", ROSTER)

    assert result.matched is True
    assert result.employee_id == "emp-3"


def test_threshold_is_inclusive():
    # "Jon" vs "John": similarity 0.75
    roster = [RosterEntry("emp-1", "John")]

    assert resolve_name("Jon", roster, threshold=0.75).matched is True
    assert resolve_name("Jon", roster, threshold=0.76).matched is False


def test_first_entry_wins_ties():
    roster = [RosterEntry("emp-1", "Dan"), RosterEntry("emp-2", "Dax")]

    result = resolve_name("Dam", roster)

    assert result.employee_id == "emp-1"


def test_empty_name_and_empty_roster():
    assert resolve_name("", ROSTER).matched is False
    assert resolve_name("   ", ROSTER).score == 0.0

    result = resolve_name("John Smith", [])
    assert result.matched is False
    assert result.name == "John Smith"
