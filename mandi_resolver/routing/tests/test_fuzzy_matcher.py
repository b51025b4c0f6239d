"""
Tests for the spelling matcher.

Run with: pytest mandi_resolver/routing/tests/ -v
"""

import pytest

from mandi_resolver.models import CandidateSource, NameEntry, NameKind
from mandi_resolver.routing.fuzzy_matcher import edit_distance, match, similarity


def _market(name, district="Konaseema", state="Andhra Pradesh", aliases=()):
    return NameEntry(kind=NameKind.MARKET, canonical_name=name, district=district, state=state, aliases=aliases)


MARKETS = [
    _market("Ravulapelem"),
    _market("Mandapeta"),
    _market("Adoni", district="Kurnool"),
    _market("Tadepalligudem", district="West Godavari", aliases=("TPG",)),
]


class TestSimilarity:
    def test_one_substitution(self):
        assert edit_distance("ravulapalem", "ravulapelem") == 1
        assert similarity("Ravulapalem", "Ravulapelem") == pytest.approx(10 / 11)

    def test_case_and_punctuation_do_not_count(self):
        assert similarity("ADONI ", "adoni") == 1.0
        assert similarity("Ravula-palem", "ravulapalem") == 1.0

    def test_blank_names_score_zero(self):
        assert similarity("", "") == 0.0
        assert similarity(None, "Adoni") == 0.0

    def test_symmetric(self):
        assert similarity("Guntur", "Guntakal") == similarity("Guntakal", "Guntur")


class TestMatch:
    def test_misspelled_market_ranks_first(self):
        candidates = match("Ravulapalem", MARKETS, threshold=0.6)

        assert [c.name_entry.canonical_name for c in candidates] == ["Ravulapelem"]
        assert candidates[0].source == CandidateSource.SPELLING
        assert candidates[0].distance_rank == 1
        assert candidates[0].similarity == pytest.approx(10 / 11)

    def test_deterministic(self):
        first = match("Adonni", MARKETS, threshold=0.3)
        second = match("Adonni", list(reversed(MARKETS)), threshold=0.3)
        assert first == second

    def test_threshold_drops_weak_matches(self):
        assert match("Nizamabad", MARKETS, threshold=0.6) == []
        assert all(c.similarity >= 0.3 for c in match("Mandapet", MARKETS, threshold=0.3))

    def test_alias_scores_count(self):
        candidates = match("tpg", MARKETS, threshold=0.9)
        assert [c.name_entry.canonical_name for c in candidates] == ["Tadepalligudem"]
        assert candidates[0].similarity == 1.0

    def test_ties_break_on_name_then_district(self):
        entries = [
            _market("Kota", district="Kota", state="Rajasthan"),
            _market("Kota", district="Baran", state="Rajasthan"),
            _market("Koti", district="Hyderabad", state="Telangana"),
        ]
        candidates = match("kotx", entries, threshold=0.5)

        assert [(c.name_entry.canonical_name, c.name_entry.district) for c in candidates] == [
            ("Kota", "Baran"),
            ("Kota", "Kota"),
            ("Koti", "Hyderabad"),
        ]

    def test_limit(self):
        assert len(match("a", MARKETS, threshold=0.0, limit=2)) == 2

    def test_empty_query(self):
        assert match("", MARKETS, threshold=0.0) == []
        assert match(None, MARKETS, threshold=0.0) == []
