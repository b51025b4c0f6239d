from __future__ import annotations

import datetime as dt
from decimal import Decimal

import pytest

from mandi_resolver.exceptions import StoreUnavailableError
from mandi_resolver.models import NameKind, RecordFilter
from mandi_resolver.services.record_store import RecordStore
from mandi_resolver.tests.utils import make_record


def test_exact_lookup_is_case_insensitive(seeded_store):
    rows = seeded_store.find_records(
        RecordFilter(commodity="COTTON", market="adoni", district="kurnool", state="andhra pradesh"),
        dt.date(2025, 10, 18),
    )

    assert len(rows) == 1
    assert rows[0].market == "Adoni"
    assert rows[0].modal_price == Decimal("7250.00")


def test_exact_lookup_respects_date(seeded_store):
    assert seeded_store.find_records(RecordFilter(commodity="Cotton", market="Adoni"), dt.date(2025, 10, 19)) == []


def test_find_records_between_is_newest_first(seeded_store):
    rows = seeded_store.find_records_between(
        RecordFilter(commodity="Cotton", district="Kurnool"),
        dt.date(2025, 10, 15),
        dt.date(2025, 10, 22),
    )
    assert [r.market for r in rows] == ["Yemmiganur", "Adoni"]


def test_latest_records_picks_most_recent_date(seeded_store):
    rows = seeded_store.latest_records(RecordFilter(commodity="Cotton", state="Andhra Pradesh"), dt.date(2025, 10, 22))
    assert [r.date for r in rows] == [dt.date(2025, 10, 19)]

    earlier = seeded_store.latest_records(RecordFilter(commodity="Cotton"), dt.date(2025, 10, 18))
    assert [r.market for r in earlier] == ["Adoni"]


def test_latest_records_without_match(seeded_store):
    assert seeded_store.latest_records(RecordFilter(commodity="Saffron"), dt.date(2025, 10, 22)) == []


def test_store_is_append_only():
    store = RecordStore(":memory:")
    assert store.append_records([make_record()]) == 1
    # Same row again with a different price is ignored, never updated
    assert store.append_records([make_record(modal_price="9999")]) == 0

    rows = store.find_records(RecordFilter(market="Adoni"), dt.date(2025, 10, 18))
    assert [r.modal_price for r in rows] == [Decimal("7250.00")]
    assert store.count_records(RecordFilter()) == 1
    store.close()


def test_append_updates_name_master(seeded_store):
    markets = {e.canonical_name: e for e in seeded_store.name_entries(NameKind.MARKET)}

    assert markets["Adoni"].last_seen_date == dt.date(2025, 10, 18)
    assert markets["Adoni"].district == "Kurnool"
    # Registered from the master list, never reported a price
    assert markets["Pattikonda"].last_seen_date is None

    seeded_store.append_records([make_record(date=dt.date(2025, 10, 20))])
    seeded_store.append_records([make_record(date=dt.date(2025, 10, 10))])
    refreshed = {e.canonical_name: e for e in seeded_store.name_entries(NameKind.MARKET)}
    assert refreshed["Adoni"].last_seen_date == dt.date(2025, 10, 20)

    commodities = [e.canonical_name for e in seeded_store.name_entries(NameKind.COMMODITY)]
    assert "Cotton" in commodities and "Maize" in commodities


def test_register_market_keeps_aliases_and_last_seen(seeded_store):
    seeded_store.register_market("Tadepalligudem", "West Godavari", "Andhra Pradesh")
    entry = next(
        e for e in seeded_store.name_entries(NameKind.MARKET) if e.canonical_name == "Tadepalligudem"
    )
    assert entry.aliases == frozenset({"TPG"})
    assert entry.last_seen_date == dt.date(2025, 10, 21)


def test_sqlite_failure_surfaces_as_store_unavailable(tmp_path):
    # A directory cannot be opened as a database file
    store = RecordStore(tmp_path)
    with pytest.raises(StoreUnavailableError):
        store.count_records(RecordFilter())
