from __future__ import annotations

import datetime as dt

import pytest

from mandi_resolver.config import Settings
from mandi_resolver.services.backfill import HistoricalBackfillResolver
from mandi_resolver.services.record_store import RecordStore


class CountingStore(RecordStore):
    """Record store that counts exact-date queries."""

    def __init__(self, inner: RecordStore):
        self.inner = inner
        self.find_calls = 0

    def find_records(self, record_filter, on, limit=None):
        self.find_calls += 1
        return self.inner.find_records(record_filter, on, limit)

    def find_records_between(self, *args, **kwargs):
        raise AssertionError("backfill must walk day by day")

    def latest_records(self, *args, **kwargs):
        raise AssertionError("backfill must walk day by day")


@pytest.fixture
def counting_store(seeded_store):
    return CountingStore(seeded_store)


def test_finds_nearest_earlier_date(counting_store):
    resolver = HistoricalBackfillResolver(counting_store)

    record = resolver.last_available("Cotton", "Adoni", None, None, before=dt.date(2025, 10, 22))

    assert record is not None
    assert record.date == dt.date(2025, 10, 18)
    # 21st, 20th, 19th, 18th
    assert counting_store.find_calls == 4


def test_never_looks_at_the_requested_date_itself(counting_store):
    resolver = HistoricalBackfillResolver(counting_store)
    assert resolver.last_available("Cotton", "Adoni", "Kurnool", "Andhra Pradesh", before=dt.date(2025, 10, 18)) is None


def test_window_bounds_store_calls(counting_store):
    resolver = HistoricalBackfillResolver(counting_store)

    result = resolver.last_available("Cotton", "Adoni", None, None, before=dt.date(2026, 3, 1), max_lookback_days=10)

    assert result is None
    assert counting_store.find_calls == 10


def test_window_is_clamped_to_configured_ceiling(counting_store, monkeypatch):
    monkeypatch.setenv("MAX_LOOKBACK_DAYS", "30")
    resolver = HistoricalBackfillResolver(counting_store, max_lookback_days=365)

    assert resolver.max_lookback_days == 30
    assert resolver.last_available_records("Cotton", "Adoni", None, None, before=dt.date(2026, 3, 1)) == []
    assert counting_store.find_calls == 30

    counting_store.find_calls = 0
    resolver.last_available("Cotton", "Adoni", None, None, before=dt.date(2026, 3, 1), max_lookback_days=500)
    assert counting_store.find_calls == 30


def test_returns_all_rows_of_the_hit_date(seeded_store):
    resolver = HistoricalBackfillResolver(seeded_store)

    rows = resolver.last_available_records("Cotton", None, "Kurnool", "Andhra Pradesh", before=dt.date(2025, 10, 20))
    assert [(r.market, r.date) for r in rows] == [("Yemmiganur", dt.date(2025, 10, 19))]


def test_ceiling_comes_from_injected_settings(counting_store):
    resolver = HistoricalBackfillResolver(counting_store, settings=Settings(max_lookback_days=60))

    assert resolver.max_lookback_days == 60
    record = resolver.last_available("Cotton", "Adoni", None, None, before=dt.date(2025, 12, 8))

    assert record is not None
    assert record.date == dt.date(2025, 10, 18)
    assert counting_store.find_calls == 51
