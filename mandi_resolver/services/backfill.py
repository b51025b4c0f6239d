"""
Historical Backfill Resolver

Finds the most recent earlier date with data for a resolved
(commodity, market) pair. Walks ``before - 1, before - 2, ...`` one exact
store query per day and stops at the first hit.

The walk is sequential and bounded: at most ``max_lookback_days`` store
queries, with the window clamped to the max_lookback_days setting. It reads
the record store only and never calls the remote source.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from ..config import Settings, get_settings
from ..models import PriceRecord, RecordFilter
from .record_store import RecordStore

logger = logging.getLogger(__name__)


class HistoricalBackfillResolver:

    def __init__(
        self,
        store: RecordStore,
        max_lookback_days: Optional[int] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.ceiling = (settings or get_settings()).max_lookback_days
        self.max_lookback_days = self._clamp(max_lookback_days)

    def _clamp(self, days: Optional[int]) -> int:
        if days is None:
            return self.ceiling
        return max(0, min(days, self.ceiling))

    def last_available_records(
        self,
        commodity: str,
        market: str,
        district: Optional[str],
        state: Optional[str],
        before: dt.date,
        max_lookback_days: Optional[int] = None,
    ) -> List[PriceRecord]:
        """All rows of the nearest earlier date with data, or [] if the window is exhausted."""
        window = self._clamp(max_lookback_days) if max_lookback_days is not None else self.max_lookback_days
        record_filter = RecordFilter(commodity=commodity, market=market, district=district, state=state)

        for offset in range(1, window + 1):
            day = before - dt.timedelta(days=offset)
            records = self.store.find_records(record_filter, day)
            if records:
                logger.info(
                    f"Backfill hit for {commodity}@{market}: {day.isoformat()} "
                    f"({offset} day(s) before {before.isoformat()})"
                )
                return records

        logger.info(f"Backfill exhausted {window} day(s) for {commodity}@{market} before {before.isoformat()}")
        return []

    def last_available(
        self,
        commodity: str,
        market: str,
        district: Optional[str],
        state: Optional[str],
        before: dt.date,
        max_lookback_days: Optional[int] = None,
    ) -> Optional[PriceRecord]:
        """The first record of the nearest earlier date with data; None when not found."""
        records = self.last_available_records(commodity, market, district, state, before, max_lookback_days)
        return records[0] if records else None
