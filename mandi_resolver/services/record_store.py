"""
Price Record Store

SQLite-backed, append-only store of daily mandi prices plus the
markets/commodities master that the name index is built from.

Matching is case-insensitive: every name column has a ``*_key`` twin holding
``normalize_name(value)``, and filters compare against the keys.

Usage:
    from mandi_resolver.services.record_store import get_record_store

    store = get_record_store()
    rows = store.find_records(RecordFilter(commodity="Cotton", market="Adoni"), date(2025, 10, 18))
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..config import get_settings
from ..exceptions import StoreUnavailableError
from ..models import NameEntry, NameKind, PriceRecord, RecordFilter
from ..utils.text import normalize_name

logger = logging.getLogger(__name__)

_FILTER_COLUMNS: Tuple[Tuple[str, str], ...] = (
    ("commodity", "commodity_key"),
    ("market", "market_key"),
    ("district", "district_key"),
    ("state", "state_key"),
)

_RECORD_COLUMNS = (
    "commodity, variety, grade, market, district, state, arrival_date, "
    "min_price, max_price, modal_price, arrival_quantity"
)


def _decimal_text(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


class RecordStore:
    """
    Append-only price store with exact and date-window queries.

    Historical rows are never updated: a second insert of the same
    (commodity, variety, grade, market, district, state, date) row is ignored.
    The resolution engine only reads; ``append_records`` and
    ``register_market`` are for the refresh job.
    """

    def __init__(self, db_path: Optional[Path | str] = None):
        self.db_path = Path(db_path or get_settings().record_store_path)
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._initialized = False
        self._lock = threading.Lock()  # one connection shared across worker threads

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if not self._initialized:
                self._initialize_db()
                self._initialized = True
        return self._conn

    def _initialize_db(self) -> None:
        """Initialize the price and name tables."""
        conn = self._conn
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS price_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                commodity TEXT NOT NULL,
                variety TEXT NOT NULL DEFAULT 'Unknown',
                grade TEXT NOT NULL DEFAULT '',
                market TEXT NOT NULL,
                district TEXT NOT NULL,
                state TEXT NOT NULL,
                commodity_key TEXT NOT NULL,
                market_key TEXT NOT NULL,
                district_key TEXT NOT NULL,
                state_key TEXT NOT NULL,
                arrival_date TEXT NOT NULL,
                min_price TEXT,
                max_price TEXT,
                modal_price TEXT,
                arrival_quantity TEXT NOT NULL DEFAULT '0',
                synced_at TEXT DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(commodity_key, variety, grade, market_key, district_key, state_key, arrival_date)
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_prices_market_date "
            "ON price_records(market_key, commodity_key, arrival_date DESC)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_prices_district ON price_records(state_key, district_key)"
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_prices_date ON price_records(arrival_date DESC)")

        # Markets and commodities master; last_seen_date stays NULL for
        # markets registered from the master list that never reported a price.
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS name_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                canonical_name TEXT NOT NULL,
                name_key TEXT NOT NULL,
                district TEXT NOT NULL DEFAULT '',
                state TEXT NOT NULL DEFAULT '',
                district_key TEXT NOT NULL DEFAULT '',
                state_key TEXT NOT NULL DEFAULT '',
                aliases TEXT NOT NULL DEFAULT '[]',
                last_seen_date TEXT,
                UNIQUE(kind, name_key, district_key, state_key)
            )
        """)

        conn.commit()
        logger.info(f"Initialized record store at {self.db_path}")

    @contextmanager
    def _cursor(self, write: bool = False) -> Iterator[sqlite3.Cursor]:
        """Serialized cursor; sqlite errors surface as StoreUnavailableError."""
        with self._lock:
            try:
                conn = self._get_connection()
                cursor = conn.cursor()
                yield cursor
                if write:
                    conn.commit()
            except sqlite3.Error as e:
                if write and self._conn is not None:
                    self._conn.rollback()
                logger.error(f"Record store failure ({self.db_path}): {e}")
                raise StoreUnavailableError(
                    f"Record store unavailable: {e}",
                    details={"path": str(self.db_path)},
                ) from e

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _where(record_filter: RecordFilter) -> Tuple[List[str], List[Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        for field, column in _FILTER_COLUMNS:
            value = getattr(record_filter, field)
            if value:
                clauses.append(f"{column} = ?")
                params.append(normalize_name(value))
        return clauses, params

    def _select(self, clauses: List[str], params: Sequence[Any], limit: Optional[int]) -> List[PriceRecord]:
        sql = f"SELECT {_RECORD_COLUMNS} FROM price_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY arrival_date DESC, commodity, variety, market"
        query_params = list(params)
        if limit:
            sql += " LIMIT ?"
            query_params.append(limit)

        with self._cursor() as cursor:
            cursor.execute(sql, query_params)
            rows = cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_records(
        self,
        record_filter: RecordFilter,
        on: dt.date,
        limit: Optional[int] = None,
    ) -> List[PriceRecord]:
        """Rows matching every non-empty filter field on exactly one date."""
        clauses, params = self._where(record_filter)
        clauses.append("arrival_date = ?")
        params.append(on.isoformat())
        return self._select(clauses, params, limit)

    def find_records_between(
        self,
        record_filter: RecordFilter,
        start: dt.date,
        end: dt.date,
        limit: Optional[int] = None,
    ) -> List[PriceRecord]:
        """Rows matching the filter with ``start <= date <= end``, newest first."""
        clauses, params = self._where(record_filter)
        clauses.append("arrival_date BETWEEN ? AND ?")
        params.extend([start.isoformat(), end.isoformat()])
        return self._select(clauses, params, limit)

    def latest_records(
        self,
        record_filter: RecordFilter,
        on_or_before: dt.date,
        limit: Optional[int] = None,
    ) -> List[PriceRecord]:
        """Rows for the most recent date ``<= on_or_before`` that has any match."""
        clauses, params = self._where(record_filter)
        inner = clauses + ["arrival_date <= ?"]
        inner_params = params + [on_or_before.isoformat()]
        latest_sql = "(SELECT MAX(arrival_date) FROM price_records WHERE " + " AND ".join(inner) + ")"
        return self._select(clauses + [f"arrival_date = {latest_sql}"], params + inner_params, limit)

    def count_records(self, record_filter: RecordFilter) -> int:
        """Number of rows ever stored for the filter."""
        clauses, params = self._where(record_filter)
        sql = "SELECT COUNT(*) AS n FROM price_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            return int(cursor.fetchone()["n"])

    def name_entries(self, kind: Optional[NameKind] = None) -> List[NameEntry]:
        """All master entries, optionally of one kind."""
        sql = "SELECT kind, canonical_name, district, state, aliases, last_seen_date FROM name_entries"
        params: List[Any] = []
        if kind is not None:
            sql += " WHERE kind = ?"
            params.append(kind.value)
        sql += " ORDER BY kind, canonical_name, district, state"

        with self._cursor() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        return [
            NameEntry(
                kind=NameKind(row["kind"]),
                canonical_name=row["canonical_name"],
                district=row["district"],
                state=row["state"],
                aliases=frozenset(json.loads(row["aliases"] or "[]")),
                last_seen_date=dt.date.fromisoformat(row["last_seen_date"]) if row["last_seen_date"] else None,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Writes (refresh job only)
    # ------------------------------------------------------------------

    def append_records(self, records: Iterable[PriceRecord]) -> int:
        """Append price rows; duplicates of an existing row are ignored.

        Also records each market and commodity in the master with the
        latest date it was seen.

        Returns:
            Number of rows actually inserted
        """
        rows = [
            (
                r.commodity, r.variety or "Unknown", r.grade or "",
                r.market, r.district, r.state,
                normalize_name(r.commodity), normalize_name(r.market),
                normalize_name(r.district), normalize_name(r.state),
                r.date.isoformat(),
                _decimal_text(r.min_price), _decimal_text(r.max_price),
                _decimal_text(r.modal_price), str(r.arrival_quantity),
            )
            for r in records
        ]
        if not rows:
            return 0

        with self._cursor(write=True) as cursor:
            before = cursor.connection.total_changes
            cursor.executemany("""
                INSERT OR IGNORE INTO price_records (
                    commodity, variety, grade, market, district, state,
                    commodity_key, market_key, district_key, state_key,
                    arrival_date, min_price, max_price, modal_price, arrival_quantity
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
            inserted = cursor.connection.total_changes - before

            for row in rows:
                commodity, _, _, market, district, state = row[:6]
                seen = row[10]
                self._touch_entry(cursor, NameKind.MARKET, market, district, state, seen)
                self._touch_entry(cursor, NameKind.COMMODITY, commodity, "", "", seen)

        logger.info(f"Appended {inserted} of {len(rows)} price rows")
        return inserted

    def register_market(
        self,
        market: str,
        district: str,
        state: str,
        aliases: Iterable[str] = (),
    ) -> None:
        """Add a master-list market that may not have reported any prices yet."""
        with self._cursor(write=True) as cursor:
            self._touch_entry(cursor, NameKind.MARKET, market, district, state, None, aliases)

    @staticmethod
    def _touch_entry(
        cursor: sqlite3.Cursor,
        kind: NameKind,
        name: str,
        district: str,
        state: str,
        seen: Optional[str],
        aliases: Iterable[str] = (),
    ) -> None:
        alias_list = sorted({a.strip() for a in aliases if a and a.strip()})
        cursor.execute("""
            INSERT INTO name_entries (
                kind, canonical_name, name_key, district, state,
                district_key, state_key, aliases, last_seen_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(kind, name_key, district_key, state_key) DO UPDATE SET
                last_seen_date = CASE
                    WHEN excluded.last_seen_date IS NULL THEN name_entries.last_seen_date
                    WHEN name_entries.last_seen_date IS NULL THEN excluded.last_seen_date
                    ELSE MAX(name_entries.last_seen_date, excluded.last_seen_date)
                END,
                aliases = CASE
                    WHEN excluded.aliases = '[]' THEN name_entries.aliases
                    ELSE excluded.aliases
                END
        """, (
            kind.value, name, normalize_name(name), district, state,
            normalize_name(district), normalize_name(state),
            json.dumps(alias_list), seen,
        ))

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> PriceRecord:
        return PriceRecord(
            commodity=row["commodity"],
            variety=row["variety"],
            grade=row["grade"] or None,
            market=row["market"],
            district=row["district"],
            state=row["state"],
            date=row["arrival_date"],
            min_price=row["min_price"],
            max_price=row["max_price"],
            modal_price=row["modal_price"],
            arrival_quantity=row["arrival_quantity"],
        )

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                self._initialized = False


# Global instance
_record_store: Optional[RecordStore] = None


def get_record_store() -> RecordStore:
    """Get or create the global record store instance."""
    global _record_store
    if _record_store is None:
        _record_store = RecordStore()
    return _record_store
