"""
Name Index Service

In-memory index of known market, district and commodity names, built from
the record store's markets/commodities master. Used for exact and alias
lookups and as the candidate pool for the fuzzy matcher and the geographic
fallback.

- Market and commodity entries come straight from the store.
- Commodity entries additionally carry the static alias table's alternates.
- District entries are derived from market entries (one per district/state
  pair), so a district name is a known place even when no market shares it.

The index is read-only during resolution. ``refresh()`` rebuilds it and swaps
the lookup tables in one assignment; it is meant for the refresh job.

Usage:
    from mandi_resolver.services.name_index import get_name_index

    index = get_name_index()
    index.find(NameKind.MARKET, "adoni", state="Andhra Pradesh")
    index.entries(NameKind.MARKET, state="Andhra Pradesh")
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models import NameEntry, NameKind
from ..routing.commodity_aliases import CommodityAliases
from ..utils.text import normalize_name
from .record_store import RecordStore, get_record_store

logger = logging.getLogger(__name__)


@dataclass
class _IndexTables:
    by_kind: Dict[NameKind, List[NameEntry]] = field(default_factory=dict)
    # (kind, normalized name or alias) -> entries
    by_name: Dict[Tuple[NameKind, str], List[NameEntry]] = field(default_factory=dict)


class NameIndex:
    """Exact/alias lookup over known names, scoped by district and state."""

    def __init__(self, store: Optional[RecordStore] = None, aliases: type[CommodityAliases] = CommodityAliases):
        self.store = store or get_record_store()
        self.aliases = aliases
        self._tables = _IndexTables()
        self.refresh()

    def refresh(self) -> None:
        """Rebuild from the store's current name entries."""
        stored = self.store.name_entries()
        markets = [e for e in stored if e.kind == NameKind.MARKET]
        commodities = [self._with_table_aliases(e) for e in stored if e.kind == NameKind.COMMODITY]
        districts = self._derive_districts(markets)

        tables = _IndexTables(
            by_kind={
                NameKind.MARKET: markets,
                NameKind.COMMODITY: commodities,
                NameKind.DISTRICT: districts,
            }
        )
        by_name: Dict[Tuple[NameKind, str], List[NameEntry]] = defaultdict(list)
        for kind, entries in tables.by_kind.items():
            for entry in entries:
                for name in {entry.canonical_name, *entry.aliases}:
                    key = normalize_name(name)
                    if key:
                        by_name[(kind, key)].append(entry)
        tables.by_name = dict(by_name)

        self._tables = tables
        logger.info(
            f"Name index built: {len(markets)} markets, {len(districts)} districts, "
            f"{len(commodities)} commodities"
        )

    def _with_table_aliases(self, entry: NameEntry) -> NameEntry:
        extra = self.aliases.aliases_for(entry.canonical_name)
        if not extra:
            return entry
        return entry.model_copy(update={"aliases": frozenset(entry.aliases | set(extra))})

    @staticmethod
    def _derive_districts(markets: List[NameEntry]) -> List[NameEntry]:
        grouped: Dict[Tuple[str, str], List[NameEntry]] = defaultdict(list)
        for market in markets:
            if normalize_name(market.district):
                grouped[(normalize_name(market.district), normalize_name(market.state))].append(market)

        districts: List[NameEntry] = []
        for members in grouped.values():
            first = members[0]
            seen_dates = [m.last_seen_date for m in members if m.last_seen_date]
            districts.append(
                NameEntry(
                    kind=NameKind.DISTRICT,
                    canonical_name=first.district,
                    district=first.district,
                    state=first.state,
                    last_seen_date=max(seen_dates) if seen_dates else None,
                )
            )
        districts.sort(key=lambda e: (normalize_name(e.canonical_name), normalize_name(e.state)))
        return districts

    @staticmethod
    def _in_scope(entry: NameEntry, district: Optional[str], state: Optional[str]) -> bool:
        if state and normalize_name(entry.state) != normalize_name(state):
            return False
        if district and normalize_name(entry.district) != normalize_name(district):
            return False
        return True

    def entries(
        self,
        kind: NameKind,
        state: Optional[str] = None,
        district: Optional[str] = None,
    ) -> List[NameEntry]:
        """All entries of a kind, optionally limited to a state and district."""
        return [
            e for e in self._tables.by_kind.get(kind, [])
            if self._in_scope(e, district, state)
        ]

    def find(
        self,
        kind: NameKind,
        name: Optional[str],
        district: Optional[str] = None,
        state: Optional[str] = None,
    ) -> List[NameEntry]:
        """Entries whose canonical name or an alias equals ``name`` (normalized)."""
        key = normalize_name(name)
        if not key:
            return []
        return [
            e for e in self._tables.by_name.get((kind, key), [])
            if self._in_scope(e, district, state)
        ]

    def is_known(self, kind: NameKind, name: Optional[str], state: Optional[str] = None) -> bool:
        return bool(self.find(kind, name, state=state))

    def commodity_names(self, commodity: Optional[str]) -> List[str]:
        """Stored canonical commodity names reachable from ``commodity`` by name or alias."""
        names = [e.canonical_name for e in self.find(NameKind.COMMODITY, commodity)]
        for alias in self.aliases.aliases_for(commodity):
            names.extend(e.canonical_name for e in self.find(NameKind.COMMODITY, alias))
        unique: List[str] = []
        for name in names:
            if name not in unique:
                unique.append(name)
        return unique

    def counts(self) -> Dict[str, int]:
        """Entry counts per kind, for the health endpoint."""
        return {kind.value: len(entries) for kind, entries in self._tables.by_kind.items()}


# Global instance
_name_index: Optional[NameIndex] = None


def get_name_index() -> NameIndex:
    """Get or create the global name index."""
    global _name_index
    if _name_index is None:
        _name_index = NameIndex()
    return _name_index
