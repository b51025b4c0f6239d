"""
Resolution Engine

Turns a loosely specified price query (market, district, state, commodity,
date) into price records or a short list of disambiguation candidates.

Tiers, tried in order until one yields a usable result:

    1. EXACT                 store rows for the exact filter; with no date,
                             the remote source and the store run concurrently
    2. ALIAS_EXPANSION       retry tier 1 with static commodity aliases
    3. SPELLING_CORRECTION   fuzzy match an unknown market/district name;
                             auto-correct only one high-confidence candidate
    4. GEOGRAPHIC            known place without data -> nearby markets
    5. HISTORICAL            walk back day by day through the store only

Remote failures are logged and treated as "no current data". Store failures
propagate as StoreUnavailableError. Every other outcome is one of Resolved,
NeedsDisambiguation or NotFound.

Usage:
    from mandi_resolver.services.resolution_engine import ResolutionEngine

    engine = ResolutionEngine()
    result = await engine.resolve({"commodity": "Cotton", "market": "Adoni"})

Cancelling the task running ``resolve`` cancels any in-flight remote call.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from ..config import Settings, get_settings
from ..exceptions import InvalidIntentError, RemoteUnavailableError, StoreUnavailableError
from ..models import (
    Candidate,
    DisambiguationReason,
    Intent,
    NameEntry,
    NameKind,
    NeedsDisambiguation,
    NotFound,
    PriceRecord,
    RecordFilter,
    ResolutionResult,
    Resolved,
    Tier,
)
from ..providers.agmarknet import AgmarknetProvider
from ..providers.base import BaseProvider
from ..routing.commodity_aliases import CommodityAliases
from ..routing.fuzzy_matcher import match
from ..routing.geo_fallback import GeographicFallbackResolver
from ..utils.text import normalize_name
from .backfill import HistoricalBackfillResolver
from .http_pool import close_http_pool
from .name_index import NameIndex
from .record_store import RecordStore, get_record_store

logger = logging.getLogger(__name__)


class LocationStatus(str, Enum):
    ABSENT = "absent"
    KNOWN = "known"
    KNOWN_NO_DATA = "known_no_data"
    UNKNOWN = "unknown"


@dataclass
class LocationMatch:
    """How the intent's most specific location name relates to the name index."""
    status: LocationStatus
    kind: NameKind = NameKind.MARKET
    name: Optional[str] = None
    entries: List[NameEntry] = field(default_factory=list)

    @property
    def district(self) -> Optional[str]:
        if not self.entries:
            return None
        entry = self.entries[0]
        return entry.canonical_name if entry.kind == NameKind.DISTRICT else entry.district

    @property
    def state(self) -> Optional[str]:
        return self.entries[0].state if self.entries else None


class ResolutionEngine:
    """Single ordered-tier state machine shared by every query type."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        index: Optional[NameIndex] = None,
        remote: Optional[BaseProvider] = None,
        settings: Optional[Settings] = None,
        today: Optional[Callable[[], dt.date]] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or get_record_store()
        self.index = index or NameIndex(self.store)
        if remote is None and self.settings.remote_enabled:
            remote = AgmarknetProvider()
        self.remote = remote
        self.geo = GeographicFallbackResolver(self.index)
        self.backfill = HistoricalBackfillResolver(self.store, settings=self.settings)
        self._today = today or dt.date.today

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, intent: Union[Intent, Mapping[str, Any]]) -> ResolutionResult:
        """Resolve an intent to records, candidates or a not-found reason.

        Raises:
            StoreUnavailableError: the record store cannot be read
        """
        try:
            intent = Intent.from_untrusted(intent)
        except InvalidIntentError as e:
            logger.info(f"Rejected intent: {e.message}")
            return NotFound(reason=f"invalid_intent: {e.message}")

        if not intent.has_usable_fields:
            return NotFound(reason="invalid_intent: no commodity, location or date given")

        logger.info(f"Resolving intent {intent.model_dump(exclude_defaults=True)}")
        try:
            result = await self._resolve(intent, tiers=[], allow_correction=True)
        except StoreUnavailableError:
            raise
        except Exception as e:
            logger.exception(f"Resolution failed unexpectedly: {e}")
            return NotFound(reason=f"internal_error: {type(e).__name__}")

        logger.info(f"Resolution outcome: {result.kind}")
        return result

    def resolve_blocking(self, intent: Union[Intent, Mapping[str, Any]]) -> ResolutionResult:
        """Synchronous wrapper for callers without an event loop.

        Each call runs on a fresh loop, so the pooled HTTP client opened for
        it is closed before that loop goes away.
        """
        async def run_once() -> ResolutionResult:
            try:
                return await self.resolve(intent)
            finally:
                await close_http_pool()

        return asyncio.run(run_once())

    # ------------------------------------------------------------------
    # Tier state machine
    # ------------------------------------------------------------------

    async def _resolve(self, intent: Intent, tiers: List[Tier], allow_correction: bool) -> ResolutionResult:
        location = await self._classify_location(intent)
        if location.status == LocationStatus.KNOWN:
            intent = self._canonicalize(intent, location)

        if location.status == LocationStatus.UNKNOWN:
            if not allow_correction:
                return NotFound(reason=f"unknown location '{location.name}'")
            return await self._correct_spelling(intent, location, tiers)

        if location.status == LocationStatus.KNOWN_NO_DATA:
            return self._known_place_without_data(intent, location)

        # Tier 1
        records = await self._exact(intent)
        if records:
            return self._resolved(records, tiers)

        # Tier 2
        if intent.commodity:
            alias_result = await self._expand_aliases(intent, tiers)
            if alias_result is not None:
                return alias_result

        if location.status == LocationStatus.ABSENT:
            return NotFound(reason=f"no price records for {self._describe(intent)}")

        # Tier 5, then tier 4 when the lookback window is exhausted
        if intent.date and intent.commodity and intent.market:
            backfilled = await self._backfill(intent, tiers)
            if backfilled is not None:
                return backfilled

        return self._nearby_or_not_found(intent, location)

    async def _classify_location(self, intent: Intent) -> LocationMatch:
        if intent.market:
            name, kind = intent.market, NameKind.MARKET
        elif intent.district:
            name, kind = intent.district, NameKind.DISTRICT
        else:
            return LocationMatch(status=LocationStatus.ABSENT)

        entries = self.index.find(kind, name, state=intent.state)
        if kind == NameKind.MARKET and not entries:
            # A district named where a market was expected is a real place
            # without a market of its own.
            districts = self.index.find(NameKind.DISTRICT, name, state=intent.state)
            if districts:
                return LocationMatch(LocationStatus.KNOWN_NO_DATA, NameKind.DISTRICT, name, districts)

        if not entries:
            return LocationMatch(LocationStatus.UNKNOWN, kind, name)

        if kind == NameKind.MARKET:
            probe = RecordFilter(market=entries[0].canonical_name, state=intent.state)
        else:
            probe = RecordFilter(district=entries[0].canonical_name, state=intent.state)
        count = await asyncio.to_thread(self.store.count_records, probe)
        status = LocationStatus.KNOWN if count else LocationStatus.KNOWN_NO_DATA
        logger.debug(f"Location '{name}' is {status.value} ({count} records ever)")
        return LocationMatch(status, kind, name, entries)

    @staticmethod
    def _canonicalize(intent: Intent, location: LocationMatch) -> Intent:
        """Replace a matched alias with the canonical name the store keys on."""
        canonical = {normalize_name(e.canonical_name) for e in location.entries}
        if len(canonical) != 1 or location.kind != location.entries[0].kind:
            return intent
        name = location.entries[0].canonical_name
        field_name = "market" if location.kind == NameKind.MARKET else "district"
        if normalize_name(getattr(intent, field_name)) == normalize_name(name):
            return intent
        logger.debug(f"Canonicalized {field_name} '{getattr(intent, field_name)}' -> '{name}'")
        return intent.model_copy(update={field_name: name})

    # Tier 1 ------------------------------------------------------------

    async def _exact(self, intent: Intent) -> List[PriceRecord]:
        record_filter = RecordFilter.from_intent(intent)
        if intent.date is None:
            return await self._current(record_filter)
        if intent.date_is_range:
            start = intent.date - dt.timedelta(days=self.settings.date_range_days - 1)
            return await asyncio.to_thread(self.store.find_records_between, record_filter, start, intent.date)
        return await asyncio.to_thread(self.store.find_records, record_filter, intent.date)

    async def _current(self, record_filter: RecordFilter) -> List[PriceRecord]:
        """Latest prices: remote and store race, a store answer for today wins outright."""
        today = self._today()
        store_task = asyncio.create_task(asyncio.to_thread(self.store.latest_records, record_filter, today))
        remote_task = (
            asyncio.create_task(self._fetch_remote(record_filter, today))
            if self.remote is not None else None
        )
        try:
            if remote_task is None:
                return await store_task

            done, _ = await asyncio.wait({store_task, remote_task}, return_when=asyncio.FIRST_COMPLETED)
            if store_task in done:
                stored = store_task.result()
                if stored and stored[0].date == today:
                    logger.debug(f"Store already has today's prices for {record_filter.as_params()}")
                    return stored

            fresh = await remote_task
            if fresh:
                return fresh
            return await store_task
        finally:
            for task in (store_task, remote_task):
                if task is not None and not task.done():
                    task.cancel()

    async def _fetch_remote(self, record_filter: RecordFilter, on: dt.date) -> List[PriceRecord]:
        """One bounded remote call; any failure means "no current data"."""
        timeout = self.settings.remote_timeout_seconds
        try:
            return await asyncio.wait_for(self.remote.fetch_records(record_filter, on=on), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Remote lookup timed out after {timeout}s for {record_filter.as_params()}")
        except RemoteUnavailableError as e:
            logger.warning(f"Remote lookup unavailable: {e.message}")
        except Exception as e:
            logger.warning(f"Remote lookup failed for {record_filter.as_params()}: {e}")
        return []

    # Tier 2 ------------------------------------------------------------

    async def _expand_aliases(self, intent: Intent, tiers: List[Tier]) -> Optional[Resolved]:
        for alias in CommodityAliases.aliases_for(intent.commodity, exclude=intent.aliases_tried):
            records = await self._exact(intent.model_copy(update={"commodity": alias}))
            if records:
                logger.info(f"Commodity alias '{alias}' matched for '{intent.commodity}'")
                return self._resolved(records, [*tiers, Tier.ALIAS_EXPANSION])
        return None

    # Tier 3 ------------------------------------------------------------

    async def _correct_spelling(
        self,
        intent: Intent,
        location: LocationMatch,
        tiers: List[Tier],
    ) -> ResolutionResult:
        spelling = match(
            location.name,
            self.index.entries(location.kind, state=intent.state),
            self.settings.fuzzy_similarity_floor,
        )
        confident = [c for c in spelling if c.similarity >= self.settings.auto_correct_threshold]

        if len(confident) == 1:
            entry = confident[0].name_entry
            if location.kind == NameKind.MARKET:
                update = {"market": entry.canonical_name, "district": entry.district, "state": entry.state}
            else:
                update = {"district": entry.canonical_name, "state": entry.state}
            logger.info(
                f"Auto-corrected '{location.name}' -> '{entry.canonical_name}' "
                f"(similarity {confident[0].similarity:.3f})"
            )
            return await self._resolve(
                intent.model_copy(update=update),
                tiers=[*tiers, Tier.SPELLING_CORRECTION],
                allow_correction=False,
            )

        # Geographic suggestions apply only when a district anchors the query
        geographic: List[Candidate] = []
        if location.kind == NameKind.MARKET and intent.district:
            geographic = self.geo.nearby_markets(
                intent.district,
                intent.state,
                limit=self.settings.geographic_candidate_limit,
            )
        elif not spelling and intent.state:
            geographic = self.geo.nearby_markets(
                None,
                intent.state,
                limit=self.settings.geographic_candidate_limit,
            )

        if spelling and geographic:
            candidates = self._combine(spelling, geographic)
        elif spelling:
            candidates = spelling[: self.settings.max_candidates]
        else:
            candidates = geographic

        if not candidates:
            return NotFound(reason=f"unknown location '{location.name}'")
        logger.info(f"'{location.name}' needs disambiguation: {len(candidates)} candidates")
        return NeedsDisambiguation(candidates=candidates, reason=DisambiguationReason.NO_EXACT_MATCH)

    # Tier 4 ------------------------------------------------------------

    def _known_place_without_data(self, intent: Intent, location: LocationMatch) -> ResolutionResult:
        geographic = self.geo.nearby_markets(
            location.district,
            location.state,
            excluding=location.name,
            limit=self.settings.geographic_candidate_limit,
        )
        excluded = {e.key for e in location.entries}
        spelling = [
            c for c in match(
                location.name,
                self.index.entries(NameKind.MARKET, state=intent.state),
                self.settings.fuzzy_similarity_floor,
            )
            if c.name_entry.key not in excluded
            and normalize_name(c.name_entry.canonical_name) != normalize_name(location.name)
        ]

        if spelling and geographic:
            candidates = self._combine(spelling, geographic)
        elif geographic:
            candidates = geographic
        else:
            candidates = spelling[: self.settings.max_candidates]

        if not candidates:
            return NotFound(reason=f"no markets with price data near '{location.name}'")
        logger.info(f"'{location.name}' is a known place without prices; suggesting {len(candidates)} markets")
        return NeedsDisambiguation(candidates=candidates, reason=DisambiguationReason.NO_DATA_FOR_EXACT_MATCH)

    def _nearby_or_not_found(self, intent: Intent, location: LocationMatch) -> ResolutionResult:
        geographic = self.geo.nearby_markets(
            intent.district or location.district,
            intent.state or location.state,
            excluding=intent.market,
            limit=self.settings.geographic_candidate_limit,
        )
        if not geographic:
            return NotFound(reason=f"no price records for {self._describe(intent)}")
        return NeedsDisambiguation(candidates=geographic, reason=DisambiguationReason.NO_DATA_FOR_EXACT_MATCH)

    # Tier 5 ------------------------------------------------------------

    async def _backfill(self, intent: Intent, tiers: List[Tier]) -> Optional[Resolved]:
        commodity, via_alias = self._stored_commodity(intent)
        before = intent.date
        if intent.date_is_range:
            before = intent.date - dt.timedelta(days=self.settings.date_range_days - 1)

        records = await asyncio.to_thread(
            self.backfill.last_available_records,
            commodity,
            intent.market,
            intent.district,
            intent.state,
            before,
        )
        if not records:
            return None
        applied = [*tiers, Tier.ALIAS_EXPANSION] if via_alias else list(tiers)
        return self._resolved(records, [*applied, Tier.HISTORICAL])

    def _stored_commodity(self, intent: Intent) -> Tuple[str, bool]:
        """The commodity name the store knows this query by, and whether an alias got us there."""
        requested = normalize_name(intent.commodity)
        names = [
            n for n in self.index.commodity_names(intent.commodity)
            if normalize_name(n) not in intent.aliases_tried
        ]
        if not names or any(normalize_name(n) == requested for n in names):
            return intent.commodity, False
        return names[0], True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _combine(self, spelling: Sequence[Candidate], geographic: Sequence[Candidate]) -> List[Candidate]:
        """Both suggestion sets, capped, spelling first, duplicates dropped."""
        combined = list(spelling[: self.settings.combined_spelling_cap])
        seen = {c.name_entry.key for c in combined}
        added = 0
        for candidate in geographic:
            if added >= self.settings.combined_geographic_cap:
                break
            if candidate.name_entry.key in seen:
                continue
            seen.add(candidate.name_entry.key)
            combined.append(candidate)
            added += 1
        return combined

    @staticmethod
    def _resolved(records: List[PriceRecord], tiers: Sequence[Tier]) -> Resolved:
        return Resolved(
            records=records,
            matched_exactly=not tiers,
            used_fallback_tier=tiers[-1] if tiers else Tier.EXACT,
            tiers_used=list(tiers),
        )

    @staticmethod
    def _describe(intent: Intent) -> str:
        parts = [
            f"{name}={value}" for name, value in (
                ("commodity", intent.commodity),
                ("market", intent.market),
                ("district", intent.district),
                ("state", intent.state),
                ("date", intent.date.isoformat() if intent.date else None),
            ) if value
        ]
        return ", ".join(parts)


# Global instance
_engine: Optional[ResolutionEngine] = None


def get_resolution_engine() -> ResolutionEngine:
    """Get or create the global resolution engine."""
    global _engine
    if _engine is None:
        _engine = ResolutionEngine()
    return _engine
