"""
Geographic Fallback Resolver

Suggests other markets near a reference location. No per-market coordinates
are available, so "nearby" is approximated by administrative containment:

    rank 0  same district   (similarity 1.0)
    rank 1  same state      (similarity 0.5)

This is an approximation of proximity, not a distance. Two markets in the
same large district can be further apart than two markets across a district
border. A coordinate-based implementation can replace this class without
changing how the resolution engine consumes its candidates.

Only markets that have reported prices (``last_seen_date`` set) are
suggested. Within a rank, the most recently seen market comes first, then
alphabetical order.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, List, Optional, Set

from ..models import Candidate, CandidateSource, NameEntry, NameKind
from ..utils.text import normalize_name

if TYPE_CHECKING:
    from ..services.name_index import NameIndex

logger = logging.getLogger(__name__)

SAME_DISTRICT_RANK = 0
SAME_STATE_RANK = 1

_LOCALITY_SCORE = {
    SAME_DISTRICT_RANK: 1.0,
    SAME_STATE_RANK: 0.5,
}


class GeographicFallbackResolver:
    """Ranks markets by administrative locality to a district/state."""

    def __init__(self, index: "NameIndex"):
        self.index = index

    def nearby_markets(
        self,
        district: Optional[str],
        state: Optional[str],
        excluding: Optional[str] = None,
        limit: int = 5,
    ) -> List[Candidate]:
        """Markets in the same district first, then the rest of the state.

        Args:
            district: Reference district (may be empty)
            state: Reference state; when empty, only the district is used
            excluding: Market name to leave out (the one being asked about)
            limit: Maximum number of candidates

        Returns:
            Geographic candidates; empty when neither district nor state is known
        """
        if limit <= 0 or not (normalize_name(district) or normalize_name(state)):
            return []

        excluded = normalize_name(excluding)
        seen: Set[tuple] = set()
        candidates: List[Candidate] = []

        def take(entries: List[NameEntry], rank: int) -> None:
            for entry in sorted(entries, key=self._order):
                if len(candidates) >= limit:
                    return
                if not entry.has_data or entry.key in seen:
                    continue
                if excluded and normalize_name(entry.canonical_name) == excluded:
                    continue
                seen.add(entry.key)
                candidates.append(
                    Candidate(
                        name_entry=entry,
                        similarity=_LOCALITY_SCORE[rank],
                        distance_rank=rank,
                        source=CandidateSource.GEOGRAPHIC,
                    )
                )

        if normalize_name(district):
            take(self.index.entries(NameKind.MARKET, state=state, district=district), SAME_DISTRICT_RANK)
        if normalize_name(state):
            take(self.index.entries(NameKind.MARKET, state=state), SAME_STATE_RANK)

        logger.debug(
            f"Nearby markets for district={district!r} state={state!r}: "
            f"{[c.name_entry.canonical_name for c in candidates]}"
        )
        return candidates

    @staticmethod
    def _order(entry: NameEntry) -> tuple:
        seen = entry.last_seen_date or dt.date.min
        return (-seen.toordinal(), normalize_name(entry.canonical_name), normalize_name(entry.district))
