"""
Name Routing Module

Pure helpers the resolution engine uses to route an unresolved name:

Components:
- CommodityAliases: Static commodity synonym table
- match / similarity: Edit-distance spelling candidates
- GeographicFallbackResolver: Nearby markets by district and state
"""

from .commodity_aliases import CommodityAliases
from .fuzzy_matcher import match, similarity
from .geo_fallback import GeographicFallbackResolver

__all__ = [
    "CommodityAliases",
    "match",
    "similarity",
    "GeographicFallbackResolver",
]
