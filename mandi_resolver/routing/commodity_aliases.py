"""
Commodity Aliases - Static Synonym Table

Single source of truth for alternate commodity names (English synonyms and
common Hindi/Telugu transliterations). Used by the resolution engine's
alias-expansion tier and by the name index to attach aliases to commodity
entries.

The table is hand-maintained and never extended at runtime. Each commodity
contributes at most MAX_ALIASES_PER_COMMODITY alternates, so alias expansion
costs a small, fixed number of lookups.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from ..utils.text import normalize_name

logger = logging.getLogger(__name__)


class CommodityAliases:
    """Resolves commodity names to their known alternates."""

    MAX_ALIASES_PER_COMMODITY = 4

    # Keys and values are in normalize_name() form
    ALIASES: Dict[str, Tuple[str, ...]] = {
        # Cereals
        "maize": ("corn", "makka", "bhutta"),
        "corn": ("maize", "makka", "bhutta"),
        "paddy": ("rice", "dhan", "paddydhancommon", "chawal"),
        "rice": ("paddy", "dhan", "chawal"),
        "wheat": ("gehun", "gehu"),
        "bajra": ("pearl millet", "bajri", "bajra pearl millet cumbu"),
        "jowar": ("sorghum", "cholam", "jowar sorghum"),
        "ragi": ("finger millet", "nachni", "ragi finger millet"),

        # Pulses
        "bengal gram": ("chana", "chickpea", "gram", "bengal gram gram whole"),
        "chana": ("bengal gram", "chickpea", "gram"),
        "chickpea": ("chana", "bengal gram", "gram"),
        "masoor": ("lentil", "red lentil", "lentil masur whole"),
        "lentil": ("masoor", "red lentil", "lentil masur whole"),
        "moong": ("green gram", "mung bean", "green gram moong whole"),
        "green gram": ("moong", "mung bean", "green gram moong whole"),
        "urad": ("black gram", "black lentil", "black gram urd beans whole"),
        "black gram": ("urad", "black lentil", "black gram urd beans whole"),
        "tur": ("arhar", "pigeon pea", "toor", "arhar tur red gram whole"),
        "arhar": ("tur", "pigeon pea", "toor", "arhar tur red gram whole"),

        # Vegetables
        "tomato": ("tamatar",),
        "potato": ("aloo", "batata"),
        "onion": ("pyaz", "kanda"),
        "brinjal": ("eggplant", "baingan", "aubergine"),
        "eggplant": ("brinjal", "baingan", "aubergine"),
        "capsicum": ("bell pepper", "shimla mirch"),
        "bell pepper": ("capsicum", "shimla mirch"),
        "cauliflower": ("gobi", "phool gobi"),
        "cabbage": ("patta gobi", "band gobi"),
        "okra": ("bhindi", "lady finger", "ladys finger", "bhindiladies finger"),
        "lady finger": ("bhindi", "okra", "ladys finger", "bhindiladies finger"),

        # Fruits
        "banana": ("kela",),
        "mango": ("aam",),
        "apple": ("seb",),
        "pomegranate": ("anar", "anaar"),
        "grapes": ("angoor",),

        # Spices
        "turmeric": ("haldi",),
        "coriander": ("dhania", "corianderleaves"),
        "chilli": ("chili", "mirch", "dry chillies", "green chilli"),
        "chili": ("chilli", "mirch", "dry chillies", "green chilli"),
        "ginger": ("adrak", "gingergreen"),
        "garlic": ("lahsun",),

        # Oil seeds
        "groundnut": ("peanut", "moongphali"),
        "peanut": ("groundnut", "moongphali"),
        "mustard": ("sarson", "rai"),
        "sunflower": ("surajmukhi",),
        "sesame": ("til", "gingelly", "sesamumsesameginellytil"),

        # Cash crops
        "cotton": ("kapas",),
        "sugarcane": ("ganna",),
        "jute": ("pat",),
    }

    @classmethod
    def aliases_for(cls, commodity: Optional[str], exclude: frozenset[str] = frozenset()) -> List[str]:
        """Alternate names for a commodity, in table order.

        Args:
            commodity: Commodity name in any casing
            exclude: Normalized names to skip (e.g. aliases a caller already tried)

        Returns:
            At most MAX_ALIASES_PER_COMMODITY alternates, never the name itself
        """
        key = normalize_name(commodity)
        if not key:
            return []
        alternates = [
            alias for alias in cls.ALIASES.get(key, ())
            if alias != key and alias not in exclude
        ]
        return alternates[: cls.MAX_ALIASES_PER_COMMODITY]

    @classmethod
    def are_aliases(cls, first: Optional[str], second: Optional[str]) -> bool:
        """True when the two names are equal or listed as alternates of each other."""
        a, b = normalize_name(first), normalize_name(second)
        if not a or not b:
            return False
        if a == b:
            return True
        return b in cls.ALIASES.get(a, ()) or a in cls.ALIASES.get(b, ())

    @classmethod
    def known_commodities(cls) -> List[str]:
        return sorted(cls.ALIASES)
