from __future__ import annotations

import re
from typing import Optional

_PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(value: Optional[str]) -> str:
    """Canonical comparison form for market, district, state and commodity names.

    Lowercases, strips punctuation and collapses whitespace, so that
    "Ravulapalem ", "RAVULAPALEM" and "Ravula-palem" compare on equal
    footing ("ravulapalem", "ravulapalem", "ravulapalem").
    """
    if not value:
        return ""
    text = _PUNCTUATION_RE.sub("", value.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def clean_optional_text(value: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace and map blank strings to None."""
    if value is None:
        return None
    stripped = _WHITESPACE_RE.sub(" ", value).strip()
    return stripped or None


def title_case(value: str) -> str:
    """Capitalize each word, the casing the data.gov.in filters expect."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in value.split(" ") if word)

