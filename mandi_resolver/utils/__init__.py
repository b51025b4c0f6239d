"""Utility functions for mandi-resolver."""
from .text import (
    clean_optional_text,
    normalize_name,
    title_case,
)

__all__ = [
    'clean_optional_text',
    'normalize_name',
    'title_case',
]
