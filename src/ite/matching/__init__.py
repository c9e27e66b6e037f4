"""Fragment normalisation and whitespace-tolerant matching."""

from .normalize import contains_markup, is_searchable, normalize_text
from .pattern import build_flexible_pattern, find_flexible_span, replace_flexible_match

__all__ = [
    "build_flexible_pattern",
    "contains_markup",
    "find_flexible_span",
    "is_searchable",
    "normalize_text",
    "replace_flexible_match",
]
