"""Canonical comparison forms for text fragments."""

from __future__ import annotations

import re
from typing import Pattern

_ESCAPED_NEWLINE: Pattern[str] = re.compile(r"\\n")
_MARKUP_TAG: Pattern[str] = re.compile(r"<[^>]*>")
_OPENING_TAG: Pattern[str] = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)
_WHITESPACE_RUN: Pattern[str] = re.compile(r"\s+")


def normalize_text(text: str, *, strip_markup: bool = False) -> str:
    """Collapse ``text`` into its whitespace-insensitive comparison form.

    Literal ``\\n`` escapes become real newlines before whitespace is collapsed,
    so a fragment captured from rendered output compares equal to the same
    fragment stored with an escaped newline in source.
    """
    processed = _ESCAPED_NEWLINE.sub("\n", text or "")
    if strip_markup:
        processed = _MARKUP_TAG.sub("", processed)
    return _WHITESPACE_RUN.sub(" ", processed).strip()


def contains_markup(text: str) -> bool:
    """Return True when ``text`` carries at least one opening markup tag."""
    return bool(_OPENING_TAG.search(text or ""))


def is_searchable(text: str, *, strip_markup: bool = False) -> bool:
    return bool(normalize_text(text, strip_markup=strip_markup))
