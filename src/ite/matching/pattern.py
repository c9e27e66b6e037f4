"""Whitespace-tolerant matchers for locating fragments in source text."""

from __future__ import annotations

import re
from typing import List, Pattern, Tuple

from .normalize import normalize_text

# Between two words: any run of real whitespace and/or literal ``\n`` escapes.
_FLEXIBLE_GAP = r"(?:\s|\\n)+"

Span = Tuple[int, int]


def build_flexible_pattern(fragment: str) -> Pattern[str] | None:
    """Compile a matcher for ``fragment`` that ignores how its words are spaced.

    Returns ``None`` when the fragment holds no searchable words.
    """
    words = [word for word in normalize_text(fragment).split(" ") if word]
    if not words:
        return None
    return re.compile(_FLEXIBLE_GAP.join(re.escape(word) for word in words), re.IGNORECASE)


def _equivalent_spans(source: str, fragment: str, pattern: Pattern[str] | None) -> List[Span]:
    if pattern is None:
        return []
    target = normalize_text(fragment)
    return [
        (match.start(), match.end())
        for match in pattern.finditer(source)
        if normalize_text(match.group(0)) == target
    ]


def find_flexible_span(
    source: str,
    original: str,
    pattern: Pattern[str] | None = None,
    *,
    replacement: str | None = None,
) -> Span | None:
    """Return the ``(start, end)`` of the first match equal to ``original`` once normalized.

    When ``replacement`` already embeds ``original`` (for example ``Hello`` ->
    ``Hello World``), occurrences sitting inside an existing copy of the
    replacement are skipped so an edit is never applied twice.
    """
    matcher = pattern if pattern is not None else build_flexible_pattern(original)
    candidates = _equivalent_spans(source, original, matcher)
    if not candidates:
        return None

    applied: List[Span] = []
    if replacement and normalize_text(original) in normalize_text(replacement):
        applied = _equivalent_spans(source, replacement, build_flexible_pattern(replacement))

    for start, end in candidates:
        if any(outer_start <= start and end <= outer_end for outer_start, outer_end in applied):
            continue
        return start, end
    return None


def replace_flexible_match(
    source: str,
    original: str,
    replacement: str,
    pattern: Pattern[str] | None = None,
) -> str:
    """Splice ``replacement`` over the first occurrence of ``original`` in ``source``.

    Only the matched span changes; ``source`` is returned as-is when no match
    normalizes to the same content as ``original``.
    """
    span = find_flexible_span(source, original, pattern, replacement=replacement)
    if span is None:
        return source
    start, end = span
    return source[:start] + replacement + source[end:]
