"""Rewrite text inside quoted ``key: value`` literals of a component span."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Pattern, Sequence

from ..matching import (
    build_flexible_pattern,
    contains_markup,
    is_searchable,
    normalize_text,
    replace_flexible_match,
)

MULTILINE_WINDOW = 10


class QuoteStyle(str, Enum):
    """String literal conventions recognised in component files."""

    DOUBLE = '"'
    SINGLE = "'"
    TEMPLATE = "`"


def _pair_pattern(quote: str, *, keyed: bool = True) -> Pattern[str]:
    delimiter = re.escape(quote)
    if keyed:
        prefix = r"(?P<prefix>(?P<key>[\w$]+|\"[^\"\n]*\"|'[^'\n]*')\s*:\s*)"
    else:
        # Value on its own line, e.g. after a wrapped ``description:`` key.
        prefix = r"(?P<prefix>(?P<key>))"
    return re.compile(
        prefix
        + delimiter
        + r"(?P<value>(?:[^" + delimiter + r"\\]|\\.)*)"
        + delimiter,
        re.DOTALL,
    )


_PAIR_PATTERNS = {style: _pair_pattern(style.value) for style in QuoteStyle}
_BARE_PATTERNS = {style: _pair_pattern(style.value, keyed=False) for style in QuoteStyle}
_ESCAPE_SEQUENCE = re.compile(
    r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])"
)
_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\n": "",
    "\r\n": "",
}


@dataclass(slots=True)
class MatchResult:
    """Outcome of a single patch attempt against a component span."""

    found: bool
    line_index: int = 0
    updated_lines: List[str] = field(default_factory=list)
    strategy: Optional[str] = None
    quote_style: Optional[QuoteStyle] = None


@dataclass(slots=True)
class LiteralPair:
    """A ``key: <quoted value>`` pair extracted from source text."""

    key: str
    value: str
    quote: QuoteStyle
    start: int
    end: int
    prefix: str

    @property
    def text(self) -> str:
        return unescape_literal(self.value)


def unescape_literal(raw: str) -> str:
    """Decode the escape sequences of a quoted literal body into its logical text."""

    def _decode(match: re.Match[str]) -> str:
        token = match.group(1)
        if token in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[token]
        if token.startswith("u{"):
            return chr(int(token[2:-1], 16))
        if len(token) == 5 and token[0] == "u":
            return chr(int(token[1:], 16))
        if len(token) == 3 and token[0] == "x":
            return chr(int(token[1:], 16))
        return token

    return _ESCAPE_SEQUENCE.sub(_decode, raw)


def escape_literal(text: str, quote: QuoteStyle, *, keep_newlines: bool = False) -> str:
    """Encode ``text`` so it can sit between ``quote`` delimiters.

    Template literals additionally escape ``${`` so interpolation markers in
    edited text stay literal.
    """
    escaped = text.replace("\\", "\\\\").replace(quote.value, "\\" + quote.value)
    if quote is QuoteStyle.TEMPLATE:
        escaped = escaped.replace("${", "\\${")
    if not (keep_newlines and quote is QuoteStyle.TEMPLATE):
        escaped = escaped.replace("\r", "\\r").replace("\n", "\\n")
    return escaped


def iter_literal_pairs(text: str, quote: QuoteStyle, *, keyed: bool = True) -> Iterator[LiteralPair]:
    """Yield quoted values in ``text``; ``keyed=False`` yields every literal, key or not."""
    patterns = _PAIR_PATTERNS if keyed else _BARE_PATTERNS
    for match in patterns[quote].finditer(text):
        yield LiteralPair(
            key=match.group("key"),
            value=match.group("value"),
            quote=quote,
            start=match.start(),
            end=match.end(),
            prefix=match.group("prefix"),
        )


def choose_quote_style(current: QuoteStyle, replacement: str, updated_value: str) -> QuoteStyle:
    """Upgrade double-quoted values to template literals once they carry markup."""
    if current is QuoteStyle.DOUBLE and contains_markup(replacement) and contains_markup(updated_value):
        return QuoteStyle.TEMPLATE
    return current


class LiteralPatcher:
    """Replace one fragment inside the string literals of a component span."""

    def __init__(self, original: str, replacement: str, *, window: int = MULTILINE_WINDOW) -> None:
        self.original = original
        self.replacement = replacement
        self.window = max(window, 2)
        self.strip_markup = contains_markup(replacement)
        self.target = normalize_text(original, strip_markup=self.strip_markup)
        self.pattern = build_flexible_pattern(original)

    def apply(self, lines: Sequence[str]) -> MatchResult:
        source = list(lines)
        if not is_searchable(self.original, strip_markup=self.strip_markup) or self.pattern is None:
            return MatchResult(found=False, updated_lines=source)

        for index, line in enumerate(source):
            if not self._mentions(line):
                continue
            patched = self._patch_pairs(line) or self._patch_pairs(line, keyed=False)
            if patched is not None:
                text, quote = patched
                return self._result(source, index, [text], "literal", quote)
            direct = replace_flexible_match(line, self.original, self.replacement, self.pattern)
            if direct != line:
                return self._result(source, index, [direct], "line", None)

        for index in range(len(source) - 1):
            chunk = source[index : index + self.window]
            joined = "\n".join(chunk)
            if not self._mentions(joined):
                continue
            patched = self._patch_pairs(joined) or self._patch_pairs(joined, keyed=False)
            if patched is not None:
                text, quote = patched
                return self._result(source, index, text.split("\n"), "window", quote, span=len(chunk))
            direct = replace_flexible_match(joined, self.original, self.replacement, self.pattern)
            if direct != joined:
                return self._result(source, index, direct.split("\n"), "window", None, span=len(chunk))

        return MatchResult(found=False, updated_lines=source)

    def _mentions(self, text: str) -> bool:
        if self.target in normalize_text(text, strip_markup=self.strip_markup):
            return True
        return self.target in normalize_text(unescape_literal(text), strip_markup=self.strip_markup)

    def _patch_pairs(self, text: str, *, keyed: bool = True) -> Optional[tuple[str, QuoteStyle]]:
        for quote in QuoteStyle:
            for pair in iter_literal_pairs(text, quote, keyed=keyed):
                value = pair.text
                if self.target not in normalize_text(value, strip_markup=self.strip_markup):
                    continue
                updated = replace_flexible_match(value, self.original, self.replacement, self.pattern)
                if updated == value:
                    continue
                chosen = choose_quote_style(quote, self.replacement, updated)
                escaped = escape_literal(updated, chosen, keep_newlines="\n" in pair.value)
                literal = f"{pair.prefix}{chosen.value}{escaped}{chosen.value}"
                return text[: pair.start] + literal + text[pair.end :], chosen
        return None

    @staticmethod
    def _result(
        source: List[str],
        index: int,
        replacement_lines: List[str],
        strategy: str,
        quote: Optional[QuoteStyle],
        *,
        span: int = 1,
    ) -> MatchResult:
        updated = [*source[:index], *replacement_lines, *source[index + span :]]
        return MatchResult(
            found=True,
            line_index=index,
            updated_lines=updated,
            strategy=strategy,
            quote_style=quote,
        )


def update_text_in_component(lines: Sequence[str], original: str, replacement: str) -> MatchResult:
    """Patch the first occurrence of ``original`` within ``lines``; at most one replacement."""
    return LiteralPatcher(original, replacement).apply(lines)


def lines_contain_text(lines: Sequence[str], fragment: str) -> bool:
    """Return True when ``fragment`` already appears in ``lines``, raw or unescaped."""
    target = normalize_text(fragment)
    if not target:
        return False
    joined = "\n".join(lines)
    return target in normalize_text(joined) or target in normalize_text(unescape_literal(joined))
