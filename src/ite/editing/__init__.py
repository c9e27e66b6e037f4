"""Locate and patch text inside component literals and JSON data files."""

from .json_leaf import JsonPatchResult, dump_json, json_contains_text, load_document, update_text_in_json
from .literal import (
    LiteralPatcher,
    MatchResult,
    QuoteStyle,
    escape_literal,
    iter_literal_pairs,
    lines_contain_text,
    unescape_literal,
    update_text_in_component,
)
from .locator import DEFAULT_COMPONENT_CALL, ComponentSpan, find_component

__all__ = [
    "ComponentSpan",
    "DEFAULT_COMPONENT_CALL",
    "JsonPatchResult",
    "LiteralPatcher",
    "MatchResult",
    "QuoteStyle",
    "dump_json",
    "escape_literal",
    "find_component",
    "iter_literal_pairs",
    "json_contains_text",
    "lines_contain_text",
    "load_document",
    "unescape_literal",
    "update_text_in_component",
    "update_text_in_json",
]
