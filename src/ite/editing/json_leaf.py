"""Fallback search-and-replace over the string leaves of JSON data files."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Pattern, Tuple, Union

from ..errors import MalformedDocument
from ..matching import (
    build_flexible_pattern,
    contains_markup,
    is_searchable,
    normalize_text,
    replace_flexible_match,
)

LOGGER = logging.getLogger(__name__)

PathElement = Union[int, str]

_LEAF_MARKER = "\u0000ite-updated-leaf\u0000"


@dataclass(slots=True)
class JsonPatchResult:
    """Outcome of patching a JSON document; ``updated_content`` is the input when not found."""

    found: bool
    updated_content: str
    location: Tuple[PathElement, ...] = ()
    line_number: int = 0
    malformed: bool = False
    reason: Optional[str] = None


@dataclass(slots=True)
class _LeafSearch:
    original: str
    replacement: str
    target: str
    strip_markup: bool
    pattern: Pattern[str]
    location: List[PathElement] = field(default_factory=list)
    container: Any = None

    def visit(self, node: Any, path: List[PathElement]) -> bool:
        if isinstance(node, list):
            for index, child in enumerate(node):
                if self._visit_child(node, index, child, path):
                    return True
        elif isinstance(node, dict):
            for key, child in node.items():
                if self._visit_child(node, key, child, path):
                    return True
        return False

    def _visit_child(self, container: Any, key: PathElement, child: Any, path: List[PathElement]) -> bool:
        if isinstance(child, str):
            updated = self._patch_leaf(child)
            if updated is None:
                return False
            container[key] = updated
            self.location = [*path, key]
            self.container = container
            return True
        return self.visit(child, [*path, key])

    def _patch_leaf(self, value: str) -> Optional[str]:
        if self.target not in normalize_text(value, strip_markup=self.strip_markup):
            return None
        updated = replace_flexible_match(value, self.original, self.replacement, self.pattern)
        return updated if updated != value else None


def dump_json(data: Any) -> str:
    """Serialise ``data`` with two-space indentation and a trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def load_document(content: str) -> Any:
    """Parse a data file whose root must be an object or an array."""
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as error:
        raise MalformedDocument(f"Invalid JSON: {error}") from error
    if not isinstance(data, (list, dict)):
        raise MalformedDocument("Document root is not an object or array")
    return data


def _iter_leaves(node: Any) -> Iterator[str]:
    if isinstance(node, str):
        yield node
    elif isinstance(node, list):
        for child in node:
            yield from _iter_leaves(child)
    elif isinstance(node, dict):
        for child in node.values():
            yield from _iter_leaves(child)


def json_contains_text(content: str, fragment: str) -> bool:
    """Return True when some string leaf of ``content`` already holds ``fragment``."""
    target = normalize_text(fragment)
    if not target:
        return False
    try:
        data = load_document(content)
    except MalformedDocument:
        return False
    return any(target in normalize_text(leaf) for leaf in _iter_leaves(data))


def _line_of(data: Any, search: _LeafSearch) -> int:
    """1-based line of the patched leaf in the serialised ``data``."""
    key = search.location[-1]
    updated = search.container[key]
    search.container[key] = _LEAF_MARKER
    try:
        rendered = dump_json(data)
    finally:
        search.container[key] = updated
    encoded = json.dumps(_LEAF_MARKER, ensure_ascii=False)
    for number, line in enumerate(rendered.split("\n"), start=1):
        if encoded in line:
            return number
    return 1


def update_text_in_json(content: str, original: str, replacement: str) -> JsonPatchResult:
    """Replace ``original`` inside the first matching string leaf of ``content``.

    Leaves are visited depth-first with list items in index order and object
    members in key order; at most one leaf changes. Parsing problems and misses
    are reported on the result instead of raised.
    """
    strip_markup = contains_markup(replacement)
    target = normalize_text(original, strip_markup=strip_markup)
    pattern = build_flexible_pattern(original)
    if not is_searchable(original, strip_markup=strip_markup) or pattern is None:
        return JsonPatchResult(found=False, updated_content=content, reason="empty fragment")

    try:
        data = load_document(content)
    except MalformedDocument as error:
        LOGGER.debug("Skipping malformed JSON document: %s", error)
        return JsonPatchResult(found=False, updated_content=content, malformed=True, reason=str(error))

    search = _LeafSearch(
        original=original,
        replacement=replacement,
        target=target,
        strip_markup=strip_markup,
        pattern=pattern,
    )
    if not search.visit(data, []):
        return JsonPatchResult(found=False, updated_content=content, reason="text not found")

    updated_content = dump_json(data)
    return JsonPatchResult(
        found=True,
        updated_content=updated_content,
        location=tuple(search.location),
        line_number=_line_of(data, search),
    )
