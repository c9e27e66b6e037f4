"""Locate ``createComponent`` literals inside component configuration files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Pattern, Tuple

DEFAULT_COMPONENT_CALL = "createComponent"


@dataclass(slots=True)
class ComponentSpan:
    """Line range of one component literal within a source file (0-based, inclusive)."""

    start_line: int
    end_line: int
    lines: List[str] = field(default_factory=list)
    file_path: Optional[Path] = None
    id_line: int = 0

    def splice(self, file_lines: List[str], updated: List[str]) -> List[str]:
        """Return ``file_lines`` with this span replaced by ``updated``."""
        return [*file_lines[: self.start_line], *updated, *file_lines[self.end_line + 1 :]]


def _id_pattern(component_id: str) -> Pattern[str]:
    return re.compile(
        r"(?<![\w$])id\s*:\s*([\"'])" + re.escape(component_id) + r"\1",
        re.IGNORECASE,
    )


class _DelimiterScanner:
    """Brace-depth counter that ignores braces inside strings and comments.

    State carries across lines so template literals and block comments that
    span several lines are handled.
    """

    __slots__ = ("depth", "opened", "_quote", "_escaped", "_block_comment")

    def __init__(self) -> None:
        self.depth = 0
        self.opened = False
        self._quote: Optional[str] = None
        self._escaped = False
        self._block_comment = False

    def feed(self, line: str) -> bool:
        """Consume ``line``; return True as soon as the depth closes back to zero."""
        index = 0
        length = len(line)
        while index < length:
            char = line[index]
            nxt = line[index + 1] if index + 1 < length else ""
            if self._block_comment:
                if char == "*" and nxt == "/":
                    self._block_comment = False
                    index += 1
            elif self._quote is not None:
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == self._quote:
                    self._quote = None
            elif char in "\"'`":
                self._quote = char
            elif char == "/" and nxt == "/":
                break
            elif char == "/" and nxt == "*":
                self._block_comment = True
                index += 1
            elif char == "{":
                self.depth += 1
                self.opened = True
            elif char == "}":
                self.depth -= 1
                if self.opened and self.depth <= 0:
                    return True
            index += 1
        # Plain quotes never continue onto the next line; template literals do.
        if self._quote in ("\"", "'"):
            self._quote = None
            self._escaped = False
        return False


def _closing_line(lines: List[str], start: int, column: int) -> Optional[int]:
    scanner = _DelimiterScanner()
    for offset, line in enumerate(lines[start:]):
        segment = line[column:] if offset == 0 else line
        if scanner.feed(segment):
            return start + offset if scanner.depth == 0 else None
    return None


def find_component(
    content: str,
    component_id: str,
    *,
    call_name: str = DEFAULT_COMPONENT_CALL,
    file_path: Optional[Path] = None,
) -> Optional[ComponentSpan]:
    """Find the literal declaring ``id: "<component_id>"`` in ``content``.

    The nearest ``call_name`` line above the id line opens the component and the
    line where its braces balance closes it. Id lines that are not enclosed by
    a balanced component literal are skipped.
    """
    if not component_id:
        return None
    pattern = _id_pattern(component_id)
    lines = content.split("\n")

    for id_line, line in enumerate(lines):
        if not pattern.search(line):
            continue
        opening = _find_opening(lines, id_line, call_name)
        if opening is None:
            continue
        start, column = opening
        end = _closing_line(lines, start, column)
        if end is None or end < id_line:
            continue
        return ComponentSpan(
            start_line=start,
            end_line=end,
            lines=lines[start : end + 1],
            file_path=file_path,
            id_line=id_line,
        )
    return None


def _find_opening(lines: List[str], id_line: int, call_name: str) -> Optional[Tuple[int, int]]:
    for index in range(id_line, -1, -1):
        column = lines[index].rfind(call_name)
        if column != -1:
            return index, column
    return None
