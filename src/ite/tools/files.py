"""Guarded whole-file reads and writes for source-of-truth files."""

from __future__ import annotations

import hashlib
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Sequence

from ..errors import WriteFailure

__all__ = [
    "SourceFile",
    "content_digest",
    "discover_files",
    "file_lock",
    "read_source",
    "write_atomic",
]

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


@dataclass(slots=True)
class SourceFile:
    """Text of a file together with the digest observed when it was read."""

    path: Path
    content: str
    digest: str


def content_digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Serialise read-modify-write cycles on ``path`` within this process."""
    key = Path(path).resolve().as_posix()
    with _LOCKS_GUARD:
        lock = _LOCKS.setdefault(key, threading.Lock())
    with lock:
        yield


def read_source(path: Path) -> SourceFile:
    content = Path(path).read_text(encoding="utf-8")
    return SourceFile(path=Path(path), content=content, digest=content_digest(content))


def write_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` in one step; a failed write leaves the old file intact."""
    target = Path(path)
    handle_name: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="",
            delete=False,
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as handle:
            handle_name = handle.name
            handle.write(content)
        if target.exists():
            os.chmod(handle_name, target.stat().st_mode & 0o7777)
        os.replace(handle_name, target)
    except OSError as error:
        if handle_name and os.path.exists(handle_name):
            os.unlink(handle_name)
        raise WriteFailure(f"Failed to write {target}: {error}", details={"path": target.as_posix()}) from error


def _is_ignored(relative: Path, ignore: Iterable[str]) -> bool:
    parts = set(relative.parts)
    return any(entry in parts for entry in ignore)


def discover_files(root: Path, patterns: Sequence[str], ignore: Sequence[str] = ()) -> List[Path]:
    """Expand glob ``patterns`` under ``root`` into a sorted, de-duplicated file list."""
    root = Path(root)
    seen: Dict[str, Path] = {}
    for pattern in patterns:
        for candidate in root.glob(pattern):
            if not candidate.is_file():
                continue
            relative = candidate.relative_to(root)
            if _is_ignored(relative, ignore):
                continue
            seen.setdefault(candidate.as_posix(), candidate)
    return [seen[key] for key in sorted(seen)]
