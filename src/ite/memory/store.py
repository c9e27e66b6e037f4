"""Durable SQLite ledger of inline text edits."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from ..errors import StorageUnavailable
from .schema import RECONCILABLE_STATUSES, EditRecord, EditStatus, LinkMetadata, utc_now

DEFAULT_DB_PATH = Path("data/ite.sqlite")
LOGGER = logging.getLogger(__name__)

_RECORDABLE_STATUSES = (EditStatus.PENDING, EditStatus.PROCESSING)


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    """Parse an ISO 8601 timestamp produced by `_as_iso`."""
    return datetime.fromisoformat(value)


def _dump_json(data: Any, *, default: Any) -> str:
    """Convert arbitrary JSON-like payloads into a persisted string."""
    return json.dumps(default if data is None else data)


def _load_json(value: Optional[str], *, default: Any) -> Any:
    """Decode JSON columns while falling back to the provided default."""
    if not value:
        return default
    data = json.loads(value)
    if data is None:
        return default
    return data


class EditLedger:
    """SQLite-backed, append-only history of edit attempts."""

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        resolved = requested.resolve()
        if not cls._is_writable(resolved):
            raise StorageUnavailable(f"Ledger path {requested} is not writable")
        return resolved

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        requested_path = Path(db_path)
        try:
            self.db_path = self._resolve_db_path(requested_path)
        except OSError as error:
            raise StorageUnavailable(f"Ledger path {requested_path} is unavailable: {error}") from error
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        try:
            self._conn = self._open_connection()
            self._bootstrap()
        except sqlite3.Error as error:
            self.close()
            raise StorageUnavailable(f"Unable to open edit ledger at {self.db_path}: {error}") from error

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "EditLedger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
        connection.row_factory = sqlite3.Row
        return connection

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EditLedger":
        paths = config.get("paths") or {}
        db_path = os.environ.get("ITE_DB_PATH") or paths.get("db_path")
        if db_path:
            return cls(Path(db_path))

        data_path = paths.get("data") or "data"
        return cls(Path(data_path) / "ite.sqlite")

    def _bootstrap(self) -> None:
        self._connection().executescript(
            """
            CREATE TABLE IF NOT EXISTS inline_text_edits (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                original_text TEXT NOT NULL,
                new_text TEXT NOT NULL,
                status TEXT NOT NULL,
                page_url TEXT NOT NULL,
                herokit_id TEXT NOT NULL,
                component_id TEXT,
                metadata TEXT NOT NULL,
                contains_html_links INTEGER NOT NULL DEFAULT 0,
                link_metadata TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_edits_page_status
                ON inline_text_edits(page_url, status);
            CREATE INDEX IF NOT EXISTS idx_edits_page_element
                ON inline_text_edits(page_url, herokit_id, created_at DESC);
            """
        )
        self._connection().commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailable("Edit ledger connection is closed")
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            connection = self._connection()
            try:
                yield connection
                connection.commit()
            except sqlite3.Error as error:
                connection.rollback()
                raise StorageUnavailable(f"Edit ledger write failed: {error}") from error
            except Exception:
                connection.rollback()
                raise

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            try:
                return self._connection().execute(sql, params).fetchall()
            except sqlite3.Error as error:
                raise StorageUnavailable(f"Edit ledger query failed: {error}") from error

    # Edit operations -----------------------------------------------------------------
    def record(self, edit: EditRecord) -> int:
        """Insert ``edit`` as a new ledger entry and return its id."""
        if edit.status not in _RECORDABLE_STATUSES:
            raise ValueError(f"New edits must start as pending or processing, not {edit.status.value}")
        now = utc_now()
        with self._transaction() as connection:
            cursor = connection.execute(
                """
                INSERT INTO inline_text_edits (
                    original_text, new_text, status, page_url, herokit_id, component_id,
                    metadata, contains_html_links, link_metadata, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    edit.original_text,
                    edit.new_text,
                    edit.status.value,
                    edit.page_url,
                    edit.element_id,
                    edit.component_id,
                    _dump_json(edit.metadata, default={}),
                    int(edit.contains_html_links),
                    _dump_json(edit.link_metadata.model_dump(), default=None) if edit.link_metadata else None,
                    _as_iso(edit.created_at),
                    _as_iso(now),
                ),
            )
            edit_id = int(cursor.lastrowid)
        LOGGER.debug("Recorded edit %s for %s [%s]", edit_id, edit.page_url, edit.element_id)
        return edit_id

    def update_status(self, edit_id: int, status: EditStatus) -> None:
        """Set the status of ``edit_id``; repeating the same status is allowed."""
        with self._transaction() as connection:
            connection.execute(
                "UPDATE inline_text_edits SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, _as_iso(utc_now()), edit_id),
            )

    def get(self, edit_id: int) -> Optional[EditRecord]:
        rows = self._query("SELECT * FROM inline_text_edits WHERE id = ?", (edit_id,))
        return self._row_to_edit(rows[0]) if rows else None

    def lookup_original(self, page_url: str, element_id: Optional[str] = None) -> Optional[str]:
        """Return the most recently recorded original text for an element on ``page_url``."""
        query = "SELECT original_text FROM inline_text_edits WHERE page_url = ?"
        params: List[Any] = [page_url]
        if element_id:
            query += " AND herokit_id = ?"
            params.append(element_id)
        query += " ORDER BY created_at DESC, id DESC LIMIT 1"
        rows = self._query(query, params)
        return rows[0]["original_text"] if rows else None

    def history(self, page_url: Optional[str] = None, limit: int = 50) -> List[EditRecord]:
        query = "SELECT * FROM inline_text_edits"
        params: List[Any] = []
        if page_url:
            query += " WHERE page_url = ?"
            params.append(page_url)
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_edit(row) for row in self._query(query, params)]

    def list_for_reconciliation(self, page_url: str, *, include_applied: bool = False) -> List[EditRecord]:
        """Edits for ``page_url`` in submission order, optionally including applied ones."""
        query = "SELECT * FROM inline_text_edits WHERE page_url = ?"
        params: List[Any] = [page_url]
        if not include_applied:
            placeholders = ",".join("?" for _ in RECONCILABLE_STATUSES)
            query += f" AND status IN ({placeholders})"
            params.extend(status.value for status in RECONCILABLE_STATUSES)
        query += " ORDER BY created_at ASC, id ASC"
        return [self._row_to_edit(row) for row in self._query(query, params)]

    def status_counts(self, page_url: Optional[str] = None) -> Dict[str, int]:
        query = "SELECT status, COUNT(*) AS total FROM inline_text_edits"
        params: List[Any] = []
        if page_url:
            query += " WHERE page_url = ?"
            params.append(page_url)
        query += " GROUP BY status"
        return {row["status"]: int(row["total"]) for row in self._query(query, params)}

    def _row_to_edit(self, row: sqlite3.Row) -> EditRecord:
        link_payload = _load_json(row["link_metadata"], default=None)
        return EditRecord(
            id=row["id"],
            original_text=row["original_text"],
            new_text=row["new_text"],
            status=EditStatus(row["status"]),
            page_url=row["page_url"],
            element_id=row["herokit_id"],
            component_id=row["component_id"],
            metadata=_load_json(row["metadata"], default={}),
            contains_html_links=bool(row["contains_html_links"]),
            link_metadata=LinkMetadata.model_validate(link_payload) if link_payload else None,
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )
