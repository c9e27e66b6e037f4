"""Error taxonomy for edit reconciliation."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping


class FailureKind(str, Enum):
    """Why a reconciliation attempt did not apply."""

    NOT_FOUND_COMPONENT = "not_found_component"
    NOT_FOUND_TEXT = "not_found_text"
    MALFORMED_DOCUMENT = "malformed_document"
    MISSING_COMPONENT_ID = "missing_component_id"
    CONFLICT = "conflict"
    WRITE_FAILURE = "write_failure"


class ReconcileError(RuntimeError):
    """Base error raised by the reconciliation engine."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class NotFoundComponent(ReconcileError):
    """The component id does not appear inside any balanced component literal."""

    kind = FailureKind.NOT_FOUND_COMPONENT


class NotFoundText(ReconcileError):
    """The component or data file was located but the fragment did not match."""

    kind = FailureKind.NOT_FOUND_TEXT


class MalformedDocument(ReconcileError):
    """A JSON candidate could not be parsed; the file is skipped."""

    kind = FailureKind.MALFORMED_DOCUMENT


class StorageUnavailable(ReconcileError):
    """The edit ledger cannot be reached."""


class WriteFailure(ReconcileError):
    """Writing a patched file failed after a successful match."""

    kind = FailureKind.WRITE_FAILURE
