"""Drive a recorded edit from the ledger into the project's source files."""

from __future__ import annotations

import difflib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .config import SearchSettings
from .editing import (
    ComponentSpan,
    find_component,
    json_contains_text,
    lines_contain_text,
    update_text_in_component,
    update_text_in_json,
)
from .errors import FailureKind, NotFoundComponent, NotFoundText, ReconcileError, WriteFailure
from .memory.schema import EditRecord, EditStatus
from .memory.store import EditLedger
from .tools.files import content_digest, discover_files, file_lock, read_source, write_atomic

LOGGER = logging.getLogger(__name__)
TELEMETRY_LOGGER = logging.getLogger("ite.telemetry")


@dataclass(slots=True)
class EditOutcome:
    """Result of reconciling one edit; ``updated_content`` is only set on a match."""

    success: bool
    message: str
    status: Optional[EditStatus] = None
    file_path: Optional[Path] = None
    line_number: Optional[int] = None
    strategy: Optional[str] = None
    failure: Optional[FailureKind] = None
    updated_content: Optional[str] = field(default=None, repr=False)
    source_digest: Optional[str] = None
    skipped_files: List[Path] = field(default_factory=list)
    was_already_applied: bool = False
    preserved_status: bool = False
    dry_run: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "status": self.status.value if self.status else None,
            "file_path": self.file_path.as_posix() if self.file_path else None,
            "line_number": self.line_number,
            "strategy": self.strategy,
            "failure": self.failure.value if self.failure else None,
            "skipped_files": [path.as_posix() for path in self.skipped_files],
            "was_already_applied": self.was_already_applied,
            "preserved_status": self.preserved_status,
            "dry_run": self.dry_run,
        }


def _emit_edit_event(event: str, **fields: Any) -> None:
    """Log a structured telemetry event for an edit lifecycle step."""
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = value.as_posix() if isinstance(value, Path) else value
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str))


def changed_line_range(before: Sequence[str], after: Sequence[str]) -> Optional[tuple[int, int]]:
    """Return the inclusive range of ``before`` lines touched by the change, if any."""
    matcher = difflib.SequenceMatcher(a=list(before), b=list(after), autojunk=False)
    touched = [(i1, i2) for tag, i1, i2, _j1, _j2 in matcher.get_opcodes() if tag != "equal"]
    if not touched:
        return None
    start = min(i1 for i1, _ in touched)
    end = max(max(i2 - 1, i1) for i1, i2 in touched)
    return start, end


class Reconciler:
    """Find the source-of-truth occurrence of an edited fragment and rewrite it."""

    def __init__(
        self,
        ledger: EditLedger,
        project_root: Path,
        search: SearchSettings | None = None,
    ) -> None:
        self.ledger = ledger
        self.project_root = Path(project_root)
        self.search = search or SearchSettings()

    def component_files(self) -> List[Path]:
        return discover_files(self.project_root, self.search.component_globs, self.search.ignore)

    def data_files(self) -> List[Path]:
        return discover_files(self.project_root, self.search.data_globs, self.search.ignore)

    # Matching ---------------------------------------------------------------------------
    def locate_and_patch(self, component_id: Optional[str], original: str, replacement: str) -> EditOutcome:
        """Compute the patched file for an edit without touching the filesystem."""
        if not component_id:
            return EditOutcome(
                success=False,
                message="No component_id found in edit",
                failure=FailureKind.MISSING_COMPONENT_ID,
            )
        skipped: List[Path] = []
        try:
            outcome = self._patch(component_id, original, replacement, skipped)
        except ReconcileError as error:
            LOGGER.info("Edit for component %s not applied: %s", component_id, error)
            outcome = EditOutcome(
                success=False,
                message=str(error),
                failure=getattr(error, "kind", None),
                file_path=error.details.get("path"),
            )
        outcome.skipped_files = skipped
        return outcome

    def _patch(self, component_id: str, original: str, replacement: str, skipped: List[Path]) -> EditOutcome:
        component_path: Optional[Path] = None
        for path in self.component_files():
            try:
                source = read_source(path)
            except (OSError, UnicodeDecodeError) as error:
                LOGGER.warning("Skipping unreadable component file %s: %s", path, error)
                skipped.append(path)
                continue
            span = find_component(
                source.content,
                component_id,
                call_name=self.search.component_call,
                file_path=path,
            )
            if span is None:
                continue
            component_path = component_path or path
            outcome = self._patch_component(span, source.content, original, replacement)
            if outcome is not None:
                outcome.source_digest = source.digest
                return outcome
            # The text may live in a JSON file the component references.

        for path in self.data_files():
            try:
                source = read_source(path)
            except (OSError, UnicodeDecodeError) as error:
                LOGGER.warning("Skipping unreadable data file %s: %s", path, error)
                skipped.append(path)
                continue
            result = update_text_in_json(source.content, original, replacement)
            if result.malformed:
                LOGGER.warning("Skipping malformed JSON document %s: %s", path, result.reason)
                skipped.append(path)
                continue
            if result.found:
                return EditOutcome(
                    success=True,
                    message="Text updated in data file",
                    file_path=path,
                    line_number=result.line_number,
                    strategy="json",
                    updated_content=result.updated_content,
                    source_digest=source.digest,
                )

        if component_path is not None:
            raise NotFoundText(
                f'Found component with id "{component_id}" but could not find text "{original}" '
                "within it or in any referenced JSON files",
                details={"path": component_path},
            )
        raise NotFoundComponent(
            f'Could not find component with id "{component_id}" or text "{original}" '
            "in any config or JSON files"
        )

    def _patch_component(
        self,
        span: ComponentSpan,
        content: str,
        original: str,
        replacement: str,
    ) -> Optional[EditOutcome]:
        result = update_text_in_component(span.lines, original, replacement)
        if not result.found:
            return None
        file_lines = content.split("\n")
        updated_lines = span.splice(file_lines, result.updated_lines)
        touched = changed_line_range(file_lines, updated_lines)
        if touched is None:
            return None
        if touched[0] < span.start_line or touched[1] > span.end_line:
            LOGGER.warning(
                "Discarding patch for %s: change at lines %s-%s escapes component lines %s-%s",
                span.file_path,
                touched[0] + 1,
                touched[1] + 1,
                span.start_line + 1,
                span.end_line + 1,
            )
            return None
        return EditOutcome(
            success=True,
            message="Text updated in component",
            file_path=span.file_path,
            line_number=span.start_line + result.line_index + 1,
            strategy=result.strategy,
            updated_content="\n".join(updated_lines),
        )

    # Ledger-driven reconciliation -------------------------------------------------------
    def find_applied(self, component_id: Optional[str], replacement: str) -> Optional[Path]:
        """Return the file that already carries ``replacement`` for ``component_id``, if any."""
        if not component_id:
            return None
        for path in self.component_files():
            try:
                source = read_source(path)
            except (OSError, UnicodeDecodeError):
                continue
            span = find_component(source.content, component_id, call_name=self.search.component_call)
            if span is not None and lines_contain_text(span.lines, replacement):
                return path
        for path in self.data_files():
            try:
                source = read_source(path)
            except (OSError, UnicodeDecodeError):
                continue
            if json_contains_text(source.content, replacement):
                return path
        return None

    def _already_applied(self, edit: EditRecord, *, dry_run: bool) -> Optional[EditOutcome]:
        path = self.find_applied(edit.component_id, edit.new_text)
        if path is None:
            return None
        LOGGER.info("Edit %s is already present in %s; not re-applying", edit.id, path)
        return EditOutcome(
            success=True,
            message=f"Edit already present in {path}",
            status=EditStatus.APPLIED,
            file_path=path,
            was_already_applied=True,
            preserved_status=True,
            dry_run=dry_run,
        )

    def reconcile(self, edit: EditRecord, *, dry_run: bool = False) -> EditOutcome:
        """Apply ``edit`` to the project and record the resulting status.

        Matching problems come back as an unsuccessful outcome. ``WriteFailure``
        and ``StorageUnavailable`` propagate; a failed write leaves the ledger
        entry in ``processing``.
        """
        if edit.id is None:
            raise ValueError("Edit must be recorded in the ledger before reconciliation")
        was_applied = edit.status == EditStatus.APPLIED
        if was_applied:
            applied = self._already_applied(edit, dry_run=dry_run)
            if applied is not None:
                return applied

        if dry_run:
            outcome = self.locate_and_patch(edit.component_id, edit.original_text, edit.new_text)
            outcome.dry_run = True
            outcome.was_already_applied = was_applied
            outcome.updated_content = None
            return outcome

        if not was_applied:
            self.ledger.update_status(edit.id, EditStatus.PROCESSING)

        outcome = self.locate_and_patch(edit.component_id, edit.original_text, edit.new_text)
        outcome.was_already_applied = was_applied
        if not outcome.success:
            return self._record_failure(edit, outcome)

        assert outcome.file_path is not None and outcome.updated_content is not None
        with file_lock(outcome.file_path):
            try:
                current = read_source(outcome.file_path)
            except (OSError, UnicodeDecodeError) as error:
                raise WriteFailure(
                    f"Unable to re-read {outcome.file_path} before writing: {error}",
                    details={"path": outcome.file_path},
                ) from error
            if current.digest != outcome.source_digest:
                outcome.success = False
                outcome.failure = FailureKind.CONFLICT
                outcome.message = f"{outcome.file_path} changed while the edit was being prepared"
                outcome.status = EditStatus.CONFLICT
                self.ledger.update_status(edit.id, EditStatus.CONFLICT)
                _emit_edit_event("edit.conflict", edit_id=edit.id, path=outcome.file_path)
                return outcome
            write_atomic(outcome.file_path, outcome.updated_content)
        _emit_edit_event(
            "file.written",
            edit_id=edit.id,
            path=outcome.file_path,
            digest=content_digest(outcome.updated_content),
        )

        self.ledger.update_status(edit.id, EditStatus.APPLIED)
        outcome.status = EditStatus.APPLIED
        outcome.message = "Re-applied successfully" if was_applied else "Applied successfully"
        _emit_edit_event(
            "edit.reconciled",
            edit_id=edit.id,
            path=outcome.file_path,
            line=outcome.line_number,
            strategy=outcome.strategy,
            reapplied=was_applied,
        )
        return outcome

    def _record_failure(self, edit: EditRecord, outcome: EditOutcome) -> EditOutcome:
        if outcome.was_already_applied:
            LOGGER.info("Edit %s was already applied; preserving 'applied' status", edit.id)
            outcome.success = True
            outcome.preserved_status = True
            outcome.status = EditStatus.APPLIED
            return outcome
        self.ledger.update_status(edit.id, EditStatus.FAILED)
        outcome.status = EditStatus.FAILED
        _emit_edit_event(
            "edit.failed",
            edit_id=edit.id,
            component_id=edit.component_id,
            failure=outcome.failure.value if outcome.failure else None,
            reason=outcome.message,
        )
        return outcome

    def submit(self, edit: EditRecord, *, record_only: bool) -> tuple[int, EditOutcome]:
        """Record a freshly submitted edit and, unless ``record_only``, apply it now."""
        edit_id = self.ledger.record(edit.model_copy(update={"status": EditStatus.PROCESSING}))
        _emit_edit_event(
            "edit.recorded",
            edit_id=edit_id,
            page_url=edit.page_url,
            element_id=edit.element_id,
            component_id=edit.component_id,
        )
        if record_only:
            self.ledger.update_status(edit_id, EditStatus.PENDING)
            return edit_id, EditOutcome(
                success=True,
                message="Edit saved. To apply it to the source files, run: ite apply-edits",
                status=EditStatus.PENDING,
            )
        stored = self.ledger.get(edit_id)
        assert stored is not None
        return edit_id, self.reconcile(stored)
