"""Sequential batch reconciliation of ledger edits for one page."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .errors import ReconcileError
from .memory.schema import EditRecord
from .reconcile import EditOutcome, Reconciler

LOGGER = logging.getLogger(__name__)

Echo = Callable[[str], None]


@dataclass(slots=True)
class BatchSummary:
    """Counts reported at the end of an ``apply-edits`` run."""

    url: str
    dry_run: bool = False
    include_applied: bool = False
    total: int = 0
    applied: int = 0
    reapplied: int = 0
    failed: int = 0
    skipped: int = 0
    status_breakdown: Dict[str, int] = field(default_factory=dict)
    outcomes: List[tuple[int, EditOutcome]] = field(default_factory=list)

    @property
    def newly_applied(self) -> int:
        return self.applied - self.reapplied

    def format_summary(self) -> str:
        lines = [
            "SUMMARY:",
            f"  Total edits: {self.total}",
            f"  Applied: {self.applied}",
        ]
        if self.reapplied:
            lines.append(f"    - Newly applied: {self.newly_applied}")
            lines.append(f"    - Re-applied: {self.reapplied}")
        lines.append(f"  Failed: {self.failed}")
        lines.append(f"  Skipped (dry run): {self.skipped}")
        return "\n".join(lines)


def _describe(edit: EditRecord) -> List[str]:
    return [
        f"Processing edit {edit.id} (Status: {edit.status.value}):",
        f'  Original: "{edit.original_text}"',
        f'  New: "{edit.new_text}"',
    ]


def apply_edits(
    reconciler: Reconciler,
    url: str,
    *,
    dry_run: bool = False,
    apply_all: bool = False,
    echo: Optional[Echo] = None,
) -> BatchSummary:
    """Reconcile every selected edit recorded for ``url``, one after another.

    ``StorageUnavailable`` while fetching the edits is fatal; storage or write
    failures for a single edit are counted as failures and the run continues.
    """
    emit: Echo = echo or (lambda message: LOGGER.info("%s", message))
    edits = reconciler.ledger.list_for_reconciliation(url, include_applied=apply_all)
    summary = BatchSummary(url=url, dry_run=dry_run, include_applied=apply_all, total=len(edits))
    if not edits:
        return summary
    summary.status_breakdown = dict(Counter(edit.status.value for edit in edits))

    for edit in edits:
        for line in _describe(edit):
            emit(line)
        if edit.component_id:
            emit(f"  Looking for component with id: {edit.component_id}")
        else:
            emit("  No component_id found")
        try:
            outcome = reconciler.reconcile(edit, dry_run=dry_run)
        except ReconcileError as error:
            LOGGER.error("Edit %s aborted: %s", edit.id, error)
            emit(f"  Error: {error}")
            summary.failed += 1
            continue

        summary.outcomes.append((edit.id or 0, outcome))
        if outcome.dry_run:
            verdict = "would apply" if outcome.success else f"would fail ({outcome.message})"
            emit(f"  DRY RUN: {verdict}")
            summary.skipped += 1
        elif outcome.success and outcome.preserved_status:
            emit(f"  Not re-applied: {outcome.message}")
            emit("  Edit was already applied - preserving 'applied' status")
            summary.applied += 1
            summary.reapplied += 1
        elif outcome.success:
            emit(f"  {outcome.message}!")
            emit(f"    - File: {outcome.file_path}")
            emit(f"    - Line: {outcome.line_number}")
            summary.applied += 1
            if outcome.was_already_applied:
                summary.reapplied += 1
        else:
            emit("  Failed to apply edit")
            emit(f"    - Reason: {outcome.message}")
            summary.failed += 1
    return summary
