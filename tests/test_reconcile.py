from __future__ import annotations

import json
import logging

import pytest

import ite.reconcile as reconcile_module
from ite.errors import FailureKind, WriteFailure
from ite.memory.schema import EditStatus
from ite.reconcile import changed_line_range


def _stored(ledger, edit):
    edit_id = ledger.record(edit)
    stored = ledger.get(edit_id)
    assert stored is not None
    return stored


def test_locate_and_patch_is_pure(site, reconciler) -> None:
    before = site.component_text()

    outcome = reconciler.locate_and_patch("hero", "Willkommen bei uns", "Willkommen bei <b>uns</b>")

    assert outcome.success
    assert outcome.file_path == site.component_path
    assert outcome.line_number == 7
    assert outcome.strategy == "literal"
    assert "title: `Willkommen bei <b>uns</b>`," in outcome.updated_content
    assert site.component_text() == before


def test_reconcile_applies_edit_and_marks_applied(site, ledger, reconciler, make_edit, caplog) -> None:
    edit = _stored(ledger, make_edit())
    before_lines = site.component_text().split("\n")

    with caplog.at_level(logging.INFO, logger="ite.telemetry"):
        outcome = reconciler.reconcile(edit)

    assert outcome.success
    assert outcome.status == EditStatus.APPLIED
    assert outcome.message == "Applied successfully"
    after_lines = site.component_text().split("\n")
    assert changed_line_range(before_lines, after_lines) == (6, 6)
    assert after_lines[6] == "    title: `Willkommen bei <b>uns</b>`,"
    assert ledger.get(edit.id).status == EditStatus.APPLIED

    events = [json.loads(record.getMessage())["event"] for record in caplog.records if record.name == "ite.telemetry"]
    assert events == ["file.written", "edit.reconciled"]


def test_rerun_of_applied_edit_is_idempotent(site, ledger, reconciler, make_edit) -> None:
    edit = _stored(ledger, make_edit())
    reconciler.reconcile(edit)
    patched = site.component_text()

    rerun = reconciler.reconcile(ledger.get(edit.id))

    assert rerun.success
    assert rerun.preserved_status
    assert rerun.status == EditStatus.APPLIED
    assert rerun.was_already_applied
    assert rerun.failure is None
    assert site.component_text() == patched
    assert ledger.get(edit.id).status == EditStatus.APPLIED


def test_rerun_does_not_patch_remaining_duplicate(site, ledger, reconciler, make_edit) -> None:
    twin_path = site.root / "src" / "data" / "pages" / "subpages" / "twin.ts"
    twin_path.write_text(
        "export const twin = createComponent({\n"
        '  id: "twin",\n'
        "  props: {\n"
        '    a: "Kontakt",\n'
        '    b: "Kontakt",\n'
        "  },\n"
        "});\n",
        encoding="utf-8",
    )
    edit = _stored(ledger, make_edit(original_text="Kontakt", new_text="Impressum", component_id="twin"))

    first = reconciler.reconcile(edit)
    patched = twin_path.read_text(encoding="utf-8")
    preview = reconciler.reconcile(ledger.get(edit.id), dry_run=True)
    rerun = reconciler.reconcile(ledger.get(edit.id))

    assert first.success and first.file_path == twin_path
    assert 'a: "Impressum"' in patched
    assert preview.success and preview.was_already_applied and preview.dry_run
    assert rerun.success and rerun.preserved_status
    assert rerun.file_path == twin_path
    assert twin_path.read_text(encoding="utf-8") == patched
    assert 'b: "Kontakt"' in patched
    assert ledger.get(edit.id).status == EditStatus.APPLIED


def test_json_fallback_leaves_component_untouched(site, ledger, reconciler, make_edit) -> None:
    component_before = site.component_text()
    edit = _stored(
        ledger,
        make_edit(component_id="features", original_text="Schnelle Ladezeiten", new_text="Kurze Ladezeiten"),
    )

    outcome = reconciler.reconcile(edit)

    assert outcome.success
    assert outcome.strategy == "json"
    assert outcome.file_path == site.data_path
    assert site.component_text() == component_before
    data = json.loads(site.data_text())
    assert data["sections"][1]["items"][0]["label"] == "Kurze Ladezeiten"
    assert site.data_text().endswith("\n")


def test_not_found_text_when_component_exists(site, ledger, reconciler, make_edit) -> None:
    edit = _stored(ledger, make_edit(original_text="Gibt es nicht", new_text="Neu"))

    outcome = reconciler.reconcile(edit)

    assert not outcome.success
    assert outcome.failure is FailureKind.NOT_FOUND_TEXT
    assert outcome.file_path == site.component_path
    assert 'Found component with id "hero"' in outcome.message
    assert ledger.get(edit.id).status == EditStatus.FAILED


def test_not_found_component_and_missing_component_id(ledger, reconciler, make_edit) -> None:
    unknown = _stored(ledger, make_edit(component_id="unbekannt", original_text="Gibt es nicht"))
    anonymous = _stored(ledger, make_edit(component_id=None))

    unknown_outcome = reconciler.reconcile(unknown)
    anonymous_outcome = reconciler.reconcile(anonymous)

    assert unknown_outcome.failure is FailureKind.NOT_FOUND_COMPONENT
    assert anonymous_outcome.failure is FailureKind.MISSING_COMPONENT_ID
    assert anonymous_outcome.message == "No component_id found in edit"
    assert ledger.get(anonymous.id).status == EditStatus.FAILED


def test_malformed_data_files_are_skipped(site, reconciler) -> None:
    broken = site.data_path.parent / "broken.json"
    broken.write_text("{oops", encoding="utf-8")

    outcome = reconciler.locate_and_patch("features", "Faire Preise", "Ehrliche Preise")

    assert outcome.success
    assert broken in outcome.skipped_files
    assert outcome.file_path == site.data_path


def test_dry_run_writes_nothing(site, ledger, reconciler, make_edit) -> None:
    before = site.component_text()
    edit = _stored(ledger, make_edit())

    outcome = reconciler.reconcile(edit, dry_run=True)

    assert outcome.success
    assert outcome.dry_run
    assert outcome.updated_content is None
    assert site.component_text() == before
    assert ledger.get(edit.id).status == EditStatus.PENDING


def test_concurrent_change_marks_conflict(site, ledger, reconciler, make_edit, monkeypatch) -> None:
    edit = _stored(ledger, make_edit())
    locate = reconciler.locate_and_patch

    def racing_locate(*args, **kwargs):
        outcome = locate(*args, **kwargs)
        site.component_path.write_text(site.component_text() + "// touched\n", encoding="utf-8")
        return outcome

    monkeypatch.setattr(reconciler, "locate_and_patch", racing_locate)

    outcome = reconciler.reconcile(edit)

    assert not outcome.success
    assert outcome.status == EditStatus.CONFLICT
    assert outcome.failure is FailureKind.CONFLICT
    assert 'title: "Willkommen bei uns"' in site.component_text()
    assert ledger.get(edit.id).status == EditStatus.CONFLICT


def test_write_failure_leaves_edit_processing(ledger, reconciler, make_edit, monkeypatch) -> None:
    edit = _stored(ledger, make_edit())

    def failing_write(path, content):
        raise WriteFailure(f"Failed to write {path}: disk full")

    monkeypatch.setattr(reconcile_module, "write_atomic", failing_write)

    with pytest.raises(WriteFailure):
        reconciler.reconcile(edit)
    assert ledger.get(edit.id).status == EditStatus.PROCESSING


def test_submit_records_only_in_production(site, ledger, reconciler, make_edit) -> None:
    before = site.component_text()

    edit_id, outcome = reconciler.submit(make_edit(status=EditStatus.PROCESSING), record_only=True)

    assert outcome.success
    assert outcome.status == EditStatus.PENDING
    assert ledger.get(edit_id).status == EditStatus.PENDING
    assert site.component_text() == before

    applied_id, applied = reconciler.submit(make_edit(), record_only=False)
    assert applied.status == EditStatus.APPLIED
    assert ledger.get(applied_id).status == EditStatus.APPLIED


def test_changed_line_range() -> None:
    assert changed_line_range(["a", "b", "c"], ["a", "B", "c"]) == (1, 1)
    assert changed_line_range(["a", "b"], ["a", "b"]) is None
