from __future__ import annotations

import yaml
from typer.testing import CliRunner

from ite.cli import app
from ite.memory.schema import EditStatus
from ite.memory.store import EditLedger

runner = CliRunner()


def _record(site, make_edit, **overrides) -> int:
    with EditLedger(site.db_path) as store:
        return store.record(make_edit(**overrides))


def _status(site, edit_id: int) -> EditStatus:
    with EditLedger(site.db_path) as store:
        edit = store.get(edit_id)
    assert edit is not None
    return edit.status


def test_apply_edits_requires_url(site) -> None:
    result = runner.invoke(app, ["apply-edits", "--config", str(site.config_path)])

    assert result.exit_code == 1
    assert "--url parameter is required" in result.output


def test_apply_edits_updates_sources(site, make_edit) -> None:
    edit_id = _record(site, make_edit)

    result = runner.invoke(app, ["apply-edits", "--url", "/", "--config", str(site.config_path)])

    assert result.exit_code == 0, result.output
    assert "Mode: LIVE RUN" in result.output
    assert "SUMMARY:" in result.output
    assert "Applied: 1" in result.output
    assert "Review changes with: git diff" in result.output
    assert "title: `Willkommen bei <b>uns</b>`" in site.component_text()
    assert _status(site, edit_id) == EditStatus.APPLIED


def test_apply_edits_dry_run_and_apply_all(site, make_edit) -> None:
    before = site.component_text()
    edit_id = _record(site, make_edit)

    dry = runner.invoke(
        app,
        ["apply-edits", "--url", "/", "--dry-run", "--apply-all", "--config", str(site.config_path)],
    )

    assert dry.exit_code == 0, dry.output
    assert "DRY RUN (no changes will be applied)" in dry.output
    assert "ALL edits (including already applied)" in dry.output
    assert "Status breakdown: pending: 1" in dry.output
    assert "Skipped (dry run): 1" in dry.output
    assert site.component_text() == before
    assert _status(site, edit_id) == EditStatus.PENDING


def test_apply_edits_reports_empty_queue(site) -> None:
    result = runner.invoke(app, ["apply-edits", "--url", "/leer", "--config", str(site.config_path)])

    assert result.exit_code == 0
    assert "No pending edits found for URL: /leer" in result.output


def test_apply_edits_rejects_invalid_config(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    result = runner.invoke(app, ["apply-edits", "--url", "/", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "mapping" in result.output


def test_history_and_status_commands(site, make_edit) -> None:
    _record(site, make_edit)
    _record(site, make_edit, original_text="Unsere Leistungen", new_text="Leistungen", component_id="features")

    history = runner.invoke(app, ["history", "--config", str(site.config_path)])
    status = runner.invoke(app, ["status", "--url", "/", "--config", str(site.config_path)])

    assert history.exit_code == 0, history.output
    assert '"Unsere Leistungen" -> "Leistungen"' in history.output
    assert history.output.index("Unsere Leistungen") < history.output.index("Willkommen bei uns")
    assert status.exit_code == 0, status.output
    assert "Candidate files: 1 component, 1 data" in status.output
    assert "pending 2 | processing 0 | applied 0" in status.output


def test_init_writes_default_config(tmp_path) -> None:
    config_path = tmp_path / "site" / "config.yaml"

    result = runner.invoke(app, ["init", "--config", str(config_path)])
    again = runner.invoke(app, ["init", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    assert data["search"]["component_call"] == "createComponent"
    assert data["server"]["mode"] == "development"
    assert again.exit_code == 1
