from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from ite.errors import StorageUnavailable
from ite.memory.schema import EditStatus, LinkMetadata, LinkReference, utc_now
from ite.memory.store import EditLedger


def test_record_and_update_status_roundtrip(ledger, make_edit) -> None:
    edit_id = ledger.record(
        make_edit(
            metadata={"elementTag": "h1"},
            contains_html_links=True,
            link_metadata=LinkMetadata(links=[LinkReference(href="/kontakt", text="uns")], link_count=1),
        )
    )

    stored = ledger.get(edit_id)
    assert stored is not None
    assert stored.status == EditStatus.PENDING
    assert stored.metadata == {"elementTag": "h1"}
    assert stored.link_metadata is not None
    assert stored.link_metadata.links[0].href == "/kontakt"
    assert stored.created_at.tzinfo is not None

    ledger.update_status(edit_id, EditStatus.APPLIED)
    ledger.update_status(edit_id, EditStatus.APPLIED)
    applied = ledger.get(edit_id)
    assert applied is not None
    assert applied.status == EditStatus.APPLIED
    assert applied.updated_at >= stored.updated_at


def test_record_rejects_terminal_statuses(ledger, make_edit) -> None:
    with pytest.raises(ValueError):
        ledger.record(make_edit(status=EditStatus.APPLIED))


def test_lookup_original_returns_most_recent_entry(ledger, make_edit) -> None:
    earlier = utc_now() - timedelta(minutes=5)
    ledger.record(make_edit(original_text="Erste Fassung", created_at=earlier))
    ledger.record(make_edit(original_text="Zweite Fassung"))
    ledger.record(make_edit(original_text="Anderes Element", element_id="footer"))

    assert ledger.lookup_original("/", "hero-title") == "Zweite Fassung"
    assert ledger.lookup_original("/", "footer") == "Anderes Element"
    assert ledger.lookup_original("/about", "hero-title") is None


def test_history_and_reconciliation_scopes(ledger, make_edit) -> None:
    pending_id = ledger.record(make_edit(original_text="eins"))
    applied_id = ledger.record(make_edit(original_text="zwei"))
    failed_id = ledger.record(make_edit(original_text="drei"))
    ledger.record(make_edit(original_text="vier", page_url="/about"))
    ledger.update_status(applied_id, EditStatus.APPLIED)
    ledger.update_status(failed_id, EditStatus.FAILED)

    pending = ledger.list_for_reconciliation("/")
    assert [edit.id for edit in pending] == [pending_id, failed_id]

    everything = ledger.list_for_reconciliation("/", include_applied=True)
    assert [edit.id for edit in everything] == [pending_id, applied_id, failed_id]

    newest = ledger.history(limit=2)
    assert [edit.original_text for edit in newest] == ["vier", "drei"]
    assert len(ledger.history("/")) == 3

    assert ledger.status_counts("/") == {"pending": 1, "applied": 1, "failed": 1}
    assert ledger.status_counts()["pending"] == 2


def test_ledger_reports_closed_connection(site, make_edit) -> None:
    store = EditLedger(site.db_path)
    store.close()

    with pytest.raises(StorageUnavailable):
        store.record(make_edit())


def test_ledger_from_config_honours_env_override(tmp_path, monkeypatch) -> None:
    override = tmp_path / "override.sqlite"
    monkeypatch.setenv("ITE_DB_PATH", override.as_posix())

    with EditLedger.from_config({"paths": {"db_path": (tmp_path / "ignored.sqlite").as_posix()}}) as store:
        assert store.db_path == override.resolve()


def test_unwritable_ledger_path_raises_storage_unavailable(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(EditLedger, "_is_writable", staticmethod(lambda _path: False))

    with pytest.raises(StorageUnavailable, match="not writable"):
        EditLedger(tmp_path / "readonly" / "ite.sqlite")


def test_concurrent_records_share_one_connection(ledger, make_edit) -> None:
    def record(index: int) -> int:
        return ledger.record(make_edit(original_text=f"Text {index}", element_id=f"el-{index}"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(record, range(40)))

    assert len(set(ids)) == 40
    assert len(ledger.history("/", limit=100)) == 40
    assert ledger.status_counts("/") == {"pending": 40}
