from __future__ import annotations

import json
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ite.memory.schema import EditRecord, EditStatus  # noqa: E402
from ite.memory.store import EditLedger  # noqa: E402
from ite.reconcile import Reconciler  # noqa: E402

HOME_COMPONENTS = textwrap.dedent(
    """
    import { createComponent } from "../../lib";

    export const hero = createComponent({
      id: "hero",
      type: "Hero",
      props: {
        title: "Willkommen bei uns",
        subtitle: 'Preise ab { 9 Euro',
        note: "Say \\"hello\\" today",
      },
    });

    export const features = createComponent({
      id: "features",
      props: {
        heading: "Unsere Leistungen",
        dataSource: "features.json",
      },
    });
    """
).lstrip()

FEATURES_DATA = {
    "sections": [
        {"heading": "Warum wir"},
        {"items": [{"label": "Schnelle Ladezeiten"}, {"label": "Faire Preise"}]},
    ]
}


@dataclass(slots=True)
class SiteRepo:
    """Fixture payload describing a synthetic site project."""

    root: Path
    config_path: Path
    component_path: Path
    data_path: Path
    db_path: Path

    def component_text(self) -> str:
        return self.component_path.read_text(encoding="utf-8")

    def data_text(self) -> str:
        return self.data_path.read_text(encoding="utf-8")


@pytest.fixture()
def site(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SiteRepo:
    """Create a site with one component file, one data file and a config."""

    monkeypatch.delenv("ITE_MODE", raising=False)
    monkeypatch.delenv("ITE_DB_PATH", raising=False)

    root = tmp_path / "site"
    component_path = root / "src" / "data" / "pages" / "subpages" / "home.ts"
    component_path.parent.mkdir(parents=True)
    component_path.write_text(HOME_COMPONENTS, encoding="utf-8")

    data_path = root / "src" / "data" / "pages" / "json" / "features.json"
    data_path.parent.mkdir(parents=True)
    data_path.write_text(json.dumps(FEATURES_DATA, indent=2) + "\n", encoding="utf-8")

    ignored = root / "src" / "data" / "node_modules" / "subpages" / "copy.ts"
    ignored.parent.mkdir(parents=True)
    ignored.write_text(HOME_COMPONENTS, encoding="utf-8")

    db_path = tmp_path / "ledger" / "ite.sqlite"
    config_path = root / "config.yaml"
    config_path.write_text(
        yaml.safe_dump(
            {
                "project": {"name": "fixture-site", "root": "."},
                "server": {"mode": "development"},
                "paths": {"db_path": db_path.as_posix()},
            },
            sort_keys=False,
        ),
        encoding="utf-8",
    )
    return SiteRepo(
        root=root,
        config_path=config_path,
        component_path=component_path,
        data_path=data_path,
        db_path=db_path,
    )


@pytest.fixture()
def ledger(site: SiteRepo) -> Iterator[EditLedger]:
    with EditLedger(site.db_path) as store:
        yield store


@pytest.fixture()
def reconciler(site: SiteRepo, ledger: EditLedger) -> Reconciler:
    return Reconciler(ledger, site.root)


@pytest.fixture()
def make_edit() -> Callable[..., EditRecord]:
    """Factory for edits on the fixture home page."""

    def factory(**overrides: Any) -> EditRecord:
        values: dict[str, Any] = {
            "original_text": "Willkommen bei uns",
            "new_text": "Willkommen bei <b>uns</b>",
            "status": EditStatus.PENDING,
            "page_url": "/",
            "element_id": "hero-title",
            "component_id": "hero",
        }
        values.update(overrides)
        return EditRecord(**values)

    return factory
