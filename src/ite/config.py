"""Configuration template and typed settings for the inline text editor."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIG_NAME = "config.yaml"
MODE_ENV_VAR = "ITE_MODE"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
        "root": ".",
    },
    "search": {
        "component_globs": ["src/data/**/subpages/**/*.ts"],
        "data_globs": ["src/data/**/json/**/*.json"],
        "ignore": ["node_modules", ".next", "dist"],
        "component_call": "createComponent",
    },
    "server": {
        "mode": "development",
        "host": "127.0.0.1",
        "port": 8787,
        "allowed_origins": [],
    },
    "paths": {
        "data": "data",
        "db_path": "data/ite.sqlite",
        "config": DEFAULT_CONFIG_NAME,
    },
}


class SettingsModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SearchSettings(SettingsModel):
    """Where candidate source files live and how components are declared."""

    component_globs: List[str] = Field(default_factory=lambda: ["src/data/**/subpages/**/*.ts"])
    data_globs: List[str] = Field(default_factory=lambda: ["src/data/**/json/**/*.json"])
    ignore: List[str] = Field(default_factory=lambda: ["node_modules", ".next", "dist"])
    component_call: str = "createComponent"


class ServerSettings(SettingsModel):
    """HTTP surface options; ``production`` mode only records edits."""

    mode: str = "development"
    host: str = "127.0.0.1"
    port: int = 8787
    allowed_origins: List[str] = Field(default_factory=list)

    @property
    def is_production(self) -> bool:
        return self.mode.strip().lower() in {"production", "live"}


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def merge_config(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` onto ``base`` and return ``base``."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merge_config(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def read_config(config_path: Path) -> Dict[str, Any]:
    """Load ``config_path`` over the default template.

    Raises ``FileNotFoundError`` for a missing file and ``ValueError`` when the
    YAML is invalid or not a mapping.
    """
    with config_path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as error:
            raise ValueError(f"Failed to parse config: {error}") from error
    if not isinstance(data, Mapping):
        raise ValueError("Configuration must be a mapping at the top level.")
    config = merge_config(copy_config_template(), data)
    config.setdefault("paths", {})["config"] = config_path.as_posix()
    return config


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def resolve_project_root(config: Mapping[str, Any], config_path: Optional[Path] = None) -> Path:
    """Resolve the site project root that holds the source-of-truth files."""
    project_cfg = config.get("project") or {}
    root_value = Path(str(project_cfg.get("root") or "."))
    if root_value.is_absolute():
        return root_value
    anchor = config_path.parent if config_path is not None else Path.cwd()
    return (anchor / root_value).resolve()


def search_settings(config: Mapping[str, Any]) -> SearchSettings:
    return SearchSettings.model_validate(config.get("search") or {})


def server_settings(config: Mapping[str, Any], env: Mapping[str, str] | None = None) -> ServerSettings:
    env_mapping = env if env is not None else os.environ
    settings = ServerSettings.model_validate(config.get("server") or {})
    override = env_mapping.get(MODE_ENV_VAR)
    if override and override.strip():
        settings = settings.model_copy(update={"mode": override.strip()})
    return settings
