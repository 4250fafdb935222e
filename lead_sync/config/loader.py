"""Configuration loading helpers for lead sync."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import SyncConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
SYNC_CONFIG_FILENAME = "sync_config.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    config_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("LEAD_SYNC_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.config_dir = (root / "config").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.config_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def sync_config_path(self) -> Path:
        for suffix in CONFIG_EXTENSIONS:
            candidate = self.config_dir / f"sync_config{suffix}"
            if candidate.exists():
                return candidate
        return self.config_dir / SYNC_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: SyncConfig | None = None

    def load(self) -> SyncConfig:
        if self._cache is not None:
            return self._cache
        path = self.locator.sync_config_path()
        if path.exists():
            config = SyncConfig.model_validate(_read_file(path))
        else:
            config = SyncConfig()
            self.save(config)
        self._cache = config
        return config

    def save(self, config: SyncConfig) -> Path:
        path = self.locator.sync_config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._cache = config
        return path

    def reload(self) -> SyncConfig:
        self._cache = None
        return self.load()


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository"]
