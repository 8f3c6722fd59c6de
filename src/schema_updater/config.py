"""Project-scoped updater configuration in .updater/config.yaml."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

UPDATER_DIRNAME = ".updater"
CONFIG_FILENAME = "config.yaml"
LOCK_FILENAME = "update.lock"
ROOT_ENV_VAR = "SCHEMA_UPDATER_ROOT"


class UpdaterConfigError(RuntimeError):
    """Raised when the updater configuration is invalid."""


def locate_project_root(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) to the first directory holding .updater/."""
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / UPDATER_DIRNAME).is_dir():
            return candidate
    return None


def resolve_project_root(explicit: Path | None = None) -> Path:
    """Return the project root or raise a user-facing error.

    Resolution order:
    1. *explicit* (the ``--root`` option)
    2. SCHEMA_UPDATER_ROOT environment variable
    3. nearest parent of the cwd containing ``.updater/``
    """
    if explicit is not None:
        return Path(explicit).resolve()
    if env_root := os.environ.get(ROOT_ENV_VAR):
        return Path(env_root).resolve()
    root = locate_project_root()
    if root is None:
        raise UpdaterConfigError(
            f"No {UPDATER_DIRNAME}/ directory found. Run from inside a project "
            f"or pass --root / set {ROOT_ENV_VAR}."
        )
    return root


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_str(value: Any, default: str | None) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


@dataclass(slots=True)
class UpdaterConfig:
    """Settings stored under the ``updater:`` key of .updater/config.yaml."""

    project_root: Path
    core_version: str | None = None
    components_root: str = "."
    database: str = "versions.db"
    continue_after_core_error: bool = True
    unattended: bool = False
    integrity_manifest: str = "manifest.json"

    @property
    def updater_dir(self) -> Path:
        return self.project_root / UPDATER_DIRNAME

    @property
    def config_path(self) -> Path:
        return self.updater_dir / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.updater_dir / self.database

    @property
    def lock_path(self) -> Path:
        return self.updater_dir / LOCK_FILENAME

    @property
    def components_path(self) -> Path:
        return (self.project_root / self.components_root).resolve()

    @property
    def manifest_path(self) -> Path:
        return self.components_path / self.integrity_manifest

    def to_dict(self) -> dict[str, object]:
        return {
            "core_version": self.core_version,
            "components_root": self.components_root,
            "database": self.database,
            "continue_after_core_error": self.continue_after_core_error,
            "unattended": self.unattended,
            "integrity_manifest": self.integrity_manifest,
        }

    @classmethod
    def from_dict(cls, project_root: Path, data: dict[str, object] | None) -> "UpdaterConfig":
        if not isinstance(data, dict):
            return cls(project_root=project_root)

        defaults = cls(project_root=project_root)
        return cls(
            project_root=project_root,
            core_version=_as_str(data.get("core_version"), None),
            components_root=_as_str(data.get("components_root"), defaults.components_root) or ".",
            database=_as_str(data.get("database"), defaults.database) or defaults.database,
            continue_after_core_error=_as_bool(
                data.get("continue_after_core_error"), defaults.continue_after_core_error
            ),
            unattended=_as_bool(data.get("unattended"), defaults.unattended),
            integrity_manifest=_as_str(data.get("integrity_manifest"), defaults.integrity_manifest)
            or defaults.integrity_manifest,
        )


def _config_path(project_root: Path) -> Path:
    return project_root / UPDATER_DIRNAME / CONFIG_FILENAME


def read_config_document(project_root: Path) -> dict[str, Any]:
    """Load the whole config.yaml document (empty dict when missing)."""
    config_path = _config_path(project_root)
    if not config_path.exists():
        return {}

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except Exception as exc:
        raise UpdaterConfigError(f"Failed to parse {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise UpdaterConfigError(f"{config_path} must contain a mapping at the top level")
    return payload


def write_config_document(project_root: Path, payload: dict[str, Any]) -> None:
    config_path = _config_path(project_root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.preserve_quotes = True
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.dump(payload, handle)


def load_config(project_root: Path) -> UpdaterConfig:
    """Load updater config from .updater/config.yaml."""
    payload = read_config_document(project_root)
    section = payload.get("updater")
    return UpdaterConfig.from_dict(project_root, section if isinstance(section, dict) else None)


def save_config(config: UpdaterConfig) -> None:
    """Persist updater config into .updater/config.yaml, preserving other sections."""
    payload = read_config_document(config.project_root)
    payload["updater"] = config.to_dict()
    write_config_document(config.project_root, payload)
