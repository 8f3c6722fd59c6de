"""Component sources: where components and their migration steps come from.

A source returns a static list of :class:`Component` objects each time it
is asked; the registry never caches that list.

Filesystem layout read by :class:`FilesystemComponentSource`::

    <components_root>/
        core/
            component.yaml            # optional, "version: 2.16.0"
            migrations/
                m_2_15_0_add_goal_table.py
                2.16.0_index_visits.sql
        plugins/
            Foo/
                component.yaml
                migrations/...
        dimensions/
            log_visit.referer/
                migrations/...

Python migration modules define :class:`MigrationStep` subclasses; every
subclass defined in the module with a ``target_version`` becomes a step.
SQL files are named ``<version>_<slug>.sql``; a ``-- @major`` line marks the
step as a major schema change.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from ruamel.yaml import YAML

from .errors import DiscoveryError
from .models import CORE_COMPONENT, Component, ComponentKind
from .steps import MigrationStep, SqlMigrationStep

logger = logging.getLogger(__name__)

PYTHON_MIGRATION_PATTERN = re.compile(r"^m_\d+(?:_\d+)*_[A-Za-z0-9_]+\.py$")
SQL_MIGRATION_PATTERN = re.compile(r"^(?P<version>\d+(?:\.\d+)*(?:[-.]?[A-Za-z0-9]+)*?)_(?P<slug>[A-Za-z0-9_]+)\.sql$")
MAJOR_MARKER = "-- @major"
MANIFEST_FILENAME = "component.yaml"


class ComponentSource(Protocol):
    """Anything able to list the installed components."""

    def components(self) -> List[Component]: ...


class InMemoryComponentSource:
    """Static component list, mostly for tests and embedding."""

    def __init__(self, components: Iterable[Component] = ()) -> None:
        self._components = list(components)

    def add(self, component: Component) -> None:
        self._components.append(component)

    def components(self) -> List[Component]:
        return [
            Component(
                id=component.id,
                kind=component.kind,
                steps=list(component.steps),
                code_version=component.code_version,
            )
            for component in self._components
        ]


def _read_manifest_version(component_dir: Path, component_id: str) -> Optional[str]:
    manifest = component_dir / MANIFEST_FILENAME
    if not manifest.exists():
        return None
    yaml = YAML(typ="safe")
    try:
        with manifest.open("r", encoding="utf-8") as handle:
            payload = yaml.load(handle) or {}
    except Exception as exc:
        raise DiscoveryError(f"Failed to parse {manifest}: {exc}", component=component_id) from exc
    if not isinstance(payload, dict):
        raise DiscoveryError(f"{manifest} must contain a mapping", component=component_id)
    version = payload.get("version")
    return str(version) if version is not None else None


def _module_name(component_id: str, path: Path) -> str:
    safe_component = re.sub(r"[^A-Za-z0-9_]", "_", component_id)
    return f"schema_updater_migrations.{safe_component}.{path.stem}"


def load_python_steps(path: Path, component_id: str) -> List[MigrationStep]:
    """Import a migration module and instantiate the steps it defines."""
    module_name = _module_name(component_id, path)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise DiscoveryError(f"Cannot load migration module {path.name}", component=component_id)

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise DiscoveryError(
            f"Failed to import {path.name}: {exc}", component=component_id
        ) from exc

    steps: List[MigrationStep] = []
    for _name, obj in inspect.getmembers(module, inspect.isclass):
        if (
            issubclass(obj, MigrationStep)
            and obj.__module__ == module.__name__
            and not inspect.isabstract(obj)
            and obj.target_version
        ):
            steps.append(obj())
    if not steps:
        logger.warning("Migration module %s defines no steps", path)
    return steps


def load_sql_step(path: Path, component_id: str) -> SqlMigrationStep:
    match = SQL_MIGRATION_PATTERN.match(path.name)
    if not match:
        raise DiscoveryError(f"Invalid SQL migration filename: {path.name}", component=component_id)
    script = path.read_text(encoding="utf-8")
    is_major = any(line.strip().lower() == MAJOR_MARKER for line in script.splitlines())
    return SqlMigrationStep.from_script(
        match.group("version"),
        script,
        description=match.group("slug").replace("_", " "),
        is_major=is_major,
    )


def load_component_steps(migrations_dir: Path, component_id: str) -> List[MigrationStep]:
    """Load every step found in a component's migrations/ directory."""
    if not migrations_dir.is_dir():
        return []

    steps: List[MigrationStep] = []
    for path in sorted(migrations_dir.iterdir()):
        if path.suffix == ".py":
            if path.name == "__init__.py":
                continue
            if not PYTHON_MIGRATION_PATTERN.match(path.name):
                logger.warning("Skipping invalid migration filename: %s", path.name)
                continue
            steps.extend(load_python_steps(path, component_id))
        elif path.suffix == ".sql":
            steps.append(load_sql_step(path, component_id))
    return steps


class FilesystemComponentSource:
    """Scan core/, plugins/ and dimensions/ under a components root."""

    def __init__(self, root: Path, core_version: Optional[str] = None) -> None:
        self.root = Path(root)
        self.core_version = core_version

    def _component(self, component_dir: Path, component_id: str, kind: ComponentKind) -> Component:
        code_version = _read_manifest_version(component_dir, component_id)
        if kind is ComponentKind.CORE and self.core_version:
            code_version = self.core_version
        return Component(
            id=component_id,
            kind=kind,
            steps=load_component_steps(component_dir / "migrations", component_id),
            code_version=code_version,
        )

    def components(self) -> List[Component]:
        if not self.root.is_dir():
            raise DiscoveryError(f"Components root does not exist: {self.root}")

        found: List[Component] = []
        core_dir = self.root / CORE_COMPONENT
        if core_dir.is_dir():
            found.append(self._component(core_dir, CORE_COMPONENT, ComponentKind.CORE))

        for folder, kind in (("plugins", ComponentKind.PLUGIN), ("dimensions", ComponentKind.DIMENSION)):
            base = self.root / folder
            if not base.is_dir():
                continue
            for component_dir in sorted(p for p in base.iterdir() if p.is_dir()):
                if component_dir.name.startswith((".", "_")):
                    continue
                found.append(self._component(component_dir, component_dir.name, kind))

        logger.debug("Found %d components under %s", len(found), self.root)
        return found
