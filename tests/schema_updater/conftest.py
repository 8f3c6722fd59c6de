from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Optional

import pytest

from schema_updater.config import UpdaterConfig, save_config
from schema_updater.updater import (
    CallableStep,
    Component,
    ComponentRegistry,
    InMemoryActivationStore,
    InMemoryComponentSource,
    InMemoryVersionStore,
    MigrationEngine,
    StepContext,
)


class StepLog:
    """Collects (component, version) pairs in the order steps ran."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def versions(self, component: str) -> list[str]:
        return [version for name, version in self.calls if name == component]


@pytest.fixture()
def step_log() -> StepLog:
    return StepLog()


@pytest.fixture()
def make_step(step_log: StepLog) -> Callable[..., CallableStep]:
    """Build a step that records itself, optionally raising *error* when applied."""

    def _make(version: str, error: Optional[BaseException] = None, is_major: bool = False) -> CallableStep:
        def action(context: StepContext) -> None:
            step_log.calls.append((context.component, context.version))
            if error is not None:
                raise error

        return CallableStep(version, action, description=f"step {version}", is_major=is_major)

    return _make


@pytest.fixture()
def build_engine() -> Callable[..., MigrationEngine]:
    """Wire an engine over in-memory stores."""

    def _build(
        components: Iterable[Component],
        versions: Optional[dict[str, str]] = None,
        inactive: Iterable[str] = (),
        **engine_kwargs,
    ) -> MigrationEngine:
        registry = ComponentRegistry(
            InMemoryComponentSource(components),
            InMemoryVersionStore(versions),
            InMemoryActivationStore(inactive),
        )
        return MigrationEngine(registry, **engine_kwargs)

    return _build


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """An initialised project whose components live next to .updater/."""
    root = tmp_path / "project"
    root.mkdir()
    save_config(UpdaterConfig(project_root=root))
    return root


@pytest.fixture()
def write_migration() -> Callable[..., Path]:
    """Write a migration file for a component under a components root."""

    def _write(components_root: Path, component_dir: str, filename: str, content: str) -> Path:
        migrations = components_root / component_dir / "migrations"
        migrations.mkdir(parents=True, exist_ok=True)
        path = migrations / filename
        path.write_text(content, encoding="utf-8")
        return path

    return _write
