"""Update orchestration engine.

The engine discovers which components have pending migrations, turns that
into a dry-run plan or executes it, and aggregates the outcome into a single
:class:`UpdateResult`.

Execution policy:

- ``core`` runs first. A core failure sets ``core_error`` and never
  deactivates the core. Whether the remaining components still run after a
  core failure is decided by ``continue_after_core_error``.
- The other components run in discovery order. Plugins and dimensions only
  differ in reporting.
- A fatal failure in a non-core component deactivates that component.
- Applied steps are never rolled back.

Per invocation the engine moves through::

    IDLE -> DISCOVERING -> NO_UPDATES_PENDING
                        -> PLAN_COMPUTED -> DRY_RUN_COMPLETE
                                         -> EXECUTING -> COMPLETED
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterator, List, Mapping, Sequence, Union

from .activation import ActivationStore, ConfigActivationStore, InMemoryActivationStore
from .errors import DiscoveryError
from .integrity import IntegrityChecker
from .lock import UpdateLock
from .models import (
    CORE_COMPONENT,
    Component,
    ComponentPlan,
    ComponentResult,
    DiscoveryOutcome,
    Pending,
    PlanSummary,
    UpdateResult,
    UpToDate,
)
from .registry import ComponentRegistry, order_steps
from .runner import MigrationRunner
from .sources import FilesystemComponentSource
from .steps import MigrationStep
from .version_store import SqliteVersionStore, VersionStore

if TYPE_CHECKING:
    from schema_updater.config import UpdaterConfig

logger = logging.getLogger(__name__)

PendingInput = Union[Pending, Mapping[str, Sequence[MigrationStep]]]


class EngineState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    NO_UPDATES_PENDING = "no_updates_pending"
    PLAN_COMPUTED = "plan_computed"
    DRY_RUN_COMPLETE = "dry_run_complete"
    EXECUTING = "executing"
    COMPLETED = "completed"


def _as_pending(pending: PendingInput) -> Pending:
    if isinstance(pending, Pending):
        return pending
    return Pending(components={name: list(steps) for name, steps in pending.items()})


def _execution_order(pending: Pending) -> List[str]:
    """Core first, everything else in the order discovery returned it."""
    names = list(pending.components)
    if CORE_COMPONENT in names:
        names.remove(CORE_COMPONENT)
        names.insert(0, CORE_COMPONENT)
    return names


class MigrationEngine:
    """Discover, plan and execute component migrations."""

    def __init__(
        self,
        registry: ComponentRegistry,
        version_store: VersionStore | None = None,
        activation: ActivationStore | None = None,
        lock: UpdateLock | None = None,
        integrity: IntegrityChecker | None = None,
        connection_factory: Callable[[], sqlite3.Connection] | None = None,
        continue_after_core_error: bool = True,
    ) -> None:
        self.registry = registry
        self.version_store = version_store or registry.version_store
        self.activation = activation or registry.activation or InMemoryActivationStore()
        self.lock = lock
        self.integrity = integrity
        self.connection_factory = connection_factory
        self.continue_after_core_error = continue_after_core_error
        self._state = EngineState.IDLE
        self._cancel = threading.Event()

    @classmethod
    def from_config(cls, config: "UpdaterConfig") -> "MigrationEngine":
        """Wire the production stores for the project described by *config*."""
        version_store = SqliteVersionStore(config.database_path)
        activation = ConfigActivationStore(config.project_root)
        source = FilesystemComponentSource(config.components_path, core_version=config.core_version)
        database_path = config.database_path
        return cls(
            registry=ComponentRegistry(source, version_store, activation),
            version_store=version_store,
            activation=activation,
            lock=UpdateLock(config.lock_path),
            integrity=IntegrityChecker(config.components_path, config.manifest_path),
            connection_factory=lambda: sqlite3.connect(database_path),
            continue_after_core_error=config.continue_after_core_error,
        )

    @property
    def state(self) -> EngineState:
        return self._state

    @contextmanager
    def session(self) -> Iterator["MigrationEngine"]:
        """Hold the update lock for a whole discover/plan/execute session.

        Raises:
            ConcurrentRunError: If another session holds the lock
        """
        if self.lock is not None:
            self.lock.acquire()
        self._state = EngineState.IDLE
        self._cancel.clear()
        try:
            yield self
        finally:
            if self.lock is not None:
                self.lock.release()

    def request_cancel(self) -> None:
        """Ask a running :meth:`execute` to stop before the next component."""
        self._cancel.set()

    def discover(self) -> DiscoveryOutcome:
        """Find pending work.

        Raises:
            DiscoveryError: If components cannot be enumerated
        """
        self._state = EngineState.DISCOVERING
        try:
            outcome = self.registry.discover()
        except DiscoveryError:
            self._state = EngineState.IDLE
            raise
        if isinstance(outcome, UpToDate):
            self._state = EngineState.NO_UPDATES_PENDING
        else:
            self._state = EngineState.PLAN_COMPUTED
        return outcome

    def integrity_warnings(self) -> List[str]:
        if self.integrity is None:
            return []
        return self.integrity.warnings()

    def plan_only(self, pending: PendingInput) -> PlanSummary:
        """Describe what :meth:`execute` would do. Writes nothing."""
        pending = _as_pending(pending)
        plans = []
        for name in _execution_order(pending):
            steps = order_steps(pending.components[name], name)
            if not steps:
                continue
            code_version = pending.code_versions.get(name)
            plans.append(
                ComponentPlan(
                    id=name,
                    kind=pending.kind_of(name),
                    stored_version=self.version_store.get(name),
                    target_version=code_version or steps[-1].target_version,
                    step_versions=[step.target_version for step in steps],
                    queries=[query for step in steps for query in step.queries()],
                    has_major_update=any(step.is_major for step in steps),
                )
            )

        summary = PlanSummary(
            core_version=self.version_store.get(CORE_COMPONENT),
            components=plans,
            warnings=self.integrity_warnings(),
        )
        self._state = EngineState.DRY_RUN_COMPLETE
        logger.info(
            "Dry run: %d step(s) across %d component(s)%s",
            summary.total_steps,
            len(plans),
            " (major update)" if summary.has_major_update else "",
        )
        return summary

    def execute(self, pending: PendingInput) -> UpdateResult:
        """Apply all pending steps and report the aggregated outcome."""
        pending = _as_pending(pending)
        self._cancel.clear()
        self._state = EngineState.EXECUTING
        result = UpdateResult(warnings=self.integrity_warnings())
        order = _execution_order(pending)

        connection = self.connection_factory() if self.connection_factory else None
        try:
            runner = MigrationRunner(self.version_store, connection)
            for index, name in enumerate(order):
                if self._cancel.is_set():
                    self._skip(result, order[index:], "Update cancelled")
                    result.cancelled = True
                    break
                if result.core_error and not self.continue_after_core_error:
                    self._skip(result, order[index:], "Core update failed")
                    break

                component = pending.component(name)
                try:
                    component_result = runner.run(component)
                except DiscoveryError as exc:
                    component_result = ComponentResult(component=name, error=str(exc))
                self._collect(result, component, component_result)
        finally:
            if connection is not None:
                connection.close()

        self._state = EngineState.COMPLETED
        logger.info(
            "Update finished: %d error(s), %d warning(s), %d deactivated",
            len(result.errors),
            len(result.warnings),
            len(result.deactivated_components),
        )
        return result

    def run(self, dry_run: bool = False) -> Union[UpToDate, PlanSummary, UpdateResult]:
        """Discover then plan or execute, all under the update lock."""
        with self.session():
            outcome = self.discover()
            if isinstance(outcome, UpToDate):
                return outcome
            if dry_run:
                return self.plan_only(outcome)
            return self.execute(outcome)

    def _collect(
        self, result: UpdateResult, component: Component, component_result: ComponentResult
    ) -> None:
        result.component_results[component.id] = component_result
        result.warnings.extend(component_result.warnings)
        if component_result.error is None:
            return

        result.errors.append(component_result.error)
        if component.is_core:
            result.core_error = True
        elif component_result.fatal:
            self._deactivate(result, component.id)

    def _deactivate(self, result: UpdateResult, name: str) -> None:
        try:
            if not self.activation.is_active(name):
                return
            self.activation.deactivate(name)
        except Exception as exc:
            result.errors.append(f"{name}: could not be deactivated: {exc}")
            logger.error("Could not deactivate %s: %s", name, exc)
            return
        result.deactivated_components.add(name)
        logger.warning("Deactivated %s after a failed migration", name)

    @staticmethod
    def _skip(result: UpdateResult, names: Sequence[str], reason: str) -> None:
        result.skipped_components.extend(names)
        result.warnings.append(f"{reason}; not updated: {', '.join(names)}")
        logger.warning("%s; skipping %s", reason, ", ".join(names))
