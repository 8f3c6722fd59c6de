"""Runs one component's pending migration steps."""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Optional, Sequence

from packaging.version import Version

from .errors import StepExecutionError, StepExecutionWarning
from .models import Component, ComponentResult
from .registry import order_steps
from .steps import MigrationStep, StepContext, parse_version
from .version_store import VersionStore

logger = logging.getLogger(__name__)


class MigrationRunner:
    """Apply a component's steps in ascending version order.

    The stored version is written after every successful step, so a
    failure at step N leaves steps 1..N-1 recorded and a later run resumes
    at step N. There is no rollback of applied steps.

    Example:
        runner = MigrationRunner(version_store, connection)
        result = runner.run(component, pending_steps)
        if result.fatal:
            ...  # deactivate the component
    """

    def __init__(
        self,
        version_store: VersionStore,
        connection: Optional[sqlite3.Connection] = None,
    ) -> None:
        self.version_store = version_store
        self.connection = connection

    def _finish_step(self, succeeded: bool) -> None:
        if self.connection is None or not self.connection.in_transaction:
            return
        if succeeded:
            self.connection.commit()
        else:
            self.connection.rollback()

    def run(
        self, component: Component, steps: Optional[Sequence[MigrationStep]] = None
    ) -> ComponentResult:
        """Run *steps* (default: all of ``component.steps``) for *component*.

        Step failures never propagate: each becomes exactly one error or
        warning entry on the returned result, prefixed with the component
        and step version.

        Raises:
            DiscoveryError: If the steps have invalid or duplicate versions
        """
        ordered = order_steps(component.steps if steps is None else steps, component.id)
        result = ComponentResult(component=component.id)

        logger.info("Updating %s: %d step(s)", component.id, len(ordered))
        for step in ordered:
            label = f"{component.id} {step.target_version}"
            context = StepContext(
                component=component.id,
                version=step.target_version,
                connection=self.connection,
                logger=logger,
            )
            started = time.monotonic()
            warning: Optional[str] = None
            try:
                try:
                    step.apply(context)
                except StepExecutionWarning as exc:
                    warning = str(exc)
                self._finish_step(True)
            except StepExecutionError as exc:
                self._finish_step(False)
                result.error = f"{label}: {exc}"
                result.fatal = exc.fatal
                logger.error("%s failed: %s", label, exc)
                break
            except Exception as exc:
                self._finish_step(False)
                result.error = f"{label}: {exc}"
                result.fatal = True
                logger.exception("%s failed unexpectedly", label)
                break

            if warning is not None:
                result.warnings.append(f"{label}: {warning}")
                logger.warning("%s completed with a warning: %s", label, warning)

            try:
                self.version_store.set(component.id, step.target_version)
            except Exception as exc:
                result.error = f"{label}: applied but the version could not be recorded: {exc}"
                result.fatal = True
                logger.error("Could not record %s: %s", label, exc)
                break

            result.applied_count += 1
            result.applied_versions.append(step.target_version)
            logger.info(
                "Applied %s (%dms)", label, int((time.monotonic() - started) * 1000)
            )

        if result.success:
            try:
                self._record_code_version(component)
            except Exception as exc:
                result.error = (
                    f"{component.id}: code version {component.code_version} could not be recorded: {exc}"
                )
                result.fatal = True
                logger.error("Could not record code version of %s: %s", component.id, exc)
        return result

    def _record_code_version(self, component: Component) -> None:
        """Bump the stored version to the installed code version once all steps passed."""
        if not component.code_version:
            return
        code_version = parse_version(component.code_version, component.id)
        stored_raw = self.version_store.get(component.id)
        if stored_raw is not None and Version(stored_raw) >= code_version:
            return
        self.version_store.set(component.id, component.code_version)
        logger.debug("Recorded %s at code version %s", component.id, component.code_version)
