"""Migration step base classes.

A step is one versioned unit of schema or data change for a single
component. Subclasses set ``target_version`` and ``description`` as class
attributes and implement :meth:`MigrationStep.apply`::

    class AddVisitIndex(MigrationStep):
        target_version = "2.4.0"
        description = "Index log_visit on idsite"

        def apply(self, context: StepContext) -> None:
            context.execute("CREATE INDEX idx_visit_site ON log_visit (idsite)")

Steps signal outcomes by raising: :class:`StepExecutionError` stops the
component, :class:`StepExecutionWarning` records a warning and lets the
runner continue.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Sequence

from packaging.version import InvalidVersion, Version

from .errors import DiscoveryError, StepExecutionError

logger = logging.getLogger(__name__)


def parse_version(value: str, component: str | None = None) -> Version:
    """Parse a version string, raising :class:`DiscoveryError` when invalid."""
    try:
        return Version(str(value))
    except InvalidVersion as exc:
        raise DiscoveryError(f"Invalid version '{value}'", component=component) from exc


def split_statements(sql: str) -> list[str]:
    """Split an SQL script into individual statements.

    Comment-only lines are dropped. Statement boundaries are found with
    :func:`sqlite3.complete_statement`, so semicolons inside string
    literals do not split a statement.
    """
    statements: list[str] = []
    buffer: list[str] = []
    for line in sql.splitlines():
        if not buffer and (not line.strip() or line.strip().startswith("--")):
            continue
        buffer.append(line)
        candidate = "\n".join(buffer)
        if sqlite3.complete_statement(candidate):
            statement = candidate.strip().rstrip(";").strip()
            if statement:
                statements.append(statement)
            buffer = []

    remainder = "\n".join(buffer).strip().rstrip(";").strip()
    if remainder:
        statements.append(remainder)
    return statements


@dataclass
class StepContext:
    """Everything a step may touch while it runs."""

    component: str
    version: str
    connection: sqlite3.Connection | None = None
    logger: logging.Logger = field(default_factory=lambda: logger)

    def execute(self, statement: str, parameters: Sequence[object] = ()) -> sqlite3.Cursor:
        """Run one statement against the application database."""
        if self.connection is None:
            raise StepExecutionError(
                f"No database connection available for {self.component} {self.version}"
            )
        return self.connection.execute(statement, parameters)


class MigrationStep:
    """Base class for all migration steps."""

    target_version: str = ""
    description: str = ""
    is_major: bool = False

    @property
    def version(self) -> Version:
        return parse_version(self.target_version)

    def queries(self) -> list[str]:
        """SQL statements shown in the dry-run plan (may be empty)."""
        return []

    def apply(self, context: StepContext) -> None:
        raise NotImplementedError

    def _identity(self) -> tuple:
        # Steps are rebuilt on every discovery; compare them by content.
        return (
            type(self).__qualname__,
            self.target_version,
            self.description,
            self.is_major,
            tuple(self.queries()),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MigrationStep):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())

    def __repr__(self) -> str:
        return f"<{type(self).__name__}({self.target_version})>"


class SqlMigrationStep(MigrationStep):
    """A step made of plain SQL statements, applied in one transaction."""

    def __init__(
        self,
        target_version: str,
        statements: Sequence[str],
        description: str = "",
        is_major: bool = False,
    ):
        self.target_version = target_version
        self.statements = tuple(statements)
        self.description = description
        self.is_major = is_major

    @classmethod
    def from_script(
        cls, target_version: str, script: str, description: str = "", is_major: bool = False
    ) -> "SqlMigrationStep":
        return cls(target_version, split_statements(script), description, is_major)

    def queries(self) -> list[str]:
        return list(self.statements)

    def apply(self, context: StepContext) -> None:
        if context.connection is None:
            raise StepExecutionError(
                f"No database connection available for {context.component} {context.version}"
            )
        try:
            with context.connection:
                for statement in self.statements:
                    context.logger.debug("%s %s: %s", context.component, context.version, statement)
                    context.connection.execute(statement)
        except sqlite3.Error as exc:
            raise StepExecutionError(str(exc)) from exc


class CallableStep(MigrationStep):
    """Wrap a plain function as a step."""

    def __init__(
        self,
        target_version: str,
        action: Callable[[StepContext], None],
        description: str = "",
        is_major: bool = False,
    ):
        self.target_version = target_version
        self.action = action
        self.description = description or getattr(action, "__name__", "")
        self.is_major = is_major

    def apply(self, context: StepContext) -> None:
        self.action(context)

    def _identity(self) -> tuple:
        return (*super()._identity(), self.action)
