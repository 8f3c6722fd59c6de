"""Update orchestration engine for core, plugin and dimension migrations."""

from __future__ import annotations

from .activation import ConfigActivationStore, InMemoryActivationStore
from .engine import EngineState, MigrationEngine
from .errors import (
    AlreadyUpToDateError,
    ConcurrentRunError,
    DiscoveryError,
    NoUpdatesFoundError,
    StepExecutionError,
    StepExecutionWarning,
    UpdaterError,
)
from .integrity import IntegrityChecker, IntegrityReport
from .lock import UpdateLock
from .models import (
    Component,
    ComponentKind,
    ComponentPlan,
    ComponentResult,
    Pending,
    PlanSummary,
    UpdateResult,
    UpToDate,
)
from .registry import ComponentRegistry
from .runner import MigrationRunner
from .sources import FilesystemComponentSource, InMemoryComponentSource
from .steps import CallableStep, MigrationStep, SqlMigrationStep, StepContext
from .version_store import InMemoryVersionStore, SqliteVersionStore

__all__ = [
    "AlreadyUpToDateError",
    "CallableStep",
    "Component",
    "ComponentKind",
    "ComponentPlan",
    "ComponentRegistry",
    "ComponentResult",
    "ConcurrentRunError",
    "ConfigActivationStore",
    "DiscoveryError",
    "EngineState",
    "FilesystemComponentSource",
    "InMemoryActivationStore",
    "InMemoryComponentSource",
    "InMemoryVersionStore",
    "IntegrityChecker",
    "IntegrityReport",
    "MigrationEngine",
    "MigrationRunner",
    "MigrationStep",
    "NoUpdatesFoundError",
    "Pending",
    "PlanSummary",
    "SqlMigrationStep",
    "SqliteVersionStore",
    "StepContext",
    "StepExecutionError",
    "StepExecutionWarning",
    "UpToDate",
    "UpdateLock",
    "UpdateResult",
    "UpdaterError",
]
