"""Data model shared by the registry, runner and engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import NoUpdatesFoundError
from .steps import MigrationStep

CORE_COMPONENT = "core"
DIMENSION_PREFIX = "log_"


class ComponentKind(str, Enum):
    """What a component is. Only affects reporting and deactivation."""

    CORE = "core"
    PLUGIN = "plugin"
    DIMENSION = "dimension"

    @classmethod
    def infer(cls, component_id: str) -> "ComponentKind":
        """Derive the kind from an identifier (``core``, ``log_*`` or plugin)."""
        if component_id == CORE_COMPONENT:
            return cls.CORE
        if component_id.startswith(DIMENSION_PREFIX):
            return cls.DIMENSION
        return cls.PLUGIN


@dataclass
class Component:
    """A unit with its own version and migration history."""

    id: str
    kind: ComponentKind
    steps: List[MigrationStep] = field(default_factory=list)
    code_version: Optional[str] = None

    @property
    def is_core(self) -> bool:
        return self.kind is ComponentKind.CORE


@dataclass
class ComponentResult:
    """Outcome of running one component's pending steps."""

    component: str
    applied_count: int = 0
    applied_versions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    fatal: bool = False

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class UpdateResult:
    """Aggregated outcome of one engine invocation. Never persisted."""

    core_error: bool = False
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    deactivated_components: set[str] = field(default_factory=set)
    component_results: Dict[str, ComponentResult] = field(default_factory=dict)
    skipped_components: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.core_error and not self.errors

    @property
    def can_auto_redirect(self) -> bool:
        """True when nothing needs the operator's attention."""
        return (
            not self.core_error
            and not self.warnings
            and not self.errors
            and not self.deactivated_components
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "core_error": self.core_error,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "deactivated_components": sorted(self.deactivated_components),
            "skipped_components": list(self.skipped_components),
            "cancelled": self.cancelled,
            "components": {
                name: {
                    "applied_count": r.applied_count,
                    "applied_versions": list(r.applied_versions),
                    "warnings": list(r.warnings),
                    "error": r.error,
                    "fatal": r.fatal,
                }
                for name, r in self.component_results.items()
            },
        }


@dataclass
class ComponentPlan:
    """Dry-run view of a single component."""

    id: str
    kind: ComponentKind
    stored_version: Optional[str]
    target_version: str
    step_versions: List[str]
    queries: List[str]
    has_major_update: bool = False

    @property
    def step_count(self) -> int:
        return len(self.step_versions)


@dataclass
class PlanSummary:
    """What an execute run would do, computed without touching any state."""

    core_version: Optional[str]
    components: List[ComponentPlan] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return sum(plan.step_count for plan in self.components)

    @property
    def has_major_update(self) -> bool:
        return any(plan.has_major_update for plan in self.components)

    @property
    def queries(self) -> list[str]:
        return [query for plan in self.components for query in plan.queries]

    @property
    def core_to_update(self) -> bool:
        return any(plan.kind is ComponentKind.CORE for plan in self.components)

    @property
    def plugins_to_update(self) -> list[str]:
        return [plan.id for plan in self.components if plan.kind is ComponentKind.PLUGIN]

    @property
    def dimensions_to_update(self) -> list[str]:
        return [plan.id for plan in self.components if plan.kind is ComponentKind.DIMENSION]

    def to_dict(self) -> dict[str, Any]:
        return {
            "core_version": self.core_version,
            "total_steps": self.total_steps,
            "has_major_update": self.has_major_update,
            "core_to_update": self.core_to_update,
            "plugins_to_update": self.plugins_to_update,
            "dimensions_to_update": self.dimensions_to_update,
            "warnings": list(self.warnings),
            "components": [
                {
                    "id": plan.id,
                    "kind": plan.kind.value,
                    "stored_version": plan.stored_version,
                    "target_version": plan.target_version,
                    "steps": list(plan.step_versions),
                    "queries": list(plan.queries),
                    "major": plan.has_major_update,
                }
                for plan in self.components
            ],
        }


@dataclass
class Pending:
    """Discovery found work: component id -> ordered pending steps."""

    components: Dict[str, List[MigrationStep]]
    kinds: Dict[str, ComponentKind] = field(default_factory=dict)
    code_versions: Dict[str, Optional[str]] = field(default_factory=dict)

    def kind_of(self, component_id: str) -> ComponentKind:
        return self.kinds.get(component_id) or ComponentKind.infer(component_id)

    def component(self, component_id: str) -> Component:
        return Component(
            id=component_id,
            kind=self.kind_of(component_id),
            steps=list(self.components[component_id]),
            code_version=self.code_versions.get(component_id),
        )

    def require_pending(self) -> "Pending":
        return self

    def __bool__(self) -> bool:
        return bool(self.components)


@dataclass
class UpToDate:
    """Discovery found nothing to do."""

    def require_pending(self) -> Pending:
        raise NoUpdatesFoundError()

    def __bool__(self) -> bool:
        return False


DiscoveryOutcome = Pending | UpToDate
