"""Component registry for the update engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from packaging.version import Version

from .activation import ActivationStore, InMemoryActivationStore
from .errors import DiscoveryError
from .models import CORE_COMPONENT, Component, ComponentKind, DiscoveryOutcome, Pending, UpToDate
from .sources import ComponentSource
from .steps import MigrationStep, parse_version
from .version_store import VersionStore

logger = logging.getLogger(__name__)


def order_steps(steps: Sequence[MigrationStep], component: str) -> List[MigrationStep]:
    """Return *steps* sorted by target version.

    Raises:
        DiscoveryError: If a version is invalid or appears twice
    """
    keyed: List[tuple[Version, MigrationStep]] = []
    seen: Dict[Version, MigrationStep] = {}
    for step in steps:
        version = parse_version(step.target_version, component)
        if version in seen:
            raise DiscoveryError(
                f"Duplicate migration version {step.target_version}", component=component
            )
        seen[version] = step
        keyed.append((version, step))
    return [step for _version, step in sorted(keyed, key=lambda item: item[0])]


def component_sort_key(component_id: str) -> tuple[int, str]:
    """Core first, then everything else lexicographically."""
    return (0 if component_id == CORE_COMPONENT else 1, component_id)


@dataclass
class ComponentStatus:
    """Read-only view of one component for status reports."""

    id: str
    kind: ComponentKind
    stored_version: Optional[str]
    code_version: Optional[str]
    pending_versions: List[str]
    active: bool


class ComponentRegistry:
    """Enumerates installed components and their pending migration steps.

    Nothing is cached: every call asks the source for components and the
    version store for stored versions.
    """

    def __init__(
        self,
        source: ComponentSource,
        version_store: VersionStore,
        activation: ActivationStore | None = None,
    ) -> None:
        self.source = source
        self.version_store = version_store
        self.activation = activation or InMemoryActivationStore()

    def _components(self) -> List[Component]:
        try:
            components = self.source.components()
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(f"Cannot enumerate components: {exc}") from exc

        seen: set[str] = set()
        for component in components:
            if component.id in seen:
                raise DiscoveryError("Component registered twice", component=component.id)
            seen.add(component.id)
        return sorted(components, key=lambda c: component_sort_key(c.id))

    def pending_steps(self, component: Component) -> List[MigrationStep]:
        """Steps of *component* newer than its stored version (and not past its code version)."""
        stored_raw = self.version_store.get(component.id)
        stored = parse_version(stored_raw, component.id) if stored_raw is not None else None
        ceiling = (
            parse_version(component.code_version, component.id)
            if component.code_version
            else None
        )

        pending = []
        for step in order_steps(component.steps, component.id):
            version = step.version
            if stored is not None and version <= stored:
                continue
            if ceiling is not None and version > ceiling:
                logger.debug(
                    "Skipping %s %s: newer than installed code %s",
                    component.id,
                    step.target_version,
                    component.code_version,
                )
                continue
            pending.append(step)
        return pending

    def _scan(self) -> List[tuple[Component, List[MigrationStep]]]:
        found = []
        for component in self._components():
            if not component.is_core and not self.activation.is_active(component.id):
                logger.debug("Skipping inactive component %s", component.id)
                continue
            pending = self.pending_steps(component)
            if pending:
                found.append((component, pending))
        return found

    def discover_pending_updates(self) -> Dict[str, List[MigrationStep]]:
        """Map every component with pending steps to those steps, in execution order.

        Returns:
            ``{component_id: [step, ...]}`` with ``core`` first and the rest
            sorted by identifier; empty when nothing is pending

        Raises:
            DiscoveryError: If components or versions cannot be read
        """
        pending = {component.id: steps for component, steps in self._scan()}
        logger.info("Discovered %d component(s) with pending migrations", len(pending))
        return pending

    def discover(self) -> DiscoveryOutcome:
        """Like :meth:`discover_pending_updates` but as a ``Pending``/``UpToDate`` value."""
        scanned = self._scan()
        if not scanned:
            logger.info("Everything is already up to date")
            return UpToDate()
        return Pending(
            components={component.id: steps for component, steps in scanned},
            kinds={component.id: component.kind for component, _steps in scanned},
            code_versions={component.id: component.code_version for component, _steps in scanned},
        )

    def status(self) -> List[ComponentStatus]:
        """Describe every installed component, active or not."""
        statuses = []
        for component in self._components():
            active = component.is_core or self.activation.is_active(component.id)
            statuses.append(
                ComponentStatus(
                    id=component.id,
                    kind=component.kind,
                    stored_version=self.version_store.get(component.id),
                    code_version=component.code_version,
                    pending_versions=[s.target_version for s in self.pending_steps(component)],
                    active=active,
                )
            )
        return statuses
