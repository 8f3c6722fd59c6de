"""Active component set.

Components are active unless listed as inactive. A component whose
migration failed fatally is deactivated so its code stops running against
a schema it does not expect; discovery skips inactive components. The core
component can never be deactivated.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol

from schema_updater.config import read_config_document, write_config_document

from .models import CORE_COMPONENT

logger = logging.getLogger(__name__)


class ActivationStore(Protocol):
    def is_active(self, component: str) -> bool: ...

    def deactivate(self, component: str) -> None: ...

    def activate(self, component: str) -> None: ...

    def inactive(self) -> set[str]: ...


class InMemoryActivationStore:
    """Activation state held in memory."""

    def __init__(self, inactive: Iterable[str] = ()) -> None:
        self._inactive = set(inactive)

    def is_active(self, component: str) -> bool:
        return component == CORE_COMPONENT or component not in self._inactive

    def deactivate(self, component: str) -> None:
        if component == CORE_COMPONENT:
            raise ValueError("The core component cannot be deactivated")
        self._inactive.add(component)

    def activate(self, component: str) -> None:
        self._inactive.discard(component)

    def inactive(self) -> set[str]:
        return set(self._inactive)


class ConfigActivationStore:
    """Activation state kept in ``components.inactive`` of .updater/config.yaml.

    The file is re-read on every call and rewritten on every change, other
    sections of the document are preserved.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)

    def _load(self) -> tuple[dict, list[str]]:
        payload = read_config_document(self.project_root)
        section = payload.get("components")
        if not isinstance(section, dict):
            section = {}
            payload["components"] = section
        raw = section.get("inactive")
        inactive = [str(item) for item in raw] if isinstance(raw, list) else []
        return payload, inactive

    def _save(self, payload: dict, inactive: list[str]) -> None:
        payload["components"]["inactive"] = sorted(set(inactive))
        write_config_document(self.project_root, payload)

    def is_active(self, component: str) -> bool:
        if component == CORE_COMPONENT:
            return True
        _payload, inactive = self._load()
        return component not in inactive

    def deactivate(self, component: str) -> None:
        if component == CORE_COMPONENT:
            raise ValueError("The core component cannot be deactivated")
        payload, inactive = self._load()
        if component in inactive:
            return
        inactive.append(component)
        self._save(payload, inactive)
        logger.warning("Deactivated component %s", component)

    def activate(self, component: str) -> None:
        payload, inactive = self._load()
        if component not in inactive:
            return
        inactive.remove(component)
        self._save(payload, inactive)
        logger.info("Reactivated component %s", component)

    def inactive(self) -> set[str]:
        _payload, inactive = self._load()
        return set(inactive)
