"""Persisted mapping of component name to last applied version.

Every read goes to the backing store; nothing is cached between calls so
a long-lived engine never works from a stale view. Every write is its own
committed transaction: once :meth:`VersionStore.set` returns, the version
survives a crash.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class VersionStore(Protocol):
    """Durable ``component -> version`` mapping."""

    def get(self, component: str) -> Optional[str]: ...

    def set(self, component: str, version: str) -> None: ...

    def delete(self, component: str) -> None: ...

    def all(self) -> Dict[str, str]: ...


class SqliteVersionStore:
    """SQLite-backed version store, one row per component."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS component_versions (
                    component TEXT PRIMARY KEY,
                    version TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, component: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT version FROM component_versions WHERE component = ?",
                (component,),
            ).fetchone()
        finally:
            conn.close()
        return str(row["version"]) if row is not None else None

    def set(self, component: str, version: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO component_versions (component, version, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(component) DO UPDATE SET
                    version = excluded.version,
                    updated_at = excluded.updated_at
                """,
                (component, version, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Recorded %s at version %s", component, version)

    def delete(self, component: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM component_versions WHERE component = ?", (component,))
            conn.commit()
        finally:
            conn.close()

    def all(self) -> Dict[str, str]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT component, version FROM component_versions ORDER BY component ASC"
            ).fetchall()
        finally:
            conn.close()
        return {str(row["component"]): str(row["version"]) for row in rows}


class InMemoryVersionStore:
    """Dictionary-backed store for tests and throwaway dry runs."""

    def __init__(self, versions: Optional[Dict[str, str]] = None) -> None:
        self._versions: Dict[str, str] = dict(versions or {})

    def get(self, component: str) -> Optional[str]:
        return self._versions.get(component)

    def set(self, component: str, version: str) -> None:
        self._versions[component] = version

    def delete(self, component: str) -> None:
        self._versions.pop(component, None)

    def all(self) -> Dict[str, str]:
        return dict(sorted(self._versions.items()))
