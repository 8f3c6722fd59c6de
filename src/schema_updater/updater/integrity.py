"""File integrity checks against a checksum manifest.

The manifest is a JSON document mapping paths (relative to the components
root) to SHA256 digests::

    {"files": {"core/migrations/m_2_15_0_add_goal_table.py": "9f86d0..."}}

Results are informational. They are merged into the update warnings and
never stop an update from running.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

INTEGRITY_EXPLANATION = (
    "File integrity check failed: some files differ from the release manifest. "
    "This usually means an incomplete or modified installation; re-upload the "
    "files listed below."
)


def hash_file(file_path: Path) -> str:
    """SHA256 of the file bytes, read in 8KB chunks."""
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(8192):
            hasher.update(chunk)
    return hasher.hexdigest()


@dataclass
class IntegrityReport:
    ok: bool
    messages: List[str] = field(default_factory=list)
    skipped: bool = False

    def warnings(self) -> List[str]:
        """Warning lines for an update report, explanation first when the check failed."""
        if self.ok:
            return list(self.messages)
        return [INTEGRITY_EXPLANATION, *self.messages]


class IntegrityChecker:
    """Compare files under *root* with the digests listed in *manifest_path*."""

    def __init__(self, root: Path, manifest_path: Path) -> None:
        self.root = Path(root)
        self.manifest_path = Path(manifest_path)

    def _load_manifest(self) -> Optional[Dict[str, str]]:
        if not self.manifest_path.exists():
            return None
        payload = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        files = payload.get("files", payload) if isinstance(payload, dict) else None
        if not isinstance(files, dict):
            raise ValueError("manifest must map file paths to SHA256 digests")
        return {str(path): str(digest).lower() for path, digest in files.items()}

    def check(self) -> IntegrityReport:
        try:
            manifest = self._load_manifest()
        except (OSError, ValueError) as exc:
            logger.warning("Cannot read integrity manifest %s: %s", self.manifest_path, exc)
            return IntegrityReport(ok=False, messages=[f"Integrity manifest unreadable: {exc}"])

        if manifest is None:
            logger.info("No integrity manifest at %s, skipping check", self.manifest_path)
            return IntegrityReport(ok=True, skipped=True)

        messages: List[str] = []
        for relative, expected in sorted(manifest.items()):
            path = self.root / relative
            if not path.is_file():
                messages.append(f"Missing file: {relative}")
                continue
            try:
                actual = hash_file(path)
            except OSError as exc:
                messages.append(f"Unreadable file: {relative} ({exc})")
                continue
            if actual != expected:
                messages.append(f"File size/checksum mismatch: {relative}")

        logger.debug("Integrity check: %d problem(s) in %d file(s)", len(messages), len(manifest))
        return IntegrityReport(ok=not messages, messages=messages)

    def warnings(self) -> List[str]:
        return self.check().warnings()
