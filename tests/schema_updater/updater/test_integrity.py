from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from schema_updater.updater import IntegrityChecker
from schema_updater.updater.integrity import INTEGRITY_EXPLANATION, hash_file


@pytest.fixture()
def installed(tmp_path: Path) -> Path:
    root = tmp_path / "app"
    (root / "core").mkdir(parents=True)
    (root / "core" / "Version.py").write_text("VERSION = '2.16.0'\n", encoding="utf-8")
    (root / "core" / "Tracker.py").write_text("pass\n", encoding="utf-8")
    return root


def _manifest(root: Path, files: dict[str, str], wrapped: bool = True) -> Path:
    path = root / "manifest.json"
    path.write_text(json.dumps({"files": files} if wrapped else files), encoding="utf-8")
    return path


def _digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def test_hash_file_matches_hashlib(installed: Path) -> None:
    path = installed / "core" / "Version.py"
    assert hash_file(path) == _digest(path)


def test_matching_files_report_nothing(installed: Path) -> None:
    manifest = _manifest(
        installed,
        {"core/Version.py": _digest(installed / "core" / "Version.py").upper()},
        wrapped=False,
    )

    report = IntegrityChecker(installed, manifest).check()

    assert report.ok
    assert report.warnings() == []


def test_missing_and_modified_files_are_listed(installed: Path) -> None:
    manifest = _manifest(
        installed,
        {
            "core/Version.py": _digest(installed / "core" / "Version.py"),
            "core/Tracker.py": "0" * 64,
            "core/Archive.py": "0" * 64,
        },
    )

    report = IntegrityChecker(installed, manifest).check()

    assert not report.ok
    assert report.warnings() == [
        INTEGRITY_EXPLANATION,
        "Missing file: core/Archive.py",
        "File size/checksum mismatch: core/Tracker.py",
    ]


def test_missing_manifest_skips_the_check(installed: Path) -> None:
    report = IntegrityChecker(installed, installed / "manifest.json").check()

    assert report.ok
    assert report.skipped
    assert report.warnings() == []


def test_unreadable_manifest_is_reported_not_raised(installed: Path) -> None:
    path = installed / "manifest.json"
    path.write_text("{not json", encoding="utf-8")

    warnings = IntegrityChecker(installed, path).warnings()

    assert warnings[0] == INTEGRITY_EXPLANATION
    assert warnings[1].startswith("Integrity manifest unreadable:")
