"""Tests for the active component set."""

from __future__ import annotations

from pathlib import Path

import pytest

from schema_updater.config import load_config, read_config_document
from schema_updater.updater import ConfigActivationStore, InMemoryActivationStore


def test_in_memory_core_is_always_active() -> None:
    store = InMemoryActivationStore(inactive=["core", "Foo"])

    assert store.is_active("core")
    assert not store.is_active("Foo")
    with pytest.raises(ValueError):
        store.deactivate("core")


def test_in_memory_reactivate() -> None:
    store = InMemoryActivationStore()
    store.deactivate("Foo")
    store.activate("Foo")

    assert store.is_active("Foo")
    assert store.inactive() == set()


def test_config_store_persists_inactive_list(project: Path) -> None:
    store = ConfigActivationStore(project)

    store.deactivate("Foo")
    store.deactivate("Bar")
    store.deactivate("Foo")

    document = read_config_document(project)
    assert list(document["components"]["inactive"]) == ["Bar", "Foo"]
    assert not ConfigActivationStore(project).is_active("Foo")


def test_config_store_preserves_updater_section(project: Path) -> None:
    store = ConfigActivationStore(project)
    store.deactivate("Foo")
    store.activate("Foo")

    assert store.inactive() == set()
    assert load_config(project).components_root == "."


def test_config_store_never_deactivates_core(project: Path) -> None:
    store = ConfigActivationStore(project)

    with pytest.raises(ValueError):
        store.deactivate("core")
    assert store.is_active("core")
