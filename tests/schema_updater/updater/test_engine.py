"""End-to-end tests for the update engine."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from schema_updater.config import load_config
from schema_updater.updater import (
    CallableStep,
    ConcurrentRunError,
    EngineState,
    IntegrityChecker,
    MigrationEngine,
    PlanSummary,
    StepContext,
    StepExecutionError,
    StepExecutionWarning,
    UpdateLock,
    UpdateResult,
    UpToDate,
)
from schema_updater.updater.integrity import INTEGRITY_EXPLANATION

from tests.schema_updater.factories import core, plugin


def test_scenario_a_nothing_pending_short_circuits(build_engine, make_step) -> None:
    engine = build_engine([core(make_step("1.0.0"))], versions={"core": "1.0.0"})

    outcome = engine.run()

    assert isinstance(outcome, UpToDate)
    assert engine.state is EngineState.NO_UPDATES_PENDING


def test_scenario_b_core_steps_succeed(build_engine, make_step) -> None:
    engine = build_engine([core(make_step("2.1.0"), make_step("2.0.0"))])

    result = engine.run()

    assert isinstance(result, UpdateResult)
    assert result.core_error is False
    assert result.success
    assert result.can_auto_redirect
    assert engine.version_store.get("core") == "2.1.0"
    assert engine.state is EngineState.COMPLETED


def test_scenario_c_failing_plugin_is_deactivated(build_engine, make_step, step_log) -> None:
    engine = build_engine(
        [
            core(make_step("1.0.0")),
            plugin("Foo", make_step("1.0.0", error=StepExecutionError("bad schema"))),
            plugin("Goals", make_step("1.0.0")),
            plugin("log_visit", make_step("1.0.0")),
        ]
    )

    result = engine.run()

    assert result.errors == ["Foo 1.0.0: bad schema"]
    assert result.deactivated_components == {"Foo"}
    assert result.core_error is False
    assert not result.can_auto_redirect
    assert step_log.versions("Goals") == ["1.0.0"]
    assert step_log.versions("log_visit") == ["1.0.0"]
    assert not engine.activation.is_active("Foo")
    assert engine.activation.is_active("Goals")


def test_scenario_d_dry_run_leaves_store_untouched(build_engine, make_step, step_log) -> None:
    engine = build_engine(
        [
            core(make_step("2.0.0", is_major=True), make_step("1.9.0")),
            plugin("Foo", make_step("0.2.0")),
            plugin("log_visit", make_step("0.1.0")),
        ],
        versions={"core": "1.8.0"},
    )

    plan = engine.run(dry_run=True)

    assert isinstance(plan, PlanSummary)
    assert plan.total_steps == 4
    assert len(plan.components) == 3
    assert plan.core_version == "1.8.0"
    assert plan.core_to_update
    assert plan.plugins_to_update == ["Foo"]
    assert plan.dimensions_to_update == ["log_visit"]
    assert plan.has_major_update
    assert plan.components[0].step_versions == ["1.9.0", "2.0.0"]
    assert engine.version_store.all() == {"core": "1.8.0"}
    assert step_log.calls == []
    assert engine.state is EngineState.DRY_RUN_COMPLETE


def test_core_failure_never_deactivates_core(build_engine, make_step, step_log) -> None:
    engine = build_engine(
        [
            core(make_step("1.0.0", error=StepExecutionError("cannot alter log_visit"))),
            plugin("Foo", make_step("1.0.0")),
        ]
    )

    result = engine.run()

    assert result.core_error is True
    assert result.deactivated_components == set()
    assert engine.activation.is_active("core")
    assert step_log.versions("Foo") == ["1.0.0"]
    assert not result.success


def test_core_failure_can_stop_the_run(build_engine, make_step, step_log) -> None:
    engine = build_engine(
        [
            core(make_step("1.0.0", error=RuntimeError("boom"))),
            plugin("Foo", make_step("1.0.0")),
            plugin("log_visit", make_step("1.0.0")),
        ],
        continue_after_core_error=False,
    )

    result = engine.run()

    assert result.core_error is True
    assert result.skipped_components == ["Foo", "log_visit"]
    assert result.warnings == ["Core update failed; not updated: Foo, log_visit"]
    assert step_log.versions("Foo") == []


def test_non_fatal_plugin_error_keeps_plugin_active(build_engine, make_step) -> None:
    engine = build_engine(
        [plugin("Foo", make_step("1.0.0", error=StepExecutionError("retry later", fatal=False)))]
    )

    result = engine.run()

    assert result.errors == ["Foo 1.0.0: retry later"]
    assert result.deactivated_components == set()
    assert engine.activation.is_active("Foo")


def test_already_inactive_component_is_not_reported_as_deactivated(build_engine, make_step) -> None:
    engine = build_engine([], inactive=["Foo"])

    result = engine.execute({"Foo": [make_step("1.0.0", error=StepExecutionError("bad"))]})

    assert result.errors == ["Foo 1.0.0: bad"]
    assert result.deactivated_components == set()


def test_step_warnings_are_aggregated(build_engine, make_step) -> None:
    engine = build_engine(
        [plugin("Foo", make_step("1.0.0", error=StepExecutionWarning("column already present")))]
    )

    result = engine.run()

    assert result.success
    assert result.warnings == ["Foo 1.0.0: column already present"]
    assert not result.can_auto_redirect


def test_cancellation_is_checked_between_components(build_engine, step_log) -> None:
    engine_holder: list[MigrationEngine] = []

    def cancel_after_core(context: StepContext) -> None:
        step_log.calls.append((context.component, context.version))
        engine_holder[0].request_cancel()

    def record(context: StepContext) -> None:
        step_log.calls.append((context.component, context.version))

    engine = build_engine(
        [
            core(CallableStep("1.0.0", cancel_after_core), CallableStep("1.1.0", record)),
            plugin("Foo", CallableStep("1.0.0", record)),
        ]
    )
    engine_holder.append(engine)

    result = engine.run()

    assert result.cancelled
    assert step_log.versions("core") == ["1.0.0", "1.1.0"]
    assert result.skipped_components == ["Foo"]
    assert engine.version_store.get("Foo") is None


def test_discover_then_plan_then_execute_states(build_engine, make_step) -> None:
    engine = build_engine([plugin("Foo", make_step("1.0.0"))])
    assert engine.state is EngineState.IDLE

    with engine.session():
        pending = engine.discover()
        assert engine.state is EngineState.PLAN_COMPUTED
        engine.plan_only(pending)
        assert engine.state is EngineState.DRY_RUN_COMPLETE
        engine.execute(pending)
        assert engine.state is EngineState.COMPLETED


def test_integrity_warnings_are_merged_first(build_engine, make_step, tmp_path: Path) -> None:
    manifest = tmp_path / "manifest.json"
    manifest.write_text(json.dumps({"files": {"core/missing.py": "0" * 64}}), encoding="utf-8")
    engine = build_engine(
        [plugin("Foo", make_step("1.0.0", error=StepExecutionWarning("slow")))],
        integrity=IntegrityChecker(tmp_path, manifest),
    )

    result = engine.run()

    assert result.warnings == [
        INTEGRITY_EXPLANATION,
        "Missing file: core/missing.py",
        "Foo 1.0.0: slow",
    ]
    assert result.success


@pytest.mark.adversarial
def test_second_session_is_rejected_while_lock_is_held(build_engine, make_step, tmp_path: Path) -> None:
    lock_path = tmp_path / "update.lock"
    first = build_engine([plugin("Foo", make_step("1.0.0"))], lock=UpdateLock(lock_path))
    second = build_engine([plugin("Foo", make_step("1.0.0"))], lock=UpdateLock(lock_path))

    with first.session():
        with pytest.raises(ConcurrentRunError):
            second.run()

    assert isinstance(second.run(), UpdateResult)


def test_engine_from_config_runs_sql_migrations(project: Path, write_migration) -> None:
    write_migration(project, "core", "1.0.0_create_visits.sql", "CREATE TABLE visit (id INTEGER);")
    write_migration(project, "plugins/Goals", "0.1.0_create_goals.sql", "CREATE TABLE goal (id INTEGER);")
    write_migration(project, "plugins/Broken", "0.1.0_bad.sql", "INSERT INTO nowhere VALUES (1);")
    config = load_config(project)

    result = MigrationEngine.from_config(config).run()

    assert result.core_error is False
    assert result.deactivated_components == {"Broken"}
    assert MigrationEngine.from_config(config).version_store.all() == {
        "Goals": "0.1.0",
        "core": "1.0.0",
    }
    assert "Broken" in (project / ".updater" / "config.yaml").read_text(encoding="utf-8")
    assert isinstance(MigrationEngine.from_config(config).run(), UpToDate)


@pytest.mark.adversarial
def test_commit_failure_deactivates_only_that_plugin(build_engine, make_step, step_log, tmp_path: Path) -> None:
    db_path = tmp_path / "app.db"
    setup = sqlite3.connect(db_path)
    setup.executescript(
        """
        CREATE TABLE parent (id INTEGER PRIMARY KEY);
        CREATE TABLE child (
            id INTEGER PRIMARY KEY,
            parent_id INTEGER REFERENCES parent (id) DEFERRABLE INITIALLY DEFERRED
        );
        """
    )
    setup.close()

    def connect() -> sqlite3.Connection:
        conn = sqlite3.connect(db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def insert_orphan(context: StepContext) -> None:
        context.execute("INSERT INTO child (id, parent_id) VALUES (1, 42)")

    engine = build_engine(
        [
            plugin("Foo", CallableStep("1.0.0", insert_orphan)),
            plugin("Goals", make_step("1.0.0")),
        ],
        connection_factory=connect,
    )

    result = engine.run()

    assert result.deactivated_components == {"Foo"}
    assert result.errors == ["Foo 1.0.0: FOREIGN KEY constraint failed"]
    assert step_log.versions("Goals") == ["1.0.0"]
    assert engine.version_store.get("Goals") == "1.0.0"
    assert engine.version_store.get("Foo") is None


def test_stale_cancel_request_does_not_skip_a_new_run(build_engine, make_step, step_log) -> None:
    engine = build_engine([plugin("Foo", make_step("1.0.0"))])
    pending = engine.discover()
    engine.request_cancel()

    result = engine.execute(pending)

    assert not result.cancelled
    assert result.skipped_components == []
    assert step_log.versions("Foo") == ["1.0.0"]
