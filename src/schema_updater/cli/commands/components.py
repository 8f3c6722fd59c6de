"""Component inspection commands: init, status, check-integrity, reactivate."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from schema_updater.cli.helpers import (
    ROOT_OPTION_HELP,
    configure_logging,
    console,
    load_project_config,
    print_json,
)
from schema_updater.config import UPDATER_DIRNAME, UpdaterConfig, UpdaterConfigError, save_config
from schema_updater.updater import (
    ComponentRegistry,
    ConfigActivationStore,
    DiscoveryError,
    FilesystemComponentSource,
    IntegrityChecker,
    SqliteVersionStore,
)


def init(
    core_version: Optional[str] = typer.Option(
        None, "--core-version", help="Version of the installed core code"
    ),
    components_root: str = typer.Option(
        ".", "--components-root", help="Directory holding core/, plugins/ and dimensions/"
    ),
    root: Path = typer.Option(Path("."), "--root", help="Project root to initialise"),
) -> None:
    """Create .updater/config.yaml in a project."""
    project_root = root.resolve()
    config = UpdaterConfig(
        project_root=project_root,
        core_version=core_version,
        components_root=components_root,
    )
    if config.config_path.exists():
        console.print(f"[yellow]Config already exists:[/yellow] {config.config_path}")
        raise typer.Exit(0)

    save_config(config)
    console.print(f"[green]Initialised[/green] {project_root / UPDATER_DIRNAME}")


def status(
    json_output: bool = typer.Option(False, "--json", help="Output status as JSON"),
    root: Optional[Path] = typer.Option(None, "--root", help=ROOT_OPTION_HELP),
) -> None:
    """Show stored versions and pending steps per component."""
    configure_logging(quiet=json_output)
    config = load_project_config(root)
    activation = ConfigActivationStore(config.project_root)
    registry = ComponentRegistry(
        FilesystemComponentSource(config.components_path, core_version=config.core_version),
        SqliteVersionStore(config.database_path),
        activation,
    )
    try:
        statuses = registry.status()
    except (DiscoveryError, UpdaterConfigError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if json_output:
        print_json(
            {
                "components": [
                    {
                        "id": s.id,
                        "kind": s.kind.value,
                        "stored_version": s.stored_version,
                        "code_version": s.code_version,
                        "pending": s.pending_versions,
                        "active": s.active,
                    }
                    for s in statuses
                ]
            }
        )
        return

    table = Table(title="Components", header_style="bold cyan")
    table.add_column("Component", style="bright_white")
    table.add_column("Kind", style="dim")
    table.add_column("Stored")
    table.add_column("Installed")
    table.add_column("Pending", justify="right")
    table.add_column("Active")

    for s in statuses:
        table.add_row(
            s.id,
            s.kind.value,
            s.stored_version or "-",
            s.code_version or "-",
            str(len(s.pending_versions)) if s.active else "[dim]-[/dim]",
            "[green]yes[/green]" if s.active else "[red]no[/red]",
        )
    console.print(table)


def check_integrity(
    root: Optional[Path] = typer.Option(None, "--root", help=ROOT_OPTION_HELP),
) -> None:
    """Compare installed files with the release checksum manifest."""
    configure_logging()
    config = load_project_config(root)
    report = IntegrityChecker(config.components_path, config.manifest_path).check()
    if report.skipped:
        console.print(f"[dim]No integrity manifest at {config.manifest_path}, nothing to check.[/dim]")
        return
    if report.ok:
        console.print("[green]All files match the manifest.[/green]")
        return
    for line in report.warnings():
        console.print(f"[yellow]![/yellow] {line}")
    raise typer.Exit(1)


def reactivate(
    name: str = typer.Argument(..., help="Component to put back into the active set"),
    root: Optional[Path] = typer.Option(None, "--root", help=ROOT_OPTION_HELP),
) -> None:
    """Reactivate a component that was deactivated after a failed migration."""
    configure_logging()
    config = load_project_config(root)
    activation = ConfigActivationStore(config.project_root)
    if name not in activation.inactive():
        console.print(f"[yellow]{name} is not deactivated.[/yellow]")
        return
    activation.activate(name)
    console.print(f"[green]Reactivated[/green] {name}. Run 'schema-updater update' to retry its migrations.")
