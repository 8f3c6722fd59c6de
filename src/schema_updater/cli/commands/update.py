"""Update command implementation for the schema-updater CLI."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from schema_updater.cli.helpers import (
    ROOT_OPTION_HELP,
    configure_logging,
    console,
    load_project_config,
    print_json,
)
from schema_updater.config import UpdaterConfigError
from schema_updater.updater import (
    ConcurrentRunError,
    DiscoveryError,
    MigrationEngine,
    PlanSummary,
    UpdateResult,
    UpToDate,
)

UNATTENDED_HINT = "schema-updater update --yes"


def _show_plan(plan: PlanSummary, verbose: bool) -> None:
    """Print the welcome screen: what will be updated and why to be careful."""
    console.print(f"[cyan]Current core version:[/cyan] {plan.core_version or 'not installed'}")
    if plan.core_to_update:
        console.print("[cyan]Core:[/cyan] will be updated")
    if plan.plugins_to_update:
        console.print(f"[cyan]Plugins:[/cyan] {', '.join(plan.plugins_to_update)}")
    if plan.dimensions_to_update:
        console.print(f"[cyan]Dimensions:[/cyan] {', '.join(plan.dimensions_to_update)}")
    console.print()

    table = Table(title="Update Plan", show_lines=False, header_style="bold cyan")
    table.add_column("Component", style="bright_white")
    table.add_column("Kind", style="dim")
    table.add_column("From", style="dim")
    table.add_column("To", style="cyan")
    table.add_column("Steps", justify="right")

    for component in plan.components:
        table.add_row(
            component.id,
            component.kind.value,
            component.stored_version or "-",
            component.target_version,
            str(component.step_count),
        )

    console.print(table)
    console.print(f"[dim]{plan.total_steps} migration step(s) pending[/dim]")

    if plan.has_major_update:
        console.print(
            Panel(
                "This is a major database update. It may take a long time on large "
                f"databases; consider running it unattended with [bold]{UNATTENDED_HINT}[/bold].",
                border_style="yellow",
            )
        )

    if verbose and plan.queries:
        console.print("[dim]Queries to execute:[/dim]")
        for query in plan.queries:
            console.print(f"  [dim]{query}[/dim]")

    _show_warnings(plan.warnings)
    console.print()


def _show_warnings(warnings: list[str]) -> None:
    if warnings:
        console.print("[yellow]Warnings:[/yellow]")
        for warning in warnings:
            console.print(f"  [yellow]![/yellow] {warning}")


def _show_result(result: UpdateResult) -> None:
    applied = [
        name for name, component in result.component_results.items() if component.success
    ]
    if applied:
        console.print("[green]Components updated:[/green]")
        for name in applied:
            versions = ", ".join(result.component_results[name].applied_versions) or "-"
            console.print(f"  [green]✓[/green] {name} [dim]({versions})[/dim]")

    if result.skipped_components:
        console.print("[dim]Components not updated:[/dim]")
        for name in result.skipped_components:
            console.print(f"  [dim]○[/dim] {name}")

    _show_warnings(result.warnings)

    if result.errors:
        console.print("[red]Errors:[/red]")
        for error in result.errors:
            console.print(f"  [red]✗[/red] {error}")

    if result.deactivated_components:
        console.print("[red]Deactivated components:[/red]")
        for name in sorted(result.deactivated_components):
            console.print(f"  [red]-[/red] {name}")
        console.print(
            "[dim]Fix the problem, then run 'schema-updater reactivate <name>' "
            "and update again.[/dim]"
        )

    console.print()
    if result.core_error:
        console.print(
            "[bold red]Critical error: the core update failed.[/bold red] "
            "The system is not fully usable until the core is updated."
        )
    elif result.errors:
        console.print("[bold red]Update finished with errors.[/bold red]")
    elif result.can_auto_redirect:
        console.print("[bold green]Update complete![/bold green]")
    else:
        console.print("[bold green]Update complete[/bold green] [yellow](with warnings)[/yellow]")


def update(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show the update plan without applying anything"
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Unattended mode: execute without confirmation"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show queries and debug logging"
    ),
    root: Optional[Path] = typer.Option(None, "--root", help=ROOT_OPTION_HELP),
) -> None:
    """Apply pending core, plugin and dimension migrations.

    Discovers every component whose stored version is behind its migration
    steps, shows the plan, and applies it. The update lock is held from
    discovery to the end of the run.

    Examples:
        schema-updater update              # Show plan, confirm, apply
        schema-updater update --dry-run    # Plan only
        schema-updater update --yes        # Unattended
    """
    configure_logging(verbose, quiet=json_output)
    config = load_project_config(root)
    engine = MigrationEngine.from_config(config)
    unattended = yes or config.unattended or json_output

    try:
        with engine.session():
            outcome = engine.discover()
            if isinstance(outcome, UpToDate):
                if json_output:
                    print_json({"status": "up_to_date"})
                else:
                    console.print("[green]Everything is already up to date.[/green]")
                return

            plan = engine.plan_only(outcome)
            if dry_run:
                if json_output:
                    print_json({"status": "pending", "dry_run": True, "plan": plan.to_dict()})
                    return
                _show_plan(plan, verbose)
                console.print(
                    Panel("[yellow]DRY RUN[/yellow] - No changes were made", border_style="yellow")
                )
                return

            if not json_output:
                _show_plan(plan, verbose)

            if not unattended:
                proceed = typer.confirm(
                    f"Apply {plan.total_steps} migration step(s)?", default=True
                )
                if not proceed:
                    console.print("[yellow]Update cancelled.[/yellow]")
                    raise typer.Exit(0)

            result = engine.execute(outcome)
    except ConcurrentRunError as exc:
        if json_output:
            print_json({"status": "locked", "error": str(exc)})
        else:
            console.print(f"[yellow]{exc}[/yellow]")
        raise typer.Exit(1) from exc
    except DiscoveryError as exc:
        if json_output:
            print_json({"status": "failed", "error": str(exc)})
        else:
            console.print(f"[red]Error:[/red] Cannot discover pending updates: {exc}")
        raise typer.Exit(1) from exc
    except UpdaterConfigError as exc:
        if json_output:
            print_json({"status": "failed", "error": str(exc)})
        else:
            console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if json_output:
        payload = result.to_dict()
        payload["status"] = "success" if result.success else "failed"
        payload["plan"] = plan.to_dict()
        print_json(payload)
    else:
        console.print()
        _show_result(result)

    if not result.success:
        raise typer.Exit(1)
