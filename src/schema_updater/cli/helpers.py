"""Shared console, logging and project helpers for CLI commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from schema_updater.config import UpdaterConfig, UpdaterConfigError, load_config, resolve_project_root

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route library logging through rich on stderr.

    *quiet* silences everything below CRITICAL (used with --json).
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, RichHandler):
            root_logger.removeHandler(handler)
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    if quiet:
        level = logging.CRITICAL
    else:
        level = logging.DEBUG if verbose else logging.WARNING
    root_logger.setLevel(level)
    logging.getLogger("schema_updater").setLevel(level)


def print_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def load_project_config(root: Optional[Path]) -> UpdaterConfig:
    """Resolve the project and load its config, exiting with a message on failure."""
    try:
        project_root = resolve_project_root(root)
        return load_config(project_root)
    except UpdaterConfigError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc


ROOT_OPTION_HELP = "Project root containing .updater/ (defaults to the nearest parent of the cwd)"
