"""Typer application for the schema-updater command line."""

from __future__ import annotations

import typer

from .commands import check_integrity, init, reactivate, status, update

app = typer.Typer(
    name="schema-updater",
    help="Apply ordered schema/data migrations to a core system and its plugins",
    add_completion=False,
    no_args_is_help=True,
)

app.command()(init)
app.command()(update)
app.command()(status)
app.command("check-integrity")(check_integrity)
app.command()(reactivate)


def main() -> None:
    app()


__all__ = ["app", "main"]
