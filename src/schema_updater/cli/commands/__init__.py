"""CLI command modules for schema-updater."""

from .components import check_integrity, init, reactivate, status
from .update import update

__all__ = ["check_integrity", "init", "reactivate", "status", "update"]
