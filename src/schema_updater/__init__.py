"""schema-updater: ordered schema/data migrations for a core system and its plugins."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("schema-updater")
except PackageNotFoundError:
    __version__ = "0.0.0"
