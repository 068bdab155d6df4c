"""Shared type definitions for pyimagegen.

This module contains enums and small dataclasses shared across
subpackages to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class Flavor(str, Enum):
    """Base-image family; selects package manager and user-creation syntax."""

    DEBIAN = "debian"
    ALPINE = "alpine"


DEFAULT_FLAVOR = Flavor.DEBIAN


class Stage(str, Enum):
    """Stage of the compiled build script."""

    BUILD = "builder"
    RUNTIME = "runtime"


class ExportFormat(str, Enum):
    """Output format for exported configurations."""

    JSON = "json"
    YAML = "yaml"


@dataclass(frozen=True)
class CacheImport:
    """A cache source the build engine may import layers from."""

    type: str
    attrs: dict[str, str] = field(default_factory=dict)


__all__ = [
    "DEFAULT_FLAVOR",
    "CacheImport",
    "ExportFormat",
    "Flavor",
    "Stage",
]
