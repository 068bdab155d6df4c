"""Manifest loading.

This module decodes a pyproject.toml and validates it into a
ManifestSchema. TOML decoding is delegated to ``tomllib``; every
decode or validation failure is reported as a ManifestDecodeError
naming the offending field.
"""

import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pyimagegen.errors import ManifestDecodeError
from pyimagegen.manifest.schema import (
    ManifestSchema,
    PoetrySchema,
    ProjectSchema,
    TargetSchema,
)

logger = logging.getLogger(__name__)

# Table holding the build targets: [tool.pyimagegen.target.<name>]
TOOL_NAME = "pyimagegen"


def _decode_error(prefix: str, exc: ValidationError) -> ManifestDecodeError:
    """Convert the first pydantic error into a ManifestDecodeError."""
    first = exc.errors()[0]
    location = ".".join(str(p) for p in (prefix, *first["loc"]))
    return ManifestDecodeError(f"{location}: {first['msg']}", field=location)


def _table(data: Mapping[str, Any], key: str, location: str) -> Mapping[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, Mapping):
        raise ManifestDecodeError(f"{location} must be a table", field=location)
    return value


def parse_project(data: Mapping[str, Any]) -> ProjectSchema:
    """Parse the project declaration.

    ``[project]`` is used when it declares a name; otherwise the
    declaration is taken from ``[tool.poetry]``.

    Args:
        data: Decoded pyproject.toml content.

    Returns:
        Validated ProjectSchema instance.

    Raises:
        ManifestDecodeError: If no valid project declaration exists.
    """
    project = _table(data, "project", "project")
    if project.get("name"):
        try:
            return ProjectSchema.model_validate(project)
        except ValidationError as e:
            raise _decode_error("project", e) from e

    poetry = _table(_table(data, "tool", "tool"), "poetry", "tool.poetry")
    if poetry:
        try:
            return PoetrySchema.model_validate(poetry).to_project()
        except ValidationError as e:
            raise _decode_error("tool.poetry", e) from e
        except ValueError as e:
            raise ManifestDecodeError(
                f"tool.poetry: {e}", field="tool.poetry"
            ) from e

    raise ManifestDecodeError("project.name is required", field="project.name")


def parse_targets(data: Mapping[str, Any]) -> dict[str, TargetSchema]:
    """Parse the named build targets.

    Args:
        data: Decoded pyproject.toml content.

    Returns:
        Mapping of target name to validated TargetSchema.

    Raises:
        ManifestDecodeError: If a target fails validation.
    """
    tool = _table(_table(data, "tool", "tool"), TOOL_NAME, f"tool.{TOOL_NAME}")
    location = f"tool.{TOOL_NAME}.target"
    raw_targets = _table(tool, "target", location)

    targets: dict[str, TargetSchema] = {}
    for name, raw in raw_targets.items():
        if not isinstance(raw, Mapping):
            raise ManifestDecodeError(
                f"{location}.{name} must be a table", field=f"{location}.{name}"
            )
        try:
            targets[name] = TargetSchema.model_validate(raw)
        except ValidationError as e:
            raise _decode_error(f"{location}.{name}", e) from e
    return targets


def parse_manifest(data: Mapping[str, Any]) -> ManifestSchema:
    """Parse and validate decoded manifest data.

    Args:
        data: Decoded pyproject.toml content.

    Returns:
        Validated ManifestSchema instance.

    Raises:
        ManifestDecodeError: If the data does not match the schema.
    """
    manifest = ManifestSchema(project=parse_project(data), targets=parse_targets(data))
    logger.debug(
        "Parsed manifest for %s with %d target(s)",
        manifest.project.name,
        len(manifest.targets),
    )
    return manifest


def load_manifest_bytes(content: bytes) -> ManifestSchema:
    """Decode and validate a manifest from raw bytes.

    Args:
        content: Raw pyproject.toml content.

    Returns:
        Validated ManifestSchema instance.

    Raises:
        ManifestDecodeError: If the content is not valid UTF-8 TOML or
            does not match the schema.
    """
    try:
        data = tomllib.loads(content.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ManifestDecodeError(f"manifest is not valid UTF-8: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ManifestDecodeError(f"manifest is not valid TOML: {e}") from e
    return parse_manifest(data)


def load_manifest(path: Path) -> ManifestSchema:
    """Load and validate a manifest from a file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ManifestDecodeError: If the file is not a valid manifest.
    """
    return load_manifest_bytes(path.read_bytes())


__all__ = [
    "TOOL_NAME",
    "load_manifest",
    "load_manifest_bytes",
    "parse_manifest",
    "parse_project",
    "parse_targets",
]
