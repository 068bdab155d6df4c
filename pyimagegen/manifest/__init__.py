"""Manifest module.

This module handles:
- Pydantic schemas for the project declaration and build targets
- Decoding pyproject.toml (PEP 621 or Poetry) into a ManifestSchema
"""

from pyimagegen.manifest.io import (
    TOOL_NAME,
    load_manifest,
    load_manifest_bytes,
    parse_manifest,
)
from pyimagegen.manifest.schema import (
    AddFileSchema,
    AuthorSchema,
    CopyFileSchema,
    IndexSchema,
    ManifestSchema,
    PoetrySchema,
    ProjectSchema,
    TargetSchema,
)

__all__ = [
    # Schema
    "AddFileSchema",
    "AuthorSchema",
    "CopyFileSchema",
    "IndexSchema",
    "ManifestSchema",
    "PoetrySchema",
    "ProjectSchema",
    "TargetSchema",
    # IO functions
    "TOOL_NAME",
    "load_manifest",
    "load_manifest_bytes",
    "parse_manifest",
]
