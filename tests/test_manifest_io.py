"""Tests for manifest loading.

Covers TOML decoding, the [project]/[tool.poetry] choice, and target
validation errors with their manifest location.
"""

import pytest

from pyimagegen.errors import ManifestDecodeError
from pyimagegen.manifest.io import load_manifest, load_manifest_bytes, parse_manifest

PEP621_MANIFEST = b"""
[project]
name = "demo"
authors = [{name = "Jane Doe", email = "jane@example.com"}]
requires-python = ">=3.9"
dependencies = ["requests>=2"]

[project.optional-dependencies]
web = ["flask"]

[tool.pyimagegen.target.slim]
flavor = "debian"
entrypoint = ["demo"]

[tool.pyimagegen.target.alpine]
flavor = "alpine"
extras = ["web"]
"""

POETRY_MANIFEST = b"""
[tool.poetry]
name = "poetry-demo"
authors = ["Jane Doe <jane@example.com>"]

[tool.poetry.dependencies]
python = "^3.10"
requests = "^2.31"
"""


class TestLoadManifestBytes:
    """Test load_manifest_bytes function."""

    def test_pep621_manifest(self):
        """Should decode the project and all targets."""
        manifest = load_manifest_bytes(PEP621_MANIFEST)
        assert manifest.project.name == "demo"
        assert manifest.project.authors[0].email == "jane@example.com"
        assert manifest.target_names() == ["alpine", "slim"]
        assert manifest.targets["slim"].entrypoint == ("demo",)

    def test_poetry_manifest(self):
        """Should fall back to [tool.poetry] when [project] has no name."""
        manifest = load_manifest_bytes(POETRY_MANIFEST)
        assert manifest.project.name == "poetry-demo"
        assert manifest.project.requires_python == ">=3.10,<4.0"
        assert manifest.targets == {}

    def test_invalid_toml(self):
        """Should raise ManifestDecodeError for malformed TOML."""
        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest_bytes(b"[project\nname = ")
        assert "not valid TOML" in str(exc_info.value)
        assert exc_info.value.code == "manifest_decode"

    def test_invalid_utf8(self):
        """Should raise ManifestDecodeError for non UTF-8 content."""
        with pytest.raises(ManifestDecodeError):
            load_manifest_bytes(b"\xff\xfe")

    def test_missing_name(self):
        """Should require a project name."""
        with pytest.raises(ManifestDecodeError) as exc_info:
            load_manifest_bytes(b'[project]\ndependencies = ["requests"]\n')
        assert exc_info.value.field == "project.name"


class TestParseManifest:
    """Test parse_manifest function."""

    def test_target_error_location(self):
        """Should report the failing target field with its full location."""
        data = {
            "project": {"name": "demo"},
            "tool": {"pyimagegen": {"target": {"bad": {"unknown": 1}}}},
        }
        with pytest.raises(ManifestDecodeError) as exc_info:
            parse_manifest(data)
        assert exc_info.value.field == "tool.pyimagegen.target.bad.unknown"

    def test_target_must_be_table(self):
        """Should reject a target that is not a table."""
        data = {"project": {"name": "demo"}, "tool": {"pyimagegen": {"target": {"bad": 1}}}}
        with pytest.raises(ManifestDecodeError):
            parse_manifest(data)

    def test_poetry_path_dependency(self):
        """Should surface unsupported Poetry dependencies as decode errors."""
        data = {
            "tool": {
                "poetry": {"name": "demo", "dependencies": {"lib": {"path": "../lib"}}}
            }
        }
        with pytest.raises(ManifestDecodeError) as exc_info:
            parse_manifest(data)
        assert exc_info.value.field == "tool.poetry"


class TestLoadManifest:
    """Test load_manifest function."""

    def test_load_from_file(self, tmp_path):
        """Should load a manifest from disk."""
        path = tmp_path / "pyproject.toml"
        path.write_bytes(PEP621_MANIFEST)
        assert load_manifest(path).project.name == "demo"

    def test_missing_file(self, tmp_path):
        """Should raise FileNotFoundError for a missing manifest."""
        with pytest.raises(FileNotFoundError):
            load_manifest(tmp_path / "missing.toml")
