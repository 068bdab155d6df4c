"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from pyimagegen.config import Settings, get_settings, print_settings_json


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)

        assert settings.manifest_filename == "pyproject.toml"
        assert settings.target is None
        assert settings.platforms is None
        assert settings.max_parallel_platforms is None
        assert settings.log_level == "INFO"
        assert settings.docker_binary == "docker"
        assert settings.build_timeout == 3600
        assert settings.log_dir.parts[-2:] == ("pyimagegen", "logs")

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "PYIMAGEGEN_TARGET": "slim",
                "PYIMAGEGEN_PLATFORMS": "linux/amd64,linux/arm64",
                "PYIMAGEGEN_MAX_PARALLEL_PLATFORMS": "2",
                "PYIMAGEGEN_LOG_LEVEL": "DEBUG",
            },
        ):
            settings = Settings(_env_file=None)
            assert settings.target == "slim"
            assert settings.platforms == "linux/amd64,linux/arm64"
            assert settings.max_parallel_platforms == 2
            assert settings.log_level == "DEBUG"

    def test_log_dir_from_env(self) -> None:
        """Log dir should be configurable via env."""
        with patch.dict(os.environ, {"PYIMAGEGEN_LOG_DIR": "/tmp/pyimagegen-logs"}):
            settings = Settings(_env_file=None)
            assert settings.log_dir == Path("/tmp/pyimagegen-logs")

    def test_build_timeout_lower_bound(self) -> None:
        """Build timeouts under a minute should be rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, build_timeout=10)

    def test_max_parallel_platforms_positive(self) -> None:
        """A zero worker count should be rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_parallel_platforms=0)


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        settings = get_settings()
        assert isinstance(settings, Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings(_env_file=None)))

        assert "manifest_filename" in parsed
        assert "platforms" in parsed
        assert "build_timeout" in parsed
        assert "log_dir" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "docker_binary" in parsed
