"""Tests for platform parsing."""

from unittest.mock import patch

import pytest

from pyimagegen.builds.platforms import (
    Platform,
    host_platform,
    parse_platform,
    parse_platforms,
)
from pyimagegen.errors import PlatformParseError


class TestParsePlatform:
    """Test parse_platform function."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("linux/amd64", "linux/amd64"),
            ("linux/x86_64", "linux/amd64"),
            ("linux/aarch64", "linux/arm64"),
            ("linux/arm64/v8", "linux/arm64"),
            ("linux/arm", "linux/arm/v7"),
            ("linux/armhf", "linux/arm/v7"),
            ("linux/armel", "linux/arm/v6"),
            ("linux/arm/6", "linux/arm/v6"),
            ("linux/i686", "linux/386"),
            ("Linux/AMD64", "linux/amd64"),
            ("arm64", "linux/arm64"),
        ],
    )
    def test_normalisation(self, value, expected):
        """Should normalise aliases into canonical identifiers."""
        assert parse_platform(value).format() == expected

    def test_variant_kept(self):
        """Should keep variants that are meaningful."""
        platform = parse_platform("linux/arm/v5")
        assert platform == Platform("linux", "arm", "v5")
        assert platform.to_dict() == {"os": "linux", "architecture": "arm", "variant": "v5"}

    @pytest.mark.parametrize("value", ["", "linux/arm/v7/extra", "linux/a b", "linux//amd64"])
    def test_malformed(self, value):
        """Should reject malformed specifiers."""
        with pytest.raises(PlatformParseError):
            parse_platform(value)


class TestParsePlatforms:
    """Test parse_platforms function."""

    def test_comma_list(self):
        """Should split a comma list, preserving order."""
        platforms = parse_platforms("linux/arm64, linux/amd64")
        assert [p.format() for p in platforms] == ["linux/arm64", "linux/amd64"]

    def test_empty(self):
        """Empty directives should yield no platforms."""
        assert parse_platforms("") == []
        assert parse_platforms(None) == []

    def test_duplicates_dropped(self):
        """Equivalent spellings should be built once."""
        platforms = parse_platforms("linux/amd64,linux/x86_64,")
        assert [p.format() for p in platforms] == ["linux/amd64"]


class TestHostPlatform:
    """Test host_platform function."""

    def test_normalises_machine(self):
        """Should normalise the machine architecture."""
        with (
            patch("pyimagegen.builds.platforms.host.system", return_value="Linux"),
            patch("pyimagegen.builds.platforms.host.machine", return_value="aarch64"),
        ):
            assert host_platform().format() == "linux/arm64"
