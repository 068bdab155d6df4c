"""Tests for placeholder expansion."""

import pytest

from pyimagegen.compiler.expand import expand_placeholders
from pyimagegen.errors import PlaceholderError

ARGS = {"VERSION": "1.2.3", "EMPTY": "", "NAME": "demo"}


class TestExpandPlaceholders:
    """Test expand_placeholders function."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("plain", "plain"),
            ("$VERSION", "1.2.3"),
            ("v${VERSION}-final", "v1.2.3-final"),
            ("$MISSING", ""),
            ("${MISSING:-fallback}", "fallback"),
            ("${EMPTY:-fallback}", "fallback"),
            ("${EMPTY-fallback}", ""),
            ("${MISSING-fallback}", "fallback"),
            ("${VERSION:+set}", "set"),
            ("${EMPTY:+set}", ""),
            ("${EMPTY+set}", "set"),
            ("${MISSING+set}", ""),
            ("${MISSING:-${NAME}}", "demo"),
            ("cost \\$5", "cost $5"),
            ("trailing $", "trailing $"),
            ("$1", "$1"),
        ],
    )
    def test_forms(self, value, expected):
        """Should expand each supported form."""
        assert expand_placeholders(value, ARGS) == expected

    def test_unterminated(self):
        """An unterminated placeholder should raise PlaceholderError."""
        with pytest.raises(PlaceholderError):
            expand_placeholders("${VERSION", ARGS)

    def test_unsupported_operator(self):
        """Unsupported operators should raise PlaceholderError."""
        with pytest.raises(PlaceholderError) as exc_info:
            expand_placeholders("${VERSION%%.*}", ARGS)
        assert exc_info.value.code == "placeholder"
