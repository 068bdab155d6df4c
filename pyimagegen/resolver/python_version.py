"""Interpreter version solving.

The project's ``requires-python`` constraint is evaluated with PEP 440
range syntax. An explicit candidate (from the target or a pin file) must
satisfy it; otherwise the newest entry of a fixed preference list that
satisfies it is chosen.
"""

from __future__ import annotations

import logging

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from pyimagegen.errors import InvalidVersionError, VersionMismatchError

logger = logging.getLogger(__name__)

# Descending preference; the first version satisfying the constraint wins
PREFERRED_PYTHON_VERSIONS = (
    "3.13",
    "3.12",
    "3.11",
    "3.10",
    "3.9",
    "3.8",
    "3.7",
    "3.6",
)


def _first_line(value: str) -> str:
    # Pin files may carry surrounding blank lines
    return next((line.strip() for line in value.splitlines() if line.strip()), "")


def _normalize_clause(clause: str) -> str:
    if clause.startswith("~>"):
        return "~=" + clause[2:].strip()
    if clause[:1].isdigit():
        return "==" + clause
    return clause


def parse_constraint(
    requires: str, target: str | None = None, field: str = "requires-python"
) -> SpecifierSet:
    """Parse a version constraint expression.

    A bare version (``3.11``) is treated as an exact match. An empty
    expression accepts every version.

    Args:
        requires: Constraint such as ``>=3.8,<3.12``.
        target: Target name, for error context.
        field: Manifest field, for error context.

    Returns:
        Parsed SpecifierSet.

    Raises:
        InvalidVersionError: If the constraint is malformed.
    """
    requires = _first_line(requires)
    clauses = [c.strip() for c in requires.split(",") if c.strip()]
    try:
        return SpecifierSet(",".join(_normalize_clause(c) for c in clauses))
    except InvalidSpecifier as e:
        raise InvalidVersionError(
            f"Invalid version constraint '{requires}': {e}",
            target=target,
            field=field,
        ) from e


def solve_python_version(
    requires: str,
    candidate: str = "",
    target: str | None = None,
    field: str = "python_version",
) -> str:
    """Pick the interpreter version for a build.

    Args:
        requires: The project's interpreter constraint.
        candidate: Explicit version to check instead of searching.
        target: Target name, for error context.
        field: Field the candidate came from, for error context.

    Returns:
        The chosen version string (the candidate itself when given).

    Raises:
        InvalidVersionError: If the constraint or candidate is malformed.
        VersionMismatchError: If no acceptable version satisfies the constraint.
    """
    constraint = parse_constraint(requires, target=target)
    candidate = _first_line(candidate)

    if candidate:
        try:
            version = Version(candidate)
        except InvalidVersion as e:
            raise InvalidVersionError(
                f"Version {candidate} is not valid: {e}",
                target=target,
                field=field,
            ) from e
        if not constraint.contains(version, prereleases=True):
            raise VersionMismatchError(
                f"Version {candidate} does not satisfy the constraint {requires.strip()}",
                target=target,
                field=field,
            )
        return candidate

    for preferred in PREFERRED_PYTHON_VERSIONS:
        if constraint.contains(Version(preferred)):
            logger.debug("Selected Python %s for constraint '%s'", preferred, requires)
            return preferred

    raise VersionMismatchError(
        f"No supported Python version satisfies the constraint {requires.strip()}",
        target=target,
        field="requires-python",
    )


__all__ = ["PREFERRED_PYTHON_VERSIONS", "parse_constraint", "solve_python_version"]
