"""Target platform parsing and normalisation.

Platform identifiers use the ``os/architecture[/variant]`` form
(``linux/amd64``, ``linux/arm/v7``). Common architecture aliases are
normalised so that equivalent spellings produce the same identifier.
"""

from __future__ import annotations

import logging
import platform as host
import re
from dataclasses import dataclass

from pyimagegen.errors import PlatformParseError

logger = logging.getLogger(__name__)

KNOWN_OS = frozenset({"linux", "windows", "darwin", "freebsd"})
COMPONENT_PATTERN = re.compile(r"^[a-z0-9_.-]+$")

# alias -> (architecture, default variant)
ARCH_ALIASES: dict[str, tuple[str, str]] = {
    "x86_64": ("amd64", ""),
    "x86-64": ("amd64", ""),
    "aarch64": ("arm64", ""),
    "armhf": ("arm", "v7"),
    "armel": ("arm", "v6"),
    "i386": ("386", ""),
    "i486": ("386", ""),
    "i586": ("386", ""),
    "i686": ("386", ""),
}


@dataclass(frozen=True)
class Platform:
    """A build target platform.

    Attributes:
        os: Operating system (``linux``).
        architecture: CPU architecture (``amd64``, ``arm64``, ``arm``).
        variant: Optional architecture variant (``v7``).
    """

    os: str
    architecture: str
    variant: str = ""

    def format(self) -> str:
        """Return the platform identifier string."""
        parts = [self.os, self.architecture]
        if self.variant:
            parts.append(self.variant)
        return "/".join(parts)

    def to_dict(self) -> dict[str, str]:
        result = {"os": self.os, "architecture": self.architecture}
        if self.variant:
            result["variant"] = self.variant
        return result

    def __str__(self) -> str:
        return self.format()


def normalize_architecture(architecture: str, variant: str = "") -> tuple[str, str]:
    """Normalise an architecture and variant pair.

    Returns:
        Tuple of (architecture, variant).
    """
    architecture, default_variant = ARCH_ALIASES.get(architecture, (architecture, ""))
    variant = variant or default_variant
    if variant.isdigit():
        variant = f"v{variant}"

    if architecture == "arm64" and variant == "v8":
        variant = ""
    elif architecture == "amd64" and variant == "v1":
        variant = ""
    elif architecture == "arm" and not variant:
        variant = "v7"
    return architecture, variant


def parse_platform(value: str) -> Platform:
    """Parse a platform specifier.

    Accepts ``os/arch[/variant]``. A single component is read as an
    operating system (host architecture) when it names one, otherwise as
    a linux architecture.

    Args:
        value: Platform specifier.

    Returns:
        Normalised platform.

    Raises:
        PlatformParseError: If the specifier is malformed.
    """
    text = value.strip().lower()
    if not text:
        raise PlatformParseError(value, "empty platform specifier")

    parts = text.split("/")
    if len(parts) > 3:
        raise PlatformParseError(value, "expected os/architecture[/variant]")
    for part in parts:
        if not COMPONENT_PATTERN.match(part):
            raise PlatformParseError(value, f"invalid component '{part}'")

    if len(parts) == 1:
        if parts[0] in KNOWN_OS:
            os_name, (arch, variant) = parts[0], normalize_architecture(host.machine().lower())
        else:
            os_name, (arch, variant) = "linux", normalize_architecture(parts[0])
        return Platform(os=os_name, architecture=arch, variant=variant)

    os_name = parts[0]
    arch, variant = normalize_architecture(parts[1], parts[2] if len(parts) == 3 else "")
    return Platform(os=os_name, architecture=arch, variant=variant)


def parse_platforms(directive: str | None) -> list[Platform]:
    """Parse a comma-separated platform directive.

    Empty entries are skipped and duplicates (after normalisation) are
    dropped, keeping the first occurrence.

    Raises:
        PlatformParseError: If any entry is malformed.
    """
    if not directive:
        return []
    platforms: dict[str, Platform] = {}
    for entry in directive.split(","):
        if not entry.strip():
            continue
        parsed = parse_platform(entry)
        if parsed.format() in platforms:
            logger.warning("Ignoring duplicate platform %s", parsed.format())
            continue
        platforms[parsed.format()] = parsed
    return list(platforms.values())


def host_platform() -> Platform:
    """Return the platform of the local machine."""
    arch, variant = normalize_architecture(host.machine().lower())
    return Platform(os=host.system().lower() or "linux", architecture=arch, variant=variant)


__all__ = [
    "Platform",
    "host_platform",
    "normalize_architecture",
    "parse_platform",
    "parse_platforms",
]
