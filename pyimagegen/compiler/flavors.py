"""Flavor-specific instruction syntax.

Each flavor fixes the base image tag, the package manager commands for
both stages (with the cache mounts the build stage uses), and the
commands that create the non-privileged runtime user.
"""

from __future__ import annotations

import shlex
from collections.abc import Iterable
from dataclasses import dataclass

from pyimagegen.errors import UnknownFlavorError
from pyimagegen.types import Flavor

NONROOT_UID = 65532
NONROOT_USER = "nonroot"
NONROOT_HOME = "/home/nonroot"


@dataclass(frozen=True)
class FlavorSyntax:
    """Package manager and user-creation syntax for a base-image family.

    Attributes:
        image_tag: Suffix of the python image tag (``3.11-<tag>``).
        cache_mounts: Package-manager cache mounts for the build stage.
        build_install: Build-stage install command (``{packages}`` placeholder).
        runtime_install: Runtime-stage install command, including cache cleanup.
        create_user: Command creating the non-privileged user and group.
    """

    image_tag: str
    cache_mounts: tuple[str, ...]
    build_install: str
    runtime_install: str
    create_user: str

    def build_packages(self, packages: Iterable[str]) -> str:
        """Return RUN arguments installing build-time packages."""
        command = self.build_install.format(packages=_join(packages))
        return " ".join([*self.cache_mounts, command])

    def runtime_packages(self, packages: Iterable[str]) -> str:
        """Return RUN arguments installing runtime packages."""
        return self.runtime_install.format(packages=_join(packages))


def _join(packages: Iterable[str]) -> str:
    return " ".join(shlex.quote(p) for p in packages)


# Apt and apk need exclusive access to their caches, so the mounts are
# locked: parallel builds sharing a cache wait for each other.
DEBIAN = FlavorSyntax(
    image_tag="slim",
    cache_mounts=(
        "--mount=type=cache,target=/var/cache/apt,sharing=locked",
        "--mount=type=cache,target=/var/lib/apt,sharing=locked",
    ),
    # docker-clean would empty the cache mount after every install
    build_install=(
        "rm -f /etc/apt/apt.conf.d/docker-clean && apt-get update && "
        "apt-get install -y --no-install-recommends {packages}"
    ),
    runtime_install=(
        "apt-get update && apt-get install -y --no-install-recommends {packages} "
        "&& rm -rf /var/lib/apt/lists/*"
    ),
    create_user=(
        f"useradd --uid={NONROOT_UID} --user-group --home-dir={NONROOT_HOME} "
        f"--create-home {NONROOT_USER}"
    ),
)

ALPINE = FlavorSyntax(
    image_tag="alpine",
    cache_mounts=("--mount=type=cache,target=/etc/apk/cache,sharing=locked",),
    build_install="apk add --update {packages}",
    runtime_install="apk add --no-cache {packages} && rm -rf /var/cache/apk/*",
    create_user=(
        f"addgroup -S -g {NONROOT_UID} {NONROOT_USER} && "
        f"adduser -S -D -u {NONROOT_UID} -G {NONROOT_USER} -h {NONROOT_HOME} "
        f"{NONROOT_USER}"
    ),
)

FLAVORS: dict[str, FlavorSyntax] = {
    Flavor.DEBIAN.value: DEBIAN,
    Flavor.ALPINE.value: ALPINE,
}


def get_flavor_syntax(flavor: str) -> FlavorSyntax:
    """Look up the syntax for a flavor.

    Raises:
        UnknownFlavorError: If the flavor is not supported.
    """
    syntax = FLAVORS.get(flavor)
    if syntax is None:
        raise UnknownFlavorError(flavor)
    return syntax


__all__ = [
    "ALPINE",
    "DEBIAN",
    "FLAVORS",
    "NONROOT_HOME",
    "NONROOT_UID",
    "NONROOT_USER",
    "FlavorSyntax",
    "get_flavor_syntax",
]
