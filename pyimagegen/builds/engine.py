"""Build engine interface.

The orchestrator drives any object satisfying BuildEngine: it converts
a compiled script into an engine-specific build definition for one
target platform, then solves that definition into an image reference.
All calls for one multi-platform build share a CancelScope.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, runtime_checkable

from pyimagegen.builds.platforms import Platform
from pyimagegen.compiler.script import CompiledScript
from pyimagegen.errors import BuildCancelledError
from pyimagegen.types import CacheImport


class CancelScope:
    """Shared cancellation token for the platform builds of one request."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "") -> None:
        """Cancel the scope. Only the first reason is kept."""
        with self._lock:
            if not self._event.is_set():
                self.reason = reason
                self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout; return True if cancelled."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self, platform: str) -> None:
        """Raise BuildCancelledError if the scope has been cancelled."""
        if self._event.is_set():
            raise BuildCancelledError(platform)


@dataclass(frozen=True)
class ConvertOptions:
    """Options for converting a script into a build definition.

    Attributes:
        build_args: Build arguments passed to the engine.
        labels: Extra image labels.
        excludes: Context ignore patterns.
        build_platforms: Platforms the workers can build on.
        target_platform: Platform this conversion targets.
        multi_platform: Whether the build produces several platforms.
    """

    build_args: Mapping[str, str] = field(default_factory=dict)
    labels: Mapping[str, str] = field(default_factory=dict)
    excludes: tuple[str, ...] = ()
    build_platforms: tuple[Platform, ...] = ()
    target_platform: Platform | None = None
    multi_platform: bool = False

    def for_platform(self, platform: Platform, multi_platform: bool) -> ConvertOptions:
        return replace(self, target_platform=platform, multi_platform=multi_platform)


@dataclass(frozen=True)
class Conversion:
    """Result of converting a script for one platform.

    Attributes:
        definition: Engine-specific build definition.
        image_config: Serialised image configuration.
        build_info: Serialised build provenance, if the engine produces it.
    """

    definition: Any
    image_config: bytes = b""
    build_info: bytes = b""


@dataclass(frozen=True)
class Solution:
    """Result of solving a build definition.

    Attributes:
        ref: Reference of the built image.
        image_config: Image configuration reported by the engine, if any.
        build_info: Build provenance reported by the engine, if any.
    """

    ref: str
    image_config: bytes = b""
    build_info: bytes = b""


@runtime_checkable
class BuildEngine(Protocol):
    """Interface of an external build engine."""

    def worker_platforms(self) -> Sequence[Platform]:
        """Return the platforms the engine's workers build on, best first."""
        ...

    def convert(
        self,
        script: CompiledScript,
        options: ConvertOptions,
        cancel: CancelScope,
    ) -> Conversion:
        """Convert a script into a build definition for options.target_platform."""
        ...

    def solve(
        self,
        definition: Any,
        cache_imports: Sequence[CacheImport],
        cancel: CancelScope,
    ) -> Solution:
        """Build a definition and return its reference.

        Image config and build info in the solution replace the ones from
        the conversion when present.
        """
        ...


__all__ = ["BuildEngine", "CancelScope", "Conversion", "ConvertOptions", "Solution"]
