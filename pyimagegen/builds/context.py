"""Build context access.

The frontend reads four things from the build context: the manifest,
the pinned interpreter version, an optional dependency lock file, and
the ignore patterns. BuildContext is the interface; LocalContext reads
them from a directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from pyimagegen.errors import ContextReadError, LockFileError

logger = logging.getLogger(__name__)

PINNED_VERSION_FILE = ".python-version"
IGNORE_FILE = ".dockerignore"


@runtime_checkable
class BuildContext(Protocol):
    """Read access to the files of a build context."""

    def read_manifest(self, filename: str) -> bytes: ...

    def read_pinned_interpreter_version(self) -> str: ...

    def read_dependency_lock_file(self, path: str) -> list[str]: ...

    def read_ignore_patterns(self) -> list[str]: ...


class LocalContext:
    """A build context backed by a local directory.

    Args:
        root: Context directory.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def _path(self, relative: str) -> Path:
        path = (self.root / relative).resolve()
        if not path.is_relative_to(self.root):
            raise ContextReadError(
                f"Path {relative} escapes the build context {self.root}", path=relative
            )
        return path

    def _read_optional(self, relative: str) -> str:
        path = self._path(relative)
        if not path.is_file():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ContextReadError(f"Failed to read {relative}: {e}", path=relative) from e

    def read_manifest(self, filename: str) -> bytes:
        """Read the manifest file.

        Raises:
            ContextReadError: If the file is missing, unreadable, or outside the context.
        """
        path = self._path(filename)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ContextReadError(
                f"Manifest {filename} not found in {self.root}", path=filename
            ) from e
        except OSError as e:
            raise ContextReadError(f"Failed to read {filename}: {e}", path=filename) from e

    def read_pinned_interpreter_version(self) -> str:
        """Return the content of .python-version, or "" when absent."""
        return self._read_optional(PINNED_VERSION_FILE)

    def read_dependency_lock_file(self, path: str) -> list[str]:
        """Read the lines of a dependency lock file.

        Raises:
            LockFileError: If the file is missing, unreadable, or outside the context.
        """
        try:
            target = self._path(path)
        except ContextReadError as e:
            raise LockFileError(str(e), path=path) from e
        try:
            return target.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError as e:
            raise LockFileError(f"Lock file {path} not found in {self.root}", path=path) from e
        except (OSError, UnicodeDecodeError) as e:
            raise LockFileError(f"Failed to read lock file {path}: {e}", path=path) from e

    def read_ignore_patterns(self) -> list[str]:
        """Return .dockerignore patterns without blank lines or comments."""
        patterns = []
        for line in self._read_optional(IGNORE_FILE).splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                patterns.append(line)
        logger.debug("Read %d ignore patterns", len(patterns))
        return patterns


__all__ = ["IGNORE_FILE", "PINNED_VERSION_FILE", "BuildContext", "LocalContext"]
