"""Frontend entry: from engine options to a finished build.

The pipeline reads the manifest through the build context, resolves the
selected target, compiles the script, and orchestrates the platform
builds. Options use the engine's frontend conventions:

- ``filename``: manifest file name (default ``pyproject.toml``)
- ``build-arg:<NAME>``: build arguments; ``PYIMAGEGEN_TARGET`` selects the target
- ``label:<KEY>``: extra image labels
- ``platform``: comma-separated target platforms
- ``cache-imports`` / ``cache-from``: cache sources
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from pyimagegen.builds.cache import parse_cache_imports
from pyimagegen.builds.context import BuildContext
from pyimagegen.builds.engine import BuildEngine, ConvertOptions
from pyimagegen.builds.orchestrator import BuildResult, run_platform_builds
from pyimagegen.builds.platforms import parse_platforms
from pyimagegen.compiler import compile_script
from pyimagegen.errors import ContextReadError, ImageGenError
from pyimagegen.manifest.io import load_manifest_bytes
from pyimagegen.resolver.service import resolve_config

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST = "pyproject.toml"
FILENAME_KEY = "filename"
PLATFORM_KEY = "platform"
BUILD_ARG_PREFIX = "build-arg:"
LABEL_PREFIX = "label:"
TARGET_BUILD_ARG = "PYIMAGEGEN_TARGET"


def filter_options(options: Mapping[str, str], prefix: str) -> dict[str, str]:
    """Return the options under a prefix, with the prefix removed."""
    return {k[len(prefix) :]: v for k, v in options.items() if k.startswith(prefix)}


def target_from_build_args(build_args: Mapping[str, str]) -> str:
    """Return the target selected by build argument (case-insensitive name)."""
    for key, value in build_args.items():
        if key.upper() == TARGET_BUILD_ARG:
            return value
    return ""


@contextmanager
def operation(name: str) -> Iterator[None]:
    """Tag errors raised inside the block with the failing operation."""
    try:
        yield
    except ImageGenError as e:
        e.details.setdefault("operation", name)
        logger.error("%s failed: %s", name, e)
        raise
    except OSError as e:
        logger.error("%s failed: %s", name, e)
        error = ContextReadError(f"{name} failed: {e}", path=str(e.filename or ""))
        error.details["operation"] = name
        raise error from e


def build(
    engine: BuildEngine,
    context: BuildContext,
    options: Mapping[str, str],
    max_workers: int | None = None,
) -> BuildResult:
    """Run the full build pipeline.

    Args:
        engine: Build engine.
        context: Build context the manifest and auxiliary files are read from.
        options: Frontend options.
        max_workers: Maximum concurrent platform builds.

    Returns:
        Aggregate build result.

    Raises:
        ImageGenError: If any step fails; ``details["operation"]`` names it.
    """
    filename = options.get(FILENAME_KEY) or DEFAULT_MANIFEST
    build_args = filter_options(options, BUILD_ARG_PREFIX)
    labels = filter_options(options, LABEL_PREFIX)

    with operation("parse options"):
        platforms = parse_platforms(options.get(PLATFORM_KEY))
        cache_imports = parse_cache_imports(options)

    with operation("read manifest"):
        manifest = load_manifest_bytes(context.read_manifest(filename))

    with operation("resolve configuration"):
        config = resolve_config(
            manifest,
            target=target_from_build_args(build_args),
            read_pinned_version=context.read_pinned_interpreter_version,
            read_lock_file=context.read_dependency_lock_file,
        )

    with operation("compile script"):
        script = compile_script(config, build_args)

    with operation("read ignore patterns"):
        excludes = tuple(context.read_ignore_patterns())

    workers = ()
    if not platforms:
        with operation("query workers"):
            workers = tuple(engine.worker_platforms())

    convert_options = ConvertOptions(
        build_args=build_args,
        labels=labels,
        excludes=excludes,
        build_platforms=workers,
    )
    with operation("build"):
        return run_platform_builds(
            script,
            engine,
            target_platforms=platforms,
            cache_imports=cache_imports,
            options=convert_options,
            max_workers=max_workers,
        )


__all__ = [
    "BUILD_ARG_PREFIX",
    "DEFAULT_MANIFEST",
    "LABEL_PREFIX",
    "TARGET_BUILD_ARG",
    "build",
    "filter_options",
    "operation",
    "target_from_build_args",
]
