"""Parallel multi-platform build orchestration.

One task per target platform runs on a thread pool. Every task shares
one CancelScope: the first task to fail (in completion order) cancels
the scope, queued tasks never start, and the orchestrator waits for
in-flight tasks to return before raising. A failed build yields no
partial result.

Results land in a slot list indexed by input order, so the aggregate
result is independent of completion order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from pyimagegen.builds.engine import BuildEngine, CancelScope, ConvertOptions
from pyimagegen.builds.platforms import Platform, host_platform
from pyimagegen.compiler.script import CompiledScript
from pyimagegen.errors import BuildCancelledError, PlatformBuildError
from pyimagegen.types import CacheImport

logger = logging.getLogger(__name__)

IMAGE_CONFIG_KEY = "containerimage.config"
BUILD_INFO_KEY = "containerimage.buildinfo"
PLATFORMS_KEY = "refs.platforms"


@dataclass
class BuildResult:
    """Aggregate result of a build.

    Attributes:
        metadata: Metadata entries (image config, build info, platform list).
        refs: Per-platform references, keyed by platform id (multi-platform).
        ref: The single reference (single-platform).
    """

    metadata: dict[str, bytes] = field(default_factory=dict)
    refs: dict[str, str] = field(default_factory=dict)
    ref: str | None = None

    def add_meta(self, key: str, value: bytes) -> None:
        self.metadata[key] = value

    def add_ref(self, platform_id: str, ref: str) -> None:
        self.refs[platform_id] = ref

    def set_ref(self, ref: str) -> None:
        self.ref = ref

    def platforms(self) -> list[dict[str, object]]:
        """Return the decoded platform list of a multi-platform result."""
        raw = self.metadata.get(PLATFORMS_KEY)
        return json.loads(raw) if raw else []


@dataclass(frozen=True)
class PlatformBuildResult:
    """Outcome of one platform's build."""

    platform: Platform
    ref: str
    image_config: bytes = b""
    build_info: bytes = b""


def default_platform(engine: BuildEngine) -> Platform:
    """Return the engine's preferred platform, falling back to the host."""
    workers = engine.worker_platforms()
    return workers[0] if workers else host_platform()


def build_platform(
    script: CompiledScript,
    engine: BuildEngine,
    platform: Platform,
    options: ConvertOptions,
    cache_imports: Sequence[CacheImport],
    cancel: CancelScope,
) -> PlatformBuildResult:
    """Convert and solve the script for one platform.

    Raises:
        PlatformBuildError: If conversion or solving fails, naming the step.
        BuildCancelledError: If the scope was cancelled before a step began.
    """
    platform_id = platform.format()

    cancel.raise_if_cancelled(platform_id)
    try:
        conversion = engine.convert(script, options, cancel)
    except BuildCancelledError:
        raise
    except Exception as e:
        raise PlatformBuildError(platform_id, "convert", e) from e

    cancel.raise_if_cancelled(platform_id)
    try:
        solution = engine.solve(conversion.definition, cache_imports, cancel)
    except BuildCancelledError:
        raise
    except Exception as e:
        raise PlatformBuildError(platform_id, "solve", e) from e

    logger.info("Built platform %s: %s", platform_id, solution.ref)
    return PlatformBuildResult(
        platform=platform,
        ref=solution.ref,
        image_config=solution.image_config or conversion.image_config,
        build_info=solution.build_info or conversion.build_info,
    )


def aggregate_results(results: Sequence[PlatformBuildResult], multi_platform: bool) -> BuildResult:
    """Combine per-platform results, in input order, into one BuildResult."""
    result = BuildResult()

    if not multi_platform:
        only = results[0]
        result.add_meta(IMAGE_CONFIG_KEY, only.image_config)
        if only.build_info:
            result.add_meta(BUILD_INFO_KEY, only.build_info)
        result.set_ref(only.ref)
        return result

    entries = []
    for item in results:
        platform_id = item.platform.format()
        result.add_meta(f"{IMAGE_CONFIG_KEY}/{platform_id}", item.image_config)
        if item.build_info:
            result.add_meta(f"{BUILD_INFO_KEY}/{platform_id}", item.build_info)
        result.add_ref(platform_id, item.ref)
        entries.append({"id": platform_id, "platform": item.platform.to_dict()})
    result.add_meta(PLATFORMS_KEY, json.dumps(entries).encode("utf-8"))
    return result


def run_platform_builds(
    script: CompiledScript,
    engine: BuildEngine,
    target_platforms: Sequence[Platform] = (),
    cache_imports: Sequence[CacheImport] = (),
    options: ConvertOptions | None = None,
    max_workers: int | None = None,
) -> BuildResult:
    """Build the script for every target platform in parallel.

    Args:
        script: Compiled build script.
        engine: Build engine.
        target_platforms: Platforms to build; empty builds the default platform.
        cache_imports: Cache sources passed to every solve.
        options: Base conversion options.
        max_workers: Maximum concurrent platform builds (None = one per platform).

    Returns:
        Aggregate build result.

    Raises:
        PlatformBuildError: If any platform's build fails.
    """
    platforms = list(target_platforms) or [default_platform(engine)]
    multi_platform = len(platforms) > 1
    options = options or ConvertOptions()
    cancel = CancelScope()
    slots: list[PlatformBuildResult | None] = [None] * len(platforms)

    workers = min(max_workers or len(platforms), len(platforms))
    logger.info(
        "Building %d platform(s) with %d worker(s): %s",
        len(platforms),
        workers,
        ", ".join(p.format() for p in platforms),
    )

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pyimagegen-build")
    futures: dict[Future[PlatformBuildResult], int] = {
        pool.submit(
            build_platform,
            script,
            engine,
            platform,
            options.for_platform(platform, multi_platform),
            cache_imports,
            cancel,
        ): index
        for index, platform in enumerate(platforms)
    }
    index: int | None = None
    try:
        for future in as_completed(futures):
            index = futures[future]
            slots[index] = future.result()
    except BaseException as e:
        cancel.cancel(str(e))
        pool.shutdown(wait=True, cancel_futures=True)
        logger.error("Multi-platform build failed: %s", e)
        if index is not None and isinstance(e, Exception) and not isinstance(e, PlatformBuildError):
            raise PlatformBuildError(platforms[index].format(), "build", e) from e
        raise
    pool.shutdown(wait=True)

    results = [slot for slot in slots if slot is not None]
    return aggregate_results(results, multi_platform)


__all__ = [
    "BUILD_INFO_KEY",
    "IMAGE_CONFIG_KEY",
    "PLATFORMS_KEY",
    "BuildResult",
    "PlatformBuildResult",
    "aggregate_results",
    "build_platform",
    "default_platform",
    "run_platform_builds",
]
