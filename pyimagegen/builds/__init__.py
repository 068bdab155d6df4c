"""Build orchestration module.

This module handles:
- Target platform parsing
- Cache import options
- The build engine interface and cancellation scope
- Parallel multi-platform builds and result aggregation
- The frontend pipeline over a build context
"""

from pyimagegen.builds.cache import parse_cache_imports
from pyimagegen.builds.context import BuildContext, LocalContext
from pyimagegen.builds.engine import (
    BuildEngine,
    CancelScope,
    Conversion,
    ConvertOptions,
    Solution,
)
from pyimagegen.builds.frontend import build
from pyimagegen.builds.orchestrator import (
    BuildResult,
    PlatformBuildResult,
    run_platform_builds,
)
from pyimagegen.builds.platforms import (
    Platform,
    host_platform,
    parse_platform,
    parse_platforms,
)

__all__ = [
    "BuildContext",
    "BuildEngine",
    "BuildResult",
    "CancelScope",
    "Conversion",
    "ConvertOptions",
    "LocalContext",
    "Platform",
    "PlatformBuildResult",
    "Solution",
    "build",
    "host_platform",
    "parse_cache_imports",
    "parse_platform",
    "parse_platforms",
    "run_platform_builds",
]
