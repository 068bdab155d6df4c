"""Configuration resolver module.

This module handles:
- Target selection and option validation
- Interpreter version solving
- Dependency and transport computation
- The frozen ResolvedConfig consumed by the compiler
- JSON and YAML export of resolved configurations
"""

from pyimagegen.resolver.export import export_config
from pyimagegen.resolver.models import (
    PackageIndex,
    PlainCredential,
    ResolvedConfig,
    SecretCredential,
)
from pyimagegen.resolver.python_version import (
    PREFERRED_PYTHON_VERSIONS,
    solve_python_version,
)
from pyimagegen.resolver.service import (
    augment_build_deps,
    compute_dependencies,
    infer_transports,
    resolve_config,
    resolve_config_from_file,
    select_target,
)

__all__ = [
    "PREFERRED_PYTHON_VERSIONS",
    "PackageIndex",
    "PlainCredential",
    "ResolvedConfig",
    "SecretCredential",
    "augment_build_deps",
    "compute_dependencies",
    "export_config",
    "infer_transports",
    "resolve_config",
    "resolve_config_from_file",
    "select_target",
    "solve_python_version",
]
