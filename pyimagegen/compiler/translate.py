"""Compile a ResolvedConfig into a two-stage build script."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from pyimagegen.compiler.flavors import get_flavor_syntax
from pyimagegen.compiler.script import CompiledScript
from pyimagegen.compiler.stages import build_stage, runtime_stage
from pyimagegen.resolver.models import ResolvedConfig

logger = logging.getLogger(__name__)


def compile_script(
    config: ResolvedConfig,
    build_args: Mapping[str, str] | None = None,
) -> CompiledScript:
    """Compile a resolved configuration into a build script.

    The result depends only on the arguments: compiling the same
    configuration with the same build arguments always yields the same
    script.

    Args:
        config: Resolved configuration.
        build_args: Placeholder values for runtime ENV and LABEL values.

    Returns:
        The compiled script.

    Raises:
        UnknownFlavorError: If the flavor is not supported.
        PlaceholderError: If an ENV or LABEL value has malformed placeholders.
    """
    syntax = get_flavor_syntax(config.flavor)
    args = dict(build_args or {})
    instructions = build_stage(config, syntax) + runtime_stage(config, syntax, args)
    script = CompiledScript(instructions=tuple(instructions))
    logger.debug(
        "Compiled %d instructions for %s (%s)",
        len(script.instructions),
        config.name,
        script.digest(),
    )
    return script


__all__ = ["compile_script"]
