"""Concrete build engines."""

from pyimagegen.engine.buildx import BuildxEngine, compose_buildx_command

__all__ = ["BuildxEngine", "compose_buildx_command"]
