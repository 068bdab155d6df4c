"""Python Image Generator - container images from pyproject.toml.

This package compiles a project's pyproject.toml and a named build target
into a two-stage container build script, and drives the build of that
script on one or more target platforms through an external build engine.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
