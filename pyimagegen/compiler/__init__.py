"""Script compiler module.

This module handles:
- Build and runtime stage instruction generation
- Flavor-specific package manager and user syntax
- Package index flags and secret credential rendering
- Placeholder expansion in ENV and LABEL values
"""

from pyimagegen.compiler.expand import expand_placeholders
from pyimagegen.compiler.script import CompiledScript, Instruction
from pyimagegen.compiler.translate import compile_script

__all__ = [
    "CompiledScript",
    "Instruction",
    "compile_script",
    "expand_placeholders",
]
