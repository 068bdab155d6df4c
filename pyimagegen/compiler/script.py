"""Compiled build script model.

A CompiledScript is an ordered, stage-tagged list of Dockerfile
instructions. It holds no state beyond the instructions, so it can be
regenerated byte-for-byte from the same ResolvedConfig.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from pyimagegen.types import Stage


@dataclass(frozen=True)
class Instruction:
    """A single Dockerfile instruction.

    Attributes:
        stage: Stage the instruction belongs to.
        keyword: Instruction keyword (FROM, RUN, COPY, ...).
        args: Instruction arguments, already quoted.
    """

    stage: Stage
    keyword: str
    args: str

    def render(self) -> str:
        return f"{self.keyword} {self.args}"


@dataclass(frozen=True)
class CompiledScript:
    """Ordered build instructions for the build and runtime stages."""

    instructions: tuple[Instruction, ...]

    def stage(self, stage: Stage) -> tuple[Instruction, ...]:
        """Return the instructions of one stage, in order."""
        return tuple(i for i in self.instructions if i.stage == stage)

    def render(self) -> str:
        """Render the script as Dockerfile text.

        Stages are separated by a blank line; the text ends with a newline.
        """
        blocks = []
        for stage in Stage:
            lines = [i.render() for i in self.stage(stage)]
            if lines:
                blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the structured representation printed by the CLI."""
        return {
            "stages": [
                {
                    "stage": stage.value,
                    "instructions": [
                        {"keyword": i.keyword, "args": i.args}
                        for i in self.stage(stage)
                    ],
                }
                for stage in Stage
            ],
            "digest": self.digest(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def digest(self) -> str:
        """Compute a SHA-256 digest of the rendered script.

        Returns:
            Digest as hex string (sha256:...).
        """
        return "sha256:" + hashlib.sha256(self.render().encode("utf-8")).hexdigest()


__all__ = ["CompiledScript", "Instruction"]
