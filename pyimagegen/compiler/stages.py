"""Instruction generation for the build and runtime stages.

The build stage installs dependencies and the project into the root
user's ``~/.local``; the runtime stage copies that tree into the home of
a non-privileged user on a clean base image.
"""

from __future__ import annotations

import json
import shlex
from collections.abc import Iterable, Mapping

from pyimagegen import __version__
from pyimagegen.compiler.expand import expand_placeholders
from pyimagegen.compiler.flavors import (
    NONROOT_HOME,
    NONROOT_UID,
    FlavorSyntax,
)
from pyimagegen.compiler.indices import index_args, secret_mounts
from pyimagegen.compiler.script import Instruction
from pyimagegen.errors import CompileError
from pyimagegen.manifest.schema import AddFileSchema, CopyFileSchema
from pyimagegen.resolver.models import ResolvedConfig
from pyimagegen.types import Stage

BASE_IMAGE = "docker.io/python"
BUILDER_STAGE = "builder"
PROJECT_DIR = "/projectdir"
LOCK_FILE_TARGET = "/tmp/requirements.txt"
BUILD_SITE = "/root/.local"
AUTHORS_LABEL = "org.opencontainers.image.authors"

PIP_CACHE_MOUNT = "--mount=type=cache,target=/root/.cache"
SSH_MOUNT = "--mount=type=ssh,required=true"
SSH_COMMAND_ENV = "GIT_SSH_COMMAND='ssh -o StrictHostKeyChecking=no'"

DEFAULT_ENV: dict[str, str] = {
    "PIP_DISABLE_PIP_VERSION_CHECK": "1",
    "PIP_NO_WARN_SCRIPT_LOCATION": "0",
    "PIP_USER": "1",
    "PYTHONPYCACHEPREFIX": "$HOME/.pycache",
}

DEFAULT_LABELS: dict[str, str] = {
    "org.opencontainers.image.description": "autogenerated by pyimagegen",
    "moby.buildkit.frontend": "pyimagegen",
    "pyimagegen.version": __version__,
}

CLEANUP_COMMANDS = (
    "find /root/.local/lib/python*/ -name 'tests' -exec rm -r '{}' +",
    "find /root/.local/lib/python*/site-packages/ -name '*.so' -exec sh -c "
    "'file \"{}\" | grep -q \"not stripped\" && strip -s \"{}\"' \\;",
    "find /root/.local/lib/python*/ -type f -name '*.pyc' -delete",
    "find /root/.local/lib/python*/ -type d -name '__pycache__' -delete",
)


def base_image(config: ResolvedConfig, syntax: FlavorSyntax) -> str:
    return f"{BASE_IMAGE}:{config.python_version}-{syntax.image_tag}"


def _quoted(value: str, literal: bool = False) -> str:
    """Double-quote a value for ENV or LABEL.

    Backslashes and quotes are escaped. With literal set, ``$`` is escaped
    too so the builder does not substitute variables in the value.

    Raises:
        CompileError: If the value contains a line break.
    """
    if "\n" in value or "\r" in value:
        raise CompileError(f"Value contains a line break: {value!r}", value=value)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    if literal:
        escaped = escaped.replace("$", "\\$")
    return f'"{escaped}"'


def _paths(src: str, dst: str) -> str:
    if any(c.isspace() for c in src + dst):
        return json.dumps([src, dst], ensure_ascii=False)
    return f"{src} {dst}"


def key_values(
    stage: Stage,
    keyword: str,
    values: Mapping[str, str],
    build_args: Mapping[str, str] | None = None,
) -> list[Instruction]:
    """Emit one ENV or LABEL instruction per key, with double-quoted values.

    When build_args is given, values pass through placeholder expansion and
    any ``$`` left afterwards is literal.
    """
    instructions = []
    for key, value in values.items():
        if build_args is not None:
            value = expand_placeholders(value, build_args)
        quoted = _quoted(value, literal=build_args is not None)
        instructions.append(Instruction(stage, keyword, f"{key}={quoted}"))
    return instructions


def file_operations(
    stage: Stage,
    copies: Iterable[CopyFileSchema],
    adds: Iterable[AddFileSchema],
) -> list[Instruction]:
    """Emit COPY operations, then ADD operations, in declaration order."""
    instructions = []
    for op in copies:
        origin = f"--from={op.from_} " if op.from_ else ""
        instructions.append(Instruction(stage, "COPY", origin + _paths(op.src, op.dst)))
    for op in adds:
        instructions.append(Instruction(stage, "ADD", _paths(op.src, op.dst)))
    return instructions


def _pip_run(config: ResolvedConfig, extra_mounts: Iterable[str] = ()) -> list[str]:
    parts = [PIP_CACHE_MOUNT, *secret_mounts(config.indices), *extra_mounts]
    if config.use_ssh:
        parts += [SSH_MOUNT, SSH_COMMAND_ENV]
    return parts


def install_dependencies(config: ResolvedConfig) -> list[Instruction]:
    """Emit the dependency install step (nothing when there are no dependencies)."""
    if not config.dependencies:
        return []

    if config.requirements:
        bind = f"--mount=type=bind,source={config.requirements},target={LOCK_FILE_TARGET}"
        parts = _pip_run(config, [bind])
        install = ["-r", LOCK_FILE_TARGET]
    else:
        parts = _pip_run(config)
        install = [shlex.quote(d) for d in config.dependencies]

    parts += ["python -m pip install --user", *index_args(config.indices), *install]
    return [Instruction(Stage.BUILD, "RUN", " ".join(parts))]


def install_project(config: ResolvedConfig) -> list[Instruction]:
    parts = [PIP_CACHE_MOUNT, *secret_mounts(config.indices)]
    parts += [
        "python -m pip install --user --no-deps",
        *index_args(config.indices),
        PROJECT_DIR,
    ]
    return [
        Instruction(Stage.BUILD, "COPY", f". {PROJECT_DIR}"),
        Instruction(Stage.BUILD, "RUN", " ".join(parts)),
    ]


def build_stage(config: ResolvedConfig, syntax: FlavorSyntax) -> list[Instruction]:
    """Generate the build stage instructions.

    Args:
        config: Resolved configuration.
        syntax: Flavor syntax.

    Returns:
        Build stage instructions in emission order.
    """
    instructions = [
        Instruction(Stage.BUILD, "FROM", f"{base_image(config, syntax)} AS {BUILDER_STAGE}")
    ]
    if config.build_deps:
        instructions.append(
            Instruction(Stage.BUILD, "RUN", syntax.build_packages(config.build_deps))
        )
    instructions += key_values(Stage.BUILD, "ENV", {**DEFAULT_ENV, **config.env})
    instructions += file_operations(
        Stage.BUILD, config.copy_files_before_build, config.add_files_before_build
    )
    instructions += install_dependencies(config)
    instructions += install_project(config)
    instructions.append(Instruction(Stage.BUILD, "RUN", " && ".join(CLEANUP_COMMANDS)))
    return instructions


def runtime_stage(
    config: ResolvedConfig,
    syntax: FlavorSyntax,
    build_args: Mapping[str, str],
) -> list[Instruction]:
    """Generate the runtime stage instructions.

    Args:
        config: Resolved configuration.
        syntax: Flavor syntax.
        build_args: Placeholder values for ENV and LABEL expansion.

    Returns:
        Runtime stage instructions in emission order.
    """
    owner = f"{NONROOT_UID}:{NONROOT_UID}"
    instructions = [Instruction(Stage.RUNTIME, "FROM", base_image(config, syntax))]
    if config.system_deps:
        instructions.append(
            Instruction(Stage.RUNTIME, "RUN", syntax.runtime_packages(config.system_deps))
        )
    instructions += [
        Instruction(Stage.RUNTIME, "RUN", syntax.create_user),
        Instruction(Stage.RUNTIME, "USER", owner),
        Instruction(
            Stage.RUNTIME,
            "COPY",
            f"--from={BUILDER_STAGE} --chown={owner} {BUILD_SITE} {NONROOT_HOME}/.local",
        ),
        Instruction(Stage.RUNTIME, "ENV", f"PATH={_quoted(f'$PATH:{NONROOT_HOME}/.local/bin')}"),
    ]
    instructions += file_operations(Stage.RUNTIME, config.copy_files, config.add_files)

    if config.entrypoint:
        instructions.append(
            Instruction(Stage.RUNTIME, "ENTRYPOINT", json.dumps(list(config.entrypoint)))
        )
    if config.command:
        instructions.append(Instruction(Stage.RUNTIME, "CMD", json.dumps(list(config.command))))

    instructions += key_values(Stage.RUNTIME, "ENV", config.env, build_args)
    instructions += key_values(
        Stage.RUNTIME, "LABEL", {**DEFAULT_LABELS, **config.labels}, build_args
    )

    authors = [a.display() for a in config.authors if a.display()]
    if authors:
        value = _quoted(", ".join(authors), literal=True)
        instructions.append(Instruction(Stage.RUNTIME, "LABEL", f"{AUTHORS_LABEL}={value}"))
    return instructions


__all__ = [
    "AUTHORS_LABEL",
    "BASE_IMAGE",
    "DEFAULT_ENV",
    "DEFAULT_LABELS",
    "build_stage",
    "file_operations",
    "install_dependencies",
    "install_project",
    "key_values",
    "runtime_stage",
]
