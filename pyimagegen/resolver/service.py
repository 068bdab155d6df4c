"""Configuration resolver.

This module merges the project declaration with a named build target
into one validated ResolvedConfig:
- Target selection (explicit name, or the lexicographically first target)
- Interpreter version solving against ``requires-python``
- Dependency computation (lock file, or project dependencies plus extras)
- Transport inference (git, git over ssh) and build-dependency expansion
- Index credential resolution (build secrets take precedence)

Reading the pin file and the lock file is delegated to caller-supplied
callbacks so the resolver never touches the filesystem itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from pyimagegen.errors import (
    ConflictingOptionsError,
    ImageGenError,
    LockFileError,
    TargetNotFoundError,
    UnknownExtraError,
    UnknownFlavorError,
)
from pyimagegen.manifest.io import load_manifest
from pyimagegen.manifest.schema import (
    IndexSchema,
    ManifestSchema,
    ProjectSchema,
    TargetSchema,
)
from pyimagegen.resolver.models import (
    Credential,
    PackageIndex,
    PlainCredential,
    ResolvedConfig,
    SecretCredential,
)
from pyimagegen.resolver.python_version import solve_python_version
from pyimagegen.types import DEFAULT_FLAVOR, Flavor

logger = logging.getLogger(__name__)

PinnedVersionReader = Callable[[], str]
LockFileReader = Callable[[str], list[str]]

# System packages required by the transports a build uses
SSH_CLIENT_PACKAGE = "openssh-client"
GIT_PACKAGE = "git"
URI_ESCAPE_PACKAGE = "jq"


def select_target(manifest: ManifestSchema, name: str = "") -> str | None:
    """Select the build target.

    Args:
        manifest: Decoded manifest.
        name: Requested target name; empty selects the default target.

    Returns:
        The target name, or None when the manifest defines no targets.

    Raises:
        TargetNotFoundError: If a named target does not exist.
    """
    if name:
        if name not in manifest.targets:
            raise TargetNotFoundError(name)
        return name
    names = manifest.target_names()
    return names[0] if names else None


def dedupe(entries: Iterable[str]) -> tuple[str, ...]:
    """Drop duplicate entries, keeping the first occurrence."""
    return tuple(dict.fromkeys(entries))


def clean_lock_lines(lines: Iterable[str]) -> list[str]:
    """Strip lock file lines, dropping blanks and comments."""
    cleaned: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            cleaned.append(stripped)
    return cleaned


def read_lock_entries(
    path: str,
    read_lock_file: LockFileReader | None,
    target: str | None = None,
) -> tuple[str, ...]:
    """Read dependency entries from a lock file through the callback.

    Raises:
        LockFileError: If no reader is available or the read fails.
    """
    if read_lock_file is None:
        raise LockFileError(
            f"Cannot read lock file {path}: no lock file reader available",
            path=path,
            target=target,
        )
    try:
        lines = read_lock_file(path)
    except LockFileError:
        raise
    except (OSError, ImageGenError) as e:
        raise LockFileError(
            f"Failed to read lock file {path}: {e}", path=path, target=target
        ) from e
    return dedupe(clean_lock_lines(lines))


def compute_dependencies(
    project: ProjectSchema,
    target: TargetSchema | None = None,
    target_name: str | None = None,
    read_lock_file: LockFileReader | None = None,
) -> tuple[str, ...]:
    """Compute the effective dependency entries for a build.

    When the target names a lock file it is the only dependency source.
    Otherwise the project dependencies are combined with every requested
    optional-dependency group.

    Args:
        project: Project declaration.
        target: Target overrides, if any.
        target_name: Target name, for error context.
        read_lock_file: Callback returning the lines of a lock file.

    Returns:
        De-duplicated dependency entries.

    Raises:
        LockFileError: If the lock file cannot be read.
        UnknownExtraError: If a requested extra is not declared.
    """
    if target is not None and target.requirements:
        return read_lock_entries(target.requirements, read_lock_file, target_name)

    entries = list(project.dependencies)
    if target is not None:
        for extra in target.extras:
            group = project.optional_dependencies.get(extra)
            if group is None:
                raise UnknownExtraError(extra, target=target_name)
            entries.extend(group)
    return dedupe(entries)


def infer_transports(entries: Iterable[str]) -> tuple[bool, bool]:
    """Detect the version-control transports used by dependency entries.

    Returns:
        Tuple of (use_ssh, use_git).
    """
    use_ssh = False
    use_git = False
    for entry in entries:
        if "git+ssh" in entry:
            use_ssh = True
            use_git = True
        elif "git+" in entry:
            use_git = True
    return use_ssh, use_git


def augment_build_deps(
    build_deps: Iterable[str],
    use_ssh: bool = False,
    use_git: bool = False,
    use_secrets: bool = False,
) -> tuple[str, ...]:
    """Add the system packages required by the transports in use.

    Returns a new tuple; the input is never modified. Each package is
    added at most once.

    Args:
        build_deps: Declared build-time system packages.
        use_ssh: Add an ssh client.
        use_git: Add a git client.
        use_secrets: Add the URI-escaping tool used for secret credentials.

    Returns:
        Build-time system packages without duplicates.
    """
    packages = list(build_deps)
    if use_ssh:
        packages.append(SSH_CLIENT_PACKAGE)
    if use_git:
        packages.append(GIT_PACKAGE)
    if use_secrets:
        packages.append(URI_ESCAPE_PACKAGE)
    return dedupe(packages)


def _credential(
    plain: str | None,
    secret: str | None,
    label: str,
    url: str,
    target: str | None,
) -> Credential | None:
    if secret:
        if plain:
            logger.warning(
                "Index %s declares both %s and %s_secret for target %s; using the secret",
                url,
                label,
                label,
                target,
            )
        return SecretCredential(secret_id=secret)
    if plain and plain.strip():
        return PlainCredential(value=plain)
    return None


def resolve_index(index: IndexSchema, target: str | None = None) -> PackageIndex:
    """Resolve an index declaration, preferring secrets over plain text."""
    return PackageIndex(
        url=index.url,
        username=_credential(
            index.username, index.username_secret, "username", index.url, target
        ),
        password=_credential(
            index.password, index.password_secret, "password", index.url, target
        ),
        trust=index.trust,
    )


def validate_flavor(flavor: str | None, target: str | None = None) -> str:
    """Validate a flavor name, defaulting when absent.

    Raises:
        UnknownFlavorError: If the flavor is not supported.
    """
    if not flavor:
        return DEFAULT_FLAVOR.value
    try:
        return Flavor(flavor).value
    except ValueError:
        raise UnknownFlavorError(flavor, target=target) from None


def _read_pin(read_pinned_version: PinnedVersionReader | None) -> str:
    return read_pinned_version() if read_pinned_version is not None else ""


def resolve_config(
    manifest: ManifestSchema,
    target: str = "",
    read_pinned_version: PinnedVersionReader | None = None,
    read_lock_file: LockFileReader | None = None,
) -> ResolvedConfig:
    """Resolve a manifest and target into a build configuration.

    The interpreter version comes from the target's ``python_version``,
    then the pinned version (if the reader returns one), then the
    preference list. The pin is only read when the target sets no version.

    Args:
        manifest: Decoded manifest.
        target: Target name; empty selects the default target.
        read_pinned_version: Callback returning the pinned interpreter version.
        read_lock_file: Callback returning the lines of a lock file.

    Returns:
        The resolved configuration.

    Raises:
        ResolutionError: If the target cannot be resolved.
    """
    project = manifest.project
    name = select_target(manifest, target)

    if name is None:
        python_version = solve_python_version(
            project.requires_python, _read_pin(read_pinned_version), field=".python-version"
        )
        dependencies = dedupe(project.dependencies)
        use_ssh, use_git = infer_transports(dependencies)
        logger.info(
            "No build target declared; using project defaults (python %s)",
            python_version,
        )
        return ResolvedConfig(
            name=project.name,
            authors=project.authors,
            python_version=python_version,
            flavor=DEFAULT_FLAVOR.value,
            dependencies=dependencies,
            build_deps=augment_build_deps((), use_ssh, use_git),
            use_ssh=use_ssh,
            use_git=use_git,
        )

    spec = manifest.targets[name]
    if spec.requirements and spec.extras:
        raise ConflictingOptionsError(
            "Options 'requirements' and 'extras' are mutually exclusive",
            target=name,
        )

    flavor = validate_flavor(spec.flavor, target=name)
    if spec.python_version:
        python_version = solve_python_version(
            project.requires_python, spec.python_version, target=name
        )
    else:
        python_version = solve_python_version(
            project.requires_python,
            _read_pin(read_pinned_version),
            target=name,
            field=".python-version",
        )

    dependencies = compute_dependencies(project, spec, name, read_lock_file)
    use_ssh, use_git = infer_transports(dependencies)
    indices = tuple(resolve_index(i, target=name) for i in spec.indices)
    use_secrets = any(i.secret_ids() for i in indices)

    config = ResolvedConfig(
        name=project.name,
        target=name,
        authors=project.authors,
        python_version=python_version,
        flavor=flavor,
        entrypoint=spec.entrypoint,
        command=spec.command,
        env=dict(spec.env),
        labels=dict(spec.labels),
        build_deps=augment_build_deps(spec.build_deps, use_ssh, use_git, use_secrets),
        system_deps=dedupe(spec.system_deps),
        indices=indices,
        dependencies=dependencies,
        requirements=spec.requirements,
        extras=spec.extras,
        copy_files=spec.copy_files,
        add_files=spec.add_files,
        copy_files_before_build=spec.copy_files_before_build,
        add_files_before_build=spec.add_files_before_build,
        use_ssh=use_ssh,
        use_git=use_git,
        use_secrets=use_secrets,
    )
    logger.info(
        "Resolved target %s: python %s, flavor %s, %d dependencies",
        name,
        python_version,
        flavor,
        len(dependencies),
    )
    return config


def resolve_config_from_file(
    path: Path,
    target: str = "",
    read_pinned_version: PinnedVersionReader | None = None,
    read_lock_file: LockFileReader | None = None,
) -> ResolvedConfig:
    """Load a manifest file and resolve it.

    Raises:
        FileNotFoundError: If the manifest does not exist.
        ManifestDecodeError: If the manifest is invalid.
        ResolutionError: If the target cannot be resolved.
    """
    manifest = load_manifest(path)
    return resolve_config(
        manifest,
        target=target,
        read_pinned_version=read_pinned_version,
        read_lock_file=read_lock_file,
    )


__all__ = [
    "GIT_PACKAGE",
    "SSH_CLIENT_PACKAGE",
    "URI_ESCAPE_PACKAGE",
    "LockFileReader",
    "PinnedVersionReader",
    "augment_build_deps",
    "clean_lock_lines",
    "compute_dependencies",
    "dedupe",
    "infer_transports",
    "read_lock_entries",
    "resolve_config",
    "resolve_config_from_file",
    "resolve_index",
    "select_target",
    "validate_flavor",
]
