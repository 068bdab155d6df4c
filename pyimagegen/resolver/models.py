"""Resolved build configuration models.

A ResolvedConfig is produced exactly once per (manifest, target) pair by
the resolver and consumed, unchanged, by the script compiler. All models
here are frozen.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from pyimagegen.manifest.schema import AddFileSchema, AuthorSchema, CopyFileSchema


class PlainCredential(BaseModel):
    """A credential given in plain text in the manifest."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["plain"] = "plain"
    value: SecretStr


class SecretCredential(BaseModel):
    """A credential read from a build secret at build time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["secret"] = "secret"
    secret_id: str


Credential = Annotated[PlainCredential | SecretCredential, Field(discriminator="kind")]


class PackageIndex(BaseModel):
    """An extra package index with resolved credentials.

    Attributes:
        url: Index URL. Userinfo written into it is used when no
            username is declared.
        username: Username credential, if any.
        password: Password credential, if any.
        trust: Whether the index host is passed to ``--trusted-host``.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    username: Credential | None = None
    password: Credential | None = None
    trust: bool = False

    def secret_ids(self) -> tuple[str, ...]:
        """Return the build secrets this index needs, in credential order."""
        return tuple(
            c.secret_id
            for c in (self.username, self.password)
            if isinstance(c, SecretCredential)
        )


class ResolvedConfig(BaseModel):
    """The complete build configuration for one target.

    Attributes:
        name: Project name.
        target: Selected target name (None when the manifest has no targets).
        authors: Project authors.
        python_version: Interpreter version satisfying the project constraint.
        flavor: Base-image flavor.
        entrypoint: Image entrypoint (exec form).
        command: Image default command (exec form).
        env: User environment variables.
        labels: User image labels.
        build_deps: System packages installed in the build stage only.
        system_deps: System packages installed in the runtime stage.
        indices: Extra package indices.
        dependencies: De-duplicated dependency entries.
        requirements: Lock file path (exclusive with extras).
        extras: Optional-dependency groups (exclusive with requirements).
        copy_files: COPY operations into the runtime stage.
        add_files: ADD operations into the runtime stage.
        copy_files_before_build: COPY operations into the build stage.
        add_files_before_build: ADD operations into the build stage.
        use_ssh: A dependency is fetched with git over ssh.
        use_git: A dependency is fetched with git.
        use_secrets: An index credential is read from a build secret.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    target: str | None = None
    authors: tuple[AuthorSchema, ...] = ()
    python_version: str
    flavor: str
    entrypoint: tuple[str, ...] = ()
    command: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)
    build_deps: tuple[str, ...] = ()
    system_deps: tuple[str, ...] = ()
    indices: tuple[PackageIndex, ...] = ()
    dependencies: tuple[str, ...] = ()
    requirements: str | None = None
    extras: tuple[str, ...] = ()
    copy_files: tuple[CopyFileSchema, ...] = ()
    add_files: tuple[AddFileSchema, ...] = ()
    copy_files_before_build: tuple[CopyFileSchema, ...] = ()
    add_files_before_build: tuple[AddFileSchema, ...] = ()
    use_ssh: bool = False
    use_git: bool = False
    use_secrets: bool = False

    def secret_ids(self) -> tuple[str, ...]:
        """Return every build secret needed by the indices, without duplicates."""
        return tuple(dict.fromkeys(s for i in self.indices for s in i.secret_ids()))


__all__ = [
    "Credential",
    "PackageIndex",
    "PlainCredential",
    "ResolvedConfig",
    "SecretCredential",
]
