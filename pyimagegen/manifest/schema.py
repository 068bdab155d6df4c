"""Pydantic models for manifest schema validation.

This module defines the Pydantic models for validating a decoded
pyproject.toml before it is resolved into a build configuration:
the project declaration (PEP 621 ``[project]`` or ``[tool.poetry]``)
and the named build targets under ``[tool.pyimagegen.target]``.
"""

import re
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

# Poetry author strings: "Name <email>" or just "Name"
AUTHOR_PATTERN = re.compile(r"^\s*(?P<name>[^<]*?)\s*(?:<(?P<email>[^>]*)>)?\s*$")
# scp-like git remote: git@github.com:org/repo.git
SCP_GIT_PATTERN = re.compile(r"^(?P<user>[\w.\-]+)@(?P<host>[\w.\-]+):(?P<path>.+)$")


class AuthorSchema(BaseModel):
    """Schema for a project author.

    Attributes:
        name: Author name.
        email: Optional email address.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(default="", description="Author name")
    email: str | None = Field(default=None, description="Author email")

    def display(self) -> str:
        """Return the author as ``Name <email>`` (or just the name/email)."""
        if self.name and self.email:
            return f"{self.name} <{self.email}>"
        return self.name or self.email or ""


class ProjectSchema(BaseModel):
    """Schema for the project declaration.

    Attributes:
        name: Project name.
        authors: Project authors.
        dependencies: Requirement strings installed into the image.
        optional_dependencies: Named groups of optional requirements.
        requires_python: Interpreter version constraint (may be empty).
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    name: Annotated[str, Field(description="Project name", min_length=1)]
    authors: tuple[AuthorSchema, ...] = Field(default=())
    dependencies: tuple[str, ...] = Field(default=())
    optional_dependencies: dict[str, tuple[str, ...]] = Field(
        default_factory=dict, alias="optional-dependencies"
    )
    requires_python: str = Field(default="", alias="requires-python")


class CopyFileSchema(BaseModel):
    """Schema for a COPY file operation.

    Attributes:
        src: Source path in the build context (or in the ``from`` image).
        dst: Destination path in the image.
        from_: Optional image or stage to copy from.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    src: Annotated[str, Field(min_length=1)]
    dst: Annotated[str, Field(min_length=1)]
    from_: str | None = Field(default=None, alias="from")


class AddFileSchema(BaseModel):
    """Schema for an ADD file operation (remote URL or local archive)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    src: Annotated[str, Field(min_length=1)]
    dst: Annotated[str, Field(min_length=1)]


class IndexSchema(BaseModel):
    """Schema for an extra package index.

    Credentials may be given in plain text or as the identifier of a build
    secret (``*_secret``). When both are given for the same credential the
    secret takes precedence.

    Attributes:
        url: Index URL.
        username: Plain-text username.
        username_secret: Build secret holding the username.
        password: Plain-text password.
        password_secret: Build secret holding the password.
        trust: Pass the index host to ``--trusted-host``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: Annotated[str, Field(min_length=1)]
    username: str | None = None
    username_secret: str | None = None
    password: str | None = None
    password_secret: str | None = None
    trust: bool = False

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate the index URL is an http(s) URL."""
        if not re.match(r"^https?://[^/\s]+", v):
            raise ValueError(f"index url must be an http(s) URL, got '{v}'")
        return v

    @field_validator("username_secret", "password_secret")
    @classmethod
    def validate_secret_id(cls, v: str | None) -> str | None:
        """Validate secret identifiers are safe to use in a mount path."""
        if v is None:
            return v
        if not re.match(r"^[A-Za-z0-9_.\-]+$", v):
            raise ValueError(
                f"secret id must match [A-Za-z0-9_.-]+, got '{v}'"
            )
        return v

    @model_validator(mode="after")
    def validate_credentials(self) -> "IndexSchema":
        """Validate a password is never given without a username."""
        has_user = bool(self.username and self.username.strip()) or bool(
            self.username_secret
        )
        has_password = bool(self.password and self.password.strip()) or bool(
            self.password_secret
        )
        if has_password and not has_user:
            raise ValueError("index password requires a username")
        return self


class TargetSchema(BaseModel):
    """Schema for a named build target.

    Every field is optional; an absent field inherits the default.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    flavor: str | None = Field(default=None, description="debian or alpine")
    python_version: str | None = Field(default=None)
    requirements: str | None = Field(default=None, description="Lock file path")
    extras: tuple[str, ...] = Field(default=())
    env: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("env", "environment")
    )
    labels: dict[str, str] = Field(default_factory=dict)
    build_deps: tuple[str, ...] = Field(default=())
    system_deps: tuple[str, ...] = Field(default=())
    indices: tuple[IndexSchema, ...] = Field(default=())
    entrypoint: tuple[str, ...] = Field(default=())
    command: tuple[str, ...] = Field(default=())
    copy_files: tuple[CopyFileSchema, ...] = Field(default=())
    add_files: tuple[AddFileSchema, ...] = Field(default=())
    copy_files_before_build: tuple[CopyFileSchema, ...] = Field(default=())
    add_files_before_build: tuple[AddFileSchema, ...] = Field(default=())

    @field_validator("build_deps", "system_deps")
    @classmethod
    def validate_packages(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate system package names are non-empty and whitespace-free."""
        for item in v:
            if not item or not item.strip():
                raise ValueError("package names must be non-empty strings")
            if any(c.isspace() for c in item):
                raise ValueError(
                    f"package names must not contain whitespace, got '{item}'"
                )
        return v

    @field_validator("env", "labels")
    @classmethod
    def validate_keys(cls, v: dict[str, str]) -> dict[str, str]:
        """Validate env and label keys contain no whitespace or '='."""
        for key in v:
            if not key or any(c.isspace() for c in key) or "=" in key:
                raise ValueError(f"invalid key '{key}'")
        return v


class PoetryConstraint(BaseModel):
    """Poetry dependency given as a plain version constraint string."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["constraint"] = "constraint"
    version: str


class PoetryTable(BaseModel):
    """Poetry dependency given as a table."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: Literal["table"] = "table"
    version: str | None = None
    git: str | None = None
    rev: str | None = None
    tag: str | None = None
    branch: str | None = None
    url: str | None = None
    path: str | None = None
    extras: tuple[str, ...] = ()
    optional: bool = False

    @model_validator(mode="after")
    def validate_source(self) -> "PoetryTable":
        """Validate the table names a version or a source."""
        if not (self.version or self.git or self.url or self.path):
            raise ValueError("dependency table requires a version, git, url or path")
        return self


PoetryDependency = Annotated[
    PoetryConstraint | PoetryTable, Field(discriminator="kind")
]


class PoetrySchema(BaseModel):
    """Schema for the ``[tool.poetry]`` table.

    Dependency values are either strings or tables. The shape of each TOML
    value is inspected before validation and tagged with a ``kind`` so the
    union is decided explicitly.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Annotated[str, Field(min_length=1)]
    authors: tuple[str, ...] = ()
    dependencies: dict[str, PoetryDependency] = Field(default_factory=dict)

    @field_validator("dependencies", mode="before")
    @classmethod
    def tag_dependencies(cls, v: Any) -> Any:
        """Tag each dependency with its shape."""
        if not isinstance(v, dict):
            raise ValueError("dependencies must be a table")
        tagged: dict[str, Any] = {}
        for name, spec in v.items():
            if isinstance(spec, str):
                tagged[name] = {"kind": "constraint", "version": spec}
            elif isinstance(spec, dict):
                tagged[name] = {**spec, "kind": "table"}
            else:
                raise ValueError(
                    f"dependency '{name}' must be a string or a table, "
                    f"got {type(spec).__name__}"
                )
        return tagged

    def python_constraint(self) -> str:
        """Return the interpreter constraint in standard range syntax."""
        spec = self.dependencies.get("python")
        if spec is None or spec.version is None:
            return ""
        return translate_poetry_constraint(spec.version)

    def to_project(self) -> ProjectSchema:
        """Convert to a project declaration.

        Raises:
            ValueError: If an author or dependency cannot be converted.
        """
        requirements = [
            poetry_requirement(name, spec)
            for name, spec in self.dependencies.items()
            if name != "python"
            and not (isinstance(spec, PoetryTable) and spec.optional)
        ]
        return ProjectSchema(
            name=self.name,
            authors=tuple(parse_author(a) for a in self.authors),
            dependencies=tuple(requirements),
            requires_python=self.python_constraint(),
        )


class ManifestSchema(BaseModel):
    """A decoded manifest: the project and its named build targets."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    project: ProjectSchema
    targets: dict[str, TargetSchema] = Field(default_factory=dict)

    def target_names(self) -> list[str]:
        """Return target names in lexicographic order."""
        return sorted(self.targets)


def parse_author(text: str) -> AuthorSchema:
    """Parse a ``Name <email>`` author string.

    Raises:
        ValueError: If the string is not a valid author.
    """
    match = AUTHOR_PATTERN.match(text)
    if match is None or not (match.group("name") or match.group("email")):
        raise ValueError(f"invalid author '{text}'")
    return AuthorSchema(name=match.group("name"), email=match.group("email") or None)


def _bump(parts: list[int], index: int) -> str:
    upper = parts[:index] + [parts[index] + 1] + [0] * (len(parts) - index - 1)
    return ".".join(str(p) for p in upper)


def _numeric_parts(version: str, original: str) -> list[int]:
    try:
        return [int(p) for p in version.split(".")]
    except ValueError:
        raise ValueError(f"unsupported version in constraint '{original}'") from None


def translate_poetry_constraint(expr: str) -> str:
    """Translate a Poetry version constraint to standard range syntax.

    Caret and tilde requirements become explicit ranges, bare versions
    become exact matches, and ``*`` means "any version".

    Args:
        expr: Poetry constraint (e.g. ``^3.8``, ``~1.2``, ``>=1.0 <2.0``).

    Returns:
        Comma-separated specifier string ("" for any version).

    Raises:
        ValueError: If the constraint uses unsupported syntax.
    """
    expr = expr.strip()
    if expr in ("", "*"):
        return ""
    if "||" in expr or "|" in expr:
        raise ValueError(f"alternative constraints are not supported: '{expr}'")

    tokens: list[str] = []
    for chunk in expr.split(","):
        # ">=1.2 <2.0" is two constraints; ">= 1.2" is one
        tokens.extend(re.split(r"(?<=[\d*])\s+(?=[<>=!~^])", chunk.strip()))

    parts: list[str] = []
    for token in (t.replace(" ", "") for t in tokens):
        if not token:
            continue
        if token.startswith("^"):
            version = token[1:]
            nums = _numeric_parts(version, expr)
            first_nonzero = next(
                (i for i, n in enumerate(nums) if n != 0), len(nums) - 1
            )
            parts.append(f">={version}")
            parts.append(f"<{_bump(nums, first_nonzero)}")
        elif token.startswith("~") and not token.startswith("~="):
            version = token[1:]
            nums = _numeric_parts(version, expr)
            parts.append(f">={version}")
            parts.append(f"<{_bump(nums, 0 if len(nums) == 1 else 1)}")
        elif token[0].isdigit():
            parts.append(f"=={token}")
        else:
            parts.append(token)
    return ",".join(parts)


def _git_url(remote: str) -> str:
    match = SCP_GIT_PATTERN.match(remote)
    if match and "://" not in remote:
        remote = f"ssh://{match['user']}@{match['host']}/{match['path']}"
    return remote if remote.startswith("git+") else f"git+{remote}"


def poetry_requirement(name: str, spec: PoetryConstraint | PoetryTable) -> str:
    """Convert a Poetry dependency into a requirement string.

    Raises:
        ValueError: If the dependency cannot be expressed as a requirement.
    """
    if isinstance(spec, PoetryConstraint):
        return f"{name}{translate_poetry_constraint(spec.version)}"

    base = f"{name}[{','.join(spec.extras)}]" if spec.extras else name
    if spec.git:
        ref = spec.rev or spec.tag or spec.branch
        url = _git_url(spec.git)
        return f"{base} @ {url}@{ref}" if ref else f"{base} @ {url}"
    if spec.url:
        return f"{base} @ {spec.url}"
    if spec.path:
        raise ValueError(f"path dependency '{name}' is not supported")
    return f"{base}{translate_poetry_constraint(spec.version or '')}"


__all__ = [
    "AddFileSchema",
    "AuthorSchema",
    "CopyFileSchema",
    "IndexSchema",
    "ManifestSchema",
    "PoetryConstraint",
    "PoetryDependency",
    "PoetrySchema",
    "PoetryTable",
    "ProjectSchema",
    "TargetSchema",
    "parse_author",
    "poetry_requirement",
    "translate_poetry_constraint",
]
