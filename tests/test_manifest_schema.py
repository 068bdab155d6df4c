"""Tests for manifest schema validation.

These tests verify the Pydantic models for the project declaration,
build targets, package indices and the Poetry translation.
"""

import pytest
from pydantic import ValidationError

from pyimagegen.manifest.schema import (
    CopyFileSchema,
    IndexSchema,
    PoetryConstraint,
    PoetrySchema,
    PoetryTable,
    ProjectSchema,
    TargetSchema,
    parse_author,
    poetry_requirement,
    translate_poetry_constraint,
)


class TestProjectSchema:
    """Test ProjectSchema validation."""

    def test_aliases(self):
        """Should read hyphenated pyproject keys."""
        project = ProjectSchema.model_validate(
            {
                "name": "app",
                "requires-python": ">=3.9",
                "optional-dependencies": {"web": ["flask"]},
            }
        )
        assert project.requires_python == ">=3.9"
        assert project.optional_dependencies == {"web": ("flask",)}

    def test_name_required(self):
        """Should reject a project without a name."""
        with pytest.raises(ValidationError):
            ProjectSchema.model_validate({"dependencies": ["requests"]})

    def test_ignores_unrelated_keys(self):
        """Should ignore keys the builder does not use."""
        project = ProjectSchema.model_validate({"name": "app", "readme": "README.md"})
        assert project.name == "app"


class TestTargetSchema:
    """Test TargetSchema validation."""

    def test_empty_target(self):
        """Should accept a target with no overrides."""
        target = TargetSchema()
        assert target.flavor is None
        assert target.extras == ()

    def test_environment_alias(self):
        """Should accept 'environment' as an alias for env."""
        target = TargetSchema.model_validate({"environment": {"APP_ENV": "prod"}})
        assert target.env == {"APP_ENV": "prod"}

    def test_unknown_key_rejected(self):
        """Should reject keys that are not target options."""
        with pytest.raises(ValidationError):
            TargetSchema.model_validate({"flavour": "alpine"})

    def test_package_with_whitespace_rejected(self):
        """Should reject package names containing whitespace."""
        with pytest.raises(ValidationError) as exc_info:
            TargetSchema(build_deps=("gcc make",))
        assert "whitespace" in str(exc_info.value)

    def test_invalid_env_key(self):
        """Should reject env keys containing '='."""
        with pytest.raises(ValidationError):
            TargetSchema(env={"A=B": "x"})

    def test_copy_from(self):
        """Should read 'from' into from_."""
        copy = CopyFileSchema.model_validate({"src": "/bin/tool", "dst": "/usr/bin/tool", "from": "tools"})
        assert copy.from_ == "tools"


class TestIndexSchema:
    """Test IndexSchema validation."""

    def test_valid_index(self):
        """Should accept an https index with credentials."""
        index = IndexSchema(url="https://pypi.example.com/simple", username="ci", password="pw")
        assert index.trust is False

    def test_rejects_non_http_url(self):
        """Should reject non-http(s) URLs."""
        with pytest.raises(ValidationError):
            IndexSchema(url="ftp://pypi.example.com/simple")

    def test_password_requires_username(self):
        """Should reject a password without a username."""
        with pytest.raises(ValidationError) as exc_info:
            IndexSchema(url="https://pypi.example.com/simple", password_secret="pw")
        assert "requires a username" in str(exc_info.value)

    def test_invalid_secret_id(self):
        """Should reject secret ids that are not path safe."""
        with pytest.raises(ValidationError):
            IndexSchema(url="https://pypi.example.com/simple", username_secret="../etc")


class TestPoetryTranslation:
    """Test Poetry constraint and dependency translation."""

    @pytest.mark.parametrize(
        ("expr", "expected"),
        [
            ("^3.8", ">=3.8,<4.0"),
            ("^0.2.3", ">=0.2.3,<0.3.0"),
            ("~1.2", ">=1.2,<1.3"),
            ("~1", ">=1,<2"),
            ("1.4.2", "==1.4.2"),
            (">=1.0 <2.0", ">=1.0,<2.0"),
            ("*", ""),
            ("", ""),
        ],
    )
    def test_translate_constraint(self, expr, expected):
        """Should translate caret, tilde and bare constraints."""
        assert translate_poetry_constraint(expr) == expected

    def test_alternatives_rejected(self):
        """Should reject alternative constraints."""
        with pytest.raises(ValueError):
            translate_poetry_constraint("^2.7 || ^3.6")

    def test_git_requirement(self):
        """Should convert scp-style git remotes to git+ssh URLs."""
        spec = PoetryTable(git="git@github.com:org/lib.git", tag="v1.0")
        assert poetry_requirement("lib", spec) == "lib @ git+ssh://git@github.com/org/lib.git@v1.0"

    def test_git_https_with_extras(self):
        """Should include extras on git requirements."""
        spec = PoetryTable(git="https://github.com/org/lib.git", extras=("fast",))
        assert poetry_requirement("lib", spec) == "lib[fast] @ git+https://github.com/org/lib.git"

    def test_path_dependency_rejected(self):
        """Should reject path dependencies."""
        with pytest.raises(ValueError):
            poetry_requirement("lib", PoetryTable(path="../lib"))

    def test_constraint_requirement(self):
        """Should append the translated constraint to the name."""
        assert poetry_requirement("requests", PoetryConstraint(version="^2.31")) == "requests>=2.31,<3.0"

    def test_poetry_to_project(self):
        """Should convert a Poetry table into a project declaration."""
        poetry = PoetrySchema.model_validate(
            {
                "name": "app",
                "authors": ["Jane Doe <jane@example.com>"],
                "dependencies": {
                    "python": "^3.10",
                    "requests": "^2.31",
                    "uvloop": {"version": "^0.19", "optional": True},
                },
            }
        )
        project = poetry.to_project()
        assert project.requires_python == ">=3.10,<4.0"
        assert project.dependencies == ("requests>=2.31,<3.0",)
        assert project.authors[0].display() == "Jane Doe <jane@example.com>"

    def test_dependency_of_wrong_shape(self):
        """Should reject dependency values that are neither strings nor tables."""
        with pytest.raises(ValidationError):
            PoetrySchema.model_validate({"name": "app", "dependencies": {"requests": 2}})


class TestParseAuthor:
    """Test parse_author function."""

    def test_name_and_email(self):
        """Should split name and email."""
        author = parse_author("Jane Doe <jane@example.com>")
        assert author.name == "Jane Doe"
        assert author.email == "jane@example.com"

    def test_name_only(self):
        """Should accept a bare name."""
        author = parse_author("Jane Doe")
        assert author.email is None
        assert author.display() == "Jane Doe"
