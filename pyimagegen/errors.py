"""Error definitions for pyimagegen.

This module defines structured error types with stable codes so that
callers (the CLI, library users, tests) can handle failures
programmatically. Every error carries a ``details`` dict with the
context needed to act on it without a debugger (target, field,
platform, operation).

Categories:
- decode: the manifest could not be decoded or validated
- resolution: the target could not be merged into a build configuration
- compile: the configuration could not be rendered into a script
- orchestration: the build engine failed for one of the platforms
"""

from typing import Any

# Error code constants
MANIFEST_DECODE = "manifest_decode"
RESOLUTION_ERROR = "resolution_error"
TARGET_NOT_FOUND = "target_not_found"
INVALID_VERSION = "invalid_version"
VERSION_MISMATCH = "version_mismatch"
UNKNOWN_EXTRA = "unknown_extra"
CONFLICTING_OPTIONS = "conflicting_options"
LOCK_FILE_ERROR = "lock_file_error"
UNKNOWN_FLAVOR = "unknown_flavor"
COMPILE_ERROR = "compile_error"
PLACEHOLDER_ERROR = "placeholder"
ORCHESTRATION_ERROR = "orchestration_error"
PLATFORM_BUILD_ERROR = "platform_build_failed"
PLATFORM_PARSE_ERROR = "platform_parse_error"
CACHE_OPTIONS_ERROR = "cache_options_error"
BUILD_CANCELLED = "build_cancelled"
BUILD_EXECUTION_ERROR = "build_error"
CONTEXT_READ_ERROR = "context_read_error"


class ImageGenError(Exception):
    """Base error for all pyimagegen failures.

    Attributes:
        code: Stable error code for programmatic handling.
        details: Context about where the error happened.
    """

    def __init__(self, message: str, code: str = "error", **details: Any) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = {
            k: v for k, v in details.items() if v is not None
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            result["details"] = self.details
        return result


class ManifestDecodeError(ImageGenError):
    """Raised when the manifest is malformed or fails schema validation."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, code=MANIFEST_DECODE, field=field)
        self.field = field


class ResolutionError(ImageGenError):
    """Base error for configuration resolution failures."""

    def __init__(
        self,
        message: str,
        code: str = RESOLUTION_ERROR,
        target: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message, code=code, target=target, field=field)
        self.target = target
        self.field = field


class TargetNotFoundError(ResolutionError):
    """Raised when a named target does not exist in the manifest."""

    def __init__(self, target: str) -> None:
        super().__init__(
            f"Target not found in manifest: {target}",
            code=TARGET_NOT_FOUND,
            target=target,
        )


class InvalidVersionError(ResolutionError):
    """Raised when a version or version constraint cannot be parsed."""

    def __init__(
        self, message: str, target: str | None = None, field: str | None = None
    ) -> None:
        super().__init__(message, code=INVALID_VERSION, target=target, field=field)


class VersionMismatchError(ResolutionError):
    """Raised when no interpreter version satisfies the project constraint."""

    def __init__(
        self, message: str, target: str | None = None, field: str | None = None
    ) -> None:
        super().__init__(message, code=VERSION_MISMATCH, target=target, field=field)


class UnknownExtraError(ResolutionError):
    """Raised when a target requests an undeclared optional-dependency group."""

    def __init__(self, extra: str, target: str | None = None) -> None:
        super().__init__(
            f"Unknown extra '{extra}': not declared in project.optional-dependencies",
            code=UNKNOWN_EXTRA,
            target=target,
            field="extras",
        )
        self.extra = extra


class ConflictingOptionsError(ResolutionError):
    """Raised when mutually exclusive target options are both set."""

    def __init__(self, message: str, target: str | None = None) -> None:
        super().__init__(
            message, code=CONFLICTING_OPTIONS, target=target, field="requirements"
        )


class LockFileError(ResolutionError):
    """Raised when the dependency lock file cannot be read."""

    def __init__(self, message: str, path: str, target: str | None = None) -> None:
        super().__init__(
            message, code=LOCK_FILE_ERROR, target=target, field="requirements"
        )
        self.path = path
        self.details["path"] = path


class CompileError(ImageGenError):
    """Raised when a configuration cannot be rendered into a script."""

    def __init__(self, message: str, code: str = COMPILE_ERROR, **details: Any) -> None:
        super().__init__(message, code=code, **details)


class UnknownFlavorError(CompileError):
    """Raised when a base-image flavor is not recognised.

    The resolver raises it while validating a target; the compiler raises
    it again if handed a configuration that bypassed resolution.
    """

    def __init__(self, flavor: str, target: str | None = None) -> None:
        super().__init__(
            f"Unknown flavor '{flavor}'",
            code=UNKNOWN_FLAVOR,
            target=target,
            field="flavor",
        )
        self.flavor = flavor


class PlaceholderError(CompileError):
    """Raised when a placeholder expression in an env or label is invalid."""

    def __init__(self, message: str, value: str) -> None:
        super().__init__(message, code=PLACEHOLDER_ERROR, value=value)


class OrchestrationError(ImageGenError):
    """Base error for multi-platform build failures."""

    def __init__(
        self, message: str, code: str = ORCHESTRATION_ERROR, **details: Any
    ) -> None:
        super().__init__(message, code=code, **details)


class PlatformBuildError(OrchestrationError):
    """Raised when the build for one platform fails, failing the whole build."""

    def __init__(self, platform: str, operation: str, cause: BaseException) -> None:
        super().__init__(
            f"Build failed for platform {platform} during {operation}: {cause}",
            code=PLATFORM_BUILD_ERROR,
            platform=platform,
            operation=operation,
        )
        self.platform = platform
        self.operation = operation


class PlatformParseError(OrchestrationError):
    """Raised when a platform specifier is malformed."""

    def __init__(self, value: str, reason: str) -> None:
        super().__init__(
            f"Invalid platform '{value}': {reason}",
            code=PLATFORM_PARSE_ERROR,
            value=value,
        )


class CacheOptionsError(OrchestrationError):
    """Raised when cache import directives cannot be parsed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code=CACHE_OPTIONS_ERROR)


class BuildCancelledError(OrchestrationError):
    """Raised inside a platform task when a sibling task has failed."""

    def __init__(self, platform: str) -> None:
        super().__init__(
            f"Build cancelled for platform {platform}",
            code=BUILD_CANCELLED,
            platform=platform,
        )


class BuildExecutionError(OrchestrationError):
    """Raised when the build engine process fails."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = BUILD_EXECUTION_ERROR,
        log_path: str | None = None,
    ) -> None:
        super().__init__(message, code=code, exit_code=exit_code, log_path=log_path)
        self.exit_code = exit_code
        self.log_path = log_path


class ContextReadError(ImageGenError):
    """Raised when a file cannot be read from the build context."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, code=CONTEXT_READ_ERROR, path=path)
        self.path = path


__all__ = [
    "BUILD_CANCELLED",
    "BUILD_EXECUTION_ERROR",
    "CACHE_OPTIONS_ERROR",
    "COMPILE_ERROR",
    "CONFLICTING_OPTIONS",
    "CONTEXT_READ_ERROR",
    "INVALID_VERSION",
    "LOCK_FILE_ERROR",
    "MANIFEST_DECODE",
    "ORCHESTRATION_ERROR",
    "PLACEHOLDER_ERROR",
    "PLATFORM_BUILD_ERROR",
    "PLATFORM_PARSE_ERROR",
    "RESOLUTION_ERROR",
    "TARGET_NOT_FOUND",
    "UNKNOWN_EXTRA",
    "UNKNOWN_FLAVOR",
    "VERSION_MISMATCH",
    "BuildCancelledError",
    "BuildExecutionError",
    "CacheOptionsError",
    "CompileError",
    "ConflictingOptionsError",
    "ContextReadError",
    "ImageGenError",
    "InvalidVersionError",
    "LockFileError",
    "ManifestDecodeError",
    "OrchestrationError",
    "PlaceholderError",
    "PlatformBuildError",
    "PlatformParseError",
    "ResolutionError",
    "TargetNotFoundError",
    "UnknownExtraError",
    "UnknownFlavorError",
    "VersionMismatchError",
]
