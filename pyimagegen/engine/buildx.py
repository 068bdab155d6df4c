"""Build engine backed by ``docker buildx build``.

This module handles:
- Composing one ``docker buildx build`` command per target platform
- Feeding the compiled script on stdin
- Capturing stdout/stderr to a per-platform log file
- Enforcing build timeouts and honouring the cancellation scope
- Discovering worker platforms with ``docker buildx inspect``
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pyimagegen.builds.engine import CancelScope, Conversion, ConvertOptions, Solution
from pyimagegen.builds.platforms import Platform, host_platform, parse_platform
from pyimagegen.compiler.script import CompiledScript
from pyimagegen.errors import (
    BuildCancelledError,
    BuildExecutionError,
    PlatformParseError,
)
from pyimagegen.types import CacheImport

logger = logging.getLogger(__name__)

# How long a terminated process may take to exit before it is killed
TERMINATE_GRACE_SECONDS = 10
REF_METADATA_KEYS = ("containerimage.digest", "buildx.build.ref")
IMAGE_CONFIG_METADATA_KEYS = ("containerimage.config.digest", "containerimage.descriptor")
PROVENANCE_METADATA_KEY = "buildx.build.provenance"


@dataclass(frozen=True)
class BuildxDefinition:
    """A buildx invocation for one platform.

    Attributes:
        platform: Target platform.
        dockerfile: Script text fed on stdin.
        command: Command without cache imports (added at solve time).
        log_path: Log file for the build output.
        metadata_path: File buildx writes build metadata to.
    """

    platform: Platform
    dockerfile: str
    command: tuple[str, ...]
    log_path: Path
    metadata_path: Path


def format_cache_import(cache: CacheImport) -> str:
    """Format a cache import as a ``--cache-from`` value."""
    return ",".join([f"type={cache.type}", *(f"{k}={v}" for k, v in sorted(cache.attrs.items()))])


def parse_build_metadata(metadata: Mapping[str, Any]) -> Solution:
    """Read the reference, image config and provenance from buildx metadata.

    The image config holds the config digest and image descriptor entries.
    The build info is the provenance entry, present when buildx records it.
    Entries are serialised as sorted JSON; missing entries stay empty.
    """
    ref = next((str(metadata[key]) for key in REF_METADATA_KEYS if metadata.get(key)), "")
    image_config = {key: metadata[key] for key in IMAGE_CONFIG_METADATA_KEYS if metadata.get(key)}
    provenance = metadata.get(PROVENANCE_METADATA_KEY)
    return Solution(
        ref=ref,
        image_config=_dump(image_config) if image_config else b"",
        build_info=_dump(provenance) if provenance else b"",
    )


def _dump(value: Any) -> bytes:
    return json.dumps(value, sort_keys=True).encode("utf-8")


def platform_slug(platform: Platform) -> str:
    return platform.format().replace("/", "-")


def compose_buildx_command(
    docker_binary: str,
    context_dir: Path,
    platform: Platform,
    metadata_path: Path,
    build_args: Mapping[str, str] | None = None,
    labels: Mapping[str, str] | None = None,
    secrets: Sequence[str] = (),
    ssh: Sequence[str] = (),
    tags: Sequence[str] = (),
    outputs: Sequence[str] = (),
    tag_suffix: str = "",
    provenance: str | None = None,
) -> list[str]:
    """Compose the ``docker buildx build`` command for one platform.

    Args:
        docker_binary: Docker CLI executable.
        context_dir: Build context directory.
        platform: Target platform.
        metadata_path: File buildx writes build metadata to.
        build_args: Build arguments.
        labels: Extra image labels.
        secrets: ``--secret`` values, passed through.
        ssh: ``--ssh`` values, passed through.
        tags: Image tags.
        outputs: ``--output`` values, passed through.
        tag_suffix: Suffix appended to every tag.
        provenance: ``--provenance`` value (e.g. ``mode=max``), if any.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = [docker_binary, "buildx", "build", "--file", "-", "--progress", "plain"]
    cmd += ["--platform", platform.format()]

    for key, value in (build_args or {}).items():
        cmd += ["--build-arg", f"{key}={value}"]
    for key, value in (labels or {}).items():
        cmd += ["--label", f"{key}={value}"]
    for secret in secrets:
        cmd += ["--secret", secret]
    for agent in ssh:
        cmd += ["--ssh", agent]
    for tag in tags:
        cmd += ["--tag", f"{tag}{tag_suffix}"]
    for output in outputs:
        cmd += ["--output", output]
    if provenance:
        cmd += ["--provenance", provenance]

    cmd += ["--metadata-file", str(metadata_path), str(context_dir)]
    return cmd


def parse_inspect_platforms(output: str) -> list[Platform]:
    """Parse worker platforms from ``docker buildx inspect`` output.

    Every ``Platforms:`` line is read in order; entries that cannot be
    parsed are skipped.
    """
    platforms: list[Platform] = []
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if not sep or key.strip() != "Platforms":
            continue
        for entry in value.split(","):
            entry = entry.strip().rstrip("*")
            if not entry:
                continue
            try:
                parsed = parse_platform(entry)
            except PlatformParseError:
                logger.debug("Skipping unparseable worker platform %s", entry)
                continue
            if parsed not in platforms:
                platforms.append(parsed)
    return platforms


class BuildxEngine:
    """BuildEngine driving ``docker buildx build`` in subprocesses.

    Args:
        context_dir: Build context directory.
        log_dir: Directory for per-platform build logs.
        docker_binary: Docker CLI executable.
        timeout: Per-platform build timeout in seconds (None = no timeout).
        secrets: ``--secret`` values passed to every build.
        ssh: ``--ssh`` values passed to every build.
        tags: Image tags.
        outputs: ``--output`` values passed to every build.
        provenance: ``--provenance`` value passed to every build.
        poll_interval: Seconds between cancellation checks.
    """

    def __init__(
        self,
        context_dir: Path,
        log_dir: Path,
        docker_binary: str = "docker",
        timeout: int | None = None,
        secrets: Sequence[str] = (),
        ssh: Sequence[str] = (),
        tags: Sequence[str] = (),
        outputs: Sequence[str] = (),
        provenance: str | None = None,
        poll_interval: float = 0.5,
    ) -> None:
        self.context_dir = context_dir
        self.log_dir = log_dir
        self.docker_binary = docker_binary
        self.timeout = timeout
        self.secrets = tuple(secrets)
        self.ssh = tuple(ssh)
        self.tags = tuple(tags)
        self.outputs = tuple(outputs)
        self.provenance = provenance
        self.poll_interval = poll_interval
        self._workers: list[Platform] | None = None

    def worker_platforms(self) -> list[Platform]:
        """Return the platforms of the current buildx builder.

        Raises:
            BuildExecutionError: If ``docker buildx inspect`` fails.
        """
        if self._workers is not None:
            return self._workers

        cmd = [self.docker_binary, "buildx", "inspect"]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=60,
                check=True,
            )
        except subprocess.TimeoutExpired as e:
            raise BuildExecutionError(
                "docker buildx inspect timed out after 60s",
                exit_code=-1,
                code="timeout",
            ) from e
        except subprocess.CalledProcessError as e:
            raise BuildExecutionError(
                f"docker buildx inspect failed: {e.stderr}",
                exit_code=e.returncode,
                code="inspect_error",
            ) from e
        except OSError as e:
            raise BuildExecutionError(
                f"Failed to run docker buildx inspect: {e}",
                code="execution_error",
            ) from e

        self._workers = parse_inspect_platforms(result.stdout)
        logger.debug(
            "Builder platforms: %s", ", ".join(p.format() for p in self._workers)
        )
        return self._workers

    def convert(
        self,
        script: CompiledScript,
        options: ConvertOptions,
        cancel: CancelScope,
    ) -> Conversion:
        """Prepare the buildx invocation for options.target_platform."""
        platform = options.target_platform or host_platform()
        cancel.raise_if_cancelled(platform.format())

        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        slug = platform_slug(platform)
        log_path = self.log_dir / f"{stamp}-{slug}.log"
        metadata_path = self.log_dir / f"{stamp}-{slug}.metadata.json"

        command = compose_buildx_command(
            docker_binary=self.docker_binary,
            context_dir=self.context_dir,
            platform=platform,
            metadata_path=metadata_path,
            build_args=options.build_args,
            labels=options.labels,
            secrets=self.secrets,
            ssh=self.ssh,
            tags=self.tags,
            outputs=self.outputs,
            tag_suffix=f"-{slug}" if options.multi_platform else "",
            provenance=self.provenance,
        )
        definition = BuildxDefinition(
            platform=platform,
            dockerfile=script.render(),
            command=tuple(command),
            log_path=log_path,
            metadata_path=metadata_path,
        )
        image_config = {
            **platform.to_dict(),
            "config": {"Labels": dict(options.labels)},
        }
        return Conversion(
            definition=definition,
            image_config=json.dumps(image_config, sort_keys=True).encode("utf-8"),
        )

    def solve(
        self,
        definition: BuildxDefinition,
        cache_imports: Sequence[CacheImport],
        cancel: CancelScope,
    ) -> Solution:
        """Run the build and return what buildx reports about it.

        Raises:
            BuildCancelledError: If the scope is cancelled while building.
            BuildExecutionError: If the build fails, times out, or cannot start.
        """
        platform_id = definition.platform.format()
        cmd = list(definition.command)
        context_arg = cmd.pop()
        for cache in cache_imports:
            cmd += ["--cache-from", format_cache_import(cache)]
        cmd.append(context_arg)

        cmd_str = shlex.join(cmd)
        logger.info("Executing build for %s: %s", platform_id, cmd_str)
        started_at = datetime.now(timezone.utc)

        with definition.log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Platform: {platform_id}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.PIPE,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                )
            except OSError as e:
                error_message = f"Failed to execute build: {e}"
                logger.error(error_message)
                raise BuildExecutionError(
                    error_message, code="execution_error", log_path=str(definition.log_path)
                ) from e

            exit_code = self._wait(proc, definition, cancel)

        finished_at = datetime.now(timezone.utc)
        with definition.log_path.open("a") as log_file:
            log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
            log_file.write(f"# Exit code: {exit_code}\n")
            duration = (finished_at - started_at).total_seconds()
            log_file.write(f"# Duration: {duration:.1f}s\n")

        if exit_code != 0:
            error_message = f"Build for {platform_id} failed with exit code {exit_code}"
            logger.error("%s. See log: %s", error_message, definition.log_path)
            raise BuildExecutionError(
                error_message, exit_code=exit_code, log_path=str(definition.log_path)
            )
        return self._read_metadata(definition)

    def _wait(
        self,
        proc: subprocess.Popen[bytes],
        definition: BuildxDefinition,
        cancel: CancelScope,
    ) -> int:
        platform_id = definition.platform.format()
        assert proc.stdin is not None
        try:
            proc.stdin.write(definition.dockerfile.encode("utf-8"))
            proc.stdin.close()
        except BrokenPipeError:
            # The process exited early; its exit code reports the failure
            pass

        deadline = time.monotonic() + self.timeout if self.timeout else None
        while proc.poll() is None:
            if cancel.wait(self.poll_interval):
                logger.warning("Cancelling build for %s", platform_id)
                self._terminate(proc)
                raise BuildCancelledError(platform_id)
            if deadline is not None and time.monotonic() > deadline:
                self._terminate(proc)
                error_message = f"Build for {platform_id} timed out after {self.timeout} seconds"
                logger.error("%s. See log: %s", error_message, definition.log_path)
                raise BuildExecutionError(
                    error_message,
                    exit_code=-1,
                    code="build_timeout",
                    log_path=str(definition.log_path),
                )
        return proc.returncode

    @staticmethod
    def _terminate(proc: subprocess.Popen[bytes]) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    @staticmethod
    def _read_metadata(definition: BuildxDefinition) -> Solution:
        try:
            metadata = json.loads(definition.metadata_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("No build metadata for %s: %s", definition.platform.format(), e)
            return Solution(ref="")
        return parse_build_metadata(metadata)


__all__ = [
    "BuildxDefinition",
    "BuildxEngine",
    "compose_buildx_command",
    "format_cache_import",
    "parse_build_metadata",
    "parse_inspect_platforms",
]
