"""Tests for engine/buildx.py module.

Tests buildx command composition and execution.
Uses mocked subprocess for build execution tests.
"""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from pyimagegen.builds.engine import BuildEngine, CancelScope, ConvertOptions, Solution
from pyimagegen.builds.platforms import parse_platform
from pyimagegen.compiler.script import CompiledScript, Instruction
from pyimagegen.engine.buildx import (
    BuildxEngine,
    compose_buildx_command,
    format_cache_import,
    parse_build_metadata,
    parse_inspect_platforms,
)
from pyimagegen.errors import BuildCancelledError, BuildExecutionError
from pyimagegen.types import CacheImport, Stage

AMD64 = parse_platform("linux/amd64")
ARMV7 = parse_platform("linux/arm/v7")

INSPECT_OUTPUT = """Name:          default
Driver:        docker

Nodes:
Name:      default
Endpoint:  default
Status:    running
Buildkit:  v0.12.5
Platforms: linux/amd64*, linux/amd64/v2, linux/386, linux/arm64, linux/arm/v7
"""

BUILD_METADATA = {
    "buildx.build.provenance": {
        "buildType": "https://mobyproject.org/buildkit@v1",
        "invocation": {"configSource": {"entryPoint": "Dockerfile"}},
    },
    "buildx.build.ref": "default/default/abc",
    "containerimage.config.digest": "sha256:cfg",
    "containerimage.descriptor": {
        "digest": "sha256:abc",
        "mediaType": "application/vnd.oci.image.manifest.v1+json",
        "size": 1234,
    },
    "containerimage.digest": "sha256:abc",
}


@pytest.fixture
def script() -> CompiledScript:
    """Create a minimal compiled script."""
    return CompiledScript(
        instructions=(Instruction(Stage.RUNTIME, "FROM", "docker.io/python:3.11-slim"),)
    )


@pytest.fixture
def engine(tmp_path) -> BuildxEngine:
    """Create an engine writing logs under tmp_path."""
    return BuildxEngine(
        context_dir=tmp_path / "ctx",
        log_dir=tmp_path / "logs",
        tags=("registry.example.com/demo:1.0",),
        poll_interval=0.01,
    )


def fake_process(returncode: int = 0, running: bool = False) -> MagicMock:
    """Create a mock Popen object."""
    proc = MagicMock()
    proc.poll.return_value = None if running else returncode
    proc.returncode = returncode
    return proc


class TestFormatCacheImport:
    """Tests for format_cache_import function."""

    def test_sorted_attributes(self):
        """Should render the type first, then sorted attributes."""
        cache = CacheImport(type="registry", attrs={"ref": "example.com/app:cache", "mode": "max"})
        assert format_cache_import(cache) == "type=registry,mode=max,ref=example.com/app:cache"

    def test_type_only(self):
        """Should render a bare type."""
        assert format_cache_import(CacheImport(type="gha")) == "type=gha"


class TestComposeBuildxCommand:
    """Tests for compose_buildx_command function."""

    def test_minimal_command(self, tmp_path):
        """Should read the script from stdin and end with the context."""
        cmd = compose_buildx_command("docker", tmp_path, AMD64, tmp_path / "meta.json")
        assert cmd[:7] == ["docker", "buildx", "build", "--file", "-", "--progress", "plain"]
        assert cmd[7:9] == ["--platform", "linux/amd64"]
        assert cmd[-3:] == ["--metadata-file", str(tmp_path / "meta.json"), str(tmp_path)]

    def test_full_command(self, tmp_path):
        """Should pass build args, labels, secrets, ssh, tags and outputs."""
        cmd = compose_buildx_command(
            "docker",
            tmp_path,
            ARMV7,
            tmp_path / "meta.json",
            build_args={"VERSION": "1.0"},
            labels={"team": "core"},
            secrets=["id=pypi_token,src=token.txt"],
            ssh=["default"],
            tags=["demo:1.0"],
            outputs=["type=registry"],
            tag_suffix="-linux-arm-v7",
        )
        assert "--build-arg" in cmd and "VERSION=1.0" in cmd
        assert cmd[cmd.index("--label") + 1] == "team=core"
        assert cmd[cmd.index("--secret") + 1] == "id=pypi_token,src=token.txt"
        assert cmd[cmd.index("--ssh") + 1] == "default"
        assert cmd[cmd.index("--tag") + 1] == "demo:1.0-linux-arm-v7"
        assert cmd[cmd.index("--output") + 1] == "type=registry"

    def test_provenance(self, tmp_path):
        """Should pass the provenance mode when given."""
        cmd = compose_buildx_command(
            "docker", tmp_path, AMD64, tmp_path / "meta.json", provenance="mode=max"
        )
        assert cmd[cmd.index("--provenance") + 1] == "mode=max"


class TestParseBuildMetadata:
    """Tests for parse_build_metadata function."""

    def test_full_metadata(self):
        """Should read the digest, config entries and provenance."""
        solution = parse_build_metadata(BUILD_METADATA)
        assert solution.ref == "sha256:abc"
        assert json.loads(solution.image_config) == {
            "containerimage.config.digest": "sha256:cfg",
            "containerimage.descriptor": BUILD_METADATA["containerimage.descriptor"],
        }
        assert json.loads(solution.build_info) == BUILD_METADATA["buildx.build.provenance"]

    def test_build_ref_fallback(self):
        """Without an image digest the buildx reference should be used."""
        solution = parse_build_metadata({"buildx.build.ref": "default/default/abc"})
        assert solution == Solution(ref="default/default/abc")


class TestParseInspectPlatforms:
    """Tests for parse_inspect_platforms function."""

    def test_platforms_line(self):
        """Should parse the platforms line, dropping markers and duplicates."""
        platforms = parse_inspect_platforms(INSPECT_OUTPUT)
        assert [p.format() for p in platforms] == [
            "linux/amd64",
            "linux/amd64/v2",
            "linux/386",
            "linux/arm64",
            "linux/arm/v7",
        ]

    def test_no_platforms(self):
        """Should return no platforms when the line is absent."""
        assert parse_inspect_platforms("Name: default\n") == []

    def test_bad_entries_skipped(self):
        """Unparseable entries should be skipped."""
        platforms = parse_inspect_platforms("Platforms: linux/amd64, not a/platform/at/all\n")
        assert [p.format() for p in platforms] == ["linux/amd64"]


class TestWorkerPlatforms:
    """Tests for BuildxEngine.worker_platforms."""

    def test_protocol(self, engine):
        """BuildxEngine should be a BuildEngine."""
        assert isinstance(engine, BuildEngine)

    def test_cached(self, engine):
        """Should inspect the builder once."""
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(stdout=INSPECT_OUTPUT)
            first = engine.worker_platforms()
            second = engine.worker_platforms()

        assert first == second
        assert first[0] == AMD64
        mock_run.assert_called_once()

    def test_inspect_failure(self, engine):
        """A failing inspect should raise BuildExecutionError."""
        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = subprocess.CalledProcessError(1, "docker", stderr="no builder")
            with pytest.raises(BuildExecutionError) as exc_info:
                engine.worker_platforms()
        assert exc_info.value.code == "inspect_error"

    def test_missing_binary(self, engine):
        """A missing docker binary should raise BuildExecutionError."""
        with patch("subprocess.run") as mock_run:
            mock_run.side_effect = FileNotFoundError("docker")
            with pytest.raises(BuildExecutionError) as exc_info:
                engine.worker_platforms()
        assert exc_info.value.code == "execution_error"


class TestConvert:
    """Tests for BuildxEngine.convert."""

    def test_single_platform(self, engine, script):
        """Should prepare a command without tag suffix."""
        options = ConvertOptions(build_args={"VERSION": "1"}, target_platform=AMD64)
        conversion = engine.convert(script, options, CancelScope())
        definition = conversion.definition

        assert definition.platform == AMD64
        assert definition.dockerfile == script.render()
        assert "registry.example.com/demo:1.0" in definition.command
        assert "VERSION=1" in definition.command
        assert definition.log_path.parent == engine.log_dir
        assert engine.log_dir.is_dir()

    def test_multi_platform_tags(self, engine, script):
        """Multi-platform builds should suffix tags with the platform."""
        options = ConvertOptions(target_platform=ARMV7, multi_platform=True)
        definition = engine.convert(script, options, CancelScope()).definition
        assert "registry.example.com/demo:1.0-linux-arm-v7" in definition.command

    def test_image_config(self, engine, script):
        """The image config should describe the platform and labels."""
        options = ConvertOptions(labels={"team": "core"}, target_platform=ARMV7)
        conversion = engine.convert(script, options, CancelScope())
        assert json.loads(conversion.image_config) == {
            "architecture": "arm",
            "config": {"Labels": {"team": "core"}},
            "os": "linux",
            "variant": "v7",
        }

    def test_cancelled(self, engine, script):
        """A cancelled scope should stop conversion."""
        cancel = CancelScope()
        cancel.cancel("sibling failed")
        with pytest.raises(BuildCancelledError):
            engine.convert(script, ConvertOptions(target_platform=AMD64), cancel)


class TestSolve:
    """Tests for BuildxEngine.solve with mocked subprocess."""

    @pytest.fixture
    def definition(self, engine, script):
        options = ConvertOptions(target_platform=AMD64)
        return engine.convert(script, options, CancelScope()).definition

    def test_successful_build(self, engine, definition):
        """Should feed the script and return the image digest."""
        definition.metadata_path.write_text(json.dumps({"containerimage.digest": "sha256:abc"}))
        proc = fake_process()

        with patch("subprocess.Popen", return_value=proc) as mock_popen:
            solution = engine.solve(definition, [], CancelScope())

        assert solution.ref == "sha256:abc"
        assert solution.build_info == b""
        proc.stdin.write.assert_called_once_with(definition.dockerfile.encode("utf-8"))
        cmd = mock_popen.call_args.args[0]
        assert cmd[-1] == str(engine.context_dir)
        log = definition.log_path.read_text()
        assert "# Platform: linux/amd64" in log
        assert "# Exit code: 0" in log

    def test_cache_imports_before_context(self, engine, definition):
        """Cache imports should be added before the context argument."""
        with patch("subprocess.Popen", return_value=fake_process()) as mock_popen:
            engine.solve(
                definition,
                [CacheImport(type="registry", attrs={"ref": "example.com/app:cache"})],
                CancelScope(),
            )
        cmd = mock_popen.call_args.args[0]
        assert cmd[-3:-1] == ["--cache-from", "type=registry,ref=example.com/app:cache"]

    def test_missing_metadata(self, engine, definition):
        """A build without metadata should return an empty reference."""
        with patch("subprocess.Popen", return_value=fake_process()):
            assert engine.solve(definition, [], CancelScope()) == Solution(ref="")

    def test_metadata_file_read(self, engine, definition):
        """Image config and provenance should come from the metadata file."""
        definition.metadata_path.write_text(json.dumps(BUILD_METADATA))
        with patch("subprocess.Popen", return_value=fake_process()):
            solution = engine.solve(definition, [], CancelScope())

        assert solution.ref == "sha256:abc"
        assert json.loads(solution.image_config)["containerimage.config.digest"] == "sha256:cfg"
        assert json.loads(solution.build_info)["buildType"] == "https://mobyproject.org/buildkit@v1"

    def test_failed_build(self, engine, definition):
        """A non-zero exit should raise BuildExecutionError."""
        with patch("subprocess.Popen", return_value=fake_process(returncode=1)):
            with pytest.raises(BuildExecutionError) as exc_info:
                engine.solve(definition, [], CancelScope())
        assert exc_info.value.exit_code == 1
        assert exc_info.value.log_path == str(definition.log_path)

    def test_cancelled_build(self, engine, definition):
        """Cancellation should terminate the running process."""
        proc = fake_process(running=True)
        cancel = CancelScope()
        cancel.cancel("sibling failed")

        with patch("subprocess.Popen", return_value=proc):
            with pytest.raises(BuildCancelledError):
                engine.solve(definition, [], cancel)
        proc.terminate.assert_called_once()

    def test_timeout(self, engine, definition):
        """A build running past its timeout should be terminated."""
        engine.timeout = 1
        proc = fake_process(running=True)

        with (
            patch("subprocess.Popen", return_value=proc),
            patch("pyimagegen.engine.buildx.time") as mock_time,
        ):
            mock_time.monotonic.side_effect = [0.0, 5.0, 10.0]
            with pytest.raises(BuildExecutionError) as exc_info:
                engine.solve(definition, [], CancelScope())
        assert exc_info.value.code == "build_timeout"
        proc.terminate.assert_called_once()

    def test_popen_failure(self, engine, definition):
        """A process that cannot start should raise BuildExecutionError."""
        with patch("subprocess.Popen", side_effect=OSError("no docker")):
            with pytest.raises(BuildExecutionError) as exc_info:
                engine.solve(definition, [], CancelScope())
        assert exc_info.value.code == "execution_error"
