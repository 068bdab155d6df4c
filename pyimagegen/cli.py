"""Thin CLI wrapper for pyimagegen.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules. Logs go to stderr so
that printed scripts and exports can be piped.
"""

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from pyimagegen import __version__
from pyimagegen.config import Settings, get_settings, print_settings_json
from pyimagegen.errors import ImageGenError
from pyimagegen.types import ExportFormat

if TYPE_CHECKING:
    from pyimagegen.resolver.models import ResolvedConfig

app = typer.Typer(
    name="pyimagegen",
    help="Python Image Generator - container images from pyproject.toml",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Route log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"pyimagegen version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Python Image Generator - container images from pyproject.toml."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


def fail(message: str) -> typer.Exit:
    """Print an error and return the exit exception to raise."""
    err_console.print(f"[red]Error: {escape(message)}[/red]")
    return typer.Exit(code=1)


def parse_key_values(entries: list[str] | None, option: str) -> dict[str, str]:
    """Parse repeated KEY=VALUE options."""
    result: dict[str, str] = {}
    for entry in entries or []:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{entry}'", param_hint=option)
        result[key] = value
    return result


def _manifest_filename(file: Path | None, settings: Settings) -> str:
    return str(file) if file is not None else settings.manifest_filename


def _resolve(
    context: Path, filename: str, target: str, build_args: dict[str, str]
) -> "ResolvedConfig":
    from pyimagegen.builds.context import LocalContext
    from pyimagegen.builds.frontend import target_from_build_args
    from pyimagegen.manifest.io import load_manifest_bytes
    from pyimagegen.resolver.service import resolve_config

    local = LocalContext(context)
    manifest = load_manifest_bytes(local.read_manifest(filename))
    return resolve_config(
        manifest,
        target=target or target_from_build_args(build_args),
        read_pinned_version=local.read_pinned_interpreter_version,
        read_lock_file=local.read_dependency_lock_file,
    )


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.out(print_settings_json(settings), highlight=False)
        return

    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Manifest:[/bold]")
    console.print(f"  Manifest filename:   {settings.manifest_filename}")
    console.print(f"  Default target:      {settings.target or '(first target)'}")
    console.print()
    console.print("[bold]Platforms:[/bold]")
    console.print(f"  Platforms:           {settings.platforms or '(engine default)'}")
    parallel = settings.max_parallel_platforms or "(one per platform)"
    console.print(f"  Max parallel:        {parallel}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Log directory:       {settings.log_dir}")
    console.print(f"  Docker binary:       {settings.docker_binary}")
    console.print(f"  Build timeout (s):   {settings.build_timeout}")


@app.command()
def targets(
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Manifest file, relative to the context"),
    ] = None,
    context: Annotated[
        Path,
        typer.Option("--context", "-c", help="Build context directory"),
    ] = Path("."),
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List the build targets declared in the manifest."""
    from pyimagegen.builds.context import LocalContext
    from pyimagegen.manifest.io import load_manifest_bytes

    settings = get_settings()
    try:
        raw = LocalContext(context).read_manifest(_manifest_filename(file, settings))
        manifest = load_manifest_bytes(raw)
    except ImageGenError as e:
        raise fail(str(e)) from None

    names = manifest.target_names()
    if json_output:
        output = [
            {
                "name": name,
                "default": i == 0,
                "flavor": manifest.targets[name].flavor,
                "python_version": manifest.targets[name].python_version,
            }
            for i, name in enumerate(names)
        ]
        console.out(json.dumps(output, indent=2), highlight=False)
        return

    if not names:
        console.print("[yellow]No targets declared; builds use project defaults[/yellow]")
        return

    console.print(f"[bold]Found {len(names)} target(s) in {escape(manifest.project.name)}:[/bold]")
    for i, name in enumerate(names):
        marker = " [dim](default)[/dim]" if i == 0 else ""
        spec = manifest.targets[name]
        details = ", ".join(
            part
            for part in (spec.flavor, f"python {spec.python_version}" if spec.python_version else "")
            if part
        )
        suffix = f" - {escape(details)}" if details else ""
        console.print(f"  [green]{escape(name)}[/green]{marker}{suffix}")


@app.command()
def resolve(
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Manifest file, relative to the context"),
    ] = None,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="Build target (default: first target)"),
    ] = None,
    context: Annotated[
        Path,
        typer.Option("--context", "-c", help="Build context directory"),
    ] = Path("."),
    fmt: Annotated[
        ExportFormat,
        typer.Option("--format", help="Output format"),
    ] = ExportFormat.JSON,
) -> None:
    """Show the resolved configuration of a target."""
    from pyimagegen.resolver.export import export_config

    settings = get_settings()
    try:
        resolved = _resolve(
            context, _manifest_filename(file, settings), target or settings.target or "", {}
        )
    except ImageGenError as e:
        raise fail(str(e)) from None
    console.out(export_config(resolved, fmt).rstrip("\n"), highlight=False)


@app.command()
def build(
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Manifest file, relative to the context"),
    ] = None,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="Build target (default: first target)"),
    ] = None,
    context: Annotated[
        Path,
        typer.Option("--context", "-c", help="Build context directory"),
    ] = Path("."),
    dockerfile: Annotated[
        bool,
        typer.Option("--dockerfile", help="Print the compiled build script"),
    ] = False,
    graph: Annotated[
        bool,
        typer.Option("--graph", help="Print the structured build script as JSON"),
    ] = False,
    execute: Annotated[
        bool | None,
        typer.Option(
            "--execute/--no-execute",
            help="Run the build (default: only when nothing is printed)",
        ),
    ] = None,
    platform: Annotated[
        str | None,
        typer.Option("--platform", "-p", help="Comma-separated target platforms"),
    ] = None,
    build_arg: Annotated[
        list[str] | None,
        typer.Option("--build-arg", help="Build argument KEY=VALUE (can be repeated)"),
    ] = None,
    label: Annotated[
        list[str] | None,
        typer.Option("--label", help="Image label KEY=VALUE (can be repeated)"),
    ] = None,
    cache_from: Annotated[
        list[str] | None,
        typer.Option("--cache-from", help="Registry cache reference (can be repeated)"),
    ] = None,
    secret: Annotated[
        list[str] | None,
        typer.Option("--secret", help="Build secret, passed to buildx (can be repeated)"),
    ] = None,
    ssh: Annotated[
        list[str] | None,
        typer.Option("--ssh", help="SSH agent socket or keys, passed to buildx"),
    ] = None,
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", help="Image tag (can be repeated)"),
    ] = None,
    output: Annotated[
        list[str] | None,
        typer.Option("--output", "-o", help="Output destination, passed to buildx"),
    ] = None,
    provenance: Annotated[
        str | None,
        typer.Option("--provenance", help="Provenance attestation, passed to buildx"),
    ] = None,
    max_parallel: Annotated[
        int | None,
        typer.Option("--max-parallel", min=1, help="Maximum platforms built at once"),
    ] = None,
) -> None:
    """Compile the manifest and build the image.

    --dockerfile and --graph print the compiled script; the build itself
    runs when --execute is given, or when neither print option is.
    """
    from pyimagegen.builds.context import LocalContext
    from pyimagegen.builds.frontend import (
        BUILD_ARG_PREFIX,
        LABEL_PREFIX,
        TARGET_BUILD_ARG,
        build as run_build,
    )
    from pyimagegen.compiler import compile_script
    from pyimagegen.engine.buildx import BuildxEngine

    settings = get_settings()
    filename = _manifest_filename(file, settings)
    selected = target or settings.target or ""
    build_args = parse_key_values(build_arg, "--build-arg")
    if selected:
        build_args = {k: v for k, v in build_args.items() if k.upper() != TARGET_BUILD_ARG}
        build_args[TARGET_BUILD_ARG] = selected
    labels = parse_key_values(label, "--label")
    do_execute = execute if execute is not None else not (dockerfile or graph)

    try:
        if dockerfile or graph:
            resolved = _resolve(context, filename, selected, build_args)
            script = compile_script(resolved, build_args)
            if dockerfile:
                console.out(script.render(), end="", highlight=False)
            if graph:
                console.out(script.to_json(), highlight=False)

        if not do_execute:
            return

        options: dict[str, str] = {"filename": filename}
        options.update({f"{BUILD_ARG_PREFIX}{k}": v for k, v in build_args.items()})
        options.update({f"{LABEL_PREFIX}{k}": v for k, v in labels.items()})
        platforms = platform or settings.platforms
        if platforms:
            options["platform"] = platforms
        if cache_from:
            options["cache-from"] = ",".join(cache_from)

        engine = BuildxEngine(
            context_dir=context.resolve(),
            log_dir=settings.log_dir,
            docker_binary=settings.docker_binary,
            timeout=settings.build_timeout,
            secrets=secret or [],
            ssh=ssh or [],
            tags=tag or [],
            outputs=output or [],
            provenance=provenance,
        )
        result = run_build(
            engine,
            LocalContext(context),
            options,
            max_workers=max_parallel or settings.max_parallel_platforms,
        )
    except ImageGenError as e:
        raise fail(str(e)) from None

    if result.refs:
        console.print(f"[green]Built {len(result.refs)} platform(s):[/green]")
        for platform_id, ref in result.refs.items():
            console.print(f"  {escape(platform_id)}: {escape(ref or '(no reference)')}")
    else:
        console.print(f"[green]Built:[/green] {escape(result.ref or '(no reference)')}")


__all__ = ["app"]
