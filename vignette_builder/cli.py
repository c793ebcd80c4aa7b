"""
Vignette build CLI

Compiles vignettes to HTML, skipping those already rendered, and prints
cross-links into the vignette collection.

Commands:
    compile - Compile vignettes (all, or the named ones plus their dependencies)
    link    - Print the canonical link to a vignette or one of its sections
    events  - Show recent build events

Examples:\n

    vignette-build compile                          # Everything in vignettes.yaml

    vignette-build compile reads --jobs 4           # 'reads' and what it depends on

    vignette-build compile --policy collect_all     # Report every failure

    vignette-build link reads -s "Quality control"  # reads.html#quality-control
"""

import json
import os
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from vignette_builder.contexts.compiling import (
    DEFAULT_RENDERER,
    ArtifactCache,
    CompilationError,
    FailurePolicy,
    FreshnessPolicy,
    LocalFileSystem,
    ManifestError,
    ProcessRunner,
    RenderFailure,
    Target,
    TaskExecutor,
)
from vignette_builder.contexts.compiling.logger import setup_compiling_logger
from vignette_builder.contexts.linking import InvalidLinkError, LinkResolver
from vignette_builder.utils import event_logging
from vignette_builder.utils.manifest import (
    VIGNETTE_MANIFEST,
    VIGNETTE_SOURCE_EXT,
    Manifest,
    discover_targets,
    load_manifest,
    parse_renderer,
)
from vignette_builder.utils.timestamp import format_timestamp, now

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "outs/logs"))
VIGNETTE_WORKDIR = Path(os.getenv("VIGNETTE_WORKDIR", "."))
VIGNETTE_RENDERER = os.getenv("VIGNETTE_RENDERER")
VIGNETTE_FRESHNESS = os.getenv("VIGNETTE_FRESHNESS", FreshnessPolicy.EXISTS.value)
VIGNETTE_FAILURE_POLICY = os.getenv("VIGNETTE_FAILURE_POLICY", FailurePolicy.FAIL_FAST.value)
VIGNETTE_TIMEOUT = float(os.getenv("VIGNETTE_TIMEOUT")) if os.getenv("VIGNETTE_TIMEOUT") else None

app = typer.Typer(
    help="Compile vignettes to HTML and build cross-links between them",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _load_manifest_or_none(manifest_path: Optional[Path]) -> Optional[Manifest]:
    """Explicit paths must exist; the default manifest is optional."""
    if manifest_path is not None:
        return load_manifest(manifest_path)
    if VIGNETTE_MANIFEST.exists():
        return load_manifest(VIGNETTE_MANIFEST)
    return None


def _select_targets(
    manifest: Optional[Manifest], names: Optional[List[str]], workdir: Path
) -> List[Target]:
    if manifest is not None:
        return manifest.select(names) if names else list(manifest.targets)
    if names:
        return [Target(name=name, source_ext=VIGNETTE_SOURCE_EXT) for name in names]
    return discover_targets(workdir)


@app.command("compile")
def compile_command(
    names: Annotated[
        Optional[List[str]],
        typer.Argument(help="Vignettes to compile (default: all)"),
    ] = None,
    manifest_path: Annotated[
        Optional[Path],
        typer.Option("--manifest", "-m", help="Vignette manifest (default: vignettes.yaml)"),
    ] = None,
    workdir: Annotated[
        Optional[Path],
        typer.Option("--workdir", "-w", help="Directory holding sources and outputs"),
    ] = None,
    jobs: Annotated[
        int,
        typer.Option("--jobs", "-j", help="Renderers to run in parallel", min=1),
    ] = 1,
    policy: Annotated[
        Optional[FailurePolicy],
        typer.Option("--policy", help="Stop at the first failure or collect all of them"),
    ] = None,
    freshness: Annotated[
        Optional[FreshnessPolicy],
        typer.Option("--freshness", help="Skip when output exists, or only when newer than source"),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Seconds before a renderer is stopped", min=0),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug output on the console"),
    ] = False,
):
    """
    Compile vignettes to HTML.

    A vignette whose HTML already exists is skipped; delete the HTML to force
    a rebuild (or use --freshness mtime).

    Examples:\n

        $ vignette-build compile                      # Compile everything

        $ vignette-build compile intro reads -j 2     # Two vignettes in parallel
    """
    workdir = workdir if workdir is not None else VIGNETTE_WORKDIR
    policy = policy if policy is not None else FailurePolicy(VIGNETTE_FAILURE_POLICY)
    freshness = freshness if freshness is not None else FreshnessPolicy(VIGNETTE_FRESHNESS)
    timeout = timeout if timeout is not None else VIGNETTE_TIMEOUT

    try:
        manifest = _load_manifest_or_none(manifest_path)
        targets = _select_targets(manifest, names, workdir)
    except ManifestError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not targets:
        typer.secho("Nothing to compile.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=0)

    if VIGNETTE_RENDERER:
        renderer = parse_renderer(VIGNETTE_RENDERER)
    else:
        renderer = manifest.renderer if manifest is not None else DEFAULT_RENDERER

    setup_compiling_logger(LOGS_PATH / f"build_{now()}", renderer=renderer, verbose=verbose)

    executor = TaskExecutor(
        renderer=renderer,
        cache=ArtifactCache(LocalFileSystem(workdir), policy=freshness),
        runner=ProcessRunner(cwd=workdir, timeout_s=timeout),
        events_file=event_logging.BUILD_EVENTS_FILE,
    )

    typer.secho(f"\nCompiling {len(targets)} vignette(s)", fg=typer.colors.BLUE, bold=True)
    typer.echo("")

    try:
        report = executor.compile_all(targets, policy=policy, jobs=jobs)
    except RenderFailure as e:
        typer.secho(f"✗ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    except CompilationError as e:
        typer.secho(f"Error: {e}\n", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    typer.echo(f"  Compiled: {len(report.succeeded)}")
    typer.echo(f"  Cached:   {len(report.cached)}")

    if report.ok:
        typer.secho("✓ Build succeeded", fg=typer.colors.GREEN, bold=True)
        raise typer.Exit(code=0)

    typer.secho(
        f"✗ Build failed: {len(report.failed)} failed, {len(report.skipped)} skipped",
        fg=typer.colors.RED,
        bold=True,
    )
    for result in report.failed + report.skipped:
        typer.secho(f"\n{result.target.source_path}:", fg=typer.colors.RED, err=True)
        for line in result.log:
            typer.echo(f"  {line}", err=True)
    raise typer.Exit(code=1)


@app.command("link")
def link_command(
    document: Annotated[str, typer.Argument(help="Vignette name")],
    section: Annotated[
        Optional[str],
        typer.Option("--section", "-s", help="Section title to link to"),
    ] = None,
    label: Annotated[
        Optional[str],
        typer.Option("--label", "-l", help="Link text (default: section or vignette name)"),
    ] = None,
    markdown: Annotated[
        bool,
        typer.Option("--markdown", help="Print a Markdown link instead of the bare URL"),
    ] = False,
    manifest_path: Annotated[
        Optional[Path],
        typer.Option("--manifest", "-m", help="Manifest whose collection links point into"),
    ] = None,
):
    """
    Print the canonical link to a vignette or a section of it.

    Examples:\n

        $ vignette-build link intro                           # intro.html

        $ vignette-build link reads -s "Quality control"      # reads.html#quality-control
    """
    try:
        manifest = _load_manifest_or_none(manifest_path)
        resolver = LinkResolver(manifest.collection if manifest is not None else None)
        link = resolver.resolve(document, section, label or section or document)
    except (ManifestError, InvalidLinkError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo(link.markdown() if markdown else link.url)


@app.command("events")
def events_command(
    n: Annotated[int, typer.Option("--num", "-n", min=1, help="Number of recent events to show")] = 10,
    target: Annotated[
        Optional[str], typer.Option("--target", "-t", help="Only events for this vignette")
    ] = None,
    event_type: Annotated[
        Optional[str], typer.Option("--event-type", "-e", help="Only events of this type")
    ] = None,
    compact: Annotated[
        bool, typer.Option("--compact", "-c", help="Print raw JSON, one event per line")
    ] = False,
):
    """Show the last n build events."""
    events = event_logging.get_recent_events(n=n, target_name=target, event_type=event_type)

    if not events:
        typer.echo("No events found.")
        raise typer.Exit(code=0)

    for event in events:
        if compact:
            typer.echo(json.dumps(event))
            continue
        when = format_timestamp(event.get("timestamp", ""), relative=True)
        status = event.get("new_status", event.get("event_type"))
        typer.echo(f"{when:>10}  {event.get('target_name', ''):<24} {status}")


if __name__ == "__main__":
    app()
