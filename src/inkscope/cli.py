"""inkscope CLI - typer application entry point."""

from __future__ import annotations

import atexit
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from inkscope.config import ConfigError, KnotConfig, load_config
from inkscope.graph.bytecode import load_bytecode
from inkscope.graph.errors import BytecodeStructureError
from inkscope.manager import UnifiedKnotManager
from inkscope.models.graph import StoryGraph
from inkscope.observability import close_file_logging, configure_logging
from inkscope.source.scanner import SourceFileInfo
from inkscope.visualization import build_knot_view, render_dot, render_mermaid

if TYPE_CHECKING:
    from inkscope.graph.validation_types import ValidationCheck

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="inkscope",
    help="inkscope: Knot graphs and story position for compiled ink stories.",
    no_args_is_help=True,
)
console = Console()


class GraphFormat(str, Enum):
    json = "json"
    dot = "dot"
    mermaid = "mermaid"


# Global state (set by callback, used by commands)
_verbose: int = 0
_log_dir: Path | None = None
_config_path: Path | None = None


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log: Annotated[
        Path | None,
        typer.Option(
            "--log",
            help="Write all log events to DIR/debug.jsonl.",
            file_okay=False,
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file or directory containing inkscope.yaml.",
            envvar="INKSCOPE_CONFIG",
        ),
    ] = None,
) -> None:
    """inkscope: Knot graphs and story position for compiled ink stories."""
    global _verbose, _log_dir, _config_path
    _verbose = verbose
    _log_dir = log
    _config_path = config

    _configure_logging(verbose)
    if log is not None:
        atexit.register(close_file_logging)


def _configure_logging(verbosity: int) -> None:
    if _log_dir is not None:
        configure_logging(verbosity=verbosity, log_to_file=True, log_dir=_log_dir)
    else:
        configure_logging(verbosity=verbosity)


def _load_config() -> KnotConfig:
    try:
        config = load_config(_config_path if _config_path is not None else Path())
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    # Detector debug events are DEBUG records
    if config.debug and _verbose < 2:
        _configure_logging(2)
    return config


def _read_story(story: Path) -> Any:
    """Read and decode a compiled story file, exiting on failure."""
    try:
        return load_bytecode(story.read_bytes())
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot read '{story}': {e.strerror or e}")
        raise typer.Exit(1) from None
    except BytecodeStructureError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _load_manager(story: Path, sources: list[Path] | None = None) -> UnifiedKnotManager:
    """Build a manager with the compiled story and any ink sources loaded."""
    manager = UnifiedKnotManager(_load_config())
    if manager.set_compiled_story(_read_story(story)) is None:
        console.print(f"[red]Error:[/red] No knots found in '{story}'")
        raise typer.Exit(1)

    for source in sources or []:
        try:
            manager.add_source_file(str(source), source.read_text(encoding="utf-8"))
        except OSError as e:
            console.print(f"[yellow]![/yellow] Skipping '{source}': {e.strerror or e}")
    return manager


@app.command()
def version() -> None:
    """Show version information."""
    from inkscope import __version__

    console.print(f"inkscope v{__version__}")


@app.command()
def graph(
    story: Annotated[Path, typer.Argument(help="Compiled story (.json).")],
    output_format: Annotated[
        GraphFormat,
        typer.Option("--format", "-f", help="Output format."),
    ] = GraphFormat.json,
    current: Annotated[
        str | None,
        typer.Option("--current", help="Knot to highlight in dot/mermaid output."),
    ] = None,
    no_labels: Annotated[
        bool,
        typer.Option("--no-labels", help="Omit choice labels on edges."),
    ] = False,
) -> None:
    """Print the knot graph of a compiled story."""
    manager = _load_manager(story)
    structure = manager.get_story_structure()
    if structure is None:
        console.print("[red]Error:[/red] Compiled story cache is disabled")
        raise typer.Exit(1)

    if output_format is GraphFormat.json:
        typer.echo(structure.model_dump_json(indent=2, by_alias=True))
        return

    knot_graph = StoryGraph(nodes=structure.nodes, links=structure.links)
    view = build_knot_view(knot_graph, current_knot=current)
    if output_format is GraphFormat.dot:
        typer.echo(render_dot(view, no_labels=no_labels))
    else:
        typer.echo(render_mermaid(view, no_labels=no_labels))


@app.command()
def validate(
    story: Annotated[Path, typer.Argument(help="Compiled story (.json).")],
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="Ink source file for knot locations (repeatable)."),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Treat warnings as failures."),
    ] = False,
) -> None:
    """Check a compiled story for structural problems."""
    manager = _load_manager(story, source)
    report = manager.validate_story_integrity()

    icons = {
        "pass": "[green]✓[/green]",
        "warn": "[yellow]![/yellow]",
        "fail": "[red]✗[/red]",
    }

    console.print(f"[bold]Story integrity:[/bold] {story.name}")
    console.print()
    for check in report.checks:
        console.print(f"  {icons[check.severity]} {_check_title(check)}: {check.message}")

    if report.suggestions:
        console.print()
        console.print("[bold]Suggestions[/bold]")
        for suggestion in report.suggestions:
            for line in suggestion.splitlines():
                console.print(f"  • {line}", markup=False)

    unlocated: list[str] = []
    if source:
        unlocated = [k for k in manager.get_all_knots() if manager.get_knot_info(k).file_path is None]
    if unlocated:
        console.print()
        console.print(
            f"[dim]{len(unlocated)} knots not found in the given sources: "
            f"{', '.join(unlocated[:10])}{' ...' if len(unlocated) > 10 else ''}[/dim]"
        )

    console.print()
    failed = not report.is_valid or (strict and bool(report.warnings))
    if failed:
        console.print(f"[red]Validation failed:[/red] {report.summary}")
        raise typer.Exit(1)
    console.print(f"[green]Validation passed:[/green] {report.summary}")


def _check_title(check: ValidationCheck) -> str:
    return check.name.replace("_", " ").capitalize()


@app.command()
def search(
    story: Annotated[Path, typer.Argument(help="Compiled story (.json).")],
    query: Annotated[str, typer.Argument(help="Case-insensitive substring of knot names.")],
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="Ink source file for knot locations (repeatable)."),
    ] = None,
) -> None:
    """Find knots by name."""
    manager = _load_manager(story, source)
    results = manager.search_knots(query)
    if not results:
        console.print(f"No knots match '{query}'")
        raise typer.Exit(1)

    table = Table(title=f"Knots matching '{query}'")
    table.add_column("Knot", style="cyan")
    table.add_column("Location", style="dim")
    table.add_column("Reachable")
    table.add_column("Targets")

    for info in results:
        location = "-"
        if info.file_path:
            location = f"{info.file_path}:{info.line_number}" if info.line_number else info.file_path
        reachable = "[green]yes[/green]" if info.is_reachable else "[red]no[/red]"
        table.add_row(info.name, location, reachable, ", ".join(info.targets or []) or "-")

    console.print()
    console.print(table)
    console.print()


@app.command()
def path(
    story: Annotated[Path, typer.Argument(help="Compiled story (.json).")],
    from_knot: Annotated[str, typer.Argument(metavar="FROM", help="Starting knot.")],
    to_knot: Annotated[str, typer.Argument(metavar="TO", help="Destination knot.")],
) -> None:
    """Show the shortest knot path between two knots."""
    manager = _load_manager(story)
    known = manager.get_all_knots()
    for name in (from_knot, to_knot):
        if name not in known:
            console.print(f"[red]Error:[/red] Unknown knot '{name}'")
            raise typer.Exit(1)

    route = manager.validation_layer.find_path(from_knot, to_knot)
    if route is None:
        console.print(f"[yellow]No path from {from_knot} to {to_knot}[/yellow]")
        raise typer.Exit(1)

    console.print(" → ".join(f"[cyan]{knot}[/cyan]" for knot in route))
    console.print(f"[dim]{len(route) - 1} steps[/dim]")


@app.command()
def scan(
    files: Annotated[list[Path], typer.Argument(help="Ink source files (.ink).")],
) -> None:
    """List knots and variables declared in ink source files."""
    table = Table(title="Ink sources")
    table.add_column("File", style="cyan")
    table.add_column("Knots")
    table.add_column("Variables", style="dim")

    failed = False
    for file in files:
        try:
            info = SourceFileInfo.scan(str(file), file.read_text(encoding="utf-8"))
        except OSError as e:
            console.print(f"[red]✗[/red] Cannot read '{file}': {e.strerror or e}")
            failed = True
            continue
        table.add_row(
            str(file),
            ", ".join(info.knots) or "-",
            ", ".join(info.variables) or "-",
        )

    console.print()
    console.print(table)
    console.print()
    if failed:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
