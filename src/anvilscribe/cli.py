"""Command line interface for AnvilScribe."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from anvilscribe.config import AppConfig
from anvilscribe.models import Confidence
from anvilscribe.pipeline import Extraction


console = Console()
app = typer.Typer(help="AnvilScribe - extract books, signs, items and portals from Minecraft worlds")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_world(world: Path) -> None:
    if not world.is_dir():
        raise typer.BadParameter(f"World folder not found: {world}")


def _build_config(**options) -> AppConfig:
    try:
        return AppConfig(**options)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


_CONFIDENCE_STYLE = {
    Confidence.EXACT: "green",
    Confidence.CLOSE: "green",
    Confidence.LIKELY: "yellow",
    Confidence.UNCERTAIN: "yellow",
    Confidence.ORPHAN: "red",
}


@app.command()
def extract(
    world: Path = typer.Argument(..., help="World save folder.", resolve_path=True),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Output folder (default: <world>/AnvilScribe)", resolve_path=True
    ),
    workers: int = typer.Option(AppConfig().workers, help="Worker processes"),
    max_depth: int = typer.Option(
        AppConfig().max_container_depth, "--max-depth", help="Nested container depth limit"
    ),
    search_radius: float = typer.Option(
        AppConfig().search_radius, "--search-radius", help="Portal pairing radius in blocks"
    ),
    blocks: List[str] = typer.Option(
        [], "--block", "-b", help="Extra block id to index (repeatable)"
    ),
    item_limit: int = typer.Option(0, "--item-limit", help="Max rows per item type (0 = no limit)"),
    skip_common_items: bool = typer.Option(
        False, "--skip-common-items", help="Leave common building blocks out of items.db"
    ),
    no_db: bool = typer.Option(False, "--no-db", help="Skip items.db and blocks.db"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Extract every artifact from a world save."""
    _setup_logging(verbose)
    _ensure_world(world)
    config = _build_config(
        output_dir=output,
        workers=workers,
        max_container_depth=max_depth,
        search_radius=search_radius,
        extra_blocks=tuple(blocks),
        item_limit=item_limit,
        skip_common_items=skip_common_items,
        write_databases=not no_db,
    )

    console.print(f"Extracting from [bold]{world}[/bold]...")
    result = Extraction(world, config).run()
    summary = result.summary

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Artifact")
    table.add_column("Count", justify="right")
    for label, value in summary.rows():
        table.add_row(label, str(value))
    console.print(table)

    if summary.warnings:
        console.print(f"[yellow]{len(summary.warnings)} warnings, see summary.txt[/yellow]")
    console.print(f"Output written to [bold]{summary.output_dir}[/bold] in {summary.elapsed:.1f}s")


@app.command()
def portals(
    world: Path = typer.Argument(..., help="World save folder.", resolve_path=True),
    search_radius: float = typer.Option(
        AppConfig().search_radius, "--search-radius", help="Portal pairing radius in blocks"
    ),
    workers: int = typer.Option(AppConfig().workers, help="Worker processes"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Detect portals and show how Overworld and Nether portals pair up."""
    _setup_logging(verbose)
    _ensure_world(world)
    config = _build_config(workers=workers, search_radius=search_radius)
    result = Extraction(world, config).run(write=False)

    if not result.portals:
        console.print("[yellow]No portals found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Source")
    table.add_column("Target")
    table.add_column("Distance", justify="right")
    table.add_column("Confidence")

    for pairing in result.pairings:
        source = pairing.source
        target = pairing.target
        style = _CONFIDENCE_STYLE[pairing.confidence]
        table.add_row(
            f"#{source.portal_id} {source.dimension} {_format_center(source.center)}",
            f"#{target.portal_id} {target.dimension} {_format_center(target.center)}" if target else "-",
            f"{pairing.distance:.1f}" if pairing.paired else "-",
            f"[{style}]{pairing.confidence.value} ({pairing.confidence.percent}%)[/{style}]",
        )

    console.print(table)
    stats = result.summary.pairing
    console.print(
        f"Portals: {stats['total']}, paired: {stats['paired']}, orphans: {stats['orphans']}, "
        f"average distance: {stats['average_distance']:.1f}"
    )


def _format_center(center) -> str:
    x, y, z = center
    return f"({x:g}, {y:g}, {z:g})"
