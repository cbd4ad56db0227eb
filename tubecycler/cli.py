"""
Typer CLI for inspecting and exercising scheduler snapshots.

Commands:
    tubecycler seed      - Write a fresh snapshot from three id lists
    tubecycler show      - Render a snapshot (any accepted shape) as tables
    tubecycler simulate  - Replay outcomes against a snapshot

Usage:
    tubecycler seed state.json --lane1 a,b,c --lane2 d,e --lane3 f,g
    tubecycler show state.json --limit 10
    tubecycler simulate state.json ppnp --output next.json
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from tubecycler.config import get_settings
from tubecycler.errors import EmptyLaneError
from tubecycler.scheduling.models import LaneId
from tubecycler.scheduling.scheduler import TubeScheduler
from tubecycler.sync.wire import parse_wire

app = typer.Typer(
    help="tubecycler: three-lane spaced-repetition scheduler tools",
    no_args_is_help=True,
)

console = Console()


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    level = "DEBUG" if verbose else get_settings().log_level
    logger.add(sys.stderr, level=level)


def _split(ids: str | None) -> list[str]:
    if not ids:
        return []
    return [part.strip() for part in ids.split(",") if part.strip()]


def _load(path: Path) -> TubeScheduler:
    if not path.exists():
        console.print(f"[red]Snapshot not found:[/red] {path}")
        raise typer.Exit(code=1)
    scheduler = TubeScheduler()
    scheduler.restore(path.read_text(encoding="utf-8"))
    return scheduler


def _write(scheduler: TubeScheduler, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(scheduler.snapshot().model_dump_json(by_alias=True, indent=2), encoding="utf-8")


def _render(scheduler: TubeScheduler, limit: int) -> None:
    state = scheduler.state
    console.print(
        f"[bold]Active lane:[/bold] {int(state.active_lane)}   "
        f"[bold]Cycle:[/bold] {state.cycle_count}"
    )
    for lane_id in LaneId:
        lane = state.lanes[lane_id]
        marker = " (active)" if lane_id == state.active_lane else ""
        source = f" [{lane.lane_source_id}]" if lane.lane_source_id else ""
        table = Table(title=f"Lane {int(lane_id)}{marker}{source}", show_lines=False)
        table.add_column("Slot", justify="right", style="cyan")
        table.add_column("Content", style="white")
        table.add_column("Interval", justify="right", style="green")
        table.add_column("Tier", justify="right")
        table.add_column("Perfect", justify="right", style="yellow")

        ordered = lane.ordered()
        for n, entry in ordered[:limit]:
            table.add_row(
                str(n),
                entry.content_id,
                str(entry.repetition_interval),
                str(entry.distractor_tier),
                str(entry.perfect_completion_count),
            )
        if len(ordered) > limit:
            table.caption = f"{len(ordered) - limit} more"
        if not ordered:
            table.caption = "empty"
        console.print(table)


@app.command()
def seed(
    output: Annotated[Path, typer.Argument(help="Snapshot file to write")],
    lane1: Annotated[str, typer.Option("--lane1", help="Comma-separated ids for lane 1")] = "",
    lane2: Annotated[str, typer.Option("--lane2", help="Comma-separated ids for lane 2")] = "",
    lane3: Annotated[str, typer.Option("--lane3", help="Comma-separated ids for lane 3")] = "",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """Create a snapshot with each lane seeded in the given order."""
    _configure_logging(verbose)
    scheduler = TubeScheduler()
    for lane_id, ids in zip(LaneId, (lane1, lane2, lane3)):
        scheduler.seed_lane(lane_id, _split(ids))
    _write(scheduler, output)
    console.print(f"[green]Wrote[/green] {output}")


@app.command()
def show(
    snapshot: Annotated[Path, typer.Argument(help="Snapshot file (JSON)")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Slots shown per lane")] = 10,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """Show the lanes of a snapshot."""
    _configure_logging(verbose)
    _render(_load(snapshot), limit)


@app.command()
def simulate(
    snapshot: Annotated[Path, typer.Argument(help="Snapshot file (JSON)")],
    outcomes: Annotated[str, typer.Argument(help="Outcomes in order: p = perfect, n = not perfect")],
    output: Annotated[
        Optional[Path], typer.Option("--output", "-o", help="Write the resulting snapshot here")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Slots shown per lane")] = 10,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """Replay outcomes against a snapshot and show where everything lands."""
    _configure_logging(verbose)
    scheduler = _load(snapshot)

    for index, outcome in enumerate(outcomes.strip().lower(), start=1):
        if outcome not in ("p", "n"):
            console.print(f"[red]Unknown outcome {outcome!r} at position {index}[/red]")
            raise typer.Exit(code=2)
        item = scheduler.current_item()
        try:
            scheduler.record_outcome(perfect=outcome == "p")
        except EmptyLaneError as e:
            console.print(f"[red]Stopped at attempt {index}:[/red] {e}")
            raise typer.Exit(code=1) from None
        label = "perfect" if outcome == "p" else "not perfect"
        console.print(f"{index:>3}. lane {int(item.lane)} {item.content_id}: {label}")

    _render(scheduler, limit)
    if output is not None:
        _write(scheduler, output)
        console.print(f"[green]Wrote[/green] {output}")


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
