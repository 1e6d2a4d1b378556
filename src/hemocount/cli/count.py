"""hemocount count — count cells and viability in a hemocytometer image."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from hemocount.cli.utils import console, error_handler, make_progress, parse_squares

if TYPE_CHECKING:
    from hemocount.config import CounterSettings
    from hemocount.pipeline import PipelineResult


@click.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
    help="Settings YAML (see 'hemocount init-config').",
)
@click.option(
    "--px-per-micron", type=float, default=None,
    help="Grid calibration in pixels per micron. Read from TIFF metadata if omitted.",
)
@click.option(
    "--origin", type=(float, float), default=None,
    help="Grid top-left corner in pixels (X Y). Defaults to 0 0.",
)
@click.option(
    "--method", type=click.Choice(["adaptive", "otsu"], case_sensitive=False), default=None,
    help="Thresholding method.",
)
@click.option("--block-size", type=int, default=None, help="Adaptive block size (31-101, odd).")
@click.option("--c", "offset", type=int, default=None, help="Adaptive offset (-10..10).")
@click.option(
    "--solidity", type=click.Choice(["unit", "bounding_box", "convex_hull"]), default=None,
    help="Solidity definition reported per object.",
)
@click.option("--dilution", type=float, default=None, help="Sample dilution factor.")
@click.option(
    "--squares", default=None,
    help="Comma-separated large-square indices to count (e.g. 0,2,6,8).",
)
@click.option(
    "--outlier-threshold", type=float, default=None,
    help="Reject squares more than this many MADs from the median.",
)
@click.option(
    "-o", "--output", type=click.Path(dir_okay=False), default=None,
    help="Write per-object results to this CSV file.",
)
@click.option("--overwrite", is_flag=True, help="Overwrite the output file if it exists.")
@error_handler
def count(
    image: str,
    config_path: str | None,
    px_per_micron: float | None,
    origin: tuple[float, float] | None,
    method: str | None,
    block_size: int | None,
    offset: int | None,
    solidity: str | None,
    dilution: float | None,
    squares: str | None,
    outlier_threshold: float | None,
    output: str | None,
    overwrite: bool,
) -> None:
    """Count live and dead cells in IMAGE."""
    from hemocount.config import CounterSettings, settings_from_yaml
    from hemocount.io import export_objects_csv, read_image, read_px_per_micron
    from hemocount.pipeline import STAGES, CountingPipeline

    out_path = Path(output).expanduser() if output else None
    if out_path is not None:
        if out_path.exists() and not overwrite:
            console.print(
                f"[red]Error:[/red] Output file already exists: {out_path}\n"
                "Use --overwrite to replace it."
            )
            raise SystemExit(1)
        if not out_path.parent.exists():
            console.print(
                f"[red]Error:[/red] Parent directory does not exist: {out_path.parent}"
            )
            raise SystemExit(1)

    settings = settings_from_yaml(Path(config_path)) if config_path else CounterSettings()
    if px_per_micron is None and settings.geometry is None:
        px_per_micron = read_px_per_micron(Path(image))
        if px_per_micron is not None:
            console.print(f"[dim]Calibration from image metadata: {px_per_micron:.4f} px/µm[/dim]")
    settings = _apply_overrides(
        settings,
        px_per_micron=px_per_micron,
        origin=origin,
        method=method,
        block_size=block_size,
        offset=offset,
        solidity=solidity,
        dilution=dilution,
        squares=parse_squares(squares) if squares is not None else None,
        outlier_threshold=outlier_threshold,
    )

    pixels = read_image(Path(image))
    pipeline = CountingPipeline()

    with make_progress() as progress:
        task = progress.add_task("Counting...", total=len(STAGES))

        def on_progress(current: int, total: int, stage: str) -> None:
            progress.update(task, total=total, completed=current, description=f"Counting: {stage}")

        result = pipeline.run(pixels, settings, progress_callback=on_progress)

    _print_result(result, settings.dilution_factor)

    if out_path is not None:
        # A frame-derived scale is not a physical calibration.
        scale = result.geometry.px_per_micron if result.calibrated else 0.0
        export_objects_csv(
            out_path, result.objects, result.grid_indices, scale,
        )
        console.print(f"\n[green]Wrote {result.object_count} objects to {out_path}[/green]")


def _apply_overrides(
    settings: CounterSettings,
    *,
    px_per_micron: float | None,
    origin: tuple[float, float] | None,
    method: str | None,
    block_size: int | None,
    offset: int | None,
    solidity: str | None,
    dilution: float | None,
    squares: tuple[int, ...] | None,
    outlier_threshold: float | None,
) -> CounterSettings:
    """Return settings with command-line values layered over file values."""
    from dataclasses import replace

    from hemocount.core.models import GridGeometry, SolidityMethod, ThresholdMethod

    imaging = settings.imaging
    if method is not None:
        imaging = replace(imaging, threshold_method=ThresholdMethod(method.lower()))
    if block_size is not None:
        imaging = replace(imaging, block_size=block_size)
    if offset is not None:
        imaging = replace(imaging, c=offset)

    geometry = settings.geometry
    if px_per_micron is not None or origin is not None:
        if geometry is None:
            if px_per_micron is None:
                raise click.UsageError("--origin requires --px-per-micron")
            geometry = GridGeometry(origin_x=0.0, origin_y=0.0, px_per_micron=px_per_micron)
        ox, oy = origin if origin is not None else (geometry.origin_x, geometry.origin_y)
        geometry = replace(
            geometry,
            origin_x=ox,
            origin_y=oy,
            px_per_micron=px_per_micron if px_per_micron is not None else geometry.px_per_micron,
        )

    changes: dict[str, Any] = {"imaging": imaging, "geometry": geometry}
    if solidity is not None:
        changes["solidity"] = SolidityMethod(solidity)
    if dilution is not None:
        changes["dilution_factor"] = dilution
    if squares is not None:
        changes["selected_squares"] = squares
    if outlier_threshold is not None:
        changes["outlier_threshold"] = outlier_threshold
    return replace(settings, **changes)


def _print_result(result: PipelineResult, dilution: float) -> None:
    from rich.table import Table

    from hemocount.counting.qc import AlertSeverity

    stats = result.stats

    table = Table(title="Counts per large square")
    table.add_column("Square", justify="right")
    table.add_column("Live", justify="right")
    table.add_column("Dead", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Outlier")
    for sq in stats.tally.values():
        table.add_row(
            str(sq.index), str(sq.live), str(sq.dead), str(sq.total),
            "[yellow]yes[/yellow]" if sq.is_outlier else "",
        )
    console.print(table)

    console.print()
    console.print("[green]Count complete[/green]")
    console.print(f"  Objects detected: {result.object_count}")
    console.print(f"  Live / dead (counted squares): {stats.live} / {stats.dead}")
    console.print(f"  Mean per square: {stats.mean_count:.2f}")
    console.print(f"  Concentration: {stats.concentration:.3e} cells/mL (dilution {dilution:g}x)")
    console.print(f"  Viability: {stats.viability_percent:.1f}%")
    console.print(f"  Squares used: {stats.squares_used} ({stats.outliers_excluded} outlier(s) excluded)")
    if not result.calibrated:
        console.print("  [dim]No calibration: whole frame used as the counting area.[/dim]")
    console.print(f"  Elapsed: {result.elapsed_seconds:.2f}s")

    if result.alerts:
        console.print()
        console.print(f"[yellow]Quality alerts ({len(result.alerts)}):[/yellow]")
        for alert in result.alerts:
            color = "red" if alert.severity is AlertSeverity.ERROR else "yellow"
            console.print(f"  [{color}]{alert.severity.value}[/{color}] {alert.message}")
