"""hemocount seed — volume of suspension needed to seed a target cell number."""

from __future__ import annotations

import click

from hemocount.cli.utils import console, error_handler


@click.command()
@click.option(
    "--concentration", required=True, type=float,
    help="Suspension concentration in cells/mL.",
)
@click.option("--target-cells", required=True, type=float, help="Number of cells to seed.")
@click.option("--final-volume", required=True, type=float, help="Final volume in mL.")
@click.option(
    "--mean-count", type=float, default=None,
    help="Mean cells per large square, for density guidance.",
)
@error_handler
def seed(
    concentration: float,
    target_cells: float,
    final_volume: float,
    mean_count: float | None,
) -> None:
    """Compute the seeding volume for a target number of cells."""
    from hemocount.counting.aggregator import seeding_volume
    from hemocount.counting.qc import recommend_dilution

    plan = seeding_volume(target_cells, final_volume, concentration, mean_count)

    if plan.feasible:
        console.print(f"[green]Seed {plan.volume_ml:.3f} mL[/green] of suspension")
        console.print(f"  Medium to add: {final_volume - plan.volume_ml:.3f} mL")
    else:
        console.print("[yellow]Seeding plan not feasible[/yellow]")
    console.print(f"  {plan.message}")

    if mean_count is not None:
        advice = recommend_dilution(mean_count)
        console.print(f"  [dim]Dilution: {advice.reason} ({advice.confidence} confidence)[/dim]")

    if not plan.feasible:
        raise SystemExit(1)
