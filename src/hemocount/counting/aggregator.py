"""CountingAggregator — per-square tallies, robust mean, concentration, viability."""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import (
    CHAMBER_FACTORS,
    AggregateStats,
    CellObjectLabeled,
    ChamberType,
    GridIndex,
    SeedingPlan,
    SquareCount,
    SquareTally,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTLIER_THRESHOLD = 2.5
# Corner squares of a 3x3 grid.
DEFAULT_SELECTED_SQUARES = (0, 2, 6, 8)
# Comfortable counting density per large square.
MIN_DENSITY = 10.0
MAX_DENSITY = 300.0


def median(values: Sequence[float]) -> float:
    """Median; mean of the two middle values for even lengths, 0 when empty."""
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def median_absolute_deviation(values: Sequence[float]) -> float:
    """Median of absolute deviations from the median."""
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(np.median(np.abs(arr - np.median(arr))))


def outlier_mask(values: Sequence[float], threshold: float = DEFAULT_OUTLIER_THRESHOLD) -> list[bool]:
    """Flag values farther than threshold * MAD from the median.

    Nothing is flagged when MAD is 0.
    """
    if len(values) == 0:
        return []
    arr = np.asarray(values, dtype=np.float64)
    mad = median_absolute_deviation(arr)
    if mad <= 0:
        return [False] * len(arr)
    return (np.abs(arr - np.median(arr)) > threshold * mad).tolist()


def robust_mean(values: Sequence[float], threshold: float = DEFAULT_OUTLIER_THRESHOLD) -> float:
    """Arithmetic mean of the non-outlier values.

    Falls back to the plain mean when MAD is 0 or every value is an
    outlier; 0 for an empty input.
    """
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    keep = ~np.asarray(outlier_mask(arr, threshold), dtype=bool)
    if not keep.any():
        keep[:] = True
    return float(np.mean(arr[keep]))


def concentration_per_ml(
    mean_count: float,
    dilution_factor: float = 1.0,
    chamber_factor: float = CHAMBER_FACTORS[ChamberType.NEUBAUER],
) -> float:
    """Cells per mL = mean count per large square x dilution x chamber factor."""
    return mean_count * dilution_factor * chamber_factor


def viability_percent(live: int, dead: int) -> float:
    """live / (live + dead) * 100, 0 when there are no cells."""
    total = live + dead
    if total <= 0:
        return 0.0
    return live / total * 100.0


def seeding_volume(
    target_cells: float,
    final_volume_ml: float,
    concentration: float,
    mean_count: float | None = None,
) -> SeedingPlan:
    """Volume of suspension that contains ``target_cells``.

    Args:
        target_cells: Number of cells to seed.
        final_volume_ml: Final well/flask volume in mL.
        concentration: Suspension concentration in cells/mL.
        mean_count: Mean count per large square; adds a density note when
            outside the 10-300 counting range.

    Returns:
        SeedingPlan. ``feasible`` is False when the concentration is zero,
        an input is not positive, or the volume exceeds the final volume.
    """
    if concentration <= 0:
        return SeedingPlan(0.0, False, "Concentration is zero; cannot compute volume.")
    if target_cells <= 0 or final_volume_ml <= 0:
        return SeedingPlan(
            0.0, False,
            "Target cells and final volume must be greater than 0.",
        )

    volume = target_cells / concentration
    notes: list[str] = []
    if mean_count is not None:
        if mean_count > MAX_DENSITY:
            notes.append(
                f"Overcrowding detected ({mean_count:.0f} cells/square). "
                "Consider increasing dilution."
            )
        elif mean_count < MIN_DENSITY:
            notes.append(
                f"Low density detected ({mean_count:.0f} cells/square). "
                "Consider reducing dilution."
            )

    if volume > final_volume_ml:
        notes.insert(
            0,
            f"Required volume ({volume:.2f} mL) exceeds final volume "
            f"({final_volume_ml:.2f} mL). Consider concentrating the sample.",
        )
        return SeedingPlan(volume, False, " ".join(notes))

    notes.insert(0, f"Proceed with {volume:.2f} mL into {final_volume_ml:.2f} mL.")
    return SeedingPlan(volume, True, " ".join(notes))


class CountingAggregator:
    """Aggregate labeled, grid-mapped objects into sample statistics.

    Args:
        outlier_threshold: Squares farther than this many MADs from the
            median count are excluded from the mean.
        chamber: Chamber type; selects the volume factor.
        chamber_factor: Explicit cells/mL per cell/square; overrides
            ``chamber``.
    """

    def __init__(
        self,
        outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
        chamber: ChamberType = ChamberType.NEUBAUER,
        chamber_factor: float | None = None,
    ) -> None:
        if outlier_threshold <= 0:
            raise InvalidInputError(f"must be > 0, got {outlier_threshold}", field="outlier_threshold")
        if chamber_factor is not None and chamber_factor <= 0:
            raise InvalidInputError(f"must be > 0, got {chamber_factor}", field="chamber_factor")
        self._threshold = outlier_threshold
        self._chamber_factor = (
            chamber_factor if chamber_factor is not None else CHAMBER_FACTORS[chamber]
        )

    @property
    def chamber_factor(self) -> float:
        return self._chamber_factor

    def tally(
        self,
        objects: Sequence[CellObjectLabeled],
        indices: Sequence[GridIndex | None],
        selected: Sequence[int],
    ) -> SquareTally:
        """Count live and dead objects per selected large square.

        Every selected square appears in the result, with zero counts if
        no object maps to it. Objects outside the grid or in unselected
        squares are ignored.
        """
        if len(objects) != len(indices):
            raise InvalidInputError(
                f"got {len(objects)} objects but {len(indices)} grid indices"
            )
        wanted = list(dict.fromkeys(selected))
        live = dict.fromkeys(wanted, 0)
        dead = dict.fromkeys(wanted, 0)
        for obj, idx in zip(objects, indices):
            if idx is None or idx.large_index not in live:
                continue
            if obj.is_live:
                live[idx.large_index] += 1
            else:
                dead[idx.large_index] += 1
        return {
            i: SquareCount(index=i, live=live[i], dead=dead[i]) for i in wanted
        }

    def aggregate(
        self,
        objects: Sequence[CellObjectLabeled],
        indices: Sequence[GridIndex | None],
        selected: Sequence[int] = DEFAULT_SELECTED_SQUARES,
        dilution_factor: float = 1.0,
    ) -> AggregateStats:
        """Compute robust mean count, concentration, and viability.

        Args:
            objects: Labeled objects.
            indices: Grid index per object (None = outside the grid).
            selected: Large-square linear indices to count.
            dilution_factor: Sample dilution factor (> 0).

        Returns:
            AggregateStats; zero-valued when nothing is selected or counted.
        """
        if dilution_factor <= 0:
            raise InvalidInputError(f"must be > 0, got {dilution_factor}", field="dilution_factor")

        tally = self.tally(objects, indices, selected)
        if not tally:
            logger.info("No squares selected; returning empty statistics")
            return AggregateStats(
                live=0, dead=0, mean_count=0.0, concentration=0.0,
                viability_percent=0.0, outliers_excluded=0, squares_used=0,
            )

        squares = list(tally.values())
        totals = [float(s.total) for s in squares]
        flags = outlier_mask(totals, self._threshold)
        if all(flags):
            flags = [False] * len(flags)

        tally = {
            s.index: SquareCount(s.index, s.live, s.dead, is_outlier=flag)
            for s, flag in zip(squares, flags)
        }
        used = [s for s in tally.values() if not s.is_outlier]
        mean_count = sum(s.total for s in used) / len(used)
        live = sum(s.live for s in used)
        dead = sum(s.dead for s in used)
        excluded = len(squares) - len(used)
        if excluded:
            logger.info(
                "Excluded %d outlier square(s): %s",
                excluded, [s.index for s in tally.values() if s.is_outlier],
            )

        return AggregateStats(
            live=live,
            dead=dead,
            mean_count=mean_count,
            concentration=concentration_per_ml(mean_count, dilution_factor, self._chamber_factor),
            viability_percent=viability_percent(live, dead),
            outliers_excluded=excluded,
            squares_used=len(used),
            tally=tally,
        )
