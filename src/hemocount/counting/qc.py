"""Quality control for captures and counting results."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import SquareCount

# Inter-square coefficient of variation above which counts are suspect.
MAX_SQUARE_CV = 0.3
SEVERE_SQUARE_CV = 0.5
# Ideal density for counting accuracy.
OPTIMAL_MIN_PER_SQUARE = 50
OPTIMAL_MAX_PER_SQUARE = 200


class AlertKind(Enum):
    """What a QC alert is about."""

    FOCUS = "focus"
    GLARE = "glare"
    OVERCROWDING = "overcrowding"
    UNDERCROWDING = "undercrowding"
    VARIANCE = "variance"


class AlertSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class QCAlert:
    """One quality-control finding."""

    kind: AlertKind
    severity: AlertSeverity
    message: str


@dataclass(frozen=True)
class QCThresholds:
    """Limits used by the quality checks.

    Attributes:
        min_focus_score: Focus scores below this warn; below half of it
            the capture is rejected.
        max_glare_ratio: Glare fractions above this warn; above twice it
            the capture is rejected.
        min_cells_per_square: Lower comfortable count per large square.
        max_cells_per_square: Upper comfortable count per large square.
    """

    min_focus_score: float = 100.0
    max_glare_ratio: float = 0.1
    min_cells_per_square: int = 10
    max_cells_per_square: int = 300

    def __post_init__(self) -> None:
        """Validate limits."""
        if self.min_focus_score < 0:
            raise InvalidInputError(f"min_focus_score must be >= 0, got {self.min_focus_score}")
        if not (0.0 <= self.max_glare_ratio <= 1.0):
            raise InvalidInputError(f"max_glare_ratio must be in [0, 1], got {self.max_glare_ratio}")
        if self.min_cells_per_square < 0 or self.max_cells_per_square < self.min_cells_per_square:
            raise InvalidInputError(
                "cells-per-square limits must satisfy 0 <= min <= max, got "
                f"{self.min_cells_per_square}..{self.max_cells_per_square}"
            )


@dataclass(frozen=True)
class DilutionAdvice:
    """Suggested dilution for the next count."""

    recommended_dilution: float
    reason: str
    confidence: str


def coefficient_of_variation(counts: Sequence[float]) -> float:
    """Population standard deviation over mean; 0 for a zero mean or < 2 values."""
    if len(counts) < 2:
        return 0.0
    arr = np.asarray(counts, dtype=np.float64)
    mean = float(np.mean(arr))
    if mean <= 0:
        return 0.0
    return float(np.std(arr)) / mean


def evaluate_capture(
    focus_score: float,
    glare_ratio: float,
    thresholds: QCThresholds | None = None,
) -> list[QCAlert]:
    """Gate a capture on the camera's focus score and glare ratio."""
    t = thresholds or QCThresholds()
    alerts: list[QCAlert] = []
    if focus_score < t.min_focus_score:
        severe = focus_score < t.min_focus_score * 0.5
        alerts.append(QCAlert(
            AlertKind.FOCUS,
            AlertSeverity.ERROR if severe else AlertSeverity.WARNING,
            f"Poor focus detected (score: {focus_score:.1f}). Refocus for better accuracy.",
        ))
    if glare_ratio > t.max_glare_ratio:
        severe = glare_ratio > t.max_glare_ratio * 2
        alerts.append(QCAlert(
            AlertKind.GLARE,
            AlertSeverity.ERROR if severe else AlertSeverity.WARNING,
            f"Excessive glare detected ({glare_ratio * 100:.1f}%). Adjust lighting or angle.",
        ))
    return alerts


def can_capture(alerts: Sequence[QCAlert]) -> bool:
    """True when no alert is an error."""
    return not any(a.severity is AlertSeverity.ERROR for a in alerts)


def evaluate_counting_quality(
    squares: Sequence[SquareCount],
    thresholds: QCThresholds | None = None,
) -> list[QCAlert]:
    """Check per-square counts for density, spread, and outliers.

    Args:
        squares: Tallies of the selected squares.
        thresholds: QC limits. None = defaults.

    Returns:
        Alerts in a fixed order: crowding, variance, outliers.
    """
    t = thresholds or QCThresholds()
    if not squares:
        return [QCAlert(
            AlertKind.UNDERCROWDING, AlertSeverity.ERROR, "No counting squares selected.",
        )]

    alerts: list[QCAlert] = []
    totals = [s.total for s in squares]

    max_count = max(totals)
    if max_count > t.max_cells_per_square:
        severe = max_count > t.max_cells_per_square * 1.5
        alerts.append(QCAlert(
            AlertKind.OVERCROWDING,
            AlertSeverity.ERROR if severe else AlertSeverity.WARNING,
            f"Overcrowding detected ({max_count} cells in one square). Consider diluting sample.",
        ))

    min_count = min(totals)
    if min_count < t.min_cells_per_square:
        severe = min_count < t.min_cells_per_square * 0.5
        alerts.append(QCAlert(
            AlertKind.UNDERCROWDING,
            AlertSeverity.ERROR if severe else AlertSeverity.WARNING,
            f"Low cell density detected ({min_count} cells in one square). "
            "Consider concentrating sample.",
        ))

    cv = coefficient_of_variation([s.total for s in squares if not s.is_outlier])
    if cv > MAX_SQUARE_CV:
        alerts.append(QCAlert(
            AlertKind.VARIANCE,
            AlertSeverity.ERROR if cv > SEVERE_SQUARE_CV else AlertSeverity.WARNING,
            f"High variance between squares (CV: {cv * 100:.1f}%). Check sample mixing.",
        ))

    outliers = sum(1 for s in squares if s.is_outlier)
    if outliers:
        alerts.append(QCAlert(
            AlertKind.VARIANCE,
            AlertSeverity.ERROR if outliers > len(squares) / 2 else AlertSeverity.WARNING,
            f"{outliers} outlier square(s) detected. Check for debris or uneven distribution.",
        ))

    return alerts


def recommend_dilution(cells_per_square: float, current_dilution: float = 1.0) -> DilutionAdvice:
    """Suggest a dilution that brings the count into 50-200 cells per square."""
    if current_dilution <= 0:
        raise InvalidInputError(f"must be > 0, got {current_dilution}", field="current_dilution")

    if OPTIMAL_MIN_PER_SQUARE <= cells_per_square <= OPTIMAL_MAX_PER_SQUARE:
        return DilutionAdvice(current_dilution, "Current dilution appears optimal", "high")

    if cells_per_square > OPTIMAL_MAX_PER_SQUARE:
        midpoint = (OPTIMAL_MIN_PER_SQUARE + OPTIMAL_MAX_PER_SQUARE) / 2
        factor = math.ceil(cells_per_square / midpoint)
        return DilutionAdvice(
            current_dilution * factor,
            f"Too crowded (~{cells_per_square:.0f} cells/square). Dilute {factor}x.",
            "high" if cells_per_square > OPTIMAL_MAX_PER_SQUARE * 2 else "medium",
        )

    if current_dilution > 1:
        return DilutionAdvice(
            max(1.0, math.floor(current_dilution / 2)),
            f"Too sparse (~{cells_per_square:.0f} cells/square). Reduce dilution.",
            "high" if cells_per_square < OPTIMAL_MIN_PER_SQUARE / 2 else "medium",
        )

    return DilutionAdvice(current_dilution, "Dilution is acceptable but not optimal", "low")
