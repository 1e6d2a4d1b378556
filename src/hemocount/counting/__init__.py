"""Grid mapping, aggregation, and quality control."""

from hemocount.counting.aggregator import (
    CountingAggregator,
    concentration_per_ml,
    robust_mean,
    seeding_volume,
    viability_percent,
)
from hemocount.counting.grid import (
    FullFrameGridDetector,
    GridDetector,
    GridMapper,
    PerspectiveCorrector,
    ProjectivePerspectiveCorrector,
    geometry_from_corners,
    map_centroid_to_grid,
    px_per_micron_from_square,
    validate_corners,
)
from hemocount.counting.qc import (
    AlertKind,
    AlertSeverity,
    QCAlert,
    QCThresholds,
    evaluate_capture,
    evaluate_counting_quality,
    recommend_dilution,
)

__all__ = [
    "AlertKind",
    "AlertSeverity",
    "CountingAggregator",
    "FullFrameGridDetector",
    "GridDetector",
    "GridMapper",
    "PerspectiveCorrector",
    "ProjectivePerspectiveCorrector",
    "QCAlert",
    "QCThresholds",
    "concentration_per_ml",
    "evaluate_capture",
    "evaluate_counting_quality",
    "geometry_from_corners",
    "map_centroid_to_grid",
    "px_per_micron_from_square",
    "recommend_dilution",
    "robust_mean",
    "seeding_volume",
    "validate_corners",
    "viability_percent",
]
