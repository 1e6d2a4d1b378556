"""hemocount Core — value types and exceptions shared by every stage."""

from hemocount.core.exceptions import (
    ConfigError,
    HemocountError,
    ImageReadError,
    InvalidInputError,
)
from hemocount.core.models import (
    CHAMBER_FACTORS,
    AggregateStats,
    BoundingBox,
    CellObject,
    CellObjectLabeled,
    ChamberType,
    ColorSampleStats,
    GridGeometry,
    GridIndex,
    SeedingPlan,
    SegmentationResult,
    SegmentationStrategy,
    SolidityMethod,
    SquareCount,
    SquareTally,
    ThresholdMethod,
    ViabilityLabel,
)

__all__ = [
    "AggregateStats",
    "BoundingBox",
    "CHAMBER_FACTORS",
    "CellObject",
    "CellObjectLabeled",
    "ChamberType",
    "ColorSampleStats",
    "ConfigError",
    "GridGeometry",
    "GridIndex",
    "HemocountError",
    "ImageReadError",
    "InvalidInputError",
    "SeedingPlan",
    "SegmentationResult",
    "SegmentationStrategy",
    "SolidityMethod",
    "SquareCount",
    "SquareTally",
    "ThresholdMethod",
    "ViabilityLabel",
]
