"""hemocount Segment — thresholding, component labeling, and shape features."""

from hemocount.segment.base_segmenter import (
    ImagingParams,
    MLSegmenter,
    clamp_block_size,
)
from hemocount.segment.label_processor import (
    ShapeFeatureCalculator,
    filter_by_area,
)
from hemocount.segment.labeling import (
    ComponentLabeler,
    ComponentStats,
    LabelingResult,
)
from hemocount.segment.thresholding import ThresholdEngine

__all__ = [
    "ComponentLabeler",
    "ComponentStats",
    "ImagingParams",
    "LabelingResult",
    "MLSegmenter",
    "ShapeFeatureCalculator",
    "ThresholdEngine",
    "clamp_block_size",
    "filter_by_area",
]
