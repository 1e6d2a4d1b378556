"""CountingPipeline — one image in, counts and viability out."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

import numpy as np

from hemocount.config import CounterSettings
from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import (
    AggregateStats,
    CellObject,
    CellObjectLabeled,
    GridGeometry,
    GridIndex,
    SegmentationResult,
)
from hemocount.counting.aggregator import CountingAggregator
from hemocount.counting.grid import (
    FullFrameGridDetector,
    GridDetector,
    GridMapper,
    PerspectiveCorrector,
    geometry_from_corners,
)
from hemocount.counting.qc import QCAlert, evaluate_capture, evaluate_counting_quality
from hemocount.segment.base_segmenter import MLSegmenter
from hemocount.segment.label_processor import ShapeFeatureCalculator, filter_by_area
from hemocount.segment.labeling import ComponentLabeler
from hemocount.segment.thresholding import ThresholdEngine
from hemocount.viability.classifier import ColorClassifier

logger = logging.getLogger(__name__)

STAGES = ("threshold", "label", "features", "classify", "grid", "aggregate")


@dataclass(frozen=True)
class PipelineResult:
    """Everything produced by one counting run.

    Attributes:
        segmentation: Foreground mask and its scale metadata.
        objects: Labeled objects that passed the size filter.
        grid_indices: Grid position of each object (None = off grid).
        stats: Aggregate counts, concentration, and viability.
        geometry: Grid calibration used for mapping.
        calibrated: False when the geometry was derived from the frame
            rather than supplied, in which case no size filter was applied.
        alerts: Quality-control alerts.
        elapsed_seconds: Wall time of the run.
    """

    segmentation: SegmentationResult
    objects: list[CellObjectLabeled]
    grid_indices: list[GridIndex | None]
    stats: AggregateStats
    geometry: GridGeometry
    calibrated: bool
    alerts: list[QCAlert] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def object_count(self) -> int:
        return len(self.objects)

    @property
    def live_count(self) -> int:
        return sum(1 for o in self.objects if o.is_live)

    @property
    def dead_count(self) -> int:
        return len(self.objects) - self.live_count


class CountingPipeline:
    """Run every counting stage on a corrected hemocytometer image.

    Stages run in order: threshold, label, shape features, color
    classification, grid mapping, aggregation. Each stage only consumes
    the previous stage's immutable output.

    Args:
        segmenter: Optional ML foreground model.
        detector: Locates the grid when no calibration is supplied.
            None = the whole frame is the counting area.
        corrector: Optional perspective corrector applied to the image
            (using the detector's corners) before counting.
    """

    def __init__(
        self,
        segmenter: MLSegmenter | None = None,
        detector: GridDetector | None = None,
        corrector: PerspectiveCorrector | None = None,
    ) -> None:
        self._engine = ThresholdEngine(segmenter)
        self._labeler = ComponentLabeler()
        self._detector = detector or FullFrameGridDetector()
        self._corrector = corrector

    def run(
        self,
        image: np.ndarray,
        settings: CounterSettings | None = None,
        geometry: GridGeometry | None = None,
        probability_mask: np.ndarray | None = None,
        focus_score: float | None = None,
        glare_ratio: float | None = None,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> PipelineResult:
        """Count cells in one image.

        Args:
            image: (Y, X) grayscale or (Y, X, C) RGB(A) pixel buffer.
            settings: Counter settings. None = defaults.
            geometry: Grid calibration; overrides ``settings.geometry``.
            probability_mask: Optional external foreground mask.
            focus_score: Camera focus score, for capture QC.
            glare_ratio: Fraction of glare pixels, for capture QC.
            progress_callback: Optional callback(current, total, stage_name).

        Returns:
            PipelineResult.

        Raises:
            InvalidInputError: If the image or calibration is unusable, or a
                selected square lies outside the grid.
        """
        start = time.monotonic()
        settings = settings or CounterSettings()
        image = np.asarray(image)
        if image.ndim not in (2, 3) or image.shape[0] <= 0 or image.shape[1] <= 0:
            raise InvalidInputError(f"expected a non-empty 2D or 3D image, got shape {image.shape}")

        geometry = geometry or settings.geometry
        calibrated = geometry is not None
        detector = self._detector
        if self._corrector is not None:
            corners = self._detector.detect(image)
            if corners is None:
                logger.warning("Grid not detected; counting the uncorrected image")
            else:
                image = self._corrector.correct(image, corners)
                # The rectified image is exactly the counting area.
                detector = FullFrameGridDetector()
        if geometry is None:
            geometry = self._detect_geometry(detector, image)
        outside = [i for i in settings.selected_squares if i >= geometry.square_count]
        if outside:
            raise InvalidInputError(
                f"{outside} outside a {geometry.large_squares}x{geometry.large_squares} grid",
                field="selected_squares",
            )

        total = len(STAGES)

        def _progress(i: int) -> None:
            if progress_callback:
                progress_callback(i + 1, total, STAGES[i])

        segmentation = self._engine.segment(image, settings.imaging, probability_mask)
        _progress(0)

        labeling = self._labeler.label(segmentation.mask)
        _progress(1)

        calculator = ShapeFeatureCalculator(settings.solidity)
        objects: list[CellObject] = calculator.compute(labeling, segmentation.downscale_factor)
        if calibrated:
            before = len(objects)
            objects = filter_by_area(
                objects,
                geometry.px_per_micron,
                settings.imaging.min_area_um2,
                settings.imaging.max_area_um2,
            )
            if len(objects) < before:
                logger.debug("Size filter removed %d of %d objects", before - len(objects), before)
        else:
            logger.info("No grid calibration supplied; object size filter skipped")
        _progress(2)

        labeled = ColorClassifier(settings.viability).classify(image, objects)
        _progress(3)

        indices = GridMapper(geometry).map_objects(objects)
        _progress(4)

        aggregator = CountingAggregator(
            outlier_threshold=settings.outlier_threshold,
            chamber=settings.chamber,
            chamber_factor=settings.chamber_factor,
        )
        stats = aggregator.aggregate(
            labeled, indices, settings.selected_squares, settings.dilution_factor,
        )
        _progress(5)

        alerts: list[QCAlert] = []
        if focus_score is not None and glare_ratio is not None:
            alerts.extend(evaluate_capture(focus_score, glare_ratio, settings.qc))
        alerts.extend(evaluate_counting_quality(list(stats.tally.values()), settings.qc))

        elapsed = time.monotonic() - start
        if not labeled:
            logger.warning("No objects detected in %dx%d image", image.shape[1], image.shape[0])
        logger.info(
            "Counted %d objects (%d live, %d dead in selected squares) in %.2fs",
            len(labeled), stats.live, stats.dead, elapsed,
        )

        return PipelineResult(
            segmentation=segmentation,
            objects=labeled,
            grid_indices=indices,
            stats=stats,
            geometry=geometry,
            calibrated=calibrated,
            alerts=alerts,
            elapsed_seconds=elapsed,
        )

    @staticmethod
    def _detect_geometry(detector: GridDetector, image: np.ndarray) -> GridGeometry:
        corners = detector.detect(image)
        if corners is None:
            logger.warning("Grid not detected; treating the whole frame as the counting area")
            corners = FullFrameGridDetector().detect(image)
        return geometry_from_corners(corners)
