"""End-to-end tests for CountingPipeline."""

from __future__ import annotations

import logging
import math

import numpy as np
import pytest
from skimage.draw import disk

from hemocount.config import CounterSettings
from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import (
    GridGeometry,
    SegmentationStrategy,
    ThresholdMethod,
)
from hemocount.counting.grid import GridDetector, ProjectivePerspectiveCorrector
from hemocount.counting.qc import AlertKind, AlertSeverity
from hemocount.pipeline import STAGES, CountingPipeline
from hemocount.segment.base_segmenter import ImagingParams
from tests.conftest import DEAD_RGB, draw_cells
from tests.test_segment.conftest import FailingSegmenter

OTSU = ImagingParams(threshold_method=ThresholdMethod.OTSU)


@pytest.fixture
def otsu_settings() -> CounterSettings:
    return CounterSettings(imaging=OTSU)


class FixedCornerDetector(GridDetector):
    def __init__(self, corners):
        self.corners = corners

    def detect(self, image):
        return self.corners


class TestUncalibrated:
    def test_single_disc(self, disc_image, otsu_settings):
        result = CountingPipeline().run(disc_image, otsu_settings)

        assert result.object_count == 1
        assert not result.calibrated
        obj = result.objects[0]
        assert obj.cell.area_px == pytest.approx(math.pi * 12 * 12, rel=0.05)
        assert obj.cell.centroid_x == pytest.approx(32.0, abs=1.0)
        assert obj.is_live

    def test_full_frame_geometry(self, disc_image, otsu_settings):
        result = CountingPipeline().run(disc_image, otsu_settings)
        assert (result.geometry.origin_x, result.geometry.origin_y) == (0.0, 0.0)
        assert result.geometry.px_per_micron == pytest.approx(64 / 3000)
        # The centre of the frame is the centre large square.
        assert result.grid_indices[0].large_index == 4

    def test_size_filter_skipped(self, disc_image, otsu_settings, caplog):
        with caplog.at_level(logging.INFO, logger="hemocount"):
            CountingPipeline().run(disc_image, otsu_settings)
        assert "size filter skipped" in caplog.text


class TestSelectedSquares:
    def test_square_outside_frame_grid(self, disc_image):
        settings = CounterSettings(imaging=OTSU, selected_squares=(0, 9))
        with pytest.raises(InvalidInputError, match="selected_squares"):
            CountingPipeline().run(disc_image, settings)

    def test_square_outside_supplied_geometry(self, disc_image, otsu_settings):
        geometry = GridGeometry(0.0, 0.0, 0.5, large_squares=2)
        with pytest.raises(InvalidInputError, match=r"\[6, 8\] outside a 2x2 grid"):
            CountingPipeline().run(disc_image, otsu_settings, geometry=geometry)

    def test_last_square_accepted(self, disc_image):
        settings = CounterSettings(imaging=OTSU, selected_squares=(0, 8))
        result = CountingPipeline().run(disc_image, settings)
        assert set(result.stats.tally) == {0, 8}


class TestCalibrated:
    def test_counts_in_first_square(self, disc_image, otsu_settings):
        geometry = GridGeometry(origin_x=0.0, origin_y=0.0, px_per_micron=0.5)
        result = CountingPipeline().run(disc_image, otsu_settings, geometry=geometry)

        assert result.calibrated
        assert result.grid_indices[0].large_index == 0
        assert result.stats.tally[0].live == 1
        assert result.stats.mean_count == pytest.approx(0.25)
        assert result.stats.concentration == pytest.approx(2500.0)
        assert result.stats.viability_percent == pytest.approx(100.0)

    def test_geometry_from_settings(self, disc_image):
        settings = CounterSettings(
            imaging=OTSU,
            geometry=GridGeometry(origin_x=0.0, origin_y=0.0, px_per_micron=0.5),
            dilution_factor=2.0,
        )
        result = CountingPipeline().run(disc_image, settings)
        assert result.calibrated
        assert result.stats.concentration == pytest.approx(5000.0)

    def test_size_filter_removes_large_object(self, disc_image, otsu_settings):
        # 437 px at 0.05 px/µm is ~175000 µm², above the 5000 µm² limit.
        geometry = GridGeometry(origin_x=0.0, origin_y=0.0, px_per_micron=0.05)
        result = CountingPipeline().run(disc_image, otsu_settings, geometry=geometry)
        assert result.object_count == 0
        assert result.segmentation.foreground_pixels > 0


class TestViability:
    def test_stained_cells_dead(self):
        image = draw_cells(
            (120, 120),
            [(30, 30, 10, DEAD_RGB), (30, 90, 10, DEAD_RGB), (90, 60, 10, (60, 60, 60))],
        )
        result = CountingPipeline().run(image, CounterSettings(imaging=OTSU))
        assert result.object_count == 3
        assert result.dead_count == 2
        assert result.live_count == 1
        # Raster order: the two top discs first.
        assert [o.is_live for o in result.objects] == [False, False, True]


class TestQuality:
    def test_blank_image(self, blank_image, otsu_settings, caplog):
        with caplog.at_level(logging.WARNING, logger="hemocount"):
            result = CountingPipeline().run(blank_image, otsu_settings)
        assert result.object_count == 0
        assert result.stats.mean_count == 0.0
        assert any(
            a.kind is AlertKind.UNDERCROWDING and a.severity is AlertSeverity.ERROR
            for a in result.alerts
        )
        assert "No objects detected" in caplog.text

    def test_capture_alerts_included(self, disc_image, otsu_settings):
        result = CountingPipeline().run(
            disc_image, otsu_settings, focus_score=40.0, glare_ratio=0.0,
        )
        assert result.alerts[0].kind is AlertKind.FOCUS
        assert result.alerts[0].severity is AlertSeverity.ERROR

    def test_capture_qc_needs_both_scores(self, disc_image, otsu_settings):
        result = CountingPipeline().run(disc_image, otsu_settings, focus_score=40.0)
        assert all(a.kind is not AlertKind.FOCUS for a in result.alerts)


class TestPipelineMechanics:
    def test_progress_callback(self, disc_image, otsu_settings):
        calls = []
        CountingPipeline().run(
            disc_image, otsu_settings, progress_callback=lambda c, t, s: calls.append((c, t, s)),
        )
        assert calls == [(i + 1, len(STAGES), stage) for i, stage in enumerate(STAGES)]

    def test_failing_ml_segmenter_falls_back(self, disc_image):
        settings = CounterSettings(
            imaging=ImagingParams(
                threshold_method=ThresholdMethod.OTSU, strategy=SegmentationStrategy.ML,
            ),
        )
        result = CountingPipeline(segmenter=FailingSegmenter()).run(disc_image, settings)
        assert result.segmentation.used_strategy is SegmentationStrategy.CLASSICAL
        assert result.object_count == 1

    def test_supplied_probability_mask(self, disc_image, otsu_settings):
        mask = np.zeros((64, 64), dtype=np.float32)
        mask[4:10, 4:10] = 1.0
        result = CountingPipeline().run(disc_image, otsu_settings, probability_mask=mask)
        assert result.segmentation.used_strategy is SegmentationStrategy.ML
        assert result.object_count == 1
        assert result.objects[0].cell.area_px == pytest.approx(36.0)

    @pytest.mark.parametrize("shape", [(0, 10), (10, 0), (2, 3, 4, 5)])
    def test_invalid_image(self, shape):
        with pytest.raises(InvalidInputError):
            CountingPipeline().run(np.zeros(shape, dtype=np.uint8))

    def test_perspective_correction(self):
        image = np.full((100, 100), 255, dtype=np.uint8)
        rr, cc = disk((50, 50), 12, shape=image.shape)
        image[rr, cc] = 0
        detector = FixedCornerDetector([(20, 20), (80, 20), (80, 80), (20, 80)])
        pipeline = CountingPipeline(detector=detector, corrector=ProjectivePerspectiveCorrector())

        result = pipeline.run(image, CounterSettings(imaging=OTSU))

        assert result.segmentation.original_size == (60, 60)
        assert result.geometry.px_per_micron == pytest.approx(60 / 3000)
        assert result.object_count == 1
        assert result.objects[0].cell.centroid_x == pytest.approx(30.0, abs=1.0)

    def test_corrector_without_corners(self, disc_image, otsu_settings, caplog):
        pipeline = CountingPipeline(
            detector=FixedCornerDetector(None), corrector=ProjectivePerspectiveCorrector(),
        )
        with caplog.at_level(logging.WARNING, logger="hemocount"):
            result = pipeline.run(disc_image, otsu_settings)
        assert result.object_count == 1
        assert result.geometry.px_per_micron == pytest.approx(64 / 3000)
        assert "Grid not detected" in caplog.text
