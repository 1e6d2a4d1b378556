"""Tests for color conversion and sampling."""

from __future__ import annotations

import numpy as np
import pytest

from hemocount.viability.color import (
    global_median_value,
    rgb_to_hsv,
    rgb_to_lab,
    sample_color_stats,
    sample_window,
)


class TestConversions:
    @pytest.mark.parametrize(
        "rgb, hue",
        [((1, 0, 0), 0.0), ((0, 1, 0), 120.0), ((0, 0, 1), 240.0), ((1, 0, 1), 300.0)],
    )
    def test_hue_degrees(self, rgb, hue):
        h, s, v = rgb_to_hsv(np.array(rgb, dtype=float))
        assert h == pytest.approx(hue)
        assert s == pytest.approx(1.0)
        assert v == pytest.approx(1.0)

    def test_hsv_batch_shape(self):
        out = rgb_to_hsv(np.random.default_rng(0).random((7, 3)))
        assert out.shape == (7, 3)
        assert np.all((out[:, 0] >= 0) & (out[:, 0] < 360))

    def test_gray_has_zero_saturation(self):
        _, s, v = rgb_to_hsv(np.array([0.4, 0.4, 0.4]))
        assert s == 0.0
        assert v == pytest.approx(0.4)

    def test_lab_white_and_black(self):
        white = rgb_to_lab(np.array([1.0, 1.0, 1.0]))
        black = rgb_to_lab(np.array([0.0, 0.0, 0.0]))
        assert white[0] == pytest.approx(100.0, abs=0.01)
        assert white[1] == pytest.approx(0.0, abs=0.1)
        assert white[2] == pytest.approx(0.0, abs=0.1)
        assert black[0] == pytest.approx(0.0, abs=0.01)

    def test_lab_blue_is_negative_b(self):
        _, _, b = rgb_to_lab(np.array([0.0, 0.0, 1.0]))
        assert b < -50


class TestSampling:
    def test_uniform_window(self):
        image = np.zeros((20, 20, 3))
        image[..., 2] = 0.8
        assert sample_window(image, 10.0, 10.0).tolist() == pytest.approx([0.0, 0.0, 0.8])

    def test_window_clamped_at_edges(self):
        """Columns -2..2 clamp to 0,0,0,1,2."""
        image = np.zeros((10, 10, 3))
        image[..., 0] = np.arange(10)[np.newaxis, :]
        mean = sample_window(image, 0.0, 0.0)
        assert mean[0] == pytest.approx((0 + 0 + 0 + 1 + 2) / 5)

    def test_window_truncates_center(self):
        image = np.zeros((10, 10, 3))
        image[..., 0] = np.arange(10)[np.newaxis, :]
        assert sample_window(image, 5.9, 5.0, size=1)[0] == 5.0

    def test_sample_color_stats(self):
        stats = sample_color_stats(np.array([[0.0, 0.0, 1.0], [1.0, 1.0, 1.0]]))
        assert len(stats) == 2
        assert stats[0].hue == pytest.approx(240.0)
        assert stats[1].lab_l == pytest.approx(100.0, abs=0.01)

    def test_sample_color_stats_empty(self):
        assert sample_color_stats(np.empty((0, 3))) == []


class TestGlobalMedian:
    def test_uniform(self):
        image = np.full((100, 100, 3), 0.4)
        assert global_median_value(image) == pytest.approx(0.4)

    def test_uses_max_channel(self):
        image = np.zeros((50, 50, 3))
        image[..., 1] = 0.7
        assert global_median_value(image) == pytest.approx(0.7)

    def test_even_count_averages_middle_pair(self):
        image = np.zeros((1, 4, 3))
        image[0, :, 0] = [0.4, 0.1, 0.3, 0.2]
        assert global_median_value(image) == pytest.approx(0.25)

    def test_odd_count(self):
        image = np.zeros((1, 5, 3))
        image[0, :, 2] = [0.9, 0.1, 0.5, 0.3, 0.7]
        assert global_median_value(image) == pytest.approx(0.5)

    def test_empty_image(self):
        assert global_median_value(np.zeros((0, 0, 3))) == 0.5
