"""Tests for ComponentLabeler."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.ndimage import label as scipy_label

from hemocount.core.exceptions import InvalidInputError
from hemocount.segment.labeling import (
    FOUR_CONNECTIVITY,
    ComponentLabeler,
    boundary_edges,
    relabel_raster_order,
)


@pytest.fixture
def labeler() -> ComponentLabeler:
    return ComponentLabeler()


class TestLabel:
    def test_empty_mask(self, labeler: ComponentLabeler) -> None:
        result = labeler.label(np.zeros((10, 12), dtype=bool))
        assert result.count == 0
        assert result.labels.shape == (10, 12)
        assert not result.labels.any()

    def test_non_2d_raises(self, labeler: ComponentLabeler) -> None:
        with pytest.raises(InvalidInputError, match="2D"):
            labeler.label(np.zeros((2, 3, 4), dtype=bool))

    def test_two_blocks(self, labeler: ComponentLabeler) -> None:
        mask = np.zeros((10, 10), dtype=bool)
        mask[1:3, 1:3] = True
        mask[6:8, 5:7] = True
        result = labeler.label(mask)
        assert result.count == 2
        assert [s.pixel_count for s in result.stats] == [4, 4]
        assert [s.perimeter for s in result.stats] == [8, 8]

    def test_diagonal_pixels_are_separate(self, labeler: ComponentLabeler) -> None:
        mask = np.eye(4, dtype=bool)
        assert labeler.label(mask).count == 4

    def test_raster_order_ids(self, labeler: ComponentLabeler) -> None:
        """The region whose first pixel comes first in a raster scan is label 1."""
        mask = np.zeros((10, 15), dtype=bool)
        mask[5:9, 0:3] = True  # lower-left, larger
        mask[0:2, 10:13] = True  # top-right, met first
        result = labeler.label(mask)
        assert result.labels[0, 10] == 1
        assert result.labels[5, 0] == 2
        assert result.stats[0].min_y == 0
        assert result.stats[1].min_y == 5

    def test_u_shape_is_one_component(self, labeler: ComponentLabeler) -> None:
        mask = np.zeros((6, 7), dtype=bool)
        mask[1:5, 1] = True
        mask[1:5, 5] = True
        mask[4, 1:6] = True
        result = labeler.label(mask)
        assert result.count == 1
        assert result.stats[0].pixel_count == int(mask.sum())

    def test_stats_centroid_and_bbox(self, labeler: ComponentLabeler) -> None:
        mask = np.zeros((20, 30), dtype=bool)
        mask[5:10, 10:20] = True  # rows 5-9, cols 10-19
        s = labeler.label(mask).stats[0]
        assert (s.min_x, s.max_x, s.min_y, s.max_y) == (10, 19, 5, 9)
        assert (s.bbox_width, s.bbox_height) == (10, 5)
        assert s.centroid == pytest.approx((14.5, 7.0))
        assert s.perimeter == 2 * (10 + 5)

    def test_single_pixel_perimeter(self, labeler: ComponentLabeler) -> None:
        result = labeler.label(np.ones((1, 1), dtype=bool))
        assert result.stats[0].perimeter == 4

    def test_ring_counts_inner_edges(self, labeler: ComponentLabeler) -> None:
        mask = np.ones((3, 3), dtype=bool)
        mask[1, 1] = False
        s = labeler.label(mask).stats[0]
        assert s.pixel_count == 8
        assert s.perimeter == 12 + 4

    def test_border_edges_count(self, labeler: ComponentLabeler) -> None:
        """Image borders count as background for the perimeter."""
        s = labeler.label(np.ones((4, 6), dtype=bool)).stats[0]
        assert s.perimeter == 2 * (4 + 6)

    def test_matches_scipy_on_random_mask(self, labeler: ComponentLabeler) -> None:
        rng = np.random.default_rng(42)
        mask = rng.random((60, 80)) > 0.55
        result = labeler.label(mask)
        _, expected = scipy_label(mask, structure=FOUR_CONNECTIVITY)
        assert result.count == expected
        assert sum(s.pixel_count for s in result.stats) == int(mask.sum())
        assert np.array_equal(result.labels > 0, mask)
        assert set(np.unique(result.labels)) == set(range(result.count + 1))

    def test_ids_follow_first_pixel_order(self, labeler: ComponentLabeler) -> None:
        rng = np.random.default_rng(7)
        mask = rng.random((40, 40)) > 0.6
        labels = labeler.label(mask).labels
        flat = labels.ravel()
        first_seen = [v for v in dict.fromkeys(flat.tolist()) if v != 0]
        assert first_seen == list(range(1, len(first_seen) + 1))


class TestHelpers:
    def test_boundary_edges(self):
        mask = np.zeros((3, 3), dtype=bool)
        mask[1, 1] = True
        edges = boundary_edges(mask)
        assert edges[1, 1] == 4
        assert edges.sum() == 4

    def test_relabel_raster_order(self):
        labels = np.array([[0, 2, 2], [1, 0, 3]])
        out = relabel_raster_order(labels, 3)
        assert out.tolist() == [[0, 1, 1], [2, 0, 3]]
