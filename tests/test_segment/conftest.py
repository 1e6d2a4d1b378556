"""Shared fixtures for segmentation module tests."""

from __future__ import annotations

import numpy as np
import pytest

from hemocount.segment.base_segmenter import MLSegmenter


class MockSegmenter(MLSegmenter):
    """Returns a pre-defined mask, or one square of foreground."""

    def __init__(self, mask: np.ndarray | None = None) -> None:
        self._mask = mask
        self.calls = 0

    def predict(self, image: np.ndarray) -> np.ndarray:
        self.calls += 1
        if self._mask is not None:
            return self._mask
        mask = np.zeros(image.shape[:2], dtype=np.float32)
        h, w = mask.shape
        mask[h // 4 : h // 2, w // 4 : w // 2] = 0.9
        return mask


class FailingSegmenter(MLSegmenter):
    """Raises on every prediction."""

    def predict(self, image: np.ndarray) -> np.ndarray:
        raise RuntimeError("model not loaded")


@pytest.fixture
def mock_segmenter() -> MockSegmenter:
    return MockSegmenter()


@pytest.fixture
def failing_segmenter() -> FailingSegmenter:
    return FailingSegmenter()
