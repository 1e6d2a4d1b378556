"""Shared test fixtures for hemocount."""

from __future__ import annotations

import numpy as np
import pytest
from skimage.draw import disk

# Trypan-blue-like dark blue and unstained bright cell colors (uint8 RGB).
DEAD_RGB = (20, 40, 140)
LIVE_RGB = (215, 215, 205)
BACKGROUND_RGB = (240, 240, 240)


def draw_cells(
    shape: tuple[int, int],
    cells: list[tuple[int, int, int, tuple[int, int, int]]],
    background: tuple[int, int, int] = BACKGROUND_RGB,
) -> np.ndarray:
    """Paint (row, col, radius, rgb) discs on a uniform RGB background."""
    image = np.empty((*shape, 3), dtype=np.uint8)
    image[:] = background
    for row, col, radius, rgb in cells:
        rr, cc = disk((row, col), radius, shape=shape)
        image[rr, cc] = rgb
    return image


@pytest.fixture
def disc_image() -> np.ndarray:
    """64x64 grayscale: one solid black disc (radius 12) on white."""
    image = np.full((64, 64), 255, dtype=np.uint8)
    rr, cc = disk((32, 32), 12, shape=image.shape)
    image[rr, cc] = 0
    return image


@pytest.fixture
def blank_image() -> np.ndarray:
    """64x64 uniform white RGB image."""
    return np.full((64, 64, 3), 255, dtype=np.uint8)
