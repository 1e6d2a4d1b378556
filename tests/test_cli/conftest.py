"""Shared fixtures for CLI module tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import tifffile
from click.testing import CliRunner
from skimage.draw import disk


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def disc_tiff(tmp_path: Path) -> Path:
    """Grayscale TIFF with one dark disc (radius 12) on white."""
    image = np.full((64, 64), 255, dtype=np.uint8)
    rr, cc = disk((32, 32), 12, shape=image.shape)
    image[rr, cc] = 0
    path = tmp_path / "disc.tif"
    tifffile.imwrite(str(path), image)
    return path
