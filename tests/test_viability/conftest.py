"""Shared fixtures for viability module tests."""

from __future__ import annotations

import pytest

from hemocount.core.models import BoundingBox, CellObject


def make_cell(cell_id: int, x: float, y: float, area: float = 300.0) -> CellObject:
    """A CellObject centered at (x, y) with plausible shape features."""
    return CellObject(
        id=cell_id,
        pixel_count=int(area),
        area_px=area,
        perimeter_px=70.0,
        circularity=0.77,
        solidity=0.78,
        centroid_x=x,
        centroid_y=y,
        bbox=BoundingBox(int(x) - 10, int(y) - 10, 20, 20),
    )


@pytest.fixture
def cell_factory():
    return make_cell
