"""Shared fixtures for counting module tests."""

from __future__ import annotations

import pytest

from hemocount.core.models import (
    BoundingBox,
    CellObject,
    CellObjectLabeled,
    ColorSampleStats,
    GridGeometry,
    GridIndex,
    ViabilityLabel,
)

_CELL = CellObject(
    id=1, pixel_count=300, area_px=300.0, perimeter_px=70.0, circularity=0.77,
    solidity=0.78, centroid_x=0.0, centroid_y=0.0, bbox=BoundingBox(0, 0, 20, 20),
)
_COLOR = ColorSampleStats(60.0, 0.05, 0.85, 85.0, -1.0, 4.0)

LIVE = CellObjectLabeled(_CELL, _COLOR, ViabilityLabel.LIVE, 2 / 3)
DEAD = CellObjectLabeled(_CELL, _COLOR, ViabilityLabel.DEAD, 1.0)


def square_index(large_index: int, n: int = 3) -> GridIndex:
    return GridIndex(
        large_row=large_index // n,
        large_col=large_index % n,
        small_row=0,
        small_col=0,
        large_index=large_index,
    )


def populate(counts: dict[int, tuple[int, int]]):
    """Objects and grid indices for {square: (live, dead)}."""
    objects: list[CellObjectLabeled] = []
    indices: list[GridIndex | None] = []
    for square, (live, dead) in counts.items():
        objects.extend([LIVE] * live + [DEAD] * dead)
        indices.extend([square_index(square)] * (live + dead))
    return objects, indices


@pytest.fixture
def geometry() -> GridGeometry:
    """Origin at (0, 0), 0.5 px/µm: large squares are 500 px, small 100 px."""
    return GridGeometry(origin_x=0.0, origin_y=0.0, px_per_micron=0.5)
