"""Hemocytometer grid mapping, calibration, and grid-detection interfaces."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Sequence

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import CellObject, GridGeometry, GridIndex

Point = tuple[float, float]


def map_centroid_to_grid(x: float, y: float, geometry: GridGeometry) -> GridIndex | None:
    """Map a pixel position to its large and small square.

    Inclusion rule: a point on the top or left edge of a square belongs to
    that square; a point on the bottom or right edge of the whole counting
    area (or anywhere outside it) maps to None.

    Args:
        x: Column in original-image pixels.
        y: Row in original-image pixels.
        geometry: Grid calibration.

    Returns:
        GridIndex, or None when the point is outside the counting area.
    """
    u = (x - geometry.origin_x) / geometry.px_per_micron
    v = (y - geometry.origin_y) / geometry.px_per_micron
    extent = geometry.width_um
    # NaN fails every comparison and lands here too.
    if not (0.0 <= u < extent and 0.0 <= v < extent):
        return None

    n = geometry.large_squares
    m = geometry.small_per_large
    large = geometry.large_size_um
    small = geometry.small_size_um

    large_col = min(n - 1, math.floor(u / large))
    large_row = min(n - 1, math.floor(v / large))
    small_col = max(0, min(m - 1, math.floor((u - large_col * large) / small)))
    small_row = max(0, min(m - 1, math.floor((v - large_row * large) / small)))

    return GridIndex(
        large_row=large_row,
        large_col=large_col,
        small_row=small_row,
        small_col=small_col,
        large_index=large_row * n + large_col,
    )


class GridMapper:
    """Assign objects to hemocytometer squares for one calibration.

    Args:
        geometry: Grid calibration of the corrected image.
    """

    def __init__(self, geometry: GridGeometry) -> None:
        self._geometry = geometry

    @property
    def geometry(self) -> GridGeometry:
        return self._geometry

    def map_point(self, x: float, y: float) -> GridIndex | None:
        return map_centroid_to_grid(x, y, self._geometry)

    def map_objects(self, objects: Sequence[CellObject]) -> list[GridIndex | None]:
        """Grid index of each object's centroid, in input order."""
        return [self.map_point(obj.centroid_x, obj.centroid_y) for obj in objects]


def px_per_micron_from_square(square_width_px: float, square_width_um: float = 1000.0) -> float:
    """Calibration from the measured pixel width of a square of known size.

    Raises:
        InvalidInputError: If either width is not positive.
    """
    if not square_width_px > 0:
        raise InvalidInputError(f"must be > 0, got {square_width_px}", field="square width (px)")
    if not square_width_um > 0:
        raise InvalidInputError(f"must be > 0, got {square_width_um}", field="square width (µm)")
    return square_width_px / square_width_um


def validate_corners(corners: Sequence[Sequence[float]]) -> list[Point]:
    """Check four grid corners ordered top-left, top-right, bottom-right, bottom-left.

    The quadrilateral must be convex, non-degenerate, and clockwise on
    screen (y pointing down).

    Returns:
        The corners as a list of (x, y) float tuples.

    Raises:
        InvalidInputError: If the corners are malformed.
    """
    if len(corners) != 4:
        raise InvalidInputError(f"expected 4 points, got {len(corners)}", field="corners")
    points: list[Point] = []
    for i, corner in enumerate(corners):
        if len(corner) != 2:
            raise InvalidInputError(f"point {i} must have 2 coordinates", field="corners")
        x, y = float(corner[0]), float(corner[1])
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidInputError(f"point {i} is not finite: ({x}, {y})", field="corners")
        points.append((x, y))

    if len(set(points)) != 4:
        raise InvalidInputError("points must be distinct", field="corners")

    crosses = []
    for i in range(4):
        ax, ay = points[i]
        bx, by = points[(i + 1) % 4]
        cx, cy = points[(i + 2) % 4]
        crosses.append((bx - ax) * (cy - by) - (by - ay) * (cx - bx))
    if not all(c > 0 for c in crosses):
        raise InvalidInputError(
            "points must form a convex quadrilateral ordered "
            "top-left, top-right, bottom-right, bottom-left",
            field="corners",
        )
    return points


def geometry_from_corners(
    corners: Sequence[Sequence[float]],
    large_squares: int = 3,
    large_size_um: float = 1000.0,
    small_per_large: int = 5,
) -> GridGeometry:
    """Build a GridGeometry from the four corners of the counting area.

    The origin is the top-left corner; the scale is the mean length of the
    top and bottom edges divided by the physical grid width.
    """
    tl, tr, br, bl = validate_corners(corners)
    top = math.dist(tl, tr)
    bottom = math.dist(bl, br)
    width_um = large_squares * large_size_um
    return GridGeometry(
        origin_x=tl[0],
        origin_y=tl[1],
        px_per_micron=((top + bottom) / 2.0) / width_um,
        large_squares=large_squares,
        large_size_um=large_size_um,
        small_per_large=small_per_large,
    )


class GridDetector(ABC):
    """Locates the counting area in a raw micrograph."""

    @abstractmethod
    def detect(self, image: np.ndarray) -> list[Point] | None:
        """Find the grid corners.

        Args:
            image: (Y, X) or (Y, X, C) pixel buffer.

        Returns:
            Four (x, y) corners ordered top-left, top-right, bottom-right,
            bottom-left, or None if no grid was found.
        """


class FullFrameGridDetector(GridDetector):
    """Treats the whole frame as the counting area (image already cropped)."""

    def detect(self, image: np.ndarray) -> list[Point] | None:
        h, w = np.shape(image)[:2]
        if h <= 0 or w <= 0:
            return None
        return [(0.0, 0.0), (float(w), 0.0), (float(w), float(h)), (0.0, float(h))]


class PerspectiveCorrector(ABC):
    """Rectifies the counting area into an axis-aligned image."""

    @abstractmethod
    def correct(self, image: np.ndarray, corners: Sequence[Sequence[float]]) -> np.ndarray:
        """Warp the quadrilateral given by ``corners`` onto a rectangle."""


class ProjectivePerspectiveCorrector(PerspectiveCorrector):
    """Projective warp with scikit-image.

    Args:
        output_size: (width, height) of the rectified image. None = the
            mean edge lengths of the input quadrilateral.
    """

    def __init__(self, output_size: tuple[int, int] | None = None) -> None:
        self._output_size = output_size

    def correct(self, image: np.ndarray, corners: Sequence[Sequence[float]]) -> np.ndarray:
        from skimage.transform import ProjectiveTransform, warp

        tl, tr, br, bl = validate_corners(corners)
        if self._output_size is not None:
            out_w, out_h = self._output_size
        else:
            out_w = int(round((math.dist(tl, tr) + math.dist(bl, br)) / 2.0))
            out_h = int(round((math.dist(tl, bl) + math.dist(tr, br)) / 2.0))
        if out_w <= 0 or out_h <= 0:
            raise InvalidInputError(f"output size must be positive, got {out_w}x{out_h}")

        dst = np.array([[0, 0], [out_w, 0], [out_w, out_h], [0, out_h]], dtype=np.float64)
        src = np.array([tl, tr, br, bl], dtype=np.float64)
        tform = ProjectiveTransform()
        if not tform.estimate(dst, src):
            raise InvalidInputError("could not estimate a projective transform", field="corners")

        image = np.asarray(image)
        warped = warp(image, tform, output_shape=(out_h, out_w), preserve_range=True)
        if np.issubdtype(image.dtype, np.integer):
            info = np.iinfo(image.dtype)
            warped = np.clip(np.rint(warped), info.min, info.max)
        return warped.astype(image.dtype)
