"""Raw component statistics to CellObject shape features."""

from __future__ import annotations

import math

import numpy as np

from hemocount.core.models import BoundingBox, CellObject, SolidityMethod
from hemocount.segment.labeling import ComponentStats, LabelingResult


def integral_bbox(x: float, y: float, width: float, height: float) -> BoundingBox:
    """Smallest integer-aligned rectangle containing a float rectangle."""
    x0 = math.floor(x)
    y0 = math.floor(y)
    x1 = math.ceil(x + width)
    y1 = math.ceil(y + height)
    return BoundingBox(x=int(x0), y=int(y0), width=int(x1 - x0), height=int(y1 - y0))


def convex_hull_solidity(labels: np.ndarray, stats: ComponentStats) -> float:
    """Region area divided by the area of its convex hull (mask resolution)."""
    from skimage.measure import regionprops

    # Too few pixels or collinear regions have no 2D hull.
    if stats.pixel_count < 3 or stats.bbox_width == 1 or stats.bbox_height == 1:
        return 1.0
    crop = labels[stats.min_y:stats.max_y + 1, stats.min_x:stats.max_x + 1]
    region = (crop == stats.label).astype(np.uint8)
    props = regionprops(region)
    return float(props[0].solidity) if props else 1.0


class ShapeFeatureCalculator:
    """Derive CellObjects from labeled component statistics.

    Area, perimeter, centroid and bounding box are rescaled from mask
    pixels to original-image pixels using the downscale factor recorded
    by the thresholding engine.

    Args:
        solidity: Which solidity definition to compute. The default
            ``BOUNDING_BOX`` is an approximation (area / bounding-box area);
            ``CONVEX_HULL`` computes the true ratio with scikit-image;
            ``UNIT`` reports 1.0 for every object.
    """

    def __init__(self, solidity: SolidityMethod = SolidityMethod.BOUNDING_BOX) -> None:
        self._solidity = solidity

    @property
    def solidity_method(self) -> SolidityMethod:
        return self._solidity

    def compute(
        self,
        labeling: LabelingResult,
        downscale_factor: float = 1.0,
    ) -> list[CellObject]:
        """Convert labeled components to CellObjects.

        Args:
            labeling: Output of ``ComponentLabeler.label()``.
            downscale_factor: Original pixels per mask pixel.

        Returns:
            CellObjects in ascending label order. Empty list if there are
            no components.
        """
        scale = max(float(downscale_factor), 1.0)
        scale_sq = scale * scale
        objects: list[CellObject] = []

        for stats in sorted(labeling.stats, key=lambda s: s.label):
            if stats.pixel_count <= 0:
                continue
            area_px = float(stats.pixel_count) * scale_sq
            perimeter_px = float(stats.perimeter) * scale

            # Guard: perimeter == 0 gives circularity 0 by convention.
            if perimeter_px > 0:
                circularity = 4.0 * math.pi * area_px / (perimeter_px * perimeter_px)
            else:
                circularity = 0.0

            cx, cy = stats.centroid
            bbox = integral_bbox(
                stats.min_x * scale,
                stats.min_y * scale,
                stats.bbox_width * scale,
                stats.bbox_height * scale,
            )

            objects.append(
                CellObject(
                    id=stats.label,
                    pixel_count=stats.pixel_count,
                    area_px=area_px,
                    perimeter_px=perimeter_px,
                    circularity=circularity,
                    solidity=self._compute_solidity(labeling.labels, stats),
                    centroid_x=cx * scale,
                    centroid_y=cy * scale,
                    bbox=bbox,
                )
            )

        return objects

    def _compute_solidity(self, labels: np.ndarray, stats: ComponentStats) -> float:
        if self._solidity is SolidityMethod.UNIT:
            return 1.0
        if self._solidity is SolidityMethod.BOUNDING_BOX:
            return stats.pixel_count / float(stats.bbox_width * stats.bbox_height)
        if self._solidity is SolidityMethod.CONVEX_HULL:
            return convex_hull_solidity(labels, stats)
        raise ValueError(f"Unknown solidity method: {self._solidity}")


def filter_by_area(
    objects: list[CellObject],
    px_per_micron: float,
    min_area_um2: float,
    max_area_um2: float,
) -> list[CellObject]:
    """Keep objects whose area in µm^2 lies within [min_area_um2, max_area_um2].

    Object ids are left unchanged, so kept ids may have gaps.
    """
    return [
        obj for obj in objects
        if min_area_um2 <= obj.area_um2(px_per_micron) <= max_area_um2
    ]
