"""Data models for the hemocount core module.

Every value produced by the counting pipeline is an immutable dataclass.
Each stage consumes the previous stage's values and returns new ones;
nothing is mutated after construction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from hemocount.core.exceptions import InvalidInputError


class ThresholdMethod(Enum):
    """Classical binarization method."""

    ADAPTIVE = "adaptive"
    OTSU = "otsu"


class SegmentationStrategy(Enum):
    """Which mask source the thresholding engine should use."""

    CLASSICAL = "classical"
    ML = "ml"
    AUTOMATIC = "automatic"


class ViabilityLabel(Enum):
    """Trypan-blue viability call for a single object."""

    LIVE = "live"
    DEAD = "dead"


class SolidityMethod(Enum):
    """How ``CellObject.solidity`` is computed.

    ``BOUNDING_BOX`` is an approximation (area / bounding-box area), not a
    convex-hull ratio. ``CONVEX_HULL`` is the true solidity.
    """

    UNIT = "unit"
    BOUNDING_BOX = "bounding_box"
    CONVEX_HULL = "convex_hull"


class ChamberType(Enum):
    """Counting chamber type; selects the volume factor of one large square."""

    NEUBAUER = "neubauer"
    DISPOSABLE = "disposable"


# cells/mL per cell/large square; one large square holds 0.1 µL.
CHAMBER_FACTORS: dict[ChamberType, float] = {
    ChamberType.NEUBAUER: 1e4,
    ChamberType.DISPOSABLE: 1e4,
}


@dataclass(frozen=True)
class SegmentationResult:
    """Binary foreground mask plus the metadata needed to map it back.

    Attributes:
        width: Mask width in pixels (may be downscaled).
        height: Mask height in pixels.
        mask: 2D bool array of shape (height, width); True = foreground.
        downscale_factor: Original pixels per mask pixel (>= 1).
        polarity_inverted: True if the image was inverted before thresholding.
        original_width: Width of the source image. None = width * factor.
        original_height: Height of the source image. None = height * factor.
        used_strategy: Mask source that actually produced ``mask``.
        threshold_value: Otsu threshold in [0, 1]; None for other sources.
    """

    width: int
    height: int
    mask: np.ndarray
    downscale_factor: float = 1.0
    polarity_inverted: bool = False
    original_width: int | None = None
    original_height: int | None = None
    used_strategy: SegmentationStrategy = SegmentationStrategy.CLASSICAL
    threshold_value: float | None = None

    def __post_init__(self) -> None:
        """Validate mask shape and downscale factor."""
        if self.width < 0 or self.height < 0:
            raise InvalidInputError(
                f"mask dimensions must be >= 0, got {self.width}x{self.height}"
            )
        if self.mask.shape != (self.height, self.width):
            raise InvalidInputError(
                f"mask shape {self.mask.shape} does not match "
                f"({self.height}, {self.width})"
            )
        if not self.downscale_factor >= 1.0:
            raise InvalidInputError(
                f"downscale_factor must be >= 1, got {self.downscale_factor}"
            )

    @property
    def original_size(self) -> tuple[int, int]:
        """(width, height) of the source image."""
        ow = self.original_width
        oh = self.original_height
        if ow is None:
            ow = int(round(self.width * self.downscale_factor))
        if oh is None:
            oh = int(round(self.height * self.downscale_factor))
        return ow, oh

    @property
    def foreground_pixels(self) -> int:
        return int(np.count_nonzero(self.mask))


@dataclass(frozen=True)
class BoundingBox:
    """Integer-aligned rectangle in original-image pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class CellObject:
    """Shape features of one connected foreground region.

    Attributes:
        id: Label id, ascending in raster order of each region's first pixel.
        pixel_count: Number of mask pixels in the region (mask resolution).
        area_px: Area in original-resolution px^2.
        perimeter_px: Boundary edge count scaled to original resolution.
        circularity: 4*pi*area / perimeter^2, 0 when perimeter is 0.
        solidity: See ``SolidityMethod`` for which definition is in effect.
        centroid_x: Centroid x in original-resolution pixels.
        centroid_y: Centroid y in original-resolution pixels.
        bbox: Integer-aligned bounding box at original resolution.
    """

    id: int
    pixel_count: int
    area_px: float
    perimeter_px: float
    circularity: float
    solidity: float
    centroid_x: float
    centroid_y: float
    bbox: BoundingBox

    @property
    def centroid(self) -> tuple[float, float]:
        return self.centroid_x, self.centroid_y

    def area_um2(self, px_per_micron: float) -> float:
        """Area in square microns; 0 when the calibration is not positive."""
        if px_per_micron <= 0:
            return 0.0
        return self.area_px / (px_per_micron * px_per_micron)


@dataclass(frozen=True)
class ColorSampleStats:
    """Mean color of a small window around an object's centroid.

    Attributes:
        hue: HSV hue in degrees, [0, 360).
        saturation: HSV saturation, [0, 1].
        value: HSV value, [0, 1].
        lab_l: CIE L*, [0, 100].
        lab_a: CIE a*.
        lab_b: CIE b*.
    """

    hue: float
    saturation: float
    value: float
    lab_l: float
    lab_a: float
    lab_b: float


@dataclass(frozen=True)
class CellObjectLabeled:
    """A CellObject with its sampled color and viability call."""

    cell: CellObject
    color: ColorSampleStats
    label: ViabilityLabel
    confidence: float

    @property
    def id(self) -> int:
        return self.cell.id

    @property
    def is_live(self) -> bool:
        return self.label is ViabilityLabel.LIVE


@dataclass(frozen=True)
class GridGeometry:
    """Calibration of the counting grid in the corrected image.

    Attributes:
        origin_x: x of the grid's top-left corner in pixels.
        origin_y: y of the grid's top-left corner in pixels.
        px_per_micron: Pixels per micron (> 0).
        large_squares: Number of large squares per side (N).
        large_size_um: Side length of a large square in microns.
        small_per_large: Small squares per side of a large square (M).
    """

    origin_x: float
    origin_y: float
    px_per_micron: float
    large_squares: int = 3
    large_size_um: float = 1000.0
    small_per_large: int = 5

    def __post_init__(self) -> None:
        """Validate calibration values."""
        if not (math.isfinite(self.origin_x) and math.isfinite(self.origin_y)):
            raise InvalidInputError(
                f"origin must be finite, got ({self.origin_x}, {self.origin_y})",
                field="grid origin",
            )
        if not (math.isfinite(self.px_per_micron) and self.px_per_micron > 0):
            raise InvalidInputError(
                f"must be > 0, got {self.px_per_micron}", field="px_per_micron",
            )
        if self.large_squares < 1:
            raise InvalidInputError(
                f"must be >= 1, got {self.large_squares}", field="large_squares",
            )
        if not self.large_size_um > 0:
            raise InvalidInputError(
                f"must be > 0, got {self.large_size_um}", field="large_size_um",
            )
        if self.small_per_large < 1:
            raise InvalidInputError(
                f"must be >= 1, got {self.small_per_large}", field="small_per_large",
            )

    @property
    def small_size_um(self) -> float:
        return self.large_size_um / self.small_per_large

    @property
    def width_um(self) -> float:
        """Side length of the whole valid counting area in microns."""
        return self.large_squares * self.large_size_um

    @property
    def large_size_px(self) -> float:
        return self.large_size_um * self.px_per_micron

    @property
    def square_count(self) -> int:
        return self.large_squares * self.large_squares


@dataclass(frozen=True)
class GridIndex:
    """Position of a point on the hemocytometer grid.

    ``large_index`` is the row-major linear index of the large square.
    """

    large_row: int
    large_col: int
    small_row: int
    small_col: int
    large_index: int


@dataclass(frozen=True)
class SquareCount:
    """Live/dead tally of one large square."""

    index: int
    live: int = 0
    dead: int = 0
    is_outlier: bool = False

    @property
    def total(self) -> int:
        return self.live + self.dead


# Large-square linear index -> tally.
SquareTally = dict[int, SquareCount]


@dataclass(frozen=True)
class AggregateStats:
    """Aggregate count, concentration, and viability of a sample.

    Attributes:
        live: Live objects in the squares used for the mean.
        dead: Dead objects in the squares used for the mean.
        mean_count: Robust mean count per large square.
        concentration: Cells per mL.
        viability_percent: live / (live + dead) * 100, 0 when empty.
        outliers_excluded: Number of selected squares rejected as outliers.
        squares_used: Number of squares that contributed to the mean.
        tally: Per-square counts for every selected square.
    """

    live: int
    dead: int
    mean_count: float
    concentration: float
    viability_percent: float
    outliers_excluded: int
    squares_used: int
    tally: SquareTally = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.live + self.dead


@dataclass(frozen=True)
class SeedingPlan:
    """Volume of cell suspension needed to seed a target number of cells."""

    volume_ml: float
    feasible: bool
    message: str
