"""ColorClassifier — trypan-blue live/dead calls from local color."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import CellObject, CellObjectLabeled, ViabilityLabel
from hemocount.viability.color import (
    global_median_value,
    sample_color_stats,
    sample_window,
)

logger = logging.getLogger(__name__)

DEFAULT_SATURATION_THRESHOLD = 0.3


@dataclass(frozen=True)
class ViabilityThresholds:
    """Thresholds for the dead-cell color rule.

    An object is dead iff its hue is in [hue_min, hue_max] (wrapping
    through 0 when hue_min > hue_max), its saturation is at least the
    saturation threshold, and its value is at most the value threshold.

    Attributes:
        hue_min: Lower edge of the blue band in degrees.
        hue_max: Upper edge of the blue band in degrees.
        saturation_min: Fixed saturation threshold. None = adaptive
            percentile over all objects in the image.
        value_max: Fixed value threshold. None = median value of the image.
        saturation_percentile: Percentile (0..1) used for the adaptive
            saturation threshold.
        window_size: Odd side of the color sampling window.
    """

    hue_min: float = 200.0
    hue_max: float = 260.0
    saturation_min: float | None = None
    value_max: float | None = None
    saturation_percentile: float = 0.6
    window_size: int = 5

    def __post_init__(self) -> None:
        """Validate thresholds."""
        for name in ("hue_min", "hue_max"):
            hue = getattr(self, name)
            if not (0.0 <= hue <= 360.0):
                raise InvalidInputError(f"{name} must be in [0, 360], got {hue}")
        if self.saturation_min is not None and not (0.0 <= self.saturation_min <= 1.0):
            raise InvalidInputError(
                f"saturation_min must be in [0, 1], got {self.saturation_min}"
            )
        if self.value_max is not None and not (0.0 <= self.value_max <= 1.0):
            raise InvalidInputError(f"value_max must be in [0, 1], got {self.value_max}")
        if not (0.0 <= self.saturation_percentile < 1.0):
            raise InvalidInputError(
                f"saturation_percentile must be in [0, 1), got {self.saturation_percentile}"
            )
        if self.window_size < 1 or self.window_size % 2 == 0:
            raise InvalidInputError(
                f"window_size must be a positive odd number, got {self.window_size}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hue_min": self.hue_min,
            "hue_max": self.hue_max,
            "saturation_min": self.saturation_min,
            "value_max": self.value_max,
            "saturation_percentile": self.saturation_percentile,
            "window_size": self.window_size,
        }


def hue_in_band(hue: float, hue_min: float, hue_max: float) -> bool:
    """Inclusive hue band test; the band wraps through 0 when hue_min > hue_max."""
    if hue_min <= hue_max:
        return hue_min <= hue <= hue_max
    return hue >= hue_min or hue <= hue_max


def adaptive_saturation_threshold(saturations: list[float], percentile: float = 0.6) -> float:
    """Saturation at the given percentile of all sampled objects.

    Takes the order statistic at index ``floor(n * percentile)`` (capped at
    ``n - 1``), so 60% of 5 objects selects the 4th smallest.
    """
    values = np.asarray(saturations, dtype=np.float64)
    if values.size == 0:
        return DEFAULT_SATURATION_THRESHOLD
    k = min(values.size - 1, int(values.size * percentile))
    return float(np.partition(values, k)[k])


def _as_rgb(image: np.ndarray) -> np.ndarray:
    """Validate an RGB(A) or grayscale buffer and return float RGB in [0, 1]."""
    from hemocount.segment.thresholding import as_float_image

    rgb = as_float_image(image)
    if rgb.ndim == 2:
        return np.repeat(rgb[..., np.newaxis], 3, axis=2)
    if rgb.shape[2] == 1:
        return np.repeat(rgb, 3, axis=2)
    return rgb[..., :3]


class ColorClassifier:
    """Label objects live or dead from the color around their centroid.

    Args:
        thresholds: Viability thresholds. None = defaults (blue band
            200-260°, adaptive saturation, median brightness).
    """

    def __init__(self, thresholds: ViabilityThresholds | None = None) -> None:
        self._thresholds = thresholds or ViabilityThresholds()

    @property
    def thresholds(self) -> ViabilityThresholds:
        return self._thresholds

    def classify(
        self,
        image: np.ndarray,
        objects: list[CellObject],
    ) -> list[CellObjectLabeled]:
        """Sample color for each object and assign a viability label.

        Args:
            image: Full-resolution (Y, X, 3|4) RGB(A) buffer.
            objects: Objects in original-resolution coordinates.

        Returns:
            One CellObjectLabeled per object, in input order.
        """
        if not objects:
            return []
        start = time.monotonic()
        t = self._thresholds
        rgb = _as_rgb(image)

        value_limit = t.value_max if t.value_max is not None else global_median_value(rgb)

        means = np.array([
            sample_window(rgb, obj.centroid_x, obj.centroid_y, t.window_size)
            for obj in objects
        ])
        colors = sample_color_stats(means)

        if t.saturation_min is not None:
            sat_limit = t.saturation_min
        else:
            sat_limit = adaptive_saturation_threshold(
                [c.saturation for c in colors], t.saturation_percentile,
            )

        labeled: list[CellObjectLabeled] = []
        for obj, color in zip(objects, colors):
            in_blue = hue_in_band(color.hue, t.hue_min, t.hue_max)
            saturated = color.saturation >= sat_limit
            dark = color.value <= value_limit
            is_dead = in_blue and saturated and dark
            confidence = (int(in_blue) + int(saturated) + int(dark)) / 3.0
            labeled.append(
                CellObjectLabeled(
                    cell=obj,
                    color=color,
                    label=ViabilityLabel.DEAD if is_dead else ViabilityLabel.LIVE,
                    confidence=confidence,
                )
            )

        logger.debug(
            "Classified %d objects (saturation >= %.3f, value <= %.3f) in %.1f ms",
            len(labeled), sat_limit, value_limit, (time.monotonic() - start) * 1000,
        )
        return labeled
