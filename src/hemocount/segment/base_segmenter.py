"""Imaging parameters and the optional ML segmenter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import SegmentationStrategy, ThresholdMethod

MIN_BLOCK_SIZE = 31
MAX_BLOCK_SIZE = 101
MIN_C = -10
MAX_C = 10


def clamp_block_size(block_size: int) -> int:
    """Clamp an adaptive block size to [31, 101] and force it odd."""
    clamped = max(MIN_BLOCK_SIZE, min(MAX_BLOCK_SIZE, int(block_size)))
    return min(MAX_BLOCK_SIZE, clamped | 1)


@dataclass(frozen=True)
class ImagingParams:
    """Parameters for the thresholding and feature stages.

    Attributes:
        threshold_method: Adaptive (local mean) or Otsu (global).
        block_size: Adaptive window side at original resolution.
            Clamped to [31, 101] and forced odd.
        c: Offset subtracted from the local mean, in gray levels (-10..10).
        min_area_um2: Smallest object kept when a calibration is known.
        max_area_um2: Largest object kept when a calibration is known.
        strategy: Mask source: classical, ML, or automatic.
        max_working_size: Longer side of the working image after downscaling.
    """

    threshold_method: ThresholdMethod = ThresholdMethod.ADAPTIVE
    block_size: int = 51
    c: int = 0
    min_area_um2: float = 50.0
    max_area_um2: float = 5000.0
    strategy: SegmentationStrategy = SegmentationStrategy.CLASSICAL
    max_working_size: int = 384

    def __post_init__(self) -> None:
        """Validate parameters."""
        if not (MIN_C <= self.c <= MAX_C):
            raise InvalidInputError(
                f"c must be between {MIN_C} and {MAX_C}, got {self.c}"
            )
        if self.min_area_um2 < 0:
            raise InvalidInputError(
                f"min_area_um2 must be >= 0, got {self.min_area_um2}"
            )
        if self.max_area_um2 < self.min_area_um2:
            raise InvalidInputError(
                f"max_area_um2 ({self.max_area_um2}) must be >= "
                f"min_area_um2 ({self.min_area_um2})"
            )
        if self.max_working_size < 16:
            raise InvalidInputError(
                f"max_working_size must be >= 16, got {self.max_working_size}"
            )

    @property
    def effective_block_size(self) -> int:
        return clamp_block_size(self.block_size)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a YAML/JSON-serializable dict."""
        return {
            "threshold_method": self.threshold_method.value,
            "block_size": self.block_size,
            "c": self.c,
            "min_area_um2": self.min_area_um2,
            "max_area_um2": self.max_area_um2,
            "strategy": self.strategy.value,
            "max_working_size": self.max_working_size,
        }


class MLSegmenter(ABC):
    """Abstract interface for an external ML foreground model.

    Implementations wrap whatever inference runtime is available. The
    thresholding engine only consumes the returned mask; any exception
    raised here makes it fall back to classical thresholding.
    """

    @abstractmethod
    def predict(self, image: np.ndarray) -> np.ndarray:
        """Predict foreground for an image.

        Args:
            image: (Y, X) grayscale or (Y, X, C) RGB(A) array.

        Returns:
            2D array (Y', X') at any resolution: foreground probabilities in
            [0, 1] (float), or a binary/label mask (bool or integer).
        """
