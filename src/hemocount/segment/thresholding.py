"""ThresholdEngine — binarize a micrograph into a foreground mask."""

from __future__ import annotations

import logging
import math
import time

import numpy as np

from hemocount.core.exceptions import InvalidInputError
from hemocount.core.models import (
    SegmentationResult,
    SegmentationStrategy,
    ThresholdMethod,
)
from hemocount.segment.base_segmenter import ImagingParams, MLSegmenter

logger = logging.getLogger(__name__)

# Rec. 709 perceptual luminance weights.
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722])

POLARITY_SAMPLE_SIZE = 64


def as_float_image(image: np.ndarray) -> np.ndarray:
    """Validate a pixel buffer and convert it to float64 in [0, 1].

    Args:
        image: (Y, X) grayscale or (Y, X, C) with C in {1, 3, 4}.

    Raises:
        InvalidInputError: If the shape or dimensions are unusable.
    """
    from skimage.util import img_as_float

    image = np.asarray(image)
    if image.ndim not in (2, 3):
        raise InvalidInputError(
            f"image must be 2D or 3D, got {image.ndim}D with shape {image.shape}"
        )
    if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
        raise InvalidInputError(
            f"image must have 1, 3 or 4 channels, got {image.shape[2]}"
        )
    if image.shape[0] <= 0 or image.shape[1] <= 0:
        raise InvalidInputError(
            f"image dimensions must be positive, got {image.shape[1]}x{image.shape[0]}"
        )
    return np.clip(img_as_float(image), 0.0, 1.0)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Reduce a float image in [0, 1] to perceptual luminance."""
    if image.ndim == 2:
        return image
    if image.shape[2] == 1:
        return image[..., 0]
    return image[..., :3] @ LUMA_WEIGHTS


def should_invert_polarity(gray: np.ndarray) -> bool:
    """True if the background is bright, so dark cells must be inverted.

    Mean luminance is taken over a coarse (<= 64x64) subsample.
    """
    h, w = gray.shape
    step = max(1, math.ceil(max(w, h) / POLARITY_SAMPLE_SIZE))
    coarse = gray[::step, ::step]
    return bool(coarse.mean() > 0.5)


def working_size(width: int, height: int, max_dim: int) -> tuple[int, int, float]:
    """Compute the working resolution for an image.

    Returns:
        (working_width, working_height, downscale_factor) where the factor
        is original / working width and never below 1.
    """
    raw_scale = max(1.0, max(width, height) / max_dim)
    dw = max(1, int(math.floor(width / raw_scale + 0.5)))
    dh = max(1, int(math.floor(height / raw_scale + 0.5)))
    return dw, dh, max(1.0, width / dw)


def gray_levels(gray: np.ndarray) -> np.ndarray:
    """Map [0, 1] floats onto integer gray levels 0..255."""
    return np.clip(np.floor(gray * 255.0 + 1e-6), 0, 255).astype(np.intp)


def otsu_level(levels: np.ndarray) -> int:
    """Otsu's threshold over integer gray levels 0..255.

    Scans every threshold tracking cumulative class weight and sum; the
    first level with the largest between-class variance wins. Pixels with
    a level strictly above the returned value are foreground.
    """
    hist = np.bincount(levels.ravel(), minlength=256).astype(np.float64)
    bins = np.arange(256, dtype=np.float64)
    total = float(levels.size)
    weight_bg = np.cumsum(hist)
    sum_bg = np.cumsum(bins * hist)
    weight_fg = total - weight_bg
    valid = (weight_bg > 0) & (weight_fg > 0)
    if not np.any(valid):
        return 0
    mean_bg = np.divide(sum_bg, weight_bg, out=np.zeros(256), where=weight_bg > 0)
    mean_fg = np.divide(
        sum_bg[-1] - sum_bg, weight_fg, out=np.zeros(256), where=weight_fg > 0,
    )
    between = np.where(valid, weight_bg * weight_fg * (mean_bg - mean_fg) ** 2, 0.0)
    if between.max() <= 0:
        return 0
    return int(np.argmax(between))


def integral_image(gray: np.ndarray) -> np.ndarray:
    """Summed-area table of shape (h + 1, w + 1) with a zero first row/column."""
    h, w = gray.shape
    table = np.zeros((h + 1, w + 1), dtype=np.float64)
    table[1:, 1:] = np.cumsum(np.cumsum(gray, axis=0), axis=1)
    return table


def adaptive_threshold(gray: np.ndarray, block_size: int, c: float) -> np.ndarray:
    """Local-mean thresholding.

    A pixel is foreground iff its value exceeds the mean of the
    block_size x block_size window around it (clipped to the image) minus c.

    Args:
        gray: 2D float image in [0, 1].
        block_size: Odd window side in pixels.
        c: Offset in the same units as ``gray``.
    """
    h, w = gray.shape
    table = integral_image(gray)
    r = max(1, block_size // 2)

    ys = np.arange(h)
    xs = np.arange(w)
    y0 = np.clip(ys - r, 0, h - 1)
    y1 = np.clip(ys + r, 0, h - 1) + 1
    x0 = np.clip(xs - r, 0, w - 1)
    x1 = np.clip(xs + r, 0, w - 1) + 1

    window_sum = (
        table[np.ix_(y1, x1)]
        - table[np.ix_(y0, x1)]
        - table[np.ix_(y1, x0)]
        + table[np.ix_(y0, x0)]
    )
    count = np.outer(y1 - y0, x1 - x0).astype(np.float64)
    return gray > (window_sum / count - c)


def resize_mask_nearest(mask: np.ndarray, height: int, width: int) -> np.ndarray:
    """Nearest-neighbor resize of a 2D bool mask."""
    mh, mw = mask.shape
    if (mh, mw) == (height, width):
        return mask
    rows = np.minimum((np.arange(height) * mh) // height, mh - 1)
    cols = np.minimum((np.arange(width) * mw) // width, mw - 1)
    return mask[np.ix_(rows, cols)]


def binarize_probability_mask(raw: np.ndarray) -> np.ndarray | None:
    """Reduce an ML output to a 2D bool mask, or None if unusable."""
    raw = np.squeeze(np.asarray(raw))
    if raw.ndim != 2 or raw.size == 0:
        return None
    if raw.dtype == bool:
        return raw
    if np.issubdtype(raw.dtype, np.floating):
        if not np.all(np.isfinite(raw)):
            return None
        return raw > 0.5
    if np.issubdtype(raw.dtype, np.integer):
        return raw > 0
    return None


class ThresholdEngine:
    """Produce a boolean foreground mask from an image.

    The classical path downscales the image so its longer side is at most
    ``params.max_working_size``, inverts bright-background images so cells
    become high values, and applies adaptive or Otsu thresholding. An
    optional ML segmenter (or an externally supplied probability mask) can
    replace the classical mask; any failure there silently falls back to
    the classical path.

    All scratch buffers are allocated per call, so one engine may be used
    from several threads.

    Args:
        segmenter: Optional ML backend consulted for the ML and automatic
            strategies.
    """

    def __init__(self, segmenter: MLSegmenter | None = None) -> None:
        self._segmenter = segmenter

    def segment(
        self,
        image: np.ndarray,
        params: ImagingParams | None = None,
        probability_mask: np.ndarray | None = None,
    ) -> SegmentationResult:
        """Binarize an image.

        Args:
            image: (Y, X) grayscale or (Y, X, C) RGB(A) pixel buffer.
            params: Imaging parameters. None = defaults.
            probability_mask: Optional externally computed foreground
                probabilities or binary mask, at any resolution.

        Returns:
            SegmentationResult at the working resolution.

        Raises:
            InvalidInputError: If the image shape is unusable.
        """
        params = params or ImagingParams()
        start = time.monotonic()

        float_image = as_float_image(image)
        gray = to_grayscale(float_image)
        height, width = gray.shape
        dw, dh, factor = working_size(width, height, params.max_working_size)
        invert = should_invert_polarity(gray)

        ml_mask = None
        if probability_mask is not None:
            ml_mask = self._coerce_mask(probability_mask, dh, dw, source="supplied mask")
        elif params.strategy is not SegmentationStrategy.CLASSICAL:
            ml_mask = self._predict_mask(image, dh, dw)

        if ml_mask is not None:
            result = SegmentationResult(
                width=dw,
                height=dh,
                mask=ml_mask,
                downscale_factor=factor,
                polarity_inverted=invert,
                original_width=width,
                original_height=height,
                used_strategy=SegmentationStrategy.ML,
            )
        else:
            result = self._classical(gray, dw, dh, factor, invert, params)

        logger.debug(
            "Segmented %dx%d image at %dx%d (%s, inverted=%s) in %.1f ms",
            width, height, dw, dh, result.used_strategy.value, invert,
            (time.monotonic() - start) * 1000,
        )
        return result

    def _classical(
        self,
        gray: np.ndarray,
        dw: int,
        dh: int,
        factor: float,
        invert: bool,
        params: ImagingParams,
    ) -> SegmentationResult:
        """Adaptive or Otsu thresholding at the working resolution."""
        height, width = gray.shape
        if (dh, dw) != (height, width):
            from skimage.transform import resize

            work = resize(gray, (dh, dw), order=1, anti_aliasing=True)
        else:
            work = gray
        if invert:
            work = 1.0 - work

        threshold_value: float | None = None
        if params.threshold_method is ThresholdMethod.ADAPTIVE:
            block = max(3, int(params.effective_block_size / factor)) | 1
            mask = adaptive_threshold(work, block, params.c / 255.0)
        elif params.threshold_method is ThresholdMethod.OTSU:
            levels = gray_levels(work)
            level = otsu_level(levels)
            threshold_value = level / 255.0
            mask = levels > level
        else:
            raise ValueError(f"Unknown threshold method: {params.threshold_method}")

        return SegmentationResult(
            width=dw,
            height=dh,
            mask=mask,
            downscale_factor=factor,
            polarity_inverted=invert,
            original_width=width,
            original_height=height,
            used_strategy=SegmentationStrategy.CLASSICAL,
            threshold_value=threshold_value,
        )

    def _predict_mask(self, image: np.ndarray, dh: int, dw: int) -> np.ndarray | None:
        """Run the ML segmenter; None means use the classical path."""
        if self._segmenter is None:
            logger.info("No ML segmenter available; using classical thresholding")
            return None
        try:
            raw = self._segmenter.predict(image)
        except Exception as exc:
            if isinstance(exc, MemoryError):
                raise
            logger.warning(
                "ML segmentation failed, falling back to classical thresholding: %s",
                exc, exc_info=True,
            )
            return None
        return self._coerce_mask(raw, dh, dw, source="ML segmenter")

    def _coerce_mask(
        self, raw: np.ndarray, dh: int, dw: int, source: str,
    ) -> np.ndarray | None:
        """Binarize and resize an external mask to the working resolution."""
        mask = binarize_probability_mask(raw)
        if mask is None:
            logger.warning(
                "Unusable mask from %s (shape %s); using classical thresholding",
                source, np.shape(raw),
            )
            return None
        return resize_mask_nearest(mask, dh, dw)
