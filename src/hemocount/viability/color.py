"""Color sampling and sRGB -> HSV / CIE Lab conversion."""

from __future__ import annotations

import numpy as np

from hemocount.core.models import ColorSampleStats

# Sparse sample budget for the global brightness reference.
GLOBAL_SAMPLE_COUNT = 4096


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """Convert sRGB values in [0, 1] to HSV.

    Args:
        rgb: Array of shape (..., 3).

    Returns:
        Array of shape (..., 3): hue in degrees [0, 360), saturation and
        value in [0, 1].
    """
    from skimage.color import rgb2hsv

    rgb = np.asarray(rgb, dtype=np.float64)
    flat = rgb.reshape(-1, 1, 3)
    hsv = rgb2hsv(flat).reshape(rgb.shape)
    hsv[..., 0] = (hsv[..., 0] * 360.0) % 360.0
    return hsv


def rgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert sRGB values in [0, 1] to CIE L*a*b* (D65, 2° observer).

    Args:
        rgb: Array of shape (..., 3).

    Returns:
        Array of shape (..., 3) with L* in [0, 100].
    """
    from skimage.color import rgb2lab

    rgb = np.asarray(rgb, dtype=np.float64)
    flat = rgb.reshape(-1, 1, 3)
    return rgb2lab(flat, illuminant="D65", observer="2").reshape(rgb.shape)


def sample_window(image: np.ndarray, x: float, y: float, size: int = 5) -> np.ndarray:
    """Mean RGB of a size x size window centered on (x, y).

    Coordinates outside the image are clamped to the nearest edge pixel,
    so every window averages exactly size * size samples.

    Args:
        image: (Y, X, 3) float RGB image in [0, 1].
        x: Window center column (truncated to an integer).
        y: Window center row (truncated to an integer).
        size: Odd window side.
    """
    h, w = image.shape[:2]
    half = size // 2
    cx = int(np.floor(x))
    cy = int(np.floor(y))
    cols = np.clip(np.arange(cx - half, cx + half + 1), 0, w - 1)
    rows = np.clip(np.arange(cy - half, cy + half + 1), 0, h - 1)
    return image[np.ix_(rows, cols)].reshape(-1, 3).mean(axis=0)


def sample_color_stats(rgb_means: np.ndarray) -> list[ColorSampleStats]:
    """Build ColorSampleStats for an (N, 3) array of mean RGB colors."""
    rgb_means = np.asarray(rgb_means, dtype=np.float64).reshape(-1, 3)
    if len(rgb_means) == 0:
        return []
    hsv = rgb_to_hsv(rgb_means)
    lab = rgb_to_lab(rgb_means)
    return [
        ColorSampleStats(
            hue=float(h[0]),
            saturation=float(h[1]),
            value=float(h[2]),
            lab_l=float(c[0]),
            lab_a=float(c[1]),
            lab_b=float(c[2]),
        )
        for h, c in zip(hsv, lab)
    ]


def global_median_value(image: np.ndarray, max_samples: int = GLOBAL_SAMPLE_COUNT) -> float:
    """Median HSV value over a sparse, evenly strided sample of pixels.

    Returns 0.5 for an empty image.
    """
    flat = image.reshape(-1, 3)
    if len(flat) == 0:
        return 0.5
    step = max(1, len(flat) // max_samples)
    return float(np.median(flat[::step].max(axis=1)))
