"""hemocount Viability — color sampling and live/dead classification."""

from hemocount.viability.classifier import (
    ColorClassifier,
    ViabilityThresholds,
    hue_in_band,
)
from hemocount.viability.color import rgb_to_hsv, rgb_to_lab

__all__ = [
    "ColorClassifier",
    "ViabilityThresholds",
    "hue_in_band",
    "rgb_to_hsv",
    "rgb_to_lab",
]
