"""Counter settings and their YAML serialization.

Requires pyyaml. Raises ImportError with clear install instructions
if pyyaml is not available.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from hemocount.core.exceptions import ConfigError, InvalidInputError
from hemocount.core.models import (
    ChamberType,
    GridGeometry,
    SegmentationStrategy,
    SolidityMethod,
    ThresholdMethod,
)
from hemocount.counting.aggregator import DEFAULT_OUTLIER_THRESHOLD, DEFAULT_SELECTED_SQUARES
from hemocount.counting.qc import QCThresholds
from hemocount.segment.base_segmenter import ImagingParams
from hemocount.viability.classifier import ViabilityThresholds

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def _require_yaml() -> Any:
    """Import and return the yaml module, or raise a helpful error."""
    try:
        import yaml
        return yaml
    except ImportError:
        raise ImportError(
            "pyyaml is required for settings files. "
            "Install it with: pip install pyyaml"
        ) from None


@dataclass(frozen=True)
class CounterSettings:
    """Everything a counting run needs besides the image.

    Attributes:
        imaging: Thresholding and object-size parameters.
        viability: Live/dead color thresholds.
        qc: Quality-control limits.
        geometry: Grid calibration. None = derive it from the image.
        solidity: Solidity definition reported for each object.
        outlier_threshold: MAD multiplier for rejecting outlier squares.
        dilution_factor: Sample dilution factor.
        chamber: Counting chamber type.
        chamber_factor: Explicit volume factor; overrides ``chamber``.
        selected_squares: Large-square indices to count (row-major).
    """

    imaging: ImagingParams = field(default_factory=ImagingParams)
    viability: ViabilityThresholds = field(default_factory=ViabilityThresholds)
    qc: QCThresholds = field(default_factory=QCThresholds)
    geometry: GridGeometry | None = None
    solidity: SolidityMethod = SolidityMethod.BOUNDING_BOX
    outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD
    dilution_factor: float = 1.0
    chamber: ChamberType = ChamberType.NEUBAUER
    chamber_factor: float | None = None
    selected_squares: tuple[int, ...] = DEFAULT_SELECTED_SQUARES

    def __post_init__(self) -> None:
        """Validate scalar settings."""
        if not self.outlier_threshold > 0:
            raise InvalidInputError(
                f"must be > 0, got {self.outlier_threshold}", field="outlier_threshold",
            )
        if not self.dilution_factor > 0:
            raise InvalidInputError(
                f"must be > 0, got {self.dilution_factor}", field="dilution_factor",
            )
        if self.chamber_factor is not None and not self.chamber_factor > 0:
            raise InvalidInputError(
                f"must be > 0, got {self.chamber_factor}", field="chamber_factor",
            )
        object.__setattr__(self, "selected_squares", tuple(int(i) for i in self.selected_squares))
        if any(i < 0 for i in self.selected_squares):
            raise InvalidInputError(
                f"indices must be >= 0, got {list(self.selected_squares)}",
                field="selected_squares",
            )
        if self.geometry is not None:
            bad = [i for i in self.selected_squares if i >= self.geometry.square_count]
            if bad:
                raise InvalidInputError(
                    f"{bad} outside a {self.geometry.large_squares}x"
                    f"{self.geometry.large_squares} grid",
                    field="selected_squares",
                )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a YAML-serializable dict."""
        data: dict[str, Any] = {
            "imaging": self.imaging.to_dict(),
            "viability": self.viability.to_dict(),
            "qc": {
                "min_focus_score": self.qc.min_focus_score,
                "max_glare_ratio": self.qc.max_glare_ratio,
                "min_cells_per_square": self.qc.min_cells_per_square,
                "max_cells_per_square": self.qc.max_cells_per_square,
            },
            "solidity": self.solidity.value,
            "outlier_threshold": self.outlier_threshold,
            "dilution_factor": self.dilution_factor,
            "chamber": self.chamber.value,
            "selected_squares": list(self.selected_squares),
        }
        if self.chamber_factor is not None:
            data["chamber_factor"] = self.chamber_factor
        if self.geometry is not None:
            g = self.geometry
            data["geometry"] = {
                "origin_x": g.origin_x,
                "origin_y": g.origin_y,
                "px_per_micron": g.px_per_micron,
                "large_squares": g.large_squares,
                "large_size_um": g.large_size_um,
                "small_per_large": g.small_per_large,
            }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CounterSettings:
        """Build settings from a mapping; missing keys take defaults.

        Raises:
            ConfigError: If a section has the wrong type or a value is invalid.
        """
        if not isinstance(data, dict):
            raise ConfigError(reason=f"expected a mapping, got {type(data).__name__}")
        try:
            imaging_data = _section(data, "imaging")
            if "threshold_method" in imaging_data:
                imaging_data["threshold_method"] = _enum(
                    ThresholdMethod, imaging_data["threshold_method"], "imaging.threshold_method",
                )
            if "strategy" in imaging_data:
                imaging_data["strategy"] = _enum(
                    SegmentationStrategy, imaging_data["strategy"], "imaging.strategy",
                )

            kwargs: dict[str, Any] = {
                "imaging": ImagingParams(**imaging_data),
                "viability": ViabilityThresholds(**_section(data, "viability")),
                "qc": QCThresholds(**_section(data, "qc")),
            }
            if data.get("geometry") is not None:
                kwargs["geometry"] = GridGeometry(**_section(data, "geometry"))
            if "solidity" in data:
                kwargs["solidity"] = _enum(SolidityMethod, data["solidity"], "solidity")
            if "chamber" in data:
                kwargs["chamber"] = _enum(ChamberType, data["chamber"], "chamber")
            for key in ("outlier_threshold", "dilution_factor", "chamber_factor"):
                if data.get(key) is not None:
                    kwargs[key] = float(data[key])
            if "selected_squares" in data:
                squares = data["selected_squares"]
                if not isinstance(squares, list):
                    raise ConfigError(reason="selected_squares must be a list of integers")
                kwargs["selected_squares"] = tuple(squares)
            return cls(**kwargs)
        except (TypeError, ValueError) as exc:
            # Unknown keys surface as TypeError, bad values as InvalidInputError.
            raise ConfigError(reason=str(exc)) from exc


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(reason=f"'{name}' must be a mapping, got {type(section).__name__}")
    return dict(section)


def _enum(enum_cls: type[E], value: Any, key: str) -> E:
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(reason=f"{key} must be one of {choices}, got {value!r}") from None


def settings_to_yaml(settings: CounterSettings, path: Path) -> None:
    """Write settings to a YAML file.

    Args:
        settings: Settings to serialize.
        path: File path to write.
    """
    yaml = _require_yaml()
    with open(path, "w") as f:
        yaml.dump(settings.to_dict(), f, default_flow_style=False, sort_keys=False)


def settings_from_yaml(path: Path) -> CounterSettings:
    """Load settings from a YAML file.

    An empty file yields the default settings.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, or holds
            invalid values.
    """
    yaml = _require_yaml()
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(str(path), "file not found") from None
    except yaml.YAMLError as exc:
        raise ConfigError(str(path), f"not valid YAML ({exc})") from exc

    if data is None:
        logger.info("Settings file %s is empty; using defaults", path)
        return CounterSettings()
    try:
        return CounterSettings.from_dict(data)
    except ConfigError as exc:
        raise ConfigError(str(path), exc.reason) from exc
