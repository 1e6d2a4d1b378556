"""Tabular export of counting results with pandas."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pandas as pd

from hemocount.core.models import AggregateStats, CellObjectLabeled, GridIndex

OBJECT_COLUMNS = [
    "id", "centroid_x", "centroid_y", "area_px", "area_um2", "perimeter_px",
    "circularity", "solidity", "hue", "saturation", "value",
    "lab_l", "lab_a", "lab_b", "label", "confidence",
    "large_index", "large_row", "large_col", "small_row", "small_col",
]

SQUARE_COLUMNS = ["square", "live", "dead", "total", "is_outlier"]


def objects_frame(
    objects: Sequence[CellObjectLabeled],
    indices: Sequence[GridIndex | None] | None = None,
    px_per_micron: float = 0.0,
) -> pd.DataFrame:
    """One row per labeled object.

    Args:
        objects: Labeled objects.
        indices: Grid index per object; None entries (off grid) leave the
            grid columns empty. None = no grid columns filled.
        px_per_micron: Calibration for ``area_um2``; 0 when unknown.

    Returns:
        DataFrame with ``OBJECT_COLUMNS``.
    """
    if indices is None:
        indices = [None] * len(objects)
    rows = []
    for obj, idx in zip(objects, indices):
        cell = obj.cell
        rows.append({
            "id": cell.id,
            "centroid_x": cell.centroid_x,
            "centroid_y": cell.centroid_y,
            "area_px": cell.area_px,
            "area_um2": cell.area_um2(px_per_micron),
            "perimeter_px": cell.perimeter_px,
            "circularity": cell.circularity,
            "solidity": cell.solidity,
            "hue": obj.color.hue,
            "saturation": obj.color.saturation,
            "value": obj.color.value,
            "lab_l": obj.color.lab_l,
            "lab_a": obj.color.lab_a,
            "lab_b": obj.color.lab_b,
            "label": obj.label.value,
            "confidence": obj.confidence,
            "large_index": idx.large_index if idx else None,
            "large_row": idx.large_row if idx else None,
            "large_col": idx.large_col if idx else None,
            "small_row": idx.small_row if idx else None,
            "small_col": idx.small_col if idx else None,
        })
    df = pd.DataFrame(rows, columns=OBJECT_COLUMNS)
    grid_cols = ["large_index", "large_row", "large_col", "small_row", "small_col"]
    df[grid_cols] = df[grid_cols].astype("Int64")
    return df


def squares_frame(stats: AggregateStats) -> pd.DataFrame:
    """One row per selected large square, in selection order."""
    rows = [
        {
            "square": sq.index,
            "live": sq.live,
            "dead": sq.dead,
            "total": sq.total,
            "is_outlier": sq.is_outlier,
        }
        for sq in stats.tally.values()
    ]
    return pd.DataFrame(rows, columns=SQUARE_COLUMNS)


def export_objects_csv(
    path: Path,
    objects: Sequence[CellObjectLabeled],
    indices: Sequence[GridIndex | None] | None = None,
    px_per_micron: float = 0.0,
) -> None:
    objects_frame(objects, indices, px_per_micron).to_csv(path, index=False)
