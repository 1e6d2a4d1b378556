"""hemocount IO — image readers and tabular export."""

from hemocount.io.export import (
    export_objects_csv,
    objects_frame,
    squares_frame,
)
from hemocount.io.images import (
    read_image,
    read_pixel_size_um,
    read_px_per_micron,
)

__all__ = [
    "export_objects_csv",
    "objects_frame",
    "read_image",
    "read_pixel_size_um",
    "read_px_per_micron",
    "squares_frame",
]
