"""Image reading and calibration metadata via tifffile and scikit-image."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import tifffile

from hemocount.core.exceptions import ImageReadError

logger = logging.getLogger(__name__)

TIFF_SUFFIXES = (".tif", ".tiff")


def read_image(path: Path) -> np.ndarray:
    """Read an image file into a (Y, X) or (Y, X, C) numpy array.

    TIFF files are read with tifffile; other formats (PNG, JPEG, BMP)
    with scikit-image. Channel-first TIFFs with 3 or 4 channels are moved
    to channel-last.

    Args:
        path: Path to the image file.

    Returns:
        Numpy array with the pixel data.

    Raises:
        ImageReadError: If the file is missing, unreadable, or not a 2D
            grayscale or color image.
    """
    path = Path(path)
    if not path.is_file():
        raise ImageReadError(str(path), "file not found")

    try:
        if path.suffix.lower() in TIFF_SUFFIXES:
            data = tifffile.imread(str(path))
        else:
            from skimage.io import imread

            data = imread(str(path))
    except (OSError, ValueError) as exc:
        raise ImageReadError(str(path), str(exc)) from exc

    data = np.asarray(data)
    if data.ndim == 3 and data.shape[0] in (3, 4) and data.shape[-1] not in (1, 3, 4):
        data = np.moveaxis(data, 0, -1)
    if data.ndim not in (2, 3) or (data.ndim == 3 and data.shape[-1] not in (1, 3, 4)):
        raise ImageReadError(str(path), f"unsupported image shape {data.shape}")
    logger.debug("Read %s: shape=%s dtype=%s", path.name, data.shape, data.dtype)
    return data


def read_pixel_size_um(path: Path) -> float | None:
    """Pixel size in micrometers from TIFF metadata.

    Checks OME-XML, ImageJ metadata, then resolution tags. Returns None for
    non-TIFF files or when no calibration is recorded.
    """
    path = Path(path)
    if path.suffix.lower() not in TIFF_SUFFIXES:
        return None
    try:
        with tifffile.TiffFile(str(path)) as tif:
            return _extract_pixel_size(tif)
    except (OSError, ValueError) as exc:
        raise ImageReadError(str(path), str(exc)) from exc


def read_px_per_micron(path: Path) -> float | None:
    """Calibration in pixels per micron, or None if not recorded."""
    size = read_pixel_size_um(path)
    if size is None or size <= 0:
        return None
    return 1.0 / size


def _ome_pixel_size(ome_xml: str) -> float | None:
    """PhysicalSizeX of the first Pixels element, in micrometers."""
    from defusedxml.ElementTree import ParseError, fromstring

    try:
        root = fromstring(ome_xml)
    except ParseError:
        logger.debug("Ignoring malformed OME-XML")
        return None
    pixels = root.find(".//{*}Pixels")
    if pixels is None or pixels.get("PhysicalSizeX") is None:
        return None
    value = float(pixels.get("PhysicalSizeX"))
    unit = pixels.get("PhysicalSizeXUnit", "µm")
    if unit == "nm":
        return value / 1000.0
    if unit in ("mm", "millimeter"):
        return value * 1000.0
    return value


def _extract_pixel_size(tif: tifffile.TiffFile) -> float | None:
    if tif.ome_metadata:
        size = _ome_pixel_size(tif.ome_metadata)
        if size is not None:
            return size

    ij = tif.imagej_metadata
    if ij and "spacing" in ij and ij.get("unit", "micron") in ("micron", "um", "µm"):
        return float(ij["spacing"])

    tags = tif.pages[0].tags
    if "XResolution" not in tags or "ResolutionUnit" not in tags:
        return None
    x_res = tags["XResolution"].value
    res_unit = tags["ResolutionUnit"].value
    # Rational tags come back as (numerator, denominator).
    if isinstance(x_res, tuple) and len(x_res) == 2:
        if x_res[1] == 0:
            return None
        pixels_per_unit = x_res[0] / x_res[1]
    else:
        pixels_per_unit = float(x_res)

    if pixels_per_unit <= 0:
        return None
    # ResolutionUnit: 1=none, 2=inch, 3=centimeter
    if res_unit == 3:
        return 10000.0 / pixels_per_unit
    if res_unit == 2:
        return 25400.0 / pixels_per_unit
    return None
