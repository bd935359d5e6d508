"""Image loading via rasterio (GeoTIFF) and Pillow (JPEG/PNG).

This module decodes source images into RGB Pillow images for the tile
pipeline and, for GeoTIFFs, extracts the tie point / pixel scale / EPSG geo
reference used for geographic output.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from numpy.typing import NDArray
from PIL import Image
from pyproj import CRS
from pyproj.exceptions import CRSError
from rasterio.errors import RasterioIOError
from rasterio.transform import Affine

from obb_geo.crs import GeoReference, georeference_from_transform
from obb_geo.exceptions import GeoReferenceError, GeoReferenceWarning, RasterError

GEOTIFF_SUFFIXES = (".tif", ".tiff")

# Default percentiles for stretching non-8-bit bands
STRETCH_PERCENTILES = (2.0, 98.0)


@dataclass
class RasterImage:
    """A decoded source image and, for GeoTIFFs, its geo reference."""

    image: Image.Image
    width: int
    height: int
    geo_ref: GeoReference | None
    source: str

    @property
    def is_georeferenced(self) -> bool:
        return self.geo_ref is not None


def is_geotiff_path(source: str | Path) -> bool:
    """Check whether a path looks like a GeoTIFF by its extension (case-insensitive)."""
    return str(source).lower().endswith(GEOTIFF_SUFFIXES)


def stretch_to_uint8(
    data: NDArray,
    percentiles: tuple[float, float] = STRETCH_PERCENTILES,
) -> NDArray[np.uint8]:
    """Percentile-stretch each band of a raster to the 0-255 range.

    Non-finite pixels are excluded from the percentile computation and map
    to 0. A band with no spread (or no finite pixels) becomes all zeros.

    Args:
        data: Array shape (bands, H, W) of any numeric dtype.
        percentiles: Low/high percentiles mapped to 0 and 255.

    Returns:
        Array shape (bands, H, W), uint8.
    """
    result = np.zeros(data.shape, dtype=np.uint8)

    for i in range(data.shape[0]):
        band = data[i].astype(np.float64)
        valid = np.isfinite(band)
        if not valid.any():
            continue

        low, high = np.percentile(band[valid], percentiles)
        if high - low <= 0:
            continue

        scaled = (band - low) / (high - low) * 255.0
        scaled[~valid] = 0.0
        result[i] = np.clip(scaled, 0.0, 255.0).astype(np.uint8)

    return result


def bands_to_rgb(data: NDArray) -> NDArray[np.uint8]:
    """Arrange raster bands as an (H, W, 3) uint8 RGB array.

    Single-band data is triplicated; data with 3 or more bands uses the
    first three. 8-bit data is used as is; any other dtype (16-bit, float)
    is percentile-stretched per band.

    Args:
        data: Array shape (bands, H, W).

    Returns:
        Array shape (H, W, 3), uint8.

    Raises:
        RasterError: If data is not 3D or has no bands.
    """
    if data.ndim != 3:
        raise RasterError(f"Expected 3D array (bands, height, width), got {data.ndim}D array.")

    num_bands = data.shape[0]
    if num_bands == 0:
        raise RasterError("Raster has 0 bands.")

    if num_bands >= 3:
        rgb = data[:3]
    else:
        rgb = np.repeat(data[:1], 3, axis=0)

    if rgb.dtype != np.uint8:
        rgb = stretch_to_uint8(rgb)

    return np.transpose(rgb, (1, 2, 0))


def _geo_reference_for(transform: Affine, crs: object, source: str) -> GeoReference:
    """Geo reference of an opened raster, defaulting missing parts.

    rasterio reports an identity transform for rasters without geo tags;
    that case falls back to tie point (0, 0) and pixel scale (1, 1).
    """
    pyproj_crs = None
    if crs is not None:
        try:
            pyproj_crs = CRS.from_user_input(crs)
        except CRSError as exc:
            raise GeoReferenceError(f"Raster '{source}' has an unreadable CRS: {exc}") from exc

    if transform == Affine.identity():
        warnings.warn(
            f"Raster '{source}' has no tie point or pixel scale; using (0, 0) and (1, 1).",
            GeoReferenceWarning,
            stacklevel=3,
        )
        epsg = pyproj_crs.to_epsg() if pyproj_crs is not None else None
        return GeoReference(tie_point=(0.0, 0.0), pixel_scale=(1.0, 1.0), epsg=epsg)

    return georeference_from_transform(transform, pyproj_crs)


def load_geotiff(source: str | Path) -> RasterImage:
    """Decode a GeoTIFF into an RGB image plus geo reference.

    Args:
        source: Path to a GeoTIFF.

    Returns:
        RasterImage with geo_ref set.

    Raises:
        FileNotFoundError: If the file does not exist.
        RasterError: If the raster cannot be read or has no bands.
        GeoReferenceError: If the raster transform is rotated.
    """
    import rasterio

    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {source}")

    try:
        with rasterio.open(path) as src:
            if src.count == 0:
                raise RasterError(f"Raster has 0 bands: {source}")
            data = src.read()
            transform = src.transform
            crs = src.crs
    except RasterioIOError as exc:
        raise RasterError(f"Cannot read raster '{source}': {exc}") from exc

    rgb = bands_to_rgb(data)
    geo_ref = _geo_reference_for(transform, crs, str(source))

    height, width = rgb.shape[:2]
    return RasterImage(
        image=Image.fromarray(rgb),
        width=width,
        height=height,
        geo_ref=geo_ref,
        source=str(source),
    )


def load_image(source: str | Path) -> RasterImage:
    """Decode a plain image (JPEG, PNG, ...) into RGB without a geo reference.

    Raises:
        FileNotFoundError: If the file does not exist.
        RasterError: If Pillow cannot decode the file.
    """
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Image file not found: {source}")

    try:
        with Image.open(path) as img:
            rgb = img.convert("RGB")
    except OSError as exc:
        raise RasterError(f"Cannot decode image '{source}': {exc}") from exc

    return RasterImage(image=rgb, width=rgb.width, height=rgb.height, geo_ref=None, source=str(source))


def load_raster(source: str | Path) -> RasterImage:
    """Load any supported image, dispatching on the file extension."""
    if is_geotiff_path(source):
        return load_geotiff(source)
    return load_image(source)
