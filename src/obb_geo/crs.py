"""Geo references and pixel-to-geographic coordinate transforms.

A geo reference is the minimal tie-point + pixel-scale model: pixel (0, 0)
maps to the tie point, and each pixel step moves ``pixel_scale`` geographic
units, with the y axis flipped because pixel rows grow downward. Conversions
to and from rasterio affine transforms and pyproj CRS objects are provided
for interoperability with the raster readers and tabular exports.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from pyproj import CRS
from pyproj.exceptions import CRSError
from rasterio.transform import Affine

from obb_geo._typing import Detection, Point
from obb_geo.exceptions import DegenerateGeoReferenceError, GeoReferenceError
from obb_geo.geometry import obb_corners


@dataclass(frozen=True)
class GeoReference:
    """Tie point, pixel scale, and optional EPSG code of one raster.

    Raises:
        DegenerateGeoReferenceError: If a pixel scale component is zero,
            negative, or not finite.
    """

    tie_point: Point = (0.0, 0.0)
    pixel_scale: Point = (1.0, 1.0)
    epsg: int | None = None

    def __post_init__(self) -> None:
        validate_geo_reference(self)


def validate_geo_reference(ref: GeoReference) -> GeoReference:
    """Reject geo references that would make the transform degenerate.

    Args:
        ref: Geo reference to check.

    Returns:
        The same geo reference, for chaining.

    Raises:
        DegenerateGeoReferenceError: If a pixel scale component is not a
            strictly positive finite number.
    """
    sx, sy = ref.pixel_scale
    for axis, value in (("x", sx), ("y", sy)):
        if not math.isfinite(value) or value <= 0:
            raise DegenerateGeoReferenceError(
                f"Pixel scale {axis} must be a positive finite number, got {value}. "
                f"A zero or negative scale makes the pixel-to-geo transform degenerate.",
                pixel_scale=ref.pixel_scale,
            )
    return ref


def pixel_to_geo(px: float, py: float, ref: GeoReference) -> Point:
    """Convert a pixel coordinate to geographic coordinates.

    Args:
        px: Pixel column (x).
        py: Pixel row (y).
        ref: Geo reference of the raster the pixel belongs to.

    Returns:
        (x, y) in the raster's geographic coordinate space.
    """
    return (
        ref.tie_point[0] + px * ref.pixel_scale[0],
        ref.tie_point[1] - py * ref.pixel_scale[1],
    )


def geo_to_pixel(x: float, y: float, ref: GeoReference) -> Point:
    """Convert a geographic coordinate to pixel (col, row).

    This is the inverse of pixel_to_geo().
    """
    return (
        (x - ref.tie_point[0]) / ref.pixel_scale[0],
        (ref.tie_point[1] - y) / ref.pixel_scale[1],
    )


def geo_corners(detection: Detection, ref: GeoReference) -> list[Point]:
    """Map the 4 oriented-box corners of a pixel-space detection to geographic space."""
    return [pixel_to_geo(px, py, ref) for px, py in obb_corners(detection)]


def has_rotation(transform: Affine) -> bool:
    """Check if an affine transform includes rotation/shear terms.

    A standard north-up transform has b=0 and d=0 in the affine matrix:
    | a  b  c |
    | d  e  f |
    | 0  0  1 |
    """
    return transform.b != 0.0 or transform.d != 0.0


def to_affine(ref: GeoReference) -> Affine:
    """Express a geo reference as a north-up rasterio affine transform."""
    return Affine(ref.pixel_scale[0], 0.0, ref.tie_point[0], 0.0, -ref.pixel_scale[1], ref.tie_point[1])


def georeference_from_transform(transform: Affine, crs: CRS | None = None) -> GeoReference:
    """Build a geo reference from a rasterio affine transform.

    Args:
        transform: Raster affine transform. Must be north-up.
        crs: Raster CRS, used only to recover the EPSG code.

    Returns:
        GeoReference with tie point (c, f) and pixel scale (a, -e).

    Raises:
        GeoReferenceError: If the transform has rotation or shear terms.
        DegenerateGeoReferenceError: If the resulting scale is not positive.
    """
    if has_rotation(transform):
        raise GeoReferenceError(
            "Raster transform has rotation/shear terms; only north-up tie point + "
            "pixel scale geo references are supported.",
            transform=tuple(transform)[:6],
        )

    epsg = crs.to_epsg() if crs is not None else None

    return GeoReference(
        tie_point=(transform.c, transform.f),
        pixel_scale=(transform.a, -transform.e),
        epsg=epsg,
    )


def crs_for(ref: GeoReference) -> CRS | None:
    """Resolve the pyproj CRS of a geo reference.

    Returns:
        pyproj.CRS for the EPSG code, or None if the reference has no code.

    Raises:
        GeoReferenceError: If the EPSG code is not a known CRS.
    """
    if ref.epsg is None:
        return None

    try:
        return CRS.from_epsg(ref.epsg)
    except CRSError as exc:
        raise GeoReferenceError(f"Unknown EPSG code: {ref.epsg}. Error: {exc}", epsg=ref.epsg) from exc
