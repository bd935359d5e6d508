"""Exception hierarchy for obb_geo.

All custom exceptions inherit from ObbGeoError to enable catch-all
error handling. Each exception type maps to a specific failure domain
and carries actionable error messages.
"""

from __future__ import annotations


class ObbGeoError(Exception):
    """Base exception for all obb_geo errors.

    Catching this exception will catch any error raised by the obb_geo
    library, providing a convenient catch-all for library consumers.
    """

    def __init__(self, message: str = "", **kwargs: object) -> None:
        self.context = kwargs
        super().__init__(message)


class GeoReferenceError(ObbGeoError):
    """Raised for geo-referencing issues.

    This covers unsupported raster transforms (rotation or shear), invalid
    EPSG codes, and comparisons that need a geo reference but lack one.
    """

    pass


class DegenerateGeoReferenceError(GeoReferenceError):
    """Raised when a geo reference has a zero, negative, or non-finite pixel scale.

    Such a reference collapses or flips the pixel grid, which makes both
    coordinate mapping and geographic IoU meaningless.
    """

    pass


class TilingError(ObbGeoError):
    """Raised for invalid tiling parameters.

    This covers non-positive tile sizes, out-of-range overlap fractions,
    and empty images.
    """

    pass


class ResourceAcquisitionError(ObbGeoError):
    """Raised when a tile's drawing surface cannot be allocated.

    This is fatal for the whole run: skipping the tile would leave an
    uncovered hole in the image.
    """

    pass


class InferenceError(ObbGeoError):
    """Raised for malformed inference output or engine configuration issues.

    This covers a missing onnxruntime installation, a missing model file,
    and engine outputs that are not rows of 7 values. Exceptions raised by
    the engine itself are not wrapped.
    """

    pass


class RasterError(ObbGeoError):
    """Raised for raster loading or band layout issues.

    This covers unreadable files, rasters with no bands, and pixel arrays
    with an unexpected shape.
    """

    pass


class ExportError(ObbGeoError):
    """Raised for output format or file writing issues.

    This covers empty exports, file permission errors, and serialization
    failures.
    """

    pass


class PipelineCancelled(ObbGeoError):
    """Raised when the caller asks the tile loop to stop between tiles.

    Detections accumulated before the cancellation are discarded.
    """

    pass


class GeoReferenceWarning(UserWarning):
    """Warning issued when a raster's geo reference falls back to defaults.

    A missing tie point defaults to (0, 0) and a missing pixel scale to
    (1, 1); geographic output is then effectively in pixel units.
    """

    pass
