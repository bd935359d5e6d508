"""obb_geo - Sliced oriented-box detection with geo-referenced output."""

from __future__ import annotations

__version__ = "0.1.0"

from obb_geo._adapter import OnnxOBBEngine
from obb_geo._typing import Detection, TileSpec
from obb_geo.core import ObbGeo
from obb_geo.crs import GeoReference, pixel_to_geo
from obb_geo.exceptions import (
    DegenerateGeoReferenceError,
    ExportError,
    GeoReferenceError,
    GeoReferenceWarning,
    InferenceError,
    ObbGeoError,
    PipelineCancelled,
    RasterError,
    ResourceAcquisitionError,
    TilingError,
)
from obb_geo.geometry import aabb_iou, axis_aligned_bounds, obb_corners
from obb_geo.merge import GeoDetection, merge_geo_detections
from obb_geo.tiling import obb_nms, plan_tiles, run_tiled_inference

__all__ = [
    "__version__",
    "ObbGeo",
    "OnnxOBBEngine",
    "Detection",
    "TileSpec",
    "GeoReference",
    "GeoDetection",
    "pixel_to_geo",
    "obb_corners",
    "axis_aligned_bounds",
    "aabb_iou",
    "plan_tiles",
    "obb_nms",
    "run_tiled_inference",
    "merge_geo_detections",
    "ObbGeoError",
    "GeoReferenceError",
    "DegenerateGeoReferenceError",
    "TilingError",
    "ResourceAcquisitionError",
    "InferenceError",
    "RasterError",
    "ExportError",
    "PipelineCancelled",
    "GeoReferenceWarning",
]
