"""Detection records, GeoJSON, and GeoDataFrame export.

This module turns in-memory detections into the records handed to
downstream formatting: pixel-space JSON results for plain images, one
GeoJSON FeatureCollection per class for geo-referenced images, and
GeoDataFrames for GIS tooling.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import geopandas as gpd
import pandas as pd
from shapely.geometry import Polygon

from obb_geo._typing import Detection
from obb_geo.crs import GeoReference, crs_for, geo_corners, pixel_to_geo
from obb_geo.exceptions import ExportError, GeoReferenceError
from obb_geo.geometry import obb_corners
from obb_geo.merge import GeoDetection

# ---------------------------------------------------------------------------
# Detection records
# ---------------------------------------------------------------------------


def detection_record(detection: Detection) -> dict[str, Any]:
    """Pixel-space record of one detection, rounded for output."""
    return {
        "class": detection.class_name,
        "classId": detection.class_id,
        "confidence": round(detection.confidence, 3),
        "bbox": {
            "cx": round(detection.cx, 1),
            "cy": round(detection.cy, 1),
            "width": round(detection.width, 1),
            "height": round(detection.height, 1),
            "angle": round(detection.angle, 3),
        },
        "corners": [[round(x, 1), round(y, 1)] for x, y in obb_corners(detection)],
    }


def geo_detection_record(item: GeoDetection) -> dict[str, Any]:
    """Geographic record of one detection.

    The center and corners go through the detection's own geo reference.
    Width and height are scaled by the pixel scale; the angle changes sign
    because the y axis flips between pixel and geographic space.
    """
    d = item.detection
    ref = item.geo_ref
    gx, gy = pixel_to_geo(d.cx, d.cy, ref)
    return {
        "class": d.class_name,
        "classId": d.class_id,
        "confidence": d.confidence,
        "bbox": {
            "cx": gx,
            "cy": gy,
            "width": d.width * ref.pixel_scale[0],
            "height": d.height * ref.pixel_scale[1],
            "angle": -d.angle,
        },
        "corners": [[x, y] for x, y in geo_corners(d, ref)],
    }


def build_pixel_result(detections: list[Detection], image_width: int, image_height: int) -> dict[str, Any]:
    """Build the JSON result for a plain (non geo-referenced) image."""
    return {
        "imageWidth": image_width,
        "imageHeight": image_height,
        "detections": [detection_record(d) for d in detections],
    }


# ---------------------------------------------------------------------------
# GeoJSON
# ---------------------------------------------------------------------------


def _shared_epsg(items: list[GeoDetection]) -> int | None:
    codes = {item.geo_ref.epsg for item in items if item.geo_ref.epsg is not None}
    if len(codes) > 1:
        raise GeoReferenceError(f"Detections span several CRS: {sorted(codes)}", epsg=sorted(codes))
    return codes.pop() if codes else None


def build_geojson_for_class(
    items: list[GeoDetection],
    class_name: str,
    epsg: int | None = None,
) -> dict[str, Any]:
    """Build a GeoJSON FeatureCollection with the detections of one class.

    Args:
        items: Geo-referenced detections (any classes).
        class_name: Class to keep.
        epsg: CRS code for the named-CRS member. Taken from the items if None.

    Returns:
        FeatureCollection dict with one closed Polygon per detection.
    """
    selected = [item for item in items if item.detection.class_name == class_name]
    if epsg is None:
        epsg = _shared_epsg(selected)

    features = []
    for item in selected:
        corners = geo_corners(item.detection, item.geo_ref)
        ring = [[x, y] for x, y in corners]
        ring.append(ring[0])
        features.append(
            {
                "type": "Feature",
                "properties": {
                    "class": item.detection.class_name,
                    "classId": item.detection.class_id,
                    "confidence": round(item.detection.confidence, 3),
                },
                "geometry": {"type": "Polygon", "coordinates": [ring]},
            }
        )

    collection: dict[str, Any] = {"type": "FeatureCollection"}
    if epsg is not None:
        collection["crs"] = {"type": "name", "properties": {"name": f"urn:ogc:def:crs:EPSG::{epsg}"}}
    collection["features"] = features
    return collection


def geojson_filename(class_name: str, prefix: str = "") -> str:
    """File name for a per-class GeoJSON, with whitespace replaced by underscores."""
    safe_name = re.sub(r"\s+", "_", class_name)
    return f"{prefix}{safe_name}.geojson"


def write_geojson_by_class(
    items: list[GeoDetection],
    out_dir: str | Path,
    prefix: str = "",
) -> list[Path]:
    """Write one GeoJSON file per detected class.

    Args:
        items: Geo-referenced detections.
        out_dir: Output directory (created if missing).
        prefix: File name prefix, e.g. "merged_".

    Returns:
        Paths of the written files, in first-seen class order.

    Raises:
        ExportError: If there is nothing to export or writing fails.
    """
    if not items:
        raise ExportError("No detections to export.")

    out = Path(out_dir)
    class_names = list(dict.fromkeys(item.detection.class_name for item in items))

    written: list[Path] = []
    try:
        out.mkdir(parents=True, exist_ok=True)
        for class_name in class_names:
            path = out / geojson_filename(class_name, prefix)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump(build_geojson_for_class(items, class_name), fh, indent=2)
            written.append(path)
    except OSError as exc:
        raise ExportError(f"Failed to write GeoJSON to '{out}': {exc}") from exc

    return written


def write_pixel_json(
    detections: list[Detection],
    image_width: int,
    image_height: int,
    path: str | Path,
) -> None:
    """Write the pixel-space JSON result.

    Raises:
        ExportError: If writing fails.
    """
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(build_pixel_result(detections, image_width, image_height), fh, indent=2)
    except OSError as exc:
        raise ExportError(f"Failed to write detections JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# GeoDataFrame Construction
# ---------------------------------------------------------------------------


def build_geodataframe(items: list[GeoDetection]) -> gpd.GeoDataFrame:
    """Convert geo-referenced detections into a GeoDataFrame.

    Returns:
        GeoDataFrame with geometry, class_id, class_name, confidence,
        angle, centroid_x, centroid_y columns. The CRS is set from the
        shared EPSG code, if any.
    """
    epsg = _shared_epsg(items)
    crs = crs_for(GeoReference(epsg=epsg)) if epsg is not None else None

    if not items:
        return gpd.GeoDataFrame(
            {
                "geometry": [],
                "class_id": pd.Series([], dtype="int64"),
                "class_name": pd.Series([], dtype="str"),
                "confidence": pd.Series([], dtype="float64"),
                "angle": pd.Series([], dtype="float64"),
                "centroid_x": pd.Series([], dtype="float64"),
                "centroid_y": pd.Series([], dtype="float64"),
            },
            crs=crs,
        )

    geometries = []
    centroid_xs = []
    centroid_ys = []

    for item in items:
        poly = Polygon(geo_corners(item.detection, item.geo_ref))
        geometries.append(poly)
        centroid = poly.centroid
        centroid_xs.append(centroid.x)
        centroid_ys.append(centroid.y)

    return gpd.GeoDataFrame(
        {
            "geometry": geometries,
            "class_id": [item.detection.class_id for item in items],
            "class_name": [item.detection.class_name for item in items],
            "confidence": [item.detection.confidence for item in items],
            "angle": [item.detection.angle for item in items],
            "centroid_x": centroid_xs,
            "centroid_y": centroid_ys,
        },
        crs=crs,
    )


def build_dataframe_pixel(detections: list[Detection]) -> pd.DataFrame:
    """Build a plain DataFrame with pixel-space oriented boxes."""
    columns = ["class_id", "class_name", "confidence", "cx", "cy", "width", "height", "angle"]
    if not detections:
        return pd.DataFrame(columns=columns)

    return pd.DataFrame(
        {
            "class_id": [d.class_id for d in detections],
            "class_name": [d.class_name for d in detections],
            "confidence": [d.confidence for d in detections],
            "cx": [d.cx for d in detections],
            "cy": [d.cy for d in detections],
            "width": [d.width for d in detections],
            "height": [d.height for d in detections],
            "angle": [d.angle for d in detections],
        }
    )


def export_gpkg(
    gdf: gpd.GeoDataFrame,
    path: str,
    layer: str = "detections",
) -> None:
    """Export GeoDataFrame to GeoPackage format.

    Raises:
        ExportError: If export fails.
    """
    try:
        gdf.to_file(str(path), driver="GPKG", layer=layer)
    except Exception as exc:
        raise ExportError(f"Failed to export GeoPackage: {exc}") from exc
