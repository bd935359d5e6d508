"""Merge detections of two geo-referenced images of the same area.

Detections are compared in geographic space, never in pixel space, since
each image has its own pixel grid. A second-image detection that overlaps a
same-class first-image detection is treated as a duplicate of it: the more
confident of the two is kept in the first detection's slot.
"""

from __future__ import annotations

from dataclasses import dataclass

from obb_geo._typing import AxisBounds, Detection
from obb_geo.crs import GeoReference, geo_corners, validate_geo_reference
from obb_geo.exceptions import GeoReferenceError
from obb_geo.geometry import aabb_iou, axis_aligned_bounds

# Default IoU threshold above which two geographic boxes are the same object
MERGE_IOU_THRESHOLD = 0.5


@dataclass(frozen=True)
class GeoDetection:
    """A pixel-space detection paired with the geo reference of its source image."""

    detection: Detection
    geo_ref: GeoReference

    def geo_bounds(self) -> AxisBounds:
        return axis_aligned_bounds(geo_corners(self.detection, self.geo_ref))


def merge_geo_detections(
    detections1: list[Detection],
    ref1: GeoReference,
    detections2: list[Detection],
    ref2: GeoReference,
    iou_threshold: float = MERGE_IOU_THRESHOLD,
) -> list[GeoDetection]:
    """Merge two detection sets and remove cross-image duplicates.

    The result starts as the first set. Each second-set detection is checked
    against the first set's own detections (not against detections appended
    from the second set); the first same-class match whose geographic AABB
    IoU exceeds ``iou_threshold`` decides its fate. It replaces the slot's
    current occupant when strictly more confident and is dropped otherwise.
    Unmatched detections are appended.

    When several second-set detections match the same slot, the slot ends
    up holding the most confident of them and its first-set detection.

    Args:
        detections1: Detections of the first image, in its pixel space.
        ref1: Geo reference of the first image.
        detections2: Detections of the second image, in its pixel space.
        ref2: Geo reference of the second image.
        iou_threshold: IoU above which two detections are duplicates.

    Returns:
        Merged list of GeoDetection, each tied to its own image's reference.

    Raises:
        DegenerateGeoReferenceError: If either reference has a non-positive scale.
        GeoReferenceError: If the references name two different EPSG codes.
    """
    validate_geo_reference(ref1)
    validate_geo_reference(ref2)

    if ref1.epsg is not None and ref2.epsg is not None and ref1.epsg != ref2.epsg:
        raise GeoReferenceError(
            f"Cannot compare detections across CRS EPSG:{ref1.epsg} and EPSG:{ref2.epsg}.",
            epsg=(ref1.epsg, ref2.epsg),
        )

    merged = [GeoDetection(d, ref1) for d in detections1]
    if not detections2:
        return merged

    bounds1 = [g.geo_bounds() for g in merged]

    for det2 in detections2:
        candidate = GeoDetection(det2, ref2)
        candidate_bounds: AxisBounds | None = None
        is_duplicate = False

        for j, det1 in enumerate(detections1):
            # Class identity gates the geometric test
            if det1.class_id != det2.class_id:
                continue

            if candidate_bounds is None:
                candidate_bounds = candidate.geo_bounds()

            if aabb_iou(candidate_bounds, bounds1[j]) > iou_threshold:
                is_duplicate = True
                if det2.confidence > merged[j].detection.confidence:
                    merged[j] = candidate
                break

        if not is_duplicate:
            merged.append(candidate)

    return merged
