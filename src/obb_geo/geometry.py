"""Oriented bounding box geometry: corners, bounds, and IoU.

The suppression and merge policies compare boxes through the axis-aligned
bounds of their corners. True rotated-polygon IoU (via shapely) is available
for callers that explicitly ask for the stricter comparison.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from shapely.geometry import Polygon

from obb_geo._typing import AxisBounds, Detection, Point


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def obb_corners(detection: Detection) -> list[Point]:
    """Compute the 4 corner points of an oriented bounding box.

    Corners are produced in the order top-left, top-right, bottom-right,
    bottom-left of the unrotated box, each rotated about the box center by
    ``detection.angle``. Non-finite inputs propagate to the output.

    Args:
        detection: Detection with center, size, and angle.

    Returns:
        List of 4 (x, y) tuples in the detection's coordinate space.
    """
    cos = math.cos(detection.angle)
    sin = math.sin(detection.angle)
    hw = detection.width / 2
    hh = detection.height / 2

    offsets = [(-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)]

    return [
        (
            detection.cx + dx * cos - dy * sin,
            detection.cy + dx * sin + dy * cos,
        )
        for dx, dy in offsets
    ]


def axis_aligned_bounds(points: Iterable[Point]) -> AxisBounds:
    """Reduce a point set to its (min_x, min_y, max_x, max_y) bounds."""
    min_x = min_y = math.inf
    max_x = max_y = -math.inf

    for x, y in points:
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        max_x = max(max_x, x)
        max_y = max(max_y, y)

    return (min_x, min_y, max_x, max_y)


def square_bounds(detection: Detection) -> AxisBounds:
    """Axis-aligned square enclosing a detection regardless of its angle.

    The square's side is the larger of width and height, centered on the
    detection center.
    """
    half = max(detection.width, detection.height) / 2
    return (
        detection.cx - half,
        detection.cy - half,
        detection.cx + half,
        detection.cy + half,
    )


def aabb_iou(box_a: AxisBounds, box_b: AxisBounds) -> float:
    """Compute IoU between two axis-aligned boxes in (min_x, min_y, max_x, max_y) format.

    Args:
        box_a: First box.
        box_b: Second box.

    Returns:
        IoU value between 0.0 and 1.0. Degenerate boxes whose union has no
        area return 0.0.
    """
    ix1 = max(box_a[0], box_b[0])
    iy1 = max(box_a[1], box_b[1])
    ix2 = min(box_a[2], box_b[2])
    iy2 = min(box_a[3], box_b[3])

    intersection = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)

    area_a = (box_a[2] - box_a[0]) * (box_a[3] - box_a[1])
    area_b = (box_b[2] - box_b[0]) * (box_b[3] - box_b[1])
    union = area_a + area_b - intersection

    if union <= 0:
        return 0.0

    return intersection / union


def polygon_iou(corners_a: list[Point], corners_b: list[Point]) -> float:
    """Compute the exact IoU of two convex polygons given by their corners.

    Args:
        corners_a: Corner points of the first polygon.
        corners_b: Corner points of the second polygon.

    Returns:
        IoU value between 0.0 and 1.0; 0.0 for invalid or zero-area shapes.
    """
    poly_a = Polygon(corners_a)
    poly_b = Polygon(corners_b)

    if not poly_a.is_valid or not poly_b.is_valid:
        return 0.0

    union = poly_a.union(poly_b).area
    if union <= 0:
        return 0.0

    return poly_a.intersection(poly_b).area / union
