"""Tile planning, coordinate remapping, cross-tile NMS, and the tiled detection loop.

This module decides whether an image needs slice inference, generates the
tile grid, maps tile-local model detections back to image pixels, removes
duplicates that appear in overlapping tiles, and orchestrates the full
sequential tile pipeline.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from PIL import Image

from obb_geo._adapter import InferenceEngine, candidates_to_detections, letterbox_tile
from obb_geo._typing import Detection, TileSpec
from obb_geo.exceptions import PipelineCancelled, TilingError
from obb_geo.geometry import aabb_iou, obb_corners, polygon_iou, round_half_up, square_bounds
from obb_geo.labels import CONFIDENCE_THRESHOLD, CONFIDENCE_THRESHOLD_MIN, MODEL_INPUT_SIZE

# Image side above which slice inference is used (pixels)
SLICE_THRESHOLD = 1280

# Overlap between adjacent tiles (fraction)
TILE_OVERLAP = 0.25

# IoU threshold for cross-tile NMS
NMS_IOU_THRESHOLD = 0.45

ProgressCallback = Callable[[int, int], None]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TilingConfig:
    """Validated settings for one tiled detection run.

    Raises:
        TilingError: If any setting is out of range.
    """

    model_size: int = MODEL_INPUT_SIZE
    slice_threshold: int = SLICE_THRESHOLD
    overlap: float = TILE_OVERLAP
    nms_threshold: float = NMS_IOU_THRESHOLD
    confidence_threshold: float = CONFIDENCE_THRESHOLD
    strict_nms: bool = False

    def __post_init__(self) -> None:
        if self.model_size <= 0:
            raise TilingError(f"model_size must be positive, got {self.model_size}")

        if self.slice_threshold <= 0:
            raise TilingError(f"slice_threshold must be positive, got {self.slice_threshold}")

        if not 0.0 <= self.overlap < 1.0:
            raise TilingError(f"overlap must be in [0, 1), got {self.overlap}. Use 0.2-0.3 for best results.")

        if not 0.0 <= self.nms_threshold <= 1.0:
            raise TilingError(f"nms_threshold must be in [0, 1], got {self.nms_threshold}")

        if not CONFIDENCE_THRESHOLD_MIN <= self.confidence_threshold <= 1.0:
            raise TilingError(
                f"confidence_threshold must be in [{CONFIDENCE_THRESHOLD_MIN}, 1], got {self.confidence_threshold}"
            )


# ---------------------------------------------------------------------------
# Tile Planning
# ---------------------------------------------------------------------------


def needs_slicing(width: int, height: int, slice_threshold: int = SLICE_THRESHOLD) -> bool:
    """Whether an image is too large for a single letterboxed pass."""
    return width > slice_threshold or height > slice_threshold


def _axis_origins(dim: int, tile_size: int, stride: int) -> list[int]:
    count = max(1, math.ceil((dim - tile_size) / stride) + 1)
    # Clamp to the far edge; floor at 0 when the axis is shorter than a tile
    return [max(0, min(i * stride, dim - tile_size)) for i in range(count)]


def plan_tiles(
    width: int,
    height: int,
    tile_size: int = MODEL_INPUT_SIZE,
    slice_threshold: int = SLICE_THRESHOLD,
    overlap: float = TILE_OVERLAP,
) -> list[TileSpec]:
    """Plan the tiles needed to cover an image.

    Images within ``slice_threshold`` in both dimensions get one tile spanning
    the whole image. Larger images get a row-major grid of ``tile_size``
    tiles with stride ``tile_size * (1 - overlap)`` rounded half up; the
    last row and column are clamped to the image edge, so they may overlap
    their neighbors by more than ``overlap``.

    Args:
        width: Image width in pixels.
        height: Image height in pixels.
        tile_size: Side of each square tile in pixels.
        slice_threshold: Largest side that is processed in a single pass.
        overlap: Fractional overlap between adjacent tiles, in [0, 1).

    Returns:
        List of TileSpec in row-major order.

    Raises:
        TilingError: If the image is empty or the tiling parameters are invalid.
    """
    if width <= 0 or height <= 0:
        raise TilingError(f"Image must have positive dimensions, got {width}x{height}")

    if tile_size <= 0:
        raise TilingError(f"tile_size must be positive, got {tile_size}")

    if not needs_slicing(width, height, slice_threshold):
        return [TileSpec(sx=0, sy=0, sw=width, sh=height, model_size=tile_size)]

    if not 0.0 <= overlap < 1.0:
        raise TilingError(f"overlap must be in [0, 1), got {overlap}")

    stride = round_half_up(tile_size * (1 - overlap))
    if stride <= 0:
        raise TilingError(f"overlap {overlap} leaves no stride for tile_size {tile_size}")

    col_offsets = _axis_origins(width, tile_size, stride)
    row_offsets = _axis_origins(height, tile_size, stride)

    tiles: list[TileSpec] = []
    for sy in row_offsets:
        for sx in col_offsets:
            tiles.append(
                TileSpec(
                    sx=sx,
                    sy=sy,
                    sw=min(tile_size, width - sx),
                    sh=min(tile_size, height - sy),
                    model_size=tile_size,
                )
            )

    return tiles


# ---------------------------------------------------------------------------
# Coordinate Mapping
# ---------------------------------------------------------------------------


def map_detections_to_image(
    detections: list[Detection],
    scale: float,
    pad_x: float,
    pad_y: float,
    offset_x: float,
    offset_y: float,
) -> list[Detection]:
    """Map detections from letterboxed model space back to source image pixels.

    Args:
        detections: Detections in model-input space.
        scale: Letterbox scale of the tile.
        pad_x: Horizontal letterbox padding.
        pad_y: Vertical letterbox padding.
        offset_x: X offset of the tile origin in the image.
        offset_y: Y offset of the tile origin in the image.

    Returns:
        New Detection records in image coordinates; angle is unchanged.
    """
    return [
        replace(
            d,
            cx=(d.cx - pad_x) / scale + offset_x,
            cy=(d.cy - pad_y) / scale + offset_y,
            width=d.width / scale,
            height=d.height / scale,
        )
        for d in detections
    ]


def map_tile_detections(detections: list[Detection], tile: TileSpec) -> list[Detection]:
    """Map detections using the letterbox and offset stored on a TileSpec."""
    return map_detections_to_image(detections, tile.scale, tile.pad_x, tile.pad_y, tile.sx, tile.sy)


# ---------------------------------------------------------------------------
# Cross-Tile NMS
# ---------------------------------------------------------------------------


def detection_iou(a: Detection, b: Detection, strict: bool = False) -> float:
    """IoU used to decide whether two detections are duplicates.

    By default both boxes are approximated by the axis-aligned square of
    side max(width, height) around their centers. With ``strict=True`` the
    exact rotated-polygon IoU is used instead.
    """
    if strict:
        return polygon_iou(obb_corners(a), obb_corners(b))
    return aabb_iou(square_bounds(a), square_bounds(b))


def obb_nms(
    detections: list[Detection],
    iou_threshold: float = NMS_IOU_THRESHOLD,
    strict: bool = False,
) -> list[Detection]:
    """Perform class-aware non-maximum suppression over oriented boxes.

    Detections are visited in descending confidence. The sort is stable, so
    exact confidence ties keep their input (generation) order. A detection
    is dropped when a kept, same-class detection overlaps it with IoU above
    ``iou_threshold``.

    Args:
        detections: All detections of the image, in image coordinates.
        iou_threshold: IoU threshold above which to suppress.
        strict: Use exact rotated-polygon IoU instead of the square approximation.

    Returns:
        Surviving detections, highest confidence first.
    """
    if not detections:
        return []

    ordered = sorted(detections, key=lambda d: d.confidence, reverse=True)
    suppressed = [False] * len(ordered)
    keep: list[Detection] = []

    for i, current in enumerate(ordered):
        if suppressed[i]:
            continue
        keep.append(current)

        for j in range(i + 1, len(ordered)):
            if suppressed[j] or ordered[j].class_id != current.class_id:
                continue
            if detection_iou(current, ordered[j], strict=strict) > iou_threshold:
                suppressed[j] = True

    return keep


# ---------------------------------------------------------------------------
# Tile Processing Pipeline
# ---------------------------------------------------------------------------


def run_tiled_inference(
    image: Image.Image,
    engine: InferenceEngine,
    config: TilingConfig | None = None,
    class_names: tuple[str, ...] | list[str] | None = None,
    progress: ProgressCallback | None = None,
    should_cancel: Callable[[], bool] | None = None,
    show_progress: bool = False,
) -> list[Detection]:
    """Run detection over an image of any size.

    Tiles are processed one at a time; the engine is never called
    concurrently. All remapped tile detections are accumulated and NMS runs
    once over the whole set, since duplicates live on tile overlaps.

    Args:
        image: Source image.
        engine: Inference engine honoring the (3, S, S) -> (N, 7) contract.
        config: Tiling settings. Defaults are used if None.
        class_names: Label set. Defaults to the DOTA labels.
        progress: Called with (tiles_done, total_tiles) after each tile, and
            with (0, 1) before a single-pass run.
        should_cancel: Checked before each tile; returning True stops the run.
        show_progress: Whether to display a tqdm progress bar.

    Returns:
        Deduplicated detections in image pixel coordinates.

    Raises:
        PipelineCancelled: If should_cancel() returned True.
        ResourceAcquisitionError: If a tile canvas cannot be allocated.
        InferenceError: If the engine output is malformed.
    """
    if config is None:
        config = TilingConfig()

    width, height = image.size
    tiles = plan_tiles(width, height, config.model_size, config.slice_threshold, config.overlap)
    total = len(tiles)

    if total == 1 and progress is not None:
        progress(0, 1)

    tile_iter: Any = tiles
    if show_progress:
        from tqdm import tqdm

        tile_iter = tqdm(tiles, desc="Processing tiles", unit="tile")

    all_detections: list[Detection] = []

    for done, planned in enumerate(tile_iter, start=1):
        if should_cancel is not None and should_cancel():
            raise PipelineCancelled(f"Detection cancelled after {done - 1} of {total} tiles.", tiles_done=done - 1)

        model_input, tile = letterbox_tile(image, planned.sx, planned.sy, planned.sw, planned.sh, config.model_size)

        raw = engine.run(model_input)
        tile_detections = candidates_to_detections(raw, config.confidence_threshold, class_names)
        all_detections.extend(map_tile_detections(tile_detections, tile))

        if progress is not None:
            progress(done, total)

    return obb_nms(all_detections, config.nms_threshold, strict=config.strict_nms)
