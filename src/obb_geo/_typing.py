"""Type aliases and record types shared across the obb_geo library.

This module defines the detection record, the per-tile letterbox metadata,
and the plain tuple aliases used by multiple modules. Records are frozen
dataclasses so a detection is replaced, never edited, when suppression or
merging supersedes it.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

# A 2D point (x, y) in pixel or geographic units
Point = tuple[float, float]

# Axis-aligned bounds: (min_x, min_y, max_x, max_y)
AxisBounds = tuple[float, float, float, float]

# A tile window on the source image: (col_off, row_off, width, height)
TileWindow = tuple[int, int, int, int]

# Normalized model input: (3, S, S) float32 [0, 1], channel-major
ModelInput = NDArray[np.float32]

# Raw engine output: (N, 7) rows of [cx, cy, w, h, angle, confidence, class_id]
RawCandidates = NDArray[np.float32]


@dataclass(frozen=True)
class Detection:
    """A single oriented bounding box detection.

    Coordinates are in whatever pixel space the detection currently lives in:
    model-input space straight out of the engine, source-image space after
    remapping.
    """

    class_id: int
    class_name: str
    confidence: float
    cx: float
    cy: float
    width: float
    height: float
    angle: float  # radians


@dataclass(frozen=True)
class TileSpec:
    """Source region of one tile and the letterbox used to fit it.

    ``scale``, ``pad_x`` and ``pad_y`` are filled in by the preprocessor;
    a planned-but-not-yet-preprocessed tile carries the identity values.
    """

    sx: int
    sy: int
    sw: int
    sh: int
    model_size: int
    scale: float = 1.0
    pad_x: float = 0.0
    pad_y: float = 0.0

    @property
    def window(self) -> TileWindow:
        return (self.sx, self.sy, self.sw, self.sh)
