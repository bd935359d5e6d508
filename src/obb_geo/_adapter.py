"""Inference engine adapter isolating all onnxruntime-specific logic.

This module implements the adapter pattern to wrap the oriented-box model
behind a stable interface: a normalized (3, S, S) float32 buffer goes in,
rows of ``[cx, cy, w, h, angle, confidence, class_id]`` come out. If the
runtime changes its API, only this file needs updating. No onnxruntime
types leak beyond this boundary.

Module-level functions (letterbox_tile, validate_candidates,
candidates_to_detections) are available for independent use outside the
adapter class, e.g. with a different engine that honors the same contract.
"""

from __future__ import annotations

import math
import os
import warnings
from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray
from PIL import Image

from obb_geo._typing import Detection, ModelInput, RawCandidates, TileSpec
from obb_geo.exceptions import InferenceError, RasterError, ResourceAcquisitionError
from obb_geo.geometry import round_half_up
from obb_geo.labels import CONFIDENCE_THRESHOLD, MODEL_INPUT_SIZE, class_name_for

# Gray used for letterbox padding, matching the model's training pipeline
PAD_VALUE = 114

# Width of one raw candidate row
CANDIDATE_WIDTH = 7


class InferenceEngine(Protocol):
    """Anything that maps a (3, S, S) normalized buffer to raw candidate rows."""

    def run(self, model_input: ModelInput) -> Any: ...


# ---------------------------------------------------------------------------
# Tile preprocessing
# ---------------------------------------------------------------------------


def letterbox_tile(
    image: Image.Image,
    sx: int,
    sy: int,
    sw: int,
    sh: int,
    model_size: int = MODEL_INPUT_SIZE,
) -> tuple[ModelInput, TileSpec]:
    """Fit a source region into a model_size x model_size square.

    The region is scaled uniformly to fit, centered, and surrounded with gray
    padding. The returned TileSpec carries the scale and padding needed to
    map model-space detections back to the source image.

    Args:
        image: Source image (converted to RGB if needed).
        sx: Region x offset in the source image.
        sy: Region y offset in the source image.
        sw: Region width.
        sh: Region height.
        model_size: Side of the square model input.

    Returns:
        Tuple of (float32 array shape (3, S, S) in [0, 1], TileSpec).

    Raises:
        RasterError: If the region is empty.
        ResourceAcquisitionError: If the tile canvas cannot be allocated.
    """
    if sw <= 0 or sh <= 0:
        raise RasterError(f"Tile region must have positive size, got {sw}x{sh}.", window=(sx, sy, sw, sh))

    scale = min(model_size / sw, model_size / sh)
    new_w = round_half_up(sw * scale)
    new_h = round_half_up(sh * scale)
    pad_x = (model_size - new_w) / 2
    pad_y = (model_size - new_h) / 2

    try:
        canvas = Image.new("RGB", (model_size, model_size), (PAD_VALUE, PAD_VALUE, PAD_VALUE))
        region = image.crop((sx, sy, sx + sw, sy + sh))
        if region.mode != "RGB":
            region = region.convert("RGB")
        region = region.resize((new_w, new_h), Image.Resampling.BILINEAR)
        canvas.paste(region, (math.floor(pad_x), math.floor(pad_y)))
        pixels = np.asarray(canvas, dtype=np.float32)
    except (MemoryError, OSError, ValueError) as exc:
        raise ResourceAcquisitionError(
            f"Cannot allocate a {model_size}x{model_size} tile canvas: {exc}",
            window=(sx, sy, sw, sh),
        ) from exc

    # (H, W, C) uint8 -> (C, H, W) float32 [0, 1]
    model_input = np.ascontiguousarray(np.transpose(pixels / 255.0, (2, 0, 1)), dtype=np.float32)

    tile = TileSpec(
        sx=sx,
        sy=sy,
        sw=sw,
        sh=sh,
        model_size=model_size,
        scale=scale,
        pad_x=pad_x,
        pad_y=pad_y,
    )
    return model_input, tile


# ---------------------------------------------------------------------------
# Candidate post-processing
# ---------------------------------------------------------------------------


def validate_candidates(raw: Any) -> RawCandidates:
    """Coerce engine output to an (N, 7) float array.

    Accepts ``None`` and empty outputs as "no candidates", and a leading
    batch axis of size 1.

    Raises:
        InferenceError: If the output cannot be read as rows of 7 finite values.
    """
    if raw is None:
        return np.empty((0, CANDIDATE_WIDTH), dtype=np.float32)

    try:
        arr = np.asarray(raw, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise InferenceError(f"Engine output is not numeric: {exc}") from exc

    if arr.size == 0:
        return np.empty((0, CANDIDATE_WIDTH), dtype=np.float32)

    if arr.ndim == 3 and arr.shape[0] == 1:
        arr = arr[0]

    if arr.ndim != 2 or arr.shape[1] != CANDIDATE_WIDTH:
        raise InferenceError(
            f"Expected engine output of shape (N, {CANDIDATE_WIDTH}), got {arr.shape}.",
            shape=arr.shape,
        )

    finite = np.isfinite(arr).all(axis=1)
    if not finite.all():
        bad_row = int(np.argmin(finite))
        raise InferenceError(
            f"Engine output row {bad_row} has non-finite values: {arr[bad_row].tolist()}.",
            row=bad_row,
            shape=arr.shape,
        )

    return arr


def candidates_to_detections(
    raw: Any,
    confidence_threshold: float = CONFIDENCE_THRESHOLD,
    class_names: tuple[str, ...] | list[str] | None = None,
) -> list[Detection]:
    """Filter raw candidates by confidence and build Detection records.

    Candidates with confidence below ``confidence_threshold`` are dropped.
    Coordinates stay in model-input space.

    Args:
        raw: Engine output, (N, 7) or (1, N, 7).
        confidence_threshold: Confidence floor.
        class_names: Label set. Defaults to the DOTA labels.

    Returns:
        List of Detection in candidate order.
    """
    rows = validate_candidates(raw)

    detections: list[Detection] = []
    for cx, cy, w, h, angle, confidence, class_value in rows:
        if confidence < confidence_threshold:
            continue

        class_id = round_half_up(float(class_value))
        detections.append(
            Detection(
                class_id=class_id,
                class_name=class_name_for(class_id, class_names),
                confidence=float(confidence),
                cx=float(cx),
                cy=float(cy),
                width=float(w),
                height=float(h),
                angle=float(angle),
            )
        )

    return detections


# ---------------------------------------------------------------------------
# onnxruntime engine
# ---------------------------------------------------------------------------


def detect_providers(preferred: str | None = None) -> list[str]:
    """Pick onnxruntime execution providers for a device preference.

    Priority: CUDA > CPU. If CUDA is requested but unavailable, falls back
    to CPU with a warning.

    Args:
        preferred: "cuda", "cpu", or None to auto-detect.

    Returns:
        Ordered provider list for ort.InferenceSession.
    """
    if preferred == "cpu":
        return ["CPUExecutionProvider"]

    try:
        import onnxruntime as ort

        available = ort.get_available_providers()
    except ImportError:
        available = []

    cuda_available = "CUDAExecutionProvider" in available

    if preferred == "cuda" and not cuda_available:
        warnings.warn(
            f"Requested device '{preferred}' is not available. Falling back to CPU.",
            RuntimeWarning,
            stacklevel=2,
        )
        return ["CPUExecutionProvider"]

    if cuda_available:
        return ["CUDAExecutionProvider", "CPUExecutionProvider"]
    return ["CPUExecutionProvider"]


class OnnxOBBEngine:
    """Adapter running an oriented-box ONNX export through onnxruntime.

    The adapter provides:
    - Lazy session creation (the model is loaded on the first run, not at init)
    - Provider selection (cuda > cpu)
    - Input batching and output reshaping to (N, 7) candidate rows

    The session holds the loaded model; callers must not run it from
    several threads at once.
    """

    def __init__(
        self,
        model_path: str,
        device: str | None = None,
        input_name: str = "images",
        output_name: str = "output0",
        model_size: int = MODEL_INPUT_SIZE,
    ) -> None:
        """Initialize the adapter with model configuration.

        Args:
            model_path: Path to the .onnx model file.
            device: "cuda" or "cpu". Auto-detected if None.
            input_name: Name of the model's image input.
            output_name: Name of the model's detection output.
            model_size: Side of the square model input.

        Raises:
            InferenceError: If model_path does not exist.
        """
        if not os.path.exists(model_path):
            raise InferenceError(
                f"Model file does not exist: '{model_path}'. Provide a valid path to an ONNX export.",
                model_path=model_path,
            )

        self._model_path = model_path
        self._device = device
        self._input_name = input_name
        self._output_name = output_name
        self._model_size = model_size
        self._session: Any = None

    @property
    def model_size(self) -> int:
        """Model's native square input resolution in pixels."""
        return self._model_size

    @property
    def is_loaded(self) -> bool:
        """Whether the session has been created (lazy loading check)."""
        return self._session is not None

    def _ensure_session(self) -> None:
        """Lazy-create the inference session on first use.

        Raises:
            InferenceError: If onnxruntime is not installed, with install instructions.
        """
        if self._session is not None:
            return

        try:
            import onnxruntime as ort
        except ImportError as err:
            raise InferenceError("onnxruntime is not installed. Install it with: pip install obb-geo[onnx]") from err

        self._session = ort.InferenceSession(self._model_path, providers=detect_providers(self._device))

    def run(self, model_input: ModelInput) -> NDArray[np.float32]:
        """Run the model on one normalized tile.

        Args:
            model_input: Array shape (3, S, S), float32 in [0, 1].

        Returns:
            Candidate rows, shape (N, 7).

        Raises:
            InferenceError: If the input shape is wrong or the output is malformed.
        """
        expected = (3, self._model_size, self._model_size)
        if model_input.shape != expected:
            raise InferenceError(f"Expected model input of shape {expected}, got {model_input.shape}.")

        self._ensure_session()

        batch = model_input[np.newaxis].astype(np.float32, copy=False)
        outputs = self._session.run([self._output_name], {self._input_name: batch})
        return validate_candidates(outputs[0] if outputs else None)
