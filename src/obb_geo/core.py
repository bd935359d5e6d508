"""ObbGeo main class - public API for oriented-box detection on (geo)images.

This module provides the primary user-facing interface. The ObbGeo class
delegates to specialized internal modules for I/O, tiling, geo-referencing,
merging, and export.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from obb_geo._adapter import InferenceEngine, OnnxOBBEngine
from obb_geo._typing import Detection
from obb_geo.crs import GeoReference
from obb_geo.exceptions import ExportError, GeoReferenceError, ObbGeoError
from obb_geo.io import RasterImage, load_raster
from obb_geo.labels import CLASS_NAMES, CONFIDENCE_THRESHOLD, MODEL_INPUT_SIZE
from obb_geo.merge import MERGE_IOU_THRESHOLD, GeoDetection, merge_geo_detections
from obb_geo.tiling import (
    NMS_IOU_THRESHOLD,
    SLICE_THRESHOLD,
    TILE_OVERLAP,
    ProgressCallback,
    TilingConfig,
    run_tiled_inference,
)


class ObbGeo:
    """Oriented bounding box detection on images of any size.

    This is the main entry point for the obb_geo library. It loads an image,
    runs sliced detection, and exports pixel or geo-referenced results.

    Example::

        og = ObbGeo(model_path="models/yolo-obb.onnx")
        og.set_image("path/to/scene.tif")
        detections = og.detect()
        og.to_geojson("out/")

    Args:
        engine: Inference engine to use. Built from model_path if None.
        model_path: Path to an ONNX model, used when engine is None.
        device: Compute device ("cuda", "cpu") for the ONNX engine.
        model_size: Side of the square model input.
        confidence_threshold: Confidence floor for candidates.
        slice_threshold: Largest image side processed in a single pass.
        overlap: Fractional overlap between adjacent tiles.
        nms_threshold: IoU threshold for cross-tile NMS.
        strict_nms: Use exact rotated-polygon IoU for NMS.
        class_names: Label set, indexed by class id. DOTA labels if None.
    """

    def __init__(
        self,
        engine: InferenceEngine | None = None,
        model_path: str | None = None,
        device: str | None = None,
        model_size: int = MODEL_INPUT_SIZE,
        confidence_threshold: float = CONFIDENCE_THRESHOLD,
        slice_threshold: int = SLICE_THRESHOLD,
        overlap: float = TILE_OVERLAP,
        nms_threshold: float = NMS_IOU_THRESHOLD,
        strict_nms: bool = False,
        class_names: tuple[str, ...] | list[str] | None = None,
    ) -> None:
        if engine is None:
            if model_path is None:
                raise ObbGeoError("Provide either an inference engine or a model_path.")
            engine = OnnxOBBEngine(model_path, device=device, model_size=model_size)

        self._engine = engine
        self._config = TilingConfig(
            model_size=model_size,
            slice_threshold=slice_threshold,
            overlap=overlap,
            nms_threshold=nms_threshold,
            confidence_threshold=confidence_threshold,
            strict_nms=strict_nms,
        )
        self._class_names = tuple(class_names) if class_names is not None else CLASS_NAMES
        self._raster: RasterImage | None = None
        self._detections: list[Detection] | None = None

    @property
    def config(self) -> TilingConfig:
        """The validated tiling configuration."""
        return self._config

    @property
    def class_names(self) -> tuple[str, ...]:
        return self._class_names

    @property
    def raster(self) -> RasterImage | None:
        """The loaded image, or None if set_image() has not been called."""
        return self._raster

    @property
    def geo_reference(self) -> GeoReference | None:
        """Geo reference of the loaded image. None for plain images."""
        return self._raster.geo_ref if self._raster is not None else None

    @property
    def detections(self) -> list[Detection] | None:
        """The most recent detection results in image pixel coordinates.

        Returns None if no detection has been run.
        """
        return self._detections

    def set_image(self, source: str | Path | RasterImage) -> None:
        """Load an image for detection.

        Args:
            source: Path to a GeoTIFF, JPEG, or PNG, or an already decoded RasterImage.

        Raises:
            FileNotFoundError: If the path doesn't exist.
            RasterError: If the image cannot be decoded.
            GeoReferenceError: If the GeoTIFF transform is rotated.
        """
        self._raster = source if isinstance(source, RasterImage) else load_raster(source)
        self._detections = None

    def detect(
        self,
        progress: ProgressCallback | None = None,
        should_cancel: Callable[[], bool] | None = None,
        show_progress: bool = False,
    ) -> list[Detection]:
        """Run detection on the loaded image.

        Args:
            progress: Called with (tiles_done, total_tiles) after each tile.
            should_cancel: Zero-argument callable checked between tiles.
            show_progress: Whether to display a tqdm progress bar.

        Returns:
            Deduplicated detections in image pixel coordinates.

        Raises:
            ObbGeoError: If no image has been set via set_image().
        """
        if self._raster is None:
            raise ObbGeoError("No image has been set. Call set_image() before detect().")

        self._detections = run_tiled_inference(
            self._raster.image,
            self._engine,
            config=self._config,
            class_names=self._class_names,
            progress=progress,
            should_cancel=should_cancel,
            show_progress=show_progress,
        )
        return self._detections

    def geo_detections(self) -> list[GeoDetection]:
        """The detections paired with the loaded image's geo reference.

        Raises:
            ObbGeoError: If detect() has not been run.
            GeoReferenceError: If the image is not geo-referenced.
        """
        ref = self._require_geo_reference()
        return [GeoDetection(d, ref) for d in self._require_detections()]

    def merge_with(self, other: ObbGeo, iou_threshold: float = MERGE_IOU_THRESHOLD) -> list[GeoDetection]:
        """Merge this image's detections with another image of the same area.

        Args:
            other: A second ObbGeo whose detect() has been run.
            iou_threshold: Geographic IoU above which two detections are duplicates.

        Returns:
            Merged detections, each tied to its own image's geo reference.
        """
        return merge_geo_detections(
            self._require_detections(),
            self._require_geo_reference(),
            other._require_detections(),
            other._require_geo_reference(),
            iou_threshold=iou_threshold,
        )

    def to_json(self, path: str | Path) -> None:
        """Export pixel-space detections to a JSON file.

        Raises:
            ExportError: If no detection has been run or writing fails.
        """
        from obb_geo.export import write_pixel_json

        if self._raster is None or self._detections is None:
            raise ExportError("No detections to export. Run detect() first.")

        write_pixel_json(self._detections, self._raster.width, self._raster.height, path)

    def to_geojson(self, out_dir: str | Path, prefix: str = "") -> list[Path]:
        """Export detections to one GeoJSON file per class.

        Raises:
            ExportError: If there are no detections or writing fails.
            GeoReferenceError: If the image is not geo-referenced.
        """
        from obb_geo.export import write_geojson_by_class

        if not self._detections:
            raise ExportError("No detections to export. Run detect() first.")

        return write_geojson_by_class(self.geo_detections(), out_dir, prefix=prefix)

    def _require_detections(self) -> list[Detection]:
        if self._detections is None:
            raise ObbGeoError("No detections available. Call detect() first.")
        return self._detections

    def _require_geo_reference(self) -> GeoReference:
        ref = self.geo_reference
        if ref is None:
            raise GeoReferenceError("The loaded image is not geo-referenced.")
        return ref
