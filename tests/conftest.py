"""Shared test fixtures for obb_geo test suite."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import rasterio
from PIL import Image
from pyproj import CRS
from rasterio.transform import from_origin

from obb_geo._typing import Detection
from obb_geo.crs import GeoReference
from obb_geo.io import RasterImage

# ---------------------------------------------------------------------------
# Test Helper Functions
# ---------------------------------------------------------------------------


def make_detection(
    cx: float = 100.0,
    cy: float = 100.0,
    width: float = 40.0,
    height: float = 20.0,
    angle: float = 0.0,
    confidence: float = 0.8,
    class_id: int = 0,
    class_name: str | None = None,
) -> Detection:
    """Build a Detection with sensible defaults for tests."""
    return Detection(
        class_id=class_id,
        class_name=class_name if class_name is not None else f"class_{class_id}",
        confidence=confidence,
        cx=cx,
        cy=cy,
        width=width,
        height=height,
        angle=angle,
    )


class FakeEngine:
    """Inference engine stand-in returning scripted candidate rows.

    ``rows`` are returned on every call unless ``per_call`` gives one row
    list per call; calls past the end of ``per_call`` return no candidates.
    """

    def __init__(self, rows=None, per_call=None):
        self._rows = rows if rows is not None else []
        self._per_call = per_call
        self.inputs: list[np.ndarray] = []

    @property
    def calls(self) -> int:
        return len(self.inputs)

    def run(self, model_input):
        self.inputs.append(model_input)
        if self._per_call is not None:
            index = len(self.inputs) - 1
            return self._per_call[index] if index < len(self._per_call) else []
        return self._rows


# ---------------------------------------------------------------------------
# Image Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def solid_image() -> Image.Image:
    """A 100x80 solid red RGB image (single-pass size)."""
    return Image.new("RGB", (100, 80), (255, 0, 0))


@pytest.fixture
def large_image() -> Image.Image:
    """A 200x150 gray RGB image, large enough to slice with small tiles."""
    return Image.new("RGB", (200, 150), (30, 60, 90))


@pytest.fixture
def utm_ref() -> GeoReference:
    """A 0.5 m/pixel geo reference in UTM zone 17N."""
    return GeoReference(tie_point=(500000.0, 4000256.0), pixel_scale=(0.5, 0.5), epsg=32617)


@pytest.fixture
def geo_raster(large_image: Image.Image, utm_ref: GeoReference) -> RasterImage:
    """An in-memory geo-referenced raster."""
    return RasterImage(image=large_image, width=200, height=150, geo_ref=utm_ref, source="memory")


# ---------------------------------------------------------------------------
# File Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def synthetic_geotiff(tmp_path: Path) -> Path:
    """Create a synthetic 256x128 3-band uint8 GeoTIFF in EPSG:32617.

    Pixel (0, 0) sits at (500000, 4000256) with 0.5 m pixels.
    """
    tiff_path = tmp_path / "synthetic.tif"
    width, height = 256, 128
    transform = from_origin(500000.0, 4000256.0, 0.5, 0.5)

    rng = np.random.RandomState(42)
    data = rng.randint(0, 255, (3, height, width), dtype=np.uint8)

    with rasterio.open(
        tiff_path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=3,
        dtype="uint8",
        crs=CRS.from_epsg(32617),
        transform=transform,
    ) as dst:
        dst.write(data)

    return tiff_path


@pytest.fixture
def single_band_geotiff(tmp_path: Path) -> Path:
    """Create a 64x64 single-band uint8 GeoTIFF with a constant value of 77."""
    tiff_path = tmp_path / "single_band.tif"
    data = np.full((1, 64, 64), 77, dtype=np.uint8)

    with rasterio.open(
        tiff_path,
        "w",
        driver="GTiff",
        height=64,
        width=64,
        count=1,
        dtype="uint8",
        crs=CRS.from_epsg(4326),
        transform=from_origin(10.0, 50.0, 0.001, 0.001),
    ) as dst:
        dst.write(data)

    return tiff_path


@pytest.fixture
def untagged_geotiff(tmp_path: Path) -> Path:
    """Create a 32x32 3-band GeoTIFF with no CRS and no transform."""
    tiff_path = tmp_path / "untagged.tif"
    data = np.zeros((3, 32, 32), dtype=np.uint8)

    with rasterio.open(
        tiff_path,
        "w",
        driver="GTiff",
        height=32,
        width=32,
        count=3,
        dtype="uint8",
    ) as dst:
        dst.write(data)

    return tiff_path


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    """Write a 40x30 RGBA PNG."""
    path = tmp_path / "photo.png"
    Image.new("RGBA", (40, 30), (10, 20, 30, 255)).save(path)
    return path
