"""Tests for letterbox tile preprocessing."""

from __future__ import annotations

import numpy as np
import pytest
from PIL import Image

from obb_geo._adapter import PAD_VALUE, letterbox_tile
from obb_geo.exceptions import RasterError, ResourceAcquisitionError

GRAY = PAD_VALUE / 255.0


class TestLetterboxGeometry:
    """Test scale and padding arithmetic."""

    def test_wide_region_padded_vertically(self):
        _, tile = letterbox_tile(Image.new("RGB", (200, 100)), 0, 0, 200, 100, 512)
        assert tile.scale == pytest.approx(2.56)
        assert tile.pad_x == 0.0
        assert tile.pad_y == 128.0

    def test_tall_region_padded_horizontally(self):
        _, tile = letterbox_tile(Image.new("RGB", (50, 100)), 0, 0, 50, 100, 64)
        assert tile.scale == pytest.approx(0.64)
        assert tile.pad_x == 16.0
        assert tile.pad_y == 0.0

    def test_fractional_padding_kept_exact(self):
        """100x30 into 64: height rounds to 19, leaving 22.5 px of padding."""
        _, tile = letterbox_tile(Image.new("RGB", (100, 30)), 0, 0, 100, 30, 64)
        assert tile.pad_y == 22.5

    def test_square_region_fills_canvas(self):
        _, tile = letterbox_tile(Image.new("RGB", (64, 64)), 0, 0, 64, 64, 64)
        assert tile.scale == 1.0
        assert (tile.pad_x, tile.pad_y) == (0.0, 0.0)

    def test_half_pixel_content_rounds_up(self):
        """1024x721 at 512: 360.5 content rows round up to 361, leaving 75.5 px padding."""
        _, tile = letterbox_tile(Image.new("RGB", (1024, 721)), 0, 0, 1024, 721, 512)
        assert tile.scale == 0.5
        assert tile.pad_x == 0.0
        assert tile.pad_y == 75.5

    def test_tile_records_source_window(self):
        _, tile = letterbox_tile(Image.new("RGB", (300, 300)), 48, 96, 64, 64, 64)
        assert tile.window == (48, 96, 64, 64)
        assert tile.model_size == 64


class TestLetterboxPixels:
    """Test the normalized output buffer."""

    def test_output_shape_and_dtype(self, solid_image):
        buffer, _ = letterbox_tile(solid_image, 0, 0, 100, 80, 512)
        assert buffer.shape == (3, 512, 512)
        assert buffer.dtype == np.float32

    def test_values_in_unit_range(self, solid_image):
        buffer, _ = letterbox_tile(solid_image, 0, 0, 100, 80, 512)
        assert buffer.min() >= 0.0
        assert buffer.max() <= 1.0

    def test_content_is_channel_major(self, solid_image):
        buffer, _ = letterbox_tile(solid_image, 0, 0, 100, 80, 512)
        assert buffer[0, 256, 256] == pytest.approx(1.0)
        assert buffer[1, 256, 256] == pytest.approx(0.0)
        assert buffer[2, 256, 256] == pytest.approx(0.0)

    def test_padding_is_neutral_gray(self, solid_image):
        """100x80 at 512: content is 410 rows tall, 51 px gray bands above and below."""
        buffer, _ = letterbox_tile(solid_image, 0, 0, 100, 80, 512)
        np.testing.assert_allclose(buffer[:, 10, 256], [GRAY, GRAY, GRAY], atol=1e-6)
        np.testing.assert_allclose(buffer[:, 505, 256], [GRAY, GRAY, GRAY], atol=1e-6)

    def test_crops_requested_region(self):
        image = Image.new("RGB", (128, 64), (0, 0, 0))
        image.paste((0, 255, 0), (64, 0, 128, 64))
        buffer, _ = letterbox_tile(image, 64, 0, 64, 64, 64)
        assert buffer[1].min() == pytest.approx(1.0)

    def test_non_rgb_source_converted(self):
        image = Image.new("L", (32, 32), 255)
        buffer, _ = letterbox_tile(image, 0, 0, 32, 32, 32)
        assert buffer.shape == (3, 32, 32)
        assert buffer.min() == pytest.approx(1.0)


class TestLetterboxErrors:
    def test_empty_region_raises(self, solid_image):
        with pytest.raises(RasterError, match="positive size"):
            letterbox_tile(solid_image, 0, 0, 0, 10, 64)

    def test_canvas_allocation_failure_is_fatal(self, solid_image, monkeypatch):
        def fail(*args, **kwargs):
            raise MemoryError("out of memory")

        monkeypatch.setattr("obb_geo._adapter.Image.new", fail)

        with pytest.raises(ResourceAcquisitionError, match="tile canvas") as exc_info:
            letterbox_tile(solid_image, 0, 0, 100, 80, 64)
        assert exc_info.value.context["window"] == (0, 0, 100, 80)
        assert isinstance(exc_info.value.__cause__, MemoryError)
