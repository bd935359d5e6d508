"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

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


class TestExceptionHierarchy:
    """Test that exceptions form the correct inheritance tree."""

    def test_obb_geo_error_inherits_from_exception(self):
        assert issubclass(ObbGeoError, Exception)

    def test_degenerate_geo_reference_is_a_geo_reference_error(self):
        assert issubclass(DegenerateGeoReferenceError, GeoReferenceError)

    def test_geo_reference_warning_is_a_user_warning(self):
        assert issubclass(GeoReferenceWarning, UserWarning)
        assert not issubclass(GeoReferenceWarning, ObbGeoError)


class TestCatchAll:
    """Test that all exceptions can be caught by catching ObbGeoError."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            GeoReferenceError,
            DegenerateGeoReferenceError,
            TilingError,
            ResourceAcquisitionError,
            InferenceError,
            RasterError,
            ExportError,
            PipelineCancelled,
        ],
    )
    def test_catch_all(self, exc_class):
        with pytest.raises(ObbGeoError):
            raise exc_class("boom")


class TestContext:
    """Test keyword context carried by exceptions."""

    def test_context_kwargs_stored(self):
        err = TilingError("bad tile", tile_size=0)
        assert err.context == {"tile_size": 0}
        assert str(err) == "bad tile"

    def test_context_defaults_to_empty(self):
        assert ObbGeoError("x").context == {}
