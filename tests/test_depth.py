"""Tests for depth linearization and export."""

import json

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal
from PIL import Image

from gaussian_capture.depth import (
    DepthExportConfig,
    DepthFormat,
    DepthMap,
    colorize_depth,
    linearize_depth,
    save_depth,
    save_depth_visualization,
)
from gaussian_capture.validation import WarningCode


class TestLinearizeDepth:
    """Tests for reversed-Z linearization."""

    def test_finite_far_plane_endpoints(self):
        assert linearize_depth(1.0, 10.0, 100000.0) == pytest.approx(10.0)
        assert linearize_depth(0.0, 10.0, 100000.0) == pytest.approx(100000.0)

    def test_finite_far_plane_is_monotonic(self):
        z = np.linspace(0.0, 1.0, 11)
        linear = linearize_depth(z, 10.0, 1000.0)
        assert np.all(np.diff(linear) < 0)

    def test_finite_far_plane_inverts_projection(self):
        near, far = 10.0, 5000.0
        distances = np.array([10.0, 25.0, 300.0, 1234.5, 5000.0])
        z = near * (far - distances) / (distances * (far - near))

        assert_allclose(linearize_depth(z, near, far), distances, rtol=1e-12)

    def test_infinite_far_plane(self):
        assert linearize_depth(0.5, 10.0, 100000.0, infinite_far=True) == pytest.approx(20.0)
        assert linearize_depth(0.01, 10.0, 100000.0, infinite_far=True) == pytest.approx(1000.0)

    def test_zero_is_clamped_to_far(self):
        assert linearize_depth(0.0, 10.0, 5000.0, infinite_far=True) == pytest.approx(5000.0)

    def test_shape_is_preserved(self):
        buffer = np.full((4, 6), 0.25)
        linear = linearize_depth(buffer, 10.0, 1000.0, infinite_far=True)

        assert linear.shape == (4, 6)
        assert_allclose(linear, 40.0)

    def test_scalar_returns_float(self):
        assert isinstance(linearize_depth(0.5, 10.0, 100.0), float)


class TestDepthMap:
    """Tests for depth maps built from captured buffers."""

    def test_from_buffer_in_meters(self):
        config = DepthExportConfig(infinite_far=True)
        depth_map = DepthMap.from_buffer(np.full((2, 3), 0.1), config)

        assert depth_map.units == "m"
        assert (depth_map.width, depth_map.height) == (3, 2)
        assert depth_map.data.dtype == np.float32
        assert_allclose(depth_map.data, 1.0, rtol=1e-6)
        assert depth_map.near_plane == pytest.approx(0.1)
        assert depth_map.far_plane == pytest.approx(1000.0)

    def test_from_buffer_in_centimeters(self):
        config = DepthExportConfig(infinite_far=True, export_in_meters=False)
        depth_map = DepthMap.from_buffer(np.full((2, 2), 0.5), config)

        assert depth_map.units == "cm"
        assert_allclose(depth_map.data, 20.0)

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError):
            DepthMap.from_buffer(np.zeros((2, 2, 2)))

    def test_inverted(self):
        depth_map = DepthMap(np.array([[2.0, 4.0]], dtype=np.float32), 1.0, 10.0, units="m")
        inverted = depth_map.inverted()

        assert_allclose(inverted.data, [[0.5, 0.25]])
        assert inverted.units == "1/m"
        assert inverted.near_plane == pytest.approx(0.1)

    def test_gamma_keeps_range(self):
        data = np.linspace(1.0, 10.0, 10, dtype=np.float32).reshape(2, 5)
        corrected = DepthMap(data, 1.0, 10.0).gamma_corrected(2.2)

        assert corrected.min_depth == pytest.approx(1.0)
        assert corrected.max_depth == pytest.approx(10.0)
        assert corrected.data[0, 1] > data[0, 1]

    def test_normalized_window(self):
        depth_map = DepthMap(np.array([[1.0, 5.5, 10.0, 20.0]], dtype=np.float32), 1.0, 10.0)
        assert_allclose(depth_map.normalized(), [[0.0, 0.5, 1.0, 1.0]])
        assert_array_equal(depth_map.encode_uint16(), [[0, 32768, 65535, 65535]])


class TestValidation:
    """Tests for depth map validation."""

    def test_good_depth(self):
        data = np.linspace(0.5, 20.0, 100, dtype=np.float32).reshape(10, 10)
        report = DepthMap(data, 0.1, 1000.0, units="m").validate_for_training()
        assert report.valid
        assert report.warnings == []

    def test_nan_is_invalid(self):
        data = np.ones((4, 4), dtype=np.float32)
        data[0, 0] = np.nan
        report = DepthMap(data, 0.1, 1000.0).validate_for_training()

        assert not report.valid
        assert report.has(WarningCode.NAN_DEPTH)
        assert report.has(WarningCode.NARROW_DEPTH_RANGE)

    def test_empty_is_invalid(self):
        report = DepthMap(np.zeros((0, 0), dtype=np.float32), 0.1, 1000.0).validate_for_training()
        assert not report.valid
        assert report.codes == [WarningCode.EMPTY_DEPTH]

    def test_quality_warnings(self):
        data = np.linspace(0.0, 5000.0, 100, dtype=np.float32).reshape(10, 10)
        data[0, :] = 0.0
        data[1, 0] = np.inf
        report = DepthMap(data, 10.0, 100000.0).validate_for_training()

        assert report.valid
        assert report.has(WarningCode.INFINITE_DEPTH)
        assert report.has(WarningCode.NON_POSITIVE_DEPTH)
        assert report.has(WarningCode.LARGE_DEPTH_VALUES)


class TestSaveDepth:
    """Tests for the depth encoders."""

    @pytest.fixture
    def depth_map(self):
        data = np.linspace(1.0, 50.0, 12, dtype=np.float32).reshape(3, 4)
        return DepthMap(data, 0.1, 1000.0, units="m")

    def test_png16(self, tmp_path, depth_map):
        path = save_depth(depth_map, tmp_path / "depth.png", DepthFormat.PNG16)

        with Image.open(path) as image:
            loaded = np.array(image)
        assert loaded.shape == (3, 4)
        assert_array_equal(loaded, depth_map.encode_uint16())

    def test_float32_tiff(self, tmp_path, depth_map):
        path = save_depth(depth_map, tmp_path / "depth.tiff", DepthFormat.FLOAT32)

        with Image.open(path) as image:
            assert_allclose(np.array(image), depth_map.data)
        sidecar = json.loads(path.with_suffix(".json").read_text())
        assert sidecar["units"] == "m"
        assert sidecar["width"] == 4

    def test_npy(self, tmp_path, depth_map):
        path = save_depth(depth_map, tmp_path / "depth.npy", DepthFormat.NPY)
        assert_array_equal(np.load(path), depth_map.data)

    def test_raw(self, tmp_path, depth_map):
        path = save_depth(depth_map, tmp_path / "nested" / "depth.raw", "raw")

        assert path.stat().st_size == 3 * 4 * 4
        assert_array_equal(np.fromfile(path, dtype="<f4").reshape(3, 4), depth_map.data)
        sidecar = json.loads(path.with_suffix(".json").read_text())
        assert (sidecar["height"], sidecar["width"]) == (3, 4)
        assert sidecar["byte_order"] == "little"

    def test_visualization(self, tmp_path, depth_map):
        rgb = colorize_depth(depth_map)
        assert rgb.shape == (3, 4, 3)
        assert rgb.dtype == np.uint8

        path = save_depth_visualization(depth_map, tmp_path / "preview.png")
        assert path.exists()


def test_export_config_from_dict():
    config = DepthExportConfig.from_dict({"format": "png16", "near_plane": 5.0, "ignored": 1})

    assert config.format == DepthFormat.PNG16
    assert config.near_plane == 5.0
    assert config.to_dict()["format"] == "png16"
    assert DepthFormat.FLOAT32.extension == ".tiff"
