"""Tests for camera intrinsics and COLMAP camera models."""

import pytest
from numpy.testing import assert_allclose

from gaussian_capture.errors import InvalidConfigurationError
from gaussian_capture.intrinsics import (
    CameraIntrinsics,
    CameraModel,
    focal_length_from_fov,
    fov_from_focal_length,
)
from gaussian_capture.validation import WarningCode


class TestFromFov:
    """Tests for FOV-based intrinsics."""

    def test_90_degree_full_hd(self):
        """A 90 degree FOV across 1920 pixels has a 960 pixel focal length."""
        intrinsics = CameraIntrinsics.from_fov(90.0, 1920, 1080)

        assert intrinsics.fx == pytest.approx(960.0)
        assert intrinsics.fy == pytest.approx(960.0)
        assert intrinsics.cx == 960.0
        assert intrinsics.cy == 540.0
        assert intrinsics.model == CameraModel.PINHOLE

    def test_fov_round_trip(self):
        intrinsics = CameraIntrinsics.from_fov(70.0, 1280, 720)
        assert intrinsics.horizontal_fov == pytest.approx(70.0)
        assert fov_from_focal_length(focal_length_from_fov(55.0, 800), 800) == pytest.approx(55.0)

    @pytest.mark.parametrize("fov,width,height", [
        (90.0, 0, 1080),
        (90.0, 1920, -1),
        (0.0, 1920, 1080),
        (180.0, 1920, 1080),
    ])
    def test_invalid_arguments(self, fov, width, height):
        with pytest.raises(InvalidConfigurationError):
            CameraIntrinsics.from_fov(fov, width, height)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            CameraIntrinsics.from_fov(-10.0, 1920, 1080)


class TestFromSensor:
    """Tests for lens/sensor based intrinsics."""

    def test_full_frame_35mm(self):
        intrinsics = CameraIntrinsics.from_sensor(35.0, 36.0, 24.0, 1920, 1080)

        assert intrinsics.fx == pytest.approx(35.0 / 36.0 * 1920)
        assert intrinsics.fy == pytest.approx(1575.0)

    def test_non_square_pixels_warn(self):
        intrinsics = CameraIntrinsics.from_sensor(35.0, 36.0, 24.0, 1920, 1080)
        report = intrinsics.validate_for_training()

        assert report.valid
        assert report.has(WarningCode.NON_SQUARE_PIXELS)

    def test_invalid_focal_length(self):
        with pytest.raises(InvalidConfigurationError):
            CameraIntrinsics.from_sensor(0.0, 36.0, 24.0, 1920, 1080)


class TestCameraModels:
    """Tests for model ids and parameter vectors."""

    @pytest.mark.parametrize("model", list(CameraModel))
    def test_param_count_matches_model(self, model):
        intrinsics = CameraIntrinsics.from_fov(90.0, 1920, 1080, model=model)
        assert len(intrinsics.params()) == model.num_params

    def test_model_ids(self):
        assert CameraModel.SIMPLE_PINHOLE.model_id == 0
        assert CameraModel.PINHOLE.model_id == 1
        assert CameraModel.OPENCV.model_id == 4
        assert CameraModel.from_id(6) == CameraModel.FULL_OPENCV

    def test_unknown_model_id(self):
        with pytest.raises(ValueError):
            CameraModel.from_id(5)

    def test_params_string(self):
        intrinsics = CameraIntrinsics.from_fov(90.0, 1920, 1080)
        assert intrinsics.params_string() == "960.0000000000 960.0000000000 960.0000000000 540.0000000000"

    def test_simple_pinhole_params(self):
        intrinsics = CameraIntrinsics.from_fov(90.0, 1920, 1080, model=CameraModel.SIMPLE_PINHOLE)
        assert_allclose(intrinsics.params(), [960.0, 960.0, 540.0])


class TestValidation:
    """Tests for training suitability checks."""

    def test_full_hd_is_clean(self):
        report = CameraIntrinsics.from_fov(90.0, 1920, 1080).validate_for_training()
        assert report.valid
        assert report.warnings == []

    def test_low_resolution(self):
        report = CameraIntrinsics.from_fov(90.0, 640, 480).validate_for_training()
        assert report.valid
        assert report.has(WarningCode.LOW_RESOLUTION)

    def test_fov_limits(self):
        assert CameraIntrinsics.from_fov(20.0, 1920, 1080).validate_for_training().has(WarningCode.NARROW_FOV)
        assert CameraIntrinsics.from_fov(150.0, 1920, 1080).validate_for_training().has(WarningCode.WIDE_FOV)

    def test_invalid_values(self):
        intrinsics = CameraIntrinsics(width=1920, height=1080, fx=0.0, fy=0.0, cx=960.0, cy=540.0)
        report = intrinsics.validate_for_training()

        assert not intrinsics.is_valid()
        assert not report.valid
        assert report.codes == [WarningCode.INVALID_INTRINSICS]


def test_matrix_and_dict_round_trip():
    intrinsics = CameraIntrinsics.from_fov(60.0, 1600, 900, model=CameraModel.OPENCV)

    K = intrinsics.to_matrix()
    assert_allclose(K[0], [intrinsics.fx, 0.0, 800.0])
    assert_allclose(K[2], [0.0, 0.0, 1.0])

    data = intrinsics.to_dict()
    assert data["model"] == "OPENCV"
    assert CameraIntrinsics.from_dict(data) == intrinsics
