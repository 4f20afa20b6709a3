"""Pinhole camera intrinsics and COLMAP camera model serialization."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List

import numpy as np

from .errors import InvalidConfigurationError
from .validation import ValidationReport, WarningCode


class CameraModel(str, Enum):
    """COLMAP camera models supported by the writers."""

    SIMPLE_PINHOLE = "SIMPLE_PINHOLE"
    PINHOLE = "PINHOLE"
    SIMPLE_RADIAL = "SIMPLE_RADIAL"
    RADIAL = "RADIAL"
    OPENCV = "OPENCV"
    FULL_OPENCV = "FULL_OPENCV"

    @property
    def model_id(self) -> int:
        return CAMERA_MODEL_IDS[self]

    @property
    def num_params(self) -> int:
        return CAMERA_MODEL_NUM_PARAMS[self]

    @classmethod
    def from_id(cls, model_id: int) -> "CameraModel":
        for model, mid in CAMERA_MODEL_IDS.items():
            if mid == model_id:
                return model
        raise ValueError(f"Unsupported camera model id: {model_id}")


# COLMAP ids; 5 is OPENCV_FISHEYE which is not produced here
CAMERA_MODEL_IDS = {
    CameraModel.SIMPLE_PINHOLE: 0,
    CameraModel.PINHOLE: 1,
    CameraModel.SIMPLE_RADIAL: 2,
    CameraModel.RADIAL: 3,
    CameraModel.OPENCV: 4,
    CameraModel.FULL_OPENCV: 6,
}

CAMERA_MODEL_NUM_PARAMS = {
    CameraModel.SIMPLE_PINHOLE: 3,
    CameraModel.PINHOLE: 4,
    CameraModel.SIMPLE_RADIAL: 4,
    CameraModel.RADIAL: 5,
    CameraModel.OPENCV: 8,
    CameraModel.FULL_OPENCV: 12,
}

MIN_TRAINING_WIDTH = 800
MIN_TRAINING_HEIGHT = 600
MAX_TRAINING_DIMENSION = 4096
MIN_TRAINING_FOV = 30.0
MAX_TRAINING_FOV = 120.0


def focal_length_from_fov(fov_deg: float, size: int) -> float:
    """Focal length in pixels for a field of view in degrees across ``size`` pixels."""
    return (size / 2.0) / math.tan(math.radians(fov_deg) / 2.0)


def fov_from_focal_length(focal: float, size: int) -> float:
    """Field of view in degrees for a focal length in pixels across ``size`` pixels."""
    return math.degrees(2.0 * math.atan((size / 2.0) / focal))


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics with optional radial/tangential distortion."""

    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    model: CameraModel = CameraModel.PINHOLE

    @classmethod
    def from_fov(
        cls,
        h_fov_deg: float,
        width: int,
        height: int,
        model: CameraModel = CameraModel.PINHOLE,
    ) -> "CameraIntrinsics":
        """Square-pixel intrinsics from a horizontal field of view.

        Raises:
            InvalidConfigurationError: For non-positive dimensions or a FOV
                outside (0, 180).
        """
        if width <= 0 or height <= 0:
            raise InvalidConfigurationError(f"Image dimensions must be positive, got {width}x{height}")
        if not 0.0 < h_fov_deg < 180.0:
            raise InvalidConfigurationError(f"Horizontal FOV must be in (0, 180), got {h_fov_deg}")

        focal = focal_length_from_fov(h_fov_deg, width)
        return cls(
            width=int(width),
            height=int(height),
            fx=focal,
            fy=focal,
            cx=width / 2.0,
            cy=height / 2.0,
            model=CameraModel(model),
        )

    @classmethod
    def from_sensor(
        cls,
        focal_length_mm: float,
        sensor_width_mm: float,
        sensor_height_mm: float,
        width: int,
        height: int,
        model: CameraModel = CameraModel.PINHOLE,
    ) -> "CameraIntrinsics":
        """Intrinsics from a physical lens and sensor; pixels may be non-square."""
        if width <= 0 or height <= 0:
            raise InvalidConfigurationError(f"Image dimensions must be positive, got {width}x{height}")
        if focal_length_mm <= 0 or sensor_width_mm <= 0 or sensor_height_mm <= 0:
            raise InvalidConfigurationError(
                "Focal length and sensor size must be positive, got "
                f"f={focal_length_mm}mm sensor={sensor_width_mm}x{sensor_height_mm}mm"
            )

        return cls(
            width=int(width),
            height=int(height),
            fx=focal_length_mm / sensor_width_mm * width,
            fy=focal_length_mm / sensor_height_mm * height,
            cx=width / 2.0,
            cy=height / 2.0,
            model=CameraModel(model),
        )

    @property
    def model_name(self) -> str:
        return self.model.value

    @property
    def model_id(self) -> int:
        return self.model.model_id

    @property
    def horizontal_fov(self) -> float:
        return fov_from_focal_length(self.fx, self.width)

    @property
    def vertical_fov(self) -> float:
        return fov_from_focal_length(self.fy, self.height)

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def is_valid(self) -> bool:
        return all(v > 0 for v in (self.width, self.height, self.fx, self.fy, self.cx, self.cy))

    def params(self) -> List[float]:
        """Model-specific COLMAP parameter vector."""
        f = self.fx
        if self.model == CameraModel.SIMPLE_PINHOLE:
            return [f, self.cx, self.cy]
        if self.model == CameraModel.PINHOLE:
            return [self.fx, self.fy, self.cx, self.cy]
        if self.model == CameraModel.SIMPLE_RADIAL:
            return [f, self.cx, self.cy, self.k1]
        if self.model == CameraModel.RADIAL:
            return [f, self.cx, self.cy, self.k1, self.k2]
        if self.model == CameraModel.OPENCV:
            return [self.fx, self.fy, self.cx, self.cy, self.k1, self.k2, self.p1, self.p2]
        if self.model == CameraModel.FULL_OPENCV:
            # k3..k6 are not modelled
            return [self.fx, self.fy, self.cx, self.cy, self.k1, self.k2, self.p1, self.p2,
                    0.0, 0.0, 0.0, 0.0]
        raise ValueError(f"Unsupported camera model: {self.model}")

    def params_string(self) -> str:
        return " ".join(f"{p:.10f}" for p in self.params())

    def to_matrix(self) -> np.ndarray:
        """3x3 calibration matrix K."""
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0],
        ])

    def validate_for_training(self) -> ValidationReport:
        """Check the intrinsics against what reconstruction trainers handle well."""
        report = ValidationReport()

        if not self.is_valid():
            report.fail(
                WarningCode.INVALID_INTRINSICS,
                "Width, height, focal length and principal point must all be positive",
            )
            return report

        if self.width < MIN_TRAINING_WIDTH or self.height < MIN_TRAINING_HEIGHT:
            report.warn(
                WarningCode.LOW_RESOLUTION,
                f"Resolution {self.width}x{self.height} is below the recommended "
                f"{MIN_TRAINING_WIDTH}x{MIN_TRAINING_HEIGHT}",
            )
        if self.width > MAX_TRAINING_DIMENSION or self.height > MAX_TRAINING_DIMENSION:
            report.warn(
                WarningCode.HIGH_RESOLUTION,
                f"Resolution {self.width}x{self.height} exceeds {MAX_TRAINING_DIMENSION} pixels "
                "and may exhaust training memory",
            )

        fov = self.horizontal_fov
        if fov < MIN_TRAINING_FOV:
            report.warn(WarningCode.NARROW_FOV, f"Horizontal FOV {fov:.1f} deg is narrow, views will overlap less")
        elif fov > MAX_TRAINING_FOV:
            report.warn(WarningCode.WIDE_FOV, f"Horizontal FOV {fov:.1f} deg is wide, expect strong distortion")

        aspect = self.aspect_ratio
        if aspect < 0.5 or aspect > 2.5:
            report.warn(WarningCode.EXTREME_ASPECT_RATIO, f"Aspect ratio {aspect:.2f} is outside [0.5, 2.5]")

        offset_x = abs(self.cx - self.width / 2.0) / self.width
        offset_y = abs(self.cy - self.height / 2.0) / self.height
        if offset_x > 0.1 or offset_y > 0.1:
            report.warn(
                WarningCode.OFF_CENTER_PRINCIPAL_POINT,
                f"Principal point ({self.cx:.1f}, {self.cy:.1f}) is more than 10% off center",
            )

        if abs(self.fx / self.fy - 1.0) > 0.01:
            report.warn(
                WarningCode.NON_SQUARE_PIXELS,
                f"Non-square pixels (fx={self.fx:.2f}, fy={self.fy:.2f})",
            )

        return report

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["model"] = self.model.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CameraIntrinsics":
        fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "model" in fields:
            fields["model"] = CameraModel(fields["model"])
        return cls(**fields)
