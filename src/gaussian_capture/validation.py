"""Structured validation results.

Validators never abort on quality problems. They return a
:class:`ValidationReport` holding an enumerable list of
:class:`ValidationWarning` values so that callers and tests can assert on
specific conditions, and only flip ``valid`` to ``False`` for conditions that
make the output unusable.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class WarningCode(str, Enum):
    """Identifiers for validation findings."""

    # Camera intrinsics
    INVALID_INTRINSICS = "invalid_intrinsics"
    LOW_RESOLUTION = "low_resolution"
    HIGH_RESOLUTION = "high_resolution"
    NARROW_FOV = "narrow_fov"
    WIDE_FOV = "wide_fov"
    EXTREME_ASPECT_RATIO = "extreme_aspect_ratio"
    OFF_CENTER_PRINCIPAL_POINT = "off_center_principal_point"
    NON_SQUARE_PIXELS = "non_square_pixels"

    # Trajectory
    NO_VIEWPOINTS = "no_viewpoints"
    TOO_FEW_WAYPOINTS = "too_few_waypoints"
    LOW_VIEWPOINT_COUNT = "low_viewpoint_count"
    HIGH_VIEWPOINT_COUNT = "high_viewpoint_count"
    SMALL_RADIUS = "small_radius"
    LARGE_RADIUS = "large_radius"
    NARROW_ELEVATION_RANGE = "narrow_elevation_range"
    LARGE_ANGULAR_STEP = "large_angular_step"

    # Dataset on disk
    MISSING_CAMERAS = "missing_cameras"
    MISSING_IMAGES = "missing_images"
    MISSING_IMAGE_DIRECTORY = "missing_image_directory"
    NO_IMAGE_FILES = "no_image_files"
    LOW_IMAGE_COUNT = "low_image_count"

    # Gaussian splats
    EMPTY_SPLATS = "empty_splats"
    LOW_SPLAT_COUNT = "low_splat_count"
    HIGH_SPLAT_COUNT = "high_splat_count"
    NON_FINITE_POSITION = "non_finite_position"
    OPACITY_OUT_OF_RANGE = "opacity_out_of_range"
    SCALE_OUT_OF_RANGE = "scale_out_of_range"
    NON_UNIT_ROTATION = "non_unit_rotation"

    # Depth
    EMPTY_DEPTH = "empty_depth"
    NAN_DEPTH = "nan_depth"
    INFINITE_DEPTH = "infinite_depth"
    NON_POSITIVE_DEPTH = "non_positive_depth"
    NARROW_DEPTH_RANGE = "narrow_depth_range"
    LARGE_DEPTH_VALUES = "large_depth_values"


@dataclass(frozen=True)
class ValidationWarning:
    """A single validation finding."""

    code: WarningCode
    message: str
    count: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.count is not None:
            data["count"] = self.count
        return data


@dataclass
class ValidationReport:
    """Outcome of a validation pass."""

    valid: bool = True
    warnings: List[ValidationWarning] = field(default_factory=list)

    def warn(self, code: WarningCode, message: str, count: Optional[int] = None) -> None:
        self.warnings.append(ValidationWarning(code, message, count))

    def fail(self, code: WarningCode, message: str, count: Optional[int] = None) -> None:
        """Record a finding that makes the validated object unusable."""
        self.valid = False
        self.warnings.append(ValidationWarning(code, message, count))

    @property
    def codes(self) -> List[WarningCode]:
        return [w.code for w in self.warnings]

    def has(self, code: WarningCode) -> bool:
        return code in self.codes

    def extend(self, other: "ValidationReport") -> "ValidationReport":
        """Merge another report into this one."""
        self.valid = self.valid and other.valid
        self.warnings.extend(other.warnings)
        return self

    def log(self, logger: logging.Logger, context: str = "") -> None:
        """Emit every finding at WARNING level."""
        prefix = f"{context}: " if context else ""
        for warning in self.warnings:
            logger.warning(f"{prefix}{warning.message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "warnings": [w.to_dict() for w in self.warnings],
        }
