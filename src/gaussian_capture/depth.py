"""Depth buffer linearization and export.

Captured depth is reversed-Z: 1.0 at the near plane, falling towards 0.0 at
the far plane (or at infinity). Linear depth is recovered in engine units (cm)
and optionally converted to meters before export.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

from .coordinates import CM_TO_M
from .utils.io import save_image, save_json
from .validation import ValidationReport, WarningCode

logger = logging.getLogger(__name__)

DEPTH_EPSILON = 1e-8
INVERT_THRESHOLD = 1e-4

# Turbo-like ramp sampled at 0, 0.25, 0.5, 0.75 and 1
TURBO_STOPS = np.array([
    [0.18995, 0.07176, 0.23217],
    [0.35238, 0.34290, 0.93411],
    [0.56924, 0.77063, 0.46915],
    [0.94227, 0.89411, 0.10175],
    [0.98644, 0.46916, 0.07991],
])


class DepthFormat(str, Enum):
    PNG16 = "png16"
    FLOAT32 = "float32"
    NPY = "npy"
    RAW = "raw"

    @property
    def extension(self) -> str:
        return {
            DepthFormat.PNG16: ".png",
            DepthFormat.FLOAT32: ".tiff",
            DepthFormat.NPY: ".npy",
            DepthFormat.RAW: ".raw",
        }[self]


@dataclass
class DepthExportConfig:
    """How captured depth is linearized and encoded.

    Planes are in engine units (cm).
    """
    format: DepthFormat = DepthFormat.FLOAT32
    near_plane: float = 10.0
    far_plane: float = 100000.0
    infinite_far: bool = False
    export_in_meters: bool = True
    apply_gamma: bool = False
    gamma: float = 2.2
    invert: bool = False

    def __post_init__(self):
        self.format = DepthFormat(self.format)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["format"] = self.format.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DepthExportConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def linearize_depth(
    scene_depth: Union[float, np.ndarray],
    near_plane: float,
    far_plane: float,
    infinite_far: bool = False,
) -> Union[float, np.ndarray]:
    """Convert reversed-Z depth to linear distance.

    With an infinite far plane the distance is ``near / z``. With a finite
    far plane it is ``far * near / (near + z * (far - near))``, which maps
    z=1 to ``near`` and z=0 to ``far``. Results are clamped to
    ``[near, far]``.

    The finite form inverts the reversed-Z projection
    ``z = near * (far - d) / (d * (far - near))``. The forward-Z inverse
    ``far * near / (far - z * (far - near))`` swaps the ends of the range
    and is wrong for these buffers.

    Args:
        scene_depth: Reversed-Z value(s) in (0, 1].
        near_plane: Near clip distance.
        far_plane: Far clip distance (upper clamp even when infinite).
        infinite_far: Use the infinite far plane projection.

    Returns:
        Linear depth with the same shape as the input.
    """
    z = np.asarray(scene_depth, dtype=np.float64)

    if infinite_far:
        linear = near_plane / np.maximum(z, DEPTH_EPSILON)
    else:
        denominator = np.maximum(near_plane + z * (far_plane - near_plane), DEPTH_EPSILON)
        linear = (far_plane * near_plane) / denominator

    linear = np.clip(linear, near_plane, far_plane)
    if linear.ndim == 0:
        return float(linear)
    return linear


@dataclass
class DepthMap:
    """Linear depth image with the window it was clamped to."""
    data: np.ndarray  # [H, W] float32
    near_plane: float
    far_plane: float
    units: str = "cm"

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def min_depth(self) -> float:
        finite = self.data[np.isfinite(self.data)]
        return float(finite.min()) if finite.size else 0.0

    @property
    def max_depth(self) -> float:
        finite = self.data[np.isfinite(self.data)]
        return float(finite.max()) if finite.size else 0.0

    @classmethod
    def from_buffer(cls, scene_depth: np.ndarray, config: Optional[DepthExportConfig] = None) -> "DepthMap":
        """Linearize a captured [H, W] reversed-Z buffer and apply the export options."""
        config = config or DepthExportConfig()
        buffer = np.asarray(scene_depth, dtype=np.float64)
        if buffer.ndim != 2:
            raise ValueError(f"Depth buffer must be 2D, got shape {buffer.shape}")

        linear = linearize_depth(buffer, config.near_plane, config.far_plane, config.infinite_far)
        depth_map = cls(
            data=np.asarray(linear, dtype=np.float32),
            near_plane=config.near_plane,
            far_plane=config.far_plane,
        )

        if config.export_in_meters:
            depth_map = depth_map.to_meters()
        if config.apply_gamma:
            depth_map = depth_map.gamma_corrected(config.gamma)
        if config.invert:
            depth_map = depth_map.inverted()
        return depth_map

    def to_meters(self) -> "DepthMap":
        if self.units == "m":
            return self
        return DepthMap(
            data=(self.data * CM_TO_M).astype(np.float32),
            near_plane=self.near_plane * CM_TO_M,
            far_plane=self.far_plane * CM_TO_M,
            units="m",
        )

    def gamma_corrected(self, gamma: float) -> "DepthMap":
        """Redistribute values within the observed range by ``x ** (1 / gamma)``."""
        low, high = self.min_depth, self.max_depth
        if high - low <= 0:
            return self
        normalized = np.clip((self.data - low) / (high - low), 0.0, 1.0)
        data = low + np.power(normalized, 1.0 / gamma) * (high - low)
        return replace(self, data=data.astype(np.float32))

    def inverted(self) -> "DepthMap":
        """Inverse depth (1/d); values at or below the threshold are kept as is."""
        data = self.data.astype(np.float64)
        mask = data > INVERT_THRESHOLD
        data[mask] = 1.0 / data[mask]
        return DepthMap(
            data=data.astype(np.float32),
            near_plane=1.0 / self.far_plane,
            far_plane=1.0 / self.near_plane,
            units=f"1/{self.units}",
        )

    def normalized(self) -> np.ndarray:
        """Depth mapped into [0, 1] across the near/far window."""
        window = self.far_plane - self.near_plane
        if window <= 0:
            window = 1.0
        normalized = (self.data.astype(np.float64) - self.near_plane) / window
        return np.clip(np.nan_to_num(normalized, nan=0.0), 0.0, 1.0)

    def encode_uint16(self) -> np.ndarray:
        return np.round(self.normalized() * 65535.0).astype(np.uint16)

    def validate_for_training(self) -> ValidationReport:
        report = ValidationReport()
        data = self.data

        if data.size == 0:
            report.fail(WarningCode.EMPTY_DEPTH, "Depth map is empty")
            return report

        nan_count = int(np.count_nonzero(np.isnan(data)))
        if nan_count:
            report.fail(WarningCode.NAN_DEPTH, f"{nan_count} depth values are NaN", count=nan_count)

        inf_count = int(np.count_nonzero(np.isinf(data)))
        if inf_count:
            report.warn(WarningCode.INFINITE_DEPTH, f"{inf_count} depth values are infinite", count=inf_count)

        non_positive = int(np.count_nonzero(data <= 0))
        if non_positive > 0.05 * data.size:
            report.warn(
                WarningCode.NON_POSITIVE_DEPTH,
                f"{non_positive} depth values ({100.0 * non_positive / data.size:.1f}%) are zero or negative",
                count=non_positive,
            )

        depth_range = self.max_depth - self.min_depth
        if depth_range < 0.1:
            report.warn(
                WarningCode.NARROW_DEPTH_RANGE,
                f"Depth range {depth_range:.4f} {self.units} is too small to constrain geometry",
            )

        if self.max_depth > 1000.0:
            report.warn(
                WarningCode.LARGE_DEPTH_VALUES,
                f"Maximum depth {self.max_depth:.1f} {self.units} is very large, check the unit conversion",
            )

        return report

    def metadata(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "dtype": "float32",
            "byte_order": "little",
            "units": self.units,
            "near_plane": self.near_plane,
            "far_plane": self.far_plane,
            "min_depth": self.min_depth,
            "max_depth": self.max_depth,
        }


def save_depth(
    depth_map: DepthMap,
    path: Union[str, Path],
    depth_format: DepthFormat = DepthFormat.FLOAT32,
) -> Path:
    """Write a depth map in the requested encoding.

    ``FLOAT32`` and ``RAW`` also write a ``.json`` sidecar next to the file
    describing dimensions, units and the depth window.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    depth_format = DepthFormat(depth_format)

    if depth_format == DepthFormat.PNG16:
        from PIL import Image as PILImage

        PILImage.fromarray(depth_map.encode_uint16()).save(path)
    elif depth_format == DepthFormat.FLOAT32:
        from PIL import Image as PILImage

        PILImage.fromarray(depth_map.data.astype(np.float32)).save(path)
        save_json(depth_map.metadata(), path.with_suffix(".json"))
    elif depth_format == DepthFormat.NPY:
        np.save(path, depth_map.data.astype(np.float32))
    elif depth_format == DepthFormat.RAW:
        depth_map.data.astype("<f4").tofile(path)
        save_json(depth_map.metadata(), path.with_suffix(".json"))
    else:
        raise ValueError(f"Unsupported depth format: {depth_format}")

    logger.debug(f"Saved {depth_map.width}x{depth_map.height} depth ({depth_format.value}) to {path}")
    return path


def colorize_depth(depth_map: DepthMap) -> np.ndarray:
    """Map normalized depth onto the turbo ramp, near is dark blue.

    Returns:
        [H, W, 3] uint8 RGB image. For inspection only.
    """
    normalized = depth_map.normalized()
    positions = np.linspace(0.0, 1.0, len(TURBO_STOPS))
    channels = [np.interp(normalized, positions, TURBO_STOPS[:, c]) for c in range(3)]
    rgb = np.stack(channels, axis=-1)
    return np.round(rgb * 255.0).astype(np.uint8)


def save_depth_visualization(depth_map: DepthMap, path: Union[str, Path]) -> Path:
    return save_image(colorize_depth(depth_map), Path(path))
