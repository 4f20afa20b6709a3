"""Capture configuration.

A capture config bundles everything needed to turn a trajectory into a
dataset: image size and field of view, camera model, output format, the
trajectory itself and the depth export options. Configs are plain
dataclasses and can be loaded from YAML or JSON::

    output_dir: ./dataset
    image_width: 1920
    image_height: 1080
    horizontal_fov: 90
    trajectory:
      trajectory_type: orbital
      ring_count: 3
      views_per_ring: 24
    depth:
      format: png16
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from .depth import DepthExportConfig
from .errors import InvalidConfigurationError
from .intrinsics import CameraIntrinsics, CameraModel
from .trajectory import TrajectoryConfig
from .utils.io import load_json, save_json


@dataclass
class CaptureConfig:
    """Settings for one dataset export."""

    output_dir: str = "dataset"
    image_width: int = 1920
    image_height: int = 1080
    horizontal_fov: float = 90.0
    camera_model: CameraModel = CameraModel.PINHOLE
    image_prefix: str = "image_"
    image_extension: str = ".jpg"
    binary: bool = False
    export_point_cloud: bool = True
    trajectory: TrajectoryConfig = field(default_factory=TrajectoryConfig)
    depth: DepthExportConfig = field(default_factory=DepthExportConfig)

    def __post_init__(self):
        self.camera_model = CameraModel(self.camera_model)
        if isinstance(self.trajectory, dict):
            self.trajectory = TrajectoryConfig.from_dict(self.trajectory)
        if isinstance(self.depth, dict):
            self.depth = DepthExportConfig.from_dict(self.depth)
        if not self.image_extension.startswith("."):
            self.image_extension = "." + self.image_extension

    def intrinsics(self) -> CameraIntrinsics:
        """Camera intrinsics implied by the image size and FOV.

        Raises:
            InvalidConfigurationError: For non-positive sizes or FOV.
        """
        return CameraIntrinsics.from_fov(
            self.horizontal_fov, self.image_width, self.image_height, self.camera_model
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output_dir": self.output_dir,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "horizontal_fov": self.horizontal_fov,
            "camera_model": self.camera_model.value,
            "image_prefix": self.image_prefix,
            "image_extension": self.image_extension,
            "binary": self.binary,
            "export_point_cloud": self.export_point_cloud,
            "trajectory": self.trajectory.to_dict(),
            "depth": self.depth.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaptureConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def load_config(path: Union[str, Path]) -> CaptureConfig:
    """Load a capture config from file.

    Supports JSON and YAML formats.
    """
    path = Path(path)
    if path.suffix in (".yaml", ".yml"):
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    else:
        data = load_json(path)

    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"Config file {path} must contain a mapping")
    return CaptureConfig.from_dict(data)


def save_config(config: CaptureConfig, path: Union[str, Path]) -> Path:
    path = Path(path)
    if path.suffix in (".yaml", ".yml"):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config.to_dict(), f, sort_keys=False)
        return path
    return save_json(config.to_dict(), path)
