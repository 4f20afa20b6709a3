"""Dataset export for Gaussian splatting trainers.

This module turns a trajectory into a COLMAP-style dataset skeleton. Rendered
frames and depth buffers are produced by the capture loop and dropped into the
``images`` and ``depth`` folders using the file names recorded here.

Output structure:
    dataset/
        images/                  # Rendered frames (written by the caller)
        depth/                   # Depth exports, see DatasetExporter.write_depth
        sparse/0/
            cameras.txt|bin
            images.txt|bin
            points3D.txt|bin
            points3D.ply         # Camera positions and focus point
        trajectory.json          # Engine-space viewpoints
        dataset_info.json        # Counts, conventions and checksums
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .colmap import (
    ColmapImage,
    ColmapPoint3D,
    create_camera,
    create_directory_structure,
    create_images_from_viewpoints,
    image_file_name,
    write_sparse_model,
)
from .config import CaptureConfig
from .coordinates import convert_direction_to_target, convert_position_to_target
from .depth import DepthMap, save_depth
from .ply import PointCloudPoint, write_point_cloud
from .trajectory import Viewpoint, generate_viewpoints, validate_config
from .utils.io import compute_checksum, save_json
from .utils.logging import ProgressTracker, get_logger
from .validation import ValidationReport, WarningCode

logger = get_logger(__name__)

CAMERA_POINT_COLOR = (255, 0, 0)
FOCUS_POINT_COLOR = (255, 255, 255)


@dataclass
class ExportResult:
    """Result of a dataset export."""
    output_path: Path
    cameras_path: Optional[Path] = None
    images_path: Optional[Path] = None
    points3d_path: Optional[Path] = None
    point_cloud_path: Optional[Path] = None
    trajectory_path: Optional[Path] = None
    info_path: Optional[Path] = None
    num_images: int = 0
    num_points: int = 0

    success: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: ValidationReport = field(default_factory=ValidationReport)
    report: Dict[str, Any] = field(default_factory=dict)

    def fail(self, message: str) -> None:
        self.success = False
        self.errors.append(message)
        logger.error(message)


def build_trajectory_point_cloud(
    viewpoints: Sequence[Viewpoint],
    focus_point: Optional[Sequence[float]] = None,
) -> List[PointCloudPoint]:
    """Preview cloud: one red point per camera facing its view direction, plus the focus."""
    points = [
        PointCloudPoint(
            position=tuple(float(v) for v in convert_position_to_target(vp.position)),
            normal=tuple(float(v) for v in convert_direction_to_target(vp.forward_vector())),
            color=CAMERA_POINT_COLOR,
        )
        for vp in viewpoints
    ]
    if focus_point is not None:
        points.append(
            PointCloudPoint(
                position=tuple(float(v) for v in convert_position_to_target(focus_point)),
                normal=tuple(float(v) for v in convert_direction_to_target((0.0, 0.0, 1.0))),
                color=FOCUS_POINT_COLOR,
            )
        )
    return points


class DatasetExporter:
    """Write the COLMAP dataset for a capture configuration."""

    def __init__(self, config: CaptureConfig, tracker: Optional[ProgressTracker] = None):
        self.config = config
        self.output_dir = Path(config.output_dir)
        self.tracker = tracker or ProgressTracker(run_name=self.output_dir.name, logger=logger)

    def export(
        self,
        viewpoints: Optional[Sequence[Viewpoint]] = None,
        points: Sequence[ColmapPoint3D] = (),
        on_image: Optional[Callable[[ColmapImage], None]] = None,
    ) -> ExportResult:
        """Export the dataset.

        Args:
            viewpoints: Poses to export; generated from the trajectory config
                when omitted.
            points: Optional sparse points for points3D.
            on_image: Called once per COLMAP image as it is built.

        Returns:
            ExportResult with written paths, warnings and a stage report.

        Raises:
            InvalidConfigurationError: If the image size or FOV is not positive.
        """
        result = ExportResult(output_path=self.output_dir)

        intrinsics = self.config.intrinsics()
        result.warnings.extend(intrinsics.validate_for_training())

        if viewpoints is None:
            with self.tracker.stage("trajectory"):
                trajectory_report = validate_config(self.config.trajectory)
                result.warnings.extend(trajectory_report)
                if not trajectory_report.valid:
                    result.warnings.log(logger, "config")
                    result.fail("Trajectory configuration is invalid")
                    return result
                viewpoints = generate_viewpoints(self.config.trajectory)
                self.tracker.update(len(viewpoints))

        if not viewpoints:
            result.warnings.fail(WarningCode.NO_VIEWPOINTS, "No viewpoints to export")
            result.fail("No viewpoints to export")
            return result

        result.warnings.log(logger, "config")

        try:
            with self.tracker.stage("sparse_model", total_items=len(viewpoints)):
                dirs = create_directory_structure(self.output_dir)

                def _record(image: ColmapImage) -> None:
                    self.tracker.update()
                    if on_image is not None:
                        on_image(image)

                images = create_images_from_viewpoints(
                    viewpoints,
                    camera_id=1,
                    prefix=self.config.image_prefix,
                    extension=self.config.image_extension,
                    on_record=_record,
                )
                paths = write_sparse_model(
                    dirs["sparse"], [create_camera(intrinsics)], images, points, self.config.binary
                )
                result.cameras_path = paths["cameras"]
                result.images_path = paths["images"]
                result.points3d_path = paths["points3D"]
                result.num_images = len(images)
                result.num_points = len(points)
        except OSError as e:
            result.fail(f"Failed to write sparse model: {e}")
            return result

        try:
            if self.config.export_point_cloud:
                with self.tracker.stage("point_cloud"):
                    cloud = build_trajectory_point_cloud(viewpoints, self.config.trajectory.focus_point)
                    ply_path = dirs["sparse"] / "points3D.ply"
                    if write_point_cloud(ply_path, cloud, binary=True):
                        result.point_cloud_path = ply_path
                    self.tracker.update(len(cloud))

            with self.tracker.stage("metadata"):
                result.trajectory_path = save_json(
                    {
                        "coordinate_system": "engine",
                        "axes": "x_forward_y_right_z_up",
                        "units": "cm",
                        "trajectory": self.config.trajectory.to_dict(),
                        "viewpoints": [vp.to_dict() for vp in viewpoints],
                    },
                    self.output_dir / "trajectory.json",
                )
                result.report = self.tracker.generate_report()
                result.info_path = save_json(
                    self._create_dataset_info(result, intrinsics.to_dict()),
                    self.output_dir / "dataset_info.json",
                )
        except OSError as e:
            result.fail(f"Failed to write dataset metadata: {e}")
            return result

        logger.info(
            f"Exported {result.num_images} images to {self.output_dir} "
            f"with {len(result.warnings.warnings)} warnings"
        )
        return result

    def write_depth(self, index: int, scene_depth: np.ndarray) -> Tuple[Path, ValidationReport]:
        """Linearize and save the depth buffer captured for image ``index``.

        The file shares the image's stem, e.g. ``depth/image_00003.png``.
        """
        depth_config = self.config.depth
        depth_map = DepthMap.from_buffer(scene_depth, depth_config)
        report = depth_map.validate_for_training()
        report.log(logger, f"depth {index}")

        name = image_file_name(index, self.config.image_prefix, depth_config.format.extension)
        path = save_depth(depth_map, self.output_dir / "depth" / name, depth_config.format)
        return path, report

    def _create_dataset_info(self, result: ExportResult, intrinsics: Dict[str, Any]) -> Dict[str, Any]:
        files = {}
        for path in (result.cameras_path, result.images_path, result.points3d_path,
                     result.point_cloud_path, result.trajectory_path):
            if path is not None and path.exists():
                files[str(path.relative_to(self.output_dir))] = {
                    "size_bytes": path.stat().st_size,
                    "sha256": compute_checksum(path),
                }

        return {
            "format": "colmap",
            "binary": self.config.binary,
            "num_images": result.num_images,
            "num_points": result.num_points,
            "camera": intrinsics,
            "coordinate_systems": {
                "sparse": "colmap: x_right_y_down_z_forward, meters, world_to_camera",
                "trajectory": "engine: x_forward_y_right_z_up, centimeters, camera_to_world",
            },
            "depth": self.config.depth.to_dict(),
            "warnings": [w.to_dict() for w in result.warnings.warnings],
            "files": files,
            "stages": result.report.get("stages", []),
        }


def export_dataset(
    config: CaptureConfig,
    viewpoints: Optional[Sequence[Viewpoint]] = None,
    points: Sequence[ColmapPoint3D] = (),
) -> ExportResult:
    """Convenience function for dataset export.

    Args:
        config: Capture configuration.
        viewpoints: Optional precomputed viewpoints.
        points: Optional sparse points.

    Returns:
        ExportResult
    """
    return DatasetExporter(config).export(viewpoints=viewpoints, points=points)
