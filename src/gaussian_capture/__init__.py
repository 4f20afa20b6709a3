"""gaussian_capture: engine camera captures to Gaussian splatting datasets.

Converts virtual-camera trajectories and captured depth from a game engine
into the files consumed by 3D reconstruction and Gaussian splatting
trainers:

    1. Coordinates: engine (X-forward, Y-right, Z-up, cm) to COLMAP/OpenCV
       (X-right, Y-down, Z-forward, m) positions, rotations and directions
    2. Intrinsics: pinhole camera models from FOV or sensor geometry
    3. Trajectory: orbital, spherical, spiral, hemisphere, panoramic and
       custom viewpoint layouts
    4. COLMAP: cameras/images/points3D in text and binary form
    5. PLY: point clouds and 3D Gaussian splats
    6. Depth: reversed-Z linearization and export

Usage:
    from gaussian_capture import (
        CameraIntrinsics, TrajectoryConfig, generate_viewpoints,
        create_camera, create_images_from_viewpoints, write_sparse_model,
    )

    viewpoints = generate_viewpoints(TrajectoryConfig(ring_count=3, views_per_ring=24))
    intrinsics = CameraIntrinsics.from_fov(90.0, 1920, 1080)
    images = create_images_from_viewpoints(viewpoints)
    write_sparse_model("dataset/sparse/0", [create_camera(intrinsics)], images)
"""

from .colmap import (
    ColmapCamera,
    ColmapImage,
    ColmapPoint3D,
    create_camera,
    create_directory_structure,
    create_images_from_viewpoints,
    iter_images_from_viewpoints,
    read_sparse_model,
    validate_dataset,
    write_sparse_model,
)
from .config import CaptureConfig, load_config, save_config
from .coordinates import (
    ENGINE_TO_TARGET,
    TARGET_TO_ENGINE,
    compute_camera_center,
    convert_camera_to_target,
    convert_direction_from_target,
    convert_direction_to_target,
    convert_position_from_target,
    convert_position_to_target,
    convert_rotation_from_target,
    convert_rotation_to_target,
)
from .depth import DepthExportConfig, DepthFormat, DepthMap, linearize_depth, save_depth
from .errors import CaptureError, ColmapFormatError, InvalidConfigurationError, PlyFormatError
from .export import DatasetExporter, ExportResult, export_dataset
from .intrinsics import CameraIntrinsics, CameraModel
from .ply import (
    GaussianSplat,
    PointCloudPoint,
    color_to_sh_dc,
    create_splats_from_point_cloud,
    estimate_memory_usage,
    read_point_cloud,
    read_ply_info,
    sh_dc_to_color,
    validate_splats,
    write_gaussian_splats,
    write_point_cloud,
)
from .rotations import Rotator
from .trajectory import (
    BoundingBox,
    TrajectoryConfig,
    TrajectoryType,
    Viewpoint,
    Waypoint,
    calculate_average_overlap,
    calculate_optimal_config,
    generate_viewpoints,
    validate_config,
)
from .validation import ValidationReport, ValidationWarning, WarningCode

__version__ = "1.0.0"

__all__ = [
    # Coordinates
    "ENGINE_TO_TARGET",
    "TARGET_TO_ENGINE",
    "Rotator",
    "convert_position_to_target",
    "convert_position_from_target",
    "convert_direction_to_target",
    "convert_direction_from_target",
    "convert_rotation_to_target",
    "convert_rotation_from_target",
    "convert_camera_to_target",
    "compute_camera_center",
    # Intrinsics
    "CameraIntrinsics",
    "CameraModel",
    # Trajectory
    "BoundingBox",
    "TrajectoryConfig",
    "TrajectoryType",
    "Viewpoint",
    "Waypoint",
    "generate_viewpoints",
    "calculate_optimal_config",
    "validate_config",
    "calculate_average_overlap",
    # COLMAP
    "ColmapCamera",
    "ColmapImage",
    "ColmapPoint3D",
    "create_camera",
    "create_images_from_viewpoints",
    "iter_images_from_viewpoints",
    "create_directory_structure",
    "write_sparse_model",
    "read_sparse_model",
    "validate_dataset",
    # PLY
    "PointCloudPoint",
    "GaussianSplat",
    "write_point_cloud",
    "write_gaussian_splats",
    "read_point_cloud",
    "read_ply_info",
    "color_to_sh_dc",
    "sh_dc_to_color",
    "estimate_memory_usage",
    "validate_splats",
    "create_splats_from_point_cloud",
    # Depth
    "DepthExportConfig",
    "DepthFormat",
    "DepthMap",
    "linearize_depth",
    "save_depth",
    # Export and config
    "CaptureConfig",
    "load_config",
    "save_config",
    "DatasetExporter",
    "ExportResult",
    "export_dataset",
    # Validation and errors
    "ValidationReport",
    "ValidationWarning",
    "WarningCode",
    "CaptureError",
    "InvalidConfigurationError",
    "PlyFormatError",
    "ColmapFormatError",
]
