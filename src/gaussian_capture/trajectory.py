"""Camera trajectory generation.

Every generator is a pure function of a :class:`TrajectoryConfig` and returns
a complete list of immutable :class:`Viewpoint` objects in engine space
(X-forward, Y-right, Z-up, centimeters).

Supported layouts:
    - Orbital: stacked rings at evenly spaced elevations
    - Spherical: Fibonacci lattice filtered by elevation
    - Spiral: one continuous descending path over three revolutions
    - Hemisphere: orbital rings restricted to the upper hemisphere
    - Panoramic: six cube-face views at points along a line
    - Custom: user supplied waypoints
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidConfigurationError
from .rotations import Rotator, angle_between, look_at_rotator, quaternion_to_matrix
from .validation import ValidationReport, WarningCode

logger = logging.getLogger(__name__)

GOLDEN_RATIO = (1.0 + math.sqrt(5.0)) / 2.0

# Recommended total view counts for Gaussian splatting training
MIN_RECOMMENDED_VIEWS = 50
MAX_RECOMMENDED_VIEWS = 500
MIN_RECOMMENDED_RADIUS = 100.0
MAX_RECOMMENDED_RADIUS = 10000.0
MIN_ELEVATION_RANGE = 30.0
MAX_ANGULAR_STEP = 30.0
MIN_CUSTOM_WAYPOINTS = 3

HEMISPHERE_MAX_ELEVATION = 85.0
SPIRAL_REVOLUTIONS = 3

# Cube-face orientations for panoramic capture: forward, right, back, left, up, down
PANORAMIC_DIRECTIONS = (
    Rotator(0.0, 0.0, 0.0),
    Rotator(0.0, 90.0, 0.0),
    Rotator(0.0, 180.0, 0.0),
    Rotator(0.0, 270.0, 0.0),
    Rotator(90.0, 0.0, 0.0),
    Rotator(-90.0, 0.0, 0.0),
)

Vec3 = Tuple[float, float, float]


class TrajectoryType(str, Enum):
    ORBITAL = "orbital"
    SPHERICAL = "spherical"
    SPIRAL = "spiral"
    HEMISPHERE = "hemisphere"
    PANORAMIC = "panoramic"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Viewpoint:
    """A single camera pose in engine space."""

    position: Vec3
    orientation: Tuple[float, float, float, float]  # (w, x, y, z), camera-to-world
    id: int
    ring_index: int = 0
    ring_position: float = 0.0
    distance: float = 0.0
    elevation_deg: float = 0.0
    azimuth_deg: float = 0.0

    @classmethod
    def from_rotator(cls, position: Sequence[float], rotation: Rotator, id: int, **kwargs) -> "Viewpoint":
        return cls(
            position=_as_vec3(position),
            orientation=tuple(float(v) for v in rotation.to_quaternion()),
            id=id,
            **kwargs,
        )

    @property
    def rotator(self) -> Rotator:
        return Rotator.from_quaternion(self.orientation)

    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_matrix(self.orientation)

    def forward_vector(self) -> np.ndarray:
        return self.rotation_matrix()[:, 0]

    def to_dict(self) -> Dict[str, Any]:
        rotator = self.rotator
        return {
            "id": self.id,
            "position": list(self.position),
            "orientation": list(self.orientation),
            "rotation": {"pitch": rotator.pitch, "yaw": rotator.yaw, "roll": rotator.roll},
            "ring_index": self.ring_index,
            "ring_position": self.ring_position,
            "distance": self.distance,
            "elevation_deg": self.elevation_deg,
            "azimuth_deg": self.azimuth_deg,
        }


@dataclass(frozen=True)
class Waypoint:
    """Explicit camera transform for custom trajectories."""

    position: Vec3
    rotation: Rotator = field(default_factory=Rotator)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Waypoint":
        rotation = data.get("rotation", (0.0, 0.0, 0.0))
        if isinstance(rotation, dict):
            rotation = Rotator(**rotation)
        else:
            rotation = Rotator(*rotation)
        return cls(position=_as_vec3(data["position"]), rotation=rotation)

    def to_dict(self) -> Dict[str, Any]:
        return {"position": list(self.position), "rotation": list(self.rotation.as_tuple())}


@dataclass
class BoundingBox:
    """Axis-aligned box in engine space."""

    min: Vec3
    max: Vec3

    @property
    def center(self) -> np.ndarray:
        return (np.asarray(self.min, dtype=np.float64) + np.asarray(self.max, dtype=np.float64)) / 2.0

    @property
    def extent(self) -> np.ndarray:
        """Half size along each axis."""
        return (np.asarray(self.max, dtype=np.float64) - np.asarray(self.min, dtype=np.float64)) / 2.0


@dataclass
class TrajectoryConfig:
    """Configuration for trajectory generation.

    Radii are in engine units (cm), angles in degrees.
    """

    trajectory_type: TrajectoryType = TrajectoryType.ORBITAL
    focus_point: Vec3 = (0.0, 0.0, 0.0)
    base_radius: float = 500.0
    ring_count: int = 5
    views_per_ring: int = 36
    min_elevation: float = -30.0
    max_elevation: float = 60.0
    start_azimuth: float = 0.0
    vary_radius_per_ring: bool = False
    radius_variation: float = 0.15
    stagger_rings: bool = True
    look_at_center: bool = True
    pitch_offset: float = 0.0
    custom_waypoints: List[Waypoint] = field(default_factory=list)

    def __post_init__(self):
        self.trajectory_type = TrajectoryType(self.trajectory_type)
        self.focus_point = _as_vec3(self.focus_point)
        self.custom_waypoints = [
            w if isinstance(w, Waypoint) else Waypoint.from_dict(w) for w in self.custom_waypoints
        ]

    @property
    def elevation_range(self) -> float:
        return self.max_elevation - self.min_elevation

    def expected_viewpoint_count(self) -> int:
        return get_expected_viewpoint_count(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trajectory_type": self.trajectory_type.value,
            "focus_point": list(self.focus_point),
            "base_radius": self.base_radius,
            "ring_count": self.ring_count,
            "views_per_ring": self.views_per_ring,
            "min_elevation": self.min_elevation,
            "max_elevation": self.max_elevation,
            "start_azimuth": self.start_azimuth,
            "vary_radius_per_ring": self.vary_radius_per_ring,
            "radius_variation": self.radius_variation,
            "stagger_rings": self.stagger_rings,
            "look_at_center": self.look_at_center,
            "pitch_offset": self.pitch_offset,
            "custom_waypoints": [w.to_dict() for w in self.custom_waypoints],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrajectoryConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _as_vec3(values: Sequence[float]) -> Vec3:
    x, y, z = (float(v) for v in values)
    return (x, y, z)


def spherical_to_cartesian(
    radius: float,
    elevation_deg: float,
    azimuth_deg: float,
    center: Sequence[float] = (0.0, 0.0, 0.0),
) -> np.ndarray:
    """Engine-space point at the given distance, elevation and azimuth from ``center``."""
    elevation = math.radians(elevation_deg)
    azimuth = math.radians(azimuth_deg)
    cos_elevation = math.cos(elevation)
    local = np.array([
        radius * cos_elevation * math.cos(azimuth),
        radius * cos_elevation * math.sin(azimuth),
        radius * math.sin(elevation),
    ])
    return np.asarray(center, dtype=np.float64) + local


def _orientation(config: TrajectoryConfig, position: np.ndarray, elevation: float, azimuth: float) -> Rotator:
    """Look-at rotation, or a tangent to the orbit when look-at is disabled."""
    if config.look_at_center:
        return look_at_rotator(position, config.focus_point, config.pitch_offset)
    return Rotator(-elevation, azimuth + 90.0, 0.0)


def generate_orbital(config: TrajectoryConfig) -> List[Viewpoint]:
    viewpoints: List[Viewpoint] = []
    rings = config.ring_count
    views = config.views_per_ring
    elevation_step = config.elevation_range / (rings - 1) if rings > 1 else 0.0
    angular_step = 360.0 / views

    for ring_idx in range(rings):
        elevation = config.min_elevation + elevation_step * ring_idx

        radius = config.base_radius
        if config.vary_radius_per_ring:
            radius *= 1.0 + config.radius_variation * math.sin(ring_idx * math.pi / rings)

        azimuth_offset = config.start_azimuth
        if config.stagger_rings and ring_idx % 2 == 1:
            azimuth_offset += angular_step / 2.0

        for view_idx in range(views):
            azimuth = azimuth_offset + view_idx * angular_step
            position = spherical_to_cartesian(radius, elevation, azimuth, config.focus_point)
            viewpoints.append(
                Viewpoint.from_rotator(
                    position,
                    _orientation(config, position, elevation, azimuth),
                    id=len(viewpoints),
                    ring_index=ring_idx,
                    ring_position=view_idx / views,
                    distance=radius,
                    elevation_deg=elevation,
                    azimuth_deg=azimuth,
                )
            )

    return viewpoints


def generate_spherical(config: TrajectoryConfig) -> List[Viewpoint]:
    """Fibonacci sphere of ``ring_count * views_per_ring`` candidates, filtered by elevation."""
    viewpoints: List[Viewpoint] = []
    total = config.ring_count * config.views_per_ring
    focus = np.asarray(config.focus_point, dtype=np.float64)

    for i in range(total):
        height = 1.0 - 2.0 * (i + 0.5) / total
        ring_radius = math.sqrt(max(0.0, 1.0 - height * height))
        theta = 2.0 * math.pi * i / GOLDEN_RATIO

        local = config.base_radius * np.array([
            math.cos(theta) * ring_radius,
            math.sin(theta) * ring_radius,
            height,
        ])
        elevation = math.degrees(math.asin(height))
        if elevation < config.min_elevation or elevation > config.max_elevation:
            continue

        position = focus + local
        if config.look_at_center:
            rotation = look_at_rotator(position, focus, config.pitch_offset)
        else:
            # Facing outward from the focus point
            rotation = look_at_rotator(focus, position, config.pitch_offset)

        viewpoints.append(
            Viewpoint.from_rotator(
                position,
                rotation,
                id=len(viewpoints),
                ring_position=i / total,
                distance=config.base_radius,
                elevation_deg=elevation,
                azimuth_deg=math.degrees(math.atan2(local[1], local[0])),
            )
        )

    return viewpoints


def generate_spiral(config: TrajectoryConfig) -> List[Viewpoint]:
    viewpoints: List[Viewpoint] = []
    total = config.views_per_ring * SPIRAL_REVOLUTIONS

    for i in range(total):
        t = i / (total - 1) if total > 1 else 0.0
        elevation = config.max_elevation - t * config.elevation_range
        azimuth = config.start_azimuth + t * 360.0 * SPIRAL_REVOLUTIONS

        radius = config.base_radius
        if config.vary_radius_per_ring:
            radius *= 1.0 + config.radius_variation * math.sin(2.0 * math.pi * t)

        position = spherical_to_cartesian(radius, elevation, azimuth, config.focus_point)
        viewpoints.append(
            Viewpoint.from_rotator(
                position,
                _orientation(config, position, elevation, azimuth),
                id=i,
                ring_index=int(t * SPIRAL_REVOLUTIONS) if t < 1.0 else SPIRAL_REVOLUTIONS - 1,
                ring_position=(t * SPIRAL_REVOLUTIONS) % 1.0,
                distance=radius,
                elevation_deg=elevation,
                azimuth_deg=math.fmod(azimuth, 360.0),
            )
        )

    return viewpoints


def generate_hemisphere(config: TrajectoryConfig) -> List[Viewpoint]:
    clamped = replace(
        config,
        min_elevation=max(0.0, config.min_elevation),
        max_elevation=min(HEMISPHERE_MAX_ELEVATION, config.max_elevation),
    )
    return generate_orbital(clamped)


def generate_panoramic(config: TrajectoryConfig) -> List[Viewpoint]:
    """Six cube-face views at ``views_per_ring`` stations along the X axis through the focus."""
    viewpoints: List[Viewpoint] = []
    stations = config.views_per_ring
    path_length = config.base_radius * 2.0
    step = path_length / (stations - 1) if stations > 1 else 0.0
    focus = np.asarray(config.focus_point, dtype=np.float64)

    for station in range(stations):
        offset = -path_length / 2.0 + step * station if stations > 1 else 0.0
        position = focus + np.array([offset, 0.0, 0.0])
        for dir_idx, rotation in enumerate(PANORAMIC_DIRECTIONS):
            viewpoints.append(
                Viewpoint.from_rotator(
                    position,
                    rotation,
                    id=len(viewpoints),
                    ring_index=station,
                    ring_position=dir_idx / len(PANORAMIC_DIRECTIONS),
                    distance=float(np.linalg.norm(position - focus)),
                )
            )

    return viewpoints


def generate_custom(config: TrajectoryConfig) -> List[Viewpoint]:
    return [
        Viewpoint.from_rotator(waypoint.position, waypoint.rotation, id=i)
        for i, waypoint in enumerate(config.custom_waypoints)
    ]


_GENERATORS = {
    TrajectoryType.ORBITAL: generate_orbital,
    TrajectoryType.SPHERICAL: generate_spherical,
    TrajectoryType.SPIRAL: generate_spiral,
    TrajectoryType.HEMISPHERE: generate_hemisphere,
    TrajectoryType.PANORAMIC: generate_panoramic,
    TrajectoryType.CUSTOM: generate_custom,
}


def generate_viewpoints(config: TrajectoryConfig) -> List[Viewpoint]:
    """Generate the viewpoints for a configuration.

    Args:
        config: Trajectory configuration.

    Returns:
        Viewpoints with ids in generation order. Empty when ``ring_count`` or
        ``views_per_ring`` is below 1; :func:`validate_config` reports that
        case as invalid.
    """
    if config.trajectory_type != TrajectoryType.CUSTOM and (
        config.ring_count < 1 or config.views_per_ring < 1
    ):
        logger.warning(
            f"Cannot generate {config.trajectory_type.value} trajectory with "
            f"{config.ring_count} rings x {config.views_per_ring} views"
        )
        return []

    viewpoints = _GENERATORS[config.trajectory_type](config)
    logger.debug(f"Generated {len(viewpoints)} {config.trajectory_type.value} viewpoints")
    return viewpoints


def get_expected_viewpoint_count(config: TrajectoryConfig) -> int:
    """Number of viewpoints the configuration should produce.

    For the spherical layout this is the candidate count before elevation
    filtering.
    """
    if config.trajectory_type == TrajectoryType.CUSTOM:
        return len(config.custom_waypoints)
    if config.ring_count < 1 or config.views_per_ring < 1:
        return 0
    if config.trajectory_type == TrajectoryType.SPIRAL:
        return config.views_per_ring * SPIRAL_REVOLUTIONS
    if config.trajectory_type == TrajectoryType.PANORAMIC:
        return config.views_per_ring * len(PANORAMIC_DIRECTIONS)
    return config.ring_count * config.views_per_ring


def calculate_optimal_config(
    bounds: BoundingBox,
    desired_overlap: float = 0.7,
    h_fov: float = 90.0,
) -> TrajectoryConfig:
    """Orbital configuration that frames ``bounds`` with the requested overlap.

    Args:
        bounds: Region to capture, engine units.
        desired_overlap: Fraction of the FOV shared by neighbouring views.
        h_fov: Horizontal field of view in degrees (16:9 images assumed).

    Returns:
        An orbital configuration with staggered, radius-varying rings.

    Raises:
        InvalidConfigurationError: If ``h_fov`` is outside (0, 180) or
            ``desired_overlap`` is outside [0, 1).
    """
    if not 0.0 < h_fov < 180.0:
        raise InvalidConfigurationError(f"Horizontal FOV must be in (0, 180), got {h_fov}")
    if not 0.0 <= desired_overlap < 1.0:
        raise InvalidConfigurationError(f"Desired overlap must be in [0, 1), got {desired_overlap}")

    config = TrajectoryConfig(trajectory_type=TrajectoryType.ORBITAL)
    config.focus_point = _as_vec3(bounds.center)

    max_extent = float(np.max(bounds.extent))
    min_distance = max_extent / math.tan(math.radians(h_fov) / 2.0)
    config.base_radius = min_distance * 1.3

    angular_step = h_fov * (1.0 - desired_overlap)
    config.views_per_ring = int(np.clip(math.ceil(360.0 / angular_step), 12, 72))

    v_fov = h_fov / (16.0 / 9.0)
    vertical_step = v_fov * (1.0 - desired_overlap)
    config.ring_count = int(np.clip(math.ceil(config.elevation_range / vertical_step), 3, 8))

    config.stagger_rings = True
    config.vary_radius_per_ring = True
    config.look_at_center = True
    return config


def validate_config(config: TrajectoryConfig) -> ValidationReport:
    """Check a configuration for training-quality problems."""
    report = ValidationReport()

    total = get_expected_viewpoint_count(config)
    if total == 0:
        report.fail(WarningCode.NO_VIEWPOINTS, "Configuration produces no viewpoints")
    elif total < MIN_RECOMMENDED_VIEWS:
        report.warn(
            WarningCode.LOW_VIEWPOINT_COUNT,
            f"Low viewpoint count ({total}). 100-180 recommended for Gaussian splatting training.",
            count=total,
        )
    elif total > MAX_RECOMMENDED_VIEWS:
        report.warn(
            WarningCode.HIGH_VIEWPOINT_COUNT,
            f"High viewpoint count ({total}). Capture and training time will grow significantly.",
            count=total,
        )

    if config.base_radius < MIN_RECOMMENDED_RADIUS:
        report.warn(WarningCode.SMALL_RADIUS, "Very small radius (<1m). May cause near-plane clipping.")
    elif config.base_radius > MAX_RECOMMENDED_RADIUS:
        report.warn(WarningCode.LARGE_RADIUS, "Very large radius (>100m). May reduce depth precision.")

    if config.elevation_range < MIN_ELEVATION_RANGE:
        report.warn(
            WarningCode.NARROW_ELEVATION_RANGE,
            f"Narrow elevation range ({config.elevation_range:.1f} deg). Vertical coverage may be incomplete.",
        )

    if config.views_per_ring >= 1:
        angular_step = 360.0 / config.views_per_ring
        if angular_step > MAX_ANGULAR_STEP:
            report.warn(
                WarningCode.LARGE_ANGULAR_STEP,
                f"Angular step ({angular_step:.1f} deg) may leave too little overlap between views.",
            )

    if config.trajectory_type == TrajectoryType.CUSTOM and len(config.custom_waypoints) < MIN_CUSTOM_WAYPOINTS:
        report.fail(
            WarningCode.TOO_FEW_WAYPOINTS,
            f"Custom trajectory requires at least {MIN_CUSTOM_WAYPOINTS} waypoints, "
            f"got {len(config.custom_waypoints)}.",
            count=len(config.custom_waypoints),
        )

    return report


def calculate_average_overlap(viewpoints: Sequence[Viewpoint], h_fov: float = 90.0) -> float:
    """Mean overlap between each viewpoint and the next, wrapping around.

    Overlap for a pair is ``1 - angle / h_fov`` clamped to [0, 1].
    """
    if h_fov <= 0.0:
        raise InvalidConfigurationError(f"Horizontal FOV must be positive, got {h_fov}")
    if len(viewpoints) < 2:
        return 0.0

    directions = [vp.forward_vector() for vp in viewpoints]
    total = 0.0
    for i, direction in enumerate(directions):
        following = directions[(i + 1) % len(directions)]
        total += float(np.clip(1.0 - angle_between(direction, following) / h_fov, 0.0, 1.0))
    return total / len(directions)


def compute_trajectory_bounds(viewpoints: Sequence[Viewpoint]) -> Optional[BoundingBox]:
    """Axis-aligned bounds of the camera positions, or None when empty."""
    if not viewpoints:
        return None
    positions = np.array([vp.position for vp in viewpoints])
    return BoundingBox(min=_as_vec3(positions.min(axis=0)), max=_as_vec3(positions.max(axis=0)))
