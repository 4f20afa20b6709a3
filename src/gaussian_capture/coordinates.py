"""Conversion between the engine frame and the COLMAP/OpenCV frame.

Coordinate Conventions:
    - Engine: left-handed, X-forward, Y-right, Z-up, centimeters.
      Camera poses are camera-to-world, the camera looks along local +X.
    - Target (COLMAP/OpenCV): right-handed, X-right, Y-down, Z-forward,
      meters. Camera poses are world-to-camera, the camera looks along +Z.
    - Quaternions: (w, x, y, z) format

The axis remap ``ENGINE_TO_TARGET`` has determinant -1, which is what changes
the handedness. Rotations are conjugated by it so that a proper rotation stays
a proper rotation in the target frame.
"""
from __future__ import annotations

import math
from typing import Sequence, Tuple, Union

import numpy as np

from .rotations import (
    EPSILON,
    Rotator,
    matrix_to_quaternion,
    normalize_quaternion,
    quaternion_to_matrix,
)

CM_TO_M = 0.01
M_TO_CM = 100.0

# target = ENGINE_TO_TARGET @ engine, i.e. (y, -z, x)
ENGINE_TO_TARGET = np.array(
    [
        [0.0, 1.0, 0.0],
        [0.0, 0.0, -1.0],
        [1.0, 0.0, 0.0],
    ]
)
ENGINE_TO_TARGET.setflags(write=False)

TARGET_TO_ENGINE = ENGINE_TO_TARGET.T.copy()
TARGET_TO_ENGINE.setflags(write=False)

# Columns are the target camera axes (right, down, forward) in engine camera axes.
_CAMERA_BASIS = TARGET_TO_ENGINE

RotationLike = Union[Rotator, Sequence[float], np.ndarray]


def _rotation_matrix(rotation: RotationLike) -> np.ndarray:
    """Accept a Rotator, a (w, x, y, z) quaternion or a 3x3 matrix."""
    if isinstance(rotation, Rotator):
        return rotation.to_matrix()
    arr = np.asarray(rotation, dtype=np.float64)
    if arr.shape == (4,):
        return quaternion_to_matrix(arr)
    if arr.shape == (3, 3):
        return arr
    raise ValueError(f"Unsupported rotation shape: {arr.shape}")


def convert_position_to_target(position: Sequence[float]) -> np.ndarray:
    """Engine position (cm) to target position (m)."""
    return ENGINE_TO_TARGET @ np.asarray(position, dtype=np.float64) * CM_TO_M


def convert_position_from_target(position: Sequence[float]) -> np.ndarray:
    """Target position (m) to engine position (cm)."""
    return TARGET_TO_ENGINE @ np.asarray(position, dtype=np.float64) * M_TO_CM


def convert_direction_to_target(direction: Sequence[float]) -> np.ndarray:
    """Remap a direction or normal without translation or unit scaling."""
    return ENGINE_TO_TARGET @ np.asarray(direction, dtype=np.float64)


def convert_direction_from_target(direction: Sequence[float]) -> np.ndarray:
    return TARGET_TO_ENGINE @ np.asarray(direction, dtype=np.float64)


def convert_scale_to_target(value: float) -> float:
    return value * CM_TO_M


def convert_scale_from_target(value: float) -> float:
    return value * M_TO_CM


def camera_to_world_to_target(rotation: RotationLike) -> np.ndarray:
    """Engine camera-to-world rotation as a target camera-to-world matrix.

    The left factor remaps the world axes, the right factor re-expresses the
    camera's local axes so that the optical axis is +Z.
    """
    R_engine = _rotation_matrix(rotation)
    return ENGINE_TO_TARGET @ R_engine @ _CAMERA_BASIS


def convert_rotation_to_target(rotation: RotationLike) -> np.ndarray:
    """Engine camera-to-world rotation to a target world-to-camera quaternion.

    Args:
        rotation: Rotator, (w, x, y, z) quaternion or 3x3 matrix in the
            engine frame.

    Returns:
        Unit quaternion (w, x, y, z) of the world-to-camera rotation.
    """
    c2w = camera_to_world_to_target(rotation)
    return normalize_quaternion(matrix_to_quaternion(c2w.T))


def convert_rotation_from_target(qvec: Sequence[float]) -> Rotator:
    """Target world-to-camera quaternion back to an engine camera rotator."""
    R_w2c = quaternion_to_matrix(qvec)
    R_engine = TARGET_TO_ENGINE @ R_w2c.T @ ENGINE_TO_TARGET
    return Rotator.from_matrix(R_engine)


def convert_camera_to_target(
    position: Sequence[float],
    rotation: RotationLike,
) -> Tuple[np.ndarray, np.ndarray]:
    """Convert an engine camera pose into a COLMAP extrinsic.

    Args:
        position: Camera position in engine space (cm).
        rotation: Engine camera-to-world rotation.

    Returns:
        Tuple of (qvec, tvec): world-to-camera quaternion (w, x, y, z) and
        translation in meters, such that ``x_cam = R @ x_world + t``.
    """
    qvec = convert_rotation_to_target(rotation)
    R_w2c = quaternion_to_matrix(qvec)
    center = convert_position_to_target(position)
    tvec = -R_w2c @ center
    return qvec, tvec


def compute_camera_center(qvec: Sequence[float], tvec: Sequence[float]) -> np.ndarray:
    """Camera center in target world coordinates, ``C = -R^T t``."""
    R = quaternion_to_matrix(qvec)
    return -R.T @ np.asarray(tvec, dtype=np.float64)


def convert_position_to_gaussian(position: Sequence[float]) -> np.ndarray:
    """Engine position to splat space, which shares the target frame."""
    return convert_position_to_target(position)


def convert_rotation_to_gaussian(rotation: RotationLike) -> np.ndarray:
    """Orientation of an engine-space object as a target-frame quaternion.

    Unlike camera poses there is no optical-axis correction and no inversion.
    """
    R_target = ENGINE_TO_TARGET @ _rotation_matrix(rotation) @ TARGET_TO_ENGINE
    return matrix_to_quaternion(R_target)


def convert_scale_to_gaussian(scale: Sequence[float]) -> np.ndarray:
    """Engine extents (cm, per engine axis) to splat log-scales in meters."""
    remapped = np.abs(ENGINE_TO_TARGET @ np.asarray(scale, dtype=np.float64)) * CM_TO_M
    return np.log(np.maximum(remapped, EPSILON))


def rotation_difference_degrees(a: Rotator, b: Rotator) -> float:
    """Largest per-axis difference between two rotators, modulo 360."""
    worst = 0.0
    for x, y in zip(a.as_tuple(), b.as_tuple()):
        diff = math.fmod(abs(x - y), 360.0)
        worst = max(worst, min(diff, 360.0 - diff))
    return worst
