"""Rotation primitives for engine-space camera poses.

Engine orientations are expressed as a :class:`Rotator` (pitch, yaw, roll in
degrees). The matrix of a rotator has the rotated forward, right and up axes
as its columns, so ``R @ local_vector`` gives the world-space vector.

Quaternions are always (w, x, y, z).
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

EPSILON = 1e-8
GIMBAL_EPSILON = 1e-9


def normalize_quaternion(q: Sequence[float]) -> np.ndarray:
    """Return a unit quaternion with a non-negative scalar part."""
    q = np.asarray(q, dtype=np.float64)
    norm = np.linalg.norm(q)
    if norm < EPSILON:
        return np.array([1.0, 0.0, 0.0, 0.0])
    q = q / norm
    if q[0] < 0:
        q = -q
    return q


def quaternion_to_matrix(q: Sequence[float]) -> np.ndarray:
    """Convert quaternion (w, x, y, z) to 3x3 rotation matrix.

    Args:
        q: Quaternion in (w, x, y, z) format

    Returns:
        3x3 rotation matrix (numpy array)
    """
    q = np.asarray(q, dtype=np.float64)
    q = q / np.linalg.norm(q)

    w, x, y, z = q

    R = np.array([
        [1 - 2*(y**2 + z**2), 2*(x*y - w*z), 2*(x*z + w*y)],
        [2*(x*y + w*z), 1 - 2*(x**2 + z**2), 2*(y*z - w*x)],
        [2*(x*z - w*y), 2*(y*z + w*x), 1 - 2*(x**2 + y**2)]
    ], dtype=np.float64)

    return R


def matrix_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Convert 3x3 rotation matrix to quaternion (w, x, y, z).

    Uses Shepperd's method for numerical stability.

    Args:
        R: 3x3 rotation matrix

    Returns:
        Unit quaternion as numpy array (w, x, y, z) with w >= 0
    """
    R = np.asarray(R, dtype=np.float64)

    trace = np.trace(R)

    if trace > 0:
        s = 0.5 / np.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (R[2, 1] - R[1, 2]) * s
        y = (R[0, 2] - R[2, 0]) * s
        z = (R[1, 0] - R[0, 1]) * s
    elif R[0, 0] > R[1, 1] and R[0, 0] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[0, 0] - R[1, 1] - R[2, 2])
        w = (R[2, 1] - R[1, 2]) / s
        x = 0.25 * s
        y = (R[0, 1] + R[1, 0]) / s
        z = (R[0, 2] + R[2, 0]) / s
    elif R[1, 1] > R[2, 2]:
        s = 2.0 * np.sqrt(1.0 + R[1, 1] - R[0, 0] - R[2, 2])
        w = (R[0, 2] - R[2, 0]) / s
        x = (R[0, 1] + R[1, 0]) / s
        y = 0.25 * s
        z = (R[1, 2] + R[2, 1]) / s
    else:
        s = 2.0 * np.sqrt(1.0 + R[2, 2] - R[0, 0] - R[1, 1])
        w = (R[1, 0] - R[0, 1]) / s
        x = (R[0, 2] + R[2, 0]) / s
        y = (R[1, 2] + R[2, 1]) / s
        z = 0.25 * s

    return normalize_quaternion([w, x, y, z])


@dataclass(frozen=True)
class Rotator:
    """Engine orientation as Euler angles in degrees.

    Pitch rotates about the right axis (positive looks up), yaw about the up
    axis (positive turns right), roll about the forward axis.
    """

    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0

    def to_matrix(self) -> np.ndarray:
        sp, cp = math.sin(math.radians(self.pitch)), math.cos(math.radians(self.pitch))
        sy, cy = math.sin(math.radians(self.yaw)), math.cos(math.radians(self.yaw))
        sr, cr = math.sin(math.radians(self.roll)), math.cos(math.radians(self.roll))

        forward = [cp * cy, cp * sy, sp]
        right = [sr * sp * cy - cr * sy, sr * sp * sy + cr * cy, -sr * cp]
        up = [-(cr * sp * cy + sr * sy), cy * sr - cr * sp * sy, cr * cp]

        return np.array([forward, right, up], dtype=np.float64).T

    @classmethod
    def from_matrix(cls, R: np.ndarray) -> "Rotator":
        R = np.asarray(R, dtype=np.float64)
        forward, right, up = R[:, 0], R[:, 1], R[:, 2]
        horizontal = math.hypot(forward[0], forward[1])
        pitch = math.degrees(math.atan2(forward[2], horizontal))
        if horizontal < GIMBAL_EPSILON:
            # Looking straight up or down: yaw and roll share an axis, fold it into yaw
            yaw = math.degrees(math.atan2(-right[0], right[1]))
            return cls(pitch, yaw, 0.0)
        yaw = math.degrees(math.atan2(forward[1], forward[0]))
        roll = math.degrees(math.atan2(-right[2], up[2]))
        return cls(pitch, yaw, roll)

    def to_quaternion(self) -> np.ndarray:
        return matrix_to_quaternion(self.to_matrix())

    @classmethod
    def from_quaternion(cls, q: Sequence[float]) -> "Rotator":
        return cls.from_matrix(quaternion_to_matrix(q))

    def forward_vector(self) -> np.ndarray:
        return self.to_matrix()[:, 0]

    def right_vector(self) -> np.ndarray:
        return self.to_matrix()[:, 1]

    def up_vector(self) -> np.ndarray:
        return self.to_matrix()[:, 2]

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.pitch, self.yaw, self.roll)


def look_at_rotator(
    position: Sequence[float],
    target: Sequence[float],
    pitch_offset: float = 0.0,
) -> Rotator:
    """Rotator that points the forward axis from ``position`` at ``target``.

    Roll is always zero. A degenerate direction yields a zero rotator plus the
    pitch offset.
    """
    direction = np.asarray(target, dtype=np.float64) - np.asarray(position, dtype=np.float64)
    norm = np.linalg.norm(direction)
    if norm < EPSILON:
        return Rotator(pitch_offset, 0.0, 0.0)

    d = direction / norm
    pitch = math.degrees(math.atan2(d[2], math.hypot(d[0], d[1])))
    yaw = math.degrees(math.atan2(d[1], d[0]))
    return Rotator(pitch + pitch_offset, yaw, 0.0)


def angle_between(a: Sequence[float], b: Sequence[float]) -> float:
    """Angle between two vectors in degrees."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    if denom < EPSILON:
        return 0.0
    cos_angle = np.clip(np.dot(a, b) / denom, -1.0, 1.0)
    return math.degrees(math.acos(cos_angle))
