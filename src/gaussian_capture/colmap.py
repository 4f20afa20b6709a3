"""COLMAP sparse model writer.

This module provides:
- Conversion of engine viewpoints into COLMAP cameras and images
- Text and binary writers for cameras, images and points3D
- Dataset directory layout creation and validation
- Best-effort readers for the same files

Each writer assembles the whole file in memory and writes it in one call.
Binary files are little-endian and start with a uint64 record count.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .coordinates import convert_camera_to_target
from .errors import ColmapFormatError
from .intrinsics import CameraIntrinsics, CameraModel
from .rotations import quaternion_to_matrix
from .trajectory import Viewpoint
from .utils.io import count_files, ensure_local_dir
from .validation import ValidationReport, WarningCode

logger = logging.getLogger(__name__)

INVALID_POINT3D_ID = 0xFFFFFFFFFFFFFFFF
DEFAULT_IMAGE_PREFIX = "image_"
DEFAULT_IMAGE_EXTENSION = ".jpg"
MIN_DATASET_IMAGES = 50
IMAGE_PATTERNS = ("*.jpg", "*.jpeg", "*.png", "*.JPG", "*.JPEG", "*.PNG")

CAMERAS_HEADER = (
    "# Camera list with one line of data per camera:\n"
    "#   CAMERA_ID, MODEL, WIDTH, HEIGHT, PARAMS[]\n"
    "# Number of cameras: {count}\n"
)
IMAGES_HEADER = (
    "# Image list with two lines of data per image:\n"
    "#   IMAGE_ID, QW, QX, QY, QZ, TX, TY, TZ, CAMERA_ID, NAME\n"
    "#   POINTS2D[] as (X, Y, POINT3D_ID)\n"
    "# Number of images: {count}\n"
)
POINTS3D_HEADER = (
    "# 3D point list with one line of data per point:\n"
    "#   POINT3D_ID, X, Y, Z, R, G, B, ERROR, TRACK[] as (IMAGE_ID, POINT2D_IDX)\n"
    "# Number of points: {count}\n"
)


@dataclass(frozen=True)
class ColmapCamera:
    """A COLMAP camera, shared by every image captured with the same calibration."""

    camera_id: int
    intrinsics: CameraIntrinsics

    @property
    def model(self) -> CameraModel:
        return self.intrinsics.model

    @property
    def width(self) -> int:
        return self.intrinsics.width

    @property
    def height(self) -> int:
        return self.intrinsics.height

    @property
    def params(self) -> List[float]:
        return self.intrinsics.params()


@dataclass
class ColmapImage:
    """World-to-camera pose of one image in COLMAP convention."""

    image_id: int
    qvec: Tuple[float, float, float, float]  # (w, x, y, z)
    tvec: Tuple[float, float, float]
    camera_id: int
    name: str
    keypoints: List[Tuple[float, float]] = field(default_factory=list)

    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_matrix(self.qvec)


@dataclass
class ColmapPoint3D:
    """Sparse 3D point with its observation track."""

    point_id: int
    xyz: Tuple[float, float, float]
    rgb: Tuple[int, int, int] = (255, 255, 255)
    error: float = 0.0
    track: List[Tuple[int, int]] = field(default_factory=list)  # (image_id, point2d_idx)


# ---------------------------------------------------------------------------
# Building records
# ---------------------------------------------------------------------------


def create_camera(intrinsics: CameraIntrinsics, camera_id: int = 1) -> ColmapCamera:
    return ColmapCamera(camera_id=camera_id, intrinsics=intrinsics)


def image_file_name(
    index: int,
    prefix: str = DEFAULT_IMAGE_PREFIX,
    extension: str = DEFAULT_IMAGE_EXTENSION,
) -> str:
    """Deterministic image file name, e.g. ``image_00042.jpg``."""
    if extension and not extension.startswith("."):
        extension = "." + extension
    return f"{prefix}{index:05d}{extension}"


def iter_images_from_viewpoints(
    viewpoints: Iterable[Viewpoint],
    camera_id: int = 1,
    prefix: str = DEFAULT_IMAGE_PREFIX,
    extension: str = DEFAULT_IMAGE_EXTENSION,
) -> Iterator[ColmapImage]:
    """Yield one COLMAP image per viewpoint, ids starting at 1."""
    for index, viewpoint in enumerate(viewpoints):
        qvec, tvec = convert_camera_to_target(viewpoint.position, viewpoint.orientation)
        yield ColmapImage(
            image_id=index + 1,
            qvec=tuple(float(v) for v in qvec),
            tvec=tuple(float(v) for v in tvec),
            camera_id=camera_id,
            name=image_file_name(index, prefix, extension),
        )


def create_images_from_viewpoints(
    viewpoints: Iterable[Viewpoint],
    camera_id: int = 1,
    prefix: str = DEFAULT_IMAGE_PREFIX,
    extension: str = DEFAULT_IMAGE_EXTENSION,
    on_record: Optional[Callable[[ColmapImage], None]] = None,
) -> List[ColmapImage]:
    """Build COLMAP images for a trajectory.

    Args:
        viewpoints: Engine-space viewpoints in capture order.
        camera_id: Camera shared by all images.
        prefix: File name prefix.
        extension: File extension including the dot.
        on_record: Called once per image as it is built.

    Returns:
        Images with sequential ids 1..N.
    """
    images = []
    for image in iter_images_from_viewpoints(viewpoints, camera_id, prefix, extension):
        if on_record is not None:
            on_record(image)
        images.append(image)
    return images


# ---------------------------------------------------------------------------
# Text writers
# ---------------------------------------------------------------------------


def write_cameras_text(path: Path, cameras: Sequence[ColmapCamera]) -> Path:
    lines = [CAMERAS_HEADER.format(count=len(cameras))]
    for camera in cameras:
        lines.append(
            f"{camera.camera_id} {camera.model.value} {camera.width} {camera.height} "
            f"{camera.intrinsics.params_string()}\n"
        )
    return _write_text(path, lines)


def write_images_text(path: Path, images: Sequence[ColmapImage]) -> Path:
    lines = [IMAGES_HEADER.format(count=len(images))]
    for image in images:
        qw, qx, qy, qz = image.qvec
        tx, ty, tz = image.tvec
        lines.append(
            f"{image.image_id} {qw:.10f} {qx:.10f} {qy:.10f} {qz:.10f} "
            f"{tx:.10f} {ty:.10f} {tz:.10f} {image.camera_id} {image.name}\n"
        )
        # Second line lists 2D observations; -1 marks an unmatched keypoint
        lines.append(" ".join(f"{x:.2f} {y:.2f} -1" for x, y in image.keypoints) + "\n")
    return _write_text(path, lines)


def write_points3d_text(path: Path, points: Sequence[ColmapPoint3D]) -> Path:
    lines = [POINTS3D_HEADER.format(count=len(points))]
    for point in points:
        x, y, z = point.xyz
        r, g, b = point.rgb
        track = " ".join(f"{image_id} {idx}" for image_id, idx in point.track)
        # The error field is always followed by a space, even for an empty track
        lines.append(
            f"{point.point_id} {x:.10f} {y:.10f} {z:.10f} {r} {g} {b} {point.error:.6f} {track}\n"
        )
    return _write_text(path, lines)


def _write_text(path: Path, lines: List[str]) -> Path:
    path = Path(path)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write("".join(lines))
    return path


# ---------------------------------------------------------------------------
# Binary writers
# ---------------------------------------------------------------------------


def write_cameras_binary(path: Path, cameras: Sequence[ColmapCamera]) -> Path:
    buffer = bytearray(struct.pack("<Q", len(cameras)))
    for camera in cameras:
        params = camera.params
        buffer += struct.pack("<IiQQ", camera.camera_id, camera.model.model_id, camera.width, camera.height)
        buffer += struct.pack("<" + "d" * len(params), *params)
    return _write_bytes(path, buffer)


def write_images_binary(path: Path, images: Sequence[ColmapImage]) -> Path:
    buffer = bytearray(struct.pack("<Q", len(images)))
    for image in images:
        buffer += struct.pack("<I", image.image_id)
        buffer += struct.pack("<dddd", *image.qvec)
        buffer += struct.pack("<ddd", *image.tvec)
        buffer += struct.pack("<I", image.camera_id)
        buffer += image.name.encode("utf-8") + b"\x00"
        buffer += struct.pack("<Q", len(image.keypoints))
        for x, y in image.keypoints:
            buffer += struct.pack("<ddQ", x, y, INVALID_POINT3D_ID)
    return _write_bytes(path, buffer)


def write_points3d_binary(path: Path, points: Sequence[ColmapPoint3D]) -> Path:
    buffer = bytearray(struct.pack("<Q", len(points)))
    for point in points:
        buffer += struct.pack("<Q", point.point_id)
        buffer += struct.pack("<ddd", *point.xyz)
        buffer += struct.pack("<BBB", *point.rgb)
        buffer += struct.pack("<d", point.error)
        buffer += struct.pack("<Q", len(point.track))
        for image_id, point2d_idx in point.track:
            buffer += struct.pack("<II", image_id, point2d_idx)
    return _write_bytes(path, buffer)


def _write_bytes(path: Path, buffer: bytes) -> Path:
    path = Path(path)
    with open(path, "wb") as f:
        f.write(buffer)
    return path


def points3d_binary_size(points: Sequence[ColmapPoint3D]) -> int:
    """Exact byte length of ``points3D.bin`` for the given points.

    Each record is id (8) + xyz (24) + rgb (3) + error (8) + track length (8)
    followed by 8 bytes per track entry.
    """
    return 8 + sum(51 + 8 * len(p.track) for p in points)


# ---------------------------------------------------------------------------
# Dataset layout
# ---------------------------------------------------------------------------


def create_directory_structure(root: Path) -> Dict[str, Path]:
    """Create ``sparse/0``, ``images`` and ``depth`` under ``root``."""
    root = ensure_local_dir(Path(root))
    return {
        "root": root,
        "sparse": ensure_local_dir(root / "sparse" / "0"),
        "images": ensure_local_dir(root / "images"),
        "depth": ensure_local_dir(root / "depth"),
    }


def write_sparse_model(
    directory: Path,
    cameras: Sequence[ColmapCamera],
    images: Sequence[ColmapImage],
    points: Sequence[ColmapPoint3D] = (),
    binary: bool = False,
) -> Dict[str, Path]:
    """Write cameras, images and points3D into ``directory``.

    Returns:
        Mapping of ``cameras``/``images``/``points3D`` to written paths.
    """
    directory = ensure_local_dir(Path(directory))
    if binary:
        paths = {
            "cameras": write_cameras_binary(directory / "cameras.bin", cameras),
            "images": write_images_binary(directory / "images.bin", images),
            "points3D": write_points3d_binary(directory / "points3D.bin", points),
        }
    else:
        paths = {
            "cameras": write_cameras_text(directory / "cameras.txt", cameras),
            "images": write_images_text(directory / "images.txt", images),
            "points3D": write_points3d_text(directory / "points3D.txt", points),
        }
    logger.info(
        f"Wrote {'binary' if binary else 'text'} sparse model to {directory}: "
        f"{len(cameras)} cameras, {len(images)} images, {len(points)} points"
    )
    return paths


def validate_dataset(root: Path) -> ValidationReport:
    """Check that a dataset directory is usable by COLMAP-based trainers.

    The dataset is valid when ``sparse/0`` holds a cameras and an images file
    in either format. Missing or sparse image folders only produce warnings.
    """
    root = Path(root)
    report = ValidationReport()
    sparse = root / "sparse" / "0"

    if not ((sparse / "cameras.txt").exists() or (sparse / "cameras.bin").exists()):
        report.fail(WarningCode.MISSING_CAMERAS, f"Missing cameras.txt or cameras.bin in {sparse}")
    if not ((sparse / "images.txt").exists() or (sparse / "images.bin").exists()):
        report.fail(WarningCode.MISSING_IMAGES, f"Missing images.txt or images.bin in {sparse}")

    images_dir = root / "images"
    if not images_dir.is_dir():
        report.warn(WarningCode.MISSING_IMAGE_DIRECTORY, f"Missing image directory {images_dir}")
    else:
        image_count = count_files(images_dir, IMAGE_PATTERNS)
        if image_count == 0:
            report.warn(WarningCode.NO_IMAGE_FILES, "No image files found", count=0)
        elif image_count < MIN_DATASET_IMAGES:
            report.warn(
                WarningCode.LOW_IMAGE_COUNT,
                f"Only {image_count} images found, at least {MIN_DATASET_IMAGES} recommended",
                count=image_count,
            )

    return report


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def _intrinsics_from_params(
    model: CameraModel,
    width: int,
    height: int,
    params: Sequence[float],
) -> CameraIntrinsics:
    if len(params) != model.num_params:
        raise ColmapFormatError(
            f"{model.value} expects {model.num_params} parameters, got {len(params)}"
        )

    k1 = k2 = p1 = p2 = 0.0
    if model in (CameraModel.SIMPLE_PINHOLE, CameraModel.SIMPLE_RADIAL, CameraModel.RADIAL):
        fx = fy = params[0]
        cx, cy = params[1], params[2]
        if model == CameraModel.SIMPLE_RADIAL:
            k1 = params[3]
        elif model == CameraModel.RADIAL:
            k1, k2 = params[3], params[4]
    else:
        fx, fy, cx, cy = params[:4]
        if model in (CameraModel.OPENCV, CameraModel.FULL_OPENCV):
            k1, k2, p1, p2 = params[4:8]

    return CameraIntrinsics(
        width=int(width), height=int(height), fx=fx, fy=fy, cx=cx, cy=cy,
        k1=k1, k2=k2, p1=p1, p2=p2, model=model,
    )


def read_cameras_text(path: Path) -> Dict[int, ColmapCamera]:
    """Read COLMAP cameras.txt file."""
    cameras = {}

    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            parts = line.split()
            camera_id = int(parts[0])
            try:
                model = CameraModel(parts[1])
            except ValueError:
                raise ColmapFormatError(f"Unsupported camera model: {parts[1]}")
            params = [float(p) for p in parts[4:]]
            intrinsics = _intrinsics_from_params(model, int(parts[2]), int(parts[3]), params)
            cameras[camera_id] = ColmapCamera(camera_id, intrinsics)

    return cameras


def read_cameras_binary(path: Path) -> Dict[int, ColmapCamera]:
    """Read COLMAP cameras.bin file."""
    cameras = {}

    with open(path, "rb") as f:
        num_cameras = struct.unpack("<Q", f.read(8))[0]

        for _ in range(num_cameras):
            camera_id, model_id, width, height = struct.unpack("<IiQQ", f.read(24))
            try:
                model = CameraModel.from_id(model_id)
            except ValueError as e:
                raise ColmapFormatError(str(e))
            num_params = model.num_params
            params = struct.unpack("<" + "d" * num_params, f.read(8 * num_params))
            cameras[camera_id] = ColmapCamera(camera_id, _intrinsics_from_params(model, width, height, params))

    return cameras


def read_images_text(path: Path) -> Dict[int, ColmapImage]:
    """Read COLMAP images.txt file."""
    images = {}

    with open(path, "r") as f:
        lines = f.readlines()

    i = 0
    while i < len(lines):
        line = lines[i].strip()
        i += 1

        if not line or line.startswith("#"):
            continue

        parts = line.split()
        if len(parts) < 10:
            raise ColmapFormatError(f"Malformed image line {i} in {path}")

        keypoints = []
        if i < len(lines):
            observations = lines[i].split()
            i += 1
            for j in range(0, len(observations) - 2, 3):
                keypoints.append((float(observations[j]), float(observations[j + 1])))

        images[int(parts[0])] = ColmapImage(
            image_id=int(parts[0]),
            qvec=tuple(float(v) for v in parts[1:5]),
            tvec=tuple(float(v) for v in parts[5:8]),
            camera_id=int(parts[8]),
            name=parts[9],
            keypoints=keypoints,
        )

    return images


def read_images_binary(path: Path) -> Dict[int, ColmapImage]:
    """Read COLMAP images.bin file."""
    images = {}

    with open(path, "rb") as f:
        num_images = struct.unpack("<Q", f.read(8))[0]

        for _ in range(num_images):
            image_id = struct.unpack("<I", f.read(4))[0]
            qvec = struct.unpack("<dddd", f.read(32))
            tvec = struct.unpack("<ddd", f.read(24))
            camera_id = struct.unpack("<I", f.read(4))[0]

            # Read name (null-terminated)
            name = b""
            while True:
                char = f.read(1)
                if char == b"\x00":
                    break
                if not char:
                    raise ColmapFormatError(f"Unterminated image name in {path}")
                name += char

            num_points2d = struct.unpack("<Q", f.read(8))[0]
            keypoints = []
            for _ in range(num_points2d):
                x, y, _point3d_id = struct.unpack("<ddQ", f.read(24))
                keypoints.append((x, y))

            images[image_id] = ColmapImage(
                image_id=image_id,
                qvec=qvec,
                tvec=tvec,
                camera_id=camera_id,
                name=name.decode("utf-8"),
                keypoints=keypoints,
            )

    return images


def read_points3d_text(path: Path) -> Dict[int, ColmapPoint3D]:
    """Read COLMAP points3D.txt file."""
    points = {}

    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            parts = line.split()
            track_values = [int(v) for v in parts[8:]]
            point = ColmapPoint3D(
                point_id=int(parts[0]),
                xyz=(float(parts[1]), float(parts[2]), float(parts[3])),
                rgb=(int(parts[4]), int(parts[5]), int(parts[6])),
                error=float(parts[7]),
                track=list(zip(track_values[0::2], track_values[1::2])),
            )
            points[point.point_id] = point

    return points


def read_points3d_binary(path: Path) -> Dict[int, ColmapPoint3D]:
    """Read COLMAP points3D.bin file."""
    points = {}

    with open(path, "rb") as f:
        num_points = struct.unpack("<Q", f.read(8))[0]

        for _ in range(num_points):
            point_id = struct.unpack("<Q", f.read(8))[0]
            xyz = struct.unpack("<ddd", f.read(24))
            rgb = struct.unpack("<BBB", f.read(3))
            error = struct.unpack("<d", f.read(8))[0]
            track_length = struct.unpack("<Q", f.read(8))[0]
            track_values = struct.unpack("<" + "I" * (2 * track_length), f.read(8 * track_length))

            points[point_id] = ColmapPoint3D(
                point_id=point_id,
                xyz=xyz,
                rgb=rgb,
                error=error,
                track=list(zip(track_values[0::2], track_values[1::2])),
            )

    return points


def read_sparse_model(
    directory: Path,
) -> Tuple[Dict[int, ColmapCamera], Dict[int, ColmapImage], Dict[int, ColmapPoint3D]]:
    """Read a sparse model, preferring binary files when both formats exist."""
    directory = Path(directory)
    if (directory / "cameras.bin").exists():
        cameras = read_cameras_binary(directory / "cameras.bin")
        images = read_images_binary(directory / "images.bin")
        points_path = directory / "points3D.bin"
        points = read_points3d_binary(points_path) if points_path.exists() else {}
    elif (directory / "cameras.txt").exists():
        cameras = read_cameras_text(directory / "cameras.txt")
        images = read_images_text(directory / "images.txt")
        points_path = directory / "points3D.txt"
        points = read_points3d_text(points_path) if points_path.exists() else {}
    else:
        raise FileNotFoundError(f"No COLMAP sparse model found in {directory}")
    return cameras, images, points
