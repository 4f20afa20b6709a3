"""PLY point cloud and Gaussian splat I/O.

This module provides:
- A shared header generator
- Point cloud writer (x, y, z, nx, ny, nz as float, red, green, blue as uchar)
- Gaussian splat writer in the layout used by 3D Gaussian Splatting trainers
- Readers for point clouds, header summaries and canonical splat files
- Splat validation and construction helpers

Records are packed through numpy structured arrays with explicit
little-endian dtypes, so a point is 27 bytes and a splat 248 bytes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .coordinates import ENGINE_TO_TARGET, CM_TO_M
from .errors import PlyFormatError
from .validation import ValidationReport, WarningCode

logger = logging.getLogger(__name__)

# Zeroth order spherical harmonic basis constant
SH_C0 = 0.28209479177387814
NUM_SH_REST = 45

DEFAULT_SPLAT_SCALE = -5.0
MIN_LOG_SCALE = -20.0
MAX_LOG_SCALE = 10.0
ROTATION_NORM_TOLERANCE = 0.01
MIN_RECOMMENDED_SPLATS = 1000
MAX_RECOMMENDED_SPLATS = 10_000_000

POINT_CLOUD_PROPERTIES: List[Tuple[str, str]] = [
    ("x", "float"), ("y", "float"), ("z", "float"),
    ("nx", "float"), ("ny", "float"), ("nz", "float"),
    ("red", "uchar"), ("green", "uchar"), ("blue", "uchar"),
]

SPLAT_PROPERTIES: List[Tuple[str, str]] = (
    [("x", "float"), ("y", "float"), ("z", "float")]
    + [("nx", "float"), ("ny", "float"), ("nz", "float")]
    + [(f"f_dc_{i}", "float") for i in range(3)]
    + [(f"f_rest_{i}", "float") for i in range(NUM_SH_REST)]
    + [("opacity", "float")]
    + [(f"scale_{i}", "float") for i in range(3)]
    + [(f"rot_{i}", "float") for i in range(4)]
)

# PLY scalar types
TYPE_MAP = {
    "float": "f4",
    "float32": "f4",
    "double": "f8",
    "float64": "f8",
    "int": "i4",
    "int32": "i4",
    "uint": "u4",
    "uint32": "u4",
    "uchar": "u1",
    "uint8": "u1",
    "char": "i1",
    "int8": "i1",
    "short": "i2",
    "int16": "i2",
    "ushort": "u2",
    "uint16": "u2",
}


def _structured_dtype(properties: Sequence[Tuple[str, str]], byte_order: str = "<") -> np.dtype:
    try:
        return np.dtype([(name, byte_order + TYPE_MAP[ply_type]) for name, ply_type in properties])
    except KeyError as e:
        raise PlyFormatError(f"Unsupported PLY property type: {e.args[0]}")


POINT_CLOUD_DTYPE = _structured_dtype(POINT_CLOUD_PROPERTIES)
SPLAT_DTYPE = _structured_dtype(SPLAT_PROPERTIES)
SPLAT_RECORD_SIZE = SPLAT_DTYPE.itemsize  # 248

# Nominal per-splat footprint used for memory planning
NOMINAL_SPLAT_BYTES = 236


@dataclass
class PointCloudPoint:
    """Colored point with a normal, in target (COLMAP) space."""
    position: Tuple[float, float, float]
    normal: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    color: Tuple[int, int, int] = (255, 255, 255)


@dataclass
class GaussianSplat:
    """A single 3D Gaussian as stored by splatting trainers.

    ``scale`` is log-space, ``rotation`` is a (w, x, y, z) quaternion and
    ``color`` is a display-only RGB value that is not serialized.
    """
    position: Tuple[float, float, float]
    normal: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    sh_dc: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    sh_rest: Tuple[float, ...] = (0.0,) * NUM_SH_REST
    opacity: float = 1.0
    scale: Tuple[float, float, float] = (DEFAULT_SPLAT_SCALE,) * 3
    rotation: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 0.0)
    color: Tuple[int, int, int] = (128, 128, 128)


@dataclass
class PlyHeader:
    """Parsed PLY header for the vertex element."""
    is_binary: bool
    is_little_endian: bool
    vertex_count: int
    properties: List[Tuple[str, str]]
    header_size: int

    @property
    def property_names(self) -> List[str]:
        return [name for name, _ in self.properties]

    @property
    def is_gaussian(self) -> bool:
        names = set(self.property_names)
        return bool(names & {"f_dc_0", "opacity", "scale_0"})

    def dtype(self) -> np.dtype:
        return _structured_dtype(self.properties, "<" if self.is_little_endian else ">")


@dataclass
class SplatValidationReport(ValidationReport):
    """Validation report with per-category splat counts."""
    total: int = 0
    non_finite_positions: int = 0
    invalid_opacity: int = 0
    invalid_scale: int = 0
    invalid_rotation: int = 0

    @property
    def invalid_count(self) -> int:
        """Number of findings across all categories."""
        return (
            self.non_finite_positions + self.invalid_opacity
            + self.invalid_scale + self.invalid_rotation
        )


# ---------------------------------------------------------------------------
# Color helpers
# ---------------------------------------------------------------------------


def color_to_sh_dc(color: Sequence[int]) -> np.ndarray:
    """8-bit RGB to zeroth order SH coefficients."""
    rgb = np.asarray(color, dtype=np.float64) / 255.0
    return (rgb - 0.5) / SH_C0


def sh_dc_to_color(sh_dc: Sequence[float]) -> Tuple[int, int, int]:
    """Zeroth order SH coefficients to 8-bit RGB, clamped and rounded."""
    rgb = (np.asarray(sh_dc, dtype=np.float64) * SH_C0 + 0.5) * 255.0
    r, g, b = np.clip(np.round(rgb), 0, 255).astype(int)
    return (int(r), int(g), int(b))


def estimate_memory_usage(num_splats: int) -> int:
    """Planning estimate of ``num_splats * 236`` bytes.

    The written binary record is SPLAT_RECORD_SIZE bytes, use that for exact
    file sizes.
    """
    return num_splats * NOMINAL_SPLAT_BYTES


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------


def generate_ply_header(
    vertex_count: int,
    properties: Sequence[Tuple[str, str]],
    binary: bool = True,
) -> str:
    header = "ply\n"
    header += "format binary_little_endian 1.0\n" if binary else "format ascii 1.0\n"
    header += f"element vertex {vertex_count}\n"
    for name, ply_type in properties:
        header += f"property {ply_type} {name}\n"
    header += "end_header\n"
    return header


def point_cloud_to_array(points: Sequence[PointCloudPoint]) -> np.ndarray:
    elements = np.empty(len(points), dtype=POINT_CLOUD_DTYPE)
    if not points:
        return elements
    positions = np.array([p.position for p in points], dtype=np.float32)
    normals = np.array([p.normal for p in points], dtype=np.float32)
    colors = np.clip(np.array([p.color for p in points]), 0, 255).astype(np.uint8)
    for i, axis in enumerate("xyz"):
        elements[axis] = positions[:, i]
        elements[f"n{axis}"] = normals[:, i]
    for i, channel in enumerate(("red", "green", "blue")):
        elements[channel] = colors[:, i]
    return elements


def splats_to_array(splats: Sequence[GaussianSplat]) -> np.ndarray:
    elements = np.empty(len(splats), dtype=SPLAT_DTYPE)
    if not splats:
        return elements
    positions = np.array([s.position for s in splats], dtype=np.float32)
    normals = np.array([s.normal for s in splats], dtype=np.float32)
    sh_dc = np.array([s.sh_dc for s in splats], dtype=np.float32)
    sh_rest = np.array([s.sh_rest for s in splats], dtype=np.float32).reshape(len(splats), NUM_SH_REST)
    scales = np.array([s.scale for s in splats], dtype=np.float32)
    rotations = np.array([s.rotation for s in splats], dtype=np.float32)

    for i, axis in enumerate("xyz"):
        elements[axis] = positions[:, i]
        elements[f"n{axis}"] = normals[:, i]
    for i in range(3):
        elements[f"f_dc_{i}"] = sh_dc[:, i]
        elements[f"scale_{i}"] = scales[:, i]
    for i in range(NUM_SH_REST):
        elements[f"f_rest_{i}"] = sh_rest[:, i]
    elements["opacity"] = [s.opacity for s in splats]
    for i in range(4):
        elements[f"rot_{i}"] = rotations[:, i]
    return elements


def _write_elements(
    path: Path,
    elements: np.ndarray,
    properties: Sequence[Tuple[str, str]],
    binary: bool,
) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    header = generate_ply_header(len(elements), properties, binary)

    if binary:
        body = elements.tobytes()
    else:
        lines = []
        for row in elements:
            fields = []
            for (name, ply_type) in properties:
                value = row[name]
                fields.append(f"{int(value)}" if ply_type == "uchar" else f"{float(value):.6f}")
            lines.append(" ".join(fields) + "\n")
        body = "".join(lines).encode("ascii")

    with open(path, "wb") as f:
        f.write(header.encode("ascii") + body)


def write_point_cloud(
    path: Union[str, Path],
    points: Sequence[PointCloudPoint],
    binary: bool = True,
) -> int:
    """Write a colored point cloud.

    Args:
        path: Output .ply path.
        points: Points in target space.
        binary: Binary little-endian (27 bytes per point) or ASCII.

    Returns:
        Number of points written. Nothing is written for an empty input.
    """
    if not points:
        logger.warning(f"No points to write to {path}")
        return 0
    _write_elements(Path(path), point_cloud_to_array(points), POINT_CLOUD_PROPERTIES, binary)
    logger.info(f"Wrote {len(points)} points to {path}")
    return len(points)


def write_gaussian_splats(
    path: Union[str, Path],
    splats: Sequence[GaussianSplat],
    binary: bool = True,
) -> int:
    """Write Gaussian splats (248 bytes per splat in binary mode).

    Returns:
        Number of splats written. Nothing is written for an empty input.
    """
    if not splats:
        logger.warning(f"No splats to write to {path}")
        return 0
    _write_elements(Path(path), splats_to_array(splats), SPLAT_PROPERTIES, binary)
    logger.info(
        f"Wrote {len(splats)} splats to {path} ({estimate_memory_usage(len(splats)) / 1e6:.1f} MB)"
    )
    return len(splats)


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------


def _read_header(f: BinaryIO) -> PlyHeader:
    magic = f.readline()
    if magic.strip() != b"ply":
        raise PlyFormatError("Not a PLY file")

    is_binary = False
    is_little_endian = True
    vertex_count = 0
    properties: List[Tuple[str, str]] = []
    current_element: Optional[str] = None
    seen_vertex = False

    while True:
        raw = f.readline()
        if not raw:
            raise PlyFormatError("Unexpected end of file in PLY header")
        line = raw.decode("ascii", errors="replace").strip()
        if line == "end_header":
            break

        parts = line.split()
        if not parts or parts[0] in ("comment", "obj_info"):
            continue

        if parts[0] == "format":
            if parts[1] == "binary_little_endian":
                is_binary, is_little_endian = True, True
            elif parts[1] == "binary_big_endian":
                is_binary, is_little_endian = True, False
            elif parts[1] == "ascii":
                is_binary = False
            else:
                raise PlyFormatError(f"Unknown PLY format: {parts[1]}")

        elif parts[0] == "element":
            current_element = parts[1]
            if current_element == "vertex":
                vertex_count = int(parts[2])
                seen_vertex = True
            elif not seen_vertex:
                raise PlyFormatError("Vertex element must come first")

        elif parts[0] == "property" and current_element == "vertex":
            if parts[1] == "list":
                raise PlyFormatError("List properties are not supported on vertices")
            properties.append((parts[2], parts[1]))

    return PlyHeader(
        is_binary=is_binary,
        is_little_endian=is_little_endian,
        vertex_count=vertex_count,
        properties=properties,
        header_size=f.tell(),
    )


def read_ply_header(path: Union[str, Path]) -> PlyHeader:
    with open(path, "rb") as f:
        return _read_header(f)


def _read_vertices(path: Union[str, Path]) -> Tuple[PlyHeader, np.ndarray]:
    with open(path, "rb") as f:
        header = _read_header(f)
        dtype = header.dtype()

        if header.is_binary:
            payload = f.read(header.vertex_count * dtype.itemsize)
            if len(payload) < header.vertex_count * dtype.itemsize:
                raise PlyFormatError(f"Truncated PLY data in {path}")
            data = np.frombuffer(payload, dtype=dtype)
        else:
            tokens = f.read().decode("ascii").split()
            num_props = len(header.properties)
            needed = header.vertex_count * num_props
            if len(tokens) < needed:
                raise PlyFormatError(f"Truncated PLY data in {path}")
            values = np.array(tokens[:needed], dtype=np.float64).reshape(header.vertex_count, num_props)
            data = np.empty(header.vertex_count, dtype=dtype)
            for i, name in enumerate(header.property_names):
                data[name] = values[:, i]

    return header, data


def read_point_cloud(path: Union[str, Path]) -> List[PointCloudPoint]:
    """Read an ASCII or binary point cloud.

    Normals and colors are optional in the file; missing ones take the
    :class:`PointCloudPoint` defaults.
    """
    header, data = _read_vertices(path)
    names = set(header.property_names)
    if not {"x", "y", "z"} <= names:
        raise PlyFormatError(f"{path} has no x/y/z vertex properties")

    positions = np.column_stack([data["x"], data["y"], data["z"]]).astype(np.float64)
    normals = (
        np.column_stack([data["nx"], data["ny"], data["nz"]]).astype(np.float64)
        if {"nx", "ny", "nz"} <= names else np.zeros_like(positions)
    )
    colors = (
        np.column_stack([data["red"], data["green"], data["blue"]]).astype(int)
        if {"red", "green", "blue"} <= names else np.full(positions.shape, 255, dtype=int)
    )

    return [
        PointCloudPoint(
            position=tuple(float(v) for v in positions[i]),
            normal=tuple(float(v) for v in normals[i]),
            color=tuple(int(v) for v in colors[i]),
        )
        for i in range(header.vertex_count)
    ]


def read_gaussian_splats(path: Union[str, Path]) -> List[GaussianSplat]:
    """Read splats written by :func:`write_gaussian_splats`.

    Only the exact property layout produced by this module is accepted.
    Files from other tools, e.g. with fewer SH bands, raise
    :class:`PlyFormatError` instead of being padded with defaults.
    """
    header = read_ply_header(path)
    if header.properties != SPLAT_PROPERTIES:
        raise PlyFormatError(
            f"{path} does not use the {len(SPLAT_PROPERTIES)}-property splat layout "
            f"(found {len(header.properties)} properties)"
        )

    _, data = _read_vertices(path)
    splats = []
    for row in data:
        sh_dc = tuple(float(row[f"f_dc_{i}"]) for i in range(3))
        splats.append(
            GaussianSplat(
                position=(float(row["x"]), float(row["y"]), float(row["z"])),
                normal=(float(row["nx"]), float(row["ny"]), float(row["nz"])),
                sh_dc=sh_dc,
                sh_rest=tuple(float(row[f"f_rest_{i}"]) for i in range(NUM_SH_REST)),
                opacity=float(row["opacity"]),
                scale=tuple(float(row[f"scale_{i}"]) for i in range(3)),
                rotation=tuple(float(row[f"rot_{i}"]) for i in range(4)),
                color=sh_dc_to_color(sh_dc),
            )
        )
    return splats


def read_ply_info(path: Union[str, Path]) -> Dict[str, object]:
    """Summary of a PLY file without reading its payload."""
    header = read_ply_header(path)
    return {
        "vertex_count": header.vertex_count,
        "is_binary": header.is_binary,
        "is_gaussian": header.is_gaussian,
        "properties": header.property_names,
    }


# ---------------------------------------------------------------------------
# Validation and construction
# ---------------------------------------------------------------------------


def validate_splats(splats: Sequence[GaussianSplat]) -> SplatValidationReport:
    """Check splats for values that trainers cannot use.

    Every category yields a count-based warning. Only non-finite positions
    make the set invalid.
    """
    report = SplatValidationReport(total=len(splats))

    if not splats:
        report.warn(WarningCode.EMPTY_SPLATS, "Splat set is empty", count=0)
        return report

    positions = np.array([s.position for s in splats], dtype=np.float64)
    opacities = np.array([s.opacity for s in splats], dtype=np.float64)
    scales = np.array([s.scale for s in splats], dtype=np.float64)
    rotations = np.array([s.rotation for s in splats], dtype=np.float64)

    report.non_finite_positions = int(np.count_nonzero(~np.isfinite(positions).all(axis=1)))
    report.invalid_opacity = int(np.count_nonzero((opacities < 0.0) | (opacities > 1.0)))
    report.invalid_scale = int(
        np.count_nonzero(((scales < MIN_LOG_SCALE) | (scales > MAX_LOG_SCALE)).any(axis=1))
    )
    norms = np.linalg.norm(rotations, axis=1)
    report.invalid_rotation = int(np.count_nonzero(np.abs(norms - 1.0) > ROTATION_NORM_TOLERANCE))

    if report.non_finite_positions:
        report.fail(
            WarningCode.NON_FINITE_POSITION,
            f"{report.non_finite_positions} splats have NaN or infinite positions",
            count=report.non_finite_positions,
        )
    if report.invalid_opacity:
        report.warn(
            WarningCode.OPACITY_OUT_OF_RANGE,
            f"{report.invalid_opacity} splats have opacity outside [0, 1]",
            count=report.invalid_opacity,
        )
    if report.invalid_scale:
        report.warn(
            WarningCode.SCALE_OUT_OF_RANGE,
            f"{report.invalid_scale} splats have log-scale outside [{MIN_LOG_SCALE}, {MAX_LOG_SCALE}]",
            count=report.invalid_scale,
        )
    if report.invalid_rotation:
        report.warn(
            WarningCode.NON_UNIT_ROTATION,
            f"{report.invalid_rotation} splats have non-unit rotation quaternions",
            count=report.invalid_rotation,
        )

    if len(splats) < MIN_RECOMMENDED_SPLATS:
        report.warn(
            WarningCode.LOW_SPLAT_COUNT,
            f"Only {len(splats)} splats, training usually starts from at least {MIN_RECOMMENDED_SPLATS}",
            count=len(splats),
        )
    elif len(splats) > MAX_RECOMMENDED_SPLATS:
        report.warn(
            WarningCode.HIGH_SPLAT_COUNT,
            f"{len(splats)} splats may exceed GPU memory during training",
            count=len(splats),
        )

    return report


def create_splats_from_point_cloud(
    points: Sequence[PointCloudPoint],
    initial_scale: float = DEFAULT_SPLAT_SCALE,
    opacity: float = 1.0,
) -> List[GaussianSplat]:
    """Seed one isotropic, unrotated splat per point."""
    return [
        GaussianSplat(
            position=tuple(point.position),
            normal=tuple(point.normal),
            sh_dc=tuple(float(v) for v in color_to_sh_dc(point.color)),
            opacity=opacity,
            scale=(initial_scale, initial_scale, initial_scale),
            color=tuple(point.color),
        )
        for point in points
    ]


def create_point_cloud_from_mesh(
    vertices: np.ndarray,
    normals: Optional[np.ndarray] = None,
    colors: Optional[np.ndarray] = None,
    default_color: Tuple[int, int, int] = (255, 255, 255),
) -> List[PointCloudPoint]:
    """Convert engine-space mesh vertices (cm) into target-space points (m).

    Args:
        vertices: [N, 3] vertex positions in engine space.
        normals: Optional [N, 3] vertex normals in engine space.
        colors: Optional [N, 3] colors, 0-255 or 0-1 range.
        default_color: Color used when ``colors`` is not given.
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    positions = vertices @ ENGINE_TO_TARGET.T * CM_TO_M

    if normals is not None:
        converted = np.asarray(normals, dtype=np.float64).reshape(-1, 3) @ ENGINE_TO_TARGET.T
        lengths = np.linalg.norm(converted, axis=1, keepdims=True)
        converted = np.divide(converted, lengths, out=np.zeros_like(converted), where=lengths > 0)
    else:
        converted = np.zeros_like(positions)

    if colors is not None:
        colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
        if colors.size and colors.max() <= 1.0:
            colors = colors * 255.0
        rgb = np.clip(np.round(colors), 0, 255).astype(int)
    else:
        rgb = np.tile(np.asarray(default_color, dtype=int), (len(positions), 1))

    return [
        PointCloudPoint(
            position=tuple(float(v) for v in positions[i]),
            normal=tuple(float(v) for v in converted[i]),
            color=tuple(int(v) for v in rgb[i]),
        )
        for i in range(len(positions))
    ]
