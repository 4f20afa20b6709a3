"""
Tests for PLY point cloud and Gaussian splat I/O.

These tests verify:
    - Record layouts and header generation
    - Binary and ASCII point cloud round trips
    - Splat writing, strict reading and validation
    - Spherical harmonic color conversion
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from gaussian_capture.errors import PlyFormatError
from gaussian_capture.ply import (
    POINT_CLOUD_DTYPE,
    POINT_CLOUD_PROPERTIES,
    SH_C0,
    SPLAT_PROPERTIES,
    SPLAT_RECORD_SIZE,
    GaussianSplat,
    PointCloudPoint,
    color_to_sh_dc,
    create_point_cloud_from_mesh,
    create_splats_from_point_cloud,
    estimate_memory_usage,
    generate_ply_header,
    read_gaussian_splats,
    read_ply_info,
    read_point_cloud,
    sh_dc_to_color,
    validate_splats,
    write_gaussian_splats,
    write_point_cloud,
)
from gaussian_capture.validation import WarningCode


@pytest.fixture
def cloud():
    return [
        PointCloudPoint(position=(0.0, 1.0, 2.0), normal=(0.0, 0.0, 1.0), color=(255, 0, 0)),
        PointCloudPoint(position=(-1.5, 0.25, 3.0), normal=(1.0, 0.0, 0.0), color=(10, 20, 30)),
        PointCloudPoint(position=(4.0, -2.0, 0.5)),
    ]


def _valid_splats(count):
    rng = np.random.default_rng(0)
    return [
        GaussianSplat(
            position=tuple(rng.uniform(-1, 1, 3)),
            sh_dc=tuple(color_to_sh_dc(rng.integers(0, 256, 3))),
            opacity=float(rng.uniform(0, 1)),
            scale=tuple(rng.uniform(-8, -2, 3)),
        )
        for _ in range(count)
    ]


class TestLayout:
    """Tests for record sizes and headers."""

    def test_record_sizes(self):
        assert POINT_CLOUD_DTYPE.itemsize == 27
        assert SPLAT_RECORD_SIZE == 12 + 12 + 12 + 180 + 4 + 12 + 16
        assert len(SPLAT_PROPERTIES) == 62

    def test_memory_estimate(self):
        assert estimate_memory_usage(0) == 0
        assert estimate_memory_usage(100_000) == 100_000 * 236

    def test_splat_property_order(self):
        names = [name for name, _ in SPLAT_PROPERTIES]
        assert names[:9] == ["x", "y", "z", "nx", "ny", "nz", "f_dc_0", "f_dc_1", "f_dc_2"]
        assert names[9] == "f_rest_0"
        assert names[53] == "f_rest_44"
        assert names[54:] == ["opacity", "scale_0", "scale_1", "scale_2", "rot_0", "rot_1", "rot_2", "rot_3"]

    def test_header(self):
        header = generate_ply_header(2, POINT_CLOUD_PROPERTIES, binary=False)

        assert header.startswith("ply\nformat ascii 1.0\nelement vertex 2\nproperty float x\n")
        assert "property uchar red\n" in header
        assert header.endswith("end_header\n")
        assert "binary_little_endian" in generate_ply_header(0, POINT_CLOUD_PROPERTIES)


class TestPointCloud:
    """Tests for point cloud files."""

    def test_binary_size(self, tmp_path, cloud):
        path = tmp_path / "points.ply"
        assert write_point_cloud(path, cloud) == 3

        header = generate_ply_header(3, POINT_CLOUD_PROPERTIES, binary=True)
        assert path.stat().st_size == len(header) + 3 * 27

    @pytest.mark.parametrize("binary", [True, False])
    def test_round_trip(self, tmp_path, cloud, binary):
        path = tmp_path / "points.ply"
        write_point_cloud(path, cloud, binary=binary)

        read_back = read_point_cloud(path)
        assert len(read_back) == 3
        for expected, loaded in zip(cloud, read_back):
            assert_allclose(loaded.position, expected.position, atol=1e-6)
            assert_allclose(loaded.normal, expected.normal, atol=1e-6)
            assert loaded.color == expected.color

    def test_ascii_layout(self, tmp_path, cloud):
        path = tmp_path / "points.ply"
        write_point_cloud(path, cloud[:1], binary=False)

        lines = path.read_text().splitlines()
        assert lines[-1] == "0.000000 1.000000 2.000000 0.000000 0.000000 1.000000 255 0 0"

    def test_empty_input_writes_nothing(self, tmp_path):
        path = tmp_path / "empty.ply"
        assert write_point_cloud(path, []) == 0
        assert not path.exists()

    def test_not_a_ply(self, tmp_path):
        path = tmp_path / "bogus.ply"
        path.write_bytes(b"solid cube\n")
        with pytest.raises(PlyFormatError):
            read_point_cloud(path)

    def test_truncated(self, tmp_path, cloud):
        path = tmp_path / "points.ply"
        write_point_cloud(path, cloud)
        path.write_bytes(path.read_bytes()[:-10])
        with pytest.raises(PlyFormatError):
            read_point_cloud(path)


class TestGaussianSplats:
    """Tests for splat files."""

    def test_binary_size(self, tmp_path):
        splats = _valid_splats(10)
        path = tmp_path / "splats.ply"

        assert write_gaussian_splats(path, splats) == 10
        header = generate_ply_header(10, SPLAT_PROPERTIES, binary=True)
        assert path.stat().st_size == len(header) + 10 * SPLAT_RECORD_SIZE

    @pytest.mark.parametrize("binary", [True, False])
    def test_round_trip(self, tmp_path, binary):
        splats = _valid_splats(5)
        splats[0].rotation = (0.5, 0.5, 0.5, 0.5)
        splats[0].sh_rest = tuple(float(i) for i in range(45))
        path = tmp_path / "splats.ply"
        write_gaussian_splats(path, splats, binary=binary)

        read_back = read_gaussian_splats(path)
        assert len(read_back) == 5
        assert_allclose(read_back[0].rotation, (0.5, 0.5, 0.5, 0.5))
        assert_allclose(read_back[0].sh_rest, range(45))
        for expected, loaded in zip(splats, read_back):
            assert_allclose(loaded.position, expected.position, atol=1e-6)
            assert_allclose(loaded.scale, expected.scale, atol=1e-5)
            assert loaded.opacity == pytest.approx(expected.opacity, abs=1e-6)

    def test_scalar_part_is_first(self, tmp_path):
        path = tmp_path / "splats.ply"
        write_gaussian_splats(path, [GaussianSplat(position=(0.0, 0.0, 0.0))])

        payload = path.read_bytes()[-SPLAT_RECORD_SIZE:]
        record = np.frombuffer(payload, dtype="<f4")
        assert_allclose(record[-4:], [1.0, 0.0, 0.0, 0.0])
        assert record[54] == pytest.approx(1.0)

    def test_reader_rejects_other_layouts(self, tmp_path, cloud):
        path = tmp_path / "points.ply"
        write_point_cloud(path, cloud)
        with pytest.raises(PlyFormatError):
            read_gaussian_splats(path)

    def test_info(self, tmp_path, cloud):
        splat_path = tmp_path / "splats.ply"
        write_gaussian_splats(splat_path, _valid_splats(3), binary=False)
        info = read_ply_info(splat_path)
        assert info["vertex_count"] == 3
        assert info["is_gaussian"]
        assert not info["is_binary"]

        cloud_path = tmp_path / "points.ply"
        write_point_cloud(cloud_path, cloud)
        assert not read_ply_info(cloud_path)["is_gaussian"]


class TestValidateSplats:
    """Tests for splat validation."""

    def test_valid_set(self):
        report = validate_splats(_valid_splats(100))

        assert report.valid
        assert report.invalid_count == 0
        assert report.total == 100
        assert report.codes == [WarningCode.LOW_SPLAT_COUNT]

    def test_each_category_is_counted(self):
        splats = _valid_splats(4)
        splats[0].opacity = 1.5
        splats[1].scale = (0.0, 0.0, 15.0)
        splats[2].rotation = (2.0, 0.0, 0.0, 0.0)
        report = validate_splats(splats)

        assert report.valid
        assert report.invalid_opacity == 1
        assert report.invalid_scale == 1
        assert report.invalid_rotation == 1
        assert report.invalid_count == 3
        for code in (WarningCode.OPACITY_OUT_OF_RANGE, WarningCode.SCALE_OUT_OF_RANGE,
                     WarningCode.NON_UNIT_ROTATION):
            assert report.has(code)

    def test_non_finite_position_fails(self):
        splats = _valid_splats(3)
        splats[1].position = (float("nan"), 0.0, 0.0)
        splats[2].position = (0.0, float("inf"), 0.0)
        report = validate_splats(splats)

        assert not report.valid
        assert report.non_finite_positions == 2

    def test_empty(self):
        report = validate_splats([])
        assert report.has(WarningCode.EMPTY_SPLATS)


class TestColorConversion:
    """Tests for SH DC color conversion."""

    def test_mid_grey(self):
        assert_allclose(color_to_sh_dc((255, 255, 255)), [0.5 / SH_C0] * 3)
        assert sh_dc_to_color((0.0, 0.0, 0.0)) == (128, 128, 128)

    @pytest.mark.parametrize("color", [(0, 0, 0), (255, 255, 255), (12, 200, 99), (128, 64, 1)])
    def test_round_trip(self, color):
        assert sh_dc_to_color(color_to_sh_dc(color)) == color

    def test_every_channel_value_is_recovered(self):
        for value in range(256):
            color = (value, 255 - value, (value * 7) % 256)
            assert sh_dc_to_color(color_to_sh_dc(color)) == color

    def test_splat_colors_survive_a_file(self, tmp_path):
        """SH DC stored as float32 still maps back to the exact 8-bit color."""
        colors = [(value, 255 - value, value // 2) for value in range(256)]
        path = tmp_path / "splats.ply"
        write_gaussian_splats(
            path, [GaussianSplat(position=(0.0, 0.0, 0.0), sh_dc=tuple(color_to_sh_dc(c))) for c in colors]
        )

        assert [sh_dc_to_color(splat.sh_dc) for splat in read_gaussian_splats(path)] == colors

    def test_clamping(self):
        assert sh_dc_to_color((100.0, -100.0, 0.0)) == (255, 0, 128)


class TestConstruction:
    """Tests for building splats and clouds."""

    def test_splats_from_point_cloud(self, cloud):
        splats = create_splats_from_point_cloud(cloud, initial_scale=-4.0, opacity=0.5)

        assert len(splats) == 3
        assert splats[0].scale == (-4.0, -4.0, -4.0)
        assert splats[0].opacity == 0.5
        assert splats[0].rotation == (1.0, 0.0, 0.0, 0.0)
        assert sh_dc_to_color(splats[1].sh_dc) == (10, 20, 30)

    def test_point_cloud_from_mesh(self):
        points = create_point_cloud_from_mesh(
            vertices=np.array([[100.0, 0.0, 0.0], [0.0, 0.0, 250.0]]),
            normals=np.array([[0.0, 0.0, 2.0], [0.0, 0.0, 0.0]]),
            colors=np.array([[1.0, 0.0, 0.5], [0.0, 1.0, 0.0]]),
        )

        assert_allclose(points[0].position, [0.0, 0.0, 1.0])
        assert_allclose(points[1].position, [0.0, -2.5, 0.0])
        assert_allclose(points[0].normal, [0.0, -1.0, 0.0])
        assert points[1].normal == (0.0, 0.0, 0.0)
        assert points[0].color == (255, 0, 128)
