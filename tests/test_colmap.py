"""
Tests for the COLMAP sparse model writer and readers.

These tests verify:
    - Image records built from viewpoints (ids, names, poses)
    - Text file headers and line layout
    - Binary record sizes
    - Reading written models back
    - Dataset directory validation
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from gaussian_capture.colmap import (
    ColmapPoint3D,
    create_camera,
    create_directory_structure,
    create_images_from_viewpoints,
    image_file_name,
    points3d_binary_size,
    read_cameras_text,
    read_sparse_model,
    validate_dataset,
    write_points3d_binary,
    write_sparse_model,
)
from gaussian_capture.coordinates import (
    compute_camera_center,
    convert_direction_to_target,
    convert_position_to_target,
)
from gaussian_capture.errors import ColmapFormatError
from gaussian_capture.intrinsics import CameraIntrinsics, CameraModel
from gaussian_capture.trajectory import TrajectoryConfig, generate_viewpoints
from gaussian_capture.validation import WarningCode


@pytest.fixture
def camera():
    return create_camera(CameraIntrinsics.from_fov(90.0, 1920, 1080))


@pytest.fixture
def hundred_images():
    viewpoints = generate_viewpoints(TrajectoryConfig(ring_count=4, views_per_ring=25))
    return viewpoints, create_images_from_viewpoints(viewpoints)


@pytest.fixture
def points():
    return [
        ColmapPoint3D(point_id=1, xyz=(0.5, -1.0, 2.0), rgb=(255, 0, 0)),
        ColmapPoint3D(point_id=2, xyz=(1.0, 1.0, 1.0), rgb=(0, 255, 0), error=0.25,
                      track=[(1, 0), (2, 5)]),
    ]


class TestImagesFromViewpoints:
    """Tests for building COLMAP images."""

    def test_ids_and_names(self, hundred_images):
        _, images = hundred_images

        assert [image.image_id for image in images] == list(range(1, 101))
        assert len({image.name for image in images}) == 100
        assert images[0].name == "image_00000.jpg"
        assert images[-1].name == "image_00099.jpg"

    def test_poses_match_viewpoints(self, hundred_images):
        viewpoints, images = hundred_images

        for viewpoint, image in zip(viewpoints, images):
            assert np.linalg.norm(image.qvec) == pytest.approx(1.0)
            assert image.qvec[0] >= 0
            center = compute_camera_center(image.qvec, image.tvec)
            assert_allclose(center, convert_position_to_target(viewpoint.position), atol=1e-9)

    def test_rotation_matrix_looks_along_viewpoint(self, hundred_images):
        viewpoints, images = hundred_images

        for viewpoint, image in list(zip(viewpoints, images))[::9]:
            R = image.rotation_matrix()
            assert_allclose(R @ R.T, np.eye(3), atol=1e-12)
            assert_allclose(R[2], convert_direction_to_target(viewpoint.forward_vector()), atol=1e-9)

    def test_on_record_callback(self, small_orbit):
        seen = []
        create_images_from_viewpoints(small_orbit, on_record=seen.append)
        assert [image.image_id for image in seen] == list(range(1, 37))

    def test_image_file_name(self):
        assert image_file_name(7, "frame_", "png") == "frame_00007.png"


class TestTextWriter:
    """Tests for the text sparse model."""

    def test_files_and_headers(self, tmp_path, camera, hundred_images):
        _, images = hundred_images
        paths = write_sparse_model(tmp_path, [camera], images)

        cameras_lines = paths["cameras"].read_text().splitlines()
        assert cameras_lines[0] == "# Camera list with one line of data per camera:"
        assert cameras_lines[2] == "# Number of cameras: 1"
        assert cameras_lines[3] == (
            "1 PINHOLE 1920 1080 960.0000000000 960.0000000000 960.0000000000 540.0000000000"
        )

        images_lines = paths["images"].read_text().splitlines()
        assert images_lines[3] == "# Number of images: 100"
        assert len(images_lines) == 4 + 2 * 100
        assert images_lines[4].split()[-1] == "image_00000.jpg"
        assert images_lines[5] == ""

        points_lines = paths["points3D"].read_text().splitlines()
        assert points_lines[-1] == "# Number of points: 0"

    def test_point_lines(self, tmp_path, camera, points):
        paths = write_sparse_model(tmp_path, [camera], [], points)

        lines = paths["points3D"].read_text().splitlines()
        assert lines[-2] == "1 0.5000000000 -1.0000000000 2.0000000000 255 0 0 0.000000 "
        assert lines[-1] == "2 1.0000000000 1.0000000000 1.0000000000 0 255 0 0.250000 1 0 2 5"

    def test_round_trip(self, tmp_path, camera, hundred_images, points):
        _, images = hundred_images
        write_sparse_model(tmp_path, [camera], images, points)

        cameras, read_images, read_points = read_sparse_model(tmp_path)

        assert cameras[1].model == CameraModel.PINHOLE
        assert (cameras[1].width, cameras[1].height) == (1920, 1080)
        assert_allclose(cameras[1].params, camera.params)
        assert sorted(read_images) == list(range(1, 101))
        assert_allclose(read_images[42].qvec, images[41].qvec, atol=1e-9)
        assert_allclose(read_images[42].tvec, images[41].tvec, atol=1e-9)
        assert read_points[2].track == [(1, 0), (2, 5)]
        assert read_points[1].rgb == (255, 0, 0)

    def test_unsupported_model(self, tmp_path):
        path = tmp_path / "cameras.txt"
        path.write_text("1 THIN_PRISM_FISHEYE 100 100 1 2 3\n")
        with pytest.raises(ColmapFormatError):
            read_cameras_text(path)


class TestBinaryWriter:
    """Tests for the binary sparse model."""

    def test_record_sizes(self, tmp_path, camera, small_orbit, points):
        images = create_images_from_viewpoints(small_orbit)
        paths = write_sparse_model(tmp_path, [camera], images, points, binary=True)

        # count + id/model/width/height + 4 doubles
        assert paths["cameras"].stat().st_size == 8 + 24 + 4 * 8
        # id + qvec + tvec + camera id + "image_00000.jpg\0" + keypoint count
        assert paths["images"].stat().st_size == 8 + 36 * (4 + 32 + 24 + 4 + 16 + 8)
        assert paths["points3D"].stat().st_size == 8 + 51 + (51 + 2 * 8)

    def test_points3d_size_helper(self, tmp_path, points):
        path = write_points3d_binary(tmp_path / "points3D.bin", points)
        assert path.stat().st_size == points3d_binary_size(points)
        assert points3d_binary_size([]) == 8

    def test_round_trip(self, tmp_path, small_orbit, points):
        intrinsics = CameraIntrinsics.from_fov(75.0, 1280, 720, model=CameraModel.OPENCV)
        images = create_images_from_viewpoints(small_orbit)
        write_sparse_model(tmp_path, [create_camera(intrinsics, camera_id=3)], images, points, binary=True)

        cameras, read_images, read_points = read_sparse_model(tmp_path)

        assert cameras[3].intrinsics == intrinsics
        assert read_images[5].qvec == images[4].qvec
        assert read_images[5].name == images[4].name
        assert read_points[2].xyz == (1.0, 1.0, 1.0)
        assert read_points[2].error == 0.25

    def test_missing_model(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_sparse_model(tmp_path)


class TestDatasetLayout:
    """Tests for dataset directories."""

    def test_directory_structure(self, tmp_path):
        dirs = create_directory_structure(tmp_path / "dataset")
        for key in ("root", "sparse", "images", "depth"):
            assert dirs[key].is_dir()
        assert dirs["sparse"] == tmp_path / "dataset" / "sparse" / "0"

    def test_empty_directory_is_invalid(self, tmp_path):
        report = validate_dataset(tmp_path)
        assert not report.valid
        assert report.has(WarningCode.MISSING_CAMERAS)
        assert report.has(WarningCode.MISSING_IMAGES)
        assert report.has(WarningCode.MISSING_IMAGE_DIRECTORY)

    def test_image_count_warnings(self, tmp_path, camera, small_orbit):
        dirs = create_directory_structure(tmp_path)
        write_sparse_model(dirs["sparse"], [camera], create_images_from_viewpoints(small_orbit))

        report = validate_dataset(tmp_path)
        assert report.valid
        assert report.has(WarningCode.NO_IMAGE_FILES)

        for i in range(3):
            (dirs["images"] / image_file_name(i)).write_bytes(b"\xff\xd8")
        report = validate_dataset(tmp_path)
        assert report.valid
        assert report.warnings[0].code == WarningCode.LOW_IMAGE_COUNT
        assert report.warnings[0].count == 3
