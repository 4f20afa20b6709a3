"""Command-line interface for gaussian-capture.

Commands:
    plan      Generate and validate a trajectory
    export    Write a COLMAP dataset skeleton for a capture config
    optimal   Suggest a trajectory for a bounding box
    inspect   Summarize a PLY file or a sparse model directory
    depth     Linearize a captured depth buffer
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from .colmap import read_sparse_model, validate_dataset
from .config import CaptureConfig, load_config
from .depth import DepthExportConfig, DepthFormat, DepthMap, save_depth, save_depth_visualization
from .errors import CaptureError
from .ply import read_ply_info
from .trajectory import (
    BoundingBox,
    calculate_average_overlap,
    calculate_optimal_config,
    compute_trajectory_bounds,
    generate_viewpoints,
    validate_config,
)
from .utils.io import load_numpy, save_json
from .utils.logging import setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="gaussian-capture",
        description="Convert engine camera trajectories into Gaussian splatting datasets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan = subparsers.add_parser("plan", help="Generate and validate a trajectory")
    plan.add_argument("config", type=Path, help="Capture config (.yaml or .json)")
    plan.add_argument("-o", "--output", type=Path, help="Write viewpoints as JSON")

    export = subparsers.add_parser("export", help="Write a COLMAP dataset skeleton")
    export.add_argument("config", type=Path, help="Capture config (.yaml or .json)")
    export.add_argument("--output-dir", type=Path, help="Override the configured output directory")
    export.add_argument("--binary", action="store_true", help="Write binary COLMAP files")

    optimal = subparsers.add_parser("optimal", help="Suggest a trajectory for a bounding box")
    optimal.add_argument(
        "--bounds",
        type=float,
        nargs=6,
        required=True,
        metavar=("MIN_X", "MIN_Y", "MIN_Z", "MAX_X", "MAX_Y", "MAX_Z"),
        help="Bounding box in engine units (cm)",
    )
    optimal.add_argument("--overlap", type=float, default=0.7, help="Desired view overlap (default: 0.7)")
    optimal.add_argument("--fov", type=float, default=90.0, help="Horizontal FOV in degrees (default: 90)")

    inspect = subparsers.add_parser("inspect", help="Summarize a PLY file or dataset directory")
    inspect.add_argument("path", type=Path, help="PLY file or dataset root")

    depth = subparsers.add_parser("depth", help="Linearize a reversed-Z depth buffer (.npy)")
    depth.add_argument("input", type=Path, help="Depth buffer as .npy or .npz")
    depth.add_argument("-o", "--output", type=Path, required=True, help="Output file")
    depth.add_argument("--near", type=float, default=10.0, help="Near plane in cm (default: 10)")
    depth.add_argument("--far", type=float, default=100000.0, help="Far plane in cm (default: 100000)")
    depth.add_argument("--infinite-far", action="store_true", help="Treat the far plane as infinite")
    depth.add_argument(
        "--format",
        default=DepthFormat.FLOAT32.value,
        choices=[f.value for f in DepthFormat],
        help="Output encoding (default: float32)",
    )
    depth.add_argument("--centimeters", action="store_true", help="Keep engine units instead of meters")
    depth.add_argument("--preview", type=Path, help="Also write a colorized preview image")

    return parser.parse_args(argv)


def cmd_plan(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    trajectory = config.trajectory

    report = validate_config(trajectory)
    for warning in report.warnings:
        print(f"  [{warning.code.value}] {warning.message}")
    if not report.valid:
        print("Error: trajectory configuration is invalid")
        return 1

    viewpoints = generate_viewpoints(trajectory)
    overlap = calculate_average_overlap(viewpoints, config.horizontal_fov)
    bounds = compute_trajectory_bounds(viewpoints)

    print(f"\nTrajectory: {trajectory.trajectory_type.value}")
    print("=" * 60)
    print(f"  Viewpoints: {len(viewpoints)} (expected {trajectory.expected_viewpoint_count()})")
    print(f"  Average overlap: {overlap * 100:.1f}%")
    if bounds is not None:
        print(f"  Bounds min: {tuple(round(v, 1) for v in bounds.min)}")
        print(f"  Bounds max: {tuple(round(v, 1) for v in bounds.max)}")

    if args.output:
        save_json({"viewpoints": [vp.to_dict() for vp in viewpoints]}, args.output)
        print(f"\nSaved viewpoints to {args.output}")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    from .export import DatasetExporter

    config = load_config(args.config)
    if args.output_dir:
        config.output_dir = str(args.output_dir)
    if args.binary:
        config.binary = True

    result = DatasetExporter(config).export()
    for warning in result.warnings.warnings:
        print(f"  [{warning.code.value}] {warning.message}")
    if not result.success:
        for error in result.errors:
            print(f"Error: {error}")
        return 1

    print(f"\nExported {result.num_images} images to {result.output_path}")
    return 0


def cmd_optimal(args: argparse.Namespace) -> int:
    bounds = BoundingBox(min=tuple(args.bounds[:3]), max=tuple(args.bounds[3:]))
    trajectory = calculate_optimal_config(bounds, args.overlap, args.fov)
    config = CaptureConfig(horizontal_fov=args.fov, trajectory=trajectory)
    yaml.safe_dump(config.to_dict(), sys.stdout, sort_keys=False)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    path: Path = args.path
    if not path.exists():
        print(f"Error: path not found: {path}")
        return 1

    if path.is_file():
        info = read_ply_info(path)
        print(f"\nPLY: {path}")
        print("=" * 60)
        print(f"  Vertices: {info['vertex_count']}")
        print(f"  Format: {'binary' if info['is_binary'] else 'ascii'}")
        print(f"  Gaussian splats: {info['is_gaussian']}")
        print(f"  Properties: {len(info['properties'])}")
        return 0

    report = validate_dataset(path)
    print(f"\nDataset: {path}")
    print("=" * 60)
    if report.valid:
        cameras, images, points = read_sparse_model(path / "sparse" / "0")
        print(f"  Cameras: {len(cameras)}")
        print(f"  Images: {len(images)}")
        print(f"  Points: {len(points)}")
    for warning in report.warnings:
        print(f"  [{warning.code.value}] {warning.message}")
    return 0 if report.valid else 1


def cmd_depth(args: argparse.Namespace) -> int:
    config = DepthExportConfig(
        format=DepthFormat(args.format),
        near_plane=args.near,
        far_plane=args.far,
        infinite_far=args.infinite_far,
        export_in_meters=not args.centimeters,
    )
    depth_map = DepthMap.from_buffer(load_numpy(args.input), config)

    report = depth_map.validate_for_training()
    for warning in report.warnings:
        print(f"  [{warning.code.value}] {warning.message}")

    save_depth(depth_map, args.output, config.format)
    print(f"Saved {depth_map.width}x{depth_map.height} depth to {args.output}")
    if args.preview:
        save_depth_visualization(depth_map, args.preview)
    return 0 if report.valid else 1


COMMANDS = {
    "plan": cmd_plan,
    "export": cmd_export,
    "optimal": cmd_optimal,
    "inspect": cmd_inspect,
    "depth": cmd_depth,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level), json_logs=args.json_logs)

    try:
        return COMMANDS[args.command](args)
    except (CaptureError, OSError) as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
