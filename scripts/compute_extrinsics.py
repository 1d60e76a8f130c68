#!/usr/bin/env python3
"""
Compute multi-camera calibration from collected target correspondences.

This script loads per-image correspondences, calibrates each camera's
intrinsics, and refines the poses of all cameras relative to camera 0 together
with the target pose at every capture instant.

Correspondence files are named "<camera>-<timestamp>.npz" and hold the arrays
'object_points' and 'image_points'.

Usage:
    python3 compute_extrinsics.py \
        --config /path/to/calibration.yaml \
        --correspondences /path/to/correspondences \
        --output /path/to/multi_camera_calibration.yaml
"""

import argparse
import logging
import os
import sys

import numpy as np

# Add package to path for standalone execution
try:
    from multi_camera_calibration.calibration_solver import MultiCameraCalibrationSolver
    from multi_camera_calibration.config import CalibrationConfig
    from multi_camera_calibration.context import load_correspondences
    from multi_camera_calibration.pose_graph import DisconnectedCameraError
    from multi_camera_calibration.utils import save_calibration_yaml
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from multi_camera_calibration.calibration_solver import MultiCameraCalibrationSolver
    from multi_camera_calibration.config import CalibrationConfig
    from multi_camera_calibration.context import load_correspondences
    from multi_camera_calibration.pose_graph import DisconnectedCameraError
    from multi_camera_calibration.utils import save_calibration_yaml


def main():
    parser = argparse.ArgumentParser(
        description='Compute multi-camera calibration from target correspondences'
    )

    parser.add_argument('--config', type=str, required=True,
                        help='Path to calibration.yaml config file')
    parser.add_argument('--correspondences', type=str, required=True,
                        help='Directory containing <camera>-<timestamp>.npz files')
    parser.add_argument('--output', '-o', type=str, default='multi_camera_calibration.yaml',
                        help='Output file path (default: multi_camera_calibration.yaml)')
    parser.add_argument('--min-matches', type=int, default=None,
                        help='Override the minimum number of correspondences per image')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    # Load configuration
    print("Loading configuration...")
    config = CalibrationConfig.from_yaml(args.config)
    if args.min_matches is not None:
        config.min_matches = args.min_matches

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - [%(name)s] - %(message)s',
    )

    print(f"Cameras: {config.n_cameras} ({config.camera_model.label})")
    print(f"Minimum matches per image: {config.min_matches}")

    # Load correspondences
    try:
        per_camera = load_correspondences(args.correspondences, config.n_cameras)
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    solver = MultiCameraCalibrationSolver(config)
    solver.add_correspondences(per_camera)

    empty = [cam for cam, obs in enumerate(solver.observations) if len(obs) == 0]
    if empty:
        print(f"ERROR: No correspondences found for cameras {empty}")
        sys.exit(1)

    # Compute calibration
    print("\n" + "=" * 60)
    print("COMPUTING CALIBRATION")
    print("=" * 60)

    try:
        result = solver.run()
    except DisconnectedCameraError as e:
        print(f"\nERROR: Calibration failed - {e}")
        print("Possible causes:")
        print("  - No shared capture timestamps between camera groups")
        print("  - Too few correspondences per image (see --min-matches)")
        sys.exit(1)

    stats = solver.get_statistics()
    for cam_name, cam_stats in stats.items():
        print(f"  {cam_name}: {cam_stats['num_images']} images, "
              f"{cam_stats['num_edges']} used, avg {cam_stats['avg_points']:.1f} points")

    # Print results
    print("\n" + "=" * 60)
    print("CALIBRATION RESULTS")
    print("=" * 60)

    report = result.report
    print(f"Mean reprojection error: {report.initial_error:.4f} px -> {result.mean_error:.4f} px "
          f"({report.iterations} iterations)")

    for cam_idx, pose in enumerate(result.camera_poses):
        status = "NOT CONNECTED" if cam_idx in result.disconnected_cameras else "ok"
        t = pose[:3, 3]
        print(f"\ncamera_{cam_idx} (relative to camera_0) [{status}]:")
        print(f"  Translation: [{t[0]:.6f}, {t[1]:.6f}, {t[2]:.6f}]")
        print(f"  Distance:    {np.linalg.norm(t):.4f}")

    print(f"\nTarget poses: {len(result.target_poses)} timestamps")

    # Save results
    save_calibration_yaml(result, args.output)

    print("\n✓ Calibration complete!")
    print(f"  Calibration saved to: {args.output}")


if __name__ == '__main__':
    main()
