"""
Utility functions for multi-camera extrinsic calibration.
"""

import os
import re
from typing import Any, Dict, List, Tuple

import cv2
import numpy as np
import yaml
from scipy.spatial.transform import Rotation


IMAGE_NAME_PATTERN = re.compile(r'^(\d+)-(\d+)$')


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load calibration configuration from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def parse_image_name(path: str) -> Tuple[int, int]:
    """
    Decode the camera index and timestamp from an image or correspondence file name.

    The stem (basename up to the first '.') must read "<camera>-<timestamp>",
    e.g. "2-0153.png" -> (2, 153).

    Args:
        path: File path or bare file name

    Returns:
        Tuple of (camera_index, timestamp)
    """
    stem = os.path.basename(path.replace('\\', '/')).split('.')[0]
    match = IMAGE_NAME_PATTERN.match(stem)
    if match is None:
        raise ValueError(f"Cannot decode camera index and timestamp from '{path}'")
    return int(match.group(1)), int(match.group(2))


def as_object_points(points: np.ndarray) -> np.ndarray:
    """Return object points as an (N, 3) float64 array, padding planar points with z=0."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim < 2:
        raise ValueError(f"Object points must be an array of points, got shape {pts.shape}")
    pts = pts.reshape(-1, pts.shape[-1])
    if pts.shape[1] == 2:
        pts = np.hstack([pts, np.zeros((len(pts), 1))])
    if pts.shape[1] != 3:
        raise ValueError(f"Object points must have 2 or 3 coordinates, got shape {np.shape(points)}")
    return pts


def as_image_points(points: np.ndarray) -> np.ndarray:
    """Return image points as an (N, 2) float64 array."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim < 2 or pts.shape[-1] != 2:
        raise ValueError(f"Image points must have 2 coordinates, got shape {pts.shape}")
    return pts.reshape(-1, 2)


def rvec_tvec_to_matrix(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    """
    Create 4x4 transformation matrix from a Rodrigues vector and translation.

    Args:
        rvec: Rotation vector (3 elements)
        tvec: Translation vector (3 elements)

    Returns:
        4x4 homogeneous transformation matrix
    """
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(tvec, dtype=np.float64).reshape(3)
    return T


def matrix_to_rvec_tvec(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Extract Rodrigues vector and translation from 4x4 transformation matrix.

    Args:
        T: 4x4 homogeneous transformation matrix

    Returns:
        Tuple of (rvec [3], tvec [3])
    """
    check_transform(T)
    rvec, _ = cv2.Rodrigues(np.ascontiguousarray(T[:3, :3], dtype=np.float64))
    return rvec.reshape(3), np.array(T[:3, 3], dtype=np.float64)


def matrix_to_transform(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Extract translation and quaternion from 4x4 transformation matrix.

    Returns:
        Tuple of (translation [x,y,z], quaternion [x,y,z,w])
    """
    check_transform(T)
    translation = np.array(T[:3, 3], dtype=np.float64)
    quaternion = Rotation.from_matrix(T[:3, :3]).as_quat()
    return translation, quaternion


def check_transform(T: np.ndarray):
    """Raise ValueError unless T is a 4x4 matrix."""
    if np.shape(T) != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got shape {np.shape(T)}")


def invert_transform(T: np.ndarray) -> np.ndarray:
    """
    Invert a 4x4 rigid transformation matrix.

    Args:
        T: 4x4 homogeneous transformation matrix

    Returns:
        Inverted 4x4 transformation matrix
    """
    check_transform(T)
    R = T[:3, :3]
    t = T[:3, 3]

    T_inv = np.eye(4)
    T_inv[:3, :3] = R.T
    T_inv[:3, 3] = -R.T @ t

    return T_inv


def compose_transforms(*transforms: np.ndarray) -> np.ndarray:
    """
    Chain 4x4 transforms left to right: compose_transforms(A, B, C) = A * B * C.

    The rightmost transform is applied to a point first, so
    compose_transforms(T_cam_target, T_target_root) maps root -> camera.
    """
    if not transforms:
        raise ValueError("At least one transform is required")

    result = np.eye(4)
    for T in transforms:
        check_transform(T)
        result = result @ np.asarray(T, dtype=np.float64)
    return result


def _matrix_to_list(M: np.ndarray) -> List:
    return np.asarray(M, dtype=np.float64).tolist()


def calibration_to_dict(result) -> Dict[str, Any]:
    """
    Convert a CalibrationResult into a plain dictionary ready for YAML.

    Camera poses map the root camera frame into each camera frame; target
    poses map the target frame at each timestamp into the root camera frame.
    """
    output: Dict[str, Any] = {
        'n_cameras': result.n_cameras,
        'camera_model': result.camera_model.label,
        'mean_reprojection_error': float(result.mean_error),
    }

    for cam_idx in range(result.n_cameras):
        intrinsics = result.intrinsics[cam_idx]
        pose = result.camera_poses[cam_idx]
        translation, quaternion = matrix_to_transform(pose)

        entry = {
            'camera_matrix': _matrix_to_list(intrinsics.camera_matrix),
            'distortion': _matrix_to_list(np.ravel(intrinsics.dist_coeffs)),
        }
        if result.camera_model.uses_xi:
            entry['xi'] = float(intrinsics.xi)
        entry['pose'] = _matrix_to_list(pose)
        entry['translation'] = _matrix_to_list(translation)
        entry['quaternion'] = _matrix_to_list(quaternion)
        entry['connected'] = cam_idx not in result.disconnected_cameras

        output[f'camera_{cam_idx}'] = entry

    for timestamp, pose in result.target_poses.items():
        output[f'pose_timestamp_{timestamp}'] = _matrix_to_list(pose)

    return output


def save_calibration_yaml(result, output_path: str):
    """
    Save calibrated intrinsics and poses to a YAML file.

    Args:
        result: CalibrationResult produced by MultiCameraCalibrationSolver
        output_path: Path to save the YAML file
    """
    header = [
        "# Multi-camera calibration computed by multi_camera_calibration package",
        "# Reference frame: camera_0",
        "# Camera pose maps camera_0 frame -> camera frame; target pose maps target -> camera_0",
    ]

    body = yaml.safe_dump(calibration_to_dict(result), default_flow_style=None, sort_keys=False)

    with open(output_path, 'w') as f:
        f.write('\n'.join(header) + '\n')
        f.write(body)
