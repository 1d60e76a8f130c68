"""
Camera projection models used by the extrinsic refinement.
Supports both pinhole and omnidirectional (unified Mei) camera models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

from .utils import as_object_points


class CameraModel(Enum):
    """Intrinsic model family shared by all cameras of a rig."""
    PINHOLE = 0
    OMNIDIRECTIONAL = 1

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def uses_xi(self) -> bool:
        return self is CameraModel.OMNIDIRECTIONAL

    @classmethod
    def from_value(cls, value) -> 'CameraModel':
        """Accept a CameraModel, its integer value or a name such as 'pinhole' / 'omnidir'."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)

        aliases = {
            'pinhole': cls.PINHOLE,
            'omnidirectional': cls.OMNIDIRECTIONAL,
            'omnidir': cls.OMNIDIRECTIONAL,
        }
        key = str(value).strip().lower()
        if key not in aliases:
            raise ValueError(f"Unknown camera model: {value}")
        return aliases[key]


@dataclass
class CameraIntrinsics:
    """Intrinsic parameters of one camera."""
    camera_matrix: np.ndarray                   # 3x3 intrinsic matrix
    dist_coeffs: np.ndarray                     # distortion coefficients (4 for omnidir)
    xi: Optional[float] = None                  # mirror parameter, omnidirectional only

    def __post_init__(self):
        self.camera_matrix = np.asarray(self.camera_matrix, dtype=np.float64)
        self.dist_coeffs = np.asarray(self.dist_coeffs, dtype=np.float64).ravel()
        if self.camera_matrix.shape != (3, 3):
            raise ValueError(f"Camera matrix must be 3x3, got shape {self.camera_matrix.shape}")
        if self.xi is not None:
            self.xi = float(np.ravel(self.xi)[0])


def project_points(object_points: np.ndarray, rvec: np.ndarray, tvec: np.ndarray,
                   intrinsics: CameraIntrinsics,
                   camera_model: CameraModel) -> Tuple[np.ndarray, np.ndarray]:
    """
    Project object points into the image with the given camera model.

    Args:
        object_points: (N, 3) or planar (N, 2) points in the target frame
        rvec: Rotation vector target -> camera
        tvec: Translation vector target -> camera
        intrinsics: Intrinsics of the observing camera
        camera_model: Projection model to use

    Returns:
        Tuple of (image_points (N, 2), jacobian (2N, 6)). Jacobian rows
        alternate x/y per point; columns are d/d[rvec, tvec].
    """
    obj = as_object_points(object_points).reshape(-1, 1, 3)
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)
    K = intrinsics.camera_matrix

    if camera_model is CameraModel.PINHOLE:
        dist = intrinsics.dist_coeffs if intrinsics.dist_coeffs.size else np.zeros(5)
        image_points, jacobian = cv2.projectPoints(obj, rvec, tvec, K, dist)
    elif camera_model is CameraModel.OMNIDIRECTIONAL:
        if intrinsics.xi is None:
            raise ValueError("Omnidirectional projection requires the xi parameter")
        if intrinsics.dist_coeffs.size != 4:
            raise ValueError(f"Omnidirectional model expects 4 distortion coefficients, "
                             f"got {intrinsics.dist_coeffs.size}")
        image_points, jacobian = cv2.omnidir.projectPoints(
            obj, rvec, tvec, K, intrinsics.xi, intrinsics.dist_coeffs.reshape(1, 4)
        )
    else:
        raise ValueError(f"Unsupported camera model: {camera_model}")

    return image_points.reshape(-1, 2), np.asarray(jacobian, dtype=np.float64)[:, :6]
