"""
Per-camera intrinsic calibration from planar target correspondences.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np

from .camera_model import CameraIntrinsics, CameraModel
from .context import CameraObservations

logger = logging.getLogger(__name__)

OMNIDIR_CRITERIA = (cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS, 200, 1e-7)


@dataclass
class IntrinsicCalibration:
    """Intrinsics of one camera plus one target -> camera extrinsic guess per used image."""
    intrinsics: CameraIntrinsics
    rvecs: List[np.ndarray]
    tvecs: List[np.ndarray]
    used_indices: List[int]      # rvecs[i] / tvecs[i] belong to image used_indices[i]
    rms: float


def calibrate_intrinsics(observations: CameraObservations, image_size: Tuple[int, int],
                         camera_model: CameraModel,
                         criteria=OMNIDIR_CRITERIA) -> IntrinsicCalibration:
    """
    Calibrate one camera from its correspondences.

    Args:
        observations: Correspondences of every image of the camera
        image_size: (width, height) in pixels
        camera_model: PINHOLE uses cv2.calibrateCamera; OMNIDIRECTIONAL uses
            cv2.omnidir.calibrate, which may drop images
        criteria: Termination criteria of the omnidirectional calibration

    Returns:
        IntrinsicCalibration
    """
    if len(observations) == 0:
        raise ValueError("Cannot calibrate a camera without images")
    if image_size is None:
        raise ValueError("image_size is required for intrinsic calibration")

    size = (int(image_size[0]), int(image_size[1]))

    if camera_model is CameraModel.PINHOLE:
        object_points = [p.astype(np.float32) for p in observations.object_points]
        image_points = [p.astype(np.float32) for p in observations.image_points]

        rms, K, D, rvecs, tvecs = cv2.calibrateCamera(object_points, image_points, size, None, None)
        intrinsics = CameraIntrinsics(K, D)
        used_indices = list(range(len(rvecs)))

    elif camera_model is CameraModel.OMNIDIRECTIONAL:
        object_points = [p.reshape(1, -1, 3).astype(np.float64) for p in observations.object_points]
        image_points = [p.reshape(1, -1, 2).astype(np.float64) for p in observations.image_points]

        rms, K, xi, D, rvecs, tvecs, idx = cv2.omnidir.calibrate(
            object_points, image_points, size,
            np.eye(3), np.zeros((1, 1)), np.zeros((1, 4)),
            0, criteria
        )
        intrinsics = CameraIntrinsics(K, D, xi=xi)
        used_indices = [int(i) for i in np.ravel(idx)] if idx is not None else []

    else:
        raise ValueError(f"Unsupported camera model: {camera_model}")

    if len(used_indices) != len(rvecs):
        raise ValueError(f"Calibration returned {len(rvecs)} poses for {len(used_indices)} images")

    logger.info("Intrinsic calibration (%s): rms %.4f px using %d/%d images",
                camera_model.label, rms, len(used_indices), len(observations))

    return IntrinsicCalibration(
        intrinsics=intrinsics,
        rvecs=[np.asarray(r, dtype=np.float64).reshape(3) for r in rvecs],
        tvecs=[np.asarray(t, dtype=np.float64).reshape(3) for t in tvecs],
        used_indices=used_indices,
        rms=float(rms),
    )
