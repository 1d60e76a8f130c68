"""
Extrinsic calibration solver for multi-camera systems.
Computes the poses of all cameras relative to camera 0, plus the target pose at
every capture instant, from planar calibration target observations.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .camera_model import CameraIntrinsics, CameraModel
from .config import CalibrationConfig
from .context import CalibrationContext, CameraObservations
from .intrinsic_calibrator import IntrinsicCalibration, calibrate_intrinsics
from .optimizer import OptimizationReport, optimize_extrinsics
from .pose_graph import DisconnectedCameraError, PoseGraph
from .utils import parse_image_name

logger = logging.getLogger(__name__)


@dataclass
class CalibrationResult:
    """Result of a full multi-camera calibration run."""
    n_cameras: int
    camera_model: CameraModel
    intrinsics: List[CameraIntrinsics]
    camera_poses: List[np.ndarray]             # 4x4, camera_0 frame -> camera frame
    target_poses: Dict[int, np.ndarray]        # timestamp -> 4x4, target -> camera_0 frame
    mean_error: float
    disconnected_cameras: List[int] = field(default_factory=list)
    report: Optional[OptimizationReport] = None


class MultiCameraCalibrationSolver:
    """
    Solver for multi-camera extrinsic calibration.

    Collects per-camera correspondences, calibrates intrinsics where none were
    supplied, then builds, initializes and refines the pose graph.
    """

    def __init__(self, config: CalibrationConfig):
        """
        Initialize the calibration solver.

        Args:
            config: Calibration configuration
        """
        self.config = config
        self.observations = [CameraObservations() for _ in range(config.n_cameras)]

        # Intrinsics and extrinsic guesses, either supplied or calibrated here
        self.calibrations: Dict[int, IntrinsicCalibration] = {}

        self.context: Optional[CalibrationContext] = None

    def add_observation(self, camera: int, timestamp: int,
                        object_points: np.ndarray, image_points: np.ndarray,
                        name: Optional[str] = None):
        """Add the correspondences of one image taken by camera at timestamp."""
        self._check_camera(camera)
        self.observations[camera].add(timestamp, object_points, image_points, name)

    def add_correspondence_file(self, path: str):
        """Add one '<camera>-<timestamp>.npz' file holding object_points and image_points."""
        camera, timestamp = parse_image_name(path)
        with np.load(path) as data:
            self.add_observation(camera, timestamp, data['object_points'], data['image_points'],
                                 name=os.path.basename(path))

    def add_correspondences(self, per_camera: Sequence[CameraObservations]):
        """Append one CameraObservations per camera, e.g. from load_correspondences."""
        if len(per_camera) != self.config.n_cameras:
            raise ValueError(f"Expected observations for {self.config.n_cameras} cameras, "
                             f"got {len(per_camera)}")
        for camera, obs in enumerate(per_camera):
            self.observations[camera].extend(obs)

    def set_intrinsics(self, camera: int, intrinsics: CameraIntrinsics,
                       rvecs: Sequence[np.ndarray], tvecs: Sequence[np.ndarray],
                       used_indices: Optional[Sequence[int]] = None, rms: float = 0.0):
        """
        Supply precomputed intrinsics and per-image extrinsic guesses for a camera.

        Args:
            camera: Camera index
            intrinsics: Camera intrinsics
            rvecs, tvecs: Target -> camera guesses
            used_indices: Image index of each guess; defaults to 0..len(rvecs)-1
        """
        self._check_camera(camera)
        if used_indices is None:
            used_indices = list(range(len(rvecs)))
        self.calibrations[camera] = IntrinsicCalibration(
            intrinsics=intrinsics,
            rvecs=[np.asarray(r, dtype=np.float64).reshape(3) for r in rvecs],
            tvecs=[np.asarray(t, dtype=np.float64).reshape(3) for t in tvecs],
            used_indices=[int(i) for i in used_indices],
            rms=rms,
        )

    def calibrate_cameras(self):
        """Calibrate the intrinsics of every camera that has none yet."""
        for camera in range(self.config.n_cameras):
            if camera in self.calibrations:
                continue
            logger.info("Calibrating intrinsics of camera %d (%d images)",
                        camera, len(self.observations[camera]))
            self.calibrations[camera] = calibrate_intrinsics(
                self.observations[camera], self.config.image_size, self.config.camera_model
            )

    def build_graph(self) -> PoseGraph:
        """Turn the per-camera extrinsic guesses into the pose graph."""
        graph = PoseGraph(self.config.n_cameras)
        for camera in range(self.config.n_cameras):
            calib = self.calibrations[camera]
            obs = self.observations[camera]
            added = graph.add_camera_observations(
                camera, calib.rvecs, calib.tvecs,
                point_counts=obs.point_counts,
                timestamps=obs.timestamps,
                image_indices=calib.used_indices,
                min_matches=self.config.min_matches,
            )
            logger.info("Camera %d: %d/%d images accepted as edges", camera, added, len(obs))
        return graph

    def run(self) -> CalibrationResult:
        """
        Run the full calibration.

        Returns:
            CalibrationResult with intrinsics, camera poses and target poses
        """
        self.calibrate_cameras()

        graph = self.build_graph()
        disconnected = graph.initialize()
        if disconnected and self.config.fail_on_disconnected:
            raise DisconnectedCameraError(disconnected)

        self.context = CalibrationContext(
            camera_model=self.config.camera_model,
            graph=graph,
            observations=self.observations,
            intrinsics=[self.calibrations[c].intrinsics for c in range(self.config.n_cameras)],
        )

        report = optimize_extrinsics(self.context, self.config.criteria)

        return CalibrationResult(
            n_cameras=self.config.n_cameras,
            camera_model=self.config.camera_model,
            intrinsics=self.context.intrinsics,
            camera_poses=graph.camera_poses(),
            target_poses=graph.target_poses(),
            mean_error=report.final_error,
            disconnected_cameras=disconnected,
            report=report,
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Get statistics about collected calibration data."""
        edges = self.context.graph.edges_per_camera() if self.context else None
        stats = {}
        for camera, obs in enumerate(self.observations):
            stats[f"camera_{camera}"] = {
                'num_images': len(obs),
                'avg_points': float(np.mean(obs.point_counts)) if len(obs) else 0.0,
                'num_edges': edges[camera] if edges is not None else None,
            }
        return stats

    def clear_data(self):
        """Clear all collected calibration data."""
        self.observations = [CameraObservations() for _ in range(self.config.n_cameras)]
        self.calibrations.clear()
        self.context = None

    def _check_camera(self, camera: int):
        if not 0 <= camera < self.config.n_cameras:
            raise ValueError(f"Camera index {camera} outside [0, {self.config.n_cameras})")
