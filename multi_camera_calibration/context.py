"""
Per-run calibration state shared by the graph builder, initializer and refiner.
"""

import glob
import os
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .camera_model import CameraIntrinsics, CameraModel
from .pose_graph import PoseGraph
from .utils import as_image_points, as_object_points, parse_image_name


@dataclass
class CameraObservations:
    """Correspondences collected by one camera, one entry per image."""
    object_points: List[np.ndarray] = field(default_factory=list)   # (N, 3) each
    image_points: List[np.ndarray] = field(default_factory=list)    # (N, 2) each
    timestamps: List[int] = field(default_factory=list)
    image_names: List[str] = field(default_factory=list)

    def add(self, timestamp: int, object_points: np.ndarray, image_points: np.ndarray,
            name: Optional[str] = None):
        """Append one image's correspondences."""
        if int(timestamp) < 0:
            raise ValueError(f"Timestamps must be non-negative, got {timestamp}")
        obj = as_object_points(object_points)
        img = as_image_points(image_points)
        if len(obj) != len(img):
            raise ValueError(f"Point count mismatch: {len(obj)} object vs {len(img)} image points")

        self.object_points.append(obj)
        self.image_points.append(img)
        self.timestamps.append(int(timestamp))
        self.image_names.append(name if name is not None else f"{timestamp}")

    def extend(self, other: 'CameraObservations'):
        """Append every image of another observation set."""
        self.object_points.extend(other.object_points)
        self.image_points.extend(other.image_points)
        self.timestamps.extend(other.timestamps)
        self.image_names.extend(other.image_names)

    @property
    def point_counts(self) -> List[int]:
        return [len(p) for p in self.object_points]

    def __len__(self) -> int:
        return len(self.object_points)


def load_correspondences(directory: str, n_cameras: int) -> List[CameraObservations]:
    """
    Load per-image correspondences from a directory of .npz files.

    Each file is named "<camera>-<timestamp>.npz" and holds two arrays,
    'object_points' and 'image_points'. Images are added in sorted
    file-name order and named by their file's basename.

    Returns:
        One CameraObservations per camera
    """
    per_camera = [CameraObservations() for _ in range(n_cameras)]

    for path in sorted(glob.glob(os.path.join(directory, '*.npz'))):
        camera, timestamp = parse_image_name(path)
        if not 0 <= camera < n_cameras:
            raise ValueError(f"Camera index {camera} in '{path}' outside [0, {n_cameras})")

        with np.load(path) as data:
            try:
                per_camera[camera].add(timestamp, data['object_points'], data['image_points'],
                                       os.path.basename(path))
            except ValueError as e:
                raise ValueError(f"Invalid correspondences in '{path}': {e}") from e

    return per_camera


@dataclass
class CalibrationContext:
    """
    Everything one calibration run needs, owned by the caller for the run.

    observations[c] and intrinsics[c] belong to camera c; an edge's
    photo_index indexes into observations[edge.camera_vertex].
    """
    camera_model: CameraModel
    graph: PoseGraph
    observations: List[CameraObservations]
    intrinsics: List[CameraIntrinsics]

    def __post_init__(self):
        n = self.graph.n_cameras
        if len(self.observations) != n or len(self.intrinsics) != n:
            raise ValueError(f"Expected observations and intrinsics for {n} cameras, got "
                             f"{len(self.observations)} and {len(self.intrinsics)}")

    def edge_points(self, edge_idx: int):
        """Return (object_points, image_points) observed along an edge."""
        edge = self.graph.edges[edge_idx]
        obs = self.observations[edge.camera_vertex]
        return obs.object_points[edge.photo_index], obs.image_points[edge.photo_index]

    def edge_point_offsets(self) -> np.ndarray:
        """Row offsets of each edge in the stacked residual vector (2 rows per point)."""
        counts = [2 * len(self.edge_points(i)[0]) for i in range(len(self.graph.edges))]
        return np.concatenate([[0], np.cumsum(counts, dtype=np.int64)]).astype(np.int64)
