"""
Pose graph of cameras and target capture instants.

Vertices 0..n_cameras-1 are cameras; every later vertex is a "photo" vertex,
one per distinct capture timestamp. Each edge is one accepted observation of
the target by a camera and stores the transform mapping the target frame
observed in that image into the camera frame (target -> camera).

Pose conventions:
    camera vertex pose  = T_cam_root     (root camera frame -> camera frame)
    photo vertex pose   = T_root_target  (target frame -> root camera frame)

so an edge's transform is T_cam_root * T_root_target. Vertex 0 is the root
and keeps the identity pose.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .utils import check_transform, compose_transforms, invert_transform, rvec_tvec_to_matrix

logger = logging.getLogger(__name__)

INVALID = -1
# Photo timestamps are non-negative, so this never names a capture instant
CAMERA_TIMESTAMP = -1
ROOT_VERTEX = 0


class DisconnectedCameraError(RuntimeError):
    """Raised when strict calibration finds cameras unreachable from the root."""

    def __init__(self, cameras: Sequence[int]):
        self.cameras = list(cameras)
        super().__init__(f"Cameras not connected to camera 0: {self.cameras}")


@dataclass
class Vertex:
    """Camera or photo-instant vertex."""
    pose: np.ndarray = field(default_factory=lambda: np.eye(4))
    timestamp: int = CAMERA_TIMESTAMP

    @property
    def is_camera(self) -> bool:
        return self.timestamp == CAMERA_TIMESTAMP


@dataclass
class Edge:
    """One accepted observation linking a camera vertex to a photo vertex."""
    camera_vertex: int
    photo_vertex: int
    photo_index: int            # index into that camera's observation list
    transform: np.ndarray       # 4x4, target -> camera


class PoseGraph:
    """
    Graph of camera and photo vertices connected by observation edges.
    """

    def __init__(self, n_cameras: int):
        if n_cameras < 1:
            raise ValueError(f"At least one camera is required, got {n_cameras}")
        self.n_cameras = n_cameras
        self.vertices: List[Vertex] = [Vertex() for _ in range(n_cameras)]
        self.edges: List[Edge] = []

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    def is_camera(self, vertex_idx: int) -> bool:
        return vertex_idx < self.n_cameras

    def get_photo_vertex(self, timestamp: int) -> int:
        """Return the photo vertex for a timestamp, creating it on first sighting."""
        if timestamp < 0:
            raise ValueError(f"Photo timestamps must be non-negative, got {timestamp}")
        for idx in range(self.n_cameras, len(self.vertices)):
            if self.vertices[idx].timestamp == timestamp:
                return idx

        self.vertices.append(Vertex(pose=np.eye(4), timestamp=int(timestamp)))
        return len(self.vertices) - 1

    def add_edge(self, camera: int, timestamp: int, photo_index: int,
                 transform: np.ndarray) -> int:
        """Add one observation edge and return its index."""
        if not 0 <= camera < self.n_cameras:
            raise ValueError(f"Camera index {camera} outside [0, {self.n_cameras})")
        check_transform(transform)

        photo_vertex = self.get_photo_vertex(timestamp)
        self.edges.append(Edge(camera, photo_vertex, photo_index,
                               np.asarray(transform, dtype=np.float64)))
        return len(self.edges) - 1

    def add_camera_observations(self, camera: int,
                                rvecs: Sequence[np.ndarray], tvecs: Sequence[np.ndarray],
                                point_counts: Sequence[int], timestamps: Sequence[int],
                                image_indices: Sequence[int] = None,
                                min_matches: int = 0) -> int:
        """
        Add the edges contributed by one camera.

        Args:
            camera: Camera index
            rvecs, tvecs: Per-image target -> camera extrinsic guesses
            point_counts: Number of correspondences of every image of this camera
            timestamps: Capture timestamp of every image of this camera
            image_indices: Image index each (rvec, tvec) belongs to; defaults to 0..len-1
            min_matches: Images with point count <= min_matches are skipped

        Returns:
            Number of edges added
        """
        if len(rvecs) != len(tvecs):
            raise ValueError(f"Got {len(rvecs)} rotation and {len(tvecs)} translation vectors")
        if image_indices is None:
            image_indices = range(len(rvecs))
        image_indices = [int(i) for i in np.ravel(image_indices)]
        if len(image_indices) != len(rvecs):
            raise ValueError("One image index is required per extrinsic guess")

        added = 0
        for rvec, tvec, image_idx in zip(rvecs, tvecs, image_indices):
            if point_counts[image_idx] <= min_matches:
                continue
            self.add_edge(camera, timestamps[image_idx], image_idx,
                          rvec_tvec_to_matrix(rvec, tvec))
            added += 1
        return added

    def adjacency(self) -> Dict[int, Dict[int, int]]:
        """
        Build the undirected adjacency list {vertex: {neighbour: edge_index}}.

        Edges are logically directed camera -> photo but traversal ignores direction.
        """
        neighbours: Dict[int, Dict[int, int]] = {v: {} for v in range(len(self.vertices))}
        for edge_idx, edge in enumerate(self.edges):
            neighbours[edge.camera_vertex][edge.photo_vertex] = edge_idx
            neighbours[edge.photo_vertex][edge.camera_vertex] = edge_idx
        return neighbours

    def adjacency_matrix(self) -> np.ndarray:
        """Dense symmetric view of the adjacency: cell = edge index + 1, 0 if unconnected."""
        n = len(self.vertices)
        G = np.zeros((n, n), dtype=np.int64)
        for vertex, row in self.adjacency().items():
            for neighbour, edge_idx in row.items():
                G[vertex, neighbour] = edge_idx + 1
        return G

    def traverse(self, root: int = ROOT_VERTEX) -> Tuple[List[int], List[int]]:
        """
        Breadth-first traversal from root.

        Returns:
            Tuple of (order, predecessors). order starts with root and lists each
            reachable vertex once; predecessors[v] is INVALID for the root and for
            unreachable vertices.
        """
        neighbours = self.adjacency()
        predecessors = [INVALID] * len(self.vertices)
        visited = {root}
        order = [root]
        queue = deque([root])

        while queue:
            current = queue.popleft()
            for neighbour in sorted(neighbours[current]):
                if neighbour in visited:
                    continue
                visited.add(neighbour)
                queue.append(neighbour)
                order.append(neighbour)
                predecessors[neighbour] = current

        return order, predecessors

    def initialize(self) -> List[int]:
        """
        Propagate initial poses along the BFS spanning tree from the root.

        Toward a camera the pose is edge * pre^-1 (T_cam_target * T_target_root);
        toward a photo it is pre^-1 * edge (T_root_cam * T_cam_target).

        Returns:
            Indices of cameras unreachable from the root. They keep the identity pose.
        """
        for vertex in self.vertices:
            vertex.pose = np.eye(4)

        neighbours = self.adjacency()
        order, predecessors = self.traverse(ROOT_VERTEX)

        disconnected = [cam for cam in range(1, self.n_cameras) if predecessors[cam] == INVALID]
        for cam in disconnected:
            logger.warning("Camera %d is not connected to camera %d; its pose stays identity",
                           cam, ROOT_VERTEX)

        for vertex_idx in order[1:]:
            pre = predecessors[vertex_idx]
            pre_pose_inv = invert_transform(self.vertices[pre].pose)
            transform = self.edges[neighbours[vertex_idx][pre]].transform

            if self.is_camera(vertex_idx):
                self.vertices[vertex_idx].pose = compose_transforms(transform, pre_pose_inv)
            else:
                self.vertices[vertex_idx].pose = compose_transforms(pre_pose_inv, transform)

        unreached_photos = len(self.vertices) - len(order) - len(disconnected)
        logger.info("Initialized pose graph: %d cameras, %d photo vertices, %d edges "
                    "(%d unreachable photo vertices)",
                    self.n_cameras, len(self.vertices) - self.n_cameras, len(self.edges),
                    unreached_photos)

        return disconnected

    def camera_poses(self) -> List[np.ndarray]:
        return [self.vertices[i].pose.copy() for i in range(self.n_cameras)]

    def target_poses(self) -> Dict[int, np.ndarray]:
        return {v.timestamp: v.pose.copy() for v in self.vertices[self.n_cameras:]}

    def edges_per_camera(self) -> List[int]:
        counts = [0] * self.n_cameras
        for edge in self.edges:
            counts[edge.camera_vertex] += 1
        return counts
