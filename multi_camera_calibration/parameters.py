"""
Packing of vertex poses into the flat optimizer parameter vector.

The vector holds one [rvec(3), tvec(3)] block per non-root vertex, vertex 1
first. The root vertex is fixed at identity and has no block.
"""

from typing import List, Sequence, Tuple

import numpy as np

from .utils import matrix_to_rvec_tvec, rvec_tvec_to_matrix

PARAMS_PER_VERTEX = 6


def block_slice(vertex_idx: int) -> slice:
    """Slice of a non-root vertex's 6 parameters within the vector."""
    if vertex_idx < 1:
        raise ValueError(f"The root vertex has no parameters (got vertex {vertex_idx})")
    start = (vertex_idx - 1) * PARAMS_PER_VERTEX
    return slice(start, start + PARAMS_PER_VERTEX)


def parameters_to_vector(rvecs: Sequence[np.ndarray], tvecs: Sequence[np.ndarray]) -> np.ndarray:
    """
    Pack per-vertex rotation and translation vectors (root excluded).

    Args:
        rvecs, tvecs: One 3-vector each per non-root vertex, vertex 1 first

    Returns:
        Flat float64 vector of length 6 * len(rvecs)
    """
    if len(rvecs) != len(tvecs):
        raise ValueError(f"Got {len(rvecs)} rotation and {len(tvecs)} translation vectors")

    parameters = np.zeros(PARAMS_PER_VERTEX * len(rvecs))
    for i, (rvec, tvec) in enumerate(zip(rvecs, tvecs)):
        rvec = np.asarray(rvec, dtype=np.float64).ravel()
        tvec = np.asarray(tvec, dtype=np.float64).ravel()
        if rvec.size != 3 or tvec.size != 3:
            raise ValueError(f"Vertex {i + 1}: rvec and tvec must have 3 elements")
        parameters[i * 6:i * 6 + 3] = rvec
        parameters[i * 6 + 3:i * 6 + 6] = tvec
    return parameters


def vector_to_parameters(parameters: np.ndarray,
                         n_vertices: int) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Unpack the flat vector into per-vertex rotation and translation vectors.

    Returns:
        Tuple of (rvecs, tvecs), vertex 1 first
    """
    parameters = np.asarray(parameters, dtype=np.float64)
    expected = PARAMS_PER_VERTEX * (n_vertices - 1)
    if parameters.ndim != 1 or parameters.size != expected:
        raise ValueError(f"Parameter vector must have shape ({expected},) for "
                         f"{n_vertices} vertices, got {parameters.shape}")

    blocks = parameters.reshape(-1, PARAMS_PER_VERTEX)
    return [b[:3].copy() for b in blocks], [b[3:].copy() for b in blocks]


def poses_to_vector(poses: Sequence[np.ndarray]) -> np.ndarray:
    """Encode 4x4 vertex poses (root first, it is skipped) into the parameter vector."""
    rvecs, tvecs = [], []
    for pose in poses[1:]:
        rvec, tvec = matrix_to_rvec_tvec(pose)
        rvecs.append(rvec)
        tvecs.append(tvec)
    return parameters_to_vector(rvecs, tvecs)


def vector_to_poses(parameters: np.ndarray, n_vertices: int) -> List[np.ndarray]:
    """Decode the parameter vector into 4x4 poses for all vertices, root (identity) first."""
    rvecs, tvecs = vector_to_parameters(parameters, n_vertices)
    return [np.eye(4)] + [rvec_tvec_to_matrix(r, t) for r, t in zip(rvecs, tvecs)]


def vertex_motion(parameters: np.ndarray, vertex_idx: int) -> Tuple[np.ndarray, np.ndarray]:
    """(rvec, tvec) of a vertex; zeros for the root."""
    if vertex_idx == 0:
        return np.zeros(3), np.zeros(3)
    block = parameters[block_slice(vertex_idx)]
    return block[:3], block[3:]
