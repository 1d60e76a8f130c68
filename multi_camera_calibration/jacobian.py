"""
Jacobian and residual assembly for the extrinsic refinement.
"""

from typing import Tuple

import numpy as np
from scipy import sparse

from .camera_model import CameraIntrinsics, CameraModel, project_points
from .context import CalibrationContext
from .motion import compose_motion
from .parameters import PARAMS_PER_VERTEX, block_slice, vector_to_parameters, vertex_motion


def compute_photo_camera_jacobian(rvec_photo: np.ndarray, tvec_photo: np.ndarray,
                                  rvec_camera: np.ndarray, tvec_camera: np.ndarray,
                                  object_points: np.ndarray, image_points: np.ndarray,
                                  intrinsics: CameraIntrinsics,
                                  camera_model: CameraModel) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Residuals of one edge and their derivatives w.r.t. both endpoint poses.

    Returns:
        Tuple of (jacobian_photo (2N, 6), jacobian_camera (2N, 6), error (2N,)).
        Error is observed minus projected, alternating x/y per point; the
        jacobians are those of the projected points.
    """
    motion = compose_motion(rvec_photo, tvec_photo, rvec_camera, tvec_camera)
    projected, dx_dmotion = project_points(object_points, motion.rvec, motion.tvec,
                                           intrinsics, camera_model)

    error = (np.asarray(image_points, dtype=np.float64).reshape(-1, 2) - projected).ravel()

    dx_drvec = dx_dmotion[:, :3]
    dx_dtvec = dx_dmotion[:, 3:6]

    jacobian_camera = np.hstack([
        dx_drvec @ motion.drvec_drvec2 + dx_dtvec @ motion.dtvec_drvec2,
        dx_drvec @ motion.drvec_dtvec2 + dx_dtvec @ motion.dtvec_dtvec2,
    ])
    jacobian_photo = np.hstack([
        dx_drvec @ motion.drvec_drvec1 + dx_dtvec @ motion.dtvec_drvec1,
        dx_drvec @ motion.drvec_dtvec1 + dx_dtvec @ motion.dtvec_dtvec1,
    ])
    return jacobian_photo, jacobian_camera, error


def _block_coords(row_start: int, n_rows: int, col_start: int) -> Tuple[np.ndarray, np.ndarray]:
    rows, cols = np.meshgrid(np.arange(row_start, row_start + n_rows),
                             np.arange(col_start, col_start + PARAMS_PER_VERTEX),
                             indexing='ij')
    return rows.ravel(), cols.ravel()


def compute_jacobian(context: CalibrationContext,
                     parameters: np.ndarray) -> Tuple[sparse.csr_matrix, np.ndarray]:
    """
    Assemble the block-sparse Jacobian J and residual vector E.

    Each edge owns 2 * n_points consecutive rows; each non-root vertex owns
    6 consecutive columns. The root camera has no columns.

    Returns:
        Tuple of (J csr_matrix (n_rows, 6 * (n_vertices - 1)), E (n_rows,))
    """
    graph = context.graph
    vector_to_parameters(parameters, graph.n_vertices)

    offsets = context.edge_point_offsets()
    n_rows = int(offsets[-1])
    n_params = parameters.size

    E = np.zeros(n_rows)
    rows, cols, values = [], [], []

    for edge_idx, edge in enumerate(graph.edges):
        object_points, image_points = context.edge_points(edge_idx)
        rvec_photo, tvec_photo = vertex_motion(parameters, edge.photo_vertex)
        rvec_camera, tvec_camera = vertex_motion(parameters, edge.camera_vertex)

        jacobian_photo, jacobian_camera, error = compute_photo_camera_jacobian(
            rvec_photo, tvec_photo, rvec_camera, tvec_camera,
            object_points, image_points,
            context.intrinsics[edge.camera_vertex], context.camera_model
        )

        row_start, row_end = int(offsets[edge_idx]), int(offsets[edge_idx + 1])
        E[row_start:row_end] = error

        blocks = [(edge.photo_vertex, jacobian_photo)]
        if edge.camera_vertex > 0:
            blocks.append((edge.camera_vertex, jacobian_camera))

        for vertex_idx, block in blocks:
            r, c = _block_coords(row_start, row_end - row_start, block_slice(vertex_idx).start)
            rows.append(r)
            cols.append(c)
            values.append(block.ravel())

    if rows:
        J = sparse.coo_matrix((np.concatenate(values), (np.concatenate(rows), np.concatenate(cols))),
                              shape=(n_rows, n_params))
    else:
        J = sparse.coo_matrix((n_rows, n_params))
    return J.tocsr(), E
