"""
Reprojection error of the pose graph for a given parameter vector.
"""

from typing import List

import numpy as np

from .camera_model import project_points
from .context import CalibrationContext
from .motion import compose_rt
from .parameters import vector_to_parameters, vertex_motion
from .utils import matrix_to_rvec_tvec


def compute_edge_transforms(context: CalibrationContext, parameters: np.ndarray) -> List[np.ndarray]:
    """
    Recompute every edge's target -> camera transform from the vertex poses.

    The photo pose (target -> root) is applied first, then the camera pose
    (root -> camera). A root camera contributes the identity.
    """
    # validates the vector length
    vector_to_parameters(parameters, context.graph.n_vertices)

    transforms = []
    for edge in context.graph.edges:
        rvec_photo, tvec_photo = vertex_motion(parameters, edge.photo_vertex)
        rvec_cam, tvec_cam = vertex_motion(parameters, edge.camera_vertex)
        transforms.append(compose_rt(rvec_photo, tvec_photo, rvec_cam, tvec_cam))
    return transforms


def compute_edge_errors(context: CalibrationContext, parameters: np.ndarray) -> List[np.ndarray]:
    """Per-edge arrays of Euclidean pixel errors, one value per observed point."""
    errors = []
    for edge_idx, transform in enumerate(compute_edge_transforms(context, parameters)):
        edge = context.graph.edges[edge_idx]
        object_points, image_points = context.edge_points(edge_idx)
        rvec, tvec = matrix_to_rvec_tvec(transform)

        projected, _ = project_points(object_points, rvec, tvec,
                                      context.intrinsics[edge.camera_vertex],
                                      context.camera_model)
        errors.append(np.linalg.norm(image_points - projected, axis=1))
    return errors


def compute_reprojection_error(context: CalibrationContext, parameters: np.ndarray) -> float:
    """
    Mean Euclidean reprojection error in pixels over all points of all edges.

    Returns 0.0 if the graph has no observed points.
    """
    errors = compute_edge_errors(context, parameters)
    total_points = sum(len(e) for e in errors)
    if total_points == 0:
        return 0.0
    return float(sum(e.sum() for e in errors) / total_points)
