"""
Damped Gauss-Newton refinement of all non-root vertex poses.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .config import COUNT, EPS, Criteria, parse_criteria
from .context import CalibrationContext
from .jacobian import compute_jacobian
from .parameters import poses_to_vector, vector_to_poses
from .reprojection import compute_edge_transforms, compute_reprojection_error

logger = logging.getLogger(__name__)

# The step is scaled by 1 - (1 - ALPHA_SMOOTH)^(k + 1): small first steps ramping towards 1
ALPHA_SMOOTH = 0.01
# Added to the diagonal of J^T J
RIDGE = 1e-10


@dataclass
class OptimizationReport:
    """Outcome of one refinement run."""
    initial_error: float
    final_error: float
    iterations: int
    converged: bool
    errors: List[float] = field(default_factory=list)


def step_scale(iteration: int) -> float:
    return 1.0 - (1.0 - ALPHA_SMOOTH) ** (iteration + 1)


def should_stop(criteria: Criteria, iteration: int, change: float) -> bool:
    crit_type, max_iter, epsilon = criteria
    if crit_type == COUNT:
        return iteration >= max_iter
    if crit_type == EPS:
        return change <= epsilon
    return change <= epsilon or iteration >= max_iter


class ExtrinsicRefiner:
    """
    Refines the initialized pose graph by minimizing total reprojection error.

    The refiner owns the parameter vector during a run; vertex poses and edge
    transforms of the context graph are written back once it terminates.
    """

    def __init__(self, context: CalibrationContext, criteria: Criteria):
        self.context = context
        self.criteria = parse_criteria(criteria)

    def initial_parameters(self) -> np.ndarray:
        return poses_to_vector([v.pose for v in self.context.graph.vertices])

    def compute_step(self, parameters: np.ndarray, iteration: int) -> np.ndarray:
        """One damped Gauss-Newton step: alpha(k) * (J^T J + ridge I)^-1 J^T E."""
        J, E = compute_jacobian(self.context, parameters)
        JTJ = (J.T @ J).toarray() + RIDGE * np.eye(parameters.size)
        JTE = J.T @ E
        return step_scale(iteration) * np.linalg.solve(JTJ, JTE)

    def optimize(self) -> OptimizationReport:
        """
        Iterate until the termination criteria fire, then write back the poses.

        Returns:
            OptimizationReport with initial/final mean reprojection error
        """
        graph = self.context.graph
        parameters = self.initial_parameters()

        initial_error = compute_reprojection_error(self.context, parameters)
        logger.info("Initial mean reprojection error: %.6f px", initial_error)

        errors = []
        change = 1.0
        iteration = 0
        converged = False

        if parameters.size:
            while True:
                if should_stop(self.criteria, iteration, change):
                    converged = bool(self.criteria[0] & EPS) and change <= self.criteria[2]
                    break

                step = self.compute_step(parameters, iteration)
                parameters = parameters + step

                norm = np.linalg.norm(parameters)
                change = np.linalg.norm(step) / norm if norm > 0 else np.linalg.norm(step)

                error = compute_reprojection_error(self.context, parameters)
                errors.append(error)
                logger.debug("Iteration %d: mean error %.6f px, change %.3e", iteration, error, change)
                iteration += 1

        final_error = compute_reprojection_error(self.context, parameters)

        for vertex_idx, pose in enumerate(vector_to_poses(parameters, graph.n_vertices)):
            if vertex_idx > 0:
                graph.vertices[vertex_idx].pose = pose
        for edge, transform in zip(graph.edges, compute_edge_transforms(self.context, parameters)):
            edge.transform = transform

        logger.info("Final mean reprojection error: %.6f px after %d iterations",
                    final_error, iteration)

        return OptimizationReport(
            initial_error=initial_error,
            final_error=final_error,
            iterations=iteration,
            converged=converged,
            errors=errors,
        )


def optimize_extrinsics(context: CalibrationContext, criteria: Criteria) -> OptimizationReport:
    """Refine the poses of an initialized graph in place."""
    return ExtrinsicRefiner(context, criteria).optimize()
