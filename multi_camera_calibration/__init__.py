# multi_camera_calibration package
"""
Multi-camera extrinsic calibration from a shared planar calibration target.

This package provides tools for estimating the relative poses of a rig of
cameras, and the target pose at every capture instant, by building a pose
graph of cameras and capture instants and refining it with a damped
Gauss-Newton bundle adjustment of the reprojection error.
"""

from .camera_model import CameraIntrinsics, CameraModel, project_points
from .calibration_solver import CalibrationResult, MultiCameraCalibrationSolver
from .config import CalibrationConfig
from .context import CalibrationContext, CameraObservations, load_correspondences
from .optimizer import ExtrinsicRefiner, OptimizationReport, optimize_extrinsics
from .pose_graph import DisconnectedCameraError, Edge, PoseGraph, Vertex
from .reprojection import compute_reprojection_error
from .utils import parse_image_name, save_calibration_yaml

__all__ = [
    'CalibrationConfig',
    'CalibrationContext',
    'CalibrationResult',
    'CameraIntrinsics',
    'CameraModel',
    'CameraObservations',
    'DisconnectedCameraError',
    'Edge',
    'ExtrinsicRefiner',
    'MultiCameraCalibrationSolver',
    'OptimizationReport',
    'PoseGraph',
    'Vertex',
    'compute_reprojection_error',
    'load_correspondences',
    'optimize_extrinsics',
    'parse_image_name',
    'project_points',
    'save_calibration_yaml',
]
