"""
Rigid-motion composition with analytic derivatives.

A motion is a (rvec, tvec) pair acting as x -> R(rvec) x + tvec. Composing
motion 1 followed by motion 2 gives

    R3 = R2 R1
    t3 = R2 t1 + t2

Derivatives are chained through the 3x3 rotation-matrix representation using
the Rodrigues Jacobians and matrix-product derivatives. All matrices are
flattened row-major, the layout cv2.Rodrigues and cv2.matMulDeriv share.
"""

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np


def _vec3(v: np.ndarray) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    if v.size != 3:
        raise ValueError(f"Expected a 3-vector, got shape {v.shape}")
    return v.reshape(3, 1)


def rodrigues_to_matrix(rvec: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a rotation vector into a rotation matrix.

    Returns:
        Tuple of (R 3x3, dR/drvec 9x3)
    """
    R, jacobian = cv2.Rodrigues(_vec3(rvec))
    return R, jacobian.T


def matrix_to_rodrigues(R: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a rotation matrix into a rotation vector.

    Returns:
        Tuple of (rvec [3], drvec/dR 3x9)
    """
    R = np.ascontiguousarray(R, dtype=np.float64)
    if R.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 rotation matrix, got shape {R.shape}")
    rvec, jacobian = cv2.Rodrigues(R)
    return rvec.reshape(3), jacobian.T


@dataclass
class ComposedMotion:
    """Result of compose_motion: the net motion and its partial derivatives."""
    rvec: np.ndarray
    tvec: np.ndarray
    drvec_drvec1: np.ndarray
    drvec_dtvec1: np.ndarray
    drvec_drvec2: np.ndarray
    drvec_dtvec2: np.ndarray
    dtvec_drvec1: np.ndarray
    dtvec_dtvec1: np.ndarray
    dtvec_drvec2: np.ndarray
    dtvec_dtvec2: np.ndarray


def compose_motion(rvec1: np.ndarray, tvec1: np.ndarray,
                   rvec2: np.ndarray, tvec2: np.ndarray) -> ComposedMotion:
    """
    Compose motion 1 followed by motion 2 and differentiate the result.

    Args:
        rvec1, tvec1: First motion (applied first)
        rvec2, tvec2: Second motion (applied second)

    Returns:
        ComposedMotion with the net (rvec, tvec) and the eight 3x3 blocks
        d{rvec,tvec}/d{rvec1,tvec1,rvec2,tvec2}.
    """
    t1 = _vec3(tvec1)
    t2 = _vec3(tvec2)

    # Rotations
    R1, dR1_drvec1 = rodrigues_to_matrix(rvec1)
    R2, dR2_drvec2 = rodrigues_to_matrix(rvec2)

    R3 = R2 @ R1
    dR3_dR2, dR3_dR1 = cv2.matMulDeriv(R2, R1)
    rvec3, drvec3_dR3 = matrix_to_rodrigues(R3)

    drvec3_drvec1 = drvec3_dR3 @ dR3_dR1 @ dR1_drvec1
    drvec3_drvec2 = drvec3_dR3 @ dR3_dR2 @ dR2_drvec2

    # Translations
    t3_rot = R2 @ t1
    dt3_dR2, dt3_dt1 = cv2.matMulDeriv(R2, t1)
    t3 = t3_rot + t2

    return ComposedMotion(
        rvec=rvec3,
        tvec=t3.reshape(3),
        drvec_drvec1=drvec3_drvec1,
        drvec_dtvec1=np.zeros((3, 3)),
        drvec_drvec2=drvec3_drvec2,
        drvec_dtvec2=np.zeros((3, 3)),
        dtvec_drvec1=np.zeros((3, 3)),
        dtvec_dtvec1=dt3_dt1,
        dtvec_drvec2=dt3_dR2 @ dR2_drvec2,
        dtvec_dtvec2=np.eye(3),
    )


def compose_rt(rvec1: np.ndarray, tvec1: np.ndarray,
               rvec2: np.ndarray, tvec2: np.ndarray) -> np.ndarray:
    """Compose motion 1 followed by motion 2 into a 4x4 transform, without derivatives."""
    R1, _ = rodrigues_to_matrix(rvec1)
    R2, _ = rodrigues_to_matrix(rvec2)

    T = np.eye(4)
    T[:3, :3] = R2 @ R1
    T[:3, 3] = (R2 @ _vec3(tvec1) + _vec3(tvec2)).reshape(3)
    return T
