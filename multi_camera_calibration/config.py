"""
Configuration for multi-camera calibration runs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import cv2

from .camera_model import CameraModel
from .utils import load_config_file

COUNT = cv2.TERM_CRITERIA_COUNT
EPS = cv2.TERM_CRITERIA_EPS

CRITERIA_TYPES = {
    'count': COUNT,
    'eps': EPS,
    'count+eps': COUNT + EPS,
    'eps+count': COUNT + EPS,
}

Criteria = Tuple[int, int, float]


def parse_criteria(value: Any) -> Criteria:
    """
    Normalize termination criteria to an OpenCV-style (type, max_iter, epsilon) tuple.

    Accepts such a tuple, or a dict with keys 'type' ('count', 'eps' or
    'count+eps', or the integer flag), 'max_iter' and 'epsilon'.
    """
    if isinstance(value, dict):
        crit_type = value.get('type', 'count+eps')
        max_iter = value.get('max_iter', 0)
        epsilon = value.get('epsilon', 0.0)
    else:
        crit_type, max_iter, epsilon = value

    if isinstance(crit_type, str):
        key = crit_type.replace(' ', '').lower()
        if key not in CRITERIA_TYPES:
            raise ValueError(f"Unknown termination criteria type: {crit_type}")
        crit_type = CRITERIA_TYPES[key]

    crit_type = int(crit_type)
    if crit_type not in (COUNT, EPS, COUNT + EPS):
        raise ValueError(f"Unknown termination criteria type: {crit_type}")
    if crit_type & COUNT and int(max_iter) < 0:
        raise ValueError(f"max_iter must be non-negative, got {max_iter}")

    return crit_type, int(max_iter), float(epsilon)


@dataclass
class CalibrationConfig:
    """Settings of one calibration run."""

    n_cameras: int
    """Number of cameras in the rig; camera 0 is the reference frame"""

    camera_model: CameraModel = CameraModel.PINHOLE
    """Intrinsic model shared by all cameras"""

    image_size: Optional[Tuple[int, int]] = None
    """(width, height) in pixels, needed only when intrinsics are calibrated here"""

    min_matches: int = 20
    """Images with this many correspondences or fewer are discarded"""

    criteria: Criteria = field(default_factory=lambda: (COUNT + EPS, 200, 1e-7))
    """Termination criteria of the extrinsic refinement"""

    fail_on_disconnected: bool = False
    """Abort instead of warning when a camera is not connected to camera 0"""

    log_level: str = 'INFO'

    def __post_init__(self):
        if self.n_cameras < 1:
            raise ValueError(f"n_cameras must be positive, got {self.n_cameras}")
        self.camera_model = CameraModel.from_value(self.camera_model)
        self.criteria = parse_criteria(self.criteria)
        if self.image_size is not None:
            self.image_size = (int(self.image_size[0]), int(self.image_size[1]))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CalibrationConfig':
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if 'n_cameras' not in known:
            raise ValueError("Configuration is missing 'n_cameras'")
        return cls(**known)

    @classmethod
    def from_yaml(cls, config_path: str) -> 'CalibrationConfig':
        return cls.from_dict(load_config_file(config_path))
