#!/usr/bin/env python3
"""
Unit tests for transform helpers, file name decoding and result I/O.
"""

import os
import sys
import tempfile
import unittest

import numpy as np
import yaml
from scipy.spatial.transform import Rotation

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from multi_camera_calibration.calibration_solver import CalibrationResult
from multi_camera_calibration.camera_model import CameraIntrinsics, CameraModel
from multi_camera_calibration.utils import (
    as_object_points,
    compose_transforms,
    invert_transform,
    matrix_to_rvec_tvec,
    matrix_to_transform,
    parse_image_name,
    rvec_tvec_to_matrix,
    save_calibration_yaml,
)


class TestTransformUtils(unittest.TestCase):
    """Test transformation utility functions."""

    def test_rvec_tvec_roundtrip(self):
        rvec = np.array([0.1, -0.4, 0.25])
        tvec = np.array([1.0, 2.0, 3.0])

        T = rvec_tvec_to_matrix(rvec, tvec)
        rvec_back, tvec_back = matrix_to_rvec_tvec(T)

        np.testing.assert_array_almost_equal(rvec, rvec_back, decimal=10)
        np.testing.assert_array_almost_equal(tvec, tvec_back, decimal=12)
        np.testing.assert_array_almost_equal(T[3], [0, 0, 0, 1])

    def test_rotation_block_matches_scipy(self):
        rvec = np.array([0.3, 0.2, -0.5])
        T = rvec_tvec_to_matrix(rvec, np.zeros(3))
        np.testing.assert_array_almost_equal(
            T[:3, :3], Rotation.from_rotvec(rvec).as_matrix(), decimal=10
        )

    def test_matrix_to_transform_quaternion(self):
        R = Rotation.from_euler('z', 90, degrees=True)
        T = np.eye(4)
        T[:3, :3] = R.as_matrix()
        T[:3, 3] = [1.0, 2.0, 3.0]

        t, q = matrix_to_transform(T)

        np.testing.assert_array_almost_equal(t, [1.0, 2.0, 3.0])
        expected = R.as_quat()
        if np.dot(expected, q) < 0:
            q = -q
        np.testing.assert_array_almost_equal(q, expected, decimal=6)

    def test_invert_transform(self):
        T = np.eye(4)
        T[:3, 3] = [1.0, 2.0, 3.0]
        T[:3, :3] = Rotation.from_euler('z', 45, degrees=True).as_matrix()

        T_inv = invert_transform(T)
        T_identity = compose_transforms(T, T_inv)

        np.testing.assert_array_almost_equal(T_identity, np.eye(4), decimal=6)

    def test_compose_transforms(self):
        T1 = np.eye(4)
        T1[:3, 3] = [1.0, 0.0, 0.0]

        T2 = np.eye(4)
        T2[:3, 3] = [0.0, 1.0, 0.0]

        T_composed = compose_transforms(T1, T2)

        np.testing.assert_array_almost_equal(T_composed[:3, 3], [1.0, 1.0, 0.0], decimal=6)

    def test_compose_transforms_chain(self):
        A = rvec_tvec_to_matrix([0.1, 0.0, 0.2], [1.0, 0.0, 0.0])
        B = rvec_tvec_to_matrix([0.0, -0.3, 0.0], [0.0, 2.0, 0.0])
        C = rvec_tvec_to_matrix([0.2, 0.1, 0.0], [0.0, 0.0, 3.0])

        np.testing.assert_array_almost_equal(compose_transforms(A, B, C), A @ B @ C, decimal=12)
        np.testing.assert_array_almost_equal(compose_transforms(A), A, decimal=12)
        with self.assertRaises(ValueError):
            compose_transforms()
        with self.assertRaises(ValueError):
            compose_transforms(A, np.eye(3))

    def test_malformed_transform_rejected(self):
        with self.assertRaises(ValueError):
            invert_transform(np.eye(3))
        with self.assertRaises(ValueError):
            matrix_to_rvec_tvec(np.eye(4)[:3])


class TestImageNames(unittest.TestCase):
    """Test decoding of '<camera>-<timestamp>' file names."""

    def test_plain_name(self):
        self.assertEqual(parse_image_name('3-42.png'), (3, 42))

    def test_path_and_extension(self):
        self.assertEqual(parse_image_name('/data/rig/0-0007.npz'), (0, 7))
        self.assertEqual(parse_image_name('C:\\data\\rig\\1-15.jpg'), (1, 15))

    def test_stem_cut_at_first_dot(self):
        self.assertEqual(parse_image_name('2-8.left.png'), (2, 8))

    def test_invalid_names(self):
        for name in ['cam1-2.png', '1_2.png', '12.png', '1-2-3.png', '']:
            with self.assertRaises(ValueError, msg=name):
                parse_image_name(name)


class TestPointArrays(unittest.TestCase):
    """Test normalization of correspondence arrays."""

    def test_planar_object_points_padded(self):
        pts = as_object_points(np.ones((4, 1, 2)))
        self.assertEqual(pts.shape, (4, 3))
        np.testing.assert_array_equal(pts[:, 2], 0.0)


class TestResultWriter(unittest.TestCase):
    """Test YAML serialization of calibration results."""

    def _result(self, camera_model=CameraModel.OMNIDIRECTIONAL):
        K = np.array([[500.0, 0.0, 320.0], [0.0, 500.0, 240.0], [0.0, 0.0, 1.0]])
        pose1 = rvec_tvec_to_matrix([0.0, 0.1, 0.0], [-0.2, 0.0, 0.0])
        return CalibrationResult(
            n_cameras=2,
            camera_model=camera_model,
            intrinsics=[CameraIntrinsics(K, np.zeros(4), xi=1.1),
                        CameraIntrinsics(K, np.zeros(4), xi=0.9)],
            camera_poses=[np.eye(4), pose1],
            target_poses={17: rvec_tvec_to_matrix([0.1, 0.0, 0.0], [0.0, 0.0, 1.0])},
            mean_error=0.25,
        )

    def test_save_calibration_yaml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'out.yaml')
            save_calibration_yaml(self._result(), path)
            with open(path, 'r') as f:
                data = yaml.safe_load(f)

        self.assertEqual(data['n_cameras'], 2)
        self.assertEqual(data['camera_model'], 'omnidirectional')
        self.assertAlmostEqual(data['camera_1']['xi'], 0.9)
        np.testing.assert_array_almost_equal(data['camera_0']['pose'], np.eye(4))
        np.testing.assert_array_almost_equal(data['camera_1']['translation'], [-0.2, 0.0, 0.0])
        self.assertIn('pose_timestamp_17', data)
        self.assertEqual(np.array(data['pose_timestamp_17']).shape, (4, 4))

    def test_pinhole_has_no_xi(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'out.yaml')
            save_calibration_yaml(self._result(CameraModel.PINHOLE), path)
            with open(path, 'r') as f:
                data = yaml.safe_load(f)

        self.assertNotIn('xi', data['camera_0'])
        self.assertTrue(data['camera_1']['connected'])


if __name__ == '__main__':
    unittest.main()
