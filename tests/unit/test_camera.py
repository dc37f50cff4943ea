"""Tests for camera projection."""

import numpy as np
import pytest

from globalsfm.core.math.camera import camera_center, normalize_points, point_depth, project
from globalsfm.core.math.so3 import so3_exp


@pytest.fixture
def camera():
    """Simple camera looking down +Z from 5 units back."""
    return np.array([500.0, 320.0, 240.0]), np.eye(3), np.array([0.0, 0.0, 5.0])


class TestProject:
    """Test pinhole and radial projection."""

    def test_principal_point(self, camera):
        """A point on the optical axis projects to the principal point."""
        intrinsics, R, t = camera
        uv = project(intrinsics, R, t, np.zeros(3))
        np.testing.assert_allclose(uv, [[320.0, 240.0]])

    def test_pinhole(self, camera):
        """Off-axis point follows u = f x / z + cx."""
        intrinsics, R, t = camera
        uv = project(intrinsics, R, t, np.array([[1.0, -0.5, 0.0]]))
        np.testing.assert_allclose(uv, [[320.0 + 100.0, 240.0 - 50.0]])

    def test_radial_distortion(self, camera):
        """Distortion scales normalized coordinates by 1 + k1 r^2 + ..."""
        intrinsics, R, t = camera
        X = np.array([[1.0, 0.0, 0.0]])
        uv = project(intrinsics, R, t, X, np.array([0.1, 0.0, 0.0]))
        x = 0.2
        assert uv[0, 0] == pytest.approx(500.0 * x * (1 + 0.1 * x**2) + 320.0)

    def test_behind_camera(self, camera):
        """Points behind the camera project to NaN."""
        intrinsics, R, t = camera
        uv = project(intrinsics, R, t, np.array([[0.0, 0.0, -10.0]]))
        assert np.all(np.isnan(uv))

    def test_invalid_shapes(self, camera):
        """Wrong argument shapes raise ValueError."""
        intrinsics, R, t = camera
        with pytest.raises(ValueError):
            project(np.array([500.0, 320.0]), R, t, np.zeros(3))
        with pytest.raises(ValueError):
            project(intrinsics, R, t, np.zeros((2, 2)))


class TestNormalizePoints:
    """Test pixel to normalized coordinate conversion."""

    def test_inverts_projection(self, camera):
        """Normalized coordinates of a projection equal x / z."""
        intrinsics, _, _ = camera
        R = so3_exp(np.array([0.05, -0.1, 0.02]))
        t = np.array([0.1, 0.2, 6.0])
        X = np.array([[0.5, -0.3, 0.4], [-0.8, 0.2, -0.1]])
        distortion = np.array([-0.05, 0.01, 0.0])

        uv = project(intrinsics, R, t, X, distortion)
        X_cam = (R @ X.T).T + t
        expected = X_cam[:, :2] / X_cam[:, 2:3]

        np.testing.assert_allclose(normalize_points(intrinsics, uv, distortion), expected, atol=1e-9)

    def test_invalid_shape(self, camera):
        """Points must be Nx2."""
        intrinsics, _, _ = camera
        with pytest.raises(ValueError):
            normalize_points(intrinsics, np.zeros((2, 3)))


class TestPoseHelpers:
    """Test camera center and depth."""

    def test_camera_center(self):
        """Center satisfies R C + t = 0."""
        R = so3_exp(np.array([0.3, 0.2, -0.1]))
        t = np.array([1.0, -2.0, 3.0])
        C = camera_center(R, t)
        np.testing.assert_allclose(R @ C + t, np.zeros(3), atol=1e-12)

    def test_point_depth(self, camera):
        """Depth is the camera-frame z coordinate."""
        _, R, t = camera
        np.testing.assert_allclose(point_depth(R, t, np.array([[0.0, 0.0, 1.0], [0.0, 0.0, -6.0]])), [6.0, -1.0])
