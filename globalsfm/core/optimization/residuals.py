"""Residual functors for bundle adjustment."""

import numpy as np
from typing import Dict, List, Optional

from .factor_graph import Factor
from ..math.camera import distortion_factor
from ..math.so3 import right_jacobian, skew_symmetric, so3_exp


class ResidualFunctor(Factor):
    """Base class for residual functors."""

    def __init__(self, factor_id: str, variable_ids: List[str]):
        """Initialize residual functor."""
        super().__init__(factor_id, variable_ids)


class ReprojectionResidual(ResidualFunctor):
    """Pixel reprojection residual of one track observation.

    Residual is (predicted - observed) / sigma with the radial-3 pinhole
    model: u = f * d(r^2) * x + cx, d = 1 + k1 r^2 + k2 r^4 + k3 r^6, where
    x, y are the normalized coordinates of R X + t.
    """

    def __init__(
        self,
        factor_id: str,
        point_id: str,
        rotation_id: str,
        translation_id: str,
        intrinsic_id: str,
        observed_u: float,
        observed_v: float,
        distortion_id: Optional[str] = None,
        sigma: float = 1.0
    ):
        """Initialize reprojection residual.

        Args:
            factor_id: Unique factor identifier
            point_id: Track point variable ID
            rotation_id: View rotation (axis-angle) variable ID
            translation_id: View translation variable ID
            intrinsic_id: Intrinsic [f, cx, cy] variable ID
            observed_u: Observed u coordinate
            observed_v: Observed v coordinate
            distortion_id: Distortion [k1, k2, k3] variable ID (None for plain pinhole)
            sigma: Measurement uncertainty in pixels
        """
        variable_ids = [point_id, rotation_id, translation_id, intrinsic_id]
        if distortion_id is not None:
            variable_ids.append(distortion_id)
        super().__init__(factor_id, variable_ids)

        self.point_id = point_id
        self.rotation_id = rotation_id
        self.translation_id = translation_id
        self.intrinsic_id = intrinsic_id
        self.distortion_id = distortion_id
        self.observed = np.array([observed_u, observed_v], dtype=float)
        self.sigma = sigma

    def _distortion(self, variables: Dict[str, np.ndarray]) -> np.ndarray:
        if self.distortion_id is None:
            return np.zeros(3)
        return variables[self.distortion_id]

    def _camera_point(self, variables: Dict[str, np.ndarray]) -> np.ndarray:
        R = so3_exp(variables[self.rotation_id])
        return R @ variables[self.point_id] + variables[self.translation_id]

    def compute_residual(self, variables: Dict[str, np.ndarray]) -> np.ndarray:
        """Compute reprojection residual."""
        X_cam = self._camera_point(variables)
        f, cx, cy = variables[self.intrinsic_id]
        z = X_cam[2]

        if z <= 1e-9:
            # Behind the camera: large constant residual, zero gradient
            return np.full(2, 1e3 / self.sigma)

        xy = X_cam[:2] / z
        d = distortion_factor(np.dot(xy, xy), self._distortion(variables))
        predicted = f * d * xy + np.array([cx, cy])
        return (predicted - self.observed) / self.sigma

    def compute_jacobian(self, variables: Dict[str, np.ndarray]) -> Dict[str, np.ndarray]:
        """Analytic Jacobian of the residual with respect to each variable."""
        phi = variables[self.rotation_id]
        X = variables[self.point_id]
        R = so3_exp(phi)
        X_cam = R @ X + variables[self.translation_id]
        f = variables[self.intrinsic_id][0]
        k1, k2, k3 = self._distortion(variables)
        z = X_cam[2]

        jacobians = {var_id: np.zeros((2, 3)) for var_id in self.variable_ids}
        if z <= 1e-9:
            return jacobians

        xy = X_cam[:2] / z
        r2 = np.dot(xy, xy)
        d = 1 + k1 * r2 + k2 * r2**2 + k3 * r2**3
        d_prime = k1 + 2 * k2 * r2 + 3 * k3 * r2**2

        # d(u, v) / d(x, y)
        J_xy = f * (d * np.eye(2) + 2 * d_prime * np.outer(xy, xy))
        # d(x, y) / d(X_cam)
        J_proj = np.array([
            [1 / z, 0, -X_cam[0] / z**2],
            [0, 1 / z, -X_cam[1] / z**2]
        ])
        J_cam = J_xy @ J_proj / self.sigma

        jacobians[self.point_id] = J_cam @ R
        jacobians[self.translation_id] = J_cam
        jacobians[self.rotation_id] = -J_cam @ R @ skew_symmetric(X) @ right_jacobian(phi)
        jacobians[self.intrinsic_id] = np.column_stack([d * xy, [1.0, 0.0], [0.0, 1.0]]) / self.sigma
        if self.distortion_id is not None:
            jacobians[self.distortion_id] = f * np.outer(xy, [r2, r2**2, r2**3]) / self.sigma

        return jacobians

    def residual_dimension(self) -> int:
        """Get residual dimension."""
        return 2
