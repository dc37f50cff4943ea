"""Math primitives for globalsfm."""

from .so3 import (
    so3_exp,
    so3_log,
    skew_symmetric,
    project_to_so3,
    angular_distance,
    relative_motion,
)
from .quaternions import quat_normalize, quat_from_rotation_vector, quat_to_matrix, random_quaternion
from .camera import project, normalize_points, camera_center, point_depth
from .robust import l1_weights, l2_weights, get_weight_function
from .jacobians import finite_difference_jacobian, check_jacobian

__all__ = [
    "so3_exp",
    "so3_log",
    "skew_symmetric",
    "project_to_so3",
    "angular_distance",
    "relative_motion",
    "quat_normalize",
    "quat_from_rotation_vector",
    "quat_to_matrix",
    "random_quaternion",
    "project",
    "normalize_points",
    "camera_center",
    "point_depth",
    "l1_weights",
    "l2_weights",
    "get_weight_function",
    "finite_difference_jacobian",
    "check_jacobian",
]
