"""SE(3) geometry for pose-graph object tracking.

Main components:
    - Pose3: Rigid pose value type
    - so3_exp, so3_log, so3_right_jacobian(_inverse): SO(3) maps
    - se3_compose, se3_between, se3_exp, se3_log, se3_retract: SE(3) operations
    - *_jacobians: Exact derivatives under right perturbation T * Exp(xi)

Example usage:
    >>> from mmtrack.geometry import Pose3, se3_between, se3_log
    >>> a = Pose3.from_xyz_rpy(0.0, 0.0, 0.0)
    >>> b = Pose3.from_xyz_rpy(1.0, 0.0, 0.0)
    >>> xi = se3_log(se3_between(a, b))
"""

from .pose3 import Pose3
from .rotations import euler_to_rotation_matrix, quat_to_rotation_matrix
from .se3 import (
    se3_adjoint,
    se3_between,
    se3_between_jacobians,
    se3_compose,
    se3_compose_jacobians,
    se3_exp,
    se3_inverse,
    se3_local,
    se3_log,
    se3_log_derivative,
    se3_retract,
    se3_right_jacobian,
    se3_right_jacobian_inverse,
    se3_transform_from,
    se3_transform_to,
    se3_transform_to_jacobians,
    se3_translation_jacobian,
)
from .so3 import (
    skew,
    so3_exp,
    so3_left_jacobian,
    so3_log,
    so3_right_jacobian,
    so3_right_jacobian_inverse,
    vee,
)

__all__ = [
    "Pose3",
    "euler_to_rotation_matrix",
    "quat_to_rotation_matrix",
    "se3_adjoint",
    "se3_between",
    "se3_between_jacobians",
    "se3_compose",
    "se3_compose_jacobians",
    "se3_exp",
    "se3_inverse",
    "se3_local",
    "se3_log",
    "se3_log_derivative",
    "se3_retract",
    "se3_right_jacobian",
    "se3_right_jacobian_inverse",
    "se3_transform_from",
    "se3_transform_to",
    "se3_transform_to_jacobians",
    "se3_translation_jacobian",
    "skew",
    "so3_exp",
    "so3_left_jacobian",
    "so3_log",
    "so3_right_jacobian",
    "so3_right_jacobian_inverse",
    "vee",
]
