"""
Motion constraint factors for object tracks.

All residuals live in the SE(3) tangent space, xi = [omega, v], and all
Jacobians are taken with respect to right perturbations T <- T * Exp(d):

    ConstantVelocityFactor(v1, v2):   r = Log(V1^-1 * V2)
    StablePoseFactor(P, V, N):        r = Log((P * V)^-1 * N)
    PriorFactor(T; T0):               r = Log(T0^-1 * T)

The derivative of Log at xi is the inverse SE(3) right Jacobian, combined
with the exact compose/between Jacobians from mmtrack.geometry.se3.
"""

from typing import Hashable, List, Optional, Sequence, Tuple

import numpy as np

from ..estimators.factor_graph import FactorKind, KeyFormatter, NoiseModelFactor, default_key_formatter
from ..estimators.noise_model import GaussianNoise
from ..geometry.pose3 import Pose3
from ..geometry.se3 import (
    se3_between,
    se3_between_jacobians,
    se3_compose,
    se3_compose_jacobians,
    se3_log,
    se3_right_jacobian_inverse,
)


class ConstantVelocityFactor(NoiseModelFactor):
    """
    Soft constraint that two poses (typically consecutive velocities) are equal.

    The residual vanishes when V1 = V2 and its norm is the geodesic distance
    between them.

    Examples:
        >>> factor = ConstantVelocityFactor("v0", "v1")
        >>> v = Pose3.from_xyz_rpy(0.1, 0.0, 0.0)
        >>> np.allclose(factor.evaluate_error(v, v), 0.0)
        True
    """

    kind = FactorKind.CONSTANT_VELOCITY

    def __init__(self, key1: Hashable, key2: Hashable, noise_model: Optional[GaussianNoise] = None):
        super().__init__((key1, key2), noise_model)

    def _evaluate(
        self, poses: Sequence[Pose3], with_jacobians: bool
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        T1, T2 = poses
        relative = se3_between(T1, T2)
        xi = se3_log(relative)
        if not with_jacobians:
            return xi, None

        J_log = se3_right_jacobian_inverse(xi)
        H1, H2 = se3_between_jacobians(T1, T2)
        return xi, [J_log @ H1, J_log @ H2]

    def clone(self) -> "ConstantVelocityFactor":
        return ConstantVelocityFactor(self.keys[0], self.keys[1], self.noise_model)


class StablePoseFactor(NoiseModelFactor):
    """
    Consistency between a previous pose, a body-frame velocity and a next pose.

    The velocity is the pose increment over one frame, so the next pose is
    predicted as previous * velocity. The residual is zero exactly when the
    triple agrees with that prediction.

    Examples:
        >>> factor = StablePoseFactor("o0", "v0", "o1")
        >>> P = Pose3.from_xyz_rpy(1.0, 0.0, 0.0, yaw=0.3)
        >>> V = Pose3.from_xyz_rpy(0.5, 0.0, 0.0)
        >>> N = se3_compose(P, V)
        >>> np.allclose(factor.evaluate_error(P, V, N), 0.0)
        True
    """

    kind = FactorKind.STABLE_POSE

    def __init__(
        self,
        previous_key: Hashable,
        velocity_key: Hashable,
        next_key: Hashable,
        noise_model: Optional[GaussianNoise] = None,
    ):
        super().__init__((previous_key, velocity_key, next_key), noise_model)

    def _evaluate(
        self, poses: Sequence[Pose3], with_jacobians: bool
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        previous, velocity, next_pose = poses
        predicted = se3_compose(previous, velocity)
        discrepancy = se3_between(predicted, next_pose)
        xi = se3_log(discrepancy)
        if not with_jacobians:
            return xi, None

        J_log = se3_right_jacobian_inverse(xi)
        H_prev, H_vel = se3_compose_jacobians(previous, velocity)
        H_pred, H_next = se3_between_jacobians(predicted, next_pose)
        return xi, [
            J_log @ H_pred @ H_prev,
            J_log @ H_pred @ H_vel,
            J_log @ H_next,
        ]

    def clone(self) -> "StablePoseFactor":
        return StablePoseFactor(self.keys[0], self.keys[1], self.keys[2], self.noise_model)


class PriorFactor(NoiseModelFactor):
    """
    Unary prior on a pose.

    Attributes:
        prior: Expected value of the pose.
    """

    kind = FactorKind.PRIOR

    def __init__(self, key: Hashable, prior: Pose3, noise_model: Optional[GaussianNoise] = None):
        if not isinstance(prior, Pose3):
            raise TypeError(f"prior must be a Pose3, got {type(prior).__name__}")
        super().__init__((key,), noise_model)
        self.prior = prior

    def _evaluate(
        self, poses: Sequence[Pose3], with_jacobians: bool
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        (T,) = poses
        xi = se3_log(se3_between(self.prior, T))
        if not with_jacobians:
            return xi, None
        return xi, [se3_right_jacobian_inverse(xi)]

    def clone(self) -> "PriorFactor":
        return PriorFactor(self.keys[0], self.prior, self.noise_model)

    def equals(self, other, tol: float = 1e-9) -> bool:
        return super().equals(other, tol) and self.prior.equals(other.prior, tol)

    def print(self, s: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        super().print(s, key_formatter)
        print(f"  prior: {self.prior!r}")
