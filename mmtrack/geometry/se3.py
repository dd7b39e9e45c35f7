"""SE(3) operations for 3D pose graphs.

Tangent vectors are ordered rotation first: xi = [omega, v], shape (6,).
Perturbations are applied on the right, T <- T * Exp(xi), so every Jacobian
in this module is the derivative with respect to a right-multiplied local
increment of its argument.

Key functions:
    - se3_compose, se3_inverse, se3_between: group operations
    - se3_transform_from, se3_transform_to: move points between frames
    - se3_exp, se3_log: exponential and logarithm maps
    - se3_retract, se3_local: manifold chart used by the optimizer
    - se3_adjoint, se3_right_jacobian(_inverse), se3_log_derivative
    - *_jacobians: exact derivatives of the group operations
"""

import math
from typing import Tuple

import numpy as np

from .pose3 import Pose3
from .so3 import (
    skew,
    so3_exp,
    so3_left_jacobian,
    so3_left_jacobian_inverse,
    so3_log,
    so3_right_jacobian,
    so3_right_jacobian_inverse,
)

# Below this rotation angle the Q-block coefficients use their Taylor series
Q_SMALL_ANGLE: float = 1e-3


def se3_compose(a: Pose3, b: Pose3) -> Pose3:
    """
    Compose two poses: a * b.

    Examples:
        >>> a = Pose3.from_xyz_rpy(1.0, 0.0, 0.0, yaw=np.pi / 2)
        >>> b = Pose3.from_xyz_rpy(1.0, 0.0, 0.0)
        >>> np.allclose(se3_compose(a, b).translation, [1.0, 1.0, 0.0])
        True
    """
    return Pose3(a.rotation @ b.rotation, a.translation + a.rotation @ b.translation)


def se3_inverse(a: Pose3) -> Pose3:
    """Inverse pose such that a * a^-1 = identity."""
    Rt = a.rotation.T
    return Pose3(Rt, -Rt @ a.translation)


def se3_between(a: Pose3, b: Pose3) -> Pose3:
    """
    Relative pose a^-1 * b: pose b expressed in the frame of a.

    Examples:
        >>> a = Pose3.from_xyz_rpy(1.0, 0.0, 0.0)
        >>> b = Pose3.from_xyz_rpy(3.0, 0.0, 0.0)
        >>> np.allclose(se3_between(a, b).translation, [2.0, 0.0, 0.0])
        True
    """
    Rt = a.rotation.T
    return Pose3(Rt @ b.rotation, Rt @ (b.translation - a.translation))


def se3_transform_from(T: Pose3, point: np.ndarray) -> np.ndarray:
    """Map a point from the local frame of T to the parent frame."""
    return T.rotation @ np.asarray(point, dtype=float) + T.translation


def se3_transform_to(T: Pose3, point: np.ndarray) -> np.ndarray:
    """Map a point from the parent frame into the local frame of T."""
    return T.rotation.T @ (np.asarray(point, dtype=float) - T.translation)


def se3_adjoint(T: Pose3) -> np.ndarray:
    """
    Adjoint representation Ad(T), shape (6, 6).

    Satisfies T * Exp(xi) = Exp(Ad(T) xi) * T for xi = [omega, v].
    """
    R = T.rotation
    Ad = np.zeros((6, 6))
    Ad[:3, :3] = R
    Ad[3:, :3] = skew(T.translation) @ R
    Ad[3:, 3:] = R
    return Ad


def se3_exp(xi: np.ndarray) -> Pose3:
    """
    Exponential map se(3) -> SE(3).

    Args:
        xi: Tangent vector [omega, v], shape (6,).

    Returns:
        Pose3 with R = Exp(omega) and t = Jl(omega) v.
    """
    xi = np.asarray(xi, dtype=float).reshape(-1)
    if xi.shape != (6,):
        raise ValueError(f"xi must have shape (6,), got {xi.shape}")
    omega, v = xi[:3], xi[3:]
    return Pose3(so3_exp(omega), so3_left_jacobian(omega) @ v)


def se3_log(T: Pose3) -> np.ndarray:
    """
    Logarithm map SE(3) -> se(3).

    Examples:
        >>> xi = np.array([0.1, -0.2, 0.3, 1.0, 2.0, 3.0])
        >>> np.allclose(se3_log(se3_exp(xi)), xi)
        True
    """
    omega = so3_log(T.rotation)
    v = so3_left_jacobian_inverse(omega) @ T.translation
    return np.concatenate([omega, v])


def se3_retract(T: Pose3, xi: np.ndarray) -> Pose3:
    """Apply a local increment: T * Exp(xi)."""
    return se3_compose(T, se3_exp(xi))


def se3_local(a: Pose3, b: Pose3) -> np.ndarray:
    """Local coordinates of b around a: Log(a^-1 * b)."""
    return se3_log(se3_between(a, b))


def _q_block(xi: np.ndarray) -> np.ndarray:
    """Lower-left block of the SE(3) right Jacobian."""
    omega, v = xi[:3], xi[3:]
    W = skew(omega)
    V = skew(v)
    WVW = W @ V @ W
    theta = np.linalg.norm(omega)

    if theta < Q_SMALL_ANGLE:
        c1 = 1.0 / 6.0
        c2 = -1.0 / 24.0
        c3 = 1.0 / 120.0
    else:
        s, c = math.sin(theta), math.cos(theta)
        theta2 = theta * theta
        c1 = (theta - s) / (theta2 * theta)
        c2 = (1.0 - theta2 / 2.0 - c) / (theta2 * theta2)
        c3 = (2.0 * theta + theta * c - 3.0 * s) / (2.0 * theta2 * theta2 * theta)

    return (
        -0.5 * V
        + c1 * (W @ V + V @ W - WVW)
        + c2 * (W @ W @ V + V @ W @ W - 3.0 * WVW)
        + c3 * (WVW @ W + W @ WVW)
    )


def se3_right_jacobian(xi: np.ndarray) -> np.ndarray:
    """
    Right Jacobian of SE(3), shape (6, 6).

    Exp(xi + d) ~= Exp(xi) * Exp(Jr(xi) d).
    """
    xi = np.asarray(xi, dtype=float).reshape(-1)
    Jr = so3_right_jacobian(xi[:3])
    J = np.zeros((6, 6))
    J[:3, :3] = Jr
    J[3:, :3] = _q_block(xi)
    J[3:, 3:] = Jr
    return J


def se3_right_jacobian_inverse(xi: np.ndarray) -> np.ndarray:
    """Inverse of :func:`se3_right_jacobian`, computed block-wise."""
    xi = np.asarray(xi, dtype=float).reshape(-1)
    Jr_inv = so3_right_jacobian_inverse(xi[:3])
    J = np.zeros((6, 6))
    J[:3, :3] = Jr_inv
    J[3:, :3] = -Jr_inv @ _q_block(xi) @ Jr_inv
    J[3:, 3:] = Jr_inv
    return J


def se3_log_derivative(T: Pose3) -> np.ndarray:
    """
    Derivative of Log(T) with respect to a right increment of T.

    Log(T * Exp(d)) ~= Log(T) + se3_log_derivative(T) d
    """
    return se3_right_jacobian_inverse(se3_log(T))


def se3_compose_jacobians(a: Pose3, b: Pose3) -> Tuple[np.ndarray, np.ndarray]:
    """Jacobians of a * b with respect to a and b."""
    return se3_adjoint(se3_inverse(b)), np.eye(6)


def se3_between_jacobians(a: Pose3, b: Pose3) -> Tuple[np.ndarray, np.ndarray]:
    """Jacobians of a^-1 * b with respect to a and b."""
    return -se3_adjoint(se3_between(b, a)), np.eye(6)


def se3_transform_to_jacobians(
    T: Pose3, point: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Jacobians of R^T (p - t) with respect to the pose and the point.

    Returns:
        Tuple (H_pose (3, 6), H_point (3, 3)).
    """
    q = se3_transform_to(T, point)
    H_pose = np.hstack([skew(q), -np.eye(3)])
    return H_pose, T.rotation.T


def se3_translation_jacobian(T: Pose3) -> np.ndarray:
    """Jacobian of the translation of T with respect to T, shape (3, 6)."""
    return np.hstack([np.zeros((3, 3)), T.rotation])
