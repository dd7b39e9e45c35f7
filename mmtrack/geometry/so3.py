"""SO(3) exponential/logarithm maps and their Jacobians.

Rotation vectors omega in R^3 map to rotation matrices through Rodrigues'
formula. The right Jacobian Jr(omega) relates a tangent increment at omega to
a right-multiplied rotation increment:

    Exp(omega + d) ~= Exp(omega) Exp(Jr(omega) d)

Jr and its inverse are what the pose factors need to differentiate the
logarithm map exactly.

Numerical policy:
    Below SMALL_ANGLE the closed-form coefficients suffer from cancellation
    and are replaced by their Taylor series. Near pi the logarithm extracts
    the axis from the symmetric part of R.
"""

import math

import numpy as np

SMALL_ANGLE: float = 1e-4

NEAR_PI: float = 1e-6


def skew(v: np.ndarray) -> np.ndarray:
    """Skew-symmetric matrix of a 3-vector (hat operator)."""
    v = np.asarray(v, dtype=float).reshape(-1)
    return np.array(
        [
            [0.0, -v[2], v[1]],
            [v[2], 0.0, -v[0]],
            [-v[1], v[0], 0.0],
        ],
        dtype=float,
    )


def vee(S: np.ndarray) -> np.ndarray:
    """3-vector of a skew-symmetric matrix (vee operator)."""
    return np.array([S[2, 1], S[0, 2], S[1, 0]], dtype=float)


def so3_exp(omega: np.ndarray) -> np.ndarray:
    """
    Exponential map so(3) -> SO(3).

    Args:
        omega: Rotation vector (axis * angle), shape (3,).

    Returns:
        3x3 rotation matrix.

    Examples:
        >>> R = so3_exp(np.array([0.0, 0.0, np.pi / 2]))
        >>> np.allclose(R @ [1.0, 0.0, 0.0], [0.0, 1.0, 0.0])
        True
    """
    omega = np.asarray(omega, dtype=float).reshape(-1)
    if omega.shape != (3,):
        raise ValueError(f"omega must have shape (3,), got {omega.shape}")

    theta = np.linalg.norm(omega)
    W = skew(omega)

    if theta < SMALL_ANGLE:
        return np.eye(3) + W + 0.5 * (W @ W)

    return (
        np.eye(3)
        + math.sin(theta) / theta * W
        + (1.0 - math.cos(theta)) / (theta * theta) * (W @ W)
    )


def so3_log(R: np.ndarray) -> np.ndarray:
    """
    Logarithm map SO(3) -> so(3).

    Args:
        R: 3x3 rotation matrix.

    Returns:
        Rotation vector with angle in [0, pi], shape (3,).
    """
    R = np.asarray(R, dtype=float)
    if R.shape != (3, 3):
        raise ValueError(f"R must have shape (3, 3), got {R.shape}")

    cos_theta = np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    theta = math.acos(cos_theta)

    if theta < SMALL_ANGLE:
        # First order: R ~= I + W
        return vee(R - R.T) / 2.0

    if math.pi - theta < NEAR_PI:
        # R ~= 2 a a^T - I; take the column with the largest diagonal entry
        B = (R + np.eye(3)) / 2.0
        i = int(np.argmax(np.diag(B)))
        axis = B[:, i] / math.sqrt(max(B[i, i], 1e-300))
        axis /= np.linalg.norm(axis)
        # Sign from the residual antisymmetric part when it is resolvable
        if np.dot(axis, vee(R - R.T)) < 0.0:
            axis = -axis
        return axis * theta

    return vee(R - R.T) * (theta / (2.0 * math.sin(theta)))


def so3_right_jacobian(omega: np.ndarray) -> np.ndarray:
    """
    Right Jacobian of SO(3).

    Jr(omega) = I - (1 - cos t)/t^2 W + (t - sin t)/t^3 W^2
    """
    omega = np.asarray(omega, dtype=float).reshape(-1)
    theta = np.linalg.norm(omega)
    W = skew(omega)

    if theta < SMALL_ANGLE:
        theta2 = theta * theta
        a = 0.5 - theta2 / 24.0
        b = 1.0 / 6.0 - theta2 / 120.0
    else:
        a = (1.0 - math.cos(theta)) / (theta * theta)
        b = (theta - math.sin(theta)) / (theta ** 3)

    return np.eye(3) - a * W + b * (W @ W)


def so3_right_jacobian_inverse(omega: np.ndarray) -> np.ndarray:
    """
    Inverse of the SO(3) right Jacobian.

    Jr^-1(omega) = I + 1/2 W + (1/t^2 - cot(t/2)/(2t)) W^2

    The cot(t/2) form stays finite up to t = pi.
    """
    omega = np.asarray(omega, dtype=float).reshape(-1)
    theta = np.linalg.norm(omega)
    W = skew(omega)

    if theta < SMALL_ANGLE:
        c = 1.0 / 12.0 + theta * theta / 720.0
    else:
        c = 1.0 / (theta * theta) - 1.0 / (2.0 * theta * math.tan(theta / 2.0))

    return np.eye(3) + 0.5 * W + c * (W @ W)


def so3_left_jacobian(omega: np.ndarray) -> np.ndarray:
    """Left Jacobian Jl(omega) = Jr(-omega); maps se(3) translations."""
    return so3_right_jacobian(-np.asarray(omega, dtype=float))


def so3_left_jacobian_inverse(omega: np.ndarray) -> np.ndarray:
    return so3_right_jacobian_inverse(-np.asarray(omega, dtype=float))
