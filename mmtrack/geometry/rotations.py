"""Rotation representations and conversions.

Converts the rotation parameterizations that show up at the perception
boundary (detector quaternions, simulation Euler angles) into 3x3 rotation
matrices used by the SE(3) layer.

Conventions:
- Quaternions: [qw, qx, qy, qz] where qw is the scalar part
- Euler angles: [roll, pitch, yaw] in radians (ZYX/3-2-1 convention)
- Rotation matrices: 3x3 numpy arrays, v_parent = R @ v_child
"""

import numpy as np
from numpy.typing import NDArray


def euler_to_rotation_matrix(
    roll: float,
    pitch: float,
    yaw: float,
) -> NDArray[np.float64]:
    """Convert Euler angles to rotation matrix.

    Args:
        roll: Roll angle in radians (rotation about x-axis).
        pitch: Pitch angle in radians (rotation about y-axis).
        yaw: Yaw angle in radians (rotation about z-axis).

    Returns:
        3x3 rotation matrix R = Rz(yaw) @ Ry(pitch) @ Rx(roll).

    Example:
        >>> R = euler_to_rotation_matrix(0.0, 0.0, np.pi / 2)
        >>> np.allclose(R @ np.array([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0])
        True
    """
    cr = np.cos(roll)
    sr = np.sin(roll)
    cp = np.cos(pitch)
    sp = np.sin(pitch)
    cy = np.cos(yaw)
    sy = np.sin(yaw)

    return np.array(
        [
            [cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr],
            [sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr],
            [-sp, cp * sr, cp * cr],
        ],
        dtype=np.float64,
    )


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to rotation matrix.

    The quaternion is normalized first, so detector outputs that are only
    approximately unit length are accepted.

    Args:
        q: Quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        3x3 rotation matrix.

    Raises:
        ValueError: If q is not a 4-element array or has zero norm.

    Example:
        >>> R = quat_to_rotation_matrix(np.array([1.0, 0.0, 0.0, 0.0]))
        >>> np.allclose(R, np.eye(3))
        True
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm < 1e-12:
        raise ValueError(f"Quaternion must have finite non-zero norm, got {q}")
    qw, qx, qy, qz = q / norm

    return np.array(
        [
            [
                1.0 - 2.0 * (qy * qy + qz * qz),
                2.0 * (qx * qy - qw * qz),
                2.0 * (qx * qz + qw * qy),
            ],
            [
                2.0 * (qx * qy + qw * qz),
                1.0 - 2.0 * (qx * qx + qz * qz),
                2.0 * (qy * qz - qw * qx),
            ],
            [
                2.0 * (qx * qz - qw * qy),
                2.0 * (qy * qz + qw * qx),
                1.0 - 2.0 * (qx * qx + qy * qy),
            ],
        ],
        dtype=np.float64,
    )
