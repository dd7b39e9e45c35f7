"""3D rigid pose type.

Pose3 is the value type stored for every variable of the tracking graph:
object poses, observer (robot/sensor) poses, and per-frame velocities
expressed as body-frame increments. Operations on poses live in
:mod:`mmtrack.geometry.se3`.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .rotations import euler_to_rotation_matrix, quat_to_rotation_matrix


@dataclass(frozen=True, eq=False)
class Pose3:
    """
    SE(3) pose: rotation matrix plus translation.

    A point p expressed in the pose's local frame maps to the parent frame as
    R @ p + t.

    Attributes:
        rotation: 3x3 orthonormal rotation matrix with det = +1.
        translation: Translation vector (3,) in meters.

    Examples:
        >>> T = Pose3.from_xyz_rpy(1.0, 2.0, 0.0, 0.0, 0.0, np.pi / 2)
        >>> T.translation
        array([1., 2., 0.])
        >>> Pose3.identity().equals(Pose3(np.eye(3), np.zeros(3)))
        True
    """

    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self) -> None:
        """Validate and normalize array inputs."""
        R = np.array(self.rotation, dtype=np.float64)
        t = np.array(self.translation, dtype=np.float64).reshape(-1)

        if R.shape != (3, 3):
            raise ValueError(f"rotation must have shape (3, 3), got {R.shape}")
        if t.shape != (3,):
            raise ValueError(f"translation must have shape (3,), got {t.shape}")
        if not np.all(np.isfinite(R)) or not np.all(np.isfinite(t)):
            raise ValueError("Pose3 entries must be finite")
        if not np.allclose(R.T @ R, np.eye(3), atol=1e-6) or np.linalg.det(R) < 0:
            raise ValueError("rotation must be a proper orthonormal matrix")

        R.setflags(write=False)
        t.setflags(write=False)
        object.__setattr__(self, "rotation", R)
        object.__setattr__(self, "translation", t)

    @classmethod
    def identity(cls) -> "Pose3":
        """Pose at the origin with zero rotation."""
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_xyz_rpy(
        cls,
        x: float,
        y: float,
        z: float,
        roll: float = 0.0,
        pitch: float = 0.0,
        yaw: float = 0.0,
    ) -> "Pose3":
        """Create a pose from a position and ZYX Euler angles (radians)."""
        return cls(euler_to_rotation_matrix(roll, pitch, yaw), np.array([x, y, z]))

    @classmethod
    def from_quaternion(
        cls, position: Sequence[float], quaternion: Sequence[float]
    ) -> "Pose3":
        """Create a pose from a position and a quaternion [qw, qx, qy, qz]."""
        return cls(quat_to_rotation_matrix(np.asarray(quaternion)), np.asarray(position))

    def matrix(self) -> np.ndarray:
        """Homogeneous 4x4 transformation matrix."""
        T = np.eye(4)
        T[:3, :3] = self.rotation
        T[:3, 3] = self.translation
        return T

    def to_array(self) -> np.ndarray:
        """Flatten to [tx, ty, tz, r00, r01, ..., r22], shape (12,)."""
        return np.concatenate([self.translation, self.rotation.reshape(-1)])

    def equals(self, other: "Pose3", tol: float = 1e-9) -> bool:
        """Element-wise comparison of rotation and translation within tol."""
        return bool(
            np.allclose(self.rotation, other.rotation, atol=tol, rtol=0.0)
            and np.allclose(self.translation, other.translation, atol=tol, rtol=0.0)
        )

    def __repr__(self) -> str:
        t = np.array2string(self.translation, precision=4, suppress_small=True)
        return f"Pose3(t={t}, R={self.rotation.round(4).tolist()})"
