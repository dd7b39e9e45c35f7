"""
Variable assignments for pose graphs.

Values maps each variable key to its current Pose3 estimate. Insertion order
is preserved and defines the column ordering of the stacked tangent vector
used by the optimizer.
"""

from typing import Dict, Hashable, Iterator, List, Mapping, Optional

import numpy as np

from ..geometry.pose3 import Pose3
from ..geometry.se3 import se3_local, se3_retract

# Tangent dimension of every Pose3 variable
POSE_DIM: int = 6


class Values:
    """
    Ordered assignment of poses to variable keys.

    Examples:
        >>> values = Values()
        >>> values.insert("x0", Pose3.identity())
        >>> "x0" in values
        True
        >>> values.at("x1")
        Traceback (most recent call last):
            ...
        KeyError: 'Variable x1 not in values'
    """

    def __init__(self, initial: Optional[Mapping[Hashable, Pose3]] = None):
        self._poses: Dict[Hashable, Pose3] = {}
        if initial is not None:
            for key, pose in initial.items():
                self.insert(key, pose)

    def insert(self, key: Hashable, pose: Pose3) -> None:
        """
        Add a new variable.

        Raises:
            KeyError: If the key is already present.
            TypeError: If pose is not a Pose3.
        """
        if key in self._poses:
            raise KeyError(f"Variable {key} already in values")
        if not isinstance(pose, Pose3):
            raise TypeError(f"Expected Pose3 for {key}, got {type(pose).__name__}")
        self._poses[key] = pose

    def update(self, key: Hashable, pose: Pose3) -> None:
        """
        Replace the value of an existing variable.

        Raises:
            KeyError: If the key is absent.
        """
        if key not in self._poses:
            raise KeyError(f"Variable {key} not in values")
        if not isinstance(pose, Pose3):
            raise TypeError(f"Expected Pose3 for {key}, got {type(pose).__name__}")
        self._poses[key] = pose

    def at(self, key: Hashable) -> Pose3:
        """
        Look up a variable.

        Raises:
            KeyError: If the key is absent.
        """
        try:
            return self._poses[key]
        except KeyError:
            raise KeyError(f"Variable {key} not in values") from None

    def exists(self, key: Hashable) -> bool:
        return key in self._poses

    def keys(self) -> List[Hashable]:
        return list(self._poses.keys())

    def items(self):
        return self._poses.items()

    def dim(self) -> int:
        """Total tangent dimension."""
        return POSE_DIM * len(self._poses)

    def retract(self, delta: Mapping[Hashable, np.ndarray]) -> "Values":
        """
        Apply per-variable tangent increments, T_k <- T_k * Exp(delta_k).

        Variables absent from delta are copied unchanged.

        Args:
            delta: Mapping key -> tangent vector (6,).

        Returns:
            New Values; self is not modified.

        Raises:
            KeyError: If delta names a key not in this Values.
        """
        for key in delta:
            if key not in self._poses:
                raise KeyError(f"Variable {key} not in values")
        result = Values()
        for key, pose in self._poses.items():
            if key in delta:
                result.insert(key, se3_retract(pose, delta[key]))
            else:
                result.insert(key, pose)
        return result

    def local_coordinates(self, other: "Values") -> Dict[Hashable, np.ndarray]:
        """Tangent vectors taking self to other, key by key."""
        return {key: se3_local(pose, other.at(key)) for key, pose in self._poses.items()}

    def copy(self) -> "Values":
        return Values(self._poses)

    def equals(self, other: "Values", tol: float = 1e-9) -> bool:
        if not isinstance(other, Values) or set(self.keys()) != set(other.keys()):
            return False
        return all(pose.equals(other.at(key), tol) for key, pose in self._poses.items())

    def __contains__(self, key: Hashable) -> bool:
        return key in self._poses

    def __len__(self) -> int:
        return len(self._poses)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._poses)

    def __repr__(self) -> str:
        return f"Values(keys={self.keys()})"
