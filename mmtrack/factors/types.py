"""Detection data types for max-mixture tracking.

A BoundingBox is the region description handed over by the perception
front-end. It is read once, when hypotheses are built from it, and is kept
afterwards only as an opaque back-reference.
"""

import enum
import numbers
from dataclasses import dataclass, field

import numpy as np

from ..geometry.pose3 import Pose3


class CouplingMode(enum.Enum):
    """Whether a detection factor differentiates through the observer pose."""

    TIGHTLY_COUPLED = "tight"
    LOOSELY_COUPLED = "loose"


@dataclass(frozen=True, eq=False)
class BoundingBox:
    """Oriented 3D bounding box reported by a detector.

    Attributes:
        position: Box center (3,) in the observer frame, meters.
        orientation: Quaternion [qw, qx, qy, qz] of the box in the observer frame.
        dimensions: Box extent (3,) along its own axes, meters.
        value: Detector confidence in [0, 1].
        label: Class label reported by the detector.
        frame_id: Index of the frame the detection belongs to.

    Example:
        >>> box = BoundingBox(position=np.array([2.0, 0.5, 0.0]), value=0.8)
        >>> box.pose().translation
        array([2. , 0.5, 0. ])
    """

    position: np.ndarray
    orientation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))
    dimensions: np.ndarray = field(default_factory=lambda: np.ones(3))
    value: float = 1.0
    label: str = ""
    frame_id: int = 0

    def __post_init__(self) -> None:
        """Validate the box fields."""
        position = np.array(self.position, dtype=float).reshape(-1)
        orientation = np.array(self.orientation, dtype=float).reshape(-1)
        dimensions = np.array(self.dimensions, dtype=float).reshape(-1)

        if position.shape != (3,):
            raise ValueError(f"position must have shape (3,), got {position.shape}")
        if not np.all(np.isfinite(position)):
            raise ValueError(f"position must be finite, got {position}")
        if orientation.shape != (4,):
            raise ValueError(f"orientation must be [qw, qx, qy, qz], got shape {orientation.shape}")
        if dimensions.shape != (3,) or np.any(dimensions < 0.0):
            raise ValueError(f"dimensions must be 3 non-negative values, got {dimensions}")
        if isinstance(self.value, bool) or not isinstance(self.value, numbers.Real):
            raise TypeError(f"value must be numeric, got {type(self.value)}")
        if not 0.0 <= self.value <= 1.0:
            raise ValueError(f"value must be in [0, 1], got {self.value}")

        object.__setattr__(self, "position", position)
        object.__setattr__(self, "orientation", orientation)
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "dimensions", dimensions)

    def pose(self) -> Pose3:
        """Box pose in the observer frame."""
        return Pose3.from_quaternion(self.position, self.orientation)

    def __repr__(self) -> str:
        p = np.array2string(self.position, precision=3, suppress_small=True)
        return f"BoundingBox(position={p}, value={self.value:.3f}, label={self.label!r}, frame_id={self.frame_id})"
