"""Configuration for max-mixture tracking graphs.

TrackingConfig gathers every tunable of the tracking graph builder: how
hypotheses are built from detections, the noise of the motion and prior
factors, and the optimizer settings. Configs can be loaded from JSON files
with the same keys as the dataclass fields.

Sigma vectors are ordered like SE(3) tangent vectors: rotation (rad) first,
then translation (m).
"""

import json
import warnings
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from .types import CouplingMode

SigmaVector = Tuple[float, float, float, float, float, float]

OPTIMIZERS = ("levenberg_marquardt", "lm", "gauss_newton")


def _sigmas(rotation: float, translation: float) -> SigmaVector:
    return (rotation,) * 3 + (translation,) * 3


@dataclass(frozen=True)
class TrackingConfig:
    """Tunables of the tracking graph.

    Attributes:
        hypothesis_variance: Isotropic position variance per hypothesis (m^2).
        hypothesis_weight: Weight of every hypothesis, in (0, 1].
        weight_from_confidence: Use each detection's confidence as its weight.
        coupling: Detection factor coupling mode.
        gamma: Log-density floor of detection factors; None computes it from
            the hypotheses.
        constant_velocity_sigmas: Sigmas of the velocity smoothness factor.
        stable_pose_sigmas: Sigmas of the pose/velocity consistency factor.
        observer_prior_sigmas: Sigmas anchoring observer poses.
        object_prior_sigmas: Sigmas of the weak prior on the first object pose.
        optimizer: "levenberg_marquardt", "lm" or "gauss_newton".
        max_iterations: Optimizer iteration cap.
        tolerance: Optimizer convergence tolerance.
        initial_mu: Initial Levenberg-Marquardt damping.

    Example:
        >>> config = TrackingConfig(hypothesis_variance=0.05)
        >>> config.coupling
        <CouplingMode.TIGHTLY_COUPLED: 'tight'>
    """

    hypothesis_variance: float = 1e-2
    hypothesis_weight: float = 1.0
    weight_from_confidence: bool = False
    coupling: CouplingMode = CouplingMode.TIGHTLY_COUPLED
    gamma: Optional[float] = None
    constant_velocity_sigmas: SigmaVector = field(default_factory=lambda: _sigmas(0.05, 0.05))
    stable_pose_sigmas: SigmaVector = field(default_factory=lambda: _sigmas(0.05, 0.05))
    observer_prior_sigmas: SigmaVector = field(default_factory=lambda: _sigmas(1e-3, 1e-3))
    object_prior_sigmas: SigmaVector = field(default_factory=lambda: _sigmas(0.1, 10.0))
    optimizer: str = "levenberg_marquardt"
    max_iterations: int = 50
    tolerance: float = 1e-8
    initial_mu: float = 1e-3

    def __post_init__(self) -> None:
        """Validate and normalize fields."""
        if not self.hypothesis_variance > 0.0:
            raise ValueError(f"hypothesis_variance must be positive, got {self.hypothesis_variance}")
        if not 0.0 < self.hypothesis_weight <= 1.0:
            raise ValueError(f"hypothesis_weight must be in (0, 1], got {self.hypothesis_weight}")

        coupling = self.coupling
        if isinstance(coupling, str):
            try:
                coupling = CouplingMode(coupling)
            except ValueError:
                try:
                    coupling = CouplingMode[coupling.upper()]
                except KeyError:
                    choices = [m.value for m in CouplingMode] + [m.name for m in CouplingMode]
                    raise ValueError(
                        f"coupling must be one of {choices}, got {coupling!r}"
                    ) from None
        if not isinstance(coupling, CouplingMode):
            raise TypeError(f"coupling must be a CouplingMode, got {self.coupling!r}")
        object.__setattr__(self, "coupling", coupling)

        if self.gamma is not None and not np.isfinite(self.gamma):
            raise ValueError(f"gamma must be finite or None, got {self.gamma}")

        for name in (
            "constant_velocity_sigmas",
            "stable_pose_sigmas",
            "observer_prior_sigmas",
            "object_prior_sigmas",
        ):
            sigmas = np.asarray(getattr(self, name), dtype=float).reshape(-1)
            if sigmas.shape != (6,):
                raise ValueError(f"{name} must have 6 entries, got {sigmas.shape[0]}")
            if not np.all(np.isfinite(sigmas)) or np.any(sigmas <= 0.0):
                raise ValueError(f"{name} must be finite and positive, got {sigmas}")
            object.__setattr__(self, name, tuple(float(s) for s in sigmas))

        if self.optimizer not in OPTIMIZERS:
            raise ValueError(f"optimizer must be one of {OPTIMIZERS}, got {self.optimizer!r}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not self.tolerance > 0.0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if not self.initial_mu > 0.0:
            raise ValueError(f"initial_mu must be positive, got {self.initial_mu}")

        # Legal but suspicious settings
        if self.hypothesis_weight < 1e-3:
            warnings.warn(
                f"hypothesis_weight of {self.hypothesis_weight} is very small; "
                f"every hypothesis will pay a large constant penalty.",
                UserWarning,
            )
        if max(self.object_prior_sigmas[3:]) > 1e3 or max(self.observer_prior_sigmas[3:]) > 1e3:
            warnings.warn(
                "Prior translation sigmas above 1 km make the prior effectively "
                "non-informative and the normal equations poorly conditioned.",
                UserWarning,
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingConfig":
        """Create a config from a dictionary.

        Raises:
            ValueError: If data contains unknown keys.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown TrackingConfig keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "TrackingConfig":
        """Load a config from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["coupling"] = self.coupling.value
        data = {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}
        return data
