"""Estimation runtime for pose graphs.

Main components:
    - Values: Ordered key -> Pose3 assignment with retraction
    - GaussianNoise, DiagonalNoise: Whitening noise models
    - JacobianFactor: Linearized factor consumed by the solver
    - NonlinearFactor, NoiseModelFactor, FactorKind: Factor interface
    - NonlinearFactorGraph: Gauss-Newton / Levenberg-Marquardt optimization
"""

from .factor_graph import (
    ErrorEvaluation,
    FactorKind,
    NoiseModelFactor,
    NonlinearFactor,
    NonlinearFactorGraph,
    default_key_formatter,
)
from .linear import JacobianFactor
from .noise_model import DiagonalNoise, GaussianNoise
from .values import POSE_DIM, Values

__all__ = [
    "DiagonalNoise",
    "ErrorEvaluation",
    "FactorKind",
    "GaussianNoise",
    "JacobianFactor",
    "NoiseModelFactor",
    "NonlinearFactor",
    "NonlinearFactorGraph",
    "POSE_DIM",
    "Values",
    "default_key_formatter",
]
