"""Detection and motion factors for max-mixture object tracking.

Main components:
    - BoundingBox, CouplingMode: Detection data types
    - HypothesisModel: One weighted Gaussian explanation of a detection
    - MultiHypothesisFactor: Max-mixture detection factor
    - ConstantVelocityFactor, StablePoseFactor, PriorFactor: Motion and prior factors
    - TrackingConfig: Graph builder and optimizer settings
    - create_detection_factor, create_tracking_graph, track_object: Graph builder

Example usage:
    >>> import numpy as np
    >>> from mmtrack.factors import HypothesisModel, MultiHypothesisFactor
    >>> h0 = HypothesisModel(None, 0.01, mean=[0.0, 0.0, 0.0])
    >>> h1 = HypothesisModel(None, 0.01, mean=[1.0, 0.0, 0.0])
    >>> factor = MultiHypothesisFactor("o0", "x0", [h0, h1], gamma=0.0)
"""

from .config import TrackingConfig
from .detection import DETECTION_DIM, MultiHypothesisFactor
from .hypothesis import HypothesisModel
from .motion import ConstantVelocityFactor, PriorFactor, StablePoseFactor
from .tracking import (
    TrackingResult,
    create_detection_factor,
    create_tracking_graph,
    symbol,
    track_object,
)
from .types import BoundingBox, CouplingMode

__all__ = [
    "BoundingBox",
    "ConstantVelocityFactor",
    "CouplingMode",
    "DETECTION_DIM",
    "HypothesisModel",
    "MultiHypothesisFactor",
    "PriorFactor",
    "StablePoseFactor",
    "TrackingConfig",
    "TrackingResult",
    "create_detection_factor",
    "create_tracking_graph",
    "symbol",
    "track_object",
]
