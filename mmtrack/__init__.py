"""Max-mixture object tracking on SE(3) pose graphs.

This package contains:
- geometry: SE(3)/SO(3) poses, exponential maps and their Jacobians
- estimators: Values, noise models, linear factors, factor graph optimizer
- factors: hypothesis models, max-mixture detection factor, motion factors,
  and the tracking graph builder
- config: TrackingConfig
"""

__version__ = "0.1.0"
