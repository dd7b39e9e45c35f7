"""Max-mixture object tracking examples.

Examples:
    - example_max_mixture_tracking.py: Single-object tracking from cluttered
      detections, compared against a nearest-detection tracker

Key Concepts Demonstrated:
    - Multi-hypothesis detection factors: clutter competes inside the optimizer
    - Constant-velocity object motion on SE(3)
    - Tightly vs. loosely coupled observer/object estimation

Dependencies:
    - mmtrack.factors: Detection, motion factors and the graph builder
    - mmtrack.estimators: Factor graph optimization
    - matplotlib: Visualization
    - numpy: Numerical operations
"""

__version__ = "0.1.0"

__all__ = []
