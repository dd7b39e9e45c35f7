"""Tracking graph construction for a single object.

Builds the pose graph that tracks one object from per-frame detections seen
by a moving observer whose poses are known (e.g., from odometry):

    x_k   observer pose at frame k (anchored by a strong prior)
    o_k   object pose at frame k
    v_k   object velocity between frames k and k+1 (body-frame increment)

Factors:
    - PriorFactor(x_k) for every frame
    - MultiHypothesisFactor(o_k, x_k) over all detections of frame k
    - StablePoseFactor(o_k, v_k, o_k+1) between consecutive frames
    - ConstantVelocityFactor(v_k, v_k+1) between consecutive velocities
    - PriorFactor(o_0), weak, to fix the gauge of the object track

Every detection of a frame becomes one hypothesis of that frame's factor,
so clutter competes with the true detection inside the optimizer instead of
being resolved up front.
"""

import warnings
from dataclasses import dataclass
from typing import Hashable, List, Optional, Sequence, Tuple

import numpy as np

from ..estimators.factor_graph import FactorKind, NonlinearFactorGraph
from ..estimators.noise_model import DiagonalNoise
from ..estimators.values import Values
from ..geometry.pose3 import Pose3
from ..geometry.se3 import se3_between, se3_transform_from
from .config import TrackingConfig
from .detection import MultiHypothesisFactor
from .hypothesis import HypothesisModel
from .motion import ConstantVelocityFactor, PriorFactor, StablePoseFactor
from .types import BoundingBox


def symbol(char: str, index: int) -> str:
    """
    Variable key made of a one-letter family and a frame index.

    Examples:
        >>> symbol("x", 3)
        'x3'
    """
    if not isinstance(char, str) or len(char) != 1 or not char.isalpha():
        raise ValueError(f"Symbol character must be a single letter, got {char!r}")
    if int(index) != index or index < 0:
        raise ValueError(f"Symbol index must be a non-negative integer, got {index}")
    return f"{char}{int(index)}"


def create_detection_factor(
    boxes: Sequence[BoundingBox],
    object_key: Hashable,
    observer_key: Hashable,
    config: Optional[TrackingConfig] = None,
) -> MultiHypothesisFactor:
    """
    Create a max-mixture factor with one hypothesis per detection.

    Args:
        boxes: Detections of one frame, in the observer frame.
        object_key: Key of the object pose.
        observer_key: Key of the observer pose.
        config: Tracking configuration (defaults if None).

    Returns:
        MultiHypothesisFactor whose hypothesis order follows boxes.

    Raises:
        ValueError: If no usable detection remains.
    """
    if config is None:
        config = TrackingConfig()

    hypotheses = []
    for box in boxes:
        weight = config.hypothesis_weight
        if config.weight_from_confidence:
            if box.value <= 0.0:
                warnings.warn(f"Skipping zero-confidence detection {box!r}", UserWarning)
                continue
            weight = float(box.value)
        hypotheses.append(HypothesisModel(box, config.hypothesis_variance, weight))

    if not hypotheses:
        raise ValueError(f"No usable detections for {object_key}")

    return MultiHypothesisFactor(
        object_key,
        observer_key,
        hypotheses,
        gamma=config.gamma,
        coupling=config.coupling,
    )


def _initial_object_positions(
    observer_poses: Sequence[Pose3], detections: Sequence[Sequence[BoundingBox]]
) -> np.ndarray:
    """World-frame guesses from the most confident detection of each frame.

    Frames without detections reuse the nearest earlier guess, or the first
    later one at the start of the track.
    """
    n = len(observer_poses)
    guesses: List[Optional[np.ndarray]] = [None] * n
    for k, boxes in enumerate(detections):
        if boxes:
            best = max(boxes, key=lambda b: b.value)
            guesses[k] = se3_transform_from(observer_poses[k], best.position)

    known = [k for k in range(n) if guesses[k] is not None]
    if not known:
        raise ValueError("At least one frame must contain a detection")

    for k in range(n):
        if guesses[k] is None:
            earlier = [j for j in known if j < k]
            guesses[k] = guesses[earlier[-1]] if earlier else guesses[known[0]]
    return np.array(guesses)


def create_tracking_graph(
    observer_poses: Sequence[Pose3],
    detections: Sequence[Sequence[BoundingBox]],
    config: Optional[TrackingConfig] = None,
) -> Tuple[NonlinearFactorGraph, Values]:
    """
    Build the tracking graph and its initial assignment.

    Args:
        observer_poses: Observer pose per frame (world frame).
        detections: Detections per frame, expressed in the observer frame.
            A frame may have no detections.
        config: Tracking configuration (defaults if None).

    Returns:
        Tuple of (graph, initial values).

    Raises:
        ValueError: If the inputs disagree in length or contain no detection.

    Examples:
        >>> observers = [Pose3.from_xyz_rpy(float(k), 0.0, 0.0) for k in range(3)]
        >>> boxes = [[BoundingBox(position=np.array([2.0, 0.0, 0.0]))] for _ in range(3)]
        >>> graph, initial = create_tracking_graph(observers, boxes)
        >>> len(initial)
        8
    """
    if config is None:
        config = TrackingConfig()
    n = len(observer_poses)
    if n == 0:
        raise ValueError("observer_poses must not be empty")
    if len(detections) != n:
        raise ValueError(
            f"Expected detections for {n} frames, got {len(detections)}"
        )

    positions = _initial_object_positions(observer_poses, detections)
    object_poses = [Pose3(np.eye(3), p) for p in positions]

    graph = NonlinearFactorGraph()
    initial = Values()

    observer_noise = DiagonalNoise.from_sigmas(config.observer_prior_sigmas)
    for k, pose in enumerate(observer_poses):
        initial.insert(symbol("x", k), pose)
        graph.add(PriorFactor(symbol("x", k), pose, observer_noise))

    for k, pose in enumerate(object_poses):
        initial.insert(symbol("o", k), pose)
    graph.add(
        PriorFactor(
            symbol("o", 0),
            object_poses[0],
            DiagonalNoise.from_sigmas(config.object_prior_sigmas),
        )
    )

    for k, boxes in enumerate(detections):
        if config.weight_from_confidence:
            boxes = [b for b in boxes if b.value > 0.0]
        if boxes:
            graph.add(create_detection_factor(boxes, symbol("o", k), symbol("x", k), config))

    stable_noise = DiagonalNoise.from_sigmas(config.stable_pose_sigmas)
    for k in range(n - 1):
        initial.insert(symbol("v", k), se3_between(object_poses[k], object_poses[k + 1]))
        graph.add(
            StablePoseFactor(symbol("o", k), symbol("v", k), symbol("o", k + 1), stable_noise)
        )

    velocity_noise = DiagonalNoise.from_sigmas(config.constant_velocity_sigmas)
    for k in range(n - 2):
        graph.add(ConstantVelocityFactor(symbol("v", k), symbol("v", k + 1), velocity_noise))

    return graph, initial


@dataclass
class TrackingResult:
    """Outcome of track_object.

    Attributes:
        values: Optimized assignment of every variable.
        object_positions: Estimated object position per frame (n, 3).
        hypothesis_indices: Selected hypothesis per frame, None for frames
            without detections.
        error_history: Total graph error per optimizer iteration.
        graph: The optimized graph.
    """

    values: Values
    object_positions: np.ndarray
    hypothesis_indices: List[Optional[int]]
    error_history: List[float]
    graph: NonlinearFactorGraph

    @property
    def iterations(self) -> int:
        return len(self.error_history) - 1

    @property
    def final_error(self) -> float:
        return self.error_history[-1]


def track_object(
    observer_poses: Sequence[Pose3],
    detections: Sequence[Sequence[BoundingBox]],
    config: Optional[TrackingConfig] = None,
) -> TrackingResult:
    """
    Estimate an object track from cluttered detections.

    Args:
        observer_poses: Observer pose per frame.
        detections: Detections per frame in the observer frame.
        config: Tracking configuration (defaults if None).

    Returns:
        TrackingResult.
    """
    if config is None:
        config = TrackingConfig()

    graph, initial = create_tracking_graph(observer_poses, detections, config)
    values, error_history = graph.optimize(
        initial,
        method=config.optimizer,
        max_iterations=config.max_iterations,
        tol=config.tolerance,
        initial_mu=config.initial_mu,
    )

    n = len(observer_poses)
    object_positions = np.array([values.at(symbol("o", k)).translation for k in range(n)])

    frame_of = {symbol("o", k): k for k in range(n)}
    indices: List[Optional[int]] = [None] * n
    for factor in graph:
        if factor.kind is FactorKind.DETECTION:
            indices[frame_of[factor.object_key]] = factor.hypothesis_index_and_error(values)[0]

    return TrackingResult(values, object_positions, indices, error_history, graph)
