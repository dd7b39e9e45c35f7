"""
Max-mixture detection factor.

A MultiHypothesisFactor ties an object pose to an observer pose through a
detection that admits several Gaussian explanations (hypotheses). The
measurement implied by the current estimates is the object position in the
observer frame,

    x = translation(T_obs^-1 * T_obj) = R_obs^T (t_obj - t_obs)

and the factor cost is the best hypothesis cost, min_i h_i.error(x, gamma).
Selection is repeated at every error/linearize call, so the factor output is
a function of the current assignment only. Linearization uses the selected
hypothesis alone and yields one dense 3-row Jacobian factor.

Coupling modes:
    TIGHTLY_COUPLED: the residual is differentiated with respect to both the
        object pose and the observer pose.
    LOOSELY_COUPLED: the observer pose only transforms the measurement; its
        Jacobian block is present but zero.

The residual is translation-only; box orientation does not enter the cost.
"""

from typing import Hashable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..estimators.factor_graph import FactorKind, KeyFormatter, NonlinearFactor, default_key_formatter
from ..estimators.linear import JacobianFactor
from ..estimators.noise_model import GaussianNoise
from ..estimators.values import Values
from ..geometry.pose3 import Pose3
from ..geometry.se3 import se3_between, se3_transform_to_jacobians, se3_translation_jacobian
from .hypothesis import HypothesisModel
from .types import CouplingMode

# Residual dimension: translation only
DETECTION_DIM: int = 3


class MultiHypothesisFactor(NonlinearFactor):
    """
    Max-mixture factor over an object pose and an observer pose.

    Attributes:
        object_key: Key of the object pose variable.
        observer_key: Key of the observer pose variable.
        hypotheses: Ordered hypotheses; order breaks ties.
        noise_models: Whitening model per hypothesis.
        measurements: Measurement vector (3,) per hypothesis, observer frame.
        gamma: Log-density floor shared by the hypotheses.
        coupling: CouplingMode.

    Examples:
        >>> h0 = HypothesisModel(None, 0.01, mean=[0.0, 0.0, 0.0])
        >>> h1 = HypothesisModel(None, 0.01, mean=[1.0, 0.0, 0.0])
        >>> factor = MultiHypothesisFactor("o0", "x0", [h0, h1], gamma=0.0)
        >>> factor.hypothesis_index_and_error(Pose3.from_xyz_rpy(0.95, 0.0, 0.0))[0]
        1
    """

    kind = FactorKind.DETECTION

    def __init__(
        self,
        object_key: Hashable,
        observer_key: Hashable,
        hypotheses: Sequence[HypothesisModel],
        gamma: Optional[float] = None,
        coupling: CouplingMode = CouplingMode.TIGHTLY_COUPLED,
        noise_models: Optional[Sequence[GaussianNoise]] = None,
        measurements: Optional[Sequence[np.ndarray]] = None,
    ):
        """
        Initialize the factor.

        Args:
            object_key: Key of the object pose variable.
            observer_key: Key of the observer pose variable.
            hypotheses: Non-empty sequence of HypothesisModel.
            gamma: Log-density floor. Defaults to the largest hypothesis
                log-normalizer, so the most concentrated hypothesis pays no
                penalty.
            coupling: Tightly or loosely coupled linearization.
            noise_models: Whitening models, one per hypothesis. Defaults to
                each hypothesis' own noise model.
            measurements: Measurement vectors, one per hypothesis. Defaults to
                the hypothesis means.

        Raises:
            ValueError: If hypotheses is empty or the parallel lists differ in
                length.
            TypeError: If coupling is not a CouplingMode.
        """
        super().__init__((object_key, observer_key))

        hypotheses = tuple(hypotheses)
        if len(hypotheses) == 0:
            raise ValueError("MultiHypothesisFactor requires at least one hypothesis")
        for h in hypotheses:
            if not isinstance(h, HypothesisModel):
                raise TypeError(f"Expected HypothesisModel, got {type(h).__name__}")
        if not isinstance(coupling, CouplingMode):
            raise TypeError(f"coupling must be a CouplingMode, got {coupling!r}")

        if noise_models is None:
            noise_models = [h.noise_model for h in hypotheses]
        if measurements is None:
            measurements = [h.mean for h in hypotheses]
        noise_models = tuple(noise_models)
        measurements = tuple(np.array(z, dtype=float).reshape(-1) for z in measurements)

        if len(noise_models) != len(hypotheses) or len(measurements) != len(hypotheses):
            raise ValueError(
                f"Parallel lists must have equal length: {len(hypotheses)} hypotheses, "
                f"{len(noise_models)} noise models, {len(measurements)} measurements"
            )
        for model in noise_models:
            if model.dim != DETECTION_DIM:
                raise ValueError(f"Noise models must have dimension 3, got {model.dim}")
        for z in measurements:
            if z.shape != (DETECTION_DIM,):
                raise ValueError(f"Measurements must have shape (3,), got {z.shape}")
            z.setflags(write=False)

        if gamma is None:
            gamma = max(h.log_normalizer for h in hypotheses)
        if not np.isfinite(gamma):
            raise ValueError(f"gamma must be finite, got {gamma}")

        self._hypotheses: Tuple[HypothesisModel, ...] = hypotheses
        self._noise_models: Tuple[GaussianNoise, ...] = noise_models
        self._measurements: Tuple[np.ndarray, ...] = measurements
        self._gamma = float(gamma)
        self._coupling = coupling

    @property
    def object_key(self) -> Hashable:
        return self._keys[0]

    @property
    def observer_key(self) -> Hashable:
        return self._keys[1]

    @property
    def hypotheses(self) -> Tuple[HypothesisModel, ...]:
        return self._hypotheses

    @property
    def noise_models(self) -> Tuple[GaussianNoise, ...]:
        return self._noise_models

    @property
    def measurements(self) -> Tuple[np.ndarray, ...]:
        return self._measurements

    @property
    def gamma(self) -> float:
        return self._gamma

    @property
    def coupling(self) -> CouplingMode:
        return self._coupling

    def dim(self) -> int:
        return DETECTION_DIM

    def __len__(self) -> int:
        return len(self.hypotheses)

    @property
    def is_tightly_coupled(self) -> bool:
        return self.coupling is CouplingMode.TIGHTLY_COUPLED

    def object_pose_value(self, values: Values) -> Pose3:
        return values.at(self.object_key)

    def observer_pose_value(self, values: Values) -> Pose3:
        return values.at(self.observer_key)

    def relative_pose(self, values: Values) -> Pose3:
        """Object pose in the observer frame: T_obs^-1 * T_obj."""
        return se3_between(self.observer_pose_value(values), self.object_pose_value(values))

    def hypothesis_index_and_error(self, pose_or_values: Union[Pose3, Values]) -> Tuple[int, float]:
        """
        Select the hypothesis that best explains the measurement.

        Args:
            pose_or_values: Object pose relative to the observer, or a Values
                holding both variables.

        Returns:
            Tuple (index, error) of the minimum-cost hypothesis. Equal costs
            resolve to the lowest index.

        Raises:
            KeyError: If a Values lacks one of the variables.
        """
        if isinstance(pose_or_values, Values):
            relative = self.relative_pose(pose_or_values)
        elif isinstance(pose_or_values, Pose3):
            relative = pose_or_values
        else:
            raise TypeError(f"Expected Pose3 or Values, got {type(pose_or_values).__name__}")

        x = relative.translation
        best_index = 0
        best_error = self.hypotheses[0].error(x, self.gamma)
        for i in range(1, len(self.hypotheses)):
            e = self.hypotheses[i].error(x, self.gamma)
            if e < best_error:
                best_index, best_error = i, e
        return best_index, best_error

    def hypothesis_errors(self, values: Values) -> List[float]:
        """Cost of every hypothesis at the current assignment."""
        x = self.relative_pose(values).translation
        return [h.error(x, self.gamma) for h in self.hypotheses]

    def error(self, values: Values) -> float:
        """min_i hypothesis_i.error(x, gamma)."""
        return self.hypothesis_index_and_error(values)[1]

    def linearize(self, values: Values) -> JacobianFactor:
        """
        Linearize about values using the selected hypothesis only.

        Returns:
            Whitened JacobianFactor with blocks for the object key and the
            observer key (zero in loosely-coupled mode), and b = -W r where
            r = x - z_i.
        """
        T_obj = self.object_pose_value(values)
        T_obs = self.observer_pose_value(values)
        relative = se3_between(T_obs, T_obj)
        index, _ = self.hypothesis_index_and_error(relative)

        model = self.noise_models[index]
        x = relative.translation
        r = x - self.measurements[index]

        # d x / d T_obj = R_obs^T [0, R_obj]
        H_obj = T_obs.rotation.T @ se3_translation_jacobian(T_obj)
        if self.is_tightly_coupled:
            H_obs, _ = se3_transform_to_jacobians(T_obs, T_obj.translation)
        else:
            H_obs = np.zeros((DETECTION_DIM, 6))

        return JacobianFactor(
            {
                self.object_key: model.whiten_matrix(H_obj),
                self.observer_key: model.whiten_matrix(H_obs),
            },
            -model.whiten(r),
        )

    def clone(self) -> "MultiHypothesisFactor":
        """Independent copy; hypotheses are immutable and shared."""
        return MultiHypothesisFactor(
            self.object_key,
            self.observer_key,
            self.hypotheses,
            gamma=self.gamma,
            coupling=self.coupling,
            noise_models=self.noise_models,
            measurements=self.measurements,
        )

    def equals(self, other: NonlinearFactor, tol: float = 1e-9) -> bool:
        if not isinstance(other, NonlinearFactor) or other.kind is not self.kind:
            return False
        if other.keys != self.keys or other.coupling is not self.coupling:
            return False
        if abs(other.gamma - self.gamma) > tol or len(other) != len(self):
            return False
        return all(
            h.equals(g, tol)
            and m.equals(n, tol)
            and np.allclose(z, w, atol=tol, rtol=0.0)
            for h, g, m, n, z, w in zip(
                self.hypotheses,
                other.hypotheses,
                self.noise_models,
                other.noise_models,
                self.measurements,
                other.measurements,
            )
        )

    def print(self, s: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        print(
            f"{s}MultiHypothesisFactor(object={key_formatter(self.object_key)}, "
            f"observer={key_formatter(self.observer_key)}, gamma={self.gamma:.6g}, "
            f"coupling={self.coupling.name})"
        )
        for i, h in enumerate(self.hypotheses):
            print(f"  [{i}] {h!r}")
