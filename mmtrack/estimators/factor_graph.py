"""
Nonlinear factor graph over SE(3) pose variables.

Factors implement a common capability interface (error, dim, linearize,
clone, equals, print) and are told apart by a FactorKind discriminant.
NonlinearFactorGraph collects factors and runs batch MAP estimation:

    X_MAP = argmin_X sum_k 0.5 * ||e_k(X)||^2

by Gauss-Newton or Levenberg-Marquardt on the right-perturbation chart
T <- T * Exp(delta) of every pose variable.

Implements:
    - Gauss-Newton normal equations (J^T J) d = -J^T r
    - Levenberg-Marquardt update (J^T J + mu*I) d_lm = -J^T r
    - Gain ratio for LM damping adjustment
"""

import enum
from abc import ABC, abstractmethod
from typing import Callable, Dict, Hashable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..geometry.pose3 import Pose3
from .linear import JacobianFactor
from .noise_model import DiagonalNoise, GaussianNoise
from .values import POSE_DIM, Values

KeyFormatter = Callable[[Hashable], str]


def default_key_formatter(key: Hashable) -> str:
    return str(key)


class FactorKind(enum.Enum):
    """Discriminant of the closed set of factor variants."""

    DETECTION = "detection"
    CONSTANT_VELOCITY = "constant_velocity"
    STABLE_POSE = "stable_pose"
    PRIOR = "prior"


class ErrorEvaluation(NamedTuple):
    """Whitened residual together with one whitened Jacobian block per variable."""

    error: np.ndarray
    jacobians: Tuple[np.ndarray, ...]


class NonlinearFactor(ABC):
    """
    Capability interface shared by every factor in the graph.

    Attributes:
        keys: Ordered variable keys this factor touches.
    """

    kind: FactorKind

    def __init__(self, keys: Sequence[Hashable]):
        if len(keys) == 0:
            raise ValueError("A factor must involve at least one variable")
        if len(set(keys)) != len(keys):
            raise ValueError(f"Factor keys must be distinct, got {list(keys)}")
        self._keys: Tuple[Hashable, ...] = tuple(keys)

    @property
    def keys(self) -> Tuple[Hashable, ...]:
        return self._keys

    @abstractmethod
    def error(self, values: Values) -> float:
        """Scalar cost at the given assignment."""

    @abstractmethod
    def dim(self) -> int:
        """Residual dimension."""

    @abstractmethod
    def linearize(self, values: Values) -> JacobianFactor:
        """Whitened Jacobian factor about the given assignment."""

    @abstractmethod
    def clone(self) -> "NonlinearFactor":
        pass

    @abstractmethod
    def equals(self, other: "NonlinearFactor", tol: float = 1e-9) -> bool:
        pass

    def print(self, s: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        keys = ", ".join(key_formatter(k) for k in self._keys)
        print(f"{s}{type(self).__name__}({keys})")


class NoiseModelFactor(NonlinearFactor):
    """
    Residual factor whitened by an explicit noise model.

    Subclasses implement ``_evaluate(poses, with_jacobians)`` returning the
    unwhitened residual and, on request, one Jacobian block per variable with
    respect to right perturbations of the pose.

    Attributes:
        noise_model: Noise model owned by this factor.
    """

    def __init__(self, keys: Sequence[Hashable], noise_model: Optional[GaussianNoise] = None):
        super().__init__(keys)
        if noise_model is None:
            noise_model = DiagonalNoise.unit(self.dim())
        if not isinstance(noise_model, GaussianNoise):
            raise TypeError(f"noise_model must be a GaussianNoise, got {type(noise_model).__name__}")
        if noise_model.dim != self.dim():
            raise ValueError(
                f"noise_model has dimension {noise_model.dim}, factor residual has {self.dim()}"
            )
        self.noise_model = noise_model

    def dim(self) -> int:
        return POSE_DIM

    @abstractmethod
    def _evaluate(
        self, poses: Sequence[Pose3], with_jacobians: bool
    ) -> Tuple[np.ndarray, Optional[List[np.ndarray]]]:
        pass

    def _poses(self, values: Values) -> List[Pose3]:
        return [values.at(k) for k in self._keys]

    def _check_arity(self, poses: Sequence[Pose3]) -> None:
        if len(poses) != len(self._keys):
            raise ValueError(f"Expected {len(self._keys)} poses, got {len(poses)}")

    def unwhitened_error(self, values: Values) -> np.ndarray:
        residual, _ = self._evaluate(self._poses(values), False)
        return residual

    def whitened_error(self, values: Values) -> np.ndarray:
        return self.noise_model.whiten(self.unwhitened_error(values))

    def error(self, values: Values) -> float:
        """0.5 * ||whitened residual||^2."""
        e = self.whitened_error(values)
        return 0.5 * float(e @ e)

    def evaluate_error(self, *poses: Pose3) -> np.ndarray:
        """Whitened residual at explicit pose arguments."""
        self._check_arity(poses)
        residual, _ = self._evaluate(poses, False)
        return self.noise_model.whiten(residual)

    def evaluate_error_with_jacobians(self, *poses: Pose3) -> ErrorEvaluation:
        """Whitened residual and whitened Jacobians at explicit pose arguments."""
        self._check_arity(poses)
        residual, jacobians = self._evaluate(poses, True)
        return ErrorEvaluation(
            self.noise_model.whiten(residual),
            tuple(self.noise_model.whiten_matrix(H) for H in jacobians),
        )

    def linearize(self, values: Values) -> JacobianFactor:
        """
        Linearize about values.

        The returned factor satisfies
        error(values.retract(delta)) ~= 0.5 * ||sum_k A_k delta_k - b||^2.
        """
        e, jacobians = self.evaluate_error_with_jacobians(*self._poses(values))
        return JacobianFactor(dict(zip(self._keys, jacobians)), -e)

    def equals(self, other: NonlinearFactor, tol: float = 1e-9) -> bool:
        return (
            isinstance(other, NonlinearFactor)
            and other.kind is self.kind
            and other.keys == self._keys
            and self.noise_model.equals(other.noise_model, tol)
        )

    def print(self, s: str = "", key_formatter: KeyFormatter = default_key_formatter) -> None:
        super().print(s, key_formatter)
        self.noise_model.print("  noise model: ")


class NonlinearFactorGraph:
    """
    Collection of nonlinear factors with a batch optimizer.

    Examples:
        >>> graph = NonlinearFactorGraph()
        >>> len(graph)
        0
    """

    def __init__(self, factors: Optional[Sequence[NonlinearFactor]] = None):
        self.factors: List[NonlinearFactor] = []
        for factor in factors or []:
            self.add(factor)

    def add(self, factor: NonlinearFactor) -> None:
        if not isinstance(factor, NonlinearFactor):
            raise TypeError(f"Expected NonlinearFactor, got {type(factor).__name__}")
        self.factors.append(factor)

    def __len__(self) -> int:
        return len(self.factors)

    def __iter__(self):
        return iter(self.factors)

    def __getitem__(self, index: int) -> NonlinearFactor:
        return self.factors[index]

    def keys(self) -> List[Hashable]:
        """All variable keys referenced by the graph, in first-use order."""
        seen: Dict[Hashable, None] = {}
        for factor in self.factors:
            for key in factor.keys:
                seen.setdefault(key, None)
        return list(seen)

    def error(self, values: Values) -> float:
        """Total cost: sum of factor errors."""
        return float(sum(factor.error(values) for factor in self.factors))

    def linearize(self, values: Values) -> List[JacobianFactor]:
        return [factor.linearize(values) for factor in self.factors]

    def optimize(
        self,
        initial: Values,
        method: str = "levenberg_marquardt",
        max_iterations: int = 50,
        tol: float = 1e-8,
        initial_mu: float = 1e-3,
    ) -> Tuple[Values, List[float]]:
        """
        Find the MAP estimate of all variables.

        Args:
            initial: Initial assignment; must contain every graph key.
            method: "gauss_newton", or "levenberg_marquardt" / "lm".
            max_iterations: Maximum number of iterations.
            tol: Convergence tolerance on error change and step norm.
            initial_mu: Initial LM damping.

        Returns:
            Tuple of (optimized values, error_history).

        Raises:
            ValueError: If method is not supported.
            KeyError: If initial lacks a variable used by a factor.
        """
        for key in self.keys():
            if key not in initial:
                raise KeyError(f"Variable {key} not in values")

        if method == "gauss_newton":
            return self._gauss_newton(initial, max_iterations, tol)
        elif method in ("levenberg_marquardt", "lm"):
            return self._levenberg_marquardt(initial, max_iterations, tol, initial_mu)
        else:
            raise ValueError(f"Unknown method: {method}")

    def _gauss_newton(
        self, values: Values, max_iterations: int, tol: float
    ) -> Tuple[Values, List[float]]:
        """Solve (J^T J) d = -J^T r and retract, until the error settles."""
        error_history = [self.error(values)]

        for iteration in range(max_iterations):
            H, b, index = self._build_linearized_system(values)

            try:
                delta = np.linalg.solve(H, b)
            except np.linalg.LinAlgError:
                delta = np.linalg.lstsq(H, b, rcond=None)[0]

            values = values.retract(self._split(delta, index))
            error_history.append(self.error(values))

            if abs(error_history[-2] - error_history[-1]) < tol:
                break

        return values, error_history

    def _levenberg_marquardt(
        self, values: Values, max_iterations: int, tol: float, initial_mu: float
    ) -> Tuple[Values, List[float]]:
        """
        Levenberg-Marquardt with gain-ratio damping.

        The gain ratio compares the actual cost reduction with the reduction
        predicted by the linear model,
            L(0) - L(d) = 0.5 * d^T (mu * d + b),
        and scales mu by max(1/3, 1 - (2g - 1)^3) on accepted steps.
        """
        error_history = [self.error(values)]
        mu = initial_mu
        nu = 2.0

        for iteration in range(max_iterations):
            H, b, index = self._build_linearized_system(values)
            current_error = error_history[-1]

            H_damped = H + mu * np.eye(H.shape[0])
            try:
                d_lm = np.linalg.solve(H_damped, b)
            except np.linalg.LinAlgError:
                d_lm = np.linalg.lstsq(H_damped, b, rcond=None)[0]

            candidate = values.retract(self._split(d_lm, index))
            new_error = self.error(candidate)

            actual_reduction = current_error - new_error
            predicted_reduction = 0.5 * np.dot(d_lm, mu * d_lm + b)
            if predicted_reduction > 0:
                g = actual_reduction / predicted_reduction
            else:
                g = 0.0

            if g > 0:
                values = candidate
                error_history.append(new_error)
                mu = mu * max(1.0 / 3.0, 1.0 - (2.0 * g - 1.0) ** 3)
                nu = 2.0
            else:
                error_history.append(current_error)
                mu = mu * nu
                nu = 2.0 * nu

            if g > 0 and abs(error_history[-2] - error_history[-1]) < tol:
                break
            if np.linalg.norm(d_lm) < tol:
                break

        return values, error_history

    def _build_linearized_system(
        self, values: Values
    ) -> Tuple[np.ndarray, np.ndarray, Dict[Hashable, int]]:
        """
        Assemble H d = b from the whitened linear factors.

        H = sum A^T A (Gauss-Newton Hessian approximation)
        b = sum A^T b_k (negative gradient)

        Columns follow the insertion order of values.
        """
        index = {key: i * POSE_DIM for i, key in enumerate(values.keys())}
        total_dim = values.dim()

        H = np.zeros((total_dim, total_dim))
        b = np.zeros(total_dim)

        for factor in self.factors:
            linear = factor.linearize(values).whiten()
            for key_i in linear.keys():
                A_i = linear.jacobian(key_i)
                start_i = index[key_i]
                end_i = start_i + A_i.shape[1]
                b[start_i:end_i] += A_i.T @ linear.b
                for key_j in linear.keys():
                    A_j = linear.jacobian(key_j)
                    start_j = index[key_j]
                    H[start_i:end_i, start_j:start_j + A_j.shape[1]] += A_i.T @ A_j

        return H, b, index

    @staticmethod
    def _split(delta: np.ndarray, index: Dict[Hashable, int]) -> Dict[Hashable, np.ndarray]:
        return {key: delta[start:start + POSE_DIM] for key, start in index.items()}
