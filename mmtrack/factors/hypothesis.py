"""
Gaussian hypothesis model for a single detection.

A HypothesisModel is one candidate explanation of where an object is,
relative to the observer: a 3D mean, a covariance, and a prior weight
w in (0, 1]. Its cost at a measurement x is the negative log of the
weighted Gaussian density, shifted so that it can never be negative:

    error(x, gamma) = 0.5 * d^2(x) + max(0, gamma - log_normalizer)

    d^2(x)          = (x - mu)^T Sigma^-1 (x - mu)
    log_normalizer  = log(w) - 0.5 * log det(2 pi Sigma)

log_normalizer is the log of the weighted peak density. gamma is the floor
shared by all hypotheses of a factor; a broad or low-weight hypothesis pays
its log-density deficit with respect to that floor at every x, which makes
costs of hypotheses with different spreads comparable.
"""

import math
import numbers
import warnings
from typing import Any, Optional, Sequence, Union

import numpy as np
import scipy.linalg

from ..estimators.noise_model import DiagonalNoise, GaussianNoise
from ..geometry.pose3 import Pose3

# Covariances worse conditioned than this trigger a warning
MAX_CONDITION_NUMBER: float = 1e12

_LOG_2PI = math.log(2.0 * math.pi)


def _readonly(a: np.ndarray) -> np.ndarray:
    a.setflags(write=False)
    return a


class HypothesisModel:
    """
    One weighted Gaussian explanation of a detection.

    Attributes:
        mean: Hypothesis position (3,) in the observer frame.
        variances: Diagonal of the covariance (3,).
        covariance: 3x3 covariance Sigma.
        information: 3x3 information Sigma^-1.
        sqrt_information: Lower Cholesky factor L with L @ L.T = information.
        weight: Prior confidence w in (0, 1].
        region: Originating detection region (opaque).

    Examples:
        >>> h = HypothesisModel(None, 0.01, 1.0, mean=np.zeros(3))
        >>> h.error(np.zeros(3), gamma=h.log_normalizer)
        0.0
        >>> round(h.error(np.array([0.1, 0.0, 0.0]), gamma=h.log_normalizer), 9)
        0.5
    """

    def __init__(
        self,
        region: Any,
        variance: Union[float, Sequence[float]],
        weight: float = 1.0,
        mean: Optional[Sequence[float]] = None,
    ):
        """
        Build a hypothesis from a detection region and a variance.

        Args:
            region: Detection region; its ``position`` is the default mean.
            variance: Isotropic scalar variance or per-axis variances (3,).
            weight: Prior confidence in (0, 1].
            mean: Explicit mean (3,), overriding the region position.

        Raises:
            ValueError: If the variance is not positive, the weight is outside
                (0, 1], or no mean can be determined.
        """
        variances = np.asarray(variance, dtype=float)
        if variances.ndim == 0:
            variances = np.full(3, float(variances))
        variances = variances.reshape(-1)
        if variances.shape != (3,):
            raise ValueError(f"variance must be a scalar or 3 values, got shape {variances.shape}")
        if not np.all(np.isfinite(variances)) or np.any(variances <= 0.0):
            raise ValueError(f"variances must be finite and positive, got {variances}")

        self._init(region, np.diag(variances), weight, mean)
        self._noise_model = DiagonalNoise.from_variances(variances)

    @classmethod
    def from_covariance(
        cls,
        region: Any,
        covariance: np.ndarray,
        weight: float = 1.0,
        mean: Optional[Sequence[float]] = None,
    ) -> "HypothesisModel":
        """
        Build a hypothesis with a full 3x3 covariance.

        Raises:
            ValueError: If the covariance is not symmetric positive definite.
        """
        covariance = np.array(covariance, dtype=float)
        if covariance.shape != (3, 3):
            raise ValueError(f"covariance must have shape (3, 3), got {covariance.shape}")
        if not np.allclose(covariance, covariance.T):
            raise ValueError("covariance must be symmetric")

        model = cls.__new__(cls)
        model._init(region, covariance, weight, mean)
        model._noise_model = GaussianNoise(model._sqrt_information.T)
        return model

    def _init(self, region: Any, covariance: np.ndarray, weight: float, mean) -> None:
        if isinstance(weight, bool) or not isinstance(weight, numbers.Real):
            raise ValueError(f"weight must be a real number, got {type(weight).__name__}")
        if not 0.0 < weight <= 1.0:
            raise ValueError(f"weight must be in (0, 1], got {weight}")

        if mean is None:
            if region is None or not hasattr(region, "position"):
                raise ValueError("A mean is required when the region has no position")
            mean = region.position
        mean = np.array(mean, dtype=float).reshape(-1)
        if mean.shape != (3,) or not np.all(np.isfinite(mean)):
            raise ValueError(f"mean must be a finite 3-vector, got {mean}")

        try:
            L_cov = scipy.linalg.cholesky(covariance, lower=True)
        except np.linalg.LinAlgError as e:
            raise ValueError(f"covariance is not positive definite: {e}") from e

        cond = np.linalg.cond(covariance)
        if cond > MAX_CONDITION_NUMBER:
            warnings.warn(
                f"Hypothesis covariance is ill-conditioned (cond = {cond:.3e}); "
                f"whitened residuals may be inaccurate.",
                UserWarning,
            )

        information = scipy.linalg.cho_solve((L_cov, True), np.eye(3))
        information = 0.5 * (information + information.T)
        sqrt_information = scipy.linalg.cholesky(information, lower=True)
        log_det = 2.0 * float(np.sum(np.log(np.diag(L_cov))))

        self._region = region
        self._mean = _readonly(mean)
        self._covariance = _readonly(covariance.copy())
        self._variances = _readonly(np.diag(covariance).copy())
        self._information = _readonly(information)
        self._sqrt_information = _readonly(sqrt_information)
        self._weight = float(weight)
        self._log_normalizer = math.log(self._weight) - 0.5 * (3.0 * _LOG_2PI + log_det)

    @property
    def mean(self) -> np.ndarray:
        return self._mean

    @property
    def variances(self) -> np.ndarray:
        return self._variances

    @property
    def covariance(self) -> np.ndarray:
        return self._covariance

    @property
    def information(self) -> np.ndarray:
        return self._information

    @property
    def sqrt_information(self) -> np.ndarray:
        return self._sqrt_information

    @property
    def noise_model(self) -> GaussianNoise:
        """Whitening model for residuals x - mean."""
        return self._noise_model

    @property
    def weight(self) -> float:
        return self._weight

    @property
    def region(self) -> Any:
        return self._region

    @property
    def log_normalizer(self) -> float:
        """log(w) - 0.5 * log det(2 pi Sigma)."""
        return self._log_normalizer

    def pose(self) -> Optional[Pose3]:
        """Pose of the originating region, if it has one."""
        if self._region is None or not hasattr(self._region, "pose"):
            return None
        return self._region.pose()

    def mahalanobis(self, x: np.ndarray) -> float:
        """Squared Mahalanobis distance of x from the mean."""
        x = np.asarray(x, dtype=float).reshape(-1)
        if x.shape != (3,):
            raise ValueError(f"x must have shape (3,), got {x.shape}")
        w = self._sqrt_information.T @ (x - self._mean)
        return float(w @ w)

    def error(self, x: np.ndarray, gamma: float) -> float:
        """
        Cost of explaining x with this hypothesis.

        Args:
            x: Measurement (3,) in the observer frame.
            gamma: Log-density floor shared by the competing hypotheses.

        Returns:
            Non-negative cost; strictly increasing in the Mahalanobis distance.
        """
        penalty = max(0.0, gamma - self._log_normalizer)
        return 0.5 * self.mahalanobis(x) + penalty

    def equals(self, other: "HypothesisModel", tol: float = 1e-9) -> bool:
        if not isinstance(other, HypothesisModel):
            return False
        return bool(
            np.allclose(self._mean, other.mean, atol=tol, rtol=0.0)
            and np.allclose(self._covariance, other.covariance, atol=tol, rtol=0.0)
            and abs(self._weight - other.weight) <= tol
        )

    def __repr__(self) -> str:
        m = np.array2string(self._mean, precision=4, suppress_small=True)
        v = np.array2string(self._variances, precision=4, suppress_small=True)
        return f"HypothesisModel(mean={m}, variances={v}, weight={self._weight:.3f})"
