"""
Gaussian noise models used to whiten factor residuals.

A noise model with covariance Sigma stores the upper-triangular
square-root information matrix R such that R^T R = Sigma^-1. Whitening a
residual r gives R r, whose squared norm is the Mahalanobis distance
r^T Sigma^-1 r; whitening a Jacobian H gives R H. Least-squares on whitened
quantities is maximum-likelihood estimation under the Gaussian model.
"""

from typing import Sequence

import numpy as np
import scipy.linalg


class GaussianNoise:
    """
    Full-covariance Gaussian noise model.

    Attributes:
        sqrt_information: Upper-triangular R with R^T R = information.

    Examples:
        >>> cov = np.array([[4.0, 0.0], [0.0, 1.0]])
        >>> model = GaussianNoise.from_covariance(cov)
        >>> np.allclose(model.whiten(np.array([2.0, 1.0])), [1.0, 1.0])
        True
    """

    def __init__(self, sqrt_information: np.ndarray):
        """
        Initialize from a square-root information matrix.

        Args:
            sqrt_information: Square matrix R (d, d) with R^T R = Sigma^-1.

        Raises:
            ValueError: If R is not square or is singular.
        """
        R = np.array(sqrt_information, dtype=float)
        if R.ndim != 2 or R.shape[0] != R.shape[1]:
            raise ValueError(f"sqrt_information must be square, got shape {R.shape}")
        if not np.all(np.isfinite(R)):
            raise ValueError("sqrt_information must be finite")
        if np.any(np.abs(np.diag(R)) < 1e-300) and np.allclose(R, np.triu(R)):
            raise ValueError("sqrt_information is singular")
        self._R = R

    @classmethod
    def from_information(cls, information: np.ndarray) -> "GaussianNoise":
        """
        Create a noise model from an information matrix.

        Raises:
            ValueError: If the matrix is not symmetric positive definite.
        """
        information = np.asarray(information, dtype=float)
        if information.ndim != 2 or information.shape[0] != information.shape[1]:
            raise ValueError(f"information must be square, got shape {information.shape}")
        if not np.allclose(information, information.T):
            raise ValueError("information must be symmetric")
        try:
            R = scipy.linalg.cholesky(information, lower=False)
        except np.linalg.LinAlgError as e:
            raise ValueError(f"information is not positive definite: {e}") from e
        return cls(R)

    @classmethod
    def from_covariance(cls, covariance: np.ndarray) -> "GaussianNoise":
        """
        Create a noise model from a covariance matrix.

        Raises:
            ValueError: If the matrix is not symmetric positive definite.
        """
        covariance = np.asarray(covariance, dtype=float)
        if covariance.ndim != 2 or covariance.shape[0] != covariance.shape[1]:
            raise ValueError(f"covariance must be square, got shape {covariance.shape}")
        if not np.allclose(covariance, covariance.T):
            raise ValueError("covariance must be symmetric")
        try:
            L = scipy.linalg.cholesky(covariance, lower=True)
        except np.linalg.LinAlgError as e:
            raise ValueError(f"covariance is not positive definite: {e}") from e
        # Sigma = L L^T  =>  Sigma^-1 = L^-T L^-1, so R = L^-1
        R = scipy.linalg.solve_triangular(L, np.eye(len(L)), lower=True)
        return cls(R)

    @property
    def dim(self) -> int:
        return self._R.shape[0]

    @property
    def sqrt_information(self) -> np.ndarray:
        return self._R.copy()

    @property
    def information(self) -> np.ndarray:
        return self._R.T @ self._R

    @property
    def covariance(self) -> np.ndarray:
        return np.linalg.inv(self.information)

    @property
    def sigmas(self) -> np.ndarray:
        """Marginal standard deviations."""
        return np.sqrt(np.diag(self.covariance))

    def whiten(self, v: np.ndarray) -> np.ndarray:
        """Whiten a residual vector: R v."""
        v = np.asarray(v, dtype=float)
        if v.shape != (self.dim,):
            raise ValueError(f"Expected vector of shape ({self.dim},), got {v.shape}")
        return self._R @ v

    def whiten_matrix(self, H: np.ndarray) -> np.ndarray:
        """Whiten a Jacobian block: R H."""
        H = np.asarray(H, dtype=float)
        if H.ndim != 2 or H.shape[0] != self.dim:
            raise ValueError(f"Expected matrix with {self.dim} rows, got shape {H.shape}")
        return self._R @ H

    def mahalanobis(self, v: np.ndarray) -> float:
        """Squared Mahalanobis distance ||R v||^2."""
        w = self.whiten(v)
        return float(w @ w)

    def equals(self, other: "GaussianNoise", tol: float = 1e-9) -> bool:
        if not isinstance(other, GaussianNoise) or other.dim != self.dim:
            return False
        return bool(np.allclose(self.information, other.information, atol=tol, rtol=0.0))

    def print(self, s: str = "") -> None:
        print(f"{s}{self!r}")

    def __repr__(self) -> str:
        return f"GaussianNoise(dim={self.dim}, sigmas={np.round(self.sigmas, 6).tolist()})"


class DiagonalNoise(GaussianNoise):
    """
    Gaussian noise model with independent components.

    Attributes:
        sigmas: Standard deviation per component.

    Examples:
        >>> model = DiagonalNoise.from_sigmas([0.1, 0.1, 0.2])
        >>> np.allclose(model.whiten(np.array([0.1, 0.2, 0.2])), [1.0, 2.0, 1.0])
        True
    """

    def __init__(self, sigmas: Sequence[float]):
        sigmas = np.array(sigmas, dtype=float).reshape(-1)
        if sigmas.size == 0:
            raise ValueError("sigmas must not be empty")
        if not np.all(np.isfinite(sigmas)) or np.any(sigmas <= 0.0):
            raise ValueError(f"sigmas must be finite and positive, got {sigmas}")
        self._sigmas = sigmas
        super().__init__(np.diag(1.0 / sigmas))

    @classmethod
    def from_sigmas(cls, sigmas: Sequence[float]) -> "DiagonalNoise":
        return cls(sigmas)

    @classmethod
    def from_variances(cls, variances: Sequence[float]) -> "DiagonalNoise":
        variances = np.asarray(variances, dtype=float)
        if np.any(variances <= 0.0):
            raise ValueError(f"variances must be positive, got {variances}")
        return cls(np.sqrt(variances))

    @classmethod
    def isotropic(cls, dim: int, sigma: float) -> "DiagonalNoise":
        """Same standard deviation on every component."""
        if dim < 1:
            raise ValueError(f"dim must be >= 1, got {dim}")
        return cls(np.full(dim, float(sigma)))

    @classmethod
    def unit(cls, dim: int) -> "DiagonalNoise":
        return cls.isotropic(dim, 1.0)

    @property
    def sigmas(self) -> np.ndarray:
        return self._sigmas.copy()

    @property
    def variances(self) -> np.ndarray:
        return self._sigmas ** 2

    def whiten(self, v: np.ndarray) -> np.ndarray:
        v = np.asarray(v, dtype=float)
        if v.shape != (self.dim,):
            raise ValueError(f"Expected vector of shape ({self.dim},), got {v.shape}")
        return v / self._sigmas

    def whiten_matrix(self, H: np.ndarray) -> np.ndarray:
        H = np.asarray(H, dtype=float)
        if H.ndim != 2 or H.shape[0] != self.dim:
            raise ValueError(f"Expected matrix with {self.dim} rows, got shape {H.shape}")
        return H / self._sigmas[:, None]

    def __repr__(self) -> str:
        return f"DiagonalNoise(sigmas={np.round(self._sigmas, 6).tolist()})"
