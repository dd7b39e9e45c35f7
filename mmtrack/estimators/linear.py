"""
Linear (Jacobian) factors produced by linearizing nonlinear factors.

A JacobianFactor represents the quadratic

    0.5 * || W (sum_k A_k delta_k - b) ||^2

over tangent increments delta_k of the variables it touches. W is the
square-root information of an optional noise model; factors returned by
NoiseModelFactor.linearize are already whitened and carry no noise model.
"""

from typing import Dict, Hashable, List, Mapping, Optional

import numpy as np

from .noise_model import GaussianNoise


class JacobianFactor:
    """
    Gaussian factor in Jacobian form.

    Attributes:
        terms: Ordered mapping key -> Jacobian block A_k (rows, d_k).
        b: Right-hand side (rows,).
        noise_model: Optional noise model applied on top of A and b.
    """

    def __init__(
        self,
        terms: Mapping[Hashable, np.ndarray],
        b: np.ndarray,
        noise_model: Optional[GaussianNoise] = None,
    ):
        """
        Raises:
            ValueError: If the blocks and b disagree on the number of rows.
        """
        b = np.asarray(b, dtype=float).reshape(-1)
        self._terms: Dict[Hashable, np.ndarray] = {}
        for key, A in terms.items():
            A = np.atleast_2d(np.asarray(A, dtype=float))
            if A.shape[0] != b.shape[0]:
                raise ValueError(
                    f"Jacobian for {key} has {A.shape[0]} rows, expected {b.shape[0]}"
                )
            self._terms[key] = A
        if noise_model is not None and noise_model.dim != b.shape[0]:
            raise ValueError(
                f"Noise model dimension {noise_model.dim} does not match {b.shape[0]} rows"
            )
        self._b = b
        self.noise_model = noise_model

    def keys(self) -> List[Hashable]:
        return list(self._terms.keys())

    def jacobian(self, key: Hashable) -> np.ndarray:
        """
        Block for one variable.

        Raises:
            KeyError: If the factor does not involve key.
        """
        try:
            return self._terms[key]
        except KeyError:
            raise KeyError(f"Variable {key} not in factor") from None

    @property
    def b(self) -> np.ndarray:
        return self._b

    @property
    def rows(self) -> int:
        return self._b.shape[0]

    def whiten(self) -> "JacobianFactor":
        """Fold the noise model into A and b."""
        if self.noise_model is None:
            return self
        terms = {k: self.noise_model.whiten_matrix(A) for k, A in self._terms.items()}
        return JacobianFactor(terms, self.noise_model.whiten(self._b))

    def error_vector(self, delta: Mapping[Hashable, np.ndarray]) -> np.ndarray:
        """Whitened linear residual W (sum A_k delta_k - b)."""
        e = -self._b.copy()
        for key, A in self._terms.items():
            e += A @ np.asarray(delta[key], dtype=float)
        if self.noise_model is not None:
            e = self.noise_model.whiten(e)
        return e

    def error(self, delta: Mapping[Hashable, np.ndarray]) -> float:
        e = self.error_vector(delta)
        return 0.5 * float(e @ e)

    def equals(self, other: "JacobianFactor", tol: float = 1e-9) -> bool:
        if not isinstance(other, JacobianFactor) or self.keys() != other.keys():
            return False
        if (self.noise_model is None) != (other.noise_model is None):
            return False
        if self.noise_model is not None and not self.noise_model.equals(other.noise_model, tol):
            return False
        if not np.allclose(self._b, other.b, atol=tol, rtol=0.0):
            return False
        return all(
            np.allclose(A, other.jacobian(k), atol=tol, rtol=0.0)
            for k, A in self._terms.items()
        )

    def __repr__(self) -> str:
        return f"JacobianFactor(keys={self.keys()}, rows={self.rows})"
