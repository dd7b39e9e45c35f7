"""
Unit tests for Jacobian correctness.

Tests analytical Jacobians of every factor against numerical differentiation
on the pose manifold. Perturbations are applied the same way the optimizer
applies its updates, T <- T * Exp(d), so the numerical derivative of
r(T * Exp(d)) at d = 0 must match the analytic block.

Run with: python -m pytest tests/test_jacobians.py -v
"""

from typing import Callable, List

import numpy as np
import pytest

from mmtrack.estimators import DiagonalNoise, Values
from mmtrack.factors import (
    ConstantVelocityFactor,
    CouplingMode,
    HypothesisModel,
    MultiHypothesisFactor,
    PriorFactor,
    StablePoseFactor,
)
from mmtrack.geometry import (
    Pose3,
    se3_between,
    se3_between_jacobians,
    se3_compose,
    se3_compose_jacobians,
    se3_exp,
    se3_log,
    se3_log_derivative,
    se3_retract,
    se3_transform_to,
    se3_transform_to_jacobians,
)


def numerical_jacobian(
    f: Callable[[Pose3], np.ndarray],
    T: Pose3,
    epsilon: float = 1e-6,
) -> np.ndarray:
    """
    Compute the Jacobian of f at T numerically using central differences
    along the six tangent directions.

    Args:
        f: Function that takes a Pose3 and returns a vector.
        T: Pose at which to compute the Jacobian.
        epsilon: Step size for finite differences.

    Returns:
        Numerical Jacobian, shape (len(f(T)), 6).
    """
    n_out = len(f(T))
    J = np.zeros((n_out, 6))
    for i in range(6):
        d = np.zeros(6)
        d[i] = epsilon
        J[:, i] = (f(se3_retract(T, d)) - f(se3_retract(T, -d))) / (2 * epsilon)
    return J


def random_pose(rng: np.random.Generator, spread: float = 2.0) -> Pose3:
    return se3_exp(np.concatenate([rng.uniform(-1.0, 1.0, 3), rng.normal(0.0, spread, 3)]))


def random_poses(seed: int, n: int) -> List[Pose3]:
    rng = np.random.default_rng(seed)
    return [random_pose(rng) for _ in range(n)]


def replace(poses, i, T):
    out = list(poses)
    out[i] = T
    return out


class TestGroupJacobians:
    """Test SE(3) operation Jacobians."""

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_compose_jacobians(self, seed):
        a, b = random_poses(seed, 2)
        H_a, H_b = se3_compose_jacobians(a, b)
        c = se3_compose(a, b)
        f_a = lambda T: se3_log(se3_between(c, se3_compose(T, b)))
        f_b = lambda T: se3_log(se3_between(c, se3_compose(a, T)))
        np.testing.assert_allclose(H_a, numerical_jacobian(f_a, a), atol=1e-6)
        np.testing.assert_allclose(H_b, numerical_jacobian(f_b, b), atol=1e-6)

    @pytest.mark.parametrize("seed", [3, 4, 5])
    def test_between_jacobians(self, seed):
        a, b = random_poses(seed, 2)
        H_a, H_b = se3_between_jacobians(a, b)
        c = se3_between(a, b)
        f_a = lambda T: se3_log(se3_between(c, se3_between(T, b)))
        f_b = lambda T: se3_log(se3_between(c, se3_between(a, T)))
        np.testing.assert_allclose(H_a, numerical_jacobian(f_a, a), atol=1e-6)
        np.testing.assert_allclose(H_b, numerical_jacobian(f_b, b), atol=1e-6)

    @pytest.mark.parametrize("seed", [6, 7])
    def test_log_derivative(self, seed):
        (T,) = random_poses(seed, 1)
        np.testing.assert_allclose(se3_log_derivative(T), numerical_jacobian(se3_log, T), atol=1e-6)

    def test_log_derivative_near_identity(self):
        T = se3_exp(np.array([1e-5, -2e-5, 1e-5, 0.5, 0.2, -0.3]))
        np.testing.assert_allclose(se3_log_derivative(T), numerical_jacobian(se3_log, T), atol=1e-6)

    def test_transform_to_jacobian(self):
        (T,) = random_poses(8, 1)
        p = np.array([1.0, -2.0, 0.5])
        H_pose, H_point = se3_transform_to_jacobians(T, p)
        np.testing.assert_allclose(
            H_pose, numerical_jacobian(lambda X: se3_transform_to(X, p), T), atol=1e-6
        )
        eps = 1e-6
        numeric = np.column_stack(
            [
                (se3_transform_to(T, p + eps * e) - se3_transform_to(T, p - eps * e)) / (2 * eps)
                for e in np.eye(3)
            ]
        )
        np.testing.assert_allclose(H_point, numeric, atol=1e-6)


class TestMotionFactorJacobians:
    """Test motion and prior factor Jacobians."""

    @pytest.mark.parametrize("seed", range(5))
    def test_stable_pose_factor(self, seed):
        factor = StablePoseFactor("o0", "v0", "o1", DiagonalNoise.from_sigmas([0.1, 0.2, 0.3, 0.5, 1.0, 2.0]))
        poses = random_poses(100 + seed, 3)
        _, jacobians = factor.evaluate_error_with_jacobians(*poses)
        for i in range(3):
            numeric = numerical_jacobian(
                lambda T: factor.evaluate_error(*replace(poses, i, T)), poses[i]
            )
            np.testing.assert_allclose(jacobians[i], numeric, atol=1e-6)

    def test_stable_pose_factor_near_consistent(self):
        factor = StablePoseFactor("o0", "v0", "o1")
        previous, velocity = random_poses(200, 2)
        next_pose = se3_retract(se3_compose(previous, velocity), 1e-4 * np.ones(6))
        poses = [previous, velocity, next_pose]
        _, jacobians = factor.evaluate_error_with_jacobians(*poses)
        for i in range(3):
            numeric = numerical_jacobian(
                lambda T: factor.evaluate_error(*replace(poses, i, T)), poses[i]
            )
            np.testing.assert_allclose(jacobians[i], numeric, atol=1e-6)

    @pytest.mark.parametrize("seed", range(3))
    def test_constant_velocity_factor(self, seed):
        factor = ConstantVelocityFactor("v0", "v1", DiagonalNoise.isotropic(6, 0.5))
        poses = random_poses(300 + seed, 2)
        _, jacobians = factor.evaluate_error_with_jacobians(*poses)
        for i in range(2):
            numeric = numerical_jacobian(
                lambda T: factor.evaluate_error(*replace(poses, i, T)), poses[i]
            )
            np.testing.assert_allclose(jacobians[i], numeric, atol=1e-6)

    def test_prior_factor(self):
        prior, T = random_poses(400, 2)
        factor = PriorFactor("x0", prior)
        _, (H,) = factor.evaluate_error_with_jacobians(T)
        np.testing.assert_allclose(H, numerical_jacobian(factor.evaluate_error, T), atol=1e-6)


class TestDetectionFactorJacobians:
    """Test the max-mixture factor's linearization against the selected hypothesis' residual."""

    def setup_method(self):
        self.hypotheses = [
            HypothesisModel(None, [0.04, 0.09, 0.01], 0.8, mean=[2.0, 0.5, 0.1]),
            HypothesisModel(None, 0.25, 0.5, mean=[-1.0, 3.0, 0.0]),
        ]
        rng = np.random.default_rng(500)
        self.observer = random_pose(rng, 1.0)
        self.obj = se3_retract(
            se3_compose(self.observer, Pose3(np.eye(3), np.array([2.1, 0.4, 0.15]))),
            np.concatenate([rng.uniform(-0.5, 0.5, 3), np.zeros(3)]),
        )

    def whitened_residual(self, factor, index, observer, obj):
        x = se3_between(observer, obj).translation
        return factor.noise_models[index].whiten(x - factor.measurements[index])

    def test_tightly_coupled(self):
        factor = MultiHypothesisFactor("o0", "x0", self.hypotheses)
        values = Values({"o0": self.obj, "x0": self.observer})
        index, _ = factor.hypothesis_index_and_error(values)
        assert index == 0

        linear = factor.linearize(values)
        numeric_obj = numerical_jacobian(
            lambda T: self.whitened_residual(factor, index, self.observer, T), self.obj
        )
        numeric_obs = numerical_jacobian(
            lambda T: self.whitened_residual(factor, index, T, self.obj), self.observer
        )
        np.testing.assert_allclose(linear.jacobian("o0"), numeric_obj, atol=1e-6)
        np.testing.assert_allclose(linear.jacobian("x0"), numeric_obs, atol=1e-6)
        np.testing.assert_allclose(
            linear.b, -self.whitened_residual(factor, index, self.observer, self.obj)
        )

    def test_loosely_coupled(self):
        factor = MultiHypothesisFactor(
            "o0", "x0", self.hypotheses, coupling=CouplingMode.LOOSELY_COUPLED
        )
        values = Values({"o0": self.obj, "x0": self.observer})
        index, _ = factor.hypothesis_index_and_error(values)
        linear = factor.linearize(values)
        numeric_obj = numerical_jacobian(
            lambda T: self.whitened_residual(factor, index, self.observer, T), self.obj
        )
        np.testing.assert_allclose(linear.jacobian("o0"), numeric_obj, atol=1e-6)
        np.testing.assert_array_equal(linear.jacobian("x0"), np.zeros((3, 6)))
