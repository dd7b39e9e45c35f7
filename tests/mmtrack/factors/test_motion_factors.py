"""Unit tests for ConstantVelocityFactor, StablePoseFactor and PriorFactor."""

import numpy as np
import pytest

from mmtrack.estimators import DiagonalNoise, ErrorEvaluation, FactorKind, GaussianNoise, Values
from mmtrack.factors import ConstantVelocityFactor, PriorFactor, StablePoseFactor
from mmtrack.geometry import Pose3, se3_compose, se3_exp, se3_retract


class TestConstantVelocityFactor:
    """Test suite for the two-variable zero-relative-motion factor."""

    def test_zero_for_identical_poses(self):
        factor = ConstantVelocityFactor("v0", "v1")
        v = Pose3.from_xyz_rpy(0.3, -0.2, 0.1, 0.2, -0.1, 0.5)
        assert np.allclose(factor.evaluate_error(v, v), 0.0, atol=1e-12)
        assert np.isclose(factor.error(Values({"v0": v, "v1": v})), 0.0)

    def test_grows_with_geodesic_distance(self):
        factor = ConstantVelocityFactor("v0", "v1")
        v = Pose3.from_xyz_rpy(0.3, -0.2, 0.1, 0.2, -0.1, 0.5)
        direction = np.array([0.2, -0.1, 0.3, 0.5, 0.4, -0.2])
        norms = [
            np.linalg.norm(factor.evaluate_error(v, se3_retract(v, s * direction)))
            for s in np.linspace(0.0, 2.0, 9)
        ]
        assert all(b > a for a, b in zip(norms[:-1], norms[1:]))
        # Geodesic: residual equals the tangent displacement
        assert np.isclose(norms[-1], np.linalg.norm(2.0 * direction))

    def test_whitened_by_noise_model(self):
        sigmas = [0.1, 0.1, 0.1, 0.5, 0.5, 0.5]
        factor = ConstantVelocityFactor("v0", "v1", DiagonalNoise.from_sigmas(sigmas))
        v0 = Pose3.identity()
        v1 = se3_exp(np.array([0.0, 0.0, 0.1, 0.5, 0.0, 0.0]))
        raw = ConstantVelocityFactor("v0", "v1").evaluate_error(v0, v1)
        assert np.allclose(factor.evaluate_error(v0, v1), raw / np.array(sigmas))

    def test_default_noise_model(self):
        factor = ConstantVelocityFactor("v0", "v1")
        assert factor.noise_model.equals(DiagonalNoise.unit(6))
        assert factor.dim() == 6
        assert factor.kind is FactorKind.CONSTANT_VELOCITY

    def test_noise_dimension_mismatch(self):
        with pytest.raises(ValueError):
            ConstantVelocityFactor("v0", "v1", DiagonalNoise.unit(3))
        with pytest.raises(TypeError):
            ConstantVelocityFactor("v0", "v1", np.eye(6))

    def test_wrong_arity(self):
        factor = ConstantVelocityFactor("v0", "v1")
        with pytest.raises(ValueError):
            factor.evaluate_error(Pose3.identity())


class TestStablePoseFactor:
    """Test suite for the previous/velocity/next consistency factor."""

    def setup_method(self):
        self.previous = Pose3.from_xyz_rpy(1.0, 2.0, 0.5, 0.1, -0.2, 0.8)
        self.velocity = Pose3.from_xyz_rpy(0.6, 0.1, -0.05, 0.02, 0.03, 0.15)

    def test_zero_when_consistent(self):
        factor = StablePoseFactor("o0", "v0", "o1", GaussianNoise.from_covariance(0.01 * np.eye(6)))
        next_pose = se3_compose(self.previous, self.velocity)
        result = factor.evaluate_error_with_jacobians(self.previous, self.velocity, next_pose)

        assert isinstance(result, ErrorEvaluation)
        assert np.allclose(result.error, 0.0, atol=1e-10)
        assert len(result.jacobians) == 3
        for H in result.jacobians:
            assert H.shape == (6, 6)

    def test_next_pose_jacobian_identity_when_consistent(self):
        factor = StablePoseFactor("o0", "v0", "o1")
        next_pose = se3_compose(self.previous, self.velocity)
        _, (H_prev, H_vel, H_next) = factor.evaluate_error_with_jacobians(
            self.previous, self.velocity, next_pose
        )
        assert np.allclose(H_next, np.eye(6))
        assert np.allclose(H_vel, -np.eye(6))

    def test_nonzero_when_inconsistent(self):
        factor = StablePoseFactor("o0", "v0", "o1")
        next_pose = se3_compose(self.previous, Pose3.from_xyz_rpy(1.0, 0.0, 0.0))
        assert np.linalg.norm(factor.evaluate_error(self.previous, self.velocity, next_pose)) > 0.1

    def test_linearize_matches_evaluation(self):
        factor = StablePoseFactor("o0", "v0", "o1", DiagonalNoise.isotropic(6, 0.2))
        next_pose = se3_retract(
            se3_compose(self.previous, self.velocity), np.array([0.01, 0.0, -0.02, 0.1, 0.0, 0.05])
        )
        values = Values({"o0": self.previous, "v0": self.velocity, "o1": next_pose})
        linear = factor.linearize(values)
        e, jacobians = factor.evaluate_error_with_jacobians(self.previous, self.velocity, next_pose)

        assert linear.keys() == ["o0", "v0", "o1"]
        assert np.allclose(linear.b, -e)
        for key, H in zip(["o0", "v0", "o1"], jacobians):
            assert np.allclose(linear.jacobian(key), H)
        assert np.isclose(factor.error(values), 0.5 * e @ e)
        assert np.allclose(factor.whitened_error(values), e)
        assert np.allclose(factor.unwhitened_error(values), 0.2 * e)

    def test_clone_and_equals(self):
        factor = StablePoseFactor("o0", "v0", "o1", DiagonalNoise.isotropic(6, 0.2))
        copy = factor.clone()
        assert copy is not factor
        assert copy.equals(factor)
        assert not factor.equals(StablePoseFactor("o0", "v0", "o1"))
        assert not factor.equals(StablePoseFactor("o1", "v0", "o0", DiagonalNoise.isotropic(6, 0.2)))
        assert not factor.equals(ConstantVelocityFactor("o0", "v0", DiagonalNoise.isotropic(6, 0.2)))


class TestPriorFactor:
    """Test suite for the unary pose prior."""

    def test_zero_at_prior(self):
        prior = Pose3.from_xyz_rpy(1.0, 2.0, 3.0, yaw=0.4)
        factor = PriorFactor("x0", prior)
        assert np.allclose(factor.evaluate_error(prior), 0.0, atol=1e-12)

    def test_residual_is_local_displacement(self):
        prior = Pose3.from_xyz_rpy(1.0, 2.0, 3.0, yaw=0.4)
        delta = np.array([0.05, -0.02, 0.1, 0.3, 0.2, -0.1])
        factor = PriorFactor("x0", prior)
        assert np.allclose(factor.evaluate_error(se3_retract(prior, delta)), delta)

    def test_equals_compares_prior(self):
        a = PriorFactor("x0", Pose3.identity())
        b = PriorFactor("x0", Pose3.from_xyz_rpy(1.0, 0.0, 0.0))
        assert not a.equals(b)
        assert a.equals(a.clone())
        assert a.kind is FactorKind.PRIOR

    def test_rejects_non_pose(self):
        with pytest.raises(TypeError):
            PriorFactor("x0", np.zeros(6))
