"""Unit tests for mmtrack.estimators noise models, Values and JacobianFactor."""

import numpy as np
import pytest

from mmtrack.estimators import DiagonalNoise, GaussianNoise, JacobianFactor, Values
from mmtrack.geometry import Pose3, se3_exp


class TestGaussianNoise:
    """Test suite for full-covariance noise models."""

    def test_from_covariance_whitening(self):
        cov = np.array([[4.0, 1.0], [1.0, 2.0]])
        model = GaussianNoise.from_covariance(cov)
        R = model.sqrt_information
        assert np.allclose(R.T @ R, np.linalg.inv(cov))

        v = np.array([0.5, -1.0])
        assert np.isclose(model.mahalanobis(v), v @ np.linalg.inv(cov) @ v)

    def test_from_information_matches_covariance(self):
        cov = np.diag([0.5, 2.0, 3.0])
        a = GaussianNoise.from_covariance(cov)
        b = GaussianNoise.from_information(np.linalg.inv(cov))
        assert a.equals(b)
        assert np.allclose(a.sigmas, np.sqrt(np.diag(cov)))

    def test_not_positive_definite(self):
        with pytest.raises(ValueError) as excinfo:
            GaussianNoise.from_covariance(np.array([[1.0, 2.0], [2.0, 1.0]]))
        assert isinstance(excinfo.value.__cause__, np.linalg.LinAlgError)
        with pytest.raises(ValueError) as excinfo:
            GaussianNoise.from_information(-np.eye(3))
        assert isinstance(excinfo.value.__cause__, np.linalg.LinAlgError)

    def test_asymmetric_rejected(self):
        with pytest.raises(ValueError):
            GaussianNoise.from_covariance(np.array([[1.0, 0.5], [0.0, 1.0]]))

    def test_whiten_matrix_shape_check(self):
        model = GaussianNoise.from_covariance(np.eye(3))
        with pytest.raises(ValueError):
            model.whiten_matrix(np.zeros((2, 6)))


class TestDiagonalNoise:
    """Test suite for diagonal noise models."""

    def test_whiten(self):
        model = DiagonalNoise.from_sigmas([0.1, 0.1, 0.2])
        assert np.allclose(model.whiten(np.array([0.1, 0.2, 0.2])), [1.0, 2.0, 1.0])
        H = np.ones((3, 2))
        assert np.allclose(model.whiten_matrix(H), H / np.array([[0.1], [0.1], [0.2]]))

    def test_matches_full_model(self):
        diag = DiagonalNoise.from_variances([0.01, 0.04, 0.09])
        full = GaussianNoise.from_covariance(np.diag([0.01, 0.04, 0.09]))
        assert diag.equals(full)
        v = np.array([0.3, -0.2, 0.1])
        assert np.allclose(diag.whiten(v), full.whiten(v))

    def test_isotropic(self):
        model = DiagonalNoise.isotropic(6, 0.5)
        assert model.dim == 6
        assert np.allclose(model.sigmas, 0.5)

    @pytest.mark.parametrize("sigmas", [[], [1.0, 0.0], [1.0, -1.0], [np.inf]])
    def test_invalid_sigmas(self, sigmas):
        with pytest.raises(ValueError):
            DiagonalNoise(sigmas)


class TestValues:
    """Test suite for the Values container."""

    def test_insert_and_at(self):
        values = Values()
        values.insert("x0", Pose3.identity())
        assert "x0" in values
        assert values.exists("x0")
        assert values.at("x0").equals(Pose3.identity())

    def test_missing_key(self):
        values = Values()
        with pytest.raises(KeyError, match="x1"):
            values.at("x1")
        with pytest.raises(KeyError):
            values.update("x1", Pose3.identity())

    def test_duplicate_insert(self):
        values = Values({"x0": Pose3.identity()})
        with pytest.raises(KeyError):
            values.insert("x0", Pose3.identity())

    def test_rejects_non_pose(self):
        with pytest.raises(TypeError):
            Values().insert("x0", np.zeros(3))

    def test_insertion_order(self):
        values = Values()
        for key in ["o1", "x0", "v3"]:
            values.insert(key, Pose3.identity())
        assert values.keys() == ["o1", "x0", "v3"]
        assert values.dim() == 18

    def test_retract_returns_new_values(self):
        values = Values({"a": Pose3.identity(), "b": Pose3.from_xyz_rpy(1.0, 0.0, 0.0)})
        delta = np.array([0.0, 0.0, 0.1, 0.5, 0.0, 0.0])
        moved = values.retract({"a": delta})

        assert moved.at("a").equals(se3_exp(delta))
        assert moved.at("b").equals(values.at("b"))
        assert values.at("a").equals(Pose3.identity())

        with pytest.raises(KeyError):
            values.retract({"c": delta})

    def test_local_coordinates(self):
        values = Values({"a": Pose3.from_xyz_rpy(1.0, 2.0, 0.0, yaw=0.3)})
        delta = np.array([0.1, -0.05, 0.2, 0.3, 0.1, -0.2])
        moved = values.retract({"a": delta})
        assert np.allclose(values.local_coordinates(moved)["a"], delta)

    def test_copy_and_equals(self):
        values = Values({"a": Pose3.from_xyz_rpy(1.0, 0.0, 0.0)})
        other = values.copy()
        assert values.equals(other)
        other.update("a", Pose3.identity())
        assert not values.equals(other)


class TestJacobianFactor:
    """Test suite for linear factors."""

    def test_error(self):
        factor = JacobianFactor({"a": np.eye(2), "b": -np.eye(2)}, np.array([1.0, 0.0]))
        delta = {"a": np.array([1.0, 1.0]), "b": np.array([0.0, 1.0])}
        # A_a d_a + A_b d_b - b = [1, 0] - [1, 0] = 0
        assert np.isclose(factor.error(delta), 0.0)
        assert factor.keys() == ["a", "b"]
        assert factor.rows == 2

    def test_whiten(self):
        model = DiagonalNoise.from_sigmas([0.5, 2.0])
        factor = JacobianFactor({"a": np.eye(2)}, np.array([1.0, 2.0]), model)
        whitened = factor.whiten()
        assert whitened.noise_model is None
        assert np.allclose(whitened.b, [2.0, 1.0])
        delta = {"a": np.array([0.3, -0.4])}
        assert np.isclose(factor.error(delta), whitened.error(delta))

    def test_row_mismatch(self):
        with pytest.raises(ValueError):
            JacobianFactor({"a": np.eye(3)}, np.zeros(2))

    def test_missing_block(self):
        factor = JacobianFactor({"a": np.eye(2)}, np.zeros(2))
        with pytest.raises(KeyError):
            factor.jacobian("b")
