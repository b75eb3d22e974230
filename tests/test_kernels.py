"""Tests for the exponential spatial kernel."""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy.spatial.distance import cdist

from spifa.exceptions import ConfigurationError
from spifa.kernels import SpatialKernel, default_range, validate_distances


@pytest.fixture
def distances(rng):
    coords = rng.random((12, 2))
    return cdist(coords, coords)


class TestSpatialKernel:
    """Tests for SpatialKernel."""

    def test_reconstructs_correlation(self, distances):
        kernel = SpatialKernel.from_distances(distances, 0.4, nugget=1e-6)
        R = np.exp(-distances / 0.4) + 1e-6 * np.eye(12)

        rebuilt = kernel.eigenvectors @ np.diag(kernel.eigenvalues) @ kernel.eigenvectors.T

        assert_allclose(rebuilt, R, atol=1e-10)
        assert kernel.log_det == pytest.approx(np.linalg.slogdet(R)[1])

    def test_rotate_unrotate(self, distances, rng):
        kernel = SpatialKernel.from_distances(distances, 0.4)
        X = rng.standard_normal((12, 3))
        assert_allclose(kernel.unrotate(kernel.rotate(X)), X, atol=1e-10)

    def test_solve(self, distances, rng):
        kernel = SpatialKernel.from_distances(distances, 0.4, nugget=1e-2)
        R = np.exp(-distances / 0.4) + 1e-2 * np.eye(12)
        X = rng.standard_normal((12, 2))
        assert_allclose(R @ kernel.solve(X), X, atol=1e-8)

    def test_eigenvalues_floored(self):
        # Identical locations give a rank-one correlation without the nugget
        kernel = SpatialKernel.from_distances(np.zeros((4, 4)), 1.0, nugget=0.0)
        assert np.all(kernel.eigenvalues > 0)


class TestDistances:
    """Tests for distance validation."""

    def test_default_range_is_median(self):
        D = np.array([[0.0, 1.0, 3.0], [1.0, 0.0, 2.0], [3.0, 2.0, 0.0]])
        assert default_range(D) == 2.0
        assert default_range(np.zeros((3, 3))) == 1.0

    @pytest.mark.parametrize(
        "D",
        [
            np.zeros((2, 2)),
            np.array([[0.0, 1.0, 2.0], [1.0, 0.0, 1.0], [2.5, 1.0, 0.0]]),
            np.array([[0.0, -1.0, 2.0], [-1.0, 0.0, 1.0], [2.0, 1.0, 0.0]]),
            np.array([[1.0, 1.0, 2.0], [1.0, 0.0, 1.0], [2.0, 1.0, 0.0]]),
            np.array([[0.0, np.inf, 2.0], [np.inf, 0.0, 1.0], [2.0, 1.0, 0.0]]),
        ],
    )
    def test_invalid(self, D):
        with pytest.raises(ConfigurationError):
            validate_distances(D, 3)
