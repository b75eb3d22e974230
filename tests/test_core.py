"""Tests for the truncated normal and Gaussian precision samplers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose
from scipy import stats

from spifa._core import (
    batched_draw_from_precision,
    draw_from_precision,
    standard_truncated_normal,
    truncated_normal,
)


class TestStandardTruncatedNormal:
    """Tests for standard_truncated_normal."""

    def test_draws_inside_interval(self, rng):
        lower = np.array([-1.0, 0.0, -np.inf, 2.0, -5.0])
        upper = np.array([1.0, np.inf, 0.0, 3.0, -4.0])
        u = rng.random((2000, 5))

        x, fallback = standard_truncated_normal(lower, upper, u)

        assert np.all(x >= lower) and np.all(x <= upper)
        assert not np.any(fallback)

    def test_extreme_tails_stay_finite(self, rng):
        lower = np.array([40.0, -np.inf, 1e3])
        upper = np.array([np.inf, -40.0, np.inf])
        u = rng.random((100, 3))

        x, _ = standard_truncated_normal(lower, upper, u)

        assert np.all(np.isfinite(x))
        assert np.all(x[:, 0] >= 40.0)
        assert np.all(x[:, 1] <= -40.0)
        assert np.all(x[:, 2] >= 1e3)

    def test_matches_scipy_distribution(self, rng):
        a, b = 0.5, 2.0
        u = rng.random(20000)

        x, _ = standard_truncated_normal(np.full(u.shape, a), np.full(u.shape, b), u)

        result = stats.kstest(x, stats.truncnorm(a, b).cdf)
        assert result.pvalue > 0.001

    def test_upper_tail_reflection(self):
        u = np.array([0.25, 0.5, 0.75])
        lower = np.full(3, 1.0)
        upper = np.full(3, np.inf)

        x, _ = standard_truncated_normal(lower, upper, u)

        # Reflected intervals invert the complementary probability
        assert_allclose(x, stats.truncnorm(1.0, np.inf).ppf(1 - u), rtol=1e-6)

    def test_unbounded_is_standard_normal_quantile(self):
        u = np.array([0.1, 0.5, 0.9])
        x, _ = standard_truncated_normal(
            np.full(3, -np.inf), np.full(3, np.inf), u
        )
        assert_allclose(x, stats.norm.ppf(u), rtol=1e-6)


class TestTruncatedNormal:
    """Tests for truncated_normal on the original scale."""

    def test_shifted_and_scaled(self, rng):
        draws = truncated_normal(
            mean=np.full(5000, 3.0), lower=2.0, upper=np.inf, rng=rng, sd=2.0
        )

        assert np.all(draws >= 2.0)
        expected = stats.truncnorm(-0.5, np.inf, loc=3.0, scale=2.0).mean()
        assert np.mean(draws) == pytest.approx(expected, abs=0.1)


def _moment_tolerances(cov, n_draws):
    """Five Monte Carlo standard errors of the sample mean and covariance."""
    var = np.max(np.diag(cov))
    return 5.0 * np.sqrt(var / n_draws), 5.0 * var * np.sqrt(2.0 / n_draws)


class TestPrecisionDraws:
    """Tests for draws parameterized by precision."""

    def test_moments(self, rng):
        precision = np.array([[2.0, 0.5], [0.5, 1.0]])
        linear = np.array([1.0, -1.0])
        n_draws = 20000

        draws = np.array([draw_from_precision(precision, linear, rng) for _ in range(n_draws)])

        cov = np.linalg.inv(precision)
        mean_tol, cov_tol = _moment_tolerances(cov, n_draws)
        assert_allclose(np.mean(draws, axis=0), cov @ linear, atol=mean_tol)
        assert_allclose(np.cov(draws.T), cov, atol=cov_tol)

    def test_batched_moments(self, rng):
        precision = np.stack([np.eye(2) * 4.0, np.array([[1.0, 0.3], [0.3, 2.0]])])
        linear = np.array([[4.0, 0.0], [0.0, 1.0]])

        draws = np.array(
            [batched_draw_from_precision(precision, linear, rng) for _ in range(20000)]
        )

        assert draws.shape == (20000, 2, 2)
        for k in range(2):
            cov = np.linalg.inv(precision[k])
            mean_tol, cov_tol = _moment_tolerances(cov, 20000)
            assert_allclose(np.mean(draws[:, k], axis=0), cov @ linear[k], atol=mean_tol)
            assert_allclose(np.cov(draws[:, k].T), cov, atol=cov_tol)
