"""Tests for the adaptive random-walk Metropolis proposal."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from spifa.adaptive import AdaptiveProposal, RobbinsMonroSchedule
from spifa.exceptions import ConfigurationError, PriorSpecificationError


class TestRobbinsMonroSchedule:
    """Tests for the gain sequence."""

    def test_defaults(self):
        schedule = RobbinsMonroSchedule()
        assert schedule.C == 0.7
        assert schedule.alpha == 0.8
        assert schedule.target == 0.234

    def test_gain_is_capped_and_decreasing(self):
        schedule = RobbinsMonroSchedule(C=5.0, alpha=0.5)
        gains = [schedule.gain(t) for t in range(1, 200)]
        assert gains[0] == 1.0
        assert all(g <= 1.0 for g in gains)
        assert all(a >= b for a, b in zip(gains, gains[1:]))
        assert gains[-1] == pytest.approx(5.0 / 199**0.5)

    @pytest.mark.parametrize(
        "kwargs",
        [{"C": 0.0}, {"alpha": 0.0}, {"alpha": 1.5}, {"target": 0.0}, {"target": 1.0}],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(PriorSpecificationError):
            RobbinsMonroSchedule(**kwargs)


class TestAdaptiveProposal:
    """Tests for AdaptiveProposal."""

    def test_init(self):
        proposal = AdaptiveProposal("corr", np.zeros(3), scale=0.5)
        assert proposal.dim == 3
        assert proposal.logscale == pytest.approx(np.log(0.5))
        assert_allclose(proposal.params_cov, np.eye(3))
        assert np.isnan(proposal.acceptance_rate)

    def test_invalid_covariance(self):
        with pytest.raises(ConfigurationError):
            AdaptiveProposal("corr", np.zeros(2), cov=np.eye(3))
        with pytest.raises(ConfigurationError):
            AdaptiveProposal("corr", np.zeros(2), cov=np.array([[1.0, 0.5], [0.0, 1.0]]))
        with pytest.raises(ConfigurationError):
            AdaptiveProposal("corr", np.zeros(2), scale=0.0)

    def test_adapt_moves_logscale_toward_target(self):
        schedule = RobbinsMonroSchedule(C=0.5, alpha=0.8, target=0.25)
        proposal = AdaptiveProposal("x", np.zeros(1))
        start = proposal.logscale

        proposal.adapt(1.0, schedule)
        assert proposal.logscale == pytest.approx(start + 0.5 * 0.75)

        proposal.adapt(0.0, schedule)
        assert proposal.logscale < start + 0.5 * 0.75

    def test_running_covariance_stays_psd(self, rng):
        schedule = RobbinsMonroSchedule()
        proposal = AdaptiveProposal("x", np.zeros(3), cov=np.zeros((3, 3)))

        for _ in range(500):
            proposal.params = rng.standard_normal(3) * np.array([1.0, 0.01, 10.0])
            proposal.adapt(0.3, schedule)
            assert np.min(np.linalg.eigvalsh(proposal.params_cov)) > -1e-10

    def test_singular_covariance_falls_back_to_identity(self, rng):
        proposal = AdaptiveProposal("x", np.zeros(2), cov=np.array([[1.0, 2.0], [2.0, 1.0]]))

        candidate = proposal.propose(rng)

        assert proposal.n_fallback == 1
        assert np.all(np.isfinite(candidate))

    @pytest.mark.parametrize(
        "cov", [np.zeros((2, 2)), np.array([[1.0, 1.0], [1.0, 1.0]])]
    )
    def test_degenerate_covariance_falls_back_to_identity(self, rng, cov):
        proposal = AdaptiveProposal("x", np.zeros(2), cov=cov, scale=1.0)

        steps = np.array([proposal.propose(rng) for _ in range(200)])

        assert proposal.n_fallback == 200
        assert np.std(steps[:, 0]) == pytest.approx(1.0, abs=0.25)
        assert np.std(steps[:, 1] - steps[:, 0]) > 0.5

    def test_full_gain_rejection_does_not_freeze_chain(self, rng):
        schedule = RobbinsMonroSchedule(C=1.0)
        proposal = AdaptiveProposal("x", np.zeros(2), scale=1.0)

        proposal.step(lambda p: 0.0 if np.all(p == 0) else -np.inf, schedule, rng)
        assert_allclose(proposal.params_cov, 0.0)

        candidate = proposal.propose(rng)
        assert proposal.n_fallback == 1
        assert np.max(np.abs(candidate)) > 1e-3

    def test_invalid_candidates_are_rejected(self, rng):
        schedule = RobbinsMonroSchedule()
        proposal = AdaptiveProposal("x", np.zeros(1))

        accepted = proposal.step(lambda p: -np.inf if p[0] != 0 else 0.0, schedule, rng)

        assert not accepted
        assert proposal.n_invalid == 1
        assert_allclose(proposal.params, [0.0])

    def test_on_accept_receives_candidate(self, rng):
        schedule = RobbinsMonroSchedule()
        proposal = AdaptiveProposal("x", np.zeros(2))
        seen = []

        accepted = proposal.step(lambda p: 0.0, schedule, rng, on_accept=seen.append)

        assert accepted
        assert_allclose(seen[0], proposal.params)
        assert proposal.acceptance_rate == 1.0

    def test_acceptance_rate_approaches_target(self):
        rng = np.random.default_rng(0)
        schedule = RobbinsMonroSchedule(C=0.7, alpha=0.6, target=0.3)
        proposal = AdaptiveProposal("x", np.zeros(2), scale=1.0)

        def log_target(p):
            return -0.5 * float(p @ p)

        accepted = [proposal.step(log_target, schedule, rng) for _ in range(10000)]

        assert np.mean(accepted[5000:]) == pytest.approx(0.3, abs=0.08)

    def test_repr(self):
        assert "corr" in repr(AdaptiveProposal("corr", np.zeros(1)))
