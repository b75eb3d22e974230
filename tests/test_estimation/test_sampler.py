"""Tests for the Metropolis-within-Gibbs driver."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from spifa import IfaSampler, SampleResult, fit_ifa, simulate_ifa
from spifa.exceptions import ConfigurationError, PriorSpecificationError


class TestIfaSampler:
    """Tests for IfaSampler construction and single stages."""

    def test_init(self, ordinal_data, simple_structure):
        sampler = IfaSampler(ordinal_data["responses"], 2, L=simple_structure, seed=0)
        assert sampler.state.n_factors == 2
        assert "cifa" in repr(sampler)

    def test_stage_wrappers(self, ordinal_data, simple_structure):
        sampler = IfaSampler(ordinal_data["responses"], 2, L=simple_structure, seed=0)
        sampler.update_z()
        sampler.update_c(0.0, 1.0)
        sampler.update_a(0.0, 1.0)
        sampler.update_theta()
        accepted = sampler.update_cov_params(0.7, 0.8, 0.234, 1.5, index=0)

        assert isinstance(accepted, bool)
        assert sampler.state.proposal("corr").n_steps == 1

    def test_cov_params_without_adaptive_block(self, binary_data):
        sampler = IfaSampler(binary_data["responses"], 1, model_type="eifa", seed=0)
        with pytest.raises(ConfigurationError, match="no adaptive block"):
            sampler.update_cov_params(0.7, 0.8, 0.234, 1.5, index=0)

    def test_invalid_model(self, binary_data):
        with pytest.raises(ConfigurationError):
            IfaSampler(binary_data["responses"], 1, model_type="2pl")


class TestSample:
    """Tests for IfaSampler.sample."""

    def test_thinning_and_burnin(self, binary_data):
        sampler = IfaSampler(binary_data["responses"], 1, model_type="eifa", seed=1)
        result = sampler.sample(n_iter=50, thin=4, burnin=10)

        assert isinstance(result, SampleResult)
        assert len(result) == (50 - 10) // 4
        assert_array_equal(result.iterations, np.arange(14, 51, 4))
        assert result.theta.shape == (10, 50, 1)
        assert result.c.shape == (10, 10)
        assert result.A.shape == (10, 10, 1)
        assert result.n_iterations == 50
        assert not result.stopped_early

    def test_no_records_when_thin_exceeds_chain(self, binary_data):
        sampler = IfaSampler(binary_data["responses"], 1, seed=1)
        result = sampler.sample(n_iter=5, thin=10)
        assert len(result) == 0
        assert result.n_iterations == 5

    def test_reproducible_with_seed(self, ordinal_data):
        results = [
            IfaSampler(ordinal_data["responses"], 2, seed=123).sample(n_iter=20, thin=2)
            for _ in range(2)
        ]
        assert_array_equal(results[0].theta, results[1].theta)
        assert_array_equal(results[0].corr, results[1].corr)
        assert_array_equal(results[0].thresholds, results[1].thresholds)

    def test_restrictions_and_correlation_valid(self, ordinal_data, simple_structure):
        sampler = IfaSampler(ordinal_data["responses"], 2, L=simple_structure, seed=2)
        result = sampler.sample(n_iter=60, thin=3)

        assert np.all(result.A[:, simple_structure == 0] == 0.0)
        for corr in result.corr:
            assert_allclose(corr, corr.T)
            assert_allclose(np.diag(corr), 1.0)
            assert np.all(np.linalg.eigvalsh(corr) > 0)

        state = result.final_state
        lower, upper = state.interval_bounds()
        assert np.all(state.z > lower)
        assert np.all(state.z <= upper)

    def test_ordinal_thresholds_recorded(self, ordinal_data):
        result = IfaSampler(ordinal_data["responses"], 2, seed=3).sample(n_iter=30)
        n_categories = result.final_state.n_categories

        assert result.thresholds.shape == (30, 8, n_categories.max() - 1)
        assert_allclose(result.thresholds[:, :, 0], 0.0)
        for j, K in enumerate(n_categories):
            cuts = result.thresholds[:, j]
            assert np.all(np.diff(cuts[:, : K - 1], axis=1) > 0)
            assert np.all(np.isnan(cuts[:, K - 1 :]))

    def test_callback_stops_chain(self, binary_data):
        seen = []

        def stop_at_12(iteration, state):
            seen.append(iteration)
            return iteration == 12

        sampler = IfaSampler(binary_data["responses"], 1, seed=4)
        result = sampler.sample(n_iter=100, thin=5, callback=stop_at_12)

        assert seen == list(range(1, 13))
        assert result.stopped_early
        assert result.n_iterations == 12
        assert_array_equal(result.iterations, [5, 10])

    def test_all_missing_item_under_skip(self, binary_data):
        responses = binary_data["responses"].copy()
        responses[:, 3] = -1
        sampler = IfaSampler(responses, 1, missing="skip", seed=5)

        result = sampler.sample(c_prior_mean=1.5, c_prior_sd=0.5, n_iter=400, thin=2)

        assert np.mean(result.c[:, 3]) == pytest.approx(1.5, abs=0.15)
        assert np.std(result.c[:, 3]) == pytest.approx(0.5, rel=0.25)

    @pytest.mark.parametrize(
        "model_type", ["eifa", "eifa_pred", "cifa", "cifa_pred", "spifa", "spifa_pred"]
    )
    def test_all_variants_run(self, spatial_data, model_type):
        kwargs = {}
        if model_type.endswith("_pred"):
            kwargs["predictors"] = spatial_data["predictors"]
        if model_type.startswith("spifa"):
            kwargs["distances"] = spatial_data["distances"]

        sampler = IfaSampler(spatial_data["responses"], 2, model_type=model_type, seed=6, **kwargs)
        result = sampler.sample(n_iter=20, thin=2)

        assert len(result) == 10
        assert np.all(np.isfinite(result.theta))
        assert (result.beta is not None) == model_type.endswith("_pred")
        assert (result.range is not None) == model_type.startswith("spifa")
        if model_type.startswith("eifa"):
            assert_allclose(result.corr, np.broadcast_to(np.eye(2), result.corr.shape))
            assert result.block_names == ()
        else:
            assert "corr" in result.block_names

    @pytest.mark.parametrize(
        "kwargs",
        [{"n_iter": 0}, {"thin": 0}, {"burnin": 100}, {"burnin": -1}, {"n_iter": 2.5}],
    )
    def test_invalid_run_controls(self, binary_data, kwargs):
        sampler = IfaSampler(binary_data["responses"], 1, seed=0)
        with pytest.raises(ConfigurationError):
            sampler.sample(**{"n_iter": 100, **kwargs})

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"c_prior_sd": 0.0},
            {"A_prior_sd": -1.0},
            {"R_prior_eta": 0.0},
            {"C": -1.0},
            {"alpha": 2.0},
            {"target": 1.5},
        ],
    )
    def test_invalid_priors_before_iterating(self, binary_data, kwargs):
        sampler = IfaSampler(binary_data["responses"], 1, seed=0)
        before = sampler.state.theta.copy()
        with pytest.raises(PriorSpecificationError):
            sampler.sample(n_iter=10, **kwargs)
        assert_array_equal(sampler.state.theta, before)

    def test_verbose_progress(self, binary_data, capsys):
        sampler = IfaSampler(binary_data["responses"], 1, seed=0, verbose=True)
        sampler.sample(n_iter=20)
        out = capsys.readouterr().out
        assert "Iteration 20/20" in out


class TestSampleResult:
    """Tests for the result container."""

    @pytest.fixture
    def result(self, ordinal_data, simple_structure):
        sampler = IfaSampler(ordinal_data["responses"], 2, L=simple_structure, seed=9)
        return sampler.sample(n_iter=40, thin=2)

    def test_records(self, result):
        record = result[3]
        assert record.iteration == 8
        assert record.theta.shape == (60, 2)
        assert set(record.logscale) == {"corr"}
        assert len(list(result)) == 20

    def test_posterior_summaries(self, result):
        assert result.posterior_mean("A").shape == (8, 2)
        assert result.posterior_sd("theta").shape == (60, 2)
        assert result.ess("c").shape == (8,)
        assert result.rhat("corr").shape == (2, 2)

    def test_unknown_or_absent_parameter(self, result):
        with pytest.raises(ValueError):
            result.draws("sigma")
        with pytest.raises(ValueError):
            result.draws("beta")

    def test_summary(self, result):
        summary = result.summary()
        assert "cifa" in summary
        assert "corr[1,0]" in summary
        assert "A[0,1]" not in summary
        assert "Adaptation" in summary


class TestFitIfa:
    """Tests for the convenience wrapper."""

    def test_routes_keyword_arguments(self, binary_data):
        result = fit_ifa(
            binary_data["responses"],
            n_factors=1,
            model_type="eifa",
            n_iter=10,
            seed=0,
            c_prior_sd=2.0,
            missing="skip",
        )
        assert len(result) == 10
        assert result.final_state.missing == "skip"


@pytest.mark.slow
class TestRecovery:
    """End-to-end recovery on simulated data."""

    def test_binary_one_factor_traits(self, binary_data):
        sampler = IfaSampler(binary_data["responses"], 1, model_type="eifa", seed=10)
        result = sampler.sample(n_iter=500, thin=5)

        assert len(result) == 100
        theta_hat = result.posterior_mean("theta")[:, 0]
        r = np.corrcoef(theta_hat, binary_data["theta"][:, 0])[0, 1]
        # The sign of a single factor is not identified
        assert abs(r) > 0.7

    def test_trait_correlation(self):
        data = simulate_ifa(
            n_persons=300,
            n_items=12,
            n_factors=2,
            model_type="cifa",
            corr=np.array([[1.0, 0.5], [0.5, 1.0]]),
            discrimination=np.repeat([[1.5, 0.0], [0.0, 1.5]], 6, axis=0),
            seed=12,
        )
        L = (data["discrimination"] != 0).astype(int)
        sampler = IfaSampler(data["responses"], 2, L=L, A_ini=np.abs(L), seed=12)

        result = sampler.sample(n_iter=1500, thin=5, burnin=500, A_prior_mean=1.0)

        corr = result.posterior_mean("corr")[1, 0]
        assert abs(corr) == pytest.approx(0.5, abs=0.15)
