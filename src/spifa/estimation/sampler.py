"""Metropolis-within-Gibbs sampler for Bayesian item factor analysis.

Every iteration runs the same sweep over a single :class:`ModelState`:

1. ``update_z`` and ``update_thresholds`` (data augmentation),
2. ``update_c`` and ``update_a`` (item parameters),
3. ``update_theta`` and, with predictors, ``update_beta`` (latent traits),
4. ``update_cov_params`` for every adaptive block,

and then records the state on thinning boundaries.
"""

from __future__ import annotations

from collections.abc import Callable

import numpy as np

from spifa.adaptive import RobbinsMonroSchedule
from spifa.estimation.augmentation import update_thresholds, update_z
from spifa.estimation.base import BaseSampler
from spifa.estimation.covariance import update_cov_params
from spifa.estimation.items import ItemPriors, update_a, update_c
from spifa.estimation.traits import update_beta, update_theta
from spifa.exceptions import PriorSpecificationError
from spifa.results.sample_result import DrawRecorder, SampleResult
from spifa.state import ModelState, build_state
from spifa.typing import MissingPolicy, ModelType, TiePolicy


class IfaSampler(BaseSampler):
    """Gibbs sampler with an adaptive Metropolis step for the trait covariance.

    Parameters
    ----------
    responses : array-like of shape (n_obs, n_items)
        Category indices starting at 0; ``-1`` or NaN marks a missing
        response.
    n_factors : int
        Number of latent factors ``q``.
    model_type : {'eifa', 'eifa_pred', 'cifa', 'cifa_pred', 'spifa', 'spifa_pred'}
        Trait covariance (identity, correlated, spatial) and trait mean
        (zero, or regression on ``predictors`` for ``*_pred``).
    predictors : array-like of shape (n_obs, n_predictors), optional
        Covariates of the trait mean. Required by ``*_pred`` models.
    distances : array-like of shape (n_obs, n_obs), optional
        Distances between respondents. Required by spatial models.
    L : array-like of shape (n_items, n_factors), optional
        Loading restrictions: 0 fixes a loading at zero, 1 frees it, and a
        label >= 2 ties all loadings that share it. Defaults to all free.
    T : array-like of shape (n_predictors, n_factors), optional
        Covariate-effect restrictions: 0 fixes an effect at zero. Defaults
        to all free.
    V_sd : array-like of shape (n_factors,), optional
        Prior sd of the covariate effects of each factor. Defaults to 1.
    adap_Sigma : array-like or list of array-like, optional
        Initial proposal covariance. A single matrix, nested lists included,
        applies to the first adaptive block; a list of matrices (or ``None``)
        gives one per block. Defaults to identities.
    adap_scale : float or list of float, optional
        Initial proposal scale per block. Defaults to 0.1.
    c_ini : array-like of shape (n_items,), optional
        Initial difficulties. Defaults to 0.
    A_ini : array-like of shape (n_items, n_factors), optional
        Initial discriminations. Defaults to 1 on non-zero entries of ``L``.
    R_ini : array-like of shape (n_factors, n_factors), optional
        Initial trait correlation. Defaults to the identity.
    B_ini : array-like of shape (n_predictors, n_factors), optional
        Initial covariate effects. Defaults to 0.
    theta_ini : array-like of shape (n_obs, n_factors), optional
        Initial traits. Defaults to 0.
    range_ini : float, optional
        Initial spatial range. Defaults to the median positive distance.
    range_prior_mean : float, optional
        Prior mean of the log range. Defaults to the log median distance.
    range_prior_sd : float, default=1.0
        Prior sd of the log range.
    missing : {'impute', 'skip'}, default='impute'
        Missing responses are either imputed through unconstrained latent
        responses or left out of every likelihood term.
    ties : {'joint', 'average'}, default='joint'
        Tied loadings are either drawn as one shared value or drawn per item
        and averaged.
    seed : int or Generator, optional
        Seed of the random stream.
    verbose : bool, default=False
        Print progress.

    Examples
    --------
    >>> sampler = IfaSampler(responses, n_factors=2, model_type="cifa", seed=1)
    >>> result = sampler.sample(n_iter=2000, thin=10, burnin=500)
    >>> result.posterior_mean("corr")
    """

    def __init__(
        self,
        responses,
        n_factors: int,
        model_type: ModelType = "cifa",
        predictors=None,
        distances=None,
        L=None,
        T=None,
        V_sd=None,
        adap_Sigma=None,
        adap_scale=None,
        c_ini=None,
        A_ini=None,
        R_ini=None,
        B_ini=None,
        theta_ini=None,
        range_ini: float | None = None,
        range_prior_mean: float | None = None,
        range_prior_sd: float = 1.0,
        missing: MissingPolicy = "impute",
        ties: TiePolicy = "joint",
        seed: int | np.random.Generator | None = None,
        verbose: bool = False,
    ) -> None:
        super().__init__(seed=seed, verbose=verbose)
        self.state: ModelState = build_state(
            responses,
            n_factors,
            model_type=model_type,
            predictors=predictors,
            distances=distances,
            L=L,
            T=T,
            V_sd=V_sd,
            adap_Sigma=adap_Sigma,
            adap_scale=adap_scale,
            c_ini=c_ini,
            A_ini=A_ini,
            R_ini=R_ini,
            B_ini=B_ini,
            theta_ini=theta_ini,
            range_ini=range_ini,
            range_prior_mean=range_prior_mean,
            range_prior_sd=range_prior_sd,
            missing=missing,
            ties=ties,
        )

    def update_z(self) -> None:
        update_z(self.state, self.rng)
        update_thresholds(self.state, self.rng)

    def update_c(self, c_prior_mean, c_prior_sd) -> None:
        update_c(self.state, c_prior_mean, c_prior_sd, self.rng)

    def update_a(self, A_prior_mean, A_prior_sd) -> None:
        update_a(self.state, A_prior_mean, A_prior_sd, self.rng)

    def update_theta(self) -> None:
        update_theta(self.state, self.rng)
        if self.state.has_predictors:
            update_beta(self.state, self.rng)

    def update_cov_params(
        self,
        C: float,
        alpha: float,
        target: float,
        R_prior_eta: float,
        index: int = 0,
    ) -> bool:
        schedule = RobbinsMonroSchedule(C=C, alpha=alpha, target=target)
        return update_cov_params(self.state, schedule, R_prior_eta, index, self.rng)

    def sample(
        self,
        c_prior_mean=0.0,
        c_prior_sd=1.0,
        A_prior_mean=0.0,
        A_prior_sd=1.0,
        n_iter: int = 1000,
        thin: int = 1,
        C: float = 0.7,
        alpha: float = 0.8,
        target: float = 0.234,
        R_prior_eta: float = 1.5,
        burnin: int = 0,
        callback: Callable[[int, ModelState], bool | None] | None = None,
    ) -> SampleResult:
        """Run the chain.

        Parameters
        ----------
        c_prior_mean, c_prior_sd : float or array-like of shape (n_items,)
            Normal prior of the difficulties.
        A_prior_mean, A_prior_sd : float or array-like of shape (n_items, n_factors)
            Normal prior of the discriminations.
        n_iter : int, default=1000
            Number of iterations.
        thin : int, default=1
            Record every ``thin``-th iteration.
        C : float, default=0.7
            Numerator of the adaptation gain ``C / t^alpha``.
        alpha : float, default=0.8
            Decay exponent of the adaptation gain.
        target : float, default=0.234
            Target acceptance rate of the adaptive blocks.
        R_prior_eta : float, default=1.5
            Shape of the LKJ prior on the trait correlation.
        burnin : int, default=0
            Leading iterations that are run but not recorded.
        callback : callable, optional
            Called as ``callback(iteration, state)`` after every iteration;
            returning ``True`` stops the chain at that iteration boundary.
            The state must not be modified.

        Returns
        -------
        SampleResult
            ``(n_iter - burnin) // thin`` recorded iterations (fewer if
            stopped early), evenly spaced by ``thin``.

        Raises
        ------
        ConfigurationError
            If the run controls are invalid.
        PriorSpecificationError
            If a prior scale or adaptation constant is invalid.
        """
        n_records = self._n_records(n_iter, thin, burnin)
        state = self.state

        priors = ItemPriors(
            c_mean=c_prior_mean,
            c_sd=c_prior_sd,
            A_mean=A_prior_mean,
            A_sd=A_prior_sd,
        ).broadcast(state.n_items, state.n_factors)
        schedule = RobbinsMonroSchedule(C=C, alpha=alpha, target=target)
        if not R_prior_eta > 0:
            raise PriorSpecificationError("R_prior_eta must be positive")

        recorder = DrawRecorder(state, n_records)
        report_every = max(1, n_iter // 10)
        stopped = False
        completed = 0

        for iteration in range(1, n_iter + 1):
            update_z(state, self.rng)
            update_thresholds(state, self.rng)
            update_c(state, priors.c_mean, priors.c_sd, self.rng)
            update_a(state, priors.A_mean, priors.A_sd, self.rng)
            update_theta(state, self.rng)
            if state.has_predictors:
                update_beta(state, self.rng)
            for index in range(len(state.proposals)):
                update_cov_params(state, schedule, R_prior_eta, index, self.rng)
            completed = iteration

            if iteration > burnin and (iteration - burnin) % thin == 0:
                recorder.record(iteration, state)

            if iteration % report_every == 0:
                rates = {
                    f"accept_{block.name}": block.acceptance_rate
                    for block in state.proposals
                }
                self._log_iteration(iteration, n_iter, **rates)

            if callback is not None and callback(iteration, state):
                stopped = iteration < n_iter
                break

        return recorder.result(state, n_iterations=completed, stopped_early=stopped)

    def __repr__(self) -> str:
        state = self.state
        return (
            f"{self.__class__.__name__}("
            f"model_type={state.model_type!r}, "
            f"n_obs={state.n_obs}, "
            f"n_items={state.n_items}, "
            f"n_factors={state.n_factors})"
        )


def fit_ifa(
    responses,
    n_factors: int = 1,
    model_type: ModelType = "cifa",
    n_iter: int = 1000,
    thin: int = 1,
    burnin: int = 0,
    seed: int | None = None,
    verbose: bool = False,
    **kwargs,
) -> SampleResult:
    """Build an :class:`IfaSampler` and run it with default priors.

    Keyword arguments accepted by :meth:`IfaSampler.sample` (priors and
    adaptation constants) are passed to it; everything else goes to the
    constructor.

    Examples
    --------
    >>> result = fit_ifa(responses, n_factors=1, model_type="eifa", n_iter=500, thin=5)
    >>> result.posterior_mean("theta").shape
    (n_obs, 1)
    """
    sample_keys = {
        "c_prior_mean",
        "c_prior_sd",
        "A_prior_mean",
        "A_prior_sd",
        "C",
        "alpha",
        "target",
        "R_prior_eta",
        "callback",
    }
    sample_kwargs = {k: kwargs.pop(k) for k in list(kwargs) if k in sample_keys}

    sampler = IfaSampler(
        responses,
        n_factors,
        model_type=model_type,
        seed=seed,
        verbose=verbose,
        **kwargs,
    )
    return sampler.sample(n_iter=n_iter, thin=thin, burnin=burnin, **sample_kwargs)
