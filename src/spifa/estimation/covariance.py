"""Adaptive Metropolis updates of the trait covariance parameters.

Each adaptive block owns an :class:`~spifa.adaptive.AdaptiveProposal`. The
``"corr"`` block moves the unconstrained correlation vector ``corr_free``
under an LKJ prior; the ``"range"`` block moves the log range of the spatial
kernel under a normal prior. Both targets share the matrix-normal density of
the current traits.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from scipy import linalg, stats

from spifa.constants import LOG_RANGE_BOUND
from spifa.correlation import corr_free_to_chol, is_valid_chol, lkj_log_density_free
from spifa.exceptions import ConfigurationError, PriorSpecificationError
from spifa.kernels import SpatialKernel

if TYPE_CHECKING:
    from spifa.adaptive import RobbinsMonroSchedule
    from spifa.state import ModelState


def trait_log_density(
    theta: NDArray[np.float64],
    mean: NDArray[np.float64],
    corr_chol: NDArray[np.float64],
    kernel: SpatialKernel | None = None,
) -> float:
    """Log density of ``vec(theta) ~ N(vec(mean), Corr (x) R)``, up to a constant.

    Parameters
    ----------
    theta, mean : ndarray of shape (n, q)
        Traits and their prior mean.
    corr_chol : ndarray of shape (q, q)
        Lower Cholesky factor of Corr.
    kernel : SpatialKernel, optional
        Spatial correlation ``R``; the identity when omitted.

    Returns
    -------
    float
        ``-0.5 * (n log|Corr| + q log|R| + tr(Corr^-1 E' R^-1 E))``.
    """
    n_obs, n_factors = theta.shape
    resid = theta - mean
    if kernel is None:
        scale = np.ones(n_obs)
        log_det_r = 0.0
    else:
        resid = kernel.rotate(resid)
        scale = kernel.eigenvalues
        log_det_r = kernel.log_det

    white = linalg.solve_triangular(corr_chol, resid.T, lower=True)
    quad = float(np.sum(white**2 / scale[None, :]))
    log_det = n_obs * 2.0 * np.sum(np.log(np.diag(corr_chol))) + n_factors * log_det_r
    return -0.5 * (log_det + quad)


def update_cov_params(
    state: ModelState,
    schedule: RobbinsMonroSchedule,
    R_prior_eta: float,
    index: int,
    rng: np.random.Generator,
) -> bool:
    """One adaptive Metropolis step for the block selected by ``index``.

    Parameters
    ----------
    state : ModelState
        Current state; the block's parameters and derived caches are updated
        in place on acceptance.
    schedule : RobbinsMonroSchedule
        Gain sequence (``C``, ``alpha``) and acceptance ``target``.
    R_prior_eta : float
        Shape of the LKJ prior on the trait correlation matrix.
    index : int
        Position of the block in ``state.proposals``.
    rng : Generator
        Random number generator.

    Returns
    -------
    bool
        Whether the candidate was accepted.

    Raises
    ------
    ConfigurationError
        If ``index`` selects no adaptive block. Models with an identity trait
        correlation and no spatial kernel have none.
    """
    if not R_prior_eta > 0:
        raise PriorSpecificationError("R_prior_eta must be positive")

    names = [block.name for block in state.proposals]
    if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
        raise ConfigurationError(f"index must be an integer, got {index!r}")
    if not 0 <= index < len(names):
        available = ", ".join(f"{i}: {name!r}" for i, name in enumerate(names)) or "none"
        raise ConfigurationError(
            f"index {index} selects no adaptive block of '{state.model_type}' "
            f"(available: {available})"
        )

    proposal = state.proposals[index]
    theta = state.theta
    mean = state.trait_mean

    if proposal.name == "corr":
        n_factors = state.n_factors
        kernel = state.kernel

        def log_target(corr_free: NDArray[np.float64]) -> float:
            chol = corr_free_to_chol(corr_free, n_factors)
            if not is_valid_chol(chol):
                return -np.inf
            return trait_log_density(theta, mean, chol, kernel) + lkj_log_density_free(
                corr_free, n_factors, R_prior_eta
            )

        return proposal.step(log_target, schedule, rng, on_accept=state.set_corr_free)

    if proposal.name == "range":
        corr_chol = state.corr_chol
        kernels: dict[float, SpatialKernel] = {state.log_range: state.kernel}

        def log_target(params: NDArray[np.float64]) -> float:
            log_range = float(params[0])
            if not np.isfinite(log_range) or abs(log_range) > LOG_RANGE_BOUND:
                return -np.inf
            if log_range not in kernels:
                kernels[log_range] = SpatialKernel.from_distances(
                    state.distances, np.exp(log_range)
                )
            log_prior = stats.norm.logpdf(
                log_range, loc=state.range_prior_mean, scale=state.range_prior_sd
            )
            return trait_log_density(theta, mean, corr_chol, kernels[log_range]) + log_prior

        def commit(params: NDArray[np.float64]) -> None:
            state.log_range = float(params[0])
            state.kernel = kernels[state.log_range]

        return proposal.step(log_target, schedule, rng, on_accept=commit)

    raise ValueError(f"Unknown adaptive block '{proposal.name}'")
