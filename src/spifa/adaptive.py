"""Adaptive random-walk Metropolis with Robbins-Monro scaling.

The proposal for a parameter block is ``N(params, exp(logscale) * params_cov)``.
After every accept/reject decision the running mean and covariance of the
chain and the log proposal scale move by a gain ``gamma_t = min(1, C / t^alpha)``:

    logscale    <- logscale + gamma_t * (acceptance_probability - target)
    params_mean <- params_mean + gamma_t * (params - params_mean)
    params_cov  <- params_cov + gamma_t * ((params - mean)(params - mean)' - params_cov)

The gain vanishes as ``t`` grows (diminishing adaptation), and capping it at
one keeps ``params_cov`` a convex combination of PSD matrices.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from spifa.constants import PROPOSAL_COND_TOL
from spifa.exceptions import ConfigurationError, PriorSpecificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RobbinsMonroSchedule:
    """Gain sequence and acceptance target of the adaptation.

    Attributes
    ----------
    C : float
        Gain numerator.
    alpha : float
        Decay exponent, in (0, 1].
    target : float
        Target acceptance rate, in (0, 1).
    """

    C: float = 0.7
    alpha: float = 0.8
    target: float = 0.234

    def __post_init__(self) -> None:
        if not self.C > 0:
            raise PriorSpecificationError("C must be positive")
        if not 0 < self.alpha <= 1:
            raise PriorSpecificationError("alpha must be in (0, 1]")
        if not 0 < self.target < 1:
            raise PriorSpecificationError("target must be in (0, 1)")

    def gain(self, step: int) -> float:
        return min(1.0, self.C / step**self.alpha)


class AdaptiveProposal:
    """Self-tuning Gaussian random-walk proposal for one parameter block.

    Parameters
    ----------
    name : str
        Block name used in diagnostics.
    params : array-like of shape (d,)
        Initial point of the block.
    cov : array-like of shape (d, d), optional
        Initial proposal covariance. Defaults to the identity.
    scale : float, default=0.1
        Initial proposal scale; ``logscale`` starts at ``log(scale)``.
    """

    def __init__(
        self,
        name: str,
        params,
        cov=None,
        scale: float = 0.1,
    ) -> None:
        params = np.array(params, dtype=np.float64).ravel()
        dim = params.shape[0]

        if cov is None:
            cov = np.eye(dim)
        cov = np.array(cov, dtype=np.float64)
        if cov.shape != (dim, dim):
            raise ConfigurationError(
                f"adaptive covariance for '{name}' has shape {cov.shape}, "
                f"expected ({dim}, {dim})"
            )
        if not np.all(np.isfinite(cov)) or not np.allclose(cov, cov.T):
            raise ConfigurationError(
                f"adaptive covariance for '{name}' must be finite and symmetric"
            )
        if not scale > 0:
            raise ConfigurationError(f"adaptive scale for '{name}' must be positive")

        self.name = name
        self.params = params
        self.params_mean = params.copy()
        self.params_cov = cov
        self.logscale = float(np.log(scale))

        self.n_steps = 0
        self.n_accepted = 0
        self.n_fallback = 0
        self.n_invalid = 0

    @property
    def dim(self) -> int:
        return self.params.shape[0]

    @property
    def acceptance_rate(self) -> float:
        """Running acceptance rate over all steps taken so far."""
        if self.n_steps == 0:
            return float("nan")
        return self.n_accepted / self.n_steps

    def _proposal_chol(self) -> NDArray[np.float64]:
        """Cholesky factor of ``params_cov``, or the identity when it is singular."""
        cov = self.params_cov
        chol = None
        if np.all(np.isfinite(cov)):
            eigvals = np.linalg.eigvalsh(cov)
            if eigvals[0] > PROPOSAL_COND_TOL * max(1.0, eigvals[-1]):
                try:
                    chol = np.linalg.cholesky(cov)
                except np.linalg.LinAlgError:
                    chol = None
        if chol is None or not np.all(np.isfinite(chol)):
            self.n_fallback += 1
            logger.debug("singular proposal covariance for '%s'", self.name)
            return np.eye(self.dim)
        return chol

    def propose(self, rng: np.random.Generator) -> NDArray[np.float64]:
        """Draw a candidate around the current point."""
        chol = self._proposal_chol()
        step = chol @ rng.standard_normal(self.dim)
        return self.params + np.exp(0.5 * self.logscale) * step

    def step(
        self,
        log_target: Callable[[NDArray[np.float64]], float],
        schedule: RobbinsMonroSchedule,
        rng: np.random.Generator,
        on_accept: Callable[[NDArray[np.float64]], None] | None = None,
    ) -> bool:
        """Run one propose / accept-reject / adapt cycle.

        Parameters
        ----------
        log_target : callable
            Unnormalized log target density of the block. ``-inf`` marks an
            inadmissible point.
        schedule : RobbinsMonroSchedule
            Gain sequence and acceptance target.
        rng : Generator
            Random number generator.
        on_accept : callable, optional
            Called with the accepted candidate, before adaptation.

        Returns
        -------
        bool
            Whether the candidate was accepted.
        """
        candidate = self.propose(rng)
        current_lp = log_target(self.params)
        candidate_lp = log_target(candidate)

        if not np.isfinite(candidate_lp):
            self.n_invalid += 1
            logger.debug("inadmissible candidate for '%s'", self.name)
            accept_prob = 0.0
        elif not np.isfinite(current_lp):
            accept_prob = 1.0
        else:
            accept_prob = float(np.exp(min(0.0, candidate_lp - current_lp)))

        accepted = bool(rng.random() < accept_prob)
        if accepted:
            self.params = candidate
            self.n_accepted += 1
            if on_accept is not None:
                on_accept(candidate)

        self.adapt(accept_prob, schedule)
        return accepted

    def adapt(self, accept_prob: float, schedule: RobbinsMonroSchedule) -> None:
        """Robbins-Monro update of scale and running moments."""
        self.n_steps += 1
        gamma = schedule.gain(self.n_steps)

        self.logscale += gamma * (accept_prob - schedule.target)

        diff = self.params - self.params_mean
        self.params_mean = self.params_mean + gamma * diff
        cov = self.params_cov + gamma * (np.outer(diff, diff) - self.params_cov)
        self.params_cov = 0.5 * (cov + cov.T)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name={self.name!r}, "
            f"dim={self.dim}, "
            f"logscale={self.logscale:.3f})"
        )
