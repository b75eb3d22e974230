"""Result container for posterior sampling."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

import numpy as np
from numpy.typing import NDArray

from spifa.diagnostics.convergence import effective_sample_size, split_rhat

if TYPE_CHECKING:
    from spifa.state import ModelState


PARAMETERS = ("theta", "c", "A", "thresholds", "corr", "beta", "range")


@dataclass(frozen=True)
class IterationRecord:
    """Snapshot of one recorded iteration.

    Attributes
    ----------
    iteration : int
        1-based iteration number.
    theta, c, A, thresholds, corr : ndarray
        Parameter values at that iteration.
    beta : ndarray or None
        Covariate effects, for models with predictors.
    range : float or None
        Spatial range, for spatial models.
    logscale, acceptance_rate : dict
        Adaptation diagnostics keyed by block name.
    """

    iteration: int
    theta: NDArray[np.float64]
    c: NDArray[np.float64]
    A: NDArray[np.float64]
    thresholds: NDArray[np.float64]
    corr: NDArray[np.float64]
    beta: Optional[NDArray[np.float64]]
    range: Optional[float]
    logscale: dict[str, float]
    acceptance_rate: dict[str, float]


@dataclass
class SampleResult:
    """Container for the recorded iterations of a chain.

    Draws are stacked along a leading axis of length ``n_records``.

    Parameters
    ----------
    model_type : str
        Model variant tag.
    iterations : ndarray of shape (n_records,)
        1-based iteration numbers that were recorded.
    theta : ndarray of shape (n_records, n_obs, n_factors)
    c : ndarray of shape (n_records, n_items)
    A : ndarray of shape (n_records, n_items, n_factors)
    thresholds : ndarray of shape (n_records, n_items, max_categories - 1)
        Finite cut points ``tau_1 = 0, tau_2, ...``; NaN past an item's
        number of categories.
    corr : ndarray of shape (n_records, n_factors, n_factors)
    beta : ndarray of shape (n_records, n_predictors, n_factors), optional
    range : ndarray of shape (n_records,), optional
    block_names : tuple of str
        Adaptive block names, aligned with the last axis of ``logscale`` and
        ``acceptance_rate``.
    logscale : ndarray of shape (n_records, n_blocks)
    acceptance_rate : ndarray of shape (n_records, n_blocks)
        Running acceptance rate of each block.
    diagnostics : dict
        Counts of absorbed numerical degeneracies.
    final_state : ModelState
        Copy of the state after the last completed iteration.
    n_iterations : int
        Number of completed iterations.
    stopped_early : bool
        Whether a callback stopped the chain before ``n_iter``.

    Examples
    --------
    >>> result = sampler.sample(n_iter=500, thin=5)
    >>> len(result)
    100
    >>> print(result.summary())
    """

    model_type: str
    iterations: NDArray[np.int_]
    theta: NDArray[np.float64]
    c: NDArray[np.float64]
    A: NDArray[np.float64]
    thresholds: NDArray[np.float64]
    corr: NDArray[np.float64]
    beta: Optional[NDArray[np.float64]]
    range: Optional[NDArray[np.float64]]
    block_names: tuple[str, ...]
    logscale: NDArray[np.float64]
    acceptance_rate: NDArray[np.float64]
    diagnostics: dict[str, int] = field(default_factory=dict)
    final_state: Any = None  # ModelState
    n_iterations: int = 0
    stopped_early: bool = False

    def __len__(self) -> int:
        return len(self.iterations)

    def __getitem__(self, k: int) -> IterationRecord:
        return IterationRecord(
            iteration=int(self.iterations[k]),
            theta=self.theta[k],
            c=self.c[k],
            A=self.A[k],
            thresholds=self.thresholds[k],
            corr=self.corr[k],
            beta=None if self.beta is None else self.beta[k],
            range=None if self.range is None else float(self.range[k]),
            logscale=dict(zip(self.block_names, self.logscale[k].tolist())),
            acceptance_rate=dict(zip(self.block_names, self.acceptance_rate[k].tolist())),
        )

    def __iter__(self) -> Iterator[IterationRecord]:
        for k in range(len(self)):
            yield self[k]

    def draws(self, name: str) -> NDArray[np.float64]:
        """Stacked draws of one parameter."""
        if name not in PARAMETERS:
            raise ValueError(f"Unknown parameter '{name}'")
        value = getattr(self, name)
        if value is None:
            raise ValueError(f"'{name}' is not sampled by a '{self.model_type}' model")
        return value

    def posterior_mean(self, name: str) -> NDArray[np.float64]:
        return np.mean(self.draws(name), axis=0)

    def posterior_sd(self, name: str) -> NDArray[np.float64]:
        return np.std(self.draws(name), axis=0)

    def ess(self, name: str) -> NDArray[np.float64] | float:
        """Effective sample size of every entry of a parameter."""
        return effective_sample_size(self.draws(name))

    def rhat(self, name: str) -> NDArray[np.float64] | float:
        """Split R-hat of every entry of a parameter."""
        return split_rhat(self.draws(name))

    def summary(self) -> str:
        """Generate a formatted summary of the posterior draws.

        Returns
        -------
        str
            Formatted summary string.
        """
        lines = []
        width = 72

        lines.append("=" * width)
        lines.append(f"{'Bayesian Item Factor Analysis (MCMC)':^{width}}")
        lines.append("=" * width)
        lines.append(f"Model:              {self.model_type}")
        lines.append(f"Iterations:         {self.n_iterations}")
        lines.append(f"Recorded draws:     {len(self)}")
        if self.stopped_early:
            lines.append("Stopped early:      yes")
        lines.append("-" * width)

        if len(self) == 0:
            return "\n".join(lines)

        header = f"{'Parameter':<20}{'Mean':>10}{'SD':>10}{'ESS':>10}{'R-hat':>10}"

        def block(title: str, name: str, labels) -> None:
            draws = self.draws(name)
            flat = draws.reshape(len(self), -1)
            mean = np.mean(flat, axis=0)
            sd = np.std(flat, axis=0)
            ess = np.atleast_1d(effective_sample_size(flat))
            rhat = np.atleast_1d(split_rhat(flat))
            lines.append("")
            lines.append(title)
            lines.append(header)
            for k, label in labels:
                lines.append(
                    f"{label:<20}{mean[k]:>10.3f}{sd[k]:>10.3f}"
                    f"{ess[k]:>10.1f}{rhat[k]:>10.3f}"
                )

        n_items, n_factors = self.A.shape[1:]
        block("Difficulty", "c", [(j, f"c[{j}]") for j in range(n_items)])
        block(
            "Discrimination",
            "A",
            [
                (j * n_factors + k, f"A[{j},{k}]")
                for j in range(n_items)
                for k in range(n_factors)
                if np.any(self.A[:, j, k] != 0)
            ],
        )
        if n_factors > 1:
            block(
                "Trait correlation",
                "corr",
                [
                    (i * n_factors + k, f"corr[{i},{k}]")
                    for k in range(n_factors)
                    for i in range(k + 1, n_factors)
                ],
            )
        if self.beta is not None:
            n_predictors = self.beta.shape[1]
            block(
                "Covariate effects",
                "beta",
                [
                    (p * n_factors + k, f"beta[{p},{k}]")
                    for p in range(n_predictors)
                    for k in range(n_factors)
                ],
            )
        if self.range is not None:
            block("Spatial range", "range", [(0, "range")])

        if self.block_names:
            lines.append("")
            lines.append("Adaptation")
            lines.append(f"{'Block':<20}{'Accept':>10}{'logscale':>12}")
            for b, name in enumerate(self.block_names):
                lines.append(
                    f"{name:<20}{self.acceptance_rate[-1, b]:>10.3f}"
                    f"{self.logscale[-1, b]:>12.3f}"
                )

        if any(self.diagnostics.values()):
            lines.append("")
            lines.append("Numerical fallbacks")
            for key, value in self.diagnostics.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * width)
        return "\n".join(lines)


class DrawRecorder:
    """Preallocated storage filled by the sampling driver."""

    def __init__(self, state: ModelState, n_records: int) -> None:
        n, m, q = state.n_obs, state.n_items, state.n_factors
        width = state.thresholds.shape[1] - 2

        self.k = 0
        self.iterations = np.zeros(n_records, dtype=np.int_)
        self.theta = np.zeros((n_records, n, q))
        self.c = np.zeros((n_records, m))
        self.A = np.zeros((n_records, m, q))
        self.thresholds = np.zeros((n_records, m, width))
        self.corr = np.zeros((n_records, q, q))
        self.beta = None if state.beta is None else np.zeros((n_records,) + state.beta.shape)
        self.range = None if state.log_range is None else np.zeros(n_records)
        self.block_names = tuple(block.name for block in state.proposals)
        self.logscale = np.zeros((n_records, len(self.block_names)))
        self.acceptance_rate = np.zeros((n_records, len(self.block_names)))

    def record(self, iteration: int, state: ModelState) -> None:
        k = self.k
        self.iterations[k] = iteration
        self.theta[k] = state.theta
        self.c[k] = state.c
        self.A[k] = state.LA
        cuts = state.thresholds[:, 1:-1]
        self.thresholds[k] = np.where(np.isfinite(cuts), cuts, np.nan)
        self.corr[k] = state.corr
        if self.beta is not None:
            self.beta[k] = state.beta
        if self.range is not None:
            self.range[k] = np.exp(state.log_range)
        for b, block in enumerate(state.proposals):
            self.logscale[k, b] = block.logscale
            self.acceptance_rate[k, b] = block.acceptance_rate
        self.k += 1

    def result(
        self,
        state: ModelState,
        n_iterations: int,
        stopped_early: bool,
    ) -> SampleResult:
        k = self.k
        return SampleResult(
            model_type=state.model_type,
            iterations=self.iterations[:k],
            theta=self.theta[:k],
            c=self.c[:k],
            A=self.A[:k],
            thresholds=self.thresholds[:k],
            corr=self.corr[:k],
            beta=None if self.beta is None else self.beta[:k],
            range=None if self.range is None else self.range[:k],
            block_names=self.block_names,
            logscale=self.logscale[:k],
            acceptance_rate=self.acceptance_rate[:k],
            diagnostics={
                "truncation_fallbacks": state.n_truncation_fallbacks,
                "proposal_fallbacks": sum(b.n_fallback for b in state.proposals),
                "invalid_candidates": sum(b.n_invalid for b in state.proposals),
            },
            final_state=state.copy(),
            n_iterations=n_iterations,
            stopped_early=stopped_early,
        )
