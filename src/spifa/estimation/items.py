"""Conjugate updates of item difficulty and discrimination parameters.

Given the augmented responses, ``z_ij + c_j = a_j' theta_i + e_ij`` is a
Gaussian linear regression for every item, so both blocks have normal full
conditionals under normal priors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from spifa._core import draw_from_precision
from spifa.exceptions import PriorSpecificationError

if TYPE_CHECKING:
    from spifa.state import ModelState


def _prior_arrays(mean, sd, shape: tuple[int, ...], name: str):
    try:
        mean = np.broadcast_to(np.asarray(mean, dtype=np.float64), shape)
        sd = np.broadcast_to(np.asarray(sd, dtype=np.float64), shape)
    except ValueError as exc:
        raise PriorSpecificationError(
            f"{name} prior does not broadcast to shape {shape}"
        ) from exc
    if not np.all(np.isfinite(mean)):
        raise PriorSpecificationError(f"{name} prior mean must be finite")
    if not np.all(np.isfinite(sd)) or np.any(sd <= 0):
        raise PriorSpecificationError(f"{name} prior sd must be positive")
    return mean, sd


@dataclass
class ItemPriors:
    """Normal priors for item parameters.

    Scalars are broadcast to every item (and factor).

    Attributes
    ----------
    c_mean, c_sd : float or ndarray of shape (n_items,)
        Prior mean and sd of the difficulties.
    A_mean, A_sd : float or ndarray of shape (n_items, n_factors)
        Prior mean and sd of the discriminations.
    """

    c_mean: float | NDArray[np.float64] = 0.0
    c_sd: float | NDArray[np.float64] = 1.0
    A_mean: float | NDArray[np.float64] = 0.0
    A_sd: float | NDArray[np.float64] = 1.0

    def __post_init__(self) -> None:
        for name in ("c_sd", "A_sd"):
            sd = np.asarray(getattr(self, name), dtype=np.float64)
            if not np.all(np.isfinite(sd)) or np.any(sd <= 0):
                raise PriorSpecificationError(f"{name} must be positive")

    def broadcast(self, n_items: int, n_factors: int) -> ItemPriors:
        """Return a copy with every field expanded to full shape."""
        c_mean, c_sd = _prior_arrays(self.c_mean, self.c_sd, (n_items,), "difficulty")
        A_mean, A_sd = _prior_arrays(
            self.A_mean, self.A_sd, (n_items, n_factors), "discrimination"
        )
        return ItemPriors(c_mean=c_mean, c_sd=c_sd, A_mean=A_mean, A_sd=A_sd)


def _weights(state: ModelState) -> NDArray[np.float64]:
    if state.missing == "skip":
        return state.observed.astype(np.float64)
    return np.ones(state.z.shape)


def update_c(
    state: ModelState,
    c_prior_mean,
    c_prior_sd,
    rng: np.random.Generator,
) -> None:
    """Draw every difficulty from its normal full conditional.

    Items without any contributing response get an exact prior draw.
    """
    mean, sd = _prior_arrays(c_prior_mean, c_prior_sd, (state.n_items,), "difficulty")
    w = _weights(state)

    resid = state.theta @ state.LA.T - state.z
    precision = np.sum(w, axis=0) + 1.0 / sd**2
    post_mean = (np.sum(w * resid, axis=0) + mean / sd**2) / precision

    state.c = post_mean + rng.standard_normal(state.n_items) / np.sqrt(precision)


def update_a(
    state: ModelState,
    A_prior_mean,
    A_prior_sd,
    rng: np.random.Generator,
) -> None:
    """Draw the restricted discrimination matrix.

    Structural zeros are never visited. Untied free loadings are drawn item
    by item given the tied ones. Tie groups are then handled according to
    ``state.ties``: ``"joint"`` draws each group as a single shared value
    from its full conditional over every item carrying it, ``"average"``
    draws tied entries with their item and copies the group mean into every
    member.
    """
    mean, sd = _prior_arrays(
        A_prior_mean, A_prior_sd, (state.n_items, state.n_factors), "discrimination"
    )
    structure = state.loadings
    theta = state.theta
    w = _weights(state)
    y = state.z + state.c[None, :]
    average_ties = state.ties == "average"

    A = state.A.copy()
    for j in range(state.n_items):
        cols = structure.free[j]
        if average_ties:
            cols = np.sort(np.concatenate([cols, structure.tied[j]]))
        if cols.size == 0:
            continue

        fixed = np.setdiff1d(np.flatnonzero(structure.mask[j]), cols)
        target = y[:, j] - theta[:, fixed] @ A[j, fixed]

        X = theta[:, cols]
        wX = X * w[:, j][:, None]
        precision = wX.T @ X + np.diag(1.0 / sd[j, cols] ** 2)
        linear = wX.T @ target + mean[j, cols] / sd[j, cols] ** 2
        A[j, cols] = draw_from_precision(precision, linear, rng)

    if average_ties:
        A = structure.equalize(A)
    else:
        for group in structure.groups:
            rows, cols = group[:, 0], group[:, 1]
            first = (rows[0], cols[0])
            precision = 1.0 / sd[first] ** 2
            linear = mean[first] / sd[first] ** 2
            for j in np.unique(rows):
                gcols = cols[rows == j]
                x = theta[:, gcols].sum(axis=1)
                others = theta @ A[j] - theta[:, gcols] @ A[j, gcols]
                precision += np.sum(w[:, j] * x**2)
                linear += np.sum(w[:, j] * x * (y[:, j] - others))
            A[rows, cols] = linear / precision + rng.standard_normal() / np.sqrt(precision)

    state.A = A
    state.refresh_loadings()
