"""Data augmentation for ordinal probit responses.

The observed category ``y_ij`` is the interval of the cut-point table that
contains the latent response ``z_ij ~ N(a_j' theta_i - c_j, 1)``. These
stages redraw ``z`` given the parameters and the free cut points given ``z``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from spifa._core import standard_truncated_normal

if TYPE_CHECKING:
    from spifa.state import ModelState

logger = logging.getLogger(__name__)


def update_z(state: ModelState, rng: np.random.Generator) -> None:
    """Draw every augmented response from its truncated normal full conditional.

    Observed entries are truncated to the interval of their category.
    Missing entries are drawn from the untruncated normal under
    ``missing="impute"`` and set to the linear predictor (and ignored
    downstream) under ``missing="skip"``.
    """
    eta = state.linear_predictor()
    lower, upper = state.interval_bounds()

    u = rng.random(eta.shape)
    x, fallback = standard_truncated_normal(lower - eta, upper - eta, u)
    z = eta + x

    # Category intervals are open below and closed above.
    z = np.where(z <= lower, np.nextafter(lower, np.inf), z)
    z = np.minimum(z, upper)

    if state.missing == "skip":
        z = np.where(state.observed, z, eta)

    n_fallback = int(np.sum(fallback & state.observed))
    if n_fallback:
        state.n_truncation_fallbacks += n_fallback
        logger.debug("%d truncated normal draws fell back to a bound", n_fallback)

    state.z = z


def update_thresholds(state: ModelState, rng: np.random.Generator) -> None:
    """Gibbs update of the free cut points of ordinal items.

    Under a flat prior, cut point ``k`` of item ``j`` is uniform between the
    largest latent response of category ``k - 1`` and the smallest of
    category ``k``, further bounded by its neighbouring cut points. Items
    with two categories have no free cut points.
    """
    for j in np.flatnonzero(state.n_categories >= 3):
        obs = state.observed[:, j]
        y = state.responses[obs, j]
        z = state.z[obs, j]

        tau = state.thresholds[j].copy()
        for k in range(2, state.n_categories[j]):
            lo = max(tau[k - 1], np.max(z[y == k - 1], initial=-np.inf))
            hi = min(tau[k + 1], np.min(z[y == k], initial=np.inf))
            tau[k] = rng.uniform(lo, hi)

        state.thresholds[j] = tau
