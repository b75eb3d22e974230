"""Latent trait and covariate-effect updates.

The traits follow ``vec(Theta - X B) ~ N(0, Corr (x) R)`` where ``R`` is the
identity for non-spatial models and the spatial kernel otherwise. Given the
augmented responses both ``Theta`` and the free entries of ``B`` have
multivariate normal full conditionals.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from spifa._core import batched_draw_from_precision, draw_from_precision

if TYPE_CHECKING:
    from spifa.state import ModelState


def update_theta(state: ModelState, rng: np.random.Generator) -> None:
    """Draw the trait matrix from its full conditional.

    Without spatial structure respondents are conditionally independent and
    each row has precision ``sum_j o_ij a_j a_j' + Corr^-1``. With a spatial
    kernel ``R = U diag(w) U'`` the rows of ``U' Theta`` are independent with
    precision ``A'A + Corr^-1 / w_r``; they are drawn in that basis and
    rotated back.
    """
    A = state.LA
    sigma_inv = state.prior.sigma_inv
    y = state.z + state.c[None, :]
    mean = state.trait_mean

    if state.kernel is not None:
        kernel = state.kernel
        scale = 1.0 / kernel.eigenvalues
        precision = (A.T @ A)[None, :, :] + sigma_inv[None, :, :] * scale[:, None, None]
        linear = kernel.rotate(y) @ A + (kernel.rotate(mean) @ sigma_inv) * scale[:, None]
        state.theta = kernel.unrotate(batched_draw_from_precision(precision, linear, rng))
        return

    if state.missing == "skip":
        w = state.observed.astype(np.float64)
        precision = np.einsum("ij,jk,jl->ikl", w, A, A) + sigma_inv[None, :, :]
        linear = (w * y) @ A + mean @ sigma_inv
    else:
        precision = np.broadcast_to(A.T @ A + sigma_inv, (state.n_obs,) + sigma_inv.shape)
        linear = y @ A + mean @ sigma_inv

    state.theta = batched_draw_from_precision(precision, linear, rng)


def update_beta(state: ModelState, rng: np.random.Generator) -> None:
    """Draw the free covariate effects ``B`` from their full conditional.

    With ``vec(B)`` stacked column-major, the likelihood precision is
    ``Corr^-1 (x) X'R^-1 X`` and the prior adds ``1 / V_sd[k]^2`` on the
    diagonal of every coefficient of factor ``k``. Entries held at zero by
    ``T`` are not sampled.
    """
    structure = state.coefficients
    idx = structure.free_index
    if idx.size == 0:
        return

    X = state.predictors
    n_predictors = X.shape[1]
    sigma_inv = state.prior.sigma_inv
    RX = X if state.kernel is None else state.kernel.solve(X)

    precision = np.kron(sigma_inv, X.T @ RX)
    linear = (RX.T @ state.theta @ sigma_inv).ravel(order="F")
    prior_precision = np.repeat(1.0 / state.V_sd**2, n_predictors)

    precision = precision[np.ix_(idx, idx)] + np.diag(prior_precision[idx])
    vec = np.zeros(n_predictors * state.n_factors)
    vec[idx] = draw_from_precision(precision, linear[idx], rng)

    state.beta = vec.reshape((n_predictors, state.n_factors), order="F")
