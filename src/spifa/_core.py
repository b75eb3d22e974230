"""Core numerical utilities with no internal dependencies.

This module provides the random-variate and linear-algebra primitives used
by every sampler stage. It has no dependencies on other spifa modules,
avoiding circular import issues.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import linalg
from scipy.special import log_ndtr, ndtri_exp


def standard_truncated_normal(
    lower: NDArray[np.float64],
    upper: NDArray[np.float64],
    u: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.bool_]]:
    """Inverse-CDF draw from a standard normal truncated to ``(lower, upper)``.

    Intervals lying in the upper tail are reflected so the CDF is always
    evaluated where ``log_ndtr`` is accurate, and the quantile is inverted
    in log space with ``ndtri_exp``. Draws that still come out non-finite
    (interval with negligible mass) are replaced by the finite bound closest
    to the mass.

    Parameters
    ----------
    lower, upper : ndarray
        Standardized interval bounds, ``lower < upper``. Infinite bounds are
        allowed.
    u : ndarray
        Uniform(0, 1) variates, one per interval.

    Returns
    -------
    draws : ndarray
        Truncated normal draws, same shape as ``u``.
    fallback : ndarray of bool
        Entries replaced by an interval bound.
    """
    flip = lower > 0
    lo = np.where(flip, -upper, lower)
    hi = np.where(flip, -lower, upper)

    log_lo = log_ndtr(lo)
    log_hi = log_ndtr(hi)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        log_p = log_hi + np.log(u + (1.0 - u) * np.exp(log_lo - log_hi))
        x = ndtri_exp(log_p)

    fallback = ~np.isfinite(x)
    nearest = np.where(np.isfinite(hi), hi, np.where(np.isfinite(lo), lo, 0.0))
    x = np.clip(np.where(fallback, nearest, x), lo, hi)

    return np.where(flip, -x, x), fallback


def truncated_normal(
    mean: NDArray[np.float64],
    lower: NDArray[np.float64],
    upper: NDArray[np.float64],
    rng: np.random.Generator,
    sd: float | NDArray[np.float64] = 1.0,
) -> NDArray[np.float64]:
    """Draw from N(mean, sd^2) truncated to ``(lower, upper)``.

    Parameters
    ----------
    mean : ndarray
        Location of the untruncated normal.
    lower, upper : ndarray
        Interval bounds on the original scale, broadcastable to ``mean``.
    rng : Generator
        Random number generator.
    sd : float or ndarray, default=1.0
        Scale of the untruncated normal.

    Returns
    -------
    ndarray
        Draws with the broadcast shape of the inputs.
    """
    mean, lower, upper, sd = np.broadcast_arrays(
        np.asarray(mean, dtype=np.float64),
        np.asarray(lower, dtype=np.float64),
        np.asarray(upper, dtype=np.float64),
        np.asarray(sd, dtype=np.float64),
    )
    u = rng.random(mean.shape)
    x, _ = standard_truncated_normal((lower - mean) / sd, (upper - mean) / sd, u)
    return mean + sd * x


def draw_from_precision(
    precision: NDArray[np.float64],
    linear: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """Draw x ~ N(P^-1 b, P^-1) given precision P and linear term b."""
    chol = linalg.cholesky(precision, lower=True)
    mean = linalg.cho_solve((chol, True), linear)
    noise = linalg.solve_triangular(
        chol.T, rng.standard_normal(linear.shape[0]), lower=False
    )
    return mean + noise


def batched_draw_from_precision(
    precision: NDArray[np.float64],
    linear: NDArray[np.float64],
    rng: np.random.Generator,
) -> NDArray[np.float64]:
    """Batched version of :func:`draw_from_precision`.

    Parameters
    ----------
    precision : ndarray of shape (k, d, d)
        Stack of symmetric positive definite precision matrices.
    linear : ndarray of shape (k, d)
        Matching linear terms.
    rng : Generator
        Random number generator.

    Returns
    -------
    ndarray of shape (k, d)
        One draw per precision matrix.
    """
    chol = np.linalg.cholesky(precision)
    chol_t = np.swapaxes(chol, -1, -2)
    half = np.linalg.solve(chol, linear[..., None])
    mean = np.linalg.solve(chol_t, half)[..., 0]
    noise = np.linalg.solve(chol_t, rng.standard_normal(linear.shape)[..., None])
    return mean + noise[..., 0]
