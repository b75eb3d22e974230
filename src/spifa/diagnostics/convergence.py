"""Single-chain convergence diagnostics.

Both functions treat axis 0 as the draw index and return one value per
remaining entry, so a ``(n_draws, n_items, n_factors)`` array of loadings
yields an ``(n_items, n_factors)`` array of diagnostics.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


def _autocorrelation(samples: NDArray[np.float64]) -> NDArray[np.float64]:
    """Autocorrelation function along axis 0 via zero-padded FFT."""
    n = samples.shape[0]
    centered = samples - np.mean(samples, axis=0)
    spectrum = np.fft.rfft(centered, n=2 * n, axis=0)
    acov = np.fft.irfft(spectrum * np.conj(spectrum), n=2 * n, axis=0)[:n]
    with np.errstate(invalid="ignore", divide="ignore"):
        return acov / acov[0]


def effective_sample_size(
    samples: NDArray[np.float64],
    max_lag: int | None = None,
) -> NDArray[np.float64] | float:
    """Effective sample size from the initial positive autocorrelations.

    The integrated autocorrelation time ``1 + 2 sum_k rho_k`` is truncated at
    the first negative autocorrelation.

    Parameters
    ----------
    samples : ndarray of shape (n_draws, ...)
        Draws of one chain.
    max_lag : int, optional
        Largest lag considered. Defaults to ``n_draws // 2``.

    Returns
    -------
    float or ndarray
        ESS per entry. Constant series and chains shorter than 4 draws
        return ``n_draws``.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = samples.shape[0]
    trailing = samples.shape[1:]
    flat = samples.reshape(n, -1)

    if n < 4:
        ess = np.full(flat.shape[1], float(n))
    else:
        max_lag = n // 2 if max_lag is None else min(max_lag, n - 1)
        acf = _autocorrelation(flat)[1 : max_lag + 1]
        keep = np.cumprod(acf >= 0, axis=0)
        tau = 1.0 + 2.0 * np.sum(np.where(keep, acf, 0.0), axis=0)
        constant = np.var(flat, axis=0) == 0
        ess = np.where(constant, float(n), n / np.maximum(tau, 1.0 / n))

    ess = ess.reshape(trailing)
    return float(ess) if ess.ndim == 0 else ess


def split_rhat(samples: NDArray[np.float64]) -> NDArray[np.float64] | float:
    """Gelman-Rubin potential scale reduction from the two halves of one chain.

    Parameters
    ----------
    samples : ndarray of shape (n_draws, ...)
        Draws of one chain.

    Returns
    -------
    float or ndarray
        R-hat per entry; NaN for chains shorter than 4 draws and 1 for
        constant series.
    """
    samples = np.asarray(samples, dtype=np.float64)
    n = samples.shape[0]
    trailing = samples.shape[1:]

    if n < 4:
        rhat = np.full(trailing, np.nan)
        return float(rhat) if rhat.ndim == 0 else rhat

    half = n // 2
    chains = np.stack([samples[:half], samples[n - half :]])

    means = np.mean(chains, axis=1)
    W = np.mean(np.var(chains, axis=1, ddof=1), axis=0)
    B = half * np.var(means, axis=0, ddof=1)
    var_est = (1 - 1 / half) * W + B / half

    with np.errstate(invalid="ignore", divide="ignore"):
        rhat = np.where(W > 0, np.sqrt(var_est / W), 1.0)
    return float(rhat) if rhat.ndim == 0 else rhat
