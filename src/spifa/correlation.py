"""Unconstrained parameterization of correlation matrices.

A q x q correlation matrix is represented by ``q(q-1)/2`` real numbers
``corr_free``. Each number is mapped through ``tanh`` to a canonical partial
correlation (CPC), and the CPCs fill the Cholesky factor of the correlation
matrix column by column:

    W[i, j] = cpc[i, j] * sqrt(1 - sum_{l < j} W[i, l]^2),  j < i
    W[i, i] = sqrt(1 - sum_{l < i} W[i, l]^2)

The CPC vector is ordered column-major over the strict lower triangle. The
map is one-to-one onto symmetric positive definite matrices with unit
diagonal.

Under the LKJ(eta) prior the CPC of column ``j`` is a scaled Beta variate
with shape ``eta + (q - 2 - j) / 2``, which gives the log density of
``corr_free`` (Jacobian included) in closed form.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from spifa.constants import CORR_PD_TOL, CPC_BOUND
from spifa.exceptions import ConfigurationError


def n_corr(n_factors: int) -> int:
    """Number of free correlation parameters for ``n_factors`` factors."""
    return n_factors * (n_factors - 1) // 2


def lower_index(n_factors: int) -> tuple[NDArray[np.int_], NDArray[np.int_]]:
    """Row and column indices of the strict lower triangle, column-major."""
    rows, cols = [], []
    for j in range(n_factors - 1):
        for i in range(j + 1, n_factors):
            rows.append(i)
            cols.append(j)
    return np.array(rows, dtype=np.int_), np.array(cols, dtype=np.int_)


def corr_free_to_chol(corr_free: NDArray[np.float64], n_factors: int) -> NDArray[np.float64]:
    """Map ``corr_free`` to the lower Cholesky factor of the correlation matrix."""
    corr_free = np.asarray(corr_free, dtype=np.float64)
    if corr_free.shape != (n_corr(n_factors),):
        raise ValueError(
            f"corr_free has shape {corr_free.shape}, expected ({n_corr(n_factors)},)"
        )

    cpc = np.zeros((n_factors, n_factors))
    rows, cols = lower_index(n_factors)
    cpc[rows, cols] = np.tanh(corr_free)

    chol = np.zeros((n_factors, n_factors))
    chol[0, 0] = 1.0
    for i in range(1, n_factors):
        remaining = 1.0
        for j in range(i):
            chol[i, j] = cpc[i, j] * np.sqrt(remaining)
            remaining *= 1.0 - cpc[i, j] ** 2
        chol[i, i] = np.sqrt(remaining)
    return chol


def chol_to_corr(chol: NDArray[np.float64]) -> NDArray[np.float64]:
    """Correlation matrix from its Cholesky factor, exactly symmetric with unit diagonal."""
    corr = chol @ chol.T
    corr = 0.5 * (corr + corr.T)
    np.fill_diagonal(corr, 1.0)
    return corr


def corr_free_to_corr(corr_free: NDArray[np.float64], n_factors: int) -> NDArray[np.float64]:
    return chol_to_corr(corr_free_to_chol(corr_free, n_factors))


def is_valid_chol(chol: NDArray[np.float64]) -> bool:
    """Whether a Cholesky factor describes a numerically positive definite matrix."""
    return bool(np.all(np.isfinite(chol)) and np.min(np.diag(chol)) > CORR_PD_TOL)


def validate_correlation(corr, n_factors: int, name: str = "R_ini") -> NDArray[np.float64]:
    """Check that ``corr`` is a q x q correlation matrix and return a copy."""
    corr = np.array(corr, dtype=np.float64)
    if corr.shape != (n_factors, n_factors):
        raise ConfigurationError(
            f"{name} has shape {corr.shape}, expected ({n_factors}, {n_factors})"
        )
    if not np.all(np.isfinite(corr)):
        raise ConfigurationError(f"{name} contains non-finite entries")
    if not np.allclose(corr, corr.T, atol=1e-8):
        raise ConfigurationError(f"{name} must be symmetric")
    if not np.allclose(np.diag(corr), 1.0, atol=1e-8):
        raise ConfigurationError(f"{name} must have a unit diagonal")
    try:
        chol = np.linalg.cholesky(corr)
    except np.linalg.LinAlgError as exc:
        raise ConfigurationError(f"{name} must be positive definite") from exc
    if not is_valid_chol(chol):
        raise ConfigurationError(f"{name} is numerically singular")
    return corr


def corr_to_free(corr: NDArray[np.float64]) -> NDArray[np.float64]:
    """Inverse of :func:`corr_free_to_corr`."""
    n_factors = corr.shape[0]
    chol = np.linalg.cholesky(corr)

    cpc = np.zeros((n_factors, n_factors))
    for i in range(1, n_factors):
        remaining = 1.0
        for j in range(i):
            cpc[i, j] = chol[i, j] / np.sqrt(remaining)
            remaining *= 1.0 - cpc[i, j] ** 2

    rows, cols = lower_index(n_factors)
    return np.arctanh(np.clip(cpc[rows, cols], -CPC_BOUND, CPC_BOUND))


def log_sech2(x: NDArray[np.float64]) -> NDArray[np.float64]:
    """Stable ``log(1 - tanh(x)^2)``."""
    ax = np.abs(x)
    return 2.0 * (np.log(2.0) - ax - np.log1p(np.exp(-2.0 * ax)))


def lkj_log_density_free(corr_free: NDArray[np.float64], n_factors: int, eta: float) -> float:
    """Log density of ``corr_free`` under an LKJ(eta) prior on the correlation matrix.

    Includes the Jacobian of the ``tanh``/CPC transform, so it can be used
    directly in a Metropolis ratio on the unconstrained scale. Additive
    constants are dropped.
    """
    if n_factors < 2:
        return 0.0
    _, cols = lower_index(n_factors)
    shape = eta + 0.5 * (n_factors - 2 - cols)
    return float(np.sum(shape * log_sech2(np.asarray(corr_free, dtype=np.float64))))
