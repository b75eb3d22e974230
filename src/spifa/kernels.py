"""Exponential spatial correlation kernel with a cached eigendecomposition."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from spifa.constants import EIGEN_FLOOR, SPATIAL_NUGGET
from spifa.exceptions import ConfigurationError


def validate_distances(distances, n_obs: int) -> NDArray[np.float64]:
    """Check an ``(n_obs, n_obs)`` distance matrix and return a copy."""
    distances = np.array(distances, dtype=np.float64)
    if distances.shape != (n_obs, n_obs):
        raise ConfigurationError(
            f"distances has shape {distances.shape}, expected ({n_obs}, {n_obs})"
        )
    if not np.all(np.isfinite(distances)):
        raise ConfigurationError("distances contains non-finite entries")
    if np.any(distances < 0):
        raise ConfigurationError("distances must be non-negative")
    if not np.allclose(distances, distances.T):
        raise ConfigurationError("distances must be symmetric")
    if np.any(np.diag(distances) != 0):
        raise ConfigurationError("distances must have a zero diagonal")
    return distances


def default_range(distances: NDArray[np.float64]) -> float:
    """Median positive distance, a neutral starting value for the range."""
    positive = distances[distances > 0]
    return float(np.median(positive)) if positive.size else 1.0


@dataclass(frozen=True)
class SpatialKernel:
    """Correlation matrix ``R = exp(-D / range) + nugget * I`` in eigen form.

    With ``R = U diag(w) U'``, rotating rows by ``U'`` makes a matrix-normal
    ``N(0, Corr (x) R)`` field row-wise independent, which is what the trait
    and coefficient updates exploit.
    """

    range: float
    eigenvalues: NDArray[np.float64]
    eigenvectors: NDArray[np.float64]

    @classmethod
    def from_distances(
        cls,
        distances: NDArray[np.float64],
        range_: float,
        nugget: float = SPATIAL_NUGGET,
    ) -> SpatialKernel:
        corr = np.exp(-distances / range_)
        corr[np.diag_indices_from(corr)] += nugget
        eigenvalues, eigenvectors = np.linalg.eigh(corr)
        return cls(
            range=float(range_),
            eigenvalues=np.maximum(eigenvalues, EIGEN_FLOOR),
            eigenvectors=eigenvectors,
        )

    @property
    def log_det(self) -> float:
        return float(np.sum(np.log(self.eigenvalues)))

    def rotate(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """``U' X``."""
        return self.eigenvectors.T @ X

    def unrotate(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """``U X``."""
        return self.eigenvectors @ X

    def solve(self, X: NDArray[np.float64]) -> NDArray[np.float64]:
        """``R^-1 X``."""
        return self.unrotate(self.rotate(X) / self.eigenvalues[:, None])
