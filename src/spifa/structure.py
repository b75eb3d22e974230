"""Sparse descriptors for restriction matrices.

A restriction matrix marks each parameter entry as a structural zero, a
freely sampled entry, or a member of a tie group. The descriptors below turn
the dense matrices into index sets once, at construction, so the sampler
stages only ever visit entries that are allowed to move.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from spifa.exceptions import ConfigurationError


def _as_integer_pattern(matrix, shape: tuple[int, int], name: str) -> NDArray[np.int_]:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != shape:
        raise ConfigurationError(f"{name} has shape {matrix.shape}, expected {shape}")
    if not np.all(np.isfinite(matrix)):
        raise ConfigurationError(f"{name} contains non-finite entries")
    if np.any(matrix < 0) or np.any(matrix != np.round(matrix)):
        raise ConfigurationError(f"{name} entries must be non-negative integers")
    return matrix.astype(np.int_)


@dataclass(frozen=True)
class LoadingStructure:
    """Structure of the discrimination matrix encoded by ``L``.

    Entry codes: ``0`` is a structural zero, ``1`` a free loading, and any
    integer ``>= 2`` a tie-group label shared by all entries that must hold
    the same value.

    Attributes
    ----------
    mask : ndarray of bool, shape (n_items, n_factors)
        Entries that are not structural zeros.
    free : tuple of ndarray
        For each item, the factor indices of its untied free loadings.
    tied : tuple of ndarray
        For each item, the factor indices of its tied loadings.
    groups : tuple of ndarray
        For each tie group, an ``(k, 2)`` array of ``(item, factor)`` pairs.
    labels : tuple of int
        Tie-group labels, aligned with ``groups``.
    """

    mask: NDArray[np.bool_]
    free: tuple[NDArray[np.int_], ...]
    tied: tuple[NDArray[np.int_], ...]
    groups: tuple[NDArray[np.int_], ...]
    labels: tuple[int, ...]

    @classmethod
    def from_matrix(cls, L, n_items: int, n_factors: int) -> LoadingStructure:
        """Parse a restriction matrix; ``None`` frees every loading."""
        if L is None:
            codes = np.ones((n_items, n_factors), dtype=np.int_)
        else:
            codes = _as_integer_pattern(L, (n_items, n_factors), "L")

        free = tuple(np.flatnonzero(codes[j] == 1) for j in range(n_items))
        tied = tuple(np.flatnonzero(codes[j] >= 2) for j in range(n_items))
        labels = tuple(int(v) for v in np.unique(codes[codes >= 2]))
        groups = tuple(np.argwhere(codes == label) for label in labels)

        return cls(
            mask=codes != 0,
            free=free,
            tied=tied,
            groups=groups,
            labels=labels,
        )

    @property
    def n_items(self) -> int:
        return self.mask.shape[0]

    @property
    def n_factors(self) -> int:
        return self.mask.shape[1]

    @property
    def n_parameters(self) -> int:
        """Number of distinct loading parameters (free entries plus groups)."""
        return int(sum(len(f) for f in self.free)) + len(self.groups)

    def restrict(self, A: NDArray[np.float64]) -> NDArray[np.float64]:
        """Return ``A`` with structural zeros enforced."""
        return np.where(self.mask, A, 0.0)

    def equalize(self, A: NDArray[np.float64]) -> NDArray[np.float64]:
        """Return ``A`` with every tie group set to its mean value."""
        A = A.copy()
        for group in self.groups:
            rows, cols = group[:, 0], group[:, 1]
            A[rows, cols] = np.mean(A[rows, cols])
        return A


@dataclass(frozen=True)
class CoefficientStructure:
    """Structure of the covariate-effect matrix encoded by ``T``.

    A non-zero entry ``T[l, k]`` lets predictor ``l`` shift factor ``k``;
    zero entries are held at zero.

    Attributes
    ----------
    mask : ndarray of bool, shape (n_predictors, n_factors)
        Free coefficients.
    free_index : ndarray of int
        Positions of the free coefficients in the column-major ``vec(B)``.
    """

    mask: NDArray[np.bool_]
    free_index: NDArray[np.int_]

    @classmethod
    def from_matrix(cls, T, n_predictors: int, n_factors: int) -> CoefficientStructure:
        """Parse a restriction matrix; ``None`` frees every coefficient."""
        if T is None:
            codes = np.ones((n_predictors, n_factors), dtype=np.int_)
        else:
            codes = _as_integer_pattern(T, (n_predictors, n_factors), "T")
        mask = codes != 0
        return cls(mask=mask, free_index=np.flatnonzero(mask.ravel(order="F")))

    @property
    def n_predictors(self) -> int:
        return self.mask.shape[0]

    def restrict(self, B: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.where(self.mask, B, 0.0)
