"""Data validation and preprocessing utilities."""

from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray

from spifa.constants import MISSING_CODE
from spifa.exceptions import ConfigurationError


def validate_responses(
    responses: Union[NDArray, list],
    n_items: Optional[int] = None,
    missing_code: int = MISSING_CODE,
) -> NDArray[np.int_]:
    """Validate and preprocess a response matrix.

    Parameters
    ----------
    responses : array-like of shape (n_persons, n_items)
        Category indices starting at 0. Missing responses are coded as
        ``missing_code`` or, in floating-point input, as NaN.
    n_items : int, optional
        Expected number of items. If provided, validates column count.
    missing_code : int, default=-1
        Value used to code missing responses.

    Returns
    -------
    ndarray of shape (n_persons, n_items)
        Validated response matrix with integer dtype and missing entries
        coded as ``missing_code``.

    Raises
    ------
    ConfigurationError
        If responses are invalid (wrong shape, non-integer, negative, etc.).

    Examples
    --------
    >>> validated = validate_responses([[1, 0, 2], [0, float("nan"), 1]])
    >>> int(validated[1, 1])
    -1
    """
    responses = np.array(responses, dtype=np.float64)

    if responses.ndim != 2:
        raise ConfigurationError(f"responses must be 2D array, got {responses.ndim}D")

    n_persons, n_cols = responses.shape

    if n_persons == 0 or n_cols == 0:
        raise ConfigurationError("responses cannot be empty")

    if n_items is not None and n_cols != n_items:
        raise ConfigurationError(f"responses has {n_cols} items, expected {n_items}")

    responses[np.isnan(responses)] = missing_code

    if np.any(np.isinf(responses)):
        raise ConfigurationError("responses contains infinite values")
    if np.any(responses != np.round(responses)):
        raise ConfigurationError("responses must be integer category indices")

    responses = responses.astype(np.int_)

    valid_mask = responses != missing_code
    if np.any(responses[valid_mask] < 0):
        raise ConfigurationError(
            f"responses contains negative values other than missing code ({missing_code})"
        )

    return responses


def count_categories(
    responses: NDArray[np.int_],
    missing_code: int = MISSING_CODE,
) -> NDArray[np.int_]:
    """Number of categories per item, at least 2.

    Categories are taken to run from 0 to the largest observed index, so
    unobserved intermediate categories still get their own interval.
    """
    observed = np.where(responses == missing_code, -1, responses)
    return np.maximum(np.max(observed, axis=0) + 1, 2).astype(np.int_)


def threshold_table(n_categories: NDArray[np.int_]) -> NDArray[np.float64]:
    """Initial cut points, one row per item.

    Row ``j`` holds ``-inf, 0, 1, ..., K_j - 2, +inf`` padded with ``+inf``
    to a common width of ``max(K) + 1``.
    """
    n_items = len(n_categories)
    width = int(np.max(n_categories)) + 1
    table = np.full((n_items, width), np.inf)
    table[:, 0] = -np.inf
    for j, n_cat in enumerate(n_categories):
        table[j, 1:n_cat] = np.arange(n_cat - 1, dtype=np.float64)
    return table
