"""Data simulation for ordinal probit item factor models."""

from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray
from scipy import linalg
from scipy.spatial.distance import cdist

from spifa.constants import MISSING_CODE, SPATIAL_NUGGET
from spifa.correlation import validate_correlation
from spifa.exceptions import ConfigurationError
from spifa.typing import MODEL_TYPES, ModelType


def simulate_ifa(
    n_persons: int = 200,
    n_items: int = 10,
    n_factors: int = 1,
    n_categories: int = 2,
    model_type: ModelType = "cifa",
    corr: Optional[NDArray[np.float64]] = None,
    discrimination: Optional[NDArray[np.float64]] = None,
    difficulty: Optional[NDArray[np.float64]] = None,
    thresholds: Optional[NDArray[np.float64]] = None,
    predictors: Optional[NDArray[np.float64]] = None,
    coefficients: Optional[NDArray[np.float64]] = None,
    coords: Optional[NDArray[np.float64]] = None,
    range_: float = 0.3,
    missing_rate: float = 0.0,
    seed: Optional[int] = None,
) -> dict[str, Any]:
    """Simulate ordinal responses from a probit item factor model.

    Latent responses are ``z = theta A' - c + e`` with standard normal
    noise, and the observed category of ``z_ij`` is the number of cut points
    ``0 = tau_1 < tau_2 < ...`` below it.

    Parameters
    ----------
    n_persons : int, default=200
        Number of respondents.
    n_items : int, default=10
        Number of items.
    n_factors : int, default=1
        Number of latent factors.
    n_categories : int, default=2
        Number of response categories of every item.
    model_type : str, default='cifa'
        Model variant. ``eifa`` ignores ``corr``; spatial variants draw
        coordinates in the unit square unless ``coords`` is given.
    corr : ndarray of shape (n_factors, n_factors), optional
        Trait correlation. Defaults to the identity.
    discrimination : ndarray of shape (n_items, n_factors), optional
        If None, drawn from LogN(0, 0.25).
    difficulty : ndarray of shape (n_items,), optional
        If None, drawn from N(0, 1).
    thresholds : ndarray of shape (n_categories - 2,), optional
        Increasing positive cut points above ``tau_1 = 0``. Defaults to
        ``1, 2, ...``.
    predictors : ndarray of shape (n_persons, n_predictors), optional
        Covariates for ``*_pred`` variants. If None, drawn from N(0, 1)
        with two columns.
    coefficients : ndarray of shape (n_predictors, n_factors), optional
        Covariate effects. If None, drawn from N(0, 0.5^2).
    coords : ndarray of shape (n_persons, 2), optional
        Respondent locations for spatial variants.
    range_ : float, default=0.3
        Range of the exponential spatial kernel.
    missing_rate : float, default=0.0
        Fraction of responses set to missing completely at random.
    seed : int, optional
        Random seed for reproducibility.

    Returns
    -------
    dict
        ``responses``, ``theta``, ``discrimination``, ``difficulty``,
        ``thresholds`` and ``corr``, plus ``predictors`` / ``coefficients``
        and ``coords`` / ``distances`` / ``range`` where the variant uses
        them.

    Examples
    --------
    >>> data = simulate_ifa(n_persons=50, n_items=10, seed=0)
    >>> data["responses"].shape
    (50, 10)
    """
    if model_type not in MODEL_TYPES:
        raise ConfigurationError(f"Unknown model_type '{model_type}'")
    if n_categories < 2:
        raise ConfigurationError("n_categories must be at least 2")
    if not 0 <= missing_rate < 1:
        raise ConfigurationError("missing_rate must be in [0, 1)")

    rng = np.random.default_rng(seed)
    family = model_type.split("_")[0]
    out: dict[str, Any] = {}

    if corr is None or family == "eifa":
        corr = np.eye(n_factors)
    corr = validate_correlation(corr, n_factors, name="corr")

    # Noise with covariance Corr (x) R, laid out as (n_persons, n_factors)
    G = rng.standard_normal((n_persons, n_factors))
    E = G @ linalg.cholesky(corr, lower=True).T
    if family == "spifa":
        if coords is None:
            coords = rng.random((n_persons, 2))
        coords = np.asarray(coords, dtype=np.float64)
        distances = cdist(coords, coords)
        R = np.exp(-distances / range_) + SPATIAL_NUGGET * np.eye(n_persons)
        E = linalg.cholesky(R, lower=True) @ E
        out.update(coords=coords, distances=distances, range=float(range_))

    theta = E
    if model_type.endswith("_pred"):
        if predictors is None:
            predictors = rng.standard_normal((n_persons, 2))
        predictors = np.asarray(predictors, dtype=np.float64)
        if coefficients is None:
            coefficients = rng.normal(0, 0.5, (predictors.shape[1], n_factors))
        coefficients = np.asarray(coefficients, dtype=np.float64)
        theta = predictors @ coefficients + E
        out.update(predictors=predictors, coefficients=coefficients)

    if discrimination is None:
        discrimination = rng.lognormal(0, 0.25, (n_items, n_factors))
    discrimination = np.asarray(discrimination, dtype=np.float64).reshape(n_items, n_factors)

    if difficulty is None:
        difficulty = rng.standard_normal(n_items)
    difficulty = np.asarray(difficulty, dtype=np.float64)

    if thresholds is None:
        thresholds = np.arange(1, n_categories - 1, dtype=np.float64)
    thresholds = np.asarray(thresholds, dtype=np.float64)
    cuts = np.concatenate([[0.0], thresholds])
    if len(cuts) != n_categories - 1 or np.any(np.diff(cuts) <= 0):
        raise ConfigurationError("thresholds must be n_categories - 2 increasing positive values")

    z = theta @ discrimination.T - difficulty[None, :] + rng.standard_normal((n_persons, n_items))
    responses = np.searchsorted(cuts, z, side="left").astype(np.int_)

    if missing_rate > 0:
        responses[rng.random(responses.shape) < missing_rate] = MISSING_CODE

    out.update(
        responses=responses,
        theta=theta,
        discrimination=discrimination,
        difficulty=difficulty,
        thresholds=cuts,
        corr=corr,
    )
    return out
