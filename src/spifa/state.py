"""Model state shared by the sampler stages.

``ModelState`` owns every mutable array of the chain together with the
quantities derived from them. Each stage in :mod:`spifa.estimation` reads the
state, computes its new block from a consistent snapshot, and writes the
block back; derived caches are refreshed through the ``set_*`` / ``refresh_*``
methods so they never go stale.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from spifa.adaptive import AdaptiveProposal
from spifa.correlation import (
    chol_to_corr,
    corr_free_to_chol,
    corr_to_free,
    validate_correlation,
)
from spifa.exceptions import ConfigurationError, PriorSpecificationError
from spifa.kernels import SpatialKernel, default_range, validate_distances
from spifa.structure import CoefficientStructure, LoadingStructure
from spifa.typing import MODEL_TYPES, MissingPolicy, ModelType, TiePolicy
from spifa.utils.data import count_categories, threshold_table, validate_responses


@dataclass(frozen=True)
class TraitPrior:
    """Cached factorizations of the trait correlation matrix.

    Attributes
    ----------
    corr_chol : ndarray of shape (q, q)
        Lower Cholesky factor of Corr.
    sigma_chol_inv : ndarray of shape (q, q)
        Inverse of ``corr_chol``.
    sigma_inv : ndarray of shape (q, q)
        Corr^-1.
    log_det : float
        log |Corr|.
    """

    corr_chol: NDArray[np.float64]
    sigma_chol_inv: NDArray[np.float64]
    sigma_inv: NDArray[np.float64]
    log_det: float

    @classmethod
    def from_chol(cls, corr_chol: NDArray[np.float64]) -> TraitPrior:
        q = corr_chol.shape[0]
        chol_inv = linalg.solve_triangular(corr_chol, np.eye(q), lower=True)
        return cls(
            corr_chol=corr_chol,
            sigma_chol_inv=chol_inv,
            sigma_inv=chol_inv.T @ chol_inv,
            log_det=float(2.0 * np.sum(np.log(np.diag(corr_chol)))),
        )

    @property
    def corr(self) -> NDArray[np.float64]:
        return chol_to_corr(self.corr_chol)


@dataclass
class ModelState:
    """Current values of all parameters plus derived caches.

    Arrays use a respondent-by-item layout: ``z``, ``responses`` and
    ``observed`` are ``(n, m)``, ``theta`` is ``(n, q)``, ``A`` and ``LA``
    are ``(m, q)``.
    """

    model_type: str
    responses: NDArray[np.int_]
    observed: NDArray[np.bool_]
    n_categories: NDArray[np.int_]
    loadings: LoadingStructure
    missing: str
    ties: str

    theta: NDArray[np.float64]
    c: NDArray[np.float64]
    A: NDArray[np.float64]
    thresholds: NDArray[np.float64]
    z: NDArray[np.float64]
    corr_free: NDArray[np.float64]

    predictors: NDArray[np.float64] | None = None
    coefficients: CoefficientStructure | None = None
    V_sd: NDArray[np.float64] | None = None
    beta: NDArray[np.float64] | None = None

    distances: NDArray[np.float64] | None = None
    log_range: float | None = None
    range_prior_mean: float = 0.0
    range_prior_sd: float = 1.0

    LA: NDArray[np.float64] = field(init=False)
    prior: TraitPrior = field(init=False)
    kernel: SpatialKernel | None = field(init=False, default=None)
    proposals: list[AdaptiveProposal] = field(default_factory=list)
    n_truncation_fallbacks: int = 0

    def __post_init__(self) -> None:
        self.refresh_loadings()
        self.set_corr_free(self.corr_free)
        if self.log_range is not None:
            self.set_log_range(self.log_range)

    @property
    def n_obs(self) -> int:
        return self.responses.shape[0]

    @property
    def n_items(self) -> int:
        return self.responses.shape[1]

    @property
    def n_factors(self) -> int:
        return self.theta.shape[1]

    @property
    def has_predictors(self) -> bool:
        return self.predictors is not None

    @property
    def is_spatial(self) -> bool:
        return self.distances is not None

    @property
    def corr(self) -> NDArray[np.float64]:
        """Realized trait correlation matrix."""
        return self.prior.corr

    @property
    def corr_chol(self) -> NDArray[np.float64]:
        return self.prior.corr_chol

    @property
    def trait_mean(self) -> NDArray[np.float64]:
        """Prior mean of the traits, ``X B`` or zero."""
        if self.predictors is None:
            return np.zeros_like(self.theta)
        return self.predictors @ self.beta

    def linear_predictor(self) -> NDArray[np.float64]:
        """``theta @ LA' - c`` as an ``(n, m)`` array."""
        return self.theta @ self.LA.T - self.c[None, :]

    def interval_bounds(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Admissible ``(lower, upper)`` bounds of every ``z`` entry.

        Missing entries get the whole real line.
        """
        y = np.where(self.observed, self.responses, 0)
        items = np.arange(self.n_items)[None, :]
        lower = np.where(self.observed, self.thresholds[items, y], -np.inf)
        upper = np.where(self.observed, self.thresholds[items, y + 1], np.inf)
        return lower, upper

    def refresh_loadings(self) -> None:
        """Recompute the restricted discrimination matrix ``LA``."""
        self.LA = self.loadings.restrict(self.A)

    def set_corr_free(self, corr_free: NDArray[np.float64]) -> None:
        self.corr_free = np.array(corr_free, dtype=np.float64)
        self.prior = TraitPrior.from_chol(corr_free_to_chol(self.corr_free, self.n_factors))

    def set_log_range(self, log_range: float) -> None:
        self.log_range = float(log_range)
        self.kernel = SpatialKernel.from_distances(self.distances, np.exp(self.log_range))

    def proposal(self, name: str) -> AdaptiveProposal:
        for block in self.proposals:
            if block.name == name:
                return block
        raise KeyError(name)

    def copy(self) -> ModelState:
        return copy.deepcopy(self)


def _as_array(value, shape: tuple[int, ...], name: str, default: float = 0.0):
    if value is None:
        return np.full(shape, default, dtype=np.float64)
    value = np.array(value, dtype=np.float64)
    if value.ndim == 1 and len(shape) == 2 and shape[1] == 1:
        value = value.reshape(-1, 1)
    if value.shape != shape:
        raise ConfigurationError(f"{name} has shape {value.shape}, expected {shape}")
    if not np.all(np.isfinite(value)):
        raise ConfigurationError(f"{name} contains non-finite entries")
    return value


def _block_setting(
    value, n_blocks: int, name: str, entry_ndim: int, broadcast: bool = False
) -> list:
    if isinstance(value, (list, tuple)) and all(
        entry is None or np.ndim(entry) == entry_ndim for entry in value
    ):
        if len(value) != n_blocks:
            raise ConfigurationError(
                f"{name} has {len(value)} entries, expected one per adaptive block ({n_blocks})"
            )
        return list(value)
    if broadcast or n_blocks == 0:
        return [value] * n_blocks
    return [value] + [None] * (n_blocks - 1)



def initial_z(
    lower: NDArray[np.float64],
    upper: NDArray[np.float64],
    eta: NDArray[np.float64],
) -> NDArray[np.float64]:
    """A point inside every admissible interval, used before the first draw."""
    finite_lo = np.isfinite(lower)
    finite_hi = np.isfinite(upper)
    with np.errstate(invalid="ignore"):
        mid = 0.5 * (lower + upper)
    return np.where(
        finite_lo & finite_hi,
        mid,
        np.where(finite_hi, upper - 0.5, np.where(finite_lo, lower + 0.5, eta)),
    )


def build_state(
    responses,
    n_factors: int,
    model_type: ModelType = "cifa",
    predictors=None,
    distances=None,
    L=None,
    T=None,
    V_sd=None,
    adap_Sigma=None,
    adap_scale=None,
    c_ini=None,
    A_ini=None,
    R_ini=None,
    B_ini=None,
    theta_ini=None,
    range_ini: float | None = None,
    range_prior_mean: float | None = None,
    range_prior_sd: float = 1.0,
    missing: MissingPolicy = "impute",
    ties: TiePolicy = "joint",
) -> ModelState:
    """Validate construction inputs and build the initial model state.

    All array inputs are copied. See :class:`spifa.estimation.sampler.IfaSampler`
    for the meaning of each argument.

    Raises
    ------
    ConfigurationError
        On dimension mismatches, malformed restrictions, or inconsistent
        model options.
    PriorSpecificationError
        On non-positive prior scales.
    """
    if model_type not in MODEL_TYPES:
        raise ConfigurationError(
            f"Unknown model_type '{model_type}'. Must be one of: {', '.join(MODEL_TYPES)}"
        )
    if missing not in ("impute", "skip"):
        raise ConfigurationError(f"missing must be 'impute' or 'skip', got '{missing}'")
    if ties not in ("joint", "average"):
        raise ConfigurationError(f"ties must be 'joint' or 'average', got '{ties}'")
    if int(n_factors) != n_factors or n_factors < 1:
        raise ConfigurationError("n_factors must be a positive integer")
    n_factors = int(n_factors)

    responses = validate_responses(responses)
    n_obs, n_items = responses.shape
    observed = responses >= 0
    n_categories = count_categories(responses)

    family = model_type.split("_")[0]
    with_predictors = model_type.endswith("_pred")
    spatial = family == "spifa"
    correlated = family in ("cifa", "spifa")

    loadings = LoadingStructure.from_matrix(L, n_items, n_factors)
    A = _as_array(A_ini, (n_items, n_factors), "A_ini", default=1.0)
    A = loadings.equalize(loadings.restrict(A))
    c = _as_array(c_ini, (n_items,), "c_ini")
    theta = _as_array(theta_ini, (n_obs, n_factors), "theta_ini")

    if R_ini is None:
        corr = np.eye(n_factors)
    else:
        corr = validate_correlation(R_ini, n_factors)
        if not correlated and not np.allclose(corr, np.eye(n_factors)):
            raise ConfigurationError(
                f"'{model_type}' fixes the trait correlation to the identity"
            )
    corr_free = corr_to_free(corr)

    x = coefficients = sd = beta = None
    if with_predictors:
        if predictors is None:
            raise ConfigurationError(f"'{model_type}' requires a predictor matrix")
        x = np.array(predictors, dtype=np.float64)
        if x.ndim == 1:
            x = x.reshape(-1, 1)
        if x.ndim != 2 or x.shape[0] != n_obs or x.shape[1] == 0:
            raise ConfigurationError(
                f"predictors has shape {x.shape}, expected ({n_obs}, n_predictors)"
            )
        if not np.all(np.isfinite(x)):
            raise ConfigurationError("predictors contains non-finite entries")
        n_predictors = x.shape[1]
        coefficients = CoefficientStructure.from_matrix(T, n_predictors, n_factors)
        sd = _as_array(V_sd, (n_factors,), "V_sd", default=1.0)
        if np.any(sd <= 0):
            raise PriorSpecificationError("V_sd entries must be positive")
        beta = coefficients.restrict(_as_array(B_ini, (n_predictors, n_factors), "B_ini"))
    elif predictors is not None or T is not None or B_ini is not None:
        raise ConfigurationError(f"'{model_type}' does not use predictors")

    dist = log_range = None
    prior_mean = 0.0
    if spatial:
        if distances is None:
            raise ConfigurationError(f"'{model_type}' requires a distance matrix")
        if missing != "impute":
            raise ConfigurationError("spatial models require missing='impute'")
        dist = validate_distances(distances, n_obs)
        if range_ini is None:
            range_ini = default_range(dist)
        if not range_ini > 0:
            raise ConfigurationError("range_ini must be positive")
        if not range_prior_sd > 0:
            raise PriorSpecificationError("range_prior_sd must be positive")
        log_range = float(np.log(range_ini))
        prior_mean = (
            float(np.log(default_range(dist))) if range_prior_mean is None else float(range_prior_mean)
        )
    elif distances is not None:
        raise ConfigurationError(f"'{model_type}' does not use distances")

    thresholds = threshold_table(n_categories)

    state = ModelState(
        model_type=model_type,
        responses=responses,
        observed=observed,
        n_categories=n_categories,
        loadings=loadings,
        missing=missing,
        ties=ties,
        theta=theta,
        c=c,
        A=A,
        thresholds=thresholds,
        z=np.zeros((n_obs, n_items)),
        corr_free=corr_free,
        predictors=x,
        coefficients=coefficients,
        V_sd=sd,
        beta=beta,
        distances=dist,
        log_range=log_range,
        range_prior_mean=prior_mean,
        range_prior_sd=float(range_prior_sd),
    )
    lower, upper = state.interval_bounds()
    state.z = initial_z(lower, upper, state.linear_predictor())

    blocks: list[tuple[str, NDArray[np.float64]]] = []
    if correlated and n_factors >= 2:
        blocks.append(("corr", state.corr_free))
    if spatial:
        blocks.append(("range", np.array([state.log_range])))

    covs = _block_setting(adap_Sigma, len(blocks), "adap_Sigma", entry_ndim=2)
    scales = _block_setting(
        adap_scale, len(blocks), "adap_scale", entry_ndim=0, broadcast=True
    )
    for (name, params), cov, scale in zip(blocks, covs, scales):
        state.proposals.append(
            AdaptiveProposal(name, params, cov=cov, scale=0.1 if scale is None else scale)
        )

    return state
