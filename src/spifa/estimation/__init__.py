from spifa.estimation.augmentation import update_thresholds, update_z
from spifa.estimation.base import BaseSampler
from spifa.estimation.covariance import trait_log_density, update_cov_params
from spifa.estimation.items import ItemPriors, update_a, update_c
from spifa.estimation.sampler import IfaSampler, fit_ifa
from spifa.estimation.traits import update_beta, update_theta

__all__ = [
    # Samplers
    "BaseSampler",
    "IfaSampler",
    "fit_ifa",
    # Sampler stages
    "update_z",
    "update_thresholds",
    "update_c",
    "update_a",
    "update_theta",
    "update_beta",
    "update_cov_params",
    # Priors and densities
    "ItemPriors",
    "trait_log_density",
]
