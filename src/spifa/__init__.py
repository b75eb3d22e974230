from spifa._version import __version__
from spifa.adaptive import AdaptiveProposal, RobbinsMonroSchedule
from spifa.correlation import corr_free_to_corr, corr_to_free, lkj_log_density_free
from spifa.diagnostics.convergence import effective_sample_size, split_rhat
from spifa.estimation.items import ItemPriors
from spifa.estimation.sampler import IfaSampler, fit_ifa
from spifa.exceptions import ConfigurationError, PriorSpecificationError
from spifa.kernels import SpatialKernel
from spifa.results.sample_result import IterationRecord, SampleResult
from spifa.state import ModelState, build_state
from spifa.structure import CoefficientStructure, LoadingStructure
from spifa.utils.data import validate_responses
from spifa.utils.simulation import simulate_ifa

__all__ = [
    "__version__",
    # Sampling
    "IfaSampler",
    "fit_ifa",
    "SampleResult",
    "IterationRecord",
    # State and configuration
    "ModelState",
    "build_state",
    "ItemPriors",
    "LoadingStructure",
    "CoefficientStructure",
    "SpatialKernel",
    # Adaptation
    "AdaptiveProposal",
    "RobbinsMonroSchedule",
    # Correlation parameterization
    "corr_free_to_corr",
    "corr_to_free",
    "lkj_log_density_free",
    # Diagnostics
    "effective_sample_size",
    "split_rhat",
    # Data
    "simulate_ifa",
    "validate_responses",
    # Errors
    "ConfigurationError",
    "PriorSpecificationError",
]
