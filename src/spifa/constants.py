"""Constants for numerical stability and default bounds.

These are true constants that should not be user-configurable.
For configurable values, use function arguments with defaults.
"""

MISSING_CODE: int = -1
"""Value used to code a missing response."""

PROPOSAL_COND_TOL: float = 1e-10
"""Relative eigenvalue floor below which an adaptive proposal covariance is singular."""

CORR_PD_TOL: float = 1e-8
"""Smallest admissible diagonal entry of a correlation Cholesky factor."""

CPC_BOUND: float = 1.0 - 1e-12
"""Largest admissible absolute canonical partial correlation."""

SPATIAL_NUGGET: float = 1e-6
"""Nugget added to the diagonal of the spatial correlation matrix."""

EIGEN_FLOOR: float = 1e-12
"""Lower bound applied to eigenvalues of the spatial correlation matrix."""

LOG_RANGE_BOUND: float = 50.0
"""Largest admissible absolute log spatial range."""
