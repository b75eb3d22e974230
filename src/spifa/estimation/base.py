"""Base class for MCMC samplers."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from spifa.exceptions import ConfigurationError

if TYPE_CHECKING:
    from spifa.results.sample_result import SampleResult


class BaseSampler(ABC):
    """Abstract base class for Markov chain samplers.

    This class holds the random stream and the run-control checks shared by
    samplers.

    Parameters
    ----------
    seed : int or Generator, optional
        Seed or generator for the single random stream of the chain.
    verbose : bool, default=False
        Whether to print progress information.

    Attributes
    ----------
    rng : Generator
        Random number generator driving every stage.
    verbose : bool
        Verbosity flag.
    """

    def __init__(
        self,
        seed: int | np.random.Generator | None = None,
        verbose: bool = False,
    ) -> None:
        self.rng = np.random.default_rng(seed)
        self.verbose = verbose

    @abstractmethod
    def sample(self, *args, **kwargs) -> "SampleResult":
        """Run the chain and return the recorded draws."""
        ...

    @staticmethod
    def _n_records(n_iter: int, thin: int, burnin: int) -> int:
        """Validate run controls and return the number of recorded iterations.

        Parameters
        ----------
        n_iter : int
            Total number of iterations.
        thin : int
            Thinning interval.
        burnin : int
            Leading iterations that are run but not recorded.

        Returns
        -------
        int
            ``(n_iter - burnin) // thin``.
        """
        if int(n_iter) != n_iter or n_iter < 1:
            raise ConfigurationError("n_iter must be at least 1")
        if int(thin) != thin or thin < 1:
            raise ConfigurationError("thin must be at least 1")
        if int(burnin) != burnin or not 0 <= burnin < n_iter:
            raise ConfigurationError("burnin must be in [0, n_iter)")
        return (int(n_iter) - int(burnin)) // int(thin)

    def _log_iteration(
        self,
        iteration: int,
        n_iter: int,
        **kwargs,
    ) -> None:
        """Print iteration progress if verbose mode is on.

        Parameters
        ----------
        iteration : int
            Current iteration number.
        n_iter : int
            Total number of iterations.
        **kwargs
            Additional values to print.
        """
        if self.verbose:
            extras = ", ".join(f"{k}={v:.4f}" for k, v in kwargs.items())
            msg = f"Iteration {iteration}/{n_iter}"
            if extras:
                msg += f": {extras}"
            print(msg)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(verbose={self.verbose})"
