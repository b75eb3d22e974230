from spifa.diagnostics.convergence import effective_sample_size, split_rhat

__all__ = [
    "effective_sample_size",
    "split_rhat",
]
