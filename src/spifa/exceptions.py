"""Exceptions raised by the sampler before any iteration runs."""


class ConfigurationError(ValueError):
    """Inconsistent data, dimensions, restrictions or sampling controls."""


class PriorSpecificationError(ValueError):
    """Prior or adaptation constants outside their admissible range."""
