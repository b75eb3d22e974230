from spifa.utils.data import count_categories, threshold_table, validate_responses
from spifa.utils.simulation import simulate_ifa

__all__ = [
    "simulate_ifa",
    "validate_responses",
    "count_categories",
    "threshold_table",
]
