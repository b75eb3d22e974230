"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from spifa.state import build_state
from spifa.utils.simulation import simulate_ifa


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(42)


@pytest.fixture
def binary_data():
    """Binary one-factor responses (50 respondents, 10 items)."""
    return simulate_ifa(
        n_persons=50,
        n_items=10,
        n_factors=1,
        model_type="eifa",
        discrimination=np.full((10, 1), 1.5),
        difficulty=np.linspace(-1, 1, 10),
        seed=7,
    )


@pytest.fixture
def ordinal_data():
    """Four-category two-factor responses with correlated traits."""
    corr = np.array([[1.0, 0.4], [0.4, 1.0]])
    return simulate_ifa(
        n_persons=60,
        n_items=8,
        n_factors=2,
        n_categories=4,
        model_type="cifa",
        corr=corr,
        thresholds=np.array([0.8, 1.6]),
        seed=11,
    )


@pytest.fixture
def missing_data():
    """Binary responses with roughly 15% missing."""
    return simulate_ifa(
        n_persons=40,
        n_items=6,
        n_factors=1,
        model_type="cifa",
        missing_rate=0.15,
        seed=3,
    )


@pytest.fixture
def spatial_data():
    """Binary two-factor responses on random locations in the unit square."""
    return simulate_ifa(
        n_persons=30,
        n_items=6,
        n_factors=2,
        model_type="spifa_pred",
        corr=np.array([[1.0, 0.3], [0.3, 1.0]]),
        range_=0.25,
        seed=5,
    )


@pytest.fixture
def simple_structure():
    """Two-factor loading pattern: items 0-3 on factor 0, items 4-7 on factor 1."""
    L = np.zeros((8, 2), dtype=int)
    L[:4, 0] = 1
    L[4:, 1] = 1
    return L


@pytest.fixture
def binary_state(binary_data):
    """Initial state for the binary one-factor data."""
    return build_state(binary_data["responses"], 1, model_type="eifa")


@pytest.fixture
def ordinal_state(ordinal_data, simple_structure):
    """Initial state for the ordinal two-factor data."""
    return build_state(
        ordinal_data["responses"], 2, model_type="cifa", L=simple_structure
    )
