"""Shared test fixtures for python_dglm tests."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def poisson_data():
    """Poisson counts with known mean coefficients (1, 0.5)."""
    rng = np.random.default_rng(42)
    N = 50
    x = rng.normal(0, 1, N)
    mu = np.exp(1.0 + 0.5 * x)
    y = rng.poisson(mu)
    return pd.DataFrame({"y": y, "x": x})


@pytest.fixture
def grouped_overdispersed_data():
    """Counts that are Poisson in group 0 and strongly overdispersed in group 1."""
    rng = np.random.default_rng(7)
    N = 120
    x = rng.uniform(-1, 1, N)
    g = np.tile([0.0, 1.0], N // 2)
    mu = np.exp(1.0 + 0.5 * x)
    frailty = np.where(g == 1, rng.gamma(1.0, 1.0, N), 1.0)
    y = rng.poisson(mu * frailty)
    return pd.DataFrame({"y": y, "x": x, "g": g})


@pytest.fixture
def underdispersed_data():
    """Binomial counts: variance about half the mean."""
    rng = np.random.default_rng(3)
    N = 80
    x = rng.uniform(-1, 1, N)
    p = 1 / (1 + np.exp(-0.5 * x))
    y = rng.binomial(10, p)
    return pd.DataFrame({"y": y, "x": x})
