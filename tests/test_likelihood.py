"""Tests for the DGLM objective, gradient, constraints and Jacobian."""

import numpy as np
import pytest

from python_dglm.family import ConwayMaxwellPoisson, HyperPoisson
from python_dglm.likelihood import DGLMLikelihood


def _central_diff(f, x, eps=1e-6):
    """Central finite-difference derivative of f (scalar or vector valued)."""
    f0 = np.atleast_1d(f(x))
    out = np.zeros((f0.size, x.size))
    for k in range(x.size):
        step = np.zeros_like(x)
        step[k] = eps
        out[:, k] = (np.atleast_1d(f(x + step)) - np.atleast_1d(f(x - step))) / (2 * eps)
    return out


def _make_likelihood(family, seed=0, n=12):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1, 1, n)
    X = np.column_stack([np.ones(n), x])
    Z = np.column_stack([np.ones(n), rng.uniform(-1, 1, n)])
    y = rng.poisson(np.exp(0.8 + 0.4 * x)).astype(float)
    weights = rng.uniform(0.5, 2.0, n)
    offset = rng.normal(0, 0.1, n)
    lik = DGLMLikelihood(family, y, X, Z, weights, offset)
    theta = lik.pack(
        np.array([0.7, 0.3]),
        rng.normal(0.8, 0.3, n),
        np.array([0.2, -0.3]),
    )
    return lik, theta


@pytest.fixture(params=[HyperPoisson(), ConwayMaxwellPoisson()], ids=["hP", "CMP"])
def family(request):
    return request.param


class TestDerivatives:
    def test_gradient_matches_finite_differences(self, family):
        lik, theta = _make_likelihood(family)
        numeric = _central_diff(lik.objective, theta)[0]
        np.testing.assert_allclose(lik.gradient(theta), numeric, rtol=1e-5, atol=1e-6)

    def test_gradient_zero_for_beta(self, family):
        lik, theta = _make_likelihood(family)
        np.testing.assert_array_equal(lik.gradient(theta)[: lik.q1], 0.0)

    def test_jacobian_matches_finite_differences(self, family):
        lik, theta = _make_likelihood(family)
        numeric = _central_diff(lik.constraints, theta)
        np.testing.assert_allclose(lik.jacobian(theta), numeric, rtol=1e-5, atol=1e-6)

    def test_jacobian_shape(self, family):
        lik, theta = _make_likelihood(family)
        assert lik.jacobian(theta).shape == (lik.n, lik.q1 + lik.n + lik.q2)


class TestObjective:
    def test_matches_logpmf(self, family):
        lik, theta = _make_likelihood(family)
        _, log_lambda, delta = lik.unpack(theta)
        disp = np.exp(lik.Z @ delta)
        expected = -np.sum(lik.weights * family.logpmf(lik.y, np.exp(log_lambda), disp))
        assert lik.objective(theta) == pytest.approx(expected, rel=1e-12)

    def test_poisson_reduction(self):
        lik, theta = _make_likelihood(HyperPoisson())
        beta, log_lambda, _ = lik.unpack(theta)
        theta = lik.pack(beta, log_lambda, np.zeros(lik.q2))
        lam = np.exp(log_lambda)
        from scipy.stats import poisson

        expected = -np.sum(lik.weights * poisson.logpmf(lik.y, lam))
        assert lik.objective(theta) == pytest.approx(expected, rel=1e-10)

    def test_constraints_vanish_at_matching_mean(self):
        lik, theta = _make_likelihood(HyperPoisson())
        beta, _, _ = lik.unpack(theta)
        mu = np.exp(lik.offset + lik.X @ beta)
        # gamma = 1 gives E[Y] = lambda, so lambda = mu satisfies the constraints
        theta = lik.pack(beta, np.log(mu), np.zeros(lik.q2))
        np.testing.assert_allclose(lik.constraints(theta), 0.0, atol=1e-10)


class TestLayout:
    def test_pack_unpack_round_trip(self):
        lik, theta = _make_likelihood(HyperPoisson())
        beta, log_lambda, delta = lik.unpack(theta)
        assert len(beta) == 2
        assert len(log_lambda) == lik.n
        assert len(delta) == 2
        np.testing.assert_array_equal(lik.pack(beta, log_lambda, delta), theta)

    def test_series_cached_per_point(self):
        lik, theta = _make_likelihood(HyperPoisson())
        lik.objective(theta)
        lik.gradient(theta)
        lik.constraints(theta)
        lik.jacobian(theta)
        assert lik.n_series == 1
        lik.objective(theta + 1e-3)
        assert lik.n_series == 2
