"""Tests for the series engine and count families."""

import numpy as np
import pytest
from scipy.special import digamma, gammaln

from python_dglm.family import ConwayMaxwellPoisson, HyperPoisson
from python_dglm.series import sum_series


def _brute_force(log_terms, stat, j):
    """Moments from explicitly enumerated terms."""
    w = np.exp(log_terms - log_terms.max())
    p = w / w.sum()
    mean = np.sum(j * p)
    mean_s = np.sum(stat * p)
    return {
        "log_z": log_terms.max() + np.log(w.sum()),
        "mean": mean,
        "variance": np.sum((j - mean) ** 2 * p),
        "mean_stat": mean_s,
        "covar_stat": np.sum((j - mean) * (stat - mean_s) * p),
    }


class TestHyperPoissonSeries:
    def test_poisson_special_case(self):
        hp = HyperPoisson()
        lam = np.array([0.5, 1.0, 3.0, 10.0, 40.0])
        np.testing.assert_allclose(hp.normalizing_constant(lam, 1.0), np.exp(lam), rtol=1e-12)
        np.testing.assert_allclose(hp.means(lam, 1.0), lam, rtol=1e-10)
        np.testing.assert_allclose(hp.variances(lam, 1.0), lam, rtol=1e-9)

    def test_against_enumeration(self):
        hp = HyperPoisson()
        lam, gam = 4.0, 2.5
        j = np.arange(400)
        log_terms = j * np.log(lam) - (gammaln(gam + j) - gammaln(gam))
        ref = _brute_force(log_terms, digamma(gam + j), j)

        s = hp.series(np.array([lam]), np.array([gam]))
        assert s.log_z[0] == pytest.approx(ref["log_z"], rel=1e-12)
        assert s.mean[0] == pytest.approx(ref["mean"], rel=1e-10)
        assert s.variance[0] == pytest.approx(ref["variance"], rel=1e-9)
        assert hp.means_psiy([lam], [gam])[0] == pytest.approx(ref["mean_stat"], rel=1e-10)
        assert hp.covars_psiy([lam], [gam])[0] == pytest.approx(ref["covar_stat"], rel=1e-8)

    def test_underdispersed_gamma(self):
        hp = HyperPoisson()
        lam, gam = 6.0, 0.2
        mean = hp.means(lam, gam)
        var = hp.variances(lam, gam)
        assert var < mean

    def test_large_lambda_does_not_overflow(self):
        hp = HyperPoisson()
        log_z = hp.log_normalizing_constant(np.array([700.0]), np.array([1.0]))
        assert np.isfinite(log_z[0])
        assert log_z[0] == pytest.approx(700.0, rel=1e-10)
        assert float(hp.means(700.0, 1.0)) == pytest.approx(700.0, rel=1e-8)

    def test_small_gamma_does_not_overflow(self):
        s = HyperPoisson().series(np.array([50.0]), np.array([1e-6]))
        assert np.isfinite(s.log_z[0])
        assert np.isfinite(s.mean[0])
        assert not s.truncated[0]

    def test_accuracy_monotone_in_cap(self):
        hp = HyperPoisson()
        caps = np.arange(1, 13)
        z = np.array([hp.normalizing_constant(2.0, 3.0, maxiter_series=int(c))
                      for c in caps])
        diffs = np.abs(np.diff(z))
        assert np.all(np.diff(diffs) <= 0)

    def test_logpmf_sums_to_one(self):
        hp = HyperPoisson()
        y = np.arange(200)
        p = hp.pmf(y, 5.0, 3.0)
        assert np.sum(p) == pytest.approx(1.0, rel=1e-10)
        assert np.sum(y * p) == pytest.approx(float(hp.means(5.0, 3.0)), rel=1e-10)


class TestCMPSeries:
    def test_poisson_special_case(self):
        cmp = ConwayMaxwellPoisson()
        lam = np.array([0.3, 2.0, 15.0])
        np.testing.assert_allclose(cmp.normalizing_constant(lam, 1.0), np.exp(lam), rtol=1e-12)
        np.testing.assert_allclose(cmp.means(lam, 1.0), lam, rtol=1e-10)
        np.testing.assert_allclose(cmp.variances(lam, 1.0), lam, rtol=1e-9)

    def test_against_enumeration(self):
        cmp = ConwayMaxwellPoisson()
        lam, nu = 7.0, 1.7
        j = np.arange(200)
        log_terms = j * np.log(lam) - nu * gammaln(j + 1)
        ref = _brute_force(log_terms, gammaln(j + 1), j)

        s = cmp.series(np.array([lam]), np.array([nu]))
        assert s.log_z[0] == pytest.approx(ref["log_z"], rel=1e-12)
        assert s.mean[0] == pytest.approx(ref["mean"], rel=1e-10)
        assert s.variance[0] == pytest.approx(ref["variance"], rel=1e-9)
        assert cmp.means_logfactorial([lam], [nu])[0] == pytest.approx(ref["mean_stat"], rel=1e-10)
        assert cmp.covars_logfactorial([lam], [nu])[0] == pytest.approx(ref["covar_stat"], rel=1e-8)

    def test_underdispersion_for_nu_above_one(self):
        cmp = ConwayMaxwellPoisson()
        assert cmp.variances(20.0, 2.0) < cmp.means(20.0, 2.0)

    def test_logpmf_matches_definition(self):
        cmp = ConwayMaxwellPoisson()
        y = np.array([0, 1, 4])
        log_z = cmp.log_normalizing_constant(3.0, 0.8)
        expected = y * np.log(3.0) - 0.8 * gammaln(y + 1) - log_z
        np.testing.assert_allclose(cmp.logpmf(y, 3.0, 0.8), expected)


class TestTruncationPolicy:
    def test_cap_reports_truncation(self):
        s = HyperPoisson().series(np.array([10.0, 1e-9]), np.array([1.0, 1.0]), maxiter_series=3)
        assert s.truncated[0]
        assert s.n_terms[0] == 3
        assert not s.truncated[1]

    def test_per_observation_stopping(self):
        s = HyperPoisson().series(np.array([0.1, 30.0]), np.array([1.0, 1.0]))
        assert s.n_terms[0] < s.n_terms[1]
        assert not np.any(s.truncated)

    def test_positive_tol_stops_earlier(self):
        hp = HyperPoisson()
        exact = hp.series(np.array([5.0]), np.array([1.0]))
        loose = hp.series(np.array([5.0]), np.array([1.0]), tol=1e-3)
        assert loose.n_terms[0] < exact.n_terms[0]
        assert loose.mean[0] == pytest.approx(5.0, rel=1e-2)

    def test_last_term_is_negligible_when_converged(self):
        s = HyperPoisson().series(np.array([3.0]), np.array([2.0]))
        assert s.last_term[0] < 1e-15

    def test_invalid_policy(self):
        hp = HyperPoisson()
        with pytest.raises(ValueError, match="maxiter_series"):
            sum_series(hp, np.zeros(2), np.ones(2), maxiter_series=0)
        with pytest.raises(ValueError, match="tol"):
            sum_series(hp, np.zeros(2), np.ones(2), tol=-1.0)
        with pytest.raises(TypeError):
            sum_series(hp, np.zeros(2), np.ones(2), maxiter_series=10.5)

    def test_broadcasting(self):
        s = HyperPoisson().series(np.array([1.0, 2.0, 3.0]), 1.0)
        assert s.mean.shape == (3,)
        np.testing.assert_allclose(s.mean, [1.0, 2.0, 3.0], rtol=1e-10)
