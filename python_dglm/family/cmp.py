"""ConwayMaxwellPoisson: the CMP count family."""

import numpy as np
from numpy.typing import NDArray
from scipy.special import gammaln

from python_dglm.family.base import CountFamily


class ConwayMaxwellPoisson(CountFamily):
    """Conway-Maxwell-Poisson distribution.

    P(Y = y) = lambda^y / ((y!)^nu * Z(lambda, nu)),
    Z(lambda, nu) = sum_j lambda^j / (j!)^nu

    ``nu = 1`` gives the Poisson distribution, ``nu < 1`` over-dispersion
    and ``nu > 1`` under-dispersion. The shape statistic is ``log(y!)``.
    """

    name = "CMP"
    dispersion_name = "nu"

    def log_ratio(self, log_lambda: NDArray, dispersion: NDArray, j: int) -> NDArray:
        return log_lambda - dispersion * np.log(j + 1.0)

    def initial_statistic(self, dispersion: NDArray) -> NDArray:
        return np.zeros_like(np.asarray(dispersion, dtype=float))

    def statistic_step(self, dispersion: NDArray, j: int) -> NDArray:
        return np.full(np.shape(dispersion), np.log(j + 1.0))

    def statistic(self, y: NDArray, dispersion: NDArray) -> NDArray:
        y = np.asarray(y, dtype=float)
        return gammaln(y + 1.0) + np.zeros_like(np.asarray(dispersion, dtype=float))

    def log_kernel(self, y: NDArray, dispersion: NDArray) -> NDArray:
        return -dispersion * gammaln(np.asarray(y, dtype=float) + 1.0)

    def means_logfactorial(
        self, lambdas, nus, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """``E[log(Y!)]``."""
        return self.series(lambdas, nus, maxiter_series, tol).mean_stat

    def covars_logfactorial(
        self, lambdas, nus, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """``Cov[Y, log(Y!)]``."""
        return self.series(lambdas, nus, maxiter_series, tol).covar_stat
