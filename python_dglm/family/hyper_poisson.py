"""HyperPoisson: the hyper-Poisson count family."""

import numpy as np
from numpy.typing import NDArray
from scipy.special import digamma, gammaln

from python_dglm.family.base import CountFamily


class HyperPoisson(CountFamily):
    """Hyper-Poisson distribution (Saez-Castillo & Conde-Sanchez, 2013).

    P(Y = y) = lambda^y / ((gamma)_y * 1F1(1; gamma; lambda))

    where ``(gamma)_y = Gamma(gamma + y) / Gamma(gamma)`` is the rising
    factorial. ``gamma = 1`` gives the Poisson distribution, ``gamma > 1``
    over-dispersion and ``gamma < 1`` under-dispersion.

    The shape statistic is ``digamma(gamma + y)``, so ``means_psiy`` and
    ``covars_psiy`` are ``E[digamma(gamma + Y)]`` and
    ``Cov[Y, digamma(gamma + Y)]``.
    """

    name = "hP"
    dispersion_name = "gamma"

    def log_ratio(self, log_lambda: NDArray, dispersion: NDArray, j: int) -> NDArray:
        return log_lambda - np.log(dispersion + j)

    def initial_statistic(self, dispersion: NDArray) -> NDArray:
        return digamma(dispersion)

    def statistic_step(self, dispersion: NDArray, j: int) -> NDArray:
        # digamma(x + 1) = digamma(x) + 1 / x
        return 1.0 / (dispersion + j)

    def statistic(self, y: NDArray, dispersion: NDArray) -> NDArray:
        return digamma(dispersion + y)

    def log_kernel(self, y: NDArray, dispersion: NDArray) -> NDArray:
        return gammaln(dispersion) - gammaln(dispersion + y)

    def means_psiy(
        self, lambdas, gammas, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """``E[digamma(gamma + Y)]``."""
        return self.series(lambdas, gammas, maxiter_series, tol).mean_stat

    def covars_psiy(
        self, lambdas, gammas, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """``Cov[Y, digamma(gamma + Y)]``."""
        return self.series(lambdas, gammas, maxiter_series, tol).covar_stat
