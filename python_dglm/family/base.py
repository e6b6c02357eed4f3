"""Base class for count families."""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np
from numpy.typing import NDArray

from python_dglm.series import SeriesResult, sum_series


class CountFamily(ABC):
    """Abstract base class for two-parameter count distributions.

    A family describes a distribution with probability mass

        P(Y = y) = lambda^y * exp(k(y, d)) / Z(lambda, d)

    where ``d`` is the dispersion parameter and ``Z`` is an infinite power
    series in ``lambda``. The series engine needs three things from a
    family: the log ratio of consecutive series terms, and a shape
    statistic ``s(j, d) = -dk/dd`` (plus a constant) together with its
    increment ``s(j + 1, d) - s(j, d)``. With ``s`` defined this way

        d log Z / d d = -E[s(Y)] + const

    so gradients with respect to the dispersion only need ``E[s(Y)]`` and
    ``Cov[Y, s(Y)]``, which the sweep produces.

    Subclasses must implement:
        - log_ratio(log_lambda, dispersion, j)
        - initial_statistic(dispersion)
        - statistic_step(dispersion, j)
        - statistic(y, dispersion)
        - log_kernel(y, dispersion)
    """

    #: Short tag identifying the family in results.
    name: str = ""
    #: Name of the dispersion parameter (``gamma`` or ``nu``).
    dispersion_name: str = "dispersion"

    @abstractmethod
    def log_ratio(self, log_lambda: NDArray, dispersion: NDArray, j: int) -> NDArray:
        """Return ``log(t_{j+1} / t_j)`` for the normalizing series."""

    @abstractmethod
    def initial_statistic(self, dispersion: NDArray) -> NDArray:
        """Return the shape statistic at ``j = 0``."""

    @abstractmethod
    def statistic_step(self, dispersion: NDArray, j: int) -> NDArray:
        """Return ``s(j + 1) - s(j)``."""

    @abstractmethod
    def statistic(self, y: NDArray, dispersion: NDArray) -> NDArray:
        """Return the shape statistic ``s(y)`` at observed counts."""

    @abstractmethod
    def log_kernel(self, y: NDArray, dispersion: NDArray) -> NDArray:
        """Return the log-mass terms that involve neither lambda nor Z."""

    def series(
        self,
        lambdas: NDArray,
        dispersion: NDArray,
        maxiter_series: int = 1000,
        tol: float = 0.0,
    ) -> SeriesResult:
        """Run one series sweep at ``lambdas`` (natural scale)."""
        with np.errstate(divide="ignore"):
            log_lambda = np.log(np.asarray(lambdas, dtype=float))
        return sum_series(self, log_lambda, dispersion, maxiter_series, tol)

    def series_log(
        self,
        log_lambda: NDArray,
        dispersion: NDArray,
        maxiter_series: int = 1000,
        tol: float = 0.0,
    ) -> SeriesResult:
        """Run one series sweep at ``log_lambda``."""
        return sum_series(self, log_lambda, dispersion, maxiter_series, tol)

    def log_normalizing_constant(
        self, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Log of the normalizing constant."""
        return self.series(lambdas, dispersion, maxiter_series, tol).log_z

    def normalizing_constant(
        self, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Normalizing constant ``Z(lambda, dispersion)``."""
        return np.exp(self.log_normalizing_constant(lambdas, dispersion, maxiter_series, tol))

    def means(
        self, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Expected counts ``E[Y]``."""
        return self.series(lambdas, dispersion, maxiter_series, tol).mean

    def variances(
        self, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Count variances ``Var[Y]``."""
        return self.series(lambdas, dispersion, maxiter_series, tol).variance

    def logpmf(
        self, y, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Log probability mass at ``y``."""
        y = np.asarray(y, dtype=float)
        lambdas = np.asarray(lambdas, dtype=float)
        dispersion = np.asarray(dispersion, dtype=float)
        log_z = self.log_normalizing_constant(lambdas, dispersion, maxiter_series, tol)
        # 0 * log(0) contributes nothing at y = 0
        with np.errstate(divide="ignore", invalid="ignore"):
            y_log_lam = np.where(y == 0, 0.0, y * np.log(lambdas))
        return y_log_lam + self.log_kernel(y, dispersion) - log_z

    def pmf(
        self, y, lambdas, dispersion, maxiter_series: int = 1000, tol: float = 0.0
    ) -> NDArray:
        """Probability mass at ``y``."""
        return np.exp(self.logpmf(y, lambdas, dispersion, maxiter_series, tol))

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
