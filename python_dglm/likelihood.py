"""Objective, gradient, mean constraints and constraint Jacobian for a DGLM.

The model is fitted in a single flattened parameter vector

    theta = (beta, log_lambda, delta)

of length ``q1 + n + q2``: mean-model coefficients ``beta``, one latent
canonical parameter ``log_lambda_i`` per observation, and dispersion-model
coefficients ``delta`` with ``dispersion_i = exp(Z_i @ delta)``.

``beta`` does not appear in the likelihood. It enters only through the
equality constraints

    exp(offset_i + X_i @ beta) - E[Y_i | lambda_i, dispersion_i] = 0,

which tie each latent ``lambda_i`` to the GLM mean.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from python_dglm.family.base import CountFamily
from python_dglm.series import SeriesResult, check_truncation_policy


class DGLMLikelihood:
    """Callables over ``theta`` for the constrained optimizer.

    Parameters
    ----------
    family : CountFamily
        Count distribution (hyper-Poisson or CMP).
    y : (n,) array
        Observed counts.
    X : (n, q1) array
        Mean-model design matrix.
    Z : (n, q2) array
        Dispersion-model design matrix.
    weights : (n,) array
        Prior weights.
    offset : (n,) array
        Offset on the log-mean scale.
    maxiter_series, tol
        Truncation policy for the normalizing series.
    """

    def __init__(
        self,
        family: CountFamily,
        y: NDArray,
        X: NDArray,
        Z: NDArray,
        weights: NDArray,
        offset: NDArray,
        maxiter_series: int = 1000,
        tol: float = 0.0,
    ) -> None:
        check_truncation_policy(maxiter_series, tol)
        self.family = family
        self.y = np.asarray(y, dtype=float)
        self.X = np.asarray(X, dtype=float)
        self.Z = np.asarray(Z, dtype=float)
        self.weights = np.asarray(weights, dtype=float)
        self.offset = np.asarray(offset, dtype=float)
        self.maxiter_series = maxiter_series
        self.tol = tol

        self.n = len(self.y)
        self.q1 = self.X.shape[1]
        self.q2 = self.Z.shape[1]
        self.n_series = 0

        self._cache_key: bytes | None = None
        self._cache: tuple | None = None

    @property
    def n_params(self) -> int:
        """Length of the flattened parameter vector."""
        return self.q1 + self.n + self.q2

    def pack(self, beta: NDArray, log_lambda: NDArray, delta: NDArray) -> NDArray:
        """Flatten ``(beta, log_lambda, delta)`` into ``theta``."""
        return np.concatenate([
            np.asarray(beta, dtype=float),
            np.asarray(log_lambda, dtype=float),
            np.asarray(delta, dtype=float),
        ])

    def unpack(self, theta: NDArray) -> tuple[NDArray, NDArray, NDArray]:
        """Split ``theta`` into ``(beta, log_lambda, delta)``."""
        q1, n = self.q1, self.n
        return theta[:q1], theta[q1 : q1 + n], theta[q1 + n :]

    def _evaluate(self, theta: NDArray) -> tuple[NDArray, NDArray, NDArray, NDArray, SeriesResult]:
        """Series sweep at ``theta``, cached for repeated calls at one point."""
        theta = np.asarray(theta, dtype=float)
        key = theta.tobytes()
        if key == self._cache_key:
            return self._cache

        beta, log_lambda, delta = self.unpack(theta.copy())
        dispersion = np.exp(self.Z @ delta)
        series = self.family.series_log(
            log_lambda, dispersion, self.maxiter_series, self.tol
        )
        self.n_series += 1

        self._cache_key = key
        self._cache = (beta, log_lambda, delta, dispersion, series)
        return self._cache

    def series_at(self, theta: NDArray) -> SeriesResult:
        """Series moments and truncation telemetry at ``theta``."""
        return self._evaluate(theta)[4]

    def dispersion(self, theta: NDArray) -> NDArray:
        """Per-observation dispersion ``exp(Z @ delta)``."""
        return self._evaluate(theta)[3]

    def mean(self, theta: NDArray) -> NDArray:
        """Constrained GLM mean ``exp(offset + X @ beta)``."""
        beta = self.unpack(np.asarray(theta, dtype=float))[0]
        return np.exp(self.offset + self.X @ beta)

    def objective(self, theta: NDArray) -> float:
        """Negative weighted log-likelihood."""
        _, log_lambda, _, dispersion, series = self._evaluate(theta)
        loglik = (
            self.y * log_lambda
            + self.family.log_kernel(self.y, dispersion)
            - series.log_z
        )
        return float(-np.sum(self.weights * loglik))

    def gradient(self, theta: NDArray) -> NDArray:
        """Gradient of :meth:`objective`.

        Zero for ``beta``. For ``log_lambda`` it uses
        ``d log Z / d log lambda = E[Y]``; for ``delta`` the chain rule
        through ``dispersion = exp(Z @ delta)`` with
        ``d loglik / d dispersion = E[s(Y)] - s(y)``.
        """
        _, _, _, dispersion, series = self._evaluate(theta)
        grad_beta = np.zeros(self.q1)
        grad_lambda = -self.weights * (self.y - series.mean)
        score_disp = series.mean_stat - self.family.statistic(self.y, dispersion)
        grad_delta = -(self.Z.T @ (self.weights * score_disp * dispersion))
        return np.concatenate([grad_beta, grad_lambda, grad_delta])

    def constraints(self, theta: NDArray) -> NDArray:
        """Mean constraints ``exp(offset + X @ beta) - E[Y]``, one per observation."""
        series = self._evaluate(theta)[4]
        return self.mean(theta) - series.mean

    def jacobian(self, theta: NDArray) -> NDArray:
        """Jacobian of :meth:`constraints`, shape ``(n, q1 + n + q2)``.

        Blocks: ``diag(mu) @ X`` for ``beta``; ``-diag(Var[Y])`` for
        ``log_lambda`` (since ``d E[Y] / d log lambda = Var[Y]``); and
        ``diag(dispersion * Cov[Y, s(Y)]) @ Z`` for ``delta``.
        """
        _, _, _, dispersion, series = self._evaluate(theta)
        mu = self.mean(theta)
        jac_beta = mu[:, None] * self.X
        jac_lambda = np.diag(-series.variance)
        jac_delta = (dispersion * series.covar_stat)[:, None] * self.Z
        return np.hstack([jac_beta, jac_lambda, jac_delta])
