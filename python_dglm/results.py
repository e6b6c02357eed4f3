"""DGLM estimation results."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from python_dglm.series import SeriesResult


@runtime_checkable
class FittedCountModel(Protocol):
    """Capabilities shared by every fitted count model.

    Model comparison and presentation code program against this set only:
    coefficients, fitted values, log-likelihood and degrees of freedom.
    """

    @property
    def params(self) -> pd.Series: ...

    @property
    def params_disp(self) -> pd.Series: ...

    @property
    def fittedvalues(self) -> NDArray: ...

    @property
    def loglik(self) -> float: ...

    @property
    def df_resid(self) -> float: ...

    @property
    def k_params(self) -> int: ...


def _readonly(arr) -> NDArray | None:
    if arr is None:
        return None
    arr = np.array(arr, dtype=float)
    arr.setflags(write=False)
    return arr


class DGLMResults:
    """Results from a fitted double GLM.

    Instances are read-only once built: every array is stored as a
    non-writeable copy and exposed through properties.

    Parameters
    ----------
    model : DGLM
        The model instance that produced the fit.
    beta : array
        Mean-model coefficients.
    delta : array
        Dispersion-model coefficients.
    lambdas : array
        Per-observation canonical parameters at the solution.
    dispersion : array
        Per-observation dispersion (``gamma`` or ``nu``).
    nll : float
        Negative log-likelihood at the solution.
    y : array
        Response used in the fit.
    linear_predictors : array
        ``offset + X @ beta``.
    weights, offset : array
        Prior weights and offset used in the fit.
    feature_names, disp_feature_names : list of str
        Column names of the mean and dispersion design matrices.
    series : SeriesResult
        Series sweep at the solution.
    status : int
        Optimizer termination status, verbatim.
    message : str
        Optimizer termination message.
    converged : bool
        Whether the optimizer reported success.
    n_iter : int
        Optimizer iterations.
    max_constraint_violation : float
        ``max_i |mu_i - E[Y_i]|`` at the solution.
    maxiter_series, tol
        Echo of the truncation policy.
    options : dict
        Echo of the optimizer settings.
    matrix_mu, matrix_disp : array or None
        Design matrices, retained on request.
    keep_y : bool
        Whether :attr:`y` exposes the response.
    model_mu, model_disp : DataFrame or None
        Mean and dispersion model frames, retained on request.
    """

    def __init__(
        self,
        model,
        beta: NDArray,
        delta: NDArray,
        lambdas: NDArray,
        dispersion: NDArray,
        nll: float,
        y: NDArray,
        linear_predictors: NDArray,
        weights: NDArray,
        offset: NDArray,
        feature_names: list[str],
        disp_feature_names: list[str],
        series: SeriesResult,
        status: int,
        message: str,
        converged: bool,
        n_iter: int,
        max_constraint_violation: float,
        maxiter_series: int,
        tol: float,
        options: dict[str, Any],
        matrix_mu: NDArray | None = None,
        matrix_disp: NDArray | None = None,
        keep_y: bool = True,
        model_mu: pd.DataFrame | None = None,
        model_disp: pd.DataFrame | None = None,
    ):
        self.model = model
        self.family = model.family.name
        self.dispersion_name = model.family.dispersion_name
        self._beta = _readonly(beta)
        self._delta = _readonly(delta)
        self._lambdas = _readonly(lambdas)
        self._dispersion = _readonly(dispersion)
        self._y = _readonly(y)
        self._eta = _readonly(linear_predictors)
        self._weights = _readonly(weights)
        self._offset = _readonly(offset)
        self._matrix_mu = _readonly(matrix_mu)
        self._matrix_disp = _readonly(matrix_disp)
        self._series = series
        self._keep_y = keep_y
        self._model_mu = None if model_mu is None else model_mu.copy()
        self._model_disp = None if model_disp is None else model_disp.copy()
        self.feature_names = list(feature_names)
        self.disp_feature_names = list(disp_feature_names)
        self.nll = float(nll)
        self.status = int(status)
        self.message = str(message)
        self.converged = bool(converged)
        self.n_iter = int(n_iter)
        self.max_constraint_violation = float(max_constraint_violation)
        self.maxiter_series = maxiter_series
        self.tol = tol
        self.options = dict(options)
        self.nobs = len(self._y)

    @property
    def params(self) -> pd.Series:
        """Mean-model coefficients as a named Series."""
        return pd.Series(self._beta, index=self.feature_names, name="params")

    @property
    def params_disp(self) -> pd.Series:
        """Dispersion-model coefficients as a named Series."""
        return pd.Series(
            self._delta, index=self.disp_feature_names, name="params_disp"
        )

    @property
    def lambdas(self) -> NDArray:
        """Per-observation canonical parameters."""
        return self._lambdas

    @property
    def dispersion(self) -> NDArray:
        """Per-observation dispersion (``gamma`` for hP, ``nu`` for CMP)."""
        return self._dispersion

    @property
    def linear_predictors(self) -> NDArray:
        """Linear predictor ``offset + X @ beta``."""
        return self._eta

    @property
    def fittedvalues(self) -> NDArray:
        """Fitted means ``exp(offset + X @ beta)``.

        These come from the constrained GLM mean, which matches the
        distribution mean ``E[Y]`` only up to the optimizer's constraint
        tolerance.
        """
        return np.exp(self._eta)

    @property
    def resid(self) -> NDArray:
        """Response residuals ``y - fitted``."""
        return self._y - self.fittedvalues

    @property
    def resid_pearson(self) -> NDArray:
        """Pearson residuals ``(y - fitted) / sqrt(Var[Y])``."""
        return self.resid / np.sqrt(self._series.variance)

    @property
    def weights(self) -> NDArray:
        return self._weights

    @property
    def offset(self) -> NDArray:
        return self._offset

    @property
    def y(self) -> NDArray | None:
        """Response vector, if retained at fit time."""
        return self._y if self._keep_y else None

    @property
    def matrix_mu(self) -> NDArray | None:
        """Mean design matrix, if retained at fit time."""
        return self._matrix_mu

    @property
    def matrix_disp(self) -> NDArray | None:
        """Dispersion design matrix, if retained at fit time."""
        return self._matrix_disp

    @property
    def model_mu(self) -> pd.DataFrame | None:
        """Mean model frame: response, design columns, weights and offset."""
        return None if self._model_mu is None else self._model_mu.copy()

    @property
    def model_disp(self) -> pd.DataFrame | None:
        """Dispersion model frame."""
        return None if self._model_disp is None else self._model_disp.copy()

    @property
    def loglik(self) -> float:
        """Maximized log-likelihood."""
        return -self.nll

    @property
    def k_params(self) -> int:
        """Number of regression coefficients (mean plus dispersion)."""
        return len(self._beta) + len(self._delta)

    @property
    def aic(self) -> float:
        """Akaike Information Criterion."""
        return 2 * self.nll + 2 * self.k_params

    @property
    def bic(self) -> float:
        """Bayesian Information Criterion, with ``sum(weights)`` as sample size."""
        return 2 * self.nll + self.k_params * np.log(np.sum(self._weights))

    @property
    def df_resid(self) -> float:
        """Residual degrees of freedom."""
        return float(np.sum(self._weights) - self.k_params)

    @property
    def df_null(self) -> float:
        """Residual degrees of freedom of the null model."""
        return float(np.sum(self._weights) - 2)

    @property
    def series_info(self) -> pd.DataFrame:
        """Series convergence diagnostics per observation at the solution."""
        return pd.DataFrame({
            "n_terms": self._series.n_terms,
            "last_term": self._series.last_term,
            "truncated": self._series.truncated,
        })

    @property
    def series_truncated(self) -> bool:
        """True if any observation's series hit ``maxiter_series``."""
        return bool(np.any(self._series.truncated))

    def predict(self, exog=None, offset=None, linear: bool = False) -> NDArray:
        """Predicted means (or linear predictors) for new data.

        Parameters
        ----------
        exog : array or DataFrame, optional
            Mean design matrix, or a DataFrame when the model was built with
            ``from_formula``. Defaults to the fitted data.
        offset : array, optional
            Offset for the new rows. Offset terms of the mean formula are
            evaluated on a DataFrame ``exog`` and added to it.
        linear : bool
            Return the linear predictor instead of the mean.
        """
        if exog is None:
            eta = self._eta
        else:
            X = self.model._design_for(exog)
            if X.shape[1] != len(self._beta):
                raise ValueError(
                    f"exog has {X.shape[1]} columns, the model has {len(self._beta)} "
                    f"mean coefficients"
                )
            off = self.model._offset_for(exog, X.shape[0])
            if offset is not None:
                off = off + np.asarray(offset, dtype=float)
            eta = off + X @ self._beta
        return np.array(eta) if linear else np.exp(eta)

    def summary(self, title: str | None = None) -> str:
        """Generate a text summary of the estimation results.

        Parameters
        ----------
        title : str, optional
            Custom title for the summary table.

        Returns
        -------
        str
            Formatted summary string.
        """
        if title is None:
            names = {"hP": "Hyper-Poisson", "CMP": "Conway-Maxwell-Poisson"}
            title = f"{names.get(self.family, self.family)} Double GLM Results"

        lines = []
        lines.append("=" * 78)
        lines.append(f"{title:^78}")
        lines.append("=" * 78)
        lines.append(f"Family:          {self.family:<20} Log-Likelihood:   {self.loglik:>14.4f}")
        lines.append(f"No. Observations:{self.nobs:<20} AIC:              {self.aic:>14.4f}")
        lines.append(f"Df Residuals:    {self.df_resid:<20g} BIC:              {self.bic:>14.4f}")
        lines.append(f"Df Null:         {self.df_null:<20g} Status:           {self.status:>14}")
        lines.append(f"Converged:       {'Yes' if self.converged else 'No':<20} Iterations:       {self.n_iter:>14}")
        lines.append("-" * 78)

        lines.append(f"Mean model (log link){'':>16} {'coef':>10}")
        for name, coef in zip(self.feature_names, self._beta):
            lines.append(f"{name:>36} {coef:>10.4f}")
        lines.append(f"Dispersion model (log {self.dispersion_name}){'':>{14 - len(self.dispersion_name)}} {'coef':>10}")
        for name, coef in zip(self.disp_feature_names, self._delta):
            lines.append(f"{name:>36} {coef:>10.4f}")

        lines.append("=" * 78)
        if self.series_truncated:
            n_trunc = int(np.sum(self._series.truncated))
            lines.append(
                f"Series truncated at maxiter_series={self.maxiter_series} "
                f"for {n_trunc} observation(s)."
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return self.summary()
