"""DGLM model classes -- main entry point for the library.

Implements double generalized linear models for counts, with a log-linear
mean sub-model and a log-linear dispersion sub-model, for the hyper-Poisson
and Conway-Maxwell-Poisson distributions.

Mean coefficients, dispersion coefficients and one latent canonical
parameter per observation are estimated jointly by constrained maximum
likelihood: the latent parameters are tied to the GLM mean through one
equality constraint per observation.
"""

from __future__ import annotations

import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from numpy.typing import NDArray
from scipy.optimize import minimize

from python_dglm._frame import _evaluate_offsets, build_frame
from python_dglm.family.base import CountFamily
from python_dglm.family.cmp import ConwayMaxwellPoisson
from python_dglm.family.hyper_poisson import HyperPoisson
from python_dglm.likelihood import DGLMLikelihood
from python_dglm.options import OptimizerOptions
from python_dglm.results import DGLMResults
from python_dglm.series import check_truncation_policy


class SeriesTruncationWarning(UserWarning):
    """The normalizing series hit ``maxiter_series`` at the solution."""


def _validate_array(arr: NDArray, name: str) -> None:
    """Check an array for NaN and Inf values."""
    if np.any(np.isnan(arr)):
        n_nan = int(np.sum(np.isnan(arr)))
        raise ValueError(
            f"{name} contains {n_nan} NaN value(s). "
            f"Remove or impute missing values before fitting."
        )
    if np.any(np.isinf(arr)):
        n_inf = int(np.sum(np.isinf(arr)))
        raise ValueError(
            f"{name} contains {n_inf} infinite value(s). "
            f"Check for overflow or division by zero in your data."
        )


def _as_numeric(value, name: str, n: int) -> NDArray:
    arr = np.asarray(value)
    if arr.dtype.kind not in "biuf":
        raise TypeError(f"'{name}' must be a numeric vector, got dtype {arr.dtype}")
    arr = arr.astype(float).ravel()
    if len(arr) != n:
        raise ValueError(
            f"{name} has length {len(arr)} but there are {n} observations"
        )
    _validate_array(arr, name)
    return arr


class DGLM:
    """Double generalized linear model for counts.

    Parameters
    ----------
    endog : array-like
        Non-negative integer counts.
    exog : array-like
        Mean-model design matrix. Should include an intercept column.
    exog_disp : array-like or None
        Dispersion-model design matrix. If None, an intercept only
        (constant dispersion).
    weights : array-like or None
        Non-negative prior weights; ones if None.
    offset : array-like or None
        Offset on the log-mean scale; zeros if None.
    family : CountFamily or None
        Count distribution. Subclasses fix it.

    Examples
    --------
    >>> from python_dglm import HyperPoissonDGLM
    >>> result = HyperPoissonDGLM.from_formula(
    ...     "y ~ x1 + x2", "~ x1", data=df
    ... ).fit()
    >>> print(result.summary())
    """

    family: CountFamily | None = None

    def __init__(
        self,
        endog: NDArray | None = None,
        exog: NDArray | None = None,
        exog_disp: NDArray | None = None,
        weights: NDArray | None = None,
        offset: NDArray | None = None,
        family: CountFamily | None = None,
    ) -> None:
        if family is not None:
            if not isinstance(family, CountFamily):
                raise TypeError(
                    f"family must be a CountFamily instance, got {type(family).__name__}. "
                    f"Use HyperPoisson() or ConwayMaxwellPoisson()."
                )
            self.family = family
        if self.family is None:
            raise ValueError(
                "No count family given. Use HyperPoissonDGLM, CMPDGLM or pass family=."
            )

        self._y: NDArray | None = None
        self._X: NDArray | None = None
        self._Z: NDArray | None = None
        self._weights: NDArray | None = None
        self._offset: NDArray | None = None
        self._feature_names: list[str] = []
        self._disp_feature_names: list[str] = []
        self._mu_spec = None
        self._offset_terms: tuple[str, ...] = ()
        self._frame_mu: pd.DataFrame | None = None
        self._frame_disp: pd.DataFrame | None = None
        self._formula_mu: str | None = None
        self._formula_disp: str | None = None

        if endog is not None and exog is not None:
            self._y = np.asarray(endog, dtype=float).ravel()
            self._X = np.asarray(exog, dtype=float)
            if self._X.ndim == 1:
                self._X = self._X[:, None]
            n = len(self._y)

            _validate_array(self._y, "endog")
            _validate_array(self._X, "exog")
            if n == 0:
                raise ValueError("endog and exog must not be empty")
            if self._X.shape[0] != n:
                raise ValueError(
                    f"endog and exog have incompatible shapes: "
                    f"endog has {n} observations but exog has "
                    f"{self._X.shape[0]} rows"
                )
            if np.any(self._y < 0):
                raise ValueError("endog must contain non-negative counts")
            if np.any(self._y != np.floor(self._y)):
                raise ValueError("endog must contain integer counts")

            if exog_disp is None:
                self._Z = np.ones((n, 1))
            else:
                self._Z = np.asarray(exog_disp, dtype=float)
                if self._Z.ndim == 1:
                    self._Z = self._Z[:, None]
                _validate_array(self._Z, "exog_disp")
                if self._Z.shape[0] != n:
                    raise ValueError(
                        f"exog_disp has {self._Z.shape[0]} rows but there are "
                        f"{n} observations"
                    )

            if weights is None:
                self._weights = np.ones(n)
            else:
                self._weights = _as_numeric(weights, "weights", n)
                if np.any(self._weights < 0):
                    raise ValueError("negative weights not allowed")
            self._offset = (
                np.zeros(n) if offset is None else _as_numeric(offset, "offset", n)
            )

            self._feature_names = [f"x{i}" for i in range(self._X.shape[1])]
            self._disp_feature_names = [f"z{i}" for i in range(self._Z.shape[1])]
        elif (endog is None) != (exog is None):
            raise ValueError(
                "Both endog and exog must be provided together, or neither. "
                "Got endog={} and exog={}".format(
                    "provided" if endog is not None else "None",
                    "provided" if exog is not None else "None",
                )
            )

    @classmethod
    def _from_formula(
        cls,
        formula_mu: str,
        formula_disp: str,
        data: pd.DataFrame,
        weights=None,
        offset=None,
        subset=None,
        na_action: str = "drop",
        **kwargs,
    ) -> DGLM:
        frame = build_frame(
            formula_mu,
            formula_disp,
            data,
            weights=weights,
            offset=offset,
            subset=subset,
            na_action=na_action,
        )
        obj = cls(
            endog=frame.y,
            exog=frame.X,
            exog_disp=frame.Z,
            weights=frame.weights,
            offset=frame.offset,
            **kwargs,
        )
        obj._feature_names = frame.mu_names
        obj._disp_feature_names = frame.disp_names
        obj._mu_spec = frame.mu_spec
        obj._offset_terms = frame.offset_terms
        obj._frame_mu = frame.frame_mu
        obj._frame_disp = frame.frame_disp
        obj._formula_mu = formula_mu
        obj._formula_disp = formula_disp
        return obj

    @classmethod
    def from_formula(
        cls,
        formula_mu: str,
        formula_disp: str,
        data: pd.DataFrame,
        weights=None,
        offset=None,
        subset=None,
        na_action: str = "drop",
        family: CountFamily | None = None,
    ) -> DGLM:
        """Construct a model from R-style formulas.

        Parameters
        ----------
        formula_mu : str
            Mean formula, e.g. ``"y ~ x1 + x2"``.
        formula_disp : str
            Dispersion formula, e.g. ``"~ x1"`` or ``"y ~ 1"``.
        data : DataFrame
            Data containing the variables referenced in the formulas.
        weights, offset : str, array-like or None
            Column name or array with one entry per row of ``data``.
        subset : array-like or None
            Boolean mask or integer positions of rows to use.
        na_action : str
            ``"drop"`` (default) or ``"raise"``.
        family : CountFamily, optional
            Count distribution, when not fixed by the class.

        Returns
        -------
        DGLM
            Model instance ready for ``.fit()``.
        """
        kwargs = {} if family is None else {"family": family}
        return cls._from_formula(
            formula_mu, formula_disp, data, weights=weights, offset=offset,
            subset=subset, na_action=na_action, **kwargs,
        )

    def _design_for(self, exog) -> NDArray:
        """Mean design matrix for new data."""
        if isinstance(exog, pd.DataFrame) and self._mu_spec is not None:
            return np.asarray(self._mu_spec.get_model_matrix(exog), dtype=float)
        X = np.asarray(exog, dtype=float)
        return X[:, None] if X.ndim == 1 else X

    def _offset_for(self, exog, n: int) -> NDArray:
        """Offset terms of the mean formula evaluated on new data."""
        if isinstance(exog, pd.DataFrame) and self._offset_terms:
            return _evaluate_offsets(list(self._offset_terms), exog.reset_index(drop=True))
        return np.zeros(n)

    def _initial_beta(self, options: OptimizerOptions) -> NDArray:
        """Mean coefficients of a Poisson GLM on the same mean design."""
        poisson = sm.GLM(
            self._y,
            self._X,
            family=sm.families.Poisson(),
            offset=self._offset,
            freq_weights=self._weights,
        )
        return np.asarray(poisson.fit(**options.local_fit_kwargs()).params, dtype=float)

    def fit(
        self,
        init_beta: NDArray | None = None,
        init_delta: NDArray | None = None,
        maxiter_series: int = 1000,
        tol: float = 0.0,
        opts=None,
        return_y: bool = True,
        return_x: bool = False,
        return_z: bool = False,
        return_model_mu: bool = True,
        return_model_disp: bool = True,
        verbose: bool = False,
    ) -> DGLMResults:
        """Fit the model by constrained maximum likelihood.

        Parameters
        ----------
        init_beta : array, optional
            Starting mean coefficients. Default: Poisson GLM estimates.
        init_delta : array, optional
            Starting dispersion coefficients. Default: zeros (dispersion 1).
        maxiter_series : int
            Maximum number of terms in each normalizing series.
        tol : float
            Series stopping tolerance; ``0`` sums until terms no longer
            change the partial sum.
        opts : dict or OptimizerOptions, optional
            Optimizer settings merged over the defaults (see
            :class:`~python_dglm.options.OptimizerOptions`).
        return_y, return_x, return_z : bool
            Keep the response, mean design and dispersion design on the
            result.
        return_model_mu, return_model_disp : bool
            Keep the mean and dispersion model frames on the result (only
            available for models built with ``from_formula``).
        verbose : bool
            If True, print optimization progress.

        Returns
        -------
        DGLMResults
            Fitted model results. Optimizer non-convergence is reported in
            ``status``/``converged`` and by a warning, not raised.
        """
        if self._X is None or self._y is None:
            raise ValueError(
                "No data provided. Use from_formula('y ~ x', '~ 1', data=df) "
                "or pass endog= and exog= to the constructor."
            )
        check_truncation_policy(maxiter_series, tol)
        options = OptimizerOptions().merged(opts)

        y, X, Z = self._y, self._X, self._Z
        w, offset = self._weights, self._offset
        n, q1, q2 = len(y), X.shape[1], Z.shape[1]

        if np.sum(w * y) <= 0:
            raise ValueError(
                "The weighted response total is zero; the model is not identifiable."
            )
        if q1 + q2 > n:
            warnings.warn(
                f"More coefficients ({q1 + q2}) than observations ({n}). "
                f"Model may be unidentifiable.",
                stacklevel=2,
            )

        if init_beta is None:
            beta0 = self._initial_beta(options)
        else:
            beta0 = np.asarray(init_beta, dtype=float).ravel()
            if len(beta0) != q1:
                raise ValueError(
                    f"init_beta has length {len(beta0)}, expected {q1}"
                )
        if init_delta is None:
            delta0 = np.zeros(q2)
        else:
            delta0 = np.asarray(init_delta, dtype=float).ravel()
            if len(delta0) != q2:
                raise ValueError(
                    f"init_delta has length {len(delta0)}, expected {q2}"
                )
        lambda0 = np.full(n, np.log(np.sum(w * y) / np.sum(w)))

        lik = DGLMLikelihood(
            self.family, y, X, Z, w, offset,
            maxiter_series=maxiter_series, tol=tol,
        )
        theta0 = lik.pack(beta0, lambda0, delta0)

        n_eval = [0]

        def neg_loglik(theta: NDArray) -> float:
            value = lik.objective(theta)
            n_eval[0] += 1
            if verbose and n_eval[0] % 10 == 0:
                print(f"  Evaluation {n_eval[0]}: -loglik = {value:.4f}")
            return value

        method, scipy_opts = options.to_scipy()
        result = minimize(
            neg_loglik,
            theta0,
            jac=lik.gradient,
            method=method,
            constraints=[{"type": "eq", "fun": lik.constraints, "jac": lik.jacobian}],
            options=scipy_opts,
        )
        converged = bool(result.success)
        n_iter = int(getattr(result, "nit", 0))
        if not converged:
            warnings.warn(
                f"Optimization did not converge (status {result.status}) after "
                f"{n_iter} iterations: {result.message}. Results may be unreliable.",
                stacklevel=2,
            )

        theta = np.asarray(result.x, dtype=float)
        beta, log_lambda, delta = lik.unpack(theta)
        series = lik.series_at(theta)
        if np.any(series.truncated):
            warnings.warn(
                f"Normalizing series reached maxiter_series={maxiter_series} for "
                f"{int(np.sum(series.truncated))} observation(s); the likelihood "
                f"may be inaccurate. Increase maxiter_series.",
                SeriesTruncationWarning,
                stacklevel=2,
            )

        return DGLMResults(
            model=self,
            beta=beta,
            delta=delta,
            lambdas=np.exp(log_lambda),
            dispersion=lik.dispersion(theta),
            nll=lik.objective(theta),
            y=y,
            linear_predictors=offset + X @ beta,
            weights=w,
            offset=offset,
            feature_names=self._feature_names,
            disp_feature_names=self._disp_feature_names,
            series=series,
            status=result.status,
            message=result.message,
            converged=converged,
            n_iter=n_iter,
            max_constraint_violation=float(np.max(np.abs(lik.constraints(theta)))),
            maxiter_series=maxiter_series,
            tol=tol,
            options=options.as_dict(),
            matrix_mu=X if return_x else None,
            matrix_disp=Z if return_z else None,
            keep_y=return_y,
            model_mu=self._frame_mu if return_model_mu else None,
            model_disp=self._frame_disp if return_model_disp else None,
        )


class HyperPoissonDGLM(DGLM):
    """Hyper-Poisson double GLM.

    ``log(mu) = offset + X @ beta`` and ``log(gamma) = Z @ delta``.
    """

    family = HyperPoisson()

    @classmethod
    def from_formula(
        cls,
        formula_mu: str,
        formula_gamma: str,
        data: pd.DataFrame,
        weights=None,
        offset=None,
        subset=None,
        na_action: str = "drop",
    ) -> HyperPoissonDGLM:
        """Construct a hyper-Poisson DGLM from a mean and a gamma formula."""
        return cls._from_formula(
            formula_mu, formula_gamma, data, weights=weights, offset=offset,
            subset=subset, na_action=na_action,
        )


class CMPDGLM(DGLM):
    """Conway-Maxwell-Poisson double GLM.

    ``log(mu) = offset + X @ beta`` and ``log(nu) = Z @ delta``.
    """

    family = ConwayMaxwellPoisson()

    @classmethod
    def from_formula(
        cls,
        formula_mu: str,
        formula_nu: str,
        data: pd.DataFrame,
        weights=None,
        offset=None,
        subset=None,
        na_action: str = "drop",
    ) -> CMPDGLM:
        """Construct a CMP DGLM from a mean and a nu formula."""
        return cls._from_formula(
            formula_mu, formula_nu, data, weights=weights, offset=offset,
            subset=subset, na_action=na_action,
        )
