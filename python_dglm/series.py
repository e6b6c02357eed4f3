"""Truncated series evaluation for count distributions without a closed-form
normalizing constant.

Both the hyper-Poisson and the Conway-Maxwell-Poisson normalizing constants
are power series ``Z = sum_j t_j`` whose consecutive terms have a cheap
ratio ``t_{j+1} / t_j``. The sweep below walks ``j = 0, 1, ...`` for every
observation at once, building each term from the previous one in log space
and holding partial sums relative to the largest term seen so far, so large
``lambda`` or small dispersion values cannot overflow.

Alongside ``Z`` the same sweep accumulates the moments needed by the
likelihood, its gradient and the mean constraint:

- ``E[Y]`` and ``Var[Y]``;
- ``E[s(Y)]`` and ``Cov[Y, s(Y)]`` for a family-specific shape statistic
  ``s`` (``digamma(gamma + y)`` for hyper-Poisson, ``log(y!)`` for CMP).

Moments use weighted running mean/co-moment updates in ascending ``j``,
which avoids the cancellation of ``E[Y^2] - E[Y]^2`` for large means.

Each observation stops on its own criterion: the cap ``maxiter_series``
(maximum number of terms summed), the absolute term falling below ``tol``
when ``tol > 0``, or the term no longer changing the partial sum at working
precision when ``tol == 0``. Hitting the cap is not an error; it is reported
through ``SeriesResult.truncated``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from python_dglm.family.base import CountFamily


@dataclass(frozen=True)
class SeriesResult:
    """Per-observation output of one series sweep.

    Attributes
    ----------
    log_z : array
        Log of the (truncated) normalizing constant.
    mean : array
        ``E[Y]``.
    variance : array
        ``Var[Y]``.
    mean_stat : array
        ``E[s(Y)]`` for the family's shape statistic.
    covar_stat : array
        ``Cov[Y, s(Y)]``.
    n_terms : int array
        Number of terms summed.
    last_term : array
        Last summed term relative to the partial sum.
    truncated : bool array
        True where the cap was reached before the stopping rule fired.
    """

    log_z: NDArray
    mean: NDArray
    variance: NDArray
    mean_stat: NDArray
    covar_stat: NDArray
    n_terms: NDArray
    last_term: NDArray
    truncated: NDArray


def check_truncation_policy(maxiter_series: int, tol: float) -> None:
    """Validate a ``(maxiter_series, tol)`` pair."""
    if isinstance(maxiter_series, bool) or not isinstance(
        maxiter_series, (int, np.integer)
    ):
        raise TypeError(
            f"maxiter_series must be an integer, got {type(maxiter_series).__name__}"
        )
    if maxiter_series < 1:
        raise ValueError(f"maxiter_series must be >= 1, got {maxiter_series}")
    if not np.isfinite(tol) or tol < 0:
        raise ValueError(f"tol must be a non-negative number, got {tol}")


def sum_series(
    family: CountFamily,
    log_lambda: NDArray,
    dispersion: NDArray,
    maxiter_series: int = 1000,
    tol: float = 0.0,
) -> SeriesResult:
    """Evaluate the normalizing series and its moments elementwise.

    Parameters
    ----------
    family : CountFamily
        Supplies the term ratio and the shape statistic recursion.
    log_lambda : array-like
        Log of the canonical parameter, one per observation.
    dispersion : array-like
        Dispersion parameter (``gamma`` or ``nu``), broadcast against
        ``log_lambda``.
    maxiter_series : int
        Maximum number of terms summed per observation.
    tol : float
        Stop once a term drops below ``tol``; ``0`` iterates until terms no
        longer change the partial sum.

    Returns
    -------
    SeriesResult
    """
    check_truncation_policy(maxiter_series, tol)

    log_lambda, dispersion = np.broadcast_arrays(
        np.asarray(log_lambda, dtype=float), np.asarray(dispersion, dtype=float)
    )
    shape = log_lambda.shape
    log_lam = log_lambda.ravel()
    disp = dispersion.ravel()
    n = log_lam.size

    log_term = np.zeros(n)    # log t_j, with t_0 = 1
    scale = np.zeros(n)       # log of the largest term so far
    total = np.zeros(n)       # sum_j t_j / exp(scale)
    mean_y = np.zeros(n)
    mean_s = np.zeros(n)
    m2_y = np.zeros(n)        # scaled co-moments
    c_ys = np.zeros(n)
    stat = np.array(family.initial_statistic(disp), dtype=float).reshape(n)
    n_terms = np.zeros(n, dtype=int)
    last_term = np.zeros(n)
    active = np.ones(n, dtype=bool)
    log_tol = np.log(tol) if tol > 0 else None

    for j in range(maxiter_series):
        idx = np.flatnonzero(active)
        if idx.size == 0:
            break

        lt = log_term[idx]
        sc = scale[idx]
        grow = lt > sc
        if np.any(grow):
            factor = np.where(grow, np.exp(sc - lt), 1.0)
            total[idx] *= factor
            m2_y[idx] *= factor
            c_ys[idx] *= factor
            sc = np.where(grow, lt, sc)
            scale[idx] = sc

        w = np.exp(lt - sc)
        old_total = total[idx]
        new_total = old_total + w
        frac = w / new_total

        s = stat[idx]
        dy = j - mean_y[idx]
        ds = s - mean_s[idx]
        new_mean_y = mean_y[idx] + frac * dy
        new_mean_s = mean_s[idx] + frac * ds
        m2_y[idx] += w * dy * (j - new_mean_y)
        c_ys[idx] += w * dy * (s - new_mean_s)
        mean_y[idx] = new_mean_y
        mean_s[idx] = new_mean_s
        total[idx] = new_total
        n_terms[idx] = j + 1
        last_term[idx] = frac

        if log_tol is not None:
            done = lt < log_tol
        else:
            done = new_total == old_total

        log_term[idx] = lt + family.log_ratio(log_lam[idx], disp[idx], j)
        stat[idx] = s + family.statistic_step(disp[idx], j)
        active[idx[done]] = False

    return SeriesResult(
        log_z=(scale + np.log(total)).reshape(shape),
        mean=mean_y.reshape(shape),
        variance=(m2_y / total).reshape(shape),
        mean_stat=mean_s.reshape(shape),
        covar_stat=(c_ys / total).reshape(shape),
        n_terms=n_terms.reshape(shape),
        last_term=last_term.reshape(shape),
        truncated=active.reshape(shape),
    )
