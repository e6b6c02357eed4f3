"""Likelihood-ratio test between two fitted count models."""

from __future__ import annotations

from typing import NamedTuple

from scipy import stats

from python_dglm.results import FittedCountModel


class LRTestResult(NamedTuple):
    """Outcome of :func:`lrtest`."""

    statistic: float
    df: int
    pvalue: float

    def summary(self) -> str:
        """Render the test as a short table."""
        lines = []
        lines.append("Likelihood ratio test")
        lines.append("-" * 44)
        lines.append(f"{'Chisq':>12} {'Df':>8} {'Pr(>Chisq)':>14}")
        lines.append(f"{self.statistic:>12.4f} {self.df:>8d} {self.pvalue:>14.4g}")
        return "\n".join(lines)


def lrtest(object1: FittedCountModel, object2: FittedCountModel) -> LRTestResult:
    """Likelihood-ratio test of ``object2`` nested in ``object1``.

    ``statistic = 2 * (loglik1 - loglik2)`` is referred to a chi-squared
    distribution with ``k_params1 - k_params2`` degrees of freedom.

    Precondition: ``object2`` must be a restriction of ``object1`` fitted
    on the same data. This is not checked. If the models are swapped or not
    nested, the statistic and degrees of freedom are still computed and may
    be negative; a negative ``df`` gives a NaN p-value.

    With ``df == 0`` the reference distribution is a point mass at zero, so
    the p-value is 1 for a statistic at or below zero and 0 otherwise.

    Parameters
    ----------
    object1 : FittedCountModel
        The larger model.
    object2 : FittedCountModel
        The restricted model.

    Returns
    -------
    LRTestResult
        ``(statistic, df, pvalue)``.
    """
    statistic = 2.0 * (object1.loglik - object2.loglik)
    df = int(object1.k_params - object2.k_params)
    if df == 0:
        pvalue = 1.0 if statistic <= 0 else 0.0
    else:
        pvalue = float(stats.chi2.sf(statistic, df))
    return LRTestResult(statistic=float(statistic), df=df, pvalue=pvalue)
