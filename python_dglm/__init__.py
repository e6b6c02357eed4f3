"""python_dglm: double GLMs for over- and under-dispersed counts.

Fits count regression models where both the mean and the dispersion are
log-linear in covariates, using the hyper-Poisson or the
Conway-Maxwell-Poisson distribution. Mean coefficients, dispersion
coefficients and per-observation canonical parameters are estimated jointly
by constrained maximum likelihood.

Basic usage::

    from python_dglm import HyperPoissonDGLM, lrtest

    full = HyperPoissonDGLM.from_formula(
        "y ~ x1 + x2", "~ x1", data=df
    ).fit()
    null = HyperPoissonDGLM.from_formula(
        "y ~ x1 + x2", "~ 1", data=df
    ).fit()

    print(full.summary())
    print(lrtest(full, null).summary())
"""

from python_dglm.family import ConwayMaxwellPoisson, CountFamily, HyperPoisson
from python_dglm.lrtest import LRTestResult, lrtest
from python_dglm.model import CMPDGLM, DGLM, HyperPoissonDGLM, SeriesTruncationWarning
from python_dglm.options import OptimizerOptions
from python_dglm.results import DGLMResults, FittedCountModel

__version__ = "0.1.0"

__all__ = [
    "DGLM",
    "HyperPoissonDGLM",
    "CMPDGLM",
    "DGLMResults",
    "FittedCountModel",
    "CountFamily",
    "HyperPoisson",
    "ConwayMaxwellPoisson",
    "OptimizerOptions",
    "LRTestResult",
    "lrtest",
    "SeriesTruncationWarning",
]
