"""Count families for double GLMs."""

from python_dglm.family.base import CountFamily
from python_dglm.family.hyper_poisson import HyperPoisson
from python_dglm.family.cmp import ConwayMaxwellPoisson

__all__ = [
    "CountFamily",
    "HyperPoisson",
    "ConwayMaxwellPoisson",
]
