"""Optimizer configuration for DGLM fitting.

Defaults::

    algorithm   = "SLSQP"      # scipy constrained method
    tol_rel     = 0.01         # stopping tolerance
    maxeval     = 1000         # iteration cap
    local_opts  = {"algorithm": "IRLS", "tol_rel": 1e-8, "maxeval": 100}
    print_level = 0

``local_opts`` configures the nested sub-solver, the Poisson GLM that
provides starting values for the mean coefficients.

Caller overrides are applied key by key. ``local_opts`` is the only nested
field and is merged one level deep: ``{"local_opts": {"maxeval": 5}}``
changes that single entry and keeps the other local defaults.

Examples::

    opts = OptimizerOptions().merged({"tol_rel": 1e-4, "maxeval": 500})
    opts = OptimizerOptions().merged({"local_opts": {"algorithm": "newton"}})
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

_ALGORITHMS = ("SLSQP", "trust-constr")
_LOCAL_ALGORITHMS = ("IRLS", "newton", "bfgs", "lbfgs", "nm")

DEFAULT_LOCAL_OPTS: Mapping[str, Any] = MappingProxyType({
    "algorithm": "IRLS",
    "tol_rel": 1e-8,
    "maxeval": 100,
})


@dataclass(frozen=True)
class OptimizerOptions:
    """Settings for the constrained optimizer and its warm-start sub-solver.

    Parameters
    ----------
    algorithm : str
        ``"SLSQP"`` (default) or ``"trust-constr"``.
    tol_rel : float
        Stopping tolerance. For SLSQP this is ``ftol``, which also bounds
        the summed constraint violation at a successful stop.
    maxeval : int
        Maximum number of optimizer iterations.
    local_opts : mapping
        Warm-start Poisson GLM settings: ``algorithm`` (statsmodels fit
        method), ``tol_rel`` and ``maxeval``.
    print_level : int
        Verbosity; ``0`` is silent. Has no effect on the result.
    """

    algorithm: str = "SLSQP"
    tol_rel: float = 0.01
    maxeval: int = 1000
    local_opts: Mapping[str, Any] = field(default_factory=lambda: dict(DEFAULT_LOCAL_OPTS))
    print_level: int = 0

    def __post_init__(self) -> None:
        if self.algorithm not in _ALGORITHMS:
            raise ValueError(
                f"algorithm must be one of {_ALGORITHMS}, got '{self.algorithm}'"
            )
        if not self.tol_rel > 0:
            raise ValueError(f"tol_rel must be positive, got {self.tol_rel}")
        if int(self.maxeval) < 1:
            raise ValueError(f"maxeval must be >= 1, got {self.maxeval}")
        if not isinstance(self.local_opts, Mapping):
            raise TypeError(
                f"local_opts must be a mapping, got {type(self.local_opts).__name__}"
            )
        _check_keys(self.local_opts, DEFAULT_LOCAL_OPTS, "local_opts")
        local = {**DEFAULT_LOCAL_OPTS, **self.local_opts}
        if local["algorithm"] not in _LOCAL_ALGORITHMS:
            raise ValueError(
                f"local_opts['algorithm'] must be one of {_LOCAL_ALGORITHMS}, "
                f"got '{local['algorithm']}'"
            )
        object.__setattr__(self, "local_opts", MappingProxyType(local))

    def merged(self, overrides: Mapping[str, Any] | OptimizerOptions | None) -> OptimizerOptions:
        """Return a copy with ``overrides`` applied key by key.

        An ``OptimizerOptions`` instance replaces ``self`` entirely; ``None``
        returns ``self``.
        """
        if overrides is None:
            return self
        if isinstance(overrides, OptimizerOptions):
            return overrides
        if not isinstance(overrides, Mapping):
            raise TypeError(
                f"opts must be a mapping or OptimizerOptions, got {type(overrides).__name__}"
            )
        names = {f.name: None for f in dataclasses.fields(self)}
        _check_keys(overrides, names, "opts")

        updates = dict(overrides)
        if "local_opts" in updates:
            local = updates["local_opts"]
            if not isinstance(local, Mapping):
                raise TypeError(
                    f"local_opts must be a mapping, got {type(local).__name__}"
                )
            updates["local_opts"] = {**self.local_opts, **local}
        return dataclasses.replace(self, **updates)

    def to_scipy(self) -> tuple[str, dict[str, Any]]:
        """Return ``(method, options)`` for :func:`scipy.optimize.minimize`."""
        if self.algorithm == "SLSQP":
            return "SLSQP", {
                "ftol": float(self.tol_rel),
                "maxiter": int(self.maxeval),
                "disp": self.print_level > 0,
            }
        return "trust-constr", {
            "xtol": float(self.tol_rel),
            "gtol": float(self.tol_rel),
            "maxiter": int(self.maxeval),
            "verbose": min(int(self.print_level), 3),
        }

    def local_fit_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for the warm-start ``statsmodels`` GLM fit."""
        kwargs: dict[str, Any] = {
            "method": self.local_opts["algorithm"],
            "maxiter": int(self.local_opts["maxeval"]),
        }
        if kwargs["method"] == "IRLS":
            kwargs["tol"] = float(self.local_opts["tol_rel"])
        else:
            kwargs["disp"] = self.print_level > 0
        return kwargs

    def as_dict(self) -> dict[str, Any]:
        """Plain-dict echo of the settings."""
        return {
            "algorithm": self.algorithm,
            "tol_rel": self.tol_rel,
            "maxeval": self.maxeval,
            "local_opts": dict(self.local_opts),
            "print_level": self.print_level,
        }


def _check_keys(given: Mapping, allowed: Mapping, label: str) -> None:
    unknown = sorted(set(given) - set(allowed))
    if unknown:
        raise ValueError(
            f"Unknown {label} key(s): {unknown}. Valid keys: {sorted(allowed)}"
        )
