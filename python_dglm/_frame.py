"""Model-frame construction from R-style formulas.

Builds the response, the mean design matrix and the dispersion design
matrix from two formulas over one DataFrame, keeping their rows aligned
after subsetting and missing-value handling.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.typing import NDArray

_NA_ACTIONS = ("drop", "raise")
_OFFSET_TERM = re.compile(r"(^|[~+])\s*offset\s*\(")


@dataclass
class ModelFrame:
    """Aligned model inputs produced by :func:`build_frame`.

    ``frame_mu`` holds the response, the mean design columns and, when
    present, ``(weights)`` and ``(offset)``; ``frame_disp`` holds the
    dispersion design columns. Both are indexed by the rows used in the fit.
    """

    y: NDArray
    X: NDArray
    Z: NDArray
    weights: NDArray | None
    offset: NDArray | None
    mu_names: list[str]
    disp_names: list[str]
    mu_spec: object
    disp_spec: object
    frame_mu: pd.DataFrame | None = None
    frame_disp: pd.DataFrame | None = None
    offset_terms: tuple[str, ...] = ()


def _check_formula(formula, name: str) -> None:
    if not isinstance(formula, str):
        raise TypeError(f"{name} must be a string, got {type(formula).__name__}")
    if "~" not in formula:
        raise ValueError(
            f"{name} must contain '~' separating response and predictors, "
            f"e.g. 'y ~ x1 + x2'. Got: '{formula}'"
        )


def _resolve_column(value, data: pd.DataFrame, name: str) -> NDArray | None:
    """Turn a column name or array into an array aligned with ``data`` rows."""
    if value is None:
        return None
    if isinstance(value, str):
        if value not in data.columns:
            raise ValueError(
                f"{name} column '{value}' not found in data. "
                f"Available columns: {list(data.columns)}"
            )
        arr = np.asarray(data[value])
    else:
        arr = np.asarray(value)
    if arr.ndim != 1 or len(arr) != len(data):
        raise ValueError(
            f"{name} must be a 1-D array with one entry per row of data "
            f"({len(data)}), got shape {arr.shape}"
        )
    if arr.dtype.kind not in "biuf":
        raise TypeError(f"'{name}' must be a numeric vector, got dtype {arr.dtype}")
    return arr.astype(float)


def _extract_offsets(formula: str) -> tuple[str, list[str]]:
    """Strip ``offset(...)`` terms from a formula.

    Returns the formula without them and the list of offset expressions,
    in order of appearance.
    """
    exprs = []
    while True:
        match = _OFFSET_TERM.search(formula)
        if match is None:
            break
        depth, end = 1, match.end()
        while depth and end < len(formula):
            if formula[end] == "(":
                depth += 1
            elif formula[end] == ")":
                depth -= 1
            end += 1
        if depth:
            raise ValueError(f"Unbalanced parentheses in offset term of '{formula}'")
        expr = formula[match.end():end - 1].strip()
        if not expr:
            raise ValueError(f"Empty offset() term in '{formula}'")
        exprs.append(expr)
        formula = formula[:match.end(1)] + formula[end:]

    if not exprs:
        return formula, exprs
    lhs, rhs = formula.split("~", 1)
    rhs = re.sub(r"(\+\s*)+", "+ ", rhs).strip().strip("+").strip()
    return f"{lhs.strip()} ~ {rhs or '1'}".strip(), exprs


def _evaluate_offsets(exprs: list[str], data: pd.DataFrame) -> NDArray:
    """Sum offset expressions evaluated row by row against ``data``."""
    import formulaic

    total = np.zeros(len(data))
    for expr in exprs:
        # missing values are kept so that rows stay aligned with ``data``
        mm = formulaic.model_matrix(
            f"0 + {{{expr}}}", data, na_action="ignore",
            context={"np": np, "log": np.log, "exp": np.exp, "sqrt": np.sqrt},
        )
        values = np.asarray(mm, dtype=float)
        if values.shape != (len(data), 1):
            raise ValueError(
                f"offset({expr}) must evaluate to one numeric value per row"
            )
        total += values[:, 0]
    return total


def _split(model_spec) -> tuple[pd.DataFrame | None, pd.DataFrame]:
    # formulaic returns ModelMatrices with .lhs and .rhs for two-sided formulas
    if hasattr(model_spec, "rhs"):
        return model_spec.lhs, model_spec.rhs
    return None, model_spec


def build_frame(
    formula_mu: str,
    formula_disp: str,
    data: pd.DataFrame,
    weights=None,
    offset=None,
    subset=None,
    na_action: str = "drop",
) -> ModelFrame:
    """Build aligned model matrices for the mean and dispersion sub-models.

    Parameters
    ----------
    formula_mu : str
        Two-sided formula for the mean, e.g. ``"y ~ x1 + x2"``. Terms of
        the form ``offset(expr)`` are removed from the design and added to
        the offset; several of them are summed together with ``offset``.
    formula_disp : str
        Formula for the dispersion. A response on the left is ignored, so
        both ``"y ~ z"`` and ``"~ z"`` work.
    data : DataFrame
        Data containing the variables referenced in the formulas.
    weights, offset : str, array-like or None
        Column name in ``data`` or an array with one entry per row.
    subset : array-like or None
        Boolean mask or integer positions selecting rows of ``data``.
    na_action : str
        ``"drop"`` removes rows with missing values in either sub-model
        (and in weights/offset) from both; ``"raise"`` raises ``ValueError``.

    Returns
    -------
    ModelFrame
    """
    import formulaic

    _check_formula(formula_mu, "formula_mu")
    _check_formula(formula_disp, "formula_disp")
    formula_mu, offset_terms = _extract_offsets(formula_mu)
    if _OFFSET_TERM.search(formula_disp):
        raise ValueError(
            "offset() terms belong in formula_mu; the dispersion model has no offset"
        )
    if not isinstance(data, pd.DataFrame):
        raise TypeError(
            f"data must be a pandas DataFrame, got {type(data).__name__}"
        )
    if len(data) == 0:
        raise ValueError("data must not be empty")
    if na_action not in _NA_ACTIONS:
        raise ValueError(
            f"na_action must be one of {_NA_ACTIONS}, got '{na_action}'"
        )

    w = _resolve_column(weights, data, "weights")
    off = _resolve_column(offset, data, "offset")

    if subset is not None:
        subset = np.asarray(subset)
        if subset.dtype == bool:
            if len(subset) != len(data):
                raise ValueError(
                    f"boolean subset has length {len(subset)}, data has {len(data)} rows"
                )
            rows = np.flatnonzero(subset)
        else:
            rows = subset.astype(int)
        data = data.iloc[rows]
        w = w[rows] if w is not None else None
        off = off[rows] if off is not None else None
        if len(data) == 0:
            raise ValueError("subset selects no rows")

    data = data.reset_index(drop=True)

    if offset_terms:
        formula_off = _evaluate_offsets(offset_terms, data)
        off = formula_off if off is None else off + formula_off

    mm_mu = formulaic.model_matrix(formula_mu, data, na_action=na_action)
    lhs, X_mm = _split(mm_mu)
    if lhs is None:
        raise ValueError(
            f"formula_mu must have a response on the left of '~'. Got: '{formula_mu}'"
        )
    _, Z_mm = _split(formulaic.model_matrix(formula_disp, data, na_action=na_action))

    keep = np.ones(len(data), dtype=bool)
    keep &= data.index.isin(X_mm.index)
    keep &= data.index.isin(Z_mm.index)
    for arr, name in ((w, "weights"), (off, "offset")):
        if arr is not None and np.any(np.isnan(arr)):
            if na_action == "raise":
                raise ValueError(f"{name} contains missing values")
            keep &= ~np.isnan(arr)
    if not np.any(keep):
        raise ValueError("no complete rows left after removing missing values")
    index = data.index[keep]

    y = np.asarray(lhs.loc[index], dtype=float).ravel()
    X = np.asarray(X_mm.loc[index], dtype=float)
    Z = np.asarray(Z_mm.loc[index], dtype=float)
    w = w[keep] if w is not None else None
    off = off[keep] if off is not None else None

    frame_mu = pd.DataFrame(X, index=index, columns=list(X_mm.columns))
    frame_mu.insert(0, str(lhs.columns[0]), y)
    if w is not None:
        frame_mu["(weights)"] = w
    if off is not None:
        frame_mu["(offset)"] = off

    return ModelFrame(
        y=y,
        X=X,
        Z=Z,
        weights=w,
        offset=off,
        mu_names=list(X_mm.columns),
        disp_names=list(Z_mm.columns),
        mu_spec=X_mm.model_spec,
        disp_spec=Z_mm.model_spec,
        frame_mu=frame_mu,
        frame_disp=pd.DataFrame(Z, index=index, columns=list(Z_mm.columns)),
        offset_terms=tuple(offset_terms),
    )
