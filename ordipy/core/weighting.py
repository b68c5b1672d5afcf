import enum
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd

from . import class_functions, exceptions

LOGGER = logging.getLogger(__name__)


class WeightMode(enum.Enum):
    """How the weights of one margin (rows or columns) were obtained."""

    UNIFORM = "uniform"
    MARGINAL = "marginal"
    EXPLICIT = "explicit"
    PRECOMPUTED = "precomputed"


@dataclass(frozen=True)
class WeightSpec:
    """Resolved weights for one margin. `values` is the metric handed to
    the decomposition, one entry per row (or column).
    """

    mode: WeightMode
    values: np.ndarray


@dataclass(frozen=True)
class WeightedMatrix:
    """Output of an external weighted transform (e.g. a weighted
    log-ratio transform) that supplies its own row and column weights.
    Passed to `build_ordination` in place of the raw matrix.
    """

    data: Union[pd.DataFrame, np.ndarray]
    row_weights: Union[pd.Series, np.ndarray]
    col_weights: Optional[Union[pd.Series, np.ndarray]] = None


def _validate_weights(weights, labels, name):
    """Checks an explicit weight vector against the identifiers of the
    margin it weights and returns it as a float array.

    A pd.Series is aligned by identifier; anything else by position.
    """
    if isinstance(weights, pd.Series):
        weights = class_functions._align_rows(weights, labels, name=name)
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.shape[0] != len(labels):
        raise exceptions.ShapeError(
            f"{name} has length {w.shape[0]}, expected {len(labels)}."
        )
    if not np.all(np.isfinite(w)):
        raise ValueError(f"{name} contains NA/NaN/Inf.")
    if np.any(w < 0):
        raise exceptions.ZeroMassError(f"{name} contains negative weights.")
    if np.sum(w) <= 0:
        raise exceptions.ZeroMassError(f"{name} must not be all zero.")
    return w


def marginal_mass(Y, axis):
    """Computes row (`axis=1`) or column (`axis=0`) masses of `Y`: the
    margin sums divided by the grand total.

    Parameters
    ----------
    Y : pd.DataFrame
        Uncentred, non-negative input matrix.
    axis : int
        1 for row masses, 0 for column masses.

    Returns
    -------
    mass : np.array
        Strictly positive masses summing to one.
    """
    values = Y.to_numpy()
    total = np.sum(values)
    sums = np.sum(values, axis=axis)
    labels = Y.index if axis == 1 else Y.columns
    bad = np.nonzero(sums <= 0)[0]
    if total <= 0 or bad.size > 0:
        kind = "row" if axis == 1 else "column"
        raise exceptions.ZeroMassError(
            f"Marginal weighting needs strictly positive {kind} sums; "
            f"{kind}s {labels[bad].tolist()[:5]} sum to zero or less."
        )
    return sums / total


def resolve_weights(
    Y: pd.DataFrame,
    weight_rows: bool = False,
    weight_columns: bool = False,
    row_weights=None,
    col_weights=None,
    precomputed: Optional[WeightedMatrix] = None,
    vegan_compatible: bool = False,
) -> Tuple[WeightSpec, WeightSpec]:
    """Resolves the row and column metrics once, at the start of an
    ordination.

    Row weights are always normalised to unit sum. With
    `vegan_compatible` the normalised row weights are multiplied by
    n/(n-1), i.e. divided by (n-1) instead of n, which rescales the
    singular values without changing the axes. Column weights are
    identity (1 per column) unless marginal, explicit or precomputed
    weights are requested; explicit and precomputed column weights are
    used as given.

    Returns
    -------
    rows, cols : WeightSpec
        Resolved metrics for rows and columns.
    """
    n, p = Y.shape
    if weight_rows and row_weights is not None:
        raise ValueError("Pass either weight_rows=True or row_weights, not both.")
    if weight_columns and col_weights is not None:
        raise ValueError(
            "Pass either weight_columns=True or col_weights, not both."
        )
    if precomputed is not None and (
        weight_rows or weight_columns or row_weights is not None or col_weights is not None
    ):
        raise ValueError(
            "A WeightedMatrix carries its own weights; do not request "
            "additional row or column weighting."
        )

    if precomputed is not None:
        rows = WeightSpec(
            WeightMode.PRECOMPUTED,
            class_functions._normalize(
                _validate_weights(precomputed.row_weights, Y.index, "row_weights")
            ),
        )
    elif row_weights is not None:
        rows = WeightSpec(
            WeightMode.EXPLICIT,
            class_functions._normalize(
                _validate_weights(row_weights, Y.index, "row_weights")
            ),
        )
    elif weight_rows:
        rows = WeightSpec(WeightMode.MARGINAL, marginal_mass(Y, axis=1))
    else:
        rows = WeightSpec(WeightMode.UNIFORM, np.full(n, 1.0 / n))

    if precomputed is not None and precomputed.col_weights is not None:
        cols = WeightSpec(
            WeightMode.PRECOMPUTED,
            _validate_weights(precomputed.col_weights, Y.columns, "col_weights"),
        )
    elif col_weights is not None:
        cols = WeightSpec(
            WeightMode.EXPLICIT,
            _validate_weights(col_weights, Y.columns, "col_weights"),
        )
    elif weight_columns:
        cols = WeightSpec(WeightMode.MARGINAL, marginal_mass(Y, axis=0))
    else:
        cols = WeightSpec(WeightMode.UNIFORM, np.ones(p))

    if vegan_compatible:
        rows = WeightSpec(rows.mode, rows.values * n / (n - 1))

    LOGGER.debug(
        "Resolved weights: rows=%s, columns=%s, vegan_compatible=%s",
        rows.mode.value,
        cols.mode.value,
        vegan_compatible,
    )
    return rows, cols


def weighted_centre(M, row_weights, col_weights=None, double=False):
    """Weighted centring of `M`. Generates a new matrix whose weighted
    column means (weighted by `row_weights`) are zero.

    If `double` is set, the weighted row means (weighted by
    `col_weights`) are removed as well, the centring used for log-ratio
    analysis.

    Parameters
    ----------
    M : pd.DataFrame
        Input matrix.
    row_weights : array-like
        Non-negative row weights.
    col_weights : array-like, optional
        Non-negative column weights. Only used when `double` is set;
        defaults to equal weights.
    double : boolean, optional
        Whether to also centre each row. Defaults to False.

    Returns
    -------
    M_c : pd.DataFrame
        Centred copy of `M`.
    """
    values = M.to_numpy(dtype=np.float64)
    r = class_functions._normalize(row_weights)
    centred = values - r @ values

    if double:
        if col_weights is None:
            c = np.full(values.shape[1], 1.0 / values.shape[1])
        else:
            c = class_functions._normalize(col_weights)
        centred = centred - (centred @ c)[:, np.newaxis]

    return pd.DataFrame(centred, index=M.index, columns=M.columns)
