import numpy as np
import pandas as pd
import scipy.linalg

from . import exceptions

# relative tolerance on |diag(R)| used to decide the effective rank of a
# covariate design (same convention as R's lm.fit)
RANK_TOL = 1e-7


def _as_frame(data, name="Y"):
    """Coerces `data` into a float-valued DataFrame keyed by unit
    identifier (rows) and feature identifier (columns).

    Arrays are given a positional RangeIndex on both axes. Identifiers
    must be unique and all entries finite.

    Parameters
    ----------
    data : array-like or pd.DataFrame
        2-dimensional input table.
    name : str, optional
        Name used in error messages.

    Returns
    -------
    frame : pd.DataFrame
        Copy of `data` with float64 values.
    """
    if isinstance(data, pd.Series):
        data = data.to_frame()
    if isinstance(data, pd.DataFrame):
        frame = data.copy()
    else:
        arr = np.asarray(data)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise exceptions.ShapeError(
                f"{name} must be 2-dimensional, got {arr.ndim} dimensions."
            )
        frame = pd.DataFrame(arr)

    non_numeric = [
        c for c in frame.columns if not pd.api.types.is_numeric_dtype(frame[c])
    ]
    if non_numeric:
        raise ValueError(
            f"{name} has non-numeric columns {non_numeric[:5]}; encode "
            "categories as dummy (0/1) columns before ordination."
        )
    frame = frame.astype(np.float64)

    if not frame.index.is_unique:
        dup = frame.index[frame.index.duplicated()].unique().tolist()
        raise exceptions.AlignmentError(
            f"{name} has duplicated unit identifiers: {dup[:5]}"
        )
    if not frame.columns.is_unique:
        dup = frame.columns[frame.columns.duplicated()].unique().tolist()
        raise exceptions.AlignmentError(
            f"{name} has duplicated column identifiers: {dup[:5]}"
        )
    if not np.all(np.isfinite(frame.to_numpy())):
        raise ValueError(f"{name} contains NA/NaN/Inf; missing data is not supported.")
    return frame


def _align_rows(table, index, name="covariates"):
    """Returns `table` with rows reordered to match `index`.

    DataFrames and Series are aligned by identifier (extra rows are
    dropped). Plain arrays carry no identifiers and are aligned by
    position, so their length must match `index`.
    """
    if isinstance(table, (pd.DataFrame, pd.Series)):
        missing = index.difference(table.index)
        if len(missing) > 0:
            raise exceptions.AlignmentError(
                f"{name} has no rows for unit identifiers "
                f"{missing.tolist()[:5]} ({len(missing)} missing)."
            )
        if not table.index.is_unique:
            dup = table.index[table.index.duplicated()].unique().tolist()
            raise exceptions.AlignmentError(
                f"{name} has duplicated unit identifiers: {dup[:5]}"
            )
        return table.loc[index]

    arr = np.asarray(table)
    if arr.shape[0] != len(index):
        raise exceptions.ShapeError(
            f"{name} has {arr.shape[0]} rows but the matrix has "
            f"{len(index)}; pass a table keyed by unit identifier to "
            "align by key."
        )
    if arr.ndim == 1:
        return pd.Series(arr, index=index)
    return pd.DataFrame(arr, index=index)


def _align_covariates(C, index, name="covariates"):
    """Aligns a covariate table on the unit identifiers of the response
    and coerces it to a numeric DataFrame.
    """
    aligned = _align_rows(C, index, name=name)
    return _as_frame(aligned, name=name)


def _dummy_columns(C):
    """Returns the columns of `C` that are dummy-coded, i.e. hold only
    0/1 values with both levels present.
    """
    if C is None:
        return []
    dummies = []
    for col in C.columns:
        vals = np.unique(C[col].to_numpy())
        if vals.shape[0] == 2 and np.all(vals == np.array([0.0, 1.0])):
            dummies.append(col)
    return dummies


def _dummy_levels(C):
    """Derives the category levels encoded by the dummy-coded columns of
    `C`. Rows sharing the same 0/1 pattern share a level. A level is
    named after its single column at 1, after its columns at 1 joined
    by "+", or "(reference)" when every dummy column is 0. Levels are
    ordered by first appearance.

    Returns
    -------
    codes : pd.Series or None
        Level code per row, None if `C` has no dummy columns.
    names : list
        Level name per code.
    """
    dummies = _dummy_columns(C)
    if not dummies:
        return None, []
    patterns = C[dummies].to_numpy()
    _, first, inverse = np.unique(
        patterns, axis=0, return_index=True, return_inverse=True
    )
    inverse = inverse.reshape(-1)
    order = np.argsort(first, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(order.shape[0])
    names = []
    for row in patterns[np.sort(first)]:
        on = [col for col, val in zip(dummies, row) if val == 1.0]
        names.append("+".join(str(c) for c in on) if on else "(reference)")
    return pd.Series(rank[inverse], index=C.index), names


def _strata_from_dummies(C):
    """Derives one stratum label per row from the dummy-coded columns of
    `C`: rows sharing the same 0/1 pattern form a stratum. Returns None
    if `C` has no dummy columns.
    """
    return _dummy_levels(C)[0]


def _normalize(weights):
    """Rescales a non-negative weight vector to unit sum."""
    weights = np.asarray(weights, dtype=np.float64)
    return weights / np.sum(weights)


def _rank_from_r(R, tol=RANK_TOL):
    """Numerical rank from the diagonal of the R factor of a pivoted QR."""
    d = np.abs(np.diag(R))
    if d.size == 0 or np.max(d) == 0.0:
        return 0
    return int(np.sum(d > tol * np.max(d)))


def _weighted_qr(D, sqrt_w, tol=RANK_TOL):
    """Pivoted QR of the design `D` with rows scaled by `sqrt_w`.

    Returns
    -------
    Q : np.array
        Orthonormal basis (n x rank) of the weighted column space.
    R : np.array
        Upper-triangular factor.
    P : np.array
        Column pivots.
    rank : int
        Effective rank of the weighted design.
    """
    Dw = D * sqrt_w[:, np.newaxis]
    Q, R, P = scipy.linalg.qr(Dw, mode="economic", pivoting=True)
    rank = _rank_from_r(R, tol=tol)
    return Q[:, :rank], R, P, rank


def _read_only(arr):
    """Returns a copy of `arr` that cannot be written to."""
    arr = np.array(arr, dtype=np.float64)
    arr.setflags(write=False)
    return arr
