from dataclasses import dataclass

import numpy as np
import pandas as pd
import scipy.linalg

from . import class_functions, exceptions


@dataclass(frozen=True)
class Residualization:
    """Weighted least-squares split of a matrix into the part explained
    by a covariate table and the part orthogonal to it.

    Attributes
    ----------
    fitted : pd.DataFrame
        Fitted values; same keys as the response.
    residual : pd.DataFrame
        Response minus fitted values. Weighted-orthogonal to the
        covariates and to the intercept.
    coefficients : pd.DataFrame
        Regression coefficients (intercept first). Aliased columns of a
        rank-deficient table get zero coefficients.
    rank : int
        Effective rank of the covariate table beyond the intercept.
    covariates : pd.DataFrame
        Covariate table aligned on the response's unit identifiers.
    """

    fitted: pd.DataFrame
    residual: pd.DataFrame
    coefficients: pd.DataFrame
    rank: int
    covariates: pd.DataFrame


def residualize(Y, C, row_weights, require_full_rank=False, name="covariates"):
    """Fits `Y` on covariate table `C` plus an implicit intercept by
    weighted least squares and returns fitted values and residuals.

    Rows of `C` are matched to rows of `Y` by unit identifier. A
    rank-deficient `C` is fitted with the reduced-rank solution of a
    pivoted QR; its effective rank is reported in `rank`.

    Parameters
    ----------
    Y : pd.DataFrame
        Response matrix, rows keyed by unit identifier.
    C : pd.DataFrame or array-like
        Covariate table. Must have a row for every unit of `Y`.
    row_weights : array-like
        Non-negative row weights, one per row of `Y`.
    require_full_rank : boolean, optional
        Raise RankDeficiencyError instead of fitting a reduced-rank
        solution. Defaults to False.
    name : str, optional
        Name of the covariate table used in error messages.

    Returns
    -------
    res : Residualization
        Fitted/residual split and rank accounting.
    """
    C = class_functions._align_covariates(C, Y.index, name=name)
    n = Y.shape[0]
    sqrt_w = np.sqrt(class_functions._normalize(row_weights))

    D = np.column_stack([np.ones(n), C.to_numpy()])
    Q, R, P, rank = class_functions._weighted_qr(D, sqrt_w)

    rank_c = max(rank - 1, 0)
    if require_full_rank and rank_c < C.shape[1]:
        raise exceptions.RankDeficiencyError(
            f"{name} has {C.shape[1]} columns but effective rank {rank_c}."
        )

    values = Y.to_numpy()
    coef = np.zeros((D.shape[1], values.shape[1]))
    if rank > 0:
        QtY = Q.T @ (values * sqrt_w[:, np.newaxis])
        coef[P[:rank], :] = scipy.linalg.solve_triangular(R[:rank, :rank], QtY)

    fitted = D @ coef
    residual = values - fitted

    return Residualization(
        fitted=pd.DataFrame(fitted, index=Y.index, columns=Y.columns),
        residual=pd.DataFrame(residual, index=Y.index, columns=Y.columns),
        coefficients=pd.DataFrame(
            coef, index=["(Intercept)"] + list(C.columns), columns=Y.columns
        ),
        rank=rank_c,
        covariates=C,
    )
