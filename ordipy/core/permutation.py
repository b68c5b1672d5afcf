import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from . import class_functions, decorators, exceptions, resample

LOGGER = logging.getLogger(__name__)

# permuted statistics within EPS of the observed one count as "at least
# as large"
EPS = np.sqrt(np.finfo(float).eps)


@dataclass(frozen=True, eq=False)
class PermutationResult:
    """Outcome of a permutation test of the constrained component.

    Attributes
    ----------
    F_stat : float
        Observed pseudo-F, `(constrained_SS/num_df) / (residual_SS/denom_df)`.
    F_perm : np.array
        Pseudo-F of every evaluated permutation, in permutation order.
    p_val : float
        `(count(F_perm >= F_stat) + 1) / (n_permutations + 1)`.
    num_df, denom_df : int
        Degrees of freedom of the constrained and residual components.
    fitted : pd.DataFrame
        Observed constrained (fitted) matrix.
    residuals : pd.DataFrame
        Observed residual matrix.
    n_permutations : int
        Number of permutations actually evaluated.
    complete : boolean
        False when the test stopped early (time budget or cancel
        signal); `p_val` is then an estimate from the evaluated
        permutations only.
    scheme : str
        Description of the permutation scheme.
    seed : int or None
        Seed of the permutation sequence.
    """

    F_stat: float
    F_perm: np.ndarray
    p_val: float
    num_df: int
    denom_df: int
    fitted: pd.DataFrame
    residuals: pd.DataFrame
    n_permutations: int
    complete: bool = True
    scheme: str = "free"
    seed: Optional[int] = None


def _f_ratio(ss_con, ss_res, num_df, denom_df):
    with np.errstate(divide="ignore", invalid="ignore"):
        return float(
            np.divide(
                np.float64(ss_con) * denom_df,
                np.float64(max(ss_res, 0.0)) * num_df,
            )
        )


def _should_stop(cancel, deadline):
    if deadline is not None and time.monotonic() >= deadline:
        return True
    if cancel is None:
        return False
    if hasattr(cancel, "is_set"):
        return cancel.is_set()
    return bool(cancel())


def _trial_statistics(
    S, Q_reduced, Q_con, perms, num_df, denom_df, cancel=None, deadline=None, offset=0
):
    """Pseudo-F of each permutation in `perms`. Rows of the weighted
    matrix `S` are permuted, the reduced model (intercept and Z, basis
    `Q_reduced`) is regressed out again, and the remainder is projected
    onto the constraints (basis `Q_con`).

    Stops early, returning the statistics computed so far, when the
    deadline passes or `cancel` is signalled.
    """
    stats = []
    for i, indices in enumerate(perms):
        if _should_stop(cancel, deadline):
            break
        permuted = S[indices]
        permuted = permuted - Q_reduced @ (Q_reduced.T @ permuted)
        ss_total = float(np.sum(permuted ** 2))
        ss_con = float(np.sum((Q_con.T @ permuted) ** 2))
        stats.append(_f_ratio(ss_con, ss_total - ss_con, num_df, denom_df))
        if (offset + i + 1) % 50 == 0:
            LOGGER.info("Permutation %d", offset + i + 1)
    return np.asarray(stats, dtype=np.float64)


def _resolve_strata(result, scheme, strata):
    if not (isinstance(scheme, str) and scheme.startswith("strata")):
        return None
    index = result.scaled_matrix.index
    if strata is not None:
        aligned = class_functions._align_rows(strata, index, name="strata")
        return np.asarray(aligned).reshape(-1)
    derived = class_functions._strata_from_dummies(result.partial_covariates)
    return None if derived is None else derived.to_numpy()


@decorators.proctimer
def permutation_test(
    result,
    scheme="free",
    n_permutations=999,
    seed=None,
    strata=None,
    n_jobs=1,
    time_budget=None,
    cancel=None,
):
    """Permutation test of the variance explained by the constraints.

    Rows of the (weighted, partialled) working matrix are permuted
    according to `scheme`, the constraining regression is refitted, and
    the pseudo-F of each permutation is compared with the observed one.

    Parameters
    ----------
    result : OrdinationResult
        Ordination built with constraining covariates (X).
    scheme : str, PermutationScheme, callable or array-like, optional
        "free" (default), "strata" (rows permuted within strata), a
        PermutationScheme, a generator `fn(n, rng)` returning one
        permutation, or an explicit (N, n) matrix of permutations, in
        which case N replaces `n_permutations`.
    n_permutations : int, optional
        Number of permutations. Defaults to 999.
    seed : int or np.random.Generator, optional
        Seed of the permutation sequence. The same seed and
        `n_permutations` reproduce the same F_perm and p_val.
    strata : pd.Series or array-like, optional
        Stratum label per unit for strata-restricted permutation.
        Defaults to the 0/1 patterns of the dummy columns of Z.
    n_jobs : int, optional
        Number of worker threads evaluating permutations. Defaults to 1.
    time_budget : float, optional
        Seconds after which the test stops and returns a partial result.
    cancel : threading.Event or callable, optional
        Signal that stops the test early when set (or when it returns
        True).

    Returns
    -------
    res : PermutationResult
    """
    if result.constrained is None or result.constraints is None:
        raise exceptions.UnconstrainedError(
            "Permutation test needs an ordination built with constraints (X)."
        )
    dof = result.degrees_of_freedom
    if dof.num_df == 0:
        raise exceptions.UnconstrainedError(
            "Constraints have zero rank after partialling; nothing to test."
        )
    if dof.denom_df <= 0:
        raise exceptions.ShapeError("No residual degrees of freedom are left.")

    n = result.scaled_matrix.shape[0]
    labels = _resolve_strata(result, scheme, strata)
    perm_scheme = resample.make_scheme(scheme, n, strata=labels)
    rng = np.random.default_rng(seed)
    perms = perm_scheme.permutations(int(n_permutations), rng)
    total = perms.shape[0]
    if total < 1:
        raise ValueError("n_permutations must be at least 1.")

    sqrt_r = np.sqrt(result.row_weights.to_numpy())
    sqrt_c = np.sqrt(result.col_weights.to_numpy())
    S = result.scaled_matrix.to_numpy() * sqrt_r[:, np.newaxis] * sqrt_c[np.newaxis, :]

    reduced = np.ones((n, 1))
    if result.partial_covariates is not None:
        reduced = np.column_stack([reduced, result.partial_covariates.to_numpy()])
    Q_reduced = class_functions._weighted_qr(reduced, sqrt_r)[0]
    # constraints plus intercept, as in the observed fit
    design = np.column_stack([np.ones(n), result.constraints.to_numpy()])
    Q_con = class_functions._weighted_qr(design, sqrt_r)[0]

    ss_con = float(np.sum(np.asarray(result.constrained.d) ** 2))
    ss_res = float(np.sum(np.asarray(result.unconstrained.d) ** 2))
    F_stat = _f_ratio(ss_con, ss_res, dof.num_df, dof.denom_df)

    LOGGER.info(
        "Running permutation test: %d permutations, scheme %s", total, perm_scheme
    )
    deadline = None if time_budget is None else time.monotonic() + float(time_budget)

    if n_jobs is None or n_jobs <= 1:
        F_perm = _trial_statistics(
            S, Q_reduced, Q_con, perms, dof.num_df, dof.denom_df, cancel, deadline
        )
    else:
        chunks = [c for c in np.array_split(np.arange(total), int(n_jobs)) if c.size]
        with ThreadPoolExecutor(max_workers=len(chunks)) as executor:
            futures = [
                executor.submit(
                    _trial_statistics,
                    S,
                    Q_reduced,
                    Q_con,
                    perms[chunk],
                    dof.num_df,
                    dof.denom_df,
                    cancel,
                    deadline,
                    int(chunk[0]),
                )
                for chunk in chunks
            ]
            F_perm = np.concatenate([f.result() for f in futures])

    done = F_perm.shape[0]
    complete = done == total
    greater = int(np.sum(F_perm >= F_stat - EPS))
    p_val = (greater + 1) / (done + 1)

    if not complete:
        LOGGER.warning(
            "Permutation test stopped after %d of %d permutations; "
            "p-value is a partial estimate.",
            done,
            total,
        )
    LOGGER.info("F = %.4f, p = %.4f", F_stat, p_val)

    fitted = result.constrained.fitted_values.copy()
    return PermutationResult(
        F_stat=F_stat,
        F_perm=class_functions._read_only(F_perm),
        p_val=p_val,
        num_df=dof.num_df,
        denom_df=dof.denom_df,
        fitted=fitted,
        residuals=result.scaled_matrix - fitted,
        n_permutations=done,
        complete=complete,
        scheme=scheme if isinstance(scheme, str) else repr(perm_scheme),
        seed=int(seed) if isinstance(seed, (int, np.integer)) else None,
    )
