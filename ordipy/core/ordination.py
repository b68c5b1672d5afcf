import enum
import logging
import types
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np
import pandas as pd

from .. import __docs__
from . import class_functions, decorators, exceptions, gsvd, residualize, weighting

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Decomposition:
    """Generalized SVD of one component of an ordination.

    Attributes
    ----------
    u : pd.DataFrame
        Left singular vectors (rows x axes), orthonormal under the row
        weights.
    d : np.array
        Singular values, non-negative and descending.
    v : pd.DataFrame
        Right singular vectors (columns x axes), orthonormal under the
        column weights.
    fitted_values : pd.DataFrame or None
        The covariate-fitted matrix that was decomposed (constrained
        component only).
    """

    u: pd.DataFrame
    d: np.ndarray
    v: pd.DataFrame
    fitted_values: Optional[pd.DataFrame] = None


@dataclass(frozen=True)
class DegreesOfFreedom:
    num_df: int
    denom_df: int


@dataclass(frozen=True, eq=False)
class OrdinationResult:
    """Immutable record produced by `build_ordination`.

    Attributes
    ----------
    scaled_matrix : pd.DataFrame
        Weighted-centred (and partialled, if Z was given) matrix; the
        input to the decompositions.
    row_weights, col_weights : pd.Series
        Row and column metrics used by the decompositions.
    unconstrained : Decomposition
        Decomposition of `scaled_matrix` if no X was given, otherwise of
        the residual of the constraining fit.
    degrees_of_freedom : DegreesOfFreedom
        `num_df` is the effective rank of X after partialling,
        `denom_df` the residual degrees of freedom.
    call_metadata : Mapping
        Options the ordination was built with.
    inertia : Mapping
        Weighted sums of squares: `total` (after centring),
        `conditioned` (removed by Z), `constrained` and
        `unconstrained`.
    constrained : Decomposition or None
        Decomposition of the X-fitted matrix.
    constraints : pd.DataFrame or None
        The constraining table actually regressed on (X, partialled on Z
        when Z was given).
    covariates, partial_covariates : pd.DataFrame or None
        X and Z aligned on the unit identifiers of Y.
    """

    scaled_matrix: pd.DataFrame
    row_weights: pd.Series
    col_weights: pd.Series
    unconstrained: Decomposition
    degrees_of_freedom: DegreesOfFreedom
    call_metadata: Mapping[str, Any]
    inertia: Mapping[str, float]
    constrained: Optional[Decomposition] = None
    constraints: Optional[pd.DataFrame] = None
    covariates: Optional[pd.DataFrame] = None
    partial_covariates: Optional[pd.DataFrame] = None

    def __post_init__(self):
        # read-only views over private copies
        for name in ("call_metadata", "inertia"):
            object.__setattr__(
                self, name, types.MappingProxyType(dict(getattr(self, name)))
            )


class State(enum.Enum):
    RAW = "raw"
    WEIGHTED = "weighted"
    PARTIALLED = "partialled"
    CONSTRAINED = "constrained"
    DECOMPOSED = "decomposed"


def _copy(frame):
    return None if frame is None else frame.copy()


def _copy_decomposition(decomp):
    if decomp is None:
        return None
    return Decomposition(
        u=decomp.u.copy(),
        d=decomp.d,
        v=decomp.v.copy(),
        fitted_values=_copy(decomp.fitted_values),
    )


def _inertia(M, row_weights, col_weights):
    """Weighted sum of squares of `M`, equal to the sum of its squared
    generalized singular values.
    """
    values = M.to_numpy()
    return float(row_weights @ (values ** 2) @ col_weights)


class OrdinationBuilder:
    """Runs the stages of an ordination in order:
    RAW -> WEIGHTED -> (PARTIALLED) -> (CONSTRAINED) -> DECOMPOSED.

    Each stage produces new matrices; the inputs are never modified and
    no stage can be run twice. `build` runs every stage that applies and
    returns the OrdinationResult.

    Parameters
    ----------
    Y : pd.DataFrame, array-like or WeightedMatrix
        Input matrix, rows keyed by unit identifier. A WeightedMatrix
        carries the weights of an external weighted transform.
    X : pd.DataFrame or array-like, optional
        Constraining covariates.
    Z : pd.DataFrame or array-like, optional
        Partialling (nuisance) covariates.
    weight_rows, weight_columns : boolean, optional
        Use marginal masses as row/column weights.
    row_weights, col_weights : array-like, optional
        Explicit row/column weights.
    vegan_compatible : boolean, optional
        Normalise row weights by (n-1) instead of n.
    double_center : boolean, optional
        Also remove weighted row means (log-ratio centring).
    exact_rank : boolean, optional
        Raise RankDeficiencyError for rank-deficient X or Z instead of
        fitting a reduced-rank solution.
    """

    def __init__(
        self,
        Y,
        X=None,
        Z=None,
        weight_rows: bool = False,
        weight_columns: bool = False,
        row_weights=None,
        col_weights=None,
        vegan_compatible: bool = False,
        double_center: bool = False,
        exact_rank: bool = False,
    ):
        self._precomputed = Y if isinstance(Y, weighting.WeightedMatrix) else None
        data = self._precomputed.data if self._precomputed is not None else Y
        self.Y = class_functions._as_frame(data, name="Y")
        if self.Y.shape[0] < 2 or self.Y.shape[1] < 2:
            raise exceptions.ShapeError(
                "Y needs at least 2 rows and 2 columns, "
                f"got shape {self.Y.shape}."
            )
        self.X = X
        self.Z = Z
        self.weight_rows = weight_rows
        self.weight_columns = weight_columns
        self.row_weights = row_weights
        self.col_weights = col_weights
        self.vegan_compatible = vegan_compatible
        self.double_center = double_center
        self.exact_rank = exact_rank

        self.state = State.RAW
        self._working = None
        self._fitted = None
        self._residual = None
        self._X = None
        self._X_res = None
        self._Z = None
        self._rank_x = 0
        self._rank_z = 0
        self._inertia = {}
        self._decompositions = {}

    def _advance(self, allowed, new_state):
        if self.state not in allowed:
            raise RuntimeError(
                f"Cannot move from {self.state.name} to {new_state.name}."
            )
        LOGGER.debug("Ordination stage %s -> %s", self.state.name, new_state.name)
        self.state = new_state

    def weight(self):
        """Resolves the row/column metrics and centres Y."""
        self._advance({State.RAW}, State.WEIGHTED)
        self._rows, self._cols = weighting.resolve_weights(
            self.Y,
            weight_rows=self.weight_rows,
            weight_columns=self.weight_columns,
            row_weights=self.row_weights,
            col_weights=self.col_weights,
            precomputed=self._precomputed,
            vegan_compatible=self.vegan_compatible,
        )
        self._working = weighting.weighted_centre(
            self.Y,
            self._rows.values,
            self._cols.values,
            double=self.double_center,
        )
        self._inertia["total"] = _inertia(
            self._working, self._rows.values, self._cols.values
        )
        self._inertia["conditioned"] = 0.0
        return self

    def partial(self):
        """Regresses Z out of the working matrix."""
        if self.Z is None:
            raise ValueError("No partialling covariates (Z) were supplied.")
        self._advance({State.WEIGHTED}, State.PARTIALLED)
        res = residualize.residualize(
            self._working,
            self.Z,
            self._rows.values,
            require_full_rank=self.exact_rank,
            name="Z",
        )
        self._working = res.residual
        self._Z = res.covariates
        self._rank_z = res.rank
        self._inertia["conditioned"] = self._inertia["total"] - _inertia(
            self._working, self._rows.values, self._cols.values
        )
        LOGGER.debug("Effective rank of Z: %d", self._rank_z)
        return self

    def constrain(self):
        """Splits the working matrix into the part fitted by X and the
        residual. X is partialled on Z first when Z was supplied.
        """
        if self.X is None:
            raise ValueError("No constraining covariates (X) were supplied.")
        self._advance({State.WEIGHTED, State.PARTIALLED}, State.CONSTRAINED)
        self._X = class_functions._align_covariates(self.X, self.Y.index, name="X")
        if self._Z is not None:
            self._X_res = residualize.residualize(
                self._X, self._Z, self._rows.values, name="Z"
            ).residual
        else:
            self._X_res = self._X

        res = residualize.residualize(
            self._working,
            self._X_res,
            self._rows.values,
            require_full_rank=self.exact_rank,
            name="X",
        )
        self._fitted = res.fitted
        self._residual = res.residual
        self._rank_x = res.rank
        LOGGER.debug("Effective rank of X after partialling: %d", self._rank_x)
        return self

    def _decompose_one(self, M, n_axes, fitted=None):
        U, d, V = gsvd.gsvd(
            M.to_numpy(), self._rows.values, self._cols.values, n_axes=n_axes
        )
        axes = [f"Axis{i + 1}" for i in range(d.shape[0])]
        return Decomposition(
            u=pd.DataFrame(U, index=M.index, columns=axes),
            d=class_functions._read_only(d),
            v=pd.DataFrame(V, index=M.columns, columns=axes),
            fitted_values=fitted,
        )

    def decompose(self):
        """Decomposes the constrained matrix (if any) and the
        unconstrained/residual matrix under the same metrics.
        """
        self._advance(
            {State.WEIGHTED, State.PARTIALLED, State.CONSTRAINED}, State.DECOMPOSED
        )
        n, p = self.Y.shape
        p_eff = p - 1 if self.double_center else p
        self._denom_df = n - 1 - self._rank_z - self._rank_x

        if self._fitted is not None:
            self._decompositions["constrained"] = self._decompose_one(
                self._fitted, min(self._rank_x, p_eff), fitted=self._fitted
            )
            unconstrained = self._residual
        else:
            unconstrained = self._working
        self._decompositions["unconstrained"] = self._decompose_one(
            unconstrained, max(min(self._denom_df, p_eff), 0)
        )

        self._inertia["constrained"] = (
            0.0
            if self._fitted is None
            else _inertia(self._fitted, self._rows.values, self._cols.values)
        )
        self._inertia["unconstrained"] = _inertia(
            unconstrained, self._rows.values, self._cols.values
        )
        return self

    def build(self):
        """Runs all applicable stages and returns the OrdinationResult."""
        if self.state is State.RAW:
            self.weight()
            if self.Z is not None:
                self.partial()
            if self.X is not None:
                self.constrain()
            self.decompose()
        elif self.state is not State.DECOMPOSED:
            raise RuntimeError(f"Ordination stopped in stage {self.state.name}.")

        n, p = self.Y.shape
        return OrdinationResult(
            scaled_matrix=self._working.copy(),
            row_weights=pd.Series(
                self._rows.values, index=self.Y.index, name="row_weights"
            ),
            col_weights=pd.Series(
                self._cols.values, index=self.Y.columns, name="col_weights"
            ),
            unconstrained=_copy_decomposition(self._decompositions["unconstrained"]),
            constrained=_copy_decomposition(self._decompositions.get("constrained")),
            degrees_of_freedom=DegreesOfFreedom(
                num_df=self._rank_x, denom_df=self._denom_df
            ),
            call_metadata={
                "row_weighting": self._rows.mode.value,
                "col_weighting": self._cols.mode.value,
                "vegan_compatible": bool(self.vegan_compatible),
                "double_center": bool(self.double_center),
                "exact_rank": bool(self.exact_rank),
                "has_x": self.X is not None,
                "has_z": self.Z is not None,
                "n_rows": n,
                "n_cols": p,
            },
            inertia=dict(self._inertia),
            constraints=_copy(self._X_res),
            covariates=_copy(self._X),
            partial_covariates=_copy(self._Z),
        )


@decorators.proctimer
def build_ordination(
    Y,
    X=None,
    Z=None,
    weight_rows=False,
    weight_columns=False,
    row_weights=None,
    col_weights=None,
    vegan_compatible=False,
    double_center=False,
    exact_rank=False,
):
    return OrdinationBuilder(
        Y,
        X=X,
        Z=Z,
        weight_rows=weight_rows,
        weight_columns=weight_columns,
        row_weights=row_weights,
        col_weights=col_weights,
        vegan_compatible=vegan_compatible,
        double_center=double_center,
        exact_rank=exact_rank,
    ).build()


build_ordination.__doc__ = __docs__.build_ordination_header
build_ordination.__doc__ += __docs__.ordipy_body


def variance_explained(result):
    """Per-axis eigenvalues (squared singular values) of an ordination
    with their share of the non-conditioned inertia.

    Parameters
    ----------
    result : OrdinationResult
        Ordination to summarise.

    Returns
    -------
    table : pd.DataFrame
        Columns `component`, `axis`, `eigenvalue`, `proportion` and
        `cumulative`; constrained axes first.
    """
    rows = []
    for component in ("constrained", "unconstrained"):
        decomp = getattr(result, component)
        if decomp is None:
            continue
        for axis, d in zip(decomp.u.columns, decomp.d):
            rows.append({"component": component, "axis": axis, "eigenvalue": d ** 2})
    table = pd.DataFrame(rows, columns=["component", "axis", "eigenvalue"])
    explained = result.inertia["constrained"] + result.inertia["unconstrained"]
    if explained > 0:
        table["proportion"] = table["eigenvalue"] / explained
    else:
        table["proportion"] = np.nan
    table["cumulative"] = table["proportion"].cumsum()
    return table


def constrained_r_squared(result):
    """R-squared and adjusted R-squared of the constrained component.

    R-squared is the constrained share of the inertia left after
    partialling. The adjustment is Ezekiel's, using the residual degrees
    of freedom of the ordination; it is NaN when none remain.

    Returns
    -------
    r2 : dict
        `{"r_squared": float, "adj_r_squared": float}`
    """
    if result.constrained is None:
        raise exceptions.UnconstrainedError(
            "R-squared needs an ordination built with constraints (X)."
        )
    con = result.inertia["constrained"]
    unc = result.inertia["unconstrained"]
    r2 = con / (con + unc) if con + unc > 0 else np.nan
    dof = result.degrees_of_freedom
    if dof.denom_df > 0:
        adj = 1.0 - (1.0 - r2) * (dof.num_df + dof.denom_df) / dof.denom_df
    else:
        adj = np.nan
    return {"r_squared": float(r2), "adj_r_squared": float(adj)}
