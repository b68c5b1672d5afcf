import enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from . import class_functions, exceptions


class Entity(enum.Enum):
    """Which entities of the ordination to score."""

    ROW = "row"
    COLUMN = "column"
    CENTROID = "centroid"
    BIPLOT = "biplot"


class Scaling(enum.Enum):
    """Scaling convention for scores.

    contribution - singular vectors orthonormal in the plain sense
                   (generalized vectors times sqrt(weight))
    standard     - generalized singular vectors (raw vectors divided by
                   sqrt(weight)); unit weighted variance per axis
    principle    - standard coordinates times the singular values;
                   distances approximate weighted Euclidean distances
    """

    PRINCIPLE = "principle"
    STANDARD = "standard"
    CONTRIBUTION = "contribution"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() == "principal":
            return cls.PRINCIPLE
        return None


def _select_component(result, component):
    if component is None:
        component = "unconstrained" if result.constrained is None else "constrained"
    if component not in ("constrained", "unconstrained"):
        raise ValueError(f"Invalid component {component}")
    decomp = getattr(result, component)
    if decomp is None:
        raise exceptions.UnconstrainedError(
            "Ordination was built without constraints (X)."
        )
    return decomp


def _axis_labels(decomp, axes):
    """Maps 1-based axis numbers to the labels of `decomp`."""
    available = decomp.d.shape[0]
    if axes is None:
        return list(decomp.u.columns)
    axes = [axes] if isinstance(axes, (int, np.integer)) else list(axes)
    bad = [a for a in axes if not 1 <= int(a) <= available]
    if bad:
        raise exceptions.AxisRangeError(
            f"Axes {bad} requested but only {available} axes are available."
        )
    return [decomp.u.columns[int(a) - 1] for a in axes]


def _scale(vectors, weights, d, scaling):
    """Applies `scaling` to generalized singular vectors."""
    if scaling is Scaling.STANDARD:
        return vectors.copy()
    if scaling is Scaling.PRINCIPLE:
        return vectors * d
    if scaling is Scaling.CONTRIBUTION:
        return vectors.mul(np.sqrt(weights.to_numpy()), axis=0)
    raise ValueError(f"Invalid scaling {scaling}")


def _centroids(result, rows):
    """Weighted mean of row scores for the units of each category level
    encoded by the dummy-coded constraining columns, the reference level
    (all dummies 0) included.
    """
    if result.covariates is None:
        raise exceptions.UnconstrainedError(
            "Centroid scores need an ordination built with constraints (X)."
        )
    codes, names = class_functions._dummy_levels(result.covariates)
    if codes is None:
        raise exceptions.CategoricalError(
            "Centroid scores need dummy-coded (0/1) columns in X."
        )
    w = result.row_weights.to_numpy()
    values = rows.to_numpy()
    codes = codes.to_numpy()
    centroids = {}
    for level, name in enumerate(names):
        mask = codes == level
        wm = w[mask]
        if np.sum(wm) > 0:
            centroids[name] = wm @ values[mask] / np.sum(wm)
        else:
            centroids[name] = values[mask].mean(axis=0)
    return pd.DataFrame.from_dict(centroids, orient="index", columns=rows.columns)


def _biplot(result, decomp, scaling):
    """Weighted correlations between the constraining variables and the
    row axes. Under `principle` scaling each axis is multiplied by its
    singular value; `standard` and `contribution` both give the unscaled
    correlations.
    """
    if result.constraints is None:
        raise exceptions.UnconstrainedError(
            "Biplot scores need an ordination built with constraints (X)."
        )
    w = class_functions._normalize(result.row_weights.to_numpy())
    X = result.constraints.to_numpy()
    U = decomp.u.to_numpy()
    X = X - w @ X
    U = U - w @ U
    cov = (X * w[:, np.newaxis]).T @ U
    sx = np.sqrt(w @ X ** 2)
    su = np.sqrt(w @ U ** 2)
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = cov / np.outer(sx, su)
    corr[~np.isfinite(corr)] = 0.0
    out = pd.DataFrame(corr, index=result.constraints.columns, columns=decomp.u.columns)
    if scaling is Scaling.PRINCIPLE:
        out = out * decomp.d
    return out


def extract_scores(
    result,
    entity="row",
    scaling="principle",
    axes: Optional[Sequence[int]] = None,
    grouping: Optional[pd.DataFrame] = None,
    component: Optional[str] = None,
) -> pd.DataFrame:
    """Coordinates of rows, columns, centroids or biplot arrows.

    Parameters
    ----------
    result : OrdinationResult
        Ordination to score.
    entity : Entity or str, optional
        "row", "column", "centroid" or "biplot". Defaults to "row".
    scaling : Scaling or str, optional
        "principle", "standard" or "contribution". Defaults to
        "principle".
    axes : sequence of int, optional
        1-based axis numbers. Defaults to all axes of the component.
    grouping : pd.DataFrame, optional
        Table keyed by unit identifier merged onto row scores.
    component : str, optional
        "constrained" or "unconstrained". Defaults to the constrained
        component when there is one.

    Returns
    -------
    scores : pd.DataFrame
        One row per entity, one column per requested axis.
    """
    entity = Entity(entity)
    scaling = Scaling(scaling)
    decomp = _select_component(result, component)
    labels = _axis_labels(decomp, axes)

    if entity is Entity.ROW:
        scores = _scale(decomp.u, result.row_weights, decomp.d, scaling)
    elif entity is Entity.COLUMN:
        scores = _scale(decomp.v, result.col_weights, decomp.d, scaling)
    elif entity is Entity.CENTROID:
        rows = _scale(decomp.u, result.row_weights, decomp.d, scaling)
        scores = _centroids(result, rows)
    elif entity is Entity.BIPLOT:
        scores = _biplot(result, decomp, scaling)
    scores = scores[labels]

    if grouping is not None:
        if entity is not Entity.ROW:
            raise ValueError("A grouping table can only be merged onto row scores.")
        if isinstance(grouping, pd.Series):
            grouping = grouping.to_frame()
        aligned = class_functions._align_rows(grouping, scores.index, name="grouping")
        scores = scores.join(aligned)
    return scores


def rescale_scores(scores_a, scores_b, factor=None):
    """Rescales `scores_a` so that, per shared axis, its maximum absolute
    value matches that of `scores_b` (for overlaying two score sets on
    one biplot), or multiplies every axis by `factor` when given.

    Only numeric columns are rescaled; merged grouping columns pass
    through.
    """
    out = scores_a.copy()
    numeric = [c for c in out.columns if pd.api.types.is_numeric_dtype(out[c])]
    if factor is not None:
        out[numeric] = out[numeric] * float(factor)
        return out

    shared = [c for c in numeric if c in scores_b.columns]
    if not shared:
        raise exceptions.ShapeError("The two score tables share no axes.")
    for col in shared:
        max_a = np.max(np.abs(out[col].to_numpy()))
        max_b = np.max(np.abs(scores_b[col].to_numpy()))
        if max_a > 0:
            out[col] = out[col] * (max_b / max_a)
    return out


def top_features(
    result,
    n=10,
    entity="column",
    scaling="contribution",
    axes: Optional[Sequence[int]] = None,
    component: Optional[str] = None,
) -> List[Tuple[object, float]]:
    """Ranks entities by their mean absolute score across `axes`. When
    `axes` is None the first two axes are used, or the only axis of a
    one-axis component.

    Returns
    -------
    ranked : list of (identifier, score)
        The top `n` entities, descending; ties keep the original
        row/column order.
    """
    if axes is None:
        available = _select_component(result, component).d.shape[0]
        axes = list(range(1, min(2, available) + 1))
    scores = extract_scores(
        result, entity=entity, scaling=scaling, axes=axes, component=component
    )
    metric = np.mean(np.abs(scores.to_numpy()), axis=1)
    order = np.argsort(-metric, kind="stable")[: max(int(n), 0)]
    return [(scores.index[i], float(metric[i])) for i in order]
