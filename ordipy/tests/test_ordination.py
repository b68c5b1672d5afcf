import numpy as np
import ordipy
import pandas as pd
import pytest
from ordipy.core import ordination

rand_s = np.random.RandomState(950613)

n, p = 20, 5
index = [f"s{i}" for i in range(n)]
columns = [f"f{j}" for j in range(p)]
Y = pd.DataFrame(rand_s.rand(n, p) + 0.1, index=index, columns=columns)
X = pd.DataFrame(
    {"group": [0.0] * 10 + [1.0] * 10, "gradient": rand_s.rand(n)}, index=index
)
Z = pd.DataFrame({"site": rand_s.rand(n)}, index=index)


def test_pca_equivalence():
    res = ordipy.build_ordination(Y)
    eig = np.sort(np.linalg.eigvalsh(np.cov(Y.to_numpy().T, bias=True)))[::-1]
    assert np.allclose(res.unconstrained.d ** 2, eig)
    assert res.constrained is None
    assert res.degrees_of_freedom.num_df == 0
    assert res.degrees_of_freedom.denom_df == n - 1


def test_pca_equivalence_vegan_scale():
    res = ordipy.build_ordination(Y, vegan_compatible=True)
    eig = np.sort(np.linalg.eigvalsh(np.cov(Y.to_numpy().T)))[::-1]
    assert np.allclose(res.unconstrained.d ** 2, eig)


def test_small_matrix_axes():
    Y_small = rand_s.rand(10, 5)
    res = ordipy.build_ordination(Y_small)
    d = res.unconstrained.d
    assert d.shape == (5,)
    assert d[0] > 0
    assert np.all(np.diff(d) <= 0)
    assert list(res.unconstrained.u.columns) == [f"Axis{i}" for i in range(1, 6)]


def test_scaled_matrix_is_weighted_centred():
    res = ordipy.build_ordination(Y, weight_rows=True, weight_columns=True)
    w = res.row_weights.to_numpy()
    assert np.isclose(w.sum(), 1.0)
    assert np.allclose(w @ res.scaled_matrix.to_numpy(), 0.0)
    U = res.unconstrained.u.to_numpy()
    assert np.allclose(U.T @ np.diag(w) @ U, np.eye(U.shape[1]))


def test_deterministic():
    a = ordipy.build_ordination(Y, X=X, Z=Z, weight_rows=True)
    b = ordipy.build_ordination(Y, X=X, Z=Z, weight_rows=True)
    for comp in ("constrained", "unconstrained"):
        da, db = getattr(a, comp), getattr(b, comp)
        assert np.array_equal(da.d, db.d)
        assert np.array_equal(da.u.to_numpy(), db.u.to_numpy())
        assert np.array_equal(da.v.to_numpy(), db.v.to_numpy())


def test_inputs_untouched_and_results_read_only():
    before = Y.copy()
    res = ordipy.build_ordination(Y, X=X)
    pd.testing.assert_frame_equal(Y, before)
    with pytest.raises(ValueError):
        res.unconstrained.d[0] = 1.0


def test_constrained_degrees_of_freedom_and_axes():
    res = ordipy.build_ordination(Y, X=X)
    assert res.degrees_of_freedom.num_df == 2
    assert res.degrees_of_freedom.denom_df == n - 1 - 2
    assert res.constrained.d.shape == (2,)
    assert res.unconstrained.d.shape == (p,)
    pd.testing.assert_frame_equal(res.covariates, X)


def test_partial_degrees_of_freedom():
    res = ordipy.build_ordination(Y, X=X, Z=Z)
    assert res.degrees_of_freedom.num_df == 2
    assert res.degrees_of_freedom.denom_df == n - 1 - 1 - 2
    # the constraining table is X with Z regressed out
    w = res.row_weights.to_numpy()
    Zc = np.column_stack([np.ones(n), Z.to_numpy()])
    assert np.allclose((Zc * w[:, np.newaxis]).T @ res.constraints.to_numpy(), 0.0)


def test_unconstrained_axes_orthogonal_to_z():
    res = ordipy.build_ordination(Y, X=X, Z=Z)
    w = res.row_weights.to_numpy()
    U = res.unconstrained.u.to_numpy()
    assert np.allclose(Z.to_numpy().T @ (U * w[:, np.newaxis]), 0.0)


def test_inertia_partition():
    res = ordipy.build_ordination(Y, X=X)
    inertia = res.inertia
    assert np.isclose(inertia["constrained"] + inertia["unconstrained"], inertia["total"])
    assert inertia["conditioned"] == 0.0
    assert np.isclose(inertia["constrained"], np.sum(res.constrained.d ** 2))
    assert np.isclose(inertia["unconstrained"], np.sum(res.unconstrained.d ** 2))

    res = ordipy.build_ordination(Y, X=X, Z=Z)
    inertia = res.inertia
    assert inertia["conditioned"] > 0
    assert np.isclose(
        inertia["conditioned"] + inertia["constrained"] + inertia["unconstrained"],
        inertia["total"],
    )


def test_covariates_aligned_by_identifier():
    a = ordipy.build_ordination(Y, X=X)
    b = ordipy.build_ordination(Y, X=X.iloc[::-1])
    assert np.allclose(a.constrained.d, b.constrained.d)

    with pytest.raises(ordipy.AlignmentError):
        ordipy.build_ordination(Y, X=X.drop(index="s3"))


def test_rank_deficient_constraints():
    X_def = X.copy()
    X_def["copy"] = X_def["gradient"] * 2.0
    res = ordipy.build_ordination(Y, X=X_def)
    assert res.degrees_of_freedom.num_df == 2
    assert res.constrained.d.shape == (2,)

    with pytest.raises(ordipy.RankDeficiencyError):
        ordipy.build_ordination(Y, X=X_def, exact_rank=True)


def test_too_small_input():
    with pytest.raises(ordipy.ShapeError):
        ordipy.build_ordination(rand_s.rand(1, 5))
    with pytest.raises(ordipy.ShapeError):
        ordipy.build_ordination(rand_s.rand(5, 1))


def test_missing_values_rejected():
    Y_na = Y.copy()
    Y_na.iloc[0, 0] = np.nan
    with pytest.raises(ValueError):
        ordipy.build_ordination(Y_na)


def test_double_center_drops_one_axis():
    res = ordipy.build_ordination(np.log(Y), double_center=True)
    assert res.unconstrained.d.shape == (p - 1,)
    assert np.allclose(res.scaled_matrix.to_numpy().sum(axis=1), 0.0)
    assert res.call_metadata["double_center"] is True


def test_precomputed_weights():
    r = rand_s.rand(n) + 0.1
    c = rand_s.rand(p) + 0.1
    res = ordipy.build_ordination(ordipy.WeightedMatrix(Y, r, c))
    assert res.call_metadata["row_weighting"] == "precomputed"
    assert res.call_metadata["col_weighting"] == "precomputed"
    assert np.allclose(res.row_weights.to_numpy(), r / r.sum())
    assert np.allclose(res.col_weights.to_numpy(), c)


def test_call_metadata():
    res = ordipy.build_ordination(Y, X=X, weight_rows=True)
    meta = res.call_metadata
    assert meta["row_weighting"] == "marginal"
    assert meta["col_weighting"] == "uniform"
    assert meta["has_x"] is True
    assert meta["has_z"] is False
    assert (meta["n_rows"], meta["n_cols"]) == (n, p)


def test_builder_stage_order():
    builder = ordination.OrdinationBuilder(Y, X=X)
    with pytest.raises(RuntimeError):
        builder.constrain()
    builder.weight()
    with pytest.raises(ValueError):
        builder.partial()
    builder.constrain().decompose()
    with pytest.raises(RuntimeError):
        builder.decompose()
    res = builder.build()
    assert res.constrained is not None


def test_variance_explained():
    res = ordipy.build_ordination(Y, X=X)
    table = ordipy.variance_explained(res)
    assert list(table.columns) == [
        "component",
        "axis",
        "eigenvalue",
        "proportion",
        "cumulative",
    ]
    assert list(table["component"]).count("constrained") == 2
    assert np.isclose(table["proportion"].sum(), 1.0)
    assert np.isclose(table["cumulative"].iloc[-1], 1.0)


def test_constrained_r_squared():
    res = ordipy.build_ordination(Y, X=X)
    r2 = ordipy.constrained_r_squared(res)
    expected = res.inertia["constrained"] / res.inertia["total"]
    assert np.isclose(r2["r_squared"], expected)
    assert np.isclose(
        r2["adj_r_squared"], 1 - (1 - expected) * (n - 1) / (n - 1 - 2)
    )
    with pytest.raises(ordipy.UnconstrainedError):
        ordipy.constrained_r_squared(ordipy.build_ordination(Y))


def test_results_do_not_share_state():
    res = ordipy.build_ordination(Y, X=X, Z=Z)
    with pytest.raises(TypeError):
        res.call_metadata["has_x"] = False
    with pytest.raises(TypeError):
        res.inertia["total"] = 0.0

    builder = ordination.OrdinationBuilder(Y, X=X, Z=Z)
    first = builder.build()
    second = builder.build()
    matrix, constraints = second.scaled_matrix.copy(), second.constraints.copy()
    fitted = second.constrained.fitted_values.copy()
    first.scaled_matrix.iloc[0, 0] = 99.0
    first.constraints.iloc[0, 0] = 99.0
    first.constrained.fitted_values.iloc[0, 0] = 99.0
    pd.testing.assert_frame_equal(second.scaled_matrix, matrix)
    pd.testing.assert_frame_equal(second.constraints, constraints)
    pd.testing.assert_frame_equal(second.constrained.fitted_values, fitted)


def test_weighted_log_ratio_with_composition_masses():
    P = Y / Y.to_numpy().sum()
    wm = ordipy.WeightedMatrix(np.log(P), P.sum(axis=1), P.sum(axis=0))
    res = ordipy.build_ordination(wm, double_center=True)
    r = res.row_weights.to_numpy()
    c = res.col_weights.to_numpy()
    assert np.allclose(r, P.sum(axis=1).to_numpy())
    assert np.allclose(r @ res.scaled_matrix.to_numpy(), 0.0)
    assert np.allclose(res.scaled_matrix.to_numpy() @ c, 0.0)
    assert res.unconstrained.d.shape == (p - 1,)
