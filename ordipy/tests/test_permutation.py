import threading

import numpy as np
import ordipy
import pandas as pd
import pytest
from ordipy.core import resample

rand_s = np.random.RandomState(950613)

n, p = 20, 5
index = [f"s{i}" for i in range(n)]
group = np.array([0.0] * 10 + [1.0] * 10)
Y = pd.DataFrame(rand_s.rand(n, p) + 0.1, index=index)
X = pd.DataFrame({"group": group}, index=index)
Z = pd.DataFrame({"block": np.tile([0.0, 1.0], n // 2)}, index=index)

Y_shift = Y.copy()
Y_shift.loc[group == 1.0] += 5.0

res = ordipy.build_ordination(Y, X=X)
res_partial = ordipy.build_ordination(Y, X=X, Z=Z)


def test_reproducible_with_seed():
    a = ordipy.permutation_test(res, n_permutations=99, seed=42)
    b = ordipy.permutation_test(res, n_permutations=99, seed=42)
    assert np.array_equal(a.F_perm, b.F_perm)
    assert a.p_val == b.p_val
    assert a.seed == 42
    assert a.n_permutations == 99
    assert a.complete


def test_p_value_range():
    for n_perm in (1, 9, 99):
        test = ordipy.permutation_test(res, n_permutations=n_perm, seed=1)
        assert 1 / (n_perm + 1) <= test.p_val <= 1.0
        assert test.F_perm.shape == (n_perm,)


def test_observed_statistic():
    test = ordipy.permutation_test(res, n_permutations=9, seed=0)
    ss_con = res.inertia["constrained"]
    ss_res = res.inertia["unconstrained"]
    assert np.isclose(test.F_stat, (ss_con / 1) / (ss_res / (n - 2)))
    assert (test.num_df, test.denom_df) == (1, n - 2)
    pd.testing.assert_frame_equal(
        test.fitted + test.residuals, res.scaled_matrix, check_names=False
    )


def test_strong_effect_is_significant():
    shifted = ordipy.build_ordination(Y_shift, X=X)
    test = ordipy.permutation_test(shifted, n_permutations=199, seed=42)
    assert test.p_val < 0.05


def test_identity_permutations_match_observed():
    matrix = np.tile(np.arange(n), (4, 1))
    test = ordipy.permutation_test(res_partial, scheme=matrix)
    assert test.n_permutations == 4
    assert np.allclose(test.F_perm, test.F_stat)
    assert test.p_val == 1.0


def test_permutation_matrix_shape():
    with pytest.raises(ordipy.ShapeError):
        ordipy.permutation_test(res, scheme=np.tile(np.arange(n - 1), (3, 1)))
    bad = np.tile(np.arange(n), (3, 1))
    bad[0, 0] = 1
    with pytest.raises(ValueError):
        ordipy.permutation_test(res, scheme=bad)


def test_callable_scheme_matches_free():
    free = ordipy.permutation_test(res, n_permutations=19, seed=3)
    gen = ordipy.permutation_test(
        res, scheme=lambda size, rng: rng.permutation(size), n_permutations=19, seed=3
    )
    assert np.array_equal(free.F_perm, gen.F_perm)


def test_custom_scheme_instance():
    class Reversal(ordipy.PermutationScheme):
        def __init__(self, n):
            self.n = n

        def draw(self, rng):
            return np.arange(self.n)[::-1]

    test = ordipy.permutation_test(res, scheme=Reversal(n), n_permutations=5)
    assert test.n_permutations == 5
    assert np.allclose(test.F_perm, test.F_perm[0])
    with pytest.raises(ordipy.ShapeError):
        ordipy.permutation_test(res, scheme=Reversal(n + 1), n_permutations=5)


def test_strata_permutations_stay_within_strata():
    labels = Z["block"].to_numpy()
    scheme = resample.make_scheme("strata", n, strata=labels)
    perms = scheme.permutations(50, np.random.default_rng(7))
    for row in perms:
        assert np.array_equal(labels[row], labels)
        assert np.array_equal(np.sort(row), np.arange(n))


def test_strata_from_partial_covariates():
    test = ordipy.permutation_test(
        res_partial, scheme="strata", n_permutations=49, seed=5
    )
    assert test.scheme == "strata"
    assert 0 < test.p_val <= 1.0

    explicit = ordipy.permutation_test(
        res_partial,
        scheme="strata",
        strata=pd.Series(Z["block"].to_numpy(), index=index).iloc[::-1],
        n_permutations=49,
        seed=5,
    )
    assert np.allclose(explicit.F_perm, test.F_perm)


def test_strata_needs_labels():
    with pytest.raises(ValueError):
        ordipy.permutation_test(res, scheme="strata", n_permutations=9)
    with pytest.raises(ValueError):
        ordipy.permutation_test(res, scheme="blocks", n_permutations=9)


def test_threads_match_serial():
    serial = ordipy.permutation_test(res_partial, n_permutations=101, seed=11)
    threaded = ordipy.permutation_test(
        res_partial, n_permutations=101, seed=11, n_jobs=3
    )
    assert np.array_equal(serial.F_perm, threaded.F_perm)
    assert serial.p_val == threaded.p_val


def test_cancel_event():
    event = threading.Event()
    event.set()
    test = ordipy.permutation_test(res, n_permutations=99, seed=1, cancel=event)
    assert test.n_permutations == 0
    assert not test.complete
    assert test.p_val == 1.0


def test_cancel_callable_partial_result():
    calls = []

    def stop():
        calls.append(1)
        return len(calls) > 10

    test = ordipy.permutation_test(res, n_permutations=99, seed=1, cancel=stop)
    assert test.n_permutations == 10
    assert not test.complete
    full = ordipy.permutation_test(res, n_permutations=99, seed=1)
    assert np.array_equal(test.F_perm, full.F_perm[:10])


def test_time_budget_exhausted():
    test = ordipy.permutation_test(res, n_permutations=99, seed=1, time_budget=0)
    assert test.n_permutations == 0
    assert not test.complete


def test_requires_constraints():
    with pytest.raises(ordipy.UnconstrainedError):
        ordipy.permutation_test(ordipy.build_ordination(Y))
    with pytest.raises(ValueError):
        ordipy.permutation_test(res, n_permutations=0)


def test_weighted_partial_test():
    weighted = ordipy.build_ordination(Y, X=X, Z=Z, weight_rows=True, weight_columns=True)
    test = ordipy.permutation_test(weighted, n_permutations=49, seed=2)
    assert test.F_stat > 0
    assert 1 / 50 <= test.p_val <= 1.0


def test_result_tables_are_copies():
    own = ordipy.build_ordination(Y, X=X)
    test = ordipy.permutation_test(own, n_permutations=9, seed=0)
    assert test.fitted is not own.constrained.fitted_values
    expected = own.constrained.fitted_values.copy()
    test.fitted.iloc[0, 0] = 99.0
    pd.testing.assert_frame_equal(own.constrained.fitted_values, expected)
