import numpy as np
import ordipy
import pytest
from ordipy.core import gsvd

rand_s = np.random.RandomState(950613)

A = rand_s.rand(15, 6) - 0.5
M = rand_s.rand(15) + 0.1
W = rand_s.rand(6) + 0.1


def test_reconstruction():
    U, S, V = gsvd.gsvd(A, M, W)
    assert np.allclose(U @ np.diag(S) @ V.T, A)


def test_weighted_orthonormality():
    U, S, V = gsvd.gsvd(A, M, W)
    assert np.allclose(U.T @ np.diag(M) @ U, np.eye(S.shape[0]))
    assert np.allclose(V.T @ np.diag(W) @ V, np.eye(S.shape[0]))


def test_singular_values_descending():
    S = gsvd.gsvd(A, M, W, compute_uv=False)
    assert S.shape == (6,)
    assert np.all(S >= 0)
    assert np.all(np.diff(S) <= 0)


def test_identity_metric_matches_svd():
    S = gsvd.gsvd(A, compute_uv=False)
    assert np.allclose(S, np.linalg.svd(A, compute_uv=False))


def test_n_axes_truncation():
    U, S, V = gsvd.gsvd(A, M, W, n_axes=2)
    assert U.shape == (15, 2)
    assert V.shape == (6, 2)
    assert np.allclose(S, gsvd.gsvd(A, M, W, compute_uv=False)[:2])


def test_sign_convention_deterministic():
    U1, S1, V1 = gsvd.gsvd(A, M, W)
    U2, S2, V2 = gsvd.gsvd(A.copy(), M.copy(), W.copy())
    assert np.array_equal(U1, U2)
    assert np.array_equal(V1, V2)
    # largest-magnitude entry of each left vector is positive
    scaled = U1 * np.sqrt(M)[:, np.newaxis]
    pivots = np.argmax(np.abs(scaled), axis=0)
    assert np.all(scaled[pivots, np.arange(scaled.shape[1])] > 0)


def test_zero_weight_rows():
    M0 = M.copy()
    M0[0] = 0.0
    U, S, V = gsvd.gsvd(A, M0, W)
    assert np.all(U[0] == 0.0)


def test_dimension_mismatch():
    with pytest.raises(ordipy.ShapeError):
        gsvd.gsvd(A, M[:-1], W)
    with pytest.raises(ordipy.ShapeError):
        gsvd.gsvd(A, M, W[:-1])
    with pytest.raises(ordipy.ShapeError):
        gsvd.gsvd(A.reshape(-1))


def test_negative_weights():
    with pytest.raises(ordipy.ZeroMassError):
        gsvd.gsvd(A, -M, W)
