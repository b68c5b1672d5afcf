import numpy as np
import scipy.linalg

from . import exceptions


def _svd(A):
    """Thin SVD through LAPACK's divide-and-conquer driver, falling back
    to the slower but more robust QR-iteration driver if it does not
    converge.
    """
    try:
        return scipy.linalg.svd(
            A, full_matrices=False, lapack_driver="gesdd", check_finite=False
        )
    except np.linalg.LinAlgError:
        return scipy.linalg.svd(
            A, full_matrices=False, lapack_driver="gesvd", check_finite=False
        )


def _inverse_scale(vectors, root_weights):
    # rows with zero weight carry no information; leave them at 0
    out = np.zeros_like(vectors)
    np.divide(
        vectors,
        root_weights[:, np.newaxis],
        out=out,
        where=root_weights[:, np.newaxis] > 0,
    )
    return out


def gsvd(A, M=None, W=None, n_axes=None, compute_uv=True):
    """Performs Generalized Singular Value Decomposition given an
    input matrix `A`, row weights `M` and column weights `W`.

    `A` is transformed into `Ahat = diag(M)^(1/2) A diag(W)^(1/2)`, an
    ordinary SVD `Ahat = U diag(S) Vt` is taken, and the generalized
    singular vectors are recovered as `Uhat = diag(M)^(-1/2) U` and
    `Vhat = diag(W)^(-1/2) Vt^T`. They satisfy
    `Uhat^T diag(M) Uhat = I`, `Vhat^T diag(W) Vhat = I` and, when all
    axes are kept, `A = Uhat diag(S) Vhat^T`.

    Parameters
    ----------
    A : array_like
        Input matrix of dimension `m` x `n`
    M : array_like, optional
        Row weights (length `m`). Defaults to ones.
    W : array_like, optional
        Column weights (length `n`). Defaults to ones.
    n_axes : int, optional
        Number of leading axes to keep. Defaults to min(`m`, `n`).
        Axes with negligible singular values are kept, not dropped.
    compute_uv : boolean
        Whether to compute the singular vectors or only the singular
        values.

    Returns
    -------
    Uhat: np_array
          Generalized left singular vectors, one column per axis
    S: np_array
       Singular values, non-negative and in descending order
    Vhat: np_array
          Generalized right singular vectors, one column per axis
    """
    A = np.asarray(A, dtype=np.float64)
    if A.ndim != 2:
        raise exceptions.ShapeError(
            f"Input matrix must be 2-dimensional, got {A.ndim} dimensions."
        )
    # if no M/W specified, use identity metric
    M = np.ones(A.shape[0]) if M is None else np.asarray(M, dtype=np.float64).reshape(-1)
    W = np.ones(A.shape[1]) if W is None else np.asarray(W, dtype=np.float64).reshape(-1)

    # handle dimension mismatches of input matrices
    if M.shape[0] != A.shape[0]:
        raise exceptions.ShapeError(
            f"Dimension of M {M.shape} doesn't match "
            f"number of rows of A ({A.shape[0]})"
        )
    if W.shape[0] != A.shape[1]:
        raise exceptions.ShapeError(
            f"Dimension of W {W.shape} doesn't match "
            f"number of columns of A ({A.shape[1]})"
        )
    if np.any(M < 0) or np.any(W < 0):
        raise exceptions.ZeroMassError("Row and column weights must be non-negative.")

    Mexp = np.sqrt(M)
    Wexp = np.sqrt(W)

    # create A-hat according to formula:
    Ahat = Mexp[:, np.newaxis] * A * Wexp[np.newaxis, :]

    U, S, Vt = _svd(Ahat)

    k = S.shape[0] if n_axes is None else max(0, min(int(n_axes), S.shape[0]))
    U, S, Vt = U[:, :k], S[:k], Vt[:k, :]

    if not compute_uv:
        return S

    # correct sign per axis so the largest-magnitude entry of U is positive
    if k > 0:
        pivots = np.argmax(np.abs(U), axis=0)
        sign = np.sign(U[pivots, np.arange(k)])
        sign[sign == 0] = 1.0
        U = U * sign
        Vt = Vt * sign[:, np.newaxis]

    # obtain matrices of generalized singular vectors
    Uhat = _inverse_scale(U, Mexp)
    Vhat = _inverse_scale(Vt.T, Wexp)

    return (Uhat, S, Vhat)
