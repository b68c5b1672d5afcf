import abc

import numpy as np
import pandas as pd

from . import exceptions


def _check_permutation(indices, n):
    """Validates that `indices` is a permutation of range(`n`)."""
    indices = np.asarray(indices)
    if indices.shape != (n,):
        raise exceptions.ShapeError(
            f"Permutation has shape {indices.shape}, expected ({n},)."
        )
    if not np.array_equal(np.sort(indices), np.arange(n)):
        raise ValueError("Permutation indices must be a reordering of range(n).")
    return indices.astype(np.intp)


class PermutationScheme(abc.ABC):
    """Abstract base class and factory for permutation schemes. Registers
    and keeps track of the named schemes, and defines the interface a
    caller-supplied scheme has to implement: `draw(rng)` returns one
    permutation of the `n` row indices.
    """

    # tracks registered PermutationScheme subclasses
    _subclasses = {}

    n = 0

    @abc.abstractmethod
    def draw(self, rng):
        pass

    def permutations(self, n_perm, rng):
        """Draws `n_perm` permutations in sequence from `rng` and returns
        them as rows of an (`n_perm`, `n`) index matrix.
        """
        out = np.empty((n_perm, self.n), dtype=np.intp)
        for i in range(n_perm):
            out[i] = self.draw(rng)
        return out

    def __repr__(self):
        return f"{type(self).__name__}(n={self.n})"

    # register valid decorated scheme as a subclass of PermutationScheme
    @classmethod
    def _register_subclass(cls, scheme):
        def decorator(subclass):
            cls._subclasses[scheme] = subclass
            return subclass

        return decorator

    # instantiate and return valid registered scheme specified by user
    @classmethod
    def _create(cls, scheme, *args, **kwargs):
        if scheme not in cls._subclasses:
            raise ValueError(
                f"Invalid permutation scheme {scheme}; choose one of "
                f"{sorted(cls._subclasses)} or pass a PermutationScheme, "
                "a callable or a permutation matrix."
            )
        return cls._subclasses[scheme](*args, **kwargs)


@PermutationScheme._register_subclass("free")
class _FreePermutation(PermutationScheme):
    """Permutes all rows freely."""

    def __init__(self, n, strata=None):
        self.n = n

    def draw(self, rng):
        return rng.permutation(self.n)


@PermutationScheme._register_subclass("strata")
@PermutationScheme._register_subclass("strata-restricted")
class _StrataPermutation(PermutationScheme):
    """Permutes rows only within strata; rows never leave their stratum.

    Parameters
    ----------
    n : int
        Number of rows.
    strata : array-like
        One stratum label per row.
    """

    def __init__(self, n, strata=None):
        if strata is None:
            raise ValueError(
                "Strata-restricted permutation needs strata: pass `strata` "
                "or supply Z with dummy-coded columns."
            )
        labels = np.asarray(strata).reshape(-1)
        if labels.shape[0] != n:
            raise exceptions.ShapeError(
                f"Strata have {labels.shape[0]} labels, expected {n}."
            )
        self.n = n
        self.groups = [np.nonzero(labels == lev)[0] for lev in pd.unique(labels)]

    def draw(self, rng):
        indices = np.arange(self.n)
        for members in self.groups:
            indices[members] = members[rng.permutation(members.shape[0])]
        return indices

    def __repr__(self):
        return f"{type(self).__name__}(n={self.n}, strata={len(self.groups)})"


class _CallableScheme(PermutationScheme):
    """Wraps a caller-supplied generator `fn(n, rng)` that returns one
    permutation per call.
    """

    def __init__(self, n, generator):
        self.n = n
        self.generator = generator

    def draw(self, rng):
        return _check_permutation(self.generator(self.n, rng), self.n)


class _FixedPermutations(PermutationScheme):
    """Replays an explicit (N, n) matrix of permutations; each row is
    one trial.
    """

    def __init__(self, n, matrix):
        matrix = np.asarray(matrix)
        if matrix.ndim != 2 or matrix.shape[1] != n:
            raise exceptions.ShapeError(
                f"Permutation matrix has shape {matrix.shape}, expected (N, {n})."
            )
        self.n = n
        self.matrix = np.vstack([_check_permutation(row, n) for row in matrix])
        self._next = 0

    def draw(self, rng):
        row = self.matrix[self._next % self.matrix.shape[0]]
        self._next += 1
        return row

    def permutations(self, n_perm, rng):
        return self.matrix


def make_scheme(scheme, n, strata=None):
    """Resolves the `scheme` argument of a permutation test.

    Parameters
    ----------
    scheme : str, PermutationScheme, callable or array-like
        A registered scheme name ("free", "strata"), a PermutationScheme
        instance, a generator `fn(n, rng)` returning one permutation, or
        an explicit (N, n) matrix of permutations.
    n : int
        Number of rows being permuted.
    strata : array-like, optional
        Stratum label per row, for strata-restricted permutation.

    Returns
    -------
    scheme : PermutationScheme
    """
    if isinstance(scheme, PermutationScheme):
        if scheme.n != n:
            raise exceptions.ShapeError(
                f"Permutation scheme is for {scheme.n} rows, expected {n}."
            )
        return scheme
    if isinstance(scheme, str):
        return PermutationScheme._create(scheme, n, strata=strata)
    if callable(scheme):
        return _CallableScheme(n, scheme)
    if np.ndim(scheme) == 2:
        return _FixedPermutations(n, scheme)
    raise ValueError(f"Invalid permutation scheme {scheme!r}")
