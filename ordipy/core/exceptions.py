# define exceptions for error handling


class Error(Exception):
    """Base class for the following exceptions."""

    pass


class ShapeError(Error):
    """Exception raised when a matrix, weight vector or permutation
    matrix does not have the dimensions the operation requires.
    """

    pass


class AlignmentError(Error):
    """Exception raised when unit identifiers of a matrix and a
    covariate, grouping or strata table cannot be matched.
    """

    pass


class ZeroMassError(Error):
    """Raised when weights are negative, all zero, or when a row/column
    has zero mass under marginal weighting.
    """

    pass


class RankDeficiencyError(Error):
    """Raised when exact rank is requested and a covariate table is
    rank-deficient.
    """

    pass


class AxisRangeError(Error):
    """Raised when a requested axis exceeds the computed rank."""

    pass


class UnconstrainedError(Error):
    """Raised when an operation needs a constrained component that the
    ordination does not have.
    """

    pass


class CategoricalError(Error):
    """Raised when centroids are requested but the constraining table
    has no dummy-coded columns.
    """

    pass
