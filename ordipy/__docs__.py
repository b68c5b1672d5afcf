"""
File containing docstrings for various methods, modules, and files
in ordipy. Can be combined as needed to make full docstrings for
functions and modules.
"""

ordipy_header = """
ordipy
======

ordipy performs partial, constrained and weighted ordination of a data
matrix (rows = observational units, columns = features). PCA, redundancy
analysis, correspondence/log-ratio analysis and their partialled,
constrained and weighted variants are all run through one weighted
decomposition.

In addition to the `build_ordination` entry point, this package contains
the following modules:

weighting
    row/column weight resolution and weighted centring
residualize
    weighted least-squares fits used for partialling and constraining
gsvd
    Generalized SVD under row and column weights
ordination
    the ordination builder and result records
scores
    row, column, centroid and biplot scores under a chosen scaling
resample
    permutation schemes used by the permutation test
permutation
    the permutation test of the constrained component
exceptions
    Houses custom exceptions used within ordipy
io
    conversion of results to tables and .npz archives

"""


ordipy_body = """
Basic usage examples:

    Y is a DataFrame of (already transformed) data with rows keyed by
    unit identifier. X (constraining) and Z (partialling) are numeric
    DataFrames keyed by the same identifiers; categorical variables are
    passed as dummy (0/1) columns.

    PCA:

        >>> res = ordipy.build_ordination(Y)

    Redundancy analysis:

        >>> res = ordipy.build_ordination(Y, X=X)

    Partial redundancy analysis:

        >>> res = ordipy.build_ordination(Y, X=X, Z=Z)

    Weighted log-ratio analysis of a positive composition P, with row
    and column masses taken from P itself:

        >>> P = P / P.to_numpy().sum()
        >>> wm = ordipy.WeightedMatrix(np.log(P), P.sum(axis=1), P.sum(axis=0))
        >>> res = ordipy.build_ordination(wm, double_center=True)

    Scores and significance of a constrained ordination:

        >>> res = ordipy.build_ordination(Y, X=X)
        >>> rows = ordipy.extract_scores(res, "row", "principle", axes=[1])
        >>> ordipy.top_features(res, 10, "column", "contribution")
        >>> test = ordipy.permutation_test(res, n_permutations=999, seed=42)
        >>> test.p_val

To get help documentation on a function, type the following in a Python
interpreter after loading the module:
    >>> import ordipy
    >>> help(ordipy.build_ordination)

"""

build_ordination_header = """
Builds a (partial, constrained, weighted) ordination of `Y`.

Y is weighted and centred, Z (if given) is regressed out, the result is
split into the part fitted by X (if given) and the residual, and both
parts are decomposed by a generalized SVD under the same row and column
weights.

Parameters
----------
Y : pd.DataFrame, array-like or WeightedMatrix
    Input matrix with at least 2 rows and 2 columns. A WeightedMatrix
    carries the weights of an external weighted transform.
X : pd.DataFrame or array-like, optional
    Constraining covariates, rows keyed by unit identifier.
Z : pd.DataFrame or array-like, optional
    Partialling covariates, rows keyed by unit identifier.
weight_rows : boolean, optional
    Weight rows by their mass (row sum / total). Defaults to False
    (uniform 1/n).
weight_columns : boolean, optional
    Weight columns by their mass (column sum / total). Defaults to False
    (unweighted columns).
row_weights, col_weights : array-like or pd.Series, optional
    Explicit weights. A Series is aligned by identifier.
vegan_compatible : boolean, optional
    Normalise row weights by (n-1) rather than n, matching the scale of
    vegan's singular values. Defaults to False.
double_center : boolean, optional
    Also remove weighted row means (log-ratio centring). Defaults to
    False.
exact_rank : boolean, optional
    Raise RankDeficiencyError for rank-deficient X or Z instead of
    fitting a reduced-rank solution. Defaults to False.

Returns
-------
result : OrdinationResult
    Immutable record of the weighted matrix, weights, decompositions,
    degrees of freedom, inertia and call metadata.

Raises
------
ShapeError
    Y has fewer than 2 rows or columns, or a weight vector has the
    wrong length.
AlignmentError
    X or Z has no row for some unit of Y.
ZeroMassError
    Degenerate weights.
"""
