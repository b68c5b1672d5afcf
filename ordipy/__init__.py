import logging
import sys

from . import __docs__
from .core import (
    class_functions,
    decorators,
    exceptions,
    gsvd,
    ordination,
    permutation,
    resample,
    residualize,
    scores,
    weighting,
)
from .core.exceptions import (
    AlignmentError,
    AxisRangeError,
    CategoricalError,
    RankDeficiencyError,
    ShapeError,
    UnconstrainedError,
    ZeroMassError,
)
from .core.ordination import (
    OrdinationResult,
    build_ordination,
    constrained_r_squared,
    variance_explained,
)
from .core.permutation import PermutationResult, permutation_test
from .core.resample import PermutationScheme
from .core.scores import Entity, Scaling, extract_scores, rescale_scores, top_features
from .core.weighting import WeightedMatrix, WeightMode
from .io import io

# __init__.py docstring assembled using blocks also used in
# other files. Docstrings found in __docs__.py
sys.modules[__name__].__doc__ = __docs__.ordipy_header
sys.modules[__name__].__doc__ += __docs__.ordipy_body

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
