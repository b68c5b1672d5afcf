import functools
import logging
from time import process_time

LOGGER = logging.getLogger(__name__)


def proctimer(fct):
    """Function wrapper that times runtime (without sleeps) of input
    function. Returns value of function passed into wrapper and
    additionally logs the process time of the function at DEBUG level.

    Parameters
    ----------
    fct : function
          Function with arbitrary number of arguments.

    Returns
    -------
    res : arbitrary
          Return value of function `fct` passed into wrapper.
    """

    @functools.wraps(fct)
    def wrap_timer(*args, **kwargs):
        start = process_time()
        res = fct(*args, **kwargs)
        end = process_time()
        LOGGER.debug("%s finished in %.4f seconds", fct.__name__, end - start)
        return res

    return wrap_timer
