"""
_context.py
===========
Context managers for phylotrace.

Provides clean, Pythonic context managers for temporarily changing logging
state.  Both restore the previous level on exit, even if an exception is
raised inside the block.
"""

import logging
from contextlib import contextmanager


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Temporarily change a logger's level.

    Useful for silencing one part of the package, e.g. the per-tree summary
    lines while parsing thousands of posterior trees.

    Parameters
    ----------
    logger_name : str
        Name of the logger, e.g. ``'phylotrace.tree'`` or
        ``'phylotrace.convergence'``.
    level : int, default logging.CRITICAL
        Temporary logging level.

    Yields
    ------
    None

    Examples
    --------
    >>> with suppress_logger('phylotrace.tree'):
    ...     trees = [parse_tree(nwk) for nwk in newicks]

    >>> with suppress_logger('phylotrace.convergence', logging.ERROR):
    ...     report = ConvergenceAnalyzer().diagnose(table)
    """
    logger = logging.getLogger(logger_name)
    original_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(original_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Temporarily suppress all phylotrace logging.

    Sets the level of the package root logger ``'phylotrace'``; child
    loggers without an explicit level of their own inherit it.

    Examples
    --------
    >>> with quiet():
    ...     table = read_trace("run1.log", delimiter="\\t")

    >>> with quiet(logging.WARNING):
    ...     tree = read_tree("mcc.tree")
    """
    with suppress_logger("phylotrace", level):
        yield
