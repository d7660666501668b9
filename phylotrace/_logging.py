"""
_logging.py
===========
Logging functions for phylotrace.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
- Clear boundaries between analysis and reporting

Every message goes to the logger of the module that owns the concern, all
under the ``phylotrace`` hierarchy, so ``logging.getLogger('phylotrace')``
controls the whole package.  No handlers are installed here.
"""

import logging
from typing import Dict, List, Optional


tree_logger = logging.getLogger("phylotrace.tree")
trace_logger = logging.getLogger("phylotrace.trace")
convergence_logger = logging.getLogger("phylotrace.convergence")
clade_logger = logging.getLogger("phylotrace.clades")


# ============================================================================ #
# Tree Logging (called during parsing and time-scaling)
# ============================================================================ #


def log_tree_statistics(
    n_nodes: int,
    n_tips: int,
    n_annotated: int,
    tree_height: float,
    n_multifurcating: int,
) -> None:
    """
    Log a one-line summary of a freshly parsed tree.

    Parameters
    ----------
    n_nodes : int
        Total number of nodes.
    n_tips : int
        Number of tips.
    n_annotated : int
        Number of nodes carrying at least one annotation.
    tree_height : float
        Maximum root-to-tip branch length.
    n_multifurcating : int
        Number of internal nodes with more than two children.
    """
    tree_logger.info(
        "Tree parsed: %d tips, %d nodes, height %.6g, %d annotated node(s)",
        n_tips,
        n_nodes,
        tree_height,
        n_annotated,
    )
    if n_multifurcating:
        tree_logger.info("  %d multifurcating node(s) kept as-is", n_multifurcating)


def log_negative_branches(node_ids: List[int]) -> None:
    """Warn about negative branch lengths, listing at most five node IDs."""
    if not node_ids:
        return
    shown = ", ".join(map(str, node_ids[:5]))
    if len(node_ids) > 5:
        shown += ", ..."
    tree_logger.warning(
        "%d negative branch length(s) (node IDs: %s). Dates derived from "
        "this tree may not be monotone along root-to-tip paths.",
        len(node_ids),
        shown,
    )


def log_nexus_translation(n_entries: int, n_renamed: int) -> None:
    """Log how many tips were renamed through a NEXUS translate table."""
    tree_logger.info(
        "NEXUS translate table: %d entries, %d tip(s) renamed", n_entries, n_renamed
    )
    if n_renamed < n_entries:
        tree_logger.debug(
            "  %d translate entries matched no tip", n_entries - n_renamed
        )


def log_time_scaling(most_recent_date: float, root_date: float, tree_height: float) -> None:
    """Log the anchor and resulting root date of a time-scaling pass."""
    tree_logger.info(
        "Tree placed in absolute time: most recent tip %.4f, root %.4f "
        "(height %.4f)",
        most_recent_date,
        root_date,
        tree_height,
    )


# ============================================================================ #
# Trace Logging (called during parsing and trimming)
# ============================================================================ #


def log_trace_statistics(
    n_rows: int, parameters: List[str], step_column: Optional[str]
) -> None:
    """
    Log a summary of a freshly parsed trace table.

    Parameters
    ----------
    n_rows : int
        Number of sampled steps.
    parameters : List[str]
        Parameter column names in header order.
    step_column : str or None
        Name of the column used as the step index, if any.
    """
    trace_logger.info(
        "Trace parsed: %d rows x %d parameters", n_rows, len(parameters)
    )
    if step_column is not None:
        trace_logger.debug("  step index column: '%s'", step_column)
    trace_logger.debug("  parameters: %s", ", ".join(parameters))
    if n_rows == 0:
        trace_logger.warning("Trace contains a header but no samples")


def log_trim(n_before: int, n_after: int, fraction: float, offset: int) -> None:
    """Log the effect of a burn-in trim."""
    trace_logger.info(
        "Burn-in trim at %.1f%%: %d -> %d rows (first kept row has original index %d)",
        100.0 * fraction,
        n_before,
        n_after,
        offset,
    )


# ============================================================================ #
# Convergence Logging
# ============================================================================ #


def log_low_ess(low: Dict[str, float], min_ess: float) -> None:
    """
    Warn about parameters whose effective sample size is below *min_ess*.

    Parameters
    ----------
    low : Dict[str, float]
        Mapping from parameter name to its ESS, only for the low ones.
    min_ess : float
        The threshold that was applied.
    """
    if not low:
        return
    if len(low) == 1:
        (name, ess), = low.items()
        convergence_logger.warning(
            "Parameter '%s' has ESS %.1f (< %.0f); the chain may need to run longer.",
            name,
            ess,
            min_ess,
        )
    else:
        convergence_logger.warning(
            "%d parameters have ESS below %.0f: %s",
            len(low),
            min_ess,
            ", ".join(f"{k}={v:.1f}" for k, v in low.items()),
        )


# ============================================================================ #
# Clade Logging
# ============================================================================ #


def log_annotation_layer(key: str, node: int, n_written: int, n_total: int) -> None:
    """Log a derived-annotation write over one subtree."""
    clade_logger.debug(
        "Layer '%s': %d node(s) under node %d written (%d total)",
        key,
        n_written,
        node,
        n_total,
    )
