"""
phylotrace
==========

Post-processing of Bayesian phylogenetic output: annotated time-scaled
trees and MCMC parameter traces.

Main Classes
------------
TreeParser : Annotated NEWICK / NEXUS parser producing TreeModel
TreeModel : Single rooted, annotated tree stored as numpy arrays
CladeAnalyzer : MRCA, descendant sets and derived annotation layers
TraceParser : Delimited trace-log parser producing TraceTable
TraceTable : Read-only samples x parameters table
ConvergenceAnalyzer : Burn-in trimming, ESS and split R-hat
HPDEstimator : Highest-posterior-density and equal-tailed intervals

Context Managers
----------------
quiet : Suppress phylotrace logging during operations
suppress_logger : Suppress a specific logger

Utilities
---------
decimal_date : Calendar date to decimal year
tip_dates : Sampling dates encoded in tip labels
most_recent_tip_date : Anchor date for time-scaling

Examples
--------
Trees:

>>> from phylotrace import parse_tree, CladeAnalyzer
>>> tree = parse_tree("(((A:1,B:1):1,C:2):1,(D:1,E:1):2);", most_recent_date=2020.0)
>>> ca = CladeAnalyzer(tree)
>>> ca.tmrca(["A", "B"])
2018.0

Traces:

>>> from phylotrace import read_trace, ConvergenceAnalyzer, HPDEstimator
>>> table = read_trace("run1.log", delimiter="\\t")
>>> trimmed = ConvergenceAnalyzer(discard_fraction=0.1).trim(table)
>>> HPDEstimator(0.95).intervals(trimmed)["clock.rate"]
CredibleInterval(lower=0.00081, upper=0.00122, mass=0.95)
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._tree import Node, TreeModel
from ._tree_parser import TreeParser, parse_tree, read_tree
from ._clades import Clade, CladeAnalyzer
from ._trace import TraceTable, column
from ._trace_parser import STEP_COLUMN_NAMES, TraceParser, parse_trace, read_trace
from ._convergence import (
    DEFAULT_DISCARD_FRACTION,
    DEFAULT_MIN_ESS,
    ConvergenceAnalyzer,
    Diagnostics,
    effective_sample_size,
    split_rhat,
)
from ._hpd import DEFAULT_MASS, CredibleInterval, HPDEstimator, hpd_interval, tail_interval

# Annotation variants
from ._annotations import Category, Number, Series, Text, plain

# Errors
from ._errors import (
    AmbiguousLabelError,
    DisjointTipSetError,
    EmptyTreeError,
    InsufficientSamplesError,
    InvalidFractionError,
    MalformedTreeError,
    NonNumericFieldError,
    ParseError,
    PhyloTraceError,
    QueryError,
    SchemaMismatchError,
)

# Context managers (user-facing utilities)
from ._context import quiet, suppress_logger

# Utilities
from ._utils import decimal_date, most_recent_tip_date, tip_dates

# Public API
__all__ = [
    # Main classes
    "Node",
    "TreeModel",
    "TreeParser",
    "parse_tree",
    "read_tree",
    "Clade",
    "CladeAnalyzer",
    "TraceTable",
    "column",
    "STEP_COLUMN_NAMES",
    "TraceParser",
    "parse_trace",
    "read_trace",
    "DEFAULT_DISCARD_FRACTION",
    "DEFAULT_MIN_ESS",
    "ConvergenceAnalyzer",
    "Diagnostics",
    "effective_sample_size",
    "split_rhat",
    "DEFAULT_MASS",
    "CredibleInterval",
    "HPDEstimator",
    "hpd_interval",
    "tail_interval",
    # Annotation variants
    "Number",
    "Text",
    "Category",
    "Series",
    "plain",
    # Errors
    "PhyloTraceError",
    "ParseError",
    "MalformedTreeError",
    "EmptyTreeError",
    "SchemaMismatchError",
    "NonNumericFieldError",
    "QueryError",
    "DisjointTipSetError",
    "AmbiguousLabelError",
    "InvalidFractionError",
    "InsufficientSamplesError",
    # Context managers
    "quiet",
    "suppress_logger",
    # Utilities
    "decimal_date",
    "tip_dates",
    "most_recent_tip_date",
    # Version info
    "__version__",
]
