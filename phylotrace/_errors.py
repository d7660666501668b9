"""
_errors.py
==========
Exception hierarchy for phylotrace.

Every exception subclasses the built-in type a caller would already be
catching for the same kind of problem (``ValueError`` for bad input,
``LookupError`` for missing names), so code written against plain Python
exceptions keeps working.

Parse-time errors carry the location of the problem in the input text;
query-time errors leave the tree or table they were raised from untouched.
"""

from typing import Iterable, Optional


class PhyloTraceError(Exception):
    """Base class for all phylotrace errors."""


# ============================================================================ #
# Parse-time errors
# ============================================================================ #


class ParseError(PhyloTraceError, ValueError):
    """
    Input text could not be turned into a tree or a trace table.

    Parameters
    ----------
    message : str
        Human-readable description of the problem.
    position : int, optional
        0-based character offset into the tree text.
    line : int, optional
        1-based line number in a trace log.
    token : str, optional
        The offending token, quoted in the message.
    """

    def __init__(
        self,
        message: str,
        position: Optional[int] = None,
        line: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        self.message = message
        self.position = position
        self.line = line
        self.token = token
        super().__init__(self._format())

    def _format(self) -> str:
        where = []
        if self.line is not None:
            where.append(f"line {self.line}")
        if self.position is not None:
            where.append(f"position {self.position}")
        text = self.message
        if where:
            text = f"{text} ({', '.join(where)})"
        if self.token is not None:
            text = f"{text}: {self.token!r}"
        return text


class MalformedTreeError(ParseError):
    """Tree text violates the annotated NEWICK grammar."""


class EmptyTreeError(ParseError):
    """Tree text contains no node tokens."""


class SchemaMismatchError(ParseError):
    """Trace log rows do not match the header."""


class NonNumericFieldError(ParseError):
    """A trace log field that must be numeric could not be parsed."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        token: Optional[str] = None,
        column: Optional[str] = None,
    ) -> None:
        self.column = column
        if column is not None:
            message = f"{message} in column '{column}'"
        super().__init__(message, line=line, token=token)


# ============================================================================ #
# Query-time errors
# ============================================================================ #


class QueryError(PhyloTraceError):
    """A query on a valid tree or table could not be answered."""


class DisjointTipSetError(QueryError, LookupError):
    """One or more requested tip labels are not present in the tree."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = tuple(sorted(missing))
        names = ", ".join(repr(m) for m in self.missing)
        super().__init__(f"Tip label(s) not found in tree: {names}")


class AmbiguousLabelError(QueryError, ValueError):
    """The tree carries the same tip label on more than one tip."""


class InvalidFractionError(QueryError, ValueError):
    """A burn-in fraction is out of range or would discard every row."""


class InsufficientSamplesError(QueryError, ValueError):
    """Too few samples to compute the requested interval."""
