"""
_trace_parser.py
================
Parse delimited MCMC trace logs (BEAST ``.log``, MrBayes ``.p``, generic
CSV) into a TraceTable.

Layout accepted
---------------
  # comment lines (any line whose first non-blank text is *comment*)
  <blank lines anywhere>
  state,posterior,clock.rate,...        header: first remaining line
  0,-12345.6,1.2e-3,...                 one row per sampled step

Every data row must have exactly as many fields as the header.  A leading
step column (``state``, ``step``, ``sample``, ``gen``, ``generation`` or
``iteration``, any case) becomes the table's integer step index instead of
a parameter column.
"""

import csv
import os
from typing import List, Optional

import numpy as np

from phylotrace._errors import NonNumericFieldError, SchemaMismatchError
from phylotrace._logging import log_trace_statistics
from phylotrace._trace import TraceTable


STEP_COLUMN_NAMES = frozenset(
    ("state", "step", "sample", "gen", "generation", "iteration")
)

_STEP_MIN = int(np.iinfo(np.int64).min)
_STEP_MAX = int(np.iinfo(np.int64).max)


class TraceParser:
    """
    Parser for delimited trace logs.

    Parameters
    ----------
    delimiter : str, default ","
        Field separator; use ``"\\t"`` for BEAST and MrBayes logs.
    comment : str, default "#"
        Lines starting with this string (after leading whitespace) are
        skipped.
    step_column : str or None, default "auto"
        ``"auto"`` treats a leading column named in STEP_COLUMN_NAMES as the
        step index; ``None`` keeps every column as a parameter; any other
        string names the step column explicitly.
    """

    def __init__(
        self,
        delimiter: str = ",",
        comment: str = "#",
        step_column: Optional[str] = "auto",
    ) -> None:
        self.delimiter = delimiter
        self.comment = comment
        self.step_column = step_column

    def parse(self, text: str) -> TraceTable:
        """
        Parse trace *text*.

        Raises
        ------
        SchemaMismatchError    no header, bad or duplicate names, missing
                               step column, or a row of the wrong width.
        NonNumericFieldError   a field is not a real number, or a step
                               index is not an integer.
        """
        header: Optional[List[str]] = None
        header_line = 0
        step_idx: Optional[int] = None
        param_idx: List[int] = []
        steps: List[int] = []
        rows: List[List[float]] = []

        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or (self.comment and stripped.startswith(self.comment)):
                continue
            fields = next(csv.reader([line], delimiter=self.delimiter))

            if header is None:
                header = [f.strip() for f in fields]
                header_line = lineno
                step_idx = self._find_step_column(header, lineno)
                param_idx = [j for j in range(len(header)) if j != step_idx]
                self._check_names([header[j] for j in param_idx], lineno)
                continue

            if len(fields) != len(header):
                raise SchemaMismatchError(
                    f"row has {len(fields)} field(s) but the header on line "
                    f"{header_line} has {len(header)}",
                    line=lineno,
                    token=stripped[:40],
                )
            if step_idx is not None:
                steps.append(_parse_step(fields[step_idx], lineno, header[step_idx]))
            rows.append([_parse_real(fields[j], lineno, header[j]) for j in param_idx])

        if header is None:
            raise SchemaMismatchError("trace has no header line")

        parameters = [header[j] for j in param_idx]
        values = np.array(rows, dtype=np.float64).reshape(len(rows), len(parameters))
        table = TraceTable(
            parameters,
            values,
            steps=np.array(steps, dtype=np.int64) if step_idx is not None else None,
        )
        log_trace_statistics(
            table.n_rows,
            parameters,
            header[step_idx] if step_idx is not None else None,
        )
        return table

    def read(self, source) -> TraceTable:
        """Read a trace from a path or an open text handle."""
        if isinstance(source, (str, os.PathLike)):
            with open(source, newline="") as fh:
                return self.parse(fh.read())
        return self.parse(source.read())

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _find_step_column(self, header: List[str], lineno: int) -> Optional[int]:
        """**Private.**  Index of the step column in *header*, or None."""
        if self.step_column is None:
            return None
        if self.step_column == "auto":
            if header and header[0].lower() in STEP_COLUMN_NAMES:
                return 0
            return None
        if self.step_column not in header:
            raise SchemaMismatchError(
                "step column not found in header", line=lineno, token=self.step_column
            )
        return header.index(self.step_column)

    @staticmethod
    def _check_names(names: List[str], lineno: int) -> None:
        if not names:
            raise SchemaMismatchError("header has no parameter columns", line=lineno)
        seen = set()
        for name in names:
            if not name:
                raise SchemaMismatchError("empty parameter name in header", line=lineno)
            if name in seen:
                raise SchemaMismatchError(
                    "duplicate parameter name in header", line=lineno, token=name
                )
            seen.add(name)


def _parse_real(token: str, lineno: int, column: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise NonNumericFieldError(
            "non-numeric field", line=lineno, token=token, column=column
        ) from None


def _parse_step(token: str, lineno: int, column: str) -> int:
    """Integer step index; integral floats such as ``1e6`` are accepted."""
    try:
        step = int(token)
    except ValueError:
        value = _parse_real(token, lineno, column)
        if not value.is_integer():
            raise NonNumericFieldError(
                "step index is not an integer", line=lineno, token=token, column=column
            ) from None
        step = int(value)
    if not _STEP_MIN <= step <= _STEP_MAX:
        raise NonNumericFieldError(
            "step index out of range", line=lineno, token=token, column=column
        )
    return step


# ============================================================================ #
# Module-level shortcuts
# ============================================================================ #


def parse_trace(text: str, **kwargs) -> TraceTable:
    """Parse trace *text*; keyword arguments go to TraceParser."""
    return TraceParser(**kwargs).parse(text)


def read_trace(source, **kwargs) -> TraceTable:
    """Read a trace from *source*; keyword arguments go to TraceParser."""
    return TraceParser(**kwargs).read(source)
