"""
_trace.py
=========
TraceTable: an MCMC parameter trace held as a read-only 2-D float64 array
(rows in sampling order x named parameter columns).

Array layout
------------
  data    : float64 [n_rows, n_parameters]   read-only
  steps   : int64   [n_rows] or None         sampler step index per row
  offset  : int                              rows of the originally parsed
                                             table that precede row 0

Tables produced by ``rows()`` (and therefore by burn-in trimming) are views
onto the same read-only buffer, so the table they came from stays intact
and inspectable.
"""

from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np


class TraceTable:
    """
    Ordered MCMC samples for a set of named parameters.

    Parameters
    ----------
    parameters : sequence of str
        Column names, unique and non-empty.
    values : array-like, shape (n_rows, n_parameters)
        Sample values in sampling order.
    steps : array-like of int, optional
        Sampler step index for each row.
    offset : int, default 0
        Number of original rows preceding the first row of this table.

    Raises
    ------
    ValueError   if the shapes disagree or a parameter name is empty or
                 repeated.

    Examples
    --------
    >>> t = TraceTable(["mu", "kappa"], [[0.1, 2.0], [0.2, 2.5]], steps=[0, 1000])
    >>> t.column("kappa")
    array([2. , 2.5])
    >>> t.rows(1).original_indices
    array([1])
    """

    def __init__(
        self,
        parameters: Sequence[str],
        values,
        steps=None,
        offset: int = 0,
    ) -> None:
        parameters = tuple(parameters)
        if any(not p for p in parameters):
            raise ValueError("Parameter names must be non-empty.")
        if len(set(parameters)) != len(parameters):
            raise ValueError(f"Duplicate parameter names in {parameters}.")

        data = np.array(values, dtype=np.float64)
        if data.size == 0:
            data = data.reshape(0, len(parameters))
        if data.ndim != 2 or data.shape[1] != len(parameters):
            raise ValueError(
                f"values must have shape (n_rows, {len(parameters)}); got {data.shape}."
            )
        data.flags.writeable = False

        if steps is not None:
            steps = np.array(steps, dtype=np.int64)
            if steps.shape != (data.shape[0],):
                raise ValueError(
                    f"steps must have shape ({data.shape[0]},); got {steps.shape}."
                )
            steps.flags.writeable = False

        self._init_view(parameters, data, steps, int(offset))

    def _init_view(self, parameters, data, steps, offset) -> None:
        """**Private.**  Attach already-validated read-only arrays."""
        self.parameters = parameters
        self.data = data
        self.steps = steps
        self.offset = offset
        self._column_index: Dict[str, int] = {p: j for j, p in enumerate(parameters)}

    # ================================================================== #
    # Container protocol                                                   #
    # ================================================================== #

    def __len__(self) -> int:
        return self.n_rows

    def __contains__(self, name) -> bool:
        return name in self._column_index

    def __getitem__(self, name: str) -> np.ndarray:
        return self.column(name)

    def __repr__(self) -> str:
        return (
            f"<TraceTable: {self.n_rows} rows x {self.n_parameters} parameters, "
            f"offset {self.offset}>"
        )

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    @property
    def n_rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_parameters(self) -> int:
        return int(self.data.shape[1])

    @property
    def original_indices(self) -> np.ndarray:
        """0-based index of each row in the originally parsed table."""
        return np.arange(self.offset, self.offset + self.n_rows, dtype=np.int64)

    def column(self, name: str) -> np.ndarray:
        """
        Return the read-only samples of parameter *name* in row order.

        Raises
        ------
        KeyError   if *name* is not a parameter of this table.
        """
        try:
            j = self._column_index[name]
        except KeyError:
            raise KeyError(
                f"Unknown parameter '{name}'. Available: {', '.join(self.parameters)}"
            ) from None
        return self.data[:, j]

    def row(self, i: int) -> Dict[str, float]:
        """Return row *i* as ``{parameter: value}``."""
        values = self.data[i]
        return {p: float(v) for p, v in zip(self.parameters, values)}

    def rows(self, start: int, stop: Optional[int] = None) -> "TraceTable":
        """
        Return rows ``start:stop`` as a new table sharing this table's data.

        The new table's ``offset`` accounts for every row dropped from the
        front, including rows dropped by earlier slicing.
        """
        n = self.n_rows
        start, stop, _ = slice(start, stop).indices(n)
        stop = max(start, stop)
        view = TraceTable.__new__(TraceTable)
        steps = None if self.steps is None else self.steps[start:stop]
        view._init_view(self.parameters, self.data[start:stop], steps, self.offset + start)
        return view

    def select(self, parameters: Iterable[str]) -> "TraceTable":
        """Return a table holding only *parameters*, in the order given."""
        names: List[str] = list(parameters)
        idx = [self._column_index[p] if p in self else None for p in names]
        missing = [p for p, j in zip(names, idx) if j is None]
        if missing:
            raise KeyError(f"Unknown parameter(s): {', '.join(missing)}")
        view = TraceTable.__new__(TraceTable)
        data = self.data[:, idx]
        data.flags.writeable = False
        view._init_view(tuple(names), data, self.steps, self.offset)
        return view


def column(table: TraceTable, name: str) -> np.ndarray:
    """Read-only samples of parameter *name*; see ``TraceTable.column``."""
    return table.column(name)
