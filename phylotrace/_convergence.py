"""
_convergence.py
===============
Burn-in trimming and simple stationarity heuristics for MCMC traces.

Public API
----------
  ConvergenceAnalyzer(discard_fraction=0.10, min_ess=200.0)
      .trim(table, discard_fraction=None)     -> TraceTable (view)
      .effective_sample_size(samples)         -> float
      .split_rhat(samples, splits=4)          -> float
      .diagnose(table, parameters=None)       -> {name: Diagnostics}

  autocorrelation(samples)
  integrated_autocorr_time(samples, max_lag=None)
  effective_sample_size(samples, max_lag=None)
  split_rhat(samples, splits=4)

Trimming arithmetic
-------------------
The number of discarded rows is ``ceil(n * f)``.  ``f`` is converted through
its shortest decimal representation before multiplying, so the product is
exact: ``ceil(100 * 0.07)`` is 7 here, not the 8 that binary floating point
gives.
"""

import math
import numbers
from fractions import Fraction
from typing import Dict, Iterable, NamedTuple, Optional

import numpy as np

from phylotrace._errors import InsufficientSamplesError, InvalidFractionError
from phylotrace._logging import log_low_ess, log_trim
from phylotrace._trace import TraceTable


DEFAULT_DISCARD_FRACTION = 0.10
DEFAULT_MIN_ESS = 200.0


class Diagnostics(NamedTuple):
    """Per-parameter stationarity summary."""

    n: int
    ess: float
    rhat: float


class ConvergenceAnalyzer:
    """
    Burn-in removal and stationarity diagnostics.

    Parameters
    ----------
    discard_fraction : float, default 0.10
        Leading fraction of rows removed by ``trim``; must lie in [0, 1).
    min_ess : float, default 200.0
        ``diagnose`` warns about parameters whose ESS falls below this.

    Raises
    ------
    InvalidFractionError   if *discard_fraction* is out of range.

    Examples
    --------
    >>> table = TraceTable(["x"], np.arange(1, 101).reshape(-1, 1))
    >>> trimmed = ConvergenceAnalyzer(0.10).trim(table)
    >>> trimmed.n_rows, trimmed.column("x")[0]
    (90, 11.0)
    """

    def __init__(
        self,
        discard_fraction: float = DEFAULT_DISCARD_FRACTION,
        min_ess: float = DEFAULT_MIN_ESS,
    ) -> None:
        self.discard_fraction = _check_fraction(discard_fraction)
        self.min_ess = float(min_ess)

    def __repr__(self) -> str:
        return (
            f"ConvergenceAnalyzer(discard_fraction={self.discard_fraction!r}, "
            f"min_ess={self.min_ess!r})"
        )

    def trim(self, table: TraceTable, discard_fraction: Optional[float] = None) -> TraceTable:
        """
        Drop the leading ``ceil(n * f)`` rows of *table*.

        Row order is preserved and *table* is left untouched; the result is
        a view whose ``offset`` records the rows dropped.

        Raises
        ------
        InvalidFractionError   if the fraction is out of range or nothing
                               would remain.
        """
        if discard_fraction is None:
            f = self.discard_fraction
        else:
            f = _check_fraction(discard_fraction)

        n = table.n_rows
        start = discard_count(n, f)
        if start >= n:
            raise InvalidFractionError(
                f"Discarding {start} of {n} row(s) at fraction {f} leaves no samples."
            )
        trimmed = table.rows(start)
        log_trim(n, trimmed.n_rows, f, trimmed.offset)
        return trimmed

    def effective_sample_size(self, samples) -> float:
        return effective_sample_size(samples)

    def split_rhat(self, samples, splits: int = 4) -> float:
        return split_rhat(samples, splits=splits)

    def diagnose(
        self, table: TraceTable, parameters: Optional[Iterable[str]] = None
    ) -> Dict[str, Diagnostics]:
        """
        ESS and split-R-hat for each parameter of *table* (all by default).

        Parameters with an ESS below ``min_ess`` are reported through a
        single logged warning.
        """
        names = table.parameters if parameters is None else tuple(parameters)
        result: Dict[str, Diagnostics] = {}
        for name in names:
            x = table.column(name)
            result[name] = Diagnostics(
                n=int(x.shape[0]),
                ess=effective_sample_size(x),
                rhat=split_rhat(x),
            )
        low = {k: d.ess for k, d in result.items() if d.ess < self.min_ess}
        log_low_ess(low, self.min_ess)
        return result


# ============================================================================ #
# Module-level functions
# ============================================================================ #


def discard_count(n_rows: int, fraction: float) -> int:
    """``ceil(n_rows * fraction)`` in exact decimal arithmetic."""
    exact = Fraction(n_rows) * Fraction(repr(float(fraction)))
    return int(math.ceil(exact))


def autocorrelation(samples) -> np.ndarray:
    """
    Normalized autocorrelation at every lag ``0 .. n-1``, via FFT.

    A constant series has no defined autocorrelation; all lags are NaN.
    """
    x = _as_chain(samples)
    n = x.shape[0]
    x = x - np.mean(x)
    nfft = 1 << int(np.ceil(np.log2(2 * n - 1)))
    fx = np.fft.rfft(x, n=nfft)
    acf = np.fft.irfft(fx * np.conj(fx), n=nfft)[:n]
    if acf[0] <= 0.0:
        return np.full(n, np.nan)
    return acf / acf[0]


def integrated_autocorr_time(samples, max_lag: Optional[int] = None) -> float:
    """
    ``1 + 2 * sum(rho_k)`` over lags up to the first negative
    autocorrelation (or *max_lag*).  Never less than 1.
    """
    acf = autocorrelation(samples)
    if np.isnan(acf[0]):
        return float("nan")
    if max_lag is not None:
        acf = acf[: max_lag + 1]
    lagged = acf[1:]
    negative = np.flatnonzero(lagged < 0)
    cutoff = int(negative[0]) if negative.size else lagged.shape[0]
    tau = 1.0 + 2.0 * float(np.sum(lagged[:cutoff]))
    return max(tau, 1.0)


def effective_sample_size(samples, max_lag: Optional[int] = None) -> float:
    """
    Effective number of independent samples, ``n / tau``.

    NaN for a constant series.

    Raises
    ------
    InsufficientSamplesError   if there are fewer than two samples.
    ValueError                 if any sample is not finite.
    """
    x = _as_chain(samples)
    tau = integrated_autocorr_time(x, max_lag=max_lag)
    return float(x.shape[0]) / tau


def split_rhat(samples, splits: int = 4) -> float:
    """
    Potential scale reduction of a single chain cut into *splits* equal
    segments.  Values near 1 indicate the segments agree.

    NaN when each segment would hold fewer than 10 samples or the
    within-segment variance is zero.
    """
    if splits < 2:
        raise ValueError(f"splits must be at least 2, got {splits}.")
    x = _as_chain(samples)
    n = x.shape[0]
    if n < splits * 10:
        return float("nan")
    L = n // splits
    segments = x[: L * splits].reshape(splits, L)
    W = float(np.mean(np.var(segments, axis=1, ddof=1)))
    if W <= 0.0:
        return float("nan")
    B = L * float(np.var(np.mean(segments, axis=1), ddof=1))
    var_hat = (L - 1) / L * W + B / L
    return float(np.sqrt(var_hat / W))


# ============================================================================ #
# Private helpers
# ============================================================================ #


def _check_fraction(fraction) -> float:
    """**Private.**  Validate a burn-in fraction; return it as float."""
    if isinstance(fraction, bool) or not isinstance(fraction, numbers.Real):
        raise InvalidFractionError(
            f"discard_fraction must be a real number, got {fraction!r}."
        )
    f = float(fraction)
    if not (0.0 <= f < 1.0):
        raise InvalidFractionError(f"discard_fraction must lie in [0, 1), got {f}.")
    return f


def _as_chain(samples) -> np.ndarray:
    x = np.asarray(samples, dtype=np.float64)
    if x.ndim != 1:
        raise ValueError(f"samples must be one-dimensional, got shape {x.shape}.")
    if x.shape[0] < 2:
        raise InsufficientSamplesError(f"At least 2 samples are required, got {x.shape[0]}.")
    if not np.all(np.isfinite(x)):
        raise ValueError("samples contain non-finite values.")
    return x
