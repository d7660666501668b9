"""
_hpd.py
=======
Credible intervals for posterior samples.

Highest posterior density (HPD)
-------------------------------
For ``n`` samples and probability mass ``m`` the window holds
``w = floor(n * m)`` consecutive order statistics.  Every start position
``i = 0 .. n-w`` is compared and the narrowest window wins; on ties the
lowest ``i`` is kept.  The result is ``(sorted[i], sorted[i + w - 1])``.

As with burn-in trimming, ``n * m`` is evaluated in exact decimal
arithmetic so that e.g. ``floor(100 * 0.29)`` is 29.

Equal-tailed interval
---------------------
``tail_interval`` returns the ``(1-m)/2`` and ``(1+m)/2`` sample quantiles.
It coincides with the HPD only for symmetric unimodal posteriors and is
exposed separately.
"""

import math
import numbers
from fractions import Fraction
from typing import Dict, Iterable, NamedTuple, Optional

import numpy as np

from phylotrace._errors import InsufficientSamplesError
from phylotrace._trace import TraceTable


DEFAULT_MASS = 0.95


class CredibleInterval(NamedTuple):
    """Interval ``[lower, upper]`` holding probability *mass*."""

    lower: float
    upper: float
    mass: float

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def contains(self, x: float) -> bool:
        return self.lower <= x <= self.upper


def hpd_interval(samples, mass: float = DEFAULT_MASS) -> CredibleInterval:
    """
    Narrowest interval containing ``floor(n * mass)`` of the samples.

    >>> hpd_interval(range(1, 11), 0.5)
    CredibleInterval(lower=1.0, upper=5.0, mass=0.5)

    Raises
    ------
    ValueError                 if *mass* is not in (0, 1) or a sample is
                               not finite.
    InsufficientSamplesError   if there are fewer than two samples, or the
                               window would hold none.
    """
    mass = _check_mass(mass)
    xs = np.sort(_as_samples(samples))
    n = xs.shape[0]
    w = int(math.floor(Fraction(n) * Fraction(repr(mass))))
    if w == 0:
        raise InsufficientSamplesError(
            f"{n} samples are too few for an HPD interval at mass {mass}."
        )
    widths = xs[w - 1 :] - xs[: n - w + 1]
    i = int(np.argmin(widths))
    return CredibleInterval(float(xs[i]), float(xs[i + w - 1]), mass)


def tail_interval(samples, mass: float = DEFAULT_MASS) -> CredibleInterval:
    """Equal-tailed interval between the ``(1-mass)/2`` and ``(1+mass)/2`` quantiles."""
    mass = _check_mass(mass)
    x = _as_samples(samples)
    alpha = (1.0 - mass) / 2.0
    lower, upper = np.quantile(x, [alpha, 1.0 - alpha])
    return CredibleInterval(float(lower), float(upper), mass)


class HPDEstimator:
    """
    Credible-interval estimator with a fixed default mass.

    Parameters
    ----------
    mass : float, default 0.95
        Probability mass of each interval, in (0, 1).
    """

    _METHODS = ("hpd", "tail")

    def __init__(self, mass: float = DEFAULT_MASS) -> None:
        self.mass = _check_mass(mass)

    def __repr__(self) -> str:
        return f"HPDEstimator(mass={self.mass!r})"

    def hpd_interval(self, samples, mass: Optional[float] = None) -> CredibleInterval:
        return hpd_interval(samples, self.mass if mass is None else mass)

    def tail_interval(self, samples, mass: Optional[float] = None) -> CredibleInterval:
        return tail_interval(samples, self.mass if mass is None else mass)

    def intervals(
        self,
        table: TraceTable,
        parameters: Optional[Iterable[str]] = None,
        method: str = "hpd",
    ) -> Dict[str, CredibleInterval]:
        """
        One interval per parameter column of *table* (all columns by
        default), keyed by parameter name in column order.

        Raises
        ------
        ValueError   if *method* is not ``"hpd"`` or ``"tail"``.
        KeyError     if a requested parameter is not in *table*.
        """
        if method not in self._METHODS:
            raise ValueError(f"method must be one of {self._METHODS}, got {method!r}.")
        fn = hpd_interval if method == "hpd" else tail_interval
        names = table.parameters if parameters is None else tuple(parameters)
        return {name: fn(table.column(name), self.mass) for name in names}


def _check_mass(mass) -> float:
    if isinstance(mass, bool) or not isinstance(mass, numbers.Real):
        raise ValueError(f"mass must be a real number, got {mass!r}.")
    m = float(mass)
    if not (0.0 < m < 1.0):
        raise ValueError(f"mass must lie in (0, 1), got {m}.")
    return m


def _as_samples(samples) -> np.ndarray:
    if not hasattr(samples, "__len__"):
        samples = list(samples)
    x = np.asarray(samples, dtype=np.float64)
    if x.ndim != 1:
        raise ValueError(f"samples must be one-dimensional, got shape {x.shape}.")
    if x.shape[0] < 2:
        raise InsufficientSamplesError(f"At least 2 samples are required, got {x.shape[0]}.")
    if not np.all(np.isfinite(x)):
        raise ValueError("samples contain non-finite values.")
    return x
