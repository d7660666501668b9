"""
_utils.py
=========
General-purpose utility functions for phylotrace.

Standalone helpers for the usual dated-tip workflow: sampling dates encoded
in tip labels (``A/Wuhan/1|2019-12-30``) are converted to decimal years, and
the most recent one anchors ``TreeModel.set_absolute_time``.

>>> tree = parse_tree("(A|2020-01-01:1,B|2020-07-02:0.5);")
>>> tree.set_absolute_time(most_recent_tip_date(tree))
"""

import datetime as dt
import re
from typing import Dict

from phylotrace._tree import TreeModel


DEFAULT_TIP_REGEX = r"\|([0-9]+\-[0-9]+\-[0-9]+)"
DEFAULT_DATE_FORMAT = "%Y-%m-%d"


def decimal_date(date: str, fmt: str = DEFAULT_DATE_FORMAT, variable: bool = False) -> float:
    """
    Convert a calendar date to a decimal year.

    The result is ``year + (day_of_year - 1) / days_in_year``, so 1 January
    is always a whole number and leap years are accounted for.

    Parameters
    ----------
    date : str
        Calendar date, e.g. ``'2020-03-15'``.
    fmt : str, default '%Y-%m-%d'
        ``strptime`` format with '-'-separated fields.
    variable : bool, default False
        Accept dates with trailing fields missing (``'2020-03'``,
        ``'2020'``).  These resolve to the first day of the missing span.

    Returns
    -------
    float

    Raises
    ------
    ValueError   if *date* does not match the (possibly shortened) format.

    Examples
    --------
    >>> decimal_date('2020-01-01')
    2020.0
    >>> decimal_date('2021-03', variable=True)   # 1 March 2021
    2021.1616438356164
    """
    if variable:
        fmt_fields = fmt.split("-")
        n_fields = len(date.split("-"))
        if n_fields < len(fmt_fields):
            fmt = "-".join(fmt_fields[:n_fields])
    parsed = dt.datetime.strptime(date, fmt)
    year = parsed.year
    days_in_year = (dt.date(year + 1, 1, 1) - dt.date(year, 1, 1)).days
    day_of_year = parsed.timetuple().tm_yday
    return year + (day_of_year - 1) / days_in_year


def tip_dates(
    tree: TreeModel,
    regex: str = DEFAULT_TIP_REGEX,
    fmt: str = DEFAULT_DATE_FORMAT,
    variable: bool = False,
) -> Dict[str, float]:
    """
    Decimal sampling dates of every tip whose label matches *regex*.

    The first capture group of *regex* must hold the date.  Tips without a
    match are left out.

    Raises
    ------
    ValueError   if no tip label matches.
    """
    pattern = re.compile(regex)
    dates: Dict[str, float] = {}
    for label in tree.tip_labels:
        match = pattern.search(label)
        if match:
            dates[label] = decimal_date(match.group(1), fmt=fmt, variable=variable)
    if not dates:
        first = tree.tip_labels[0] if tree.n_tips else ""
        raise ValueError(
            f"No tip label matches date pattern {regex!r} "
            f"(first tip label: {first!r}, expected format {fmt!r})."
        )
    return dates


def most_recent_tip_date(tree: TreeModel, **kwargs) -> float:
    """Latest value of ``tip_dates(tree, **kwargs)``."""
    return max(tip_dates(tree, **kwargs).values())
