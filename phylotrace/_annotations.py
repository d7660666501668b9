"""
_annotations.py
===============
Typed values for the per-node annotation blocks of BEAST-style trees.

An annotation block such as ::

    [&region="Asia",host=human,rate=1.2e-3,height_95%_HPD={1.5,3.25}]

is parsed into a mapping from key to one of four immutable variants.
Variants compare equal only to the same variant with the same payload:

  Number    numeric literal                       rate=1.2e-3
  Text      quoted token                          region="Asia"
  Category  bare (unquoted, non-numeric) token    host=human
  Series    brace-delimited list of the above     height_95%_HPD={1.5,3.25}

Consumers dispatch on the variant with ``isinstance`` or structural pattern
matching instead of guessing at runtime types::

    match tree[7].annotations["rate"]:
        case Number(value):
            ...
        case Category(value) | Text(value):
            ...
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, Union


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Category:
    value: str


@dataclass(frozen=True)
class Series:
    values: Tuple[Union[Number, Text, Category], ...]


Annotation = Union[Number, Text, Category, Series]

# Decimal or scientific literal; "nan" and "inf" stay categorical.
_NUMERIC = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def split_top_level(text: str, sep: str = ",") -> List[str]:
    """
    Split *text* on *sep*, ignoring separators inside quotes or braces.

    >>> split_top_level('a=1,b={2,3},c="x,y"')
    ['a=1', 'b={2,3}', 'c="x,y"']
    """
    parts = []
    buf = []
    depth = 0
    quote = None
    for c in text:
        if quote is not None:
            buf.append(c)
            if c == quote:
                quote = None
            continue
        if c == '"' or c == "'":
            quote = c
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
        elif c == sep and depth == 0:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(c)
    parts.append("".join(buf))
    return parts


def parse_value(token: str) -> Annotation:
    """Type a single annotation value token opportunistically."""
    token = token.strip()
    if len(token) >= 2 and token[0] == "{" and token[-1] == "}":
        inner = token[1:-1].strip()
        if not inner:
            return Series(())
        return Series(tuple(parse_value(t) for t in split_top_level(inner)))
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
        return Text(token[1:-1])
    if _NUMERIC.match(token):
        return Number(float(token))
    return Category(token)


def parse_block(content: str) -> Dict[str, Annotation]:
    """
    Parse the inside of an annotation block (without ``[&`` and ``]``).

    Entries are comma-separated ``key=value`` pairs.  An entry without ``=``
    is a presence flag and is stored as ``Category("true")``.  Later
    duplicates of a key replace earlier ones.

    Raises
    ------
    ValueError   if an entry has an empty key.
    """
    result: Dict[str, Annotation] = {}
    for entry in split_top_level(content):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            key, value = entry.split("=", 1)
            key = key.strip()
            if not key:
                raise ValueError(f"annotation entry has an empty key: {entry!r}")
            result[key] = parse_value(value)
        else:
            result[entry] = Category("true")
    return result


def plain(value: Annotation) -> Any:
    """Convert an annotation variant to a JSON-ready Python value."""
    if isinstance(value, Series):
        return [plain(v) for v in value.values]
    return value.value


def format_value(value: Annotation) -> str:
    """Serialize an annotation variant back to block syntax."""
    if isinstance(value, Series):
        return "{" + ",".join(format_value(v) for v in value.values) + "}"
    if isinstance(value, Number):
        return repr(value.value)
    if isinstance(value, Text):
        return '"' + value.value + '"'
    return value.value


def format_block(annotations: Dict[str, Annotation]) -> str:
    """Serialize a mapping to ``[&k=v,...]``; empty string for no entries."""
    if not annotations:
        return ""
    body = ",".join(f"{k}={format_value(v)}" for k, v in annotations.items())
    return f"[&{body}]"
