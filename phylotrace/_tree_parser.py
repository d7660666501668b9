"""
_tree_parser.py
===============
Parse annotated NEWICK (and the NEXUS ``trees`` block that wraps it in
BEAST/TreeAnnotator output) into a TreeModel.

Grammar
-------
  tree        := subtree ';'
  subtree     := '(' subtree (',' subtree)* ')' [label] suffix
               | label suffix
  suffix      := [annotation] [':' [annotation] length] [annotation]
  annotation  := '[&' key=value (',' key=value)* ']'
  label       := bare token | 'single quoted' | "double quoted"

Square-bracket blocks that do not start with '&' are comments and are
skipped.  A rooting comment (``[&R]`` / ``[&U]``) in front of the tree is
accepted and ignored; any other annotation block that precedes every node
is an error.

Single-pass algorithm
---------------------
An iterative, stack-based character scan (no recursion) builds temporary
node records.  ``last`` always holds the most recently completed node, which
is the only node a label, annotation block or branch length may attach to.
After the scan, records are renumbered into the TreeModel node-ID
convention:

  Tips     : 0 … n_tips-1        (creation order = left-to-right)
  Internal : n_tips … n_nodes-2  (creation order = order of closing ')')
  Root     : n_nodes-1           (the last ')' closed)
"""

import os
import re
from typing import Dict, List, Optional, Tuple

import numpy as np

from phylotrace._annotations import _NUMERIC, parse_block, split_top_level
from phylotrace._errors import EmptyTreeError, MalformedTreeError
from phylotrace._logging import (
    log_negative_branches,
    log_nexus_translation,
    log_tree_statistics,
)
from phylotrace._tree import TreeModel


_WHITESPACE = " \t\r\n"
_LABEL_END = "(),:;[]" + _WHITESPACE
_LENGTH_END = ",);[" + _WHITESPACE
_ROOTING_COMMENTS = ("&R", "&r", "&U", "&u")

_COMMENT_RE = re.compile(r"\[[^\]]*\]")
_LEADING_BLOCKS_RE = re.compile(r"^\s*(\[[^\]]*\]\s*)*")
_TREES_BLOCK_RE = re.compile(r"begin\s+trees\s*;", re.IGNORECASE)
_END_BLOCK_RE = re.compile(r"\bend(block)?\s*;", re.IGNORECASE)


class TreeParser:
    """
    Parser for annotated NEWICK and NEXUS tree text.

    Parameters
    ----------
    most_recent_date : float, optional
        Decimal year of the most recent sample.  When given, every parsed
        tree is placed in absolute time before it is returned.
    default_length : float, optional
        Branch length for non-root nodes written without one.  When None
        (the default) a missing length is a MalformedTreeError.

    Examples
    --------
    >>> parser = TreeParser(most_recent_date=2019.5)
    >>> tree = parser.parse("((A:1,B:1)[&region=north]:2,C:3);")
    >>> tree[3].annotations["region"]
    Category(value='north')
    >>> tree[tree.root].date
    2016.5
    """

    def __init__(
        self,
        most_recent_date: Optional[float] = None,
        default_length: Optional[float] = None,
    ) -> None:
        self.most_recent_date = most_recent_date
        self.default_length = default_length

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    def parse(self, text: str) -> TreeModel:
        """
        Parse one annotated NEWICK tree.

        Raises
        ------
        EmptyTreeError       if *text* contains no node tokens.
        MalformedTreeError   on any grammar violation (see module docstring).
        """
        return self._build(text, translate=None)

    def parse_nexus(self, text: str, tree_index: int = 0) -> TreeModel:
        """
        Parse tree number *tree_index* from the ``trees`` block of a NEXUS
        document, applying its ``translate`` table to tip labels.

        Tree-level blocks between ``=`` and the opening parenthesis (for
        example ``[&R]`` or ``[&lnP=-2048.1]``) are skipped.

        Raises
        ------
        MalformedTreeError   if the ``#NEXUS`` header is missing or a
                             statement is unterminated.
        EmptyTreeError       if there is no ``trees`` block or it holds no
                             tree statement.
        IndexError           if *tree_index* is out of range.
        """
        stripped = text.lstrip()
        if not stripped[:6].upper() == "#NEXUS":
            raise MalformedTreeError("missing #NEXUS header", position=0, token=stripped[:20])

        begin = _TREES_BLOCK_RE.search(text)
        if begin is None:
            raise EmptyTreeError("NEXUS document has no trees block")
        end = _END_BLOCK_RE.search(text, begin.end())
        block_end = end.start() if end is not None else len(text)

        translate: Dict[str, str] = {}
        tree_texts: List[str] = []
        for statement in _split_statements(text, begin.end(), block_end):
            body = _LEADING_BLOCKS_RE.sub("", statement)
            keyword = body.split(None, 1)[0].lower() if body.strip() else ""
            if keyword == "translate":
                translate.update(_parse_translate(body[len("translate"):]))
            elif keyword in ("tree", "utree"):
                eq = _find_assignment(body)
                if eq == -1:
                    raise MalformedTreeError("tree statement without '='", token=body[:40])
                tree_text = body[eq + 1 :]
                tree_texts.append(_LEADING_BLOCKS_RE.sub("", tree_text) + ";")

        if not tree_texts:
            raise EmptyTreeError("NEXUS trees block contains no tree statement")
        if tree_index < 0 or tree_index >= len(tree_texts):
            raise IndexError(
                f"tree_index {tree_index} out of range for {len(tree_texts)} tree(s)."
            )
        return self._build(tree_texts[tree_index], translate=translate)

    def read(self, source) -> TreeModel:
        """
        Read a tree from a path or an open text handle.

        NEXUS input is recognised by its ``#NEXUS`` header; anything else is
        parsed as a single NEWICK tree.
        """
        if isinstance(source, (str, os.PathLike)):
            with open(source) as fh:
                text = fh.read()
        else:
            text = source.read()
        if text.lstrip()[:6].upper() == "#NEXUS":
            return self.parse_nexus(text)
        return self.parse(text)

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _build(self, text: str, translate: Optional[Dict[str, str]]) -> TreeModel:
        """**Private.**  Scan, renumber, construct, and optionally time-scale."""
        s = text.strip()
        if not _has_node_tokens(s):
            raise EmptyTreeError("tree text contains no nodes", position=0, token=s[:20])

        records = _scan(s)
        tree = self._assemble(records, translate)

        if self.most_recent_date is not None:
            tree.set_absolute_time(self.most_recent_date)
        return tree

    def _assemble(self, records: "_Records", translate: Optional[Dict[str, str]]) -> TreeModel:
        """
        **Private.**  Convert scan records into a TreeModel.

        Fills missing branch lengths (or rejects them), applies the NEXUS
        translate table to tip labels and remaps temporary record indices to
        final node IDs.
        """
        n_records = len(records.is_tip)
        root_rec = records.root

        tip_recs = [r for r in range(n_records) if records.is_tip[r]]
        internal_recs = [r for r in range(n_records) if not records.is_tip[r]]
        new_id = np.empty(n_records, dtype=np.int64)
        for k, r in enumerate(tip_recs):
            new_id[r] = k
        for k, r in enumerate(internal_recs):
            new_id[r] = len(tip_recs) + k

        n_renamed = 0
        names = [""] * n_records
        children: List[List[int]] = [[] for _ in range(n_records)]
        distance = np.full(n_records, np.nan, dtype=np.float64)
        annotations: List[dict] = [{} for _ in range(n_records)]

        for r in range(n_records):
            v = int(new_id[r])
            label = records.labels[r] or ""
            if translate and records.is_tip[r] and label in translate:
                label = translate[label]
                n_renamed += 1
            names[v] = label
            children[v] = [int(new_id[c]) for c in records.children[r]]
            annotations[v] = records.annotations[r]

            length = records.lengths[r]
            if length is None and r != root_rec:
                if self.default_length is None:
                    raise MalformedTreeError(
                        "missing branch length",
                        position=records.positions[r],
                        token=label or "(internal node)",
                    )
                length = float(self.default_length)
            if length is not None:
                distance[v] = length

        if translate:
            log_nexus_translation(len(translate), n_renamed)

        tree = TreeModel(names, children, distance, annotations)

        negative = [int(v) for v in np.flatnonzero(tree.distance < 0)]
        log_negative_branches(negative)
        log_tree_statistics(
            tree.n_nodes,
            tree.n_tips,
            sum(1 for a in annotations if a),
            tree.tree_height,
            sum(1 for c in children if len(c) > 2),
        )
        return tree


# ============================================================================ #
# Module-level shortcuts
# ============================================================================ #


def parse_tree(text: str, **kwargs) -> TreeModel:
    """Parse NEWICK *text*; keyword arguments go to TreeParser."""
    return TreeParser(**kwargs).parse(text)


def read_tree(source, **kwargs) -> TreeModel:
    """Read a NEWICK or NEXUS tree from *source*; keyword arguments go to TreeParser."""
    return TreeParser(**kwargs).read(source)


# ============================================================================ #
# Scanner
# ============================================================================ #


class _Records:
    """Temporary per-node records filled by ``_scan``."""

    __slots__ = ("is_tip", "labels", "lengths", "annotations", "children", "positions", "root")

    def __init__(self) -> None:
        self.is_tip: List[bool] = []
        self.labels: List[Optional[str]] = []
        self.lengths: List[Optional[float]] = []
        self.annotations: List[dict] = []
        self.children: List[List[int]] = []
        self.positions: List[int] = []
        self.root: int = -1

    def add(self, is_tip: bool, label: Optional[str], children: List[int], position: int) -> int:
        self.is_tip.append(is_tip)
        self.labels.append(label)
        self.lengths.append(None)
        self.annotations.append({})
        self.children.append(children)
        self.positions.append(position)
        return len(self.is_tip) - 1


def _scan(s: str) -> _Records:
    """
    Character scan of a stripped NEWICK string into ``_Records``.

    Raises
    ------
    MalformedTreeError   on any grammar violation.
    """
    n = len(s)
    rec = _Records()
    stack: List[List[int]] = []  # child lists of the currently open groups
    opened_at: List[int] = []  # position of each open '('
    last = -1  # most recently completed node; -1 when none
    terminated = False

    i = 0
    while i < n:
        c = s[i]

        if c in _WHITESPACE:
            i += 1
            continue

        if c == "(":
            if last != -1:
                raise MalformedTreeError("unexpected '(' after a complete node", position=i, token="(")
            stack.append([])
            opened_at.append(i)
            i += 1
            continue

        if c == ",":
            if not stack:
                raise MalformedTreeError("',' outside any parentheses", position=i, token=",")
            if last == -1:
                raise MalformedTreeError("missing node before ','", position=i, token=",")
            stack[-1].append(last)
            last = -1
            i += 1
            continue

        if c == ")":
            if not stack:
                raise MalformedTreeError(
                    "unbalanced parentheses: unexpected ')'", position=i, token=")"
                )
            if last == -1:
                raise MalformedTreeError("missing node before ')'", position=i, token=")")
            kids = stack.pop()
            opened_at.pop()
            kids.append(last)
            last = rec.add(False, None, kids, i)
            i += 1
            continue

        if c == ";":
            terminated = True
            i += 1
            break

        if c == "[":
            i = _read_block(s, i, rec, last, bool(stack))
            continue

        if c == "]":
            raise MalformedTreeError("unexpected ']'", position=i, token="]")

        if c == ":":
            if last == -1:
                raise MalformedTreeError("branch length attached to no node", position=i, token=":")
            if rec.lengths[last] is not None:
                raise MalformedTreeError("node has two branch lengths", position=i, token=":")
            i += 1
            while i < n and s[i] in _WHITESPACE:
                i += 1
            while i < n and s[i] == "[":
                i = _read_block(s, i, rec, last, bool(stack))
                while i < n and s[i] in _WHITESPACE:
                    i += 1
            j = i
            while j < n and s[j] not in _LENGTH_END:
                j += 1
            token = s[i:j]
            if not _NUMERIC.match(token):
                raise MalformedTreeError("non-numeric branch length", position=i, token=token)
            rec.lengths[last] = float(token)
            i = j
            continue

        # Label: quoted or bare
        start = i
        if c == "'" or c == '"':
            label, i = _read_quoted(s, i)
            if label == "" and last == -1:
                raise MalformedTreeError("empty tip label", position=start, token=s[start:i])
        else:
            j = i
            while j < n and s[j] not in _LABEL_END:
                j += 1
            label = s[i:j]
            i = j

        if last == -1:
            last = rec.add(True, label, [], start)
        elif (
            not rec.is_tip[last]
            and rec.labels[last] is None
            and rec.lengths[last] is None
        ):
            rec.labels[last] = label
        else:
            raise MalformedTreeError("unexpected label", position=start, token=label)

    if stack:
        raise MalformedTreeError(
            f"unbalanced parentheses: {len(stack)} unclosed '('",
            position=opened_at[-1],
            token="(",
        )
    if not terminated:
        raise MalformedTreeError("missing terminating ';'", position=n, token=s[-20:])
    rest = s[i:].strip()
    if rest:
        raise MalformedTreeError("unexpected text after ';'", position=i, token=rest[:20])
    if last == -1:
        raise EmptyTreeError("tree text contains no nodes", position=0, token=s[:20])

    rec.root = last
    return rec


def _read_block(s: str, i: int, rec: _Records, last: int, nested: bool) -> int:
    """
    Consume the square-bracket block starting at ``s[i] == '['``.

    Annotation blocks (``[&...]``) are merged into the annotations of node
    *last*; comments are skipped.  Returns the index just past ``]``.
    """
    j = _block_end(s, i)
    body = s[i + 1 : j]
    if body.startswith("&"):
        if last == -1:
            if body.strip() in _ROOTING_COMMENTS and not rec.is_tip and not nested:
                return j + 1
            raise MalformedTreeError(
                "annotation block attached to no node", position=i, token=s[i : j + 1]
            )
        try:
            rec.annotations[last].update(parse_block(body[1:]))
        except ValueError as exc:
            raise MalformedTreeError(str(exc), position=i, token=s[i : j + 1]) from None
    return j + 1


def _block_end(s: str, i: int) -> int:
    """
    Index of the ``]`` closing the block opened at ``s[i]``.  Inside an
    annotation block a ``]`` within a quoted value does not close it.
    """
    quoted = s.startswith("[&", i)
    quote = None
    for j in range(i + 1, len(s)):
        c = s[j]
        if quote is not None:
            if c == quote:
                quote = None
        elif quoted and (c == '"' or c == "'"):
            quote = c
        elif c == "]":
            return j
    raise MalformedTreeError("unterminated '[' block", position=i, token=s[i : i + 20])


def _read_quoted(s: str, i: int) -> Tuple[str, int]:
    """
    Read a quoted label starting at ``s[i]``.  A doubled quote character
    inside the label stands for one literal quote.  Returns the label and
    the index just past the closing quote.
    """
    quote = s[i]
    n = len(s)
    buf = []
    j = i + 1
    while j < n:
        if s[j] == quote:
            if j + 1 < n and s[j + 1] == quote:
                buf.append(quote)
                j += 2
                continue
            return "".join(buf), j + 1
        buf.append(s[j])
        j += 1
    raise MalformedTreeError("unterminated quoted label", position=i, token=s[i : i + 20])


def _has_node_tokens(s: str) -> bool:
    """True if *s* holds anything besides structure, whitespace and comments."""
    body = _COMMENT_RE.sub("", s)
    return any(c not in "();," + _WHITESPACE for c in body)


# ============================================================================ #
# NEXUS helpers
# ============================================================================ #


def _split_statements(text: str, start: int, stop: int) -> List[str]:
    """
    Split ``text[start:stop]`` on ';' outside quotes and square brackets.

    Raises
    ------
    MalformedTreeError   if the last statement is not terminated.
    """
    statements = []
    buf = []
    depth = 0
    quote = None
    for k in range(start, stop):
        c = text[k]
        if quote is not None:
            if c == quote:
                quote = None
        elif c == "'" or c == '"':
            quote = c
        elif c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
        elif c == ";" and depth == 0:
            statements.append("".join(buf))
            buf = []
            continue
        buf.append(c)
    if "".join(buf).strip():
        raise MalformedTreeError("unterminated NEXUS statement", position=stop, token="".join(buf)[:40])
    return statements


def _parse_translate(body: str) -> Dict[str, str]:
    """Parse ``1 'A|2019-01-01', 2 B, ...`` into ``{'1': 'A|2019-01-01', '2': 'B'}``."""
    table = {}
    for entry in split_top_level(body):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(None, 1)
        if len(parts) != 2:
            raise MalformedTreeError("translate entry needs a key and a label", token=entry)
        key, label = parts[0], parts[1].strip()
        if len(label) >= 2 and label[0] == label[-1] and label[0] in "'\"":
            label = label[1:-1].replace(label[0] * 2, label[0])
        table[key] = label
    return table


def _find_assignment(statement: str) -> int:
    """Index of the first '=' outside square brackets, or -1."""
    depth = 0
    for k, c in enumerate(statement):
        if c == "[":
            depth += 1
        elif c == "]":
            depth -= 1
        elif c == "=" and depth == 0:
            return k
    return -1
