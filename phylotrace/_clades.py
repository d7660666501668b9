"""
_clades.py
==========
Ancestor/descendant queries and derived per-node annotation layers over a
TreeModel.

A CladeAnalyzer owns every memo table it fills.  The tree is never written
to: descendant sets are cached per node ID in the analyzer, and derived
annotations (for example a "this node is in the Asian clade" flag) live in
named layers beside the tree rather than on its nodes.  Rebuilding a tree
therefore requires a new analyzer.

Public API
----------
  CladeAnalyzer(tree)
      .descendant_tips(node)      frozenset of tip IDs
      .descendant_labels(node)    frozenset of tip labels
      .clade(node)                Clade(mrca, tips)
      .mrca(tips)                 deepest common ancestor ID
      .is_monophyletic(tips)
      .tmrca(tips)                absolute date of the MRCA
      .annotate_subtree(node, key, value)
      .membership(key)            read-only {node_id: value}
      .flag(node, key, default=None)
      .layout()                   JSON-ready per-node rendering records
"""

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple

import numpy as np

from phylotrace._annotations import plain
from phylotrace._errors import DisjointTipSetError
from phylotrace._logging import log_annotation_layer
from phylotrace._tree import TreeModel


class Clade(NamedTuple):
    """A node together with the set of tip IDs below it."""

    mrca: int
    tips: FrozenSet[int]


class CladeAnalyzer:
    """
    Clade queries over one TreeModel.

    Parameters
    ----------
    tree : TreeModel
        The tree to analyze.  It is only read.

    Examples
    --------
    >>> tree = parse_tree("(((A:1,B:1):1,C:2):1,(D:1,E:1):2);")
    >>> ca = CladeAnalyzer(tree)
    >>> ca.mrca(["A", "C"])
    6
    >>> ca.mrca(["A", "D"]) == tree.root
    True
    """

    def __init__(self, tree: TreeModel) -> None:
        self.tree = tree
        self._tips_memo: Dict[int, FrozenSet[int]] = {}
        self._layers: Dict[str, Dict[int, Any]] = {}

    def __repr__(self) -> str:
        return (
            f"<CladeAnalyzer: {self.tree!r}, {len(self._tips_memo)} cached clade(s), "
            f"{len(self._layers)} layer(s)>"
        )

    # ================================================================== #
    # Descendants                                                          #
    # ================================================================== #

    def descendant_tips(self, node) -> FrozenSet[int]:
        """
        Return the IDs of all tips at or below *node*.

        Computed by an explicit post-order walk of the subtree that stops at
        any node already memoized, so repeated and nested queries cost
        nothing beyond the first walk.

        Phase-coded stack:
          phase 0  First visit: schedule the exit, then every child that is
                   not yet memoized.
          phase 1  Exit: union of the children's (now memoized) sets.
        """
        tree = self.tree
        v = tree._resolve_node(node)
        memo = self._tips_memo
        if v in memo:
            return memo[v]

        stack_node = [v]
        stack_phase = [0]
        while stack_node:
            u = stack_node.pop()
            phase = stack_phase.pop()
            if u in memo:
                continue
            kids = tree.children(u)
            if not kids:
                memo[u] = frozenset((u,))
            elif phase == 0:
                stack_node.append(u)
                stack_phase.append(1)
                for c in kids:
                    if c not in memo:
                        stack_node.append(c)
                        stack_phase.append(0)
            else:
                memo[u] = frozenset().union(*(memo[c] for c in kids))
        return memo[v]

    def descendant_labels(self, node) -> FrozenSet[str]:
        names = self.tree.names
        return frozenset(names[t] for t in self.descendant_tips(node))

    def clade(self, node) -> Clade:
        v = self.tree._resolve_node(node)
        return Clade(v, self.descendant_tips(v))

    # ================================================================== #
    # Common ancestry                                                      #
    # ================================================================== #

    def mrca(self, tips: Iterable) -> int:
        """
        Return the deepest node that is an ancestor of (or equal to) every
        node in *tips*.

        Parameters
        ----------
        tips : iterable of str or int
            Tip labels or node IDs.  Duplicates are ignored.  A single label
            may be passed as a bare string.

        Returns
        -------
        int
            Node ID of the most recent common ancestor.  A single tip is its
            own MRCA.

        Raises
        ------
        ValueError            if *tips* is empty.
        DisjointTipSetError   naming every label that is not in the tree.
        AmbiguousLabelError   if the tree has duplicate tip labels.
        IndexError            if a node ID is out of range.
        """
        ids = self._resolve_set(tips)

        # Compare root-to-node paths position by position from the root end.
        paths = [self.tree.path_to_root(v)[::-1] for v in ids]
        shortest = min(len(p) for p in paths)
        first = paths[0]
        result = first[0]
        for k in range(shortest):
            candidate = first[k]
            if any(p[k] != candidate for p in paths):
                break
            result = candidate
        return result

    def is_monophyletic(self, tips: Iterable) -> bool:
        """True if the tips below ``mrca(tips)`` are exactly *tips*."""
        ids = self._resolve_set(tips)
        return self.descendant_tips(self.mrca(ids)) == ids

    def tmrca(self, tips: Iterable) -> float:
        """
        Absolute date of ``mrca(tips)``.

        Raises
        ------
        ValueError   if the tree has not been placed in absolute time.
        """
        if not self.tree.is_time_scaled:
            raise ValueError(
                "tmrca requires a time-scaled tree; call set_absolute_time() first."
            )
        return float(self.tree.dates[self.mrca(tips)])

    # ================================================================== #
    # Derived annotation layers                                            #
    # ================================================================== #

    def annotate_subtree(self, node, key: str, value: Any) -> int:
        """
        Set ``value`` for *node* and every node below it in layer *key*.

        Later writes to the same layer overwrite earlier ones node by node.
        Returns the number of nodes written.
        """
        tree = self.tree
        v = tree._resolve_node(node)
        layer = self._layers.setdefault(key, {})

        n_written = 0
        stack = [v]
        while stack:
            u = stack.pop()
            layer[u] = value
            n_written += 1
            stack.extend(tree.children(u))

        log_annotation_layer(key, v, n_written, len(layer))
        return n_written

    def membership(self, key: str):
        """
        Read-only ``{node_id: value}`` view of layer *key*.

        Raises
        ------
        KeyError   if nothing has been written to *key*.
        """
        if key not in self._layers:
            raise KeyError(f"No annotation layer named '{key}'.")
        return MappingProxyType(self._layers[key])

    def flag(self, node, key: str, default: Any = None) -> Any:
        """Value of layer *key* at *node*, or *default* if unset."""
        v = self.tree._resolve_node(node)
        return self._layers.get(key, {}).get(v, default)

    @property
    def layers(self) -> tuple:
        return tuple(self._layers)

    # ================================================================== #
    # Rendering surface                                                    #
    # ================================================================== #

    def layout(self) -> Dict[int, Dict[str, Any]]:
        """
        Per-node records for a renderer, with plain JSON-ready values.

        ``time`` is the absolute date on a time-scaled tree and the distance
        from the root otherwise.

        >>> ca.layout()[0]
        {'parent': 5, 'label': 'A', 'time': 3.0, 'annotations': {}, 'layers': {}}
        """
        tree = self.tree
        times = tree.dates if tree.is_time_scaled else tree.root_distance
        records: Dict[int, Dict[str, Any]] = {}
        for v in range(tree.n_nodes):
            p = int(tree.parent[v])
            records[v] = {
                "parent": None if p == -1 else p,
                "label": tree.names[v],
                "time": float(times[v]),
                "annotations": {k: plain(a) for k, a in tree.annotations[v].items()},
                "layers": {
                    key: layer[v] for key, layer in self._layers.items() if v in layer
                },
            }
        return records

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _resolve_set(self, tips: Iterable) -> FrozenSet[int]:
        """
        **Private.**  Resolve labels / IDs to a deduplicated set of node IDs,
        collecting every unknown label before raising.
        """
        if isinstance(tips, (str, int, np.integer)):
            tips = [tips]
        items = list(tips)
        if not items:
            raise ValueError("At least one tip is required.")

        ids: List[int] = []
        missing: List[str] = []
        for t in items:
            try:
                ids.append(self.tree._resolve_node(t))
            except DisjointTipSetError:
                missing.append(t)
        if missing:
            raise DisjointTipSetError(set(missing))
        return frozenset(ids)
