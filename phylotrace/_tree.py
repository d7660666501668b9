"""
_tree.py
========
A single rooted, annotated, optionally time-scaled phylogenetic tree
represented as a set of parallel numpy arrays indexed by integer node ID.

Public API
----------
  TreeModel(names, children, distance, annotations=None)
      Constructor.  Normally called by TreeParser, which supplies the arrays
      in the node-ID convention below.

  tree[node_id] / .node(node_id)           O(1) Node view
  .children(node)
  .path_to_root(node)
  .tip_id(label)
  .set_absolute_time(most_recent_date)
  .count_lineages(t)
  .to_newick(annotations=True)

Node-ID conventions (set once by the parser; never change)
-----------------------------------------------------------
  Tips     : 0 … n_tips-1        (left-to-right in the tree text)
  Internal : n_tips … n_nodes-2  (post-order, i.e. order of closing ')')
  Root     : n_nodes-1

Children are stored in CSR layout so multifurcating nodes need no
resolution into zero-length bifurcations:

  child_offsets : int64 [n_nodes+1]
  child_index   : int32 [n_nodes-1]
      children of node v are child_index[child_offsets[v]:child_offsets[v+1]]
      in their left-to-right order.

Immutability
------------
Every array is flagged read-only and every annotation mapping is a
``MappingProxyType``.  The one exception is ``dates``, written exactly once
by ``set_absolute_time``; a second call raises ``ValueError``.
"""

from types import MappingProxyType
from typing import Dict, List, Optional, Sequence

import numpy as np

from phylotrace._annotations import Annotation, format_block
from phylotrace._errors import AmbiguousLabelError, DisjointTipSetError
from phylotrace._logging import log_time_scaling


_QUOTE_TRIGGERS = set(" \t\r\n()[]:;,'\"")


class Node:
    """
    Read-only view of one node of a TreeModel.

    Views are cheap to create and compare equal when they refer to the same
    node ID of the same tree instance.
    """

    __slots__ = ("_tree", "id")

    def __init__(self, tree: "TreeModel", node_id: int) -> None:
        self._tree = tree
        self.id = node_id

    @property
    def parent(self) -> Optional["Node"]:
        p = int(self._tree.parent[self.id])
        return None if p == -1 else Node(self._tree, p)

    @property
    def children(self) -> tuple:
        return tuple(Node(self._tree, c) for c in self._tree.children(self.id))

    @property
    def length(self) -> Optional[float]:
        d = float(self._tree.distance[self.id])
        return None if np.isnan(d) else d

    @property
    def height(self) -> float:
        """Cumulative branch length from the root."""
        return float(self._tree.root_distance[self.id])

    @property
    def date(self) -> Optional[float]:
        d = float(self._tree.dates[self.id])
        return None if np.isnan(d) else d

    @property
    def label(self) -> str:
        return self._tree.names[self.id]

    @property
    def annotations(self):
        return self._tree.annotations[self.id]

    @property
    def is_tip(self) -> bool:
        return self._tree.is_tip(self.id)

    @property
    def is_root(self) -> bool:
        return self.id == self._tree.root

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, Node) and other._tree is self._tree and other.id == self.id
        )

    def __hash__(self) -> int:
        return hash((id(self._tree), self.id))

    def __repr__(self) -> str:
        kind = "tip" if self.is_tip else ("root" if self.is_root else "node")
        label = f" {self.label!r}" if self.label else ""
        return f"<Node {self.id} ({kind}){label}>"


class TreeModel:
    """
    A rooted phylogenetic tree with per-node annotations and optional
    absolute dates.

    Attributes (all read-only after construction)
    ----------------------------------------------
    n_nodes     : int        Total number of nodes.
    n_tips      : int        Number of tip (leaf) nodes.
    root        : int        Node ID of the root.
    max_depth   : int        Maximum node depth (edge count from root).
    tree_height : float      Maximum root-to-tip cumulative branch length.
    names       : list[str]  Label of each node; '' for unlabelled internals.
    annotations : tuple[MappingProxyType]  Per-node annotation mapping.

    Arrays
    ------
    parent        : int32  [n_nodes]    Parent ID; -1 for root.
    distance      : float64[n_nodes]    Branch length to parent; NaN for a
                                        root without a length.
    child_offsets : int64  [n_nodes+1]  CSR offsets into child_index.
    child_index   : int32  [n_nodes-1]  Concatenated child lists.
    depth         : int32  [n_nodes]    Edge depth from root.
    root_distance : float64[n_nodes]    Cumulative branch length from root.
    preorder      : int32  [n_nodes]    Node IDs in pre-order.
    postorder     : int32  [n_nodes]    Node IDs in post-order.
    dates         : float64[n_nodes]    Absolute dates (decimal years); NaN
                                        until set_absolute_time() is called.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(
        self,
        names: Sequence[str],
        children: Sequence[Sequence[int]],
        distance,
        annotations: Optional[Sequence[Dict[str, Annotation]]] = None,
    ) -> None:
        """
        Parameters
        ----------
        names       : sequence of str     Label per node.
        children    : sequence of lists   Ordered child IDs per node.
        distance    : array-like of float Branch length per node (NaN allowed
                                          only for the root).
        annotations : sequence of dict    Per-node annotations (optional).

        Raises
        ------
        ValueError   if the arrays disagree in length, there is not exactly
                     one root, some node is unreachable from the root, or a
                     non-root node has no branch length.
        """
        n_nodes = len(names)
        if n_nodes == 0:
            raise ValueError("A tree must contain at least one node.")
        if len(children) != n_nodes or len(distance) != n_nodes:
            raise ValueError("names, children and distance must have equal length.")

        self._build_topology(children)
        self._build_traversals()

        dist = np.asarray(distance, dtype=np.float64).copy()
        non_root = self.parent != -1
        if np.any(np.isnan(dist[non_root])):
            missing = np.flatnonzero(np.isnan(dist) & non_root)
            raise ValueError(f"Non-root node(s) without branch length: {missing.tolist()}")
        self.distance = dist
        self._build_root_distance()

        self.names: List[str] = list(names)
        if annotations is None:
            annotations = [{} for _ in range(n_nodes)]
        self.annotations = tuple(MappingProxyType(dict(a)) for a in annotations)

        self.n_nodes: int = n_nodes
        tip_mask = np.diff(self.child_offsets) == 0
        self.n_tips: int = int(np.count_nonzero(tip_mask))
        self.max_depth: int = int(np.max(self.depth))
        self.tree_height: float = float(np.max(self.root_distance[tip_mask]))

        self.dates = np.full(n_nodes, np.nan, dtype=np.float64)
        self.dates.flags.writeable = False

        for arr in (
            self.parent,
            self.distance,
            self.child_offsets,
            self.child_index,
            self.depth,
            self.root_distance,
            self.preorder,
            self.postorder,
        ):
            arr.flags.writeable = False

        # Name index: built lazily on first label-based query.
        self._name_index: dict = None  # type: ignore[assignment]

    # ================================================================== #
    # Container protocol                                                   #
    # ================================================================== #

    def __len__(self) -> int:
        return self.n_nodes

    def __getitem__(self, node_id) -> Node:
        return self.node(node_id)

    def __iter__(self):
        for node_id in range(self.n_nodes):
            yield Node(self, node_id)

    def __repr__(self) -> str:
        return (
            f"<TreeModel: {self.n_tips} tips, {self.n_nodes} nodes, "
            f"height {self.tree_height:g}>"
        )

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    def node(self, node) -> Node:
        """Return the Node view for a node ID or tip label."""
        return Node(self, self._resolve_node(node))

    def children(self, node) -> tuple:
        """Return the ordered child IDs of *node* (empty for tips)."""
        v = self._resolve_node(node)
        lo = int(self.child_offsets[v])
        hi = int(self.child_offsets[v + 1])
        return tuple(int(c) for c in self.child_index[lo:hi])

    def is_tip(self, node) -> bool:
        v = self._resolve_node(node)
        return int(self.child_offsets[v + 1]) == int(self.child_offsets[v])

    @property
    def tips(self) -> tuple:
        """Tip node IDs in ascending order."""
        return tuple(int(v) for v in np.flatnonzero(np.diff(self.child_offsets) == 0))

    @property
    def tip_labels(self) -> tuple:
        return tuple(self.names[v] for v in self.tips)

    @property
    def is_time_scaled(self) -> bool:
        return not np.isnan(self.dates[self.root])

    def tip_id(self, label: str) -> int:
        """
        Return the node ID of the tip carrying *label*.

        Raises
        ------
        DisjointTipSetError   if no tip carries *label*.
        AmbiguousLabelError   if the tree has duplicate tip labels.
        """
        if self._name_index is None:
            self._build_name_index()
        if label not in self._name_index:
            raise DisjointTipSetError([label])
        return self._name_index[label]

    def path_to_root(self, node) -> List[int]:
        """
        Return the node IDs from *node* up to and including the root.

        >>> tree.path_to_root("A")
        [0, 5, 7]
        """
        v = self._resolve_node(node)
        path = [v]
        parent = self.parent
        while parent[v] != -1:
            v = int(parent[v])
            path.append(v)
        return path

    def set_absolute_time(self, most_recent_date: float) -> None:
        """
        Place every node in absolute time.

        Branch lengths are interpreted as elapsed time.  The most recent tip
        (the one furthest from the root) is placed at *most_recent_date*, so
        the root sits at ``most_recent_date - tree_height`` and every node at
        ``root_date + root_distance[node]``.

        Parameters
        ----------
        most_recent_date : float   Decimal year of the most recent sample.

        Raises
        ------
        ValueError   if the tree has already been time-scaled, or the date
                     is not finite.
        """
        if self.is_time_scaled:
            raise ValueError("Tree has already been placed in absolute time.")
        most_recent_date = float(most_recent_date)
        if not np.isfinite(most_recent_date):
            raise ValueError(f"most_recent_date must be finite, got {most_recent_date}.")

        root_date = most_recent_date - self.tree_height
        dates = root_date + self.root_distance
        dates.flags.writeable = False
        self.dates = dates
        log_time_scaling(most_recent_date, root_date, self.tree_height)

    def count_lineages(self, t: float) -> int:
        """
        Return the number of branches that span time *t*.

        A branch spans *t* when ``time[parent] < t <= time[node]``.  Time is
        the absolute date on a time-scaled tree and the distance from the
        root otherwise.
        """
        times = self.dates if self.is_time_scaled else self.root_distance
        has_parent = self.parent != -1
        node_t = times[has_parent]
        parent_t = times[self.parent[has_parent]]
        return int(np.count_nonzero((parent_t < t) & (t <= node_t)))

    def to_newick(self, annotations: bool = True) -> str:
        """
        Serialize the tree to annotated NEWICK.

        Built bottom-up over the post-order array, so arbitrarily deep trees
        serialize without recursion.  Parsing the result yields a tree with
        identical node IDs, labels, branch lengths and (when *annotations*
        is True) annotations.
        """
        parts: List[str] = [""] * self.n_nodes
        for v in self.postorder:
            v = int(v)
            kids = self.children(v)
            text = ""
            if kids:
                text = "(" + ",".join(parts[c] for c in kids) + ")"
                for c in kids:
                    parts[c] = ""
            text += _quote_label(self.names[v])
            if annotations:
                text += format_block(dict(self.annotations[v]))
            d = float(self.distance[v])
            if not np.isnan(d):
                text += ":" + repr(d)
            parts[v] = text
        return parts[self.root] + ";"

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _build_topology(self, children: Sequence[Sequence[int]]) -> None:
        """
        **Private.**  Pack *children* into CSR arrays and derive ``parent``.

        Populates
        ---------
        self.parent, self.child_offsets, self.child_index, self.root
        """
        n_nodes = len(children)
        parent = np.full(n_nodes, -1, dtype=np.int32)
        child_offsets = np.zeros(n_nodes + 1, dtype=np.int64)
        for v in range(n_nodes):
            child_offsets[v + 1] = child_offsets[v] + len(children[v])
        child_index = np.zeros(int(child_offsets[n_nodes]), dtype=np.int32)

        for v in range(n_nodes):
            lo = int(child_offsets[v])
            for k, c in enumerate(children[v]):
                if parent[c] != -1:
                    raise ValueError(f"Node {c} has more than one parent.")
                parent[c] = v
                child_index[lo + k] = c

        roots = np.flatnonzero(parent == -1)
        if roots.shape[0] != 1:
            raise ValueError(f"A tree must have exactly one root; found {roots.shape[0]}.")

        self.parent = parent
        self.child_offsets = child_offsets
        self.child_index = child_index
        self.root: int = int(roots[0])

    def _build_traversals(self) -> None:
        """
        **Private.**  Iterative depth-first traversal from the root.

        A phase-coded stack drives the DFS without recursion:
          phase 0  First entry: record depth and pre-order position, then
                   schedule the exit and the children (right-most pushed
                   first so the left-most is visited first).
          phase 1  Exit: record post-order position.

        Populates
        ---------
        self.depth, self.preorder, self.postorder

        Raises
        ------
        ValueError   if some node is not reachable from the root.
        """
        n_nodes = int(self.parent.shape[0])
        depth = np.zeros(n_nodes, dtype=np.int32)
        preorder = np.full(n_nodes, -1, dtype=np.int32)
        postorder = np.full(n_nodes, -1, dtype=np.int32)
        offsets = self.child_offsets
        child_index = self.child_index

        stack_node = [self.root]
        stack_phase = [0]
        pre_pos = 0
        post_pos = 0
        while stack_node:
            node = stack_node.pop()
            phase = stack_phase.pop()
            if phase == 0:
                p = int(self.parent[node])
                depth[node] = 0 if p == -1 else depth[p] + 1
                preorder[pre_pos] = node
                pre_pos += 1
                stack_node.append(node)
                stack_phase.append(1)
                for k in range(int(offsets[node + 1]) - 1, int(offsets[node]) - 1, -1):
                    stack_node.append(int(child_index[k]))
                    stack_phase.append(0)
            else:
                postorder[post_pos] = node
                post_pos += 1

        if pre_pos != n_nodes:
            raise ValueError(
                f"{n_nodes - pre_pos} node(s) are not connected to the root."
            )

        self.depth = depth
        self.preorder = preorder
        self.postorder = postorder

    def _build_root_distance(self) -> None:
        """**Private.**  Accumulate branch lengths root-to-tip in pre-order."""
        root_distance = np.zeros(self.parent.shape[0], dtype=np.float64)
        parent = self.parent
        distance = self.distance
        for v in self.preorder[1:]:
            root_distance[v] = root_distance[parent[v]] + distance[v]
        self.root_distance = root_distance

    def _resolve_node(self, node) -> int:
        """
        **Private.**  Return the integer node ID for *node*.

        Integers (including numpy integers) are range-checked and returned
        as plain ``int``; strings are resolved as tip labels.

        Raises
        ------
        IndexError            if an integer ID is out of range.
        DisjointTipSetError   if a label is not present.
        """
        if isinstance(node, Node):
            return node.id
        if isinstance(node, (int, np.integer)):
            v = int(node)
            if v < 0 or v >= self.parent.shape[0]:
                raise IndexError(f"Node ID {v} out of range for {self.parent.shape[0]} nodes.")
            return v
        return self.tip_id(node)

    def _build_name_index(self) -> None:
        """
        **Private.**  Build and cache ``self._name_index``: a dict mapping
        each tip label to its node ID.

        Raises
        ------
        AmbiguousLabelError   if two tips share a label.
        """
        idx = {}
        for v in self.tips:
            name = self.names[v]
            if name in idx:
                raise AmbiguousLabelError(
                    f"Duplicate tip label '{name}' at IDs {idx[name]} and {v}."
                )
            idx[name] = v
        self._name_index = idx


def _quote_label(label: str) -> str:
    if label and any(c in _QUOTE_TRIGGERS for c in label):
        return "'" + label.replace("'", "''") + "'"
    return label
