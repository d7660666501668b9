"""
tests/test_tree.py
==================
Pytest test suite for the TreeModel class and its Node views.

Tree fixtures
-------------
  five_tip.tree
      (((A:1,B:1):1,C:2):1,(D:1,E:1):2);

      Node IDs (tips left-to-right, then internals in closing order):
        A=0  B=1  C=2  D=3  E=4  AB=5  ABC=6  DE=7  root=8

      root_distance: A=B=C=D=E=3  AB=2  ABC=1  DE=2  root=0
      tree_height  : 3

      With most_recent_date=2020.0:
        root=2017  ABC=2018  AB=2019  DE=2019  tips=2020
"""

import math
import os
import sys

import numpy as np
import pytest

_TREES_DIR = os.path.join(os.path.dirname(__file__), "trees")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from phylotrace._errors import AmbiguousLabelError, DisjointTipSetError
from phylotrace._tree import Node, TreeModel
from phylotrace._tree_parser import parse_tree, read_tree

EPS = 1e-12


# ======================================================================== #
# Helpers and fixtures                                                      #
# ======================================================================== #


def load_tree(filename: str, **kwargs) -> TreeModel:
    return read_tree(os.path.join(_TREES_DIR, filename), **kwargs)


@pytest.fixture(scope="module")
def five():
    return load_tree("five_tip.tree")


@pytest.fixture(scope="module")
def five_dated():
    return load_tree("five_tip.tree", most_recent_date=2020.0)


# ======================================================================== #
# 1. Scalar properties                                                      #
# ======================================================================== #


class TestScalarProperties:
    def test_n_nodes(self, five):
        assert five.n_nodes == 9
        assert len(five) == 9

    def test_n_tips(self, five):
        assert five.n_tips == 5

    def test_root(self, five):
        assert five.root == 8

    def test_max_depth(self, five):
        assert five.max_depth == 3

    def test_tree_height(self, five):
        assert abs(five.tree_height - 3.0) < EPS

    def test_tips(self, five):
        assert five.tips == (0, 1, 2, 3, 4)
        assert five.tip_labels == ("A", "B", "C", "D", "E")

    def test_repr(self, five):
        assert "5 tips" in repr(five)


# ======================================================================== #
# 2. Arrays                                                                 #
# ======================================================================== #


class TestArrays:
    def test_parent(self, five):
        assert list(five.parent) == [5, 5, 6, 7, 7, 6, 8, 8, -1]

    def test_csr_children(self, five):
        assert list(five.child_offsets) == [0, 0, 0, 0, 0, 0, 2, 4, 6, 8]
        assert list(five.child_index) == [0, 1, 5, 2, 3, 4, 6, 7]

    def test_root_distance(self, five):
        np.testing.assert_allclose(
            five.root_distance, [3, 3, 3, 3, 3, 2, 1, 2, 0], atol=EPS
        )

    def test_depth(self, five):
        assert list(five.depth) == [3, 3, 2, 2, 2, 2, 1, 1, 0]

    def test_preorder_starts_at_root(self, five):
        assert five.preorder[0] == five.root
        assert list(five.preorder) == [8, 6, 5, 0, 1, 2, 7, 3, 4]

    def test_postorder_ends_at_root(self, five):
        assert list(five.postorder) == [0, 1, 5, 2, 6, 3, 4, 7, 8]

    @pytest.mark.parametrize(
        "attr",
        ["parent", "distance", "child_offsets", "child_index", "depth",
         "root_distance", "preorder", "postorder", "dates"],
    )
    def test_read_only(self, five, attr):
        with pytest.raises(ValueError):
            getattr(five, attr)[0] = 0


# ======================================================================== #
# 3. Node views                                                             #
# ======================================================================== #


class TestNode:
    def test_getitem_returns_view(self, five):
        node = five[0]
        assert isinstance(node, Node)
        assert node.id == 0
        assert node.label == "A"

    def test_lookup_by_label(self, five):
        assert five.node("C").id == 2

    def test_parent_and_children(self, five):
        assert five[5].parent == five[6]
        assert five[5].children == (five[0], five[1])
        assert five[five.root].parent is None

    def test_flags(self, five):
        assert five[0].is_tip
        assert not five[5].is_tip
        assert five[8].is_root
        assert not five[0].is_root

    def test_length_and_height(self, five):
        assert five[2].length == 2.0
        assert five[2].height == 3.0
        assert five[five.root].length is None

    def test_equality_and_hash(self, five):
        assert five[3] == five[3]
        assert five[3] != five[4]
        assert len({five[3], five[3], five[4]}) == 2

    def test_not_equal_across_trees(self, five):
        other = load_tree("five_tip.tree")
        assert five[0] != other[0]

    def test_repr(self, five):
        assert repr(five[0]) == "<Node 0 (tip) 'A'>"
        assert repr(five[8]) == "<Node 8 (root)>"

    def test_iteration(self, five):
        assert [n.id for n in five] == list(range(9))

    def test_out_of_range(self, five):
        with pytest.raises(IndexError):
            five[99]


# ======================================================================== #
# 4. Paths and name index                                                   #
# ======================================================================== #


class TestPathToRoot:
    @pytest.mark.parametrize(
        "node,expected",
        [
            ("A", [0, 5, 6, 8]),
            ("C", [2, 6, 8]),
            (4, [4, 7, 8]),
            (8, [8]),
        ],
    )
    def test_path(self, five, node, expected):
        assert five.path_to_root(node) == expected


class TestNameIndex:
    def test_built_lazily(self):
        tree = load_tree("five_tip.tree")
        assert tree._name_index is None
        tree.tip_id("A")
        assert tree._name_index is not None

    def test_not_rebuilt(self, five):
        five.tip_id("A")
        before = id(five._name_index)
        five.tip_id("E")
        assert id(five._name_index) == before

    def test_unknown_label(self, five):
        with pytest.raises(DisjointTipSetError) as info:
            five.tip_id("Z")
        assert info.value.missing == ("Z",)
        assert isinstance(info.value, LookupError)

    def test_duplicate_labels(self):
        tree = parse_tree("(A:1,(A:1,B:1):1);")
        with pytest.raises(AmbiguousLabelError):
            tree.tip_id("B")


# ======================================================================== #
# 5. Time scaling                                                           #
# ======================================================================== #


class TestTimeScaling:
    @pytest.mark.parametrize(
        "node,date",
        [(8, 2017.0), (6, 2018.0), (5, 2019.0), (7, 2019.0), (0, 2020.0), (3, 2020.0)],
    )
    def test_dates(self, five_dated, node, date):
        assert abs(five_dated[node].date - date) < EPS

    def test_flag(self, five_dated):
        assert five_dated.is_time_scaled

    def test_dates_read_only(self, five_dated):
        with pytest.raises(ValueError):
            five_dated.dates[0] = 0.0

    def test_second_pass_rejected(self):
        tree = load_tree("five_tip.tree")
        tree.set_absolute_time(2020.0)
        with pytest.raises(ValueError):
            tree.set_absolute_time(2021.0)
        assert abs(tree[tree.root].date - 2017.0) < EPS

    def test_non_finite_rejected(self):
        tree = load_tree("five_tip.tree")
        with pytest.raises(ValueError):
            tree.set_absolute_time(float("nan"))
        assert not tree.is_time_scaled

    def test_unequal_tip_heights(self):
        tree = parse_tree("((A:1,B:3):1,C:1);")
        tree.set_absolute_time(2000.0)
        # B is furthest from the root and anchors the most recent date.
        assert abs(tree[1].date - 2000.0) < EPS
        assert abs(tree[0].date - 1998.0) < EPS
        assert abs(tree[tree.root].date - 1996.0) < EPS


# ======================================================================== #
# 6. Lineages through time                                                  #
# ======================================================================== #


class TestCountLineages:
    @pytest.mark.parametrize(
        "t,expected",
        [(0.0, 0), (0.5, 2), (1.5, 3), (2.5, 5), (3.0, 5), (3.5, 0)],
    )
    def test_root_distance_scale(self, five, t, expected):
        assert five.count_lineages(t) == expected

    def test_absolute_scale(self, five_dated):
        assert five_dated.count_lineages(2017.5) == 2
        assert five_dated.count_lineages(2019.5) == 5


# ======================================================================== #
# 7. Direct construction                                                    #
# ======================================================================== #


class TestConstruction:
    def test_minimal(self):
        tree = TreeModel(["A", "B", ""], [[], [], [0, 1]], [1.0, 2.0, np.nan])
        assert tree.root == 2
        assert tree.tree_height == 2.0

    def test_empty(self):
        with pytest.raises(ValueError):
            TreeModel([], [], [])

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            TreeModel(["A", "B"], [[], []], [1.0])

    def test_two_roots(self):
        with pytest.raises(ValueError, match="exactly one root"):
            TreeModel(["A", "B"], [[], []], [1.0, 1.0])

    def test_two_parents(self):
        with pytest.raises(ValueError, match="more than one parent"):
            TreeModel(["A", "", ""], [[], [0], [0, 1]], [1.0, 1.0, np.nan])

    def test_cycle_is_disconnected(self):
        with pytest.raises(ValueError, match="not connected"):
            TreeModel(["", "", "R"], [[1], [0], []], [1.0, 1.0, np.nan])

    def test_missing_length(self):
        with pytest.raises(ValueError, match="without branch length"):
            TreeModel(["A", "B", ""], [[], [], [0, 1]], [np.nan, 1.0, np.nan])

    def test_input_arrays_not_aliased(self):
        distance = np.array([1.0, 2.0, np.nan])
        tree = TreeModel(["A", "B", ""], [[], [], [0, 1]], distance)
        distance[0] = 5.0
        assert tree.distance[0] == 1.0
        assert not math.isnan(tree.root_distance[0])
