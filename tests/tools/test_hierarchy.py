"""Tests for pkb.tools.hierarchy: closure over the group parent map."""

from __future__ import annotations

import uuid

import pytest

from pkb.tools.hierarchy import (
    MAX_GROUP_DEPTH,
    ancestors,
    build_group_tree,
    depth,
    descendants,
    is_descendant,
    subtree_height,
)

pytestmark = pytest.mark.unit


def _chain(length: int) -> tuple[list[uuid.UUID], dict[uuid.UUID, uuid.UUID | None]]:
    """Build a single chain root -> ... -> leaf of *length* groups."""
    ids = [uuid.uuid4() for _ in range(length)]
    parents: dict[uuid.UUID, uuid.UUID | None] = {ids[0]: None}
    for parent, child in zip(ids, ids[1:], strict=False):
        parents[child] = parent
    return ids, parents


class TestDepth:
    def test_root_has_depth_one(self):
        ids, parents = _chain(1)
        assert depth(parents, ids[0]) == 1

    def test_chain_depths(self):
        ids, parents = _chain(MAX_GROUP_DEPTH)
        assert [depth(parents, g) for g in ids] == [1, 2, 3, 4, 5]

    def test_unknown_group_is_zero(self):
        _, parents = _chain(2)
        assert depth(parents, uuid.uuid4()) == 0

    def test_missing_parent_treated_as_root(self):
        orphan = uuid.uuid4()
        parents = {orphan: uuid.uuid4()}
        assert depth(parents, orphan) == 1

    def test_corrupt_cycle_terminates(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        parents = {a: b, b: a}
        # Walk stops when it revisits a node.
        assert depth(parents, a) == 2


class TestAncestorsAndDescendants:
    def test_ancestors_nearest_first(self):
        ids, parents = _chain(4)
        assert ancestors(parents, ids[3]) == [ids[2], ids[1], ids[0]]

    def test_descendants_of_root(self):
        ids, parents = _chain(4)
        assert descendants(parents, ids[0]) == set(ids[1:])

    def test_descendants_of_leaf_is_empty(self):
        ids, parents = _chain(3)
        assert descendants(parents, ids[-1]) == set()

    def test_is_descendant(self):
        ids, parents = _chain(3)
        assert is_descendant(parents, ids[0], ids[2])
        assert not is_descendant(parents, ids[2], ids[0])
        assert not is_descendant(parents, ids[1], ids[1])


class TestSubtreeHeight:
    def test_leaf_height_zero(self):
        ids, parents = _chain(3)
        assert subtree_height(parents, ids[-1]) == 0

    def test_height_counts_longest_branch(self):
        root, short, long_a, long_b = (uuid.uuid4() for _ in range(4))
        parents = {root: None, short: root, long_a: root, long_b: long_a}
        assert subtree_height(parents, root) == 2

    def test_move_budget_example(self):
        """A 2-deep subtree under a depth-4 parent lands at depth 7 (> 5)."""
        chain_ids, parents = _chain(4)
        top, mid, bottom = (uuid.uuid4() for _ in range(3))
        parents.update({top: None, mid: top, bottom: mid})
        new_depth = depth(parents, chain_ids[-1]) + subtree_height(parents, top) + 1
        assert new_depth == 7
        assert new_depth > MAX_GROUP_DEPTH


class TestBuildGroupTree:
    def test_roots_and_children_sorted_by_name(self):
        a, b, c, d = (uuid.uuid4() for _ in range(4))
        rows = [
            {"id": a, "name": "Work", "parent_id": None},
            {"id": b, "name": "Family", "parent_id": None},
            {"id": c, "name": "Zeta team", "parent_id": a},
            {"id": d, "name": "Alpha team", "parent_id": a},
        ]
        tree = build_group_tree(rows)
        assert [n["name"] for n in tree] == ["Family", "Work"]
        work = tree[1]
        assert [n["name"] for n in work["children"]] == ["Alpha team", "Zeta team"]
        assert tree[0]["children"] == []

    def test_orphan_promoted_to_root(self):
        orphan = uuid.uuid4()
        rows = [{"id": orphan, "name": "Lost", "parent_id": uuid.uuid4()}]
        tree = build_group_tree(rows)
        assert [n["id"] for n in tree] == [orphan]

    def test_preserves_extra_columns(self):
        gid = uuid.uuid4()
        tree = build_group_tree([{"id": gid, "name": "G", "parent_id": None, "contact_count": 3}])
        assert tree[0]["contact_count"] == 3

    def test_empty(self):
        assert build_group_tree([]) == []
