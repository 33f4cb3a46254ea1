"""Group hierarchy closure: pure helpers over a ``{id: parent_id}`` map.

All walks are iterative and guard against revisiting a node, so a corrupted
parent map (one that already contains a cycle) terminates instead of looping.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

MAX_GROUP_DEPTH = 5

ParentMap = Mapping[uuid.UUID, uuid.UUID | None]


def ancestors(parents: ParentMap, group_id: uuid.UUID) -> list[uuid.UUID]:
    """Return the ancestors of *group_id*, nearest first.

    Parents that are not present in the map end the walk (the node is treated
    as a root).
    """
    chain: list[uuid.UUID] = []
    seen = {group_id}
    current = parents.get(group_id)
    while current is not None and current in parents and current not in seen:
        chain.append(current)
        seen.add(current)
        current = parents.get(current)
    return chain


def depth(parents: ParentMap, group_id: uuid.UUID) -> int:
    """Depth of *group_id* counted in nodes from its root (a root is 1).

    Returns 0 for an unknown id.
    """
    if group_id not in parents:
        return 0
    return len(ancestors(parents, group_id)) + 1


def _children_index(parents: ParentMap) -> dict[uuid.UUID, list[uuid.UUID]]:
    index: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    for child, parent in parents.items():
        if parent is not None:
            index[parent].append(child)
    return index


def descendants(parents: ParentMap, group_id: uuid.UUID) -> set[uuid.UUID]:
    """Return every group below *group_id* (excluding itself)."""
    children = _children_index(parents)
    found: set[uuid.UUID] = set()
    stack = list(children.get(group_id, ()))
    while stack:
        node = stack.pop()
        if node in found or node == group_id:
            continue
        found.add(node)
        stack.extend(children.get(node, ()))
    return found


def subtree_height(parents: ParentMap, group_id: uuid.UUID) -> int:
    """Number of levels below *group_id* (a leaf has height 0)."""
    children = _children_index(parents)
    height = 0
    seen = {group_id}
    frontier = [group_id]
    while frontier:
        next_frontier: list[uuid.UUID] = []
        for node in frontier:
            for child in children.get(node, ()):
                if child not in seen:
                    seen.add(child)
                    next_frontier.append(child)
        if next_frontier:
            height += 1
        frontier = next_frontier
    return height


def is_descendant(parents: ParentMap, group_id: uuid.UUID, candidate: uuid.UUID) -> bool:
    """True when *candidate* sits somewhere below *group_id*."""
    return group_id in ancestors(parents, candidate)


def build_group_tree(groups: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Assemble flat group rows into a name-sorted forest.

    One pass indexes nodes by id, a second attaches each node under its parent
    or promotes it to a root when the parent is missing.
    """
    nodes: dict[Any, dict[str, Any]] = {}
    ordered: list[dict[str, Any]] = []
    for group in groups:
        node = {**group, "children": []}
        nodes[node["id"]] = node
        ordered.append(node)

    roots: list[dict[str, Any]] = []
    for node in ordered:
        parent_id = node.get("parent_id")
        if parent_id is not None and parent_id in nodes and parent_id != node["id"]:
            nodes[parent_id]["children"].append(node)
        else:
            roots.append(node)

    def _sort_key(node: dict[str, Any]) -> tuple[str, str]:
        return (str(node.get("name") or ""), str(node["id"]))

    stack = [roots]
    while stack:
        siblings = stack.pop()
        siblings.sort(key=_sort_key)
        stack.extend(node["children"] for node in siblings if node["children"])
    return roots
