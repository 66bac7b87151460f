"""
Menu pruning against an effective permission set.
"""
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from app.features.access.entities import MenuNode, PermissionPair
from app.features.access.exceptions import DataIntegrityError


class MenuTreeNode(BaseModel):
    id: str
    name: str
    url: Optional[str] = None
    icon: Optional[str] = None
    order: Optional[int] = None
    parent_only: bool = False
    # Reported for headers too, even though headers ignore it for visibility
    permission_id: Optional[str] = None
    attribute_id: Optional[str] = None
    children: List["MenuTreeNode"] = []


def _sort_key(node: MenuNode):
    return (node.order is None, node.order or 0, node.id)


def _is_satisfied(node: MenuNode, effective: FrozenSet[PermissionPair]) -> bool:
    if not node.is_gated:
        return True
    gating = node.gating
    # half-set gating never matches
    return gating is not None and gating in effective


def _index_forest(nodes: List[MenuNode]) -> Tuple[Dict[Optional[str], List[MenuNode]], List[str]]:
    """Group nodes by parent id and list orphans or cycles found on the way."""
    ids = {n.id for n in nodes}
    children: Dict[Optional[str], List[MenuNode]] = defaultdict(list)
    problems = []
    for node in nodes:
        if node.parent_id is not None and node.parent_id not in ids:
            problems.append(f"menu {node.id} references missing parent {node.parent_id}")
            continue
        children[node.parent_id].append(node)
    if problems:
        return children, problems

    # nodes on a parent cycle are unreachable from the roots
    reached = 0
    stack = list(children[None])
    while stack:
        node = stack.pop()
        reached += 1
        stack.extend(children.get(node.id, ()))
    if reached != len(nodes):
        problems.append(f"menu hierarchy has a cycle ({len(nodes) - reached} unreachable node(s))")
    return children, problems


def menu_problems(nodes: Iterable[MenuNode]) -> List[str]:
    """Orphaned nodes and parent cycles in the menu forest."""
    return _index_forest(list(nodes))[1]


def filter_menu(nodes: Iterable[MenuNode], effective: FrozenSet[PermissionPair]) -> List[MenuTreeNode]:
    """
    Return the visible part of the menu forest, siblings ordered by (order, id).

    A regular node is visible when it is ungated or its gating pair is in
    ``effective``; hiding it hides its subtree. A ``parent_only`` header is
    visible only when at least one child survives filtering.

    Raises:
        DataIntegrityError: a node references a missing parent, or part of
            the forest is cyclic.
    """
    children, problems = _index_forest(list(nodes))
    if problems:
        raise DataIntegrityError(f"{len(problems)} menu integrity problem(s)", problems)

    for siblings in children.values():
        siblings.sort(key=_sort_key)

    def visit(node: MenuNode) -> Optional[MenuTreeNode]:
        if not node.parent_only and not _is_satisfied(node, effective):
            return None
        visible = [v for v in (visit(c) for c in children.get(node.id, ())) if v is not None]
        if node.parent_only and not visible:
            return None
        return MenuTreeNode(
            id=node.id,
            name=node.name,
            url=node.url,
            icon=node.icon,
            order=node.order,
            parent_only=node.parent_only,
            permission_id=node.permission_id,
            attribute_id=node.attribute_id,
            children=visible,
        )

    return [v for v in (visit(root) for root in children[None]) if v is not None]
