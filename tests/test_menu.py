"""Unit tests for app.features.access.menu: permission-aware menu pruning."""

import unittest

from app.features.access.entities import MenuNode, PermissionPair
from app.features.access.exceptions import DataIntegrityError
from app.features.access.menu import filter_menu, menu_problems
from tests.helpers import SnapshotBuilder

VIEW = PermissionPair("perm:reports.view", "attr:read")
EXPORT = PermissionPair("perm:reports.view", "attr:export")


def _names(tree) -> list:
    return [(node.name, _names(node.children)) for node in tree]


class TestVisibility(unittest.TestCase):
    def test_ungated_nodes_are_always_visible(self) -> None:
        b = SnapshotBuilder()
        home = b.menu_node("home")
        b.menu_node("about", parent=home)
        self.assertEqual(_names(filter_menu(b.menu, frozenset())), [("home", [("about", [])])])

    def test_gated_node_requires_its_pair(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("reports", gating=VIEW)
        self.assertEqual(filter_menu(b.menu, frozenset()), [])
        self.assertEqual(_names(filter_menu(b.menu, frozenset({VIEW}))), [("reports", [])])
        self.assertEqual(filter_menu(b.menu, frozenset({EXPORT})), [])

    def test_hidden_node_hides_its_subtree(self) -> None:
        b = SnapshotBuilder()
        reports = b.menu_node("reports", gating=VIEW)
        b.menu_node("export", parent=reports, gating=EXPORT)
        self.assertEqual(filter_menu(b.menu, frozenset({EXPORT})), [])

    def test_partial_gating_never_matches(self) -> None:
        b = SnapshotBuilder()
        b.menu.append(MenuNode(id="menu:half", name="half", permission_id=VIEW.permission_id))
        b.menu.append(MenuNode(id="menu:other-half", name="other-half", attribute_id=VIEW.attribute_id))
        self.assertEqual(filter_menu(b.menu, frozenset({VIEW, EXPORT})), [])

    def test_tree_fields_are_carried(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("reports", order=3, gating=VIEW, url="/reports", icon="chart")
        (node,) = filter_menu(b.menu, frozenset({VIEW}))
        self.assertEqual(node.id, "menu:reports")
        self.assertEqual(node.url, "/reports")
        self.assertEqual(node.icon, "chart")
        self.assertEqual(node.order, 3)
        self.assertEqual(node.permission_id, VIEW.permission_id)
        self.assertEqual(node.attribute_id, VIEW.attribute_id)
        self.assertEqual(node.children, [])


class TestHeaders(unittest.TestCase):
    """parent_only headers show only while a child survives."""

    def test_header_collapses_without_visible_children(self) -> None:
        b = SnapshotBuilder()
        header = b.menu_node("admin", parent_only=True)
        b.menu_node("users", parent=header, gating=VIEW)
        b.menu_node("roles", parent=header, gating=EXPORT)
        self.assertEqual(filter_menu(b.menu, frozenset()), [])

    def test_header_collapses_even_when_its_own_gating_is_satisfied(self) -> None:
        b = SnapshotBuilder()
        header = b.menu_node("admin", parent_only=True, gating=VIEW)
        b.menu_node("users", parent=header, gating=EXPORT)
        self.assertEqual(filter_menu(b.menu, frozenset({VIEW})), [])

    def test_header_ignores_its_own_gating_when_a_child_is_visible(self) -> None:
        b = SnapshotBuilder()
        header = b.menu_node("admin", parent_only=True, gating=VIEW)
        b.menu_node("users", parent=header, gating=EXPORT)
        self.assertEqual(_names(filter_menu(b.menu, frozenset({EXPORT}))), [("admin", [("users", [])])])

    def test_childless_header_is_hidden(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("empty", parent_only=True)
        self.assertEqual(filter_menu(b.menu, frozenset()), [])

    def test_nested_headers_collapse_bottom_up(self) -> None:
        b = SnapshotBuilder()
        outer = b.menu_node("outer", parent_only=True)
        inner = b.menu_node("inner", parent=outer, parent_only=True)
        b.menu_node("leaf", parent=inner, gating=VIEW)
        self.assertEqual(filter_menu(b.menu, frozenset()), [])
        self.assertEqual(
            _names(filter_menu(b.menu, frozenset({VIEW}))),
            [("outer", [("inner", [("leaf", [])])])],
        )


class TestOrdering(unittest.TestCase):
    def test_siblings_sorted_by_order_then_id_with_unordered_last(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("c", order=2)
        b.menu_node("b", order=1)
        b.menu_node("z")
        b.menu_node("a", order=2)
        b.menu_node("y")
        names = [node.name for node in filter_menu(b.menu, frozenset())]
        self.assertEqual(names, ["b", "a", "c", "y", "z"])


class TestMenuIntegrity(unittest.TestCase):
    def test_orphan_node_is_rejected(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("lost", parent="menu:ghost")
        with self.assertRaises(DataIntegrityError) as ctx:
            filter_menu(b.menu, frozenset())
        self.assertIn("menu:ghost", ctx.exception.problems[0])

    def test_cycle_is_rejected(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("root")
        b.menu_node("a", parent="menu:b")
        b.menu_node("b", parent="menu:a")
        with self.assertRaises(DataIntegrityError):
            filter_menu(b.menu, frozenset())

    def test_menu_problems_lists_without_raising(self) -> None:
        b = SnapshotBuilder()
        b.menu_node("ok")
        b.menu_node("lost", parent="menu:ghost")
        self.assertEqual(menu_problems(b.menu), ["menu menu:lost references missing parent menu:ghost"])
        self.assertEqual(menu_problems([]), [])

    def test_empty_menu(self) -> None:
        self.assertEqual(filter_menu([], frozenset()), [])


if __name__ == "__main__":
    unittest.main()
