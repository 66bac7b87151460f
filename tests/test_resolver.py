"""Unit tests for app.features.access.resolver: effective permission sets."""

import unittest
from unittest.mock import patch

from app.core import config
from app.features.access.entities import PrincipalKind
from app.features.access.exceptions import DataIntegrityError, NotFoundError
from app.features.access.resolver import PermissionResolver, ResolutionPolicy, RoleGrantScope
from tests.helpers import DELETED_AT, SnapshotBuilder, reports_scenario


def _resolve(b: SnapshotBuilder, user_id: str, policy: ResolutionPolicy | None = None):
    return PermissionResolver(b.build(version=1), policy).resolve(user_id)


class TestReportsScenario(unittest.TestCase):
    """User inherits a grant of its group's parent."""

    def test_parent_group_grant_is_inherited(self) -> None:
        b, ids = reports_scenario()
        self.assertEqual(_resolve(b, ids["user"]), frozenset({ids["pair"]}))

    def test_breakdown_attributes_grant_to_groups(self) -> None:
        b, ids = reports_scenario()
        detailed = PermissionResolver(b.build(version=3)).resolve_detailed(ids["user"])
        self.assertEqual(detailed.snapshot_version, 3)
        self.assertEqual(detailed.direct, frozenset())
        self.assertEqual(detailed.from_roles, frozenset())
        self.assertEqual(detailed.from_groups, frozenset({ids["pair"]}))

    def test_resolution_is_idempotent(self) -> None:
        b, ids = reports_scenario()
        resolver = PermissionResolver(b.build(version=1))
        self.assertEqual(resolver.resolve(ids["user"]), resolver.resolve(ids["user"]))

    def test_without_inheritance_parent_grant_is_ignored(self) -> None:
        b, ids = reports_scenario()
        policy = ResolutionPolicy(inherit_group_grants=False)
        self.assertEqual(_resolve(b, ids["user"], policy), frozenset())


class TestAccountKillSwitch(unittest.TestCase):
    """Inactive or soft-deleted users resolve to nothing whatever they hold."""

    def _grant_everything(self, **user_kwargs) -> tuple[SnapshotBuilder, str]:
        b = SnapshotBuilder()
        perm = b.permission("reports.view")
        user = b.user("u", **user_kwargs)
        group = b.group("g")
        role = b.role("r")
        b.member(user, group, role)
        b.grant(PrincipalKind.USER, user, perm, "read")
        b.grant(PrincipalKind.ROLE, role, perm, "read")
        b.grant(PrincipalKind.GROUP, group, perm, "read")
        return b, user

    def test_inactive_user_is_empty(self) -> None:
        b, user = self._grant_everything(is_active=False)
        self.assertEqual(_resolve(b, user), frozenset())

    def test_soft_deleted_user_is_empty(self) -> None:
        b, user = self._grant_everything(deleted_at=DELETED_AT)
        self.assertEqual(_resolve(b, user), frozenset())

    def test_active_user_gets_grants(self) -> None:
        b, user = self._grant_everything()
        self.assertEqual(len(_resolve(b, user)), 1)


class TestUnionLaw(unittest.TestCase):
    """Effective set is exactly direct ∪ roles ∪ in-scope groups."""

    def test_union_of_all_sources(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs", attributes=("read", "write", "export", "delete"))
        other = b.permission("billing", attributes=("read",))
        user = b.user("u")
        root = b.group("root")
        team = b.group("team", parent=root)
        lab = b.group("lab")
        editor = b.role("editor")
        viewer = b.role("viewer")
        b.member(user, team, editor)
        b.member(user, lab, viewer)

        direct = b.grant(PrincipalKind.USER, user, perm, "read")
        via_editor = b.grant(PrincipalKind.ROLE, editor, perm, "write")
        via_viewer = b.grant(PrincipalKind.ROLE, viewer, other, "read")
        via_root = b.grant(PrincipalKind.GROUP, root, perm, "export")
        via_lab = b.grant(PrincipalKind.GROUP, lab, perm, "delete")
        # noise: grants to principals the user is not related to
        stranger = b.user("stranger")
        b.grant(PrincipalKind.USER, stranger, other, "read")
        b.grant(PrincipalKind.ROLE, b.role("unused"), perm, "delete")

        expected = frozenset({direct, via_editor, via_viewer, via_root, via_lab})
        self.assertEqual(_resolve(b, user), expected)

    def test_duplicate_sources_are_deduplicated(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        user = b.user("u")
        group = b.group("g")
        role = b.role("r")
        b.member(user, group, role)
        pair = b.grant(PrincipalKind.USER, user, perm, "read")
        b.grant(PrincipalKind.ROLE, role, perm, "read")
        b.grant(PrincipalKind.GROUP, group, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset({pair}))


class TestInheritanceMonotonicity(unittest.TestCase):
    """Moving a group grant up to an ancestor keeps it visible to descendants."""

    def test_moving_grant_to_ancestor_keeps_it(self) -> None:
        for target in ("mid", "top"):
            with self.subTest(target=target):
                b = SnapshotBuilder()
                perm = b.permission("docs")
                top = b.group("top")
                mid = b.group("mid", parent=top)
                leaf = b.group("leaf", parent=mid)
                user = b.user("u")
                b.member(user, leaf, b.role("r"))
                pair = b.grant(PrincipalKind.GROUP, {"mid": mid, "top": top}[target], perm, "read")
                self.assertIn(pair, _resolve(b, user))

    def test_child_grant_does_not_flow_up(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        top = b.group("top")
        leaf = b.group("leaf", parent=top)
        user = b.user("u")
        b.member(user, top, b.role("r"))
        b.grant(PrincipalKind.GROUP, leaf, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset())


class TestRoleAndGroupState(unittest.TestCase):
    def _scenario(self, group_kwargs=None, role_kwargs=None):
        b = SnapshotBuilder()
        perm = b.permission("docs", attributes=("read", "write"))
        user = b.user("u")
        group = b.group("g", **(group_kwargs or {}))
        role = b.role("r", **(role_kwargs or {}))
        b.member(user, group, role)
        role_pair = b.grant(PrincipalKind.ROLE, role, perm, "write")
        group_pair = b.grant(PrincipalKind.GROUP, group, perm, "read")
        return b, user, role_pair, group_pair

    def test_role_grants_apply_from_any_membership(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        user = b.user("u")
        role = b.role("r")
        b.member(user, b.group("a"), role)
        b.member(user, b.group("b"), role)
        pair = b.grant(PrincipalKind.ROLE, role, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset({pair}))

    def test_inactive_role_contributes_nothing(self) -> None:
        b, user, _, group_pair = self._scenario(role_kwargs={"is_active": False})
        self.assertEqual(_resolve(b, user), frozenset({group_pair}))

    def test_deleted_role_contributes_nothing(self) -> None:
        b, user, _, group_pair = self._scenario(role_kwargs={"deleted_at": DELETED_AT})
        self.assertEqual(_resolve(b, user), frozenset({group_pair}))

    def test_inactive_group_global_role_scope(self) -> None:
        b, user, role_pair, _ = self._scenario(group_kwargs={"is_active": False})
        self.assertEqual(_resolve(b, user), frozenset({role_pair}))

    def test_inactive_group_membership_role_scope(self) -> None:
        b, user, _, _ = self._scenario(group_kwargs={"is_active": False})
        policy = ResolutionPolicy(role_grant_scope=RoleGrantScope.MEMBERSHIP)
        self.assertEqual(_resolve(b, user, policy), frozenset())

    def test_deleted_group_drops_role_grants_under_global_scope(self) -> None:
        b, user, _, _ = self._scenario(group_kwargs={"deleted_at": DELETED_AT})
        self.assertEqual(_resolve(b, user), frozenset())

    def test_deleted_ancestor_drops_role_grants_under_global_scope(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        top = b.group("top", deleted_at=DELETED_AT)
        leaf = b.group("leaf", parent=top)
        role = b.role("r")
        user = b.user("u")
        b.member(user, leaf, role)
        b.grant(PrincipalKind.ROLE, role, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset())

    def test_role_held_elsewhere_survives_a_deleted_membership(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        role = b.role("r")
        user = b.user("u")
        b.member(user, b.group("gone", deleted_at=DELETED_AT), role)
        b.member(user, b.group("kept"), role)
        pair = b.grant(PrincipalKind.ROLE, role, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset({pair}))

    def test_inactive_ancestor_is_skipped_but_inheritance_continues(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs", attributes=("read", "write"))
        top = b.group("top")
        mid = b.group("mid", parent=top, is_active=False)
        leaf = b.group("leaf", parent=mid)
        user = b.user("u")
        b.member(user, leaf, b.role("r"))
        top_pair = b.grant(PrincipalKind.GROUP, top, perm, "read")
        b.grant(PrincipalKind.GROUP, mid, perm, "write")
        self.assertEqual(_resolve(b, user), frozenset({top_pair}))

    def test_deleted_ancestor_removes_group_grants(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs")
        top = b.group("top", deleted_at=DELETED_AT)
        leaf = b.group("leaf", parent=top)
        user = b.user("u")
        b.member(user, leaf, b.role("r"))
        b.grant(PrincipalKind.GROUP, leaf, perm, "read")
        self.assertEqual(_resolve(b, user), frozenset())


class TestPolicyFromConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.object(config, "GROUP_INHERITANCE", "ancestors"), \
                patch.object(config, "ROLE_GRANT_SCOPE", "global"), \
                patch.object(config, "USERNAME_CASE_SENSITIVE", False):
            policy = ResolutionPolicy.from_config()
        self.assertEqual(policy, ResolutionPolicy())

    def test_overrides(self) -> None:
        with patch.object(config, "GROUP_INHERITANCE", "none"), \
                patch.object(config, "ROLE_GRANT_SCOPE", "membership"), \
                patch.object(config, "USERNAME_CASE_SENSITIVE", True):
            policy = ResolutionPolicy.from_config()
        self.assertFalse(policy.inherit_group_grants)
        self.assertEqual(policy.role_grant_scope, RoleGrantScope.MEMBERSHIP)
        self.assertTrue(policy.username_case_sensitive)


class TestResolutionErrors(unittest.TestCase):
    def test_unknown_user(self) -> None:
        with self.assertRaises(NotFoundError):
            _resolve(SnapshotBuilder(), "user:ghost")

    def test_membership_with_unknown_role(self) -> None:
        b = SnapshotBuilder()
        user = b.user("u")
        b.member(user, b.group("g"), "role:ghost")
        with self.assertRaises(NotFoundError):
            _resolve(b, user)

    def test_invalid_grant_surfaces(self) -> None:
        b = SnapshotBuilder()
        perm = b.permission("docs", user=False)
        user = b.user("u")
        b.grant(PrincipalKind.USER, user, perm, "read")
        with self.assertRaises(DataIntegrityError):
            _resolve(b, user)

    def test_cyclic_hierarchy_surfaces(self) -> None:
        b = SnapshotBuilder()
        user = b.user("u")
        b.group("a", parent="group:b")
        b.group("b", parent="group:a")
        b.member(user, "group:a", b.role("r"))
        with self.assertRaises(DataIntegrityError):
            _resolve(b, user)


if __name__ == "__main__":
    unittest.main()
