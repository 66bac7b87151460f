"""Builders for in-memory access snapshots used across the test suite."""

from datetime import datetime, timezone
from typing import Optional, Tuple

from app.features.access.entities import (
    ApiResourceRecord,
    AttributeLink,
    AttributeRecord,
    Grant,
    GroupRecord,
    Membership,
    MenuNode,
    PermissionPair,
    PermissionRecord,
    PrincipalKind,
    RoleRecord,
    UserRecord,
)
from app.features.access.snapshot import Snapshot

DELETED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


class SnapshotBuilder:
    """Accumulate records with readable ids ("perm:reports.view", "group:P", ...)."""

    def __init__(self) -> None:
        self.users = []
        self.groups = []
        self.roles = []
        self.permissions = []
        self.attributes = {}
        self.links = []
        self.memberships = []
        self.grants = []
        self.menu = []
        self.api_resources = []

    def attribute(self, name: str) -> str:
        attribute_id = f"attr:{name}"
        if attribute_id not in self.attributes:
            self.attributes[attribute_id] = AttributeRecord(id=attribute_id, name=name)
        return attribute_id

    def permission(
        self,
        name: str,
        attributes: Tuple[str, ...] = ("read",),
        user: bool = True,
        role: bool = True,
        group: bool = True,
    ) -> str:
        permission_id = f"perm:{name}"
        self.permissions.append(PermissionRecord(
            id=permission_id, name=name, is_user=user, is_role=role, is_group=group,
        ))
        for attribute in attributes:
            self.links.append(AttributeLink(permission_id=permission_id, attribute_id=self.attribute(attribute)))
        return permission_id

    def user(self, username: str, **kwargs) -> str:
        user_id = f"user:{username}"
        self.users.append(UserRecord(id=user_id, username=username, **kwargs))
        return user_id

    def group(self, name: str, parent: Optional[str] = None, **kwargs) -> str:
        group_id = f"group:{name}"
        self.groups.append(GroupRecord(id=group_id, name=name, parent_id=parent, **kwargs))
        return group_id

    def role(self, name: str, **kwargs) -> str:
        role_id = f"role:{name}"
        self.roles.append(RoleRecord(id=role_id, name=name, **kwargs))
        return role_id

    def member(self, user_id: str, group_id: str, role_id: str) -> None:
        self.memberships.append(Membership(user_id=user_id, group_id=group_id, role_id=role_id))

    def grant(self, kind: PrincipalKind, principal_id: str, permission_id: str, attribute: str) -> PermissionPair:
        attribute_id = self.attribute(attribute)
        self.grants.append(Grant(
            kind=kind, principal_id=principal_id, permission_id=permission_id, attribute_id=attribute_id,
        ))
        return PermissionPair(permission_id, attribute_id)

    def menu_node(
        self,
        name: str,
        parent: Optional[str] = None,
        order: Optional[int] = None,
        parent_only: bool = False,
        gating: Optional[PermissionPair] = None,
        **kwargs,
    ) -> str:
        node_id = f"menu:{name}"
        self.menu.append(MenuNode(
            id=node_id,
            name=name,
            parent_id=parent,
            order=order,
            parent_only=parent_only,
            permission_id=gating.permission_id if gating else None,
            attribute_id=gating.attribute_id if gating else None,
            **kwargs,
        ))
        return node_id

    def api(self, method: str, path: str, permission_id: str, attribute: str) -> PermissionPair:
        attribute_id = self.attribute(attribute)
        self.api_resources.append(ApiResourceRecord(
            path=path, method=method, permission_id=permission_id, attribute_id=attribute_id,
        ))
        return PermissionPair(permission_id, attribute_id)

    def build(self, version: Optional[int] = None) -> Snapshot:
        return Snapshot(
            users=self.users,
            groups=self.groups,
            roles=self.roles,
            permissions=self.permissions,
            attributes=self.attributes.values(),
            links=self.links,
            memberships=self.memberships,
            grants=self.grants,
            menu=self.menu,
            api_resources=self.api_resources,
            version=version,
        )


def reports_scenario() -> Tuple[SnapshotBuilder, dict]:
    """
    User U in group G (child of P) with role R. P grants (reports.view, export);
    R and U have no grants. GET /reports/export requires the same pair.
    """
    b = SnapshotBuilder()
    perm = b.permission("reports.view", attributes=("read", "export"))
    parent = b.group("P")
    child = b.group("G", parent=parent)
    role = b.role("R")
    user = b.user("U")
    b.member(user, child, role)
    pair = b.grant(PrincipalKind.GROUP, parent, perm, "export")
    b.api("GET", "/reports/export", perm, "export")
    return b, {"perm": perm, "parent": parent, "child": child, "role": role, "user": user, "pair": pair}
