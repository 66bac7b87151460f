"""
Snapshot loading from the database.

All tables are read inside one session so the resulting snapshot reflects a
single consistent state. The engine itself never queries the database.
"""
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.access.entities import (
    ApiResourceRecord,
    AttributeLink,
    AttributeRecord,
    Grant,
    GroupRecord,
    Membership,
    MenuNode,
    PermissionRecord,
    PrincipalKind,
    RoleRecord,
    UserRecord,
)
from app.features.access.snapshot import Snapshot
from app.features.menus.models import Menu
from app.features.permissions.models import (
    ApiResource,
    Group,
    Permission,
    PermissionAttribute,
    Role,
    group_permissions,
    permission_attribute_links,
    role_permissions,
    user_group_roles,
    user_permissions,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


# principal kind -> (grant table, principal column)
GRANT_TABLES = {
    PrincipalKind.USER: (user_permissions, "user_id"),
    PrincipalKind.ROLE: (role_permissions, "role_id"),
    PrincipalKind.GROUP: (group_permissions, "group_id"),
}


async def _scalars(db: AsyncSession, model):
    result = await db.execute(select(model))
    return result.scalars().all()


async def _rows(db: AsyncSession, table):
    result = await db.execute(select(table))
    return result.mappings().all()


async def load_snapshot(db: AsyncSession, version: Optional[int] = None) -> Snapshot:
    """
    Read every access table and build an unpublished ``Snapshot``.

    Soft-deleted users, groups and roles are kept: the engine needs them to
    apply the account kill switch and cascade group deletion.
    """
    users = [UserRecord.model_validate(u) for u in await _scalars(db, User)]
    groups = [GroupRecord.model_validate(g) for g in await _scalars(db, Group)]
    roles = [RoleRecord.model_validate(r) for r in await _scalars(db, Role)]
    permissions = [PermissionRecord.model_validate(p) for p in await _scalars(db, Permission)]
    attributes = [AttributeRecord.model_validate(a) for a in await _scalars(db, PermissionAttribute)]
    menu = [MenuNode.model_validate(m) for m in await _scalars(db, Menu)]

    links = [
        AttributeLink(permission_id=row["permission_id"], attribute_id=row["attribute_id"])
        for row in await _rows(db, permission_attribute_links)
    ]
    memberships = [
        Membership(user_id=row["user_id"], group_id=row["group_id"], role_id=row["role_id"])
        for row in await _rows(db, user_group_roles)
    ]

    grants = []
    for kind, (table, principal_column) in GRANT_TABLES.items():
        for row in await _rows(db, table):
            grants.append(Grant(
                kind=kind,
                principal_id=row[principal_column],
                permission_id=row["permission_id"],
                attribute_id=row["attribute_id"],
            ))

    api_resources = [
        ApiResourceRecord(
            path=r.path,
            method=r.method.value,
            permission_id=r.permission_id,
            attribute_id=r.attribute_id,
        )
        for r in await _scalars(db, ApiResource)
    ]

    snapshot = Snapshot(
        users=users,
        groups=groups,
        roles=roles,
        permissions=permissions,
        attributes=attributes,
        links=links,
        memberships=memberships,
        grants=grants,
        menu=menu,
        api_resources=api_resources,
        version=version,
    )
    log.info(
        f"Loaded access snapshot: {len(users)} users, {len(groups)} groups, "
        f"{len(roles)} roles, {len(grants)} grants, {len(api_resources)} api resources"
    )
    return snapshot
