"""
Seed script to populate default access data.

Run this script after database initialization to create:
- Default permission attributes and permissions, with their attribute links
- A root group hierarchy and default roles
- Role and group grants
- API resources protecting the /access routes
- The default navigation menu
- An administrator account (SEED_ADMIN_USERNAME) holding the admin role

Usage:
    uv run python -m scripts.seed_permissions
"""
import asyncio
import os
from sqlalchemy import select, insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.menus.models import Menu
from app.features.permissions.models import (
    ApiResource,
    Group,
    HttpMethod,
    Permission,
    PermissionAttribute,
    Role,
    group_permissions,
    permission_attribute_links,
    role_permissions,
    user_group_roles,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_ATTRIBUTES = [
    ("read", "View records"),
    ("write", "Create and update records"),
    ("delete", "Delete records"),
    ("export", "Export records"),
    ("manage", "Administer configuration"),
]

# name, description, (is_user, is_role, is_group), linked attributes
DEFAULT_PERMISSIONS = [
    ("access.permissions", "Inspect resolved permissions", (True, True, False), ["read"]),
    ("access.authorize", "Run authorization checks", (True, True, False), ["read"]),
    ("access.snapshot", "Inspect and refresh access snapshots", (False, True, False), ["read", "manage"]),
    ("access.menu", "Inspect other users' menus", (True, True, False), ["read"]),
    ("access.grants", "Manage permission grants", (False, True, False), ["read", "write", "delete"]),
    ("access.groups", "Manage the group hierarchy", (False, True, False), ["write"]),
    ("reports.view", "View reports", (True, True, True), ["read", "export"]),
    ("users.manage", "Manage user accounts", (False, True, False), ["read", "write", "delete"]),
]

# group name -> parent group name
DEFAULT_GROUPS = {
    "organization": None,
    "operations": "organization",
    "finance": "organization",
}

DEFAULT_ROLES = {
    "admin": {
        "description": "Access administrator",
        "grants": [
            ("access.permissions", "read"),
            ("access.authorize", "read"),
            ("access.snapshot", "read"),
            ("access.snapshot", "manage"),
            ("access.menu", "read"),
            ("access.grants", "read"),
            ("access.grants", "write"),
            ("access.grants", "delete"),
            ("access.groups", "write"),
            ("users.manage", "read"),
            ("users.manage", "write"),
            ("users.manage", "delete"),
        ],
    },
    "member": {
        "description": "Regular member",
        "grants": [],
    },
}

DEFAULT_GROUP_GRANTS = {
    "organization": [("reports.view", "read")],
    "finance": [("reports.view", "export")],
}

# method, path, permission, attribute
DEFAULT_API_RESOURCES = [
    (HttpMethod.GET, "/access/users/{user_id}/permissions", "access.permissions", "read"),
    (HttpMethod.GET, "/access/users/{user_id}/menu", "access.menu", "read"),
    (HttpMethod.POST, "/access/authorize", "access.authorize", "read"),
    (HttpMethod.GET, "/access/snapshot", "access.snapshot", "read"),
    (HttpMethod.POST, "/access/snapshot/refresh", "access.snapshot", "manage"),
    (HttpMethod.GET, "/permissions/grants/{kind}/{principal_id}", "access.grants", "read"),
    (HttpMethod.POST, "/permissions/grants", "access.grants", "write"),
    (HttpMethod.DELETE, "/permissions/grants/{kind}/{principal_id}/{permission_id}/{attribute_id}", "access.grants", "delete"),
    (HttpMethod.POST, "/permissions/groups", "access.groups", "write"),
    (HttpMethod.PUT, "/permissions/groups/{group_id}", "access.groups", "write"),
]

# name, parent, order, url, parent_only, gating
DEFAULT_MENU = [
    ("Dashboard", None, 1, "/", False, None),
    ("Reports", None, 2, None, True, None),
    ("Report List", "Reports", 1, "/reports", False, ("reports.view", "read")),
    ("Report Export", "Reports", 2, "/reports/export", False, ("reports.view", "export")),
    ("Administration", None, 3, None, True, None),
    ("Users", "Administration", 1, "/admin/users", False, ("users.manage", "read")),
    ("Access Snapshot", "Administration", 2, "/admin/snapshot", False, ("access.snapshot", "manage")),
]


async def _get_by_name(db: AsyncSession, model, name: str):
    result = await db.execute(select(model).where(model.name == name))
    return result.scalars().first()


async def seed_catalog(db: AsyncSession) -> tuple[dict[str, Permission], dict[str, PermissionAttribute]]:
    """
    Create default attributes, permissions and attribute links.

    Returns:
        Name -> object maps for permissions and attributes
    """
    log.info("Creating default permissions...")
    attributes = {}
    for name, description in DEFAULT_ATTRIBUTES:
        attribute = await _get_by_name(db, PermissionAttribute, name)
        if attribute is None:
            attribute = PermissionAttribute(name=name, description=description)
            db.add(attribute)
            log.info(f"Created attribute: {name}")
        attributes[name] = attribute

    permissions = {}
    for name, description, (is_user, is_role, is_group), _ in DEFAULT_PERMISSIONS:
        permission = await _get_by_name(db, Permission, name)
        if permission is None:
            permission = Permission(
                name=name, description=description,
                is_user=is_user, is_role=is_role, is_group=is_group,
            )
            db.add(permission)
            log.info(f"Created permission: {name}")
        permissions[name] = permission

    await db.flush()

    result = await db.execute(select(permission_attribute_links))
    existing = {(row.permission_id, row.attribute_id) for row in result}
    for name, _, _, linked in DEFAULT_PERMISSIONS:
        for attribute_name in linked:
            key = (permissions[name].id, attributes[attribute_name].id)
            if key not in existing:
                await db.execute(insert(permission_attribute_links).values(
                    permission_id=key[0], attribute_id=key[1]
                ))

    await db.commit()
    log.info(f"Catalog has {len(permissions)} permissions and {len(attributes)} attributes")
    return permissions, attributes


async def _grant(db: AsyncSession, table, principal_column: str, principal_id: str, permission_id: str, attribute_id: str):
    result = await db.execute(select(table).where(
        table.c[principal_column] == principal_id,
        table.c.permission_id == permission_id,
        table.c.attribute_id == attribute_id,
    ))
    if result.first() is None:
        await db.execute(insert(table).values(
            **{principal_column: principal_id},
            permission_id=permission_id,
            attribute_id=attribute_id,
        ))


async def seed_principals(
    db: AsyncSession,
    permissions: dict[str, Permission],
    attributes: dict[str, PermissionAttribute],
) -> tuple[dict[str, Group], dict[str, Role]]:
    """Create the default group tree and roles, then grant them permissions."""
    log.info("Creating default groups and roles...")
    groups = {}
    for name, parent_name in DEFAULT_GROUPS.items():
        group = await _get_by_name(db, Group, name)
        if group is None:
            group = Group(name=name, parent_id=groups[parent_name].id if parent_name else None)
            db.add(group)
            await db.flush()
            log.info(f"Created group '{name}'")
        groups[name] = group

    roles = {}
    for name, role_config in DEFAULT_ROLES.items():
        role = await _get_by_name(db, Role, name)
        if role is None:
            role = Role(name=name, description=role_config["description"])
            db.add(role)
            await db.flush()
            log.info(f"Created role '{name}'")
        roles[name] = role

    for name, role_config in DEFAULT_ROLES.items():
        for permission_name, attribute_name in role_config["grants"]:
            await _grant(
                db, role_permissions, "role_id", roles[name].id,
                permissions[permission_name].id, attributes[attribute_name].id,
            )

    for name, grants in DEFAULT_GROUP_GRANTS.items():
        for permission_name, attribute_name in grants:
            await _grant(
                db, group_permissions, "group_id", groups[name].id,
                permissions[permission_name].id, attributes[attribute_name].id,
            )

    await db.commit()
    return groups, roles


async def seed_api_resources(
    db: AsyncSession,
    permissions: dict[str, Permission],
    attributes: dict[str, PermissionAttribute],
):
    log.info("Registering API resources...")
    for method, path, permission_name, attribute_name in DEFAULT_API_RESOURCES:
        existing = await db.get(ApiResource, (path, method))
        if existing is not None:
            log.debug(f"API resource {method.value} {path} already exists, skipping")
            continue
        db.add(ApiResource(
            path=path,
            method=method,
            permission_id=permissions[permission_name].id,
            attribute_id=attributes[attribute_name].id,
        ))
        log.info(f"Registered {method.value} {path}")
    await db.commit()


async def seed_menu(
    db: AsyncSession,
    permissions: dict[str, Permission],
    attributes: dict[str, PermissionAttribute],
):
    log.info("Creating default menu...")
    nodes = {}
    for name, parent_name, order, url, parent_only, gating in DEFAULT_MENU:
        node = await _get_by_name(db, Menu, name)
        if node is None:
            node = Menu(
                name=name,
                parent_id=nodes[parent_name].id if parent_name else None,
                order=order,
                url=url,
                parent_only=parent_only,
                permission_id=permissions[gating[0]].id if gating else None,
                attribute_id=attributes[gating[1]].id if gating else None,
            )
            db.add(node)
            await db.flush()
        nodes[name] = node
    await db.commit()


async def seed_admin(db: AsyncSession, groups: dict[str, Group], roles: dict[str, Role]):
    """Create the administrator account and give it the admin role in the root group."""
    username = os.environ.get("SEED_ADMIN_USERNAME", "admin")
    result = await db.execute(select(User).where(User.username == username))
    admin = result.scalars().first()
    if admin is None:
        # Credentials are provisioned by the authentication service
        admin = User(username=username, password_hash="!")
        db.add(admin)
        await db.flush()
        log.info(f"Created administrator '{username}' ({admin.id})")

    result = await db.execute(select(user_group_roles).where(
        user_group_roles.c.user_id == admin.id,
        user_group_roles.c.group_id == groups["organization"].id,
        user_group_roles.c.role_id == roles["admin"].id,
    ))
    if result.first() is None:
        await db.execute(insert(user_group_roles).values(
            user_id=admin.id, group_id=groups["organization"].id, role_id=roles["admin"].id
        ))
    await db.commit()


async def main():
    """Seed the default access data."""
    log.info("Starting access data seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            permissions, attributes = await seed_catalog(db)
            groups, roles = await seed_principals(db, permissions, attributes)
            await seed_api_resources(db, permissions, attributes)
            await seed_menu(db, permissions, attributes)
            await seed_admin(db, groups, roles)
            log.info("Access data seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding access data: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
