"""
Grant and group management API routes.

Writes are validated against the same invariants the access engine enforces
when it loads a snapshot, so invalid grants and group cycles are rejected
here instead of surfacing later as integrity errors. Changes take effect for
authorization after the next snapshot refresh.
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, delete, and_, insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.access.dependencies import require_api_access
from app.features.access.entities import (
    AttributeRecord,
    Grant,
    GroupRecord,
    PermissionPair,
    PermissionRecord,
    PrincipalKind,
)
from app.features.access.exceptions import DataIntegrityError
from app.features.access.grant_index import grant_problems
from app.features.access.hierarchy import GroupHierarchy
from app.features.access.loader import GRANT_TABLES
from app.features.permissions.models import (
    Group,
    Permission,
    PermissionAttribute,
    Role,
    permission_attribute_links,
)
from app.features.permissions.schemas import (
    GrantCreate,
    GrantResponse,
    GroupCreate,
    GroupResponse,
    GroupUpdate,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(prefix="/permissions", tags=["permissions"])

_PRINCIPAL_MODELS = {
    PrincipalKind.USER: User,
    PrincipalKind.ROLE: Role,
    PrincipalKind.GROUP: Group,
}


async def _get_or_404(db: AsyncSession, model, object_id: str, label: str):
    """Fetch a row by primary key; soft-deleted rows count as missing."""
    obj = await db.get(model, object_id)
    if obj is None or getattr(obj, "deleted_at", None) is not None:
        raise HTTPException(status_code=404, detail=f"{label} {object_id} not found")
    return obj


def _grant_key(kind: PrincipalKind, principal_id: str, permission_id: str, attribute_id: str):
    table, column = GRANT_TABLES[kind]
    return table, and_(
        table.c[column] == principal_id,
        table.c.permission_id == permission_id,
        table.c.attribute_id == attribute_id,
    )


# ============================================================================
# Grant Routes
# ============================================================================

@router.get("/grants/{kind}/{principal_id}", response_model=List[GrantResponse])
async def list_grants(
    kind: PrincipalKind,
    principal_id: str,
    db: AsyncSession = Depends(get_db),
    _caller: str = Depends(require_api_access),
):
    """List the pairs granted directly to one user, role or group."""
    await _get_or_404(db, _PRINCIPAL_MODELS[kind], principal_id, kind.value)

    table, column = GRANT_TABLES[kind]
    result = await db.execute(select(table).where(table.c[column] == principal_id))
    return [
        GrantResponse(
            kind=kind,
            principal_id=row[column],
            permission_id=row["permission_id"],
            attribute_id=row["attribute_id"],
            created_by_id=row["created_by_id"],
            created_at=row["created_at"],
        )
        for row in result.mappings().all()
    ]


@router.post("/grants", response_model=GrantResponse, status_code=status.HTTP_201_CREATED)
async def create_grant(
    grant: GrantCreate,
    db: AsyncSession = Depends(get_db),
    caller: str = Depends(require_api_access),
):
    """
    Grant a (permission, attribute) pair to a principal.

    Raises:
        HTTPException: 404 if the principal, permission or attribute does not
            exist, 400 if the permission may not be granted to this kind of
            principal or the attribute is not linked to it, 409 if the grant
            already exists
    """
    await _get_or_404(db, _PRINCIPAL_MODELS[grant.kind], grant.principal_id, grant.kind.value)
    permission = await _get_or_404(db, Permission, grant.permission_id, "permission")
    attribute = await _get_or_404(db, PermissionAttribute, grant.attribute_id, "attribute")

    link_result = await db.execute(select(permission_attribute_links).where(
        and_(
            permission_attribute_links.c.permission_id == permission.id,
            permission_attribute_links.c.attribute_id == attribute.id,
        )
    ))
    linked = {PermissionPair(permission.id, attribute.id)} if link_result.first() else set()

    problems = grant_problems(
        Grant.model_validate(grant.model_dump()),
        {permission.id: PermissionRecord.model_validate(permission)},
        {attribute.id: AttributeRecord.model_validate(attribute)},
        linked,
    )
    if problems:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Invalid grant", "problems": problems},
        )

    table, key = _grant_key(grant.kind, grant.principal_id, grant.permission_id, grant.attribute_id)
    existing = await db.execute(select(table).where(key))
    if existing.first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"'{permission.name}:{attribute.name}' is already granted to this {grant.kind.value}",
        )

    _, column = GRANT_TABLES[grant.kind]
    await db.execute(insert(table).values(
        **{column: grant.principal_id},
        permission_id=grant.permission_id,
        attribute_id=grant.attribute_id,
        created_by_id=caller,
    ))
    await db.commit()

    log.info(
        f"{caller} granted {permission.name}:{attribute.name} "
        f"to {grant.kind.value} {grant.principal_id}"
    )
    created = await db.execute(select(table).where(key))
    row = created.mappings().one()
    return GrantResponse(
        kind=grant.kind,
        principal_id=grant.principal_id,
        permission_id=grant.permission_id,
        attribute_id=grant.attribute_id,
        created_by_id=row["created_by_id"],
        created_at=row["created_at"],
    )


@router.delete(
    "/grants/{kind}/{principal_id}/{permission_id}/{attribute_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def revoke_grant(
    kind: PrincipalKind,
    principal_id: str,
    permission_id: str,
    attribute_id: str,
    db: AsyncSession = Depends(get_db),
    caller: str = Depends(require_api_access),
):
    """Revoke a grant."""
    table, key = _grant_key(kind, principal_id, permission_id, attribute_id)
    existing = await db.execute(select(table).where(key))
    if not existing.first():
        raise HTTPException(status_code=404, detail="Grant not found")

    await db.execute(delete(table).where(key))
    await db.commit()
    log.info(f"{caller} revoked ({permission_id}, {attribute_id}) from {kind.value} {principal_id}")
    return None


# ============================================================================
# Group Routes
# ============================================================================

@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group: GroupCreate,
    db: AsyncSession = Depends(get_db),
    caller: str = Depends(require_api_access),
):
    """Create a group, optionally under an existing parent."""
    if group.parent_id is not None:
        await _get_or_404(db, Group, group.parent_id, "parent group")

    try:
        db_group = Group(**group.model_dump(), created_by_id=caller)
        db.add(db_group)
        await db.commit()
        await db.refresh(db_group)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Group with this name already exists"
        )

    log.info(f"{caller} created group {db_group.name!r} ({db_group.id})")
    return db_group


@router.put("/groups/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    group_update: GroupUpdate,
    db: AsyncSession = Depends(get_db),
    caller: str = Depends(require_api_access),
):
    """
    Update a group.

    Moving a group under itself or one of its descendants is rejected with
    409, so the stored hierarchy stays a forest.
    """
    db_group = await _get_or_404(db, Group, group_id, "group")
    update_data = group_update.model_dump(exclude_unset=True)

    new_parent = update_data.get("parent_id")
    if new_parent is not None:
        await _get_or_404(db, Group, new_parent, "parent group")
        result = await db.execute(select(Group))
        records = [
            GroupRecord.model_validate(g).model_copy(update={"parent_id": new_parent})
            if g.id == group_id else GroupRecord.model_validate(g)
            for g in result.scalars().all()
        ]
        try:
            GroupHierarchy(records).ancestors(group_id)
        except DataIntegrityError as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": "Group move would create a cycle", "problems": e.problems},
            )

    for key, value in update_data.items():
        setattr(db_group, key, value)
    db_group.updated_by_id = caller

    try:
        await db.commit()
        await db.refresh(db_group)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Group with this name already exists"
        )

    log.info(f"{caller} updated group {group_id}: {sorted(update_data)}")
    return db_group
