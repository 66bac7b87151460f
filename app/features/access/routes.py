"""
Access resolution API routes.

Exposes effective permissions, authorization checks, the filtered menu and
snapshot refresh over HTTP.
"""
from typing import Annotated, Iterable, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.access.dependencies import get_access_service, raise_http_error, require_api_access
from app.features.access.entities import PermissionPair
from app.features.access.exceptions import AccessControlError
from app.features.access.loader import load_snapshot
from app.features.access.schemas import (
    AuthorizeRequest,
    AuthorizeResponse,
    MenuResponse,
    PermissionPairResponse,
    SnapshotRefreshResponse,
    SnapshotStatusResponse,
    UserPermissionsResponse,
)
from app.features.access.service import AccessControlService
from app.features.users.dependencies import get_current_user_id
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(prefix="/access", tags=["access"])

Service = Annotated[AccessControlService, Depends(get_access_service)]


def _describe(
    service: AccessControlService,
    pairs: Iterable[PermissionPair],
    version: Optional[int] = None,
) -> List[PermissionPairResponse]:
    snapshot = service.store.get(version)
    permission_names = {p.id: p.name for p in snapshot.permissions}
    attribute_names = {a.id: a.name for a in snapshot.attributes}
    return [
        PermissionPairResponse(
            permission_id=pair.permission_id,
            attribute_id=pair.attribute_id,
            permission_name=permission_names.get(pair.permission_id),
            attribute_name=attribute_names.get(pair.attribute_id),
        )
        for pair in sorted(pairs)
    ]


def _user_permissions(service: AccessControlService, user_id: str) -> UserPermissionsResponse:
    try:
        explained = service.explain(user_id)
    except AccessControlError as e:
        raise_http_error(e)

    return UserPermissionsResponse(
        user_id=user_id,
        snapshot_version=explained.snapshot_version,
        direct_permissions=_describe(service, explained.direct, explained.snapshot_version),
        role_permissions=_describe(service, explained.from_roles, explained.snapshot_version),
        group_permissions=_describe(service, explained.from_groups, explained.snapshot_version),
        all_permissions=_describe(service, explained.all, explained.snapshot_version),
    )


def _menu(service: AccessControlService, user_id: str) -> MenuResponse:
    version = service.current_version
    try:
        items = service.filter_menu(user_id, version)
    except AccessControlError as e:
        raise_http_error(e)
    return MenuResponse(user_id=user_id, snapshot_version=version, items=items)


# ============================================================================
# Caller Routes
# ============================================================================

@router.get("/me/permissions", response_model=UserPermissionsResponse)
async def get_my_permissions(
    service: Service,
    user_id: str = Depends(get_current_user_id),
):
    """Effective permissions of the authenticated caller."""
    return _user_permissions(service, user_id)


@router.get("/me/menu", response_model=MenuResponse)
async def get_my_menu(
    service: Service,
    user_id: str = Depends(get_current_user_id),
):
    """Menu tree visible to the authenticated caller."""
    return _menu(service, user_id)


# ============================================================================
# Administrative Routes
# ============================================================================

@router.get("/users/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: str,
    service: Service,
    _caller: str = Depends(require_api_access),
):
    """Effective permissions of any user, with direct/role/group breakdown."""
    return _user_permissions(service, user_id)


@router.get("/users/{user_id}/menu", response_model=MenuResponse)
async def get_user_menu(
    user_id: str,
    service: Service,
    _caller: str = Depends(require_api_access),
):
    """Menu tree visible to any user."""
    return _menu(service, user_id)


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    check: AuthorizeRequest,
    service: Service,
    caller: str = Depends(require_api_access),
):
    """
    Check whether a user may call an API route.

    Always answers with a decision; data errors come back as a deny with the
    error attached.
    """
    result = service.authorize(check.method, check.path, check.user_id or caller)

    required: Optional[PermissionPairResponse] = None
    if result.required is not None:
        required = _describe(service, [result.required])[0]

    return AuthorizeResponse(
        decision=result.decision,
        allowed=result.allowed,
        reason=result.reason,
        required=required,
        error_code=result.error_code,
        error=result.error,
    )


@router.get("/snapshot", response_model=SnapshotStatusResponse)
async def get_snapshot_status(
    service: Service,
    _caller: str = Depends(require_api_access),
):
    """Published snapshot versions."""
    return SnapshotStatusResponse(
        current_version=service.current_version,
        versions=list(service.store.versions),
    )


@router.post("/snapshot/refresh", response_model=SnapshotRefreshResponse)
async def refresh_snapshot(
    service: Service,
    db: AsyncSession = Depends(get_db),
    caller: str = Depends(require_api_access),
):
    """
    Reload access data from the database and publish it as a new version.

    Integrity problems do not block publication; they are returned so an
    administrator can fix the data, and affected requests fail closed.
    """
    snapshot = await load_snapshot(db)
    version = service.publish(snapshot)
    problems = service.validate(version)
    if problems:
        log.warning(f"Snapshot {version} published by {caller} with {len(problems)} integrity problem(s)")
    return SnapshotRefreshResponse(version=version, problems=problems)
