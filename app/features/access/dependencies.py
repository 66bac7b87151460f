"""
Access control dependencies for route protection.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, Request, status

from app.features.access.exceptions import AccessControlError, DataIntegrityError, NotFoundError
from app.features.access.service import AccessControlService
from app.features.users.dependencies import get_current_user_id
from app.utils import get_logger


log = get_logger(__name__)

_service = AccessControlService()


def get_access_service() -> AccessControlService:
    """Process-wide access service holding the published snapshots."""
    return _service


def raise_http_error(error: AccessControlError) -> None:
    """Translate an engine error into the matching HTTPException."""
    if isinstance(error, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, DataIntegrityError):
        log.error("Access data integrity problem: %s", error.problems)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": error.message, "problems": error.problems},
        )
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)


async def require_api_access(
    request: Request,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[AccessControlService, Depends(get_access_service)],
) -> str:
    """
    Require that the caller may invoke the current route.

    The route's registered path template (for example
    ``/access/users/{user_id}/menu``) and method are looked up exactly in the
    API resource map; anything unregistered is denied.

    Usage:
        @router.get("/reports/export")
        async def export(user_id: str = Depends(require_api_access)):
            ...

    Raises:
        HTTPException: 403 if the request is not authorized
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path

    result = service.authorize(request.method, path, user_id)
    if not result.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: {request.method} {path}",
        )
    return user_id
