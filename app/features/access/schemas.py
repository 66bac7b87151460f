"""
Pydantic schemas for access resolution endpoints.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from app.features.access.gate import Decision
from app.features.access.menu import MenuTreeNode
from app.features.permissions.models import HttpMethod


# ============================================================================
# Permission Set Schemas
# ============================================================================

class PermissionPairResponse(BaseModel):
    """A granted (permission, attribute) pair with display names."""
    permission_id: str
    attribute_id: str
    permission_name: Optional[str] = None
    attribute_name: Optional[str] = None


class UserPermissionsResponse(BaseModel):
    """Effective permissions of a user, broken down by source."""
    user_id: str
    snapshot_version: Optional[int] = None
    direct_permissions: List[PermissionPairResponse] = []
    role_permissions: List[PermissionPairResponse] = []
    group_permissions: List[PermissionPairResponse] = []
    all_permissions: List[PermissionPairResponse] = []  # Deduplicated union


# ============================================================================
# Authorization Schemas
# ============================================================================

class AuthorizeRequest(BaseModel):
    """Schema for checking whether a user may call an API route."""
    method: str = Field(..., description="HTTP method")
    path: str = Field(..., min_length=1, description="Route path exactly as registered")
    user_id: Optional[str] = Field(None, description="User ID (uses the caller if not provided)")

    @field_validator('method')
    @classmethod
    def method_known(cls, v: str) -> str:
        """Normalize and validate the HTTP method."""
        v = v.upper()
        if v not in HttpMethod.__members__:
            raise ValueError(f"Unsupported HTTP method {v!r}")
        return v


class AuthorizeResponse(BaseModel):
    decision: Decision
    allowed: bool
    reason: str
    required: Optional[PermissionPairResponse] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# Menu Schemas
# ============================================================================

class MenuResponse(BaseModel):
    user_id: str
    snapshot_version: Optional[int] = None
    items: List[MenuTreeNode] = []


# ============================================================================
# Snapshot Schemas
# ============================================================================

class SnapshotStatusResponse(BaseModel):
    current_version: Optional[int] = None
    versions: List[int] = []


class SnapshotRefreshResponse(BaseModel):
    version: int
    problems: List[str] = []
