"""
Pydantic schemas for grant and group management.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from app.features.access.entities import PrincipalKind


# ============================================================================
# Grant Schemas
# ============================================================================

class GrantCreate(BaseModel):
    """Schema for granting a (permission, attribute) pair to a user, role or group."""
    kind: PrincipalKind = Field(..., description="Principal kind: user, role or group")
    principal_id: str = Field(..., min_length=1, description="User, role or group ID")
    permission_id: str = Field(..., min_length=1, description="Permission ID")
    attribute_id: str = Field(..., min_length=1, description="Permission attribute ID")


class GrantResponse(BaseModel):
    kind: PrincipalKind
    principal_id: str
    permission_id: str
    attribute_id: str
    created_by_id: Optional[str] = None
    created_at: Optional[datetime] = None


# ============================================================================
# Group Schemas
# ============================================================================

class GroupBase(BaseModel):
    """Base group schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Group name")
    description: Optional[str] = Field(None, max_length=1000, description="Group description")


class GroupCreate(GroupBase):
    """Schema for creating a new group."""
    parent_id: Optional[str] = Field(None, description="Parent group ID (root group if omitted)")
    is_active: bool = True


class GroupUpdate(BaseModel):
    """Schema for updating a group. Only fields that are sent are changed."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    parent_id: Optional[str] = Field(None, description="New parent group ID; null makes it a root")
    is_active: Optional[bool] = None


class GroupResponse(GroupBase):
    """Schema for group response."""
    id: str
    parent_id: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
