"""
Immutable in-memory records consumed by the access engine.

Records are frozen pydantic models built from ORM rows with
``model_validate(row, from_attributes=True)``. Cross-references are plain ids.
"""
import enum
from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict


class PermissionPair(NamedTuple):
    """A (permission, attribute) pair: the unit of every grant and check."""
    permission_id: str
    attribute_id: str


class PrincipalKind(str, enum.Enum):
    USER = "user"
    ROLE = "role"
    GROUP = "group"


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


class UserRecord(Record):
    id: str
    username: str
    is_active: bool = True
    is_2fa_enabled: bool = False
    deleted_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    updated_by_id: Optional[str] = None

    @property
    def is_enabled(self) -> bool:
        return self.is_active and self.deleted_at is None


class GroupRecord(Record):
    id: str
    name: str
    parent_id: Optional[str] = None
    is_active: bool = True
    deleted_at: Optional[datetime] = None


class RoleRecord(Record):
    id: str
    name: str
    is_active: bool = True
    deleted_at: Optional[datetime] = None

    @property
    def is_enabled(self) -> bool:
        return self.is_active and self.deleted_at is None


class PermissionRecord(Record):
    id: str
    name: str
    is_user: bool = False
    is_role: bool = False
    is_group: bool = False

    def allows(self, kind: PrincipalKind) -> bool:
        """Whether grants of this permission may target a principal of ``kind``."""
        return {
            PrincipalKind.USER: self.is_user,
            PrincipalKind.ROLE: self.is_role,
            PrincipalKind.GROUP: self.is_group,
        }[kind]


class AttributeRecord(Record):
    id: str
    name: str
    description: Optional[str] = None


class AttributeLink(Record):
    permission_id: str
    attribute_id: str


class Membership(Record):
    user_id: str
    group_id: str
    role_id: str


class Grant(Record):
    """User, role and group grants share one shape, tagged by principal kind."""
    kind: PrincipalKind
    principal_id: str
    permission_id: str
    attribute_id: str

    @property
    def pair(self) -> PermissionPair:
        return PermissionPair(self.permission_id, self.attribute_id)


class MenuNode(Record):
    id: str
    name: str
    parent_id: Optional[str] = None
    order: Optional[int] = None
    url: Optional[str] = None
    icon: Optional[str] = None
    parent_only: bool = False
    permission_id: Optional[str] = None
    attribute_id: Optional[str] = None

    @property
    def gating(self) -> Optional[PermissionPair]:
        if self.permission_id is None or self.attribute_id is None:
            return None
        return PermissionPair(self.permission_id, self.attribute_id)

    @property
    def is_gated(self) -> bool:
        return self.permission_id is not None or self.attribute_id is not None


class ApiResourceRecord(Record):
    path: str
    method: str
    permission_id: str
    attribute_id: str

    @property
    def required(self) -> PermissionPair:
        return PermissionPair(self.permission_id, self.attribute_id)
