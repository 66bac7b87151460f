"""
Permission, attribute, role and group models for attribute-scoped RBAC.

This module holds the storage side of the access model:
- Permissions flagged for which principals may receive them
- Permission attributes linked to permissions (many-to-many)
- Hierarchical groups and flat roles
- User/group/role membership triples
- User, role and group grants of (permission, attribute) pairs
- API resources mapping (path, method) to a required pair
"""
import enum
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Boolean, Text, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, SoftDeleteMixin, AuditMixin, generate_id


class HttpMethod(str, enum.Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    OPTIONS = "OPTIONS"


# ============================================================================
# Association Tables
# ============================================================================

# Which attributes are valid for which permission
permission_attribute_links = Table(
    "permission_attribute_links",
    Base.metadata,
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("attribute_id", String(26), ForeignKey("permission_attributes.id", ondelete="CASCADE"), primary_key=True),
)

# A user holds a role inside a group
user_group_roles = Table(
    "user_group_roles",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", String(26), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


def _grant_table(name: str, principal_column: str, principal_table: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column(principal_column, String(26), ForeignKey(f"{principal_table}.id", ondelete="CASCADE"), primary_key=True),
        Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        Column("attribute_id", String(26), ForeignKey("permission_attributes.id", ondelete="CASCADE"), primary_key=True),
        Column("created_by_id", String(26), ForeignKey("users.id"), nullable=True),
        Column("created_at", DateTime(timezone=True), nullable=False, default=datetime.now),
    )


# Direct grants to users
user_permissions = _grant_table("user_permissions", "user_id", "users")

# Grants to roles
role_permissions = _grant_table("role_permissions", "role_id", "roles")

# Grants to groups (inherited by descendant groups)
group_permissions = _grant_table("group_permissions", "group_id", "groups")


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin, AuditMixin):
    """
    A named capability, qualified by one of its linked attributes when granted.

    The is_user / is_role / is_group flags restrict which grant table may
    reference the permission.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_user: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_role: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_group: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r})>"


class PermissionAttribute(Base, TimestampMixin):
    """Fine-grained qualifier such as read, write or export."""
    __tablename__ = "permission_attributes"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PermissionAttribute(id={self.id}, name={self.name!r})>"


class Role(Base, TimestampMixin, SoftDeleteMixin, AuditMixin):
    """
    Flat role. Users hold roles only through a group membership.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"


class Group(Base, TimestampMixin, SoftDeleteMixin, AuditMixin):
    """
    Group in a forest. A child group is a subdivision of its parent and
    inherits the parent's grants.
    """
    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name!r}, parent_id={self.parent_id})>"


class ApiResource(Base):
    """Maps an exact (path, method) pair to the permission pair it requires."""
    __tablename__ = "api_resources"

    path: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)
    method: Mapped[HttpMethod] = mapped_column(SQLEnum(HttpMethod, name="http_method"), primary_key=True)
    permission_id: Mapped[str] = mapped_column(String(26), ForeignKey("permissions.id"), nullable=False)
    attribute_id: Mapped[str] = mapped_column(String(26), ForeignKey("permission_attributes.id"), nullable=False)

    def __repr__(self) -> str:
        return f"<ApiResource(method={self.method}, path={self.path!r})>"
