"""
Effective permission resolution.

The effective set of a user is the union of:
1. Direct user grants
2. Grants of every role the user holds through a group membership
3. Grants of every in-scope group (membership group plus its ancestors)

Grants are purely additive; there are no deny grants. A disabled or
soft-deleted account resolves to the empty set whatever it was granted.
"""
import enum
from typing import FrozenSet, Set

from pydantic import BaseModel, ConfigDict

from app.core import config
from app.features.access.entities import PermissionPair, PrincipalKind
from app.features.access.snapshot import Snapshot
from app.utils import get_logger


log = get_logger(__name__)


class RoleGrantScope(str, enum.Enum):
    GLOBAL = "global"
    MEMBERSHIP = "membership"


class ResolutionPolicy(BaseModel):
    """Tunable resolution semantics; defaults follow the shipped configuration."""
    model_config = ConfigDict(frozen=True)

    inherit_group_grants: bool = True
    role_grant_scope: RoleGrantScope = RoleGrantScope.GLOBAL
    username_case_sensitive: bool = False

    @classmethod
    def from_config(cls) -> "ResolutionPolicy":
        return cls(
            inherit_group_grants=config.GROUP_INHERITANCE != "none",
            role_grant_scope=RoleGrantScope(config.ROLE_GRANT_SCOPE),
            username_case_sensitive=config.USERNAME_CASE_SENSITIVE,
        )


class EffectivePermissions(BaseModel):
    """Resolved pairs for one user, broken down by where they came from."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    snapshot_version: int | None = None
    direct: FrozenSet[PermissionPair] = frozenset()
    from_roles: FrozenSet[PermissionPair] = frozenset()
    from_groups: FrozenSet[PermissionPair] = frozenset()

    @property
    def all(self) -> FrozenSet[PermissionPair]:
        return self.direct | self.from_roles | self.from_groups


class PermissionResolver:
    """Pure resolver over one snapshot."""

    def __init__(self, snapshot: Snapshot, policy: ResolutionPolicy | None = None) -> None:
        self.snapshot = snapshot
        self.policy = policy or ResolutionPolicy()

    def resolve(self, user_id: str) -> FrozenSet[PermissionPair]:
        """
        Effective (permission, attribute) pairs of ``user_id``.

        Raises:
            NotFoundError: the user, or a role/group one of its memberships
                references, is absent from the snapshot.
            DataIntegrityError: grant data is invalid or the group hierarchy
                is cyclic.
        """
        return self.resolve_detailed(user_id).all

    def resolve_detailed(self, user_id: str) -> EffectivePermissions:
        snapshot = self.snapshot
        user = snapshot.user(user_id)

        if not user.is_enabled:
            log.debug(f"User {user_id} is inactive or deleted - empty permission set")
            return EffectivePermissions(user_id=user_id, snapshot_version=snapshot.version)

        index = snapshot.grant_index
        hierarchy = snapshot.hierarchy

        from_roles: Set[PermissionPair] = set()
        from_groups: Set[PermissionPair] = set()

        for membership in snapshot.memberships_for(user_id):
            role = snapshot.role(membership.role_id)
            if hierarchy.is_deleted(membership.group_id):
                # a deleted group takes its memberships with it
                log.debug(
                    f"Membership of user {user_id} in group {membership.group_id} "
                    f"skipped: group deleted"
                )
                continue
            group_effective = hierarchy.is_effective(membership.group_id)

            if role.is_enabled and (
                group_effective or self.policy.role_grant_scope == RoleGrantScope.GLOBAL
            ):
                from_roles |= index.lookup(PrincipalKind.ROLE, role.id)

            if not group_effective:
                log.debug(
                    f"Membership of user {user_id} in group {membership.group_id} "
                    f"contributes no group grants: group inactive"
                )
                continue

            for group_id in hierarchy.in_scope(membership.group_id, self.policy.inherit_group_grants):
                group = hierarchy.get(group_id)
                # inactive ancestors grant nothing themselves but do not cut inheritance
                if group.is_active and group.deleted_at is None:
                    from_groups |= index.lookup(PrincipalKind.GROUP, group_id)

        result = EffectivePermissions(
            user_id=user_id,
            snapshot_version=snapshot.version,
            direct=index.lookup(PrincipalKind.USER, user_id),
            from_roles=frozenset(from_roles),
            from_groups=frozenset(from_groups),
        )
        log.debug(f"Resolved {len(result.all)} permission pairs for user {user_id}")
        return result
