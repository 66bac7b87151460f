"""
Immutable access-data snapshots and the store that publishes them.

A snapshot is the whole read model of one consistent load: users, groups,
roles, permissions, attributes, links, memberships, grants, menu and API map.
Derived indexes are built lazily, once, on first use. Publishing a new
snapshot is a single reference swap under a lock, so readers see either the
old snapshot in full or the new one in full.
"""
import threading
from collections import OrderedDict, defaultdict
from functools import cached_property
from typing import Dict, Iterable, List, Optional, Tuple

from app.core import config
from app.features.access.entities import (
    ApiResourceRecord,
    AttributeLink,
    AttributeRecord,
    Grant,
    GroupRecord,
    Membership,
    MenuNode,
    PermissionPair,
    PermissionRecord,
    RoleRecord,
    UserRecord,
)
from app.features.access.exceptions import DataIntegrityError, NotFoundError
from app.features.access.grant_index import GrantIndex
from app.features.access.hierarchy import GroupHierarchy
from app.features.access.menu import menu_problems
from app.utils import get_logger


log = get_logger(__name__)


def normalize_username(username: str, case_sensitive: bool) -> str:
    return username if case_sensitive else username.casefold()


class Snapshot:
    """Read-only collections for one snapshot version."""

    def __init__(
        self,
        *,
        users: Iterable[UserRecord] = (),
        groups: Iterable[GroupRecord] = (),
        roles: Iterable[RoleRecord] = (),
        permissions: Iterable[PermissionRecord] = (),
        attributes: Iterable[AttributeRecord] = (),
        links: Iterable[AttributeLink] = (),
        memberships: Iterable[Membership] = (),
        grants: Iterable[Grant] = (),
        menu: Iterable[MenuNode] = (),
        api_resources: Iterable[ApiResourceRecord] = (),
        version: Optional[int] = None,
    ) -> None:
        self.users: Tuple[UserRecord, ...] = tuple(users)
        self.groups: Tuple[GroupRecord, ...] = tuple(groups)
        self.roles: Tuple[RoleRecord, ...] = tuple(roles)
        self.permissions: Tuple[PermissionRecord, ...] = tuple(permissions)
        self.attributes: Tuple[AttributeRecord, ...] = tuple(attributes)
        self.links: Tuple[AttributeLink, ...] = tuple(links)
        self.memberships: Tuple[Membership, ...] = tuple(memberships)
        self.grants: Tuple[Grant, ...] = tuple(grants)
        self.menu: Tuple[MenuNode, ...] = tuple(menu)
        self.api_resources: Tuple[ApiResourceRecord, ...] = tuple(api_resources)
        self.version = version

    def __repr__(self) -> str:
        return (
            f"<Snapshot(version={self.version}, users={len(self.users)}, "
            f"groups={len(self.groups)}, grants={len(self.grants)})>"
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @cached_property
    def _users_by_id(self) -> Dict[str, UserRecord]:
        return {u.id: u for u in self.users}

    @cached_property
    def _roles_by_id(self) -> Dict[str, RoleRecord]:
        return {r.id: r for r in self.roles}

    @cached_property
    def _memberships_by_user(self) -> Dict[str, Tuple[Membership, ...]]:
        by_user: Dict[str, List[Membership]] = defaultdict(list)
        for membership in self.memberships:
            by_user[membership.user_id].append(membership)
        return {user_id: tuple(items) for user_id, items in by_user.items()}

    @cached_property
    def _api_map(self) -> Dict[Tuple[str, str], ApiResourceRecord]:
        return {(r.path, r.method.upper()): r for r in self.api_resources}

    def user(self, user_id: str) -> UserRecord:
        try:
            return self._users_by_id[user_id]
        except KeyError:
            raise NotFoundError(f"user {user_id} not found") from None

    def role(self, role_id: str) -> RoleRecord:
        try:
            return self._roles_by_id[role_id]
        except KeyError:
            raise NotFoundError(f"role {role_id} not found") from None

    def find_user(self, username: str, case_sensitive: bool = True) -> UserRecord:
        wanted = normalize_username(username, case_sensitive)
        for user in self.users:
            if normalize_username(user.username, case_sensitive) == wanted:
                return user
        raise NotFoundError(f"user {username!r} not found")

    def memberships_for(self, user_id: str) -> Tuple[Membership, ...]:
        return self._memberships_by_user.get(user_id, ())

    def api_resource(self, path: str, method: str) -> Optional[ApiResourceRecord]:
        return self._api_map.get((path, method.upper()))

    # ------------------------------------------------------------------
    # Derived indexes
    # ------------------------------------------------------------------

    @cached_property
    def hierarchy(self) -> GroupHierarchy:
        return GroupHierarchy(self.groups)

    @property
    def grant_index(self) -> GrantIndex:
        """
        Grant index for this snapshot.

        Raises ``DataIntegrityError`` on every access while the grant data is
        invalid; a valid index is built once and reused.
        """
        index = self.__dict__.get("_grant_index")
        if index is None:
            index = GrantIndex.build(self.permissions, self.attributes, self.links, self.grants)
            self.__dict__["_grant_index"] = index
        return index

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, username_case_sensitive: bool = True) -> List[str]:
        """Collect every integrity problem in the snapshot without raising."""
        problems: List[str] = []

        try:
            self.grant_index
        except DataIntegrityError as e:
            problems.extend(e.problems)

        problems.extend(self.hierarchy.check_acyclic())

        permission_ids = {p.id for p in self.permissions}
        attribute_ids = {a.id for a in self.attributes}
        for link in self.links:
            if link.permission_id not in permission_ids or link.attribute_id not in attribute_ids:
                problems.append(
                    f"attribute link ({link.permission_id}, {link.attribute_id}) references a missing entity"
                )

        linked = {PermissionPair(link.permission_id, link.attribute_id) for link in self.links}
        for resource in self.api_resources:
            label = f"api resource {resource.method.upper()} {resource.path}"
            if resource.permission_id not in permission_ids:
                problems.append(f"{label} requires unknown permission {resource.permission_id}")
            elif resource.attribute_id not in attribute_ids:
                problems.append(f"{label} requires unknown attribute {resource.attribute_id}")
            elif resource.required not in linked:
                problems.append(
                    f"{label} requires unlinked pair ({resource.permission_id}, {resource.attribute_id})"
                )

        problems.extend(menu_problems(self.menu))

        for user in self.users:
            for field in ("created_by_id", "updated_by_id"):
                ref = getattr(user, field)
                if ref is not None and ref not in self._users_by_id:
                    problems.append(f"user {user.id} {field} references missing user {ref}")

        seen: Dict[str, str] = {}
        for user in self.users:
            key = normalize_username(user.username, username_case_sensitive)
            if key in seen:
                problems.append(f"username {user.username!r} is not unique (users {seen[key]}, {user.id})")
            seen[key] = user.id

        for membership in self.memberships:
            if membership.user_id not in self._users_by_id:
                problems.append(f"membership references missing user {membership.user_id}")
            if membership.role_id not in self._roles_by_id:
                problems.append(f"membership references missing role {membership.role_id}")
            if membership.group_id not in self.hierarchy:
                problems.append(f"membership references missing group {membership.group_id}")

        return problems


class SnapshotStore:
    """
    Holds the current snapshot and a bounded history of earlier versions.

    ``publish`` swaps the current reference atomically; ``get`` never blocks on
    a publish in progress longer than the swap itself.
    """

    def __init__(self, history: int = config.SNAPSHOT_HISTORY) -> None:
        self._history = max(1, history)
        self._lock = threading.Lock()
        self._snapshots: "OrderedDict[int, Snapshot]" = OrderedDict()
        self._current: Optional[Snapshot] = None

    def publish(self, snapshot: Snapshot) -> int:
        """Make ``snapshot`` current and return its version."""
        with self._lock:
            latest = self._current.version if self._current is not None else 0
            if snapshot.version is None:
                snapshot.version = latest + 1
            elif snapshot.version <= latest:
                raise ValueError(
                    f"snapshot version {snapshot.version} is not newer than {latest}"
                )
            self._snapshots[snapshot.version] = snapshot
            while len(self._snapshots) > self._history:
                self._snapshots.popitem(last=False)
            self._current = snapshot

        log.info("Published access snapshot version %s", snapshot.version)
        return snapshot.version

    def get(self, version: Optional[int] = None) -> Snapshot:
        current = self._current
        if version is None:
            if current is None:
                raise NotFoundError("no access snapshot has been published")
            return current
        snapshot = self._snapshots.get(version)
        if snapshot is None:
            raise NotFoundError(f"snapshot version {version} not available")
        return snapshot

    @property
    def current_version(self) -> Optional[int]:
        current = self._current
        return current.version if current is not None else None

    @property
    def versions(self) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._snapshots)
