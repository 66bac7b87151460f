"""
Access control service: the operations exposed to the HTTP layer.

Wraps a ``SnapshotStore`` and caches resolved permission sets per
(user id, snapshot version). Cached entries for versions the store no longer
holds are evicted on publish.
"""
import threading
from typing import Dict, FrozenSet, List, Optional, Tuple

from app.features.access.entities import PermissionPair
from app.features.access.exceptions import NotFoundError
from app.features.access.gate import AuthorizationGate, AuthorizationResult, Decision
from app.features.access.menu import MenuTreeNode, filter_menu
from app.features.access.resolver import EffectivePermissions, PermissionResolver, ResolutionPolicy
from app.features.access.snapshot import Snapshot, SnapshotStore
from app.utils import get_logger


log = get_logger(__name__)


class AccessControlService:
    def __init__(self, store: Optional[SnapshotStore] = None, policy: Optional[ResolutionPolicy] = None) -> None:
        self.store = store or SnapshotStore()
        self.policy = policy or ResolutionPolicy.from_config()
        self._cache: Dict[Tuple[str, int], EffectivePermissions] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Snapshot management
    # ------------------------------------------------------------------

    def publish(self, snapshot: Snapshot) -> int:
        version = self.store.publish(snapshot)
        held = set(self.store.versions)
        with self._cache_lock:
            stale = [key for key in self._cache if key[1] not in held]
            for key in stale:
                del self._cache[key]
        if stale:
            log.debug(f"Evicted {len(stale)} cached permission sets")
        return version

    @property
    def current_version(self) -> Optional[int]:
        return self.store.current_version

    def validate(self, snapshot_version: Optional[int] = None) -> List[str]:
        snapshot = self.store.get(snapshot_version)
        return snapshot.validate(self.policy.username_case_sensitive)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def explain(self, user_id: str, snapshot_version: Optional[int] = None) -> EffectivePermissions:
        """Effective permissions of ``user_id`` with their per-source breakdown."""
        snapshot = self.store.get(snapshot_version)
        key = (user_id, snapshot.version)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        resolved = PermissionResolver(snapshot, self.policy).resolve_detailed(user_id)
        with self._cache_lock:
            # skip caching if the version was evicted while we were resolving
            if snapshot.version in self.store.versions:
                self._cache[key] = resolved
        return resolved

    def resolve_effective_permissions(
        self, user_id: str, snapshot_version: Optional[int] = None
    ) -> FrozenSet[PermissionPair]:
        """
        Effective (permission, attribute) pairs for ``user_id``.

        Raises:
            NotFoundError: unknown user or snapshot version.
            DataIntegrityError: snapshot data violates an invariant.
        """
        return self.explain(user_id, snapshot_version).all

    def authorize(
        self, method: str, path: str, user_id: str, snapshot_version: Optional[int] = None
    ) -> AuthorizationResult:
        """Allow/deny decision for a request; never raises."""
        try:
            snapshot = self.store.get(snapshot_version)
        except NotFoundError as e:
            log.warning("Denied %s %s for user %s: %s", method, path, user_id, e.message)
            return AuthorizationResult(
                decision=Decision.DENY,
                reason="denied on error",
                method=(method or "").upper(),
                path=path,
                user_id=user_id,
                error_code=e.code,
                error=e.message,
            )

        gate = AuthorizationGate(
            snapshot, lambda uid: self.resolve_effective_permissions(uid, snapshot.version)
        )
        return gate.authorize(method, path, user_id)

    def filter_menu(self, user_id: str, snapshot_version: Optional[int] = None) -> List[MenuTreeNode]:
        """Visible menu tree; disabled accounts see nothing, not even ungated nodes."""
        snapshot = self.store.get(snapshot_version)
        if not snapshot.user(user_id).is_enabled:
            return []
        effective = self.resolve_effective_permissions(user_id, snapshot.version)
        return filter_menu(snapshot.menu, effective)

    def find_user_id(self, username: str, snapshot_version: Optional[int] = None) -> str:
        snapshot = self.store.get(snapshot_version)
        return snapshot.find_user(username, self.policy.username_case_sensitive).id
