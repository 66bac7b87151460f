"""
Group hierarchy resolution over an arena of group records indexed by id.
"""
from typing import Dict, Iterable, List, Tuple

from app.features.access.entities import GroupRecord
from app.features.access.exceptions import DataIntegrityError, NotFoundError


class GroupHierarchy:
    """
    Ancestor chains and inheritance scopes for a group forest.

    Parent links are followed by id lookup with a visited set, so a corrupt
    cyclic chain is reported as ``DataIntegrityError`` instead of looping.
    """

    def __init__(self, groups: Iterable[GroupRecord]) -> None:
        self._groups: Dict[str, GroupRecord] = {g.id: g for g in groups}
        self._chains: Dict[str, Tuple[str, ...]] = {}

    def __contains__(self, group_id: str) -> bool:
        return group_id in self._groups

    def get(self, group_id: str) -> GroupRecord:
        try:
            return self._groups[group_id]
        except KeyError:
            raise NotFoundError(f"group {group_id} not found") from None

    def ancestors(self, group_id: str) -> Tuple[str, ...]:
        """Ancestor ids of ``group_id``, closest first."""
        cached = self._chains.get(group_id)
        if cached is not None:
            return cached

        group = self.get(group_id)
        chain: List[str] = []
        visited = {group_id}
        parent_id = group.parent_id
        while parent_id is not None:
            if parent_id in visited:
                raise DataIntegrityError(
                    f"group hierarchy cycle through {parent_id} (starting at {group_id})"
                )
            parent = self._groups.get(parent_id)
            if parent is None:
                raise DataIntegrityError(
                    f"group {chain[-1] if chain else group_id} references missing parent {parent_id}"
                )
            visited.add(parent_id)
            chain.append(parent_id)
            parent_id = parent.parent_id

        result = tuple(chain)
        self._chains[group_id] = result
        return result

    def in_scope(self, group_id: str, inherit: bool = True) -> Tuple[str, ...]:
        """
        The group itself followed by every group whose grants it inherits.

        With ``inherit=False`` only the group itself is in scope.
        """
        if not inherit:
            self.get(group_id)
            return (group_id,)
        return (group_id,) + self.ancestors(group_id)

    def is_deleted(self, group_id: str) -> bool:
        """True when the group or any ancestor is soft-deleted (deletion cascades down the tree)."""
        group = self.get(group_id)
        if group.deleted_at is not None:
            return True
        return any(self._groups[a].deleted_at is not None for a in self.ancestors(group_id))

    def is_effective(self, group_id: str) -> bool:
        """False when the group is inactive, or it or any ancestor is soft-deleted."""
        return self.get(group_id).is_active and not self.is_deleted(group_id)

    def check_acyclic(self) -> List[str]:
        """Walk every chain and return the structural problems found."""
        problems = []
        for group_id in self._groups:
            try:
                self.ancestors(group_id)
            except DataIntegrityError as e:
                problems.append(e.message)
        return problems
