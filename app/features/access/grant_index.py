"""
Index of grants by principal.

One structure serves user, role and group grants: keys are
``(PrincipalKind, principal_id)`` and values are frozensets of
``PermissionPair``.
"""
from collections import defaultdict
from typing import Dict, FrozenSet, Iterable, List, Set, Tuple

from app.features.access.entities import (
    AttributeLink,
    AttributeRecord,
    Grant,
    PermissionPair,
    PermissionRecord,
    PrincipalKind,
)
from app.features.access.exceptions import DataIntegrityError
from app.utils import get_logger


log = get_logger(__name__)

_EMPTY: FrozenSet[PermissionPair] = frozenset()


def grant_problems(
    grant: Grant,
    permissions: Dict[str, PermissionRecord],
    attributes: Dict[str, AttributeRecord],
    links: Set[PermissionPair],
) -> List[str]:
    """Describe every invariant ``grant`` violates; empty when it is valid."""
    label = f"{grant.kind.value} grant {grant.principal_id} -> ({grant.permission_id}, {grant.attribute_id})"
    problems = []

    permission = permissions.get(grant.permission_id)
    if permission is None:
        problems.append(f"{label}: unknown permission")
    elif not permission.allows(grant.kind):
        problems.append(f"{label}: permission {permission.name!r} is not grantable to a {grant.kind.value}")

    if grant.attribute_id not in attributes:
        problems.append(f"{label}: unknown attribute")
    elif permission is not None and grant.pair not in links:
        problems.append(f"{label}: attribute is not linked to permission {permission.name!r}")

    return problems


class GrantIndex:
    """Principal -> granted pairs, built in one pass and validated as it goes."""

    def __init__(
        self,
        grants: Dict[Tuple[PrincipalKind, str], FrozenSet[PermissionPair]],
        links: FrozenSet[PermissionPair],
    ) -> None:
        self._grants = grants
        self._links = links

    @classmethod
    def build(
        cls,
        permissions: Iterable[PermissionRecord],
        attributes: Iterable[AttributeRecord],
        links: Iterable[AttributeLink],
        grants: Iterable[Grant],
    ) -> "GrantIndex":
        """
        Index ``grants`` by principal.

        Raises:
            DataIntegrityError: listing every invalid grant. Invalid grants are
                never dropped silently.
        """
        permissions_by_id = {p.id: p for p in permissions}
        attributes_by_id = {a.id: a for a in attributes}
        linked = {PermissionPair(link.permission_id, link.attribute_id) for link in links}

        collected: Dict[Tuple[PrincipalKind, str], Set[PermissionPair]] = defaultdict(set)
        problems: List[str] = []
        count = 0

        for grant in grants:
            count += 1
            issues = grant_problems(grant, permissions_by_id, attributes_by_id, linked)
            if issues:
                problems.extend(issues)
                continue
            collected[(grant.kind, grant.principal_id)].add(grant.pair)

        if problems:
            log.warning("Rejected %d invalid grant(s) while indexing", len(problems))
            raise DataIntegrityError(
                f"{len(problems)} invalid grant(s) in snapshot", problems
            )

        log.debug(f"Indexed {count} grants for {len(collected)} principals")
        return cls(
            {key: frozenset(pairs) for key, pairs in collected.items()},
            frozenset(linked),
        )

    def lookup(self, kind: PrincipalKind, principal_id: str) -> FrozenSet[PermissionPair]:
        return self._grants.get((kind, principal_id), _EMPTY)

    def is_linked(self, pair: PermissionPair) -> bool:
        return pair in self._links

    def __len__(self) -> int:
        return len(self._grants)
