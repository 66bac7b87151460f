"""
API authorization gate.

Maps an exact (method, path) pair to the permission pair it requires and
checks it against the caller's effective set. Every failure mode, including
errors, yields a deny; errors are logged and returned alongside the decision.
"""
import enum
from typing import Callable, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict

from app.features.access.entities import PermissionPair
from app.features.access.exceptions import AccessControlError, DataIntegrityError
from app.features.access.snapshot import Snapshot
from app.utils import get_logger


log = get_logger(__name__)


class Decision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"


class AuthorizationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    decision: Decision
    reason: str
    method: str
    path: str
    user_id: str
    required: Optional[PermissionPair] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.decision == Decision.ALLOW


class AuthorizationGate:
    """
    Fail-closed gate over one snapshot.

    ``resolve`` supplies a user's effective set; the service passes its cached
    resolver so repeated checks do not recompute it.
    """

    def __init__(self, snapshot: Snapshot, resolve: Callable[[str], FrozenSet[PermissionPair]]) -> None:
        self.snapshot = snapshot
        self._resolve = resolve

    def authorize(self, method: str, path: str, user_id: str) -> AuthorizationResult:
        method = (method or "").upper()

        def result(decision: Decision, reason: str, **extra) -> AuthorizationResult:
            return AuthorizationResult(
                decision=decision, reason=reason, method=method, path=path, user_id=user_id, **extra
            )

        required: Optional[PermissionPair] = None
        try:
            resource = self.snapshot.api_resource(path, method)
            if resource is None:
                log.debug(f"No API resource for {method} {path} - denied")
                return result(Decision.DENY, "no api resource registered for this route")

            required = resource.required
            if not self.snapshot.grant_index.is_linked(required):
                raise DataIntegrityError(
                    f"api resource {method} {path} requires unlinked pair "
                    f"({required.permission_id}, {required.attribute_id})"
                )

            if required in self._resolve(user_id):
                log.debug(f"User {user_id} allowed {method} {path}")
                return result(Decision.ALLOW, "permission granted", required=required)

            log.debug(f"User {user_id} denied {method} {path}: missing {required}")
            return result(Decision.DENY, "missing required permission", required=required)

        except AccessControlError as e:
            log.warning("Denied %s %s for user %s: %s [%s]", method, path, user_id, e.message, e.code)
            return result(Decision.DENY, "denied on error", required=required, error_code=e.code, error=e.message)
        except Exception as e:
            log.exception("Unexpected error authorizing %s %s for user %s", method, path, user_id)
            return result(
                Decision.DENY, "denied on error", required=required, error_code="INTERNAL_ERROR", error=str(e)
            )
