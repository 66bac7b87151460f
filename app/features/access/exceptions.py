"""
Error taxonomy of the access engine.

A denied request is an outcome, not an error; only missing entities and
corrupt data raise.
"""
from typing import Iterable, Optional


class AccessControlError(Exception):
    code: str = "ACCESS_CONTROL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class NotFoundError(AccessControlError):
    """A referenced entity (or snapshot version) is absent from the snapshot."""
    code = "NOT_FOUND"


class DataIntegrityError(AccessControlError):
    """
    Snapshot data violates a model invariant: an unlinked grant pair, a grant
    to a principal kind the permission does not allow, a cyclic group or menu
    hierarchy, or a dangling reference.
    """
    code = "INTEGRITY_ERROR"

    def __init__(self, message: str, problems: Iterable[str] = ()) -> None:
        self.problems = list(problems) or [message]
        super().__init__(message)
