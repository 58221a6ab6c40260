"""
Caller identity for callable operations.

Identity issuance lives outside the engine; callers arrive already
authenticated and are described by uid, display name and role.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.core.errors import PermissionDeniedError, UnauthenticatedError


class Role(str, Enum):
    """User roles recognised by the engine."""

    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    STAFF = "staff"
    CONTENT_AUTHOR = "content_author"


REVIEWER_ROLES = frozenset({Role.ADMIN, Role.INSTRUCTOR})


@dataclass(frozen=True)
class Caller:
    """An authenticated actor."""

    uid: str
    display_name: str = ""
    role: Role = Role.STAFF

    @property
    def name(self) -> str:
        return self.display_name or self.uid

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


def require_authenticated(caller: Caller | None) -> Caller:
    """Reject anonymous invocations of callable operations."""
    if caller is None or not caller.uid:
        raise UnauthenticatedError("Must be authenticated to perform this operation")
    return caller


def require_role(caller: Caller | None, roles: frozenset[Role] = REVIEWER_ROLES) -> Caller:
    """Require an authenticated caller holding one of ``roles``."""
    caller = require_authenticated(caller)
    if caller.role not in roles:
        allowed = ", ".join(sorted(r.value for r in roles))
        raise PermissionDeniedError(
            f"Role '{caller.role.value}' may not perform this operation (requires {allowed})",
            uid=caller.uid,
        )
    return caller
