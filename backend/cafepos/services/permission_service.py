# Overview: Principal type and role checks used by every mutating core call.

"""
Role-Based Access Checks

WHY: Authorization is an explicit argument, not ambient request state.
Services receive a Principal and call require_role before touching data,
so the same rules hold for HTTP, CLI and tests.

DESIGN PRINCIPLES:
- Fail closed: unknown roles are denied
- Log denials only: grants are not logged
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import Forbidden
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLES

STAFF_ROLES = (ROLE_MANAGER, ROLE_ADMIN)
ADMIN_ONLY = (ROLE_ADMIN,)


@dataclass(frozen=True)
class Principal:
    """Authenticated actor: who is calling and with which role."""
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(user_id=user.id, role=user.role)


def has_role(principal: Principal | None, *roles: str) -> bool:
    if principal is None or principal.role not in ROLES:
        return False
    return principal.role in roles


def require_role(principal: Principal | None, *roles: str, action: str | None = None) -> Principal:
    """
    Raise Forbidden unless principal holds one of ``roles``.

    Returns the principal so callers can chain.
    """
    if not has_role(principal, *roles):
        current_app.logger.warning(
            "Permission denied: user=%s role=%s action=%s required=%s",
            getattr(principal, "user_id", None),
            getattr(principal, "role", None),
            action,
            ",".join(roles),
        )
        raise Forbidden(
            "Permission denied",
            details={"required_roles": list(roles), "action": action} if action else {"required_roles": list(roles)},
        )
    return principal
