"""
Portal authentication against the fixed staff user table.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from domain.user import User, UserRole, select_active_role

logger = logging.getLogger(__name__)


# username -> (password, user)
_USERS: Dict[str, Tuple[str, User]] = {
    "developer": (
        "123",
        User(
            id="1",
            username="developer",
            name="System Developer",
            roles=(UserRole.DEVELOPER, UserRole.SUPERVISOR, UserRole.CREDIT_CONTROL, UserRole.JUNIOR_AGENT),
        ),
    ),
    "ahmed": ("password", User(id="2", username="ahmed", name="Ahmed Al-Salem", roles=(UserRole.JUNIOR_AGENT,))),
    "sarah": ("password", User(id="3", username="sarah", name="Sarah Johnson", roles=(UserRole.SUPERVISOR,))),
    "credit": (
        "password",
        User(id="4", username="credit", name="Credit Control Team", roles=(UserRole.CREDIT_CONTROL,)),
    ),
}


@dataclass(frozen=True, slots=True)
class AuthResult:
    success: bool
    user: Optional[User] = None
    active_role: Optional[UserRole] = None
    message: str = ""


def authenticate(username: str, password: str) -> AuthResult:
    """
    Check credentials and pick the session's active role.

    Username matching is case-insensitive; passwords are not.
    """

    record = _USERS.get((username or "").strip().lower())
    if record is None or not hmac.compare_digest(record[0], password or ""):
        logger.info("Login failed", extra={"username": username})
        return AuthResult(success=False, message="Invalid username or password")

    user = record[1]
    role = select_active_role(user.roles)
    logger.info("Login succeeded", extra={"user_id": user.id, "active_role": role.value if role else None})
    return AuthResult(success=True, user=user, active_role=role, message=f"Welcome, {user.name}")


def get_user(user_id: str) -> Optional[User]:
    return next((user for _, user in _USERS.values() if user.id == user_id), None)


__all__ = ["AuthResult", "authenticate", "get_user"]
