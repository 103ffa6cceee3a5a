"""
Domain: Portal users and roles.

A user may hold several roles; the portal works under a single active role
chosen by fixed precedence.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple


class UserRole(str, Enum):
    JUNIOR_AGENT = "JUNIOR_AGENT"
    SUPERVISOR = "SUPERVISOR"
    CREDIT_CONTROL = "CREDIT_CONTROL"
    DEVELOPER = "DEVELOPER"


# Highest precedence first.
ROLE_PRECEDENCE: Tuple[UserRole, ...] = (
    UserRole.DEVELOPER,
    UserRole.SUPERVISOR,
    UserRole.CREDIT_CONTROL,
    UserRole.JUNIOR_AGENT,
)


@dataclass(frozen=True, slots=True)
class User:
    id: str
    username: str
    name: str
    roles: Tuple[UserRole, ...]

    def __post_init__(self) -> None:
        if not self.roles:
            raise ValueError("User must hold at least one role")

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles


def select_active_role(roles: Iterable[UserRole]) -> Optional[UserRole]:
    """
    Pick the role a user works under.

    DEVELOPER > SUPERVISOR > CREDIT_CONTROL > JUNIOR_AGENT. Returns None for
    an empty role list.
    """

    held = {UserRole(role) for role in roles}
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


__all__ = ["ROLE_PRECEDENCE", "User", "UserRole", "select_active_role"]
