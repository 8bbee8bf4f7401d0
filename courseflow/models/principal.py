from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller extracted from a validated JWT.

    The upstream auth service puts the user's UUID in ``sub`` and the
    platform roles (student, instructor, admin) in ``roles``.  Services
    receive this instead of raw token claims and make their own
    ownership/enrollment decisions from it.
    """

    user_id: UUID
    roles: frozenset[str]
    name: str = ""

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str]) -> bool:
        return bool(self.roles & roles)

    def is_platform_admin(self) -> bool:
        return "admin" in self.roles

    def owns(self, owner_id: UUID) -> bool:
        return self.user_id == owner_id or self.is_platform_admin()
