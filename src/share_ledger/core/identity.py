"""Acting identities.

Authentication happens upstream; the engine only receives a user id and a
role it trusts and checks ownership against them.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_INVESTOR = "investor"
ROLE_ADMIN = "admin"
ROLES = (ROLE_INVESTOR, ROLE_ADMIN)


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is performing an operation.

    Attributes:
        user_id: Identifier from the identity collaborator, or ``"system"``
            for maintenance jobs such as the reservation sweep.
        role: ``investor`` or ``admin``.
    """

    user_id: str
    role: str = ROLE_INVESTOR

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def may_act_for(self, user_id: str) -> bool:
        """Return True when this actor may read or change ``user_id``'s data."""
        return self.is_admin or self.user_id == user_id


SYSTEM_ACTOR = Actor(user_id="system", role=ROLE_ADMIN)
